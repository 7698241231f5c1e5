"""POST /v1/webhooks/aggregator - Aggregator notification intake"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from cardcycle_gateway.api.v1.schemas import WebhookRequest, WebhookResponse
from cardcycle_gateway.api.v1.sync import to_schema
from cardcycle_gateway.api.dependencies import get_request_id, get_sync_service, get_webhook_deduplicator
from cardcycle_gateway.services.sync import AccountSyncService
from cardcycle_gateway.services.webhooks import WebhookDeduplicator, handle_webhook

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/aggregator", response_model=WebhookResponse)
async def receive_webhook(
    body: WebhookRequest,
    request: Request,
    sync_service: AccountSyncService = Depends(get_sync_service),
    deduplicator: WebhookDeduplicator = Depends(get_webhook_deduplicator),
):
    """
    Accept a transactions, liabilities or item notification.

    An error payload is only meaningful on ITEM/ERROR; anywhere else it is rejected.
    """
    request_id = get_request_id(request)
    error_code = (body.error or {}).get("error_code")

    if body.error and not (body.webhook_type == "ITEM" and body.webhook_code == "ERROR"):
        logger.error(
            "Aggregator webhook carried an error",
            extra={"request_id": request_id, "item_id": body.item_id, "error_code": error_code},
        )
        raise HTTPException(status_code=400, detail="Webhook error")

    result = await handle_webhook(
        sync_service,
        deduplicator,
        body.webhook_type,
        body.webhook_code,
        body.item_id,
        error_code=error_code,
    )
    return WebhookResponse(
        deduplicated=result.deduplicated,
        outcomes=[to_schema(o) for o in result.outcomes],
    )
