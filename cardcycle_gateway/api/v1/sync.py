"""Recompute triggers - item sync, manual regeneration and user resync"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query

from cardcycle_gateway.api.v1.schemas import RepairReportSchema, SyncOutcomeSchema, SyncResponse
from cardcycle_gateway.api.dependencies import get_sync_service
from cardcycle_gateway.domain.models import ErrorKind, LookbackMode, SyncOutcome
from cardcycle_gateway.services.sync import AccountSyncService

router = APIRouter()


def to_schema(outcome: SyncOutcome) -> SyncOutcomeSchema:
    report = None
    if outcome.report is not None:
        report = RepairReportSchema(
            inserted=outcome.report.inserted,
            updated=outcome.report.updated,
            deleted=outcome.report.deleted,
            open_date_inferred=outcome.report.open_date_inferred,
        )
    return SyncOutcomeSchema(
        account_id=outcome.account_id,
        ok=outcome.ok,
        report=report,
        error_kind=outcome.error_kind.value if outcome.error_kind else None,
        error_code=outcome.error_code,
        detail=outcome.detail,
    )


def to_response(outcomes: List[SyncOutcome]) -> SyncResponse:
    """Map engine outcomes to HTTP: all-validation failures are 404, all-upstream failures 503"""
    if outcomes and all(o.error_kind is ErrorKind.VALIDATION for o in outcomes):
        raise HTTPException(status_code=404, detail=outcomes[0].detail)
    if outcomes and all(o.error_kind is ErrorKind.UPSTREAM_FETCH for o in outcomes):
        raise HTTPException(status_code=503, detail="Aggregator unavailable")
    return SyncResponse(outcomes=[to_schema(o) for o in outcomes])


@router.post("/items/{item_id}/sync", response_model=SyncResponse)
async def sync_item(
    item_id: str,
    mode: LookbackMode = Query(LookbackMode.FULL, description="preview right after linking, full for backfill"),
    sync_service: AccountSyncService = Depends(get_sync_service),
):
    """Fetch fresh aggregator data for an item and repair its accounts' cycles"""
    trigger = "link" if mode is LookbackMode.PREVIEW else "resync"
    return to_response(await sync_service.sync_item(item_id, mode, trigger=trigger))


@router.post("/accounts/{account_id}/regenerate", response_model=SyncResponse)
def regenerate_account(
    account_id: str,
    sync_service: AccountSyncService = Depends(get_sync_service),
):
    """Recompute one account's cycles from stored transactions"""
    return to_response([sync_service.regenerate_account(account_id, LookbackMode.FULL, trigger="manual")])


@router.post("/users/{user_id}/resync", response_model=SyncResponse)
async def resync_user(
    user_id: str,
    sync_service: AccountSyncService = Depends(get_sync_service),
):
    """User-initiated refresh of every linked institution"""
    return to_response(await sync_service.resync_user(user_id))
