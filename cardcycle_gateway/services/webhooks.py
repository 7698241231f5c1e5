"""Aggregator webhook intake - maps notifications to recompute triggers"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from cardcycle_gateway.config import settings
from cardcycle_gateway.domain.models import LookbackMode, SyncOutcome
from cardcycle_gateway.infrastructure.database.repositories import ItemRepository
from cardcycle_gateway.services.sync import AccountSyncService

logger = logging.getLogger(__name__)

TRANSACTION_UPDATE_CODES = {"INITIAL_UPDATE", "HISTORICAL_UPDATE", "DEFAULT_UPDATE"}


@dataclass
class WebhookResult:
    deduplicated: bool = False
    outcomes: List[SyncOutcome] = field(default_factory=list)


class WebhookDeduplicator:
    """Drops repeats of the same (type, code, item) notification inside a short window"""

    def __init__(self, window_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = settings.webhook_dedup_window_seconds if window_seconds is None else window_seconds
        self.clock = clock
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_process(self, webhook_type: str, webhook_code: str, item_id: str) -> bool:
        key = f"{webhook_type}-{webhook_code}-{item_id}"
        now = self.clock()
        with self._lock:
            last = self._seen.get(key)
            if last is not None and now - last < self.window_seconds:
                return False
            self._seen[key] = now
            # Prune stale entries
            for stale in [k for k, ts in self._seen.items() if now - ts > self.window_seconds * 2]:
                del self._seen[stale]
            return True


async def handle_webhook(
    sync_service: AccountSyncService,
    deduplicator: WebhookDeduplicator,
    webhook_type: str,
    webhook_code: str,
    item_id: str,
    error_code: Optional[str] = None,
) -> WebhookResult:
    """
    Dispatch one aggregator notification.

    Outcomes are empty when the notification was ignored, deduplicated,
    or only updated item status.
    """
    if not deduplicator.should_process(webhook_type, webhook_code, item_id):
        logger.info(
            "Duplicate webhook skipped",
            extra={"webhook_type": webhook_type, "webhook_code": webhook_code, "item_id": item_id},
        )
        return WebhookResult(deduplicated=True)

    if webhook_type == "TRANSACTIONS" and webhook_code in TRANSACTION_UPDATE_CODES:
        return WebhookResult(outcomes=await sync_service.sync_item(item_id, LookbackMode.FULL, trigger="webhook"))

    if webhook_type == "LIABILITIES" and webhook_code == "DEFAULT_UPDATE":
        return WebhookResult(outcomes=await sync_service.sync_item(item_id, LookbackMode.FULL, trigger="webhook"))

    if webhook_type == "ITEM" and webhook_code == "ERROR":
        db = sync_service.session_factory()
        try:
            ItemRepository(db).mark_error(item_id, error_code or "ITEM_ERROR")
            db.commit()
        finally:
            db.close()
        return WebhookResult()

    logger.info(
        "Unhandled webhook",
        extra={"webhook_type": webhook_type, "webhook_code": webhook_code, "item_id": item_id},
    )
    return WebhookResult()
