"""Account sync - fetch from the aggregator, store, then repair cycles"""

import logging
from datetime import date
from typing import Callable, List
from sqlalchemy.orm import Session
from cardcycle_gateway.domain.exceptions import DataIntegrityError, UpstreamFetchError, ValidationError
from cardcycle_gateway.domain.institutions import resolve_policy
from cardcycle_gateway.domain.models import ErrorKind, LookbackMode, SyncOutcome
from cardcycle_gateway.infrastructure.clients.aggregator import AggregatorClient
from cardcycle_gateway.infrastructure.database.locks import AccountLockManager
from cardcycle_gateway.infrastructure.database.repositories import (
    AccountRepository,
    ItemRepository,
    TransactionRepository,
)
from cardcycle_gateway.infrastructure.observability.logging import log_sync_failure
from cardcycle_gateway.infrastructure.observability.metrics import record_recompute
from cardcycle_gateway.services.repair import CycleRepairService
from cardcycle_gateway.utils.date_utils import months_before

logger = logging.getLogger(__name__)


class AccountSyncService:
    """
    Entry point for every recompute trigger (webhook, manual, resync, link).

    Never raises for expected failures: each account gets a SyncOutcome.
    An upstream failure leaves stored metadata, transactions and cycles
    exactly as they were.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        client: AggregatorClient,
        locks: AccountLockManager,
        today: date | None = None,
    ):
        self.session_factory = session_factory
        self.client = client
        self.locks = locks
        self.today = today

    def _today(self) -> date:
        return self.today or date.today()

    def _failure(self, account_id: str, kind: ErrorKind, detail: str, trigger: str, error_code: str | None = None) -> SyncOutcome:
        record_recompute(trigger, kind.value)
        log_sync_failure(account_id, kind.value, detail, error_code)
        return SyncOutcome.failure(account_id, kind, detail, error_code)

    def _repair(self, db: Session, account_id: str, mode: LookbackMode, trigger: str) -> SyncOutcome:
        try:
            report = CycleRepairService(db, self.locks, today=self.today).reconcile_stored(account_id, mode)
        except ValidationError as e:
            return self._failure(account_id, ErrorKind.VALIDATION, str(e), trigger)
        except DataIntegrityError as e:
            return self._failure(account_id, ErrorKind.DATA_INTEGRITY, str(e), trigger)

        record_recompute(trigger, "ok")
        return SyncOutcome.success(report)

    async def sync_item(
        self,
        item_id: str,
        mode: LookbackMode = LookbackMode.FULL,
        trigger: str = "webhook",
    ) -> List[SyncOutcome]:
        """
        Refresh one institution login and recompute all its accounts.

        Flow:
        1. Fetch liabilities and transactions for the institution's lookback window
        2. Update account metadata and upsert transactions (one commit)
        3. Repair each account's cycles under its exclusive section
        """
        db = self.session_factory()
        try:
            items = ItemRepository(db)
            accounts = AccountRepository(db)
            item = items.get_by_item_id(item_id)
            if item is None or not item.access_token:
                return [self._failure(item_id, ErrorKind.VALIDATION, f"No usable credentials for item {item_id}", trigger)]

            policy = resolve_policy(item.institution_id)
            today = self._today()
            start_date = months_before(today, policy.lookback_months(mode))

            try:
                liabilities = await self.client.get_liabilities(item.access_token, policy)
                transactions = await self.client.get_transactions(item.access_token, start_date, today, policy)
            except UpstreamFetchError as e:
                items.mark_error(item_id, e.error_code)
                db.commit()
                account_ids = accounts.list_ids_for_item(item_id) or [item_id]
                return [
                    self._failure(account_id, ErrorKind.UPSTREAM_FETCH, str(e), trigger, e.error_code)
                    for account_id in account_ids
                ]

            try:
                for snapshot in liabilities:
                    accounts.apply_liability(item_id, snapshot)
                db.flush()
                account_ids = accounts.list_ids_for_item(item_id)
                stored = TransactionRepository(db).upsert_many(transactions, account_ids)
                items.mark_active(item_id)
                db.commit()
            except Exception:
                db.rollback()
                raise

            logger.info(
                "Aggregator data stored",
                extra={
                    "item_id": item_id,
                    "institution": policy.key,
                    "accounts": len(account_ids),
                    "transactions": stored,
                    "lookback_mode": mode.value,
                },
            )
            return [self._repair(db, account_id, mode, trigger) for account_id in account_ids]
        finally:
            db.close()

    def regenerate_account(
        self,
        account_id: str,
        mode: LookbackMode = LookbackMode.FULL,
        trigger: str = "manual",
    ) -> SyncOutcome:
        """Recompute one account from stored data, without calling the aggregator"""
        db = self.session_factory()
        try:
            return self._repair(db, account_id, mode, trigger)
        finally:
            db.close()

    async def resync_user(self, user_id: str, trigger: str = "resync") -> List[SyncOutcome]:
        """Refresh every institution login a user has linked"""
        if not user_id:
            return [self._failure("", ErrorKind.VALIDATION, "user_id is required", trigger)]

        db = self.session_factory()
        try:
            item_ids = [item.item_id for item in ItemRepository(db).list_for_user(user_id)]
        finally:
            db.close()

        outcomes: List[SyncOutcome] = []
        for item_id in item_ids:
            outcomes.extend(await self.sync_item(item_id, LookbackMode.FULL, trigger))
        return outcomes
