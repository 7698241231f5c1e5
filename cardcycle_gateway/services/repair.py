"""Cycle repair - reconcile freshly computed cycles against stored ones"""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Sequence, Tuple
from sqlalchemy.orm import Session
from cardcycle_gateway.config import settings
from cardcycle_gateway.domain.cycles import compute_billing_cycles, infer_open_date
from cardcycle_gateway.domain.institutions import resolve_policy
from cardcycle_gateway.domain.models import BillingCycle, LookbackMode, RepairReport
from cardcycle_gateway.infrastructure.database.locks import AccountLockManager
from cardcycle_gateway.infrastructure.database.repositories import (
    AccountRepository,
    BillingCycleRepository,
    TransactionRepository,
)
from cardcycle_gateway.infrastructure.observability.logging import log_repair
from cardcycle_gateway.infrastructure.observability.metrics import record_repair, repair_duration_histogram

logger = logging.getLogger(__name__)

CycleKey = Tuple[date, date]


@dataclass
class RepairPlan:
    """Minimal set of writes that turns the stored cycles into the computed ones"""

    inserts: List[BillingCycle] = field(default_factory=list)
    updates: List[BillingCycle] = field(default_factory=list)
    deletes: List[CycleKey] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


def keep_confirmed_statement(stored: BillingCycle, computed: BillingCycle) -> BillingCycle:
    """
    Preserve issuer-confirmed figures on a closed cycle.

    Once the statement anchor moves to a newer statement, recomputing an
    older cycle can only produce a transaction sum; the statement balance
    stored while that cycle was the statement cycle stays authoritative.
    """
    if computed.is_current or computed.statement_balance_cents is not None:
        return computed
    if stored.statement_balance_cents is None:
        return computed
    return replace(
        computed,
        statement_balance_cents=stored.statement_balance_cents,
        total_spend_cents=stored.total_spend_cents,
        minimum_payment_cents=stored.minimum_payment_cents,
        due_date=stored.due_date,
    )


def needs_update(stored: BillingCycle, computed: BillingCycle, tolerance_cents: int) -> bool:
    if abs(stored.total_spend_cents - computed.total_spend_cents) > tolerance_cents:
        return True
    return (
        stored.statement_balance_cents != computed.statement_balance_cents
        or stored.is_current != computed.is_current
        or stored.due_date != computed.due_date
        or stored.minimum_payment_cents != computed.minimum_payment_cents
        or stored.transaction_count != computed.transaction_count
    )


def plan_repair(
    stored: Sequence[BillingCycle],
    computed: Sequence[BillingCycle],
    tolerance_cents: int | None = None,
) -> RepairPlan:
    """
    Diff stored cycles against computed ones, keyed by (start_date, end_date).

    - computed range not stored: insert
    - stored and differing beyond tolerance: update in place
    - stored range no longer computed: delete
    """
    tolerance = settings.spend_tolerance_cents if tolerance_cents is None else tolerance_cents
    stored_by_key: Dict[CycleKey, BillingCycle] = {(c.start_date, c.end_date): c for c in stored}
    computed_keys = set()
    plan = RepairPlan()

    for cycle in computed:
        key = (cycle.start_date, cycle.end_date)
        computed_keys.add(key)
        existing = stored_by_key.get(key)
        if existing is None:
            plan.inserts.append(cycle)
            continue

        merged = keep_confirmed_statement(existing, cycle)
        if needs_update(existing, merged, tolerance):
            plan.updates.append(merged)

    plan.deletes = sorted(key for key in stored_by_key if key not in computed_keys)
    return plan


class CycleRepairService:
    """Recomputes an account's cycles and applies the minimal corrective writes"""

    def __init__(self, db: Session, locks: AccountLockManager, today: date | None = None):
        self.db = db
        self.locks = locks
        self.today = today
        self.accounts = AccountRepository(db)
        self.transactions = TransactionRepository(db)
        self.cycles = BillingCycleRepository(db)

    def compute(self, account_id: str, mode: LookbackMode = LookbackMode.FULL) -> Tuple[List[BillingCycle], RepairReport]:
        """
        Compute the cycle set for an account without writing cycles.

        On a full repair, infers and stages the open date when the account
        has none, and moves an inferred one earlier when older transactions
        have arrived. Preview repairs only see a short window of history, so
        they never infer.
        """
        account = self.accounts.get(account_id)
        transactions = self.transactions.list_for_account(account_id)
        report = RepairReport(account_id=account_id)

        if mode is LookbackMode.FULL and (account.open_date is None or account.open_date_inferred):
            inferred = infer_open_date(transactions, settings.open_date_buffer_days)
            if inferred is not None and (account.open_date is None or inferred < account.open_date):
                self.accounts.set_open_date(account_id, inferred, inferred=True)
                account.open_date = inferred
                account.open_date_inferred = True
                report.open_date_inferred = inferred
                logger.info(
                    "Inferred account open date",
                    extra={"account_id": account_id, "open_date": inferred.isoformat()},
                )

        policy = resolve_policy(account.institution_id)
        cycles = compute_billing_cycles(
            account,
            transactions,
            lookback_months=policy.lookback_months(mode),
            today=self.today or date.today(),
            cycle_length=policy.cycle_length_override,
            require_negative_amount=settings.payment_requires_negative_amount,
        )
        return cycles, report

    def reconcile_stored(self, account_id: str, mode: LookbackMode = LookbackMode.FULL) -> RepairReport:
        """
        Recompute and persist an account's cycles as one all-or-nothing unit.

        Runs inside the account's exclusive section; any failure rolls back
        every write, including an inferred open date.

        Raises:
            AccountNotFoundError: Unknown account id
            DataIntegrityError: A stored row is missing a required field
        """
        start_time = time.time()
        with self.locks.hold(account_id, self.db):
            try:
                computed, report = self.compute(account_id, mode)
                stored_records = {(r.start_date, r.end_date): r for r in self.cycles.list_for_account(account_id)}
                stored = [BillingCycleRepository.to_domain(r) for r in stored_records.values()]

                plan = plan_repair(stored, computed)
                for key in plan.deletes:
                    self.cycles.delete(stored_records[key])
                # Deletes go out before inserts so a shifted range never trips the unique key
                self.db.flush()
                for cycle in plan.updates:
                    self.cycles.replace(stored_records[(cycle.start_date, cycle.end_date)], cycle)
                for cycle in plan.inserts:
                    self.cycles.insert(cycle)

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        report.inserted = len(plan.inserts)
        report.updated = len(plan.updates)
        report.deleted = len(plan.deletes)

        duration = time.time() - start_time
        repair_duration_histogram.observe(duration)
        record_repair(report.inserted, report.updated, report.deleted)
        log_repair(report, duration * 1000)
        return report
