"""Billing cycle generation - core boundary derivation logic"""

from datetime import date, timedelta
from typing import List, Optional, Sequence
from cardcycle_gateway.domain.cycle_length import estimate_cycle_length
from cardcycle_gateway.domain.models import BillingCycle, CreditAccount, CycleBoundary, Transaction
from cardcycle_gateway.domain.reconciler import reconcile
from cardcycle_gateway.domain.spend import aggregate_spend
from cardcycle_gateway.utils.date_utils import day_after, day_before, months_before


def earliest_tracked_date(account: CreditAccount, lookback_months: int, today: date) -> date:
    """Later of the account's open date and the lookback horizon"""
    horizon = months_before(today, lookback_months)
    if account.open_date and account.open_date > horizon:
        return account.open_date
    return horizon


def generate_cycle_boundaries(
    account: CreditAccount,
    lookback_months: int,
    transactions: Optional[Sequence[Transaction]] = None,
    today: date | None = None,
    cycle_length: int | None = None,
) -> List[CycleBoundary]:
    """
    Derive contiguous, non-overlapping cycle boundaries for an account.

    Anchoring:
    1. The most recent closed cycle ends on last_statement_issue_date and
       spans cycle_length days, trimmed to start on the open date when the
       account was opened part-way through it.
    2. Older cycles are laid end to end behind it until the next one would
       start before max(open_date, today - lookback_months).
    3. The current cycle runs from the day after the statement to today.
    4. Without a statement, a single current cycle runs from the earliest
       tracked date to today.

    Returns boundaries sorted by end_date descending. An account with no
    statement and no transactions yields no cycles.
    """
    today = today or date.today()
    earliest = earliest_tracked_date(account, lookback_months, today)
    statement_date = account.last_statement_issue_date

    if statement_date is None:
        if not transactions or earliest > today:
            return []
        return [CycleBoundary(start_date=earliest, end_date=today, is_current=True)]

    length = cycle_length or estimate_cycle_length(account)
    boundaries: List[CycleBoundary] = []

    current_start = day_after(statement_date)
    if current_start <= today:
        boundaries.append(CycleBoundary(start_date=current_start, end_date=today, is_current=True))

    # An open date after the statement means the statement predates anything
    # we track; only the current cycle is meaningful.
    if account.open_date and account.open_date > statement_date:
        return boundaries

    closed_start = statement_date - timedelta(days=length - 1)
    if account.open_date and closed_start < account.open_date:
        closed_start = account.open_date
    boundaries.append(CycleBoundary(start_date=closed_start, end_date=statement_date))

    end = day_before(closed_start)
    while True:
        start = end - timedelta(days=length - 1)
        if start < earliest:
            break
        boundaries.append(CycleBoundary(start_date=start, end_date=end))
        end = day_before(start)

    return boundaries


def compute_billing_cycles(
    account: CreditAccount,
    transactions: Sequence[Transaction],
    lookback_months: int,
    today: date | None = None,
    cycle_length: int | None = None,
    require_negative_amount: bool = False,
) -> List[BillingCycle]:
    """
    Full pipeline: boundaries -> transaction spend -> statement reconciliation.

    Only transactions belonging to the account are considered.
    """
    today = today or date.today()
    own_transactions = [t for t in transactions if t.account_id == account.account_id]
    boundaries = generate_cycle_boundaries(
        account,
        lookback_months,
        transactions=own_transactions,
        today=today,
        cycle_length=cycle_length,
    )

    cycles = []
    for boundary in boundaries:
        totals = aggregate_spend(boundary, own_transactions, today, require_negative_amount)
        raw = BillingCycle(
            account_id=account.account_id,
            start_date=boundary.start_date,
            end_date=boundary.end_date,
            total_spend_cents=totals.total_spend_cents,
            transaction_count=totals.transaction_count,
            is_current=boundary.is_current,
        )
        cycles.append(reconcile(raw, account))

    return cycles


def infer_open_date(transactions: Sequence[Transaction], buffer_days: int) -> Optional[date]:
    """Earliest transaction date minus a buffer, or None without transactions"""
    if not transactions:
        return None
    earliest = min(t.date for t in transactions)
    return earliest - timedelta(days=buffer_days)
