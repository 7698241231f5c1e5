"""Per-cycle spend aggregation from the transaction set"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable
from cardcycle_gateway.domain.classifier import exclude_payments
from cardcycle_gateway.domain.models import CycleBoundary, Transaction
from cardcycle_gateway.utils.date_utils import clamp_to_today


@dataclass
class SpendTotals:
    total_spend_cents: int
    transaction_count: int


def transactions_in_cycle(
    boundary: CycleBoundary,
    transactions: Iterable[Transaction],
    today: date | None = None,
) -> list[Transaction]:
    """Transactions dated within [start, min(end, today)]"""
    today = today or date.today()
    effective_end = clamp_to_today(boundary.end_date, today)
    return [t for t in transactions if boundary.start_date <= t.date <= effective_end]


def aggregate_spend(
    boundary: CycleBoundary,
    transactions: Iterable[Transaction],
    today: date | None = None,
    require_negative_amount: bool = False,
) -> SpendTotals:
    """
    Sum spend for one cycle.

    Charges add, refunds subtract, payments are skipped entirely. A cycle
    dominated by refunds floors at zero. transaction_count covers every
    transaction in the window, payments included.
    """
    in_cycle = transactions_in_cycle(boundary, transactions, today)
    spend = sum(t.amount_cents for t in exclude_payments(in_cycle, require_negative_amount))

    return SpendTotals(total_spend_cents=max(0, spend), transaction_count=len(in_cycle))
