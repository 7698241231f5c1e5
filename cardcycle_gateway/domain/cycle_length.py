"""Statement period length estimation"""

from typing import Optional
from cardcycle_gateway.domain.models import CreditAccount
from cardcycle_gateway.config import settings


def estimate_cycle_length(
    account: CreditAccount,
    override_days: Optional[int] = None,
    default_days: int | None = None,
    grace_period_days: int | None = None,
    min_days: int | None = None,
    max_days: int | None = None,
) -> int:
    """
    Infer an account's billing cycle length in days.

    Issuers rarely publish the period length, but the due date follows the
    statement by a roughly fixed grace period:

        raw = (next_payment_due_date - last_statement_issue_date) - grace
        length = clamp(raw, min_days, max_days)

    Falls back to the default when either date is missing. Never raises.

    Example:
        statement 2025-08-05, due 2025-09-01 -> 27 days apart
        27 - 21 = 6 -> clamped to 25
    """
    if override_days:
        return override_days

    default_days = default_days or settings.default_cycle_length_days
    grace_period_days = settings.grace_period_days if grace_period_days is None else grace_period_days
    min_days = min_days or settings.min_cycle_length_days
    max_days = max_days or settings.max_cycle_length_days

    if account.last_statement_issue_date is None or account.next_payment_due_date is None:
        return default_days

    raw = (account.next_payment_due_date - account.last_statement_issue_date).days - grace_period_days
    return max(min_days, min(raw, max_days))
