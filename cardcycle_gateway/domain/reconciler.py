"""Statement reconciliation - issuer-reported figures override computed spend"""

from dataclasses import replace
from datetime import timedelta
from cardcycle_gateway.domain.models import BillingCycle, CreditAccount
from cardcycle_gateway.config import settings

MIN_PAYMENT_FLOOR_CENTS = 2_500  # $25
MIN_PAYMENT_RATE = 0.02


def estimate_minimum_payment(total_spend_cents: int) -> int:
    """Typical issuer minimum: 2% of the balance, at least $25; zero when nothing is owed"""
    if total_spend_cents <= 0:
        return 0
    return max(MIN_PAYMENT_FLOOR_CENTS, round(total_spend_cents * MIN_PAYMENT_RATE))


def is_statement_cycle(cycle: BillingCycle, account: CreditAccount) -> bool:
    return (
        account.last_statement_issue_date is not None
        and cycle.end_date == account.last_statement_issue_date
    )


def reconcile(cycle: BillingCycle, account: CreditAccount, grace_period_days: int | None = None) -> BillingCycle:
    """
    Apply issuer ground truth to a transaction-derived cycle.

    Rules, in order:
    - Statement cycle (ends on the last statement date): statement balance is
      |last_statement_balance| and total spend is set to it.
    - Current cycle with both balances known: spend is
      max(0, |balance_current| - |last_statement_balance|), which excludes
      pending noise that a transaction sum would pick up.
    - Any other cycle keeps its transaction sum, with an estimated due date
      and minimum payment.
    """
    grace = settings.grace_period_days if grace_period_days is None else grace_period_days

    if is_statement_cycle(cycle, account):
        if account.last_statement_balance_cents is None:
            return replace(cycle, due_date=account.next_payment_due_date)

        statement_balance = abs(account.last_statement_balance_cents)
        return replace(
            cycle,
            statement_balance_cents=statement_balance,
            total_spend_cents=statement_balance,
            minimum_payment_cents=account.minimum_payment_cents,
            due_date=account.next_payment_due_date,
        )

    if cycle.is_current:
        if account.balance_current_cents is not None and account.last_statement_balance_cents is not None:
            committed = abs(account.balance_current_cents) - abs(account.last_statement_balance_cents)
            return replace(cycle, total_spend_cents=max(0, committed), statement_balance_cents=None)
        return replace(cycle, statement_balance_cents=None)

    return replace(
        cycle,
        statement_balance_cents=None,
        minimum_payment_cents=estimate_minimum_payment(cycle.total_spend_cents),
        due_date=cycle.end_date + timedelta(days=grace),
    )
