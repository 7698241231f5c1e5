"""GET /v1/billing-cycles - Stored billing cycles across a user's accounts"""

from collections import defaultdict
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cardcycle_gateway.api.v1.schemas import BillingCycleSchema, BillingCyclesResponse
from cardcycle_gateway.infrastructure.database.session import get_db
from cardcycle_gateway.infrastructure.database.repositories import BillingCycleRepository

router = APIRouter()

RECENT_CYCLES_PER_ACCOUNT = 2


@router.get("/billing-cycles", response_model=BillingCyclesResponse)
def list_billing_cycles(
    user_id: str = Query(..., min_length=1, description="User identifier"),
    account_id: Optional[str] = Query(None, description="Restrict to one account"),
    recent: bool = Query(False, description="Only the two most recent cycles per account"),
    db: Session = Depends(get_db),
):
    """
    Read stored cycles; never triggers a recompute.

    Returns:
        Cycles sorted by end date, newest first
    """
    records = BillingCycleRepository(db).list_for_user(user_id, account_id)

    if recent:
        kept = defaultdict(int)
        limited = []
        for r in records:
            if kept[r.account_id] < RECENT_CYCLES_PER_ACCOUNT:
                kept[r.account_id] += 1
                limited.append(r)
        records = limited

    cycles = []
    for r in records:
        cycle = BillingCycleRepository.to_domain(r)
        cycles.append(
            BillingCycleSchema(
                account_id=cycle.account_id,
                start_date=cycle.start_date,
                end_date=cycle.end_date,
                is_current=cycle.is_current,
                total_spend_cents=cycle.total_spend_cents,
                statement_balance_cents=cycle.statement_balance_cents,
                minimum_payment_cents=cycle.minimum_payment_cents,
                due_date=cycle.due_date,
                transaction_count=cycle.transaction_count,
            )
        )

    return BillingCyclesResponse(user_id=user_id, billing_cycles=cycles)
