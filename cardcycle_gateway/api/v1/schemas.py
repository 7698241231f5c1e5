"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from typing import List, Optional


class BillingCycleSchema(BaseModel):
    """Single stored billing cycle"""

    account_id: str
    start_date: date
    end_date: date
    is_current: bool
    total_spend_cents: int
    statement_balance_cents: Optional[int] = None
    minimum_payment_cents: Optional[int] = None
    due_date: Optional[date] = None
    transaction_count: int


class BillingCyclesResponse(BaseModel):
    """Response for GET /v1/billing-cycles"""

    user_id: str
    billing_cycles: List[BillingCycleSchema]


class RepairReportSchema(BaseModel):
    """Cycle writes applied for one account"""

    inserted: int
    updated: int
    deleted: int
    open_date_inferred: Optional[date] = None


class SyncOutcomeSchema(BaseModel):
    """Result of one account recompute"""

    account_id: str
    ok: bool
    report: Optional[RepairReportSchema] = None
    error_kind: Optional[str] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None


class SyncResponse(BaseModel):
    """Response for sync, regenerate and resync endpoints"""

    outcomes: List[SyncOutcomeSchema]


class WebhookRequest(BaseModel):
    """Aggregator webhook body"""

    webhook_type: str = Field(..., min_length=1)
    webhook_code: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    error: Optional[dict] = None


class WebhookResponse(BaseModel):
    """Response for POST /v1/webhooks/aggregator"""

    received: bool = True
    deduplicated: bool = False
    outcomes: List[SyncOutcomeSchema] = []
