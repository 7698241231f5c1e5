"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Optional


class TransactionKind(str, Enum):
    """How a transaction affects cycle spend"""

    CHARGE = "charge"
    REFUND = "refund"
    PAYMENT = "payment"


class LookbackMode(str, Enum):
    """Window size used when fetching history and generating cycles"""

    PREVIEW = "preview"  # fast pass right after linking
    FULL = "full"  # authoritative backfill


class ErrorKind(str, Enum):
    """Failure categories surfaced by engine operations"""

    VALIDATION = "validation"
    UPSTREAM_FETCH = "upstream_fetch"
    DATA_INTEGRITY = "data_integrity"


@dataclass
class CreditAccount:
    """Credit card account as last reported by the aggregator"""

    account_id: str
    item_id: str
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    name: Optional[str] = None
    open_date: Optional[date] = None
    open_date_inferred: bool = False  # derived from earliest transaction, revisable
    last_statement_issue_date: Optional[date] = None
    last_statement_balance_cents: Optional[int] = None  # non-negative amount owed
    minimum_payment_cents: Optional[int] = None
    next_payment_due_date: Optional[date] = None
    balance_current_cents: Optional[int] = None
    balance_limit_cents: Optional[int] = None


@dataclass
class Transaction:
    """Card transaction from the aggregator"""

    transaction_id: str
    account_id: str
    date: date
    amount_cents: int  # positive = charge, negative = refund or payment credit
    description: str
    pending: bool = False
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    authorized_date: Optional[date] = None


@dataclass(frozen=True)
class CycleBoundary:
    """Inclusive date range of one billing cycle"""

    start_date: date
    end_date: date
    is_current: bool = False


@dataclass
class BillingCycle:
    """Fully computed billing cycle ready to persist"""

    account_id: str
    start_date: date
    end_date: date
    total_spend_cents: int
    transaction_count: int
    is_current: bool = False
    statement_balance_cents: Optional[int] = None
    minimum_payment_cents: Optional[int] = None
    due_date: Optional[date] = None


@dataclass
class RepairReport:
    """Writes applied while reconciling stored cycles for one account"""

    account_id: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    open_date_inferred: Optional[date] = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "account_id": self.account_id,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "open_date_inferred": self.open_date_inferred.isoformat() if self.open_date_inferred else None,
        }


@dataclass
class SyncOutcome:
    """Result of a recompute triggered for one account"""

    account_id: str
    ok: bool
    report: Optional[RepairReport] = None
    error_kind: Optional[ErrorKind] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls, report: RepairReport) -> "SyncOutcome":
        return cls(account_id=report.account_id, ok=True, report=report)

    @classmethod
    def failure(
        cls,
        account_id: str,
        error_kind: ErrorKind,
        detail: str,
        error_code: Optional[str] = None,
    ) -> "SyncOutcome":
        return cls(
            account_id=account_id,
            ok=False,
            error_kind=error_kind,
            error_code=error_code,
            detail=detail,
        )


@dataclass
class LiabilitySnapshot:
    """Account metadata refresh from the aggregator's liabilities feed"""

    account_id: str
    last_statement_issue_date: Optional[date] = None
    last_statement_balance_cents: Optional[int] = None
    minimum_payment_cents: Optional[int] = None
    next_payment_due_date: Optional[date] = None
    balance_current_cents: Optional[int] = None
    balance_limit_cents: Optional[int] = None
    name: Optional[str] = None
    mask: Optional[str] = None
