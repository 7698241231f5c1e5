"""Data access layer for accounts, transactions and billing cycles"""

from datetime import date
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from cardcycle_gateway.infrastructure.database.models import (
    AggregatorItem,
    BillingCycleRecord,
    CreditAccountRecord,
    TransactionRecord,
)
from cardcycle_gateway.domain.models import (
    BillingCycle,
    CreditAccount,
    LiabilitySnapshot,
    Transaction,
)
from cardcycle_gateway.domain.exceptions import AccountNotFoundError, DataIntegrityError


def _require(record: object, *fields: str) -> None:
    """Refuse to map a row whose required columns came back empty"""
    missing = [f for f in fields if getattr(record, f, None) is None]
    if missing:
        raise DataIntegrityError(
            f"{type(record).__name__} {getattr(record, 'id', '?')} missing {', '.join(missing)}"
        )


class ItemRepository:
    """Repository for aggregator items (institution logins)"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_item_id(self, item_id: str) -> Optional[AggregatorItem]:
        return self.db.query(AggregatorItem).filter(AggregatorItem.item_id == item_id).first()

    def list_for_user(self, user_id: str) -> List[AggregatorItem]:
        return self.db.query(AggregatorItem).filter(AggregatorItem.user_id == user_id).all()

    def mark_error(self, item_id: str, error_code: str) -> None:
        item = self.get_by_item_id(item_id)
        if item:
            item.status = "error"
            item.error_code = error_code

    def mark_active(self, item_id: str) -> None:
        item = self.get_by_item_id(item_id)
        if item:
            item.status = "active"
            item.error_code = None


class AccountRepository:
    """Repository for credit accounts"""

    def __init__(self, db: Session):
        self.db = db

    def _get_record(self, account_id: str) -> Optional[CreditAccountRecord]:
        return self.db.query(CreditAccountRecord).filter(CreditAccountRecord.account_id == account_id).first()

    def get(self, account_id: str) -> CreditAccount:
        """Load an account joined with its institution details"""
        row = (
            self.db.query(CreditAccountRecord, AggregatorItem)
            .outerjoin(AggregatorItem, AggregatorItem.item_id == CreditAccountRecord.item_id)
            .filter(CreditAccountRecord.account_id == account_id)
            .first()
        )
        if row is None:
            raise AccountNotFoundError(f"Credit account {account_id} not found")

        record, item = row
        _require(record, "account_id", "item_id")
        return CreditAccount(
            account_id=record.account_id,
            item_id=record.item_id,
            institution_id=item.institution_id if item else None,
            institution_name=item.institution_name if item else None,
            name=record.name,
            open_date=record.open_date,
            open_date_inferred=bool(record.open_date_inferred),
            last_statement_issue_date=record.last_statement_issue_date,
            last_statement_balance_cents=record.last_statement_balance_cents,
            minimum_payment_cents=record.minimum_payment_cents,
            next_payment_due_date=record.next_payment_due_date,
            balance_current_cents=record.balance_current_cents,
            balance_limit_cents=record.balance_limit_cents,
        )

    def list_ids_for_item(self, item_id: str) -> List[str]:
        rows = (
            self.db.query(CreditAccountRecord.account_id)
            .filter(CreditAccountRecord.item_id == item_id)
            .order_by(CreditAccountRecord.account_id)
            .all()
        )
        return [r[0] for r in rows]

    def set_open_date(self, account_id: str, open_date: date, inferred: bool = False) -> None:
        record = self._get_record(account_id)
        if record is None:
            raise AccountNotFoundError(f"Credit account {account_id} not found")
        record.open_date = open_date
        record.open_date_inferred = inferred

    def apply_liability(self, item_id: str, snapshot: LiabilitySnapshot) -> CreditAccountRecord:
        """Create or refresh an account from the aggregator's liabilities feed"""
        record = self._get_record(snapshot.account_id)
        if record is None:
            record = CreditAccountRecord(account_id=snapshot.account_id, item_id=item_id)
            self.db.add(record)

        record.last_statement_issue_date = snapshot.last_statement_issue_date
        record.last_statement_balance_cents = snapshot.last_statement_balance_cents
        record.minimum_payment_cents = snapshot.minimum_payment_cents
        record.next_payment_due_date = snapshot.next_payment_due_date
        record.balance_current_cents = snapshot.balance_current_cents
        record.balance_limit_cents = snapshot.balance_limit_cents
        if snapshot.name is not None:
            record.name = snapshot.name
        if snapshot.mask is not None:
            record.mask = snapshot.mask
        return record


class TransactionRepository:
    """Repository for card transactions"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_account(self, account_id: str) -> List[Transaction]:
        records = (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.account_id == account_id)
            .order_by(TransactionRecord.date.asc())
            .all()
        )
        transactions = []
        for r in records:
            _require(r, "transaction_id", "date", "amount_cents", "name")
            transactions.append(
                Transaction(
                    transaction_id=r.transaction_id,
                    account_id=r.account_id,
                    date=r.date,
                    amount_cents=r.amount_cents,
                    description=r.name,
                    pending=r.pending,
                    merchant_name=r.merchant_name,
                    category=r.category,
                    authorized_date=r.authorized_date,
                )
            )
        return transactions

    def upsert_many(self, transactions: Iterable[Transaction], known_accounts: Iterable[str]) -> int:
        """
        Insert or refresh transactions keyed by aggregator transaction id.

        Re-ingesting the same payload is a no-op apart from pending flags,
        dates and amounts that changed when the transaction settled.
        Transactions for accounts we do not track are skipped.
        """
        accounts = set(known_accounts)
        incoming = [t for t in transactions if t.account_id in accounts]
        if not incoming:
            return 0

        existing: Dict[str, TransactionRecord] = {
            r.transaction_id: r
            for r in self.db.query(TransactionRecord)
            .filter(TransactionRecord.transaction_id.in_([t.transaction_id for t in incoming]))
            .all()
        }

        written = 0
        for txn in incoming:
            record = existing.get(txn.transaction_id)
            if record is None:
                record = TransactionRecord(transaction_id=txn.transaction_id, account_id=txn.account_id)
                self.db.add(record)
                existing[txn.transaction_id] = record
            record.date = txn.date
            record.authorized_date = txn.authorized_date
            record.amount_cents = txn.amount_cents
            record.name = txn.description
            record.merchant_name = txn.merchant_name
            record.category = txn.category
            record.pending = txn.pending
            written += 1

        self.db.flush()
        return written


class BillingCycleRepository:
    """Repository for billing cycles"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_account(self, account_id: str) -> List[BillingCycleRecord]:
        return (
            self.db.query(BillingCycleRecord)
            .filter(BillingCycleRecord.account_id == account_id)
            .order_by(BillingCycleRecord.end_date.desc())
            .all()
        )

    def list_for_user(self, user_id: str, account_id: str | None = None) -> List[BillingCycleRecord]:
        """All stored cycles across a user's accounts, newest first"""
        query = (
            self.db.query(BillingCycleRecord)
            .join(CreditAccountRecord, CreditAccountRecord.account_id == BillingCycleRecord.account_id)
            .join(AggregatorItem, AggregatorItem.item_id == CreditAccountRecord.item_id)
            .filter(AggregatorItem.user_id == user_id)
        )
        if account_id:
            query = query.filter(BillingCycleRecord.account_id == account_id)
        return query.order_by(BillingCycleRecord.end_date.desc(), BillingCycleRecord.account_id).all()

    def insert(self, cycle: BillingCycle) -> BillingCycleRecord:
        record = BillingCycleRecord(
            account_id=cycle.account_id,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
        )
        self._write(record, cycle)
        self.db.add(record)
        return record

    def replace(self, record: BillingCycleRecord, cycle: BillingCycle) -> BillingCycleRecord:
        """Overwrite every computed column of a stored cycle"""
        self._write(record, cycle)
        return record

    def delete(self, record: BillingCycleRecord) -> None:
        self.db.delete(record)

    @staticmethod
    def _write(record: BillingCycleRecord, cycle: BillingCycle) -> None:
        record.is_current = cycle.is_current
        record.total_spend_cents = cycle.total_spend_cents
        record.statement_balance_cents = cycle.statement_balance_cents
        record.minimum_payment_cents = cycle.minimum_payment_cents
        record.due_date = cycle.due_date
        record.transaction_count = cycle.transaction_count

    @staticmethod
    def to_domain(record: BillingCycleRecord) -> BillingCycle:
        _require(record, "account_id", "start_date", "end_date", "total_spend_cents")
        return BillingCycle(
            account_id=record.account_id,
            start_date=record.start_date,
            end_date=record.end_date,
            total_spend_cents=record.total_spend_cents,
            transaction_count=record.transaction_count or 0,
            is_current=bool(record.is_current),
            statement_balance_cents=record.statement_balance_cents,
            minimum_payment_cents=record.minimum_payment_cents,
            due_date=record.due_date,
        )
