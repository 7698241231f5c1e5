"""SQLAlchemy ORM models for accounts, transactions and billing cycles"""

import uuid
from sqlalchemy import (
    Column,
    BigInteger,
    Boolean,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class AggregatorItem(Base):
    """One institution login linked through the aggregator"""

    __tablename__ = "aggregator_item"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_id = Column(Text, nullable=False, unique=True)
    user_id = Column(Text, nullable=False, index=True)
    institution_id = Column(Text, nullable=True)
    institution_name = Column(Text, nullable=True)
    access_token = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")  # active | error
    error_code = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class CreditAccountRecord(Base):
    """Credit card account with issuer-reported statement metadata"""

    __tablename__ = "credit_account"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, nullable=False, unique=True)
    item_id = Column(Text, ForeignKey("aggregator_item.item_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(Text, nullable=True)
    mask = Column(Text, nullable=True)
    open_date = Column(Date, nullable=True)
    open_date_inferred = Column(Boolean, nullable=False, default=False)
    last_statement_issue_date = Column(Date, nullable=True)
    last_statement_balance_cents = Column(BigInteger, nullable=True)
    minimum_payment_cents = Column(BigInteger, nullable=True)
    next_payment_due_date = Column(Date, nullable=True)
    balance_current_cents = Column(BigInteger, nullable=True)
    balance_limit_cents = Column(BigInteger, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class TransactionRecord(Base):
    """Card transaction, keyed by the aggregator's transaction id"""

    __tablename__ = "card_transaction"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Text, nullable=False, unique=True)
    account_id = Column(Text, ForeignKey("credit_account.account_id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    authorized_date = Column(Date, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    name = Column(Text, nullable=False)
    merchant_name = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BillingCycleRecord(Base):
    """Persisted billing cycle; replaced as a whole, never partially written"""

    __tablename__ = "billing_cycle"
    __table_args__ = (
        UniqueConstraint("account_id", "start_date", "end_date", name="uq_billing_cycle_range"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(Text, ForeignKey("credit_account.account_id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    total_spend_cents = Column(BigInteger, nullable=False, default=0)
    statement_balance_cents = Column(BigInteger, nullable=True)
    minimum_payment_cents = Column(BigInteger, nullable=True)
    due_date = Column(Date, nullable=True)
    transaction_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
