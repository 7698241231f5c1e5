"""Pytest fixtures for testing"""

import json
import pytest
from datetime import date, timedelta
from typing import Any, Dict, Generator, List
import httpx
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from cardcycle_gateway.api.main import create_app
from cardcycle_gateway.domain.models import CreditAccount, Transaction
from cardcycle_gateway.infrastructure.clients.aggregator import AggregatorClient
from cardcycle_gateway.infrastructure.database.locks import AccountLockManager
from cardcycle_gateway.infrastructure.database.models import (
    AggregatorItem,
    Base,
    CreditAccountRecord,
    TransactionRecord,
)
from cardcycle_gateway.infrastructure.database.session import Database
from cardcycle_gateway.services.sync import AccountSyncService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"

# Every date-sensitive test runs against this "today"
TODAY = date(2025, 8, 20)


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Create test database schema"""
    database = Database(TEST_DATABASE_URL)
    Base.metadata.create_all(bind=database.engine)
    try:
        yield database
    finally:
        Base.metadata.drop_all(bind=database.engine)
        database.dispose()


@pytest.fixture
def db(database: Database) -> Generator[Session, None, None]:
    """Session for seeding and assertions"""
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def locks() -> AccountLockManager:
    return AccountLockManager()


class FakeAggregator:
    """In-memory aggregator served through httpx.MockTransport"""

    def __init__(self):
        self.accounts: List[Dict[str, Any]] = []
        self.credit: List[Dict[str, Any]] = []
        self.transactions: List[Dict[str, Any]] = []
        self.failures: Dict[str, List[int]] = {}  # path -> queued status codes
        self.requests: List[Dict[str, Any]] = []
        self.sleeps: List[float] = []  # pacing and backoff waits requested by the client

    def add_card(
        self,
        account_id: str,
        last_statement_issue_date: str | None = None,
        last_statement_balance: float | None = None,
        next_payment_due_date: str | None = None,
        balance_current: float | None = None,
        balance_limit: float | None = None,
        minimum_payment_amount: float | None = None,
    ) -> None:
        self.accounts.append(
            {
                "account_id": account_id,
                "name": f"Card {account_id}",
                "mask": "1234",
                "subtype": "credit card",
                "balances": {"current": balance_current, "limit": balance_limit},
            }
        )
        self.credit.append(
            {
                "account_id": account_id,
                "last_statement_issue_date": last_statement_issue_date,
                "last_statement_balance": last_statement_balance,
                "next_payment_due_date": next_payment_due_date,
                "minimum_payment_amount": minimum_payment_amount,
            }
        )

    def add_transaction(self, transaction_id: str, account_id: str, day: str, amount: float, name: str, pending: bool = False) -> None:
        self.transactions.append(
            {
                "transaction_id": transaction_id,
                "account_id": account_id,
                "amount": amount,
                "date": day,
                "pending": pending,
                "name": name,
                "merchant_name": None,
                "category": ["Shops"],
            }
        )

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def fail(self, path: str, *status_codes: int) -> None:
        self.failures.setdefault(path, []).extend(status_codes)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append({"path": request.url.path, "body": body})

        queued = self.failures.get(request.url.path)
        if queued:
            return httpx.Response(queued.pop(0), json={"error_code": "INSTITUTION_DOWN"})

        if request.url.path == "/liabilities/get":
            return httpx.Response(200, json={"accounts": self.accounts, "liabilities": {"credit": self.credit}})

        if request.url.path == "/transactions/get":
            start = body["start_date"]
            end = body["end_date"]
            matching = [t for t in self.transactions if start <= t["date"] <= end]
            offset = body["options"]["offset"]
            count = body["options"]["count"]
            return httpx.Response(
                200,
                json={"transactions": matching[offset:offset + count], "total_transactions": len(matching)},
            )

        return httpx.Response(404, json={"error_code": "NOT_FOUND"})


@pytest.fixture
def fake_aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture
def aggregator_client(fake_aggregator: FakeAggregator) -> AggregatorClient:
    client = AggregatorClient(
        base_url="http://aggregator.test",
        transport=httpx.MockTransport(fake_aggregator.handler),
        sleep=fake_aggregator.sleep,
        clock=lambda: 0.0,
    )
    client.backoff_base = 0.0
    return client


@pytest.fixture
def sync_service(database: Database, aggregator_client: AggregatorClient, locks: AccountLockManager) -> AccountSyncService:
    return AccountSyncService(database.session, aggregator_client, locks, today=TODAY)


@pytest.fixture
def client(database: Database, aggregator_client: AggregatorClient) -> TestClient:
    """Create FastAPI test client with test database and fake aggregator"""
    app = create_app(database=database, client=aggregator_client)
    app.state.sync_service.today = TODAY
    return TestClient(app)


def seed_item(db: Session, item_id: str = "item_1", user_id: str = "user_1", institution_id: str = "ins_3") -> AggregatorItem:
    item = AggregatorItem(
        item_id=item_id,
        user_id=user_id,
        institution_id=institution_id,
        institution_name="Test Bank",
        access_token="access-sandbox-token",
    )
    db.add(item)
    db.commit()
    return item


def seed_account(db: Session, account_id: str = "acct_1", item_id: str = "item_1", **fields: Any) -> CreditAccountRecord:
    record = CreditAccountRecord(account_id=account_id, item_id=item_id, name="Rewards Card", **fields)
    db.add(record)
    db.commit()
    return record


def seed_transaction(
    db: Session,
    transaction_id: str,
    day: date,
    amount_cents: int,
    name: str = "Grocery Store",
    account_id: str = "acct_1",
) -> TransactionRecord:
    record = TransactionRecord(
        transaction_id=transaction_id,
        account_id=account_id,
        date=day,
        amount_cents=amount_cents,
        name=name,
    )
    db.add(record)
    db.commit()
    return record


def make_account(**fields: Any) -> CreditAccount:
    defaults = {"account_id": "acct_1", "item_id": "item_1"}
    defaults.update(fields)
    return CreditAccount(**defaults)


def make_transaction(txn_id: str, day: date, amount_cents: int, description: str = "Coffee Shop", account_id: str = "acct_1") -> Transaction:
    return Transaction(
        transaction_id=txn_id,
        account_id=account_id,
        date=day,
        amount_cents=amount_cents,
        description=description,
    )


def assert_contiguous(cycles) -> None:
    """Adjacent cycles (newest first) must touch with no gap or overlap"""
    ordered = sorted(cycles, key=lambda c: c.end_date, reverse=True)
    for newer, older in zip(ordered, ordered[1:]):
        assert newer.start_date == older.end_date + timedelta(days=1)
