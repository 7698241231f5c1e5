"""Integration tests for aggregator sync: fetch, store, repair"""

import pytest
from datetime import date
from sqlalchemy.orm import Session
from cardcycle_gateway.domain.models import ErrorKind, LookbackMode
from cardcycle_gateway.infrastructure.database.models import (
    AggregatorItem,
    BillingCycleRecord,
    CreditAccountRecord,
    TransactionRecord,
)
from cardcycle_gateway.infrastructure.database.repositories import BillingCycleRepository
from cardcycle_gateway.utils.date_utils import months_before
from conftest import TODAY, assert_contiguous, seed_account, seed_item

pytestmark = pytest.mark.integration


@pytest.fixture
def linked_card(db: Session, fake_aggregator):
    seed_item(db)
    fake_aggregator.add_card(
        "acct_1",
        last_statement_issue_date="2025-08-05",
        last_statement_balance=1462.84,
        next_payment_due_date="2025-09-01",
        balance_current=1617.84,
        balance_limit=5000.00,
        minimum_payment_amount=40.00,
    )
    fake_aggregator.add_transaction("t1", "acct_1", "2025-07-20", 75.00, "Grocery Store")
    fake_aggregator.add_transaction("t2", "acct_1", "2025-08-10", 15.00, "Coffee Shop")
    fake_aggregator.add_transaction("t3", "acct_1", "2025-08-12", -1462.84, "AUTOPAY PAYMENT")
    return fake_aggregator


def transaction_requests(fake_aggregator):
    return [r["body"] for r in fake_aggregator.requests if r["path"] == "/transactions/get"]


async def test_sync_stores_data_and_builds_cycles(db, sync_service, linked_card):
    outcomes = await sync_service.sync_item("item_1", LookbackMode.FULL, trigger="resync")

    assert len(outcomes) == 1
    assert outcomes[0].ok
    assert outcomes[0].report.inserted > 0

    assert db.query(TransactionRecord).count() == 3
    cycles = [BillingCycleRepository.to_domain(r) for r in BillingCycleRepository(db).list_for_account("acct_1")]
    current, closed = cycles[0], cycles[1]
    assert current.is_current
    assert (current.start_date, current.end_date) == (date(2025, 8, 6), TODAY)
    assert current.total_spend_cents == 15500
    assert closed.end_date == date(2025, 8, 5)
    assert closed.statement_balance_cents == 146284
    assert closed.minimum_payment_cents == 4000
    assert closed.due_date == date(2025, 9, 1)
    assert_contiguous(cycles)


async def test_preview_fetches_short_window(sync_service, linked_card):
    await sync_service.sync_item("item_1", LookbackMode.PREVIEW, trigger="link")

    body = transaction_requests(linked_card)[0]
    assert body["start_date"] == months_before(TODAY, 3).isoformat()
    assert body["end_date"] == TODAY.isoformat()


async def test_full_sync_uses_full_window(sync_service, linked_card):
    await sync_service.sync_item("item_1", LookbackMode.FULL)

    assert transaction_requests(linked_card)[0]["start_date"] == months_before(TODAY, 12).isoformat()


async def test_restricted_issuer_keeps_short_window_on_full_sync(database, fake_aggregator, sync_service):
    session = database.session()
    try:
        seed_item(session, institution_id="ins_128026")
    finally:
        session.close()
    fake_aggregator.add_card("acct_1", last_statement_issue_date="2025-08-05", last_statement_balance=100.00)

    outcomes = await sync_service.sync_item("item_1", LookbackMode.FULL)

    assert outcomes[0].ok
    assert transaction_requests(fake_aggregator)[0]["start_date"] == months_before(TODAY, 3).isoformat()


async def test_upstream_failure_leaves_cycles_untouched(database, db, fake_aggregator, sync_service):
    seed_item(db)
    seed_account(db, open_date=date(2025, 1, 1), last_statement_issue_date=date(2025, 8, 5))
    db.add(BillingCycleRecord(account_id="acct_1", start_date=date(2025, 7, 7), end_date=date(2025, 8, 5), total_spend_cents=1234))
    db.commit()
    fake_aggregator.fail("/liabilities/get", 500, 500, 500, 500)

    outcomes = await sync_service.sync_item("item_1")

    assert [o.error_kind for o in outcomes] == [ErrorKind.UPSTREAM_FETCH]
    assert outcomes[0].account_id == "acct_1"
    assert outcomes[0].error_code == "INSTITUTION_DOWN"

    check = database.session()
    try:
        item = check.query(AggregatorItem).filter_by(item_id="item_1").one()
        assert item.status == "error"
        assert item.error_code == "INSTITUTION_DOWN"
        stored = check.query(BillingCycleRecord).all()
        assert [(r.start_date, r.end_date, r.total_spend_cents) for r in stored] == [
            (date(2025, 7, 7), date(2025, 8, 5), 1234)
        ]
    finally:
        check.close()


async def test_transient_error_is_retried(sync_service, linked_card):
    linked_card.fail("/liabilities/get", 503)

    outcomes = await sync_service.sync_item("item_1")

    assert outcomes[0].ok
    assert len([r for r in linked_card.requests if r["path"] == "/liabilities/get"]) == 2


async def test_client_error_is_not_retried(sync_service, linked_card):
    linked_card.fail("/liabilities/get", 400)

    outcomes = await sync_service.sync_item("item_1")

    assert outcomes[0].error_kind is ErrorKind.UPSTREAM_FETCH
    assert len([r for r in linked_card.requests if r["path"] == "/liabilities/get"]) == 1


async def test_transactions_are_paged(db, aggregator_client, sync_service, linked_card):
    aggregator_client.page_size = 2
    linked_card.add_transaction("t4", "acct_1", "2025-08-14", 20.00, "Bookshop")
    linked_card.add_transaction("t5", "acct_1", "2025-08-15", 30.00, "Cinema")

    outcomes = await sync_service.sync_item("item_1")

    assert outcomes[0].ok
    assert [b["options"]["offset"] for b in transaction_requests(linked_card)] == [0, 2, 4]
    assert db.query(TransactionRecord).count() == 5


async def test_repeated_sync_writes_nothing(db, sync_service, linked_card):
    await sync_service.sync_item("item_1")

    outcomes = await sync_service.sync_item("item_1")

    report = outcomes[0].report
    assert (report.inserted, report.updated, report.deleted) == (0, 0, 0)
    assert db.query(TransactionRecord).count() == 3


async def test_unknown_item_is_a_validation_failure(sync_service, database):
    outcomes = await sync_service.sync_item("missing")

    assert [o.error_kind for o in outcomes] == [ErrorKind.VALIDATION]


def test_regenerate_unknown_account_is_a_validation_failure(sync_service):
    outcome = sync_service.regenerate_account("missing")

    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.VALIDATION


async def test_resync_user_covers_every_item(db, fake_aggregator, sync_service):
    seed_item(db, item_id="item_1")
    seed_item(db, item_id="item_2")
    fake_aggregator.add_card("acct_1", last_statement_issue_date="2025-08-05", last_statement_balance=10.00)

    outcomes = await sync_service.resync_user("user_1")

    assert len([r for r in fake_aggregator.requests if r["path"] == "/liabilities/get"]) == 2
    # The card stays with the item that first reported it
    assert [(o.account_id, o.ok) for o in outcomes] == [("acct_1", True)]


async def test_full_backfill_after_preview_reaches_older_history(database, db, fake_aggregator, sync_service):
    seed_item(db)
    fake_aggregator.add_card(
        "acct_1",
        last_statement_issue_date="2025-08-05",
        last_statement_balance=50.00,
        next_payment_due_date="2025-09-01",
    )
    for n in range(12):
        day = months_before(date(2025, 7, 25), n)
        fake_aggregator.add_transaction(f"m{n}", "acct_1", day.isoformat(), 50.00, "Grocery Store")

    preview = await sync_service.sync_item("item_1", LookbackMode.PREVIEW, trigger="link")
    assert preview[0].ok
    assert preview[0].report.open_date_inferred is None

    full = await sync_service.sync_item("item_1", LookbackMode.FULL, trigger="resync")

    assert full[0].ok
    assert full[0].report.open_date_inferred == date(2024, 8, 18)
    check = database.session()
    try:
        account = check.query(CreditAccountRecord).filter_by(account_id="acct_1").one()
        assert account.open_date == date(2024, 8, 18)
        assert account.open_date_inferred is True
        cycles = [BillingCycleRepository.to_domain(r) for r in BillingCycleRepository(check).list_for_account("acct_1")]
    finally:
        check.close()
    assert cycles[-1].start_date < date(2024, 9, 25)
    assert cycles[-1].start_date >= months_before(TODAY, 12)
    assert_contiguous(cycles)


async def test_every_call_after_the_first_is_paced(db, fake_aggregator, aggregator_client, sync_service):
    seed_item(db, institution_id="ins_128026")
    fake_aggregator.add_card("acct_1", last_statement_issue_date="2025-08-05", last_statement_balance=100.00)
    for n, day in enumerate(["2025-07-20", "2025-08-01", "2025-08-10"]):
        fake_aggregator.add_transaction(f"t{n}", "acct_1", day, 10.00, "Coffee Shop")
    aggregator_client.page_size = 2

    await sync_service.sync_item("item_1")

    # liabilities, then two transaction pages
    assert len(fake_aggregator.requests) == 3
    assert fake_aggregator.sleeps == [1.0, 1.0]


async def test_resync_paces_consecutive_items(db, fake_aggregator, sync_service):
    seed_item(db, item_id="item_1", institution_id="ins_128026")
    seed_item(db, item_id="item_2", institution_id="ins_128026")
    fake_aggregator.add_card("acct_1", last_statement_issue_date="2025-08-05", last_statement_balance=10.00)

    await sync_service.resync_user("user_1")

    assert len(fake_aggregator.requests) == 4
    assert fake_aggregator.sleeps == [1.0, 1.0, 1.0]
