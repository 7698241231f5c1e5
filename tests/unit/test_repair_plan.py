"""Unit tests for the stored-vs-computed cycle diff"""

from datetime import date
from cardcycle_gateway.domain.models import BillingCycle
from cardcycle_gateway.services.repair import keep_confirmed_statement, plan_repair


def cycle(start, end, spend, statement=None, is_current=False):
    return BillingCycle(
        account_id="acct_1",
        start_date=start,
        end_date=end,
        total_spend_cents=spend,
        transaction_count=0,
        is_current=is_current,
        statement_balance_cents=statement,
    )


JUL = (date(2025, 7, 12), date(2025, 8, 5))
JUN = (date(2025, 6, 17), date(2025, 7, 11))
MAY = (date(2025, 5, 23), date(2025, 6, 16))


def test_identical_sets_produce_empty_plan():
    cycles = [cycle(*JUL, 146284, statement=146284), cycle(*JUN, 10000)]
    assert plan_repair(cycles, cycles).is_empty


def test_new_range_is_inserted_and_missing_range_deleted():
    stored = [cycle(*JUN, 10000), cycle(*MAY, 5000)]
    computed = [cycle(*JUL, 146284, statement=146284), cycle(*JUN, 10000)]

    plan = plan_repair(stored, computed)

    assert [(c.start_date, c.end_date) for c in plan.inserts] == [JUL]
    assert plan.updates == []
    assert plan.deletes == [MAY]


def test_spend_within_one_cent_is_not_rewritten():
    stored = [cycle(*JUN, 10000)]

    assert plan_repair(stored, [cycle(*JUN, 10001)]).is_empty
    assert len(plan_repair(stored, [cycle(*JUN, 10002)]).updates) == 1


def test_statement_balance_change_forces_update():
    stored = [cycle(*JUL, 146284, statement=146284)]
    computed = [cycle(*JUL, 146285, statement=146285)]

    plan = plan_repair(stored, computed)

    assert plan.updates[0].statement_balance_cents == 146285


def test_confirmed_statement_survives_anchor_moving_on():
    stored = cycle(*JUL, 146284, statement=146284)
    recomputed = cycle(*JUL, 90000)

    merged = keep_confirmed_statement(stored, recomputed)

    assert merged.statement_balance_cents == 146284
    assert merged.total_spend_cents == 146284
    assert plan_repair([stored], [recomputed]).is_empty


def test_current_cycle_never_inherits_statement_balance():
    stored = cycle(*JUL, 146284, statement=146284)
    recomputed = cycle(*JUL, 500, is_current=True)

    assert keep_confirmed_statement(stored, recomputed).statement_balance_cents is None
