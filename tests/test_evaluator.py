from decimal import Decimal

import pytest

import evaluator
from conftest import USER_EMAIL, ist
from database import NotificationRecord
from errors import DuplicateSuppressed, NoBudgetConfigured, StoreUnavailable
from evaluator import evaluate_thresholds, spend_snapshot
from periods import month_bounds, to_storage
from stores import acknowledge, insert_notification


def kinds(records):
    return sorted(r.kind for r in records)


def stored_rows(db):
    return db.query(NotificationRecord).order_by(NotificationRecord.id).all()


def test_no_budget_is_a_no_op(db, user, add_expense):
    for day in range(1, 10):
        add_expense(5000, ist(2025, 3, day))

    assert evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 9)) == []
    assert stored_rows(db) == []


def test_spend_snapshot_requires_budget(db, user):
    with pytest.raises(NoBudgetConfigured):
        spend_snapshot(db, USER_EMAIL)


def test_evaluation_is_idempotent_within_period(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense(1200, ist(2025, 3, 15, 9))
    as_of = ist(2025, 3, 15, 18)

    first = evaluate_thresholds(db, USER_EMAIL, as_of=as_of)
    rows_after_first = [(r.kind, r.period_start) for r in stored_rows(db)]
    second = evaluate_thresholds(db, USER_EMAIL, as_of=as_of)

    assert kinds(first) == ["budget_100", "budget_50", "budget_80", "daily_limit"]
    assert second == []
    assert [(r.kind, r.period_start) for r in stored_rows(db)] == rows_after_first


def test_fifty_percent_fires_at_exactly_half(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense("250.00", ist(2025, 3, 3))
    add_expense("250.00", ist(2025, 3, 4))

    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 20))

    assert kinds(fired) == ["budget_50"]


def test_fifty_percent_does_not_fire_just_below_half(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense("250.00", ist(2025, 3, 3))
    add_expense("249.99", ist(2025, 3, 4))

    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 20))

    assert "budget_50" not in kinds(fired)


def test_daily_limit_is_budget_over_thirty(db, user, make_budget):
    make_budget(3000)
    snapshot = spend_snapshot(db, USER_EMAIL, as_of=ist(2025, 2, 10))
    assert snapshot.daily_limit == Decimal("100")


def test_daily_limit_fires_strictly_above_limit(db, user, make_budget, add_expense):
    make_budget(3000)
    add_expense("100.01", ist(2025, 2, 10, 9))

    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 2, 10, 20))

    assert kinds(fired) == ["daily_limit"]
    assert fired[0].message == (
        "Daily limit exceeded. Spent today: 100.01. Limit: 100.00. Over by: 0.01."
    )


def test_daily_limit_does_not_fire_at_limit(db, user, make_budget, add_expense):
    make_budget(3000)
    add_expense("100.00", ist(2025, 2, 10, 9))

    assert evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 2, 10, 20)) == []


def test_daily_limit_fires_again_next_day(db, user, make_budget, add_expense):
    make_budget(3000)
    add_expense("150.00", ist(2025, 2, 10, 9))
    add_expense("150.00", ist(2025, 2, 11, 9))

    evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 2, 10, 20))
    evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 2, 11, 20))

    daily = [r for r in stored_rows(db) if r.kind == "daily_limit"]
    assert len(daily) == 2


def test_new_month_is_evaluated_afresh(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense(850, ist(2025, 3, 10))
    add_expense(850, ist(2025, 4, 10))

    march = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 28))
    april = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 4, 28))

    assert "budget_80" in kinds(march)
    assert "budget_80" in kinds(april)
    budget_80 = [r for r in stored_rows(db) if r.kind == "budget_80"]
    assert len(budget_80) == 2
    assert budget_80[0].period_start != budget_80[1].period_start


def test_month_spend_uses_reference_timezone(db, user, make_budget, add_expense):
    make_budget(1000)
    # 23:30 local on 31 March belongs to March, 00:15 on 1 April does not
    add_expense(300, ist(2025, 3, 31, 23, 30))
    add_expense(400, ist(2025, 4, 1, 0, 15))

    march = spend_snapshot(db, USER_EMAIL, as_of=ist(2025, 3, 31, 23, 45))
    april = spend_snapshot(db, USER_EMAIL, as_of=ist(2025, 4, 1, 10))

    assert march.month_spent == Decimal("300.00")
    assert april.month_spent == Decimal("400.00")
    assert april.month_start == month_bounds(to_storage(ist(2025, 4, 1, 10)))[0]


def test_eighty_percent_scenario_messages(db, user, make_budget, add_expense):
    make_budget(10000)
    for day in range(1, 6):
        add_expense(1700, ist(2025, 5, day))

    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 5, 20))
    by_kind = {r.kind: r for r in fired}

    assert "budget_50" in by_kind
    assert "budget_80" in by_kind
    assert "budget_100" not in by_kind
    assert by_kind["budget_80"].message == (
        "You've used 80% of your monthly budget. Time to be more careful. "
        "Amount Spent: 8500.00. Remaining: 1500.00."
    )
    assert by_kind["budget_50"].message == (
        "You've used 50% of your monthly budget. "
        "Amount Spent: 8500.00. Remaining: 1500.00."
    )


def test_budget_exceeded_message(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense("1250.50", ist(2025, 6, 2))

    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 6, 20))
    by_kind = {r.kind: r for r in fired}

    assert by_kind["budget_100"].message == (
        "You've exceeded your monthly budget. Amount Spent: 1250.50. Over by: 250.50."
    )
    assert by_kind["budget_50"].message.endswith("Remaining: 0.00.")


def test_fired_notifications_are_not_retracted(db, user, make_budget, add_expense):
    make_budget(1000)
    expense = add_expense(900, ist(2025, 3, 5))
    evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 6))

    db.delete(expense)
    db.commit()
    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 7))

    assert fired == []
    assert kinds(stored_rows(db)) == ["budget_50", "budget_80"]


def test_acknowledged_notification_still_suppresses(db, user, make_budget, add_expense):
    make_budget(1000)
    add_expense(600, ist(2025, 3, 5))
    first = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 6))
    acknowledge(db, first[0].id)

    add_expense(10, ist(2025, 3, 8))
    assert evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 8, 20)) == []


def test_ledger_rejects_second_record_for_same_period(db, user, make_budget, add_expense):
    budget = make_budget(1000)
    add_expense(600, ist(2025, 3, 5))
    fired = evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 6))

    duplicate = NotificationRecord(
        user_email=USER_EMAIL,
        budget_id=budget.id,
        kind="budget_50",
        period_start=fired[0].period_start,
        fired_at=fired[0].fired_at,
        message="again",
    )
    with pytest.raises(DuplicateSuppressed):
        insert_notification(db, duplicate)
    assert len(stored_rows(db)) == 1


def test_store_failure_propagates(db, user, make_budget, monkeypatch):
    make_budget(1000)

    def unavailable(*args, **kwargs):
        raise StoreUnavailable("database is locked")

    monkeypatch.setattr(evaluator, "sum_amount", unavailable)
    with pytest.raises(StoreUnavailable):
        evaluate_thresholds(db, USER_EMAIL)


def test_concurrent_insert_is_suppressed(db, user, make_budget, add_expense, monkeypatch):
    make_budget(1000)
    add_expense(600, ist(2025, 3, 5))
    evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 6))

    # another evaluator inserted between our check and our insert
    monkeypatch.setattr(evaluator, "find_fired", lambda *args: None)
    assert evaluate_thresholds(db, USER_EMAIL, as_of=ist(2025, 3, 6)) == []
    assert len(stored_rows(db)) == 1
