from collections import namedtuple
from datetime import date
from decimal import Decimal

from conftest import USER_EMAIL
from missions import (
    MISSIONS,
    MISSIONS_BY_ID,
    complete_mission,
    completion_streak,
    get_user_mission,
    mission_for,
    mission_progress,
    string_hash,
)
from streaks import celebration_message, crossed_milestone, get_streak, update_streak

Spend = namedtuple("Spend", ["amount", "category"])


def test_first_log_starts_streak(db, user):
    streak = update_streak(db, USER_EMAIL, date(2025, 3, 1))

    assert streak["current_streak"] == 1
    assert streak["longest_streak"] == 1
    assert streak["total_days_logged"] == 1
    assert get_streak(db, USER_EMAIL)["last_logged_date"] == "2025-03-01"


def test_consecutive_days_extend_streak(db, user):
    for day in (1, 2, 3):
        update_streak(db, USER_EMAIL, date(2025, 3, day))

    assert get_streak(db, USER_EMAIL)["current_streak"] == 3


def test_same_day_counts_once(db, user):
    update_streak(db, USER_EMAIL, date(2025, 3, 1))
    streak = update_streak(db, USER_EMAIL, date(2025, 3, 1))

    assert streak["current_streak"] == 1
    assert streak["total_days_logged"] == 1


def test_gap_resets_streak_but_keeps_longest(db, user):
    for day in (1, 2, 3):
        update_streak(db, USER_EMAIL, date(2025, 3, day))
    streak = update_streak(db, USER_EMAIL, date(2025, 3, 6))

    assert streak["current_streak"] == 1
    assert streak["longest_streak"] == 3
    assert streak["total_days_logged"] == 4


def test_milestones():
    assert crossed_milestone(4, 5)
    assert crossed_milestone(6, 7)
    assert not crossed_milestone(7, 8)
    assert celebration_message(30).startswith("One month streak")


def test_string_hash_matches_32_bit_rolling_hash():
    assert string_hash("") == 0
    assert string_hash("ab") == 97 * 31 + 98
    assert string_hash("hello world") == 1794106052
    assert string_hash("polygenelubricants") == -2147483648


def test_mission_is_stable_per_user_and_day(db, user):
    day = date(2025, 3, 5)
    first = get_user_mission(db, USER_EMAIL, day)
    again = get_user_mission(db, USER_EMAIL, day)

    assert first == again
    assert first["mission_id"] == mission_for(USER_EMAIL, day).id
    assert first["completed"] is False


def test_completing_mission_once_per_day(db, user):
    day = date(2025, 3, 5)

    assert complete_mission(db, USER_EMAIL, day) is True
    assert complete_mission(db, USER_EMAIL, day) is False
    assert get_user_mission(db, USER_EMAIL, day)["completed"] is True
    assert completion_streak(db, USER_EMAIL) == 1

    complete_mission(db, USER_EMAIL, date(2025, 3, 6))
    assert completion_streak(db, USER_EMAIL) == 2


def test_no_spend_progress():
    mission = MISSIONS_BY_ID["no-spend-challenge"]
    assert mission_progress(mission, []) == 100.0
    assert mission_progress(mission, [Spend(Decimal("10"), "Food & Dining")]) == 0.0


def test_track_expenses_progress():
    mission = MISSIONS_BY_ID["track-every-rupee"]
    spends = [Spend(Decimal("5"), "Food & Dining")] * 2
    assert mission_progress(mission, spends) == 66.0
    assert mission_progress(mission, spends * 2) == 100.0


def test_save_target_progress():
    mission = MISSIONS_BY_ID["petrol-saver"]
    assert mission_progress(mission, [Spend(Decimal("50"), "Petrol")]) == 75.0
    assert mission_progress(mission, [Spend(Decimal("500"), "Petrol")]) == 0.0


def test_limit_category_progress_matches_title_keyword():
    mission = MISSIONS_BY_ID["street-food-budget"]
    spends = [Spend(Decimal("75"), "Street food"), Spend(Decimal("500"), "Rent")]
    assert mission_progress(mission, spends) == 50.0


def test_catalogue_has_unique_ids():
    assert len({m.id for m in MISSIONS}) == len(MISSIONS) == 8
