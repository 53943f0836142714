"""Daily savings missions.

Each user gets one mission per local day, picked deterministically from the
catalogue by hashing their email with the date, so the same mission comes
back however often it is asked for.
"""
from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from periods import local_date
from stores import get_state, set_state

COMPLETION_STREAK_KEY = "mission_streak"


@dataclass(frozen=True)
class DailyMission:
    id: str
    title: str
    description: str
    emoji: str
    type: str
    target_amount: Optional[int] = None


MISSIONS = (
    DailyMission("no-chai-day", "Chai-Free Challenge",
                 "Skip your chai/coffee breaks today and save ₹50!", "☕", "no-spend", 50),
    DailyMission("no-spend-challenge", "Complete No-Spend Day",
                 "Challenge yourself - zero expenses today!", "💪", "no-spend"),
    DailyMission("auto-rickshaw-limit", "Smart Auto-Rickshaw",
                 "Keep auto/transport under ₹100 - try sharing or bus!", "🛺", "limit-category", 100),
    DailyMission("street-food-budget", "Street Food Control",
                 "Limit street food & snacks to ₹150 today!", "🥘", "limit-category", 150),
    DailyMission("track-every-rupee", "Every Rupee Tracker",
                 "Track every expense today - even ₹5 paan!", "📝", "track-expenses"),
    DailyMission("petrol-saver", "Petrol Price Fighter",
                 "Save ₹200 on petrol today - walk or cycle short distances!", "⛽", "save-target", 200),
    DailyMission("mobile-recharge-limit", "Mobile Bill Smart",
                 "No unnecessary mobile recharges today - save ₹100!", "📱", "limit-category", 100),
    DailyMission("ott-pause", "OTT Subscription Pause",
                 "Skip new OTT subscriptions or movie tickets today!", "🎬", "no-spend"),
)
MISSIONS_BY_ID = {m.id: m for m in MISSIONS}


def string_hash(value: str) -> int:
    """32-bit signed ``h = h * 31 + c`` over UTF-16 code units."""
    h = 0
    raw = value.encode("utf-16-be")
    for i in range(0, len(raw), 2):
        h = (h * 31 + int.from_bytes(raw[i:i + 2], "big")) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def mission_for(user_email: str, day: date) -> DailyMission:
    return MISSIONS[abs(string_hash(user_email + day.isoformat())) % len(MISSIONS)]


def _state_key(day: date) -> str:
    return f"mission:{day.isoformat()}"


def get_user_mission(db: Session, user_email: str, day: Optional[date] = None) -> dict:
    day = day or local_date()
    stored = get_state(db, user_email, _state_key(day))
    if stored is not None:
        return dict(stored)

    user_mission = {"mission_id": mission_for(user_email, day).id, "date": day.isoformat(), "completed": False}
    set_state(db, user_email, _state_key(day), user_mission)
    return user_mission


def mission_progress(mission: DailyMission, expenses: Iterable) -> float:
    """Percentage progress given the day's expenses (objects with amount/category)."""
    expenses = list(expenses)
    target = Decimal(mission.target_amount or 100)

    if mission.type == "no-spend":
        return 100.0 if not expenses else 0.0

    if mission.type == "limit-category":
        if not mission.target_amount:
            return 0.0
        keyword = mission.title.lower().split(" ")[0]
        spent = sum((Decimal(e.amount) for e in expenses if keyword in e.category.lower()), Decimal(0))
        return float(max(Decimal(0), 100 - spent / target * 100))

    if mission.type == "track-expenses":
        return 100.0 if len(expenses) >= 3 else float(len(expenses) * 33)

    if mission.type == "save-target":
        spent = sum((Decimal(e.amount) for e in expenses), Decimal(0))
        saved = max(Decimal(0), target - spent)
        return float(min(Decimal(100), saved / target * 100))

    return 0.0


def complete_mission(db: Session, user_email: str, day: Optional[date] = None) -> bool:
    """Mark today's mission done; False if it already was."""
    day = day or local_date()
    user_mission = get_user_mission(db, user_email, day)
    if user_mission["completed"]:
        return False

    user_mission["completed"] = True
    set_state(db, user_email, _state_key(day), user_mission)
    set_state(db, user_email, COMPLETION_STREAK_KEY, completion_streak(db, user_email) + 1)
    return True


def completion_streak(db: Session, user_email: str) -> int:
    return int(get_state(db, user_email, COMPLETION_STREAK_KEY, 0))


def describe(mission: DailyMission) -> dict:
    return asdict(mission)
