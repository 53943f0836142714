from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from periods import local_date
from stores import get_state, set_state

STREAK_KEY = "expense_streak"
MILESTONES = (5, 7, 14, 21, 30, 60, 90, 180, 365)


def empty_streak() -> dict:
    return {
        "current_streak": 0,
        "longest_streak": 0,
        "last_logged_date": None,
        "total_days_logged": 0,
    }


def get_streak(db: Session, user_email: str) -> dict:
    return dict(get_state(db, user_email, STREAK_KEY) or empty_streak())


def update_streak(db: Session, user_email: str, today: Optional[date] = None) -> dict:
    """Record that the user logged an expense on ``today`` (local date)."""
    today = today or local_date()
    streak = get_streak(db, user_email)
    if streak["last_logged_date"] == today.isoformat():
        return streak

    yesterday = (today - timedelta(days=1)).isoformat()
    if streak["last_logged_date"] == yesterday:
        streak["current_streak"] += 1
    else:
        streak["current_streak"] = 1

    streak["last_logged_date"] = today.isoformat()
    streak["total_days_logged"] += 1
    streak["longest_streak"] = max(streak["longest_streak"], streak["current_streak"])
    set_state(db, user_email, STREAK_KEY, streak)
    return streak


def streak_message(current: int) -> str:
    if current == 0:
        return "Start your tracking journey!"
    if current == 1:
        return "Great start! Keep the momentum!"
    if current < 7:
        return f"You're on a {current}-day streak! Keep going!"
    if current < 30:
        return f"Amazing {current}-day streak! You're on fire!"
    return f"Incredible {current}-day streak! You're a tracking legend!"


def streak_emoji(current: int) -> str:
    if current == 0:
        return "🎯"
    if current < 3:
        return "🔥"
    if current < 7:
        return "🚀"
    if current < 14:
        return "⭐"
    if current < 30:
        return "💎"
    return "👑"


def crossed_milestone(old: int, new: int) -> bool:
    return any(old < m <= new for m in MILESTONES)


def celebration_message(streak: int) -> str:
    messages = (
        (365, "One full year of tracking! You're a financial champion!"),
        (180, "Six months of consistent tracking! Incredible dedication!"),
        (90, "Three months strong! You're building amazing habits!"),
        (60, "Two months of tracking! Your financial awareness is soaring!"),
        (30, "One month streak! You're officially a tracking pro!"),
        (21, "Three weeks! You're creating lasting habits!"),
        (14, "Two weeks straight! Consistency is key!"),
        (7, "One week streak! You're building momentum!"),
        (5, "Five days in a row! Keep the streak alive!"),
    )
    for threshold, message in messages:
        if streak >= threshold:
            return message
    return "Great job staying consistent!"
