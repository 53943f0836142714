"""Query layer over the ORM models.

The threshold evaluator only talks to the database through the functions
here. Operational database failures surface as ``StoreUnavailable``.
"""
import functools
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from database import (
    Budget,
    Expense,
    NotificationLog,
    NotificationRecord,
    NotificationSettings,
    User,
    UserActivity,
    UserState,
)
from errors import DuplicateSuppressed, StoreUnavailable
from periods import local_date, now_utc

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def as_amount(value) -> Decimal:
    """Normalise a database numeric (Decimal, float or None) to a 2dp Decimal."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


def store_call(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except OperationalError as exc:
            logger.error("Store call %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable(str(exc)) from exc

    return wrapper


# Expense store


@store_call
def sum_amount(db: Session, user_email: str, start: datetime, end: datetime) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(Expense.amount), 0))
        .filter(
            Expense.user_email == user_email,
            Expense.date >= start,
            Expense.date < end,
        )
        .scalar()
    )
    return as_amount(total)


@store_call
def sum_by_category(
    db: Session, user_email: str, start: datetime, end: datetime
) -> Dict[str, Decimal]:
    rows = (
        db.query(Expense.category, func.sum(Expense.amount).label("total"))
        .filter(
            Expense.user_email == user_email,
            Expense.date >= start,
            Expense.date < end,
        )
        .group_by(Expense.category)
        .all()
    )
    return {row.category: as_amount(row.total) for row in rows}


@store_call
def expenses_in_range(
    db: Session,
    user_email: str,
    start: datetime,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Expense]:
    query = db.query(Expense).filter(Expense.user_email == user_email, Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date < end)
    query = query.order_by(Expense.date.desc(), Expense.created_at.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


@store_call
def count_expenses(db: Session, user_email: str, start: datetime, end: datetime) -> int:
    return (
        db.query(func.count(Expense.id))
        .filter(
            Expense.user_email == user_email,
            Expense.date >= start,
            Expense.date < end,
        )
        .scalar()
    )


# Budget store


@store_call
def get_active_budget(db: Session, user_email: str) -> Optional[Budget]:
    return db.query(Budget).filter(Budget.user_email == user_email).first()


# Notification ledger


@store_call
def find_fired(
    db: Session, user_email: str, kind: str, period_start: datetime
) -> Optional[NotificationRecord]:
    return (
        db.query(NotificationRecord)
        .filter(
            NotificationRecord.user_email == user_email,
            NotificationRecord.kind == kind,
            NotificationRecord.period_start == period_start,
        )
        .first()
    )


@store_call
def insert_notification(db: Session, record: NotificationRecord) -> NotificationRecord:
    db.add(record)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateSuppressed(record.user_email, record.kind, record.period_start) from exc
    db.refresh(record)
    return record


@store_call
def acknowledge(db: Session, notification_id: int) -> None:
    db.query(NotificationRecord).filter(NotificationRecord.id == notification_id).update(
        {NotificationRecord.acknowledged: True}
    )
    db.commit()


@store_call
def list_unacknowledged(db: Session, user_email: str, limit: int = 5) -> List[NotificationRecord]:
    return (
        db.query(NotificationRecord)
        .filter(
            NotificationRecord.user_email == user_email,
            NotificationRecord.acknowledged.is_(False),
        )
        .order_by(NotificationRecord.fired_at.desc(), NotificationRecord.id.desc())
        .limit(limit)
        .all()
    )


# Settings, delivery log and activity


@store_call
def get_notification_settings(db: Session, user_email: str) -> Optional[NotificationSettings]:
    return (
        db.query(NotificationSettings)
        .filter(NotificationSettings.user_email == user_email)
        .first()
    )


@store_call
def upsert_notification_settings(db: Session, user_email: str, **values) -> NotificationSettings:
    settings = get_notification_settings(db, user_email)
    if settings is None:
        settings = NotificationSettings(user_email=user_email)
        db.add(settings)
    for field, value in values.items():
        setattr(settings, field, value)
    db.commit()
    db.refresh(settings)
    return settings


@store_call
def create_notification_log(db: Session, **values) -> NotificationLog:
    entry = NotificationLog(**values)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@store_call
def log_user_activity(
    db: Session, user_email: str, activity_type: str, activity_data: Optional[dict] = None
) -> UserActivity:
    activity = UserActivity(
        user_email=user_email,
        activity_type=activity_type,
        activity_data=activity_data,
    )
    db.add(activity)
    db.commit()
    return activity


@store_call
def activity_stats(db: Session, user_email: str, days: int) -> dict:
    since = now_utc() - timedelta(days=days)
    rows = (
        db.query(UserActivity)
        .filter(UserActivity.user_email == user_email, UserActivity.date >= since)
        .all()
    )
    daily_usage: Dict[str, int] = {}
    for row in rows:
        key = local_date(row.date).isoformat()
        daily_usage[key] = daily_usage.get(key, 0) + 1

    last_active = (
        db.query(func.max(UserActivity.date))
        .filter(UserActivity.user_email == user_email)
        .scalar()
    )
    return {
        "total_logins": sum(1 for r in rows if r.activity_type == "login"),
        "total_expenses": sum(1 for r in rows if r.activity_type == "expense_added"),
        "last_active": last_active,
        "daily_usage": daily_usage,
    }


@store_call
def daily_active_users(db: Session, start: datetime, end: datetime) -> int:
    return (
        db.query(func.count(func.distinct(UserActivity.user_email)))
        .filter(UserActivity.date >= start, UserActivity.date < end)
        .scalar()
    )


@store_call
def user_stats(db: Session, recent: int = 10, days: int = 30) -> dict:
    """Signup counts: total, the most recent signups, and per local day."""
    total_users = db.query(func.count(User.email)).scalar()
    recent_users = db.query(User).order_by(User.created_at.desc()).limit(recent).all()

    since = now_utc() - timedelta(days=days)
    signups_by_day: Dict[str, int] = {}
    for (created_at,) in db.query(User.created_at).filter(User.created_at >= since):
        key = local_date(created_at).isoformat()
        signups_by_day[key] = signups_by_day.get(key, 0) + 1

    return {
        "total_users": total_users,
        "recent_signups": [
            {"email": u.email, "signup_date": local_date(u.created_at)} for u in recent_users
        ],
        "signups_by_day": dict(sorted(signups_by_day.items(), reverse=True)),
    }


# Per-user state


@store_call
def get_state(db: Session, user_email: str, key: str, default=None):
    row = (
        db.query(UserState)
        .filter(UserState.user_email == user_email, UserState.key == key)
        .first()
    )
    return row.value if row is not None else default


@store_call
def set_state(db: Session, user_email: str, key: str, value) -> None:
    row = (
        db.query(UserState)
        .filter(UserState.user_email == user_email, UserState.key == key)
        .first()
    )
    if row is None:
        db.add(UserState(user_email=user_email, key=key, value=value))
    else:
        row.value = value
    db.commit()
