"""Outbound alert delivery and the periodic notification tick.

Delivery goes through an ``AlertSender``. Only a logging sender ships with
the service; push and email transports plug in by implementing ``send``.
Every attempt is recorded in the notification log.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from database import NotificationRecord, User
from evaluator import evaluate_thresholds
from periods import day_bounds, normalise_as_of, now_utc, to_local
from stores import count_expenses, create_notification_log, get_notification_settings, sum_amount

logger = logging.getLogger(__name__)

ALERT_TITLES = {
    "budget_50": "Budget Alert - 50% Used",
    "budget_80": "Budget Alert - 80% Used",
    "budget_100": "Budget Exceeded!",
    "daily_limit": "Daily Limit Alert",
}

DEFAULT_SETTINGS = {
    "daily_reminders": True,
    "budget_alerts": True,
    "weekly_reports": True,
    "reminder_time": "19:00",
}


class AlertSender(ABC):
    @abstractmethod
    def send(self, user_email: str, title: str, body: str, data: Optional[dict] = None) -> None:
        """Deliver one alert; raise on failure."""


class LoggingSender(AlertSender):
    def send(self, user_email, title, body, data=None):
        logger.info("Alert for %s: %s - %s", user_email, title, body)


default_sender = LoggingSender()


def effective_settings(db: Session, user_email: str) -> dict:
    settings = get_notification_settings(db, user_email)
    if settings is None:
        return dict(DEFAULT_SETTINGS)
    return {
        "daily_reminders": settings.daily_reminders,
        "budget_alerts": settings.budget_alerts,
        "weekly_reports": settings.weekly_reports,
        "reminder_time": settings.reminder_time or DEFAULT_SETTINGS["reminder_time"],
    }


def deliver(
    db: Session,
    sender: AlertSender,
    user_email: str,
    notification_type: str,
    title: str,
    body: str,
    data: Optional[dict] = None,
) -> bool:
    try:
        sender.send(user_email, title, body, data)
    except Exception:
        logger.exception("Failed to deliver %s to %s", notification_type, user_email)
        create_notification_log(
            db,
            user_email=user_email,
            notification_type=notification_type,
            title=title,
            message=body,
            status="failed",
        )
        return False

    create_notification_log(
        db,
        user_email=user_email,
        notification_type=notification_type,
        title=title,
        message=body,
        status="sent",
        sent_at=now_utc(),
    )
    return True


def dispatch_alert(
    db: Session, record: NotificationRecord, sender: Optional[AlertSender] = None
) -> bool:
    sender = sender or default_sender
    title = ALERT_TITLES.get(record.kind, "Budget Alert")

    if not effective_settings(db, record.user_email)["budget_alerts"]:
        create_notification_log(
            db,
            user_email=record.user_email,
            notification_type=record.kind,
            title=title,
            message=record.message,
            status="skipped",
        )
        return False

    return deliver(
        db,
        sender,
        record.user_email,
        record.kind,
        title,
        record.message,
        {"type": record.kind, "notification_id": record.id, "url": "/budget"},
    )


def check_and_notify(
    db: Session,
    user_email: str,
    sender: Optional[AlertSender] = None,
    as_of: Optional[datetime] = None,
) -> List[NotificationRecord]:
    fired = evaluate_thresholds(db, user_email, as_of)
    for record in fired:
        dispatch_alert(db, record, sender)
    return fired


def _display_name(db: Session, user_email: str) -> str:
    user = db.query(User).filter(User.email == user_email).first()
    if user is not None and user.first_name:
        return user.first_name
    return "there"


def send_daily_reminder(db: Session, user_email: str, sender: Optional[AlertSender] = None) -> bool:
    name = _display_name(db, user_email)
    return deliver(
        db,
        sender or default_sender,
        user_email,
        "daily_reminder",
        "Laksha Daily Reminder",
        f"Hey {name}, don't forget to log your expenses today!",
        {"type": "daily_reminder", "url": "/"},
    )


def send_weekly_report(
    db: Session, user_email: str, sender: Optional[AlertSender] = None, as_of: Optional[datetime] = None
) -> bool:
    as_of = normalise_as_of(as_of)
    name = _display_name(db, user_email)
    weekly_spent = sum_amount(db, user_email, as_of - timedelta(days=7), as_of)
    return deliver(
        db,
        sender or default_sender,
        user_email,
        "weekly_report",
        "Your Weekly Report",
        f"{name}, you spent {weekly_spent} this week. Check your analytics for insights!",
        {"type": "weekly_report", "weekly_spent": str(weekly_spent), "url": "/analytics"},
    )


def send_test_notification(
    db: Session, user_email: str, kind: Optional[str] = None, sender: Optional[AlertSender] = None
) -> bool:
    """On-demand delivery check: a daily reminder, a sample 80% alert or a plain test."""
    if kind == "daily_reminder":
        return send_daily_reminder(db, user_email, sender)

    sender = sender or default_sender
    if kind == "budget_alert":
        name = _display_name(db, user_email)
        return deliver(
            db,
            sender,
            user_email,
            "budget_80",
            ALERT_TITLES["budget_80"],
            f"{name}, you've used 80% of your budget. Want to slow down a little?",
            {"type": "budget_80", "url": "/budget"},
        )

    return deliver(
        db,
        sender,
        user_email,
        "test",
        "Test Notification",
        "This is a test notification from Laksha!",
        {"type": "test"},
    )


def _reminder_due(settings: dict, local_now: datetime) -> bool:
    hour = int(settings["reminder_time"].split(":")[0])
    return local_now.hour == hour


def run_user_tick(
    db: Session, user_email: str, sender: Optional[AlertSender] = None, as_of: Optional[datetime] = None
) -> None:
    as_of = normalise_as_of(as_of)
    local_now = to_local(as_of)
    settings = effective_settings(db, user_email)

    if settings["daily_reminders"] and _reminder_due(settings, local_now):
        day_start, day_end = day_bounds(as_of)
        if count_expenses(db, user_email, day_start, day_end) == 0:
            send_daily_reminder(db, user_email, sender)

    if settings["budget_alerts"]:
        check_and_notify(db, user_email, sender, as_of)

    # Sunday, 09:00 local
    if settings["weekly_reports"] and local_now.weekday() == 6 and local_now.hour == 9:
        send_weekly_report(db, user_email, sender, as_of)


def run_notification_tick(
    db: Session, sender: Optional[AlertSender] = None, as_of: Optional[datetime] = None
) -> int:
    """Run the periodic checks for every user; returns how many were processed."""
    emails = [email for (email,) in db.query(User.email).all()]
    processed = 0
    for email in emails:
        try:
            run_user_tick(db, email, sender, as_of)
            processed += 1
        except Exception:
            db.rollback()
            logger.exception("Notification tick failed for %s", email)
    logger.info("Notification tick processed %d of %d users", processed, len(emails))
    return processed
