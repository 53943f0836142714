"""Budget threshold evaluator.

Compares month-to-date and today's spend against the user's monthly budget
and records at most one notification per threshold per period:

* ``budget_50`` / ``budget_80`` / ``budget_100`` once per calendar month
* ``daily_limit`` once per calendar day

Periods are calendar months and days in the fixed reference timezone
(see ``periods``). Thresholds only ever fire upward; a notification is
never withdrawn when spend later drops (e.g. an expense is deleted).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from database import Budget, NotificationRecord
from errors import DuplicateSuppressed, NoBudgetConfigured
from periods import day_bounds, month_bounds, normalise_as_of
from stores import CENT, find_fired, get_active_budget, insert_notification, sum_amount

logger = logging.getLogger(__name__)

DAILY_LIMIT_DIVISOR = Decimal(30)
MONTH_THRESHOLDS = (
    (50, "budget_50"),
    (80, "budget_80"),
    (100, "budget_100"),
)

MESSAGE_TEMPLATES = {
    "budget_50": (
        "You've used 50% of your monthly budget. "
        "Amount Spent: {spent}. Remaining: {remaining}."
    ),
    "budget_80": (
        "You've used 80% of your monthly budget. Time to be more careful. "
        "Amount Spent: {spent}. Remaining: {remaining}."
    ),
    "budget_100": (
        "You've exceeded your monthly budget. "
        "Amount Spent: {spent}. Over by: {over}."
    ),
    "daily_limit": (
        "Daily limit exceeded. Spent today: {daySpent}. "
        "Limit: {dailyLimit}. Over by: {over}."
    ),
}


def fmt(amount: Decimal) -> str:
    return str(amount.quantize(CENT))


@dataclass
class SpendSnapshot:
    budget: Budget
    as_of: datetime
    month_start: datetime
    month_end: datetime
    day_start: datetime
    day_end: datetime
    month_spent: Decimal
    day_spent: Decimal

    @property
    def budget_amount(self) -> Decimal:
        return Decimal(self.budget.amount)

    @property
    def daily_limit(self) -> Decimal:
        return self.budget_amount / DAILY_LIMIT_DIVISOR

    @property
    def month_percent(self) -> Decimal:
        return self.month_spent / self.budget_amount * 100

    @property
    def remaining(self) -> Decimal:
        return max(self.budget_amount - self.month_spent, Decimal(0))


def spend_snapshot(db: Session, user_email: str, as_of: Optional[datetime] = None) -> SpendSnapshot:
    """Month and day spend for ``user_email`` around ``as_of``.

    Raises NoBudgetConfigured when the user has no usable budget.
    """
    budget = get_active_budget(db, user_email)
    if budget is None or budget.amount is None or Decimal(budget.amount) <= 0:
        raise NoBudgetConfigured(user_email)

    as_of = normalise_as_of(as_of)
    month_start, month_end = month_bounds(as_of)
    day_start, day_end = day_bounds(as_of)
    return SpendSnapshot(
        budget=budget,
        as_of=as_of,
        month_start=month_start,
        month_end=month_end,
        day_start=day_start,
        day_end=day_end,
        month_spent=sum_amount(db, user_email, month_start, month_end),
        day_spent=sum_amount(db, user_email, day_start, day_end),
    )


def build_message(kind: str, snapshot: SpendSnapshot) -> str:
    if kind == "daily_limit":
        return MESSAGE_TEMPLATES[kind].format(
            daySpent=fmt(snapshot.day_spent),
            dailyLimit=fmt(snapshot.daily_limit),
            over=fmt(snapshot.day_spent - snapshot.daily_limit),
        )
    return MESSAGE_TEMPLATES[kind].format(
        spent=fmt(snapshot.month_spent),
        remaining=fmt(snapshot.remaining),
        over=fmt(snapshot.month_spent - snapshot.budget_amount),
    )


def due_notifications(snapshot: SpendSnapshot):
    """(kind, period_start) pairs whose threshold is currently crossed."""
    percent = snapshot.month_percent
    for threshold, kind in MONTH_THRESHOLDS:
        if percent >= threshold:
            yield kind, snapshot.month_start
    if snapshot.day_spent > snapshot.daily_limit:
        yield "daily_limit", snapshot.day_start


def _fire_once(
    db: Session, user_email: str, kind: str, period_start: datetime, snapshot: SpendSnapshot
) -> Optional[NotificationRecord]:
    if find_fired(db, user_email, kind, period_start) is not None:
        return None

    record = NotificationRecord(
        user_email=user_email,
        budget_id=snapshot.budget.id,
        kind=kind,
        period_start=period_start,
        fired_at=snapshot.as_of,
        message=build_message(kind, snapshot),
        acknowledged=False,
    )
    try:
        return insert_notification(db, record)
    except DuplicateSuppressed:
        logger.info("Skipped duplicate %s for %s", kind, user_email)
        return None


def evaluate_thresholds(
    db: Session, user_email: str, as_of: Optional[datetime] = None
) -> List[NotificationRecord]:
    """Insert any newly due notifications and return them.

    Store failures propagate; callers decide whether they are fatal.
    """
    try:
        snapshot = spend_snapshot(db, user_email, as_of)
    except NoBudgetConfigured:
        logger.debug("No budget for %s, nothing to evaluate", user_email)
        return []

    fired = []
    for kind, period_start in due_notifications(snapshot):
        record = _fire_once(db, user_email, kind, period_start, snapshot)
        if record is not None:
            logger.info("Fired %s for %s: %s", kind, user_email, record.message)
            fired.append(record)
    return fired
