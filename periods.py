"""Calendar arithmetic in the product's reference timezone.

Every day and month boundary is computed in fixed UTC+5:30, whatever the
server's local zone is. Boundaries are returned as naive UTC datetimes,
which is how timestamps are stored.

Two conventions for naive datetimes:

* ``as_of`` arguments (evaluator, notifier, bounds helpers) are instants.
  A naive ``as_of`` is storage time (UTC); an aware one is converted.
  Pass them through ``normalise_as_of``.
* Timestamps supplied by clients (an expense's ``date``) are wall-clock
  readings. A naive one is reference-zone time; ``to_storage`` converts it.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta

REFERENCE_TZ = timezone(timedelta(hours=5, minutes=30), "IST")


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(ts: datetime) -> datetime:
    """Stored (naive UTC) or aware timestamp -> aware reference-zone timestamp."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(REFERENCE_TZ)


def to_storage(ts: datetime) -> datetime:
    """Normalise an incoming timestamp to naive UTC.

    Naive input is read as reference-zone wall time.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=REFERENCE_TZ)
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def normalise_as_of(as_of: Optional[datetime] = None) -> datetime:
    """Naive UTC instant for an ``as_of`` argument; None means now."""
    if as_of is None:
        return now_utc()
    if as_of.tzinfo is None:
        return as_of
    return as_of.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(ts: Optional[datetime] = None) -> date:
    return to_local(ts if ts is not None else now_utc()).date()


def local_midnight(day: date) -> datetime:
    return to_storage(datetime.combine(day, time.min))


def day_bounds(as_of: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    day = local_date(as_of)
    return local_midnight(day), local_midnight(day + timedelta(days=1))


def date_bounds(day: date) -> Tuple[datetime, datetime]:
    return local_midnight(day), local_midnight(day + timedelta(days=1))


def month_bounds(as_of: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    first = local_date(as_of).replace(day=1)
    return local_midnight(first), local_midnight(first + relativedelta(months=+1))


def calendar_month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    first = date(year, month, 1)
    return local_midnight(first), local_midnight(first + relativedelta(months=+1))


def parse_local_date(value: Optional[str]) -> date:
    """'YYYY-MM-DD' -> date; None means today in the reference zone."""
    if not value:
        return local_date()
    return datetime.strptime(value, "%Y-%m-%d").date()
