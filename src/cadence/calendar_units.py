"""Calendar unit arithmetic in local wall-clock time.

All helpers work on naive local datetimes. Aware inputs are converted to the
process's local time zone first, so an ISO string ending in ``Z`` and its
local rendering land in the same calendar bucket.

Month and year addition clamp to the last valid day of the target month
(Jan 31 + 1 month = Feb 28/29, Feb 29 + 1 year = Feb 28).
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from cadence.models import RecurrenceUnit

DAY_KEY_FORMAT = "%Y-%m-%d"

_SINGLE_LABELS = {
    RecurrenceUnit.DAILY: "day",
    RecurrenceUnit.WEEKLY: "week",
    RecurrenceUnit.MONTHLY: "month",
    RecurrenceUnit.YEARLY: "year",
}


# ---------------------------------------------------------------------------
# Input normalisation
# ---------------------------------------------------------------------------


def normalize_interval(value: object) -> int:
    """Coerce a stored interval to a whole number >= 1.

    Missing, non-numeric, non-finite and sub-1 values become 1.
    """
    if value is None or isinstance(value, bool):
        return 1
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number) or number < 1:
        return 1
    return math.floor(number)


def to_local(dt: datetime) -> datetime:
    """Return *dt* as a naive local datetime."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)


def parse_timestamp(value: object) -> datetime | None:
    """Parse a stored timestamp into a naive local datetime, or None."""
    if isinstance(value, datetime):
        return to_local(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return to_local(isoparse(value.strip()))
    except (ValueError, OverflowError):
        return None


def to_iso(dt: datetime) -> str:
    """Render a datetime as an offset-qualified ISO-8601 string."""
    return to_local(dt).astimezone().isoformat()


def local_midnight(dt: datetime) -> datetime:
    return to_local(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def day_key(dt: datetime) -> str:
    return to_local(dt).strftime(DAY_KEY_FORMAT)


def is_day_key_in_range(key: str, start_key: str, end_key: str) -> bool:
    # yyyy-MM-dd keys sort lexically in calendar order
    return start_key <= key <= end_key


# ---------------------------------------------------------------------------
# Per-unit primitives
# ---------------------------------------------------------------------------


def period_start(dt: datetime, unit: RecurrenceUnit) -> datetime:
    """Floor *dt* to the start of its containing unit. Weeks start Monday."""
    day = local_midnight(dt)
    if unit == RecurrenceUnit.DAILY:
        return day
    if unit == RecurrenceUnit.WEEKLY:
        return day - timedelta(days=day.weekday())
    if unit == RecurrenceUnit.MONTHLY:
        return day.replace(day=1)
    if unit == RecurrenceUnit.YEARLY:
        return day.replace(month=1, day=1)
    raise ValueError(f"Unsupported recurrence unit: {unit}")


def elapsed_units(anchor: datetime, cursor: datetime, unit: RecurrenceUnit) -> int:
    """Signed count of calendar units from *anchor* to *cursor*."""
    a = to_local(anchor)
    c = to_local(cursor)
    if unit == RecurrenceUnit.DAILY:
        return (c.date() - a.date()).days
    if unit == RecurrenceUnit.WEEKLY:
        days = (period_start(c, unit).date() - period_start(a, unit).date()).days
        return days // 7
    if unit == RecurrenceUnit.MONTHLY:
        return (c.year - a.year) * 12 + (c.month - a.month)
    if unit == RecurrenceUnit.YEARLY:
        return c.year - a.year
    raise ValueError(f"Unsupported recurrence unit: {unit}")


def add_units(dt: datetime, amount: int, unit: RecurrenceUnit) -> datetime:
    """Add *amount* whole units to *dt*, keeping the local wall-clock time."""
    local = to_local(dt)
    if unit == RecurrenceUnit.DAILY:
        return local + timedelta(days=amount)
    if unit == RecurrenceUnit.WEEKLY:
        return local + timedelta(weeks=amount)
    if unit == RecurrenceUnit.MONTHLY:
        return local + relativedelta(months=amount)
    if unit == RecurrenceUnit.YEARLY:
        return local + relativedelta(years=amount)
    raise ValueError(f"Unsupported recurrence unit: {unit}")


def unit_label(unit: RecurrenceUnit, interval: int) -> str:
    """Human label for a period: "week", or "3-day period"."""
    if unit not in _SINGLE_LABELS:
        raise ValueError(f"Unsupported recurrence unit: {unit}")
    single = _SINGLE_LABELS[unit]
    if interval <= 1:
        return single
    return f"{interval}-{single} period"
