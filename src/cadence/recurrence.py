"""Routine period resolution, derived status and next-occurrence scheduling.

Everything here is a pure function of its arguments: ``now`` is always
passed in by the caller and nothing reads the clock or touches storage.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from cadence.calendar_units import (
    add_units,
    day_key,
    elapsed_units,
    is_day_key_in_range,
    local_midnight,
    normalize_interval,
    parse_timestamp,
    period_start,
    to_local,
    unit_label,
)
from cadence.models import DerivedStatus, Item, PeriodInfo, RecurrenceUnit


def resolve_period(item: Item, now: datetime) -> PeriodInfo | None:
    """Return the period *item* falls in at *now*, or None for one-off tasks.

    Periods are ``interval`` units long and bucketed from the start of the
    unit containing the item's creation date. Items created after *now*
    resolve to their first period.
    """
    unit = item.recurrence_unit
    if unit == RecurrenceUnit.NONE:
        return None

    interval = normalize_interval(item.recurrence_interval)
    created = parse_timestamp(item.created_at) or to_local(now)
    anchor = period_start(created, unit)
    cursor = period_start(now, unit)
    elapsed = max(0, elapsed_units(anchor, cursor, unit))
    bucket_index = elapsed // interval

    start = add_units(anchor, bucket_index * interval, unit)
    end = add_units(start, interval, unit) - timedelta(seconds=1)

    return PeriodInfo(
        start=start,
        end=end,
        start_day_key=day_key(start),
        end_day_key=day_key(end),
        period_label=unit_label(unit, interval),
    )


def derive_status(item: Item, now: datetime) -> DerivedStatus:
    """Classify *item* as active (due) or completed (satisfied) at *now*.

    Never raises: a routine that was never completed, or whose next
    occurrence is missing or unparsable, is active.
    """
    if item.recurrence_unit == RecurrenceUnit.NONE:
        return DerivedStatus.COMPLETED if item.completed else DerivedStatus.ACTIVE

    if parse_timestamp(item.last_completed_at) is None:
        return DerivedStatus.ACTIVE

    next_at = parse_timestamp(item.next_occurrence_at)
    if next_at is None:
        return DerivedStatus.ACTIVE

    return DerivedStatus.ACTIVE if next_at <= to_local(now) else DerivedStatus.COMPLETED


def compute_next_occurrence(
    unit: RecurrenceUnit,
    interval: object,
    from_date: datetime,
) -> datetime | None:
    """Local midnight of *from_date* advanced by one interval, or None."""
    if unit == RecurrenceUnit.NONE:
        return None
    return add_units(local_midnight(from_date), normalize_interval(interval), unit)


def overdue_next_occurrence(item: Item, now: datetime) -> datetime | None:
    """Repaired due date for an overdue routine: one interval past the start
    of the unit containing *now*."""
    unit = item.recurrence_unit
    if unit == RecurrenceUnit.NONE:
        return None
    interval = normalize_interval(item.recurrence_interval)
    return add_units(period_start(now, unit), interval, unit)


def find_overdue(items: Iterable[Item], now: datetime) -> list[Item]:
    """Routines whose stored next occurrence is before today's midnight."""
    today = local_midnight(now)
    overdue: list[Item] = []
    for item in items:
        if item.recurrence_unit == RecurrenceUnit.NONE:
            continue
        next_at = parse_timestamp(item.next_occurrence_at)
        if next_at is not None and next_at < today:
            overdue.append(item)
    return overdue


def completed_in_period(item: Item, now: datetime) -> bool:
    """True when the last completion falls inside the current period."""
    period = resolve_period(item, now)
    last = parse_timestamp(item.last_completed_at)
    if period is None or last is None:
        return False
    return is_day_key_in_range(day_key(last), period.start_day_key, period.end_day_key)


def late_label(item: Item, now: datetime) -> str | None:
    """e.g. "3 days late" when the next occurrence has passed, else None."""
    unit = item.recurrence_unit
    if unit == RecurrenceUnit.NONE:
        return None
    next_at = parse_timestamp(item.next_occurrence_at)
    current = to_local(now)
    if next_at is None or next_at >= current:
        return None

    count = max(1, elapsed_units(next_at, current, unit))
    noun = unit_label(unit, 1)
    return f"{count} {noun}{'' if count == 1 else 's'} late"
