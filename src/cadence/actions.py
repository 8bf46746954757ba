"""Action handlers that connect the recurrence engine to the store.

The engine computes, the store persists; these functions are the only
place the two meet. Store errors propagate to the caller, except inside the
overdue sweep where each item fails on its own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from cadence.calendar_units import day_key, local_midnight, normalize_interval, parse_timestamp, to_iso
from cadence.models import (
    DEFAULT_CATEGORY,
    DerivedStatus,
    Item,
    ItemKind,
    Priority,
    RecurrenceUnit,
    Urgency,
)
from cadence.persistence import Store, StoreError
from cadence.recurrence import (
    compute_next_occurrence,
    derive_status,
    find_overdue,
    overdue_next_occurrence,
)

logger = logging.getLogger(__name__)


def create_item(
    store: Store,
    owner_id: str,
    title: str,
    now: datetime,
    *,
    unit: RecurrenceUnit = RecurrenceUnit.NONE,
    interval: object = 1,
    priority: Priority = Priority.MEDIUM,
    urgency: Urgency = Urgency.MEDIUM,
    estimated_hours: float | None = None,
    category: str | None = None,
) -> Item:
    """Insert a new task, or a routine when *unit* is recurring.

    New routines are due immediately (next occurrence = today's midnight).
    """
    trimmed = title.strip()
    if not trimmed:
        raise ValueError("Title is required")

    kind = ItemKind.TASK if unit == RecurrenceUnit.NONE else ItemKind.ROUTINE
    _, items = store.load()
    item = Item(
        id=store.generate_id(items, kind),
        title=trimmed,
        created_at=to_iso(now),
        owner_id=owner_id,
        kind=kind,
        recurrence_unit=unit,
        recurrence_interval=normalize_interval(interval),
        next_occurrence_at=None if kind == ItemKind.TASK else to_iso(local_midnight(now)),
        priority=priority,
        urgency=urgency,
        estimated_hours=estimated_hours,
        category=(category or "").strip() or DEFAULT_CATEGORY,
    )
    return store.insert_item(item)


def log_completion(store: Store, item: Item, owner_id: str, now: datetime) -> Item:
    return store.complete_and_reschedule(item.id, owner_id, now)


def uncomplete(store: Store, item: Item, now: datetime) -> Item:
    """Put an item back to active without advancing its schedule."""
    if not item.is_recurring:
        return store.update_item(item.id, completed=False)

    updated = store.update_item(
        item.id,
        completed=False,
        last_completed_at=None,
        next_occurrence_at=to_iso(local_midnight(now)),
    )
    store.remove_completion(item.id, day_key(now))
    logger.info("Marked %s as active again", item.id)
    return updated


def toggle_completion(store: Store, item: Item, owner_id: str, now: datetime) -> Item:
    """Flip an item between active and completed for the current period."""
    if not item.is_recurring:
        return store.update_item(item.id, completed=not item.completed)
    if derive_status(item, now) == DerivedStatus.COMPLETED:
        return uncomplete(store, item, now)
    return log_completion(store, item, owner_id, now)


def update_recurrence(
    store: Store,
    item: Item,
    unit: RecurrenceUnit,
    interval: object,
    now: datetime,
) -> Item:
    """Change an item's cadence, converting between task and routine."""
    normalized = normalize_interval(interval)
    if unit == RecurrenceUnit.NONE:
        return store.update_item(
            item.id,
            kind=ItemKind.TASK,
            recurrence_unit=unit,
            recurrence_interval=normalized,
            last_completed_at=None,
            next_occurrence_at=None,
        )

    last = parse_timestamp(item.last_completed_at)
    if last is not None:
        next_at = compute_next_occurrence(unit, normalized, last)
    else:
        next_at = local_midnight(now)
    return store.update_item(
        item.id,
        kind=ItemKind.ROUTINE,
        recurrence_unit=unit,
        recurrence_interval=normalized,
        completed=False,
        next_occurrence_at=to_iso(next_at),
    )


def repair_overdue_item(store: Store, item: Item, now: datetime) -> Item:
    """Move a stale due date forward and make the routine active again."""
    next_at = overdue_next_occurrence(item, now)
    return store.update_item(
        item.id,
        completed=False,
        last_completed_at=None,
        next_occurrence_at=to_iso(next_at) if next_at else None,
    )


# ---------------------------------------------------------------------------
# Overdue sweep
# ---------------------------------------------------------------------------


@dataclass
class SweepReport:
    repaired: list[Item] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def reschedule_overdue(
    items: Iterable[Item],
    repair: Callable[[Item], Item],
    now: datetime,
    cancel: threading.Event | None = None,
) -> SweepReport:
    """Repair overdue routines one at a time.

    Setting *cancel* stops the sweep before the next item; whatever is left
    is reported as skipped. A StoreError on one item is logged and the sweep
    carries on with the rest.
    """
    report = SweepReport()
    candidates = find_overdue(items, now)
    for index, item in enumerate(candidates):
        if cancel is not None and cancel.is_set():
            report.skipped.extend(c.id for c in candidates[index:])
            logger.info("Overdue sweep cancelled, %d item(s) skipped", len(report.skipped))
            break
        try:
            report.repaired.append(repair(item))
        except StoreError as exc:
            logger.error("Failed to reschedule overdue item %s: %s", item.id, exc)
            report.failed.append(item.id)
            continue
        logger.info("Rescheduled overdue item %s", item.id)
    return report
