"""Filtering, sorting and grouping for item lists."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cadence.calendar_units import parse_timestamp
from cadence.models import DerivedStatus, Item, ItemKind, Priority, RecurrenceUnit, Urgency
from cadence.recurrence import derive_status


class SortKey(enum.StrEnum):
    PRIORITY = "priority"
    URGENCY = "urgency"
    DATE = "date"
    TITLE = "title"
    HOURS = "hours"


class GroupMode(enum.StrEnum):
    DATE = "date"
    WEEK = "week"
    MONTH = "month"
    PRIORITY = "priority"
    NONE = "none"


PRIORITY_ORDER = {Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}
URGENCY_ORDER = {Urgency.HIGH: 1, Urgency.MEDIUM: 2, Urgency.LOW: 3}


@dataclass
class ItemGroup:
    label: str
    items: list[Item] = field(default_factory=list)


def parse_sort(value: str) -> tuple[SortKey, bool]:
    """Parse "key:direction" (e.g. "title:asc") into (key, descending)."""
    key, _, direction = value.partition(":")
    direction = direction or "desc"
    if direction not in ("asc", "desc"):
        raise ValueError(f"Invalid sort direction '{direction}'. Use asc or desc")
    return SortKey(key), direction == "desc"


def _created(item: Item) -> float:
    parsed = parse_timestamp(item.created_at)
    return parsed.timestamp() if parsed else 0.0


def filter_items(
    items: list[Item],
    now: datetime,
    *,
    status: DerivedStatus | None = None,
    kind: ItemKind | None = None,
    priority: Priority | None = None,
    urgency: Urgency | None = None,
    category: str | None = None,
    search: str | None = None,
) -> list[Item]:
    filtered = list(items)
    if status is not None:
        filtered = [i for i in filtered if derive_status(i, now) == status]
    if kind is not None:
        filtered = [i for i in filtered if i.kind == kind]
    if priority is not None:
        filtered = [i for i in filtered if i.priority == priority]
    if urgency is not None:
        filtered = [i for i in filtered if i.urgency == urgency]
    if category:
        c = category.strip().lower()
        filtered = [i for i in filtered if i.category.lower() == c]
    if search:
        q = search.lower()
        filtered = [i for i in filtered if q in i.title.lower() or q in i.id.lower()]
    return filtered


def sort_items(items: list[Item], key: SortKey = SortKey.PRIORITY, descending: bool = True) -> list[Item]:
    """Sort a copy of *items*.

    "desc" on priority/urgency means most important first; ties fall back to
    creation date (newest first when descending).
    """
    if key == SortKey.TITLE:
        return sorted(items, key=lambda i: i.title.casefold(), reverse=descending)
    if key == SortKey.DATE:
        return sorted(items, key=_created, reverse=descending)
    if key == SortKey.HOURS:
        return sorted(
            items,
            key=lambda i: (i.estimated_hours or 0.0, _created(i)),
            reverse=descending,
        )

    order = PRIORITY_ORDER if key == SortKey.PRIORITY else URGENCY_ORDER
    attr = "priority" if key == SortKey.PRIORITY else "urgency"
    if descending:
        return sorted(items, key=lambda i: (order[getattr(i, attr)], -_created(i)))
    return sorted(items, key=lambda i: (-order[getattr(i, attr)], _created(i)))


def prioritize_daily(items: list[Item]) -> list[Item]:
    """Move daily routines ahead of everything else, keeping relative order."""
    daily = [i for i in items if i.recurrence_unit == RecurrenceUnit.DAILY]
    others = [i for i in items if i.recurrence_unit != RecurrenceUnit.DAILY]
    return daily + others


def format_date_label(d: datetime) -> str:
    return f"{d:%B} {d.day}, {d.year}"


def format_month_label(d: datetime) -> str:
    return d.strftime("%B %Y")


def format_week_label(d: datetime) -> str:
    week_start = d - timedelta(days=d.weekday())
    return f"Week of {week_start:%b} {week_start.day}, {week_start.year}"


def group_items(items: list[Item], mode: GroupMode) -> list[ItemGroup]:
    """Group items by creation date bucket (newest bucket first) or priority."""
    if mode == GroupMode.NONE:
        return [ItemGroup("All items", list(items))] if items else []

    if mode == GroupMode.PRIORITY:
        groups = []
        for p in sorted(PRIORITY_ORDER, key=PRIORITY_ORDER.get):
            members = [i for i in items if i.priority == p]
            if members:
                groups.append(ItemGroup(f"{p.value.capitalize()} priority", members))
        return groups

    buckets: dict[datetime, ItemGroup] = {}
    for item in items:
        created = parse_timestamp(item.created_at) or datetime.min
        day = created.replace(hour=0, minute=0, second=0, microsecond=0)
        if mode == GroupMode.MONTH:
            start = day.replace(day=1)
            label = format_month_label(start)
        elif mode == GroupMode.WEEK:
            start = day - timedelta(days=day.weekday())
            label = format_week_label(start)
        else:
            start = day
            label = format_date_label(start)
        buckets.setdefault(start, ItemGroup(label)).items.append(item)

    return [buckets[k] for k in sorted(buckets, reverse=True)]
