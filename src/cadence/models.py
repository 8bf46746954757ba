"""Item model, enums and derived value types."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class RecurrenceUnit(enum.StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ItemKind(enum.StrEnum):
    TASK = "task"
    ROUTINE = "routine"


class Priority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Urgency(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DerivedStatus(enum.StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


DEFAULT_CATEGORY = "task"


@dataclass
class Profile:
    """Owner-level settings stored alongside items."""

    owner_id: str
    daily_highlight: bool = True

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "daily_highlight": self.daily_highlight,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Profile:
        return cls(
            owner_id=d["owner_id"],
            daily_highlight=d.get("daily_highlight", True),
        )


@dataclass
class Item:
    """A task or routine record.

    Timestamps are kept as the ISO-8601 strings they are stored as; the
    recurrence engine parses them on read and treats anything unparsable
    as absent.
    """

    id: str
    title: str
    created_at: str
    owner_id: str
    kind: ItemKind = ItemKind.TASK
    recurrence_unit: RecurrenceUnit = RecurrenceUnit.NONE
    recurrence_interval: int = 1
    completed: bool = False  # only meaningful for one-off tasks
    last_completed_at: str | None = None
    next_occurrence_at: str | None = None
    priority: Priority = Priority.MEDIUM
    urgency: Urgency = Urgency.MEDIUM
    estimated_hours: float | None = None
    category: str = DEFAULT_CATEGORY

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_unit != RecurrenceUnit.NONE

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "created_at": self.created_at,
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "recurrence_unit": self.recurrence_unit.value,
            "recurrence_interval": self.recurrence_interval,
            "completed": self.completed,
            "last_completed_at": self.last_completed_at,
            "next_occurrence_at": self.next_occurrence_at,
            "priority": self.priority.value,
            "urgency": self.urgency.value,
            "estimated_hours": self.estimated_hours,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, item_id: str, d: dict) -> Item:
        return cls(
            id=item_id,
            title=d["title"],
            created_at=d["created_at"],
            owner_id=d.get("owner_id", ""),
            kind=ItemKind(d.get("kind", "task")),
            recurrence_unit=RecurrenceUnit(d.get("recurrence_unit", "none")),
            recurrence_interval=d.get("recurrence_interval", 1),
            completed=d.get("completed", False),
            last_completed_at=d.get("last_completed_at"),
            next_occurrence_at=d.get("next_occurrence_at"),
            priority=Priority(d.get("priority", "medium")),
            urgency=Urgency(d.get("urgency", "medium")),
            estimated_hours=d.get("estimated_hours"),
            category=d.get("category", DEFAULT_CATEGORY),
        )


@dataclass
class CompletionLog:
    """One logged completion of a routine."""

    item_id: str
    owner_id: str
    completed_at: str

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "owner_id": self.owner_id,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> CompletionLog:
        return cls(
            item_id=d["item_id"],
            owner_id=d.get("owner_id", ""),
            completed_at=d["completed_at"],
        )


@dataclass(frozen=True)
class PeriodInfo:
    """The bucketed period a routine is currently evaluated against."""

    start: datetime
    end: datetime  # inclusive: one second before the next period starts
    start_day_key: str
    end_day_key: str
    period_label: str
