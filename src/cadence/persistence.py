"""JSON file persistence for items, completion logs and the owner profile."""

from __future__ import annotations

import json
import logging
from dataclasses import fields
from datetime import datetime
from pathlib import Path

from cadence.calendar_units import day_key, parse_timestamp, to_iso
from cadence.models import CompletionLog, Item, ItemKind, Profile
from cadence.recurrence import compute_next_occurrence

DEFAULT_DB_FILE = "cadence_items.json"

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {f.name for f in fields(Item)} - {"id", "created_at", "owner_id"}


class StoreError(Exception):
    """Raised when the database cannot be read or a mutation is rejected."""


class ItemNotFoundError(StoreError):
    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class OwnershipError(StoreError):
    def __init__(self, item_id: str, owner_id: str):
        super().__init__(f"Item {item_id} does not belong to {owner_id}")
        self.item_id = item_id
        self.owner_id = owner_id


class Store:
    """Reads and writes the item database (JSON file).

    Every mutating operation reloads the file, changes one record and writes
    the whole database back, returning the updated record.
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_FILE):
        self.db_path = Path(db_path)

    def _read(self) -> dict:
        if not self.db_path.exists():
            return {}
        try:
            return json.loads(self.db_path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Cannot read {self.db_path}: {exc}") from exc

    def load(self) -> tuple[Profile | None, dict[str, Item]]:
        """Return (profile_or_None, {item_id: Item})."""
        raw = self._read()
        profile = None
        if "profile" in raw:
            profile = Profile.from_dict(raw["profile"])
        items = {iid: Item.from_dict(iid, idata) for iid, idata in raw.get("items", {}).items()}
        return profile, items

    def load_logs(self) -> list[CompletionLog]:
        return [CompletionLog.from_dict(d) for d in self._read().get("logs", [])]

    def save(
        self,
        profile: Profile | None,
        items: dict[str, Item],
        logs: list[CompletionLog] | None = None,
    ) -> None:
        """Persist profile + items to disk. Logs are kept as-is unless given."""
        if logs is None:
            logs = self.load_logs()
        raw: dict = {}
        if profile is not None:
            raw["profile"] = profile.to_dict()
        raw["items"] = {iid: item.to_dict() for iid, item in items.items()}
        raw["logs"] = [log.to_dict() for log in logs]
        try:
            self.db_path.write_text(json.dumps(raw, indent=4))
        except OSError as exc:
            raise StoreError(f"Cannot write {self.db_path}: {exc}") from exc

    def generate_id(self, items: dict[str, Item], kind: ItemKind = ItemKind.TASK) -> str:
        """Generate the next T-N (task) or R-N (routine) id."""
        prefix = "R" if kind == ItemKind.ROUTINE else "T"
        existing = [
            int(k.split("-")[1])
            for k in items
            if k.startswith(f"{prefix}-") and k.split("-")[1].isdigit()
        ]
        return f"{prefix}-{max(existing, default=0) + 1}"

    # ------------------------------------------------------------------
    # Single-record operations
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> Item:
        _, items = self.load()
        if item_id not in items:
            raise ItemNotFoundError(item_id)
        return items[item_id]

    def insert_item(self, item: Item) -> Item:
        profile, items = self.load()
        if item.id in items:
            raise StoreError(f"Item {item.id} already exists")
        items[item.id] = item
        self.save(profile, items)
        return item

    def update_item(self, item_id: str, **changes) -> Item:
        """Apply *changes* to one item and return the updated record."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        profile, items = self.load()
        if item_id not in items:
            raise ItemNotFoundError(item_id)
        item = items[item_id]
        for name, value in changes.items():
            setattr(item, name, value)
        self.save(profile, items)
        return item

    def delete_item(self, item_id: str) -> None:
        """Remove an item together with its completion logs."""
        profile, items = self.load()
        if item_id not in items:
            raise ItemNotFoundError(item_id)
        del items[item_id]
        logs = [log for log in self.load_logs() if log.item_id != item_id]
        self.save(profile, items, logs)

    def complete_and_reschedule(self, item_id: str, owner_id: str, now: datetime) -> Item:
        """Log a completion for a routine and move its next occurrence forward.

        A completion already logged on the same local day is reused, so
        repeating the call within a day does not advance the schedule twice.
        """
        profile, items = self.load()
        if item_id not in items:
            raise ItemNotFoundError(item_id)
        item = items[item_id]
        if item.owner_id != owner_id:
            raise OwnershipError(item_id, owner_id)
        if not item.is_recurring:
            raise ValueError(f"Item {item_id} is not a routine")

        logs = self.load_logs()
        today = day_key(now)
        existing = [
            log for log in logs
            if log.item_id == item_id and _log_day(log) == today
        ]
        if existing:
            completed_at = max(existing, key=lambda log: log.completed_at).completed_at
        else:
            completed_at = to_iso(now)
            logs.append(CompletionLog(item_id=item_id, owner_id=owner_id, completed_at=completed_at))

        completed_dt = parse_timestamp(completed_at) or now
        next_at = compute_next_occurrence(item.recurrence_unit, item.recurrence_interval, completed_dt)
        item.completed = False
        item.last_completed_at = completed_at
        item.next_occurrence_at = to_iso(next_at) if next_at else None
        self.save(profile, items, logs)
        logger.info("Logged completion of %s, next occurrence %s", item_id, item.next_occurrence_at)
        return item

    def remove_completion(self, item_id: str, on_day: str) -> int:
        """Drop the logs of *item_id* completed on local day *on_day*."""
        profile, items = self.load()
        logs = self.load_logs()
        kept = [log for log in logs if not (log.item_id == item_id and _log_day(log) == on_day)]
        removed = len(logs) - len(kept)
        if removed:
            self.save(profile, items, kept)
        return removed


def _log_day(log: CompletionLog) -> str | None:
    parsed = parse_timestamp(log.completed_at)
    return day_key(parsed) if parsed else None
