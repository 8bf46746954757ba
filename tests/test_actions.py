import threading
from datetime import datetime
from pathlib import Path

import pytest

from cadence.actions import (
    create_item,
    repair_overdue_item,
    reschedule_overdue,
    toggle_completion,
    uncomplete,
    update_recurrence,
)
from cadence.calendar_units import parse_timestamp
from cadence.models import DerivedStatus, Item, ItemKind, Profile, RecurrenceUnit
from cadence.persistence import Store, StoreError
from cadence.recurrence import derive_status, find_overdue

NOW = datetime(2026, 1, 10, 9, 0)


def make_store(tmp_path) -> Store:
    store = Store(tmp_path / "db.json")
    store.save(Profile(owner_id="u-1"), {})
    return store


def test_create_routine_is_due_today(tmp_path):
    store = make_store(tmp_path)
    item = create_item(store, "u-1", "  Stretch  ", NOW, unit=RecurrenceUnit.DAILY, interval=0)

    assert item.id == "R-1"
    assert item.title == "Stretch"
    assert item.kind == ItemKind.ROUTINE
    assert item.recurrence_interval == 1
    assert parse_timestamp(item.next_occurrence_at) == datetime(2026, 1, 10)
    assert derive_status(item, NOW) == DerivedStatus.ACTIVE


def test_create_task_and_reject_empty_title(tmp_path):
    store = make_store(tmp_path)
    task = create_item(store, "u-1", "Call bank", NOW, category="  ")
    assert task.id == "T-1"
    assert task.next_occurrence_at is None
    assert task.category == "task"
    with pytest.raises(ValueError):
        create_item(store, "u-1", "   ", NOW)


def test_toggle_routine_logs_then_uncompletes(tmp_path):
    store = make_store(tmp_path)
    item = create_item(store, "u-1", "Stretch", NOW, unit=RecurrenceUnit.DAILY)

    logged = toggle_completion(store, item, "u-1", NOW)
    assert derive_status(logged, NOW) == DerivedStatus.COMPLETED
    assert parse_timestamp(logged.next_occurrence_at) == datetime(2026, 1, 11)

    reopened = toggle_completion(store, logged, "u-1", NOW)
    assert derive_status(reopened, NOW) == DerivedStatus.ACTIVE
    assert reopened.last_completed_at is None
    assert parse_timestamp(reopened.next_occurrence_at) == datetime(2026, 1, 10)
    assert store.load_logs() == []


def test_toggle_task_flips_flag(tmp_path):
    store = make_store(tmp_path)
    task = create_item(store, "u-1", "Call bank", NOW)
    done = toggle_completion(store, task, "u-1", NOW)
    assert done.completed is True
    assert uncomplete(store, done, NOW).completed is False


def test_update_recurrence_converts_kinds(tmp_path):
    store = make_store(tmp_path)
    item = create_item(store, "u-1", "Stretch", NOW, unit=RecurrenceUnit.DAILY)
    logged = toggle_completion(store, item, "u-1", NOW)

    weekly = update_recurrence(store, logged, RecurrenceUnit.WEEKLY, 2, NOW)
    assert weekly.kind == ItemKind.ROUTINE
    assert weekly.recurrence_interval == 2
    assert parse_timestamp(weekly.next_occurrence_at) == datetime(2026, 1, 24)

    task = update_recurrence(store, weekly, RecurrenceUnit.NONE, 1, NOW)
    assert task.kind == ItemKind.TASK
    assert task.last_completed_at is None
    assert task.next_occurrence_at is None

    again = update_recurrence(store, task, RecurrenceUnit.MONTHLY, "x", NOW)
    assert again.recurrence_interval == 1
    assert parse_timestamp(again.next_occurrence_at) == datetime(2026, 1, 10)


def test_overdue_repair(tmp_path):
    store = make_store(tmp_path)
    stale = Item(
        id="R-1",
        title="Laundry",
        created_at="2025-12-01T08:00:00",
        owner_id="u-1",
        kind=ItemKind.ROUTINE,
        recurrence_unit=RecurrenceUnit.WEEKLY,
        last_completed_at="2025-12-25T10:00:00",
        next_occurrence_at="2026-01-01T00:00:00",
    )
    store.insert_item(stale)

    _, items = store.load()
    report = reschedule_overdue(items.values(), lambda i: repair_overdue_item(store, i, NOW), NOW)

    assert [i.id for i in report.repaired] == ["R-1"]
    repaired = store.get_item("R-1")
    assert parse_timestamp(repaired.next_occurrence_at) == datetime(2026, 1, 12)
    assert derive_status(repaired, NOW) == DerivedStatus.ACTIVE

    _, items = store.load()
    assert find_overdue(items.values(), NOW) == []
    second = reschedule_overdue(items.values(), lambda i: repair_overdue_item(store, i, NOW), NOW)
    assert second.repaired == []


def _overdue(item_id: str) -> Item:
    return Item(
        id=item_id,
        title=item_id,
        created_at="2025-12-01T08:00:00",
        owner_id="u-1",
        kind=ItemKind.ROUTINE,
        recurrence_unit=RecurrenceUnit.DAILY,
        next_occurrence_at="2026-01-02T00:00:00",
    )


def test_sweep_continues_after_a_failure():
    items = [_overdue("R-1"), _overdue("R-2"), _overdue("R-3")]
    seen = []

    def repair(item):
        seen.append(item.id)
        if item.id == "R-2":
            raise StoreError("disk full")
        return item

    report = reschedule_overdue(items, repair, NOW)
    assert seen == ["R-1", "R-2", "R-3"]
    assert [i.id for i in report.repaired] == ["R-1", "R-3"]
    assert report.failed == ["R-2"]


def test_sweep_stops_when_cancelled():
    items = [_overdue("R-1"), _overdue("R-2"), _overdue("R-3")]
    cancel = threading.Event()

    def repair(item):
        cancel.set()
        return item

    report = reschedule_overdue(items, repair, NOW, cancel)
    assert [i.id for i in report.repaired] == ["R-1"]
    assert report.skipped == ["R-2", "R-3"]


@pytest.mark.parametrize(
    "unit, expected",
    [
        (RecurrenceUnit.DAILY, datetime(2026, 2, 1)),
        (RecurrenceUnit.WEEKLY, datetime(2026, 2, 2)),
        (RecurrenceUnit.MONTHLY, datetime(2026, 2, 1)),
        (RecurrenceUnit.YEARLY, datetime(2027, 1, 1)),
    ],
)
def test_overdue_repair_lands_one_period_after_current_start(tmp_path, unit, expected):
    store = make_store(tmp_path)
    store.insert_item(
        Item(
            id="R-1",
            title="Stale",
            created_at="2025-06-01T08:00:00",
            owner_id="u-1",
            kind=ItemKind.ROUTINE,
            recurrence_unit=unit,
            last_completed_at="2025-12-20T10:00:00",
            next_occurrence_at="2026-01-01T00:00:00",
        )
    )
    now = datetime(2026, 1, 31, 9, 0)  # a Saturday

    _, items = store.load()
    report = reschedule_overdue(items.values(), lambda i: repair_overdue_item(store, i, now), now)

    assert [i.id for i in report.repaired] == ["R-1"]
    repaired = store.get_item("R-1")
    assert parse_timestamp(repaired.next_occurrence_at) == expected
    assert derive_status(repaired, now) == DerivedStatus.ACTIVE


def test_sweep_survives_a_disk_write_failure(tmp_path, monkeypatch):
    store = make_store(tmp_path)
    for iid in ("R-1", "R-2", "R-3"):
        store.insert_item(_overdue(iid))

    real_write_text = Path.write_text
    writes = []

    def failing_first_write(self, *args, **kwargs):
        writes.append(self)
        if len(writes) == 1:
            raise OSError(28, "No space left on device")
        return real_write_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "write_text", failing_first_write)

    _, items = store.load()
    report = reschedule_overdue(items.values(), lambda i: repair_overdue_item(store, i, NOW), NOW)

    assert report.failed == ["R-1"]
    assert [i.id for i in report.repaired] == ["R-2", "R-3"]
    assert parse_timestamp(store.get_item("R-1").next_occurrence_at) == datetime(2026, 1, 2)
