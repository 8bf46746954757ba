from cadence.models import CompletionLog, Item, ItemKind, Priority, Profile, RecurrenceUnit, Urgency


def test_item_serialization():
    item = Item(
        id="R-1",
        title="Water plants",
        created_at="2026-01-01T09:00:00+00:00",
        owner_id="u-1",
        kind=ItemKind.ROUTINE,
        recurrence_unit=RecurrenceUnit.WEEKLY,
        recurrence_interval=2,
        priority=Priority.HIGH,
        urgency=Urgency.LOW,
        estimated_hours=0.5,
    )
    d = item.to_dict()
    assert d["recurrence_unit"] == "weekly"
    assert d["priority"] == "high"
    assert d["last_completed_at"] is None

    item2 = Item.from_dict("R-1", d)
    assert item2 == item
    assert item2.is_recurring


def test_item_defaults_from_sparse_dict():
    item = Item.from_dict("T-1", {"title": "Call bank", "created_at": "2026-01-01"})
    assert item.kind == ItemKind.TASK
    assert item.recurrence_unit == RecurrenceUnit.NONE
    assert item.category == "task"
    assert not item.is_recurring


def test_profile_and_log_serialization():
    profile = Profile.from_dict(Profile(owner_id="u-1", daily_highlight=False).to_dict())
    assert profile.daily_highlight is False
    assert Profile.from_dict({"owner_id": "u-2"}).daily_highlight is True

    log = CompletionLog(item_id="R-1", owner_id="u-1", completed_at="2026-01-05T09:30:00")
    assert CompletionLog.from_dict(log.to_dict()) == log
