"""Typer CLI for cadence."""

from __future__ import annotations

import logging
import os
import signal
import threading
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from cadence.actions import (
    create_item,
    reschedule_overdue,
    repair_overdue_item,
    toggle_completion,
    uncomplete,
    update_recurrence,
)
from cadence.calendar_units import normalize_interval, parse_timestamp
from cadence.listing import GroupMode, filter_items, group_items, parse_sort, prioritize_daily, sort_items
from cadence.models import DerivedStatus, Item, ItemKind, Priority, Profile, RecurrenceUnit, Urgency
from cadence.persistence import DEFAULT_DB_FILE, Store, StoreError
from cadence.recurrence import completed_in_period, derive_status, late_label, resolve_period

app = typer.Typer(
    name="cadence",
    help="Tasks and recurring routines from the command line.",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main() -> None:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _get_store() -> Store:
    return Store(os.getenv("CADENCE_DB", DEFAULT_DB_FILE))


def _complete_item_id(incomplete: str) -> list[str]:
    """Shell completion for item IDs. Matches against both ID and title."""
    try:
        _, items = _get_store().load()
    except StoreError:
        return []
    q = incomplete.lower()
    return [f"{i.title} ({iid})" for iid, i in items.items() if q in iid.lower() or q in i.title.lower()]


def _parse_item_id(item_id_arg: str) -> str:
    """Extracts the ID if the user used the autocompleted 'Title (ID)' format."""
    if "(" in item_id_arg and item_id_arg.endswith(")"):
        return item_id_arg.split("(")[-1].strip(")")
    return item_id_arg.strip()


def _require_profile(profile: Profile | None) -> Profile:
    if profile is None:
        console.print("[red]No profile found. Run 'cadence init' first.[/red]")
        raise typer.Exit(1)
    return profile


def _load_item(store: Store, item_id: str) -> tuple[Profile | None, Item]:
    try:
        profile, items = store.load()
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    item_id = _parse_item_id(item_id)
    if item_id not in items:
        console.print(f"[red]Item {item_id} not found.[/red]")
        raise typer.Exit(1)
    return profile, items[item_id]


def _parse_enum(enum_cls, value: str | None, label: str):
    if value is None:
        return None
    try:
        return enum_cls(value.lower())
    except ValueError:
        valid = ", ".join(e.value for e in enum_cls)
        console.print(f"[red]Invalid {label} '{value}'. Use: {valid}[/red]")
        raise typer.Exit(1)


def _parse_at(at: str | None) -> datetime:
    if at is None:
        return datetime.now()
    parsed = parse_timestamp(at)
    if parsed is None:
        console.print(f"[red]Invalid date '{at}'. Use YYYY-MM-DD or ISO-8601.[/red]")
        raise typer.Exit(1)
    return parsed


def _fmt(value: str | None) -> str:
    parsed = parse_timestamp(value)
    return parsed.strftime("%a %b %d %Y, %H:%M") if parsed else "-"


def _cadence(item: Item) -> str:
    if not item.is_recurring:
        return "-"
    interval = normalize_interval(item.recurrence_interval)
    if interval <= 1:
        return item.recurrence_unit.value
    return f"every {interval} ({item.recurrence_unit.value})"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    owner: Annotated[str, typer.Option(help="Owner id used for completions", prompt="Owner id")],
    daily_highlight: Annotated[bool, typer.Option("--daily-highlight/--no-daily-highlight", help="List daily routines first")] = True,
) -> None:
    """Initialize (or reinitialize) the owner profile."""
    store = _get_store()
    try:
        _, items = store.load()
        store.save(Profile(owner_id=owner, daily_highlight=daily_highlight), items)
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Profile initialized for {owner}.[/green]")


@app.command()
def add(
    title: str,
    every: Annotated[Optional[str], typer.Option("--every", "-e", help="Make a routine: daily, weekly, monthly, yearly")] = None,
    interval: Annotated[int, typer.Option("--interval", "-n", help="Units per period (e.g. 2 = every other week)")] = 1,
    priority: Annotated[str, typer.Option("--priority", "-p", help="low, medium, high")] = "medium",
    urgency: Annotated[str, typer.Option("--urgency", "-u", help="low, medium, high")] = "medium",
    hours: Annotated[Optional[float], typer.Option(help="Estimated hours")] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c", help="Category (default: task)")] = None,
) -> None:
    """Add a new task, or a routine with --every."""
    store = _get_store()
    try:
        profile = _require_profile(store.load()[0])
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    unit = _parse_enum(RecurrenceUnit, every, "recurrence") or RecurrenceUnit.NONE
    try:
        item = create_item(
            store,
            profile.owner_id,
            title,
            datetime.now(),
            unit=unit,
            interval=interval,
            priority=_parse_enum(Priority, priority, "priority"),
            urgency=_parse_enum(Urgency, urgency, "urgency"),
            estimated_hours=hours,
            category=category,
        )
    except (ValueError, StoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Added '{item.title}' as {item.id}[/green]")


@app.command("list")
def list_items(
    status_filter: Annotated[Optional[str], typer.Option("--status", "-s", help="Filter by status (active, completed)")] = None,
    kind: Annotated[Optional[str], typer.Option("--kind", "-k", help="Filter by kind (task, routine)")] = None,
    priority: Annotated[Optional[str], typer.Option("--priority", "-p", help="Filter by priority")] = None,
    urgency: Annotated[Optional[str], typer.Option("--urgency", "-u", help="Filter by urgency")] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c", help="Filter by category")] = None,
    search: Annotated[Optional[str], typer.Option("--search", "-q", help="Filter by title (case-insensitive substring match)")] = None,
    sort: Annotated[str, typer.Option(help="key:direction, key in priority, urgency, date, title, hours")] = "priority:desc",
    group: Annotated[str, typer.Option(help="Group by date, week, month, priority or none")] = "none",
) -> None:
    """List items with their derived status."""
    store = _get_store()
    try:
        profile, items = store.load()
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    if not items:
        console.print("No items found.")
        return

    now = datetime.now()
    try:
        sort_key, descending = parse_sort(sort)
        group_mode = GroupMode(group)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    filtered = filter_items(
        list(items.values()),
        now,
        status=_parse_enum(DerivedStatus, status_filter, "status"),
        kind=_parse_enum(ItemKind, kind, "kind"),
        priority=_parse_enum(Priority, priority, "priority"),
        urgency=_parse_enum(Urgency, urgency, "urgency"),
        category=category,
        search=search,
    )
    if not filtered:
        console.print("No items match the filter.")
        return

    ordered = sort_items(filtered, sort_key, descending)
    if profile is not None and profile.daily_highlight:
        ordered = prioritize_daily(ordered)

    for grp in group_items(ordered, group_mode):
        table = Table(title=grp.label if group_mode != GroupMode.NONE else None)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title")
        table.add_column("Status")
        table.add_column("Priority")
        table.add_column("Urgency")
        table.add_column("Cadence")
        table.add_column("Next")
        table.add_column("Hours", justify="right")

        for item in grp.items:
            status = derive_status(item, now)
            status_cell = "[green]completed[/green]" if status == DerivedStatus.COMPLETED else "active"
            late = late_label(item, now)
            if late and status == DerivedStatus.ACTIVE:
                status_cell = f"[red]{late}[/red]"
            table.add_row(
                item.id,
                item.title,
                status_cell,
                item.priority.value,
                item.urgency.value,
                _cadence(item),
                _fmt(item.next_occurrence_at) if item.is_recurring else "-",
                f"{item.estimated_hours:.1f}" if item.estimated_hours is not None else "-",
            )
        console.print(table)


@app.command()
def show(item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)]) -> None:
    """Show all details for a single item."""
    _, item = _load_item(_get_store(), item_id)
    now = datetime.now()

    console.print(f"\n[bold]{item.id}[/bold]  {item.title}")
    console.print(f"  Kind:       {item.kind.value}")
    console.print(f"  Status:     {derive_status(item, now).value}")
    console.print(f"  Priority:   {item.priority.value}")
    console.print(f"  Urgency:    {item.urgency.value}")
    console.print(f"  Category:   {item.category}")
    if item.estimated_hours is not None:
        console.print(f"  Hours:      {item.estimated_hours:.1f}")
    console.print(f"  Created:    {_fmt(item.created_at)}")

    if item.is_recurring:
        console.print(f"  Cadence:    {_cadence(item)}")
        console.print(f"  Last done:  {_fmt(item.last_completed_at)}")
        console.print(f"  Next due:   {_fmt(item.next_occurrence_at)}")
        late = late_label(item, now)
        if late:
            console.print(f"  [bold red]{late}[/bold red]")
    console.print()


@app.command()
def period(
    item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)],
    at: Annotated[Optional[str], typer.Option(help="Reference date (default: now)")] = None,
) -> None:
    """Show the period a routine is currently evaluated against."""
    _, item = _load_item(_get_store(), item_id)
    now = _parse_at(at)
    info = resolve_period(item, now)
    if info is None:
        console.print(f"{item.id} is not a routine.")
        return

    console.print(f"\n[bold]{item.id}[/bold]  {item.title}")
    console.print(f"  Period:     {info.period_label}")
    console.print(f"  Start:      {info.start.strftime('%a %b %d %Y, %H:%M:%S')}")
    console.print(f"  End:        {info.end.strftime('%a %b %d %Y, %H:%M:%S')}")
    console.print(f"  Days:       {info.start_day_key} .. {info.end_day_key}")
    done_here = completed_in_period(item, now)
    console.print(f"  Done this {info.period_label}: {'yes' if done_here else 'no'}")
    console.print()


@app.command()
def done(item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)]) -> None:
    """Toggle completion: log a routine, un-complete it, or flip a task."""
    store = _get_store()
    profile, item = _load_item(store, item_id)
    profile = _require_profile(profile)
    now = datetime.now()
    try:
        updated = toggle_completion(store, item, profile.owner_id, now)
    except (ValueError, StoreError) as exc:
        console.print(f"[red]Failed to update {item.id}: {exc}[/red]")
        raise typer.Exit(1)

    if not updated.is_recurring:
        state = "completed" if updated.completed else "active"
        console.print(f"[green]Marked {updated.id} as {state}.[/green]")
    elif derive_status(updated, now) == DerivedStatus.COMPLETED:
        console.print(f"[green]Logged {updated.id}. Next occurrence {_fmt(updated.next_occurrence_at)}.[/green]")
    else:
        console.print(f"[green]Marked {updated.id} as active.[/green]")


@app.command()
def undo(item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)]) -> None:
    """Put an item back to active without advancing its schedule."""
    store = _get_store()
    _, item = _load_item(store, item_id)
    try:
        updated = uncomplete(store, item, datetime.now())
    except StoreError as exc:
        console.print(f"[red]Failed to update {item.id}: {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Marked {updated.id} as active.[/green]")


@app.command()
def recur(
    item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)],
    every: Annotated[str, typer.Option("--every", "-e", help="none, daily, weekly, monthly, yearly")],
    interval: Annotated[int, typer.Option("--interval", "-n", help="Units per period")] = 1,
) -> None:
    """Change how often an item repeats (none turns it into a task)."""
    store = _get_store()
    _, item = _load_item(store, item_id)
    unit = _parse_enum(RecurrenceUnit, every, "recurrence")
    try:
        updated = update_recurrence(store, item, unit, interval, datetime.now())
    except StoreError as exc:
        console.print(f"[red]Failed to update {item.id}: {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{updated.id} is now a {updated.kind.value} ({_cadence(updated)}).[/green]")


@app.command()
def update(
    item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)],
    title: Annotated[Optional[str], typer.Option(help="New title")] = None,
    priority: Annotated[Optional[str], typer.Option("--priority", "-p", help="low, medium, high")] = None,
    urgency: Annotated[Optional[str], typer.Option("--urgency", "-u", help="low, medium, high")] = None,
    hours: Annotated[Optional[float], typer.Option(help="Estimated hours")] = None,
    category: Annotated[Optional[str], typer.Option("--category", "-c", help="Category")] = None,
) -> None:
    """Update fields of an existing item."""
    store = _get_store()
    _, item = _load_item(store, item_id)

    changes: dict = {}
    if title is not None:
        if not title.strip():
            console.print("[red]Title cannot be empty.[/red]")
            raise typer.Exit(1)
        changes["title"] = title.strip()
    if priority is not None:
        changes["priority"] = _parse_enum(Priority, priority, "priority")
    if urgency is not None:
        changes["urgency"] = _parse_enum(Urgency, urgency, "urgency")
    if hours is not None:
        changes["estimated_hours"] = hours
    if category is not None:
        changes["category"] = category.strip() or "task"

    if not changes:
        console.print("[yellow]No updates provided.[/yellow]")
        return

    try:
        store.update_item(item.id, **changes)
    except StoreError as exc:
        console.print(f"[red]Failed to update {item.id}: {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Updated {item.id}.[/green]")


@app.command()
def delete(item_id: Annotated[str, typer.Argument(autocompletion=_complete_item_id)]) -> None:
    """Delete an item and its completion history."""
    store = _get_store()
    try:
        store.delete_item(_parse_item_id(item_id))
    except StoreError as exc:
        console.print(f"[red]{exc}.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted {_parse_item_id(item_id)}.[/green]")


@app.command()
def sweep(
    at: Annotated[Optional[str], typer.Option(help="Reference date (default: now)")] = None,
) -> None:
    """Reschedule routines whose due date passed without being touched."""
    store = _get_store()
    try:
        _, items = store.load()
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    now = _parse_at(at)
    # Ctrl-C lets the current item finish and skips the rest
    cancel = threading.Event()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        report = reschedule_overdue(
            items.values(),
            lambda item: repair_overdue_item(store, item, now),
            now,
            cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if not (report.repaired or report.failed or report.skipped):
        console.print("Nothing overdue.")
        return
    for item in report.repaired:
        console.print(f"[green]Rescheduled {item.id} to {_fmt(item.next_occurrence_at)}[/green]")
    for iid in report.failed:
        console.print(f"[red]Failed to reschedule {iid}[/red]")
    if report.skipped:
        console.print(f"[yellow]Sweep interrupted, skipped {', '.join(report.skipped)}[/yellow]")
