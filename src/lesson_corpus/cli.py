from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from lesson_corpus.data_models import Partition
from lesson_corpus.errors import CorpusError
from lesson_corpus.system import PlannerSystem

app = typer.Typer(help="Inspect and maintain the lesson corpus of a planner workspace.")
console = Console()

load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)


def _load_system(config: Optional[Path]) -> PlannerSystem:
    """Instantiate `PlannerSystem` from an optional config path."""
    return PlannerSystem.from_config(config)


def _partition(system: PlannerSystem, collection: Optional[str], year: Optional[str]) -> Partition:
    """Resolve the partition a command works on and tag every log event with it."""
    partition = system.partition(collection, year)
    structlog.contextvars.bind_contextvars(partition=str(partition))
    return partition


def _finish(system: PlannerSystem) -> None:
    """Flush remote writes before exiting and report failures."""
    system.sync()
    if system.events.consecutive_failures:
        console.print(
            f"[yellow]{system.events.consecutive_failures} remote write(s) failed; "
            "changes are saved locally.[/yellow]"
        )


@app.command()
def lessons(
    collection: Optional[str] = typer.Option(None, help="Collection (class) name, e.g. LKG."),
    year: Optional[str] = typer.Option(None, help="Academic year such as 2024-2025."),
    config: Optional[Path] = typer.Option(None, help="Path to configuration YAML."),
):
    """List the lessons of a partition in numeric order."""
    system = _load_system(config)
    partition = _partition(system, collection, year)
    table = Table(title=f"Lessons {partition}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Minutes", justify="right")
    table.add_column("Half-term")
    table.add_column("Categories")
    for row in system.lesson_overview(partition):
        table.add_row(
            row["number"],
            row["title"] or "",
            str(row["total_time"]),
            row["half_term"] or "-",
            ", ".join(row["categories"]),
        )
    console.print(table)
    _finish(system)


@app.command("half-terms")
def half_terms(
    collection: Optional[str] = typer.Option(None),
    year: Optional[str] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """Show the six half-term buckets with their live lesson and stack references."""
    system = _load_system(config)
    partition = _partition(system, collection, year)
    table = Table(title=f"Half-terms {partition}")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Months")
    table.add_column("Lessons")
    table.add_column("Stacks", justify="right")
    table.add_column("Complete")
    for half_term in system.half_terms.half_terms(partition).values():
        table.add_row(
            half_term.id.value,
            half_term.name,
            half_term.months,
            ", ".join(half_term.lessons) or "-",
            str(len(half_term.stacks)),
            "yes" if half_term.is_complete else "no",
        )
    console.print(table)
    _finish(system)


@app.command("delete-lesson")
def delete_lesson(
    number: str = typer.Argument(..., help="Lesson number to delete."),
    collection: Optional[str] = typer.Option(None),
    year: Optional[str] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """Delete a lesson and renumber the rest of its partition."""
    system = _load_system(config)
    try:
        mapping = system.delete_lesson(number, _partition(system, collection, year))
    except CorpusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    moved = {old: new for old, new in mapping.items() if old != new}
    console.print(f"Deleted lesson {number}; {len(mapping)} lessons remain.")
    for old, new in moved.items():
        console.print(f"- {old} -> {new}")
    _finish(system)


@app.command()
def assign(
    half_term: str = typer.Argument(..., help="A1, A2, SP1, SP2, SM1 or SM2."),
    numbers: List[str] = typer.Argument(..., help="Lesson numbers in teaching order."),
    complete: bool = typer.Option(False, "--complete", help="Mark the half-term complete."),
    collection: Optional[str] = typer.Option(None),
    year: Optional[str] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """Replace the lessons of one half-term."""
    system = _load_system(config)
    try:
        result = system.half_terms.assign(_partition(system, collection, year), half_term.upper(), numbers, complete)
    except CorpusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    console.print(f"{result.name}: {', '.join(result.lessons) or 'no lessons'}")
    _finish(system)


@app.command()
def stacks(config: Optional[Path] = typer.Option(None)):
    """List activity stacks, newest first."""
    system = _load_system(config)
    table = Table(title="Activity stacks")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Activities", justify="right")
    table.add_column("Minutes", justify="right")
    for stack in system.stacks.list():
        table.add_row(stack.id, stack.name, stack.category or "-", str(len(stack.activities)), str(stack.total_time))
    console.print(table)
    _finish(system)


@app.command("create-stack")
def create_stack(
    name: str = typer.Argument(...),
    activities_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    description: Optional[str] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """Create a stack from a JSON file holding a list of activities."""
    system = _load_system(config)
    activities = json.loads(activities_file.read_text(encoding="utf-8"))
    try:
        stack = system.stacks.create(name, activities, description)
    except CorpusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    console.print(f"Created stack {stack.id} ({len(stack.activities)} activities, {stack.total_time} min).")
    _finish(system)


@app.command()
def unstack(
    stack_id: str = typer.Argument(...),
    config: Optional[Path] = typer.Option(None),
):
    """Delete a stack and print the activities it held."""
    system = _load_system(config)
    try:
        activities = system.stacks.unstack(stack_id)
    except CorpusError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    for activity in activities:
        console.print(f"- {activity.activity} ({activity.category}, {activity.time} min)")
    _finish(system)


@app.command()
def sync(
    collection: Optional[str] = typer.Option(None),
    year: Optional[str] = typer.Option(None),
    config: Optional[Path] = typer.Option(None),
):
    """Load everything for a partition, then push every pending write to the remote mirror."""
    system = _load_system(config)
    if not system.gateway.online:
        console.print("Remote store is disabled; nothing to sync.")
        return
    partition = system.load_all(_partition(system, collection, year))
    pending = system.gateway.pending
    _finish(system)
    console.print(f"Synced {partition}: {pending} remote write(s) attempted.")


if __name__ == "__main__":
    app()
