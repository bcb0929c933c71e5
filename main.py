#!/usr/bin/env python3
"""Roadmap Gate CLI - inspect and administer homeowner roadmap progress.

Usage:
    # Show the configured roadmap
    python main.py stages

    # Show a user's stage statuses
    python main.py status user-123

    # Mark a task complete
    python main.py verify user-123 0 profile_setup

    # Move the ceiling, or wipe progress
    python main.py advance user-123 2
    python main.py reset user-123 --yes

    # Use a different store or roadmap table
    python main.py --store supabase --roadmap ./roadmap.json status user-123
"""

import logging
import sys
from typing import Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.markup import escape
    from rich.table import Table
except ImportError:
    print("Missing dependencies. Run: pip install click rich")
    sys.exit(1)

from contracts import StageStatus
from roadmap import RoadmapError, StageGate, get_stage_gate
from stores import list_stores, migration_sql
from config import settings


console = Console()

STATUS_STYLES = {
    StageStatus.LOCKED: "[dim]locked[/dim]",
    StageStatus.ACTIVE: "[yellow]active[/yellow]",
    StageStatus.COMPLETED: "[green]completed[/green]",
}


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


@click.group()
@click.option(
    "--store", "-s", "store_name",
    type=click.Choice(["memory", "json", "supabase"]),
    default=None,
    help=f"Profile store (default: {settings.profile_store})"
)
@click.option(
    "--roadmap", "-r", "roadmap_path",
    default=None,
    help="JSON roadmap file (default: built-in roadmap)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose output"
)
@click.pass_context
def cli(ctx: click.Context, store_name: Optional[str], roadmap_path: Optional[str], verbose: bool):
    """Roadmap Gate: stage-gated progress for the homeowner roadmap."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["store_name"] = store_name
    ctx.obj["roadmap_path"] = roadmap_path


def build_gate(ctx: click.Context) -> StageGate:
    try:
        return get_stage_gate(ctx.obj.get("store_name"), ctx.obj.get("roadmap_path"))
    except (RoadmapError, ValueError) as e:
        fail(str(e))


@cli.command()
@click.pass_context
def stages(ctx: click.Context):
    """List the configured stages and their tasks."""
    gate = build_gate(ctx)
    table = Table(title="Roadmap")
    table.add_column("Stage", justify="right")
    table.add_column("Name")
    table.add_column("Tasks")
    table.add_column("Unlocks")
    for stage in gate.roadmap.stages:
        tasks = "\n".join(f"{t.id} [dim]({t.label})[/dim]" for t in stage.required_tasks)
        table.add_row(str(stage.id), stage.name, tasks, stage.unlocks_feature or "")
    console.print(table)


@cli.command()
@click.argument("user_id")
@click.pass_context
def status(ctx: click.Context, user_id: str):
    """Show stage statuses for USER_ID."""
    gate = build_gate(ctx)
    try:
        record = gate.get_progress(user_id)
    except RoadmapError as e:
        fail(str(e))

    table = Table(title=f"Roadmap for {user_id}")
    table.add_column("Stage", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Done")
    table.add_column("Remaining")
    for summary in gate.summarize(record):
        table.add_row(
            str(summary.stage_id),
            summary.name,
            STATUS_STYLES[summary.status],
            ", ".join(summary.completed_tasks),
            ", ".join(summary.remaining_tasks),
        )
    console.print(table)
    console.print(f"[dim]Current stage:[/dim] {record.current_stage}")
    features = gate.unlocked_features(record)
    console.print(f"[dim]Unlocked features:[/dim] {', '.join(features) if features else 'none'}")
    if gate.is_roadmap_complete(record):
        console.print("[bold green]Roadmap complete[/bold green]")


@cli.command()
@click.argument("user_id")
@click.argument("stage_id", type=int)
@click.argument("task_id")
@click.pass_context
def verify(ctx: click.Context, user_id: str, stage_id: int, task_id: str):
    """Mark TASK_ID of STAGE_ID complete for USER_ID."""
    gate = build_gate(ctx)
    try:
        progress = gate.verify_task(user_id, stage_id, task_id)
        record = gate.get_progress(user_id)
    except RoadmapError as e:
        fail(str(e))

    entry = progress[stage_id]
    console.print(f"[green]✓[/green] {task_id} recorded for stage {stage_id}")
    if entry.is_verified:
        console.print(f"[green]Stage {stage_id} verified[/green]; current stage is {record.current_stage}")
    else:
        remaining = [t for t in gate.roadmap.required_task_ids(stage_id) if t not in entry.completed_tasks]
        console.print(f"[dim]Remaining:[/dim] {', '.join(remaining)}")


@cli.command()
@click.argument("user_id")
@click.argument("stage_id", type=int)
@click.pass_context
def advance(ctx: click.Context, user_id: str, stage_id: int):
    """Set USER_ID's current stage to STAGE_ID."""
    gate = build_gate(ctx)
    try:
        gate.advance_stage(user_id, stage_id)
    except RoadmapError as e:
        fail(str(e))
    console.print(f"[green]✓[/green] {user_id} is now at stage {stage_id}")


@cli.command()
@click.argument("user_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def reset(ctx: click.Context, user_id: str, yes: bool):
    """Wipe all roadmap progress for USER_ID."""
    if not yes:
        click.confirm(f"Reset all roadmap progress for {user_id}?", abort=True)
    gate = build_gate(ctx)
    try:
        gate.reset_progress(user_id)
    except RoadmapError as e:
        fail(str(e))
    console.print(f"[yellow]Progress reset for {user_id}[/yellow]")


@cli.command("migration-sql")
def migration_sql_command():
    """Print the DDL adding progress columns to the profiles table."""
    click.echo(migration_sql())


@cli.command("list-stores")
def list_stores_command():
    """List profile stores and whether they are configured."""
    console.print("[bold]Profile stores:[/bold]\n")
    for name, available in list_stores().items():
        state = "[green]✓ Ready[/green]" if available else "[red]✗ Not configured[/red]"
        console.print(f"  {name:10} {state}")


if __name__ == "__main__":
    cli()
