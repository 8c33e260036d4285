"""Sync commands for the mealsync CLI.

Commands:
- sync: Run one sync cycle, resolving conflicts on request
- watch: Sync automatically after local changes until interrupted
"""

from __future__ import annotations

import sys
import time

import click

from mealsync.client.cli.engine import format_timestamp, open_engine
from mealsync.client.sync.domain.merge import Conflict
from mealsync.client.sync.orchestrator import SyncOrchestrator
from mealsync.client.sync.types import NotConnectedError, SyncOutcome
from mealsync.core.types import SyncState

# Seconds between checks for changes made by other processes
WATCH_POLL_INTERVAL = 1.0


def print_conflicts(conflicts: list[Conflict]) -> None:
    """Print a conflict table."""
    click.echo(click.style(f"\n{len(conflicts)} conflict(s):", fg="yellow"))
    for conflict in conflicts:
        click.echo(
            f"  ! {conflict.kind}/{conflict.display_name}  "
            f"local {format_timestamp(conflict.local_modified)}, "
            f"cloud {format_timestamp(conflict.remote_modified)}"
        )


def report_outcome(orchestrator: SyncOrchestrator, outcome: SyncOutcome) -> None:
    """Print the result of a cycle, exiting with 1 on failure."""
    if outcome is SyncOutcome.SYNCED:
        click.echo(click.style("✓ Synced", fg="green") + f" at {format_timestamp(orchestrator.last_synced_at)}")
    elif outcome is SyncOutcome.CONFLICTS:
        print_conflicts(orchestrator.conflicts)
        click.echo("Run 'mealsync sync --prefer local' or '--prefer remote' to resolve.")
    elif outcome is SyncOutcome.IN_PROGRESS:
        click.echo("A sync is already running.")
    elif outcome is SyncOutcome.SUPERSEDED:
        click.echo("Local data changed during sync. Run 'mealsync sync' again.")
    elif outcome is SyncOutcome.NOTHING_TO_RESOLVE:
        click.echo("Nothing to resolve.")
    elif outcome is SyncOutcome.RECONNECT_REQUIRED:
        click.echo("Error: Session expired. Run 'mealsync connect' again.", err=True)
        sys.exit(1)
    else:
        click.echo(f"Error: Sync failed: {orchestrator.last_error}", err=True)
        sys.exit(1)


@click.command()
@click.option(
    "--prefer",
    type=click.Choice(["local", "remote"]),
    default=None,
    help="Resolve all conflicts keeping this side.",
)
def sync(prefer: str | None) -> None:
    """Synchronize local data with the selected OneDrive file.

    When both sides changed the same item, all conflicts are resolved in one
    direction. Without --prefer you are asked which side to keep.
    """
    with open_engine() as engine:
        orchestrator = engine.orchestrator
        orchestrator.start(auto_sync=False)

        try:
            outcome = orchestrator.sync_now()
        except NotConnectedError as e:
            click.echo(f"Error: {e}. Run 'mealsync connect' and 'mealsync select'.", err=True)
            sys.exit(1)

        if outcome is SyncOutcome.CONFLICTS:
            print_conflicts(orchestrator.conflicts)
            direction = prefer
            if direction is None and sys.stdin.isatty():
                direction = click.prompt(
                    "Keep which versions?",
                    type=click.Choice(["local", "remote", "skip"]),
                    default="skip",
                )
            if direction in ("local", "remote"):
                outcome = orchestrator.resolve_conflicts(direction)
            else:
                click.echo("Conflicts left unresolved. Nothing was synced.")
                return

        report_outcome(orchestrator, outcome)


@click.command()
def watch() -> None:
    """Sync automatically after local changes (Ctrl+C to stop)."""
    with open_engine() as engine:
        orchestrator = engine.orchestrator

        def on_state(state: SyncState) -> None:
            click.echo(f"[{time.strftime('%H:%M:%S')}] {state.value}")
            if state is SyncState.ERROR:
                click.echo(f"  {orchestrator.last_error}", err=True)

        def on_conflicts(conflicts: list[Conflict]) -> None:
            if conflicts:
                print_conflicts(conflicts)
                click.echo("Auto-sync paused. Resolve with 'mealsync sync --prefer local|remote'.")

        orchestrator.on_state_change(on_state)
        orchestrator.on_conflicts(on_conflicts)

        state = orchestrator.start()
        if state is SyncState.OFFLINE:
            click.echo("Error: No remote file selected. Run 'mealsync select' first.", err=True)
            sys.exit(1)
        if state is SyncState.AWAITING_RECONNECT:
            click.echo("Error: Session expired. Run 'mealsync connect' again.", err=True)
            sys.exit(1)

        click.echo(
            f"Watching for changes, syncing {orchestrator.scheduler.delay:g}s after the last edit "
            "(Ctrl+C to stop)"
        )
        try:
            while True:
                time.sleep(WATCH_POLL_INTERVAL)
                before = engine.store.watermark()
                if engine.store.refresh() != before and orchestrator.conflicts:
                    # Another process may have resolved them
                    orchestrator.dismiss_conflicts()
        except KeyboardInterrupt:
            click.echo("\nStopping...")
