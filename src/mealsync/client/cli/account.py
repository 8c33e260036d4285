"""Account commands for the mealsync CLI.

Commands:
- connect: Store an externally obtained access token and connect
- status: Show connection and sync status
- disconnect: Forget the remote file and wipe local data
"""

from __future__ import annotations

import sys

import click

from mealsync.client.cli.engine import format_timestamp, open_engine
from mealsync.client.providers.base import AccountInfo
from mealsync.client.providers.tokens import TokenStoreError
from mealsync.client.sync.types import NotConnectedError
from mealsync.core.types import SyncState


@click.command()
@click.option("--token", required=True, help="Access token from your Microsoft sign-in.")
@click.option("--email", required=True, help="Account email address.")
@click.option("--name", default="", help="Account display name.")
@click.option(
    "--expires-in",
    type=int,
    default=None,
    help="Token lifetime in seconds (default: unknown).",
)
def connect(token: str, email: str, name: str, expires_in: int | None) -> None:
    """Connect to OneDrive with an access token.

    mealsync never signs you in itself. Obtain a Microsoft Graph token with
    Files.ReadWrite scope and pass it here.
    """
    with open_engine() as engine:
        try:
            engine.tokens.store_token(
                token,
                AccountInfo(name=name or email, email=email),
                expires_in=expires_in,
            )
        except TokenStoreError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        orchestrator = engine.orchestrator
        orchestrator.start(auto_sync=False)
        try:
            account = orchestrator.connect()
        except NotConnectedError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        click.echo(f"Connected as {account.name} <{account.email}>")
        if orchestrator.current_file is None:
            click.echo("Select a snapshot file with 'mealsync select'.")
        else:
            click.echo(f"Syncing with {orchestrator.current_file.name}.")


@click.command()
def status() -> None:
    """Show connection and sync status."""
    with open_engine() as engine:
        orchestrator = engine.orchestrator
        state = orchestrator.start(auto_sync=False)

        account = orchestrator.account_info()
        click.echo(f"State:        {state.value}")
        if account:
            click.echo(f"Account:      {account.name} <{account.email}>")
        else:
            click.echo("Account:      not connected")

        ref = orchestrator.current_file
        if ref:
            location = ref.path or f"app folder/{ref.name}"
            shared = " (shared)" if ref.is_shared_with_me else ""
            click.echo(f"Remote file:  {location}{shared}")
        else:
            click.echo("Remote file:  none selected")

        click.echo(f"Last sync:    {format_timestamp(orchestrator.last_synced_at)}")

        baseline = engine.store.get_baseline()
        unsynced = baseline is None or engine.store.watermark() > baseline.last_modified
        click.echo(f"Unsynced:     {'yes' if unsynced else 'no'}")

        click.echo("\nRecords:")
        for collection, count in engine.store.stats().items():
            click.echo(f"  {collection:<14} {count}")

        if state is SyncState.AWAITING_RECONNECT:
            click.echo(
                click.style("\nSession expired. Run 'mealsync connect' again.", fg="yellow")
            )


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation.")
def disconnect(yes: bool) -> None:
    """Disconnect from OneDrive and delete local data.

    The remote snapshot file is kept.
    """
    if not yes:
        click.confirm(
            "This deletes all local recipes, meal plans and grocery lists. Continue?",
            abort=True,
        )

    with open_engine() as engine:
        engine.orchestrator.start(auto_sync=False)
        engine.orchestrator.disconnect_and_reset()
        engine.tokens.clear()

    click.echo("Disconnected. Local data removed.")
