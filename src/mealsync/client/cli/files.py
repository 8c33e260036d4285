"""Remote file commands for the mealsync CLI.

Commands:
- files: Browse folders and snapshot files
- select: Attach to an existing snapshot file or create a new one
"""

from __future__ import annotations

import sys
from pathlib import PurePosixPath

import click

from mealsync.client.cli.engine import open_engine
from mealsync.client.cli.sync import report_outcome
from mealsync.client.providers.base import (
    FolderReference,
    ProviderError,
    RemoteFileReference,
    is_snapshot_file,
    new_file_reference,
)
from mealsync.client.sync.types import NotConnectedError
from mealsync.core.config import SNAPSHOT_SUFFIX


def _folder_from_path(path: str | None) -> FolderReference | None:
    if not path or path.strip("/") == "":
        return None
    path = "/" + path.strip("/")
    return FolderReference(id="", name=PurePosixPath(path).name, path=path)


@click.command()
@click.option("--folder", "-f", default=None, help="Folder path to list (default: root).")
def files(folder: str | None) -> None:
    """List folders and snapshot files in OneDrive.

    Only files ending in .json.gz are shown.
    """
    with open_engine() as engine:
        if not engine.provider.is_authenticated():
            click.echo("Error: Not connected. Run 'mealsync connect' first.", err=True)
            sys.exit(1)
        try:
            listing = engine.provider.list_folder(_folder_from_path(folder))
        except ProviderError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if not listing.folders and not listing.files:
        click.echo("No folders or snapshot files here.")
        return

    for sub in listing.folders:
        shared = " (shared)" if sub.is_shared_with_me else ""
        click.echo(f"  {sub.path}/{shared}")
    for ref in listing.files:
        shared = " (shared)" if ref.is_shared_with_me else ""
        click.echo(f"  {ref.path}  [{ref.id}]{shared}")


@click.command()
@click.argument("name")
@click.option("--folder", "-f", default=None, help="Folder containing the file (default: root).")
@click.option("--id", "item_id", default=None, help="Item id of an existing file.")
@click.option("--new", "is_new", is_flag=True, help="Create a new snapshot file from local data.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation.")
def select(
    name: str,
    folder: str | None,
    item_id: str | None,
    is_new: bool,
    yes: bool,
) -> None:
    """Select the snapshot file to sync with.

    Selecting an existing file replaces local data with the file content.
    With --new, local data is kept and uploaded to a new file.
    """
    parent = _folder_from_path(folder)

    with open_engine() as engine:
        orchestrator = engine.orchestrator
        orchestrator.start(auto_sync=False)
        if not engine.provider.is_authenticated():
            click.echo("Error: Not connected. Run 'mealsync connect' first.", err=True)
            sys.exit(1)

        try:
            if is_new:
                ref = new_file_reference(name, parent)
            elif item_id:
                file_name = name if is_snapshot_file(name) else name + SNAPSHOT_SUFFIX
                path = f"{parent.path}/{file_name}" if parent else ""
                ref = RemoteFileReference(id=item_id, name=file_name, path=path)
            else:
                ref = _find_file(engine.provider.list_folder(parent).files, name)
        except (ValueError, ProviderError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        if ref is None:
            click.echo(f"Error: No snapshot file named '{name}'. Use --new to create it.", err=True)
            sys.exit(1)

        if not is_new and engine.store.get_snapshot().record_count() and not yes:
            click.confirm(
                f"Local data will be replaced by the content of {ref.name}. Continue?",
                abort=True,
            )

        try:
            outcome = orchestrator.select_remote_file(ref, is_new=is_new)
        except NotConnectedError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        click.echo(f"Selected {orchestrator.current_file.name if orchestrator.current_file else ref.name}")
        report_outcome(orchestrator, outcome)


def _find_file(candidates: list[RemoteFileReference], name: str) -> RemoteFileReference | None:
    wanted = {name, name + SNAPSHOT_SUFFIX}
    return next((ref for ref in candidates if ref.name in wanted), None)
