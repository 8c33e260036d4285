"""Command-line interface for mealsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- connect: Store an access token and connect to OneDrive
- status: Show connection and sync status
- disconnect: Forget the remote file and wipe local data
- files: Browse folders and snapshot files
- select: Choose the snapshot file to sync with
- sync: Run one sync cycle
- watch: Sync automatically after local changes
- records: Inspect and edit local records
"""

from __future__ import annotations

import logging

import click

from mealsync.client.cli.account import connect, disconnect, status
from mealsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db_path,
    load_config,
    save_config,
)
from mealsync.client.cli.files import files, select
from mealsync.client.cli.records import records
from mealsync.client.cli.sync import sync, watch


def configure_logging(verbose: bool) -> None:
    """Send mealsync logs to stderr (DEBUG when verbose, else WARNING)."""
    mealsync_logger = logging.getLogger("mealsync")
    for handler in mealsync_logger.handlers[:]:
        mealsync_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    mealsync_logger.addHandler(handler)
    mealsync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    mealsync_logger.propagate = False


@click.group()
@click.version_option(package_name="mealsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """mealsync - Local-first recipe and meal plan sync with OneDrive."""
    configure_logging(verbose)


# Account commands
cli.add_command(connect)
cli.add_command(status)
cli.add_command(disconnect)

# File selection commands
cli.add_command(files)
cli.add_command(select)

# Sync commands
cli.add_command(sync)
cli.add_command(watch)

# Local data commands
cli.add_command(records)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_state_db_path",
    "load_config",
    "save_config",
]
