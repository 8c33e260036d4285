"""Record commands for the mealsync CLI.

Commands:
- records list: Show records of a collection
- records put: Create or update a record from JSON
- records delete: Soft-delete a record
"""

from __future__ import annotations

import json
import sys

import click

from mealsync.client.cli.engine import open_engine
from mealsync.client.sync.domain.merge import display_name
from mealsync.core.snapshot import COLLECTIONS

collection_argument = click.argument("collection", type=click.Choice(COLLECTIONS))


@click.group()
def records() -> None:
    """Inspect and edit local records."""


@records.command("list")
@collection_argument
@click.option("--deleted", is_flag=True, help="Include deleted records.")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
def list_records(collection: str, deleted: bool, as_json: bool) -> None:
    """List records of COLLECTION."""
    with open_engine() as engine:
        items = engine.store.list_records(collection, include_deleted=deleted)

    if as_json:
        click.echo(json.dumps(items, indent=2, ensure_ascii=False))
        return
    if not items:
        click.echo(f"No {collection}.")
        return
    for record in items:
        marker = " (deleted)" if record.get("isDeleted") else ""
        click.echo(f"  {record['id']}  {display_name(record, '')}{marker}")


@records.command("put")
@collection_argument
@click.argument("document")
def put_record(collection: str, document: str) -> None:
    """Create or update a record in COLLECTION from a JSON DOCUMENT.

    Omit "id" to create a new record.
    """
    try:
        record = json.loads(document)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON: {e}", err=True)
        sys.exit(1)
    if not isinstance(record, dict):
        click.echo("Error: DOCUMENT must be a JSON object.", err=True)
        sys.exit(1)

    with open_engine() as engine:
        stored = engine.store.put_record(collection, record)
    click.echo(f"Saved {collection}/{stored['id']}")


@records.command("delete")
@collection_argument
@click.argument("record_id")
def delete_record(collection: str, record_id: str) -> None:
    """Delete RECORD_ID from COLLECTION."""
    with open_engine() as engine:
        deleted = engine.store.delete_record(collection, record_id)
    if deleted is None:
        click.echo(f"Error: No record {collection}/{record_id}.", err=True)
        sys.exit(1)
    click.echo(f"Deleted {collection}/{record_id}")
