"""kbsync remove — retire a document from the knowledge base.

Removes every vector record and the metadata row of the identity, and clears
any pending sync failure for it.

Usage:
  kbsync remove listings/marina.xlsx
  kbsync remove listings/marina.xlsx --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kbsync.cli.common import load_config_or_exit, open_existing_db, resolve_db
from kbsync.cli.errors import err_source_not_found
from kbsync.db.connection import write_transaction
from kbsync.db.repository import Repository
from kbsync.db.vectors import VectorStore

console = Console()


def remove_cmd(
    identity: Annotated[
        str,
        typer.Argument(help="Document identity (path relative to the source folder)."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and all its vector records from the knowledge base."""
    cfg = load_config_or_exit(console)
    conn = open_existing_db(resolve_db(db, cfg), console)

    try:
        store = VectorStore(conn, metric=cfg.retrieval.metric)
        repo = Repository(conn)
        existing = store.get_metadata(identity)
        failure = repo.get_failure(identity)

        if existing is None and failure is None:
            console.print(err_source_not_found(identity))
            raise typer.Exit(0)

        record_count = store.count(identity)
        console.print(f"\nRemove document: [bold]{identity}[/]")
        console.print(
            f"  Vector records: {record_count}  |  "
            f"Pending retry: {'yes' if failure else 'no'}"
        )

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        with write_transaction(conn):
            deleted = store.delete_by_identity(identity)
            repo.clear_failure(identity)

        console.print(f"\n[green]✓[/] Removed: {identity}")
        console.print(f"  {deleted} vector records deleted")
    finally:
        conn.close()
