"""kbsync status command.

Shows configuration, knowledge-base stats, ingested documents, and documents
pending retry after a failed sync.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kbsync.chat.memory import ConversationMemory
from kbsync.cli.common import load_config_or_exit, resolve_db
from kbsync.config import KbsyncConfig
from kbsync.db.repository import Repository
from kbsync.db.schema import open_db
from kbsync.db.vectors import VectorStore
from kbsync.ingest.schema_extractor import EMPTY_SCHEMA

console = Console()

_RECENT_SESSIONS = 5


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db."),
    ] = None,
    documents: Annotated[
        bool,
        typer.Option("--documents/--no-documents", help="List ingested documents."),
    ] = True,
) -> None:
    """Show knowledge-base status: documents, vectors, sessions and pending retries."""
    cfg = load_config_or_exit(console)
    db_path = resolve_db(db, cfg)

    _show_config_panel(db_path, cfg)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  kbsync init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db_path)
    try:
        _show_knowledge_panel(conn, cfg)
        if documents:
            _show_documents_table(conn, cfg)
        _show_failures_table(conn)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db_path: Path, cfg: KbsyncConfig) -> None:
    db_info = f"{db_path}"
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        db_info = f"{db_path} ({size_mb:.1f} MB)"

    lines = [
        f"Database:   {db_info}",
        f"Folder:     {cfg.sync.folder or '[dim](not set)[/]'}",
        f"Embedding:  {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation: {cfg.generation.model}",
        f"Retrieval:  top {cfg.retrieval.top_k} · {cfg.retrieval.metric} · "
        f"price {'required' if cfg.retrieval.require_price else 'optional'} · "
        f"URL {'required' if cfg.retrieval.require_url else 'optional'}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]kbsync[/]", expand=False))


def _show_knowledge_panel(conn: sqlite3.Connection, cfg: KbsyncConfig) -> None:
    stats = Repository(conn).stats()
    width = VectorStore(conn, metric=cfg.retrieval.metric).dimensions

    lines = [
        f"Documents: [bold]{stats.documents}[/]  |  "
        f"Vector records: [bold]{stats.vectors:,}[/]  |  "
        f"Dimensions: [bold]{width or '-'}[/]",
        f"Sessions: [bold]{stats.sessions}[/]  |  Turns: [bold]{stats.turns:,}[/]",
    ]
    if stats.last_ingest:
        lines.append(f"Last ingest: [dim]{stats.last_ingest[:16]}[/]")
    else:
        lines.append("[dim]No documents ingested yet.[/]")
    recent = ConversationMemory(conn).sessions()[:_RECENT_SESSIONS]
    if recent:
        lines.append("Recent sessions: " + ", ".join(recent))
    if stats.failures:
        lines.append(f"[red]Pending retry: {stats.failures}[/]")

    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_documents_table(conn: sqlite3.Connection, cfg: KbsyncConfig) -> None:
    store = VectorStore(conn, metric=cfg.retrieval.metric)
    docs = store.list_documents()
    if not docs:
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
    table.add_column("Document")
    table.add_column("Records", justify="right")
    table.add_column("Rev", justify="right", style="dim")
    table.add_column("Tabular")
    table.add_column("Ingested", style="dim")

    for doc in docs:
        tabular = doc.schema is not None and doc.schema != EMPTY_SCHEMA
        table.add_row(
            doc.identity,
            str(store.count(doc.identity)),
            str(doc.revision),
            "[green]✓[/]" if tabular else "",
            (doc.created_at or "")[:16],
        )

    console.print(Panel(table, title=f"[bold]Documents[/] [dim]({len(docs)})[/]", expand=False))


def _show_failures_table(conn: sqlite3.Connection) -> None:
    failures = Repository(conn).list_failures()
    if not failures:
        return

    table = Table(show_header=True, header_style="bold red", box=None, padding=(0, 1))
    table.add_column("Document")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error", overflow="fold")

    for failure in failures:
        table.add_row(failure.identity, str(failure.attempts), failure.last_error)

    console.print(
        Panel(
            table,
            title="[bold red]Pending retry[/] [dim](run: kbsync sync)[/]",
            expand=False,
        )
    )
