"""kbsync ask / chat — query the knowledge base through the chat service.

  kbsync ask "2 bedroom in Marina under 2M?"    one question, one answer
  kbsync chat --session alice                   interactive session

Both record turns in conversation memory under the given session id, so a
later ``ask --session alice`` continues the same conversation.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown

from kbsync.chat.memory import ConversationMemory
from kbsync.chat.service import ChatService, Reply
from kbsync.cli.common import load_config_or_exit, open_existing_db, require_api_key, resolve_db
from kbsync.cli.errors import err_dimension_mismatch
from kbsync.config import KbsyncConfig
from kbsync.db.vectors import VectorStore
from kbsync.errors import DimensionMismatch
from kbsync.ingest.embedder import Embedder
from kbsync.rag.generator import LiteLLMGenerator
from kbsync.rag.retriever import NoQualifyingResults, RetrievalFilter

console = Console()

_EXIT_WORDS = {"exit", "quit", ":q"}


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer from the knowledge base.")],
    session: Annotated[
        str,
        typer.Option("--session", help="Conversation session id."),
    ] = "cli",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db."),
    ] = None,
    show_sources: Annotated[
        bool,
        typer.Option("--sources", help="List the records used as grounding context."),
    ] = False,
) -> None:
    """Answer one question, grounded in complete listings only."""
    cfg = load_config_or_exit(console)
    conn = open_existing_db(resolve_db(db, cfg), console)
    try:
        service = _build_service(conn, cfg)
        _print_reply(service.answer(session, question), show_sources)
    finally:
        conn.close()


def chat_cmd(
    session: Annotated[
        str,
        typer.Option("--session", help="Conversation session id."),
    ] = "cli",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db."),
    ] = None,
    show_sources: Annotated[
        bool,
        typer.Option("--sources", help="List the records used as grounding context."),
    ] = False,
) -> None:
    """Interactive chat session. Type 'exit' to leave."""
    cfg = load_config_or_exit(console)
    conn = open_existing_db(resolve_db(db, cfg), console)
    try:
        service = _build_service(conn, cfg)
        console.print(f"[dim]Session '{session}' — type 'exit' to leave.[/]")
        while True:
            try:
                text = typer.prompt("you").strip()
            except (EOFError, typer.Abort):
                break
            if not text:
                continue
            if text.lower() in _EXIT_WORDS:
                break
            _print_reply(service.answer(session, text), show_sources)
    finally:
        conn.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_service(conn: sqlite3.Connection, cfg: KbsyncConfig) -> ChatService:
    require_api_key(cfg.embedding.model, console)
    require_api_key(cfg.generation.model, console)
    try:
        store = VectorStore(conn, dimensions=cfg.embedding.dimensions, metric=cfg.retrieval.metric)
    except DimensionMismatch as exc:
        console.print(err_dimension_mismatch(exc.expected, exc.got))
        raise typer.Exit(1) from exc

    return ChatService(
        ConversationMemory(conn),
        RetrievalFilter.from_config(store, cfg.retrieval),
        Embedder.from_config(cfg.embedding),
        LiteLLMGenerator.from_config(cfg.generation),
        window=cfg.memory.window,
        fallback_message=cfg.chat.fallback_message,
    )


def _print_reply(reply: Reply, show_sources: bool) -> None:
    style = "yellow" if reply.fallback else "bold"
    console.print(f"\n[{style}]assistant[/]")
    console.print(Markdown(reply.text))

    if not show_sources or reply.outcome is None:
        return
    if isinstance(reply.outcome, NoQualifyingResults):
        console.print(
            f"[dim]No complete listings ({reply.outcome.candidates} candidates, "
            f"{len(reply.outcome.rejected)} rejected)[/]"
        )
        return
    for i, hit in enumerate(reply.outcome.hits, start=1):
        meta = hit.record.metadata
        console.print(f"[dim][{i}] {meta.identity} #{meta.chunk_index} · score {hit.score:.3f}[/]")
