"""kbsync sync / ingest — bring the knowledge base in line with its sources.

  kbsync sync [FOLDER]        every supported file in the folder, in parallel
  kbsync ingest -s FILE ...   specific files

Unchanged files (same content hash) are skipped. Failed documents are retired
from the index and marked for retry; they never block other documents.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from kbsync.cli.common import load_config_or_exit, require_api_key, resolve_db
from kbsync.cli.errors import (
    err_dimension_mismatch,
    err_folder_not_found,
    err_no_folder,
    err_unsupported_format,
    err_sync_failures,
)
from kbsync.config import KbsyncConfig
from kbsync.errors import DimensionMismatch
from kbsync.ingest.base import TextChunker
from kbsync.ingest.embedder import Embedder
from kbsync.ingest.events import FileChange
from kbsync.ingest.normalizer import ContentNormalizer, detect_kind
from kbsync.ingest.worker import FolderSource, SyncReport, SyncWorker

console = Console()


def sync_cmd(
    folder: Annotated[
        Path | None,
        typer.Argument(help="Source folder. Defaults to sync.folder from kbsync.yaml."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db (created if missing)."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", "-w", help="Parallel ingestion workers."),
    ] = None,
    prune: Annotated[
        bool | None,
        typer.Option("--prune/--no-prune", help="Retire documents whose file is gone."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-ingest even if content is unchanged."),
    ] = False,
) -> None:
    """Sync every supported file of a folder into the knowledge base."""
    cfg = load_config_or_exit(console)
    source_dir = folder or (Path(cfg.sync.folder) if cfg.sync.folder else None)
    if source_dir is None:
        console.print(err_no_folder())
        raise typer.Exit(1)
    if not source_dir.is_dir():
        console.print(err_folder_not_found(str(source_dir)))
        raise typer.Exit(1)

    require_api_key(cfg.embedding.model, console)
    worker = _build_worker(cfg, resolve_db(db, cfg), workers)
    source = FolderSource(source_dir)
    paths = source.paths()

    console.print(f"\n[bold]→ Syncing {source_dir}[/] ({len(paths)} supported files)")
    report = _run_with_progress(worker, source.scan(), len(paths), force)

    do_prune = cfg.sync.prune if prune is None else prune
    if do_prune:
        report.removed = worker.prune(source.identities())

    _show_report(report)
    if report.failed:
        console.print(err_sync_failures(len(report.failed)))
        raise typer.Exit(1)


def ingest_cmd(
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="File to ingest (repeatable)."),
    ] = None,
    root: Annotated[
        Path | None,
        typer.Option("--root", help="Identities are paths relative to this folder."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .kbsync.db (created if missing)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-ingest even if content is unchanged."),
    ] = False,
) -> None:
    """Ingest specific files into the knowledge base."""
    sources = source or []
    if not sources:
        console.print("[red]Error:[/] No --source specified. Use --source PATH.")
        raise typer.Exit(1)

    cfg = load_config_or_exit(console)
    base = root or (Path(cfg.sync.folder) if cfg.sync.folder else Path("."))

    events: list[FileChange] = []
    for path in sources:
        if not path.is_file():
            console.print(f"  [red]✗ File not found:[/] {path}")
            continue
        kind = detect_kind(path.name)
        if kind is None:
            console.print(err_unsupported_format(str(path), f"extension {path.suffix!r}"))
            continue
        inside = path.resolve().is_relative_to(base.resolve())
        events.append(FileChange.for_path(path, root=base if inside else None, kind=kind))

    if not events:
        console.print("[yellow]No sources to ingest.[/]")
        raise typer.Exit(1)

    require_api_key(cfg.embedding.model, console)
    worker = _build_worker(cfg, resolve_db(db, cfg), None)
    report = _run_with_progress(worker, events, len(events), force)
    _show_report(report)
    if report.failed:
        console.print(err_sync_failures(len(report.failed)))
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_worker(cfg: KbsyncConfig, db_path: Path, workers: int | None) -> SyncWorker:
    try:
        return SyncWorker(
            db_path,
            Embedder.from_config(cfg.embedding),
            ContentNormalizer(
                rows_per_segment=cfg.chunking.rows_per_segment,
                chunk_size=cfg.chunking.chunk_size,
            ),
            TextChunker(chunk_size=cfg.chunking.chunk_size, overlap=cfg.chunking.overlap),
            workers=workers or cfg.sync.workers,
            max_attempts=cfg.sync.max_attempts,
            metric=cfg.retrieval.metric,
        )
    except DimensionMismatch as exc:
        console.print(err_dimension_mismatch(exc.expected, exc.got))
        raise typer.Exit(1) from exc


def _run_with_progress(worker: SyncWorker, events, total: int, force: bool) -> SyncReport:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Ingesting…", total=total)
        return worker.run(events, force=force, on_done=lambda _identity: prog.advance(task))


def _show_report(report: SyncReport) -> None:
    for result in sorted(report.ingested, key=lambda r: r.identity):
        console.print(
            f"  [green]✓[/] {result.identity}  "
            f"[dim]{result.inserted} records (revision {result.revision})[/]"
        )
    for identity in sorted(report.unchanged):
        console.print(f"  [dim]↷ {identity} unchanged[/]")
    for identity, detail in sorted(report.unsupported.items()):
        console.print(err_unsupported_format(identity, detail))
    for identity in report.removed:
        console.print(f"  [yellow]−[/] {identity} removed (file gone)")

    if report.failed:
        table = Table(title="Failed", show_header=True, header_style="bold red")
        table.add_column("Document")
        table.add_column("Error", overflow="fold")
        for identity, error in sorted(report.failed.items()):
            table.add_row(identity, error)
        console.print(table)

    console.print(
        f"\n[bold]Done:[/] {len(report.ingested)} ingested · {len(report.unchanged)} unchanged · "
        f"{len(report.unsupported)} unsupported · {len(report.failed)} failed · "
        f"{len(report.removed)} removed"
    )
