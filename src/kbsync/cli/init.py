"""kbsync init — create the knowledge base and project config.

Creates:
  .kbsync.db               — empty knowledge base with schema
  kbsync.yaml              — project config (source folder, retrieval rules)
  ~/.kbsync/config.yaml    — global model config (created once, mode 0o600)
and appends .kbsync.db to an existing .gitignore.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from kbsync.config import DEFAULT_DB, ensure_global_config
from kbsync.db.schema import open_db

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    folder: Annotated[
        str | None,
        typer.Option("--folder", "-f", help="Source folder to keep in sync."),
    ] = None,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Initialize a kbsync project: database, kbsync.yaml and global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / DEFAULT_DB
    if db_path.exists():
        console.print(f"[yellow]⚠[/]  {db_path} already exists — schema is brought up to date.")

    console.print(f"\n[bold]Setting up kbsync in {project_dir} …[/]\n")

    conn = open_db(db_path)
    conn.close()
    console.print(f"  [green]✓[/] {DEFAULT_DB}")

    _create_project_yaml(project_dir, folder)
    _update_gitignore(project_dir)

    cfg_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\n[bold green]✓ Project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. export OPENAI_API_KEY=sk-...          (provider key)")
    console.print("  2. kbsync sync <folder>                  (build the knowledge base)")
    console.print('  3. kbsync ask "2 bedroom in Marina?"    (query it)')


def _create_project_yaml(project_dir: Path, folder: str | None) -> None:
    target = project_dir / "kbsync.yaml"
    if target.exists():
        console.print("  [dim]↷ kbsync.yaml already present — left unchanged[/]")
        return
    folder_line = f'  folder: "{folder}"\n' if folder else '  # folder: "listings/"\n'
    content = (
        "# kbsync project configuration.\n"
        "# API keys are read from environment variables only.\n"
        "\n"
        "sync:\n"
        f"{folder_line}"
        "  workers: 4\n"
        "  prune: false\n"
        "\n"
        "retrieval:\n"
        "  top_k: 5\n"
        "  metric: cosine\n"
        "  require_price: true\n"
        "  require_url: true\n"
        "\n"
        "chunking:\n"
        "  chunk_size: 400\n"
        "  rows_per_segment: 5\n"
    )
    target.write_text(content, encoding="utf-8")
    console.print("  [green]✓[/] kbsync.yaml")


def _update_gitignore(project_dir: Path) -> None:
    """Add kbsync entries to .gitignore if it already exists."""
    gitignore = project_dir / ".gitignore"
    entries = [DEFAULT_DB, f"{DEFAULT_DB}-wal", f"{DEFAULT_DB}-shm"]

    if gitignore.exists():
        existing = gitignore.read_text(encoding="utf-8").splitlines()
        to_add = [e for e in entries if e not in existing]
        if to_add:
            with gitignore.open("a", encoding="utf-8") as f:
                f.write("\n# kbsync\n")
                for entry in to_add:
                    f.write(f"{entry}\n")
            console.print("  [green]✓[/] .gitignore (updated with kbsync entries)")
