"""Helpers shared by kbsync commands: config, database and provider setup."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from kbsync.cli.errors import err_config, err_no_api_key, err_no_db
from kbsync.config import ConfigError, KbsyncConfig, load_config
from kbsync.db.schema import open_db
from kbsync.rag.llm_client import validate_api_key


def load_config_or_exit(console: Console) -> KbsyncConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def resolve_db(db: Path | None, cfg: KbsyncConfig) -> Path:
    """``--db`` wins over the configured database path."""
    return db if db is not None else Path(cfg.database)


def open_existing_db(db_path: Path, console: Console) -> sqlite3.Connection:
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    return open_db(db_path)


def require_api_key(model: str, console: Console) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc
