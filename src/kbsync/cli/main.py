"""kbsync CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from kbsync.cli.ask import ask_cmd, chat_cmd
from kbsync.cli.init import init_cmd
from kbsync.cli.remove import remove_cmd
from kbsync.cli.status import status_cmd
from kbsync.cli.sync import ingest_cmd, sync_cmd
from kbsync.logging_setup import configure_logging


def _version() -> str:
    try:
        return importlib.metadata.version("kbsync")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"kbsync {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="kbsync",
    help=(
        "kbsync — keep a listings knowledge base in sync and answer from it.\n\n"
        "  kbsync sync   Ingest a source folder into the vector index.\n"
        "  kbsync ask    Answer a question from complete listings only."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """kbsync — knowledge-base sync and grounded retrieval."""
    configure_logging(verbose=verbose)


app.command("init")(init_cmd)
app.command("sync")(sync_cmd)
app.command("ingest")(ingest_cmd)
app.command("remove")(remove_cmd)
app.command("status")(status_cmd)
app.command("ask")(ask_cmd)
app.command("chat")(chat_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed kbsync version."""
    typer.echo(f"kbsync {_version()}")


if __name__ == "__main__":
    app()
