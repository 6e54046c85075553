"""kbsync rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from kbsync.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".kbsync.db") -> str:
    """No knowledge-base database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  kbsync init"
    )


def err_no_folder() -> str:
    """sync was called without a folder and none is configured."""
    return (
        "[red]Error:[/] No source folder given.\n"
        "  Run:  kbsync sync <folder>\n"
        "  or set  sync.folder: <folder>  in kbsync.yaml"
    )


def err_folder_not_found(folder: str) -> str:
    return (
        f"[red]Error:[/] Source folder not found: '{folder}'\n"
        "  Check the path, or update  sync.folder  in kbsync.yaml."
    )


def err_unsupported_format(source: str, detail: str) -> str:
    """The normalizer cannot read *source*."""
    return (
        f"[red]✗ Unsupported source:[/] '{source}' ({detail})\n"
        "  Supported: .csv .tsv .xlsx .xlsm .pdf .docx .html .htm .md .txt .rst .log\n"
        "  Convert the file to a supported format and sync again."
    )


def err_source_not_found(identity: str) -> str:
    """Identity not found in the knowledge base."""
    return (
        f"[yellow]Source not found:[/] '{identity}' is not in the knowledge base.\n"
        "  Run:  kbsync status  to see all ingested documents."
    )


def err_sync_failures(count: int) -> str:
    """Some identities failed and are marked for retry."""
    noun = "document" if count == 1 else "documents"
    return (
        f"[red]Error:[/] {count} {noun} failed to sync and were retired from the index.\n"
        "  They are marked for retry. Fix the cause above, then run:  kbsync sync"
    )


def err_config(detail: str) -> str:
    """Configuration could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix kbsync.yaml (or ~/.kbsync/config.yaml) and retry."
    )


def err_dimension_mismatch(expected: int, got: int) -> str:
    """Configured embedding width differs from the store's."""
    return (
        f"[red]Error:[/] Embedding dimension mismatch.\n"
        f"  Database stores:  {expected}-dimensional vectors\n"
        f"  Config has:       {got}\n"
        "  Set  embedding.dimensions  to match, or rebuild the index with a fresh database."
    )
