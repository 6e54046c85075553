"""Fixtures for CLI tests: an isolated project directory with fake providers."""

from __future__ import annotations

from pathlib import Path

import pytest

from kbsync.ingest.embedder import Embedder
from kbsync.rag.generator import LiteLLMGenerator, ResponseGenerator
from kbsync.rag.retriever import NoQualifyingResults


class CannedGenerator(ResponseGenerator):
    """Answers with the identities of its grounding records."""

    def __init__(self) -> None:
        self.calls = []

    def generate(self, query, context, history):
        self.calls.append((query, context, list(history)))
        if isinstance(context, NoQualifyingResults):
            return "No matching listing found."
        identities = ", ".join(r.metadata.identity for r in context.records)
        return f"Grounded on: {identities}"


@pytest.fixture
def project(tmp_path: Path, monkeypatch, make_embedder):
    """Project dir as CWD with a 6-dim keyword embedder and a canned generator.

    The global config lives inside tmp_path, the OpenAI key is a dummy, and
    listings/ is the configured source folder.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("kbsync.config._GLOBAL_CONFIG_PATH", tmp_path / "global.yaml")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    for var in ("KBSYNC_DB", "KBSYNC_EMBEDDING_MODEL", "KBSYNC_GENERATION_MODEL"):
        monkeypatch.delenv(var, raising=False)

    (tmp_path / "kbsync.yaml").write_text(
        "embedding:\n"
        "  dimensions: 6\n"
        "sync:\n"
        "  folder: listings\n"
        "  workers: 2\n",
        encoding="utf-8",
    )
    (tmp_path / "listings").mkdir()

    generator = CannedGenerator()
    monkeypatch.setattr(
        Embedder, "from_config", classmethod(lambda cls, cfg, provider=None: make_embedder())
    )
    monkeypatch.setattr(LiteLLMGenerator, "from_config", classmethod(lambda cls, cfg: generator))
    return tmp_path


@pytest.fixture
def listings(project: Path) -> Path:
    """Two source files: a complete spreadsheet and a prose note."""
    folder = project / "listings"
    (folder / "marina.csv").write_text(
        "Price,Location,URL\n"
        "AED 1200000,Marina,https://example.com/l/1\n",
        encoding="utf-8",
    )
    (folder / "notes.md").write_text("# Notes\n\nThe villa has a garden and a pool.\n", encoding="utf-8")
    return folder
