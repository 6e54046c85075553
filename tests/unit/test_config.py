"""Tests for the kbsync config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from kbsync.config import (
    ConfigError,
    KbsyncConfig,
    RetrievalCfg,
    ensure_global_config,
    load_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    for var in ("KBSYNC_EMBEDDING_MODEL", "KBSYNC_GENERATION_MODEL", "KBSYNC_DB"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Defaults — no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    missing_global = tmp_path / "nonexistent" / "config.yaml"
    cfg = load_config(project_dir=tmp_path, global_config_path=missing_global)

    assert cfg.database == ".kbsync.db"
    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.generation.model == "openai/gpt-4o-mini"
    assert cfg.retrieval.top_k == 5
    assert cfg.retrieval.metric == "cosine"
    assert cfg.retrieval.require_price is True
    assert cfg.retrieval.require_url is True
    assert cfg.chunking.rows_per_segment == 5
    assert cfg.memory.window == 10
    assert cfg.sync.folder is None


def test_fetch_k_multiplies_top_k() -> None:
    assert RetrievalCfg(top_k=3, candidate_multiplier=4).fetch_k == 12
    assert RetrievalCfg(top_k=3, candidate_multiplier=0).fetch_k == 3


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"generation": {"model": "anthropic/claude-3-5-haiku-20241022"}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.generation.model == "anthropic/claude-3-5-haiku-20241022"
    assert cfg.embedding.model == "openai/text-embedding-3-small"


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("", encoding="utf-8")

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.generation.model == "openai/gpt-4o-mini"


def test_load_config_project_partial_override(tmp_path: Path) -> None:
    """Per-project can override a single field; global values for other fields survive."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"retrieval": {"top_k": 20, "candidate_multiplier": 2}})
    _write_yaml(tmp_path / "kbsync.yaml", {"retrieval": {"top_k": 3}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.retrieval.top_k == 3
    assert cfg.retrieval.candidate_multiplier == 2


def test_load_config_sections(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "kbsync.yaml",
        {
            "database": "kb.db",
            "embedding": {"dimensions": 8, "batch_size": 2, "timeout": 5},
            "chunking": {"chunk_size": 100, "overlap": 0.2, "rows_per_segment": 3},
            "sync": {"folder": "listings", "workers": 2, "prune": True},
            "chat": {"fallback_message": "Try later."},
        },
    )
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")

    assert cfg.database == "kb.db"
    assert cfg.embedding.dimensions == 8
    assert cfg.embedding.batch_size == 2
    assert cfg.embedding.timeout == pytest.approx(5.0)
    assert cfg.chunking.overlap == pytest.approx(0.2)
    assert cfg.chunking.rows_per_segment == 3
    assert cfg.sync.folder == "listings"
    assert cfg.sync.prune is True
    assert cfg.chat.fallback_message == "Try later."


def test_env_overrides_project(tmp_path: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / "kbsync.yaml", {"embedding": {"model": "openai/text-embedding-3-large"}})
    monkeypatch.setenv("KBSYNC_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    monkeypatch.setenv("KBSYNC_DB", "/tmp/other.db")

    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert cfg.embedding.model == "ollama/nomic-embed-text"
    assert cfg.database == "/tmp/other.db"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_global_config_api_key_rejected(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"embedding": {"api_key": "sk-secret"}})

    with pytest.raises(ConfigError, match="api_key"):
        load_config(project_dir=tmp_path, global_config_path=global_cfg)


def test_max_tokens_is_not_an_api_key(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"generation": {"max_tokens": 300}})

    cfg = load_config(project_dir=tmp_path, global_config_path=global_cfg)
    assert cfg.generation.max_tokens == 300


def test_unknown_metric_rejected(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "kbsync.yaml", {"retrieval": {"metric": "dot"}})
    with pytest.raises(ConfigError, match="metric"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_overlap_out_of_range_rejected(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "kbsync.yaml", {"chunking": {"overlap": 1.5}})
    with pytest.raises(ConfigError, match="overlap"):
        load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "kbsync.yaml", {"delivery": {"output": "x.md"}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "none.yaml")
    assert isinstance(cfg, KbsyncConfig)
    assert any("delivery" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / "kb" / "config.yaml"
    path = ensure_global_config(target)

    assert path == target
    assert target.exists()
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["model"] == "openai/text-embedding-3-small"


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("generation:\n  model: groq/llama3\n", encoding="utf-8")
    ensure_global_config(target)
    assert "groq/llama3" in target.read_text(encoding="utf-8")
