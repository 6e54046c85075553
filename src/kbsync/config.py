"""kbsync configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (KBSYNC_EMBEDDING_MODEL, KBSYNC_GENERATION_MODEL, KBSYNC_DB)
  3. Per-project kbsync.yaml
  4. Global ~/.kbsync/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".kbsync"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "kbsync.yaml"

DEFAULT_DB: str = ".kbsync.db"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "generation", "retrieval", "chunking", "memory", "sync", "chat"]
)

_METRICS: frozenset[str] = frozenset(["cosine", "l2"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (kbsync.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Fixed vector width of the store.
        batch_size: Maximum texts per provider request.
        timeout: Seconds before a single provider call is abandoned.
        max_attempts: Total attempts for a transiently failing batch.
        backoff_min: Lower bound of the exponential backoff wait (seconds).
        backoff_max: Upper bound of the exponential backoff wait (seconds).
    """

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 64
    timeout: float = 30.0
    max_attempts: int = 3
    backoff_min: float = 1.0
    backoff_max: float = 20.0


@dataclass
class GenerationCfg:
    """Response generator configuration (kbsync.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    timeout: float = 60.0
    max_tokens: int = 700
    temperature: float = 0.2
    max_attempts: int = 3


@dataclass
class RetrievalCfg:
    """Retrieval filter configuration (kbsync.yaml: retrieval:).

    Attributes:
        top_k: Maximum records handed to the generator.
        candidate_multiplier: Store search fetches ``top_k * candidate_multiplier``
            candidates so completeness rejections do not starve the context.
        metric: Distance metric — 'cosine' or 'l2'.
        require_price: Drop listings without a non-empty price.
        require_url: Drop listings without a well-formed URL.
    """

    top_k: int = 5
    candidate_multiplier: int = 4
    metric: str = "cosine"
    require_price: bool = True
    require_url: bool = True

    @property
    def fetch_k(self) -> int:
        return self.top_k * max(1, self.candidate_multiplier)


@dataclass
class ChunkingCfg:
    """Chunker configuration (kbsync.yaml: chunking:)."""

    chunk_size: int = 400
    overlap: float = 0.15
    rows_per_segment: int = 5


@dataclass
class MemoryCfg:
    """Conversation memory configuration (kbsync.yaml: memory:)."""

    window: int = 10


@dataclass
class SyncCfg:
    """Folder sync configuration (kbsync.yaml: sync:)."""

    folder: str | None = None
    workers: int = 4
    max_attempts: int = 2
    prune: bool = False


@dataclass
class ChatCfg:
    """Chat service configuration (kbsync.yaml: chat:)."""

    fallback_message: str = (
        "Sorry, I can't look that up right now. Please try again in a moment."
    )


@dataclass
class KbsyncConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: str = DEFAULT_DB
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    memory: MemoryCfg = field(default_factory=MemoryCfg)
    sync: SyncCfg = field(default_factory=SyncCfg)
    chat: ChatCfg = field(default_factory=ChatCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: KbsyncConfig) -> None:
    if cfg.retrieval.metric not in _METRICS:
        raise ConfigError(
            f"retrieval.metric must be one of {sorted(_METRICS)}, got '{cfg.retrieval.metric}'"
        )
    if cfg.retrieval.top_k < 1:
        raise ConfigError("retrieval.top_k must be >= 1")
    if cfg.embedding.dimensions < 1:
        raise ConfigError("embedding.dimensions must be >= 1")
    if cfg.embedding.batch_size < 1:
        raise ConfigError("embedding.batch_size must be >= 1")
    if not 0.0 <= cfg.chunking.overlap < 1.0:
        raise ConfigError("chunking.overlap must be in [0.0, 1.0)")
    if cfg.sync.workers < 1:
        raise ConfigError("sync.workers must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> KbsyncConfig:
    """Build a *KbsyncConfig* from a merged raw YAML dict."""
    cfg = KbsyncConfig()

    if "database" in data:
        cfg.database = str(data["database"])

    if "embedding" in data:
        e = data["embedding"]
        d = cfg.embedding
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", d.model)),
            dimensions=int(e.get("dimensions", d.dimensions)),
            batch_size=int(e.get("batch_size", d.batch_size)),
            timeout=float(e.get("timeout", d.timeout)),
            max_attempts=int(e.get("max_attempts", d.max_attempts)),
            backoff_min=float(e.get("backoff_min", d.backoff_min)),
            backoff_max=float(e.get("backoff_max", d.backoff_max)),
        )

    if "generation" in data:
        g = data["generation"]
        d = cfg.generation
        cfg.generation = GenerationCfg(
            model=str(g.get("model", d.model)),
            timeout=float(g.get("timeout", d.timeout)),
            max_tokens=int(g.get("max_tokens", d.max_tokens)),
            temperature=float(g.get("temperature", d.temperature)),
            max_attempts=int(g.get("max_attempts", d.max_attempts)),
        )

    if "retrieval" in data:
        r = data["retrieval"]
        d = cfg.retrieval
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", d.top_k)),
            candidate_multiplier=int(r.get("candidate_multiplier", d.candidate_multiplier)),
            metric=str(r.get("metric", d.metric)),
            require_price=bool(r.get("require_price", d.require_price)),
            require_url=bool(r.get("require_url", d.require_url)),
        )

    if "chunking" in data:
        c = data["chunking"]
        d = cfg.chunking
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", d.chunk_size)),
            overlap=float(c.get("overlap", d.overlap)),
            rows_per_segment=int(c.get("rows_per_segment", d.rows_per_segment)),
        )

    if "memory" in data:
        cfg.memory = MemoryCfg(window=int(data["memory"].get("window", cfg.memory.window)))

    if "sync" in data:
        s = data["sync"]
        d = cfg.sync
        cfg.sync = SyncCfg(
            folder=s.get("folder") or d.folder,
            workers=int(s.get("workers", d.workers)),
            max_attempts=int(s.get("max_attempts", d.max_attempts)),
            prune=bool(s.get("prune", d.prune)),
        )

    if "chat" in data:
        cfg.chat = ChatCfg(
            fallback_message=str(
                data["chat"].get("fallback_message", cfg.chat.fallback_message)
            )
        )

    return cfg


def _apply_env_overrides(cfg: KbsyncConfig) -> KbsyncConfig:
    """Apply KBSYNC_* environment variable overrides."""
    if model := os.environ.get("KBSYNC_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("KBSYNC_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("KBSYNC_DB"):
        cfg.database = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> KbsyncConfig:
    """Load and return a merged *KbsyncConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *kbsync.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(global_config_path: Path | None = None) -> Path:
    """Create ``~/.kbsync/config.yaml`` with defaults if it does not exist.

    The directory is created with mode 0o700 and the file with mode 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# kbsync global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
