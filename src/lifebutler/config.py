"""lifebutler configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LIFEBUTLER_EMBEDDING_MODEL, LIFEBUTLER_GENERATION_MODEL,
                             LIFEBUTLER_LOG_LEVEL)
  3. Per-project lifebutler.yaml  (next to the database)
  4. Global ~/.lifebutler/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Defaults point at local Ollama models so the assistant runs fully offline.
Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lifebutler"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lifebutler.yaml"

# Fields that suggest an API key, forbidden in global config.
# Does NOT match legitimate config keys like max_chunk_chars or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunking", "routing", "advice", "terms", "logging"]
)

_ADVICE_STYLES: frozenset[str] = frozenset(
    ["conservative", "balanced", "aggressive", "datadriven", "concise"]
)
_LOG_LEVELS: frozenset[str] = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


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
    """Embedding model configuration (lifebutler.yaml: embedding:).

    Attributes:
        model: LiteLLM embedding model string.
        dimensions: Vector length used for zero-vector fallbacks while the
            store is still empty.
        batch_size: Number of chunks sent per embedding call.
    """

    model: str = "ollama/nomic-embed-text"
    dimensions: int = 768
    batch_size: int = 5


@dataclass
class GenerationCfg:
    """Chat model configuration (lifebutler.yaml: generation:)."""

    model: str = "ollama/llama3.1"
    max_tokens: int = 1024
    temperature: float = 0.2


@dataclass
class RetrievalCfg:
    """Search configuration (lifebutler.yaml: retrieval:)."""

    top_k: int = 10
    min_similarity: float = 0.1


@dataclass
class ChunkingCfg:
    """Chunk window in characters (lifebutler.yaml: chunking:)."""

    max_chunk_chars: int = 2048
    overlap_chars: int = 200


@dataclass
class RoutingCfg:
    """Router stage thresholds (lifebutler.yaml: routing:)."""

    rule_threshold: float = 0.8
    semantic_base_threshold: float = 0.53


@dataclass
class AdviceCfg:
    """Advice tone (lifebutler.yaml: advice:)."""

    style: str = "balanced"


@dataclass
class LoggingCfg:
    level: str = "WARNING"


@dataclass
class LifeButlerConfig:
    """Root configuration object, built by load_config() from merged YAML layers.

    ``terms`` is an optional path to a replacement term file; None means the
    packaged ``terms.yaml``.
    """

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    routing: RoutingCfg = field(default_factory=RoutingCfg)
    advice: AdviceCfg = field(default_factory=AdviceCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)
    terms: str | None = None


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
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: LifeButlerConfig) -> None:
    """Raise ConfigError for values that would break the pipeline at runtime."""
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {cfg.embedding.batch_size}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if not -1.0 <= cfg.retrieval.min_similarity <= 1.0:
        raise ConfigError(
            f"retrieval.min_similarity must be in [-1, 1], got {cfg.retrieval.min_similarity}"
        )
    ch = cfg.chunking
    if ch.max_chunk_chars < 1 or not 0 <= ch.overlap_chars < ch.max_chunk_chars:
        raise ConfigError(
            "chunking.overlap_chars must be in [0, max_chunk_chars) and "
            f"max_chunk_chars >= 1; got max={ch.max_chunk_chars}, overlap={ch.overlap_chars}"
        )
    if not 0.0 <= cfg.routing.rule_threshold <= 1.0:
        raise ConfigError(f"routing.rule_threshold must be in [0, 1], got {cfg.routing.rule_threshold}")
    if cfg.advice.style not in _ADVICE_STYLES:
        raise ConfigError(
            f"advice.style must be one of {', '.join(sorted(_ADVICE_STYLES))}; "
            f"got '{cfg.advice.style}'"
        )
    if cfg.logging.level not in _LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}")


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


def _cfg_from_dict(data: dict[str, Any]) -> LifeButlerConfig:
    """Build a *LifeButlerConfig* from a merged raw YAML dict."""
    cfg = LifeButlerConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
                batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
            )

        if "generation" in data:
            g = data["generation"] or {}
            cfg.generation = GenerationCfg(
                model=str(g.get("model", cfg.generation.model)),
                max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
                temperature=float(g.get("temperature", cfg.generation.temperature)),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                min_similarity=float(r.get("min_similarity", cfg.retrieval.min_similarity)),
            )

        if "chunking" in data:
            c = data["chunking"] or {}
            cfg.chunking = ChunkingCfg(
                max_chunk_chars=int(c.get("max_chunk_chars", cfg.chunking.max_chunk_chars)),
                overlap_chars=int(c.get("overlap_chars", cfg.chunking.overlap_chars)),
            )

        if "routing" in data:
            ro = data["routing"] or {}
            cfg.routing = RoutingCfg(
                rule_threshold=float(ro.get("rule_threshold", cfg.routing.rule_threshold)),
                semantic_base_threshold=float(
                    ro.get("semantic_base_threshold", cfg.routing.semantic_base_threshold)
                ),
            )

        if "advice" in data:
            a = data["advice"] or {}
            cfg.advice = AdviceCfg(style=str(a.get("style", cfg.advice.style)).lower())

        if "logging" in data:
            lg = data["logging"] or {}
            cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    if data.get("terms"):
        cfg.terms = str(data["terms"])

    return cfg


def _apply_env_overrides(cfg: LifeButlerConfig) -> LifeButlerConfig:
    """Apply LIFEBUTLER_* environment variable overrides (layer 2)."""
    if model := os.environ.get("LIFEBUTLER_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("LIFEBUTLER_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("LIFEBUTLER_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LifeButlerConfig:
    """Load and return a merged *LifeButlerConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *lifebutler.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # A relative terms path is resolved against the project directory
    if cfg.terms and not Path(cfg.terms).is_absolute():
        cfg.terms = str(search_dir / cfg.terms)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.lifebutler/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# lifebutler global configuration: model defaults only.\n"
            "# NEVER store API keys here; use environment variables for hosted providers.\n"
            "\n"
            "embedding:\n"
            "  model: ollama/nomic-embed-text\n"
            "  dimensions: 768\n"
            "\n"
            "generation:\n"
            "  model: ollama/llama3.1\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
