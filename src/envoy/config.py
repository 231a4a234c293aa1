"""Envoy configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (ENVOY_GENERATION_MODEL, ENVOY_MAX_ITEMS, ENVOY_DATA_DIR)
  3. Per-project envoy.yaml  (in the working directory)
  4. Global ~/.envoy/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

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

from envoy.db.metadata_store import DEFAULT_QUOTA_BYTES
from envoy.db.migrations import DB_NAME
from envoy.db.models import DEFAULT_GROUP_NAME

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".envoy"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "envoy.yaml"

# Fields that suggest an API key are forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or quota_bytes.
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

_KNOWN_SECTIONS: frozenset[str] = frozenset(["library", "storage", "generation"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class LibraryCfg:
    """Source library settings (envoy.yaml: library:).

    Attributes:
        max_items: Maximum number of sources per group, checked on add.
        data_dir: Directory holding the blob database and metadata document.
        default_group_name: Display name of the seeded default group.
    """

    max_items: int = 50
    data_dir: str = ".envoy"
    default_group_name: str = DEFAULT_GROUP_NAME


@dataclass
class StorageCfg:
    """Store settings (envoy.yaml: storage:)."""

    db_name: str = DB_NAME
    metadata_quota_bytes: int = DEFAULT_QUOTA_BYTES


@dataclass
class GenerationCfg:
    """LLM generation configuration (envoy.yaml: generation:)."""

    model: str = "gemini/gemini-2.5-flash"
    max_tokens: int = 4096
    num_retries: int = 3


@dataclass
class EnvoyConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    library: LibraryCfg = field(default_factory=LibraryCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)

    @property
    def data_dir(self) -> Path:
        return Path(self.library.data_dir)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.storage.db_name


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
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _positive_int(value: Any, name: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if result < 1:
        raise ConfigError(f"{name} must be >= 1, got {result}")
    return result


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


def _cfg_from_dict(data: dict[str, Any]) -> EnvoyConfig:
    """Build an *EnvoyConfig* from a merged raw YAML dict."""
    cfg = EnvoyConfig()

    if "library" in data:
        lib = data["library"] or {}
        cfg.library = LibraryCfg(
            max_items=_positive_int(
                lib.get("max_items", cfg.library.max_items), "library.max_items"
            ),
            data_dir=str(lib.get("data_dir", cfg.library.data_dir)),
            default_group_name=str(
                lib.get("default_group_name", cfg.library.default_group_name)
            ),
        )

    if "storage" in data:
        st = data["storage"] or {}
        cfg.storage = StorageCfg(
            db_name=str(st.get("db_name", cfg.storage.db_name)),
            metadata_quota_bytes=_positive_int(
                st.get("metadata_quota_bytes", cfg.storage.metadata_quota_bytes),
                "storage.metadata_quota_bytes",
            ),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=_positive_int(
                g.get("max_tokens", cfg.generation.max_tokens), "generation.max_tokens"
            ),
            num_retries=int(g.get("num_retries", cfg.generation.num_retries)),
        )

    return cfg


def _apply_env_overrides(cfg: EnvoyConfig) -> EnvoyConfig:
    """Apply ENVOY_* environment variable overrides."""
    if model := os.environ.get("ENVOY_GENERATION_MODEL"):
        cfg.generation.model = model
    if max_items := os.environ.get("ENVOY_MAX_ITEMS"):
        cfg.library.max_items = _positive_int(max_items, "ENVOY_MAX_ITEMS")
    if data_dir := os.environ.get("ENVOY_DATA_DIR"):
        cfg.library.data_dir = data_dir
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> EnvoyConfig:
    """Load and return a merged *EnvoyConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *envoy.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            numeric setting is invalid.
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

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)


def write_project_config(project_dir: Path, cfg: EnvoyConfig) -> Path:
    """Write *cfg* as ``envoy.yaml`` in *project_dir* and return its path."""
    target = project_dir / _PROJECT_CONFIG_NAME
    data = {
        "library": {
            "max_items": cfg.library.max_items,
            "data_dir": cfg.library.data_dir,
            "default_group_name": cfg.library.default_group_name,
        },
        "generation": {"model": cfg.generation.model},
    }
    target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target
