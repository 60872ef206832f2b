"""recordimport configuration loader.

Priority (high → low):
  1. CLI flags           (applied by the CLI commands)
  2. Environment variables  (RECORDIMPORT_SOURCE_URL, RECORDIMPORT_DESTINATION_URL,
                             RECORDIMPORT_LOG_LEVEL, RECORDIMPORT_*_API_KEY)
  3. Per-project recordimport.yaml
  4. Global ~/.recordimport/config.yaml  (no credentials)
  5. Hardcoded defaults

Global config must never contain credentials; use environment variables instead.
YAML is always read with yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from recordimport.records import RecordType

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".recordimport"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "recordimport.yaml"

# Key names that suggest a credential; forbidden in any config file.
_CREDENTIAL_RE: re.Pattern[str] = re.compile(
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
    ["source", "destination", "importer", "positions", "logging"]
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
class StoreCfg:
    """Connection settings for one Elasticsearch store.

    Attributes:
        url: Cluster URL.
        prefix: Index name prefix.
        api_key: Only ever read from the environment, never from YAML.
    """

    url: str = "http://localhost:9200"
    prefix: str = ""
    api_key: str | None = None


@dataclass
class ImporterCfg:
    """Reader / worker pool settings (recordimport.yaml: importer:)."""

    partitions: list[int] = field(default_factory=lambda: [1])
    record_types: list[RecordType] = field(default_factory=lambda: list(RecordType))
    reader_threads: int = 1
    import_threads: int = 2
    queue_size: int = 10
    reader_backoff_ms: int = 5_000
    scheduler_backoff_ms: int = 100
    max_empty_pages: int = 10
    batch_size_min: int = 10
    batch_size_max: int = 500
    position_query_only: bool = False


@dataclass
class PositionsCfg:
    """Position store settings (recordimport.yaml: positions:).

    ``flush_interval_ms`` of 0 writes every loaded position immediately.
    """

    db_path: str = "positions.db"
    flush_interval_ms: int = 1_000


@dataclass
class LoggingCfg:
    level: str = "INFO"


@dataclass
class ImportConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    source: StoreCfg = field(default_factory=lambda: StoreCfg(prefix="zeebe-record"))
    destination: StoreCfg = field(default_factory=lambda: StoreCfg(prefix="monitoring"))
    importer: ImporterCfg = field(default_factory=ImporterCfg)
    positions: PositionsCfg = field(default_factory=PositionsCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_credentials(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any credential-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _CREDENTIAL_RE.search(str(k)):
                    raise ConfigError(
                        f"Config file '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        "    export RECORDIMPORT_SOURCE_API_KEY=<value>\n"
                        "    export RECORDIMPORT_DESTINATION_API_KEY=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=5,
            )


def _validate(cfg: ImportConfig) -> None:
    imp = cfg.importer
    for name in ("reader_threads", "import_threads", "queue_size", "batch_size_min", "max_empty_pages"):
        if getattr(imp, name) < 1:
            raise ConfigError(f"importer.{name} must be >= 1, got {getattr(imp, name)}")
    if imp.batch_size_min > imp.batch_size_max:
        raise ConfigError(
            f"importer.batch_size_min ({imp.batch_size_min}) must not exceed "
            f"importer.batch_size_max ({imp.batch_size_max})"
        )
    if imp.reader_backoff_ms < 0 or imp.scheduler_backoff_ms < 0:
        raise ConfigError("importer backoff intervals must be >= 0")
    if not imp.partitions:
        raise ConfigError("importer.partitions must list at least one partition id")
    if not imp.record_types:
        raise ConfigError("importer.record_types must list at least one record type")
    if cfg.positions.flush_interval_ms < 0:
        raise ConfigError("positions.flush_interval_ms must be >= 0")
    if cfg.logging.level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, got '{cfg.logging.level}'"
        )


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


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    """Return the *name* section of *data*; it must be a mapping (or empty)."""
    raw = data[name] or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(raw).__name__}")
    return raw


def _parse_store(raw: dict[str, Any], defaults: StoreCfg) -> StoreCfg:
    return StoreCfg(
        url=str(raw.get("url", defaults.url)),
        prefix=str(raw.get("prefix", defaults.prefix)),
    )


def _parse_record_types(raw: Any) -> list[RecordType]:
    try:
        return [RecordType.parse(str(v)) for v in raw]
    except ValueError as exc:
        raise ConfigError(f"importer.record_types: {exc}") from exc


def _cfg_from_dict(data: dict[str, Any]) -> ImportConfig:
    """Build an *ImportConfig* from a merged raw YAML dict."""
    cfg = ImportConfig()

    if "source" in data:
        cfg.source = _parse_store(_section(data, "source"), cfg.source)

    if "destination" in data:
        cfg.destination = _parse_store(_section(data, "destination"), cfg.destination)

    if "importer" in data:
        i = _section(data, "importer")
        d = cfg.importer
        try:
            cfg.importer = ImporterCfg(
                partitions=[int(p) for p in i.get("partitions", d.partitions)],
                record_types=(
                    _parse_record_types(i["record_types"]) if "record_types" in i else d.record_types
                ),
                reader_threads=int(i.get("reader_threads", d.reader_threads)),
                import_threads=int(i.get("import_threads", d.import_threads)),
                queue_size=int(i.get("queue_size", d.queue_size)),
                reader_backoff_ms=int(i.get("reader_backoff_ms", d.reader_backoff_ms)),
                scheduler_backoff_ms=int(i.get("scheduler_backoff_ms", d.scheduler_backoff_ms)),
                max_empty_pages=int(i.get("max_empty_pages", d.max_empty_pages)),
                batch_size_min=int(i.get("batch_size_min", d.batch_size_min)),
                batch_size_max=int(i.get("batch_size_max", d.batch_size_max)),
                position_query_only=bool(i.get("position_query_only", d.position_query_only)),
            )
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid importer section: {exc}") from exc

    if "positions" in data:
        p = _section(data, "positions")
        try:
            cfg.positions = PositionsCfg(
                db_path=str(p.get("db_path", cfg.positions.db_path)),
                flush_interval_ms=int(p.get("flush_interval_ms", cfg.positions.flush_interval_ms)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid positions section: {exc}") from exc

    if "logging" in data:
        lg = _section(data, "logging")
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)).upper())

    return cfg


def _apply_env_overrides(cfg: ImportConfig) -> ImportConfig:
    """Apply RECORDIMPORT_* environment variable overrides (layer 2)."""
    if url := os.environ.get("RECORDIMPORT_SOURCE_URL"):
        cfg.source.url = url
    if url := os.environ.get("RECORDIMPORT_DESTINATION_URL"):
        cfg.destination.url = url
    if level := os.environ.get("RECORDIMPORT_LOG_LEVEL"):
        cfg.logging.level = level.upper()
    cfg.source.api_key = os.environ.get("RECORDIMPORT_SOURCE_API_KEY") or None
    cfg.destination.api_key = os.environ.get("RECORDIMPORT_DESTINATION_API_KEY") or None
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ImportConfig:
    """Load and return a merged *ImportConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *recordimport.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged and validated *ImportConfig*.

    Raises:
        ConfigError: If the global config contains credential-like fields or
            any value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    project_path = (project_dir if project_dir is not None else Path.cwd()) / _PROJECT_CONFIG_NAME

    merged: dict[str, Any] = {}
    for layer in (global_path, project_path):
        merged = _deep_merge(merged, _read_layer(layer))

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def _read_layer(path: Path) -> dict[str, Any]:
    """Parse one YAML layer; a missing file is an empty layer."""
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level")
    _check_no_credentials(data, path)
    _warn_unknown_keys(data, path)
    return data
