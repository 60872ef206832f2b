"""Tests for the recordimport config loader."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from recordimport.config import ConfigError, ImportConfig, load_config
from recordimport.records import RecordType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "RECORDIMPORT_SOURCE_URL",
        "RECORDIMPORT_DESTINATION_URL",
        "RECORDIMPORT_LOG_LEVEL",
        "RECORDIMPORT_SOURCE_API_KEY",
        "RECORDIMPORT_DESTINATION_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)


def _load(tmp_path: Path, global_data: dict | None = None, project_data: dict | None = None) -> ImportConfig:
    global_path = tmp_path / "global" / "config.yaml"
    if global_data is not None:
        _write_yaml(global_path, global_data)
    if project_data is not None:
        _write_yaml(tmp_path / "recordimport.yaml", project_data)
    return load_config(project_dir=tmp_path, global_config_path=global_path)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.source.url == "http://localhost:9200"
    assert cfg.source.prefix == "zeebe-record"
    assert cfg.destination.prefix == "monitoring"
    assert cfg.importer.partitions == [1]
    assert cfg.importer.record_types == list(RecordType)
    assert cfg.importer.reader_threads == 1
    assert cfg.importer.import_threads == 2
    assert cfg.importer.queue_size == 10
    assert cfg.importer.max_empty_pages == 10
    assert cfg.importer.batch_size_min == 10
    assert cfg.importer.batch_size_max == 500
    assert cfg.importer.position_query_only is False
    assert cfg.positions.db_path == "positions.db"
    assert cfg.positions.flush_interval_ms == 1_000
    assert cfg.logging.level == "INFO"
    assert cfg.source.api_key is None


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_config_applied(tmp_path: Path) -> None:
    cfg = _load(tmp_path, global_data={"source": {"url": "http://es-global:9200"}})
    assert cfg.source.url == "http://es-global:9200"
    assert cfg.source.prefix == "zeebe-record"


def test_project_overrides_global(tmp_path: Path) -> None:
    cfg = _load(
        tmp_path,
        global_data={"importer": {"import_threads": 4, "queue_size": 20}},
        project_data={"importer": {"import_threads": 8}},
    )
    assert cfg.importer.import_threads == 8
    assert cfg.importer.queue_size == 20


def test_importer_section_parsed(tmp_path: Path) -> None:
    cfg = _load(
        tmp_path,
        project_data={
            "importer": {
                "partitions": [1, 2, 3],
                "record_types": ["job", "incident"],
                "position_query_only": True,
                "reader_backoff_ms": 250,
            }
        },
    )
    assert cfg.importer.partitions == [1, 2, 3]
    assert cfg.importer.record_types == [RecordType.JOB, RecordType.INCIDENT]
    assert cfg.importer.position_query_only is True
    assert cfg.importer.reader_backoff_ms == 250


def test_positions_and_logging_sections(tmp_path: Path) -> None:
    cfg = _load(
        tmp_path,
        project_data={"positions": {"db_path": "state/p.db", "flush_interval_ms": 0}, "logging": {"level": "debug"}},
    )
    assert cfg.positions.db_path == "state/p.db"
    assert cfg.positions.flush_interval_ms == 0
    assert cfg.logging.level == "DEBUG"


def test_empty_yaml_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "recordimport.yaml").write_text("", encoding="utf-8")
    cfg = load_config(project_dir=tmp_path, global_config_path=tmp_path / "missing.yaml")
    assert cfg.importer.partitions == [1]


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides_urls_and_level(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("RECORDIMPORT_SOURCE_URL", "http://src:9200")
    monkeypatch.setenv("RECORDIMPORT_DESTINATION_URL", "http://dst:9200")
    monkeypatch.setenv("RECORDIMPORT_LOG_LEVEL", "warning")
    cfg = _load(tmp_path, project_data={"source": {"url": "http://yaml:9200"}})
    assert cfg.source.url == "http://src:9200"
    assert cfg.destination.url == "http://dst:9200"
    assert cfg.logging.level == "WARNING"


def test_api_keys_only_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("RECORDIMPORT_SOURCE_API_KEY", "src-key")
    monkeypatch.setenv("RECORDIMPORT_DESTINATION_API_KEY", "dst-key")
    cfg = _load(tmp_path)
    assert cfg.source.api_key == "src-key"
    assert cfg.destination.api_key == "dst-key"


# ---------------------------------------------------------------------------
# Forbidden credentials
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["api_key", "password", "api-secret", "credentials"])
def test_credentials_in_global_config_rejected(tmp_path: Path, key: str) -> None:
    with pytest.raises(ConfigError, match="forbidden key"):
        _load(tmp_path, global_data={"source": {key: "x"}})


def test_credentials_in_project_config_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="RECORDIMPORT_SOURCE_API_KEY"):
        _load(tmp_path, project_data={"destination": {"api_key": "x"}})


# ---------------------------------------------------------------------------
# Unknown keys + validation
# ---------------------------------------------------------------------------


def test_unknown_section_warns(tmp_path: Path) -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path, project_data={"exporter": {"x": 1}})
    assert any("exporter" in str(w.message) for w in caught)


@pytest.mark.parametrize(
    "importer",
    [
        {"reader_threads": 0},
        {"import_threads": -1},
        {"queue_size": 0},
        {"max_empty_pages": 0},
        {"batch_size_min": 600, "batch_size_max": 500},
        {"partitions": []},
        {"record_types": []},
        {"reader_backoff_ms": -5},
    ],
)
def test_invalid_importer_values_raise(tmp_path: Path, importer: dict) -> None:
    with pytest.raises(ConfigError):
        _load(tmp_path, project_data={"importer": importer})


def test_unknown_record_type_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Unknown record type 'deployment'"):
        _load(tmp_path, project_data={"importer": {"record_types": ["job", "deployment"]}})


def test_non_numeric_value_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Invalid importer section"):
        _load(tmp_path, project_data={"importer": {"queue_size": "lots"}})


def test_invalid_log_level_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="logging.level"):
        _load(tmp_path, project_data={"logging": {"level": "chatty"}})


def test_negative_flush_interval_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="flush_interval_ms"):
        _load(tmp_path, project_data={"positions": {"flush_interval_ms": -1}})


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


def test_non_mapping_config_file_raises(tmp_path: Path) -> None:
    (tmp_path / "recordimport.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path, global_config_path=tmp_path / "missing.yaml")


def test_non_numeric_flush_interval_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Invalid positions section"):
        _load(tmp_path, project_data={"positions": {"flush_interval_ms": "often"}})


@pytest.mark.parametrize("section", ["source", "destination", "importer", "positions", "logging"])
def test_non_mapping_section_raises(tmp_path: Path, section: str) -> None:
    with pytest.raises(ConfigError, match=f"'{section}' must be a mapping"):
        _load(tmp_path, project_data={section: "http://es:9200"})
