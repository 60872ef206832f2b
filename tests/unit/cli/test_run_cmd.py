"""Tests for the recordimport run command (stores mocked)."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from elasticsearch import ConnectionError as ESConnectionError
from typer.testing import CliRunner

from recordimport.cli.main import app
from recordimport.errors import PersistenceError
from recordimport.records import RecordType

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr("recordimport.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def es_clients():
    source, destination = MagicMock(name="source"), MagicMock(name="destination")
    with patch("recordimport.cli.run.build_es_client", side_effect=[source, destination]):
        yield source, destination


@pytest.fixture
def importer():
    fake = MagicMock()
    with patch("recordimport.cli.run.build_importer", return_value=fake) as build:
        yield fake, build


def test_run_starts_and_stops_importer(tmp_path: Path, es_clients, importer) -> None:
    fake, build = importer
    result = runner.invoke(app, ["run", "--max-seconds", "0"])

    assert result.exit_code == 0, result.output
    fake.start.assert_called_once()
    fake.stop.assert_called_once()
    for client in es_clients:
        client.close.assert_called_once()
    assert (tmp_path / "positions.db").exists()
    assert "Nothing imported" in result.output


def test_run_cli_flags_override_config(es_clients, importer) -> None:
    _, build = importer
    result = runner.invoke(
        app, ["run", "-p", "2", "-p", "3", "-t", "job", "--max-seconds", "0", "--log-level", "DEBUG"]
    )
    assert result.exit_code == 0, result.output
    cfg = build.call_args.args[0]
    assert cfg.importer.partitions == [2, 3]
    assert cfg.importer.record_types == [RecordType.JOB]


def test_run_unknown_type_exits_1(es_clients, importer) -> None:
    result = runner.invoke(app, ["run", "-t", "deployment", "--max-seconds", "0"])
    assert result.exit_code == 1
    assert "Unknown record type" in result.output
    importer[0].start.assert_not_called()


def test_run_unreachable_source_exits_1(es_clients, importer) -> None:
    source, _ = es_clients
    source.info.side_effect = ESConnectionError("connection refused")
    result = runner.invoke(app, ["run", "--max-seconds", "0"])
    assert result.exit_code == 1
    assert "Cannot reach the source store" in result.output
    importer[0].start.assert_not_called()


def test_run_invalid_config_exits_1(tmp_path: Path, es_clients, importer) -> None:
    (tmp_path / "recordimport.yaml").write_text("importer:\n  reader_threads: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["run", "--max-seconds", "0"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_run_failed_final_flush_still_closes_everything(es_clients, importer) -> None:
    fake, _ = importer
    fake.stop.side_effect = PersistenceError("disk I/O error")

    result = runner.invoke(app, ["run", "--max-seconds", "0"])

    assert result.exit_code == 1
    assert "Could not save import positions" in result.output
    assert "disk I/O error" in result.output
    for client in es_clients:
        client.close.assert_called_once()
