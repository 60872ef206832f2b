"""recordimport run: start the import pipeline and run until interrupted.

Usage:
  recordimport run
  recordimport run --partition 1 --partition 2 --type job
  recordimport run --config-dir deploy/ --log-level DEBUG
"""

from __future__ import annotations

import logging
import signal
import sqlite3
import threading
from pathlib import Path
from typing import Annotated

import typer
from elasticsearch import ApiError, Elasticsearch, TransportError
from rich.console import Console
from rich.table import Table

from recordimport.cli.errors import (
    err_position_flush,
    err_store_unavailable,
    err_unknown_record_type,
)
from recordimport.cli.positions import db_path_for, load_config_or_exit
from recordimport.db.connection import Database
from recordimport.db.repository import PositionRepository
from recordimport.db.schema import initialize
from recordimport.destination.writer import DestinationWriter
from recordimport.errors import PersistenceError
from recordimport.importing.listeners import ImportMetrics, LoggingListener
from recordimport.importing.positions import PositionTracker
from recordimport.importing.scheduler import build_importer
from recordimport.log import configure_logging
from recordimport.records import RecordType
from recordimport.source.client import SourceClient, build_es_client

console = Console()
logger = logging.getLogger(__name__)


def run_cmd(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", help="Directory containing recordimport.yaml."),
    ] = None,
    partition: Annotated[
        list[int] | None,
        typer.Option("--partition", "-p", help="Partition to import (repeatable)."),
    ] = None,
    record_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Record type to import (repeatable)."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = None,
    max_seconds: Annotated[
        float | None,
        typer.Option("--max-seconds", hidden=True, help="Stop after N seconds (for testing)."),
    ] = None,
) -> None:
    """Import records continuously until Ctrl-C or SIGTERM."""
    cfg = load_config_or_exit(config_dir)
    if partition:
        cfg.importer.partitions = list(partition)
    if record_type:
        try:
            cfg.importer.record_types = [RecordType.parse(t) for t in record_type]
        except ValueError as exc:
            console.print(err_unknown_record_type(str(exc)))
            raise typer.Exit(1) from exc
    configure_logging(log_level or cfg.logging.level)

    source_es = build_es_client(cfg.source)
    dest_es = build_es_client(cfg.destination)
    stores = (("source", source_es, cfg.source), ("destination", dest_es, cfg.destination))
    for what, es, store in stores:
        try:
            es.info()
        except (ApiError, TransportError) as exc:
            console.print(err_store_unavailable(what, store.url, str(exc)))
            raise typer.Exit(1) from exc

    db_path = db_path_for(cfg, config_dir)
    conn = Database(db_path).connect(shared=True)
    initialize(conn)
    tracker = PositionTracker(
        PositionRepository(conn), flush_interval=cfg.positions.flush_interval_ms / 1000
    )
    metrics = ImportMetrics()
    importer = build_importer(
        cfg,
        SourceClient(source_es, cfg.source.prefix),
        DestinationWriter(dest_es, cfg.destination.prefix),
        tracker,
        [LoggingListener(), metrics],
    )

    stop = threading.Event()
    _install_signal_handlers(stop)

    console.print(
        f"[bold]Importing[/] {', '.join(t.value for t in cfg.importer.record_types)} "
        f"from partition(s) {', '.join(str(p) for p in cfg.importer.partitions)}  "
        "[dim](Ctrl-C to stop)[/]"
    )
    flush_error: PersistenceError | None = None
    importer.start()
    try:
        stop.wait(max_seconds)
    except KeyboardInterrupt:
        pass
    finally:
        try:
            importer.stop()
        except PersistenceError as exc:
            flush_error = exc
        finally:
            _close_all(conn, source_es, dest_es)

    _print_summary(metrics.snapshot())
    if flush_error is not None:
        console.print(err_position_flush(str(db_path), str(flush_error)))
        raise typer.Exit(1)


def _close_all(conn: sqlite3.Connection, *clients: Elasticsearch) -> None:
    try:
        conn.close()
    finally:
        for es in clients:
            try:
                es.close()
            except (ApiError, TransportError) as exc:
                logger.warning("Closing Elasticsearch client failed: %s", exc)


def _install_signal_handlers(stop: threading.Event) -> None:
    if threading.current_thread() is not threading.main_thread():
        return
    signal.signal(signal.SIGTERM, lambda *_: stop.set())


def _print_summary(snapshot: dict[str, dict[str, int]]) -> None:
    imported = snapshot["imported_records"]
    finished = snapshot["finished_batches"]
    failed = snapshot["failed_batches"]
    types = sorted(set(imported) | set(finished) | set(failed))
    if not types:
        console.print("[dim]Nothing imported.[/]")
        return
    table = Table(title="Import summary")
    table.add_column("Type")
    table.add_column("Records", justify="right")
    table.add_column("Batches", justify="right")
    table.add_column("Failed", justify="right")
    for t in types:
        failures = failed.get(t, 0)
        table.add_row(
            t,
            f"{imported.get(t, 0):,}",
            str(finished.get(t, 0)),
            f"[red]{failures}[/]" if failures else "0",
        )
    console.print(table)
