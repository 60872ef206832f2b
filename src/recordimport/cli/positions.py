"""recordimport positions / reset: inspect and rewind stored import positions.

Usage:
  recordimport positions
  recordimport reset --partition 1 --type job
  recordimport reset --yes
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.table import Table

from recordimport.cli.errors import (
    err_config,
    err_no_db,
    err_no_positions,
    err_unknown_record_type,
    warn_reimport,
)
from recordimport.config import ConfigError, ImportConfig, load_config
from recordimport.db.connection import Database
from recordimport.db.repository import PositionRepository
from recordimport.db.schema import initialize
from recordimport.records import RecordType

console = Console()


def positions_cmd(
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", help="Directory containing recordimport.yaml."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the position store (overrides config)."),
    ] = None,
) -> None:
    """Show the stored resume position of every stream."""
    db_path = db or db_path_for(load_config_or_exit(config_dir), config_dir)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = _open_db(db_path)
    try:
        positions = PositionRepository(conn).list_positions()
    finally:
        conn.close()

    if not positions:
        console.print("[dim]No positions stored yet.[/]")
        return

    table = Table(title=f"Import positions ({db_path})")
    table.add_column("Type")
    table.add_column("Partition", justify="right")
    table.add_column("Position", justify="right")
    table.add_column("Sequence", justify="right")
    table.add_column("Index")
    table.add_column("Updated", style="dim")
    for p in positions:
        table.add_row(
            p.record_type.value,
            str(p.partition_id),
            f"{p.position:,}",
            f"{p.sequence:,}",
            p.index_name or "-",
            p.updated_at or "-",
        )
    console.print(table)


def reset_cmd(
    partition: Annotated[
        int | None,
        typer.Option("--partition", "-p", help="Only reset this partition."),
    ] = None,
    record_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Only reset this record type."),
    ] = None,
    config_dir: Annotated[
        Path | None,
        typer.Option("--config-dir", help="Directory containing recordimport.yaml."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the position store (overrides config)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete stored positions so the matching streams are imported again."""
    rtype: RecordType | None = None
    if record_type is not None:
        try:
            rtype = RecordType.parse(record_type)
        except ValueError as exc:
            console.print(err_unknown_record_type(str(exc)))
            raise typer.Exit(1) from exc

    db_path = db or db_path_for(load_config_or_exit(config_dir), config_dir)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn = _open_db(db_path)
    repo = PositionRepository(conn)
    try:
        matching = [
            p
            for p in repo.list_positions()
            if (partition is None or p.partition_id == partition)
            and (rtype is None or p.record_type is rtype)
        ]
        if not matching:
            console.print(err_no_positions(partition, record_type))
            raise typer.Exit(0)

        console.print(f"\nReset [bold]{len(matching)}[/] stream position(s):")
        for p in matching:
            console.print(f"  {p.record_type.value} / partition {p.partition_id} @ {p.position:,}")

        if not yes:
            if not typer.confirm("Confirm reset?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        deleted = repo.delete_positions(partition_id=partition, record_type=rtype)
        console.print(f"\n[green]✓[/] Deleted {deleted} position(s)")
        console.print(f"\n{warn_reimport()}")
    finally:
        conn.close()


def db_path_for(cfg: ImportConfig, config_dir: Path | None) -> Path:
    """Position store path; relative paths resolve against *config_dir*."""
    path = Path(cfg.positions.db_path)
    if not path.is_absolute() and config_dir is not None:
        path = config_dir / path
    return path


def load_config_or_exit(config_dir: Path | None) -> ImportConfig:
    try:
        return load_config(config_dir)
    except (ConfigError, yaml.YAMLError) as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def _open_db(db_path: Path) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    return conn
