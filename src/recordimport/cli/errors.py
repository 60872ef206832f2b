"""recordimport rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from recordimport.cli.errors import err_no_db
    console.print(err_no_db("positions.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_config(message: str) -> str:
    """Configuration could not be loaded or failed validation."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix recordimport.yaml (or ~/.recordimport/config.yaml) and retry."
    )


def err_unknown_record_type(message: str) -> str:
    """--type value is not a known record type."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Example:  recordimport run --type job --type incident"
    )


def err_no_db(db_path: str) -> str:
    """No position store at the configured path."""
    return (
        f"[red]Error:[/] No position store found at '{db_path}'.\n"
        "  Run:  recordimport run  (positions are created on first import)"
    )


def err_no_positions(partition: int | None, record_type: str | None) -> str:
    """reset matched no stored position."""
    scope = []
    if partition is not None:
        scope.append(f"partition {partition}")
    if record_type is not None:
        scope.append(f"type '{record_type}'")
    where = " and ".join(scope) if scope else "any stream"
    return (
        f"[yellow]Nothing to reset:[/] no stored position for {where}.\n"
        "  Run:  recordimport positions  to see all stored positions."
    )


def err_store_unavailable(what: str, url: str, detail: str) -> str:
    """Elasticsearch cluster could not be reached at startup."""
    env_var = f"RECORDIMPORT_{what.upper()}_URL"
    return (
        f"[red]Error:[/] Cannot reach the {what} store at '{url}': {detail}\n"
        f"  Check the cluster is running, or point to another one:\n"
        f"    export {env_var}=http://host:9200"
    )


def warn_reimport() -> str:
    """Shown after reset: records will be imported again."""
    return (
        "[yellow]⚠[/] Reset streams restart from the beginning of the source log.\n"
        "  Destination writes are upserts, so re-imported records overwrite existing documents."
    )


def err_position_flush(db_path: str, detail: str) -> str:
    """Final position flush failed on shutdown."""
    return (
        f"[red]Error:[/] Could not save import positions to '{db_path}': {detail}\n"
        "  Records imported since the last saved position will be imported again (upserts).\n"
        "  Check free disk space and write permissions, then run:  recordimport positions"
    )
