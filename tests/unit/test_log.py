"""Tests for logging setup."""

from __future__ import annotations

import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from recordimport.log import configure_logging


def _rich_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h, RichHandler)]


def test_configure_logging_installs_single_handler() -> None:
    logger = configure_logging("DEBUG")
    configure_logging("INFO")
    assert len(_rich_handlers(logger)) == 1
    assert logger.level == logging.INFO
    assert logger.propagate is False


def test_configure_logging_unknown_level_falls_back_to_info() -> None:
    logger = configure_logging("chatty")
    assert logger.level == logging.INFO


def test_configure_logging_accepts_int_level() -> None:
    logger = configure_logging(logging.WARNING)
    assert logger.level == logging.WARNING


def test_module_loggers_reach_handler() -> None:
    buffer = io.StringIO()
    configure_logging("DEBUG", console=Console(file=buffer, width=200))

    logging.getLogger("recordimport.importing.job").debug("hello from the job")

    assert "hello from the job" in buffer.getvalue()
