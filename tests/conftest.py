"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from recordimport.db.connection import Database
from recordimport.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based position store in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "positions.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def shared_db(tmp_path):
    """Like tmp_db, but usable from worker threads."""
    db = Database(tmp_path / "positions.db")
    conn = db.connect(shared=True)
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """configure_logging mutates the package logger; undo it so caplog keeps working."""
    logger = logging.getLogger("recordimport")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers = []
    yield
    logger.handlers, logger.level, logger.propagate = saved
