"""recordimport position store database layer."""

from recordimport.db.connection import Database
from recordimport.db.migrations import MIGRATIONS, run_migrations
from recordimport.db.models import ImportPosition
from recordimport.db.repository import PositionRepository
from recordimport.db.schema import initialize

__all__ = [
    "Database",
    "ImportPosition",
    "MIGRATIONS",
    "PositionRepository",
    "initialize",
    "run_migrations",
]
