"""Destination (monitoring store) write access."""

from recordimport.destination.writer import DestinationWriter, upsert_action

__all__ = ["DestinationWriter", "upsert_action"]
