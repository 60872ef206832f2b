"""Processor registry: engine version → batch processor.

Built once at startup and read-only afterwards. Lookup falls back from the
exact version to ``major.minor``, then ``major``, then the registry default.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType

from recordimport.config import ConfigError
from recordimport.destination.writer import DestinationWriter
from recordimport.processors.base import BatchProcessor
from recordimport.processors.versions import LegacyProcessor, V1Processor, V8Processor

logger = logging.getLogger(__name__)


def version_candidates(engine_version: str) -> list[str]:
    """``"8.2.0"`` → ``["8.2.0", "8.2", "8"]``."""
    parts = engine_version.split(".")
    return [".".join(parts[:n]) for n in range(len(parts), 0, -1)]


class ProcessorRegistry:
    """Immutable mapping of version keys to processors."""

    def __init__(self, processors: Mapping[str, BatchProcessor], default_version: str) -> None:
        if not processors:
            raise ConfigError("No batch processors registered; nothing could be imported.")
        if default_version not in processors:
            raise ConfigError(
                f"Default processor version '{default_version}' is not registered "
                f"(registered: {', '.join(sorted(processors))})"
            )
        self._processors: Mapping[str, BatchProcessor] = MappingProxyType(dict(processors))
        self.default_version = default_version

    @property
    def versions(self) -> list[str]:
        return sorted(self._processors)

    def resolve(self, engine_version: str) -> BatchProcessor:
        for candidate in version_candidates(engine_version):
            processor = self._processors.get(candidate)
            if processor is not None:
                return processor
        logger.debug(
            "No processor for engine version %s, using default %s",
            engine_version,
            self.default_version,
        )
        return self._processors[self.default_version]


def build_registry(writer: DestinationWriter) -> ProcessorRegistry:
    """Registry with every built-in processor, legacy as the default."""
    processors: list[BatchProcessor] = [
        LegacyProcessor(writer),
        V1Processor(writer),
        V8Processor(writer),
    ]
    return ProcessorRegistry(
        {p.version: p for p in processors}, default_version=LegacyProcessor.version
    )
