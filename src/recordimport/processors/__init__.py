"""Version-dispatched batch processors."""

from recordimport.processors.base import BatchProcessor, RecordProcessor
from recordimport.processors.registry import ProcessorRegistry, build_registry, version_candidates
from recordimport.processors.versions import LegacyProcessor, V1Processor, V8Processor

__all__ = [
    "BatchProcessor",
    "LegacyProcessor",
    "ProcessorRegistry",
    "RecordProcessor",
    "V1Processor",
    "V8Processor",
    "build_registry",
    "version_candidates",
]
