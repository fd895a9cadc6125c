"""
Collaborator backends.

memory: deterministic in-process collaborators for paper mode and tests.
"""

from .memory import (
    InMemoryMarketRegistry,
    InMemoryMarket,
    RecordingAuthority,
    RecordingConversionHandler,
    InMemoryMarketDirectory,
    PaperBackend,
)

__all__ = [
    "InMemoryMarketRegistry",
    "InMemoryMarket",
    "RecordingAuthority",
    "RecordingConversionHandler",
    "InMemoryMarketDirectory",
    "PaperBackend",
]
