"""
Type definitions for StarQC.

This module provides type aliases and protocols shared by the analyzer layers.
"""

from typing import Protocol, Dict, Any, Union
from pathlib import Path

# Type aliases for common data structures
FilePath = Union[str, Path]
AnalysisResultDict = Dict[str, Any]


class ByteSource(Protocol):
    """Protocol for random-access binary input.

    The pixel reader only ever needs positioned reads, so anything that can
    return ``size`` bytes from ``offset`` (a file, a memory buffer, a remote
    range reader) can feed the analyzer.
    """

    def read_at(self, offset: int, size: int) -> bytes:
        """Return up to ``size`` bytes starting at ``offset``.

        Fewer bytes are returned when the source ends early.
        """
        ...


class ProgressCallback(Protocol):
    """Protocol for progress reporting callbacks."""

    def __call__(self, current: int, total: int, message: str = "") -> bool:
        """Report progress; return False to cancel the operation."""
        ...
