"""
Random-access byte sources for the FITS reader.

The header decoder and tiled pixel reader only issue positioned reads, so the
analysis logic can run against an open file or an in-memory buffer alike.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from ..exceptions import FitsReadError
from ..types import FilePath

logger = logging.getLogger(__name__)


class FileByteSource:
    """Positioned reads over an open binary file handle.

    The handle is borrowed; closing it is the caller's responsibility.
    """

    def __init__(self, handle: BinaryIO, file_path: str = ""):
        self._handle = handle
        self.file_path = file_path

    def read_at(self, offset: int, size: int) -> bytes:
        if size <= 0:
            return b""
        try:
            self._handle.seek(offset)
            return self._handle.read(size)
        except OSError as e:
            raise FitsReadError(
                f"Read failed at offset {offset}: {e}",
                file_path=self.file_path,
            ) from e


class MemoryByteSource:
    """Positioned reads over an in-memory buffer."""

    def __init__(self, payload: bytes):
        self._payload = memoryview(payload)

    def __len__(self) -> int:
        return len(self._payload)

    def read_at(self, offset: int, size: int) -> bytes:
        if size <= 0 or offset >= len(self._payload):
            return b""
        return bytes(self._payload[offset:offset + size])


@contextmanager
def open_byte_source(file_path: FilePath) -> Iterator[FileByteSource]:
    """
    Open a FITS file for positioned reads.

    The file handle is closed on every exit path, including analysis errors
    raised inside the ``with`` block.

    Raises:
        FitsReadError: If the file is missing or cannot be opened
    """
    path = Path(file_path)
    try:
        handle = open(path, "rb")
    except OSError as e:
        raise FitsReadError(f"Cannot open FITS file: {e}", file_path=str(path)) from e

    logger.debug(f"Opened {path} for star analysis")
    with handle:
        yield FileByteSource(handle, file_path=str(path))
