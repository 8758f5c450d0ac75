"""
Tiled pixel reading for FITS primary images.

Only the requested rectangles are read, row by row, so a full frame is never
held in memory. Samples are decoded from big-endian storage and rescaled with
``raw * BSCALE + BZERO`` into float64 buffers.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from ..exceptions import HeaderParseError, UnsupportedFormatError, ValidationError
from ..types import ByteSource
from .header import FitsHeader

logger = logging.getLogger(__name__)

MIN_TILE_SIDE = 8

# BITPIX -> big-endian numpy dtype of one stored sample
PIXEL_DTYPES: Dict[int, str] = {
    8: "u1",
    16: ">i2",
    32: ">i4",
    -32: ">f4",
}


@dataclass(frozen=True)
class ImageGeometry:
    """Image layout needed to locate and decode pixel rows."""
    width: int
    height: int
    bitpix: int
    data_offset: int
    bscale: float = 1.0
    bzero: float = 0.0

    @property
    def bytes_per_pixel(self) -> int:
        return abs(self.bitpix) // 8

    @property
    def row_stride(self) -> int:
        return self.width * self.bytes_per_pixel

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(PIXEL_DTYPES[self.bitpix])

    @classmethod
    def from_header(cls, header: FitsHeader, data_offset: int,
                    file_path: Optional[str] = None) -> "ImageGeometry":
        """
        Build geometry from a decoded header.

        Raises:
            HeaderParseError: If NAXIS1, NAXIS2 or BITPIX is missing or not an integer
            UnsupportedFormatError: If BITPIX is not 8/16/32/-32 or a dimension is not positive
        """
        values = {}
        for key in ("NAXIS1", "NAXIS2", "BITPIX"):
            if key not in header:
                raise HeaderParseError(f"Required keyword {key} missing from FITS header",
                                       file_path=file_path, keyword=key)
            value = header[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise HeaderParseError(f"Keyword {key} is not an integer: {value!r}",
                                       file_path=file_path, keyword=key)
            values[key] = value

        bitpix = values["BITPIX"]
        if bitpix not in PIXEL_DTYPES:
            raise UnsupportedFormatError(f"Unsupported BITPIX {bitpix}",
                                         file_path=file_path, bitpix=bitpix)
        width, height = values["NAXIS1"], values["NAXIS2"]
        if width <= 0 or height <= 0:
            raise UnsupportedFormatError(f"Invalid image size {width}x{height}",
                                         file_path=file_path)

        return cls(
            width=width,
            height=height,
            bitpix=bitpix,
            data_offset=data_offset,
            bscale=header.get_float("BSCALE", 1.0),
            bzero=header.get_float("BZERO", 0.0),
        )


@dataclass(frozen=True)
class TileRequest:
    """A rectangle of pixels, in image coordinates."""
    x: int
    y: int
    w: int
    h: int

    @classmethod
    def parse(cls, text: str) -> "TileRequest":
        """Parse an ``x,y,w,h`` string."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 4:
            raise ValidationError(f"Tile must be x,y,w,h: {text!r}", field="tiles")
        try:
            x, y, w, h = (int(p) for p in parts)
        except ValueError:
            raise ValidationError(f"Tile values must be integers: {text!r}", field="tiles")
        return cls(x, y, w, h)


def clamp_tile(tile: TileRequest, width: int, height: int,
               min_side: int = MIN_TILE_SIDE) -> TileRequest:
    """
    Clamp a tile to ``[0, width) x [0, height)``.

    Sides shorter than ``min_side`` are widened (shifting the tile inward at
    the image edge) unless the image itself is smaller.
    """
    def _axis(start: int, length: int, limit: int):
        length = max(min_side, length)
        start = min(max(0, start), max(0, limit - length))
        length = min(length, limit - start)
        return start, length

    x, w = _axis(tile.x, tile.w, width)
    y, h = _axis(tile.y, tile.h, height)
    return TileRequest(x, y, w, h)


def default_tiles(width: int, height: int, crop_size: int = 768) -> List[TileRequest]:
    """
    Centre plus four corner tiles.

    Each side is at most ``crop_size`` and at most half the image dimension.
    """
    tw = max(1, min(crop_size, width // 2))
    th = max(1, min(crop_size, height // 2))
    return [
        TileRequest((width - tw) // 2, (height - th) // 2, tw, th),
        TileRequest(0, 0, tw, th),
        TileRequest(width - tw, 0, tw, th),
        TileRequest(0, height - th, tw, th),
        TileRequest(width - tw, height - th, tw, th),
    ]


def read_tile(source: ByteSource, geometry: ImageGeometry, tile: TileRequest) -> np.ndarray:
    """
    Read and rescale one clamped tile.

    Args:
        source: Random-access byte source for the FITS file
        geometry: Image geometry from the header
        tile: Tile already clamped to the image bounds

    Returns:
        numpy.ndarray: float64 array of shape (tile.h, tile.w). Samples past
        a short read (truncated file) stay zero.
    """
    bpp = geometry.bytes_per_pixel
    dtype = geometry.dtype
    samples = np.zeros((tile.h, tile.w), dtype=np.float64)
    row_bytes = tile.w * bpp
    short_rows = 0

    for row in range(tile.h):
        offset = geometry.data_offset + (tile.y + row) * geometry.row_stride + tile.x * bpp
        buffer = source.read_at(offset, row_bytes)
        count = len(buffer) // bpp
        if count < tile.w:
            short_rows += 1
        if count == 0:
            continue
        raw = np.frombuffer(buffer, dtype=dtype, count=count)
        samples[row, :count] = raw.astype(np.float64) * geometry.bscale + geometry.bzero

    if short_rows:
        logger.warning(f"Short read in tile ({tile.x},{tile.y} {tile.w}x{tile.h}): "
                       f"{short_rows} incomplete rows zero-filled")
    return samples
