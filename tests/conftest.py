"""
Test utilities for StarQC.

Provides FITS builders and synthetic star fields shared by the test modules.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

import numpy as np
import pytest
from astropy.io import fits

from starqc.core.header import BLOCK_SIZE, CARD_SIZE
from starqc.core.pixel_reader import PIXEL_DTYPES


def fits_card(key: str, value: Any, comment: Optional[str] = None) -> str:
    """Format one fixed-format 80-column header card."""
    if isinstance(value, bool):
        text = f"{'T' if value else 'F':>20}"
    elif isinstance(value, str):
        quoted = value.replace("'", "''")
        text = f"'{quoted:<8}'"
    elif isinstance(value, int):
        text = f"{value:>20}"
    else:
        text = f"{value!r:>20}"
    card = f"{key:<8}= {text}"
    if comment:
        card += f" / {comment}"
    return card[:CARD_SIZE].ljust(CARD_SIZE)


def pad_block(payload: bytes, fill: bytes) -> bytes:
    remainder = len(payload) % BLOCK_SIZE
    if remainder:
        payload += fill * (BLOCK_SIZE - remainder)
    return payload


def build_fits_bytes(stored: np.ndarray, bitpix: int = 16,
                     bscale: Optional[float] = None, bzero: Optional[float] = None,
                     extra_cards: Iterable[str] = ()) -> bytes:
    """
    Assemble a primary-HDU FITS file from raw stored values.

    Physical values are ``stored * BSCALE + BZERO``.
    """
    height, width = stored.shape
    cards = [
        fits_card("SIMPLE", True),
        fits_card("BITPIX", bitpix),
        fits_card("NAXIS", 2),
        fits_card("NAXIS1", width),
        fits_card("NAXIS2", height),
    ]
    if bscale is not None:
        cards.append(fits_card("BSCALE", float(bscale)))
    if bzero is not None:
        cards.append(fits_card("BZERO", float(bzero)))
    cards.extend(extra_cards)
    cards.append("END".ljust(CARD_SIZE))

    header = pad_block("".join(cards).encode("ascii"), b" ")
    data = np.asarray(stored).astype(PIXEL_DTYPES[bitpix]).tobytes()
    return header + pad_block(data, b"\x00")


def make_star_image(shape: Tuple[int, int],
                    stars: Sequence[Tuple[float, float, float, float, float, float]] = (),
                    background: float = 1000.0, noise: float = 0.0, seed: int = 0) -> np.ndarray:
    """
    Synthetic star field.

    Each star is ``(x, y, amplitude, sigma_x, sigma_y, theta)`` with theta in
    radians measured from the x axis.
    """
    height, width = shape
    yy, xx = np.indices(shape, dtype=np.float64)
    image = np.full(shape, float(background))
    for x0, y0, amplitude, sigma_x, sigma_y, theta in stars:
        dx = xx - x0
        dy = yy - y0
        u = dx * np.cos(theta) + dy * np.sin(theta)
        v = -dx * np.sin(theta) + dy * np.cos(theta)
        image += amplitude * np.exp(-0.5 * ((u / sigma_x) ** 2 + (v / sigma_y) ** 2))
    if noise > 0:
        rng = np.random.default_rng(seed)
        image += rng.normal(0.0, noise, size=(height, width))
    return image


@pytest.fixture
def card() -> Callable[..., str]:
    """Header card formatter."""
    return fits_card


@pytest.fixture
def fits_bytes() -> Callable[..., bytes]:
    """Factory building FITS files in memory."""
    return build_fits_bytes


@pytest.fixture
def star_image() -> Callable[..., np.ndarray]:
    """Factory for synthetic star fields."""
    return make_star_image


@pytest.fixture
def write_fits(tmp_path: Path) -> Callable[..., str]:
    """Factory writing a raw-built FITS file into the test's temporary directory."""
    def _write(name: str, stored: np.ndarray, bitpix: int = 16, **kwargs) -> str:
        path = tmp_path / name
        path.write_bytes(build_fits_bytes(stored, bitpix=bitpix, **kwargs))
        return str(path)
    return _write


@pytest.fixture
def single_star_fits(write_fits, star_image) -> str:
    """100x100 16-bit frame with one round star (sigma 1.5 px) at the centre."""
    image = star_image((100, 100), stars=[(50.0, 50.0, 5000.0, 1.5, 1.5, 0.0)],
                       background=1000.0, noise=5.0, seed=42)
    return write_fits("single_star.fits", np.round(image).astype(np.int16), bitpix=16)


@pytest.fixture
def astropy_fits(tmp_path: Path) -> Tuple[str, np.ndarray]:
    """Unsigned 16-bit frame written by astropy (stored with BZERO = 32768)."""
    rng = np.random.default_rng(7)
    data = rng.integers(100, 60000, size=(40, 64)).astype(np.uint16)
    header = fits.Header()
    header["OBJECT"] = ("M31", "target name")
    header["EXPTIME"] = 300.0
    header["IMAGETYP"] = "Light Frame"
    path = tmp_path / "astropy_written.fits"
    fits.PrimaryHDU(data=data, header=header).writeto(path)
    return str(path), data


@pytest.fixture
def restore_root_logging():
    """Put the root logger's handlers and level back after a test configures logging."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in saved_handlers:
            handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)
