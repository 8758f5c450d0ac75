"""
Star detection and shape fitting for one tile.

Stars are seeded at strict 3x3 local maxima above the background threshold,
grown into 8-connected regions bounded around the seed, filtered, and then
measured from intensity-weighted second moments:

- elongation = sigma_major / sigma_minor, clamped to [1, 8]
- FWHM = 2.355 * sqrt(sigma_major * sigma_minor)
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy import ndimage

from .background import BackgroundStats
from .statistics import clamp, percentile

logger = logging.getLogger(__name__)

REGION_RADIUS = 8
MIN_REGION_PIXELS = 12
MIN_BOX_SIDE = 3
MIN_SIGMA_MINOR = 0.4
MAX_ELONGATION = 8.0
FWHM_PER_SIGMA = 2.355
MOMENT_EPSILON = 1e-9

_NEIGHBOURS = ((-1, -1), (-1, 0), (-1, 1),
               (0, -1), (0, 1),
               (1, -1), (1, 0), (1, 1))

_RING = np.ones((3, 3), dtype=bool)
_RING[1, 1] = False


@dataclass(frozen=True)
class StarDetection:
    """Shape of one accepted star; x/y is the weighted centroid in tile pixels."""
    elongation: float
    fwhm: float
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class TileDetections:
    """Accepted stars of one tile plus their elongation summary."""
    stars: Tuple[StarDetection, ...]
    max_elongation: float
    p90_elongation: float

    @property
    def star_count(self) -> int:
        return len(self.stars)


@dataclass
class _Region:
    pixel_count: int
    centroid_x: float
    centroid_y: float
    min_x: int
    max_x: int
    min_y: int
    max_y: int

    @property
    def box_width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def box_height(self) -> int:
        return self.max_y - self.min_y + 1


def find_seeds(samples: np.ndarray, threshold: float) -> np.ndarray:
    """Flat row-major indices of strict 3x3 local maxima at or above threshold."""
    neighbour_max = ndimage.maximum_filter(samples, footprint=_RING,
                                           mode="constant", cval=-np.inf)
    mask = (samples >= threshold) & (samples > neighbour_max)
    return np.flatnonzero(mask)


def _grow_region(samples: np.ndarray, visited: np.ndarray, seed_y: int, seed_x: int,
                 threshold: float, background: float, radius: int) -> _Region:
    height, width = samples.shape
    stack: List[Tuple[int, int]] = [(seed_y, seed_x)]
    visited[seed_y, seed_x] = True

    count = 0
    sum_w = sum_wx = sum_wy = 0.0
    min_x = max_x = seed_x
    min_y = max_y = seed_y

    while stack:
        y, x = stack.pop()
        weight = max(0.0, float(samples[y, x]) - background)
        count += 1
        sum_w += weight
        sum_wx += weight * x
        sum_wy += weight * y
        min_x, max_x = min(min_x, x), max(max_x, x)
        min_y, max_y = min(min_y, y), max(max_y, y)

        for dy, dx in _NEIGHBOURS:
            ny, nx = y + dy, x + dx
            if ny < 0 or nx < 0 or ny >= height or nx >= width:
                continue
            if abs(ny - seed_y) > radius or abs(nx - seed_x) > radius:
                continue
            if visited[ny, nx] or not samples[ny, nx] >= threshold:
                continue
            visited[ny, nx] = True
            stack.append((ny, nx))

    if sum_w > 0:
        cx, cy = sum_wx / sum_w, sum_wy / sum_w
    else:
        cx, cy = float(seed_x), float(seed_y)
    return _Region(count, cx, cy, min_x, max_x, min_y, max_y)


def _rejected(region: _Region, width: int, height: int) -> bool:
    if region.pixel_count < MIN_REGION_PIXELS:
        return True
    # Truncated by the tile edge; the true shape is unknown
    if region.min_x == 0 or region.min_y == 0 or region.max_x == width - 1 or region.max_y == height - 1:
        return True
    return region.box_width < MIN_BOX_SIDE or region.box_height < MIN_BOX_SIDE


def second_moments(patch: np.ndarray, background: float) -> Optional[Tuple[float, float, float]]:
    """
    Intensity-weighted central second moments (mxx, myy, mxy) of a patch.

    Weights are ``max(0, value - background)``. Returns None when the patch
    carries no weight.
    """
    weights = np.clip(patch - background, 0.0, None)
    weights[~np.isfinite(weights)] = 0.0
    total = float(weights.sum())
    if total <= 0:
        return None
    yy, xx = np.indices(patch.shape, dtype=np.float64)
    cx = float((weights * xx).sum()) / total
    cy = float((weights * yy).sum()) / total
    dx = xx - cx
    dy = yy - cy
    mxx = float((weights * dx * dx).sum()) / total
    myy = float((weights * dy * dy).sum()) / total
    mxy = float((weights * dx * dy).sum()) / total
    return mxx, myy, mxy


def ellipse_axes(mxx: float, myy: float, mxy: float) -> Tuple[float, float]:
    """
    Major/minor standard deviations from a 2x2 moment matrix.

    Eigenvalues via the trace/determinant closed form, each floored at a
    small epsilon before the square root.
    """
    half_trace = 0.5 * (mxx + myy)
    det = mxx * myy - mxy * mxy
    disc = math.sqrt(max(0.0, half_trace * half_trace - det))
    lambda1 = half_trace + disc
    lambda2 = half_trace - disc
    return math.sqrt(max(lambda1, MOMENT_EPSILON)), math.sqrt(max(lambda2, MOMENT_EPSILON))


def shape_from_axes(sigma_major: float, sigma_minor: float) -> Optional[Tuple[float, float]]:
    """
    Elongation and FWHM for a fitted ellipse.

    Returns None for non-finite axes or a minor axis under 0.4 px (lines,
    cosmic-ray hits).
    """
    if not (math.isfinite(sigma_major) and math.isfinite(sigma_minor)):
        return None
    if sigma_minor < MIN_SIGMA_MINOR:
        return None
    elongation = clamp(max(1.0, sigma_major / sigma_minor), 1.0, MAX_ELONGATION)
    fwhm = FWHM_PER_SIGMA * math.sqrt(sigma_major * sigma_minor)
    return elongation, fwhm


def summarize_elongations(stars: List[StarDetection]) -> Tuple[float, float]:
    """(max, p90) elongation of a star list; (1.0, 1.0) when empty."""
    if not stars:
        return 1.0, 1.0
    ordered = sorted(star.elongation for star in stars)
    return ordered[-1], percentile(ordered, 0.9)


def detect_stars(samples: np.ndarray, background: BackgroundStats,
                 radius: int = REGION_RADIUS) -> TileDetections:
    """
    Detect and measure stars in one tile buffer.

    Args:
        samples: 2-D float tile buffer
        background: Statistics from estimate_background for the same tile
        radius: Maximum distance (per axis) a region may grow from its seed

    Returns:
        TileDetections: accepted stars in row-major seed order
    """
    samples = np.asarray(samples, dtype=np.float64)
    height, width = samples.shape
    visited = np.zeros(samples.shape, dtype=bool)
    stars: List[StarDetection] = []
    rejected = 0

    for flat_index in find_seeds(samples, background.threshold):
        seed_y, seed_x = divmod(int(flat_index), width)
        if visited[seed_y, seed_x]:
            continue

        region = _grow_region(samples, visited, seed_y, seed_x,
                              background.threshold, background.median, radius)
        if _rejected(region, width, height):
            rejected += 1
            continue

        patch = samples[region.min_y:region.max_y + 1, region.min_x:region.max_x + 1]
        moments = second_moments(patch, background.median)
        if moments is None:
            rejected += 1
            continue
        shape = shape_from_axes(*ellipse_axes(*moments))
        if shape is None:
            rejected += 1
            continue

        elongation, fwhm = shape
        stars.append(StarDetection(elongation=elongation, fwhm=fwhm,
                                   x=region.centroid_x, y=region.centroid_y))

    max_elongation, p90_elongation = summarize_elongations(stars)
    logger.debug(f"Tile {width}x{height}: {len(stars)} stars accepted, {rejected} regions rejected")
    return TileDetections(tuple(stars), max_elongation, p90_elongation)
