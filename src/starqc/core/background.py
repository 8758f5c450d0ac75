"""
Robust background and noise estimation for one tile.

Statistics come from a bounded systematic sample so the cost does not grow
with the tile size.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
from astropy.stats import median_absolute_deviation

from .statistics import clamp, percentile

logger = logging.getLogger(__name__)

DEFAULT_K_SIGMA = 4.0
DEFAULT_SAMPLE_LIMIT = 20000
MAD_TO_SIGMA = 1.4826
NOISE_FLOOR = 0.005
NOISE_CEILING = 0.25
EPSILON = 1e-6


@dataclass(frozen=True)
class BackgroundStats:
    """Background level, spread and detection threshold of a tile."""
    median: float
    mad: float
    sigma: float
    threshold: float
    p05: float
    p95: float
    noise: float
    sample_count: int


def estimate_background(samples: np.ndarray, k_sigma: float = DEFAULT_K_SIGMA,
                        sample_limit: int = DEFAULT_SAMPLE_LIMIT) -> BackgroundStats:
    """
    Estimate background statistics from a tile's samples.

    Args:
        samples: Tile pixel buffer (any shape)
        k_sigma: Detection threshold in robust sigmas above the median
        sample_limit: Upper bound on the number of samples examined

    Returns:
        BackgroundStats: median, MAD, robust sigma (MAD * 1.4826), threshold,
        5th/95th percentiles and the normalized noise proxy
        ``clamp(sigma / max(eps, p95 - p05), 0.005, 0.25)``.
    """
    flat = np.asarray(samples, dtype=np.float64).ravel()
    stride = max(1, math.ceil(flat.size / sample_limit))
    sample = flat[::stride]
    sample = sample[np.isfinite(sample)]

    if sample.size == 0:
        logger.debug("No finite samples in tile; using zero background")
        return BackgroundStats(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, NOISE_FLOOR, 0)

    ordered = np.sort(sample)
    med = float(np.median(ordered))
    mad = float(median_absolute_deviation(ordered))
    sigma = mad * MAD_TO_SIGMA
    p05 = percentile(ordered, 0.05)
    p95 = percentile(ordered, 0.95)
    noise = clamp(sigma / max(EPSILON, p95 - p05), NOISE_FLOOR, NOISE_CEILING)

    return BackgroundStats(
        median=med,
        mad=mad,
        sigma=sigma,
        threshold=med + k_sigma * sigma,
        p05=p05,
        p95=p95,
        noise=noise,
        sample_count=int(sample.size),
    )
