"""Small pure helpers shared by the background, detection and aggregation steps."""

import math
from typing import Sequence


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Nearest-rank-below percentile of an already sorted sequence.

    Picks ``sorted_values[floor(p * (n - 1))]`` with the index clamped to the
    valid range. No interpolation.
    """
    n = len(sorted_values)
    if n == 0:
        raise ValueError("percentile of an empty sequence")
    index = int(clamp(math.floor(p * (n - 1)), 0, n - 1))
    return float(sorted_values[index])
