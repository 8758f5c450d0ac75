"""
Frame-level aggregation of per-tile detections.

Combines all accepted stars into whole-frame FWHM and elongation percentiles
and derives a bounded tracking-error proxy from the 90th-percentile
elongation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from .background import BackgroundStats
from .detection import TileDetections
from .pixel_reader import TileRequest
from .statistics import percentile

logger = logging.getLogger(__name__)

DEFAULT_BACKGROUND_NOISE = 0.02
TRACKING_ELONGATION_CAP = 2.5
TRACKING_GAIN = 4.0


@dataclass(frozen=True)
class TileSummary:
    """Diagnostic summary of one analyzed tile."""
    x: int
    y: int
    w: int
    h: int
    star_count: int
    max_elongation: float
    p90_elongation: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "w": self.w,
            "h": self.h,
            "starCount": self.star_count,
            "maxElongation": self.max_elongation,
            "p90Elongation": self.p90_elongation,
        }


@dataclass(frozen=True)
class TileResult:
    """Everything measured in one tile, as handed to the aggregator."""
    tile: TileRequest
    background: BackgroundStats
    detections: TileDetections

    def summary(self) -> TileSummary:
        return TileSummary(
            x=self.tile.x,
            y=self.tile.y,
            w=self.tile.w,
            h=self.tile.h,
            star_count=self.detections.star_count,
            max_elongation=self.detections.max_elongation,
            p90_elongation=self.detections.p90_elongation,
        )


@dataclass(frozen=True)
class FrameAnalysisResult:
    """Whole-frame star statistics."""
    star_count: int
    fwhm: float
    star_elongation_p90: float
    star_elongation_max: float
    background_noise: float
    tracking_error: float
    tiles: Tuple[TileSummary, ...] = field(default_factory=tuple)

    @property
    def star_elongation(self) -> float:
        """Headline elongation; the frame's 90th percentile."""
        return self.star_elongation_p90

    def to_dict(self) -> Dict[str, Any]:
        """Result record using the host application's camelCase keys."""
        return {
            "starCount": self.star_count,
            "fwhm": self.fwhm,
            "starElongation": self.star_elongation,
            "starElongationP90": self.star_elongation_p90,
            "starElongationMax": self.star_elongation_max,
            "backgroundNoise": self.background_noise,
            "trackingError": self.tracking_error,
            "tiles": [tile.to_dict() for tile in self.tiles],
        }

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> "FrameAnalysisResult":
        """Rebuild a result from a to_dict() record (extra keys ignored)."""
        return cls(
            star_count=int(record["starCount"]),
            fwhm=float(record["fwhm"]),
            star_elongation_p90=float(record["starElongationP90"]),
            star_elongation_max=float(record["starElongationMax"]),
            background_noise=float(record["backgroundNoise"]),
            tracking_error=float(record["trackingError"]),
            tiles=tuple(
                TileSummary(
                    x=int(t["x"]), y=int(t["y"]), w=int(t["w"]), h=int(t["h"]),
                    star_count=int(t["starCount"]),
                    max_elongation=float(t["maxElongation"]),
                    p90_elongation=float(t["p90Elongation"]),
                )
                for t in record.get("tiles", [])
            ),
        )


def tracking_error(p90_elongation: float) -> float:
    """Zero for round stars, rising linearly, flat once elongation reaches 2.5."""
    return max(0.0, (min(p90_elongation, TRACKING_ELONGATION_CAP) - 1.0) * TRACKING_GAIN)


def mean_noise(noise_values: Sequence[float]) -> float:
    if not noise_values:
        return DEFAULT_BACKGROUND_NOISE
    return sum(noise_values) / len(noise_values)


def aggregate_frame(tile_results: Sequence[TileResult]) -> FrameAnalysisResult:
    """
    Combine per-tile results into a frame result.

    With no accepted stars the result is neutral: FWHM 0, elongations 1.0 and
    no tracking error. Background noise is always the mean of the tile noise
    proxies (0.02 when there are no tiles).
    """
    tiles = tuple(result.summary() for result in tile_results)
    noise = mean_noise([result.background.noise for result in tile_results])

    fwhms: List[float] = []
    elongations: List[float] = []
    for result in tile_results:
        for star in result.detections.stars:
            fwhms.append(star.fwhm)
            elongations.append(star.elongation)

    if not fwhms:
        logger.debug("No stars in any tile; returning neutral frame result")
        return FrameAnalysisResult(
            star_count=0,
            fwhm=0.0,
            star_elongation_p90=1.0,
            star_elongation_max=1.0,
            background_noise=noise,
            tracking_error=0.0,
            tiles=tiles,
        )

    fwhms.sort()
    elongations.sort()
    p90 = percentile(elongations, 0.9)
    return FrameAnalysisResult(
        star_count=len(fwhms),
        fwhm=percentile(fwhms, 0.5),
        star_elongation_p90=p90,
        star_elongation_max=elongations[-1],
        background_noise=noise,
        tracking_error=tracking_error(p90),
        tiles=tiles,
    )

