"""
Sub-frame quality grading from star analysis results.

Turns a FrameAnalysisResult into a 0-100 score, a good/acceptable/bad grade
and human-readable reasons, against limits that can be derived from a
known-good reference frame.
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional

from ..config import QualityThresholds
from .aggregate import FrameAnalysisResult, TileSummary
from .statistics import clamp

logger = logging.getLogger(__name__)

ELONGATION_CAP = 2.5


class FrameGrade(Enum):
    """Grade assigned to an analyzed frame."""
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    BAD = "bad"


@dataclass(frozen=True)
class QualityAssessment:
    """Score, grade and reasons for one frame."""
    score: int
    grade: FrameGrade
    reasons: List[str]

    def to_dict(self):
        return {
            "qualityScore": self.score,
            "classification": self.grade.value,
            "reason": "; ".join(self.reasons),
        }


def worst_tile(result: FrameAnalysisResult) -> Optional[TileSummary]:
    """Tile with the highest maximum elongation, or None without tiles."""
    if not result.tiles:
        return None
    return max(result.tiles, key=lambda tile: tile.max_elongation)


def _elongation(result: FrameAnalysisResult) -> float:
    # Worst case of p90 and max so edge-only trailing is not averaged away
    return max(result.star_elongation_p90, result.star_elongation_max)


def quality_score(result: FrameAnalysisResult, thresholds: QualityThresholds) -> int:
    """
    Score a frame from 0 (unusable) to 100.

    Each metric outside its limit costs a capped, progressive penalty.
    Elongation is penalised from 1.15 upwards, with extra steps for clear
    (>1.35) and severe (>1.5) trailing.
    """
    score = 100.0

    if result.fwhm > thresholds.fwhm_max:
        score -= min(40.0, (result.fwhm - thresholds.fwhm_max) * 8)
    elif result.fwhm < 1.5:
        score -= 10

    if result.star_count < thresholds.stars_min:
        score -= min(30.0, (thresholds.stars_min - result.star_count) * 0.3)

    if result.background_noise > thresholds.noise_max:
        score -= min(20.0, (result.background_noise - thresholds.noise_max) * 60)

    if result.tracking_error > thresholds.tracking_max:
        score -= min(35.0, (result.tracking_error - thresholds.tracking_max) * 5)

    elongation = _elongation(result)
    if elongation > 1.15:
        score -= min(65.0, (min(elongation, ELONGATION_CAP) - 1.15) * 120)
    if elongation > 1.35:
        score -= 15
    if elongation > 1.5:
        score -= 15

    if (result.fwhm < 2.0 and result.star_count > thresholds.stars_min * 1.5
            and elongation < 1.10):
        score += 5

    return int(clamp(math.floor(score + 0.5), 0, 100))


def classify_frame(result: FrameAnalysisResult, thresholds: QualityThresholds) -> FrameGrade:
    """Grade a frame by the number and severity of metrics outside their limits."""
    issues = 0
    severity = 0

    if result.fwhm > thresholds.fwhm_max:
        issues += 1
        excess = (result.fwhm - thresholds.fwhm_max) / thresholds.fwhm_max
        severity += 2 if excess > 0.5 else 1

    if result.star_count < thresholds.stars_min:
        issues += 1
        deficit = (thresholds.stars_min - result.star_count) / thresholds.stars_min
        severity += 2 if deficit > 0.5 else 1

    if result.background_noise > thresholds.noise_max:
        issues += 1
        excess = (result.background_noise - thresholds.noise_max) / thresholds.noise_max
        severity += 2 if excess > 1.0 else 1

    if result.tracking_error > thresholds.tracking_max:
        issues += 1
        excess = (result.tracking_error - thresholds.tracking_max) / thresholds.tracking_max
        severity += 2 if excess > 0.8 else 1

    elongation = _elongation(result)
    if elongation > 1.3:
        issues += 1
        if elongation > 1.6:
            severity += 3
        elif elongation > 1.4:
            severity += 2
        else:
            severity += 1

    if issues == 0:
        return FrameGrade.GOOD
    if issues == 1 and severity <= 0:
        return FrameGrade.GOOD
    if issues <= 1 and severity == 1:
        return FrameGrade.ACCEPTABLE
    if issues <= 2 and severity <= 3:
        return FrameGrade.ACCEPTABLE
    return FrameGrade.BAD


def classification_reasons(result: FrameAnalysisResult, thresholds: QualityThresholds,
                           score: int, grade: FrameGrade) -> List[str]:
    """Human-readable explanation of a grade."""
    reasons = []

    if result.fwhm > thresholds.fwhm_max:
        excess = (result.fwhm - thresholds.fwhm_max) / thresholds.fwhm_max * 100
        reasons.append(f"Poor seeing (FWHM: {result.fwhm:.2f}px, {excess:.0f}% over limit)")
    if result.star_count < thresholds.stars_min:
        deficit = (thresholds.stars_min - result.star_count) / thresholds.stars_min * 100
        reasons.append(f"Low star count ({result.star_count}, {deficit:.0f}% below minimum)")
    if result.background_noise > thresholds.noise_max:
        excess = (result.background_noise - thresholds.noise_max) / thresholds.noise_max * 100
        reasons.append(f"High noise ({result.background_noise * 100:.1f}%, {excess:.0f}% over limit)")
    if result.tracking_error > thresholds.tracking_max:
        excess = (result.tracking_error - thresholds.tracking_max) / thresholds.tracking_max * 100
        reasons.append(f"Tracking error ({result.tracking_error:.1f}px, {excess:.0f}% over limit)")

    elongation = _elongation(result)
    if elongation > 1.3:
        percent = (min(elongation, ELONGATION_CAP) - 1.0) * 100
        if elongation > 1.7:
            reasons.append(f"Severely elongated stars ({percent:.0f}% elongation)")
        elif elongation > 1.5:
            reasons.append(f"Moderately elongated stars ({percent:.0f}% elongation)")
        else:
            reasons.append(f"Slight elongation ({percent:.0f}% elongation)")
        tile = worst_tile(result)
        if tile is not None and tile.max_elongation > 1.35:
            reasons.append(f"Worst tile elongation {min(tile.max_elongation, ELONGATION_CAP):.2f} "
                           f"at ({tile.x},{tile.y})")

    if not reasons:
        if grade is FrameGrade.GOOD:
            reasons.append(f"Excellent quality (Score: {score}/100, Round stars)")
        else:
            reasons.append(f"Meets all quality criteria (Score: {score}/100)")
    return reasons


def assess_frame(result: FrameAnalysisResult,
                 thresholds: Optional[QualityThresholds] = None) -> QualityAssessment:
    """Score, grade and explain one frame."""
    thresholds = thresholds or QualityThresholds()
    score = quality_score(result, thresholds)
    grade = classify_frame(result, thresholds)
    return QualityAssessment(score, grade, classification_reasons(result, thresholds, score, grade))


def thresholds_from_reference(reference: FrameAnalysisResult,
                              base: Optional[QualityThresholds] = None) -> QualityThresholds:
    """
    Derive grading limits from a known-good reference frame.

    Limits are loosened around the reference's own metrics with fixed floors
    (FWHM, stars, tracking) and a ceiling (noise).
    """
    base = base or QualityThresholds()
    adjusted = replace(
        base,
        fwhm_max=max(3.0, reference.fwhm * 1.8),
        stars_min=int(math.floor(max(30, reference.star_count * 0.6))),
        noise_max=min(0.15, reference.background_noise * 2.0),
        tracking_max=max(2.0, reference.tracking_error * 2.5),
    )
    logger.debug(f"Reference thresholds: {adjusted}")
    return adjusted
