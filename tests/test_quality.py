"""
Tests for starqc.core.quality - scoring and grading of analyzed frames
"""
import pytest

from starqc.config import QualityThresholds
from starqc.core.aggregate import FrameAnalysisResult, TileSummary
from starqc.core.quality import (
    FrameGrade,
    assess_frame,
    classify_frame,
    quality_score,
    thresholds_from_reference,
    worst_tile,
)


def _result(**overrides):
    values = dict(
        star_count=100,
        fwhm=3.0,
        star_elongation_p90=1.05,
        star_elongation_max=1.08,
        background_noise=0.02,
        tracking_error=0.2,
        tiles=(),
    )
    values.update(overrides)
    return FrameAnalysisResult(**values)


class TestQualityScore:
    """Test the 0-100 score."""

    def setup_method(self):
        self.thresholds = QualityThresholds()

    def test_clean_frame_scores_full(self):
        assert quality_score(_result(), self.thresholds) == 100

    def test_slight_elongation_penalty(self):
        result = _result(star_elongation_p90=1.32, star_elongation_max=1.32)
        # 100 - (1.32 - 1.15) * 120 = 79.6
        assert quality_score(result, self.thresholds) == 80

    def test_severe_frame_clamped_to_zero(self):
        result = _result(fwhm=9.0, star_count=10, background_noise=0.05, tracking_error=4.0,
                         star_elongation_p90=2.0, star_elongation_max=2.0)
        assert quality_score(result, self.thresholds) == 0

    def test_small_fwhm_penalty(self):
        result = _result(fwhm=1.2, star_count=60)
        assert quality_score(result, self.thresholds) == 90

    def test_sharp_dense_field_bonus_capped(self):
        result = _result(fwhm=1.8, star_count=200, star_elongation_p90=1.02, star_elongation_max=1.05)
        assert quality_score(result, self.thresholds) == 100

    def test_max_elongation_counts(self):
        round_p90 = _result(star_elongation_p90=1.05, star_elongation_max=1.6)
        assert quality_score(round_p90, self.thresholds) < 60


class TestClassifyFrame:
    """Test good/acceptable/bad grading."""

    def setup_method(self):
        self.thresholds = QualityThresholds()

    def test_good(self):
        assert classify_frame(_result(), self.thresholds) is FrameGrade.GOOD

    def test_single_minor_issue_acceptable(self):
        result = _result(star_elongation_p90=1.32, star_elongation_max=1.32)
        assert classify_frame(result, self.thresholds) is FrameGrade.ACCEPTABLE

    def test_two_minor_issues_acceptable(self):
        result = _result(fwhm=5.5, star_count=40)
        assert classify_frame(result, self.thresholds) is FrameGrade.ACCEPTABLE

    def test_severe_elongation_alone_acceptable(self):
        result = _result(star_elongation_p90=1.7, star_elongation_max=1.9)
        assert classify_frame(result, self.thresholds) is FrameGrade.ACCEPTABLE

    def test_severe_elongation_with_poor_seeing_bad(self):
        result = _result(star_elongation_p90=1.7, star_elongation_max=1.9, fwhm=8.0)
        assert classify_frame(result, self.thresholds) is FrameGrade.BAD

    def test_many_issues_bad(self):
        result = _result(fwhm=9.0, star_count=10, background_noise=0.05, tracking_error=4.0,
                         star_elongation_p90=2.0, star_elongation_max=2.0)
        assert classify_frame(result, self.thresholds) is FrameGrade.BAD


class TestAssessFrame:
    """Test assessments and their reasons."""

    def test_excellent_reason(self):
        assessment = assess_frame(_result())
        assert assessment.grade is FrameGrade.GOOD
        assert assessment.reasons == ["Excellent quality (Score: 100/100, Round stars)"]

    def test_reasons_for_each_issue(self):
        result = _result(fwhm=9.0, star_count=10, background_noise=0.2, tracking_error=4.0,
                         star_elongation_p90=2.0, star_elongation_max=2.0)
        reasons = assess_frame(result).reasons
        assert reasons[0].startswith("Poor seeing (FWHM: 9.00px, 80% over limit)")
        assert reasons[1] == "Low star count (10, 80% below minimum)"
        assert reasons[2] == "High noise (20.0%, 100% over limit)"
        assert reasons[3] == "Tracking error (4.0px, 33% over limit)"
        assert reasons[4] == "Severely elongated stars (100% elongation)"

    def test_worst_tile_reported(self):
        tiles = (
            TileSummary(0, 0, 64, 64, 10, 1.1, 1.05),
            TileSummary(64, 64, 64, 64, 12, 1.9, 1.6),
        )
        result = _result(star_elongation_p90=1.45, star_elongation_max=1.9, tiles=tiles)
        assert worst_tile(result) == tiles[1]
        assert "Worst tile elongation 1.90 at (64,64)" in assess_frame(result).reasons

    def test_worst_tile_without_tiles(self):
        assert worst_tile(_result()) is None

    def test_to_dict(self):
        record = assess_frame(_result(star_elongation_p90=1.32, star_elongation_max=1.32)).to_dict()
        assert record["qualityScore"] == 80
        assert record["classification"] == "acceptable"
        assert record["reason"] == "Slight elongation (32% elongation)"


class TestThresholdsFromReference:
    """Test reference-derived limits."""

    def test_sharp_reference_uses_floors(self):
        reference = _result(fwhm=1.5, star_count=20, background_noise=0.01, tracking_error=0.1)
        thresholds = thresholds_from_reference(reference)
        assert thresholds.fwhm_max == 3.0
        assert thresholds.stars_min == 30
        assert thresholds.noise_max == pytest.approx(0.02)
        assert thresholds.tracking_max == 2.0

    def test_scaled_from_reference(self):
        reference = _result(fwhm=4.0, star_count=500, background_noise=0.1, tracking_error=1.2)
        thresholds = thresholds_from_reference(reference)
        assert thresholds.fwhm_max == pytest.approx(7.2)
        assert thresholds.stars_min == 300
        assert thresholds.noise_max == 0.15
        assert thresholds.tracking_max == pytest.approx(3.0)

    def test_base_is_not_modified(self):
        base = QualityThresholds()
        thresholds_from_reference(_result(fwhm=4.0), base)
        assert base == QualityThresholds()
