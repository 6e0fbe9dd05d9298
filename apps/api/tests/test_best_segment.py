"""
Unit tests for the Best-Segment Extractor

Uses deterministic synthetic streams from fixtures.stream_fixtures.
"""

import pytest
from datetime import date

from fixtures.stream_fixtures import (
    make_broken_gps_stream,
    make_interval_stream,
    make_steady_stream,
)
from services.best_segment import analyze_window_quality, find_best_segment, segment_to_effort
from services.fitness_models import (
    ActivityStreamData,
    ConfidenceLevel,
    EffortLevel,
    EffortSource,
)
from services.vdot_calculator import METERS_PER_MILE


class TestWindowQuality:
    """GPS integrity and HR stability scoring for a single window."""

    def test_clean_window_scores_full_quality(self):
        stream = make_steady_stream()
        quality = analyze_window_quality(stream, 0, 180)
        assert quality.gps_gap_count == 0
        assert quality.gps_integrity == 1.0
        assert quality.quality == pytest.approx(1.0, abs=1e-6)

    def test_gap_lowers_quality(self):
        """A 10-second recording gap inside a 1-mile window scores strictly lower."""
        clean = make_steady_stream()
        gapped = make_steady_stream(gap_at_s=181, gap_len_s=10)

        clean_end = clean.time_seconds.index(360.0)
        gapped_end = gapped.time_seconds.index(360.0)
        clean_quality = analyze_window_quality(clean, 0, clean_end)
        gapped_quality = analyze_window_quality(gapped, 0, gapped_end)

        assert gapped_quality.gps_gap_count == 1
        assert gapped_quality.gps_integrity < clean_quality.gps_integrity
        assert gapped_quality.quality < clean_quality.quality

    def test_missing_hr_is_neutral(self):
        stream = make_steady_stream(hr=None)
        quality = analyze_window_quality(stream, 0, 180)
        assert quality.hr_sample_count == 0
        assert quality.hr_stability == 0.55
        assert quality.hr_plausibility == 0.6
        assert quality.hr_mean is None

    def test_low_hr_is_implausible_for_a_hard_effort(self):
        stream = make_steady_stream(hr=90)
        quality = analyze_window_quality(stream, 0, 180)
        assert quality.hr_plausibility < 1.0

    @pytest.mark.parametrize("start,end", [(-1, 10), (10, 10), (0, 10_000)])
    def test_invalid_window(self, start, end):
        with pytest.raises(ValueError):
            analyze_window_quality(make_steady_stream(), start, end)


class TestFindBestSegment:

    def test_steady_run(self):
        result = find_best_segment(make_steady_stream())
        assert result.success is True
        assert result.candidate_count > 0
        best = result.best
        assert best.pace_seconds_per_mile == pytest.approx(360, abs=1)
        assert best.distance_miles >= 800 / METERS_PER_MILE
        assert best.confidence == ConfidenceLevel.HIGH
        assert 15 <= best.vdot <= 90
        assert best.score == pytest.approx(best.vdot * best.quality_score)

    def test_interval_session_picks_a_rep(self):
        """The best window sits inside a fast rep, not across a jog recovery."""
        result = find_best_segment(make_interval_stream())
        assert result.success is True
        assert result.best.pace_seconds_per_mile == pytest.approx(330, abs=2)

    def test_no_hr_lowers_confidence(self):
        result = find_best_segment(make_steady_stream(hr=None))
        assert result.success is True
        assert result.best.confidence == ConfidenceLevel.MEDIUM

    def test_broken_gps_excluded(self):
        """Windows whose integrity falls below 0.45 never become candidates."""
        result = find_best_segment(make_broken_gps_stream())
        assert result.success is False
        assert result.best is None
        assert result.reason == "no_qualifying_window"
        assert result.message

    def test_insufficient_points(self):
        stream = ActivityStreamData(
            distance_miles=[i * 0.01 for i in range(10)],
            time_seconds=[float(i * 3) for i in range(10)],
        )
        result = find_best_segment(stream)
        assert result.success is False
        assert result.reason == "insufficient_points"
        assert result.point_count == 10

    def test_minimum_distance_override(self):
        result = find_best_segment(make_steady_stream(), min_distance_meters=1609.34)
        assert result.success is True
        assert result.best.distance_miles >= 1.0 - 1e-6

    def test_to_dict(self):
        data = find_best_segment(make_steady_stream()).to_dict()
        assert data["success"] is True
        assert data["best"]["confidence"] == "high"
        assert data["reason"] is None


class TestSegmentToEffort:

    def test_effort_fields(self):
        best = find_best_segment(make_steady_stream()).best
        effort = segment_to_effort(best, date(2024, 5, 1), "w1")
        assert effort.source == EffortSource.WORKOUT_SEGMENT
        assert effort.effort_level == EffortLevel.HARD
        assert effort.distance_meters == pytest.approx(best.distance_miles * METERS_PER_MILE)
        assert effort.duration_seconds == best.duration_seconds
        assert effort.workout_id == "w1"
