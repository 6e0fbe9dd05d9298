"""Best-Segment Extractor.

Finds the stretch of a single workout that is the best evidence of current
fitness: fast, long enough to mean something, and recorded cleanly.

Design principles:
    - Pure: parallel arrays in, value objects out. No DB, no IO.
    - Windows are (start, end) index pairs into the shared read-only arrays;
      no per-candidate slicing. GPS gap counts and HR sums come from prefix
      arrays so each window is scored in constant time.
    - Trust gates before speed: a window with poor GPS integrity is dropped
      no matter how fast it looks.
    - Failure is explicit: when nothing survives, the result says why.

Public API:
    find_best_segment(stream, config=...) -> SegmentSearchResult
    analyze_window_quality(stream, start, end, config=...) -> WindowQuality
    segment_to_effort(candidate, workout_date, workout_id) -> Effort
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Optional, Sequence

from core.fitness_config import FitnessConfig, fitness_config
from services.fitness_models import (
    ActivityStreamData,
    ConfidenceLevel,
    Effort,
    EffortLevel,
    EffortSource,
)
from services.vdot_calculator import METERS_PER_MILE, calculate_vdot


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WindowQuality:
    gps_gap_count: int
    gps_integrity: float
    hr_stability: float
    hr_plausibility: float
    hr_sample_count: int
    hr_mean: Optional[float]
    hr_std_dev: Optional[float]
    hr_drift_pct: Optional[float]
    quality: float


@dataclass(frozen=True)
class SegmentCandidate:
    start_index: int
    end_index: int
    start_seconds: float
    end_seconds: float
    distance_miles: float
    duration_seconds: float
    pace_seconds_per_mile: float
    vdot: float
    quality_score: float
    score: float
    confidence: ConfidenceLevel
    gps_gap_count: int
    gps_integrity: float
    hr_stability: float
    hr_plausibility: float
    hr_drift_pct: Optional[float]
    hr_std_dev: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        return data


@dataclass(frozen=True)
class SegmentSearchResult:
    success: bool
    best: Optional[SegmentCandidate]
    candidate_count: int
    point_count: int
    min_distance_miles: float
    max_distance_miles: float
    reason: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "best": self.best.to_dict() if self.best else None,
            "candidate_count": self.candidate_count,
            "point_count": self.point_count,
            "min_distance_miles": round(self.min_distance_miles, 3),
            "max_distance_miles": self.max_distance_miles,
            "reason": self.reason,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _clamp01(value: float) -> float:
    """Clamp a float to [0.0, 1.0]."""
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _plausible_hr(value: Optional[float], config: FitnessConfig) -> bool:
    return value is not None and config.hr_min_plausible < value < config.hr_max_plausible


class _StreamIndex:
    """Prefix arrays over one stream so any window can be scored in O(1)."""

    def __init__(self, distance: Sequence[float], time: Sequence[float],
                 heartrate: Sequence[Optional[float]], n: int, config: FitnessConfig):
        self.distance = distance
        self.time = time
        self.n = n
        self.config = config

        # gap_prefix[k] = gap events on steps 1..k
        self.gap_prefix = [0] * n
        for i in range(1, n):
            dt = time[i] - time[i - 1]
            dd = distance[i] - distance[i - 1]
            events = 0
            if dt > config.gps_max_sample_gap_s:
                events += 1
            if dt > 0 and dd / dt > config.gps_max_speed_mi_per_s:
                events += 1
            if dd < -config.gps_backtrack_mi:
                events += 1
            self.gap_prefix[i] = self.gap_prefix[i - 1] + events

        # valid_before[k] = plausible HR samples in [0, k)
        self.valid_before = [0] * (n + 1)
        self.hr_sum = [0.0]
        self.hr_sq = [0.0]
        for i in range(n):
            value = heartrate[i] if i < len(heartrate) else None
            if _plausible_hr(value, config):
                self.valid_before[i + 1] = self.valid_before[i] + 1
                self.hr_sum.append(self.hr_sum[-1] + value)
                self.hr_sq.append(self.hr_sq[-1] + value * value)
            else:
                self.valid_before[i + 1] = self.valid_before[i]

    def gap_count(self, start: int, end: int) -> int:
        return self.gap_prefix[end] - self.gap_prefix[start]

    def quality(self, start: int, end: int) -> WindowQuality:
        cfg = self.config
        points = end - start + 1

        gaps = self.gap_count(start, end)
        gps_integrity = _clamp01(1 - gaps / max(2.0, points / 10.0))

        lo = self.valid_before[start]
        hi = self.valid_before[end + 1]
        samples = hi - lo
        required = max(cfg.hr_min_samples, int(math.floor(points * cfg.hr_min_coverage)))

        if samples < required:
            stability = cfg.hr_neutral_stability
            plausibility = cfg.hr_neutral_plausibility
            mean = std = drift = None
        else:
            mean = (self.hr_sum[hi] - self.hr_sum[lo]) / samples
            variance = max(0.0, (self.hr_sq[hi] - self.hr_sq[lo]) / samples - mean * mean)
            std = math.sqrt(variance)
            cv = std / mean if mean > 0 else 0.0

            third = max(2, samples // 3)
            first_mean = (self.hr_sum[lo + third] - self.hr_sum[lo]) / third
            last_mean = (self.hr_sum[hi] - self.hr_sum[hi - third]) / third
            drift = (last_mean - first_mean) / first_mean * 100 if first_mean > 0 else 0.0

            stability = _clamp01(1 - cfg.hr_cv_weight * cv - abs(drift) / cfg.hr_drift_divisor)

            penalty = 0.0
            if mean < cfg.hr_race_band_low:
                penalty += (cfg.hr_race_band_low - mean) / 80.0
            if mean > cfg.hr_race_band_high:
                penalty += (mean - cfg.hr_race_band_high) / 50.0
            plausibility = _clamp01(1 - penalty)

        quality = (
            cfg.quality_gps_weight * gps_integrity
            + cfg.quality_stability_weight * stability
            + cfg.quality_plausibility_weight * plausibility
        )
        return WindowQuality(
            gps_gap_count=gaps,
            gps_integrity=gps_integrity,
            hr_stability=stability,
            hr_plausibility=plausibility,
            hr_sample_count=samples,
            hr_mean=mean,
            hr_std_dev=std,
            hr_drift_pct=drift,
            quality=quality,
        )


def _confidence_for_quality(quality: float, config: FitnessConfig) -> ConfidenceLevel:
    if quality >= config.segment_high_quality:
        return ConfidenceLevel.HIGH
    if quality >= config.segment_medium_quality:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def analyze_window_quality(
    stream: ActivityStreamData,
    start: int,
    end: int,
    config: FitnessConfig = fitness_config,
) -> WindowQuality:
    """Score a single [start, end] window (inclusive indices)."""
    n = stream.point_count
    if not 0 <= start < end < n:
        raise ValueError(f"window [{start}, {end}] outside stream of {n} points")
    index = _StreamIndex(stream.distance_miles, stream.time_seconds, stream.heartrate, n, config)
    return index.quality(start, end)


def find_best_segment(
    stream: ActivityStreamData,
    config: FitnessConfig = fitness_config,
    min_distance_meters: Optional[float] = None,
    max_distance_miles: Optional[float] = None,
) -> SegmentSearchResult:
    """
    Search all windows of one workout for the best trustworthy effort.

    Candidate score = VDOT x quality. Windows failing the distance, duration,
    pace, GPS-integrity or VDOT-range gates are discarded.
    """
    cfg = config
    min_m = cfg.segment_min_distance_m if min_distance_meters is None else min_distance_meters
    min_miles = max(min_m / METERS_PER_MILE, cfg.segment_min_distance_floor_mi)
    max_miles = cfg.segment_max_distance_mi if max_distance_miles is None else max_distance_miles
    n = stream.point_count

    if n < cfg.segment_min_points:
        return SegmentSearchResult(
            success=False,
            best=None,
            candidate_count=0,
            point_count=n,
            min_distance_miles=min_miles,
            max_distance_miles=max_miles,
            reason="insufficient_points",
            message=f"Stream has {n} points; at least {cfg.segment_min_points} are needed",
        )

    distance = stream.distance_miles
    time = stream.time_seconds
    index = _StreamIndex(distance, time, stream.heartrate, n, cfg)

    best: Optional[SegmentCandidate] = None
    candidate_count = 0

    for start in range(0, n - 10, cfg.segment_start_step):
        for end in range(start + cfg.segment_min_span, n, cfg.segment_end_step):
            seg_miles = distance[end] - distance[start]
            if seg_miles < min_miles:
                continue
            if seg_miles > max_miles:
                break

            duration = time[end] - time[start]
            if duration < cfg.segment_min_duration_s or duration > cfg.segment_max_duration_s:
                continue
            pace = duration / seg_miles
            if pace <= cfg.segment_min_pace_s or pace > cfg.segment_max_pace_s:
                continue

            quality = index.quality(start, end)
            if quality.gps_integrity < cfg.gps_integrity_floor:
                continue

            vdot = calculate_vdot(seg_miles * METERS_PER_MILE, duration)
            if vdot < cfg.vdot_min or vdot > cfg.segment_vdot_max:
                continue

            candidate_count += 1
            score = vdot * quality.quality
            if best is not None and score <= best.score:
                continue

            best = SegmentCandidate(
                start_index=start,
                end_index=end,
                start_seconds=time[start],
                end_seconds=time[end],
                distance_miles=seg_miles,
                duration_seconds=duration,
                pace_seconds_per_mile=pace,
                vdot=vdot,
                quality_score=quality.quality,
                score=score,
                confidence=_confidence_for_quality(quality.quality, cfg),
                gps_gap_count=quality.gps_gap_count,
                gps_integrity=quality.gps_integrity,
                hr_stability=quality.hr_stability,
                hr_plausibility=quality.hr_plausibility,
                hr_drift_pct=quality.hr_drift_pct,
                hr_std_dev=quality.hr_std_dev,
            )

    if best is None:
        return SegmentSearchResult(
            success=False,
            best=None,
            candidate_count=0,
            point_count=n,
            min_distance_miles=min_miles,
            max_distance_miles=max_miles,
            reason="no_qualifying_window",
            message=(
                f"No window between {min_miles:.2f} and {max_miles:.1f} mi passed the "
                "duration, pace, GPS and VDOT gates"
            ),
        )

    return SegmentSearchResult(
        success=True,
        best=best,
        candidate_count=candidate_count,
        point_count=n,
        min_distance_miles=min_miles,
        max_distance_miles=max_miles,
    )


def segment_to_effort(candidate: SegmentCandidate, workout_date: date,
                      workout_id: Optional[str] = None) -> Effort:
    return Effort(
        distance_meters=candidate.distance_miles * METERS_PER_MILE,
        duration_seconds=candidate.duration_seconds,
        date=workout_date,
        source=EffortSource.WORKOUT_SEGMENT,
        effort_level=EffortLevel.HARD,
        workout_id=workout_id,
    )
