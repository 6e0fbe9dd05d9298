"""
Unit tests for the Effort Normalizer

Tests weather/elevation pace penalties, effort multipliers, time floors
and confidence scoring.
"""

import pytest
from datetime import date

from core.exceptions import InvalidEffortError, VdotOutOfRangeError
from services.effort_normalizer import (
    calculate_elevation_adjustment,
    calculate_weather_adjustment,
    infer_effort_level,
    normalize_effort,
    resolve_race_effort,
    score_effort_confidence,
)
from services.fitness_models import (
    ConfidenceLevel,
    Effort,
    EffortContext,
    EffortLevel,
    RaceResultRecord,
    WorkoutRecord,
)


def _effort(**overrides) -> Effort:
    fields = dict(distance_meters=5000, duration_seconds=1200, date=date(2024, 5, 1))
    fields.update(overrides)
    return Effort(**fields)


class TestWeatherAdjustment:
    """Pace penalty (sec/mile) from temperature, humidity and dew point."""

    @pytest.mark.parametrize("temp_f,humidity,expected", [
        (None, None, 0),
        (30, None, 0),      # no cold-weather term
        (45, None, 0),      # comfort threshold
        (60, None, 6),      # 15 x 0.4
        (80, None, 20),     # 25 x 0.4 + 10 x 1.0
        (91, None, 34),     # 10 + 15 + 6 x 1.5
        (75, 80, 18),       # 15 + (80 - 50) x 0.1
        (60, 80, 7),        # 6 + (80 - 60) x 0.05
        (50, 90, 2),        # below both humidity temperature gates
    ])
    def test_weather_table(self, temp_f, humidity, expected):
        assert calculate_weather_adjustment(temp_f, humidity) == expected

    def test_dew_point_adds_penalty(self):
        assert calculate_weather_adjustment(75, None, dew_point_f=70) == 15 + 3

    def test_monotonic_in_temperature(self):
        """Warmer is never easier."""
        values = [calculate_weather_adjustment(t, 70) for t in range(20, 105, 5)]
        assert values == sorted(values)


class TestElevationAdjustment:

    def test_twelve_seconds_per_hundred_feet_per_mile(self):
        assert calculate_elevation_adjustment(300, 3.0) == 12

    @pytest.mark.parametrize("gain,miles", [(None, 3.0), (0, 3.0), (-50, 3.0), (300, 0)])
    def test_zero_when_unknown_or_flat(self, gain, miles):
        assert calculate_elevation_adjustment(gain, miles) == 0


class TestNormalizeEffort:
    """Full normalization of a single effort."""

    def test_twenty_minute_5k_no_context(self):
        """All-out 20:00 5K with no context normalizes to ~49.8."""
        result = normalize_effort(_effort())
        assert result.equivalent_time_seconds == 1200
        assert result.equivalent_vdot == pytest.approx(49.8, abs=0.05)
        assert result.effort_multiplier == 1.0
        # 1.0 - 0.05 (no weather) - 0.03 (no elevation)
        assert result.confidence_score == pytest.approx(0.92)
        assert result.confidence == ConfidenceLevel.HIGH
        assert result.confidence_weight == 1.0

    def test_heat_makes_effort_worth_more(self):
        plain = normalize_effort(_effort())
        hot = normalize_effort(_effort(weather_temp_f=80))
        assert hot.weather_adjust_sec_per_mile == 20
        assert hot.equivalent_time_seconds < plain.equivalent_time_seconds
        assert hot.equivalent_vdot > plain.equivalent_vdot

    def test_adjusted_time_floor(self):
        """Penalties can take at most 15% off the raw time."""
        result = normalize_effort(_effort(elevation_gain_ft=10000))
        assert result.equivalent_time_seconds == pytest.approx(1200 * 0.85)

    def test_sub_max_effort_multiplier(self):
        result = normalize_effort(_effort(effort_level=EffortLevel.HARD))
        assert result.effort_multiplier == 0.98
        assert result.equivalent_time_seconds == pytest.approx(1176)

    def test_equivalent_time_floor(self):
        """Combined adjustments never go below 82% of raw."""
        result = normalize_effort(_effort(effort_level=EffortLevel.EASY, elevation_gain_ft=10000))
        assert result.equivalent_time_seconds == pytest.approx(1200 * 0.82)

    def test_effort_fields_win_over_context(self):
        context = EffortContext(weather_temp_f=90, elevation_gain_ft=500)
        result = normalize_effort(_effort(weather_temp_f=50, elevation_gain_ft=0), context)
        assert result.weather_adjust_sec_per_mile == 2
        assert result.elevation_adjust_sec_per_mile == 0

    def test_context_fills_missing_fields(self):
        context = EffortContext(weather_temp_f=80, effort_level=EffortLevel.MODERATE)
        result = normalize_effort(_effort(), context)
        assert result.weather_adjust_sec_per_mile == 20
        assert result.effort_multiplier == 0.96

    def test_source_effort_untouched(self):
        effort = _effort(weather_temp_f=85)
        normalize_effort(effort)
        assert effort.duration_seconds == 1200

    @pytest.mark.parametrize("distance,seconds", [(0, 1200), (5000, 0), (-5, 100)])
    def test_invalid_effort_raises(self, distance, seconds):
        with pytest.raises(InvalidEffortError):
            normalize_effort(_effort(distance_meters=distance, duration_seconds=seconds))

    def test_out_of_range_raises(self):
        """A 10:00 5K is outside the accepted domain."""
        with pytest.raises(VdotOutOfRangeError):
            normalize_effort(_effort(duration_seconds=600))


class TestConfidence:

    @pytest.mark.parametrize("level,has_weather,has_elevation,tier,weight", [
        (EffortLevel.ALL_OUT, True, True, ConfidenceLevel.HIGH, 1.0),
        (EffortLevel.HARD, True, True, ConfidenceLevel.HIGH, 1.0),
        (EffortLevel.HARD, False, False, ConfidenceLevel.MEDIUM, 0.85),
        (EffortLevel.MODERATE, True, True, ConfidenceLevel.MEDIUM, 0.85),
        (EffortLevel.EASY, False, False, ConfidenceLevel.LOW, 0.7),
    ])
    def test_tiers(self, level, has_weather, has_elevation, tier, weight):
        _, result_tier, result_weight = score_effort_confidence(level, has_weather, has_elevation)
        assert result_tier == tier
        assert result_weight == weight

    def test_missing_context_lowers_score(self):
        full, _, _ = score_effort_confidence(EffortLevel.ALL_OUT, True, True)
        bare, _, _ = score_effort_confidence(EffortLevel.ALL_OUT, False, False)
        assert bare < full


class TestInferEffortLevel:

    @pytest.mark.parametrize("workout_type,avg_hr,max_hr,expected", [
        ("race", 172, 185, EffortLevel.ALL_OUT),
        ("race", 160, 185, EffortLevel.HARD),
        ("race", 140, 185, EffortLevel.MODERATE),
        ("race", None, None, EffortLevel.MODERATE),
        ("tempo", None, None, EffortLevel.HARD),
        ("interval", None, None, EffortLevel.HARD),
        ("easy", 140, 185, EffortLevel.MODERATE),
    ])
    def test_inference(self, workout_type, avg_hr, max_hr, expected):
        workout = WorkoutRecord(
            id="w1",
            date=date(2024, 5, 1),
            workout_type=workout_type,
            avg_hr=avg_hr,
            max_hr=max_hr,
        )
        assert infer_effort_level(workout) == expected

    def test_athlete_max_hr_wins(self):
        workout = WorkoutRecord(id="w1", date=date(2024, 5, 1), workout_type="race", avg_hr=160, max_hr=175)
        assert infer_effort_level(workout, max_hr=200) == EffortLevel.MODERATE


class TestResolveRaceEffort:

    @staticmethod
    def _race(level=None) -> RaceResultRecord:
        return RaceResultRecord(id="r1", date=date(2024, 5, 1), distance_meters=5000,
                                finish_time_seconds=1200, effort_level=level, workout_id="w1")

    def test_reported_level_kept(self):
        workout = WorkoutRecord(id="w1", date=date(2024, 5, 1), workout_type="race", avg_hr=140, max_hr=185)
        assert resolve_race_effort(self._race(EffortLevel.ALL_OUT), workout) == EffortLevel.ALL_OUT

    def test_unreported_level_graded_from_workout(self):
        workout = WorkoutRecord(id="w1", date=date(2024, 5, 1), workout_type="race", avg_hr=160, max_hr=185)
        assert resolve_race_effort(self._race(), workout) == EffortLevel.HARD

    def test_unreported_without_workout_is_all_out(self):
        assert resolve_race_effort(self._race()) == EffortLevel.ALL_OUT
