"""
Effort Normalizer

Converts a raw race/effort performance into an equivalent all-out time on a
flat course in comfortable weather, then into VDOT.

Steps:
1. Weather penalty (sec/mile) from temperature, humidity and dew point.
2. Elevation penalty (sec/mile), ~12 s/mi per 100 ft/mi of gain.
3. Adjusted time = raw - penalty * miles, floored at 85% of raw.
4. Effort multiplier for sub-maximal efforts, floored at 82% of raw.
5. Confidence from effort level, minus penalties for missing context.

The source Effort is never mutated; a NormalizedEffort is returned.
"""
from typing import Optional

from core.exceptions import InvalidEffortError
from core.fitness_config import FitnessConfig, fitness_config
from services.fitness_models import (
    ConfidenceLevel,
    Effort,
    EffortContext,
    EffortLevel,
    NormalizedEffort,
    RaceResultRecord,
    WorkoutRecord,
)
from services.vdot_calculator import METERS_PER_MILE, calculate_vdot, ensure_vdot_in_range


def calculate_weather_adjustment(
    temp_f: Optional[float],
    humidity_pct: Optional[float] = None,
    dew_point_f: Optional[float] = None,
    config: FitnessConfig = fitness_config,
) -> int:
    """
    Pace penalty in seconds per mile for running in the given conditions.

    Zero at or below the comfort temperature; grows with heat, then humidity
    and dew point add on top. Returns 0 when temperature is unknown.
    """
    if temp_f is None:
        return 0

    adjustment = 0.0
    comfort = config.weather_comfort_temp_f
    warm = config.weather_warm_temp_f
    hot = config.weather_hot_temp_f

    if temp_f > comfort:
        if temp_f <= warm:
            adjustment += (temp_f - comfort) * config.weather_mild_slope
        elif temp_f <= hot:
            adjustment += (warm - comfort) * config.weather_mild_slope
            adjustment += (temp_f - warm) * config.weather_warm_slope
        else:
            adjustment += (warm - comfort) * config.weather_mild_slope
            adjustment += (hot - warm) * config.weather_warm_slope
            adjustment += (temp_f - hot) * config.weather_hot_slope

    if humidity_pct is not None:
        if temp_f > config.humidity_hot_temp_f and humidity_pct > config.humidity_hot_base_pct:
            adjustment += (humidity_pct - config.humidity_hot_base_pct) * config.humidity_hot_slope
        elif temp_f > config.humidity_mild_temp_f and humidity_pct > config.humidity_mild_base_pct:
            adjustment += (humidity_pct - config.humidity_mild_base_pct) * config.humidity_mild_slope

    if dew_point_f is not None and dew_point_f > config.dew_point_base_f:
        adjustment += (dew_point_f - config.dew_point_base_f) * config.dew_point_slope

    return int(round(adjustment))


def calculate_elevation_adjustment(
    elevation_gain_ft: Optional[float],
    distance_miles: float,
    config: FitnessConfig = fitness_config,
) -> int:
    """Pace penalty in seconds per mile for climbing. Zero when unknown or flat."""
    if not elevation_gain_ft or elevation_gain_ft <= 0 or distance_miles <= 0:
        return 0
    gain_per_mile = elevation_gain_ft / distance_miles
    return int(round(gain_per_mile / 100.0 * config.elevation_sec_per_100ft_per_mile))


def score_effort_confidence(
    effort_level: EffortLevel,
    has_weather: bool,
    has_elevation: bool,
    config: FitnessConfig = fitness_config,
):
    """Return (score, tier, weight) for a normalized effort."""
    score = config.effort_confidence_base[effort_level.value]
    if not has_weather:
        score -= config.missing_weather_penalty
    if not has_elevation:
        score -= config.missing_elevation_penalty
    score = max(0.0, min(1.0, score))

    if score >= config.confidence_high_threshold:
        tier = ConfidenceLevel.HIGH
    elif score >= config.confidence_medium_threshold:
        tier = ConfidenceLevel.MEDIUM
    else:
        tier = ConfidenceLevel.LOW
    return score, tier, config.confidence_weights[tier.value]


def normalize_effort(
    effort: Effort,
    context: Optional[EffortContext] = None,
    config: FitnessConfig = fitness_config,
) -> NormalizedEffort:
    """
    Normalize one effort. Fields on the effort win over the linked-workout context.

    Raises:
        InvalidEffortError: non-positive distance or duration
        VdotOutOfRangeError: the equivalent effort maps outside the valid VDOT range
    """
    if effort.distance_meters <= 0 or effort.duration_seconds <= 0:
        raise InvalidEffortError(
            f"effort needs positive distance and duration "
            f"(got {effort.distance_meters} m, {effort.duration_seconds} s)"
        )
    context = context or EffortContext()

    temp_f = effort.weather_temp_f if effort.weather_temp_f is not None else context.weather_temp_f
    humidity = (
        effort.weather_humidity_pct
        if effort.weather_humidity_pct is not None
        else context.weather_humidity_pct
    )
    dew_point = effort.dew_point_f if effort.dew_point_f is not None else context.dew_point_f
    gain_ft = effort.elevation_gain_ft if effort.elevation_gain_ft is not None else context.elevation_gain_ft
    effort_level = effort.effort_level or context.effort_level or EffortLevel.ALL_OUT

    raw = float(effort.duration_seconds)
    miles = effort.distance_meters / METERS_PER_MILE

    weather_adj = calculate_weather_adjustment(temp_f, humidity, dew_point, config)
    elevation_adj = calculate_elevation_adjustment(gain_ft, miles, config)
    total_adj = max(0, weather_adj + elevation_adj)

    adjusted = max(raw * config.adjusted_time_floor, raw - total_adj * miles)
    multiplier = config.effort_multipliers[effort_level.value]
    equivalent = max(raw * config.equivalent_time_floor, adjusted * multiplier)

    vdot = ensure_vdot_in_range(calculate_vdot(effort.distance_meters, equivalent), config)
    score, tier, weight = score_effort_confidence(
        effort_level,
        has_weather=temp_f is not None,
        has_elevation=gain_ft is not None,
        config=config,
    )

    return NormalizedEffort(
        raw_time_seconds=raw,
        equivalent_time_seconds=equivalent,
        equivalent_vdot=vdot,
        weather_adjust_sec_per_mile=float(weather_adj),
        elevation_adjust_sec_per_mile=float(elevation_adj),
        effort_multiplier=multiplier,
        confidence=tier,
        confidence_weight=weight,
        confidence_score=score,
    )


def infer_effort_level(workout: WorkoutRecord, max_hr: Optional[int] = None,
                       config: FitnessConfig = fitness_config) -> EffortLevel:
    """
    Guess how hard a workout was run.

    Races are graded by average HR as a share of max HR; quality sessions
    count as hard; everything else as moderate.
    """
    workout_type = (workout.workout_type or "").lower()
    if workout_type == "race":
        ceiling = max_hr or workout.max_hr
        if workout.avg_hr and ceiling:
            ratio = workout.avg_hr / ceiling
            if ratio >= config.race_all_out_hr_ratio:
                return EffortLevel.ALL_OUT
            if ratio >= config.race_hard_hr_ratio:
                return EffortLevel.HARD
        return EffortLevel.MODERATE
    if workout_type in ("interval", "threshold", "tempo"):
        return EffortLevel.HARD
    return EffortLevel.MODERATE


def resolve_race_effort(race: RaceResultRecord, linked: Optional[WorkoutRecord] = None,
                        max_hr: Optional[int] = None,
                        config: FitnessConfig = fitness_config) -> EffortLevel:
    """Reported effort level; unreported races are graded from their linked workout, else all-out."""
    if race.effort_level is not None:
        return race.effort_level
    if linked is not None:
        return infer_effort_level(linked, max_hr, config)
    return EffortLevel.ALL_OUT
