"""
Fitness Signal Generators

Six independent estimators, each reading a different slice of evidence and
returning zero or one Signal:

    race_vdot         explicit race results, normalized for conditions
    best_effort       fastest efforts found inside ordinary training
    effective_vo2max  HR-implied capacity from steady runs
    ef_trend          efficiency-factor trend (a modifier, not an estimate)
    critical_speed    distance/time regression across race and effort distances
    training_pace     what the athlete's easy/tempo/threshold paces imply

A generator without enough evidence returns None. It never emits a weak
guess to pad the set.
"""
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple
import logging
import math

from core.exceptions import InvalidEffortError, VdotOutOfRangeError
from core.fitness_config import FitnessConfig, fitness_config
from services.effort_normalizer import (
    calculate_elevation_adjustment,
    calculate_weather_adjustment,
    normalize_effort,
    resolve_race_effort,
)
from services.fitness_models import (
    Effort,
    EffortLevel,
    EffortSource,
    PredictionInput,
    Signal,
    SignalKind,
    WorkoutRecord,
)
from services.vdot_calculator import (
    METERS_PER_MILE,
    calculate_vdot,
    is_valid_vdot,
    oxygen_cost,
)

logger = logging.getLogger(__name__)

SignalGenerator = Callable[[PredictionInput, FitnessConfig], Optional[Signal]]


# =============================================================================
# HELPERS
# =============================================================================

def recency_weight(days_ago: int, half_life_days: float) -> float:
    """Exponential decay: 1.0 today, 0.5 after one half-life."""
    return math.exp(-0.693 * max(0, days_ago) / half_life_days)


def linear_regression(x: List[float], y: List[float]) -> Tuple[float, float, float]:
    """
    Simple linear regression: y = slope * x + intercept

    Returns (slope, intercept, r_squared). Zero slope when x has no spread.
    """
    n = len(x)
    if n < 2:
        raise ValueError("Need at least 2 data points for regression")

    x_mean = sum(x) / n
    y_mean = sum(y) / n
    numerator = sum((xi - x_mean) * (yi - y_mean) for xi, yi in zip(x, y))
    denominator = sum((xi - x_mean) ** 2 for xi in x)
    if denominator == 0:
        return 0.0, y_mean, 0.0

    slope = numerator / denominator
    intercept = y_mean - slope * x_mean
    ss_res = sum((yi - (slope * xi + intercept)) ** 2 for xi, yi in zip(x, y))
    ss_tot = sum((yi - y_mean) ** 2 for yi in y)
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return slope, intercept, r_squared


def _weighted_mean(pairs: List[Tuple[float, float]]) -> Optional[float]:
    total = sum(w for _, w in pairs)
    if total <= 0:
        return None
    return sum(v * w for v, w in pairs) / total


def _usable(workout: WorkoutRecord, as_of: date) -> bool:
    return workout.date <= as_of and not workout.exclude_from_estimates


def _pace_velocity(pace_seconds_per_mile: float) -> float:
    """m/min from sec/mile."""
    return METERS_PER_MILE / pace_seconds_per_mile * 60


# =============================================================================
# 1. RACE VDOT
# =============================================================================

def race_vdot_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """Recency- and effort-weighted VDOT from normalized race results."""
    workouts_by_id = {w.id: w for w in data.workouts}
    half_life = config.signal_half_life_days["race_vdot"]

    entries = []
    for race in data.races:
        if race.date > data.as_of or race.distance_meters < config.race_min_distance_m:
            continue
        linked = workouts_by_id.get(race.workout_id) if race.workout_id else None
        if linked is not None and linked.exclude_from_estimates:
            continue
        level = resolve_race_effort(race, linked, data.athlete.effective_max_hr, config)
        effort = Effort(
            distance_meters=race.distance_meters,
            duration_seconds=race.finish_time_seconds,
            date=race.date,
            source=EffortSource.RACE,
            effort_level=race.effort_level,
            workout_id=race.workout_id,
        )
        context = linked.context(level) if linked else None
        try:
            normalized = normalize_effort(effort, context, config)
        except (InvalidEffortError, VdotOutOfRangeError) as exc:
            logger.debug("Skipping race %s: %s", race.id, exc)
            continue

        days = data.days_ago(race.date)
        weight = (
            recency_weight(days, half_life)
            * config.race_effort_weights[level.value]
            * normalized.confidence_weight
        )
        entries.append((race, normalized.equivalent_vdot, weight, days, level))

    vdot = _weighted_mean([(v, w) for _, v, w, _, _ in entries])
    if vdot is None:
        return None

    count = len(entries)
    confidence = 0.9 if count >= 3 else 0.8 if count >= 2 else 0.7
    most_recent = min(e[3] for e in entries)
    if most_recent > 240:
        confidence *= 0.7
    elif most_recent > 120:
        confidence *= 0.8
    if any(e[4] == EffortLevel.ALL_OUT for e in entries):
        confidence = min(1.0, confidence + 0.1)

    recent = sorted(entries, key=lambda e: e[0].date, reverse=True)[:3]
    return Signal(
        name="race_vdot",
        estimated_vdot=vdot,
        confidence=confidence,
        weight=config.signal_weights["race_vdot"],
        description=f"{count} race result{'s' if count != 1 else ''}, most recent {most_recent} days ago",
        data_points=count,
        recency_days=most_recent,
        key_dates=[e[0].date for e in recent],
        key_workout_ids=[e[0].workout_id for e in recent if e[0].workout_id],
    )


# =============================================================================
# 2. BEST EFFORTS
# =============================================================================

def best_effort_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """Fastest efforts of a mile or longer, derated because training efforts are rarely all-out."""
    half_life = config.signal_half_life_days["best_effort"]
    scored = []
    for effort in data.best_efforts:
        if effort.date > data.as_of or data.days_ago(effort.date) > config.lookback_days:
            continue
        if effort.distance_meters < config.best_effort_min_distance_m or effort.duration_seconds <= 0:
            continue
        vdot = calculate_vdot(effort.distance_meters, effort.duration_seconds) * config.best_effort_derate
        if not is_valid_vdot(vdot, config):
            continue
        scored.append((effort, vdot))

    if not scored:
        return None

    top = sorted(scored, key=lambda e: e[1], reverse=True)[:config.best_effort_top_n]
    vdot = _weighted_mean([
        (v, recency_weight(data.days_ago(e.date), half_life)) for e, v in top
    ])
    if vdot is None:
        return None

    count = len(top)
    confidence = 0.4
    if count >= 5:
        confidence = 0.7
    elif count >= 3:
        confidence = 0.6
    elif count >= 2:
        confidence = 0.5
    most_recent = min(data.days_ago(e.date) for e, _ in top)
    if most_recent > 90:
        confidence *= 0.85

    return Signal(
        name="best_effort",
        estimated_vdot=vdot,
        confidence=confidence,
        weight=config.signal_weights["best_effort"],
        description=f"Top {count} training effort{'s' if count != 1 else ''} of 1 mile or more",
        data_points=count,
        recency_days=most_recent,
        key_dates=[e.date for e, _ in top],
        key_workout_ids=[e.workout_id for e, _ in top if e.workout_id],
    )


# =============================================================================
# 3. EFFECTIVE VO2MAX FROM HEART RATE
# =============================================================================

def effective_vo2max_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """
    VDOT implied by pace at a known fraction of HR reserve on steady runs.

    %VO2max is estimated from %HRR, pace is corrected for heat and climbing,
    and runs done while fatigued (negative TSB) get a small upward correction.
    """
    max_hr = data.athlete.effective_max_hr
    resting_hr = data.athlete.resting_hr or config.default_resting_hr
    if not max_hr or max_hr - resting_hr <= 20:
        return None

    half_life = config.signal_half_life_days["effective_vo2max"]
    estimates = []
    for w in data.workouts:
        if not _usable(w, data.as_of) or (w.workout_type or "").lower() not in config.hr_steady_types:
            continue
        if data.days_ago(w.date) > config.lookback_days:
            continue
        if not w.avg_hr or not w.distance_miles or w.distance_miles <= 0.5:
            continue
        if not w.duration_minutes or w.duration_minutes < 15:
            continue

        hrr = (w.avg_hr - resting_hr) / (max_hr - resting_hr)
        if hrr < config.hrr_min or hrr > config.hrr_max:
            continue

        pace = w.pace_seconds_per_mile
        if not pace:
            continue
        pace -= calculate_weather_adjustment(w.weather_temp_f, w.weather_humidity_pct, w.dew_point_f, config)
        pace -= calculate_elevation_adjustment(w.elevation_gain_ft, w.distance_miles, config)
        if pace <= 0:
            continue

        pct_vo2 = config.hrr_to_vo2_slope * hrr + config.hrr_to_vo2_intercept
        if pct_vo2 <= 0.2 or pct_vo2 > 1.0:
            continue
        estimate = oxygen_cost(_pace_velocity(pace)) / pct_vo2

        weight = recency_weight(data.days_ago(w.date), half_life)
        tsb = data.workout_tsb.get(w.id)
        if tsb is not None:
            if tsb < 0:
                estimate += min(config.fatigue_correction_cap, abs(tsb) * config.fatigue_correction_per_tsb)
            boost = max(0.0, min(config.freshness_boost_max, (tsb + 20) / 20 * config.freshness_boost_max))
            weight *= 1 + boost

        if is_valid_vdot(estimate, config):
            estimates.append((w, estimate, weight))

    recent = [e for e in estimates if data.days_ago(e[0].date) <= config.recent_days]
    if len(recent) >= 3:
        estimates = recent
    vdot = _weighted_mean([(v, wt) for _, v, wt in estimates])
    if vdot is None:
        return None

    count = len(estimates)
    confidence = 0.4
    if count >= 10:
        confidence = 0.75
    elif count >= 5:
        confidence = 0.6
    elif count >= 3:
        confidence = 0.5
    most_recent = min(data.days_ago(w.date) for w, _, _ in estimates)
    if most_recent > 60:
        confidence *= 0.8
    elif most_recent > 30:
        confidence *= 0.9
    if data.hr_calibration is not None:
        confidence = min(1.0, confidence + 0.15)

    return Signal(
        name="effective_vo2max",
        estimated_vdot=vdot,
        confidence=confidence,
        weight=config.signal_weights["effective_vo2max"],
        description=f"HR-implied capacity from {count} steady run{'s' if count != 1 else ''}",
        data_points=count,
        recency_days=most_recent,
        key_dates=[w.date for w, _, _ in estimates[-3:]],
        key_workout_ids=[w.id for w, _, _ in estimates[-3:]],
    )


# =============================================================================
# 4. EFFICIENCY FACTOR TREND (modifier)
# =============================================================================

def efficiency_trend_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """
    Trend of speed per heartbeat on aerobic runs over the last 90 days.

    Expressed as a VDOT adjustment applied on top of the blend: roughly
    +1.5 VDOT per 3% EF improvement, capped at +/-3.
    """
    points = []
    for w in data.workouts:
        if not _usable(w, data.as_of) or (w.workout_type or "").lower() not in config.ef_types:
            continue
        if data.days_ago(w.date) > config.ef_window_days:
            continue
        if not w.avg_hr or not w.distance_miles or w.distance_miles <= config.ef_window_min_miles:
            continue
        if not w.duration_minutes or w.duration_minutes < config.ef_window_min_minutes:
            continue
        pace = w.pace_seconds_per_mile
        if not pace:
            continue
        points.append((w, _pace_velocity(pace) / w.avg_hr))

    if len(points) < config.ef_min_runs:
        return None

    points.sort(key=lambda p: p[0].date)
    first = points[0][0].date
    xs = [float((w.date - first).days) for w, _ in points]
    ys = [ef for _, ef in points]
    slope, _, r_squared = linear_regression(xs, ys)
    if slope == 0:
        return None

    avg_ef = sum(ys) / len(ys)
    pct_change = slope * config.ef_window_days / avg_ef
    adjustment = pct_change / config.ef_pct_per_vdot_step * config.ef_vdot_per_step
    adjustment = max(-config.ef_max_adjustment, min(config.ef_max_adjustment, adjustment))
    if abs(adjustment) < config.ef_min_adjustment:
        return None

    direction = "improving" if adjustment > 0 else "declining"
    return Signal(
        name="ef_trend",
        kind=SignalKind.MODIFIER,
        adjustment=adjustment,
        confidence=min(0.8, r_squared * 0.8 + 0.2),
        weight=config.signal_weights["ef_trend"],
        description=f"Aerobic efficiency {direction} {abs(pct_change) * 100:.1f}% over {config.ef_window_days} days",
        data_points=len(points),
        recency_days=data.days_ago(points[-1][0].date),
        key_dates=[points[0][0].date, points[-1][0].date],
    )


# =============================================================================
# 5. CRITICAL SPEED (pace progression across distances)
# =============================================================================

def critical_speed_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """
    Critical speed from the best performance in each distance bucket.

    Distance is regressed on time; the slope is the speed sustainable at
    roughly threshold, converted to VDOT at ~88% of capacity.
    """
    performances = []
    for race in data.races:
        if race.date <= data.as_of and data.days_ago(race.date) <= config.lookback_days:
            performances.append((race.distance_meters, race.finish_time_seconds, race.date))
    for effort in data.best_efforts:
        if effort.date <= data.as_of and data.days_ago(effort.date) <= config.lookback_days:
            performances.append((effort.distance_meters, effort.duration_seconds, effort.date))

    buckets: Dict[int, Tuple[float, float, date, float]] = {}
    edges = config.critical_speed_buckets_m
    for distance, seconds, when in performances:
        if distance < config.critical_speed_min_m or distance > config.critical_speed_max_m or seconds <= 0:
            continue
        bucket = next((i for i, edge in enumerate(edges) if distance < edge), len(edges))
        vdot = calculate_vdot(distance, seconds)
        if bucket not in buckets or vdot > buckets[bucket][3]:
            buckets[bucket] = (distance, seconds, when, vdot)

    if len(buckets) < config.critical_speed_min_points:
        return None

    chosen = [buckets[k] for k in sorted(buckets)]
    slope, _, _ = linear_regression([p[1] for p in chosen], [p[0] for p in chosen])
    if slope <= 0 or slope > 10:
        return None

    vdot = oxygen_cost(slope * 60) / config.critical_speed_vo2_fraction
    if not is_valid_vdot(vdot, config):
        return None

    count = len(chosen)
    confidence = 0.8 if count >= 5 else 0.7 if count == 4 else 0.55
    return Signal(
        name="critical_speed",
        estimated_vdot=vdot,
        confidence=confidence,
        weight=config.signal_weights["critical_speed"],
        description=f"Critical speed {slope:.2f} m/s from {count} distances",
        data_points=count,
        recency_days=min(data.days_ago(p[2]) for p in chosen),
        key_dates=[p[2] for p in chosen],
    )


# =============================================================================
# 6. TRAINING PACE INFERENCE
# =============================================================================

def training_pace_signal(data: PredictionInput, config: FitnessConfig = fitness_config) -> Optional[Signal]:
    """VDOT implied by typical training paces, assuming each run type sits at a known %VO2max."""
    half_life = config.signal_half_life_days["training_pace"]
    fractions = config.training_pace_fractions
    estimates = []
    for w in data.workouts:
        workout_type = (w.workout_type or "").lower()
        if not _usable(w, data.as_of) or workout_type not in fractions:
            continue
        if data.days_ago(w.date) > config.training_pace_window_days:
            continue
        if not w.distance_miles or w.distance_miles <= 0.5 or not w.duration_minutes or w.duration_minutes < 10:
            continue
        pace = w.pace_seconds_per_mile
        if not pace:
            continue
        estimate = oxygen_cost(_pace_velocity(pace)) / fractions[workout_type]
        if is_valid_vdot(estimate, config):
            estimates.append((w, estimate))

    if len(estimates) < config.training_pace_min_runs:
        return None

    vdot = _weighted_mean([(v, recency_weight(data.days_ago(w.date), half_life)) for w, v in estimates])
    if vdot is None:
        return None

    count = len(estimates)
    confidence = 0.5 if count >= 10 else 0.4 if count >= 5 else 0.3
    return Signal(
        name="training_pace",
        estimated_vdot=vdot,
        confidence=confidence,
        weight=config.signal_weights["training_pace"],
        description=f"Paces from {count} easy/tempo/threshold runs",
        data_points=count,
        recency_days=min(data.days_ago(w.date) for w, _ in estimates),
    )


SIGNAL_GENERATORS: List[Tuple[str, SignalGenerator]] = [
    ("race_vdot", race_vdot_signal),
    ("best_effort", best_effort_signal),
    ("effective_vo2max", effective_vo2max_signal),
    ("ef_trend", efficiency_trend_signal),
    ("critical_speed", critical_speed_signal),
    ("training_pace", training_pace_signal),
]
