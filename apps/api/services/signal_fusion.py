"""
Signal Fusion Engine

Runs the signal generators, blends the present signals into one VDOT,
scores how well they agree, assigns a confidence tier and turns the blend
into race-time predictions.

Fusion steps:
1. Run every generator. A generator that raises (or times out when run on
   the thread pool) is logged and treated as absent.
2. Blend absolute signals by weight x confidence.
3. Apply modifier signals (efficiency trend) on top of the blend.
4. Agreement = 1 - (std dev - 0.5) / 5, clamped to [0.1, 1.0].
5. Tier from signal count, mean signal confidence, agreement and recency.
6. Per-distance times from the blended VDOT, with form/readiness adjustments
   and a fast/slow range from the signal spread.

No absolute signal means no prediction: the result is None, never a default.
"""
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import math

from core.fitness_config import FitnessConfig, fitness_config
from services.fitness_models import (
    AgreementDetails,
    ConfidenceLevel,
    DataQuality,
    DistancePrediction,
    MultiSignalPrediction,
    PredictionInput,
    Signal,
    SignalKind,
)
from services.fitness_signals import SIGNAL_GENERATORS, SignalGenerator
from services.vdot_calculator import calculate_race_time, clamp_vdot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlendResult:
    vdot: float
    raw_vdot: float
    modifier_adjustment: float
    std_dev: float
    vdot_range: float
    agreement_score: float
    agreement: AgreementDetails
    absolute_count: int
    mean_confidence: float


# =============================================================================
# GENERATOR EXECUTION
# =============================================================================

def _log_generator_failure(name: str, exc: BaseException) -> None:
    logger.warning(
        "Signal generator %s failed: %s",
        name,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"extra_fields": {"signal": name}},
    )


def run_signal_generators(
    data: PredictionInput,
    config: FitnessConfig = fitness_config,
    generators: Sequence[Tuple[str, SignalGenerator]] = SIGNAL_GENERATORS,
    parallel: bool = False,
) -> Tuple[List[Signal], List[str]]:
    """
    Evaluate each generator in isolation.

    Returns (present signals, names of generators that failed).
    """
    signals: List[Signal] = []
    failed: List[str] = []

    if not parallel:
        for name, generator in generators:
            try:
                signal = generator(data, config)
            except Exception as exc:
                _log_generator_failure(name, exc)
                failed.append(name)
                continue
            if signal is not None:
                signals.append(signal)
        return signals, failed

    pool = ThreadPoolExecutor(max_workers=max(1, len(generators)))
    try:
        futures = [(name, pool.submit(generator, data, config)) for name, generator in generators]
        for name, future in futures:
            try:
                signal = future.result(timeout=config.signal_timeout_s)
            except FuturesTimeout:
                logger.warning("Signal generator %s timed out (%ss)", name, config.signal_timeout_s)
                future.cancel()
                failed.append(name)
                continue
            except Exception as exc:
                _log_generator_failure(name, exc)
                failed.append(name)
                continue
            if signal is not None:
                signals.append(signal)
    finally:
        pool.shutdown(wait=False)
    return signals, failed


# =============================================================================
# BLENDING
# =============================================================================

def score_agreement(std_dev: float, config: FitnessConfig = fitness_config) -> float:
    """Monotonically decreasing in spread: 1.0 for tight clusters, floor for wide disagreement."""
    score = 1 - (std_dev - config.agreement_std_offset) / config.agreement_std_scale
    return max(config.agreement_floor, min(1.0, score))


def blend_signals(signals: Sequence[Signal], config: FitnessConfig = fitness_config) -> Optional[BlendResult]:
    """Weighted blend of absolute signals plus modifier adjustments. None without absolute signals."""
    absolute = [
        s for s in signals
        if s.kind == SignalKind.ABSOLUTE and s.estimated_vdot is not None and s.effective_weight > 0
    ]
    if not absolute:
        return None

    total_weight = sum(s.effective_weight for s in absolute)
    raw = sum(s.estimated_vdot * s.effective_weight for s in absolute) / total_weight

    modifier = sum(
        s.weight * s.adjustment
        for s in signals
        if s.kind == SignalKind.MODIFIER and s.adjustment is not None and s.confidence > config.ef_min_confidence
    )
    blended = clamp_vdot(raw + modifier, config)

    values = [s.estimated_vdot for s in absolute]
    std_dev = math.sqrt(sum((v - raw) ** 2 for v in values) / len(values))
    outliers = [s.name for s in absolute if abs(s.estimated_vdot - raw) > config.outlier_deviation_vdot]

    return BlendResult(
        vdot=blended,
        raw_vdot=raw,
        modifier_adjustment=modifier,
        std_dev=std_dev,
        vdot_range=max(config.uncertainty_min_vdot, std_dev * config.uncertainty_std_multiplier),
        agreement_score=score_agreement(std_dev, config),
        agreement=AgreementDetails(
            std_dev=round(std_dev, 2),
            spread=round(max(values) - min(values), 2),
            outliers=outliers,
        ),
        absolute_count=len(absolute),
        mean_confidence=sum(s.confidence for s in absolute) / len(absolute),
    )


def determine_confidence(blend: BlendResult, has_recent_data: bool,
                         config: FitnessConfig = fitness_config) -> ConfidenceLevel:
    if (
        blend.absolute_count >= config.high_tier_min_signals
        and blend.agreement_score >= config.high_tier_min_agreement
        and blend.mean_confidence >= config.high_tier_min_mean_confidence
        and has_recent_data
    ):
        return ConfidenceLevel.HIGH
    if (
        blend.absolute_count >= config.medium_tier_min_signals
        and blend.agreement_score >= config.medium_tier_min_agreement
        and blend.mean_confidence >= config.medium_tier_min_mean_confidence
    ):
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# =============================================================================
# PREDICTIONS
# =============================================================================

def _form_adjustment_pct(data: PredictionInput, config: FitnessConfig) -> float:
    """Positive = slower. Fresh athletes (TSB > 0) race slightly faster."""
    if data.fitness_state is None:
        return 0.0
    pct = -data.fitness_state.tsb * config.form_pct_per_tsb
    return max(config.form_pct_min, min(config.form_pct_max, pct))


def _readiness(name: str, data: PredictionInput, config: FitnessConfig) -> float:
    """1.0 = volume supports the distance. Unknown volume is not penalized."""
    targets = config.readiness_targets.get(name)
    volume = data.training_volume
    if targets is None or (volume.weekly_miles <= 0 and volume.long_run_miles <= 0):
        return 1.0
    weekly_target, long_target = targets
    score = 0.5 * min(1.0, volume.weekly_miles / weekly_target) + 0.5 * min(1.0, volume.long_run_miles / long_target)
    return round(score, 3)


def build_predictions(blend: BlendResult, data: PredictionInput,
                      config: FitnessConfig = fitness_config) -> List[DistancePrediction]:
    form_pct = _form_adjustment_pct(data, config)
    fast_vdot = clamp_vdot(blend.vdot + blend.vdot_range, config)
    slow_vdot = clamp_vdot(blend.vdot - blend.vdot_range, config)

    predictions = []
    for name, meters in config.prediction_distances_m.items():
        readiness = _readiness(name, data, config)
        penalty = (1 - readiness) * config.readiness_max_penalty.get(name, 0.0)
        factor = (1 + form_pct / 100) * (1 + penalty)

        equivalent = calculate_race_time(blend.vdot, meters, config)
        predicted = equivalent * factor
        predictions.append(DistancePrediction(
            distance=name,
            distance_meters=meters,
            equivalent_seconds=equivalent,
            predicted_seconds=predicted,
            fast_seconds=calculate_race_time(fast_vdot, meters, config) * factor,
            slow_seconds=calculate_race_time(slow_vdot, meters, config) * factor,
            pace_seconds_per_mile=predicted / (meters / 1609.34),
            readiness=readiness,
            form_adjustment_pct=form_pct,
        ))
    return predictions


def has_recent_data(data: PredictionInput, config: FitnessConfig = fitness_config) -> bool:
    recent = [
        w for w in data.workouts
        if w.date <= data.as_of and data.days_ago(w.date) <= config.recent_days
    ]
    return len(recent) >= config.recent_data_min_workouts


def evaluate_prediction(
    data: PredictionInput,
    config: FitnessConfig = fitness_config,
    parallel: bool = False,
    generators: Sequence[Tuple[str, SignalGenerator]] = SIGNAL_GENERATORS,
) -> Tuple[Optional[MultiSignalPrediction], List[str]]:
    """Like generate_prediction, but also returns failed generator names when there is no result."""
    signals, failed = run_signal_generators(data, config, generators, parallel)
    blend = blend_signals(signals, config)
    if blend is None:
        logger.info(
            "No fitness signals available as of %s (failed generators: %s)",
            data.as_of,
            ", ".join(failed) or "none",
        )
        return None, failed

    recent = has_recent_data(data, config)
    prediction = MultiSignalPrediction(
        blended_vdot=blend.vdot,
        vdot_range=blend.vdot_range,
        confidence=determine_confidence(blend, recent, config),
        agreement_score=blend.agreement_score,
        agreement=blend.agreement,
        predictions=build_predictions(blend, data, config),
        signals=signals,
        data_quality=DataQuality(
            signals_used=blend.absolute_count,
            failed_signals=failed,
            total_workouts=len(data.workouts),
            total_races=len(data.races),
            has_recent_data=recent,
        ),
        modifier_adjustment=blend.modifier_adjustment,
        as_of=data.as_of,
    )
    return prediction, failed


def generate_prediction(
    data: PredictionInput,
    config: FitnessConfig = fitness_config,
    parallel: bool = False,
    generators: Sequence[Tuple[str, SignalGenerator]] = SIGNAL_GENERATORS,
) -> Optional[MultiSignalPrediction]:
    """Full fusion for one athlete as of data.as_of. None when no absolute signal exists."""
    prediction, _ = evaluate_prediction(data, config, parallel, generators)
    return prediction
