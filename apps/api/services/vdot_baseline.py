"""
VDOT Baseline Update Policy

Moves the athlete's stored VDOT toward a newly fused estimate.

Improvements are accepted readily; apparent declines only partially,
since a slow stretch has many explanations (fatigue, heat, pacing).

    delta > 0: prior + delta * {high 0.85, medium 0.75, low 0.60}
    delta < 0: prior + delta * {high 0.40, medium 0.30, low 0.20}

The policy is pure: prior baseline in, updated baseline out. Reading and
writing the stored value belongs to services.vdot_history.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional
import logging

from core.fitness_config import FitnessConfig, fitness_config
from services.fitness_models import ConfidenceLevel, HistorySource, MultiSignalPrediction
from services.vdot_calculator import ensure_vdot_in_range, is_valid_vdot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaselineUpdate:
    previous: Optional[float]
    raw: float
    updated: float
    fraction_applied: float
    smoothed: bool

    @property
    def delta(self) -> float:
        return self.updated - (self.previous if self.previous is not None else self.updated)


@dataclass(frozen=True)
class HistoryEntryDraft:
    """A VDOT history row waiting to be written by the persistence layer."""
    entry_date: date
    vdot: float
    source: HistorySource
    confidence: ConfidenceLevel
    notes: str


@dataclass(frozen=True)
class BaselineSyncResult:
    update: BaselineUpdate
    history_entry: HistoryEntryDraft


def apply_baseline_update(
    prior: Optional[float],
    fused: float,
    confidence: ConfidenceLevel,
    skip_smoothing: bool = False,
    config: FitnessConfig = fitness_config,
) -> BaselineUpdate:
    """
    Asymmetric smoothing of the stored baseline.

    A prior outside the valid range is treated as missing.

    Raises:
        VdotOutOfRangeError: fused value outside the valid VDOT range
    """
    ensure_vdot_in_range(fused, config)
    if prior is not None and not is_valid_vdot(prior, config):
        logger.info("Ignoring out-of-range prior baseline %.2f", prior)
        prior = None

    if prior is None or skip_smoothing:
        return BaselineUpdate(previous=prior, raw=fused, updated=fused, fraction_applied=1.0, smoothed=False)

    delta = fused - prior
    if delta > 0:
        fraction = config.improvement_fractions[confidence.value]
    elif delta < 0:
        fraction = config.decline_fractions[confidence.value]
    else:
        fraction = 1.0

    return BaselineUpdate(
        previous=prior,
        raw=fused,
        updated=prior + delta * fraction,
        fraction_applied=fraction,
        smoothed=True,
    )


def history_source_for(prediction: MultiSignalPrediction, config: FitnessConfig = fitness_config) -> HistorySource:
    """Tag as a race-driven value when a confident race signal is present."""
    race = prediction.signal("race_vdot")
    if race is not None and race.confidence >= config.race_source_min_confidence \
            and race.weight >= config.race_source_min_weight:
        return HistorySource.RACE
    return HistorySource.ESTIMATE


def build_history_note(prediction: MultiSignalPrediction, update: BaselineUpdate) -> str:
    names = ", ".join(s.name for s in prediction.signals)
    parts = [
        f"multi-signal ({prediction.data_quality.signals_used} signals)",
        f"agreement: {round(prediction.agreement_score * 100)}%",
        names,
    ]
    if update.previous is not None and update.smoothed:
        parts.append(f"prev: {update.previous:.1f} → {update.updated:.1f} (raw: {update.raw:.1f})")
    elif not update.smoothed and update.previous is not None:
        parts.append(f"unsmoothed: {update.previous:.1f} → {update.updated:.1f}")
    return " | ".join(parts)


def sync_baseline(
    prediction: MultiSignalPrediction,
    prior: Optional[float],
    entry_date: date,
    skip_smoothing: bool = False,
    source: Optional[HistorySource] = None,
    config: FitnessConfig = fitness_config,
) -> BaselineSyncResult:
    """Update policy plus the history row that records it."""
    update = apply_baseline_update(prior, prediction.blended_vdot, prediction.confidence, skip_smoothing, config)
    logger.info(
        "VDOT baseline update: %s -> %.2f (raw %.2f, %s)",
        f"{update.previous:.2f}" if update.previous is not None else "none",
        update.updated,
        update.raw,
        "smoothed" if update.smoothed else "unsmoothed",
    )
    entry = HistoryEntryDraft(
        entry_date=entry_date,
        vdot=round(update.updated, 2),
        source=source or history_source_for(prediction, config),
        confidence=prediction.confidence,
        notes=build_history_note(prediction, update),
    )
    return BaselineSyncResult(update=update, history_entry=entry)
