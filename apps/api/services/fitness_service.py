"""
Fitness Service

Database-bound entry points shared by the API routers and the Celery tasks.
Each function loads what it needs through FitnessDataSource, runs the pure
engine, and (for sync/backtest) persists through services.vdot_history.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.config import settings
from core.fitness_config import FitnessConfig, fitness_config
from models import Athlete, VdotHistory
from services.best_segment import SegmentSearchResult, find_best_segment
from services.fitness_data_source import FitnessDataSource
from services.fitness_models import MultiSignalPrediction
from services.fitness_pipeline import build_prediction_input, compute_training_load
from services.signal_fusion import evaluate_prediction
from services.training_load import TrainingLoadResult
from services.vdot_backtest import BacktestReport, run_vdot_backtest, store_backtest_history
from services.vdot_baseline import BaselineSyncResult, sync_baseline
from services.vdot_history import save_baseline

logger = logging.getLogger(__name__)

NO_SIGNALS_REASON = "Not enough race, workout or heart-rate data to estimate fitness"


@dataclass(frozen=True)
class BaselineSyncOutcome:
    athlete_id: UUID
    prediction: Optional[MultiSignalPrediction]
    result: Optional[BaselineSyncResult] = None
    reason: Optional[str] = None

    @property
    def updated(self) -> bool:
        return self.result is not None


def predict_for_athlete(
    db: Session,
    athlete: Athlete,
    as_of: date,
    config: FitnessConfig = fitness_config,
    parallel: Optional[bool] = None,
) -> Tuple[Optional[MultiSignalPrediction], List[str]]:
    """Fused prediction as of a date plus the names of generators that failed."""
    if parallel is None:
        parallel = settings.SIGNAL_PARALLELISM
    history = FitnessDataSource(db, config).load_recent_history(athlete, as_of)
    data = build_prediction_input(history, as_of, config)
    return evaluate_prediction(data, config, parallel=parallel)


def training_load_for_athlete(
    db: Session,
    athlete: Athlete,
    as_of: date,
    days: int,
    config: FitnessConfig = fitness_config,
) -> TrainingLoadResult:
    since = as_of - timedelta(days=days + config.warmup_days)
    history = FitnessDataSource(db, config).load_history(athlete, as_of, since=since, include_streams=False)
    return compute_training_load(history, as_of, days=days, config=config)


def best_segment_for_activity(
    db: Session,
    activity_id: UUID,
    config: FitnessConfig = fitness_config,
) -> Optional[SegmentSearchResult]:
    """None when the activity has no usable stream."""
    stream = FitnessDataSource(db, config).load_stream(activity_id)
    if stream is None:
        return None
    return find_best_segment(stream, config)


def sync_athlete_baseline(
    db: Session,
    athlete: Athlete,
    as_of: date,
    skip_smoothing: bool = False,
    config: FitnessConfig = fitness_config,
) -> BaselineSyncOutcome:
    """
    Predict as of a date and move the stored baseline toward the result.

    No prediction leaves the stored baseline untouched.
    """
    prediction, failed = predict_for_athlete(db, athlete, as_of, config)
    if prediction is None:
        reason = NO_SIGNALS_REASON
        if failed:
            reason = f"{reason} (failed: {', '.join(failed)})"
        logger.info("Baseline sync skipped for athlete %s: no prediction", athlete.id)
        return BaselineSyncOutcome(athlete_id=athlete.id, prediction=None, reason=reason)

    result = sync_baseline(
        prediction,
        prior=athlete.vdot,
        entry_date=as_of,
        skip_smoothing=skip_smoothing,
        config=config,
    )
    save_baseline(db, athlete, result, config)
    return BaselineSyncOutcome(athlete_id=athlete.id, prediction=prediction, result=result)


def backtest_athlete(
    db: Session,
    athlete: Athlete,
    today: date,
    start: Optional[date] = None,
    config: FitnessConfig = fitness_config,
    max_workers: Optional[int] = None,
) -> Tuple[BacktestReport, List[VdotHistory]]:
    """Rebuild the athlete's monthly history from the first activity (or start) through today."""
    history = FitnessDataSource(db, config).load_history(athlete, today)
    report = run_vdot_backtest(
        history,
        today,
        start=start,
        config=config,
        max_workers=max_workers or settings.BACKTEST_MAX_WORKERS,
    )
    rows = store_backtest_history(db, athlete.id, report, today, config)
    return report, rows
