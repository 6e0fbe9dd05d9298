"""
Fitness Pipeline

Turns an athlete's history snapshot into a PredictionInput as of a cutoff
date and runs fusion on it.

Every record dated after the cutoff is dropped here, regardless of what the
data source already filtered, so a prediction for date D can only see what
existed on D. The backtest depends on this.
"""
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Dict, List, Optional
import logging

from core.fitness_config import FitnessConfig, fitness_config
from services.best_segment import find_best_segment, segment_to_effort
from services.effort_normalizer import resolve_race_effort
from services.fitness_models import (
    ActivityStreamData,
    AthleteSettings,
    ConfidenceLevel,
    Effort,
    EffortLevel,
    FitnessState,
    HrCalibration,
    MultiSignalPrediction,
    PredictionInput,
    RaceResultRecord,
    TrainingVolume,
    WorkoutRecord,
)
from services.signal_fusion import generate_prediction
from services.training_load import TrainingLoadCalculator, TrainingLoadResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AthleteHistory:
    """All records for one athlete, as handed over by the data source."""
    athlete: AthleteSettings
    workouts: List[WorkoutRecord] = field(default_factory=list)
    races: List[RaceResultRecord] = field(default_factory=list)
    best_efforts: List[Effort] = field(default_factory=list)
    streams: Dict[str, ActivityStreamData] = field(default_factory=dict)

    def first_activity_date(self) -> Optional[date]:
        dates = [w.date for w in self.workouts] + [r.date for r in self.races]
        return min(dates) if dates else None

    def as_of(self, cutoff: date) -> "AthleteHistory":
        """Copy with every record dated after cutoff removed and the athlete aged to cutoff."""
        workouts = [w for w in self.workouts if w.date <= cutoff]
        kept_ids = {w.id for w in workouts}
        return replace(
            self,
            athlete=self.athlete.on(cutoff),
            workouts=workouts,
            races=[r for r in self.races if r.date <= cutoff],
            best_efforts=[e for e in self.best_efforts if e.date <= cutoff],
            streams={k: v for k, v in self.streams.items() if k in kept_ids},
        )


def calculate_training_volume(workouts: List[WorkoutRecord], as_of: date) -> TrainingVolume:
    """Average weekly miles and longest run over the four weeks ending at as_of."""
    window_start = as_of - timedelta(days=27)
    recent = [w for w in workouts if window_start <= w.date <= as_of and w.distance_miles]
    if not recent:
        return TrainingVolume()
    return TrainingVolume(
        weekly_miles=sum(w.distance_miles for w in recent) / 4.0,
        long_run_miles=max(w.distance_miles for w in recent),
    )


def find_hr_calibration(history: AthleteHistory, as_of: date,
                        config: FitnessConfig = fitness_config) -> Optional[HrCalibration]:
    """Most recent all-out race with a recorded max HR."""
    workouts_by_id = {w.id: w for w in history.workouts}
    candidates = []
    for race in history.races:
        if race.date > as_of or (as_of - race.date).days > config.lookback_days:
            continue
        if not race.workout_id:
            continue
        linked = workouts_by_id.get(race.workout_id)
        if resolve_race_effort(race, linked, history.athlete.effective_max_hr, config) != EffortLevel.ALL_OUT:
            continue
        if linked is not None and linked.max_hr:
            candidates.append(HrCalibration(race_date=race.date, observed_max_hr=linked.max_hr))
    if not candidates:
        return None
    return max(candidates, key=lambda c: c.race_date)


def extract_segment_efforts(history: AthleteHistory, as_of: date,
                            config: FitnessConfig = fitness_config) -> List[Effort]:
    """Best trustworthy segment from each recent quality workout with a stream."""
    efforts = []
    for workout in history.workouts:
        if workout.date > as_of or (as_of - workout.date).days > config.lookback_days:
            continue
        if workout.exclude_from_estimates or (workout.workout_type or "").lower() not in config.segment_workout_types:
            continue
        stream = history.streams.get(workout.id)
        if stream is None:
            continue
        result = find_best_segment(stream, config)
        if result.success and result.best.confidence != ConfidenceLevel.LOW:
            efforts.append(segment_to_effort(result.best, workout.date, workout.id))
    return efforts


def compute_training_load(history: AthleteHistory, as_of: date, days: Optional[int] = None,
                          config: FitnessConfig = fitness_config) -> TrainingLoadResult:
    snapshot = history.as_of(as_of)
    calculator = TrainingLoadCalculator(config)
    return calculator.calculate_training_load(
        snapshot.workouts,
        end_date=as_of,
        days=days or config.lookback_days,
        athlete=snapshot.athlete,
    )


def build_prediction_input(history: AthleteHistory, as_of: date,
                           config: FitnessConfig = fitness_config) -> PredictionInput:
    snapshot = history.as_of(as_of)
    lookback_start = as_of - timedelta(days=config.lookback_days)
    workouts = sorted(
        (w for w in snapshot.workouts if w.date >= lookback_start),
        key=lambda w: w.date,
    )

    load = compute_training_load(snapshot, as_of, config=config)
    workout_tsb: Dict[str, float] = {}
    fitness_state = None
    if load.has_data:
        by_date = load.metrics_by_date()
        for w in workouts:
            point = by_date.get(w.date)
            if point is not None:
                workout_tsb[w.id] = point.tsb
        fitness_state = FitnessState(ctl=load.current_ctl, atl=load.current_atl)

    best_efforts = list(snapshot.best_efforts) + extract_segment_efforts(snapshot, as_of, config)

    return PredictionInput(
        as_of=as_of,
        athlete=snapshot.athlete,
        workouts=workouts,
        races=sorted(snapshot.races, key=lambda r: r.date),
        best_efforts=best_efforts,
        workout_tsb=workout_tsb,
        fitness_state=fitness_state,
        training_volume=calculate_training_volume(workouts, as_of),
        hr_calibration=find_hr_calibration(snapshot, as_of, config),
    )


def run_prediction(history: AthleteHistory, as_of: date, config: FitnessConfig = fitness_config,
                   parallel: bool = False) -> Optional[MultiSignalPrediction]:
    """Fused prediction for the athlete as of a date, or None when no signal exists."""
    return generate_prediction(build_prediction_input(history, as_of, config), config, parallel=parallel)
