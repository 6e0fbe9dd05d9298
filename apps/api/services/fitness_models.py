"""
Value objects shared across the fitness engine.

Inputs mirror the records handed over by the persistence layer (workouts,
race results, best efforts, streams, athlete settings). Outputs are the
engine's own results (normalized efforts, signals, predictions). Everything
here is a plain dataclass: no ORM objects cross into the engine.

Units follow the collaborator schemas: workouts in miles/minutes, races and
efforts in meters/seconds, streams in cumulative miles/elapsed seconds.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class EffortLevel(str, Enum):
    ALL_OUT = "all_out"
    HARD = "hard"
    MODERATE = "moderate"
    EASY = "easy"


class EffortSource(str, Enum):
    RACE = "race"
    TIME_TRIAL = "time_trial"
    WORKOUT_SEGMENT = "workout_segment"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SignalKind(str, Enum):
    """ABSOLUTE signals carry a VDOT estimate; MODIFIER signals nudge the blend."""
    ABSOLUTE = "absolute"
    MODIFIER = "modifier"


class HistorySource(str, Enum):
    RACE = "race"
    ESTIMATE = "estimate"
    BACKTEST = "backtest"
    CARRY_FORWARD = "carry_forward"


# ---------------------------------------------------------------------------
# Engine inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Effort:
    """A single performance to be converted into a fitness index."""
    distance_meters: float
    duration_seconds: float
    date: date
    source: EffortSource = EffortSource.RACE
    effort_level: Optional[EffortLevel] = None  # None: take it from the linked workout, else all-out
    weather_temp_f: Optional[float] = None
    weather_humidity_pct: Optional[float] = None
    dew_point_f: Optional[float] = None
    elevation_gain_ft: Optional[float] = None
    workout_id: Optional[str] = None


@dataclass(frozen=True)
class EffortContext:
    """Weather/elevation/effort context taken from the workout an effort is linked to."""
    weather_temp_f: Optional[float] = None
    weather_humidity_pct: Optional[float] = None
    dew_point_f: Optional[float] = None
    elevation_gain_ft: Optional[float] = None
    effort_level: Optional[EffortLevel] = None


@dataclass(frozen=True)
class WorkoutRecord:
    id: str
    date: date
    distance_miles: Optional[float] = None
    duration_minutes: Optional[float] = None
    avg_pace_seconds: Optional[float] = None
    avg_hr: Optional[int] = None
    max_hr: Optional[int] = None
    workout_type: str = "easy"
    elevation_gain_ft: Optional[float] = None
    weather_temp_f: Optional[float] = None
    weather_humidity_pct: Optional[float] = None
    dew_point_f: Optional[float] = None
    exclude_from_estimates: bool = False
    trimp: Optional[float] = None

    @property
    def pace_seconds_per_mile(self) -> Optional[float]:
        if self.avg_pace_seconds:
            return self.avg_pace_seconds
        if self.distance_miles and self.duration_minutes and self.distance_miles > 0:
            return self.duration_minutes * 60.0 / self.distance_miles
        return None

    def context(self, effort_level: Optional[EffortLevel] = None) -> EffortContext:
        return EffortContext(
            weather_temp_f=self.weather_temp_f,
            weather_humidity_pct=self.weather_humidity_pct,
            dew_point_f=self.dew_point_f,
            elevation_gain_ft=self.elevation_gain_ft,
            effort_level=effort_level,
        )


@dataclass(frozen=True)
class RaceResultRecord:
    id: str
    date: date
    distance_meters: float
    finish_time_seconds: float
    effort_level: Optional[EffortLevel] = None  # None: graded from the linked workout
    workout_id: Optional[str] = None


@dataclass(frozen=True)
class AthleteSettings:
    resting_hr: Optional[int] = None
    max_hr: Optional[int] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    stored_vdot: Optional[float] = None
    birthdate: Optional[date] = None

    def on(self, as_of: date) -> "AthleteSettings":
        """Settings as they stood on as_of; age follows the birthdate when known."""
        if self.birthdate is None:
            return self
        years = as_of.year - self.birthdate.year
        if (as_of.month, as_of.day) < (self.birthdate.month, self.birthdate.day):
            years -= 1
        return replace(self, age=years)

    @property
    def effective_max_hr(self) -> Optional[int]:
        if self.max_hr:
            return self.max_hr
        if self.age:
            return 220 - self.age
        return None


@dataclass(frozen=True)
class ActivityStreamData:
    """Parallel arrays for one workout. heartrate may be empty."""
    distance_miles: List[float]
    time_seconds: List[float]
    heartrate: List[Optional[float]] = field(default_factory=list)

    @property
    def point_count(self) -> int:
        return min(len(self.distance_miles), len(self.time_seconds))


@dataclass(frozen=True)
class HrCalibration:
    """Max HR observed in a recent all-out race, used to trust HR-derived estimates."""
    race_date: date
    observed_max_hr: int


@dataclass(frozen=True)
class FitnessState:
    ctl: float
    atl: float

    @property
    def tsb(self) -> float:
        return self.ctl - self.atl


@dataclass(frozen=True)
class TrainingVolume:
    weekly_miles: float = 0.0
    long_run_miles: float = 0.0


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedEffort:
    raw_time_seconds: float
    equivalent_time_seconds: float
    equivalent_vdot: float
    weather_adjust_sec_per_mile: float
    elevation_adjust_sec_per_mile: float
    effort_multiplier: float
    confidence: ConfidenceLevel
    confidence_weight: float
    confidence_score: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        return data


@dataclass(frozen=True)
class Signal:
    name: str
    confidence: float
    weight: float
    kind: SignalKind = SignalKind.ABSOLUTE
    estimated_vdot: Optional[float] = None
    adjustment: Optional[float] = None
    description: str = ""
    data_points: int = 0
    recency_days: Optional[int] = None
    key_dates: List[date] = field(default_factory=list)
    key_workout_ids: List[str] = field(default_factory=list)

    @property
    def effective_weight(self) -> float:
        return self.weight * self.confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "estimated_vdot": round(self.estimated_vdot, 2) if self.estimated_vdot is not None else None,
            "adjustment": round(self.adjustment, 2) if self.adjustment is not None else None,
            "confidence": round(self.confidence, 3),
            "weight": self.weight,
            "description": self.description,
            "data_points": self.data_points,
            "recency_days": self.recency_days,
            "key_dates": [d.isoformat() for d in self.key_dates],
            "key_workout_ids": list(self.key_workout_ids),
        }


@dataclass(frozen=True)
class DistancePrediction:
    distance: str
    distance_meters: float
    equivalent_seconds: float
    predicted_seconds: float
    fast_seconds: float
    slow_seconds: float
    pace_seconds_per_mile: float
    readiness: float = 1.0
    form_adjustment_pct: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance": self.distance,
            "distance_meters": self.distance_meters,
            "equivalent_seconds": round(self.equivalent_seconds),
            "predicted_seconds": round(self.predicted_seconds),
            "range_seconds": [round(self.fast_seconds), round(self.slow_seconds)],
            "pace_seconds_per_mile": round(self.pace_seconds_per_mile),
            "readiness": round(self.readiness, 3),
            "form_adjustment_pct": round(self.form_adjustment_pct, 2),
        }


@dataclass(frozen=True)
class AgreementDetails:
    std_dev: float
    spread: float
    outliers: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DataQuality:
    signals_used: int
    failed_signals: List[str] = field(default_factory=list)
    total_workouts: int = 0
    total_races: int = 0
    has_recent_data: bool = False


@dataclass(frozen=True)
class MultiSignalPrediction:
    blended_vdot: float
    vdot_range: float
    confidence: ConfidenceLevel
    agreement_score: float
    agreement: AgreementDetails
    predictions: List[DistancePrediction]
    signals: List[Signal]
    data_quality: DataQuality
    modifier_adjustment: float = 0.0
    as_of: Optional[date] = None

    def signal(self, name: str) -> Optional[Signal]:
        for s in self.signals:
            if s.name == name:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blended_vdot": round(self.blended_vdot, 1),
            "vdot_range": round(self.vdot_range, 1),
            "confidence": self.confidence.value,
            "agreement_score": round(self.agreement_score, 3),
            "agreement": asdict(self.agreement),
            "modifier_adjustment": round(self.modifier_adjustment, 2),
            "predictions": [p.to_dict() for p in self.predictions],
            "signals": [s.to_dict() for s in self.signals],
            "data_quality": asdict(self.data_quality),
            "as_of": self.as_of.isoformat() if self.as_of else None,
        }


@dataclass(frozen=True)
class PredictionInput:
    """Everything one prediction run may look at, already cut off at as_of."""
    as_of: date
    athlete: AthleteSettings
    workouts: List[WorkoutRecord] = field(default_factory=list)
    races: List[RaceResultRecord] = field(default_factory=list)
    best_efforts: List[Effort] = field(default_factory=list)
    workout_tsb: Dict[str, float] = field(default_factory=dict)
    fitness_state: Optional[FitnessState] = None
    training_volume: TrainingVolume = field(default_factory=TrainingVolume)
    hr_calibration: Optional[HrCalibration] = None

    def days_ago(self, when: date) -> int:
        return (self.as_of - when).days
