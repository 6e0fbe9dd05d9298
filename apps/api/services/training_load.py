"""
Training Load Calculator

Calculates training stress metrics:
- Stress score per workout (HR-based when possible, heuristic otherwise)
- ATL (Acute Training Load) - fatigue, 7-day exponentially weighted
- CTL (Chronic Training Load) - fitness, 42-day exponentially weighted
- TSB (Training Stress Balance) - form, always CTL - ATL

Plus derived signals: CTL ramp rate and its risk tier, the optimal weekly
load range, and a data-sufficiency verdict that callers must surface.

Design Philosophy:
- Use data we have (HR, pace, duration) rather than requiring power data
- The daily series is continuous: rest days are load 0, never skipped
- Pure: workouts in, value objects out. No database access here.
"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
import math
import logging

from core.fitness_config import FitnessConfig, fitness_config
from services.fitness_models import AthleteSettings, WorkoutRecord

logger = logging.getLogger(__name__)


class RampRisk(str, Enum):
    """CTL ramp rate risk tiers."""
    SAFE = "safe"
    CAUTION = "caution"
    HIGH = "high"


class DataSufficiency(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    FULL = "full"


class TrainingStatus(str, Enum):
    FRESH = "fresh"
    BALANCED = "balanced"
    TIRED = "tired"
    OVERREACHED = "overreached"


@dataclass
class WorkoutStress:
    """Stress score for a single workout"""
    workout_id: str
    date: date
    load: float
    duration_minutes: float
    calculation_method: str  # "trimp", "hrTSS", "estimated", "too_short"


@dataclass(frozen=True)
class DailyLoad:
    """Total load for one calendar day (0 on rest days)."""
    date: date
    load: float
    workout_count: int = 0


@dataclass(frozen=True)
class FitnessMetricsPoint:
    date: date
    daily_load: float
    ctl: float
    atl: float

    @property
    def tsb(self) -> float:
        return self.ctl - self.atl

    def to_dict(self) -> Dict:
        return {
            "date": self.date.isoformat(),
            "daily_load": round(self.daily_load, 1),
            "ctl": round(self.ctl, 1),
            "atl": round(self.atl, 1),
            "tsb": round(self.tsb, 1),
        }


@dataclass
class TrainingLoadResult:
    """Training load state for one athlete over a display window."""
    has_data: bool
    sufficiency: DataSufficiency
    confidence: float
    message: str
    workout_days: int = 0
    metrics: List[FitnessMetricsPoint] = field(default_factory=list)
    current_ctl: Optional[float] = None
    current_atl: Optional[float] = None
    current_tsb: Optional[float] = None
    ramp_rate: Optional[float] = None
    ramp_risk: Optional[RampRisk] = None
    weekly_load: Optional[float] = None
    optimal_weekly_range: Optional[Tuple[float, float]] = None
    ctl_trend: Optional[str] = None
    atl_trend: Optional[str] = None
    status: Optional[TrainingStatus] = None

    def metrics_by_date(self) -> Dict[date, FitnessMetricsPoint]:
        return {point.date: point for point in self.metrics}

    def to_dict(self) -> Dict:
        def _r(value):
            return round(value, 1) if value is not None else None

        return {
            "has_data": self.has_data,
            "sufficiency": self.sufficiency.value,
            "confidence": self.confidence,
            "message": self.message,
            "workout_days": self.workout_days,
            "current": {
                "ctl": _r(self.current_ctl),
                "atl": _r(self.current_atl),
                "tsb": _r(self.current_tsb),
                "status": self.status.value if self.status else None,
                "ctl_trend": self.ctl_trend,
                "atl_trend": self.atl_trend,
            },
            "ramp_rate": _r(self.ramp_rate),
            "ramp_risk": self.ramp_risk.value if self.ramp_risk else None,
            "weekly_load": _r(self.weekly_load),
            "optimal_weekly_range": (
                [round(v) for v in self.optimal_weekly_range] if self.optimal_weekly_range else None
            ),
            "metrics": [p.to_dict() for p in self.metrics],
        }


class TrainingLoadCalculator:
    """
    Calculates training load metrics from workout records.

    Stress score priority:
    1. Precomputed HR impulse (TRIMP) stored on the workout
    2. HR-based TSS if avg HR and the athlete's max/resting HR are known
    3. Estimated load from duration, workout type and pace
    """

    def __init__(self, config: FitnessConfig = fitness_config):
        self.config = config
        self.ctl_decay = 1 - math.exp(-1 / config.ctl_days)
        self.atl_decay = 1 - math.exp(-1 / config.atl_days)

    # =========================================================================
    # PER-WORKOUT STRESS
    # =========================================================================

    def calculate_workout_stress(
        self,
        workout: WorkoutRecord,
        athlete: Optional[AthleteSettings] = None,
    ) -> WorkoutStress:
        """Calculate load for a single workout using the best available method."""
        duration_minutes = workout.duration_minutes or 0

        if workout.trimp is not None and workout.trimp > 0:
            return WorkoutStress(workout.id, workout.date, round(workout.trimp, 1), duration_minutes, "trimp")

        if duration_minutes < 5:
            return WorkoutStress(workout.id, workout.date, 0.0, duration_minutes, "too_short")

        if self.config.use_hr_trimp and workout.avg_hr and athlete is not None:
            max_hr = athlete.effective_max_hr
            resting_hr = athlete.resting_hr
            if max_hr and resting_hr and max_hr > resting_hr:
                load = self.calculate_hr_load(duration_minutes, workout.avg_hr, resting_hr, max_hr)
                return WorkoutStress(workout.id, workout.date, load, duration_minutes, "hrTSS")

        load = self.estimate_load(
            duration_minutes,
            workout.workout_type,
            workout.pace_seconds_per_mile,
        )
        return WorkoutStress(workout.id, workout.date, load, duration_minutes, "estimated")

    @staticmethod
    def calculate_hr_load(duration_minutes: float, avg_hr: float, resting_hr: float, max_hr: float) -> float:
        """
        HR-based TSS.

        TRIMP-style exponential weighting of HR reserve, normalized so an hour
        at threshold (~88% HRR) scores 100.
        """
        hr_reserve = (avg_hr - resting_hr) / (max_hr - resting_hr)
        hr_reserve = max(0.0, min(1.1, hr_reserve))

        trimp_factor = 0.75 * math.exp(1.8 * hr_reserve)
        threshold_trimp = 0.75 * math.exp(1.8 * 0.88)
        intensity_factor = trimp_factor / threshold_trimp

        return round(duration_minutes * intensity_factor ** 2 / 60 * 100, 1)

    def estimate_load(
        self,
        duration_minutes: float,
        workout_type: Optional[str],
        pace_seconds_per_mile: Optional[float] = None,
    ) -> float:
        """Duration x type intensity, boosted for long sessions and fast paces."""
        if duration_minutes <= 0:
            return 0.0
        cfg = self.config
        factors = cfg.intensity_factors
        intensity = factors.get((workout_type or "other").lower(), factors["other"])
        load = duration_minutes * intensity

        if duration_minutes > cfg.long_duration_threshold_min:
            load *= 1 + (duration_minutes - cfg.long_duration_threshold_min) * cfg.long_duration_bonus_per_min

        if pace_seconds_per_mile and cfg.pace_factor_min_sec <= pace_seconds_per_mile <= cfg.pace_factor_max_sec:
            load *= math.sqrt(cfg.pace_reference_sec_per_mile / pace_seconds_per_mile)

        return round(load, 1)

    # =========================================================================
    # DAILY SERIES + CTL / ATL
    # =========================================================================

    def build_daily_loads(
        self,
        stresses: Iterable[WorkoutStress],
        start_date: date,
        end_date: date,
    ) -> List[DailyLoad]:
        """One DailyLoad per calendar day in [start_date, end_date]; rest days get 0."""
        totals: Dict[date, float] = {}
        counts: Dict[date, int] = {}
        for stress in stresses:
            if start_date <= stress.date <= end_date:
                totals[stress.date] = totals.get(stress.date, 0.0) + stress.load
                counts[stress.date] = counts.get(stress.date, 0) + 1

        series = []
        current = start_date
        while current <= end_date:
            series.append(DailyLoad(current, totals.get(current, 0.0), counts.get(current, 0)))
            current += timedelta(days=1)
        return series

    def calculate_fitness_metrics(
        self,
        daily_loads: List[DailyLoad],
        initial_ctl: float = 0.0,
        initial_atl: float = 0.0,
    ) -> List[FitnessMetricsPoint]:
        """Exponentially weighted CTL/ATL over a gap-filled daily series."""
        ctl = initial_ctl
        atl = initial_atl
        points = []
        for day in daily_loads:
            ctl = ctl + self.ctl_decay * (day.load - ctl)
            atl = atl + self.atl_decay * (day.load - atl)
            points.append(FitnessMetricsPoint(date=day.date, daily_load=day.load, ctl=ctl, atl=atl))
        return points

    # =========================================================================
    # DERIVED SIGNALS
    # =========================================================================

    def calculate_ramp_rate(self, metrics: List[FitnessMetricsPoint]) -> Optional[float]:
        """CTL change per week over the trailing window. None with under a week of data."""
        if len(metrics) < self.config.ramp_min_days:
            return None
        recent = metrics[-self.config.ramp_window_days:]
        weeks = len(recent) / 7
        return (recent[-1].ctl - recent[0].ctl) / weeks

    def classify_ramp_rate(self, ramp_rate: Optional[float]) -> RampRisk:
        if ramp_rate is None or ramp_rate < self.config.ramp_caution_threshold:
            return RampRisk.SAFE
        if ramp_rate < self.config.ramp_high_threshold:
            return RampRisk.CAUTION
        return RampRisk.HIGH

    def calculate_optimal_weekly_range(self, daily_loads: List[DailyLoad]) -> Optional[Tuple[float, float]]:
        """80-120% of the trailing 4-week average weekly load."""
        window = daily_loads[-28:]
        if not window:
            return None
        weeks = len(window) / 7
        average_weekly = sum(d.load for d in window) / weeks
        return (
            average_weekly * self.config.optimal_load_low,
            average_weekly * self.config.optimal_load_high,
        )

    def assess_data_sufficiency(self, workout_days: int) -> Tuple[DataSufficiency, float, str]:
        cfg = self.config
        if workout_days <= 0:
            level, message = DataSufficiency.NONE, "No workout data available for this period"
        elif workout_days < cfg.sufficiency_low_days:
            level, message = DataSufficiency.LOW, (
                f"Only {workout_days} training days recorded; load values are rough estimates"
            )
        elif workout_days < cfg.sufficiency_medium_days:
            level, message = DataSufficiency.MEDIUM, (
                f"{workout_days} training days recorded; fitness (CTL) is still building toward a stable value"
            )
        else:
            level, message = DataSufficiency.FULL, f"{workout_days} training days recorded"
        return level, cfg.sufficiency_confidence[level.value], message

    @staticmethod
    def get_training_status(tsb: float) -> TrainingStatus:
        if tsb > 15:
            return TrainingStatus.FRESH
        if tsb >= -10:
            return TrainingStatus.BALANCED
        if tsb >= -30:
            return TrainingStatus.TIRED
        return TrainingStatus.OVERREACHED

    @staticmethod
    def _calculate_trend(previous: List[float], recent: List[float]) -> str:
        """Compare two windows: rising, falling or stable (5% band)."""
        if not previous or not recent:
            return "stable"
        prev_avg = sum(previous) / len(previous)
        recent_avg = sum(recent) / len(recent)
        if prev_avg == 0:
            return "rising" if recent_avg > 0 else "stable"
        change = (recent_avg - prev_avg) / prev_avg
        if change > 0.05:
            return "rising"
        if change < -0.05:
            return "falling"
        return "stable"

    # =========================================================================
    # FULL CALCULATION
    # =========================================================================

    def calculate_training_load(
        self,
        workouts: Iterable[WorkoutRecord],
        end_date: date,
        days: int = 90,
        athlete: Optional[AthleteSettings] = None,
        include_warmup: bool = True,
    ) -> TrainingLoadResult:
        """
        Training load over the `days` ending at end_date.

        CTL/ATL are seeded by a warm-up period before the display window so
        the first displayed day is not artificially near zero.
        """
        display_start = end_date - timedelta(days=days - 1)
        series_start = display_start - timedelta(days=self.config.warmup_days) if include_warmup else display_start

        stresses = [
            self.calculate_workout_stress(w, athlete)
            for w in workouts
            if series_start <= w.date <= end_date
        ]
        workout_days = len({s.date for s in stresses if s.date >= display_start and s.load > 0})
        sufficiency, confidence, message = self.assess_data_sufficiency(workout_days)

        if sufficiency == DataSufficiency.NONE:
            logger.info("No workout data between %s and %s", display_start, end_date)
            return TrainingLoadResult(
                has_data=False,
                sufficiency=sufficiency,
                confidence=confidence,
                message=message,
            )

        daily = self.build_daily_loads(stresses, series_start, end_date)
        all_metrics = self.calculate_fitness_metrics(daily)
        metrics = [p for p in all_metrics if p.date >= display_start]
        display_daily = [d for d in daily if d.date >= display_start]

        current = metrics[-1]
        ramp_rate = self.calculate_ramp_rate(metrics)
        ctl_values = [p.ctl for p in metrics]
        atl_values = [p.atl for p in metrics]

        return TrainingLoadResult(
            has_data=True,
            sufficiency=sufficiency,
            confidence=confidence,
            message=message,
            workout_days=workout_days,
            metrics=metrics,
            current_ctl=current.ctl,
            current_atl=current.atl,
            current_tsb=current.tsb,
            ramp_rate=ramp_rate,
            ramp_risk=self.classify_ramp_rate(ramp_rate),
            weekly_load=sum(d.load for d in display_daily[-7:]),
            optimal_weekly_range=self.calculate_optimal_weekly_range(display_daily),
            ctl_trend=self._calculate_trend(ctl_values[-14:-7], ctl_values[-7:]),
            atl_trend=self._calculate_trend(atl_values[-14:-7], atl_values[-7:]),
            status=self.get_training_status(current.tsb),
        )
