"""
Fitness Data Source

Loads an athlete's records from the database and converts them into the
engine's plain value objects. Every query takes an explicit as-of cutoff;
nothing recorded after it is read.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.fitness_config import FitnessConfig, fitness_config
from models import Activity, ActivityStream, Athlete, BestEffort, RaceResult
from services.fitness_models import (
    ActivityStreamData,
    AthleteSettings,
    Effort,
    EffortLevel,
    EffortSource,
    RaceResultRecord,
    WorkoutRecord,
)
from services.fitness_pipeline import AthleteHistory
from services.vdot_calculator import METERS_PER_MILE

logger = logging.getLogger(__name__)

FEET_PER_METER = 3.28084


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max).replace(tzinfo=timezone.utc)


# =============================================================================
# ROW -> VALUE OBJECT
# =============================================================================

def activity_to_workout(activity: Activity) -> WorkoutRecord:
    gain_m = activity.total_elevation_gain
    return WorkoutRecord(
        id=str(activity.id),
        date=activity.start_time.date(),
        distance_miles=activity.distance_m / METERS_PER_MILE if activity.distance_m else None,
        duration_minutes=activity.duration_s / 60.0 if activity.duration_s else None,
        avg_hr=activity.avg_hr,
        max_hr=activity.max_hr,
        workout_type=(activity.workout_type or "easy").lower(),
        elevation_gain_ft=float(gain_m) * FEET_PER_METER if gain_m is not None else None,
        weather_temp_f=activity.temperature_f,
        weather_humidity_pct=activity.humidity_pct,
        dew_point_f=activity.dew_point_f,
        exclude_from_estimates=bool(activity.exclude_from_estimates),
        trimp=activity.trimp,
    )


def race_to_record(race: RaceResult) -> RaceResultRecord:
    effort_level = None
    try:
        if race.effort_level:
            effort_level = EffortLevel(race.effort_level)
    except ValueError:
        logger.warning("Unknown effort level %r on race %s; treating as moderate", race.effort_level, race.id)
        effort_level = EffortLevel.MODERATE
    return RaceResultRecord(
        id=str(race.id),
        date=race.race_date,
        distance_meters=float(race.distance_meters),
        finish_time_seconds=float(race.finish_time_seconds),
        effort_level=effort_level,
        workout_id=str(race.activity_id) if race.activity_id else None,
    )


def best_effort_to_effort(effort: BestEffort) -> Effort:
    return Effort(
        distance_meters=float(effort.distance_meters),
        duration_seconds=float(effort.elapsed_time),
        date=effort.achieved_at.date(),
        source=EffortSource.WORKOUT_SEGMENT,
        workout_id=str(effort.activity_id),
    )


def stream_to_data(stream: ActivityStream) -> Optional[ActivityStreamData]:
    """Strava-style channels (meters, seconds, bpm) to miles/seconds/bpm arrays."""
    data = stream.stream_data or {}
    distance = data.get("distance")
    elapsed = data.get("time")
    if not distance or not elapsed:
        return None
    return ActivityStreamData(
        distance_miles=[(d or 0.0) / METERS_PER_MILE for d in distance],
        time_seconds=[float(t) for t in elapsed],
        heartrate=list(data.get("heartrate") or []),
    )


def athlete_settings(athlete: Athlete, as_of: date) -> AthleteSettings:
    return AthleteSettings(
        resting_hr=athlete.resting_hr,
        max_hr=athlete.max_hr,
        age=athlete.age_on(as_of),
        gender=athlete.sex,
        stored_vdot=athlete.vdot,
        birthdate=athlete.birthdate,
    )


# =============================================================================
# LOADER
# =============================================================================

class FitnessDataSource:
    """Reads one athlete's history, bounded by an as-of cutoff."""

    def __init__(self, db: Session, config: FitnessConfig = fitness_config):
        self.db = db
        self.config = config

    def get_athlete(self, athlete_id: UUID) -> Optional[Athlete]:
        return self.db.query(Athlete).filter(Athlete.id == athlete_id).first()

    def first_activity_date(self, athlete_id: UUID) -> Optional[date]:
        first = (
            self.db.query(Activity.start_time)
            .filter(Activity.athlete_id == athlete_id)
            .order_by(Activity.start_time)
            .first()
        )
        return first[0].date() if first else None

    def load_history(
        self,
        athlete: Athlete,
        as_of: date,
        since: Optional[date] = None,
        include_streams: bool = True,
    ) -> AthleteHistory:
        """
        Everything the engine may use for a prediction as of `as_of`.

        `since` bounds workouts/efforts/streams from below (races are always
        loaded in full since they decay slowly). None loads the whole history,
        which the backtest needs.
        """
        cutoff = end_of_day(as_of)

        activity_query = self.db.query(Activity).filter(
            Activity.athlete_id == athlete.id,
            Activity.start_time <= cutoff,
        )
        effort_query = self.db.query(BestEffort).filter(
            BestEffort.athlete_id == athlete.id,
            BestEffort.achieved_at <= cutoff,
        )
        if since is not None:
            lower = datetime.combine(since, time.min).replace(tzinfo=timezone.utc)
            activity_query = activity_query.filter(Activity.start_time >= lower)
            effort_query = effort_query.filter(BestEffort.achieved_at >= lower)

        activities = activity_query.order_by(Activity.start_time).all()
        races = (
            self.db.query(RaceResult)
            .filter(RaceResult.athlete_id == athlete.id, RaceResult.race_date <= as_of)
            .order_by(RaceResult.race_date)
            .all()
        )
        efforts = effort_query.order_by(BestEffort.achieved_at).all()

        workouts = [activity_to_workout(a) for a in activities]
        streams: Dict[str, ActivityStreamData] = {}
        if include_streams:
            streams = self._load_streams(activities)

        return AthleteHistory(
            athlete=athlete_settings(athlete, as_of),
            workouts=workouts,
            races=[race_to_record(r) for r in races],
            best_efforts=[best_effort_to_effort(e) for e in efforts],
            streams=streams,
        )

    def load_recent_history(self, athlete: Athlete, as_of: date) -> AthleteHistory:
        """Lookback window plus the CTL warm-up, enough for one prediction."""
        since = as_of - timedelta(days=self.config.lookback_days + self.config.warmup_days)
        return self.load_history(athlete, as_of, since=since)

    def _load_streams(self, activities: List[Activity]) -> Dict[str, ActivityStreamData]:
        wanted = [
            a.id for a in activities
            if (a.workout_type or "").lower() in self.config.segment_workout_types and not a.exclude_from_estimates
        ]
        if not wanted:
            return {}
        rows = self.db.query(ActivityStream).filter(ActivityStream.activity_id.in_(wanted)).all()
        streams = {}
        for row in rows:
            data = stream_to_data(row)
            if data is not None:
                streams[str(row.activity_id)] = data
        return streams

    def load_stream(self, activity_id: UUID) -> Optional[ActivityStreamData]:
        row = self.db.query(ActivityStream).filter(ActivityStream.activity_id == activity_id).first()
        return stream_to_data(row) if row else None
