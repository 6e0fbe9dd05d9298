from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
import uuid
from typing import Optional
from datetime import date


class Athlete(Base):
    __tablename__ = "athlete"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    display_name = Column(Text, nullable=True)
    birthdate = Column(Date, nullable=True)
    sex = Column(Text, nullable=True)  # 'M' / 'F'

    # Physiology used by HR-based load and capacity estimates
    resting_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)

    # Stored fitness baseline, written only through services.vdot_history
    vdot = Column(Float, nullable=True)
    vdot_updated_at = Column(DateTime(timezone=True), nullable=True)

    activities = relationship("Activity", back_populates="athlete", cascade="all, delete-orphan")

    def age_on(self, on_date: date) -> Optional[int]:
        if not self.birthdate:
            return None
        years = on_date.year - self.birthdate.year
        if (on_date.month, on_date.day) < (self.birthdate.month, self.birthdate.day):
            years -= 1
        return years


class Activity(Base):
    __tablename__ = "activity"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    athlete_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id"), nullable=False, index=True)
    name = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    sport = Column(Text, default="run", nullable=False)
    duration_s = Column(Integer, nullable=True)
    distance_m = Column(Integer, nullable=True)
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    total_elevation_gain = Column(Numeric, nullable=True)  # meters

    # e.g., 'easy', 'long', 'tempo', 'threshold', 'interval', 'race'
    workout_type = Column(Text, nullable=True, index=True)

    # Weather at start
    temperature_f = Column(Float, nullable=True)
    humidity_pct = Column(Float, nullable=True)
    dew_point_f = Column(Float, nullable=True)

    # Precomputed HR impulse (TRIMP) when the import provides one
    trimp = Column(Float, nullable=True)

    # Athlete-flagged (treadmill, broken GPS, paced a friend): kept for load, ignored for estimates
    exclude_from_estimates = Column(Boolean, default=False, nullable=False)

    athlete = relationship("Athlete", back_populates="activities")
    stream = relationship("ActivityStream", back_populates="activity", uselist=False, cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_activity_athlete_start", "athlete_id", "start_time"),
    )


class ActivityStream(Base):
    """
    Per-second stream data for an activity, one row per activity.

    Example stream_data:
        {
            "time": [0, 1, 2, ...],
            "distance": [0.0, 2.8, 5.6, ...],   # meters, cumulative
            "heartrate": [140, 141, 142, ...]
        }
    """
    __tablename__ = "activity_stream"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    activity_id = Column(Uuid(as_uuid=True), ForeignKey("activity.id"), nullable=False, unique=True)
    stream_data = Column(JSON, nullable=False)
    channels_available = Column(JSON, nullable=False, default=list)
    point_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    activity = relationship("Activity", back_populates="stream")


class RaceResult(Base):
    """Self-reported or verified race result, optionally linked to the recorded activity."""
    __tablename__ = "race_result"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    athlete_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id"), nullable=False, index=True)
    activity_id = Column(Uuid(as_uuid=True), ForeignKey("activity.id"), nullable=True)
    name = Column(Text, nullable=True)
    race_date = Column(Date, nullable=False)
    distance_meters = Column(Float, nullable=False)
    finish_time_seconds = Column(Integer, nullable=False)
    effort_level = Column(Text, nullable=True)  # all_out / hard / moderate / easy; null: graded from the activity
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("distance_meters > 0", name="ck_race_result_distance_positive"),
        CheckConstraint("finish_time_seconds > 0", name="ck_race_result_time_positive"),
    )


class BestEffort(Base):
    """
    Fastest effort for a standard distance found inside an activity.

    Stores all efforts, not just the fastest; the engine picks the ones it trusts.
    """
    __tablename__ = "best_effort"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    athlete_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id"), nullable=False)
    activity_id = Column(Uuid(as_uuid=True), ForeignKey("activity.id"), nullable=False)
    distance_category = Column(Text, nullable=False)  # 'mile', '5k', '10k', ...
    distance_meters = Column(Integer, nullable=False)
    elapsed_time = Column(Integer, nullable=False)  # Seconds
    achieved_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_best_effort_athlete_id", "athlete_id"),
        Index("ix_best_effort_achieved_at", "achieved_at"),
    )


class VdotHistory(Base):
    """
    One fitness index per athlete per month (date is the first of the month).

    Months without fresh evidence carry the previous value forward.
    """
    __tablename__ = "vdot_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    athlete_id = Column(Uuid(as_uuid=True), ForeignKey("athlete.id"), nullable=False)
    date = Column(Date, nullable=False)
    vdot = Column(Float, nullable=False)
    source = Column(Text, nullable=False)  # race / estimate / backtest / carry_forward
    confidence = Column(Text, nullable=True)  # high / medium / low
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("athlete_id", "date", name="uq_vdot_history_athlete_month"),
        CheckConstraint("vdot >= 15 AND vdot <= 85", name="ck_vdot_history_range"),
        Index("ix_vdot_history_athlete_date", "athlete_id", "date"),
    )
