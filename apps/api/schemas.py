from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Dict, Any, Literal


EffortLevelName = Literal["all_out", "hard", "moderate", "easy"]


# =============================================================================
# VDOT CALCULATOR
# =============================================================================

class VdotCalculateRequest(BaseModel):
    """Race result to convert into a fitness index."""
    distance_meters: float = Field(..., gt=0)
    time_seconds: float = Field(..., gt=0)


class VdotCalculateResponse(BaseModel):
    vdot: float
    raw_vdot: float
    distance_meters: float
    time_seconds: float
    training_paces: Dict[str, Any]
    equivalent_races: List[Dict[str, Any]]


class TrainingPacesRequest(BaseModel):
    vdot: float


class NormalizeEffortRequest(BaseModel):
    """A single effort plus whatever context is known about it."""
    distance_meters: float = Field(..., gt=0)
    time_seconds: float = Field(..., gt=0)
    effort_level: EffortLevelName = "all_out"
    temperature_f: Optional[float] = None
    humidity_pct: Optional[float] = Field(None, ge=0, le=100)
    dew_point_f: Optional[float] = None
    elevation_gain_ft: Optional[float] = Field(None, ge=0)


class NormalizedEffortResponse(BaseModel):
    raw_time_seconds: float
    equivalent_time_seconds: float
    equivalent_vdot: float
    weather_adjust_sec_per_mile: float
    elevation_adjust_sec_per_mile: float
    effort_multiplier: float
    confidence: str
    confidence_weight: float
    confidence_score: float


# =============================================================================
# FITNESS ENGINE
# =============================================================================

class PredictionResponse(BaseModel):
    athlete_id: UUID
    as_of: date
    available: bool
    prediction: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    failed_signals: List[str] = []


class BaselineSyncRequest(BaseModel):
    as_of: Optional[date] = None
    skip_smoothing: bool = False


class BaselineSyncResponse(BaseModel):
    athlete_id: UUID
    updated: bool
    previous_vdot: Optional[float] = None
    raw_vdot: Optional[float] = None
    vdot: Optional[float] = None
    smoothed: bool = False
    confidence: Optional[str] = None
    source: Optional[str] = None
    message: Optional[str] = None


class VdotHistoryEntryResponse(BaseModel):
    date: date
    vdot: float
    source: str
    confidence: Optional[str] = None
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VdotHistoryResponse(BaseModel):
    athlete_id: UUID
    current_vdot: Optional[float] = None
    entries: List[VdotHistoryEntryResponse]


class BacktestRequest(BaseModel):
    start: Optional[date] = None
    run_async: bool = False


class BacktestResponse(BaseModel):
    athlete_id: UUID
    status: str
    task_id: Optional[str] = None
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    months_written: int = 0
    months: List[Dict[str, Any]] = []


class BestSegmentResponse(BaseModel):
    activity_id: UUID
    success: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    candidate_count: int = 0
    point_count: int = 0
    best: Optional[Dict[str, Any]] = None
