"""
VDOT Calculator API Endpoints

Stateless calculator endpoints, no athlete data involved:
- VDOT from a race distance and time
- Training pace zones for a VDOT
- Equivalent race times for all standard distances
- Effort normalization (weather, elevation, effort level)
"""
from datetime import date

from fastapi import APIRouter, Query

from core.exceptions import ValidationError
from schemas import (
    NormalizeEffortRequest,
    NormalizedEffortResponse,
    TrainingPacesRequest,
    VdotCalculateRequest,
    VdotCalculateResponse,
)
from services.effort_normalizer import normalize_effort
from services.fitness_models import Effort, EffortLevel, EffortSource
from services.vdot_calculator import (
    calculate_all_equivalent_races,
    calculate_training_paces,
    calculate_vdot,
    ensure_vdot_in_range,
)

router = APIRouter(prefix="/v1/vdot", tags=["VDOT Calculator"])


@router.post("/calculate", response_model=VdotCalculateResponse)
def calculate_vdot_post(request: VdotCalculateRequest):
    """
    Calculate VDOT from race time and distance.

    Out-of-range results are rejected with 422 rather than clamped.
    """
    raw = calculate_vdot(request.distance_meters, request.time_seconds)
    vdot = ensure_vdot_in_range(raw)
    return VdotCalculateResponse(
        vdot=round(vdot, 1),
        raw_vdot=raw,
        distance_meters=request.distance_meters,
        time_seconds=request.time_seconds,
        training_paces=calculate_training_paces(vdot).to_dict(),
        equivalent_races=calculate_all_equivalent_races(vdot),
    )


@router.post("/training-paces")
def get_training_paces_post(request: TrainingPacesRequest):
    """Get training paces (seconds per mile) for a given VDOT."""
    if request.vdot <= 0:
        raise ValidationError("VDOT must be positive", field="vdot")
    return calculate_training_paces(request.vdot).to_dict()


@router.get("/training-paces")
def get_training_paces(vdot: float = Query(..., gt=0, description="Fitness index")):
    return calculate_training_paces(vdot).to_dict()


@router.get("/equivalent-races")
def get_equivalent_races(vdot: float = Query(..., gt=0, description="Fitness index")):
    """Equivalent race times for all standard distances, longest first."""
    return {"vdot": vdot, "races": calculate_all_equivalent_races(vdot)}


@router.post("/normalize", response_model=NormalizedEffortResponse)
def normalize_effort_post(request: NormalizeEffortRequest):
    """
    Convert an effort run in heat, on hills or below all-out into the
    equivalent flat, temperate, all-out performance.
    """
    effort = Effort(
        distance_meters=request.distance_meters,
        duration_seconds=request.time_seconds,
        date=date.today(),
        source=EffortSource.RACE,
        effort_level=EffortLevel(request.effort_level),
        weather_temp_f=request.temperature_f,
        weather_humidity_pct=request.humidity_pct,
        dew_point_f=request.dew_point_f,
        elevation_gain_ft=request.elevation_gain_ft,
    )
    return NormalizedEffortResponse(**normalize_effort(effort).to_dict())
