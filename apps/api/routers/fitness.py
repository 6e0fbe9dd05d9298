"""
Fitness Router

Per-athlete fitness engine endpoints:
- Multi-signal race prediction
- Training load (CTL/ATL/TSB) series and summary
- Best segment inside an activity
- Monthly VDOT history, baseline sync and backtest
"""
from datetime import date
from typing import Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import NotFoundError
from models import Activity, Athlete
from schemas import (
    BacktestRequest,
    BacktestResponse,
    BaselineSyncRequest,
    BaselineSyncResponse,
    BestSegmentResponse,
    PredictionResponse,
    VdotHistoryEntryResponse,
    VdotHistoryResponse,
)
from services.fitness_service import (
    NO_SIGNALS_REASON,
    backtest_athlete,
    best_segment_for_activity,
    predict_for_athlete,
    sync_athlete_baseline,
    training_load_for_athlete,
)
from services.vdot_calculator import calculate_training_paces
from services.vdot_history import get_vdot_history

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/fitness", tags=["Fitness"])


def _get_athlete(db: Session, athlete_id: UUID) -> Athlete:
    athlete = db.query(Athlete).filter(Athlete.id == athlete_id).first()
    if not athlete:
        raise NotFoundError("Athlete", str(athlete_id))
    return athlete


# ============ Prediction ============

@router.get("/athletes/{athlete_id}/prediction", response_model=PredictionResponse)
def get_prediction(
    athlete_id: UUID,
    as_of: Optional[date] = Query(None, description="Predict using only data up to this date"),
    db: Session = Depends(get_db),
):
    """
    Fused fitness estimate and race-time predictions.

    When no signal can be produced, `available` is false and `reason` says
    why; the response never falls back to a default index.
    """
    athlete = _get_athlete(db, athlete_id)
    as_of = as_of or date.today()
    prediction, failed = predict_for_athlete(db, athlete, as_of)
    if prediction is None:
        return PredictionResponse(
            athlete_id=athlete_id,
            as_of=as_of,
            available=False,
            reason=NO_SIGNALS_REASON,
            failed_signals=failed,
        )
    return PredictionResponse(
        athlete_id=athlete_id,
        as_of=as_of,
        available=True,
        prediction=prediction.to_dict(),
        failed_signals=failed,
    )


@router.get("/athletes/{athlete_id}/pace-zones")
def get_athlete_pace_zones(athlete_id: UUID, db: Session = Depends(get_db)):
    """Training paces from the athlete's stored baseline."""
    athlete = _get_athlete(db, athlete_id)
    if athlete.vdot is None:
        return {"athlete_id": str(athlete_id), "available": False, "vdot": None, "paces": None}
    return {
        "athlete_id": str(athlete_id),
        "available": True,
        "vdot": round(athlete.vdot, 1),
        "paces": calculate_training_paces(athlete.vdot).to_dict(),
    }


# ============ Training Load ============

@router.get("/athletes/{athlete_id}/training-load")
def get_training_load(
    athlete_id: UUID,
    days: int = Query(90, ge=7, le=365, description="Display window in days"),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Daily CTL/ATL/TSB series plus the current summary.

    Returns:
    - ctl: chronic load (fitness, 42-day)
    - atl: acute load (fatigue, 7-day)
    - tsb: form (ctl - atl)
    - ramp rate and risk, weekly load and its optimal range
    """
    athlete = _get_athlete(db, athlete_id)
    result = training_load_for_athlete(db, athlete, as_of or date.today(), days)
    return result.to_dict()


# ============ Best Segment ============

@router.get("/activities/{activity_id}/best-segment", response_model=BestSegmentResponse)
def get_best_segment(activity_id: UUID, db: Session = Depends(get_db)):
    activity = db.query(Activity).filter(Activity.id == activity_id).first()
    if not activity:
        raise NotFoundError("Activity", str(activity_id))

    result = best_segment_for_activity(db, activity_id)
    if result is None:
        return BestSegmentResponse(
            activity_id=activity_id,
            success=False,
            reason="no_stream",
            message="Activity has no distance/time stream",
        )
    data = result.to_dict()
    return BestSegmentResponse(
        activity_id=activity_id,
        success=data["success"],
        reason=data["reason"],
        message=data["message"],
        candidate_count=data["candidate_count"],
        point_count=data["point_count"],
        best=data["best"],
    )


# ============ VDOT History ============

@router.get("/athletes/{athlete_id}/vdot-history", response_model=VdotHistoryResponse)
def get_athlete_vdot_history(
    athlete_id: UUID,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    athlete = _get_athlete(db, athlete_id)
    rows = get_vdot_history(db, athlete_id, start, end)
    return VdotHistoryResponse(
        athlete_id=athlete_id,
        current_vdot=round(athlete.vdot, 2) if athlete.vdot is not None else None,
        entries=[VdotHistoryEntryResponse.model_validate(row) for row in rows],
    )


@router.post("/athletes/{athlete_id}/vdot-sync", response_model=BaselineSyncResponse)
def post_vdot_sync(
    athlete_id: UUID,
    request: BaselineSyncRequest,
    db: Session = Depends(get_db),
):
    """
    Recompute the fused estimate and move the stored baseline toward it.

    `skip_smoothing` stores the raw fused value (used after a confirmed race).
    """
    athlete = _get_athlete(db, athlete_id)
    outcome = sync_athlete_baseline(db, athlete, request.as_of or date.today(), request.skip_smoothing)
    if not outcome.updated:
        return BaselineSyncResponse(
            athlete_id=athlete_id,
            updated=False,
            previous_vdot=athlete.vdot,
            vdot=athlete.vdot,
            message=outcome.reason,
        )
    update = outcome.result.update
    entry = outcome.result.history_entry
    return BaselineSyncResponse(
        athlete_id=athlete_id,
        updated=True,
        previous_vdot=update.previous,
        raw_vdot=round(update.raw, 2),
        vdot=round(update.updated, 2),
        smoothed=update.smoothed,
        confidence=entry.confidence.value,
        source=entry.source.value,
        message=entry.notes,
    )


@router.post("/athletes/{athlete_id}/backtest", response_model=BacktestResponse)
def post_backtest(
    athlete_id: UUID,
    request: BacktestRequest,
    db: Session = Depends(get_db),
):
    """
    Reconstruct monthly VDOT history from the first activity through today.

    With `run_async` the work is queued on the worker and a task id is returned.
    """
    athlete = _get_athlete(db, athlete_id)

    if request.run_async:
        from tasks.vdot_tasks import run_vdot_backtest_task

        task = run_vdot_backtest_task.delay(
            str(athlete.id),
            start=request.start.isoformat() if request.start else None,
        )
        logger.info("VDOT backtest queued for athlete %s (task %s)", athlete.id, task.id)
        return BacktestResponse(athlete_id=athlete_id, status="queued", task_id=task.id)

    report, rows = backtest_athlete(db, athlete, date.today(), start=request.start)
    data = report.to_dict()
    return BacktestResponse(
        athlete_id=athlete_id,
        status="completed",
        processed=report.processed,
        failed=report.failed,
        skipped=report.skipped,
        months_written=len(rows),
        months=data["months"],
    )
