"""
VDOT Celery Tasks

Out-of-band baseline sync and backtest. Both return a status dictionary;
failures roll back and are reported, never re-raised into the worker.
"""
import logging
from datetime import date
from typing import Dict, Optional
from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from tasks import celery_app
from core.database import get_db_sync
from models import Athlete

logger = logging.getLogger(__name__)


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@celery_app.task(name="tasks.run_vdot_backtest", bind=True)
def run_vdot_backtest_task(self: Task, athlete_id: str, start: Optional[str] = None,
                           today: Optional[str] = None) -> Dict:
    """
    Rebuild an athlete's monthly VDOT history.

    Args:
        athlete_id: UUID string of the athlete
        start: optional ISO date to start from instead of the first activity
        today: optional ISO date for the last month (defaults to today)

    Returns:
        Dictionary with processed/failed/skipped month counts
    """
    from services.fitness_service import backtest_athlete

    db: Session = get_db_sync()
    try:
        athlete = db.get(Athlete, UUID(athlete_id))
        if not athlete:
            return {"status": "error", "error": f"Athlete {athlete_id} not found"}

        report, rows = backtest_athlete(db, athlete, _parse_date(today) or date.today(), start=_parse_date(start))
        return {
            "status": "success",
            "athlete_id": athlete_id,
            "processed": report.processed,
            "failed": report.failed,
            "skipped": report.skipped,
            "months_written": len(rows),
        }
    except Exception as e:
        db.rollback()
        logger.error(
            f"VDOT backtest failed for athlete {athlete_id}: {e}",
            exc_info=True,
            extra={"extra_fields": {"athlete_id": athlete_id, "task_id": str(self.request.id)}},
        )
        return {"status": "error", "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="tasks.sync_vdot_baseline", bind=True)
def sync_vdot_baseline_task(self: Task, athlete_id: str, as_of: Optional[str] = None,
                            skip_smoothing: bool = False) -> Dict:
    """Recompute the fused estimate and move the stored baseline toward it."""
    from services.fitness_service import sync_athlete_baseline

    db: Session = get_db_sync()
    try:
        athlete = db.get(Athlete, UUID(athlete_id))
        if not athlete:
            return {"status": "error", "error": f"Athlete {athlete_id} not found"}

        outcome = sync_athlete_baseline(db, athlete, _parse_date(as_of) or date.today(), skip_smoothing)
        if not outcome.updated:
            return {"status": "skipped", "athlete_id": athlete_id, "reason": outcome.reason}

        update = outcome.result.update
        return {
            "status": "success",
            "athlete_id": athlete_id,
            "previous_vdot": update.previous,
            "raw_vdot": round(update.raw, 2),
            "vdot": round(update.updated, 2),
            "smoothed": update.smoothed,
            "confidence": outcome.result.history_entry.confidence.value,
        }
    except Exception as e:
        db.rollback()
        logger.error(
            f"VDOT baseline sync failed for athlete {athlete_id}: {e}",
            exc_info=True,
            extra={"extra_fields": {"athlete_id": athlete_id, "task_id": str(self.request.id)}},
        )
        return {"status": "error", "error": str(e)}
    finally:
        db.close()
