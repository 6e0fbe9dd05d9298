"""
VDOT Backtest

Reconstructs the athlete's fitness history month by month. For each month
from the first recorded activity through the present, the full pipeline is
re-run as of the month's last day, seeing only records dated on or before
that day, and the raw (unsmoothed) fused value becomes that month's entry.

Each month is an independent call with the cutoff as an explicit argument,
so months can be computed in any order or in parallel. A month that throws
is counted as failed and the loop moves on.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.fitness_config import FitnessConfig, fitness_config
from models import VdotHistory
from services.fitness_models import HistorySource
from services.fitness_pipeline import AthleteHistory, run_prediction
from services.vdot_baseline import HistoryEntryDraft, sync_baseline
from services.vdot_calculator import is_valid_vdot
from services.vdot_history import iter_months, next_month, rebuild_monthly_history

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class MonthOutcome:
    month: date
    cutoff: date
    status: str
    vdot: Optional[float] = None
    entry: Optional[HistoryEntryDraft] = None
    reason: Optional[str] = None


@dataclass
class BacktestReport:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: List[MonthOutcome] = field(default_factory=list)

    @property
    def entries(self) -> List[HistoryEntryDraft]:
        return [o.entry for o in self.outcomes if o.entry is not None]

    def add(self, outcome: MonthOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == PROCESSED:
            self.processed += 1
        elif outcome.status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "months": [
                {
                    "month": o.month.isoformat(),
                    "status": o.status,
                    "vdot": round(o.vdot, 1) if o.vdot is not None else None,
                    "reason": o.reason,
                }
                for o in self.outcomes
            ],
        }


def month_cutoff(month: date, today: date) -> date:
    """Last day of the month, or today for the current month."""
    return min(next_month(month) - timedelta(days=1), today)


def backtest_month(history: AthleteHistory, month: date, today: date,
                   config: FitnessConfig = fitness_config) -> MonthOutcome:
    """Run the pipeline as of one month's cutoff. Raises on unexpected errors."""
    cutoff = month_cutoff(month, today)
    prediction = run_prediction(history, cutoff, config)
    if prediction is None:
        return MonthOutcome(month, cutoff, SKIPPED, reason="no signals available")
    if not is_valid_vdot(prediction.blended_vdot, config):
        return MonthOutcome(month, cutoff, SKIPPED, vdot=prediction.blended_vdot, reason="VDOT out of range")

    result = sync_baseline(
        prediction,
        prior=None,
        entry_date=month,
        skip_smoothing=True,
        source=HistorySource.BACKTEST,
        config=config,
    )
    return MonthOutcome(month, cutoff, PROCESSED, vdot=result.update.updated, entry=result.history_entry)


def _safe_backtest_month(history: AthleteHistory, month: date, today: date,
                         config: FitnessConfig) -> MonthOutcome:
    try:
        return backtest_month(history, month, today, config)
    except Exception as exc:
        logger.warning(
            "Backtest month %s failed: %s",
            month.isoformat(),
            exc,
            exc_info=True,
            extra={"extra_fields": {"month": month.isoformat()}},
        )
        return MonthOutcome(month, month_cutoff(month, today), FAILED, reason=str(exc))


def run_vdot_backtest(
    history: AthleteHistory,
    today: date,
    start: Optional[date] = None,
    config: FitnessConfig = fitness_config,
    max_workers: int = 1,
    on_entry: Optional[Callable[[HistoryEntryDraft], None]] = None,
) -> BacktestReport:
    """
    Reconstruct every month from the first activity (or start) through today.

    on_entry, when given, is called in month order for each processed month
    so callers can persist month by month; a failing write marks that month
    failed without stopping the loop.
    """
    report = BacktestReport()
    first = start or history.first_activity_date()
    if first is None or first > today:
        logger.info("Backtest skipped: no activity history")
        return report

    months = list(iter_months(first, today))
    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(lambda m: _safe_backtest_month(history, m, today, config), months))
    else:
        outcomes = [_safe_backtest_month(history, m, today, config) for m in months]

    for outcome in outcomes:
        if outcome.status == PROCESSED and on_entry is not None:
            try:
                on_entry(outcome.entry)
            except Exception as exc:
                logger.warning("Backtest write for %s failed: %s", outcome.month.isoformat(), exc)
                outcome = MonthOutcome(outcome.month, outcome.cutoff, FAILED, vdot=outcome.vdot, reason=str(exc))
        report.add(outcome)

    logger.info(
        "VDOT backtest complete: %d processed, %d failed, %d skipped",
        report.processed,
        report.failed,
        report.skipped,
        extra={"extra_fields": {
            "processed": report.processed,
            "failed": report.failed,
            "skipped": report.skipped,
        }},
    )
    return report


def store_backtest_history(
    db: Session,
    athlete_id: UUID,
    report: BacktestReport,
    today: date,
    config: FitnessConfig = fitness_config,
) -> List[VdotHistory]:
    """Replace the athlete's monthly history with the backtest series, carried forward to today."""
    entries = report.entries
    if not entries:
        return []
    return rebuild_monthly_history(db, athlete_id, entries, entries[0].entry_date, today, config)
