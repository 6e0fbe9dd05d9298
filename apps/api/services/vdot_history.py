"""
VDOT History Persistence

Reads and writes the athlete's stored baseline and the monthly VDOT history.
This is the only module that mutates those rows.

Commit points:
- record_vdot_entry: one month's row (insert or overwrite)
- save_baseline: athlete baseline + that month's row, one transaction
- rebuild_monthly_history: delete all rows for the athlete + insert the
  carried-forward series, one transaction

A failed write rolls back; no half-updated month is left behind.
"""
from datetime import date, datetime, timezone
from typing import Iterator, List, Optional, Sequence
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.exceptions import VdotOutOfRangeError
from core.fitness_config import FitnessConfig, fitness_config
from models import Athlete, VdotHistory
from services.fitness_models import HistorySource
from services.vdot_baseline import BaselineSyncResult, HistoryEntryDraft
from services.vdot_calculator import is_valid_vdot

logger = logging.getLogger(__name__)

CARRY_FORWARD_NOTE = "monthly carry-forward"


# =============================================================================
# MONTH HELPERS
# =============================================================================

def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def next_month(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def iter_months(start: date, end: date) -> Iterator[date]:
    """First-of-month dates from start's month through end's month, inclusive."""
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        yield current
        current = next_month(current)


def build_carry_forward_series(
    entries: Sequence[HistoryEntryDraft],
    start: date,
    end: date,
) -> List[HistoryEntryDraft]:
    """
    One entry per month from the first month with evidence through end.

    Months with no entry repeat the previous value. When several entries
    fall in one month, the latest wins.
    """
    by_month = {}
    for entry in sorted(entries, key=lambda e: e.entry_date):
        by_month[month_start(entry.entry_date)] = entry

    series: List[HistoryEntryDraft] = []
    last: Optional[HistoryEntryDraft] = None
    for month in iter_months(start, end):
        entry = by_month.get(month)
        if entry is not None:
            last = entry
            series.append(HistoryEntryDraft(month, entry.vdot, entry.source, entry.confidence, entry.notes))
        elif last is not None:
            series.append(HistoryEntryDraft(
                entry_date=month,
                vdot=last.vdot,
                source=HistorySource.CARRY_FORWARD,
                confidence=last.confidence,
                notes=CARRY_FORWARD_NOTE,
            ))
    return series


# =============================================================================
# READS
# =============================================================================

def get_vdot_history(
    db: Session,
    athlete_id: UUID,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[VdotHistory]:
    query = db.query(VdotHistory).filter(VdotHistory.athlete_id == athlete_id)
    if start is not None:
        query = query.filter(VdotHistory.date >= month_start(start))
    if end is not None:
        query = query.filter(VdotHistory.date <= end)
    return query.order_by(VdotHistory.date).all()


# =============================================================================
# WRITES
# =============================================================================

def _check_range(vdot: float, config: FitnessConfig) -> None:
    if not is_valid_vdot(vdot, config):
        raise VdotOutOfRangeError(vdot, config.vdot_min, config.vdot_max)


def _upsert_row(db: Session, athlete_id: UUID, entry: HistoryEntryDraft) -> VdotHistory:
    month = month_start(entry.entry_date)
    row = (
        db.query(VdotHistory)
        .filter(VdotHistory.athlete_id == athlete_id, VdotHistory.date == month)
        .first()
    )
    if row is None:
        row = VdotHistory(athlete_id=athlete_id, date=month)
        db.add(row)
    row.vdot = entry.vdot
    row.source = entry.source.value
    row.confidence = entry.confidence.value if entry.confidence else None
    row.notes = entry.notes
    return row


def record_vdot_entry(
    db: Session,
    athlete_id: UUID,
    entry: HistoryEntryDraft,
    config: FitnessConfig = fitness_config,
) -> VdotHistory:
    """
    Insert or overwrite the athlete's row for entry's month and commit.

    Raises:
        VdotOutOfRangeError: the value is outside the valid range (nothing written)
    """
    _check_range(entry.vdot, config)
    try:
        row = _upsert_row(db, athlete_id, entry)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return row


def save_baseline(
    db: Session,
    athlete: Athlete,
    result: BaselineSyncResult,
    config: FitnessConfig = fitness_config,
) -> VdotHistory:
    """Write the updated baseline and its history row in one transaction."""
    _check_range(result.update.updated, config)
    _check_range(result.history_entry.vdot, config)
    try:
        athlete.vdot = result.update.updated
        athlete.vdot_updated_at = datetime.now(timezone.utc)
        row = _upsert_row(db, athlete.id, result.history_entry)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return row


def rebuild_monthly_history(
    db: Session,
    athlete_id: UUID,
    entries: Sequence[HistoryEntryDraft],
    start: date,
    end: date,
    config: FitnessConfig = fitness_config,
) -> List[VdotHistory]:
    """Replace all of the athlete's history with a carried-forward monthly series."""
    series = build_carry_forward_series(entries, start, end)
    for entry in series:
        _check_range(entry.vdot, config)

    try:
        db.query(VdotHistory).filter(VdotHistory.athlete_id == athlete_id).delete(synchronize_session=False)
        rows = [
            VdotHistory(
                athlete_id=athlete_id,
                date=entry.entry_date,
                vdot=entry.vdot,
                source=entry.source.value,
                confidence=entry.confidence.value if entry.confidence else None,
                notes=entry.notes,
            )
            for entry in series
        ]
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Rebuilt VDOT history for athlete %s: %d months", athlete_id, len(rows))
    return rows
