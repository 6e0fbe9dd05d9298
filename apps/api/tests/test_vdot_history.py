"""
Tests for VDOT history persistence (sqlite-backed).
"""

import pytest
from datetime import date

from core.exceptions import VdotOutOfRangeError
from models import VdotHistory
from services.fitness_models import ConfidenceLevel, HistorySource
from services.vdot_baseline import BaselineSyncResult, BaselineUpdate, HistoryEntryDraft
from services.vdot_history import (
    CARRY_FORWARD_NOTE,
    build_carry_forward_series,
    get_vdot_history,
    iter_months,
    month_start,
    next_month,
    rebuild_monthly_history,
    record_vdot_entry,
    save_baseline,
)


def _entry(day: date, vdot: float, source: HistorySource = HistorySource.ESTIMATE) -> HistoryEntryDraft:
    return HistoryEntryDraft(entry_date=day, vdot=vdot, source=source,
                             confidence=ConfidenceLevel.MEDIUM, notes="test")


class TestMonthHelpers:

    def test_month_start(self):
        assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)

    def test_next_month_rolls_year(self):
        assert next_month(date(2023, 12, 15)) == date(2024, 1, 1)

    def test_iter_months_inclusive(self):
        months = list(iter_months(date(2023, 11, 20), date(2024, 2, 3)))
        assert months == [date(2023, 11, 1), date(2023, 12, 1), date(2024, 1, 1), date(2024, 2, 1)]

    def test_iter_months_empty_when_reversed(self):
        assert list(iter_months(date(2024, 3, 1), date(2024, 1, 1))) == []


class TestCarryForwardSeries:

    def test_gaps_repeat_previous_value(self):
        entries = [_entry(date(2024, 1, 31), 45.0), _entry(date(2024, 4, 30), 47.0)]
        series = build_carry_forward_series(entries, date(2024, 1, 1), date(2024, 6, 15))

        assert [e.entry_date for e in series] == list(iter_months(date(2024, 1, 1), date(2024, 6, 1)))
        assert [e.vdot for e in series] == [45.0, 45.0, 45.0, 47.0, 47.0, 47.0]
        assert series[1].source == HistorySource.CARRY_FORWARD
        assert series[1].notes == CARRY_FORWARD_NOTE
        assert series[3].source == HistorySource.ESTIMATE

    def test_nothing_before_first_evidence(self):
        series = build_carry_forward_series([_entry(date(2024, 3, 5), 45.0)], date(2024, 1, 1), date(2024, 3, 31))
        assert [e.entry_date for e in series] == [date(2024, 3, 1)]

    def test_latest_entry_in_month_wins(self):
        entries = [_entry(date(2024, 1, 20), 46.0), _entry(date(2024, 1, 5), 44.0)]
        series = build_carry_forward_series(entries, date(2024, 1, 1), date(2024, 1, 31))
        assert [e.vdot for e in series] == [46.0]


class TestRecordVdotEntry:

    def test_upsert_one_row_per_month(self, db_session, test_athlete):
        record_vdot_entry(db_session, test_athlete.id, _entry(date(2024, 5, 3), 45.0))
        record_vdot_entry(db_session, test_athlete.id, _entry(date(2024, 5, 28), 46.5, HistorySource.RACE))

        rows = get_vdot_history(db_session, test_athlete.id)
        assert len(rows) == 1
        assert rows[0].date == date(2024, 5, 1)
        assert rows[0].vdot == 46.5
        assert rows[0].source == "race"
        assert rows[0].confidence == "medium"

    def test_out_of_range_writes_nothing(self, db_session, test_athlete):
        with pytest.raises(VdotOutOfRangeError):
            record_vdot_entry(db_session, test_athlete.id, _entry(date(2024, 5, 3), 95.0))
        assert db_session.query(VdotHistory).count() == 0

    def test_range_filter(self, db_session, test_athlete):
        for month in (1, 2, 3):
            record_vdot_entry(db_session, test_athlete.id, _entry(date(2024, month, 10), 44.0 + month))
        rows = get_vdot_history(db_session, test_athlete.id, start=date(2024, 2, 15), end=date(2024, 3, 1))
        assert [r.date for r in rows] == [date(2024, 2, 1), date(2024, 3, 1)]


class TestSaveBaseline:

    def test_updates_athlete_and_month(self, db_session, test_athlete):
        update = BaselineUpdate(previous=None, raw=48.0, updated=48.0, fraction_applied=1.0, smoothed=False)
        result = BaselineSyncResult(update=update, history_entry=_entry(date(2024, 6, 30), 48.0))

        row = save_baseline(db_session, test_athlete, result)

        assert test_athlete.vdot == 48.0
        assert test_athlete.vdot_updated_at is not None
        assert row.date == date(2024, 6, 1)
        assert get_vdot_history(db_session, test_athlete.id)[0].vdot == 48.0

    def test_out_of_range_leaves_athlete_untouched(self, db_session, test_athlete):
        update = BaselineUpdate(previous=None, raw=99.0, updated=99.0, fraction_applied=1.0, smoothed=False)
        result = BaselineSyncResult(update=update, history_entry=_entry(date(2024, 6, 30), 99.0))
        with pytest.raises(VdotOutOfRangeError):
            save_baseline(db_session, test_athlete, result)
        assert test_athlete.vdot is None


class TestRebuildMonthlyHistory:

    def test_replaces_existing_rows(self, db_session, test_athlete):
        record_vdot_entry(db_session, test_athlete.id, _entry(date(2023, 6, 1), 40.0))
        entries = [
            _entry(date(2024, 1, 1), 45.0, HistorySource.BACKTEST),
            _entry(date(2024, 4, 1), 47.0, HistorySource.BACKTEST),
        ]

        rows = rebuild_monthly_history(db_session, test_athlete.id, entries, date(2024, 1, 1), date(2024, 6, 10))

        assert len(rows) == 6
        stored = get_vdot_history(db_session, test_athlete.id)
        assert [r.date for r in stored] == list(iter_months(date(2024, 1, 1), date(2024, 6, 1)))
        assert [r.vdot for r in stored] == [45.0, 45.0, 45.0, 47.0, 47.0, 47.0]
        assert [r.source for r in stored][:2] == ["backtest", "carry_forward"]

    def test_invalid_series_keeps_old_rows(self, db_session, test_athlete):
        record_vdot_entry(db_session, test_athlete.id, _entry(date(2023, 6, 1), 40.0))
        with pytest.raises(VdotOutOfRangeError):
            rebuild_monthly_history(
                db_session, test_athlete.id, [_entry(date(2024, 1, 1), 12.0)], date(2024, 1, 1), date(2024, 2, 1),
            )
        assert len(get_vdot_history(db_session, test_athlete.id)) == 1
