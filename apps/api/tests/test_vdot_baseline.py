"""
Tests for the asymmetric VDOT baseline update policy.
"""

import pytest
from dataclasses import replace
from datetime import date, timedelta

from core.exceptions import VdotOutOfRangeError
from services.fitness_models import (
    AthleteSettings,
    ConfidenceLevel,
    EffortLevel,
    HistorySource,
    PredictionInput,
    RaceResultRecord,
)
from services.signal_fusion import generate_prediction
from services.vdot_baseline import apply_baseline_update, history_source_for, sync_baseline

AS_OF = date(2024, 6, 30)


@pytest.fixture
def race_prediction():
    race = RaceResultRecord(id="r1", date=AS_OF - timedelta(days=10), distance_meters=5000,
                            finish_time_seconds=1200, effort_level=EffortLevel.ALL_OUT)
    return generate_prediction(PredictionInput(as_of=AS_OF, athlete=AthleteSettings(), races=[race]))


class TestApplyBaselineUpdate:

    def test_high_confidence_improvement(self):
        """45 -> 48 at HIGH moves 85% of the way."""
        update = apply_baseline_update(45.0, 48.0, ConfidenceLevel.HIGH)
        assert update.updated == pytest.approx(47.55)
        assert update.fraction_applied == 0.85
        assert update.smoothed is True
        assert update.delta == pytest.approx(2.55)

    @pytest.mark.parametrize("confidence", list(ConfidenceLevel))
    @pytest.mark.parametrize("prior,fused", [(45.0, 48.0), (50.0, 44.0), (30.0, 60.0), (70.0, 69.5)])
    def test_result_lies_between_prior_and_fused(self, confidence, prior, fused):
        updated = apply_baseline_update(prior, fused, confidence).updated
        assert min(prior, fused) < updated < max(prior, fused)

    @pytest.mark.parametrize("confidence", list(ConfidenceLevel))
    def test_declines_accepted_more_slowly(self, confidence):
        up = apply_baseline_update(50.0, 52.0, confidence)
        down = apply_baseline_update(50.0, 48.0, confidence)
        assert abs(up.updated - 50.0) > abs(down.updated - 50.0)

    def test_decline_fractions(self):
        assert apply_baseline_update(50.0, 40.0, ConfidenceLevel.HIGH).updated == pytest.approx(46.0)
        assert apply_baseline_update(50.0, 40.0, ConfidenceLevel.LOW).updated == pytest.approx(48.0)

    def test_no_change(self):
        update = apply_baseline_update(50.0, 50.0, ConfidenceLevel.MEDIUM)
        assert update.updated == 50.0

    def test_skip_smoothing_takes_raw(self):
        update = apply_baseline_update(45.0, 48.0, ConfidenceLevel.LOW, skip_smoothing=True)
        assert update.updated == 48.0
        assert update.smoothed is False
        assert update.previous == 45.0

    def test_first_baseline_takes_raw(self):
        update = apply_baseline_update(None, 48.0, ConfidenceLevel.LOW)
        assert update.updated == 48.0
        assert update.previous is None
        assert update.delta == 0

    def test_out_of_range_prior_is_ignored(self):
        update = apply_baseline_update(5.0, 48.0, ConfidenceLevel.HIGH)
        assert update.previous is None
        assert update.updated == 48.0

    @pytest.mark.parametrize("fused", [10.0, 90.0])
    def test_out_of_range_fused_raises(self, fused):
        with pytest.raises(VdotOutOfRangeError):
            apply_baseline_update(50.0, fused, ConfidenceLevel.HIGH)


class TestSyncBaseline:

    def test_history_entry(self, race_prediction):
        result = sync_baseline(race_prediction, prior=45.0, entry_date=AS_OF)
        entry = result.history_entry
        assert entry.entry_date == AS_OF
        assert entry.vdot == round(result.update.updated, 2)
        assert entry.source == HistorySource.RACE
        assert entry.confidence == race_prediction.confidence
        assert "race_vdot" in entry.notes
        assert "prev: 45.0" in entry.notes

    def test_low_confidence_prediction_moves_sixty_percent(self, race_prediction):
        result = sync_baseline(race_prediction, prior=45.0, entry_date=AS_OF)
        expected = 45.0 + (race_prediction.blended_vdot - 45.0) * 0.60
        assert result.update.updated == pytest.approx(expected)

    def test_explicit_source_wins(self, race_prediction):
        result = sync_baseline(race_prediction, prior=None, entry_date=AS_OF, skip_smoothing=True,
                               source=HistorySource.BACKTEST)
        assert result.history_entry.source == HistorySource.BACKTEST
        assert result.update.updated == race_prediction.blended_vdot

    def test_source_is_estimate_without_race_signal(self, race_prediction):
        without_race = replace(
            race_prediction,
            signals=[s for s in race_prediction.signals if s.name != "race_vdot"],
        )
        assert history_source_for(race_prediction) == HistorySource.RACE
        assert history_source_for(without_race) == HistorySource.ESTIMATE
