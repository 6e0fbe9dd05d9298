"""
Tests for the Signal Fusion Engine

Covers generator isolation, weighted blending, agreement scoring, the
confidence tiers and per-distance predictions.
"""

import time
import pytest
from datetime import date, timedelta

from core.fitness_config import FitnessConfig
from services.fitness_models import (
    AthleteSettings,
    ConfidenceLevel,
    EffortLevel,
    FitnessState,
    PredictionInput,
    RaceResultRecord,
    Signal,
    SignalKind,
    TrainingVolume,
)
from services.signal_fusion import (
    blend_signals,
    determine_confidence,
    evaluate_prediction,
    generate_prediction,
    run_signal_generators,
    score_agreement,
)

AS_OF = date(2024, 6, 30)


def _signal(name: str, vdot: float, confidence: float = 1.0, weight: float = 1.0) -> Signal:
    return Signal(name=name, estimated_vdot=vdot, confidence=confidence, weight=weight)


def _modifier(adjustment: float, confidence: float = 0.5, weight: float = 0.35) -> Signal:
    return Signal(name="ef_trend", kind=SignalKind.MODIFIER, adjustment=adjustment,
                  confidence=confidence, weight=weight)


def _race_input(**kwargs) -> PredictionInput:
    race = RaceResultRecord(id="r1", date=AS_OF - timedelta(days=10), distance_meters=5000,
                            finish_time_seconds=1200, effort_level=EffortLevel.ALL_OUT)
    return PredictionInput(as_of=AS_OF, athlete=AthleteSettings(), races=[race], **kwargs)


def _fixed(vdot):
    def generator(data, config):
        return _signal(f"fixed_{vdot}", vdot)
    return generator


def _broken(data, config):
    raise RuntimeError("boom")


def _absent(data, config):
    return None


def _slow(data, config):
    time.sleep(0.5)
    return _signal("slow", 40.0)


class TestRunSignalGenerators:
    """A failing generator never takes the others down."""

    @pytest.mark.parametrize("parallel", [False, True])
    def test_failure_is_isolated(self, parallel):
        generators = [("a", _fixed(50.0)), ("broken", _broken), ("none", _absent), ("b", _fixed(48.0))]
        signals, failed = run_signal_generators(_race_input(), generators=generators, parallel=parallel)
        assert failed == ["broken"]
        assert sorted(s.estimated_vdot for s in signals) == [48.0, 50.0]

    def test_timeout_counts_as_failure(self):
        config = FitnessConfig(signal_timeout_s=0.05)
        signals, failed = run_signal_generators(
            _race_input(), config, [("slow", _slow), ("a", _fixed(50.0))], parallel=True,
        )
        assert failed == ["slow"]
        assert [s.estimated_vdot for s in signals] == [50.0]

    def test_real_generators_on_empty_input(self):
        data = PredictionInput(as_of=AS_OF, athlete=AthleteSettings())
        signals, failed = run_signal_generators(data)
        assert signals == []
        assert failed == []


class TestBlend:

    def test_no_absolute_signal(self):
        assert blend_signals([]) is None
        assert blend_signals([_modifier(2.0)]) is None

    def test_weighted_by_weight_times_confidence(self):
        blend = blend_signals([_signal("a", 50.0), _signal("b", 46.0, confidence=0.8, weight=0.5)])
        assert blend.raw_vdot == pytest.approx((50.0 + 46.0 * 0.4) / 1.4)
        assert blend.absolute_count == 2
        assert blend.agreement.spread == 4.0

    def test_agreeing_signals(self):
        blend = blend_signals([_signal("a", 50.0), _signal("b", 50.0), _signal("c", 50.0)])
        assert blend.vdot == pytest.approx(50.0)
        assert blend.std_dev == pytest.approx(0.0)
        assert blend.agreement_score == 1.0
        assert blend.vdot_range == 1.0
        assert blend.agreement.outliers == []

    def test_modifier_applied_on_top(self):
        blend = blend_signals([_signal("a", 50.0), _modifier(2.0)])
        assert blend.raw_vdot == pytest.approx(50.0)
        assert blend.modifier_adjustment == pytest.approx(0.7)
        assert blend.vdot == pytest.approx(50.7)

    def test_low_confidence_modifier_ignored(self):
        blend = blend_signals([_signal("a", 50.0), _modifier(2.0, confidence=0.2)])
        assert blend.modifier_adjustment == 0
        assert blend.vdot == pytest.approx(50.0)

    def test_blend_clamped_to_domain(self):
        blend = blend_signals([_signal("a", 84.5), _modifier(3.0, confidence=0.8, weight=1.0)])
        assert blend.vdot == 85.0

    def test_outliers_flagged(self):
        signals = [_signal(name, 50.0) for name in "abcd"] + [_signal("far", 40.0)]
        blend = blend_signals(signals)
        assert blend.raw_vdot == pytest.approx(48.0)
        assert blend.agreement.outliers == ["far"]


class TestAgreement:

    def test_monotonic(self):
        scores = [score_agreement(sd) for sd in (0.0, 0.5, 1.0, 2.0, 4.0, 8.0)]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.parametrize("std_dev,expected", [(0.0, 1.0), (0.5, 1.0), (3.0, 0.5), (20.0, 0.1)])
    def test_clamped(self, std_dev, expected):
        assert score_agreement(std_dev) == pytest.approx(expected)


class TestConfidenceTier:

    def test_high_needs_recent_data(self):
        blend = blend_signals([_signal("a", 50.0), _signal("b", 50.5), _signal("c", 49.5)])
        assert determine_confidence(blend, has_recent_data=True) == ConfidenceLevel.HIGH
        assert determine_confidence(blend, has_recent_data=False) == ConfidenceLevel.MEDIUM

    def test_single_signal_is_low(self):
        blend = blend_signals([_signal("a", 50.0)])
        assert determine_confidence(blend, has_recent_data=True) == ConfidenceLevel.LOW

    def test_weak_signals_stay_low(self):
        """Two signals that agree but are individually weak do not earn MEDIUM."""
        blend = blend_signals([_signal("a", 50.0, confidence=0.3), _signal("b", 50.0, confidence=0.3)])
        assert determine_confidence(blend, has_recent_data=True) == ConfidenceLevel.LOW

    def test_disagreement_drops_tier(self):
        blend = blend_signals([_signal("a", 60.0), _signal("b", 40.0), _signal("c", 50.0)])
        assert determine_confidence(blend, has_recent_data=True) == ConfidenceLevel.LOW


class TestGeneratePrediction:

    def test_no_data_is_none(self):
        data = PredictionInput(as_of=AS_OF, athlete=AthleteSettings())
        assert generate_prediction(data) is None

    def test_evaluate_reports_failures_without_blend(self):
        data = PredictionInput(as_of=AS_OF, athlete=AthleteSettings())
        prediction, failed = evaluate_prediction(data, generators=[("broken", _broken)])
        assert prediction is None
        assert failed == ["broken"]

    def test_single_race(self):
        prediction = generate_prediction(_race_input())
        assert prediction is not None
        assert prediction.blended_vdot == pytest.approx(49.8, abs=0.05)
        assert prediction.confidence == ConfidenceLevel.LOW
        assert prediction.signal("race_vdot") is not None
        assert prediction.data_quality.signals_used == 1
        assert prediction.as_of == AS_OF

        names = [p.distance for p in prediction.predictions]
        assert names == ["5K", "10K", "Half Marathon", "Marathon"]
        five_k = prediction.predictions[0]
        assert five_k.equivalent_seconds == pytest.approx(1200, abs=2)
        assert five_k.predicted_seconds == five_k.equivalent_seconds
        for p in prediction.predictions:
            assert p.fast_seconds < p.predicted_seconds < p.slow_seconds

    def test_fresh_athlete_races_faster(self):
        prediction = generate_prediction(_race_input(fitness_state=FitnessState(ctl=50, atl=30)))
        five_k = prediction.predictions[0]
        assert five_k.form_adjustment_pct == -1.0
        assert five_k.predicted_seconds == pytest.approx(five_k.equivalent_seconds * 0.99)

    def test_low_volume_slows_the_marathon(self):
        prediction = generate_prediction(
            _race_input(training_volume=TrainingVolume(weekly_miles=10, long_run_miles=5))
        )
        by_name = {p.distance: p for p in prediction.predictions}
        assert by_name["5K"].readiness == 1.0
        assert by_name["Marathon"].readiness < 1.0
        assert by_name["Marathon"].predicted_seconds > by_name["Marathon"].equivalent_seconds

    def test_parallel_matches_sequential(self):
        sequential = generate_prediction(_race_input())
        parallel = generate_prediction(_race_input(), parallel=True)
        assert parallel.blended_vdot == sequential.blended_vdot

    def test_to_dict(self):
        data = generate_prediction(_race_input()).to_dict()
        assert data["confidence"] == "low"
        assert data["as_of"] == "2024-06-30"
        assert len(data["predictions"]) == 4
        assert data["signals"][0]["name"] == "race_vdot"
