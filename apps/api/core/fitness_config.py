"""
Fitness Engine Configuration

Every empirically tuned coefficient used by the fitness engine lives here:
weather and elevation slopes, effort multipliers, load intensity factors,
best-segment gates, signal weights, fusion thresholds and baseline smoothing.

The numbers are a reference baseline, not physiological truths. They can be
overridden through FITNESS_* environment variables, or a caller can build a
FitnessConfig(...) and pass it as ``config=`` to any engine function.
"""
from typing import Dict, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FitnessConfig(BaseSettings):
    """Tuned coefficients for the fitness-estimation and race-prediction engine."""

    model_config = SettingsConfigDict(
        env_prefix="FITNESS_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Fitness index domain
    # ------------------------------------------------------------------
    vdot_min: float = 15.0
    vdot_max: float = 85.0
    segment_vdot_max: float = 90.0

    # Bisection for the inverse conversion
    inverse_max_iterations: int = 50
    inverse_tolerance: float = 0.01

    # %-of-capacity targets for pace zones
    zone_fractions: Dict[str, float] = Field(default_factory=lambda: {
        "easy_slow": 0.59,
        "easy_fast": 0.74,
        "steady": 0.76,
        "marathon": 0.79,
        "threshold": 0.86,
        "interval": 0.98,
        "repetition": 1.08,
    })

    # ------------------------------------------------------------------
    # Effort normalization
    # ------------------------------------------------------------------
    weather_comfort_temp_f: float = 45.0
    weather_warm_temp_f: float = 70.0
    weather_hot_temp_f: float = 85.0
    weather_mild_slope: float = 0.4   # sec/mi per °F between comfort and warm
    weather_warm_slope: float = 1.0   # sec/mi per °F between warm and hot
    weather_hot_slope: float = 1.5    # sec/mi per °F above hot
    humidity_hot_temp_f: float = 65.0
    humidity_hot_base_pct: float = 50.0
    humidity_hot_slope: float = 0.1
    humidity_mild_temp_f: float = 55.0
    humidity_mild_base_pct: float = 60.0
    humidity_mild_slope: float = 0.05
    dew_point_base_f: float = 60.0
    dew_point_slope: float = 0.3

    elevation_sec_per_100ft_per_mile: float = 12.0

    adjusted_time_floor: float = 0.85
    equivalent_time_floor: float = 0.82

    effort_multipliers: Dict[str, float] = Field(default_factory=lambda: {
        "all_out": 1.00,
        "hard": 0.98,
        "moderate": 0.96,
        "easy": 0.93,
    })
    effort_confidence_base: Dict[str, float] = Field(default_factory=lambda: {
        "all_out": 1.00,
        "hard": 0.90,
        "moderate": 0.78,
        "easy": 0.62,
    })
    missing_weather_penalty: float = 0.05
    missing_elevation_penalty: float = 0.03
    confidence_high_threshold: float = 0.90
    confidence_medium_threshold: float = 0.75
    confidence_weights: Dict[str, float] = Field(default_factory=lambda: {
        "high": 1.0,
        "medium": 0.85,
        "low": 0.7,
    })

    # Effort inference from a linked workout (avg HR / max HR)
    race_all_out_hr_ratio: float = 0.90
    race_hard_hr_ratio: float = 0.84

    # ------------------------------------------------------------------
    # Training load
    # ------------------------------------------------------------------
    intensity_factors: Dict[str, float] = Field(default_factory=lambda: {
        "recovery": 0.5,
        "easy": 0.6,
        "long": 0.65,
        "steady": 0.75,
        "marathon": 0.8,
        "tempo": 0.85,
        "threshold": 0.9,
        "interval": 1.0,
        "race": 1.1,
        "cross_train": 0.4,
        "other": 0.6,
    })
    long_duration_threshold_min: float = 60.0
    long_duration_bonus_per_min: float = 0.005
    pace_reference_sec_per_mile: float = 600.0
    pace_factor_min_sec: float = 240.0
    pace_factor_max_sec: float = 900.0
    use_hr_trimp: bool = True

    ctl_days: int = 42
    atl_days: int = 7
    warmup_days: int = 42

    ramp_window_days: int = 28
    ramp_min_days: int = 7
    ramp_caution_threshold: float = 8.0
    ramp_high_threshold: float = 10.0

    optimal_load_low: float = 0.8
    optimal_load_high: float = 1.2

    sufficiency_low_days: int = 7
    sufficiency_medium_days: int = 28
    sufficiency_confidence: Dict[str, float] = Field(default_factory=lambda: {
        "none": 0.0,
        "low": 0.3,
        "medium": 0.6,
        "full": 1.0,
    })

    # ------------------------------------------------------------------
    # Best-segment extractor
    # ------------------------------------------------------------------
    segment_min_points: int = 20
    segment_start_step: int = 3
    segment_min_span: int = 6
    segment_end_step: int = 2
    segment_min_distance_m: float = 800.0
    segment_min_distance_floor_mi: float = 0.3
    segment_max_distance_mi: float = 3.2
    segment_min_duration_s: float = 140.0
    segment_max_duration_s: float = 2100.0
    segment_min_pace_s: float = 180.0
    segment_max_pace_s: float = 1200.0
    gps_max_sample_gap_s: float = 3.0
    gps_max_speed_mi_per_s: float = 0.02
    gps_backtrack_mi: float = 0.001
    gps_integrity_floor: float = 0.45
    hr_min_plausible: float = 60.0
    hr_max_plausible: float = 220.0
    hr_min_samples: int = 6
    hr_min_coverage: float = 0.35
    hr_neutral_stability: float = 0.55
    hr_neutral_plausibility: float = 0.6
    hr_cv_weight: float = 2.8
    hr_drift_divisor: float = 55.0
    hr_race_band_low: float = 100.0
    hr_race_band_high: float = 198.0
    quality_gps_weight: float = 0.5
    quality_stability_weight: float = 0.35
    quality_plausibility_weight: float = 0.15
    segment_high_quality: float = 0.8
    segment_medium_quality: float = 0.62

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    signal_weights: Dict[str, float] = Field(default_factory=lambda: {
        "race_vdot": 1.0,
        "best_effort": 0.65,
        "effective_vo2max": 0.5,
        "ef_trend": 0.35,
        "critical_speed": 0.6,
        "training_pace": 0.25,
    })
    signal_half_life_days: Dict[str, float] = Field(default_factory=lambda: {
        "race_vdot": 180.0,
        "best_effort": 120.0,
        "effective_vo2max": 60.0,
        "training_pace": 60.0,
    })

    race_min_distance_m: float = 1000.0
    race_effort_weights: Dict[str, float] = Field(default_factory=lambda: {
        "all_out": 1.0,
        "hard": 0.85,
        "moderate": 0.7,
        "easy": 0.7,
    })

    best_effort_min_distance_m: float = 1609.0
    best_effort_derate: float = 0.97

    hr_steady_types: Tuple[str, ...] = ("easy", "steady", "long", "tempo", "threshold", "recovery", "marathon")
    hrr_min: float = 0.50
    hrr_max: float = 0.92
    hrr_to_vo2_slope: float = 1.4854
    hrr_to_vo2_intercept: float = -0.3702
    fatigue_correction_cap: float = 3.0
    fatigue_correction_per_tsb: float = 0.1
    freshness_boost_max: float = 0.15
    default_resting_hr: int = 60

    ef_types: Tuple[str, ...] = ("easy", "steady", "long", "recovery")
    ef_min_runs: int = 5
    ef_window_days: int = 90
    ef_pct_per_vdot_step: float = 0.03
    ef_vdot_per_step: float = 1.5
    ef_max_adjustment: float = 3.0
    ef_min_adjustment: float = 0.1
    ef_min_confidence: float = 0.3
    ef_window_min_miles: float = 1.0
    ef_window_min_minutes: float = 20.0

    critical_speed_min_m: float = 1600.0
    critical_speed_max_m: float = 15000.0
    critical_speed_buckets_m: Tuple[float, ...] = (2000.0, 4000.0, 7000.0, 12000.0)
    critical_speed_min_points: int = 3
    critical_speed_vo2_fraction: float = 0.88

    training_pace_window_days: int = 90
    training_pace_min_runs: int = 3
    best_effort_top_n: int = 5
    training_pace_fractions: Dict[str, float] = Field(default_factory=lambda: {
        "easy": 0.65,
        "recovery": 0.65,
        "tempo": 0.86,
        "threshold": 0.88,
    })

    lookback_days: int = 180
    segment_workout_types: Tuple[str, ...] = ("race", "interval", "tempo", "threshold", "steady")
    recent_days: int = 30

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------
    agreement_std_offset: float = 0.5
    agreement_std_scale: float = 5.0
    agreement_floor: float = 0.1
    uncertainty_min_vdot: float = 1.0
    uncertainty_std_multiplier: float = 1.2
    outlier_deviation_vdot: float = 3.0
    high_tier_min_signals: int = 3
    high_tier_min_agreement: float = 0.6
    high_tier_min_mean_confidence: float = 0.5
    medium_tier_min_signals: int = 2
    medium_tier_min_agreement: float = 0.4
    medium_tier_min_mean_confidence: float = 0.35
    recent_data_min_workouts: int = 3
    signal_timeout_s: float = 10.0

    prediction_distances_m: Dict[str, float] = Field(default_factory=lambda: {
        "5K": 5000.0,
        "10K": 10000.0,
        "Half Marathon": 21097.5,
        "Marathon": 42195.0,
    })

    # Form (TSB) and readiness (volume) adjustments to predicted times
    form_pct_per_tsb: float = 0.05
    form_pct_min: float = -1.0
    form_pct_max: float = 2.0
    readiness_targets: Dict[str, Tuple[float, float]] = Field(default_factory=lambda: {
        "Half Marathon": (25.0, 10.0),  # weekly miles, long run miles
        "Marathon": (40.0, 18.0),
    })
    readiness_max_penalty: Dict[str, float] = Field(default_factory=lambda: {
        "Half Marathon": 0.04,
        "Marathon": 0.08,
    })

    # ------------------------------------------------------------------
    # Baseline update
    # ------------------------------------------------------------------
    improvement_fractions: Dict[str, float] = Field(default_factory=lambda: {
        "high": 0.85,
        "medium": 0.75,
        "low": 0.60,
    })
    decline_fractions: Dict[str, float] = Field(default_factory=lambda: {
        "high": 0.40,
        "medium": 0.30,
        "low": 0.20,
    })
    race_source_min_confidence: float = 0.7
    race_source_min_weight: float = 0.3


# Global config instance
fitness_config = FitnessConfig()
