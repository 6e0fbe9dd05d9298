"""
VDOT Calculator - Based on Daniels' Running Formula

Pure conversions between a performance (distance, time) and a fitness index,
plus training-pace zones and equivalent race times derived from an index.

VDOT = (-4.60 + 0.182258*V + 0.000104*V²) / (0.8 + 0.1894393*e^(-0.012778*T) + 0.2989558*e^(-0.1932605*T))

Where V = velocity in m/min, T = time in minutes.

The forward direction is closed form. Race time from VDOT has no closed form
and is solved by bisection. Pace zones invert the oxygen cost polynomial
directly with the quadratic formula.
"""
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional
import math

from core.exceptions import InvalidEffortError, VdotOutOfRangeError
from core.fitness_config import FitnessConfig, fitness_config

METERS_PER_MILE = 1609.34

# Standard race distances in meters
STANDARD_DISTANCES = {
    "marathon": 42195,
    "half_marathon": 21097.5,
    "15k": 15000,
    "10k": 10000,
    "5k": 5000,
    "3k": 3000,
    "2mi": 3218.7,
    "1mi": 1609.34,
    "1500m": 1500,
    "800m": 800,
    "400m": 400,
}

_DISTANCE_NAMES = {
    42195: "Marathon",
    21097.5: "Half Marathon",
    15000: "15K",
    10000: "10K",
    5000: "5K",
    3218.7: "2 Mile",
    3000: "3K",
    1609.34: "1 Mile",
    1500: "1500m",
    800: "800m",
    400: "400m",
}


@dataclass(frozen=True)
class PaceZones:
    """Training paces in seconds per mile. Easy is a range (slow, fast)."""
    vdot: float
    easy_slow: int
    easy_fast: int
    steady: int
    marathon: int
    threshold: int
    interval: int
    repetition: int

    @property
    def easy(self) -> Dict[str, int]:
        return {"slow": self.easy_slow, "fast": self.easy_fast}

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["formatted"] = {
            "easy": f"{format_pace(self.easy_fast)}-{format_pace(self.easy_slow)}",
            "steady": format_pace(self.steady),
            "marathon": format_pace(self.marathon),
            "threshold": format_pace(self.threshold),
            "interval": format_pace(self.interval),
            "repetition": format_pace(self.repetition),
        }
        return data


# ============================================================================
# CORE FORMULAS
# ============================================================================

def oxygen_cost(velocity_m_per_min: float) -> float:
    """VO2 (ml/kg/min) required to run at a given velocity."""
    return -4.60 + 0.182258 * velocity_m_per_min + 0.000104 * velocity_m_per_min ** 2


def fraction_sustained(time_minutes: float) -> float:
    """Fraction of VO2max that can be held for a race lasting time_minutes."""
    return (
        0.8
        + 0.1894393 * math.exp(-0.012778 * time_minutes)
        + 0.2989558 * math.exp(-0.1932605 * time_minutes)
    )


def velocity_for_vo2(target_vo2: float) -> float:
    """
    Reverse-solve the oxygen cost equation to find velocity (m/min) from VO2.

    0.000104*v² + 0.182258*v - (4.6 + VO2) = 0, positive root.
    """
    a = 0.000104
    b = 0.182258
    c = -(4.6 + target_vo2)
    discriminant = b * b - 4 * a * c
    if discriminant < 0:
        raise InvalidEffortError(f"No running velocity produces VO2 {target_vo2:.2f}")
    return (-b + math.sqrt(discriminant)) / (2 * a)


def calculate_vdot(distance_meters: float, time_seconds: float) -> float:
    """
    Calculate VDOT from a distance and time.

    Returns the unrounded, unclamped value; callers decide which range they
    accept (see ensure_vdot_in_range / clamp_vdot).

    Raises:
        InvalidEffortError: distance or time is not positive
    """
    if distance_meters is None or time_seconds is None:
        raise InvalidEffortError("distance and time are required")
    if distance_meters <= 0 or time_seconds <= 0:
        raise InvalidEffortError(
            f"distance and time must be positive (got {distance_meters} m, {time_seconds} s)"
        )

    time_minutes = time_seconds / 60.0
    velocity = distance_meters / time_minutes
    return oxygen_cost(velocity) / fraction_sustained(time_minutes)


def is_valid_vdot(vdot: Optional[float], config: FitnessConfig = fitness_config, upper: Optional[float] = None) -> bool:
    if vdot is None or math.isnan(vdot):
        return False
    top = config.vdot_max if upper is None else upper
    return config.vdot_min <= vdot <= top


def ensure_vdot_in_range(vdot: float, config: FitnessConfig = fitness_config) -> float:
    """Return vdot unchanged or raise VdotOutOfRangeError."""
    if not is_valid_vdot(vdot, config):
        raise VdotOutOfRangeError(vdot, config.vdot_min, config.vdot_max)
    return vdot


def clamp_vdot(vdot: float, config: FitnessConfig = fitness_config) -> float:
    return max(config.vdot_min, min(config.vdot_max, vdot))


# ============================================================================
# INVERSE: RACE TIME FROM VDOT
# ============================================================================

def calculate_race_time(vdot: float, distance_meters: float, config: FitnessConfig = fitness_config) -> float:
    """
    Time in seconds that yields `vdot` over `distance_meters`.

    Bisection over [distance/10, distance*2] seconds. Higher VDOT means a
    faster time, so a calculated value above target moves the lower bound up.
    """
    if distance_meters <= 0:
        raise InvalidEffortError(f"distance must be positive (got {distance_meters} m)")
    if vdot <= 0:
        raise InvalidEffortError(f"VDOT must be positive (got {vdot})")

    low = distance_meters / 10.0
    high = distance_meters * 2.0
    mid = (low + high) / 2.0

    for _ in range(config.inverse_max_iterations):
        mid = (low + high) / 2.0
        calculated = calculate_vdot(distance_meters, mid)
        if abs(calculated - vdot) < config.inverse_tolerance:
            return mid
        if calculated > vdot:
            low = mid  # too fast, need a longer time
        else:
            high = mid

    return mid


# ============================================================================
# PACE ZONES
# ============================================================================

def pace_for_fraction(vdot: float, fraction: float) -> int:
    """Pace (sec/mile) at a given fraction of VO2max."""
    velocity = velocity_for_vo2(vdot * fraction)
    return int(round(METERS_PER_MILE / velocity * 60))


def calculate_training_paces(vdot: float, config: FitnessConfig = fitness_config) -> PaceZones:
    """
    Training paces for a VDOT.

    The index must already be inside the valid domain; callers clamp first.
    """
    ensure_vdot_in_range(vdot, config)
    fractions = config.zone_fractions
    return PaceZones(
        vdot=round(vdot, 1),
        easy_slow=pace_for_fraction(vdot, fractions["easy_slow"]),
        easy_fast=pace_for_fraction(vdot, fractions["easy_fast"]),
        steady=pace_for_fraction(vdot, fractions["steady"]),
        marathon=pace_for_fraction(vdot, fractions["marathon"]),
        threshold=pace_for_fraction(vdot, fractions["threshold"]),
        interval=pace_for_fraction(vdot, fractions["interval"]),
        repetition=pace_for_fraction(vdot, fractions["repetition"]),
    )


# ============================================================================
# EQUIVALENT RACES
# ============================================================================

def calculate_equivalent_race_time(vdot: float, target_distance_meters: float,
                                   config: FitnessConfig = fitness_config) -> Dict:
    """Equivalent race time and pace for a target distance."""
    time_seconds = calculate_race_time(vdot, target_distance_meters, config)
    pace_seconds_per_mile = time_seconds / target_distance_meters * METERS_PER_MILE
    return {
        "distance_m": target_distance_meters,
        "distance_name": get_distance_name(target_distance_meters),
        "time_seconds": int(round(time_seconds)),
        "time_formatted": format_time(time_seconds),
        "pace_mi": format_pace(pace_seconds_per_mile),
        "pace_km": format_pace(time_seconds / (target_distance_meters / 1000)),
    }


def calculate_all_equivalent_races(vdot: float, config: FitnessConfig = fitness_config) -> List[Dict]:
    ensure_vdot_in_range(vdot, config)
    return [
        calculate_equivalent_race_time(vdot, distance_m, config)
        for distance_m in sorted(STANDARD_DISTANCES.values(), reverse=True)
    ]


def get_distance_name(distance_meters: float) -> str:
    """Get human-readable distance name."""
    for dist, name in _DISTANCE_NAMES.items():
        if abs(distance_meters - dist) < 50:
            return name
    if distance_meters >= 1000:
        return f"{distance_meters / 1000:.1f}K"
    return f"{int(distance_meters)}m"


def format_time(seconds: float) -> str:
    total = int(round(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_pace(seconds_per_unit: float) -> str:
    total = int(round(seconds_per_unit))
    return f"{total // 60}:{total % 60:02d}"
