"""Velocity-based training: velocity zones, load-velocity profiles, trends.

Mean concentric velocity (m/s) falls almost linearly with load for a given
lift, so a handful of sets at different loads gives a profile that predicts
the 1RM at the lift's minimum velocity threshold (MVT) and the load for any
target velocity.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.logging_config import get_logger
from core.services.curve_fit import linear_regression

logger = get_logger(__name__)

# (zone, lower bound inclusive, upper bound exclusive) in m/s
VELOCITY_ZONES: tuple[tuple[str, float, float | None], ...] = (
    ("ABSOLUTE_STRENGTH", 0.0, 0.50),
    ("ACCELERATIVE_STRENGTH", 0.50, 0.75),
    ("STRENGTH_SPEED", 0.75, 1.00),
    ("SPEED_STRENGTH", 1.00, 1.30),
    ("STARTING_STRENGTH", 1.30, None),
)

MINIMUM_VELOCITY_THRESHOLD = {
    "squat": 0.30,
    "bench_press": 0.17,
    "deadlift": 0.15,
    "overhead_press": 0.19,
}
DEFAULT_MVT = 0.20
MIN_PROFILE_POINTS = 3
MIN_PROFILE_R2 = 0.7
TREND_PERCENT = 3.0


@dataclass(frozen=True)
class VelocityPoint:
    load: float       # kg
    velocity: float   # m/s


@dataclass(frozen=True)
class LoadVelocityProfile:
    exercise: str
    slope: float
    intercept: float
    r2: float
    point_count: int
    is_valid: bool
    mvt: float
    estimated_1rm: float | None
    estimated_1rm_at_02: float | None
    confidence: str


@dataclass(frozen=True)
class LoadRecommendation:
    zone: str
    min_load: float
    max_load: float
    target_velocity_min: float
    target_velocity_max: float


@dataclass(frozen=True)
class VelocityTrend:
    trend: str
    current_avg: float
    previous_avg: float
    percent_change: float
    interpretation: str


@dataclass(frozen=True)
class CombinedOneRepMax:
    one_rep_max: float | None
    source: str      # VBT | REP_BASED | COMBINED | NONE
    difference_percent: float | None
    note: str


@dataclass(frozen=True)
class SessionRecommendation:
    next_session_load: float
    target_velocity_min: float
    target_velocity_max: float
    velocity_loss_target: int
    readiness: str | None


def _exercise_key(exercise: str) -> str:
    return exercise.lower().replace(" ", "_").replace("-", "_")


def zone_bounds(zone: str) -> tuple[float, float | None]:
    for name, low, high in VELOCITY_ZONES:
        if name == zone:
            return low, high
    raise ValueError(f"Unknown velocity zone: {zone}")


def classify_velocity(velocity: float) -> str:
    if velocity <= 0:
        raise ValueError("velocity must be positive")
    for name, low, high in VELOCITY_ZONES:
        if high is None or low <= velocity < high:
            return name
    raise AssertionError("unreachable")


def _profile_confidence(r2: float, count: int) -> str:
    if r2 >= 0.95 and count >= 10:
        return "HIGH"
    if r2 >= 0.85 and count >= 5:
        return "MEDIUM"
    return "LOW"


def load_velocity_profile(points: list[VelocityPoint], exercise: str) -> LoadVelocityProfile:
    """Least-squares line velocity = slope * load + intercept.

    A profile is valid when velocity falls with load (slope < 0) and the fit
    explains at least 70 % of the variance. The 1RM is the load at which
    the line reaches the exercise's minimum velocity threshold.
    """
    if len(points) < MIN_PROFILE_POINTS:
        raise ValueError(f"a load-velocity profile needs at least {MIN_PROFILE_POINTS} points")
    if any(p.load <= 0 or p.velocity <= 0 for p in points):
        raise ValueError("loads and velocities must be positive")

    fit = linear_regression([p.load for p in points], [p.velocity for p in points])
    mvt = MINIMUM_VELOCITY_THRESHOLD.get(_exercise_key(exercise), DEFAULT_MVT)
    is_valid = fit.slope < 0 and fit.r2 >= MIN_PROFILE_R2

    e1rm = e1rm_02 = None
    if is_valid:
        e1rm = round((mvt - fit.intercept) / fit.slope, 1)
        e1rm_02 = round((0.2 - fit.intercept) / fit.slope, 1)

    logger.debug(
        "load_velocity_profile",
        extra={"exercise": exercise, "slope": round(fit.slope, 5), "r2": round(fit.r2, 3), "valid": is_valid},
    )
    return LoadVelocityProfile(
        exercise=exercise,
        slope=fit.slope,
        intercept=fit.intercept,
        r2=round(fit.r2, 4),
        point_count=len(points),
        is_valid=is_valid,
        mvt=mvt,
        estimated_1rm=e1rm,
        estimated_1rm_at_02=e1rm_02,
        confidence=_profile_confidence(fit.r2, len(points)) if is_valid else "LOW",
    )


def predict_velocity(profile: LoadVelocityProfile, load: float) -> float:
    return round(max(0.0, profile.slope * load + profile.intercept), 3)


def load_for_velocity(profile: LoadVelocityProfile, velocity: float) -> float:
    if profile.slope >= 0:
        raise ValueError("profile is not usable: velocity does not fall with load")
    return round(max(0.0, (velocity - profile.intercept) / profile.slope), 1)


def recommended_load(profile: LoadVelocityProfile, zone: str) -> LoadRecommendation:
    """Load range that moves at the zone's velocities; the top zone is capped at 1.5 m/s."""
    low, high = zone_bounds(zone)
    high = high if high is not None else 1.5
    low = max(low, profile.mvt)
    return LoadRecommendation(
        zone=zone,
        min_load=load_for_velocity(profile, high),
        max_load=load_for_velocity(profile, low),
        target_velocity_min=low,
        target_velocity_max=high,
    )


def velocity_trend(recent: list[float], previous: list[float]) -> VelocityTrend | None:
    """Compare average velocity of recent sets against an earlier period.

    Needs at least 3 readings on each side; changes beyond +/- 3 % count.
    """
    if len(recent) < 3 or len(previous) < 3:
        return None
    current_avg = sum(recent) / len(recent)
    previous_avg = sum(previous) / len(previous)
    if previous_avg <= 0:
        raise ValueError("previous velocities must be positive")
    change = (current_avg - previous_avg) / previous_avg * 100

    if change > TREND_PERCENT:
        trend, interpretation = "IMPROVING", "Velocity increasing: good recovery and adaptation"
    elif change < -TREND_PERCENT:
        trend, interpretation = "DECLINING", "Velocity decreasing: possible fatigue or overreaching"
    else:
        trend, interpretation = "STABLE", "Velocity stable: consistent performance"
    return VelocityTrend(
        trend=trend,
        current_avg=round(current_avg, 2),
        previous_avg=round(previous_avg, 2),
        percent_change=round(change, 1),
        interpretation=interpretation,
    )


def combine_one_rep_max(
    vbt_1rm: float | None, vbt_confidence: str | None, rep_based_1rm: float | None
) -> CombinedOneRepMax:
    """Pick or blend the velocity-based and rep-based 1RM estimates."""
    if vbt_1rm and vbt_confidence == "HIGH":
        difference = (vbt_1rm - rep_based_1rm) / rep_based_1rm * 100 if rep_based_1rm else None
        return CombinedOneRepMax(
            one_rep_max=round(vbt_1rm, 1),
            source="VBT",
            difference_percent=round(difference, 1) if difference is not None else None,
            note="High-confidence velocity profile",
        )
    if vbt_1rm and rep_based_1rm:
        difference = (vbt_1rm - rep_based_1rm) / rep_based_1rm * 100
        if abs(difference) < 5:
            note = "Both estimates are consistent"
        elif difference > 0:
            note = "Velocity estimate is higher, typical for well-recovered athletes"
        else:
            note = "Rep-based estimate is higher; accumulated fatigue may be slowing the bar"
        return CombinedOneRepMax(
            one_rep_max=round((vbt_1rm + rep_based_1rm) / 2, 1),
            source="COMBINED",
            difference_percent=round(difference, 1),
            note=note,
        )
    if rep_based_1rm:
        return CombinedOneRepMax(one_rep_max=round(rep_based_1rm, 1), source="REP_BASED", difference_percent=None, note="No velocity data")
    if vbt_1rm:
        return CombinedOneRepMax(one_rep_max=round(vbt_1rm, 1), source="VBT", difference_percent=None, note="No rep-based data")
    return CombinedOneRepMax(one_rep_max=None, source="NONE", difference_percent=None, note="No estimates available")


def session_recommendation(
    profile: LoadVelocityProfile | None, trend: VelocityTrend | None, one_rep_max: float
) -> SessionRecommendation:
    """Next-session load and velocity targets.

    Defaults to 75 % of 1RM at 0.50-0.75 m/s with a 20 % velocity-loss cap.
    A valid profile sets the load to 90 % of the accelerative-strength zone
    maximum. An improving trend adds 2.5 %, a declining trend removes 5 %.
    """
    load = one_rep_max * 0.75
    v_min, v_max = 0.5, 0.75
    loss_target = 20
    readiness = None

    if profile is not None and profile.is_valid:
        rec = recommended_load(profile, "ACCELERATIVE_STRENGTH")
        load = round(rec.max_load * 0.9)
        v_min, v_max = rec.target_velocity_min, rec.target_velocity_max

    if trend is not None:
        if trend.trend == "IMPROVING":
            readiness, load, loss_target = "FRESH", round(load * 1.025), 25
        elif trend.trend == "DECLINING":
            readiness, load, loss_target = "FATIGUED", round(load * 0.95), 15
        else:
            readiness = "NORMAL"

    return SessionRecommendation(
        next_session_load=round(load, 1),
        target_velocity_min=v_min,
        target_velocity_max=v_max,
        velocity_loss_target=loss_target,
        readiness=readiness,
    )
