"""Tests for velocity-based training helpers."""

from __future__ import annotations

import pytest

from core.services.velocity import (
    VELOCITY_ZONES,
    VelocityPoint,
    classify_velocity,
    combine_one_rep_max,
    load_for_velocity,
    load_velocity_profile,
    predict_velocity,
    recommended_load,
    session_recommendation,
    velocity_trend,
    zone_bounds,
)

SQUAT_POINTS = [VelocityPoint(60, 0.9), VelocityPoint(80, 0.7), VelocityPoint(100, 0.5), VelocityPoint(120, 0.3)]


def test_classify_velocity():
    assert [classify_velocity(v) for v in (0.3, 0.5, 0.8, 1.1, 1.5)] == [name for name, _, _ in VELOCITY_ZONES]


def test_classify_velocity_rejects_zero():
    with pytest.raises(ValueError):
        classify_velocity(0)


def test_zone_bounds():
    assert zone_bounds("STRENGTH_SPEED") == (0.75, 1.00)
    assert zone_bounds("STARTING_STRENGTH") == (1.30, None)
    with pytest.raises(ValueError):
        zone_bounds("WARP_SPEED")


def test_squat_profile():
    profile = load_velocity_profile(SQUAT_POINTS, "squat")
    assert profile.is_valid is True
    assert profile.slope == pytest.approx(-0.01)
    assert profile.mvt == 0.30
    assert profile.estimated_1rm == pytest.approx(120.0)
    assert profile.estimated_1rm_at_02 == pytest.approx(130.0)
    assert profile.confidence == "LOW"


def test_profile_confidence_grows_with_points():
    profile = load_velocity_profile([*SQUAT_POINTS, VelocityPoint(140, 0.1)], "Squat")
    assert profile.confidence == "MEDIUM"


def test_unknown_exercise_uses_default_mvt():
    assert load_velocity_profile(SQUAT_POINTS, "hip thrust").mvt == 0.20


def test_invalid_profile_has_no_estimate():
    profile = load_velocity_profile([VelocityPoint(60, 0.5), VelocityPoint(80, 0.6), VelocityPoint(100, 0.7)], "squat")
    assert profile.is_valid is False
    assert profile.estimated_1rm is None
    assert profile.confidence == "LOW"


def test_profile_needs_three_points():
    with pytest.raises(ValueError):
        load_velocity_profile(SQUAT_POINTS[:2], "squat")


def test_predict_and_invert():
    profile = load_velocity_profile(SQUAT_POINTS, "squat")
    assert predict_velocity(profile, 90) == pytest.approx(0.6)
    assert load_for_velocity(profile, 0.5) == pytest.approx(100.0)


def test_recommended_load():
    profile = load_velocity_profile(SQUAT_POINTS, "squat")
    rec = recommended_load(profile, "ACCELERATIVE_STRENGTH")
    assert rec.min_load == pytest.approx(75.0)
    assert rec.max_load == pytest.approx(100.0)
    absolute = recommended_load(profile, "ABSOLUTE_STRENGTH")
    # floored at the squat MVT
    assert absolute.target_velocity_min == 0.30
    assert absolute.max_load == pytest.approx(120.0)


def test_velocity_trend():
    previous = [0.60, 0.60, 0.60]
    assert velocity_trend([0.62, 0.63, 0.64], previous).trend == "IMPROVING"
    assert velocity_trend([0.60, 0.61, 0.59], previous).trend == "STABLE"
    declining = velocity_trend([0.55, 0.55, 0.55], previous)
    assert declining.trend == "DECLINING"
    assert declining.percent_change == pytest.approx(-8.3)


def test_velocity_trend_needs_three_readings():
    assert velocity_trend([0.6, 0.6], [0.6, 0.6, 0.6]) is None


def test_combine_one_rep_max():
    high = combine_one_rep_max(120, "HIGH", 110)
    assert high.source == "VBT"
    assert high.one_rep_max == 120

    medium = combine_one_rep_max(120, "MEDIUM", 110)
    assert medium.source == "COMBINED"
    assert medium.one_rep_max == 115
    assert medium.difference_percent == pytest.approx(9.1)

    assert combine_one_rep_max(None, None, 110).source == "REP_BASED"
    none = combine_one_rep_max(None, None, None)
    assert none.source == "NONE"
    assert none.one_rep_max is None


def test_session_recommendation_defaults():
    rec = session_recommendation(None, None, 100)
    assert rec.next_session_load == 75.0
    assert (rec.target_velocity_min, rec.target_velocity_max) == (0.5, 0.75)
    assert rec.velocity_loss_target == 20
    assert rec.readiness is None


def test_session_recommendation_follows_trend():
    improving = velocity_trend([0.62, 0.63, 0.64], [0.6, 0.6, 0.6])
    declining = velocity_trend([0.55, 0.55, 0.55], [0.6, 0.6, 0.6])
    fresh = session_recommendation(None, improving, 100)
    assert fresh.next_session_load == 77
    assert fresh.readiness == "FRESH"
    assert fresh.velocity_loss_target == 25
    tired = session_recommendation(None, declining, 100)
    assert tired.next_session_load == 71
    assert tired.readiness == "FATIGUED"
    assert tired.velocity_loss_target == 15


def test_session_recommendation_uses_profile():
    profile = load_velocity_profile(SQUAT_POINTS, "squat")
    assert session_recommendation(profile, None, 120).next_session_load == 90
