"""Tests for the threshold estimator."""

from __future__ import annotations

import pytest

from core.services.thresholds import (
    ManualThreshold,
    TestStage,
    apply_manual_override,
    assess_stage_quality,
    calculate_aerobic_threshold,
    calculate_anaerobic_threshold,
    calculate_dickhuth_threshold,
    estimate_thresholds,
    interpolate_at_lactate,
)

SPEEDS = [8.0, 10.0, 12.0, 14.0, 16.0, 18.0]
LACTATE = [1.00, 1.28, 1.79, 2.73, 4.43, 7.53]
HEART_RATE = [130, 142, 154, 166, 177, 186]


def _running(speeds=SPEEDS, lactate=LACTATE, hr=HEART_RATE):
    return [
        TestStage(sequence=i + 1, heart_rate=h, lactate=l, speed=s)
        for i, (s, l, h) in enumerate(zip(speeds, lactate, hr))
    ]


def _skiing():
    return [
        TestStage(sequence=i + 1, heart_rate=h, lactate=l, pace=round(60 / s, 3))
        for i, (s, l, h) in enumerate(zip(SPEEDS, LACTATE, HEART_RATE))
    ]


def _elite():
    speeds = [12, 13, 14, 15, 16, 17, 18, 19]
    lactate = [0.8, 0.8, 0.85, 0.9, 1.0, 1.4, 2.6, 5.0]
    hr = [128, 135, 142, 149, 156, 163, 170, 177]
    return _running(speeds, lactate, hr)


def test_stage_units():
    assert TestStage(sequence=1, heart_rate=120, lactate=1, speed=10).unit == "km/h"
    assert TestStage(sequence=1, heart_rate=120, lactate=1, power=200).unit == "watt"
    pace = TestStage(sequence=1, heart_rate=120, lactate=1, pace=5.0)
    assert pace.unit == "min/km"
    assert pace.effort == pytest.approx(12.0)


def test_quality_ok_for_good_test():
    quality = assess_stage_quality(_running())
    assert quality.ok is True
    assert quality.warnings == []
    assert quality.stage_count == 6


def test_quality_flags_short_test():
    quality = assess_stage_quality(_running()[:3])
    assert quality.ok is False
    assert any("At least 4" in w for w in quality.warnings)


def test_quality_flags_small_lactate_range():
    quality = assess_stage_quality(_running(lactate=[1.0, 1.1, 1.2, 1.4, 1.6, 1.9]))
    assert quality.ok is False
    assert any("range" in w for w in quality.warnings)


def test_quality_orders_stages_by_intensity():
    stages = _running(speeds=[8.0, 12.0, 10.0, 14.0, 16.0, 18.0])
    quality = assess_stage_quality(stages)
    assert quality.increasing_intensity is False
    assert [s.speed for s in quality.stages] == [8.0, 10.0, 12.0, 14.0, 16.0, 18.0]


def test_aerobic_threshold_interpolates_two_mmol():
    lt1 = calculate_aerobic_threshold(_running())
    assert lt1.method == "LINEAR_2.0"
    assert lt1.lactate == 2.0
    assert lt1.value == pytest.approx(12.4, abs=0.1)
    assert lt1.heart_rate == 157
    assert lt1.unit == "km/h"
    assert lt1.profile_type == "STANDARD"


def test_anaerobic_threshold_uses_dmax():
    lt2 = calculate_anaerobic_threshold(_running())
    assert lt2.method == "DMAX"
    assert 13.0 < lt2.value < 15.5
    assert lt2.r2 is not None and lt2.r2 > 0.98
    assert lt2.confidence == "HIGH"


def test_thresholds_ordered():
    lt1 = calculate_aerobic_threshold(_running())
    lt2 = calculate_anaerobic_threshold(_running())
    assert lt1.value < lt2.value
    assert lt1.heart_rate < lt2.heart_rate


def test_pace_based_test_reports_pace():
    lt1 = calculate_aerobic_threshold(_skiing())
    lt2 = calculate_anaerobic_threshold(_skiing())
    assert lt1.unit == "min/km"
    assert lt2.unit == "min/km"
    # lower min/km is faster
    assert lt2.value < lt1.value
    assert 4.0 < lt2.value < 5.0


def test_dickhuth_threshold():
    result = calculate_dickhuth_threshold(_running())
    assert result.method == "DICKHUTH"
    assert result.confidence == "MEDIUM"
    assert result.lactate == pytest.approx(2.5)
    assert result.value == pytest.approx(13.5, abs=0.1)


def test_dickhuth_estimate_when_target_not_crossed():
    result = calculate_dickhuth_threshold(_running(SPEEDS[:4], [1.0, 1.1, 1.3, 1.6], HEART_RATE[:4]))
    assert result.method == "DICKHUTH_ESTIMATED"
    assert result.confidence == "LOW"


def test_dickhuth_needs_three_stages():
    assert calculate_dickhuth_threshold(_running()[:2]) is None


def test_four_mmol_prefers_second_crossing():
    stages = _running([8.0, 10.0, 12.0, 14.0], [1.0, 4.5, 3.5, 5.0], [130, 140, 150, 160])
    result = interpolate_at_lactate(stages, 4.0, "LINEAR_4.0", prefer_second=True)
    assert result.value == pytest.approx(12.7, abs=0.05)
    first = interpolate_at_lactate(stages, 4.0, "LINEAR_4.0")
    assert first.value == pytest.approx(9.7, abs=0.05)


def test_elite_flat_curve():
    stages = _elite()
    lt1 = calculate_aerobic_threshold(stages)
    lt2 = calculate_anaerobic_threshold(stages)
    assert lt1.profile_type == "ELITE_FLAT"
    assert 14 <= lt1.value <= 17
    assert lt2.value >= 16


def test_manual_override():
    result = apply_manual_override(_running(), 2.2, 13.0, "LT1")
    assert result.method == "MANUAL"
    assert result.confidence == "HIGH"
    assert result.heart_rate == 160
    assert result.value == 13.0


def test_manual_override_rejects_unknown_kind():
    with pytest.raises(ValueError):
        apply_manual_override(_running(), 2.2, 13.0, "LT3")


def test_estimate_thresholds_full_test():
    estimate = estimate_thresholds(_running(), max_hr=195)
    assert estimate.confidence == "HIGH"
    assert estimate.aerobic.method == "LINEAR_2.0"
    assert estimate.anaerobic.method == "DMAX"
    assert estimate.aerobic.percent_of_max == pytest.approx(80.5, abs=0.1)
    assert estimate.dmax is not None
    assert SPEEDS[0] < estimate.dmax.intensity < SPEEDS[-1]
    assert estimate.profile.type == "STANDARD"


def test_estimate_thresholds_uses_peak_hr_without_max():
    estimate = estimate_thresholds(_running())
    assert estimate.anaerobic.percent_of_max == pytest.approx(estimate.anaerobic.heart_rate / 186 * 100, abs=0.1)


def test_estimate_thresholds_short_test_degrades():
    stages = _running([10.0, 12.0, 14.0], [1.2, 2.5, 4.8], [140, 155, 170])
    estimate = estimate_thresholds(stages)
    assert estimate.confidence == "LOW"
    assert estimate.dmax is None
    assert estimate.aerobic.method == "LINEAR_2.0"
    assert estimate.anaerobic is not None
    assert estimate.warnings


def test_estimate_thresholds_empty():
    estimate = estimate_thresholds([])
    assert estimate.aerobic is None
    assert estimate.anaerobic is None
    assert estimate.confidence == "LOW"
    assert estimate.warnings


def test_estimate_thresholds_noisy_data_never_raises():
    stages = _running(lactate=[1.0, 4.0, 1.0, 4.0, 1.0, 4.5])
    estimate = estimate_thresholds(stages)
    assert estimate.confidence == "LOW"
    assert estimate.anaerobic is not None
    assert any("monotonic" in w for w in estimate.warnings)


def test_estimate_thresholds_manual_overrides():
    estimate = estimate_thresholds(
        _running(),
        lt1_override=ManualThreshold(lactate=1.8, intensity=12.0),
        lt2_override=ManualThreshold(lactate=3.5, intensity=15.0),
    )
    assert estimate.aerobic.method == "MANUAL"
    assert estimate.aerobic.heart_rate == 154
    assert estimate.anaerobic.method == "MANUAL"
    assert estimate.anaerobic.heart_rate == 172


def test_aerobic_threshold_high_first_reading_is_estimated():
    # first reading above 2.0 mmol/L: no stage below the target to interpolate from
    stages = _running([8.0, 10.0, 12.0], [2.3, 1.5, 3.0], [130, 142, 154])
    lt1 = calculate_aerobic_threshold(stages)
    assert lt1.method == "ESTIMATED"
    assert lt1.value == 8.0


def test_estimate_thresholds_repeated_intensities_degrade():
    stages = _running([10.0, 10.0, 10.0, 12.0, 14.0, 16.0], [1.0, 1.1, 1.2, 1.5, 2.5, 5.0], [130, 134, 138, 150, 162, 175])
    estimate = estimate_thresholds(stages)
    assert estimate.confidence == "LOW"
    assert estimate.aerobic is not None
    assert estimate.anaerobic is not None
    assert any("strictly increasing" in w for w in estimate.warnings)


@pytest.mark.parametrize(
    "speeds, lactate",
    [
        ([8.0, 8.0, 8.0, 10.0, 12.0, 14.0, 16.0], [0.7, 0.8, 0.9, 1.2, 2.0, 3.5, 6.0]),
        ([8.0, 8.0, 8.0, 10.0, 12.0], [0.7, 1.8, 2.7, 3.5, 5.7]),
        ([8.0, 10.0, 12.0, 14.0, 16.0, 16.0, 16.0], [0.8, 0.8, 0.85, 0.9, 1.3, 2.5, 4.8]),
        ([8.0, 10.0, 12.0, 14.0, 16.0, 16.0], [0.8, 0.8, 0.85, 0.9, 1.0, 2.0]),
        ([12.0, 12.0, 12.0, 12.0, 12.0], [1.0, 1.5, 2.2, 3.0, 4.5]),
    ],
)
def test_estimate_thresholds_shared_intensities_never_raise(speeds, lactate):
    hr = [120 + 8 * i for i in range(len(speeds))]
    estimate = estimate_thresholds(_running(speeds, lactate, hr))
    assert estimate.confidence == "LOW"
    assert estimate.aerobic is not None
    assert estimate.anaerobic is not None
    assert estimate.warnings


def test_estimate_thresholds_repeated_sequence_numbers():
    stages = [
        TestStage(sequence=1, heart_rate=h, lactate=l, speed=s)
        for s, l, h in zip(SPEEDS, LACTATE, HEART_RATE)
    ]
    estimate = estimate_thresholds(stages)
    assert estimate.aerobic.method == "LINEAR_2.0"
    assert estimate.anaerobic is not None
