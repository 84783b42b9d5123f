"""Aerobic (LT1) and anaerobic (LT2) threshold estimation from test stages.

Each threshold is found by a priority chain of methods, falling through to
fixed-concentration interpolation and finally to the closest measured stage,
so `estimate_thresholds` always produces something for any non-empty test.
Lactate curves are analysed on an effort axis: speed (km/h) and power (watt)
as measured, pace (min/km) as 60 / pace so that larger always means harder.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from core.logging_config import get_logger
from core.services.dmax import (
    DmaxResult,
    LactateSeries,
    calculate_dmax,
    calculate_mod_dmax,
    lactate_is_monotonic,
)
from core.services.curve_fit import crossing, interpolate
from core.services.lactate_profile import (
    ELITE_FLAT,
    AthleteProfile,
    LactatePoint,
    classify_profile,
    detect_elite_thresholds,
    preprocess,
)

logger = get_logger(__name__)

MIN_STAGES = 4
MIN_LACTATE_RANGE = 1.5
AEROBIC_MMOL = 2.0
ANAEROBIC_MMOL = 4.0
DICKHUTH_DELTA = 1.5

_CONFIDENCE_RANK = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}


@dataclass(frozen=True)
class TestStage:
    sequence: int
    heart_rate: float
    lactate: float
    speed: float | None = None      # km/h
    power: float | None = None      # watt
    pace: float | None = None       # min/km
    duration_min: float | None = None

    __test__ = False  # not a pytest class

    @property
    def unit(self) -> str | None:
        if self.speed is not None:
            return "km/h"
        if self.power is not None:
            return "watt"
        if self.pace is not None:
            return "min/km"
        return None

    @property
    def value(self) -> float | None:
        if self.speed is not None:
            return self.speed
        if self.power is not None:
            return self.power
        return self.pace

    @property
    def effort(self) -> float | None:
        value = self.value
        if value is None or value <= 0:
            return None
        return 60.0 / value if self.unit == "min/km" else value


@dataclass(frozen=True)
class Threshold:
    heart_rate: int
    value: float
    unit: str
    lactate: float
    percent_of_max: float = 0.0
    method: str = ""
    confidence: str = "LOW"
    r2: float | None = None
    dmax_distance: float | None = None
    profile_type: str | None = None

    def with_max_hr(self, max_hr: float) -> "Threshold":
        return replace(self, percent_of_max=round(self.heart_rate / max_hr * 100, 1))


@dataclass(frozen=True)
class ManualThreshold:
    """Coach-entered threshold point."""
    lactate: float
    intensity: float


@dataclass(frozen=True)
class DataQuality:
    ok: bool
    stages: list[TestStage]
    warnings: list[str]
    stage_count: int
    lactate_range: float
    increasing_intensity: bool
    monotonic_lactate: bool


@dataclass(frozen=True)
class ThresholdEstimate:
    aerobic: Threshold | None
    anaerobic: Threshold | None
    dmax: DmaxResult | None
    profile: AthleteProfile | None
    confidence: str
    warnings: list[str] = field(default_factory=list)


def _effort_to_value(effort: float, unit: str) -> float:
    return 60.0 / effort if unit == "min/km" else effort


def _primary_unit(stages: list[TestStage]) -> str | None:
    return next((s.unit for s in stages if s.unit is not None), None)


def _usable(stages: list[TestStage]) -> list[TestStage]:
    """Stages measured in the test's unit, ordered by sequence, then by effort when needed."""
    unit = _primary_unit(stages)
    usable = sorted(
        (s for s in stages if s.unit == unit and s.effort is not None and s.lactate >= 0),
        key=lambda s: s.sequence,
    )
    efforts = [s.effort for s in usable]
    if any(b <= a for a, b in zip(efforts, efforts[1:])):
        usable.sort(key=lambda s: s.effort)
    return usable


def to_points(stages: list[TestStage]) -> list[LactatePoint]:
    return [LactatePoint(intensity=s.effort, lactate=s.lactate, heart_rate=s.heart_rate) for s in stages]


def to_series(stages: list[TestStage]) -> LactateSeries:
    return LactateSeries(
        intensity=[s.effort for s in stages],
        lactate=[s.lactate for s in stages],
        heart_rate=[s.heart_rate for s in stages],
        unit="watt" if _primary_unit(stages) == "watt" else "km/h",
    )


def assess_stage_quality(stages: list[TestStage]) -> DataQuality:
    """Check a test's stages before curve fitting.

    Requires at least 4 usable stages, strictly increasing intensity in
    sequence order, a lactate range of at least 1.5 mmol/L and a lactate
    curve without repeated drops.
    """
    warnings: list[str] = []
    unit = _primary_unit(stages)
    for stage in sorted(stages, key=lambda s: s.sequence):
        if stage.effort is None or stage.unit != unit:
            warnings.append(f"Stage {stage.sequence} has no usable intensity and was ignored")

    in_sequence = sorted(
        (s for s in stages if s.unit == unit and s.effort is not None and s.lactate >= 0),
        key=lambda s: s.sequence,
    )
    efforts = [s.effort for s in in_sequence]
    increasing = all(b > a for a, b in zip(efforts, efforts[1:]))
    if not increasing:
        warnings.append("Stage intensities are not strictly increasing; stages were ordered by intensity")

    usable = _usable(stages)
    if len(usable) < MIN_STAGES:
        warnings.append(f"At least {MIN_STAGES} stages are required for curve fitting, got {len(usable)}")

    lactates = [s.lactate for s in usable]
    lactate_range = max(lactates) - min(lactates) if lactates else 0.0
    if usable and lactate_range < MIN_LACTATE_RANGE:
        warnings.append(f"Lactate range {lactate_range:.1f} mmol/L is too small for a reliable curve")

    monotonic = lactate_is_monotonic(lactates)
    if not monotonic:
        warnings.append("Lactate curve is not monotonically increasing; results may be unreliable")

    ok = increasing and monotonic and len(usable) >= MIN_STAGES and lactate_range >= MIN_LACTATE_RANGE
    return DataQuality(
        ok=ok,
        stages=usable,
        warnings=warnings,
        stage_count=len(usable),
        lactate_range=round(lactate_range, 2),
        increasing_intensity=increasing,
        monotonic_lactate=monotonic,
    )


def _interpolated(
    stages: list[TestStage], i: int, factor: float, lactate: float, method: str, confidence: str
) -> Threshold:
    below, above = stages[i], stages[i + 1]
    return Threshold(
        heart_rate=round(below.heart_rate + factor * (above.heart_rate - below.heart_rate)),
        value=round(below.value + factor * (above.value - below.value), 1),
        unit=below.unit,
        lactate=round(lactate, 2),
        method=method,
        confidence=confidence,
    )


def _closest(stages: list[TestStage], target: float, method: str, confidence: str = "LOW") -> Threshold:
    stage = min(stages, key=lambda s: abs(s.lactate - target))
    return Threshold(
        heart_rate=round(stage.heart_rate),
        value=round(stage.value, 1),
        unit=stage.unit,
        lactate=round(stage.lactate, 2),
        method=method,
        confidence=confidence,
    )


def _from_dmax(result: DmaxResult, unit: str, profile: AthleteProfile | None) -> Threshold:
    return Threshold(
        heart_rate=result.heart_rate,
        value=round(_effort_to_value(result.intensity, unit), 1),
        unit=unit,
        lactate=result.lactate,
        method=result.method,
        confidence=result.confidence,
        r2=result.r2,
        dmax_distance=result.dmax_distance,
        profile_type=profile.type if profile else None,
    )


def _profile(stages: list[TestStage]) -> AthleteProfile:
    return classify_profile(preprocess(to_points(stages)))


def interpolate_at_lactate(
    stages: list[TestStage], target: float, method: str, prefer_second: bool = False
) -> Threshold | None:
    """Linear interpolation where lactate first crosses `target`.

    With `prefer_second`, a later re-crossing (lactate dipping below the
    target and rising through it again) is used instead of the first one.
    """
    lactates = [s.lactate for s in stages]
    crossings = []
    start = 0
    while start < len(lactates) - 1:
        hit = crossing(lactates[start:], target)
        if hit is None:
            break
        crossings.append((start + hit[0], hit[1]))
        start += hit[0] + 1
    if not crossings:
        return None
    i, factor = crossings[1] if prefer_second and len(crossings) > 1 else crossings[0]
    return _interpolated(stages, i, factor, target, method, "MEDIUM")


def calculate_aerobic_threshold(stages: list[TestStage]) -> Threshold | None:
    """LT1 by priority: elite ensemble, D-max in 1.5-2.5 mmol/L, 2.0 mmol/L interpolation."""
    stages = _usable(stages)
    if not stages:
        return None
    unit = stages[0].unit
    profile = _profile(stages)

    if profile.type == ELITE_FLAT and len(stages) >= 5:
        try:
            ensemble = detect_elite_thresholds(to_points(stages))
        except ValueError as e:
            logger.debug("aerobic_elite_detection_skipped", extra={"reason": str(e)})
            ensemble = None
        if ensemble is not None and ensemble.lt1 is not None:
            logger.debug("aerobic_threshold_method", extra={"method": ensemble.lt1.method, "profile_type": profile.type})
            return Threshold(
                heart_rate=round(ensemble.lt1.heart_rate),
                value=round(_effort_to_value(ensemble.lt1.intensity, unit), 1),
                unit=unit,
                lactate=round(ensemble.lt1.lactate, 2),
                method=ensemble.lt1.method,
                confidence=ensemble.lt1.confidence,
                profile_type=profile.type,
            )

    if len(stages) >= MIN_STAGES:
        try:
            dmax = calculate_dmax(to_series(stages))
        except ValueError as e:
            logger.debug("aerobic_dmax_skipped", extra={"reason": str(e)})
        else:
            if dmax.method == "DMAX" and 1.5 <= dmax.lactate <= 2.5:
                logger.debug("aerobic_threshold_method", extra={"method": "DMAX", "profile_type": profile.type})
                return _from_dmax(dmax, unit, profile)

    # a first stage already above 2.0 mmol/L leaves nothing to interpolate from
    linear = None
    if stages[0].lactate <= AEROBIC_MMOL:
        linear = interpolate_at_lactate(stages, AEROBIC_MMOL, "LINEAR_2.0")
    if linear is not None:
        return replace(linear, profile_type=profile.type)

    if profile.type == ELITE_FLAT:
        estimate = _closest(stages, profile.baseline_avg + 0.3, "BASELINE_PLUS_0.3", "MEDIUM")
        return replace(estimate, profile_type=profile.type)

    return replace(_closest(stages, AEROBIC_MMOL, "ESTIMATED"), profile_type=profile.type)


def calculate_dickhuth_threshold(stages: list[TestStage]) -> Threshold | None:
    """Dickhuth individual anaerobic threshold.

    The stage with the lowest lactate equivalent (lactate / intensity) marks
    the most economical point; LT2 is its lactate plus 1.5 mmol/L.

    Dickhuth et al. (1999). Individual anaerobic threshold for evaluation of
    competitive athletes and patients with left ventricular dysfunction.
    """
    stages = _usable(stages)
    candidates = [s for s in stages if s.lactate > 0]
    if len(candidates) < 3:
        return None

    most_economical = min(candidates, key=lambda s: s.lactate / s.effort)
    target = most_economical.lactate + DICKHUTH_DELTA
    logger.debug(
        "dickhuth_target",
        extra={"base_lactate": most_economical.lactate, "target": round(target, 2)},
    )

    hit = crossing([s.lactate for s in stages], target)
    if hit is None:
        return _closest(stages, target, "DICKHUTH_ESTIMATED", "LOW")
    return _interpolated(stages, hit[0], hit[1], target, "DICKHUTH", "MEDIUM")


def calculate_anaerobic_threshold(stages: list[TestStage]) -> Threshold | None:
    """LT2 by priority: modified D-max (flat curves), D-max, Dickhuth, 4.0 mmol/L."""
    stages = _usable(stages)
    if not stages:
        return None
    unit = stages[0].unit
    profile = _profile(stages)

    if len(stages) >= MIN_STAGES:
        series = to_series(stages)
        if profile.type == ELITE_FLAT:
            try:
                mod = calculate_mod_dmax(series)
            except ValueError as e:
                logger.debug("anaerobic_mod_dmax_skipped", extra={"reason": str(e)})
            else:
                if mod.method == "MOD_DMAX":
                    return _from_dmax(mod, unit, profile)

        try:
            dmax = calculate_dmax(series)
        except ValueError as e:
            logger.debug("anaerobic_dmax_skipped", extra={"reason": str(e)})
        else:
            if dmax.method == "DMAX":
                # a D-max this low on a steep curve is the first turn point, not LT2
                too_low = dmax.lactate < 3.0 and profile.max_lactate > 8
                near_lt1 = dmax.lactate < profile.baseline_avg + 1.0
                if not (too_low or near_lt1):
                    return _from_dmax(dmax, unit, profile)
                logger.debug("anaerobic_dmax_rejected", extra={"lactate": dmax.lactate, "max_lactate": profile.max_lactate})

    dickhuth = calculate_dickhuth_threshold(stages)
    if dickhuth is not None and dickhuth.confidence != "LOW":
        if dickhuth.lactate < 3.5 and profile.max_lactate > 8:
            logger.debug("anaerobic_dickhuth_rejected", extra={"lactate": dickhuth.lactate})
        else:
            return replace(dickhuth, profile_type=profile.type)

    linear = interpolate_at_lactate(stages, ANAEROBIC_MMOL, "LINEAR_4.0", prefer_second=True)
    if linear is not None:
        return replace(linear, profile_type=profile.type)
    return replace(_closest(stages, ANAEROBIC_MMOL, "ESTIMATED"), profile_type=profile.type)


def apply_manual_override(stages: list[TestStage], lactate: float, intensity: float, kind: str) -> Threshold:
    """Threshold entered by the test leader; heart rate read off the stage data."""
    if kind not in ("LT1", "LT2"):
        raise ValueError(f"Unknown threshold kind: {kind}")
    stages = _usable(stages)
    if not stages:
        raise ValueError("Manual override requires at least one stage")
    heart_rate = interpolate([s.value for s in stages], [s.heart_rate for s in stages], intensity)
    return Threshold(
        heart_rate=round(heart_rate),
        value=round(intensity, 1),
        unit=stages[0].unit,
        lactate=round(lactate, 2),
        method="MANUAL",
        confidence="HIGH",
    )


def _lowest(*levels: str) -> str:
    return min(levels, key=lambda level: _CONFIDENCE_RANK[level])


def estimate_thresholds(
    stages: list[TestStage],
    max_hr: float | None = None,
    lt1_override: ManualThreshold | None = None,
    lt2_override: ManualThreshold | None = None,
) -> ThresholdEstimate:
    """Full threshold analysis of one incremental test.

    Bad or thin data never raises: the failed quality checks come back as
    warnings and cap the overall confidence at LOW.
    """
    quality = assess_stage_quality(stages)
    warnings = list(quality.warnings)
    usable = quality.stages
    if not usable:
        warnings.append("No usable stages; thresholds could not be estimated")
        return ThresholdEstimate(aerobic=None, anaerobic=None, dmax=None, profile=None, confidence="LOW", warnings=warnings)

    profile = _profile(usable)
    dmax: DmaxResult | None = None
    if len(usable) >= MIN_STAGES:
        series = to_series(usable)
        try:
            dmax = calculate_mod_dmax(series) if profile.type == ELITE_FLAT else calculate_dmax(series)
        except ValueError as e:
            warnings.append(f"D-max analysis failed: {e}")
        else:
            warnings.extend(w for w in dmax.warnings if w not in warnings)

    aerobic = (
        apply_manual_override(usable, lt1_override.lactate, lt1_override.intensity, "LT1")
        if lt1_override
        else calculate_aerobic_threshold(usable)
    )
    anaerobic = (
        apply_manual_override(usable, lt2_override.lactate, lt2_override.intensity, "LT2")
        if lt2_override
        else calculate_anaerobic_threshold(usable)
    )

    if aerobic and anaerobic and aerobic.heart_rate >= anaerobic.heart_rate:
        warnings.append("Aerobic threshold heart rate is not below the anaerobic threshold")

    reference_hr = max_hr or max(s.heart_rate for s in usable)
    if reference_hr and reference_hr > 0:
        aerobic = aerobic.with_max_hr(reference_hr) if aerobic else None
        anaerobic = anaerobic.with_max_hr(reference_hr) if anaerobic else None

    method_confidence = dmax.confidence if dmax else "LOW"
    confidence = _lowest(method_confidence, "HIGH" if quality.ok else "LOW")
    logger.debug(
        "threshold_estimate",
        extra={
            "stage_count": len(usable),
            "profile_type": profile.type,
            "aerobic_method": aerobic.method if aerobic else None,
            "anaerobic_method": anaerobic.method if anaerobic else None,
            "confidence": confidence,
        },
    )
    return ThresholdEstimate(
        aerobic=aerobic,
        anaerobic=anaerobic,
        dmax=dmax,
        profile=profile,
        confidence=confidence,
        warnings=warnings,
    )
