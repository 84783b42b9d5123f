"""Lactate curve classification and first-threshold (LT1) detection.

Elite endurance athletes often show "flat" curves: a very low baseline that
barely moves until late in the test. Fixed-concentration methods and the
standard D-max both misplace thresholds on such curves, so the curve is
classified first and the detection method chosen from the profile.

Methods:
- Log-log (Beaver) two-segment regression on ln(intensity), ln(lactate)
- Robust baseline plus an adaptive delta (0.3 / 0.5 / 1.0 mmol/L)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from math import inf, log

from core.logging_config import get_logger
from core.services.curve_fit import linear_regression
from core.services.dmax import trimmed_baseline

logger = get_logger(__name__)

ELITE_FLAT = "ELITE_FLAT"
STANDARD = "STANDARD"
RECREATIONAL = "RECREATIONAL"

BASELINE_DELTA = {ELITE_FLAT: 0.3, STANDARD: 0.5, RECREATIONAL: 1.0}


@dataclass(frozen=True)
class LactatePoint:
    intensity: float
    lactate: float
    heart_rate: float


@dataclass(frozen=True)
class AthleteProfile:
    type: str
    baseline_avg: float
    baseline_slope: float
    max_lactate: float
    lactate_range: float


@dataclass(frozen=True)
class DetectedThreshold:
    intensity: float
    lactate: float
    heart_rate: float
    method: str
    confidence: str
    profile_type: str


@dataclass(frozen=True)
class EnsembleResult:
    lt1: DetectedThreshold | None
    profile: AthleteProfile
    log_log: DetectedThreshold | None
    baseline_plus: DetectedThreshold | None


def robust_baseline(points: list[LactatePoint]) -> float:
    return trimmed_baseline([p.lactate for p in points])


def classify_profile(points: list[LactatePoint]) -> AthleteProfile:
    """Classify the curve shape from its baseline region.

    ELITE_FLAT: baseline < 1.5 mmol/L and |slope| < 0.05 per intensity unit
    STANDARD: baseline < 2.5 mmol/L and |slope| < 0.15
    RECREATIONAL: anything else, including a baseline window with no
    change in intensity
    """
    if not points:
        return AthleteProfile(type=STANDARD, baseline_avg=1.5, baseline_slope=0.0, max_lactate=0.0, lactate_range=0.0)
    max_lactate = max(p.lactate for p in points)
    if len(points) < 4:
        return AthleteProfile(
            type=STANDARD,
            baseline_avg=points[0].lactate,
            baseline_slope=0.0,
            max_lactate=max_lactate,
            lactate_range=0.0,
        )

    count = max(2, int(len(points) * 0.4))
    window = points[:count]
    baseline_avg = robust_baseline(points)
    run = window[-1].intensity - window[0].intensity
    baseline_slope = (window[-1].lactate - window[0].lactate) / run if run else 0.0

    if not run:
        # baseline stages share one intensity
        kind = RECREATIONAL
    elif baseline_avg < 1.5 and abs(baseline_slope) < 0.05:
        kind = ELITE_FLAT
    elif baseline_avg < 2.5 and abs(baseline_slope) < 0.15:
        kind = STANDARD
    else:
        kind = RECREATIONAL

    profile = AthleteProfile(
        type=kind,
        baseline_avg=baseline_avg,
        baseline_slope=baseline_slope,
        max_lactate=max_lactate,
        lactate_range=max_lactate - baseline_avg,
    )
    logger.debug("lactate_profile_classified", extra={"profile_type": kind, "baseline_avg": round(baseline_avg, 2)})
    return profile


def preprocess(points: list[LactatePoint]) -> list[LactatePoint]:
    """Startle filter: an elevated first reading is replaced by the second."""
    if len(points) < 3:
        return list(points)
    processed = list(points)
    if processed[0].lactate > processed[1].lactate + 0.2:
        processed[0] = replace(processed[0], lactate=processed[1].lactate)
    return processed


def log_log_threshold(points: list[LactatePoint]) -> DetectedThreshold | None:
    """Beaver log-log breakpoint.

    Tries every breakpoint k with at least two points on each side, fits one
    line to points [0..k] and another to [k..n-1] in log-log space, and keeps
    the k with the smallest total squared error. Rejected when the second
    slope is not steeper than the first.
    """
    valid = [p for p in points if p.intensity > 0 and p.lactate > 0]
    if len(valid) < 5:
        return None

    xs = [log(p.intensity) for p in valid]
    ys = [log(p.lactate) for p in valid]
    best_k, best_sse, best_s1, best_s2 = 2, inf, 0.0, 0.0

    for k in range(2, len(valid) - 2):
        try:
            line1 = linear_regression(xs[: k + 1], ys[: k + 1])
            line2 = linear_regression(xs[k:], ys[k:])
        except ValueError:
            # a segment of repeated intensities has no slope
            continue
        sse = sum((ys[i] - line1.evaluate(xs[i])) ** 2 for i in range(k + 1))
        sse += sum((ys[i] - line2.evaluate(xs[i])) ** 2 for i in range(k, len(valid)))
        if sse < best_sse:
            best_k, best_sse, best_s1, best_s2 = k, sse, line1.slope, line2.slope

    if best_s2 <= best_s1:
        return None

    ratio = best_s2 / max(0.01, abs(best_s1))
    if ratio > 2.0:
        confidence = "HIGH"
    elif ratio > 1.3:
        confidence = "MEDIUM"
    else:
        confidence = "LOW"

    hit = valid[best_k]
    return DetectedThreshold(
        intensity=hit.intensity,
        lactate=hit.lactate,
        heart_rate=hit.heart_rate,
        method="LOG_LOG",
        confidence=confidence,
        profile_type=ELITE_FLAT,
    )


def baseline_plus_threshold(points: list[LactatePoint], profile: AthleteProfile) -> DetectedThreshold | None:
    """First point where two consecutive readings exceed baseline + delta.

    Reports the point just before that rise. When the level is never
    exceeded twice in a row, the point closest to it is returned with LOW
    confidence.
    """
    if len(points) < 4:
        return None
    delta = BASELINE_DELTA.get(profile.type, 1.0)
    level = robust_baseline(points) + delta

    for i in range(len(points) - 1):
        if points[i].lactate > level and points[i + 1].lactate > level:
            hit = points[max(0, i - 1)]
            return DetectedThreshold(
                intensity=hit.intensity,
                lactate=hit.lactate,
                heart_rate=hit.heart_rate,
                method=f"BASELINE_PLUS_{delta}",
                confidence="MEDIUM" if profile.type == ELITE_FLAT else "HIGH",
                profile_type=profile.type,
            )

    closest = min(points, key=lambda p: abs(p.lactate - level))
    return DetectedThreshold(
        intensity=closest.intensity,
        lactate=closest.lactate,
        heart_rate=closest.heart_rate,
        method=f"BASELINE_PLUS_{delta}_ESTIMATED",
        confidence="LOW",
        profile_type=profile.type,
    )


def detect_elite_thresholds(points: list[LactatePoint]) -> EnsembleResult:
    """Combine log-log and baseline-plus into one LT1 estimate.

    Flat curves prefer log-log; when the two methods disagree by more than
    1.5 intensity units the lower-intensity result wins at MEDIUM confidence.
    Other profiles prefer baseline-plus.
    """
    processed = preprocess(points)
    profile = classify_profile(processed)
    log_log = log_log_threshold(processed)
    baseline_plus = baseline_plus_threshold(processed, profile)

    if profile.type == ELITE_FLAT:
        if log_log and baseline_plus:
            if abs(log_log.intensity - baseline_plus.intensity) <= 1.5:
                lt1 = log_log
            else:
                conservative = log_log if log_log.intensity < baseline_plus.intensity else baseline_plus
                lt1 = replace(conservative, confidence="MEDIUM")
        else:
            lt1 = log_log or baseline_plus
    else:
        lt1 = baseline_plus or log_log

    return EnsembleResult(lt1=lt1, profile=profile, log_log=log_log, baseline_plus=baseline_plus)