"""D-max and Bishop modified D-max lactate threshold detection.

D-max fits a third-degree polynomial through the (intensity, lactate) points
of an incremental test, draws the chord from the first to the last point and
takes the point on the fitted curve with the greatest perpendicular distance
from that chord. The modified variant starts the chord at the stage preceding
the first clear rise above baseline, which moves the result from the first
turn point towards LT2 on flat curves.

References:
- Cheng et al. (1992). A new approach for the determination of ventilatory
  and lactate thresholds. Int J Sports Med 13(7).
- Bishop, Jenkins & Mackinnon (1998). The relationship between plasma
  lactate parameters, Wpeak and 1-h cycling performance in women.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from math import sqrt

from core.logging_config import get_logger
from core.services.curve_fit import PolynomialFit, crossing, fit_cubic, interpolate

logger = get_logger(__name__)

MIN_STAGES = 4
MIN_R2 = 0.90
HIGH_R2 = 0.95
SAMPLE_COUNT = 1000
OBLA_MMOL = 4.0
BISHOP_RISE_MMOL = 0.4


@dataclass(frozen=True)
class LactateSeries:
    """Parallel stage arrays, ordered from easiest to hardest stage."""
    intensity: list[float]
    lactate: list[float]
    heart_rate: list[float]
    unit: str = "km/h"

    def __post_init__(self):
        if not (len(self.intensity) == len(self.lactate) == len(self.heart_rate)):
            raise ValueError("All data arrays must have same length")

    def __len__(self) -> int:
        return len(self.intensity)


@dataclass(frozen=True)
class DmaxResult:
    intensity: float
    lactate: float
    heart_rate: int
    method: str          # DMAX | MOD_DMAX | FALLBACK
    r2: float
    confidence: str      # HIGH | MEDIUM | LOW
    coefficients: dict[str, float]
    dmax_distance: float
    warnings: list[str] = field(default_factory=list)


def lactate_is_monotonic(lactate: list[float], tolerance: float = 0.2) -> bool:
    """True when lactate rises through the test.

    Drops smaller than `tolerance` are measurement noise; one larger drop is
    still tolerated.
    """
    violations = sum(1 for prev, cur in zip(lactate, lactate[1:]) if cur - prev < -tolerance)
    return violations <= 1


def trimmed_baseline(lactate: list[float]) -> float:
    """Mean of the first 40 % of readings with the highest one dropped."""
    count = max(2, int(len(lactate) * 0.4))
    window = sorted(lactate[:count])
    trimmed = window[:-1] or window
    return sum(trimmed) / len(trimmed)


def dmax_confidence(r2: float, distance: float, lactate: list[float]) -> str:
    if r2 < MIN_R2:
        return "LOW"
    lactate_range = max(lactate) - min(lactate)
    if lactate_range <= 0:
        return "LOW"
    relative = distance / lactate_range
    if relative < 0.05:
        # curve too close to linear for a meaningful turn point
        return "LOW"
    if r2 >= HIGH_R2 and relative >= 0.10:
        return "HIGH"
    return "MEDIUM"


def _max_perpendicular_distance(
    fit: PolynomialFit, slope: float, intercept: float, x_start: float, x_end: float
) -> tuple[float, float, float]:
    """(intensity, lactate, distance) of the fitted point farthest from the chord."""
    step = (x_end - x_start) / SAMPLE_COUNT
    norm = sqrt(1 + slope * slope)
    best = (x_start, fit.evaluate(x_start), 0.0)
    for i in range(SAMPLE_COUNT + 1):
        x = x_start + i * step
        y = fit.evaluate(x)
        distance = abs(y - (slope * x + intercept)) / norm
        if distance > best[2]:
            best = (x, y, distance)
    return best


def _check_series(series: LactateSeries, label: str) -> None:
    if len(series) < MIN_STAGES:
        raise ValueError(f"{label} requires minimum {MIN_STAGES} test stages")


def fallback_threshold(
    series: LactateSeries, fit: PolynomialFit, reason: str, warnings: list[str] | None = None
) -> DmaxResult:
    """Fixed 4.0 mmol/L (OBLA) threshold by linear interpolation.

    When lactate never crosses 4.0 the last stage is reported.
    """
    intensity = series.intensity[-1]
    heart_rate = series.heart_rate[-1]
    hit = crossing(series.lactate, OBLA_MMOL)
    if hit is not None:
        i, factor = hit
        intensity = series.intensity[i] + factor * (series.intensity[i + 1] - series.intensity[i])
        heart_rate = series.heart_rate[i] + factor * (series.heart_rate[i + 1] - series.heart_rate[i])
    return DmaxResult(
        intensity=round(intensity, 2),
        lactate=OBLA_MMOL,
        heart_rate=round(heart_rate),
        method="FALLBACK",
        r2=round(fit.r2, 4),
        confidence="LOW",
        coefficients=fit.as_dict(),
        dmax_distance=0.0,
        warnings=[*(warnings or []), reason],
    )


def _dmax_from_chord(
    series: LactateSeries, fit: PolynomialFit, start: int, method: str, warnings: list[str]
) -> DmaxResult:
    x1, y1 = series.intensity[start], series.lactate[start]
    x2, y2 = series.intensity[-1], series.lactate[-1]
    slope = (y2 - y1) / (x2 - x1)
    intercept = y1 - slope * x1

    x, y, distance = _max_perpendicular_distance(fit, slope, intercept, x1, x2)
    heart_rate = interpolate(series.intensity, series.heart_rate, x)
    confidence = dmax_confidence(fit.r2, distance, series.lactate)

    logger.debug(
        "dmax_result",
        extra={"method": method, "intensity": round(x, 2), "lactate": round(y, 2), "r2": round(fit.r2, 4), "confidence": confidence},
    )
    return DmaxResult(
        intensity=round(x, 2),
        lactate=round(y, 2),
        heart_rate=round(heart_rate),
        method=method,
        r2=round(fit.r2, 4),
        confidence=confidence,
        coefficients=fit.as_dict(),
        dmax_distance=round(distance, 4),
        warnings=warnings,
    )


def calculate_dmax(series: LactateSeries) -> DmaxResult:
    """Standard D-max: chord from the first to the last stage.

    Falls back to the 4.0 mmol/L method when the cubic fit is poor (R² < 0.90).
    """
    _check_series(series, "D-max")
    warnings: list[str] = []
    if not lactate_is_monotonic(series.lactate):
        warnings.append("Lactate curve is not monotonically increasing; results may be unreliable")

    fit = fit_cubic(series.intensity, series.lactate)
    if fit.r2 < MIN_R2:
        return fallback_threshold(
            series, fit, f"Poor polynomial fit (R²={fit.r2:.2f}). Using 4.0 mmol/L threshold instead.", warnings
        )
    return _dmax_from_chord(series, fit, 0, "DMAX", warnings)


def calculate_mod_dmax(series: LactateSeries) -> DmaxResult:
    """Bishop modified D-max: chord from the stage preceding the first rise.

    The first rise is the first reading at least 0.4 mmol/L above the
    trimmed baseline. With no rise at all the midpoint stage is used.
    """
    _check_series(series, "Modified D-max")
    warnings: list[str] = []
    baseline = trimmed_baseline(series.lactate)

    first_rise = next(
        (i for i, lac in enumerate(series.lactate) if lac >= baseline + BISHOP_RISE_MMOL), None
    )
    if first_rise is None:
        start = len(series) // 2
        warnings.append("No lactate rise above baseline + 0.4 mmol/L; using midpoint as start")
    else:
        start = max(0, first_rise - 1)
    if start >= len(series) - 1 or series.intensity[start] >= series.intensity[-1]:
        start = 0

    fit = fit_cubic(series.intensity, series.lactate)
    if fit.r2 < MIN_R2:
        return fallback_threshold(
            series, fit, f"Poor polynomial fit (R²={fit.r2:.2f}). Using 4.0 mmol/L threshold instead.", warnings
        )
    logger.debug("mod_dmax_start", extra={"baseline": round(baseline, 2), "first_rise": first_rise, "start_index": start})
    return _dmax_from_chord(series, fit, start, "MOD_DMAX", warnings)
