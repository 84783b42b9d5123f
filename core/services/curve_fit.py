"""Small numeric helpers shared by the threshold and velocity modules.

Cubic least-squares fitting (numpy), simple linear regression and
piecewise-linear interpolation over short stage series (4-12 points).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class PolynomialFit:
    """Cubic y = a*x^3 + b*x^2 + c*x + d with its coefficient of determination."""
    a: float
    b: float
    c: float
    d: float
    r2: float

    def evaluate(self, x: float) -> float:
        return self.a * x ** 3 + self.b * x ** 2 + self.c * x + self.d

    def as_dict(self) -> dict[str, float]:
        return {"a": self.a, "b": self.b, "c": self.c, "d": self.d}


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    r2: float

    def evaluate(self, x: float) -> float:
        return self.slope * x + self.intercept


def _r_squared(y: np.ndarray, predicted: np.ndarray) -> float:
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res < 1e-12 else 0.0
    return 1.0 - ss_res / ss_tot


def fit_cubic(x: Sequence[float], y: Sequence[float]) -> PolynomialFit:
    """Least-squares third-degree polynomial through (x, y)."""
    if len(x) != len(y):
        raise ValueError("x and y must have the same length")
    if len(x) < 4:
        raise ValueError("cubic fit requires at least 4 points")
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if np.unique(xs).size < 4:
        raise ValueError("cubic fit requires at least 4 distinct x values")
    a, b, c, d = (float(v) for v in np.polyfit(xs, ys, 3))
    r2 = _r_squared(ys, np.polyval([a, b, c, d], xs))
    return PolynomialFit(a=a, b=b, c=c, d=d, r2=r2)


def linear_regression(x: Sequence[float], y: Sequence[float]) -> LinearFit:
    """Ordinary least-squares line."""
    if len(x) != len(y):
        raise ValueError("x and y must have the same length")
    if len(x) < 2:
        raise ValueError("linear regression requires at least 2 points")
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if np.ptp(xs) == 0:
        raise ValueError("linear regression requires distinct x values")
    slope, intercept = (float(v) for v in np.polyfit(xs, ys, 1))
    r2 = _r_squared(ys, slope * xs + intercept)
    return LinearFit(slope=slope, intercept=intercept, r2=r2)


def interpolate(xs: Sequence[float], ys: Sequence[float], x: float) -> float:
    """Piecewise-linear value at x; clamps to the end values outside the range.

    xs must be monotonic; descending series (pace in min/km) are reversed.
    """
    if not xs:
        raise ValueError("interpolate requires at least one point")
    if len(xs) > 1 and xs[0] > xs[-1]:
        xs, ys = list(reversed(xs)), list(reversed(ys))
    if x <= xs[0]:
        return float(ys[0])
    if x >= xs[-1]:
        return float(ys[-1])
    return float(np.interp(x, xs, ys))


def crossing(values: Sequence[float], target: float) -> tuple[int, float] | None:
    """First upward crossing of `target`.

    Returns (i, factor): the target lies between values[i] and values[i + 1]
    at fraction `factor`. None when the series never crosses.
    """
    for i in range(len(values) - 1):
        lo, hi = values[i], values[i + 1]
        if lo <= target < hi:
            return i, (target - lo) / (hi - lo)
    return None
