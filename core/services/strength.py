"""One-repetition maximum estimation and strength standards.

All estimates take a lifted weight (kg) and the repetitions completed to
failure. Estimates are only trusted for 1-20 reps; accuracy drops quickly
above ~10 reps, which the combined estimate reflects in its confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import exp
from typing import Callable

from core.logging_config import get_logger

logger = get_logger(__name__)

MAX_REPS = 20
PLATE_KG = 2.5

LEVELS = ("BEGINNER", "NOVICE", "INTERMEDIATE", "ADVANCED", "ELITE")

# 1RM / body weight needed to reach NOVICE, INTERMEDIATE, ADVANCED, ELITE
_STANDARDS: dict[str, dict[str, tuple[float, float, float, float]]] = {
    "MALE": {
        "squat": (1.0, 1.5, 2.0, 2.5),
        "bench_press": (0.75, 1.0, 1.5, 2.0),
        "deadlift": (1.25, 1.75, 2.25, 3.0),
        "overhead_press": (0.5, 0.75, 1.0, 1.25),
    },
    "FEMALE": {
        "squat": (0.75, 1.0, 1.5, 1.9),
        "bench_press": (0.5, 0.65, 0.9, 1.2),
        "deadlift": (1.0, 1.25, 1.75, 2.25),
        "overhead_press": (0.35, 0.5, 0.65, 0.85),
    },
}


@dataclass(frozen=True)
class OneRepMaxEstimate:
    one_rep_max: float
    formula: str
    weight: float
    reps: int


@dataclass(frozen=True)
class CombinedEstimate:
    one_rep_max: float
    estimates: dict[str, float]
    spread: float
    confidence: str


@dataclass(frozen=True)
class TrainingWeight:
    goal: str
    percent: int
    weight: float
    reps: int


def _check(weight: float, reps: int) -> None:
    if weight <= 0:
        raise ValueError("weight must be positive")
    if not 1 <= reps <= MAX_REPS:
        raise ValueError(f"reps must be between 1 and {MAX_REPS}")


def epley(weight: float, reps: int) -> float:
    return weight * (1 + reps / 30)


def brzycki(weight: float, reps: int) -> float:
    return weight * 36 / (37 - reps)


def lander(weight: float, reps: int) -> float:
    return 100 * weight / (101.3 - 2.67123 * reps)


def lombardi(weight: float, reps: int) -> float:
    return weight * reps ** 0.10


def mayhew(weight: float, reps: int) -> float:
    return 100 * weight / (52.2 + 41.9 * exp(-0.055 * reps))


def oconner(weight: float, reps: int) -> float:
    return weight * (1 + 0.025 * reps)


def wathan(weight: float, reps: int) -> float:
    return 100 * weight / (48.8 + 53.8 * exp(-0.075 * reps))


FORMULAS: dict[str, Callable[[float, int], float]] = {
    "EPLEY": epley,
    "BRZYCKI": brzycki,
    "LANDER": lander,
    "LOMBARDI": lombardi,
    "MAYHEW": mayhew,
    "OCONNER": oconner,
    "WATHAN": wathan,
}


def estimate_one_rep_max(weight: float, reps: int, formula: str = "EPLEY") -> OneRepMaxEstimate:
    """1RM by a named formula; a single rep is the 1RM itself."""
    _check(weight, reps)
    formula = formula.upper()
    if formula not in FORMULAS:
        raise ValueError(f"Unknown formula: {formula}. Use one of {sorted(FORMULAS)}")
    value = weight if reps == 1 else FORMULAS[formula](weight, reps)
    return OneRepMaxEstimate(one_rep_max=round(value, 1), formula=formula, weight=weight, reps=reps)


def estimate_one_rep_max_with_confidence(weight: float, reps: int) -> CombinedEstimate:
    """Mean of every formula, with the spread between them.

    Confidence: HIGH up to 5 reps, MEDIUM up to 10, LOW beyond.
    """
    _check(weight, reps)
    estimates = {name: round(weight if reps == 1 else f(weight, reps), 1) for name, f in FORMULAS.items()}
    values = list(estimates.values())
    if reps <= 5:
        confidence = "HIGH"
    elif reps <= 10:
        confidence = "MEDIUM"
    else:
        confidence = "LOW"
    logger.debug("one_rep_max_combined", extra={"reps": reps, "spread": round(max(values) - min(values), 1)})
    return CombinedEstimate(
        one_rep_max=round(sum(values) / len(values), 1),
        estimates=estimates,
        spread=round(max(values) - min(values), 1),
        confidence=confidence,
    )


def relative_strength(one_rep_max: float, body_weight: float) -> float:
    if body_weight <= 0:
        raise ValueError("body_weight must be positive")
    return round(one_rep_max / body_weight, 2)


def classify_strength(exercise: str, relative: float, gender: str | None = None) -> str:
    key = exercise.lower().replace(" ", "_").replace("-", "_")
    table = _STANDARDS["FEMALE" if (gender or "").upper() == "FEMALE" else "MALE"]
    if key not in table:
        raise ValueError(f"No strength standards for exercise: {exercise}")
    level = sum(1 for bound in table[key] if relative >= bound)
    return LEVELS[level]


def round_to_plate(weight: float, increment: float = PLATE_KG) -> float:
    return round(weight / increment) * increment


def training_weights(one_rep_max: float) -> list[TrainingWeight]:
    if one_rep_max <= 0:
        raise ValueError("one_rep_max must be positive")
    return [
        TrainingWeight(goal=goal, percent=pct, weight=round_to_plate(one_rep_max * pct / 100), reps=reps)
        for goal, pct, reps in (("strength", 85, 5), ("hypertrophy", 75, 10), ("endurance", 60, 15))
    ]


def reps_at_percentage(percent: float) -> int:
    """Reps to failure at `percent` of 1RM (Epley inverted)."""
    if not 0 < percent <= 100:
        raise ValueError("percent must be in (0, 100]")
    return max(1, round(30 * (100 / percent - 1)))
