"""Jack Daniels VDOT: training paces, race-based VDOT and race predictions.

Paces are stored in seconds per kilometre for whole VDOT values 30-85 and
interpolated for fractional scores. VDOT from a race result uses the
Daniels/Gilbert oxygen-cost and drop-off equations; predictions invert the
same equations numerically.

Reference: Daniels' Running Formula, 3rd Edition (2013).
"""

from __future__ import annotations

from dataclasses import dataclass
from math import exp, sqrt

from core.logging_config import get_logger

logger = get_logger(__name__)

PACE_CODES = ("E", "M", "T", "I", "R")


@dataclass(frozen=True)
class DanielsPaces:
    """Training paces in seconds per kilometre."""
    vdot: float
    easy: int
    marathon: int
    threshold: int
    interval: int
    repetition: int

    def by_code(self, code: str) -> int:
        try:
            return getattr(self, _CODE_FIELDS[code.upper()])
        except KeyError:
            raise ValueError(f"Unknown pace code: {code}") from None

    def as_dict(self) -> dict[str, int]:
        return {code: self.by_code(code) for code in PACE_CODES}


@dataclass(frozen=True)
class RacePrediction:
    label: str
    distance_m: float
    time_seconds: int
    pace_sec_per_km: int


_CODE_FIELDS = {"E": "easy", "M": "marathon", "T": "threshold", "I": "interval", "R": "repetition"}

# VDOT -> (E, M, T, I, R) sec/km
_PACE_TABLE: dict[int, tuple[int, int, int, int, int]] = {
    30: (447, 404, 379, 351, 327),
    31: (438, 396, 372, 344, 321),
    32: (429, 388, 364, 337, 314),
    33: (421, 381, 357, 331, 308),
    34: (413, 374, 350, 324, 302),
    35: (405, 367, 344, 318, 296),
    36: (398, 360, 337, 312, 291),
    37: (390, 354, 331, 307, 286),
    38: (383, 347, 325, 301, 280),
    39: (377, 341, 320, 296, 275),
    40: (370, 335, 314, 291, 270),
    41: (364, 330, 309, 286, 266),
    42: (358, 324, 304, 281, 261),
    43: (352, 319, 299, 277, 257),
    44: (346, 314, 294, 272, 253),
    45: (341, 309, 289, 268, 249),
    46: (336, 304, 285, 264, 245),
    47: (330, 300, 281, 260, 241),
    48: (326, 295, 277, 256, 237),
    49: (321, 291, 273, 252, 234),
    50: (316, 287, 269, 248, 230),
    51: (312, 283, 265, 245, 227),
    52: (307, 279, 261, 241, 224),
    53: (303, 275, 258, 238, 221),
    54: (299, 271, 254, 235, 218),
    55: (295, 268, 251, 232, 215),
    56: (291, 264, 248, 229, 212),
    57: (287, 261, 245, 226, 210),
    58: (284, 258, 242, 223, 207),
    59: (280, 255, 239, 220, 205),
    60: (277, 252, 236, 218, 202),
    61: (274, 249, 233, 215, 200),
    62: (270, 246, 231, 213, 198),
    63: (267, 243, 228, 210, 195),
    64: (264, 241, 226, 208, 193),
    65: (261, 238, 223, 206, 191),
    66: (258, 235, 221, 204, 189),
    67: (256, 233, 219, 201, 187),
    68: (253, 231, 216, 199, 185),
    69: (250, 228, 214, 197, 183),
    70: (248, 226, 212, 195, 181),
    71: (245, 224, 210, 193, 179),
    72: (243, 222, 208, 191, 178),
    73: (241, 220, 206, 190, 176),
    74: (238, 218, 204, 188, 174),
    75: (236, 216, 202, 186, 173),
    76: (234, 214, 200, 184, 171),
    77: (232, 212, 198, 183, 170),
    78: (230, 210, 196, 181, 168),
    79: (228, 208, 195, 179, 167),
    80: (226, 206, 193, 178, 165),
    81: (224, 205, 191, 176, 164),
    82: (222, 203, 190, 175, 162),
    83: (220, 201, 188, 173, 161),
    84: (218, 200, 187, 172, 160),
    85: (217, 198, 185, 170, 158),
}

VDOT_MIN = min(_PACE_TABLE)
VDOT_MAX = max(_PACE_TABLE)

RACE_DISTANCES_M = {
    "1500m": 1500,
    "Mile": 1609.34,
    "3K": 3000,
    "5K": 5000,
    "10K": 10000,
    "15K": 15000,
    "Half Marathon": 21097.5,
    "Marathon": 42195,
}


def get_paces(vdot: float) -> DanielsPaces:
    """Daniels paces for a VDOT, clamped to 30-85 and interpolated between rows."""
    vdot = max(VDOT_MIN, min(VDOT_MAX, float(vdot)))
    lo = int(vdot)
    hi = min(lo + 1, VDOT_MAX)
    frac = vdot - lo
    row = [a + frac * (b - a) for a, b in zip(_PACE_TABLE[lo], _PACE_TABLE[hi])]
    e, m, t, i, r = (round(v) for v in row)
    return DanielsPaces(vdot=round(vdot, 1), easy=e, marathon=m, threshold=t, interval=i, repetition=r)


def pace_display(sec_per_km: float) -> str:
    """'M:SS/km'."""
    total = round(sec_per_km)
    if total <= 0:
        return "n/a"
    return f"{total // 60}:{total % 60:02d}/km"


def sec_per_km_to_kmh(sec_per_km: float) -> float:
    if sec_per_km <= 0:
        raise ValueError("pace must be positive")
    return round(3600.0 / sec_per_km, 2)


def easy_band(vdot: float) -> tuple[int, int]:
    """(fast, slow) easy pace, +/- 3 %."""
    return daniels_pace_band("E", vdot)


def daniels_pace_band(code: str, vdot: float) -> tuple[int, int]:
    """(fast, slow) sec/km band: +/- 3 % for E and M, +/- 2 % for T, I and R."""
    centre = get_paces(vdot).by_code(code)
    margin = max(1, round(centre * (0.03 if code.upper() in ("E", "M") else 0.02)))
    return centre - margin, centre + margin


def _vo2_cost(metres_per_min: float) -> float:
    """Oxygen cost of running (mL/kg/min) at a velocity in m/min."""
    return -4.60 + 0.182258 * metres_per_min + 0.000104 * metres_per_min ** 2


def _fraction_sustainable(minutes: float) -> float:
    """Fraction of VO2max that can be held for `minutes`."""
    return 0.8 + 0.1894393 * exp(-0.012778 * minutes) + 0.2989558 * exp(-0.1932605 * minutes)


def velocity_for_vo2(vo2: float) -> float:
    """Inverse of the oxygen-cost equation: m/min that costs `vo2`."""
    a, b, c = 0.000104, 0.182258, -4.60 - vo2
    disc = b * b - 4 * a * c
    if disc <= 0:
        raise ValueError("no running velocity for this oxygen cost")
    return (-b + sqrt(disc)) / (2 * a)


def estimate_vdot(distance_m: float, time_seconds: float) -> float:
    """VDOT from a race distance (m) and finish time (s), one decimal."""
    if distance_m <= 0 or time_seconds <= 0:
        raise ValueError("distance and time must be positive")
    minutes = time_seconds / 60.0
    vdot = _vo2_cost(distance_m / minutes) / _fraction_sustainable(minutes)
    return round(vdot, 1)


def vdot_from_race(distance_label: str, time_seconds: float) -> float:
    distance = RACE_DISTANCES_M.get(distance_label)
    if distance is None:
        raise ValueError(f"Unknown distance: {distance_label}. Use one of {sorted(RACE_DISTANCES_M)}")
    return estimate_vdot(distance, time_seconds)


def predict_race_time(vdot: float, distance_m: float) -> int:
    """Finish time (s) for which `estimate_vdot` gives `vdot`, found by bisection."""
    if vdot <= 0 or distance_m <= 0:
        raise ValueError("vdot and distance must be positive")

    def excess(seconds: float) -> float:
        minutes = seconds / 60.0
        return _vo2_cost(distance_m / minutes) / _fraction_sustainable(minutes) - vdot

    # 1 m/s floor and 12 m/s ceiling bracket every human race
    fast, slow = distance_m / 12.0, distance_m / 1.0
    if excess(slow) > 0 or excess(fast) < 0:
        raise ValueError(f"VDOT {vdot} is outside the predictable range for {distance_m} m")
    for _ in range(100):
        mid = (fast + slow) / 2
        if excess(mid) > 0:
            fast = mid
        else:
            slow = mid
        if slow - fast < 0.01:
            break
    return round((fast + slow) / 2)


def equivalent_performances(vdot: float) -> list[RacePrediction]:
    """Predicted times at the standard race distances."""
    predictions = []
    for label, distance in RACE_DISTANCES_M.items():
        seconds = predict_race_time(vdot, distance)
        predictions.append(
            RacePrediction(
                label=label,
                distance_m=distance,
                time_seconds=seconds,
                pace_sec_per_km=round(seconds / (distance / 1000.0)),
            )
        )
    logger.debug("equivalent_performances", extra={"vdot": vdot, "count": len(predictions)})
    return predictions


def format_duration(seconds: int) -> str:
    """'H:MM:SS' or 'M:SS'."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
