"""Five-zone training model derived from lactate thresholds or HRmax.

Tier 1 (LACTATE_TEST, HIGH): zones anchored on the LT1 and LT2 heart rates.
Tier 3 (ESTIMATED, LOW): fixed %HRmax bands with HRmax from age when unknown.

References:
- Tanaka, Monahan & Seals (2001). Age-predicted maximal heart rate revisited.
- Gulati et al. (2010). Heart rate response to exercise stress testing in
  asymptomatic women.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date

from core.logging_config import get_logger
from core.services.thresholds import Threshold

logger = get_logger(__name__)

SPORTS = ("RUNNING", "CYCLING", "SKIING")

_ZONE_LABELS = {
    1: ("Very easy", "Recovery", "Recovery, warm-up, fat oxidation"),
    2: ("Easy", "Aerobic base (LT1)", "Aerobic base training, high volume"),
    3: ("Moderate", "Tempo", "Tempo, aerobic capacity, long intervals"),
    4: ("Hard", "Threshold (LT2)", "Lactate threshold, lactate clearance, race pace"),
    5: ("Maximal", "VO2max", "VO2max, short intervals"),
}


@dataclass(frozen=True)
class TrainingZone:
    zone: int
    name: str
    intensity: str
    hr_min: int
    hr_max: int
    percent_min: int
    percent_max: int
    effect: str
    speed_min: float | None = None
    speed_max: float | None = None
    power_min: int | None = None
    power_max: int | None = None
    pace_min: float | None = None
    pace_max: float | None = None


@dataclass(frozen=True)
class ZoneCalculation:
    zones: list[TrainingZone]
    confidence: str
    method: str
    warning: str | None = None
    max_hr: int | None = None
    warnings: list[str] = field(default_factory=list)


def estimate_max_hr(age: int, gender: str | None = None) -> int:
    """Gulati (206 - 0.88 * age) for women, Tanaka (208 - 0.7 * age) otherwise."""
    if age <= 0:
        raise ValueError("age must be positive")
    if (gender or "").upper() == "FEMALE":
        return round(206 - 0.88 * age)
    return round(208 - 0.7 * age)


def age_from_birth_date(birth_date: date, today: date | None = None) -> int:
    today = today or date.today()
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _zone(number: int, hr_min: int, hr_max: int, max_hr: int) -> TrainingZone:
    name, intensity, effect = _ZONE_LABELS[number]
    return TrainingZone(
        zone=number,
        name=name,
        intensity=intensity,
        hr_min=hr_min,
        hr_max=hr_max,
        percent_min=round(hr_min / max_hr * 100),
        percent_max=round(hr_max / max_hr * 100),
        effect=effect,
    )


def _lactate_zones(max_hr: int, lt1_hr: int, lt2_hr: int) -> list[TrainingZone]:
    z1_top = max(lt1_hr - 10, round(max_hr * 0.6))
    bounds = [
        (round(max_hr * 0.5), z1_top),
        (z1_top + 1, lt1_hr + 5),
        (lt1_hr + 6, lt2_hr - 5),
        (lt2_hr - 4, lt2_hr + 5),
        (lt2_hr + 6, max_hr),
    ]
    return [_zone(i + 1, lo, hi, max_hr) for i, (lo, hi) in enumerate(bounds)]


def _intensity_range(zone: TrainingZone, lt1: Threshold, lt2: Threshold, lt1_pct: float, lt2_pct: float) -> tuple[float, float]:
    """Scale the nearer threshold's intensity by %HRmax; zone 3 interpolates by heart rate."""
    if zone.zone <= 2:
        return lt1.value * zone.percent_min / lt1_pct, lt1.value * zone.percent_max / lt1_pct
    if zone.zone >= 4:
        return lt2.value * zone.percent_min / lt2_pct, lt2.value * zone.percent_max / lt2_pct
    hr_span = lt2.heart_rate - lt1.heart_rate
    span = lt2.value - lt1.value
    low = lt1.value + span * (zone.hr_min - lt1.heart_rate) / hr_span
    high = lt1.value + span * (zone.hr_max - lt1.heart_rate) / hr_span
    return low, high


def _with_intensities(
    zones: list[TrainingZone], lt1: Threshold, lt2: Threshold, sport: str, max_hr: int
) -> list[TrainingZone]:
    expected_unit = {"RUNNING": "km/h", "CYCLING": "watt", "SKIING": "min/km"}.get(sport)
    if lt1.unit != expected_unit or lt2.unit != expected_unit or lt1.heart_rate >= lt2.heart_rate:
        return zones
    lt1_pct = lt1.heart_rate / max_hr * 100
    lt2_pct = lt2.heart_rate / max_hr * 100

    result = []
    for zone in zones:
        if sport == "SKIING":
            # pace: the faster (smaller) number bounds the top of the zone
            if zone.zone == 3:
                low, high = _intensity_range(zone, lt1, lt2, lt1_pct, lt2_pct)
                zone = replace(zone, pace_min=round(high, 2), pace_max=round(low, 2))
            else:
                ref, pct = (lt1, lt1_pct) if zone.zone <= 2 else (lt2, lt2_pct)
                zone = replace(
                    zone,
                    pace_min=round(ref.value * pct / zone.percent_max, 2),
                    pace_max=round(ref.value * pct / zone.percent_min, 2),
                )
        elif sport == "CYCLING":
            low, high = _intensity_range(zone, lt1, lt2, lt1_pct, lt2_pct)
            zone = replace(zone, power_min=round(low), power_max=round(high))
        else:
            low, high = _intensity_range(zone, lt1, lt2, lt1_pct, lt2_pct)
            zone = replace(zone, speed_min=round(low, 1), speed_max=round(high, 1))
        result.append(zone)
    return result


def _estimated_zones(max_hr: int) -> list[TrainingZone]:
    zones = []
    for number, (lo, hi) in enumerate(((50, 60), (60, 70), (70, 80), (80, 90), (90, 100)), start=1):
        name, intensity, effect = _ZONE_LABELS[number]
        zones.append(
            TrainingZone(
                zone=number,
                name=name,
                intensity=intensity,
                hr_min=round(max_hr * lo / 100),
                hr_max=max_hr if hi == 100 else round(max_hr * hi / 100),
                percent_min=lo,
                percent_max=hi,
                effect=effect,
            )
        )
    return zones


def calculate_training_zones(
    max_hr: int | None,
    aerobic: Threshold | None,
    anaerobic: Threshold | None,
    sport: str = "RUNNING",
    age: int | None = None,
    gender: str | None = None,
) -> ZoneCalculation:
    """Zones from a lactate test when both thresholds and HRmax are known.

    Otherwise falls back to %HRmax bands, estimating HRmax from age and
    gender when it is missing. Raises ValueError when neither HRmax nor age
    is available.
    """
    sport = sport.upper()
    if sport not in SPORTS:
        raise ValueError(f"Unknown sport: {sport}")
    if max_hr is not None and max_hr <= 0:
        raise ValueError("max_hr must be positive")

    if aerobic and anaerobic and max_hr:
        max_hr = round(max_hr)
        warnings = []
        if anaerobic.heart_rate - aerobic.heart_rate < 11:
            warnings.append("LT1 and LT2 heart rates are close; zone 3 is very narrow")
        zones = _lactate_zones(max_hr, round(aerobic.heart_rate), round(anaerobic.heart_rate))
        zones = _with_intensities(zones, aerobic, anaerobic, sport, max_hr)
        logger.debug("training_zones", extra={"method": "LACTATE_TEST", "sport": sport})
        return ZoneCalculation(zones=zones, confidence="HIGH", method="LACTATE_TEST", max_hr=max_hr, warnings=warnings)

    if max_hr:
        max_hr = round(max_hr)
        warning = "Zones are based on % of HRmax. A lactate test gives individual zones."
    elif age is not None:
        max_hr = estimate_max_hr(age, gender)
        warning = (
            f"Zones are estimated from age ({age}) and gender; HRmax estimated at {max_hr} bpm. "
            "A lactate test gives individual zones."
        )
    else:
        raise ValueError("max_hr or age is required to calculate zones")

    logger.debug("training_zones", extra={"method": "ESTIMATED", "sport": sport})
    return ZoneCalculation(
        zones=_estimated_zones(max_hr), confidence="LOW", method="ESTIMATED", warning=warning, max_hr=max_hr
    )
