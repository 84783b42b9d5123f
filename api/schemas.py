from __future__ import annotations

from datetime import date as dt_date
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

Sport = Literal["RUNNING", "CYCLING", "SKIING"]
Gender = Literal["MALE", "FEMALE"]
Confidence = Literal["HIGH", "MEDIUM", "LOW"]


# --- thresholds ---


class StageIn(BaseModel):
    sequence: int = Field(ge=0)
    heart_rate: float = Field(gt=0, le=250)
    lactate: float = Field(ge=0, le=30)
    speed: Optional[float] = Field(default=None, gt=0, description="km/h")
    power: Optional[float] = Field(default=None, gt=0, description="watt")
    pace: Optional[float] = Field(default=None, gt=0, description="min/km")
    duration_min: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _has_intensity(self):
        if self.speed is None and self.power is None and self.pace is None:
            raise ValueError("each stage needs speed, power or pace")
        return self


class ManualThresholdIn(BaseModel):
    lactate: float = Field(ge=0, le=30)
    intensity: float = Field(gt=0)


class ThresholdRequest(BaseModel):
    stages: list[StageIn] = Field(min_length=1, max_length=40)
    sport: Sport = "RUNNING"
    max_hr: Optional[int] = Field(default=None, gt=0, le=250)
    age: Optional[int] = Field(default=None, gt=0, le=120)
    gender: Optional[Gender] = None
    lt1_override: Optional[ManualThresholdIn] = None
    lt2_override: Optional[ManualThresholdIn] = None


class ThresholdOut(BaseModel):
    heart_rate: int
    value: float
    unit: str
    lactate: float
    percent_of_max: float = 0.0
    method: str
    confidence: Confidence
    r2: Optional[float] = None
    dmax_distance: Optional[float] = None
    profile_type: Optional[str] = None


class DmaxOut(BaseModel):
    intensity: float
    lactate: float
    heart_rate: int
    method: str
    r2: float
    confidence: Confidence
    coefficients: dict[str, float]
    dmax_distance: float
    warnings: list[str] = Field(default_factory=list)


class ProfileOut(BaseModel):
    type: str
    baseline_avg: float
    baseline_slope: float
    max_lactate: float
    lactate_range: float


# --- zones ---


class TrainingZoneOut(BaseModel):
    zone: int
    name: str
    intensity: str
    hr_min: int
    hr_max: int
    percent_min: int
    percent_max: int
    effect: str
    speed_min: Optional[float] = None
    speed_max: Optional[float] = None
    power_min: Optional[int] = None
    power_max: Optional[int] = None
    pace_min: Optional[float] = None
    pace_max: Optional[float] = None


class ZoneCalculationOut(BaseModel):
    zones: list[TrainingZoneOut]
    confidence: Confidence
    method: str
    warning: Optional[str] = None
    max_hr: Optional[int] = None
    warnings: list[str] = Field(default_factory=list)


class ThresholdEstimateOut(BaseModel):
    aerobic: Optional[ThresholdOut] = None
    anaerobic: Optional[ThresholdOut] = None
    dmax: Optional[DmaxOut] = None
    profile: Optional[ProfileOut] = None
    confidence: Confidence
    warnings: list[str] = Field(default_factory=list)
    zones: Optional[ZoneCalculationOut] = None


class ThresholdIn(BaseModel):
    heart_rate: int = Field(gt=0, le=250)
    value: float = Field(gt=0)
    unit: Literal["km/h", "watt", "min/km"]
    lactate: float = Field(default=0.0, ge=0)


class ZoneRequest(BaseModel):
    sport: Sport = "RUNNING"
    max_hr: Optional[int] = Field(default=None, gt=0, le=250)
    aerobic: Optional[ThresholdIn] = None
    anaerobic: Optional[ThresholdIn] = None
    age: Optional[int] = Field(default=None, gt=0, le=120)
    birth_date: Optional[dt_date] = None
    gender: Optional[Gender] = None

    @model_validator(mode="after")
    def _needs_heart_rate_source(self):
        if self.max_hr is None and self.age is None and self.birth_date is None:
            raise ValueError("max_hr, age or birth_date is required")
        return self


# --- VDOT ---


class VdotRequest(BaseModel):
    distance: Optional[str] = Field(default=None, description="Named race distance, e.g. '5K'")
    distance_m: Optional[float] = Field(default=None, gt=0)
    time_seconds: float = Field(gt=0)

    @model_validator(mode="after")
    def _one_distance(self):
        if (self.distance is None) == (self.distance_m is None):
            raise ValueError("give exactly one of distance or distance_m")
        return self


class PacesOut(BaseModel):
    vdot: float
    easy: int
    marathon: int
    threshold: int
    interval: int
    repetition: int
    display: dict[str, str]
    bands: dict[str, tuple[int, int]]


class RacePredictionOut(BaseModel):
    label: str
    distance_m: float
    time_seconds: int
    time_display: str
    pace_sec_per_km: int


class VdotOut(BaseModel):
    vdot: float
    paces: PacesOut
    predictions: list[RacePredictionOut]


# --- strength ---


class OneRepMaxRequest(BaseModel):
    exercise: str = Field(min_length=1, max_length=64)
    weight: float = Field(gt=0, le=1000)
    reps: int = Field(ge=1, le=20)
    formula: str = "EPLEY"
    body_weight: Optional[float] = Field(default=None, gt=0, le=400)
    gender: Optional[Gender] = None


class CombinedEstimateOut(BaseModel):
    one_rep_max: float
    estimates: dict[str, float]
    spread: float
    confidence: Confidence


class TrainingWeightOut(BaseModel):
    goal: str
    percent: int
    weight: float
    reps: int


class OneRepMaxOut(BaseModel):
    exercise: str
    one_rep_max: float
    formula: str
    combined: CombinedEstimateOut
    relative_strength: Optional[float] = None
    strength_level: Optional[str] = None
    training_weights: list[TrainingWeightOut]


# --- velocity ---


class VelocityPointIn(BaseModel):
    load: float = Field(gt=0, le=1000)
    velocity: float = Field(gt=0, le=5)


class VelocityProfileRequest(BaseModel):
    exercise: str = Field(min_length=1, max_length=64)
    points: list[VelocityPointIn] = Field(min_length=3, max_length=100)
    recent_velocities: list[float] = Field(default_factory=list)
    previous_velocities: list[float] = Field(default_factory=list)
    rep_based_1rm: Optional[float] = Field(default=None, gt=0)


class LoadVelocityProfileOut(BaseModel):
    exercise: str
    slope: float
    intercept: float
    r2: float
    point_count: int
    is_valid: bool
    mvt: float
    estimated_1rm: Optional[float] = None
    estimated_1rm_at_02: Optional[float] = None
    confidence: Confidence


class LoadRecommendationOut(BaseModel):
    zone: str
    min_load: float
    max_load: float
    target_velocity_min: float
    target_velocity_max: float


class VelocityTrendOut(BaseModel):
    trend: Literal["IMPROVING", "STABLE", "DECLINING"]
    current_avg: float
    previous_avg: float
    percent_change: float
    interpretation: str


class CombinedOneRepMaxOut(BaseModel):
    one_rep_max: Optional[float] = None
    source: str
    difference_percent: Optional[float] = None
    note: str


class SessionRecommendationOut(BaseModel):
    next_session_load: float
    target_velocity_min: float
    target_velocity_max: float
    velocity_loss_target: int
    readiness: Optional[str] = None


class VelocityProfileOut(BaseModel):
    profile: LoadVelocityProfileOut
    zone_loads: list[LoadRecommendationOut] = Field(default_factory=list)
    trend: Optional[VelocityTrendOut] = None
    one_rep_max: CombinedOneRepMaxOut
    recommendation: Optional[SessionRecommendationOut] = None


class VelocityZoneOut(BaseModel):
    zone: str
    min_velocity: float
    max_velocity: Optional[float] = None


class VelocityZonesOut(BaseModel):
    velocity: Optional[float] = None
    zone: Optional[str] = None
    zones: list[VelocityZoneOut]


class HealthOut(BaseModel):
    status: str
    app_env: str
    cache_backend: str
