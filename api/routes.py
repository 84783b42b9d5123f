import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, Request, Response
from fastapi_cache.decorator import cache

from api.ratelimit import limiter
from api.schemas import (
    HealthOut,
    OneRepMaxOut,
    OneRepMaxRequest,
    PacesOut,
    ThresholdEstimateOut,
    ThresholdRequest,
    VdotOut,
    VdotRequest,
    VelocityProfileOut,
    VelocityProfileRequest,
    VelocityZonesOut,
    ZoneCalculationOut,
    ZoneRequest,
)
from core.config import get_settings
from core.services import strength, velocity
from core.services.thresholds import ManualThreshold, TestStage, Threshold, estimate_thresholds
from core.services.vdot import (
    PACE_CODES,
    daniels_pace_band,
    equivalent_performances,
    estimate_vdot,
    format_duration,
    get_paces,
    pace_display,
    vdot_from_race,
)
from core.services.zones import age_from_birth_date, calculate_training_zones

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter(prefix="/api/v1")


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "INVALID_INPUT", "message": str(exc)})


def _paces_payload(vdot: float) -> PacesOut:
    paces = get_paces(vdot)
    return PacesOut(
        **asdict(paces),
        display={code: pace_display(sec) for code, sec in paces.as_dict().items()},
        bands={code: daniels_pace_band(code, paces.vdot) for code in PACE_CODES},
    )


@router.get("/health", response_model=HealthOut, tags=["system"])
def health(request: Request):
    return HealthOut(
        status="ok",
        app_env=settings.app_env,
        cache_backend=getattr(request.app.state, "cache_backend", "none"),
    )


@router.post("/calculations/thresholds", response_model=ThresholdEstimateOut, tags=["thresholds"])
@limiter.limit(settings.calculation_rate_limit)
def calculate_thresholds(request: Request, response: Response, payload: ThresholdRequest):
    del request, response
    stages = [TestStage(**stage.model_dump()) for stage in payload.stages]
    estimate = estimate_thresholds(
        stages,
        max_hr=payload.max_hr,
        lt1_override=ManualThreshold(**payload.lt1_override.model_dump()) if payload.lt1_override else None,
        lt2_override=ManualThreshold(**payload.lt2_override.model_dump()) if payload.lt2_override else None,
    )
    result = ThresholdEstimateOut.model_validate(asdict(estimate))

    max_hr = payload.max_hr or round(max(stage.heart_rate for stage in stages))
    try:
        zones = calculate_training_zones(
            max_hr, estimate.aerobic, estimate.anaerobic, payload.sport, age=payload.age, gender=payload.gender
        )
    except ValueError as e:
        result.warnings.append(f"Training zones could not be calculated: {e}")
    else:
        result.zones = ZoneCalculationOut.model_validate(asdict(zones))

    logger.info(
        "thresholds_calculated",
        extra={"stage_count": len(stages), "confidence": estimate.confidence, "sport": payload.sport},
    )
    return result


@router.post("/calculations/zones", response_model=ZoneCalculationOut, tags=["zones"])
@limiter.limit(settings.calculation_rate_limit)
def calculate_zones(request: Request, response: Response, payload: ZoneRequest):
    del request, response
    age = payload.age
    if age is None and payload.birth_date is not None:
        age = age_from_birth_date(payload.birth_date)
    aerobic = Threshold(**payload.aerobic.model_dump()) if payload.aerobic else None
    anaerobic = Threshold(**payload.anaerobic.model_dump()) if payload.anaerobic else None
    try:
        zones = calculate_training_zones(payload.max_hr, aerobic, anaerobic, payload.sport, age=age, gender=payload.gender)
    except ValueError as e:
        raise _bad_request(e) from e
    return ZoneCalculationOut.model_validate(asdict(zones))


@router.post("/calculations/vdot", response_model=VdotOut, tags=["vdot"])
@limiter.limit(settings.calculation_rate_limit)
def calculate_vdot(request: Request, response: Response, payload: VdotRequest):
    del request, response
    try:
        if payload.distance is not None:
            vdot = vdot_from_race(payload.distance, payload.time_seconds)
        else:
            vdot = estimate_vdot(payload.distance_m, payload.time_seconds)
        predictions = equivalent_performances(vdot)
    except ValueError as e:
        raise _bad_request(e) from e
    return VdotOut(
        vdot=vdot,
        paces=_paces_payload(vdot),
        predictions=[{**asdict(p), "time_display": format_duration(p.time_seconds)} for p in predictions],
    )


@router.get("/calculations/vdot/{vdot}/paces", response_model=PacesOut, tags=["vdot"])
@cache(expire=settings.cache_ttl_seconds)
async def vdot_paces(vdot: float = Path(gt=0, le=100)):
    return _paces_payload(vdot)


@router.post("/calculations/one-rep-max", response_model=OneRepMaxOut, tags=["strength"])
@limiter.limit(settings.calculation_rate_limit)
def calculate_one_rep_max(request: Request, response: Response, payload: OneRepMaxRequest):
    del request, response
    try:
        single = strength.estimate_one_rep_max(payload.weight, payload.reps, payload.formula)
        combined = strength.estimate_one_rep_max_with_confidence(payload.weight, payload.reps)
    except ValueError as e:
        raise _bad_request(e) from e

    relative = level = None
    if payload.body_weight:
        relative = strength.relative_strength(single.one_rep_max, payload.body_weight)
        try:
            level = strength.classify_strength(payload.exercise, relative, payload.gender)
        except ValueError:
            # no standards for this lift
            level = None

    return OneRepMaxOut(
        exercise=payload.exercise,
        one_rep_max=single.one_rep_max,
        formula=single.formula,
        combined=asdict(combined),
        relative_strength=relative,
        strength_level=level,
        training_weights=[asdict(w) for w in strength.training_weights(single.one_rep_max)],
    )


@router.post("/calculations/velocity-profile", response_model=VelocityProfileOut, tags=["velocity"])
@limiter.limit(settings.calculation_rate_limit)
def calculate_velocity_profile(request: Request, response: Response, payload: VelocityProfileRequest):
    del request, response
    points = [velocity.VelocityPoint(load=p.load, velocity=p.velocity) for p in payload.points]
    try:
        profile = velocity.load_velocity_profile(points, payload.exercise)
        trend = velocity.velocity_trend(payload.recent_velocities, payload.previous_velocities)
    except ValueError as e:
        raise _bad_request(e) from e

    zone_loads = []
    if profile.is_valid:
        zone_loads = [asdict(velocity.recommended_load(profile, name)) for name, _, _ in velocity.VELOCITY_ZONES]

    combined = velocity.combine_one_rep_max(profile.estimated_1rm, profile.confidence, payload.rep_based_1rm)
    recommendation = None
    if combined.one_rep_max:
        recommendation = velocity.session_recommendation(profile, trend, combined.one_rep_max)

    return VelocityProfileOut(
        profile=asdict(profile),
        zone_loads=zone_loads,
        trend=asdict(trend) if trend else None,
        one_rep_max=asdict(combined),
        recommendation=asdict(recommendation) if recommendation else None,
    )


@router.get("/calculations/velocity-zones", response_model=VelocityZonesOut, tags=["velocity"])
def velocity_zones(v: Optional[float] = Query(default=None, alias="velocity", gt=0, le=5)):
    zones = [{"zone": name, "min_velocity": low, "max_velocity": high} for name, low, high in velocity.VELOCITY_ZONES]
    return VelocityZonesOut(velocity=v, zone=velocity.classify_velocity(v) if v is not None else None, zones=zones)
