from __future__ import annotations

import sys

from fastapi.testclient import TestClient

STAGES = [
    {"sequence": i + 1, "speed": s, "lactate": l, "heart_rate": h}
    for i, (s, l, h) in enumerate(
        zip(
            [8.0, 10.0, 12.0, 14.0, 16.0, 18.0],
            [1.00, 1.28, 1.79, 2.73, 4.43, 7.53],
            [130, 142, 154, 166, 177, 186],
        )
    )
]

SQUAT_POINTS = [
    {"load": 60, "velocity": 0.9},
    {"load": 80, "velocity": 0.7},
    {"load": 100, "velocity": 0.5},
    {"load": 120, "velocity": 0.3},
]


def _purge_api_modules() -> None:
    for name in [
        "api.main",
        "api.routes",
        "api.errors",
        "api.ratelimit",
    ]:
        sys.modules.pop(name, None)


def _build_client(
    monkeypatch, env_overrides: dict[str, str] | None = None, raise_server_exceptions: bool = True
) -> TestClient:
    # nothing listens on port 1, so the cache falls back to memory
    monkeypatch.setenv("REDIS_URL", "redis://127.0.0.1:1/0")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173")
    if env_overrides:
        for key, value in env_overrides.items():
            monkeypatch.setenv(key, value)

    from core.config import get_settings

    get_settings.cache_clear()
    _purge_api_modules()

    from api.main import create_app

    return TestClient(create_app(), raise_server_exceptions=raise_server_exceptions)


def test_health_echoes_or_generates_request_id_header(monkeypatch):
    with _build_client(monkeypatch) as client:
        custom_request_id = "req-test-123"
        resp = client.get("/api/v1/health", headers={"X-Request-ID": custom_request_id})
        assert resp.status_code == 200, resp.text
        assert resp.headers["X-Request-ID"] == custom_request_id
        body = resp.json()
        assert body["status"] == "ok"
        assert body["app_env"] == "test"
        assert body["cache_backend"] == "memory"

        generated = client.get("/api/v1/health")
        assert generated.status_code == 200, generated.text
        assert generated.headers.get("X-Request-ID")


def test_thresholds_full_test(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/thresholds", json={"stages": STAGES, "max_hr": 195})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["confidence"] == "HIGH"
        assert body["aerobic"]["method"] == "LINEAR_2.0"
        assert body["aerobic"]["unit"] == "km/h"
        assert body["anaerobic"]["method"] == "DMAX"
        assert body["dmax"]["method"] == "DMAX"
        assert body["profile"]["type"] == "STANDARD"
        zones = body["zones"]
        assert zones["method"] == "LACTATE_TEST"
        assert zones["max_hr"] == 195
        assert len(zones["zones"]) == 5
        assert zones["zones"][0]["speed_max"] is not None


def test_thresholds_short_test_is_low_confidence(monkeypatch):
    stages = [
        {"sequence": 1, "speed": 10.0, "lactate": 1.5, "heart_rate": 140},
        {"sequence": 2, "speed": 12.0, "lactate": 3.0, "heart_rate": 160},
    ]
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/thresholds", json={"stages": stages})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["confidence"] == "LOW"
        assert body["dmax"] is None
        assert body["warnings"]


def test_thresholds_manual_override(monkeypatch):
    payload = {"stages": STAGES, "lt1_override": {"lactate": 1.8, "intensity": 12.0}}
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/thresholds", json=payload)
        assert resp.status_code == 200, resp.text
        aerobic = resp.json()["aerobic"]
        assert aerobic["method"] == "MANUAL"
        assert aerobic["heart_rate"] == 154


def test_stage_without_intensity_is_validation_error(monkeypatch):
    stages = [dict(stage) for stage in STAGES]
    del stages[2]["speed"]
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/thresholds", json={"stages": stages})
        assert resp.status_code == 400, resp.text
        detail = resp.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert detail["errors"]


def test_zones_estimated_from_age(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/zones", json={"age": 40})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["method"] == "ESTIMATED"
        assert body["confidence"] == "LOW"
        assert body["max_hr"] == 180


def test_zones_from_thresholds(monkeypatch):
    payload = {
        "sport": "CYCLING",
        "max_hr": 185,
        "aerobic": {"heart_rate": 140, "value": 200, "unit": "watt"},
        "anaerobic": {"heart_rate": 165, "value": 280, "unit": "watt"},
    }
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/zones", json=payload)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["method"] == "LACTATE_TEST"
        assert body["zones"][3]["power_min"] is not None


def test_zones_need_heart_rate_source(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/zones", json={"sport": "RUNNING"})
        assert resp.status_code == 400, resp.text
        assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_vdot_from_5k(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/vdot", json={"distance": "5K", "time_seconds": 1200})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert abs(body["vdot"] - 49.8) <= 0.1
        assert len(body["predictions"]) == 8
        assert body["paces"]["display"]["E"].endswith("/km")
        five_k = next(p for p in body["predictions"] if p["label"] == "5K")
        assert abs(five_k["time_seconds"] - 1200) <= 5


def test_vdot_unknown_distance(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/vdot", json={"distance": "7K", "time_seconds": 1800})
        assert resp.status_code == 400, resp.text
        assert resp.json()["detail"]["code"] == "INVALID_INPUT"


def test_vdot_paces_cached_read(monkeypatch):
    with _build_client(monkeypatch) as client:
        first = client.get("/api/v1/calculations/vdot/50/paces")
        assert first.status_code == 200, first.text
        assert first.json()["easy"] == 316
        assert first.json()["bands"]["T"] == [264, 274]

        second = client.get("/api/v1/calculations/vdot/50/paces")
        assert second.status_code == 200, second.text
        assert second.json() == first.json()

        out_of_range = client.get("/api/v1/calculations/vdot/0/paces")
        assert out_of_range.status_code == 400


def test_one_rep_max(monkeypatch):
    payload = {"exercise": "squat", "weight": 100, "reps": 5, "body_weight": 80}
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/one-rep-max", json=payload)
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["one_rep_max"] == 116.7
        assert body["formula"] == "EPLEY"
        assert body["relative_strength"] == 1.46
        assert body["strength_level"] == "NOVICE"
        assert body["combined"]["confidence"] == "HIGH"
        assert [w["goal"] for w in body["training_weights"]] == ["strength", "hypertrophy", "endurance"]


def test_one_rep_max_unknown_formula(monkeypatch):
    payload = {"exercise": "squat", "weight": 100, "reps": 5, "formula": "MAGIC"}
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/one-rep-max", json=payload)
        assert resp.status_code == 400, resp.text
        assert resp.json()["detail"]["code"] == "INVALID_INPUT"


def test_velocity_profile(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/velocity-profile", json={"exercise": "squat", "points": SQUAT_POINTS})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["profile"]["is_valid"] is True
        assert abs(body["profile"]["estimated_1rm"] - 120.0) < 0.05
        assert len(body["zone_loads"]) == 5
        assert body["one_rep_max"]["source"] == "VBT"
        assert body["recommendation"]["next_session_load"] == 90
        assert body["trend"] is None


def test_velocity_zones(monkeypatch):
    with _build_client(monkeypatch) as client:
        resp = client.get("/api/v1/calculations/velocity-zones", params={"velocity": 0.6})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["zone"] == "ACCELERATIVE_STRENGTH"
        assert len(body["zones"]) == 5

        listing = client.get("/api/v1/calculations/velocity-zones")
        assert listing.json()["zone"] is None


def test_unhandled_error_returns_internal_error(monkeypatch):
    with _build_client(monkeypatch, raise_server_exceptions=False) as client:
        import api.routes as routes_mod

        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(routes_mod, "estimate_thresholds", boom)
        resp = client.post("/api/v1/calculations/thresholds", json={"stages": STAGES})
        assert resp.status_code == 500
        assert resp.json()["detail"]["code"] == "INTERNAL_ERROR"


def test_calculation_rate_limit_returns_429_when_enabled(monkeypatch):
    env = {
        "APP_ENV": "dev",
        "RATE_LIMIT_ENABLED": "true",
        "CALCULATION_RATE_LIMIT": "2/minute",
    }
    payload = {"exercise": "squat", "weight": 100, "reps": 5}
    with _build_client(monkeypatch, env_overrides=env) as client:
        for _ in range(2):
            resp = client.post("/api/v1/calculations/one-rep-max", json=payload)
            assert resp.status_code == 200, resp.text
        limited = client.post("/api/v1/calculations/one-rep-max", json=payload)
        assert limited.status_code == 429, limited.text
        assert limited.json()["detail"]["code"] == "RATE_LIMITED"


def test_thresholds_repeated_speeds_degrade_to_low_confidence(monkeypatch):
    stages = [
        {"sequence": i + 1, "speed": s, "lactate": l, "heart_rate": 130 + 8 * i}
        for i, (s, l) in enumerate(zip([10.0, 10.0, 10.0, 12.0, 14.0, 16.0], [1.0, 1.1, 1.2, 1.5, 2.5, 5.0]))
    ]
    with _build_client(monkeypatch) as client:
        resp = client.post("/api/v1/calculations/thresholds", json={"stages": stages})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["confidence"] == "LOW"
        assert body["profile"]["type"] == "RECREATIONAL"
        assert body["aerobic"] is not None
        assert body["warnings"]
