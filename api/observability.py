from __future__ import annotations

import time
from typing import Optional
from uuid import uuid4

from core.logging_config import get_request_id, reset_request_id, set_request_id, setup_logging

__all__ = [
    "configure_logging",
    "get_request_id",
    "monotonic_ms",
    "new_request_id",
    "request_log_fields",
    "reset_request_id",
    "set_request_id",
]


def new_request_id() -> str:
    return uuid4().hex


def configure_logging(level: str = "INFO") -> None:
    setup_logging(level)


def request_log_fields(*, method: str, path: str, status_code: int, duration_ms: float, client_ip: Optional[str]) -> dict[str, object]:
    return {
        "method": method,
        "path": path,
        "status_code": int(status_code),
        "duration_ms": round(float(duration_ms), 2),
        "client_ip": client_ip or "",
    }


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0
