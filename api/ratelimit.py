from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import get_settings

logger = logging.getLogger(__name__)


def _limiter_enabled() -> bool:
    settings = get_settings()
    return settings.rate_limit_enabled and settings.app_env != "test"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=get_settings().rate_limit_storage_uri,
    enabled=_limiter_enabled(),
    headers_enabled=True,
)


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    headers = {}
    retry_after = getattr(exc, "retry_after", None) if isinstance(exc, RateLimitExceeded) else None
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    logger.warning(
        "rate_limited",
        extra={"path": request.url.path, "client_ip": get_remote_address(request), "limit": str(getattr(exc, "detail", ""))},
    )
    return JSONResponse(
        status_code=429,
        content={"detail": {"code": "RATE_LIMITED", "message": "Rate limit exceeded"}},
        headers=headers,
    )
