from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Demasiadas solicitudes. Intenta de nuevo en un minuto."


def client_route_key(request: Request) -> str:
    """One bucket per client address and path."""
    return f"{get_remote_address(request)}:{request.url.path}"


limiter = Limiter(key_func=client_route_key)


def rate_limit(limit: str | None = None):
    if settings.rate_limit_enabled:
        return limiter.limit(limit or settings.public_rate_limit)

    def decorator(func):
        return func

    return decorator


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("rate_limited key=%s limit=%s", client_route_key(request), exc.detail)
    return JSONResponse(
        status_code=429,
        content={"ok": False, "code": "RATE_LIMITED", "message": RATE_LIMITED_MESSAGE},
    )
