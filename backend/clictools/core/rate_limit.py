"""Clic-Tools — Rate limiting (fixed window in Redis)."""
import logging
import time
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from clictools.config import get_settings
from clictools.core.redis import RATE_LIMIT_WINDOW, get_redis, rate_limit_key

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-caller request budget. Redis outages let requests through (logged)."""

    async def dispatch(self, request: Request, call_next: Callable):
        limit = get_settings().RATE_LIMIT_PER_MINUTE

        caller_id = request.client.host if request.client else "unknown"
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            caller_id = auth_header.split(" ", 1)[1][-20:]

        key = rate_limit_key(caller_id)
        try:
            r = await get_redis()
            count = await r.incr(key)
            if count == 1:
                await r.expire(key, RATE_LIMIT_WINDOW)
            ttl = await r.ttl(key)
        except RedisError as exc:
            logger.warning("Rate limiting unavailable: %s", exc)
            return await call_next(request)

        if count > limit:
            return JSONResponse(
                status_code=429,
                content={
                    "data": None,
                    "error": "Too many requests. Please slow down.",
                    "meta": {"limit": limit, "remaining": 0},
                },
                headers={"Retry-After": str(RATE_LIMIT_WINDOW)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, limit - count))
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + (ttl if ttl > 0 else RATE_LIMIT_WINDOW))
        return response
