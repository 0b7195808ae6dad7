"""Clic-Tools — JWT auth middleware: extracts the bearer token, sets request.state.user."""
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from clictools.api.deps import CurrentUser
from clictools.core.security import decode_token

logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Extract JWT from the Authorization header and populate request.state.user."""

    PUBLIC_PATHS = {
        "/api/v1/auth/login",
        "/health",
        "/api/v1/docs",
        "/api/v1/redoc",
        "/api/v1/openapi.json",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.user = None

        path = request.url.path
        if path in self.PUBLIC_PATHS or path.startswith("/api/v1/docs") or path.startswith("/api/v1/redoc"):
            return await call_next(request)

        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            token = auth[7:].strip()
            payload = decode_token(token)
            if payload and payload.get("type") == "access":
                sub = payload.get("sub")
                try:
                    user_id = int(sub)
                except (TypeError, ValueError):
                    logger.warning("Rejected token with invalid subject %r", sub)
                else:
                    request.state.user = CurrentUser(
                        id=user_id,
                        name=payload.get("name") or "unknown",
                        email=payload.get("email") or "unknown",
                        role=payload.get("role", "viewer"),
                    )
        return await call_next(request)
