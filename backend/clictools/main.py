"""
Clic-Tools — FastAPI ASGI Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clictools.api.v1.router import api_router
from clictools.config import Settings, get_settings
from clictools.core.auth_middleware import JWTAuthMiddleware
from clictools.core.rate_limit import RateLimitMiddleware
from clictools.core.redis import close_redis
from clictools.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: close the Redis pool on shutdown."""
    logger.info("Clic-Tools warehouse backend starting")
    yield
    await close_redis()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Clic-Tools",
        description="Warehouse backend: locations, locks and guided rack population",
        version="0.1.0",
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(RateLimitMiddleware)
    app.add_middleware(JWTAuthMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        """Health check for load balancers and Docker."""
        return {"status": "ok", "service": "clic-tools"}

    return app


app = create_app()
