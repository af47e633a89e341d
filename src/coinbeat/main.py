"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from coinbeat.alerts.admin_router import router as admin_router
from coinbeat.alerts.router import router as alerts_router
from coinbeat.config import get_settings
from coinbeat.database import close_db, init_db
from coinbeat.health.router import router as health_router
from coinbeat.middleware import setup_middleware
from coinbeat.notifications.router import router as notifications_router
from coinbeat.quota.router import router as quota_router
from coinbeat.redis_client import close_redis, init_redis
from coinbeat.user_alerts.router import router as user_alerts_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="CoinBeat API",
        description="Backend API for CoinBeat — community coin alerts, egg staking and threshold notifications",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(quota_router)
    app.include_router(alerts_router)
    app.include_router(admin_router)
    app.include_router(user_alerts_router)
    app.include_router(notifications_router)

    return app


app = create_app()
