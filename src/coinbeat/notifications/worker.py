"""Notification arq worker — scheduled monitor cycles and verified-pool archival.

Import path for arq CLI: arq coinbeat.notifications.worker.WorkerSettings
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.alerts.service import archive_expired_pools
from coinbeat.coins.feed import build_coin_feed
from coinbeat.config import get_settings
from coinbeat.database import close_db, get_session, init_db
from coinbeat.notifications.monitor import run_monitor_cycle
from coinbeat.notifications.push import publish_queued

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def monitor_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize Redis + DB connections on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["redis"] = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    logger.info("Notification worker started")


async def monitor_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Notification worker shut down")


async def run_monitor(ctx: dict) -> None:  # type: ignore[type-arg]
    """Scheduled task: one notification monitor cycle."""
    redis_client: aioredis.Redis = ctx["redis"]
    db = await _get_db_session()

    try:
        report = await run_monitor_cycle(db, build_coin_feed(redis_client))
        await db.commit()
        await publish_queued(redis_client, report.queued)
        logger.info(
            "Monitor cycle: %d alerts, %d triggered, %d sent",
            report.alerts_processed, len(report.triggered), len(report.sent),
        )
    except Exception:
        await db.rollback()
        logger.exception("Notification monitor cycle failed")
    finally:
        await db.close()


async def archive_pools(ctx: dict) -> None:  # type: ignore[type-arg]
    """Scheduled task: archive verified pools past their display window."""
    db = await _get_db_session()

    try:
        archived = await archive_expired_pools(db)
        await db.commit()
        logger.info("Archived %d expired verified alerts", archived)
    except Exception:
        await db.rollback()
        logger.exception("Failed to archive expired pools")
    finally:
        await db.close()


def _monitor_minutes() -> set[int]:
    interval = max(1, min(get_settings().monitor_interval_minutes, 60))
    return set(range(0, 60, interval))


class WorkerSettings:
    """arq worker settings for the notification scheduler."""

    functions = [run_monitor, archive_pools]
    cron_jobs = [
        cron(run_monitor, minute=_monitor_minutes()),
        cron(archive_pools, hour={3}, minute={15}),
    ]
    on_startup = monitor_startup
    on_shutdown = monitor_shutdown
    max_jobs = 4
    job_timeout = 300
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
