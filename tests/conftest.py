"""Shared test fixtures.

Tests run against a throwaway SQLite database built from the ORM metadata.
Redis is never initialised, so rate limiting and push publishing are skipped,
and the coin metrics feed is replaced with a fixed in-memory source.
"""

from __future__ import annotations

import os

os.environ.setdefault("COINBEAT_ADMIN_EMAILS", '["admin@coinbeat.test"]')
os.environ.setdefault("COINBEAT_NOTIFICATION_SERVICE_KEY", "test-service-key")
os.environ.setdefault("COINBEAT_LOG_FORMAT", "console")

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.auth.jwt import create_access_token
from coinbeat.coins.feed import CoinMetrics, get_coin_feed
from coinbeat.config import get_settings
from coinbeat.database import close_db, get_engine, get_session, init_db
from coinbeat.db import models  # noqa: F401
from coinbeat.db.base import Base
from coinbeat.db.models import UserQuota

get_settings.cache_clear()

ADMIN_EMAIL = "admin@coinbeat.test"


class StaticFeed:
    """Coin metrics source backed by a dict. Unknown coins return None."""

    def __init__(self) -> None:
        self.coins: dict[str, CoinMetrics] = {}
        self.lookups: list[str] = []

    def set(
        self,
        coin_id: str,
        *,
        symbol: str | None = None,
        health_score: float = 80.0,
        consistency_score: float = 80.0,
        price_change_24h: float = 0.0,
    ) -> CoinMetrics:
        coin = CoinMetrics(
            coin_id=coin_id,
            name=coin_id.capitalize(),
            symbol=symbol or coin_id[:3].upper(),
            health_score=health_score,
            consistency_score=consistency_score,
            price_change_24h=price_change_24h,
        )
        self.coins[coin_id] = coin
        return coin

    async def get_coin(self, coin_id: str) -> CoinMetrics | None:
        self.lookups.append(coin_id)
        return self.coins.get(coin_id)


def auth_headers(user_id: str, email: str | None = None) -> dict[str, str]:
    token = create_access_token(user_id, email=email)
    return {"Authorization": f"Bearer {token}"}


async def _read_balance(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(select(UserQuota.eggs).where(UserQuota.user_id == user_id))
    return result.scalar_one()


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh SQLite database with every table created."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'coinbeat.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async for session in get_session():
        yield session
        break


@pytest.fixture
def coin_feed() -> StaticFeed:
    return StaticFeed()


@pytest_asyncio.fixture
async def client(database, coin_feed: StaticFeed) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against a fresh app; the coin feed is the in-memory StaticFeed."""
    from coinbeat.main import create_app

    app = create_app()
    app.dependency_overrides[get_coin_feed] = lambda: coin_feed
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers("admin-1", email=ADMIN_EMAIL)


@pytest.fixture
def egg_balance():
    """Read a stored balance straight from the table (bypasses the identity map)."""
    return _read_balance


@pytest.fixture
def make_headers():
    return auth_headers
