"""Coin metrics feed.

The CDN publishes a full snapshot of every tracked coin as one JSON array.
The raw array is cached in Redis for a short TTL and indexed by
``coingecko_id`` for lookups.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import redis.asyncio as aioredis
import structlog

from coinbeat.config import get_settings
from coinbeat.errors import UpstreamError
from coinbeat.redis_client import get_optional_redis

logger = structlog.get_logger()

FEED_CACHE_KEY = "coins:snapshot"
DEFAULT_SCORE = 50.0


@dataclass(frozen=True)
class CoinMetrics:
    coin_id: str
    name: str
    symbol: str
    health_score: float
    consistency_score: float
    price_change_24h: float


class MetricsSource(Protocol):
    async def get_coin(self, coin_id: str) -> CoinMetrics | None: ...


def _number(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_coin(raw: dict[str, Any]) -> CoinMetrics:
    """Map one snapshot entry onto CoinMetrics, defaulting missing scores."""
    return CoinMetrics(
        coin_id=str(raw.get("coingecko_id", "")),
        name=str(raw.get("name") or ""),
        symbol=str(raw.get("symbol") or "").upper(),
        health_score=_number(raw.get("health_score"), DEFAULT_SCORE),
        consistency_score=_number(raw.get("consistency_score"), DEFAULT_SCORE),
        price_change_24h=_number(raw.get("price_change_24h"), 0.0),
    )


class CoinFeed:
    """Reads coin metrics from the CDN snapshot."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        cache_ttl: int = 60,
        redis: aioredis.Redis | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.redis = redis
        self._index: dict[str, dict[str, Any]] | None = None
        self._loaded_at = 0.0

    async def _fetch(self) -> list[dict[str, Any]]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url, headers={"Cache-Control": "no-cache"})
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("coin_feed_fetch_failed", url=self.url, error=str(e))
            raise UpstreamError(f"Failed to fetch coin data: {e}") from e

        if not isinstance(data, list):
            raise UpstreamError("Failed to fetch coin data: unexpected payload")
        return data

    async def _load(self) -> list[dict[str, Any]]:
        if self.redis is not None:
            cached = await self.redis.get(FEED_CACHE_KEY)
            if cached:
                return json.loads(cached)

        coins = await self._fetch()
        logger.info("coin_feed_fetched", count=len(coins))
        if self.redis is not None:
            await self.redis.setex(FEED_CACHE_KEY, self.cache_ttl, json.dumps(coins))
        return coins

    async def index(self) -> dict[str, dict[str, Any]]:
        """Snapshot keyed by coingecko id, memoized for ``cache_ttl`` seconds."""
        now = time.monotonic()
        if self._index is None or now - self._loaded_at > self.cache_ttl:
            coins = await self._load()
            self._index = {str(c["coingecko_id"]): c for c in coins if c.get("coingecko_id")}
            self._loaded_at = now
        return self._index

    async def get_coin(self, coin_id: str) -> CoinMetrics | None:
        raw = (await self.index()).get(coin_id)
        if raw is None:
            return None
        return parse_coin(raw)


def build_coin_feed(redis: aioredis.Redis | None = None) -> CoinFeed:
    settings = get_settings()
    return CoinFeed(
        url=settings.coin_feed_url,
        timeout=settings.coin_feed_timeout_seconds,
        cache_ttl=settings.coin_feed_cache_ttl_seconds,
        redis=redis,
    )


def get_coin_feed() -> MetricsSource:
    """FastAPI dependency. Tests override it with a fixed-metrics source."""
    return build_coin_feed(get_optional_redis())
