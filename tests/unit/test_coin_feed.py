"""Coin metrics feed — snapshot parsing, lookup and upstream failures."""

from __future__ import annotations

import httpx
import pytest

from coinbeat.coins import feed as feed_module
from coinbeat.coins.feed import CoinFeed, parse_coin
from coinbeat.errors import UpstreamError

SNAPSHOT = [
    {
        "coingecko_id": "bitcoin",
        "name": "Bitcoin",
        "symbol": "btc",
        "health_score": 72,
        "consistency_score": 64.5,
        "price_change_24h": -3.2,
    },
    {"coingecko_id": "newcoin", "name": "New Coin", "symbol": "new"},
]


@pytest.fixture
def mock_http(monkeypatch):
    """Route the feed's httpx client through a MockTransport."""
    calls: list[httpx.Request] = []
    state = {"status": 200, "body": SNAPSHOT}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(state["status"], json=state["body"])

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(feed_module.httpx, "AsyncClient", factory)
    return calls, state


def test_parse_defaults_missing_scores():
    coin = parse_coin(SNAPSHOT[1])
    assert coin.health_score == 50
    assert coin.consistency_score == 50
    assert coin.price_change_24h == 0
    assert coin.symbol == "NEW"


@pytest.mark.asyncio
async def test_lookup_by_coingecko_id(mock_http):
    feed = CoinFeed("https://cdn.test/crypto.json")
    coin = await feed.get_coin("bitcoin")
    assert coin is not None
    assert coin.symbol == "BTC"
    assert coin.health_score == 72
    assert coin.price_change_24h == -3.2


@pytest.mark.asyncio
async def test_unknown_coin_is_none(mock_http):
    feed = CoinFeed("https://cdn.test/crypto.json")
    assert await feed.get_coin("dogecoin") is None


@pytest.mark.asyncio
async def test_snapshot_fetched_once_per_ttl(mock_http):
    calls, _ = mock_http
    feed = CoinFeed("https://cdn.test/crypto.json", cache_ttl=60)
    await feed.get_coin("bitcoin")
    await feed.get_coin("newcoin")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_http_error_raises_upstream_error(mock_http):
    _, state = mock_http
    state["status"] = 503
    state["body"] = {"error": "unavailable"}
    feed = CoinFeed("https://cdn.test/crypto.json")
    with pytest.raises(UpstreamError, match="Failed to fetch coin data"):
        await feed.get_coin("bitcoin")


@pytest.mark.asyncio
async def test_non_list_payload_raises(mock_http):
    _, state = mock_http
    state["body"] = {"coins": []}
    feed = CoinFeed("https://cdn.test/crypto.json")
    with pytest.raises(UpstreamError):
        await feed.get_coin("bitcoin")
