"""Egg quota endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from coinbeat.quota.service import credit


@pytest.mark.asyncio
class TestQuota:
    async def test_new_user_gets_starting_grant(self, client: AsyncClient, make_headers):
        response = await client.get("/api/v1/users/me/quota", headers=make_headers("fresh"))
        assert response.status_code == 200
        data = response.json()
        assert data["eggs"] == 10
        assert data["billing_plan"] == "free"

    async def test_requires_auth(self, client: AsyncClient):
        assert (await client.get("/api/v1/users/me/quota")).status_code == 401

    async def test_history_newest_first(self, client: AsyncClient, make_headers):
        headers = make_headers("u1")
        await client.post(
            "/api/v1/alerts",
            json={"coin_id": "coinx", "alert_type": "migration", "proof_link": "https://example.com/p"},
            headers=headers,
        )
        await client.post(
            "/api/v1/alerts",
            json={"coin_id": "coiny", "alert_type": "delisting", "proof_link": "https://example.com/p"},
            headers=headers,
        )

        history = (await client.get("/api/v1/users/me/eggs/history", headers=headers)).json()
        assert history["total"] == 2
        assert [e["amount"] for e in history["entries"]] == [-2, -2]
        assert all(e["source"] == "stake" for e in history["entries"])

        page = (await client.get(
            "/api/v1/users/me/eggs/history", params={"page": 2, "per_page": 1}, headers=headers
        )).json()
        assert len(page["entries"]) == 1
        assert page["page"] == 2

    async def test_duplicate_credit_is_ignored(self, db_session, egg_balance):
        assert await credit(db_session, "u1", 4, "pool_reward", "7", "reward", "pool_reward:7")
        assert not await credit(db_session, "u1", 4, "pool_reward", "7", "reward", "pool_reward:7")
        await db_session.commit()
        assert await egg_balance(db_session, "u1") == 14
