"""User alert HTTP API — upsert, toggle, delete, status, immediate check."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from coinbeat.db.models import NotificationLog


@pytest.mark.asyncio
class TestSaveAlert:
    async def test_upsert_replaces_threshold(self, client: AsyncClient, make_headers):
        headers = make_headers("u1")
        body = {"coin_id": "bitcoin", "alert_type": "price_drop", "threshold_value": 10}
        first = (await client.post("/api/v1/user-alerts", json=body, headers=headers)).json()
        assert first["success"] is True
        assert first["data"]["threshold_value"] == 10

        body["threshold_value"] = 20
        second = (await client.post("/api/v1/user-alerts", json=body, headers=headers)).json()
        assert second["data"]["id"] == first["data"]["id"]
        assert second["data"]["threshold_value"] == 20

        listed = (await client.get("/api/v1/user-alerts", headers=headers)).json()
        assert len(listed) == 1

    async def test_threshold_required_for_score_rules(self, client: AsyncClient, make_headers):
        response = await client.post(
            "/api/v1/user-alerts",
            json={"coin_id": "bitcoin", "alert_type": "health_score"},
            headers=make_headers("u1"),
        )
        assert response.status_code == 400

    async def test_unknown_type_rejected(self, client: AsyncClient, make_headers):
        response = await client.post(
            "/api/v1/user-alerts",
            json={"coin_id": "bitcoin", "alert_type": "moon", "threshold_value": 1},
            headers=make_headers("u1"),
        )
        assert response.status_code == 400

    async def test_missing_coin_rejected(self, client: AsyncClient, make_headers):
        response = await client.post(
            "/api/v1/user-alerts", json={"alert_type": "migration"}, headers=make_headers("u1")
        )
        assert response.status_code == 400

    async def test_immediate_check_logs_notification(
        self, client: AsyncClient, db_session, coin_feed, make_headers
    ):
        coin_feed.set("bitcoin", symbol="BTC", health_score=35)
        response = await client.post(
            "/api/v1/user-alerts",
            json={"coin_id": "bitcoin", "alert_type": "health_score", "threshold_value": 50},
            headers=make_headers("u1"),
        )
        assert response.status_code == 200

        result = await db_session.execute(select(NotificationLog).where(NotificationLog.user_id == "u1"))
        [entry] = result.scalars().all()
        assert entry.message.startswith("IMMEDIATE ALERT: BTC health score dropped to 35")

    async def test_immediate_check_failure_keeps_alert(self, client: AsyncClient, coin_feed, make_headers):
        async def broken(coin_id):
            raise RuntimeError("feed down")

        coin_feed.get_coin = broken
        headers = make_headers("u1")
        response = await client.post(
            "/api/v1/user-alerts",
            json={"coin_id": "bitcoin", "alert_type": "price_drop", "threshold_value": 5},
            headers=headers,
        )
        assert response.status_code == 200
        listed = (await client.get("/api/v1/user-alerts", params={"coin_id": "bitcoin"}, headers=headers)).json()
        assert [a["alert_type"] for a in listed] == ["price_drop"]


@pytest.mark.asyncio
class TestToggleAndDelete:
    async def test_toggle_by_id(self, client: AsyncClient, make_headers):
        headers = make_headers("u1")
        created = (await client.post(
            "/api/v1/user-alerts", json={"coin_id": "bitcoin", "alert_type": "migration"}, headers=headers
        )).json()
        alert_id = created["data"]["id"]

        toggled = (await client.post(
            "/api/v1/user-alerts", json={"id": alert_id, "is_active": False}, headers=headers
        )).json()
        assert toggled["data"]["is_active"] is False

        status = (await client.get(
            "/api/v1/user-alerts/status", params={"coin_ids": "bitcoin,ethereum"}, headers=headers
        )).json()
        assert status == {"statuses": {"bitcoin": {"has_alert": False}, "ethereum": {"has_alert": False}}}

    async def test_toggle_other_users_alert_is_404(self, client: AsyncClient, make_headers):
        created = (await client.post(
            "/api/v1/user-alerts", json={"coin_id": "bitcoin", "alert_type": "migration"}, headers=make_headers("u1")
        )).json()
        response = await client.post(
            "/api/v1/user-alerts", json={"id": created["data"]["id"], "is_active": False}, headers=make_headers("u2")
        )
        assert response.status_code == 404

    async def test_delete_one_type_or_whole_coin(self, client: AsyncClient, make_headers):
        headers = make_headers("u1")
        for alert_type in ("migration", "delisting"):
            await client.post(
                "/api/v1/user-alerts", json={"coin_id": "bitcoin", "alert_type": alert_type}, headers=headers
            )
        await client.post(
            "/api/v1/user-alerts",
            json={"coin_id": "bitcoin", "alert_type": "price_drop", "threshold_value": 10},
            headers=headers,
        )

        one = await client.delete(
            "/api/v1/user-alerts", params={"coin_id": "bitcoin", "alert_type": "migration"}, headers=headers
        )
        assert one.json() == {"success": True, "deleted": 1}

        status = (await client.get(
            "/api/v1/user-alerts/status", params={"coin_ids": "bitcoin"}, headers=headers
        )).json()
        assert status["statuses"]["bitcoin"]["has_alert"] is True

        rest = await client.delete("/api/v1/user-alerts", params={"coin_id": "bitcoin"}, headers=headers)
        assert rest.json() == {"success": True, "deleted": 2}

    async def test_delete_requires_coin(self, client: AsyncClient, make_headers):
        response = await client.delete("/api/v1/user-alerts", headers=make_headers("u1"))
        assert response.status_code == 400
