"""Notification API endpoints — 7 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.auth.dependencies import CurrentUser, get_current_user, require_service_key
from coinbeat.coins.feed import MetricsSource, get_coin_feed
from coinbeat.database import get_session
from coinbeat.errors import ValidationError
from coinbeat.notifications import service
from coinbeat.notifications.monitor import run_monitor_cycle
from coinbeat.notifications.preferences import get_preferences, save_preferences
from coinbeat.notifications.push import publish_queued
from coinbeat.notifications.schemas import (
    CountResponse,
    DeleteNotificationsResponse,
    MonitorDetail,
    MonitorResponse,
    MonitorStatusResponse,
    NotificationListResponse,
    NotificationResponse,
    PreferencesPayload,
    ReadAllResponse,
)
from coinbeat.redis_client import get_optional_redis
from coinbeat.user_alerts.schemas import UserAlertResponse
from coinbeat.user_alerts.service import list_active_alerts

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


def _to_list(entries) -> NotificationListResponse:
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(e) for e in entries],
        count=len(entries),
    )


# ── Monitor ──


@router.post(
    "/notifications/monitor",
    response_model=MonitorResponse,
    dependencies=[Depends(require_service_key)],
)
async def trigger_monitor(
    db: AsyncSession = Depends(get_session),
    feed: MetricsSource = Depends(get_coin_feed),
):
    """Run one monitoring cycle over every active user alert (scheduler entry point)."""
    report = await run_monitor_cycle(db, feed)
    await db.commit()
    await publish_queued(get_optional_redis(), report.queued)
    return MonitorResponse(
        message="Notification monitoring completed" if report.alerts_processed else "No active alerts to process",
        alerts_processed=report.alerts_processed,
        notifications_triggered=len(report.triggered),
        notifications_sent=len(report.sent),
        details=[
            MonitorDetail(coin=t.coin_symbol, type=t.alert_type, message=t.message)
            for t in report.triggered
        ],
    )


@router.get("/notifications/monitor", response_model=MonitorStatusResponse)
async def get_monitor_status(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The caller's active alerts as the monitor sees them."""
    alerts = await list_active_alerts(db, user.id)
    return MonitorStatusResponse(
        user_id=user.id,
        active_alerts=len(alerts),
        alerts=[UserAlertResponse.model_validate(a) for a in alerts],
    )


# ── Inbox ──


@router.get("/notifications/pending", response_model=NotificationListResponse | CountResponse)
async def get_pending_notifications(
    include_delivered: bool = Query(False),
    recent: bool = Query(False),
    count_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Poll for new notifications. Fetched entries are marked delivered."""
    if count_only:
        return CountResponse(count=await service.count_unacknowledged(db, user.id))
    if recent:
        return _to_list(await service.get_recent(db, user.id, limit))
    if include_delivered:
        return _to_list(await service.get_history(db, user.id, limit))

    entries = await service.fetch_pending(db, user.id, limit)
    response = _to_list(entries)
    await db.commit()
    return response


@router.post("/notifications/read-all", response_model=ReadAllResponse)
async def mark_all_read(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    updated = await service.acknowledge_all(db, user.id)
    await db.commit()
    return ReadAllResponse(updated=updated)


@router.delete("/notifications", response_model=DeleteNotificationsResponse)
async def delete_coin_notifications(
    coin_id: str | None = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete every notification the caller has for one coin."""
    if not coin_id:
        raise ValidationError("coin_id is required")
    deleted = await service.delete_for_coin(db, user.id, coin_id)
    await db.commit()
    return DeleteNotificationsResponse(deleted=deleted)


# ── Preferences ──


@router.get("/notification-preferences", response_model=PreferencesPayload)
async def read_preferences(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return PreferencesPayload(**await get_preferences(db, user.id))


@router.post("/notification-preferences", response_model=PreferencesPayload)
async def update_preferences(
    body: PreferencesPayload,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Save preferences. Exactly one urgency tier must be enabled."""
    saved = await save_preferences(db, user.id, body.model_dump(exclude_unset=True))
    await db.commit()
    return PreferencesPayload(**saved)
