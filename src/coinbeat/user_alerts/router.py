"""User alert API endpoints — 4 routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.auth.dependencies import CurrentUser, get_current_user
from coinbeat.coins.feed import MetricsSource, get_coin_feed
from coinbeat.database import get_session
from coinbeat.errors import ValidationError
from coinbeat.notifications.monitor import run_immediate_check
from coinbeat.user_alerts import service
from coinbeat.user_alerts.schemas import (
    AlertStatusEntry,
    AlertStatusResponse,
    SuccessResponse,
    UserAlertRequest,
    UserAlertResponse,
    UserAlertSaveResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/user-alerts", tags=["User Alerts"])


@router.get("", response_model=list[UserAlertResponse])
async def list_user_alerts(
    coin_id: str | None = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The caller's alerts, for one coin or all coins."""
    alerts = await service.list_alerts(db, user.id, coin_id)
    return [UserAlertResponse.model_validate(a) for a in alerts]


@router.post("", response_model=UserAlertSaveResponse)
async def save_user_alert(
    body: UserAlertRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    feed: MetricsSource = Depends(get_coin_feed),
):
    """Toggle an alert by id, or upsert one on (coin_id, alert_type)."""
    if body.id is not None:
        alert = await service.set_active(
            db, user.id, body.id, True if body.is_active is None else body.is_active
        )
        await db.commit()
        return UserAlertSaveResponse(data=UserAlertResponse.model_validate(alert))

    if not body.coin_id or not body.alert_type:
        raise ValidationError("coin_id and alert_type are required for new alerts")

    alert = await service.upsert_alert(
        db,
        user.id,
        body.coin_id,
        body.alert_type,
        body.threshold_value,
        True if body.is_active is None else body.is_active,
    )
    await db.commit()
    response = UserAlertSaveResponse(data=UserAlertResponse.model_validate(alert))

    # The saved alert stands even if the immediate check fails
    try:
        await run_immediate_check(db, alert, feed)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.warning("Immediate check failed for %s/%s", body.coin_id, body.alert_type, exc_info=True)

    return response


@router.delete("", response_model=SuccessResponse)
async def delete_user_alerts(
    coin_id: str | None = Query(None),
    alert_type: str | None = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete one rule, or every rule on the coin when alert_type is omitted."""
    if not coin_id:
        raise ValidationError("coin_id is required")
    deleted = await service.delete_alerts(db, user.id, coin_id, alert_type)
    await db.commit()
    return SuccessResponse(deleted=deleted)


@router.get("/status", response_model=AlertStatusResponse)
async def get_alert_status(
    coin_ids: str = Query(""),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Which of the given coins (comma separated) the caller is watching."""
    ids = [c.strip() for c in coin_ids.split(",") if c.strip()]
    statuses = await service.get_alert_status(db, user.id, ids)
    return AlertStatusResponse(
        statuses={coin_id: AlertStatusEntry(has_alert=flag) for coin_id, flag in statuses.items()},
    )
