"""User alert (threshold watch) CRUD."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.db.models import WATCH_TYPES, UserAlert
from coinbeat.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def validate_watch_type(alert_type: str) -> None:
    if alert_type not in WATCH_TYPES:
        raise ValidationError(f"Invalid alert type: {alert_type}. Must be one of {WATCH_TYPES}")


async def upsert_alert(
    db: AsyncSession,
    user_id: str,
    coin_id: str,
    alert_type: str,
    threshold_value: float | None,
    is_active: bool = True,
) -> UserAlert:
    """Create or replace the user's rule for (coin_id, alert_type)."""
    validate_watch_type(alert_type)
    if alert_type in ("health_score", "consistency_score", "price_drop") and threshold_value is None:
        raise ValidationError(f"threshold_value is required for {alert_type} alerts")

    result = await db.execute(
        select(UserAlert)
        .where(
            UserAlert.user_id == user_id,
            UserAlert.coin_id == coin_id,
            UserAlert.alert_type == alert_type,
        )
        .with_for_update()
    )
    alert = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)
    if alert is None:
        alert = UserAlert(
            user_id=user_id,
            coin_id=coin_id,
            alert_type=alert_type,
            created_at=now,
        )
        db.add(alert)
    alert.threshold_value = threshold_value
    alert.is_active = is_active
    alert.updated_at = now
    await db.flush()
    logger.info("Saved %s alert for user %s on %s", alert_type, user_id, coin_id)
    return alert


async def set_active(db: AsyncSession, user_id: str, alert_id: int, is_active: bool) -> UserAlert:
    """Toggle one of the user's alerts. Other users' alerts are reported as missing."""
    result = await db.execute(
        select(UserAlert).where(UserAlert.id == alert_id, UserAlert.user_id == user_id)
    )
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError("Alert not found")
    alert.is_active = is_active
    alert.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return alert


async def list_alerts(db: AsyncSession, user_id: str, coin_id: str | None = None) -> list[UserAlert]:
    stmt = select(UserAlert).where(UserAlert.user_id == user_id)
    if coin_id:
        stmt = stmt.where(UserAlert.coin_id == coin_id)
    result = await db.execute(stmt.order_by(UserAlert.created_at.desc(), UserAlert.id.desc()))
    return list(result.scalars().all())


async def list_active_alerts(db: AsyncSession, user_id: str) -> list[UserAlert]:
    result = await db.execute(
        select(UserAlert)
        .where(UserAlert.user_id == user_id, UserAlert.is_active.is_(True))
        .order_by(UserAlert.id)
    )
    return list(result.scalars().all())


async def delete_alerts(
    db: AsyncSession,
    user_id: str,
    coin_id: str,
    alert_type: str | None = None,
) -> int:
    """Delete the user's rule for one type, or every rule for the coin."""
    stmt = delete(UserAlert).where(UserAlert.user_id == user_id, UserAlert.coin_id == coin_id)
    if alert_type:
        stmt = stmt.where(UserAlert.alert_type == alert_type)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.flush()
    return result.rowcount


async def get_alert_status(db: AsyncSession, user_id: str, coin_ids: list[str]) -> dict[str, bool]:
    """Per-coin flag: does the user have at least one active rule on it."""
    if not coin_ids:
        return {}
    result = await db.execute(
        select(UserAlert.coin_id)
        .where(
            UserAlert.user_id == user_id,
            UserAlert.coin_id.in_(coin_ids),
            UserAlert.is_active.is_(True),
        )
        .distinct()
    )
    watched = set(result.scalars().all())
    return {coin_id: coin_id in watched for coin_id in coin_ids}
