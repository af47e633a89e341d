"""Per-user notification preferences."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.db.models import NotificationPreferences
from coinbeat.errors import ValidationError
from coinbeat.notifications.rules import URGENCY_TIERS

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: dict[str, Any] = {
    "browser_push": True,
    "email_alerts": False,
    "in_app_only": False,
    "notification_style": "detailed",
    "snooze_enabled": True,
    "snooze_duration": 16,
    "critical_only": False,
    "important_and_critical": True,
    "all_notifications": False,
    "batch_portfolio_alerts": True,
    "max_notifications_per_hour": 10,
    "quiet_hours_enabled": False,
    "quiet_start": 22,
    "quiet_end": 8,
    "sound_enabled": True,
    "vibration_enabled": True,
}


def _row_to_dict(row: NotificationPreferences) -> dict[str, Any]:
    return {key: getattr(row, key) for key in DEFAULT_PREFERENCES}


async def get_preferences(db: AsyncSession, user_id: str) -> dict[str, Any]:
    """Stored preferences, or the defaults when the user never saved any."""
    result = await db.execute(
        select(NotificationPreferences).where(NotificationPreferences.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return dict(DEFAULT_PREFERENCES)
    return _row_to_dict(row)


async def get_preferences_for(db: AsyncSession, user_ids: set[str]) -> dict[str, dict[str, Any]]:
    """Bulk variant for the monitor: one query, defaults filled in for missing users."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(NotificationPreferences).where(NotificationPreferences.user_id.in_(user_ids))
    )
    stored = {row.user_id: _row_to_dict(row) for row in result.scalars().all()}
    return {uid: stored.get(uid, dict(DEFAULT_PREFERENCES)) for uid in user_ids}


def validate_urgency_tier(preferences: dict[str, Any]) -> None:
    active = [tier for tier in URGENCY_TIERS if preferences.get(tier)]
    if len(active) != 1:
        raise ValidationError(
            "Exactly one of critical_only, important_and_critical, all_notifications must be enabled"
        )


async def save_preferences(db: AsyncSession, user_id: str, values: dict[str, Any]) -> dict[str, Any]:
    """Upsert a user's preferences. Unknown keys are ignored, missing keys keep their value."""
    result = await db.execute(
        select(NotificationPreferences)
        .where(NotificationPreferences.user_id == user_id)
        .with_for_update()
    )
    row = result.scalar_one_or_none()

    merged = _row_to_dict(row) if row is not None else dict(DEFAULT_PREFERENCES)
    merged.update({k: v for k, v in values.items() if k in DEFAULT_PREFERENCES})
    validate_urgency_tier(merged)

    if row is None:
        row = NotificationPreferences(user_id=user_id)
        db.add(row)
    for key, value in merged.items():
        setattr(row, key, value)
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("Saved notification preferences for user %s", user_id)
    return merged
