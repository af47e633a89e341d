"""Notification log persistence and the per-user inbox.

The ``notification_log`` table is both the delivery queue and the anti-spam
history:

- the monitor inserts ``pending_browser`` rows carrying a push payload
- pool outcomes and immediate checks insert ``sent`` rows
- the client poll moves ``pending_browser``/``sent`` rows to ``delivered``
- acknowledging moves them to ``read`` and stamps ``acknowledged_at``
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.db.models import DELIVERY_STATUSES, NotificationLog

logger = logging.getLogger(__name__)

UNDELIVERED_STATUSES = ("pending_browser", "sent")
UNREAD_STATUSES = ("pending_browser", "sent", "delivered")

BADGE_COUNT_WINDOW = timedelta(hours=24)
RECENT_WINDOW = timedelta(minutes=10)


async def record_notification(
    db: AsyncSession,
    user_id: str,
    coin_id: str,
    alert_type: str,
    message: str,
    delivery_status: str = "sent",
    delivery_data: dict[str, Any] | None = None,
    sent_at: datetime | None = None,
) -> NotificationLog:
    """Insert a notification log row and flush it (assigns ``id``)."""
    if delivery_status not in DELIVERY_STATUSES:
        raise ValueError(f"Invalid delivery status: {delivery_status}. Must be one of {DELIVERY_STATUSES}")

    entry = NotificationLog(
        user_id=user_id,
        coin_id=coin_id,
        alert_type=alert_type,
        message=message,
        delivery_status=delivery_status,
        delivery_data=delivery_data,
        sent_at=sent_at or datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    return entry


async def last_sent_within(
    db: AsyncSession,
    user_id: str,
    coin_id: str,
    alert_type: str,
    window: timedelta,
    now: datetime | None = None,
) -> bool:
    """True if a notification for (user, coin, type) was logged inside ``window``."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(NotificationLog.id)
        .where(
            NotificationLog.user_id == user_id,
            NotificationLog.coin_id == coin_id,
            NotificationLog.alert_type == alert_type,
            NotificationLog.sent_at >= now - window,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def count_sent_since(db: AsyncSession, user_id: str | None, since: datetime) -> int:
    """Notifications logged since ``since``, for one user or (``None``) for everyone."""
    stmt = select(func.count()).select_from(NotificationLog).where(NotificationLog.sent_at >= since)
    if user_id is not None:
        stmt = stmt.where(NotificationLog.user_id == user_id)
    result = await db.execute(stmt)
    return result.scalar_one()


async def fetch_pending(db: AsyncSession, user_id: str, limit: int = 100) -> list[NotificationLog]:
    """Return undelivered notifications (newest first) and mark them delivered."""
    result = await db.execute(
        select(NotificationLog)
        .where(
            NotificationLog.user_id == user_id,
            NotificationLog.delivery_status.in_(UNDELIVERED_STATUSES),
        )
        .order_by(NotificationLog.sent_at.desc(), NotificationLog.id.desc())
        .limit(limit)
    )
    entries = list(result.scalars().all())
    for entry in entries:
        entry.delivery_status = "delivered"
    await db.flush()
    if entries:
        logger.info("Delivered %d pending notifications to user %s", len(entries), user_id)
    return entries


async def get_history(db: AsyncSession, user_id: str, limit: int = 100) -> list[NotificationLog]:
    result = await db.execute(
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id)
        .order_by(NotificationLog.sent_at.desc(), NotificationLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_recent(
    db: AsyncSession,
    user_id: str,
    limit: int = 100,
    now: datetime | None = None,
) -> list[NotificationLog]:
    """Notifications from the last few minutes, for the animated list."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(NotificationLog)
        .where(NotificationLog.user_id == user_id, NotificationLog.sent_at >= now - RECENT_WINDOW)
        .order_by(NotificationLog.sent_at.desc(), NotificationLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_unacknowledged(db: AsyncSession, user_id: str, now: datetime | None = None) -> int:
    """Bell badge count: unacknowledged notifications of the last 24 hours."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(func.count())
        .select_from(NotificationLog)
        .where(
            NotificationLog.user_id == user_id,
            NotificationLog.delivery_status.in_(UNREAD_STATUSES),
            NotificationLog.acknowledged_at.is_(None),
            NotificationLog.sent_at >= now - BADGE_COUNT_WINDOW,
        )
    )
    return result.scalar_one()


async def acknowledge_all(db: AsyncSession, user_id: str) -> int:
    """Mark every unacknowledged notification as read. Returns count updated."""
    result = await db.execute(
        update(NotificationLog)
        .where(
            NotificationLog.user_id == user_id,
            NotificationLog.delivery_status.in_(UNREAD_STATUSES),
            NotificationLog.acknowledged_at.is_(None),
        )
        .values(delivery_status="read", acknowledged_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount


async def delete_for_coin(db: AsyncSession, user_id: str, coin_id: str) -> int:
    """Delete all of a user's notifications about one coin. Returns count deleted."""
    result = await db.execute(
        delete(NotificationLog)
        .where(NotificationLog.user_id == user_id, NotificationLog.coin_id == coin_id)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount
