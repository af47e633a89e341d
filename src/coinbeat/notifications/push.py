"""Publish queued browser notifications over Redis pub/sub.

The push collaborator subscribes to ``push:user:*`` and forwards each message
to the user's registered service workers.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coinbeat.db.models import NotificationLog

logger = logging.getLogger(__name__)


async def push_notification_to_user(redis: object | None, entry: "NotificationLog") -> None:
    """Publish a queued notification to ``push:user:{user_id}``.

    The entry must already be committed (have an ``id``). Failures are logged
    and swallowed: the row stays ``pending_browser`` for the inbox poll.
    """
    if redis is None:
        return

    payload = {
        "event": "notification",
        "data": {
            "id": str(entry.id),
            "coin_id": entry.coin_id,
            "alert_type": entry.alert_type,
            "message": entry.message,
            "timestamp": entry.sent_at.isoformat() if entry.sent_at else None,
            **(entry.delivery_data or {}),
        },
    }
    try:
        await redis.publish(  # type: ignore[union-attr]
            f"push:user:{entry.user_id}",
            json.dumps(payload),
        )
    except Exception:
        logger.warning(
            "Failed to publish notification via push:user:%s",
            entry.user_id,
            exc_info=True,
        )


async def publish_queued(redis: object | None, entries: list["NotificationLog"]) -> None:
    """Publish committed ``pending_browser`` rows, one message per entry."""
    for entry in entries:
        await push_notification_to_user(redis, entry)
