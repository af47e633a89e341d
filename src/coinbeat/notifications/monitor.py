"""Notification monitor: evaluate every active user alert and queue notifications.

One cycle:
1. Load active user alerts and group them by coin (one feed lookup per coin)
2. Skip alerts still inside their cooldown window, evaluate the rest
3. Per user: filter through urgency tier and quiet hours, cut to the hourly
   budget by priority, and fold floods into a portfolio or market summary
4. Queue survivors as ``pending_browser`` rows; the caller publishes them
   for push delivery once they are committed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.coins.feed import CoinMetrics, MetricsSource
from coinbeat.config import get_settings
from coinbeat.db.models import AlertRecord, NotificationLog, UserAlert
from coinbeat.notifications.preferences import get_preferences, get_preferences_for
from coinbeat.notifications.rules import (
    CRITICAL_TYPES,
    MARKET_EVENT_WINDOW,
    Trigger,
    build_push_payload,
    cooldown_for,
    evaluate,
    is_market_wide_event,
    plan_delivery,
)
from coinbeat.notifications.service import count_sent_since, last_sent_within, record_notification

logger = structlog.get_logger()

IMMEDIATE_TYPES = frozenset({"health_score", "consistency_score", "price_drop"})


@dataclass
class MonitorReport:
    alerts_processed: int = 0
    triggered: list[Trigger] = field(default_factory=list)
    sent: list[Trigger] = field(default_factory=list)
    queued: list[NotificationLog] = field(default_factory=list)


async def _verified_pairs(db: AsyncSession, coin_ids: list[str]) -> set[tuple[str, str]]:
    """(coin_id, alert_type) pairs that have a verified community alert."""
    if not coin_ids:
        return set()
    result = await db.execute(
        select(AlertRecord.coin_id, AlertRecord.alert_type)
        .where(
            AlertRecord.coin_id.in_(coin_ids),
            AlertRecord.alert_type.in_(CRITICAL_TYPES),
            AlertRecord.status == "verified",
            AlertRecord.archived.is_(False),
        )
        .distinct()
    )
    return {(row.coin_id, row.alert_type) for row in result.all()}


async def _check_coin(
    db: AsyncSession,
    coin: CoinMetrics,
    alerts: list[UserAlert],
    preferences: dict[str, dict[str, Any]],
    verified: set[tuple[str, str]],
    now: datetime,
) -> list[Trigger]:
    triggers: list[Trigger] = []
    for alert in alerts:
        prefs = preferences[alert.user_id]
        window = cooldown_for(alert.alert_type, prefs)
        if await last_sent_within(db, alert.user_id, alert.coin_id, alert.alert_type, window, now):
            logger.debug("monitor_cooldown_active", user_id=alert.user_id, coin_id=alert.coin_id,
                         alert_type=alert.alert_type)
            continue
        trigger = evaluate(alert, coin, (alert.coin_id, alert.alert_type) in verified)
        if trigger is not None:
            logger.info("monitor_alert_triggered", user_id=alert.user_id, coin_id=alert.coin_id,
                        alert_type=alert.alert_type, message=trigger.message)
            triggers.append(trigger)
    return triggers


async def _dispatch(
    db: AsyncSession,
    triggers: list[Trigger],
    preferences: dict[str, dict[str, Any]],
    now: datetime,
) -> tuple[list[Trigger], list[NotificationLog]]:
    sent: list[Trigger] = []
    queued: list[NotificationLog] = []
    if not triggers:
        return sent, queued

    recent = await count_sent_since(db, None, now - MARKET_EVENT_WINDOW)
    market_event = is_market_wide_event(triggers, recent)
    if market_event:
        logger.warning("monitor_market_wide_event", triggers=len(triggers), recent=recent)

    by_user: dict[str, list[Trigger]] = {}
    for trigger in triggers:
        by_user.setdefault(trigger.user_id, []).append(trigger)

    hour_ago = now - timedelta(hours=1)
    for user_id, user_triggers in by_user.items():
        sent_last_hour = await count_sent_since(db, user_id, hour_ago)
        planned = plan_delivery(user_triggers, preferences[user_id], sent_last_hour, market_event, now)
        if len(planned) != len(user_triggers):
            logger.info("monitor_delivery_reduced", user_id=user_id, triggered=len(user_triggers),
                        delivering=len(planned), sent_last_hour=sent_last_hour)

        for trigger in planned:
            entry = await record_notification(
                db,
                user_id=trigger.user_id,
                coin_id=trigger.coin_id,
                alert_type=trigger.alert_type,
                message=trigger.message,
                delivery_status="pending_browser",
                delivery_data=build_push_payload(trigger),
                sent_at=now,
            )
            queued.append(entry)
            sent.append(trigger)
    return sent, queued


async def run_monitor_cycle(
    db: AsyncSession,
    feed: MetricsSource,
    now: datetime | None = None,
) -> MonitorReport:
    """Run one monitoring cycle. Flushes only.

    The caller commits, then hands ``report.queued`` to ``publish_queued``.
    """
    now = now or datetime.now(timezone.utc)
    batch_size = get_settings().monitor_batch_size
    report = MonitorReport()

    result = await db.execute(
        select(UserAlert).where(UserAlert.is_active.is_(True)).order_by(UserAlert.id)
    )
    alerts = list(result.scalars().all())
    report.alerts_processed = len(alerts)
    if not alerts:
        logger.info("monitor_no_active_alerts")
        return report

    by_coin: dict[str, list[UserAlert]] = {}
    for alert in alerts:
        by_coin.setdefault(alert.coin_id, []).append(alert)
    coin_ids = list(by_coin)

    preferences = await get_preferences_for(db, {a.user_id for a in alerts})
    verified = await _verified_pairs(db, coin_ids)

    for start in range(0, len(coin_ids), batch_size):
        for coin_id in coin_ids[start:start + batch_size]:
            try:
                coin = await feed.get_coin(coin_id)
            except Exception:
                logger.warning("monitor_coin_lookup_failed", coin_id=coin_id, exc_info=True)
                continue
            if coin is None:
                logger.info("monitor_coin_not_found", coin_id=coin_id)
                continue
            report.triggered.extend(
                await _check_coin(db, coin, by_coin[coin_id], preferences, verified, now)
            )

    report.sent, report.queued = await _dispatch(db, report.triggered, preferences, now)
    logger.info(
        "monitor_cycle_complete",
        alerts_processed=report.alerts_processed,
        notifications_triggered=len(report.triggered),
        notifications_sent=len(report.sent),
    )
    return report


async def run_immediate_check(
    db: AsyncSession,
    alert: UserAlert,
    feed: MetricsSource,
    now: datetime | None = None,
) -> Trigger | None:
    """Evaluate a freshly saved alert right away and log a notification if it fires.

    Only score and price rules are checked, and the cooldown window still applies.
    """
    if not alert.is_active or alert.alert_type not in IMMEDIATE_TYPES:
        return None

    now = now or datetime.now(timezone.utc)
    coin = await feed.get_coin(alert.coin_id)
    if coin is None:
        return None

    window = cooldown_for(alert.alert_type, await get_preferences(db, alert.user_id))
    if await last_sent_within(db, alert.user_id, alert.coin_id, alert.alert_type, window, now):
        return None

    trigger = evaluate(alert, coin)
    if trigger is None:
        return None

    await record_notification(
        db,
        user_id=alert.user_id,
        coin_id=alert.coin_id,
        alert_type=alert.alert_type,
        message=f"IMMEDIATE ALERT: {trigger.message}",
        delivery_status="sent",
        delivery_data=build_push_payload(trigger),
        sent_at=now,
    )
    logger.info("immediate_alert_triggered", user_id=alert.user_id, coin_id=alert.coin_id,
                alert_type=alert.alert_type)
    return trigger
