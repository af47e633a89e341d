"""Threshold evaluation and delivery gates for user alerts.

Everything here is pure: callers pass in the metrics, preferences and the
current time, so the monitor and the immediate check share one rule set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from coinbeat.coins.feed import CoinMetrics

CRITICAL_TYPES = frozenset({"migration", "delisting"})

# Anti-spam windows per alert type
COOLDOWNS: dict[str, timedelta] = {
    "health_score": timedelta(hours=4),
    "consistency_score": timedelta(hours=4),
    "price_drop": timedelta(minutes=30),
    "migration": timedelta(hours=24),
    "delisting": timedelta(hours=24),
}
DEFAULT_COOLDOWN = timedelta(hours=1)
SNOOZABLE_TYPES = frozenset({"health_score", "consistency_score"})

URGENCY_TIERS = ("critical_only", "important_and_critical", "all_notifications")

TIER_TYPES: dict[str, frozenset[str] | None] = {
    "critical_only": CRITICAL_TYPES,
    "important_and_critical": CRITICAL_TYPES | {"health_score", "price_drop"},
    "all_notifications": None,  # everything
}

# Lower sorts first when the hourly cap forces a cut
PRIORITY = {
    "delisting": 1,
    "migration": 2,
    "health_score": 3,
    "price_drop": 4,
    "consistency_score": 5,
}

PORTFOLIO_TYPE = "portfolio_batch"
MARKET_EVENT_TYPE = "market_event"
SUMMARY_TYPES = frozenset({PORTFOLIO_TYPE, MARKET_EVENT_TYPE})
PORTFOLIO_BATCH_MIN = 5

MARKET_EVENT_MIN_TRIGGERS = 50
MARKET_EVENT_MIN_PRICE_DROPS = 20
MARKET_EVENT_MIN_RECENT = 30
MARKET_EVENT_WINDOW = timedelta(minutes=15)


@dataclass(frozen=True)
class Trigger:
    """A user alert whose condition currently holds."""

    user_id: str
    coin_id: str
    coin_name: str
    coin_symbol: str
    alert_type: str
    current_value: float
    threshold_value: float | None
    message: str


def _fmt(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:g}"


def evaluate(
    alert: Any,
    coin: CoinMetrics,
    has_verified_alert: bool = False,
) -> Trigger | None:
    """Check one user alert against the coin's current metrics.

    ``alert`` needs ``user_id``, ``coin_id``, ``alert_type`` and ``threshold_value``.
    Migration/delisting rules fire when a verified community alert exists.
    """
    threshold = alert.threshold_value
    symbol = coin.symbol or alert.coin_id

    if alert.alert_type == "health_score":
        if threshold is None or not coin.health_score < threshold:
            return None
        current = coin.health_score
        message = f"{symbol} health score dropped to {_fmt(current)} (below {_fmt(threshold)})"
    elif alert.alert_type == "consistency_score":
        if threshold is None or not coin.consistency_score < threshold:
            return None
        current = coin.consistency_score
        message = f"{symbol} consistency score dropped to {_fmt(current)} (below {_fmt(threshold)})"
    elif alert.alert_type == "price_drop":
        change = coin.price_change_24h
        current = abs(change)
        if threshold is None or not (change < 0 and current > threshold):
            return None
        message = f"{symbol} price dropped {current:.2f}% (alert set for >{_fmt(threshold)}%)"
    elif alert.alert_type in CRITICAL_TYPES:
        if not has_verified_alert:
            return None
        current = 1.0
        message = f"{symbol} {alert.alert_type} alert verified by community"
    else:
        return None

    return Trigger(
        user_id=alert.user_id,
        coin_id=alert.coin_id,
        coin_name=coin.name,
        coin_symbol=symbol,
        alert_type=alert.alert_type,
        current_value=current,
        threshold_value=threshold,
        message=message,
    )


def cooldown_for(alert_type: str, preferences: dict[str, Any]) -> timedelta:
    """Cooldown window, stretched to the snooze duration for score alerts."""
    if alert_type in SNOOZABLE_TYPES and preferences.get("snooze_enabled"):
        return timedelta(hours=int(preferences.get("snooze_duration") or 0)) or COOLDOWNS[alert_type]
    return COOLDOWNS.get(alert_type, DEFAULT_COOLDOWN)


def active_tier(preferences: dict[str, Any]) -> str:
    for tier in URGENCY_TIERS:
        if preferences.get(tier):
            return tier
    return "important_and_critical"


def allowed_by_tier(preferences: dict[str, Any], alert_type: str) -> bool:
    allowed = TIER_TYPES[active_tier(preferences)]
    return allowed is None or alert_type in allowed


def is_in_quiet_hours(preferences: dict[str, Any], now: datetime) -> bool:
    """Quiet hours use the UTC hour; ``start > end`` wraps past midnight."""
    if not preferences.get("quiet_hours_enabled"):
        return False
    start = int(preferences.get("quiet_start", 22))
    end = int(preferences.get("quiet_end", 8))
    hour = now.hour
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def should_deliver(preferences: dict[str, Any], alert_type: str, now: datetime) -> bool:
    """Urgency tier and quiet-hours gate. Critical types pass quiet hours."""
    if not allowed_by_tier(preferences, alert_type):
        return False
    if alert_type not in CRITICAL_TYPES and is_in_quiet_hours(preferences, now):
        return False
    return True


def prioritize(triggers: list[Trigger], limit: int) -> list[Trigger]:
    """Most important triggers first, at most ``limit`` of them.

    Ties within a type go to the trigger closest to its threshold.
    """
    if limit <= 0:
        return []
    ranked = sorted(
        triggers,
        key=lambda t: (PRIORITY.get(t.alert_type, 999), abs(t.current_value - (t.threshold_value or 0))),
    )
    return ranked[:limit]


def is_market_wide_event(triggers: list[Trigger], recent_count: int) -> bool:
    """A cycle is market-wide when alerts fire everywhere at once.

    ``recent_count`` is the number of notifications logged for all users
    inside ``MARKET_EVENT_WINDOW``.
    """
    if len(triggers) >= MARKET_EVENT_MIN_TRIGGERS:
        return True
    coins = {t.coin_id for t in triggers}
    price_drops = sum(1 for t in triggers if t.alert_type == "price_drop")
    if len(coins) >= MARKET_EVENT_MIN_PRICE_DROPS and price_drops >= MARKET_EVENT_MIN_PRICE_DROPS:
        return True
    return recent_count >= MARKET_EVENT_MIN_RECENT


def _summary(user_id: str, coin_id: str, name: str, symbol: str, alert_type: str,
             triggers: list[Trigger], message: str) -> Trigger:
    return Trigger(
        user_id=user_id,
        coin_id=coin_id,
        coin_name=name,
        coin_symbol=symbol,
        alert_type=alert_type,
        current_value=float(len({t.coin_id for t in triggers})),
        threshold_value=1,
        message=message,
    )


def build_portfolio_summary(user_id: str, triggers: list[Trigger]) -> Trigger:
    """One notification standing in for many triggers of one user."""
    coins = len({t.coin_id for t in triggers})
    critical = sum(1 for t in triggers if t.alert_type in CRITICAL_TYPES)
    price_drops = sum(1 for t in triggers if t.alert_type == "price_drop")
    scores = sum(1 for t in triggers if t.alert_type in SNOOZABLE_TYPES)

    details = []
    if critical:
        details.append(f"{critical} critical events")
    if price_drops:
        details.append(f"{price_drops} price drops")
    if scores:
        details.append(f"{scores} health/consistency issues")

    message = f"Portfolio Alert: {coins} coins triggered alerts"
    if details:
        message += f" ({', '.join(details)})"
    return _summary(user_id, "portfolio", "Portfolio Summary", "PORTFOLIO", PORTFOLIO_TYPE, triggers, message)


def build_market_summary(user_id: str, triggers: list[Trigger]) -> Trigger:
    coins = len({t.coin_id for t in triggers})
    price_drops = sum(1 for t in triggers if t.alert_type == "price_drop")
    scores = sum(1 for t in triggers if t.alert_type in SNOOZABLE_TYPES)

    details = []
    if price_drops:
        details.append(f"{price_drops} price drops")
    if scores:
        details.append(f"{scores} health issues")

    message = f"Market Event: {coins} of your coins affected"
    if details:
        message += f" ({', '.join(details)})"
    message += ". Check your portfolio for details."
    return _summary(user_id, MARKET_EVENT_TYPE, "Market Summary", "MARKET", MARKET_EVENT_TYPE, triggers, message)


def plan_delivery(
    triggers: list[Trigger],
    preferences: dict[str, Any],
    sent_last_hour: int,
    market_event: bool,
    now: datetime,
) -> list[Trigger]:
    """Decide what one user actually receives from this cycle's triggers.

    1. Drop triggers outside the urgency tier or inside quiet hours
    2. During a market-wide event keep only critical triggers, or collapse
       the rest into one market summary
    3. Cut non-critical triggers down to the hourly budget, by priority
    4. Fold five or more survivors into a portfolio summary when the user
       opted into batching
    """
    if not triggers:
        return []
    user_id = triggers[0].user_id
    budget = int(preferences.get("max_notifications_per_hour", 10)) - sent_last_hour

    allowed = [t for t in triggers if should_deliver(preferences, t.alert_type, now)]
    critical = [t for t in allowed if t.alert_type in CRITICAL_TYPES]
    others = [t for t in allowed if t.alert_type not in CRITICAL_TYPES]

    if market_event and others:
        if critical:
            others = []
        else:
            return [build_market_summary(user_id, others)] if budget > 0 else []

    selected = prioritize(critical, len(critical)) + prioritize(others, budget)
    if len(selected) >= PORTFOLIO_BATCH_MIN and preferences.get("batch_portfolio_alerts"):
        return [build_portfolio_summary(user_id, selected)]
    return selected


def build_push_payload(trigger: Trigger) -> dict[str, Any]:
    """Structured payload the push collaborator turns into a browser notification."""
    if trigger.alert_type in SUMMARY_TYPES:
        title = "Portfolio Alert" if trigger.alert_type == PORTFOLIO_TYPE else "Market Alert"
        url = "/notifications"
    else:
        title = f"{trigger.coin_symbol} Alert"
        url = f"/coin/{trigger.coin_id}"
    return {
        "title": title,
        "body": trigger.message,
        "icon": "/ailogo.png",
        "data": {
            "coin_id": trigger.coin_id,
            "alert_type": trigger.alert_type,
            "url": url,
        },
    }
