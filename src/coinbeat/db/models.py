"""ORM models for alert pools, egg quotas and notifications.

User identities come from the hosted identity provider, so ``user_id``
columns hold the provider's subject string and there is no users table.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from coinbeat.db.base import Base, UTCDateTime

JSONType = JSON().with_variant(JSONB(), "postgresql")

# Stake claim types (community alert pools)
ALERT_TYPES = ("migration", "delisting", "rebrand")
ALERT_STATUSES = ("pending", "verified", "rejected")

# Threshold watch types (user alerts)
WATCH_TYPES = ("health_score", "consistency_score", "price_drop", "migration", "delisting")

DELIVERY_STATUSES = ("pending_browser", "queued", "sent", "delivered", "read")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Alert pools
# ---------------------------------------------------------------------------


class AlertRecord(Base):
    """One user's staked claim about a coin. Pools are derived from these rows."""

    __tablename__ = "coin_alerts"
    __table_args__ = (
        Index("idx_coin_alerts_pool", "coin_id", "alert_type"),
        Index("idx_coin_alerts_user", "user_id", "coin_id", "alert_type"),
        # At most one open community claim per user on a (coin, type)
        Index(
            "uq_coin_alerts_open_claim",
            "user_id",
            "coin_id",
            "alert_type",
            unique=True,
            postgresql_where=text("NOT archived AND NOT admin_created"),
            sqlite_where=text("NOT archived AND NOT admin_created"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    coin_id: Mapped[str] = mapped_column(String(128), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(16), nullable=False)
    proof_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    eggs_staked: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    admin_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Quota ledger
# ---------------------------------------------------------------------------


class UserQuota(Base):
    """Per-user egg balance and AI usage quota — single row per user."""

    __tablename__ = "user_ai_usage"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    eggs: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    monthly_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=20, server_default="20")
    billing_plan: Mapped[str] = mapped_column(String(32), nullable=False, default="free", server_default="free")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())


class EggLedger(Base):
    """Immutable egg transaction log with idempotency key."""

    __tablename__ = "egg_ledger"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Threshold watches
# ---------------------------------------------------------------------------


class UserAlert(Base):
    """A user's monitoring rule for one coin and one metric."""

    __tablename__ = "user_alerts"
    __table_args__ = (UniqueConstraint("user_id", "coin_id", "alert_type", name="uq_user_alerts_user_coin_type"),)

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    coin_id: Mapped[str] = mapped_column(String(128), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    threshold_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationLog(Base):
    """Queued or dispatched notification. Doubles as the cooldown log."""

    __tablename__ = "notification_log"
    __table_args__ = (
        Index("idx_notification_log_cooldown", "user_id", "coin_id", "alert_type", "sent_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    coin_id: Mapped[str] = mapped_column(String(128), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_status: Mapped[str] = mapped_column(String(16), nullable=False, default="queued", server_default="queued")
    delivery_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, server_default=func.now())
    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class NotificationPreferences(Base):
    """Per-user delivery preferences — single row per user."""

    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    browser_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    in_app_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_style: Mapped[str] = mapped_column(String(16), nullable=False, default="detailed")
    snooze_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    snooze_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=16)
    critical_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    important_and_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    all_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    batch_portfolio_alerts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_notifications_per_hour: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quiet_start: Mapped[int] = mapped_column(Integer, nullable=False, default=22)
    quiet_end: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    sound_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    vibration_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
