"""Pydantic models for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from coinbeat.user_alerts.schemas import UserAlertResponse


class MonitorDetail(BaseModel):
    coin: str
    type: str
    message: str


class MonitorResponse(BaseModel):
    message: str
    alerts_processed: int
    notifications_triggered: int
    notifications_sent: int
    details: list[MonitorDetail]


class MonitorStatusResponse(BaseModel):
    message: str = "User alert status"
    user_id: str
    active_alerts: int
    alerts: list[UserAlertResponse]


class NotificationResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    coin_id: str
    alert_type: str
    message: str
    delivery_status: str
    delivery_data: dict[str, Any] | None = None
    sent_at: datetime
    acknowledged_at: datetime | None = None


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    count: int


class CountResponse(BaseModel):
    count: int


class ReadAllResponse(BaseModel):
    success: bool = True
    updated: int


class DeleteNotificationsResponse(BaseModel):
    success: bool = True
    deleted: int


class PreferencesPayload(BaseModel):
    browser_push: bool = True
    email_alerts: bool = False
    in_app_only: bool = False
    notification_style: Literal["minimal", "detailed", "custom"] = "detailed"
    snooze_enabled: bool = True
    snooze_duration: int = Field(16, ge=1, le=48)
    critical_only: bool = False
    important_and_critical: bool = True
    all_notifications: bool = False
    batch_portfolio_alerts: bool = True
    max_notifications_per_hour: int = Field(10, ge=1, le=10)
    quiet_hours_enabled: bool = False
    quiet_start: int = Field(22, ge=0, le=23)
    quiet_end: int = Field(8, ge=0, le=23)
    sound_enabled: bool = True
    vibration_enabled: bool = True
