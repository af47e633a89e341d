"""Pydantic models for user alert endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class UserAlertRequest(BaseModel):
    id: int | None = None
    coin_id: str | None = None
    alert_type: str | None = None
    threshold_value: float | None = None
    is_active: bool | None = None


class UserAlertResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    coin_id: str
    alert_type: str
    threshold_value: float | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserAlertSaveResponse(BaseModel):
    success: bool = True
    data: UserAlertResponse


class AlertStatusEntry(BaseModel):
    has_alert: bool


class AlertStatusResponse(BaseModel):
    statuses: dict[str, AlertStatusEntry]


class SuccessResponse(BaseModel):
    success: bool = True
    deleted: int = 0
