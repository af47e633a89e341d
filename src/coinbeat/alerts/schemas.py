"""Pydantic request/response models for alert pool endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StakeRequest(BaseModel):
    coin_id: str = Field(min_length=1)
    alert_type: str = Field(min_length=1)
    proof_link: str = Field(min_length=1)


class PoolKeyRequest(BaseModel):
    coin_id: str = Field(min_length=1)
    alert_type: str = Field(min_length=1)


class AdminAlertRequest(BaseModel):
    coin_id: str = Field(min_length=1)
    alert_type: str = Field(min_length=1)
    proof_link: str | None = None


class StakeResponse(BaseModel):
    created: bool | None = None
    updated: bool | None = None


class AlertRecordResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user_id: str
    coin_id: str
    alert_type: str
    proof_link: str | None = None
    eggs_staked: int
    status: str
    archived: bool
    verified_at: datetime | None = None
    created_at: datetime | None = None


class AlertListResponse(BaseModel):
    alerts: list[AlertRecordResponse]
    pending_alerts: list[AlertRecordResponse] | None = None
    total_eggs: int | None = None
    pool_filled: bool | None = None


class UserStakeResponse(BaseModel):
    has_staked: bool
    alerts: list[AlertRecordResponse]


class StakedMapResponse(BaseModel):
    staked_map: dict[str, bool]
    count: int


class RewardEntry(BaseModel):
    user_id: str
    eggs_awarded: int


class VerifyResponse(BaseModel):
    ok: bool = True
    rewards: list[RewardEntry]


class RejectResponse(BaseModel):
    ok: bool = True
    notifications: list[str]


class OkResponse(BaseModel):
    ok: bool = True


class PoolResponse(BaseModel):
    coin_id: str
    alert_type: str
    status: str
    total_eggs: int
    pool_size: int
    filled: bool
    member_count: int
    verified_at: datetime | None = None
    members: list[AlertRecordResponse]


class PoolListResponse(BaseModel):
    pools: list[PoolResponse]
    total: int


class AdminAlertCreatedResponse(BaseModel):
    success: bool = True
    message: str


class AdminAlertListResponse(BaseModel):
    alerts: list[AlertRecordResponse]
