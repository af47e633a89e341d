"""Community alert pool API endpoints — 7 routes."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.alerts import service
from coinbeat.alerts.schemas import (
    AlertListResponse,
    AlertRecordResponse,
    OkResponse,
    PoolKeyRequest,
    RejectResponse,
    RewardEntry,
    StakedMapResponse,
    StakeRequest,
    StakeResponse,
    UserStakeResponse,
    VerifyResponse,
)
from coinbeat.auth.dependencies import CurrentUser, get_admin_user, get_current_user
from coinbeat.config import get_settings
from coinbeat.database import get_session
from coinbeat.errors import ValidationError

router = APIRouter(prefix="/api/v1", tags=["Alerts"])


# ── User endpoints ──


@router.post("/alerts", response_model=StakeResponse, response_model_exclude_none=True)
async def submit_alert(
    body: StakeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Stake eggs on a community alert, or update the proof of an existing stake."""
    outcome = await service.stake(db, user.id, body.coin_id, body.alert_type, body.proof_link)
    await db.commit()
    if outcome == "created":
        return StakeResponse(created=True)
    return StakeResponse(updated=True)


@router.get("/alerts", response_model=AlertListResponse, response_model_exclude_none=True)
async def list_alerts(
    coin_id: str | None = Query(None),
    alert_type: str | None = Query(None),
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    """List a coin's alerts. With ``alert_type`` the pool totals are included."""
    if not coin_id:
        raise ValidationError("Missing coin_id")

    records = await service.list_alerts(db, coin_id, alert_type, status)
    alerts = [AlertRecordResponse.model_validate(r) for r in records]
    if not alert_type:
        return AlertListResponse(alerts=alerts)

    pending = [a for a in alerts if a.status == "pending"]
    total_eggs = sum(a.eggs_staked for a in pending)
    return AlertListResponse(
        alerts=alerts,
        pending_alerts=pending,
        total_eggs=total_eggs,
        pool_filled=total_eggs >= get_settings().pool_size,
    )


@router.get("/alerts/stake", response_model=UserStakeResponse)
async def check_user_stake(
    coin_id: str | None = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Whether the caller has a pending stake on the coin."""
    if not coin_id:
        raise ValidationError("Missing coin_id")
    records = await service.get_user_stakes(db, user.id, coin_id)
    return UserStakeResponse(
        has_staked=bool(records),
        alerts=[AlertRecordResponse.model_validate(r) for r in records],
    )


@router.get("/alerts/staked", response_model=StakedMapResponse)
async def get_staked_map(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Every coin the caller has ever staked on."""
    coins = await service.get_staked_coins(db, user.id)
    return StakedMapResponse(staked_map={c: True for c in sorted(coins)}, count=len(coins))


# ── Admin endpoints ──


@router.put("/alerts", response_model=VerifyResponse)
async def verify_pool(
    body: PoolKeyRequest,
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    """Verify a filled pool and pay out the rewards."""
    rewards = await service.verify_pool(db, body.coin_id, body.alert_type)
    await db.commit()
    return VerifyResponse(
        rewards=[RewardEntry(user_id=r.user_id, eggs_awarded=r.eggs_awarded) for r in rewards],
    )


@router.patch("/alerts", response_model=RejectResponse)
async def reject_pool(
    body: PoolKeyRequest,
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    """Reject a pool. Stakes are forfeited."""
    notified = await service.reject_pool(db, body.coin_id, body.alert_type)
    await db.commit()
    return RejectResponse(notifications=notified)


@router.delete("/alerts", response_model=OkResponse)
async def delete_pool(
    body: PoolKeyRequest = Body(...),
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    """Delete every record of a pool."""
    await service.delete_pool(db, body.coin_id, body.alert_type)
    await db.commit()
    return OkResponse()
