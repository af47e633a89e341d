"""Admin alert API endpoints — 4 routes."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.alerts import service
from coinbeat.alerts.pool import AlertPool
from coinbeat.alerts.schemas import (
    AdminAlertCreatedResponse,
    AdminAlertListResponse,
    AdminAlertRequest,
    AlertRecordResponse,
    OkResponse,
    PoolKeyRequest,
    PoolListResponse,
    PoolResponse,
)
from coinbeat.auth.dependencies import CurrentUser, get_admin_user
from coinbeat.config import get_settings
from coinbeat.database import get_session

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


def _pool_to_response(pool: AlertPool, pool_size: int) -> PoolResponse:
    return PoolResponse(
        coin_id=pool.coin_id,
        alert_type=pool.alert_type,
        status=pool.status,
        total_eggs=pool.total_eggs,
        pool_size=pool_size,
        filled=pool.is_filled(pool_size),
        member_count=len(pool.members),
        verified_at=pool.verified_at,
        members=[AlertRecordResponse.model_validate(m) for m in pool.members],
    )


@router.get("/pools", response_model=PoolListResponse)
async def list_pools(
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    """Filled pending pools and recently verified pools."""
    pool_size = get_settings().pool_size
    pools = await service.list_pools(db)
    return PoolListResponse(
        pools=[_pool_to_response(p, pool_size) for p in pools],
        total=len(pools),
    )


@router.post("/alerts", response_model=AdminAlertCreatedResponse, status_code=201)
async def create_admin_alert(
    body: AdminAlertRequest,
    admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    """Declare a migration/delisting/rebrand directly, bypassing the stake pool."""
    await service.create_admin_alert(db, admin.id, body.coin_id, body.alert_type, body.proof_link)
    await db.commit()
    return AdminAlertCreatedResponse(
        message=f"{body.alert_type.capitalize()} alert created for {body.coin_id}",
    )


@router.get("/alerts", response_model=AdminAlertListResponse)
async def list_admin_alerts(
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    records = await service.list_admin_alerts(db)
    return AdminAlertListResponse(alerts=[AlertRecordResponse.model_validate(r) for r in records])


@router.delete("/alerts", response_model=OkResponse)
async def delete_admin_alert(
    body: PoolKeyRequest = Body(...),
    _admin: CurrentUser = Depends(get_admin_user),
    db: AsyncSession = Depends(get_session),
):
    await service.delete_admin_alert(db, body.coin_id, body.alert_type)
    await db.commit()
    return OkResponse()
