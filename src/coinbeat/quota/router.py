"""Quota API endpoints — 2 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.auth.dependencies import CurrentUser, get_current_user
from coinbeat.database import get_session
from coinbeat.quota.schemas import EggHistoryResponse, EggLedgerEntry, QuotaResponse
from coinbeat.quota.service import get_balance, get_ledger_history

router = APIRouter(prefix="/api/v1", tags=["Quota"])


@router.get("/users/me/quota", response_model=QuotaResponse)
async def get_my_quota(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get current user's egg balance and AI quota."""
    balance = await get_balance(db, user.id)
    await db.commit()
    return QuotaResponse(
        eggs=balance.eggs,
        tokens_used=balance.tokens_used,
        monthly_limit=balance.monthly_limit,
        billing_plan=balance.billing_plan,
    )


@router.get("/users/me/eggs/history", response_model=EggHistoryResponse)
async def get_egg_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get current user's egg transaction history."""
    entries, total = await get_ledger_history(db, user.id, page, per_page)
    return EggHistoryResponse(
        entries=[
            EggLedgerEntry(
                amount=e.amount,
                source=e.source,
                source_id=e.source_id,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )
