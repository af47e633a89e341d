"""Egg quota ledger: balances, debits and idempotent credits.

Every balance change writes an ``egg_ledger`` row next to the denormalized
``user_ai_usage.eggs`` total. Callers own the transaction: these helpers only
flush, so a stake or a pool payout commits as one unit of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.config import get_settings
from coinbeat.db.models import EggLedger, UserQuota
from coinbeat.errors import InsufficientFundsError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Balance:
    eggs: int
    tokens_used: int
    monthly_limit: int
    billing_plan: str


async def get_or_create_quota(db: AsyncSession, user_id: str, *, lock: bool = False) -> UserQuota:
    """Get or create the quota row for a user. New users start with the free-tier egg grant."""
    stmt = select(UserQuota).where(UserQuota.user_id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    quota = result.scalar_one_or_none()
    if quota is None:
        settings = get_settings()
        now = datetime.now(timezone.utc)
        quota = UserQuota(
            user_id=user_id,
            eggs=settings.starting_eggs,
            tokens_used=0,
            monthly_limit=settings.free_monthly_limit,
            billing_plan="free",
            created_at=now,
            updated_at=now,
        )
        db.add(quota)
        await db.flush()
    return quota


async def get_balance(db: AsyncSession, user_id: str) -> Balance:
    quota = await get_or_create_quota(db, user_id)
    return Balance(
        eggs=quota.eggs,
        tokens_used=quota.tokens_used,
        monthly_limit=quota.monthly_limit,
        billing_plan=quota.billing_plan,
    )


async def debit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
) -> int:
    """Take eggs from a user. Returns the new balance.

    Raises InsufficientFundsError when the balance is below ``amount``.
    """
    if amount <= 0:
        raise ValidationError("Debit amount must be positive")

    quota = await get_or_create_quota(db, user_id, lock=True)
    if quota.eggs < amount:
        raise InsufficientFundsError("Not enough eggs")

    now = datetime.now(timezone.utc)
    quota.eggs -= amount
    quota.updated_at = now
    db.add(EggLedger(
        user_id=user_id,
        amount=-amount,
        source=source,
        source_id=source_id,
        description=description,
        created_at=now,
    ))
    await db.flush()
    return quota.eggs


async def credit(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    source_id: str,
    description: str,
    idempotency_key: str,
) -> bool:
    """Give eggs to a user. Returns True if credited, False if the key was already used."""
    if amount <= 0:
        raise ValidationError("Credit amount must be positive")

    existing = await db.execute(
        select(EggLedger.id).where(EggLedger.idempotency_key == idempotency_key)
    )
    if existing.scalar_one_or_none() is not None:
        logger.info("Skipping duplicate egg credit %s", idempotency_key)
        return False

    now = datetime.now(timezone.utc)
    quota = await get_or_create_quota(db, user_id, lock=True)
    quota.eggs += amount
    quota.updated_at = now
    db.add(EggLedger(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        idempotency_key=idempotency_key,
        created_at=now,
    ))
    await db.flush()
    return True


async def get_ledger_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[EggLedger], int]:
    """Get a user's egg transactions (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(EggLedger).where(EggLedger.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(EggLedger)
        .where(EggLedger.user_id == user_id)
        .order_by(EggLedger.created_at.desc(), EggLedger.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
