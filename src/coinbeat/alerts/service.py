"""Alert record store and pool verification.

Staking, verification and rejection each run as one unit of work: the pool
members are selected ``FOR UPDATE`` so concurrent calls on the same
(coin_id, alert_type) serialize, and the router commits once at the end.
Reward credits carry the idempotency key ``pool_reward:<alert_id>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.alerts.pool import AlertPool, build_pool, visible_pools
from coinbeat.config import get_settings
from coinbeat.db.models import ALERT_STATUSES, ALERT_TYPES, AlertRecord
from coinbeat.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PoolResolvedError,
    ValidationError,
)
from coinbeat.notifications.service import record_notification
from coinbeat.quota.service import credit, debit, get_or_create_quota

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Your alert for coin {coin_id} ({alert_type}) was verified! You received double eggs as a reward."
REJECTED_MESSAGE = "Your alert for coin {coin_id} ({alert_type}) was rejected. Eggs staked are not refunded."


@dataclass(frozen=True)
class Reward:
    user_id: str
    eggs_awarded: int


def validate_alert_type(alert_type: str) -> None:
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"Invalid alert type: {alert_type}. Must be one of {ALERT_TYPES}")


def _closed_pool_error(status: str) -> ConflictError:
    if status == "verified":
        return ConflictError("Pool already verified and closed")
    return ConflictError("Pool was rejected and is closed")


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------


async def stake(
    db: AsyncSession,
    user_id: str,
    coin_id: str,
    alert_type: str,
    proof_link: str,
) -> str:
    """Stake eggs on a community alert, or refresh the proof of an existing stake.

    Returns ``"created"`` or ``"updated"``.
    """
    validate_alert_type(alert_type)
    if not coin_id or not proof_link:
        raise ValidationError("Missing required fields")

    # Lock the quota row first: one user's stakes run one at a time
    await get_or_create_quota(db, user_id, lock=True)

    result = await db.execute(
        select(AlertRecord)
        .where(
            AlertRecord.user_id == user_id,
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.archived.is_(False),
            AlertRecord.admin_created.is_(False),
        )
        .with_for_update()
    )
    existing = result.scalars().first()

    if existing is not None:
        if existing.status != "pending":
            raise _closed_pool_error(existing.status)
        existing.proof_link = proof_link
        await db.flush()
        logger.info("User %s updated proof for %s/%s", user_id, coin_id, alert_type)
        return "updated"

    verified = await db.execute(
        select(AlertRecord.id)
        .where(
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.archived.is_(False),
            AlertRecord.status == "verified",
        )
        .limit(1)
    )
    if verified.scalar_one_or_none() is not None:
        raise _closed_pool_error("verified")

    cost = get_settings().stake_cost
    await debit(
        db,
        user_id,
        cost,
        source="stake",
        source_id=f"{coin_id}:{alert_type}",
        description=f"Stake on {alert_type} alert for {coin_id}",
    )
    db.add(AlertRecord(
        user_id=user_id,
        coin_id=coin_id,
        alert_type=alert_type,
        proof_link=proof_link,
        eggs_staked=cost,
        status="pending",
        archived=False,
    ))
    await db.flush()
    logger.info("User %s staked %d eggs on %s/%s", user_id, cost, coin_id, alert_type)
    return "created"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def list_alerts(
    db: AsyncSession,
    coin_id: str,
    alert_type: str | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> list[AlertRecord]:
    """Non-archived records for a coin. Verified reads are limited to the display window."""
    if status and status not in ALERT_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {ALERT_STATUSES}")
    stmt = select(AlertRecord).where(
        AlertRecord.coin_id == coin_id,
        AlertRecord.archived.is_(False),
    )
    if alert_type:
        stmt = stmt.where(AlertRecord.alert_type == alert_type)
    if status:
        stmt = stmt.where(AlertRecord.status == status)
        if status == "verified":
            now = now or datetime.now(timezone.utc)
            cutoff = now - timedelta(days=get_settings().verified_display_days)
            stmt = stmt.where(AlertRecord.verified_at >= cutoff)
    result = await db.execute(stmt.order_by(AlertRecord.created_at, AlertRecord.id))
    return list(result.scalars().all())


async def get_user_stakes(db: AsyncSession, user_id: str, coin_id: str) -> list[AlertRecord]:
    """The user's pending, non-archived stakes on one coin."""
    result = await db.execute(
        select(AlertRecord).where(
            AlertRecord.user_id == user_id,
            AlertRecord.coin_id == coin_id,
            AlertRecord.status == "pending",
            AlertRecord.archived.is_(False),
        )
    )
    return list(result.scalars().all())


async def get_staked_coins(db: AsyncSession, user_id: str) -> set[str]:
    result = await db.execute(
        select(AlertRecord.coin_id).where(AlertRecord.user_id == user_id).distinct()
    )
    return set(result.scalars().all())


async def list_pools(db: AsyncSession, now: datetime | None = None) -> list[AlertPool]:
    """Community pools the display policy exposes (admin-authored records excluded)."""
    settings = get_settings()
    result = await db.execute(
        select(AlertRecord)
        .where(AlertRecord.archived.is_(False), AlertRecord.admin_created.is_(False))
        .order_by(AlertRecord.created_at, AlertRecord.id)
    )
    return visible_pools(
        result.scalars().all(),
        settings.pool_size,
        settings.verified_display_days,
        now,
    )


# ---------------------------------------------------------------------------
# Verification engine
# ---------------------------------------------------------------------------


async def _lock_pool(db: AsyncSession, coin_id: str, alert_type: str) -> list[AlertRecord]:
    """Lock the community members of a pool. Admin-authored records never join a pool."""
    result = await db.execute(
        select(AlertRecord)
        .where(
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.admin_created.is_(False),
        )
        .order_by(AlertRecord.id)
        .with_for_update()
    )
    members = list(result.scalars().all())
    if not members:
        raise NotFoundError("No alerts found for this group")
    return members


async def verify_pool(
    db: AsyncSession,
    coin_id: str,
    alert_type: str,
    now: datetime | None = None,
) -> list[Reward]:
    """Verify a filled pool: pay every member and notify them.

    Raises NotFoundError for an empty group, PoolResolvedError when the pool is
    already verified, InvalidStateError while ``total_eggs < pool_size``.
    """
    settings = get_settings()
    members = await _lock_pool(db, coin_id, alert_type)
    active = [m for m in members if not m.archived]
    pool = build_pool(coin_id, alert_type, active)

    if not active or pool.status == "verified":
        raise PoolResolvedError("Already verified")
    if not pool.is_filled(settings.pool_size):
        raise InvalidStateError("Pool not filled yet")

    now = now or datetime.now(timezone.utc)
    rewards: list[Reward] = []
    for member in active:
        if member.status != "pending":
            continue
        amount = settings.reward_multiplier * (member.eggs_staked or 0)
        if amount > 0:
            await credit(
                db,
                member.user_id,
                amount,
                source="pool_reward",
                source_id=str(member.id),
                description=f"Verified {alert_type} alert for {coin_id}",
                idempotency_key=f"pool_reward:{member.id}",
            )
        member.status = "verified"
        member.verified_at = now
        await record_notification(
            db,
            user_id=member.user_id,
            coin_id=coin_id,
            alert_type="alert_verified",
            message=VERIFIED_MESSAGE.format(coin_id=coin_id, alert_type=alert_type),
            delivery_status="sent",
            sent_at=now,
        )
        rewards.append(Reward(user_id=member.user_id, eggs_awarded=amount))

    await db.flush()
    logger.info("Verified pool %s/%s: %d members rewarded", coin_id, alert_type, len(rewards))
    return rewards


async def reject_pool(
    db: AsyncSession,
    coin_id: str,
    alert_type: str,
    now: datetime | None = None,
) -> list[str]:
    """Reject a pool: every member is rejected and archived, stakes are forfeited.

    Returns the notified user ids.
    """
    members = await _lock_pool(db, coin_id, alert_type)
    active = [m for m in members if not m.archived]

    if not active or build_pool(coin_id, alert_type, active).is_resolved:
        raise PoolResolvedError("Already verified or rejected")

    now = now or datetime.now(timezone.utc)
    notified: list[str] = []
    for member in active:
        member.status = "rejected"
        member.archived = True
        await record_notification(
            db,
            user_id=member.user_id,
            coin_id=coin_id,
            alert_type="alert_rejected",
            message=REJECTED_MESSAGE.format(coin_id=coin_id, alert_type=alert_type),
            delivery_status="sent",
            sent_at=now,
        )
        notified.append(member.user_id)

    await db.flush()
    logger.info("Rejected pool %s/%s: %d stakes forfeited", coin_id, alert_type, len(notified))
    return notified


async def delete_pool(db: AsyncSession, coin_id: str, alert_type: str) -> int:
    """Delete every community record of a pool, whatever its status. Returns rows deleted."""
    result = await db.execute(
        delete(AlertRecord)
        .where(
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.admin_created.is_(False),
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    logger.info("Deleted pool %s/%s (%d records)", coin_id, alert_type, result.rowcount)
    return result.rowcount


async def archive_expired_pools(db: AsyncSession, now: datetime | None = None) -> int:
    """Archive verified records older than the display window. Returns rows archived."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=get_settings().verified_display_days)
    result = await db.execute(
        update(AlertRecord)
        .where(
            AlertRecord.status == "verified",
            AlertRecord.archived.is_(False),
            AlertRecord.verified_at < cutoff,
        )
        .values(archived=True)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount


# ---------------------------------------------------------------------------
# Admin-authored alerts
# ---------------------------------------------------------------------------


async def create_admin_alert(
    db: AsyncSession,
    admin_id: str,
    coin_id: str,
    alert_type: str,
    proof_link: str | None = None,
    now: datetime | None = None,
) -> AlertRecord:
    """Declare an alert as verified without a stake or a pool."""
    validate_alert_type(alert_type)
    if not coin_id:
        raise ValidationError("Missing required fields")

    result = await db.execute(
        select(AlertRecord).where(
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.admin_created.is_(True),
            AlertRecord.archived.is_(False),
        )
    )
    existing = result.scalars().first()
    if existing is not None:
        raise ConflictError(
            f"Alert for {coin_id} ({alert_type}) already exists with status: {existing.status}"
        )

    now = now or datetime.now(timezone.utc)
    record = AlertRecord(
        user_id=admin_id,
        coin_id=coin_id,
        alert_type=alert_type,
        proof_link=proof_link,
        eggs_staked=0,
        status="verified",
        archived=False,
        admin_created=True,
        verified_at=now,
        created_at=now,
    )
    db.add(record)
    await db.flush()
    logger.info("Admin %s declared %s for %s", admin_id, alert_type, coin_id)
    return record


async def list_admin_alerts(db: AsyncSession) -> list[AlertRecord]:
    result = await db.execute(
        select(AlertRecord)
        .where(
            AlertRecord.admin_created.is_(True),
            AlertRecord.archived.is_(False),
            AlertRecord.status == "verified",
        )
        .order_by(AlertRecord.created_at.desc(), AlertRecord.id.desc())
    )
    return list(result.scalars().all())


async def delete_admin_alert(db: AsyncSession, coin_id: str, alert_type: str) -> int:
    result = await db.execute(
        delete(AlertRecord)
        .where(
            AlertRecord.coin_id == coin_id,
            AlertRecord.alert_type == alert_type,
            AlertRecord.admin_created.is_(True),
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount
