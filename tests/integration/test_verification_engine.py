"""Stake, verify and reject flows against the database."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coinbeat.alerts import service
from coinbeat.db.models import AlertRecord, EggLedger, NotificationLog
from coinbeat.errors import (
    ConflictError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PoolResolvedError,
    ValidationError,
)
from coinbeat.quota.service import get_or_create_quota

PROOF = "https://example.com/announcement"
USERS = ("user-a", "user-b", "user-c")


async def _fill_pool(db: AsyncSession, coin_id: str = "coinx", alert_type: str = "migration") -> None:
    for user_id in USERS:
        assert await service.stake(db, user_id, coin_id, alert_type, PROOF) == "created"
    await db.commit()


async def _members(db: AsyncSession, coin_id: str = "coinx") -> list[AlertRecord]:
    result = await db.execute(
        select(AlertRecord)
        .where(AlertRecord.coin_id == coin_id)
        .order_by(AlertRecord.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _notifications(db: AsyncSession, alert_type: str) -> list[NotificationLog]:
    result = await db.execute(select(NotificationLog).where(NotificationLog.alert_type == alert_type))
    return list(result.scalars().all())


@pytest_asyncio.fixture
async def db(db_session: AsyncSession) -> AsyncSession:
    return db_session


@pytest.mark.asyncio
class TestStake:
    async def test_first_stake_debits_and_creates_pending(self, db, egg_balance):
        assert await service.stake(db, "user-a", "coinx", "migration", PROOF) == "created"
        await db.commit()

        assert await egg_balance(db, "user-a") == 8
        [record] = await _members(db)
        assert record.status == "pending"
        assert record.eggs_staked == 2
        assert record.archived is False

    async def test_resubmit_updates_proof_only(self, db, egg_balance):
        await service.stake(db, "user-a", "coinx", "migration", PROOF)
        await db.commit()
        assert await service.stake(db, "user-a", "coinx", "migration", "https://example.com/v2") == "updated"
        await db.commit()

        assert await egg_balance(db, "user-a") == 8
        [record] = await _members(db)
        assert record.proof_link == "https://example.com/v2"
        assert record.eggs_staked == 2

        ledger = await db.execute(select(EggLedger).where(EggLedger.user_id == "user-a"))
        assert len(ledger.scalars().all()) == 1

    async def test_insufficient_eggs(self, db, egg_balance):
        quota = await get_or_create_quota(db, "poor-user")
        quota.eggs = 1
        await db.commit()

        with pytest.raises(InsufficientFundsError):
            await service.stake(db, "poor-user", "coinx", "migration", PROOF)
        await db.rollback()

        assert await egg_balance(db, "poor-user") == 1
        assert await _members(db) == []

    async def test_invalid_alert_type(self, db):
        with pytest.raises(ValidationError):
            await service.stake(db, "user-a", "coinx", "rugpull", PROOF)

    async def test_missing_proof(self, db):
        with pytest.raises(ValidationError):
            await service.stake(db, "user-a", "coinx", "migration", "")

    async def test_stake_into_verified_pool_is_conflict(self, db):
        await _fill_pool(db)
        await service.verify_pool(db, "coinx", "migration")
        await db.commit()

        with pytest.raises(ConflictError, match="verified"):
            await service.stake(db, "user-d", "coinx", "migration", PROOF)
        with pytest.raises(ConflictError, match="verified"):
            await service.stake(db, "user-a", "coinx", "migration", PROOF)


@pytest.mark.asyncio
class TestVerify:
    async def test_three_stakers_each_gain_four_eggs(self, db, egg_balance):
        await _fill_pool(db)
        before = {u: await egg_balance(db, u) for u in USERS}

        rewards = await service.verify_pool(db, "coinx", "migration")
        await db.commit()

        assert sorted((r.user_id, r.eggs_awarded) for r in rewards) == [(u, 4) for u in USERS]
        for user_id in USERS:
            assert await egg_balance(db, user_id) == before[user_id] + 4

        members = await _members(db)
        assert {m.status for m in members} == {"verified"}
        assert len({m.verified_at for m in members}) == 1
        assert all(m.verified_at is not None for m in members)
        assert all(m.archived is False for m in members)

        notes = await _notifications(db, "alert_verified")
        assert sorted(n.user_id for n in notes) == list(USERS)
        assert all(n.delivery_status == "sent" for n in notes)

    async def test_second_verify_conflicts_and_pays_nothing(self, db, egg_balance):
        await _fill_pool(db)
        await service.verify_pool(db, "coinx", "migration")
        await db.commit()
        after_first = {u: await egg_balance(db, u) for u in USERS}

        with pytest.raises(PoolResolvedError):
            await service.verify_pool(db, "coinx", "migration")
        await db.rollback()

        assert {u: await egg_balance(db, u) for u in USERS} == after_first

    async def test_one_short_of_pool_size_is_invalid_state(self, db):
        await service.stake(db, "user-a", "coinx", "migration", PROOF)
        await service.stake(db, "user-b", "coinx", "migration", PROOF)
        await db.commit()
        [a, _b] = await _members(db)
        a.eggs_staked = 3  # total 5 == pool_size - 1
        await db.commit()

        with pytest.raises(InvalidStateError):
            await service.verify_pool(db, "coinx", "migration")
        await db.rollback()

        a = (await _members(db))[0]
        a.eggs_staked = 4  # total 6 == pool_size
        await db.commit()

        rewards = await service.verify_pool(db, "coinx", "migration")
        await db.commit()
        assert {r.user_id: r.eggs_awarded for r in rewards} == {"user-a": 8, "user-b": 4}

    async def test_empty_group_not_found(self, db):
        with pytest.raises(NotFoundError):
            await service.verify_pool(db, "ghostcoin", "delisting")

    async def test_reward_credit_is_idempotent(self, db):
        await _fill_pool(db)
        await service.verify_pool(db, "coinx", "migration")
        await db.commit()

        result = await db.execute(
            select(EggLedger.idempotency_key).where(EggLedger.source == "pool_reward")
        )
        keys = result.scalars().all()
        assert len(keys) == 3
        assert all(k.startswith("pool_reward:") for k in keys)


@pytest.mark.asyncio
class TestReject:
    async def test_reject_archives_and_forfeits(self, db, egg_balance):
        await _fill_pool(db)
        before = {u: await egg_balance(db, u) for u in USERS}

        notified = await service.reject_pool(db, "coinx", "migration")
        await db.commit()

        assert sorted(notified) == list(USERS)
        assert {u: await egg_balance(db, u) for u in USERS} == before
        members = await _members(db)
        assert all(m.status == "rejected" and m.archived for m in members)

        notes = await _notifications(db, "alert_rejected")
        assert len(notes) == 3
        assert all("not refunded" in n.message for n in notes)

    async def test_reject_twice_is_resolved(self, db):
        await _fill_pool(db)
        await service.reject_pool(db, "coinx", "migration")
        await db.commit()
        with pytest.raises(PoolResolvedError):
            await service.reject_pool(db, "coinx", "migration")

    async def test_reject_after_verify_is_resolved(self, db):
        await _fill_pool(db)
        await service.verify_pool(db, "coinx", "migration")
        await db.commit()
        with pytest.raises(PoolResolvedError):
            await service.reject_pool(db, "coinx", "migration")

    async def test_rejected_user_can_stake_again(self, db):
        await _fill_pool(db)
        await service.reject_pool(db, "coinx", "migration")
        await db.commit()

        assert await service.stake(db, "user-a", "coinx", "migration", PROOF) == "created"


@pytest.mark.asyncio
class TestAdminAlerts:
    async def test_create_is_verified_without_stake(self, db):
        record = await service.create_admin_alert(db, "admin-1", "coinz", "delisting", PROOF)
        await db.commit()
        assert record.status == "verified"
        assert record.eggs_staked == 0
        assert record.verified_at is not None

    async def test_duplicate_is_conflict(self, db):
        await service.create_admin_alert(db, "admin-1", "coinz", "delisting")
        await db.commit()
        with pytest.raises(ConflictError, match="already exists with status: verified"):
            await service.create_admin_alert(db, "admin-2", "coinz", "delisting")

    async def test_admin_records_are_not_pools(self, db):
        await service.create_admin_alert(db, "admin-1", "coinz", "delisting")
        await db.commit()
        assert await service.list_pools(db) == []
        assert len(await service.list_admin_alerts(db)) == 1

        await service.delete_admin_alert(db, "coinz", "delisting")
        await db.commit()
        assert await service.list_admin_alerts(db) == []


@pytest.mark.asyncio
async def test_delete_pool_removes_everything(db):
    await _fill_pool(db)
    await service.verify_pool(db, "coinx", "migration")
    await db.commit()

    assert await service.delete_pool(db, "coinx", "migration") == 3
    await db.commit()
    assert await _members(db) == []


@pytest.mark.asyncio
async def test_archive_expired_pools(db):
    from datetime import datetime, timedelta, timezone

    await _fill_pool(db)
    await service.verify_pool(db, "coinx", "migration")
    await db.commit()

    assert await service.archive_expired_pools(db, now=datetime.now(timezone.utc) + timedelta(days=10)) == 0
    archived = await service.archive_expired_pools(db, now=datetime.now(timezone.utc) + timedelta(days=31))
    await db.commit()
    assert archived == 3
    assert all(m.archived for m in await _members(db))


@pytest.mark.asyncio
class TestAdminDeclarationDuringOpenPool:
    async def test_open_pool_can_still_be_verified(self, db, egg_balance):
        await _fill_pool(db)
        await service.create_admin_alert(db, "admin-1", "coinx", "migration")
        await db.commit()

        [pool] = await service.list_pools(db)
        assert pool.status == "pending"

        rewards = await service.verify_pool(db, "coinx", "migration")
        await db.commit()
        assert sorted(r.user_id for r in rewards) == list(USERS)
        assert await egg_balance(db, "user-a") == 12
        assert len(await service.list_admin_alerts(db)) == 1

    async def test_open_pool_can_still_be_rejected(self, db):
        await _fill_pool(db)
        await service.create_admin_alert(db, "admin-1", "coinx", "migration")
        await db.commit()

        notified = await service.reject_pool(db, "coinx", "migration")
        await db.commit()
        assert sorted(notified) == list(USERS)

        [admin_record] = await service.list_admin_alerts(db)
        assert admin_record.status == "verified"
        assert admin_record.archived is False

    async def test_admin_record_alone_is_not_a_pool(self, db):
        await service.create_admin_alert(db, "admin-1", "coinx", "migration")
        await db.commit()
        with pytest.raises(NotFoundError):
            await service.verify_pool(db, "coinx", "migration")

    async def test_pool_delete_keeps_admin_record(self, db):
        await _fill_pool(db)
        await service.create_admin_alert(db, "admin-1", "coinx", "migration")
        await db.commit()

        assert await service.delete_pool(db, "coinx", "migration") == 3
        await db.commit()
        assert len(await service.list_admin_alerts(db)) == 1


@pytest.mark.asyncio
class TestOpenClaimUniqueness:
    async def test_second_open_claim_is_rejected_by_the_database(self, db):
        assert await service.stake(db, "user-a", "coinx", "migration", PROOF) == "created"
        await db.commit()

        db.add(AlertRecord(user_id="user-a", coin_id="coinx", alert_type="migration", eggs_staked=2))
        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()

    async def test_archived_claim_does_not_block_a_new_one(self, db):
        db.add(AlertRecord(
            user_id="user-a", coin_id="coinx", alert_type="migration",
            eggs_staked=2, status="rejected", archived=True,
        ))
        db.add(AlertRecord(user_id="user-a", coin_id="coinx", alert_type="migration", eggs_staked=2))
        await db.flush()
        await db.commit()
        assert len(await _members(db)) == 2

    async def test_stake_takes_quota_lock(self, db, monkeypatch):
        calls: list[bool] = []
        original = service.get_or_create_quota

        async def spy(session, user_id, *, lock=False):
            calls.append(lock)
            return await original(session, user_id, lock=lock)

        monkeypatch.setattr(service, "get_or_create_quota", spy)
        assert await service.stake(db, "new-user", "coinx", "migration", PROOF) == "created"
        assert calls == [True]


@pytest.mark.asyncio
async def test_list_alerts_rejects_unknown_status(db):
    with pytest.raises(ValidationError):
        await service.list_alerts(db, "coinx", status="approved")
