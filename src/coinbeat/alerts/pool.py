"""Pool aggregation over alert records.

A pool is every record sharing (coin_id, alert_type). Nothing about a pool is
stored; it is derived at read time from the member rows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from coinbeat.db.models import AlertRecord


@dataclass
class AlertPool:
    coin_id: str
    alert_type: str
    members: list[AlertRecord] = field(default_factory=list)
    total_eggs: int = 0
    status: str = "pending"
    archived: bool = False
    verified_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.status in ("verified", "rejected")

    def is_filled(self, pool_size: int) -> bool:
        return self.total_eggs >= pool_size


def _pool_status(statuses: set[str]) -> str:
    # verified dominates, then rejected, otherwise the group is still pending
    if "verified" in statuses:
        return "verified"
    if "rejected" in statuses:
        return "rejected"
    return "pending"


def build_pool(coin_id: str, alert_type: str, members: Iterable[AlertRecord]) -> AlertPool:
    """Fold one group's members into its pool view."""
    pool = AlertPool(coin_id=coin_id, alert_type=alert_type, members=list(members))
    pool.total_eggs = sum(m.eggs_staked or 0 for m in pool.members)
    pool.status = _pool_status({m.status for m in pool.members})
    pool.archived = any(m.archived for m in pool.members)

    verified_times = [m.verified_at for m in pool.members if m.verified_at is not None]
    pool.verified_at = max(verified_times) if verified_times else None
    return pool


def aggregate_pools(records: Iterable[AlertRecord]) -> list[AlertPool]:
    """Group records by (coin_id, alert_type), preserving first-seen order."""
    groups: dict[tuple[str, str], list[AlertRecord]] = {}
    for record in records:
        groups.setdefault((record.coin_id, record.alert_type), []).append(record)
    return [build_pool(coin_id, alert_type, members) for (coin_id, alert_type), members in groups.items()]


def is_displayable(
    pool: AlertPool,
    pool_size: int,
    display_days: int,
    now: datetime | None = None,
) -> bool:
    """Display policy: filled pending pools, or pools verified within the display window."""
    if pool.archived:
        return False
    if pool.status == "verified":
        if pool.verified_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return pool.verified_at >= now - timedelta(days=display_days)
    if pool.status == "pending":
        return pool.is_filled(pool_size)
    return False


def visible_pools(
    records: Iterable[AlertRecord],
    pool_size: int,
    display_days: int,
    now: datetime | None = None,
) -> list[AlertPool]:
    """Aggregate and keep only the pools the display policy exposes."""
    now = now or datetime.now(timezone.utc)
    return [p for p in aggregate_pools(records) if is_displayable(p, pool_size, display_days, now)]
