"""
Inventory store: the only code allowed to change an inventory unit's status.

CONCURRENCY STRATEGY: Conditional Update on (version, status)
=============================================================

Problem:
  Two passengers pick seat 12A at the same moment. Both see it available.
  A plain "UPDATE ... SET status='booked'" lets both win.

Solution:
  The caller reads the unit and remembers its version, then claims with

    UPDATE inventory_units
       SET status='held', version=version+1, hold_token=:t, held_until=:u
     WHERE id=:id AND version=:expected
       AND (status='available' OR (status='held' AND held_until < now))

  The database evaluates the WHERE clause against the latest committed row,
  so exactly one concurrent claimer sees rowcount == 1. Everybody else gets
  a Conflict without any lock being held in this process.

  The resource's available_count is changed in the same transaction as the
  unit row, so no reader ever sees a count that disagrees with the units.

Holds that ran out are claimable straight away and are swept back to
available by release_expired_holds whenever availability is read, so a
crashed reservation never hides a seat from the seat map or the counter.

Every function here takes a session and leaves commit/rollback to the
caller; the coordinator decides transaction boundaries.
"""

import enum
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.base import utcnow
from ticketing.models.inventory_unit import InventoryUnit, UnitStatus
from ticketing.models.resource import Resource


class ClaimOutcome(enum.Enum):
    CLAIMED = "claimed"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


def is_claimable(unit: InventoryUnit, now: Optional[datetime] = None) -> bool:
    """Available, or held by a reservation that ran out of time."""
    if unit.status == UnitStatus.AVAILABLE:
        return True
    if unit.status == UnitStatus.HELD and unit.held_until is not None:
        now = now or utcnow()
        held_until = unit.held_until
        if held_until.tzinfo is None:
            # SQLite hands back naive UTC timestamps
            now = now.replace(tzinfo=None)
        return held_until < now
    return False


async def get_unit(db: AsyncSession, unit_id: int) -> Optional[InventoryUnit]:
    result = await db.execute(
        select(InventoryUnit)
        .where(InventoryUnit.id == unit_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _adjust_available_count(db: AsyncSession, resource_id: int, delta: int) -> None:
    condition = Resource.available_count >= -delta if delta < 0 else Resource.available_count + delta <= Resource.capacity
    result = await db.execute(
        update(Resource)
        .where(Resource.id == resource_id, condition)
        .values(available_count=Resource.available_count + delta)
    )
    if result.rowcount != 1:
        # Only reachable if units and counter already disagree
        raise RuntimeError(f"available_count of resource {resource_id} out of bounds for delta {delta}")


def _expired_hold(now: datetime):
    return and_(InventoryUnit.status == UnitStatus.HELD, InventoryUnit.held_until < now)


async def try_claim(
    db: AsyncSession,
    unit_id: int,
    expected_version: int,
    hold_token: str,
    hold_seconds: int,
) -> ClaimOutcome:
    """Move a claimable unit to held, conditioned on its version."""
    unit = await get_unit(db, unit_id)
    if unit is None:
        return ClaimOutcome.NOT_FOUND
    if unit.version != expected_version:
        return ClaimOutcome.CONFLICT

    now = utcnow()
    was_available = unit.status == UnitStatus.AVAILABLE
    result = await db.execute(
        update(InventoryUnit)
        .where(
            InventoryUnit.id == unit_id,
            InventoryUnit.version == expected_version,
            or_(InventoryUnit.status == UnitStatus.AVAILABLE, _expired_hold(now)),
        )
        .values(
            status=UnitStatus.HELD,
            version=InventoryUnit.version + 1,
            hold_token=hold_token,
            held_until=now + timedelta(seconds=hold_seconds),
            booking_id=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return ClaimOutcome.CONFLICT

    # The version check pins the row we read, so its old status is exact
    if was_available:
        await _adjust_available_count(db, unit.resource_id, -1)
    return ClaimOutcome.CLAIMED


async def mark_booked(db: AsyncSession, unit_id: int, hold_token: str, booking_id: int) -> bool:
    """Held (by this token) -> booked. False if the hold was lost."""
    now = utcnow()
    result = await db.execute(
        update(InventoryUnit)
        .where(
            InventoryUnit.id == unit_id,
            InventoryUnit.status == UnitStatus.HELD,
            InventoryUnit.hold_token == hold_token,
        )
        .values(
            status=UnitStatus.BOOKED,
            version=InventoryUnit.version + 1,
            held_until=None,
            booking_id=booking_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_hold(db: AsyncSession, unit_id: int, hold_token: str) -> bool:
    """Held (by this token) -> available. Compensation path only."""
    unit = await get_unit(db, unit_id)
    if unit is None:
        return False
    result = await db.execute(
        update(InventoryUnit)
        .where(
            InventoryUnit.id == unit_id,
            InventoryUnit.status == UnitStatus.HELD,
            InventoryUnit.hold_token == hold_token,
        )
        .values(
            status=UnitStatus.AVAILABLE,
            version=InventoryUnit.version + 1,
            hold_token=None,
            held_until=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await _adjust_available_count(db, unit.resource_id, +1)
    return True


async def release(db: AsyncSession, unit_id: int, booking_id: int) -> bool:
    """Booked (by this booking) -> available. Cancellation path only."""
    unit = await get_unit(db, unit_id)
    if unit is None:
        return False
    result = await db.execute(
        update(InventoryUnit)
        .where(
            InventoryUnit.id == unit_id,
            InventoryUnit.status == UnitStatus.BOOKED,
            InventoryUnit.booking_id == booking_id,
        )
        .values(
            status=UnitStatus.AVAILABLE,
            version=InventoryUnit.version + 1,
            hold_token=None,
            held_until=None,
            booking_id=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await _adjust_available_count(db, unit.resource_id, +1)
    return True


async def release_expired_holds(
    db: AsyncSession,
    resource_id: Optional[int] = None,
) -> dict[int, int]:
    """
    Held units whose hold ran out -> available, counter +1 each.

    Returns the number of units released per resource id. Each unit is
    released with the same version check as a claim, so a concurrent
    reclaim of the same expired hold wins or loses cleanly.
    """
    now = utcnow()
    query = select(InventoryUnit.id, InventoryUnit.resource_id, InventoryUnit.version).where(_expired_hold(now))
    if resource_id is not None:
        query = query.where(InventoryUnit.resource_id == resource_id)

    released: dict[int, int] = {}
    for unit_id, unit_resource_id, version in (await db.execute(query)).all():
        result = await db.execute(
            update(InventoryUnit)
            .where(InventoryUnit.id == unit_id, InventoryUnit.version == version, _expired_hold(now))
            .values(
                status=UnitStatus.AVAILABLE,
                version=InventoryUnit.version + 1,
                hold_token=None,
                held_until=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            released[unit_resource_id] = released.get(unit_resource_id, 0) + 1

    for unit_resource_id, count in released.items():
        await _adjust_available_count(db, unit_resource_id, count)
    return released


async def list_units(db: AsyncSession, resource_id: int, available_only: bool = False) -> list[InventoryUnit]:
    """Units of a resource in seat order; available_only keeps the claimable ones."""
    query = select(InventoryUnit).where(InventoryUnit.resource_id == resource_id)
    if available_only:
        query = query.where(or_(InventoryUnit.status == UnitStatus.AVAILABLE, _expired_hold(utcnow())))
    result = await db.execute(query.order_by(InventoryUnit.id.asc()))
    return list(result.scalars().all())
