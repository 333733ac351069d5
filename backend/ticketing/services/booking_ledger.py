"""
Booking ledger: append-only store of bookings.

Rows are inserted once and afterwards only change status (confirmed ->
cancelled). Passenger and resource fields are never rewritten. Like the
inventory store, these functions never commit.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.base import utcnow
from ticketing.models.booking import Booking, BookingStatus


async def append(db: AsyncSession, booking: Booking) -> Booking:
    """Insert a booking. Uniqueness violations surface as IntegrityError on flush."""
    db.add(booking)
    await db.flush()
    return booking


async def get_by_id(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_reference(db: AsyncSession, reference: str) -> Optional[Booking]:
    result = await db.execute(select(Booking).where(Booking.reference == reference))
    return result.scalar_one_or_none()


async def get_by_idempotency_key(db: AsyncSession, idempotency_key: str) -> Optional[Booking]:
    result = await db.execute(select(Booking).where(Booking.idempotency_key == idempotency_key))
    return result.scalar_one_or_none()


async def reference_exists(db: AsyncSession, reference: str) -> bool:
    result = await db.execute(select(Booking.id).where(Booking.reference == reference))
    return result.first() is not None


async def list_by_owner(
    db: AsyncSession,
    owner_id: str,
    scope: Optional[str] = None,
) -> list[Booking]:
    """
    Bookings of one owner, newest first.

    scope="upcoming" keeps confirmed bookings that have not departed yet,
    scope="past" keeps everything else.
    """
    query = select(Booking).where(Booking.owner_id == owner_id)

    now = utcnow()
    if scope == "upcoming":
        query = query.where(Booking.travel_date >= now, Booking.status != BookingStatus.CANCELLED)
    elif scope == "past":
        query = query.where((Booking.travel_date < now) | (Booking.status == BookingStatus.CANCELLED))

    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())


async def mark_cancelled(db: AsyncSession, booking_id: int) -> bool:
    """Confirmed -> cancelled. False if it was not confirmed any more."""
    now = utcnow()
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED)
        .values(status=BookingStatus.CANCELLED, cancelled_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
