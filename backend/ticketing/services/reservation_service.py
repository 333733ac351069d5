"""
Reservation coordinator: turns a reservation intent into a confirmed booking
without ever awarding one seat twice.

FLOW
====

  1. Validate the intent shape.
  2. Replay: a known idempotency key returns the booking it produced.
  3. Admission gate (no-op unless the Redis gate is configured), then
     check the resource and seat references.
  4. Claim: available -> held with a fresh hold token, conditioned on the
     unit version (see inventory_store). Losing the race is a
     SeatUnavailable rejection and leaves no booking row behind.
  5. Confirm: in ONE transaction insert the confirmed booking under a new
     reference and move the unit held -> booked. A reference collision
     rolls back that transaction only; the hold survives and the next
     reference is tried.
  6. Compensate: if step 5 cannot complete, release the hold. If even that
     fails, log `reconciliation_required` and raise PartialCommitFailure.

Every step runs in its own short transaction and nothing is locked in this
process between them. A crashed request leaves at worst a held unit whose
hold expires after HOLD_TTL_SECONDS and becomes claimable again. Reads
of availability sweep such holds back to available (release_expired_holds).

Cancellation flips booking confirmed -> cancelled and unit booked ->
available in a single transaction, so both happen or neither does.
"""

import enum
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.core.config import get_settings
from ticketing.core.exceptions import (
    InvalidIntent,
    PartialCommitFailure,
    PersistenceUnavailable,
    ReferenceExhausted,
    ReservationError,
    SeatUnavailable,
)
from ticketing.core.logging import get_logger
from ticketing.core.metrics import (
    claim_conflicts,
    expired_holds_released,
    record_admission,
    record_cancellation,
    record_compensation,
    record_reservation,
    reference_collisions,
    reservation_latency,
)
from ticketing.db.session import AsyncSessionLocal
from ticketing.models.booking import Booking, BookingStatus
from ticketing.models.inventory_unit import InventoryUnit
from ticketing.models.resource import Resource
from ticketing.schemas.booking import ReservationIntent, Rejection
from ticketing.services import booking_ledger, inventory_store
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.reference_generator import ReferenceGenerator
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)

STORAGE_ERRORS = (SQLAlchemyError, OSError)

SEAT_TAKEN_MESSAGE = "This seat has just been booked by someone else. Please select another seat."
SOLD_OUT_MESSAGE = "This departure is sold out. Please choose another date or service."


class CancelOutcome(enum.Enum):
    CANCELLED = "cancelled"
    ALREADY_CANCELLED = "already_cancelled"
    NOT_FOUND = "not_found"


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "invalid intent")


class ReservationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reference_generator: Optional[ReferenceGenerator] = None,
        admission: Optional[AdmissionStrategy] = None,
        hold_seconds: Optional[int] = None,
        max_reference_attempts: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.reference_generator = reference_generator or ReferenceGenerator()
        self.admission = admission or get_admission()
        self.hold_seconds = settings.HOLD_TTL_SECONDS if hold_seconds is None else hold_seconds
        self.max_reference_attempts = (
            settings.REFERENCE_MAX_ATTEMPTS if max_reference_attempts is None else max_reference_attempts
        )

    @asynccontextmanager
    async def _session(self, stage: str) -> AsyncIterator[AsyncSession]:
        """Session whose storage faults surface as PersistenceUnavailable."""
        try:
            async with self.session_factory() as db:
                yield db
        except STORAGE_ERRORS as e:
            logger.error("persistence_unavailable", stage=stage, error=str(e))
            raise PersistenceUnavailable(f"Storage unavailable during {stage}") from e

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    async def reserve(
        self,
        intent: Union[ReservationIntent, dict[str, Any]],
        owner_id: Optional[str] = None,
    ) -> Union[Booking, Rejection]:
        """
        Reserve one seat.

        Returns the confirmed Booking, or a Rejection for invalid intents and
        seats that are gone. Storage faults raise PersistenceUnavailable,
        ReferenceExhausted or PartialCommitFailure.
        """
        start = time.perf_counter()
        try:
            booking, outcome = await self._reserve(intent, owner_id)
        except (InvalidIntent, SeatUnavailable) as e:
            record_reservation(e.reason)
            logger.info("reservation_rejected", reason=e.reason, detail=e.message)
            return Rejection(reason=e.reason, message=e.message)
        except ReservationError as e:
            record_reservation("error")
            logger.error("reservation_failed", reason=e.reason, detail=e.message)
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - start)

        record_reservation(outcome)
        return booking

    async def _reserve(
        self,
        raw_intent: Union[ReservationIntent, dict[str, Any]],
        owner_id: Optional[str],
    ) -> tuple[Booking, str]:
        intent = self._validate(raw_intent)

        if intent.idempotency_key:
            existing = await self.get_booking_by_idempotency_key(intent.idempotency_key)
            if existing is not None:
                return self._replay(existing, intent), "replayed"

        admitted = await self.admission.admit(intent.resource_id)
        record_admission(admitted)
        if not admitted:
            raise SeatUnavailable(SOLD_OUT_MESSAGE)

        resource, unit = await self._load_target(intent)
        if not inventory_store.is_claimable(unit):
            if resource.available_count == 0:
                raise SeatUnavailable(SOLD_OUT_MESSAGE)
            raise SeatUnavailable(SEAT_TAKEN_MESSAGE)

        hold_token = uuid.uuid4().hex
        claimed = await self._claim(unit, hold_token)
        if not claimed:
            claim_conflicts.inc()
            logger.info("claim_conflict", unit_id=unit.id, resource_id=resource.id)
            if intent.idempotency_key:
                existing = await self.get_booking_by_idempotency_key(intent.idempotency_key)
                if existing is not None:
                    return self._replay(existing, intent), "replayed"
            raise SeatUnavailable(SEAT_TAKEN_MESSAGE)

        return await self._confirm(intent, owner_id, resource, unit, hold_token)

    def _validate(self, raw_intent: Union[ReservationIntent, dict[str, Any]]) -> ReservationIntent:
        if isinstance(raw_intent, ReservationIntent):
            return raw_intent
        try:
            return ReservationIntent.model_validate(raw_intent)
        except ValidationError as e:
            raise InvalidIntent(_describe_validation_error(e)) from e

    def _replay(self, existing: Booking, intent: ReservationIntent) -> Booking:
        if existing.unit_id != intent.unit_id or existing.resource_id != intent.resource_id:
            raise InvalidIntent("Idempotency key was already used for a different seat")
        logger.info("reservation_replayed", booking_id=existing.id, reference=existing.reference)
        existing.replayed = True
        return existing

    async def _load_target(self, intent: ReservationIntent) -> tuple[Resource, InventoryUnit]:
        async with self._session("load") as db:
            resource = await db.get(Resource, intent.resource_id)
            if resource is None:
                raise InvalidIntent(f"Resource {intent.resource_id} does not exist")
            unit = await inventory_store.get_unit(db, intent.unit_id)
            if unit is None or unit.resource_id != resource.id:
                raise InvalidIntent(f"Seat {intent.unit_id} does not belong to resource {resource.id}")
            return resource, unit

    async def _claim(self, unit: InventoryUnit, hold_token: str) -> bool:
        async with self._session("claim") as db:
            outcome = await inventory_store.try_claim(
                db, unit.id, unit.version, hold_token, self.hold_seconds
            )
            if outcome is not inventory_store.ClaimOutcome.CLAIMED:
                return False
            await db.commit()
        logger.debug("seat_held", unit_id=unit.id, hold_seconds=self.hold_seconds)
        return True

    async def _confirm(
        self,
        intent: ReservationIntent,
        owner_id: Optional[str],
        resource: Resource,
        unit: InventoryUnit,
        hold_token: str,
    ) -> tuple[Booking, str]:
        for attempt in range(1, self.max_reference_attempts + 1):
            reference = self.reference_generator.generate()
            try:
                async with self.session_factory() as db:
                    booking = Booking(
                        reference=reference,
                        idempotency_key=intent.idempotency_key,
                        resource_id=resource.id,
                        unit_id=unit.id,
                        owner_id=owner_id,
                        passenger_name=intent.passenger.name,
                        passenger_id_number=intent.passenger.id_number,
                        passenger_phone=intent.passenger.phone,
                        next_of_kin_name=intent.passenger.next_of_kin_name,
                        next_of_kin_phone=intent.passenger.next_of_kin_phone,
                        travel_date=resource.departs_at,
                        payment_method=intent.payment_method,
                        payment_status=intent.payment_status,
                        status=BookingStatus.CONFIRMED,
                        total_amount=resource.price,
                        cancelled_at=None,
                    )
                    await booking_ledger.append(db, booking)
                    if not await inventory_store.mark_booked(db, unit.id, hold_token, booking.id):
                        # Hold expired and someone else claimed the seat
                        await db.rollback()
                        logger.warning("hold_lost", unit_id=unit.id, reference=reference)
                        raise SeatUnavailable(SEAT_TAKEN_MESSAGE)
                    available_count = (
                        await db.execute(select(Resource.available_count).where(Resource.id == resource.id))
                    ).scalar_one()
                    booking = await booking_ledger.get_by_id(db, booking.id)
                    await db.commit()
            except IntegrityError as e:
                conflict, existing = await self._classify_conflict(unit, hold_token, reference, intent)
                if conflict == "reference":
                    reference_collisions.inc()
                    logger.warning("reference_collision", reference=reference, attempt=attempt)
                    continue
                await self._compensate(unit, hold_token, reference)
                if conflict == "idempotency":
                    return self._replay(existing, intent), "replayed"
                raise PersistenceUnavailable("Booking could not be recorded") from e
            except STORAGE_ERRORS as e:
                logger.error("ledger_write_failed", unit_id=unit.id, reference=reference, error=str(e))
                await self._compensate(unit, hold_token, reference)
                raise PersistenceUnavailable("Booking could not be recorded") from e

            await self.admission.sync(resource.id, available_count)
            logger.info(
                "reservation_confirmed",
                booking_id=booking.id,
                reference=booking.reference,
                resource_id=resource.id,
                unit_id=unit.id,
                owner_id=owner_id,
                attempt=attempt,
            )
            return booking, "confirmed"

        await self._compensate(unit, hold_token, None)
        raise ReferenceExhausted(self.max_reference_attempts)

    async def _classify_conflict(
        self,
        unit: InventoryUnit,
        hold_token: str,
        reference: str,
        intent: ReservationIntent,
    ) -> tuple[str, Optional[Booking]]:
        """Work out which uniqueness rule the failed insert broke."""
        try:
            async with self.session_factory() as db:
                if intent.idempotency_key:
                    existing = await booking_ledger.get_by_idempotency_key(db, intent.idempotency_key)
                    if existing is not None:
                        return "idempotency", existing
                if await booking_ledger.reference_exists(db, reference):
                    return "reference", None
        except STORAGE_ERRORS as e:
            logger.error("conflict_lookup_failed", unit_id=unit.id, error=str(e))
            await self._compensate(unit, hold_token, reference)
            raise PersistenceUnavailable("Booking could not be recorded") from e
        return "other", None

    async def _compensate(self, unit: InventoryUnit, hold_token: str, reference: Optional[str]) -> None:
        """Release a hold whose booking could not be written."""
        try:
            async with self.session_factory() as db:
                released = await inventory_store.release_hold(db, unit.id, hold_token)
                available_count = (
                    await db.execute(select(Resource.available_count).where(Resource.id == unit.resource_id))
                ).scalar_one()
                await db.commit()
        except STORAGE_ERRORS as e:
            record_compensation(False)
            logger.critical(
                "reconciliation_required",
                unit_id=unit.id,
                resource_id=unit.resource_id,
                hold_token=hold_token,
                reference=reference,
                error=str(e),
            )
            raise PartialCommitFailure(
                f"Seat {unit.id} was claimed but neither booked nor released",
                unit_id=unit.id,
                hold_token=hold_token,
            ) from e
        record_compensation(True)
        logger.warning("claim_compensated", unit_id=unit.id, released=released, reference=reference)
        if released:
            await self.admission.sync(unit.resource_id, available_count)

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel(self, booking_id: int) -> tuple[CancelOutcome, Optional[Booking]]:
        async with self._session("cancel") as db:
            booking = await booking_ledger.get_by_id(db, booking_id)
            if booking is None:
                record_cancellation(CancelOutcome.NOT_FOUND.value)
                return CancelOutcome.NOT_FOUND, None

            if booking.status == BookingStatus.CANCELLED:
                record_cancellation(CancelOutcome.ALREADY_CANCELLED.value)
                return CancelOutcome.ALREADY_CANCELLED, booking

            if not await booking_ledger.mark_cancelled(db, booking.id):
                # A concurrent cancel got there first
                await db.rollback()
                record_cancellation(CancelOutcome.ALREADY_CANCELLED.value)
                return CancelOutcome.ALREADY_CANCELLED, await booking_ledger.get_by_id(db, booking_id)

            if not await inventory_store.release(db, booking.unit_id, booking.id):
                await db.rollback()
                logger.critical(
                    "reconciliation_required",
                    booking_id=booking.id,
                    reference=booking.reference,
                    unit_id=booking.unit_id,
                    detail="confirmed booking does not own its seat",
                )
                raise PartialCommitFailure(
                    f"Booking {booking.reference} does not own seat {booking.unit_id}",
                    unit_id=booking.unit_id,
                )

            resource_id = booking.resource_id
            available_count = (
                await db.execute(select(Resource.available_count).where(Resource.id == resource_id))
            ).scalar_one()
            await db.commit()
            booking = await booking_ledger.get_by_id(db, booking_id)

        await self.admission.sync(resource_id, available_count)
        record_cancellation(CancelOutcome.CANCELLED.value)
        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            reference=booking.reference,
            unit_id=booking.unit_id,
        )
        return CancelOutcome.CANCELLED, booking

    # ------------------------------------------------------------------
    # Read contracts
    # ------------------------------------------------------------------

    async def get_booking_by_reference(self, reference: str) -> Optional[Booking]:
        async with self._session("read") as db:
            return await booking_ledger.get_by_reference(db, reference)

    async def get_booking_by_idempotency_key(self, idempotency_key: str) -> Optional[Booking]:
        async with self._session("read") as db:
            return await booking_ledger.get_by_idempotency_key(db, idempotency_key)

    async def list_bookings_by_owner(self, owner_id: str, scope: Optional[str] = None) -> list[Booking]:
        async with self._session("read") as db:
            return await booking_ledger.list_by_owner(db, owner_id, scope)

    async def list_available_units(self, resource_id: int) -> list[InventoryUnit]:
        await self.release_expired_holds(resource_id)
        async with self._session("read") as db:
            return await inventory_store.list_units(db, resource_id, available_only=True)

    # ------------------------------------------------------------------
    # Expired holds
    # ------------------------------------------------------------------

    async def release_expired_holds(self, resource_id: Optional[int] = None) -> dict[int, int]:
        """
        Put seats of crashed or abandoned reservations back on sale.

        Returns the number of seats released per resource id.
        """
        async with self._session("sweep") as db:
            released = await inventory_store.release_expired_holds(db, resource_id)
            if not released:
                return released
            rows = await db.execute(
                select(Resource.id, Resource.available_count).where(Resource.id.in_(list(released)))
            )
            counts = dict(rows.all())
            await db.commit()

        for released_resource_id, available_count in counts.items():
            await self.admission.sync(released_resource_id, available_count)
        expired_holds_released.inc(sum(released.values()))
        logger.info("expired_holds_released", released=released)
        return released


_service: Optional[ReservationService] = None


def get_reservation_service() -> ReservationService:
    """Process-wide coordinator bound to the application session factory."""
    global _service
    if _service is None:
        _service = ReservationService(AsyncSessionLocal)
    return _service
