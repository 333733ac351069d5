"""
Booking endpoints. Every write goes through the reservation coordinator.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from ticketing.schemas.booking import (
    ReservationIntent,
    Rejection,
    BookingResponse,
    BookingCancelRequest,
    BookingCancelResponse,
)
from ticketing.services.reservation_service import CancelOutcome, ReservationService, get_reservation_service
from ticketing.services.cache_service import invalidate_resource_cache
from ticketing.core.security import get_current_owner_id, get_optional_owner_id
from ticketing.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])

REJECTION_STATUS = {
    "invalid_intent": 422,
    "seat_unavailable": status.HTTP_409_CONFLICT,
}


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"model": BookingResponse, "description": "Idempotency-Key replay of an earlier booking"},
        409: {"model": Rejection, "description": "Seat taken or sold out; select another seat"},
        422: {"model": Rejection, "description": "Intent refers to nothing bookable"},
        503: {"description": "Storage unavailable; safe to retry with the same Idempotency-Key"},
    },
)
async def create_booking(
    intent: ReservationIntent,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    owner_id: Optional[str] = Depends(get_optional_owner_id),
    service: ReservationService = Depends(get_reservation_service),
):
    """
    Reserve a seat and confirm the booking.

    Exactly one of several simultaneous requests for the same seat succeeds;
    the others get 409 and should pick another seat. Anonymous bookings are
    accepted. Send an Idempotency-Key so a retried request returns the
    booking it already created, with 200 instead of 201.
    """
    if idempotency_key and not intent.idempotency_key:
        intent = intent.model_copy(update={"idempotency_key": idempotency_key})

    result = await service.reserve(intent, owner_id=owner_id)
    if isinstance(result, Rejection):
        return JSONResponse(status_code=REJECTION_STATUS[result.reason], content=result.model_dump())

    if result.replayed:
        response.status_code = status.HTTP_200_OK
        return result

    # Availability changed, listings are stale
    await invalidate_resource_cache()
    return result


@router.get("/", response_model=list[BookingResponse])
async def list_my_bookings(
    scope: Optional[Literal["upcoming", "past"]] = Query(None),
    owner_id: str = Depends(get_current_owner_id),
    service: ReservationService = Depends(get_reservation_service),
):
    """Bookings of the authenticated user, newest first."""
    return await service.list_bookings_by_owner(owner_id, scope)


@router.get("/reference/{reference}", response_model=BookingResponse)
async def get_booking_by_reference(
    reference: str,
    service: ReservationService = Depends(get_reservation_service),
):
    """Look up a booking by the reference printed on the ticket."""
    booking = await service.get_booking_by_reference(reference.upper())
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.get("/idempotency/{idempotency_key}", response_model=BookingResponse)
async def get_booking_by_idempotency_key(
    idempotency_key: str,
    service: ReservationService = Depends(get_reservation_service),
):
    """Check whether a timed-out reservation went through before retrying it."""
    booking = await service.get_booking_by_idempotency_key(idempotency_key)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


@router.post("/reference/{reference}/cancel", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    reference: str,
    cancel_request: Optional[BookingCancelRequest] = None,
    owner_id: Optional[str] = Depends(get_optional_owner_id),
    service: ReservationService = Depends(get_reservation_service),
):
    """
    Cancel a booking and put its seat back on sale.

    Bookings made while signed in can only be cancelled by their owner.
    Anonymous bookings need the passenger's ID number.
    """
    booking = await service.get_booking_by_reference(reference.upper())
    if booking is None or (booking.owner_id is not None and booking.owner_id != owner_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    if booking.owner_id is None:
        supplied = cancel_request.passenger_id_number if cancel_request else None
        if supplied != booking.passenger_id_number:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Passenger ID number does not match this booking",
            )

    outcome, cancelled = await service.cancel(booking.id)
    if outcome is CancelOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    if outcome is CancelOutcome.ALREADY_CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Booking is already cancelled")

    await invalidate_resource_cache()
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        reference=cancelled.reference,
        status=cancelled.status,
    )
