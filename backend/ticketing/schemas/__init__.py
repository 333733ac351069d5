from ticketing.schemas.resource import ResourceCreate, ResourceResponse, ResourceListResponse, UnitResponse
from ticketing.schemas.booking import (
    PassengerDetails, ReservationIntent, Rejection,
    BookingResponse, BookingCancelRequest, BookingCancelResponse,
)

__all__ = [
    "ResourceCreate", "ResourceResponse", "ResourceListResponse", "UnitResponse",
    "PassengerDetails", "ReservationIntent", "Rejection",
    "BookingResponse", "BookingCancelRequest", "BookingCancelResponse",
]
