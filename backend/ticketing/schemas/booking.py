"""
Pydantic schemas for reservation intents, bookings and rejections.

ReservationIntent forbids unknown fields: a payload that does not match
the contract never reaches the coordinator.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from ticketing.schemas.resource import ResourceSummary


class PassengerDetails(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    id_number: str = Field(..., min_length=5, max_length=64)
    phone: str = Field(..., min_length=10, max_length=32)
    next_of_kin_name: str = Field(..., min_length=2, max_length=255)
    next_of_kin_phone: str = Field(..., min_length=10, max_length=32)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class ReservationIntent(BaseModel):
    resource_id: int = Field(..., gt=0)
    unit_id: int = Field(..., gt=0)
    passenger: PassengerDetails
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_status: Literal["pending", "completed"] = "completed"
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=128)

    model_config = {"extra": "forbid", "str_strip_whitespace": True}


class Rejection(BaseModel):
    """Typed refusal of a reservation intent."""

    reason: Literal["invalid_intent", "seat_unavailable"]
    message: str


class BookingResponse(BaseModel):
    id: int
    reference: str
    resource_id: int
    unit_id: int
    seat_label: str
    resource: ResourceSummary
    owner_id: Optional[str]
    passenger_name: str
    passenger_phone: str
    travel_date: datetime
    payment_method: str
    payment_status: str
    status: str
    total_amount: float
    cancelled_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCancelRequest(BaseModel):
    # Proof of ownership for bookings made without a login
    passenger_id_number: Optional[str] = Field(None, max_length=64)

    model_config = {"extra": "forbid"}


class BookingCancelResponse(BaseModel):
    message: str
    reference: str
    status: str
