"""
Pydantic schemas for resource and inventory request/response validation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class ResourceCreate(BaseModel):
    kind: Literal["bus", "flight", "event"]
    name: str = Field(..., min_length=1, max_length=255)
    code: Optional[str] = Field(None, max_length=50)
    origin: Optional[str] = Field(None, max_length=120)
    destination: Optional[str] = Field(None, max_length=120)
    venue: Optional[str] = Field(None, max_length=255)
    departs_at: datetime
    arrives_at: Optional[datetime] = None
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    capacity: int = Field(..., gt=0, le=1000)
    seat_labels: Optional[list[str]] = None
    amenities: list[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @field_validator("departs_at", "arrives_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_consistency(self) -> "ResourceCreate":
        if self.kind in ("bus", "flight") and not (self.origin and self.destination):
            raise ValueError("origin and destination are required for bus and flight resources")
        if self.arrives_at is not None and self.arrives_at <= self.departs_at:
            raise ValueError("arrives_at must be after departs_at")
        if self.seat_labels is not None:
            if len(self.seat_labels) != self.capacity:
                raise ValueError("seat_labels must contain exactly `capacity` labels")
            if len(set(self.seat_labels)) != len(self.seat_labels):
                raise ValueError("seat_labels must be unique")
            if any(not label or len(label) > 20 for label in self.seat_labels):
                raise ValueError("seat labels must be 1-20 characters")
        return self


class ResourceResponse(BaseModel):
    id: int
    kind: str
    name: str
    code: Optional[str]
    origin: Optional[str]
    destination: Optional[str]
    venue: Optional[str]
    departs_at: datetime
    arrives_at: Optional[datetime]
    price: float
    capacity: int
    available_count: int
    amenities: list[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class ResourceSummary(BaseModel):
    """What a booking shows about the resource it is for."""
    id: int
    kind: str
    name: str
    code: Optional[str]
    origin: Optional[str]
    destination: Optional[str]
    venue: Optional[str]
    departs_at: datetime
    arrives_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ResourceListResponse(BaseModel):
    resources: list[ResourceResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class UnitResponse(BaseModel):
    id: int
    resource_id: int
    label: str
    status: str

    model_config = {"from_attributes": True}
