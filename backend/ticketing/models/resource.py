"""
Bookable resource: a bus run, a flight or an event instance.

Key design decisions:
- `available_count` is denormalized so listings never COUNT units; it is
  only ever changed in the same transaction as a unit status change
- CHECK constraints are the final safety net against a negative or
  overflowing counter
- Index on `departs_at` for the upcoming-departures listing
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, Index, CheckConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin


class ResourceKind:
    BUS = "bus"
    FLIGHT = "flight"
    EVENT = "event"

    ALL = (BUS, FLIGHT, EVENT)


class Resource(Base, TimestampMixin):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=True)  # bus / flight number
    origin = Column(String(120), nullable=True)
    destination = Column(String(120), nullable=True)
    venue = Column(String(255), nullable=True)
    departs_at = Column(DateTime(timezone=True), nullable=False)
    arrives_at = Column(DateTime(timezone=True), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    available_count = Column(Integer, nullable=False)
    amenities = Column(JSON, nullable=False, default=list)

    units = relationship(
        "InventoryUnit",
        back_populates="resource",
        order_by="InventoryUnit.id",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("kind IN ('bus', 'flight', 'event')", name="check_resource_kind"),
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("available_count >= 0", name="check_available_count_non_negative"),
        CheckConstraint("available_count <= capacity", name="check_available_lte_capacity"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_resources_departs_at", "departs_at"),
        Index("ix_resources_kind_departs_at", "kind", "departs_at"),
    )

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, kind={self.kind}, available={self.available_count}/{self.capacity})>"
