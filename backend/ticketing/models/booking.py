"""
Booking ledger row.

Key design decisions:
- `reference` is unique and never changes; it is what passengers quote
- `idempotency_key` is unique when present so a retried reservation maps
  back to the booking it already produced
- Partial unique index: at most one confirmed booking per inventory unit
- Rows are never deleted; cancellation is a status transition
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin


class BookingStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(10), nullable=False, unique=True, index=True)
    idempotency_key = Column(String(128), nullable=True, unique=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("inventory_units.id"), nullable=False, index=True)
    owner_id = Column(String(128), nullable=True, index=True)  # null for anonymous bookings

    passenger_name = Column(String(255), nullable=False)
    passenger_id_number = Column(String(64), nullable=False)
    passenger_phone = Column(String(32), nullable=False)
    next_of_kin_name = Column(String(255), nullable=False)
    next_of_kin_phone = Column(String(32), nullable=False)

    travel_date = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(String(50), nullable=False)
    payment_status = Column(String(20), nullable=False, default="completed")
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED)
    total_amount = Column(Numeric(10, 2), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Many-to-one, loaded with every booking so responses can show route and seat
    resource = relationship("Resource", lazy="joined")
    unit = relationship("InventoryUnit", lazy="joined")

    # Not persisted; set by the coordinator when an idempotency key is replayed
    replayed = False

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        Index(
            "uq_bookings_confirmed_unit",
            "unit_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        Index("ix_bookings_owner_created", "owner_id", "created_at"),
    )

    @property
    def seat_label(self) -> str:
        return self.unit.label

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, reference={self.reference}, unit={self.unit_id}, status={self.status})>"
