"""
Inventory unit: one seat or ticket slot of a resource.

Status moves available -> held -> booked and back to available, and only
through the conditional updates in services/inventory_store.py. Every
transition bumps `version`, which is what concurrent claimers compare
against.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin


class UnitStatus:
    AVAILABLE = "available"
    HELD = "held"
    BOOKED = "booked"


class InventoryUnit(Base, TimestampMixin):
    __tablename__ = "inventory_units"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    label = Column(String(20), nullable=False)  # seat number, e.g. "12A"
    status = Column(String(20), nullable=False, default=UnitStatus.AVAILABLE)
    version = Column(Integer, nullable=False, default=1)

    # Set while held: who holds it and until when
    hold_token = Column(String(128), nullable=True)
    held_until = Column(DateTime(timezone=True), nullable=True)

    # Set while booked
    booking_id = Column(Integer, nullable=True, index=True)

    resource = relationship("Resource", back_populates="units")

    __table_args__ = (
        UniqueConstraint("resource_id", "label", name="uq_unit_resource_label"),
        CheckConstraint("status IN ('available', 'held', 'booked')", name="check_unit_status"),
        CheckConstraint("version > 0", name="check_unit_version_positive"),
        Index("ix_inventory_units_resource_status", "resource_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<InventoryUnit(id={self.id}, resource={self.resource_id}, label={self.label}, status={self.status})>"
