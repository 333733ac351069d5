"""Initial schema: resources, inventory units, bookings with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("origin", sa.String(120), nullable=True),
        sa.Column("destination", sa.String(120), nullable=True),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("departs_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrives_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("available_count", sa.Integer(), nullable=False),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("kind IN ('bus', 'flight', 'event')", name="check_resource_kind"),
        sa.CheckConstraint("capacity > 0", name="check_capacity_positive"),
        sa.CheckConstraint("available_count >= 0", name="check_available_count_non_negative"),
        sa.CheckConstraint("available_count <= capacity", name="check_available_lte_capacity"),
        sa.CheckConstraint("price >= 0", name="check_price_non_negative"),
    )
    op.create_index("ix_resources_id", "resources", ["id"])
    # Search lists upcoming departures soonest first
    op.create_index("ix_resources_departs_at", "resources", ["departs_at"])
    op.create_index("ix_resources_kind_departs_at", "resources", ["kind", "departs_at"])

    op.create_table(
        "inventory_units",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("label", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("hold_token", sa.String(128), nullable=True),
        sa.Column("held_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("booking_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("resource_id", "label", name="uq_unit_resource_label"),
        sa.CheckConstraint("status IN ('available', 'held', 'booked')", name="check_unit_status"),
        sa.CheckConstraint("version > 0", name="check_unit_version_positive"),
    )
    op.create_index("ix_inventory_units_id", "inventory_units", ["id"])
    op.create_index("ix_inventory_units_booking_id", "inventory_units", ["booking_id"])
    # Seat maps and available-seat listings filter on both
    op.create_index("ix_inventory_units_resource_status", "inventory_units", ["resource_id", "status"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reference", sa.String(10), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("unit_id", sa.Integer(), sa.ForeignKey("inventory_units.id"), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=True),
        sa.Column("passenger_name", sa.String(255), nullable=False),
        sa.Column("passenger_id_number", sa.String(64), nullable=False),
        sa.Column("passenger_phone", sa.String(32), nullable=False),
        sa.Column("next_of_kin_name", sa.String(255), nullable=False),
        sa.Column("next_of_kin_phone", sa.String(32), nullable=False),
        sa.Column("travel_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'completed'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("idempotency_key", name="uq_bookings_idempotency_key"),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    # Confirmation page looks bookings up by reference; uniqueness is the
    # last line of defence against a duplicated reference
    op.create_index("ix_bookings_reference", "bookings", ["reference"], unique=True)
    op.create_index("ix_bookings_resource_id", "bookings", ["resource_id"])
    op.create_index("ix_bookings_unit_id", "bookings", ["unit_id"])
    op.create_index("ix_bookings_owner_id", "bookings", ["owner_id"])
    op.create_index("ix_bookings_owner_created", "bookings", ["owner_id", "created_at"])
    # One confirmed booking per seat, whatever the application does
    op.create_index(
        "uq_bookings_confirmed_unit",
        "bookings",
        ["unit_id"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("inventory_units")
    op.drop_table("resources")
