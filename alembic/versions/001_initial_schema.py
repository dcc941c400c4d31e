"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all initial tables for Stayledger:
- Properties (rate cards)
- Bookings and availability reservations
- Payment records and the refund ledger
- Admin (audit logs, disputes)
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

def upgrade() -> None:
    """Create all database tables."""

    # Needed for the "=" operator on UUIDs inside a gist exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # ==================== PROPERTIES ====================
    op.create_table(
        "properties",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("realtor_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("title", sa.String(150), nullable=False),
        sa.Column("nightly_rate", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="NGN"),
        sa.Column("cleaning_fee", sa.Integer, server_default="0"),
        sa.Column("security_deposit", sa.Integer, server_default="0"),
        sa.Column("tax_rate_percent", sa.Numeric(5, 2), server_default="0"),
        sa.Column("service_fee_percent", sa.Numeric(5, 2)),
        sa.Column("platform_fee_share_percent", sa.Numeric(5, 2)),
        sa.Column("max_occupancy", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("is_approved", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("nightly_rate > 0", name="ck_properties_nightly_rate_positive"),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(20), unique=True, nullable=False, index=True),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("properties.id"), nullable=False, index=True),
        sa.Column("guest_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("realtor_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("check_in", sa.Date, nullable=False, index=True),
        sa.Column("check_out", sa.Date, nullable=False, index=True),
        sa.Column("guest_count", sa.Integer, nullable=False),
        sa.Column("special_requests", sa.Text),
        sa.Column("nightly_rate", sa.Integer, nullable=False),
        sa.Column("nights", sa.Integer, nullable=False),
        sa.Column("subtotal", sa.Integer, nullable=False),
        sa.Column("cleaning_fee", sa.Integer, nullable=False),
        sa.Column("service_fee", sa.Integer, nullable=False),
        sa.Column("service_fee_platform", sa.Integer, nullable=False),
        sa.Column("service_fee_processing", sa.Integer, nullable=False),
        sa.Column("security_deposit", sa.Integer, nullable=False),
        sa.Column("taxes", sa.Integer, nullable=False),
        sa.Column("total", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("service_fee_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("platform_fee_share_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("tax_rate_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_amount", sa.Integer, nullable=False),
        sa.Column("realtor_payout", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="DRAFT", index=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("payment_reference", sa.String(64), unique=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.String(10)),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("failure_reason", sa.Text),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("failed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("check_out > check_in", name="ck_bookings_date_range"),
        sa.CheckConstraint(
            "total = subtotal + cleaning_fee + service_fee + security_deposit + taxes",
            name="ck_bookings_total_sum",
        ),
        sa.CheckConstraint(
            "service_fee = service_fee_platform + service_fee_processing",
            name="ck_bookings_service_fee_split",
        ),
    )

    op.create_table(
        "availability_reservations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("property_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("check_in", sa.Date, nullable=False),
        sa.Column("check_out", sa.Date, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("released_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_availability_reservations_property_active",
        "availability_reservations",
        ["property_id", "active"],
    )
    # Two active reservations on one property never share a night
    op.execute(
        """
        ALTER TABLE availability_reservations
        ADD CONSTRAINT ex_availability_reservations_no_overlap
        EXCLUDE USING gist (
            property_id WITH =,
            daterange(check_in, check_out, '[)') WITH &&
        ) WHERE (active)
        """
    )

    # ==================== DISPUTES ====================
    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reporter_role", sa.String(10), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN", index=True),
        sa.Column("refund_amount", sa.Integer),
        sa.Column("realtor_penalty", sa.Boolean, server_default=sa.false()),
        sa.Column("resolution_notes", sa.Text),
        sa.Column("resolved_by", postgresql.UUID(as_uuid=True)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== PAYMENTS ====================
    op.create_table(
        "payment_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, unique=True),
        sa.Column("reference", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("gateway", sa.String(30), nullable=False),
        sa.Column("authorization_url", sa.Text),
        sa.Column("gateway_transaction_id", sa.String(100)),
        sa.Column("gateway_response", postgresql.JSONB),
        sa.Column("status", sa.String(20), nullable=False, server_default="UNINITIALIZED", index=True),
        sa.Column("failure_reason", sa.Text),
        sa.Column("initialized_at", sa.DateTime(timezone=True)),
        sa.Column("verified_at", sa.DateTime(timezone=True)),
        sa.Column("failed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "refund_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bookings.id"), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("actor", sa.String(10), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True)),
        sa.Column("dispute_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("disputes.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.CheckConstraint("amount > 0", name="ck_refund_entries_amount_positive"),
    )

    # ==================== ADMIN ====================
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("actor_role", sa.String(10)),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(50), nullable=False, index=True),
        sa.Column("resource_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("old_values", postgresql.JSONB),
        sa.Column("new_values", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("audit_logs")
    op.drop_table("refund_entries")
    op.drop_table("payment_records")
    op.drop_table("disputes")
    op.drop_table("availability_reservations")
    op.drop_table("bookings")
    op.drop_table("properties")
