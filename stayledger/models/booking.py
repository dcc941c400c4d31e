"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from stayledger.database import Base
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.pricing import PriceBreakdown

if TYPE_CHECKING:
    from stayledger.models.payment import PaymentRecord, RefundEntry
    from stayledger.models.property import Property

# Columns copied from the PriceBreakdown at creation; never updated afterwards.
FROZEN_PRICE_COLUMNS = (
    "nightly_rate",
    "nights",
    "subtotal",
    "cleaning_fee",
    "service_fee",
    "service_fee_platform",
    "service_fee_processing",
    "security_deposit",
    "taxes",
    "total",
    "currency",
    "service_fee_percent",
    "platform_fee_share_percent",
    "tax_rate_percent",
    "commission_amount",
    "realtor_payout",
)


class Booking(Base):
    """Booking model."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # SL-XXXXXXXX
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    realtor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    # Stay [check_in, check_out)
    check_in: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    special_requests: Mapped[str | None] = mapped_column(Text)

    # Frozen price breakdown (smallest currency unit)
    nightly_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    service_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    service_fee_platform: Mapped[int] = mapped_column(Integer, nullable=False)
    service_fee_processing: Mapped[int] = mapped_column(Integer, nullable=False)
    security_deposit: Mapped[int] = mapped_column(Integer, nullable=False)
    taxes: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    service_fee_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    platform_fee_share_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_rate_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    # Realtor side
    commission_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    realtor_payout: Mapped[int] = mapped_column(Integer, nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.DRAFT.value, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payment_reference: Mapped[str | None] = mapped_column(String(64), unique=True)
    payment_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Cancellation
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # GUEST, REALTOR, ADMIN, SYSTEM
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    failure_reason: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deposit_returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    listing: Mapped["Property"] = relationship("Property", lazy="raise")
    payment: Mapped["PaymentRecord | None"] = relationship(
        "PaymentRecord", back_populates="booking", uselist=False, lazy="raise"
    )
    refunds: Mapped[list["RefundEntry"]] = relationship(
        "RefundEntry", back_populates="booking", lazy="raise"
    )

    @property
    def breakdown(self) -> PriceBreakdown:
        """Rebuild the frozen breakdown; validates the sum invariant."""
        return PriceBreakdown(
            **{column: getattr(self, column) for column in FROZEN_PRICE_COLUMNS}
        )

    def apply_breakdown(self, breakdown: PriceBreakdown) -> None:
        """Copy a fresh quote onto a booking that has not been persisted yet."""
        for column in FROZEN_PRICE_COLUMNS:
            setattr(self, column, getattr(breakdown, column))


class AvailabilityReservation(Base):
    """A committed date range on a property.

    At most one *active* reservation may overlap any night of a property.
    PostgreSQL enforces this with an exclusion constraint (see the Alembic
    migration); the availability service enforces it under a per-property lock.
    """

    __tablename__ = "availability_reservations"
    __table_args__ = (
        Index("ix_availability_reservations_property_active", "property_id", "active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id"), nullable=False
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, unique=True
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
