"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from stayledger.database import Base
from stayledger.domain.payment_state import PaymentStatus
from stayledger.utils.dates import utcnow

if TYPE_CHECKING:
    from stayledger.models.booking import Booking


class RefundActor(str, Enum):
    """Who initiated or approved a refund."""

    GUEST = "GUEST"
    REALTOR = "REALTOR"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class PaymentRecord(Base):
    """Gateway handshake for a booking (one-to-one)."""

    __tablename__ = "payment_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, unique=True
    )
    reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    # Amount is re-derived from the booking's frozen total
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Gateway
    gateway: Mapped[str] = mapped_column(String(30), nullable=False)  # paystack, manual
    authorization_url: Mapped[str | None] = mapped_column(Text)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(100))
    gateway_response: Mapped[dict | None] = mapped_column(JSON)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.UNINITIALIZED.value, index=True
    )
    failure_reason: Mapped[str | None] = mapped_column(Text)

    # Set while a gateway initialization is in flight
    initializing_since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Bank transfer as recorded by an operator (manual gateway only)
    received_amount: Mapped[int | None] = mapped_column(Integer)
    received_currency: Mapped[str | None] = mapped_column(String(3))
    transfer_recorded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    transfer_declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    initialized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payment", lazy="raise")


class RefundEntry(Base):
    """Append-only refund ledger row.

    The sum of a booking's entries never exceeds its frozen total.
    """

    __tablename__ = "refund_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # > 0
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(10), nullable=False)  # GUEST, REALTOR, ADMIN, SYSTEM
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    dispute_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("disputes.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="refunds", lazy="raise")
