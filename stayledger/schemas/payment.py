"""Payment and refund Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payment_state import PaymentStatus


class PaymentInitialize(BaseModel):
    """Schema for initializing a booking's payment."""

    model_config = ConfigDict(extra="forbid")

    booking_id: UUID
    email: str | None = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=254)


class PaymentResponse(BaseModel):
    """Schema for payment record response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    reference: str
    amount: int
    currency: str
    gateway: str
    status: str
    authorization_url: str | None
    failure_reason: str | None
    initialized_at: datetime | None
    verified_at: datetime | None
    failed_at: datetime | None
    received_amount: int | None = None
    received_currency: str | None = None
    transfer_recorded_at: datetime | None = None
    transfer_declined_at: datetime | None = None


class VerificationResponse(BaseModel):
    """Schema for a verification attempt outcome."""

    model_config = ConfigDict(from_attributes=True)

    reference: str
    payment_status: PaymentStatus
    booking_status: BookingStatus
    already_processed: bool
    refunded_amount: int


class ManualSettle(BaseModel):
    """Schema for recording a received bank transfer."""

    model_config = ConfigDict(extra="forbid")

    amount: int | None = Field(None, strict=True, gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    recorded_by: UUID | None = None


class ManualDecline(BaseModel):
    """Schema for declining an expected bank transfer."""

    model_config = ConfigDict(extra="forbid")

    recorded_by: UUID | None = None


class RefundCreate(BaseModel):
    """Schema for requesting a refund."""

    model_config = ConfigDict(extra="forbid")

    booking_id: UUID
    amount: int = Field(..., strict=True, gt=0)
    reason: str = Field(..., min_length=1, max_length=1000)
    actor: Literal["GUEST", "REALTOR", "ADMIN"]
    actor_id: UUID | None = None


class RefundEntryResponse(BaseModel):
    """Schema for a refund ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    amount: int
    currency: str
    reason: str
    actor: str
    actor_id: UUID | None
    dispute_id: UUID | None
    created_at: datetime | None


class RefundSummaryResponse(BaseModel):
    """Schema for a booking's refund ledger."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: UUID
    currency: str
    total: int
    total_refunded: int
    remaining_refundable: int
    fully_refunded: bool
    entries: list[RefundEntryResponse]
