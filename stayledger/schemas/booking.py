"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QuoteRequest(BaseModel):
    """Schema for quoting a stay."""

    model_config = ConfigDict(extra="forbid")

    property_id: UUID
    check_in: date
    check_out: date
    guest_count: int = Field(..., strict=True, ge=1)


class PriceBreakdownResponse(BaseModel):
    """Schema for an itemized price breakdown."""

    model_config = ConfigDict(from_attributes=True)

    nightly_rate: int
    nights: int
    subtotal: int
    cleaning_fee: int
    service_fee: int
    service_fee_platform: int
    service_fee_processing: int
    security_deposit: int
    taxes: int
    total: int
    currency: str
    service_fee_percent: Decimal
    platform_fee_share_percent: Decimal
    tax_rate_percent: Decimal
    commission_amount: int
    realtor_payout: int


class BookingCreate(QuoteRequest):
    """Schema for creating a booking."""

    guest_id: UUID
    # Total the guest was shown; a different fresh quote is rejected
    expected_total: int | None = Field(None, strict=True, ge=0)
    special_requests: str | None = Field(None, max_length=1000)


class BookingCancel(BaseModel):
    """Schema for cancelling a booking."""

    model_config = ConfigDict(extra="forbid")

    cancelled_by: Literal["GUEST", "REALTOR", "ADMIN"]
    actor_id: UUID | None = None
    reason: str = Field(..., min_length=1, max_length=1000)


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    property_id: UUID
    guest_id: UUID
    realtor_id: UUID

    # Dates
    check_in: date
    check_out: date
    guest_count: int
    special_requests: str | None

    # Frozen pricing
    breakdown: PriceBreakdownResponse

    # Lifecycle
    status: str
    version: int
    payment_reference: str | None
    payment_expires_at: datetime | None
    cancelled_by: str | None
    cancellation_reason: str | None
    failure_reason: str | None

    # Timestamps
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None
    created_at: datetime | None


class CancellationResponse(BaseModel):
    """Schema for a cancellation outcome."""

    booking: BookingResponse
    refunded_amount: int
