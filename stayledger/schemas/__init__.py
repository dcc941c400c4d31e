"""Pydantic schemas for API validation."""

from stayledger.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    CancellationResponse,
    PriceBreakdownResponse,
    QuoteRequest,
)
from stayledger.schemas.dispute import (
    DisputeClose,
    DisputeCreate,
    DisputeResolve,
    DisputeResponse,
    DisputeReview,
)
from stayledger.schemas.payment import (
    ManualSettle,
    PaymentInitialize,
    PaymentResponse,
    RefundCreate,
    RefundEntryResponse,
    RefundSummaryResponse,
    VerificationResponse,
)

__all__ = [
    # Booking
    "QuoteRequest",
    "PriceBreakdownResponse",
    "BookingCreate",
    "BookingCancel",
    "BookingResponse",
    "CancellationResponse",
    # Payment
    "PaymentInitialize",
    "PaymentResponse",
    "VerificationResponse",
    "ManualSettle",
    # Refund
    "RefundCreate",
    "RefundEntryResponse",
    "RefundSummaryResponse",
    # Dispute
    "DisputeCreate",
    "DisputeReview",
    "DisputeResolve",
    "DisputeClose",
    "DisputeResponse",
]
