"""Core utilities: errors, locks, idempotency, ledger immutability."""

from stayledger.core.exceptions import (
    AppException,
    AvailabilityConflict,
    BookingNotPayable,
    Conflict,
    ConcurrentModification,
    ExceedsMaxOccupancy,
    GatewayRejected,
    GatewayUnavailable,
    IllegalTransition,
    InvalidWebhookSignature,
    InvalidDateRange,
    InvalidInput,
    NotFoundError,
    OverRefund,
    PropertyNotBookable,
    QuoteChanged,
    ReconciliationMismatch,
    RefundRejected,
)

__all__ = [
    "AppException",
    "AvailabilityConflict",
    "BookingNotPayable",
    "Conflict",
    "ConcurrentModification",
    "ExceedsMaxOccupancy",
    "GatewayRejected",
    "GatewayUnavailable",
    "IllegalTransition",
    "InvalidWebhookSignature",
    "InvalidDateRange",
    "InvalidInput",
    "NotFoundError",
    "OverRefund",
    "PropertyNotBookable",
    "QuoteChanged",
    "ReconciliationMismatch",
    "RefundRejected",
]
