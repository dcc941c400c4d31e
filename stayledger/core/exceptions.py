"""Custom application exceptions."""

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "error"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# ==================== INVALID INPUT (caller's fault, no retry) ====================


class InvalidInput(AppException):
    """Bad dates, guest counts or amounts."""

    code = "invalid_input"

    def __init__(self, detail: str = "Invalid input") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class InvalidDateRange(InvalidInput):
    """Check-out not after check-in, or check-in in the past."""

    code = "invalid_date_range"

    def __init__(self, detail: str = "check_out must be after check_in") -> None:
        super().__init__(detail)


class ExceedsMaxOccupancy(InvalidInput):
    """Guest count above the property's maximum occupancy."""

    code = "exceeds_max_occupancy"

    def __init__(self, max_occupancy: int) -> None:
        self.max_occupancy = max_occupancy
        super().__init__(f"Maximum {max_occupancy} guests allowed")


class PropertyNotBookable(InvalidInput):
    """Property is inactive or not approved."""

    code = "property_not_bookable"

    def __init__(self, detail: str = "This property is not available for booking") -> None:
        super().__init__(detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    code = "not_found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


# ==================== CONFLICTS (re-quote / re-fetch) ====================


class Conflict(AppException):
    """State conflict; the caller must re-fetch or re-quote."""

    code = "conflict"

    def __init__(self, detail: str = "Conflict with current state") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class AvailabilityConflict(Conflict):
    """Requested dates overlap an active reservation."""

    code = "availability_conflict"

    def __init__(self, detail: str = "The selected dates are not available") -> None:
        super().__init__(detail)


class IllegalTransition(Conflict):
    """Lifecycle transition not allowed from the current state."""

    code = "illegal_transition"

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Invalid {entity} transition: {current} → {target}")


class QuoteChanged(Conflict):
    """The authoritative price differs from the price the client saw."""

    code = "quote_changed"

    def __init__(self, expected_total: int, actual_total: int) -> None:
        self.expected_total = expected_total
        self.actual_total = actual_total
        super().__init__(
            f"Price changed from {expected_total} to {actual_total}; please re-quote"
        )


class ConcurrentModification(Conflict):
    """A concurrent writer changed the row first."""

    code = "concurrent_modification"

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} {identifier} was modified concurrently; please retry")


# ==================== PAYMENTS ====================


class ReconciliationMismatch(AppException):
    """Gateway-reported amount or currency differs from the frozen total."""

    code = "reconciliation_mismatch"

    def __init__(
        self,
        reference: str,
        expected_amount: int,
        expected_currency: str,
        actual_amount: int | None,
        actual_currency: str | None,
    ) -> None:
        self.reference = reference
        self.expected_amount = expected_amount
        self.expected_currency = expected_currency
        self.actual_amount = actual_amount
        self.actual_currency = actual_currency
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Payment {reference} reconciliation failed: expected "
                f"{expected_amount} {expected_currency}, gateway reported "
                f"{actual_amount} {actual_currency}"
            ),
        )


class GatewayUnavailable(AppException):
    """Transient gateway failure or timeout."""

    code = "gateway_unavailable"

    def __init__(self, gateway: str, detail: str | None = None, retry_after: int = 30) -> None:
        self.gateway = gateway
        message = f"Payment gateway '{gateway}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=message,
            headers={"Retry-After": str(retry_after)},
        )


class InvalidWebhookSignature(AppException):
    """Webhook body does not match its signature header."""

    code = "invalid_signature"

    def __init__(self) -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")


class GatewayRejected(AppException):
    """The gateway refused the request; retrying the same call will not help."""

    code = "gateway_rejected"

    def __init__(self, gateway: str, detail: str) -> None:
        self.gateway = gateway
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Payment gateway '{gateway}' rejected the request: {detail}",
        )


# ==================== REFUNDS (business rules, not retried) ====================


class RefundRejected(AppException):
    """Refund request violates a ledger rule."""

    code = "refund_rejected"

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class OverRefund(RefundRejected):
    """Requested amount exceeds the remaining refundable balance."""

    code = "over_refund"

    def __init__(self, requested: int, remaining: int) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Refund of {requested} exceeds remaining refundable balance of {remaining}"
        )


class BookingNotPayable(RefundRejected):
    """Booking never had a verified payment."""

    code = "booking_not_payable"

    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking {booking_id} has no verified payment to refund")
