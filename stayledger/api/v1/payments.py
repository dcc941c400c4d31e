"""Payment endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from stayledger.api.deps import DbSession
from stayledger.core.exceptions import GatewayUnavailable
from stayledger.models.payment import PaymentRecord
from stayledger.schemas.payment import (
    ManualDecline,
    ManualSettle,
    PaymentInitialize,
    PaymentResponse,
    VerificationResponse,
)
from stayledger.services.payment_service import VerificationResult, payment_service
from stayledger.tasks import enqueue_reverification

router = APIRouter()


@router.post("/initialize", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def initialize_payment(payment_data: PaymentInitialize, db: DbSession) -> PaymentRecord:
    """Open the gateway transaction for a booking. Repeated calls return the same reference."""
    return await payment_service.initialize(db, payment_data.booking_id, email=payment_data.email)


@router.post("/verify/{reference}", response_model=VerificationResponse)
async def verify_payment(reference: str, db: DbSession) -> VerificationResult:
    """Reconcile a payment with the gateway.

    On a transient gateway failure a background re-verification is queued
    and 503 is returned with Retry-After.
    """
    try:
        return await payment_service.verify(db, reference)
    except GatewayUnavailable:
        enqueue_reverification(reference)
        raise


@router.get("/bookings/{booking_id}", response_model=PaymentResponse)
async def get_booking_payment(booking_id: UUID, db: DbSession) -> PaymentRecord:
    """Get the payment record of a booking."""
    return await payment_service.get_for_booking(db, booking_id)


@router.post(
    "/manual/{reference}/settle",
    response_model=PaymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def settle_manual_transfer(
    reference: str, settle_data: ManualSettle, db: DbSession
) -> PaymentRecord:
    """Record a received bank transfer on the manual gateway.

    Confirmation still happens through verification.
    """
    return await payment_service.record_transfer(
        db,
        reference,
        amount=settle_data.amount,
        currency=settle_data.currency,
        recorded_by=settle_data.recorded_by,
    )


@router.post(
    "/manual/{reference}/decline",
    response_model=PaymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def decline_manual_transfer(
    reference: str, decline_data: ManualDecline, db: DbSession
) -> PaymentRecord:
    """Record that an expected bank transfer will not arrive; verification fails it."""
    return await payment_service.decline_transfer(
        db, reference, recorded_by=decline_data.recorded_by
    )
