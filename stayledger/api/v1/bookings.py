"""Booking endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from stayledger.api.deps import DbSession
from stayledger.models.booking import Booking
from stayledger.models.payment import RefundActor
from stayledger.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    CancellationResponse,
)
from stayledger.services.booking_service import booking_service

router = APIRouter()


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(booking_data: BookingCreate, db: DbSession) -> Booking:
    """Create a booking awaiting payment.

    Quotes, reserves the dates and assigns the payment reference atomically.
    """
    return await booking_service.create_booking(
        db,
        property_id=booking_data.property_id,
        guest_id=booking_data.guest_id,
        check_in=booking_data.check_in,
        check_out=booking_data.check_out,
        guest_count=booking_data.guest_count,
        expected_total=booking_data.expected_total,
        special_requests=booking_data.special_requests,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: UUID, db: DbSession) -> Booking:
    """Get booking details."""
    return await booking_service.get_booking(db, booking_id)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: UUID,
    cancel_data: BookingCancel,
    db: DbSession,
) -> dict:
    """Cancel a booking; paid bookings are refunded their remaining balance."""
    result = await booking_service.cancel_booking(
        db,
        booking_id,
        cancelled_by=RefundActor(cancel_data.cancelled_by),
        reason=cancel_data.reason,
        actor_id=cancel_data.actor_id,
    )
    return {"booking": result.booking, "refunded_amount": result.refunded_amount}


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(booking_id: UUID, db: DbSession) -> Booking:
    """Mark a confirmed booking completed after check-out."""
    return await booking_service.complete_booking(db, booking_id)
