"""Refund ledger endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from stayledger.api.deps import DbSession
from stayledger.models.payment import RefundActor, RefundEntry
from stayledger.schemas.payment import RefundCreate, RefundEntryResponse, RefundSummaryResponse
from stayledger.services.refund_service import refund_service

router = APIRouter()


@router.post("", response_model=RefundEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_refund(refund_data: RefundCreate, db: DbSession) -> RefundEntry:
    """Append a refund to a paid booking's ledger."""
    return await refund_service.refund(
        db,
        refund_data.booking_id,
        refund_data.amount,
        refund_data.reason,
        RefundActor(refund_data.actor),
        actor_id=refund_data.actor_id,
    )


@router.get("/bookings/{booking_id}", response_model=RefundSummaryResponse)
async def get_refund_ledger(booking_id: UUID, db: DbSession) -> RefundSummaryResponse:
    """Refund entries with running totals for a booking."""
    summary = await refund_service.summary(db, booking_id)
    return RefundSummaryResponse.model_validate(summary)
