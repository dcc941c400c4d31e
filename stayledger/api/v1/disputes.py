"""Dispute endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from stayledger.api.deps import DbSession
from stayledger.models.admin import Dispute
from stayledger.schemas.dispute import (
    DisputeClose,
    DisputeCreate,
    DisputeResolve,
    DisputeResponse,
    DisputeReview,
)
from stayledger.services.dispute_service import Resolution, dispute_service

router = APIRouter()


@router.post("", response_model=DisputeResponse, status_code=status.HTTP_201_CREATED)
async def open_dispute(dispute_data: DisputeCreate, db: DbSession) -> Dispute:
    """Open a dispute on a confirmed booking."""
    return await dispute_service.open_dispute(
        db,
        booking_id=dispute_data.booking_id,
        reporter_id=dispute_data.reporter_id,
        reporter_role=dispute_data.reporter_role,
        category=dispute_data.category,
        description=dispute_data.description,
    )


@router.get("/{dispute_id}", response_model=DisputeResponse)
async def get_dispute(dispute_id: UUID, db: DbSession) -> Dispute:
    return await dispute_service.get_dispute(db, dispute_id)


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(dispute_id: UUID, review_data: DisputeReview, db: DbSession) -> Dispute:
    return await dispute_service.start_review(db, dispute_id, review_data.reviewer_id)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: UUID,
    resolve_data: DisputeResolve,
    db: DbSession,
) -> Dispute:
    """Apply an admin resolution: refund entry, dispute RESOLVED, booking outcome."""
    return await dispute_service.resolve(
        db,
        dispute_id,
        Resolution(
            refund_amount=resolve_data.refund_amount,
            realtor_penalty=resolve_data.realtor_penalty,
            notes=resolve_data.notes,
        ),
        resolved_by=resolve_data.resolved_by,
    )


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(dispute_id: UUID, close_data: DisputeClose, db: DbSession) -> Dispute:
    """Close without resolution; the booking returns to CONFIRMED."""
    return await dispute_service.close(db, dispute_id, close_data.closed_by, close_data.notes)
