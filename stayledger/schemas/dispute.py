"""Dispute Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from stayledger.domain.dispute_state import DisputeCategory, ReporterRole


class DisputeCreate(BaseModel):
    """Schema for opening a dispute."""

    model_config = ConfigDict(extra="forbid")

    booking_id: UUID
    reporter_id: UUID
    reporter_role: ReporterRole
    category: DisputeCategory
    description: str = Field(..., min_length=10, max_length=5000)


class DisputeReview(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reviewer_id: UUID | None = None


class DisputeResolve(BaseModel):
    """Schema for an admin resolution."""

    model_config = ConfigDict(extra="forbid")

    refund_amount: int = Field(0, strict=True, ge=0)
    realtor_penalty: bool = False
    notes: str | None = Field(None, max_length=5000)
    resolved_by: UUID | None = None


class DisputeClose(BaseModel):
    model_config = ConfigDict(extra="forbid")

    closed_by: UUID | None = None
    notes: str | None = Field(None, max_length=5000)


class DisputeResponse(BaseModel):
    """Schema for dispute response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    reporter_id: UUID
    reporter_role: str
    category: str
    description: str
    status: str
    refund_amount: int | None
    realtor_penalty: bool
    resolution_notes: str | None
    resolved_by: UUID | None
    reviewed_at: datetime | None
    resolved_at: datetime | None
    closed_at: datetime | None
    created_at: datetime | None
