"""Dispute resolution service."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.core.exceptions import InvalidInput, NotFoundError
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.dispute_state import (
    DisputeCategory,
    DisputeStatus,
    ReporterRole,
    assert_dispute_transition,
)
from stayledger.models.admin import Dispute
from stayledger.models.payment import RefundActor, RefundEntry
from stayledger.services.audit_service import audit_service
from stayledger.services.booking_service import booking_service
from stayledger.services.notification_service import notification_service
from stayledger.services.refund_service import refund_service
from stayledger.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Admin decision applied to a dispute."""

    refund_amount: int = 0
    realtor_penalty: bool = False
    notes: str | None = None


class DisputeService:
    """Service for the dispute lifecycle.

    Every operation holds the booking lock, so a resolution and its refund
    entry never interleave with payment verification or other refunds.
    """

    async def open_dispute(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reporter_id: UUID,
        reporter_role: ReporterRole,
        category: DisputeCategory,
        description: str,
    ) -> Dispute:
        """Open a dispute on a confirmed booking (booking → DISPUTED)."""
        booking = await booking_service.lock_booking(db, booking_id)
        await booking_service.transition(
            db,
            booking,
            BookingStatus.DISPUTED,
            actor_role=ReporterRole(reporter_role).value,
            actor_id=reporter_id,
        )

        dispute = Dispute(
            booking_id=booking.id,
            reporter_id=reporter_id,
            reporter_role=ReporterRole(reporter_role).value,
            category=DisputeCategory(category).value,
            description=description,
            status=DisputeStatus.OPEN.value,
        )
        db.add(dispute)
        await db.flush()

        await audit_service.log_action(
            db,
            action="dispute_open",
            resource_type="dispute",
            resource_id=dispute.id,
            actor_id=reporter_id,
            actor_role=dispute.reporter_role,
            new_values={"booking_id": str(booking.id), "category": dispute.category},
        )
        notification_service.notify_after_commit(
            db,
            notification_service.DISPUTE_OPENED,
            booking.id,
            {"dispute_id": str(dispute.id), "category": dispute.category},
        )
        logger.info(f"Dispute {dispute.id} opened on booking {booking.booking_number}")
        return dispute

    async def start_review(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        reviewer_id: UUID | None = None,
    ) -> Dispute:
        """Move dispute to IN_REVIEW."""
        dispute = await self._lock_dispute(db, dispute_id)
        old_status = dispute.status
        assert_dispute_transition(dispute.status, DisputeStatus.IN_REVIEW)

        dispute.status = DisputeStatus.IN_REVIEW.value
        dispute.reviewed_at = utcnow()
        await db.flush()

        await audit_service.log_status_change(
            db,
            "dispute",
            dispute.id,
            old_status,
            dispute.status,
            actor_role=RefundActor.ADMIN.value,
            actor_id=reviewer_id,
        )
        return dispute

    async def resolve(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        resolution: Resolution,
        resolved_by: UUID | None = None,
    ) -> Dispute:
        """Apply an admin resolution atomically.

        Writes the refund entry (if the amount is positive), marks the dispute
        RESOLVED, and cancels the booking only when the booking is now fully
        refunded; otherwise the booking returns to CONFIRMED.

        Raises:
            IllegalTransition: Dispute not IN_REVIEW
            InvalidInput: Negative refund amount
            OverRefund, BookingNotPayable: Refund rejected; nothing is applied
        """
        if resolution.refund_amount < 0:
            raise InvalidInput("Refund amount cannot be negative")

        dispute = await self._lock_dispute(db, dispute_id)
        assert_dispute_transition(dispute.status, DisputeStatus.RESOLVED)
        booking = await booking_service.get_booking(db, dispute.booking_id, for_update=True)

        entry: RefundEntry | None = None
        if resolution.refund_amount > 0:
            entry = await refund_service.append_entry(
                db,
                booking,
                resolution.refund_amount,
                resolution.notes or f"Dispute {dispute.id} resolution",
                RefundActor.ADMIN,
                actor_id=resolved_by,
                dispute_id=dispute.id,
            )

        remaining = await refund_service.remaining_refundable(db, booking)
        if entry is not None and remaining == 0:
            await booking_service.transition(
                db,
                booking,
                BookingStatus.CANCELLED,
                actor_role=RefundActor.ADMIN.value,
                actor_id=resolved_by,
                cancelled_by=RefundActor.ADMIN.value,
                cancellation_reason=f"Fully refunded by dispute {dispute.id}",
            )
        elif booking.status == BookingStatus.DISPUTED.value:
            await booking_service.transition(
                db,
                booking,
                BookingStatus.CONFIRMED,
                actor_role=RefundActor.ADMIN.value,
                actor_id=resolved_by,
            )

        old_status = dispute.status
        dispute.status = DisputeStatus.RESOLVED.value
        dispute.refund_amount = resolution.refund_amount
        dispute.realtor_penalty = resolution.realtor_penalty
        dispute.resolution_notes = resolution.notes
        dispute.resolved_by = resolved_by
        dispute.resolved_at = utcnow()
        await db.flush()

        await audit_service.log_action(
            db,
            action="dispute_resolve",
            resource_type="dispute",
            resource_id=dispute.id,
            actor_id=resolved_by,
            actor_role=RefundActor.ADMIN.value,
            old_values={"status": old_status},
            new_values={
                "status": dispute.status,
                "refund_amount": resolution.refund_amount,
                "realtor_penalty": resolution.realtor_penalty,
                "booking_status": booking.status,
            },
        )
        notification_service.notify_after_commit(
            db,
            notification_service.DISPUTE_RESOLVED,
            booking.id,
            {
                "dispute_id": str(dispute.id),
                "refund_amount": resolution.refund_amount,
                "booking_status": booking.status,
            },
        )
        logger.info(
            f"Dispute {dispute.id} resolved: refund {resolution.refund_amount}, "
            f"booking {booking.booking_number} now {booking.status}"
        )
        return dispute

    async def close(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        closed_by: UUID | None = None,
        notes: str | None = None,
    ) -> Dispute:
        """Close a dispute without a resolution; the booking returns to CONFIRMED."""
        dispute = await self._lock_dispute(db, dispute_id)
        old_status = dispute.status
        assert_dispute_transition(dispute.status, DisputeStatus.CLOSED)

        booking = await booking_service.get_booking(db, dispute.booking_id, for_update=True)
        if booking.status == BookingStatus.DISPUTED.value:
            await booking_service.transition(
                db,
                booking,
                BookingStatus.CONFIRMED,
                actor_role=RefundActor.ADMIN.value,
                actor_id=closed_by,
            )

        dispute.status = DisputeStatus.CLOSED.value
        dispute.resolution_notes = notes
        dispute.closed_at = utcnow()
        await db.flush()

        await audit_service.log_status_change(
            db,
            "dispute",
            dispute.id,
            old_status,
            dispute.status,
            actor_role=RefundActor.ADMIN.value,
            actor_id=closed_by,
        )
        return dispute

    async def get_dispute(self, db: AsyncSession, dispute_id: UUID) -> Dispute:
        """Get dispute by ID or raise NotFoundError."""
        result = await db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        dispute = result.scalar_one_or_none()
        if not dispute:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def _lock_dispute(self, db: AsyncSession, dispute_id: UUID) -> Dispute:
        """Take the owning booking's lock, then re-read the dispute."""
        dispute = await self.get_dispute(db, dispute_id)
        await booking_service.lock_booking(db, dispute.booking_id)
        return await self.get_dispute(db, dispute_id)


dispute_service = DisputeService()
