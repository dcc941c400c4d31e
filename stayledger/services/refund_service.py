"""Refund ledger service.

Refund entries are append-only. The ledger is the single source of truth
for how much of a booking has been returned; the remaining refundable
balance is always derived from it, never stored.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.core.exceptions import BookingNotPayable, InvalidInput, NotFoundError, OverRefund
from stayledger.core.locks import BOOKING_LOCK, hold_for_transaction
from stayledger.domain.payment_state import PaymentStatus
from stayledger.models.booking import Booking
from stayledger.models.payment import PaymentRecord, RefundActor, RefundEntry
from stayledger.services.audit_service import audit_service
from stayledger.services.notification_service import notification_service
from stayledger.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RefundSummary:
    booking_id: UUID
    currency: str
    total: int
    total_refunded: int
    remaining_refundable: int
    entries: list[RefundEntry]

    @property
    def fully_refunded(self) -> bool:
        return self.remaining_refundable == 0


class RefundService:
    """Service for the per-booking refund ledger."""

    async def total_refunded(self, db: AsyncSession, booking_id: UUID) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(RefundEntry.amount), 0)).where(
                RefundEntry.booking_id == booking_id
            )
        )
        return int(result.scalar_one())

    async def remaining_refundable(self, db: AsyncSession, booking: Booking) -> int:
        return booking.total - await self.total_refunded(db, booking.id)

    async def entries(self, db: AsyncSession, booking_id: UUID) -> list[RefundEntry]:
        result = await db.execute(
            select(RefundEntry)
            .where(RefundEntry.booking_id == booking_id)
            .order_by(RefundEntry.created_at, RefundEntry.id)
        )
        return list(result.scalars().all())

    async def summary(self, db: AsyncSession, booking_id: UUID) -> RefundSummary:
        booking = await self._get_booking(db, booking_id)
        refunded = await self.total_refunded(db, booking.id)
        return RefundSummary(
            booking_id=booking.id,
            currency=booking.currency,
            total=booking.total,
            total_refunded=refunded,
            remaining_refundable=booking.total - refunded,
            entries=await self.entries(db, booking.id),
        )

    async def refund(
        self,
        db: AsyncSession,
        booking_id: UUID,
        amount: int,
        reason: str,
        actor: RefundActor,
        actor_id: UUID | None = None,
    ) -> RefundEntry:
        """Append a refund entry for a paid booking.

        Mutually exclusive with payment verification and other refunds on the
        same booking until the transaction ends.

        Args:
            db: Database session
            booking_id: Booking to refund
            amount: Amount in smallest currency unit, > 0
            reason: Free-text reason
            actor: Who initiated or approved the refund
            actor_id: User id of the actor, if any

        Returns:
            RefundEntry: The appended entry

        Raises:
            InvalidInput: If amount is not positive
            BookingNotPayable: If the booking has no verified payment
            OverRefund: If amount exceeds the remaining refundable balance
        """
        if amount <= 0:
            raise InvalidInput("Refund amount must be greater than zero")

        await hold_for_transaction(db, BOOKING_LOCK, booking_id)
        booking = await self._get_booking(db, booking_id, for_update=True)
        return await self.append_entry(db, booking, amount, reason, actor, actor_id)

    async def append_entry(
        self,
        db: AsyncSession,
        booking: Booking,
        amount: int,
        reason: str,
        actor: RefundActor,
        actor_id: UUID | None = None,
        dispute_id: UUID | None = None,
    ) -> RefundEntry:
        """Write a refund entry; the caller must hold the booking lock."""
        if amount <= 0:
            raise InvalidInput("Refund amount must be greater than zero")

        payment = await self._get_payment(db, booking.id)
        if payment is None or payment.status != PaymentStatus.VERIFIED.value:
            raise BookingNotPayable(str(booking.id))

        remaining = await self.remaining_refundable(db, booking)
        if amount > remaining:
            logger.info(
                f"Rejected refund of {amount} on booking {booking.id}: remaining {remaining}"
            )
            raise OverRefund(amount, remaining)

        entry = RefundEntry(
            booking_id=booking.id,
            amount=amount,
            currency=booking.currency,
            reason=reason,
            actor=RefundActor(actor).value,
            actor_id=actor_id,
            dispute_id=dispute_id,
        )
        db.add(entry)
        await db.flush()

        await audit_service.log_action(
            db,
            action="refund_create",
            resource_type="booking",
            resource_id=booking.id,
            actor_id=actor_id,
            actor_role=RefundActor(actor).value,
            new_values={
                "refund_entry_id": str(entry.id),
                "amount": amount,
                "remaining_refundable": remaining - amount,
                "reason": reason,
            },
        )
        notification_service.notify_after_commit(
            db,
            notification_service.REFUND_ISSUED,
            booking.id,
            {"amount": amount, "currency": booking.currency},
        )

        logger.info(
            f"Refund {entry.id} of {amount} {booking.currency} on booking {booking.id} "
            f"by {RefundActor(actor).value}; remaining {remaining - amount}"
        )
        return entry

    async def return_security_deposit(
        self, db: AsyncSession, booking: Booking
    ) -> RefundEntry | None:
        """Give the guest their security deposit back; the caller holds the booking lock.

        Refunds the deposit, capped at the remaining refundable balance, and
        stamps the booking so it is returned at most once.

        Returns:
            The refund entry, or None when nothing was left to return
        """
        remaining = await self.remaining_refundable(db, booking)
        amount = min(booking.security_deposit, remaining)
        entry = None
        if amount > 0:
            entry = await self.append_entry(
                db, booking, amount, "Security deposit returned", RefundActor.SYSTEM
            )
        booking.deposit_returned_at = utcnow()
        await db.flush()
        return entry

    async def _get_booking(
        self, db: AsyncSession, booking_id: UUID, for_update: bool = False
    ) -> Booking:
        query = select(Booking).where(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def _get_payment(self, db: AsyncSession, booking_id: UUID) -> PaymentRecord | None:
        result = await db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


refund_service = RefundService()
