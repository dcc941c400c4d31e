"""Booking lifecycle service.

Every status change goes through ``transition``: the state table is
checked, then the row is updated with a compare-and-swap on
(status, version) so a concurrent writer that got there first makes this
one fail instead of silently overwriting it.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.config import settings
from stayledger.core.exceptions import (
    ConcurrentModification,
    Conflict,
    IllegalTransition,
    NotFoundError,
    QuoteChanged,
)
from stayledger.core.locks import BOOKING_LOCK, hold_for_transaction
from stayledger.database import commit
from stayledger.domain.booking_state import (
    TERMINAL_STATUSES,
    BookingStatus,
    assert_booking_transition,
)
from stayledger.domain.dispute_state import DisputeStatus
from stayledger.domain.payment_state import PaymentStatus, assert_payment_transition
from stayledger.models.admin import Dispute
from stayledger.models.booking import Booking
from stayledger.models.payment import PaymentRecord, RefundActor
from stayledger.services.audit_service import audit_service
from stayledger.services.availability_service import availability_service
from stayledger.services.catalog_service import catalog_service
from stayledger.services.notification_service import notification_service
from stayledger.services.pricing_service import pricing_service
from stayledger.services.refund_service import refund_service
from stayledger.utils.booking_number import generate_booking_number, generate_payment_reference
from stayledger.utils.dates import today_utc, utcnow

logger = logging.getLogger(__name__)

# Timestamp column stamped when a booking enters a status
STATUS_TIMESTAMPS = {
    BookingStatus.CONFIRMED: "confirmed_at",
    BookingStatus.CANCELLED: "cancelled_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.FAILED: "failed_at",
}


@dataclass
class CancellationResult:
    booking: Booking
    refunded_amount: int


class BookingService:
    """Service for booking creation and lifecycle transitions."""

    # ==================== QUERIES ====================

    async def get_booking(
        self, db: AsyncSession, booking_id: UUID, for_update: bool = False
    ) -> Booking:
        """Get booking by ID or raise NotFoundError."""
        query = select(Booking).where(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def get_payment(self, db: AsyncSession, booking_id: UUID) -> PaymentRecord:
        result = await db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment record for booking", str(booking_id))
        return payment

    async def lock_booking(self, db: AsyncSession, booking_id: UUID) -> Booking:
        """Take the per-booking lock and return a fresh row."""
        await hold_for_transaction(db, BOOKING_LOCK, booking_id)
        return await self.get_booking(db, booking_id, for_update=True)

    # ==================== CREATION ====================

    async def create_booking(
        self,
        db: AsyncSession,
        property_id: UUID,
        guest_id: UUID,
        check_in: date,
        check_out: date,
        guest_count: int,
        expected_total: int | None = None,
        special_requests: str | None = None,
        today: date | None = None,
    ) -> Booking:
        """Quote, reserve and open a booking for payment in one transaction.

        The booking is persisted directly in AWAITING_PAYMENT with its price
        breakdown frozen, its dates reserved and an uninitialized payment
        record carrying the gateway reference. If any step fails nothing is
        written.

        Args:
            db: Database session
            property_id: Property to book
            guest_id: Guest making the booking
            check_in: First night
            check_out: Departure day (exclusive)
            guest_count: Number of guests
            expected_total: Total the guest was shown; must match the fresh quote
            special_requests: Free text for the realtor
            today: Override for the current date

        Returns:
            Booking: The new booking

        Raises:
            InvalidDateRange, ExceedsMaxOccupancy, PropertyNotBookable,
            QuoteChanged, AvailabilityConflict
        """
        prop = await catalog_service.get_property(db, property_id)
        breakdown = pricing_service.quote_for_property(
            prop, check_in, check_out, guest_count, today
        )
        if expected_total is not None and expected_total != breakdown.total:
            raise QuoteChanged(expected_total, breakdown.total)

        booking_number = await generate_booking_number(db)
        booking = Booking(
            id=uuid4(),
            booking_number=booking_number,
            property_id=prop.id,
            guest_id=guest_id,
            realtor_id=prop.realtor_id,
            check_in=check_in,
            check_out=check_out,
            guest_count=guest_count,
            special_requests=special_requests,
            status=BookingStatus.DRAFT.value,
            version=1,
        )
        booking.apply_breakdown(breakdown)
        db.add(booking)

        await availability_service.reserve(db, prop.id, check_in, check_out, booking.id)

        # DRAFT → AWAITING_PAYMENT: reservation and frozen breakdown are in place
        assert_booking_transition(BookingStatus.DRAFT, BookingStatus.AWAITING_PAYMENT)
        booking.status = BookingStatus.AWAITING_PAYMENT.value
        booking.payment_reference = generate_payment_reference(booking_number)
        booking.payment_expires_at = utcnow() + timedelta(minutes=settings.payment_window_minutes)

        db.add(
            PaymentRecord(
                booking_id=booking.id,
                reference=booking.payment_reference,
                amount=breakdown.total,
                currency=breakdown.currency,
                gateway=settings.payment_gateway,
                status=PaymentStatus.UNINITIALIZED.value,
            )
        )
        await db.flush()

        await audit_service.log_status_change(
            db,
            "booking",
            booking.id,
            BookingStatus.DRAFT.value,
            BookingStatus.AWAITING_PAYMENT.value,
            actor_role=RefundActor.GUEST.value,
            actor_id=guest_id,
            total=breakdown.total,
            currency=breakdown.currency,
            payment_reference=booking.payment_reference,
        )
        logger.info(
            f"Booking {booking.booking_number} created for property {prop.id}: "
            f"{check_in}..{check_out}, total {breakdown.total} {breakdown.currency}"
        )
        return booking

    # ==================== TRANSITIONS ====================

    async def transition(
        self,
        db: AsyncSession,
        booking: Booking,
        target: BookingStatus,
        actor_role: str | None = None,
        actor_id: UUID | None = None,
        **values,
    ) -> Booking:
        """Move ``booking`` to ``target``; the caller holds the booking lock.

        Terminal targets release the availability reservation.

        Raises:
            IllegalTransition: If the state table forbids the move
            ConcurrentModification: If the row changed underneath us
        """
        current = BookingStatus(booking.status)
        try:
            assert_booking_transition(current, target)
        except IllegalTransition:
            logger.error(
                f"Illegal booking transition {current.value} → {target.value} "
                f"for booking {booking.id}"
            )
            raise

        stamp = STATUS_TIMESTAMPS.get(target)
        if stamp:
            values.setdefault(stamp, utcnow())

        result = await db.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == current.value,
                Booking.version == booking.version,
            )
            .values(status=target.value, version=Booking.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification("Booking", str(booking.id))
        await db.refresh(booking)

        if target in TERMINAL_STATUSES:
            await availability_service.release(db, booking.id)

        await audit_service.log_status_change(
            db,
            "booking",
            booking.id,
            current.value,
            target.value,
            actor_role=actor_role,
            actor_id=actor_id,
        )
        logger.info(f"Booking {booking.booking_number}: {current.value} → {target.value}")
        return booking

    async def set_payment_status(
        self,
        db: AsyncSession,
        payment: PaymentRecord,
        target: PaymentStatus,
        **values,
    ) -> PaymentRecord:
        """Move a payment record along its state table; caller holds the booking lock."""
        current = PaymentStatus(payment.status)
        assert_payment_transition(current, target)
        payment.status = target.value
        for key, value in values.items():
            setattr(payment, key, value)
        if target == PaymentStatus.VERIFIED:
            payment.verified_at = utcnow()
        elif target == PaymentStatus.FAILED:
            payment.failed_at = utcnow()
        await db.flush()
        return payment

    async def cancel_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        cancelled_by: RefundActor,
        reason: str,
        actor_id: UUID | None = None,
    ) -> CancellationResult:
        """Cancel a booking, releasing its dates.

        A paid booking has its remaining refundable balance written to the
        refund ledger in the same transaction. An unpaid booking's payment
        record is failed so the reference cannot confirm it later.

        Raises:
            Conflict: If the booking is under dispute; only the dispute's
                resolution can cancel it
            IllegalTransition: If the booking is already terminal
        """
        booking = await self.lock_booking(db, booking_id)
        if booking.status == BookingStatus.DISPUTED.value:
            raise Conflict(
                f"Booking {booking.booking_number} is under dispute; "
                "resolve the dispute to cancel it"
            )
        payment = await self.get_payment(db, booking.id)

        booking = await self.transition(
            db,
            booking,
            BookingStatus.CANCELLED,
            actor_role=RefundActor(cancelled_by).value,
            actor_id=actor_id,
            cancelled_by=RefundActor(cancelled_by).value,
            cancellation_reason=reason,
        )

        refunded = 0
        if payment.status == PaymentStatus.VERIFIED.value:
            remaining = await refund_service.remaining_refundable(db, booking)
            if remaining > 0:
                await refund_service.append_entry(
                    db,
                    booking,
                    remaining,
                    f"Cancellation: {reason}",
                    RefundActor(cancelled_by),
                    actor_id,
                )
                refunded = remaining
        elif payment.status in (PaymentStatus.UNINITIALIZED.value, PaymentStatus.PENDING.value):
            await self.set_payment_status(
                db, payment, PaymentStatus.FAILED, failure_reason="Booking cancelled"
            )

        notification_service.notify_after_commit(
            db,
            notification_service.BOOKING_CANCELLED,
            booking.id,
            {"reason": reason, "refunded_amount": refunded, "currency": booking.currency},
        )
        return CancellationResult(booking=booking, refunded_amount=refunded)

    async def fail_booking(
        self,
        db: AsyncSession,
        booking: Booking,
        payment: PaymentRecord,
        reason: str,
    ) -> Booking:
        """AWAITING_PAYMENT → FAILED with the payment record; caller holds the lock."""
        booking = await self.transition(
            db,
            booking,
            BookingStatus.FAILED,
            actor_role=RefundActor.SYSTEM.value,
            failure_reason=reason,
        )
        if payment.status != PaymentStatus.FAILED.value:
            await self.set_payment_status(db, payment, PaymentStatus.FAILED, failure_reason=reason)

        notification_service.notify_after_commit(
            db,
            notification_service.PAYMENT_FAILED,
            booking.id,
            {"reason": reason},
        )
        return booking

    async def complete_booking(
        self,
        db: AsyncSession,
        booking_id: UUID,
        today: date | None = None,
    ) -> Booking:
        """CONFIRMED → COMPLETED once checkout has passed and no dispute is open."""
        booking = await self.lock_booking(db, booking_id)
        today = today or today_utc()

        if BookingStatus(booking.status) == BookingStatus.CONFIRMED:
            if booking.check_out > today:
                raise Conflict(
                    f"Booking {booking.booking_number} cannot complete before check-out "
                    f"on {booking.check_out}"
                )
            if await self.has_open_dispute(db, booking.id):
                raise Conflict(f"Booking {booking.booking_number} has an open dispute")

        booking = await self.transition(
            db, booking, BookingStatus.COMPLETED, actor_role=RefundActor.SYSTEM.value
        )
        notification_service.notify_after_commit(
            db, notification_service.BOOKING_COMPLETED, booking.id
        )
        return booking

    async def has_open_dispute(self, db: AsyncSession, booking_id: UUID) -> bool:
        result = await db.execute(
            select(Dispute.id).where(
                Dispute.booking_id == booking_id,
                Dispute.status.in_([DisputeStatus.OPEN.value, DisputeStatus.IN_REVIEW.value]),
            )
        )
        return result.first() is not None

    # ==================== SCHEDULED SWEEPS ====================

    async def expire_unpaid_bookings(self, db: AsyncSession, now: datetime | None = None) -> int:
        """Fail AWAITING_PAYMENT bookings whose payment window elapsed.

        Commits after each booking so locks are held briefly.

        Returns:
            int: Number of bookings failed
        """
        now = now or utcnow()
        result = await db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.AWAITING_PAYMENT.value,
                Booking.payment_expires_at < now,
            )
        )
        booking_ids = list(result.scalars().all())

        expired = 0
        for booking_id in booking_ids:
            booking = await self.lock_booking(db, booking_id)
            if booking.status != BookingStatus.AWAITING_PAYMENT.value:
                await commit(db)
                continue
            payment = await self.get_payment(db, booking.id)
            await self.fail_booking(db, booking, payment, "Payment window expired")
            await commit(db)
            expired += 1

        if expired:
            logger.info(f"Expired {expired} unpaid booking(s)")
        return expired

    async def complete_finished_bookings(
        self, db: AsyncSession, now: datetime | None = None
    ) -> int:
        """Complete CONFIRMED bookings whose checkout plus dispute window passed.

        Returns:
            int: Number of bookings completed
        """
        now = now or utcnow()
        cutoff = (now - timedelta(hours=settings.dispute_window_hours)).date()
        result = await db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.check_out <= cutoff,
            )
        )
        booking_ids = list(result.scalars().all())

        completed = 0
        for booking_id in booking_ids:
            booking = await self.lock_booking(db, booking_id)
            if booking.status != BookingStatus.CONFIRMED.value or await self.has_open_dispute(
                db, booking.id
            ):
                await commit(db)
                continue
            await self.transition(
                db, booking, BookingStatus.COMPLETED, actor_role=RefundActor.SYSTEM.value
            )
            notification_service.notify_after_commit(
                db, notification_service.BOOKING_COMPLETED, booking.id
            )
            await commit(db)
            completed += 1

        if completed:
            logger.info(f"Completed {completed} finished booking(s)")
        return completed

    async def return_security_deposits(
        self, db: AsyncSession, now: datetime | None = None
    ) -> int:
        """Return deposits of COMPLETED stays whose checkout plus dispute window passed.

        Kept apart from completion so COMPLETED stays a bookkeeping transition.

        Returns:
            int: Number of deposits refunded
        """
        now = now or utcnow()
        cutoff = (now - timedelta(hours=settings.dispute_window_hours)).date()
        result = await db.execute(
            select(Booking.id).where(
                Booking.status == BookingStatus.COMPLETED.value,
                Booking.security_deposit > 0,
                Booking.deposit_returned_at.is_(None),
                Booking.check_out <= cutoff,
            )
        )
        booking_ids = list(result.scalars().all())

        returned = 0
        for booking_id in booking_ids:
            booking = await self.lock_booking(db, booking_id)
            if booking.deposit_returned_at is not None:
                await commit(db)
                continue
            entry = await refund_service.return_security_deposit(db, booking)
            await commit(db)
            if entry is not None:
                returned += 1

        if returned:
            logger.info(f"Returned {returned} security deposit(s)")
        return returned


booking_service = BookingService()
