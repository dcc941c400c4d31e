"""Payment reconciliation service.

Mediates between the booking lifecycle and the payment gateway:

- ``initialize`` opens the gateway transaction under the booking's
  pre-assigned reference; repeated calls return the same reference.
- ``verify`` asks the gateway once per attempt, with no booking lock held
  during the call, then re-checks state under the lock and confirms only if
  amount and currency match the frozen total exactly.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.config import settings
from stayledger.core.exceptions import (
    Conflict,
    InvalidWebhookSignature,
    NotFoundError,
    ReconciliationMismatch,
)
from stayledger.database import commit
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payment_state import PaymentStatus
from stayledger.gateways.base import GatewayType, TransactionStatus, TransactionVerification
from stayledger.models.payment import PaymentRecord, RefundActor
from stayledger.services.audit_service import audit_service
from stayledger.services.booking_service import booking_service
from stayledger.services.gateway_service import gateway_service
from stayledger.services.notification_service import notification_service
from stayledger.services.refund_service import refund_service
from stayledger.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """Outcome of one verification attempt."""

    reference: str
    payment_status: PaymentStatus
    booking_status: BookingStatus
    # True when this attempt changed nothing because the work was already done
    already_processed: bool = False
    refunded_amount: int = 0


class PaymentService:
    """Service for gateway initialization and verification."""

    async def get_by_reference(self, db: AsyncSession, reference: str) -> PaymentRecord:
        result = await db.execute(
            select(PaymentRecord)
            .where(PaymentRecord.reference == reference)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", reference)
        return payment

    async def get_for_booking(self, db: AsyncSession, booking_id: UUID) -> PaymentRecord:
        return await booking_service.get_payment(db, booking_id)

    # ==================== INITIALIZE ====================

    async def initialize(
        self,
        db: AsyncSession,
        booking_id: UUID,
        email: str | None = None,
    ) -> PaymentRecord:
        """Open the gateway transaction for a booking. Idempotent per booking.

        Args:
            db: Database session
            booking_id: Booking awaiting payment
            email: Customer email (required by Paystack)

        Returns:
            PaymentRecord: Record in PENDING (or later) with the gateway reference

        Raises:
            Conflict: If the booking is not awaiting payment
            GatewayUnavailable: Transient gateway failure; the record stays
                UNINITIALIZED and a later call reuses the same reference
        """
        booking = await booking_service.get_booking(db, booking_id)
        payment = await booking_service.get_payment(db, booking.id)

        if payment.status != PaymentStatus.UNINITIALIZED.value:
            if payment.status == PaymentStatus.FAILED.value:
                raise Conflict(f"Payment {payment.reference} has failed; create a new booking")
            logger.debug(f"Payment {payment.reference} already initialized")
            return payment

        if booking.status != BookingStatus.AWAITING_PAYMENT.value:
            raise Conflict(
                f"Booking {booking.booking_number} is {booking.status}, not awaiting payment"
            )

        if not await self._claim_initialization(db, payment.id):
            logger.info(f"Payment {payment.reference} initialization already in progress")
            return payment

        payment_id, gateway, reference = payment.id, payment.gateway, payment.reference
        # Amount is always re-derived from the frozen breakdown.
        amount, currency = booking.total, booking.currency
        metadata = {
            "booking_id": str(booking.id),
            "booking_number": booking.booking_number,
            "email": email,
        }
        # The claim is durable before the network call; nothing is locked during it.
        await commit(db)

        try:
            transaction = await gateway_service.initialize_transaction(
                gateway,
                amount=amount,
                currency=currency,
                reference=reference,
                metadata=metadata,
            )
        except Exception:
            await self._release_initialization(db, payment_id)
            raise

        booking = await booking_service.lock_booking(db, booking_id)
        payment = await booking_service.get_payment(db, booking.id)
        if payment.status != PaymentStatus.UNINITIALIZED.value:
            logger.info(f"Payment {reference} became {payment.status} during initialization")
        else:
            await booking_service.set_payment_status(
                db,
                payment,
                PaymentStatus.PENDING,
                authorization_url=transaction.authorization_url,
                initialized_at=utcnow(),
                initializing_since=None,
                gateway_response=transaction.raw_response,
            )
            await audit_service.log_status_change(
                db,
                "payment",
                payment.id,
                PaymentStatus.UNINITIALIZED.value,
                PaymentStatus.PENDING.value,
                actor_role=RefundActor.SYSTEM.value,
                reference=payment.reference,
                gateway=payment.gateway,
            )
            logger.info(f"Payment {payment.reference} initialized via {payment.gateway}")
        return payment

    async def _claim_initialization(self, db: AsyncSession, payment_id: UUID) -> bool:
        """Compare-and-swap the initialization slot; stale claims can be taken over."""
        now = utcnow()
        stale_before = now - timedelta(seconds=settings.payment_init_claim_seconds)
        result = await db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.id == payment_id,
                PaymentRecord.status == PaymentStatus.UNINITIALIZED.value,
                or_(
                    PaymentRecord.initializing_since.is_(None),
                    PaymentRecord.initializing_since < stale_before,
                ),
            )
            .values(initializing_since=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _release_initialization(self, db: AsyncSession, payment_id: UUID) -> None:
        await db.rollback()
        await db.execute(
            update(PaymentRecord)
            .where(
                PaymentRecord.id == payment_id,
                PaymentRecord.status == PaymentStatus.UNINITIALIZED.value,
            )
            .values(initializing_since=None)
            .execution_options(synchronize_session=False)
        )
        await commit(db)

    # ==================== MANUAL TRANSFERS ====================

    async def record_transfer(
        self,
        db: AsyncSession,
        reference: str,
        amount: int | None = None,
        currency: str | None = None,
        recorded_by: UUID | None = None,
    ) -> PaymentRecord:
        """Record that a bank transfer arrived for a manual-gateway payment.

        ``amount``/``currency`` default to what was expected; pass the actual
        figures from the bank statement when they differ. Nothing is
        confirmed here: verification compares these figures with the
        booking's frozen total.

        Raises:
            NotFoundError: Unknown reference
            Conflict: Not a bank transfer, not awaiting money, or already recorded
        """
        payment = await self._lock_open_transfer(db, reference)
        payment.received_amount = payment.amount if amount is None else amount
        payment.received_currency = (currency or payment.currency).upper()
        payment.transfer_recorded_at = utcnow()
        await db.flush()

        await audit_service.log_action(
            db,
            action="transfer_record",
            resource_type="payment",
            resource_id=payment.id,
            actor_id=recorded_by,
            actor_role=RefundActor.ADMIN.value,
            new_values={
                "reference": reference,
                "received_amount": payment.received_amount,
                "received_currency": payment.received_currency,
            },
        )
        logger.info(
            f"Bank transfer {reference} recorded: "
            f"{payment.received_amount} {payment.received_currency}"
        )
        return payment

    async def decline_transfer(
        self,
        db: AsyncSession,
        reference: str,
        recorded_by: UUID | None = None,
    ) -> PaymentRecord:
        """Record that no valid transfer will arrive; verification then fails the payment."""
        payment = await self._lock_open_transfer(db, reference)
        payment.transfer_declined_at = utcnow()
        await db.flush()

        await audit_service.log_action(
            db,
            action="transfer_decline",
            resource_type="payment",
            resource_id=payment.id,
            actor_id=recorded_by,
            actor_role=RefundActor.ADMIN.value,
            new_values={"reference": reference},
        )
        logger.info(f"Bank transfer {reference} declined")
        return payment

    async def _lock_open_transfer(self, db: AsyncSession, reference: str) -> PaymentRecord:
        payment = await self.get_by_reference(db, reference)
        await booking_service.lock_booking(db, payment.booking_id)
        payment = await self.get_by_reference(db, reference)

        if payment.gateway != GatewayType.MANUAL.value:
            raise Conflict(f"Payment {reference} is not a bank transfer")
        # FAILED is accepted: money can still arrive after the window closed
        if payment.status not in (PaymentStatus.PENDING.value, PaymentStatus.FAILED.value):
            raise Conflict(f"Payment {reference} is {payment.status}; no transfer is expected")
        if payment.transfer_recorded_at or payment.transfer_declined_at:
            raise Conflict(f"Transfer for payment {reference} has already been recorded")
        return payment

    # ==================== VERIFY ====================

    async def verify(self, db: AsyncSession, reference: str) -> VerificationResult:
        """Reconcile a payment against the gateway.

        Safe to call any number of times (client return, webhook, retries):
        only the first successful attempt confirms and notifies.

        Raises:
            NotFoundError: Unknown reference
            Conflict: Payment never initialized
            ReconciliationMismatch: Gateway amount or currency differs from
                the frozen total; nothing is confirmed
            GatewayUnavailable: Transient; retry with backoff
        """
        payment = await self.get_by_reference(db, reference)
        if payment.status == PaymentStatus.VERIFIED.value:
            booking = await booking_service.get_booking(db, payment.booking_id)
            return self._result(payment, booking, already_processed=True)
        if payment.status == PaymentStatus.UNINITIALIZED.value:
            raise Conflict(f"Payment {reference} has not been initialized")

        booking_id = payment.booking_id
        gateway = payment.gateway

        # No booking lock is held across the gateway call.
        verification = await gateway_service.verify_transaction(gateway, reference)

        booking = await booking_service.lock_booking(db, booking_id)
        payment = await self.get_by_reference(db, reference)

        if payment.status == PaymentStatus.VERIFIED.value:
            return self._result(payment, booking, already_processed=True)

        if verification.status == TransactionStatus.PENDING:
            logger.info(f"Payment {reference} still pending at {gateway}")
            return self._result(payment, booking)

        if verification.status == TransactionStatus.FAILED:
            return await self._apply_failure(db, booking, payment, verification)

        self._check_amount(booking, payment, verification)

        if booking.status == BookingStatus.AWAITING_PAYMENT.value:
            return await self._confirm(db, booking, payment, verification)
        return await self._record_late_payment(db, booking, payment, verification)

    async def handle_webhook(
        self,
        db: AsyncSession,
        gateway_type: str | GatewayType,
        payload: bytes,
        signature: str | None,
    ) -> VerificationResult | None:
        """Process a signed gateway event by re-verifying through the adapter.

        The webhook body is never trusted for amounts; it only names the
        reference to reconcile.

        Returns:
            VerificationResult, or None for events that carry no payment to verify
        """
        event = gateway_service.verify_webhook(gateway_type, payload, signature)
        if event is None:
            logger.warning(f"Rejected {gateway_type} webhook with invalid signature")
            raise InvalidWebhookSignature()

        event_type = event.get("event")
        reference = (event.get("data") or {}).get("reference")
        if event_type not in ("charge.success", "charge.failed") or not reference:
            logger.info(f"Ignoring {gateway_type} webhook event {event_type}")
            return None

        try:
            return await self.verify(db, reference)
        except NotFoundError:
            logger.warning(f"{gateway_type} webhook for unknown reference {reference}")
            return None

    # ==================== INTERNAL ====================

    def _check_amount(self, booking, payment, verification: TransactionVerification) -> None:
        expected_amount = booking.total
        expected_currency = booking.currency
        if (
            verification.amount != expected_amount
            or payment.amount != expected_amount
            or (verification.currency or "").upper() != expected_currency.upper()
        ):
            logger.error(
                f"RECONCILIATION_MISMATCH: payment {payment.reference} booking "
                f"{booking.id} expected {expected_amount} {expected_currency}, gateway "
                f"reported {verification.amount} {verification.currency}"
            )
            raise ReconciliationMismatch(
                payment.reference,
                expected_amount,
                expected_currency,
                verification.amount,
                verification.currency,
            )

    async def _confirm(self, db, booking, payment, verification) -> VerificationResult:
        await booking_service.set_payment_status(
            db,
            payment,
            PaymentStatus.VERIFIED,
            gateway_transaction_id=verification.gateway_transaction_id,
            gateway_response=verification.raw_response,
        )
        booking = await booking_service.transition(
            db, booking, BookingStatus.CONFIRMED, actor_role=RefundActor.SYSTEM.value
        )
        await audit_service.log_action(
            db,
            action="payment_verify",
            resource_type="payment",
            resource_id=payment.id,
            actor_role=RefundActor.SYSTEM.value,
            new_values={
                "reference": payment.reference,
                "amount": verification.amount,
                "currency": verification.currency,
            },
        )
        notification_service.notify_after_commit(
            db,
            notification_service.BOOKING_CONFIRMED,
            booking.id,
            {"booking_number": booking.booking_number, "total": booking.total},
        )
        logger.info(f"Payment {payment.reference} verified; booking {booking.booking_number} confirmed")
        return self._result(payment, booking)

    async def _apply_failure(self, db, booking, payment, verification) -> VerificationResult:
        reason = verification.failure_reason or "Payment failed at gateway"
        if booking.status == BookingStatus.AWAITING_PAYMENT.value:
            booking = await booking_service.fail_booking(db, booking, payment, reason)
        elif payment.status != PaymentStatus.FAILED.value:
            await booking_service.set_payment_status(
                db, payment, PaymentStatus.FAILED, failure_reason=reason
            )
        else:
            return self._result(payment, booking, already_processed=True)
        logger.info(f"Payment {payment.reference} failed: {reason}")
        return self._result(payment, booking)

    async def _record_late_payment(self, db, booking, payment, verification) -> VerificationResult:
        """Money arrived for a booking that can no longer be confirmed: refund it."""
        logger.warning(
            f"Late payment {payment.reference} for {booking.status} booking "
            f"{booking.booking_number}; refunding in full"
        )
        await booking_service.set_payment_status(
            db,
            payment,
            PaymentStatus.VERIFIED,
            gateway_transaction_id=verification.gateway_transaction_id,
            gateway_response=verification.raw_response,
        )
        remaining = await refund_service.remaining_refundable(db, booking)
        if remaining > 0:
            await refund_service.append_entry(
                db,
                booking,
                remaining,
                f"Automatic refund: payment received after booking became {booking.status}",
                RefundActor.SYSTEM,
            )
        return self._result(payment, booking, refunded_amount=remaining)

    def _result(self, payment, booking, already_processed=False, refunded_amount=0):
        return VerificationResult(
            reference=payment.reference,
            payment_status=PaymentStatus(payment.status),
            booking_status=BookingStatus(booking.status),
            already_processed=already_processed,
            refunded_amount=refunded_amount,
        )


payment_service = PaymentService()
