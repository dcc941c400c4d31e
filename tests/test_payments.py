"""Payment initialization and reconciliation tests."""

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import update

from stayledger.config import settings
from stayledger.core.exceptions import (
    Conflict,
    GatewayRejected,
    GatewayUnavailable,
    InvalidWebhookSignature,
    NotFoundError,
    ReconciliationMismatch,
)
from stayledger.database import commit
from stayledger.domain.booking_state import BookingStatus
from stayledger.domain.payment_state import PaymentStatus
from stayledger.gateways.base import GatewayType, TransactionStatus
from stayledger.gateways.paystack import PaystackGateway
from stayledger.models.payment import PaymentRecord, RefundActor
from stayledger.services.availability_service import availability_service
from stayledger.services.booking_service import booking_service
from stayledger.services.gateway_service import gateway_service
from stayledger.services.notification_service import notification_service
from stayledger.services.payment_service import payment_service
from stayledger.services.refund_service import refund_service
from stayledger.utils.dates import utcnow

SECRET = "sk_test_stayledger"


# ==================== RECONCILIATION ====================


async def test_matching_payment_confirms_booking(book, pay, db, sender):
    booking = await book()

    result = await pay(booking)

    assert result.payment_status == PaymentStatus.VERIFIED
    assert result.booking_status == BookingStatus.CONFIRMED
    assert result.already_processed is False
    await db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value
    assert booking.confirmed_at is not None
    payment = await booking_service.get_payment(db, booking.id)
    assert payment.verified_at is not None
    assert payment.gateway_transaction_id == f"manual_{payment.reference}"
    assert len(sender.events(notification_service.BOOKING_CONFIRMED)) == 1


async def test_short_payment_is_a_mismatch_and_never_confirms(book, db, settle, sender, caplog):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    reference = payment.reference
    await settle(reference, amount=180_000)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(ReconciliationMismatch) as exc_info:
            await payment_service.verify(db, reference)
    await db.rollback()

    assert exc_info.value.expected_amount == 190_000
    assert exc_info.value.actual_amount == 180_000
    assert any("RECONCILIATION_MISMATCH" in r.getMessage() for r in caplog.records)

    await db.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value
    payment = await payment_service.get_by_reference(db, reference)
    assert payment.status == PaymentStatus.PENDING.value
    assert sender.events(notification_service.BOOKING_CONFIRMED) == []


async def test_currency_mismatch_never_confirms(book, db, settle):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    reference = payment.reference
    await settle(reference, currency="USD")

    with pytest.raises(ReconciliationMismatch):
        await payment_service.verify(db, reference)
    await db.rollback()

    await db.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value


async def test_repeated_verification_confirms_once(book, pay, db, sender):
    booking = await book()
    await pay(booking)
    reference = booking.payment_reference

    again = await payment_service.verify(db, reference)
    await commit(db)
    third = await payment_service.verify(db, reference)
    await commit(db)

    assert again.already_processed is True
    assert third.already_processed is True
    assert third.booking_status == BookingStatus.CONFIRMED
    await db.refresh(booking)
    assert booking.version == 2
    assert len(sender.events(notification_service.BOOKING_CONFIRMED)) == 1


async def test_concurrent_verification_confirms_once(book, db, settle, session_maker, sender):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    await settle(payment.reference)

    async def attempt():
        async with session_maker() as session:
            result = await payment_service.verify(session, payment.reference)
            await commit(session)
            return result

    results = await asyncio.gather(attempt(), attempt(), attempt())

    assert sorted(r.already_processed for r in results) == [False, True, True]
    assert all(r.booking_status == BookingStatus.CONFIRMED for r in results)
    await db.refresh(booking)
    assert booking.version == 2
    assert len(sender.events(notification_service.BOOKING_CONFIRMED)) == 1


async def test_pending_gateway_changes_nothing(book, db):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)

    result = await payment_service.verify(db, payment.reference)
    await commit(db)

    assert result.payment_status == PaymentStatus.PENDING
    assert result.booking_status == BookingStatus.AWAITING_PAYMENT


async def test_declined_payment_fails_booking_and_releases_dates(book, db, decline, sender):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    await decline(payment.reference)

    result = await payment_service.verify(db, payment.reference)
    await commit(db)

    assert result.payment_status == PaymentStatus.FAILED
    assert result.booking_status == BookingStatus.FAILED
    reservation = await availability_service.get_reservation(db, booking.id)
    assert reservation.active is False
    assert len(sender.events(notification_service.PAYMENT_FAILED)) == 1

    repeat = await payment_service.verify(db, payment.reference)
    assert repeat.already_processed is True


async def test_verify_before_initialize_is_a_conflict(book, db):
    booking = await book()

    with pytest.raises(Conflict):
        await payment_service.verify(db, booking.payment_reference)


async def test_verify_unknown_reference(db, engine):
    with pytest.raises(NotFoundError):
        await payment_service.verify(db, "SL-NOPE0000-20260101-XXXXXX")


async def test_gateway_outage_during_verify_is_retryable(book, db, gateway, settle):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    reference = payment.reference
    await settle(reference)
    gateway.unavailable_verifications = 1

    with pytest.raises(GatewayUnavailable) as exc_info:
        await payment_service.verify(db, reference)
    await db.rollback()
    assert exc_info.value.headers["Retry-After"]

    await db.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_PAYMENT.value

    result = await payment_service.verify(db, reference)
    await commit(db)
    assert result.booking_status == BookingStatus.CONFIRMED
    assert gateway.verify_calls == 2


# ==================== INITIALIZE ====================


async def test_initialize_is_idempotent(book, db, gateway):
    booking = await book()

    first = await payment_service.initialize(db, booking.id)
    await commit(db)
    second = await payment_service.initialize(db, booking.id)
    await commit(db)

    assert first.reference == second.reference == booking.payment_reference
    assert second.status == PaymentStatus.PENDING.value
    assert second.initialized_at is not None
    assert second.amount == 190_000
    assert gateway.initialize_calls == 1


async def test_initialize_outage_keeps_reference_for_retry(book, db, gateway):
    booking = await book()
    booking_id, reference = booking.id, booking.payment_reference
    gateway.unavailable_initializations = 1

    with pytest.raises(GatewayUnavailable):
        await payment_service.initialize(db, booking_id)
    await db.rollback()

    payment = await booking_service.get_payment(db, booking_id)
    assert payment.status == PaymentStatus.UNINITIALIZED.value
    assert payment.initializing_since is None

    retried = await payment_service.initialize(db, booking_id)
    await commit(db)
    assert retried.reference == reference
    assert retried.status == PaymentStatus.PENDING.value


async def test_initialize_rejects_cancelled_booking(book, db):
    booking = await book()
    await booking_service.cancel_booking(db, booking.id, RefundActor.GUEST, "Changed plans")
    await commit(db)

    with pytest.raises(Conflict):
        await payment_service.initialize(db, booking.id)


async def test_concurrent_initialization_calls_gateway_once(book, session_maker, gateway):
    booking = await book()

    async def attempt():
        async with session_maker() as session:
            payment = await payment_service.initialize(session, booking.id)
            await commit(session)
            return payment.reference

    references = await asyncio.gather(attempt(), attempt(), attempt())

    assert references == [booking.payment_reference] * 3
    assert gateway.initialize_calls == 1


async def test_initialization_in_flight_is_not_repeated(book, db, gateway):
    booking = await book()
    await db.execute(
        update(PaymentRecord)
        .where(PaymentRecord.booking_id == booking.id)
        .values(initializing_since=utcnow())
    )
    await commit(db)

    payment = await payment_service.initialize(db, booking.id)
    await commit(db)

    assert payment.reference == booking.payment_reference
    assert payment.status == PaymentStatus.UNINITIALIZED.value
    assert gateway.initialize_calls == 0


async def test_abandoned_initialization_claim_is_taken_over(book, db, gateway):
    booking = await book()
    abandoned_at = utcnow() - timedelta(seconds=settings.payment_init_claim_seconds + 1)
    await db.execute(
        update(PaymentRecord)
        .where(PaymentRecord.booking_id == booking.id)
        .values(initializing_since=abandoned_at)
    )
    await commit(db)

    payment = await payment_service.initialize(db, booking.id)
    await commit(db)

    assert payment.status == PaymentStatus.PENDING.value
    assert payment.initializing_since is None
    assert gateway.initialize_calls == 1


async def test_initialize_holds_no_booking_lock_during_gateway_call(
    book, db, gateway, session_maker
):
    booking = await book()
    booking_id = booking.id

    async def cancel_meanwhile():
        async with session_maker() as session:
            await asyncio.wait_for(
                booking_service.cancel_booking(session, booking_id, RefundActor.GUEST, "Left"),
                timeout=5,
            )
            await commit(session)

    gateway.during_initialize = cancel_meanwhile

    payment = await payment_service.initialize(db, booking_id)
    await commit(db)

    assert gateway.initialize_calls == 1
    assert payment.status == PaymentStatus.FAILED.value
    refreshed = await booking_service.get_booking(db, booking_id)
    assert refreshed.status == BookingStatus.CANCELLED.value


# ==================== MANUAL TRANSFERS ====================


async def test_recorded_transfer_is_visible_to_other_processes(book, db, settle):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    reference = payment.reference

    await settle(reference)

    # A worker process builds its own gateway instance
    gateway_service.reset()
    verification = await gateway_service.verify_transaction(GatewayType.MANUAL, reference)
    assert verification.status == TransactionStatus.SUCCESS
    assert (verification.amount, verification.currency) == (190_000, "NGN")

    result = await payment_service.verify(db, reference)
    await commit(db)
    assert result.booking_status == BookingStatus.CONFIRMED


async def test_unrecorded_transfer_is_pending(book, db):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)

    gateway_service.reset()
    verification = await gateway_service.verify_transaction(GatewayType.MANUAL, payment.reference)

    assert verification.status == TransactionStatus.PENDING
    assert verification.amount is None


async def test_transfer_is_recorded_once(book, db, settle, decline):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    reference = payment.reference
    recorded = await settle(reference, amount=180_000, currency="ngn")

    assert (recorded.received_amount, recorded.received_currency) == (180_000, "NGN")
    assert recorded.transfer_recorded_at is not None

    with pytest.raises(Conflict):
        await payment_service.record_transfer(db, reference)
    await db.rollback()
    with pytest.raises(Conflict):
        await payment_service.decline_transfer(db, reference)
    await db.rollback()


async def test_transfer_cannot_be_recorded_before_initialize(book, db):
    booking = await book()

    with pytest.raises(Conflict):
        await payment_service.record_transfer(db, booking.payment_reference)
    await db.rollback()


async def test_transfer_for_unknown_reference(db, engine):
    with pytest.raises(NotFoundError):
        await payment_service.record_transfer(db, "SL-NOPE0000-20260101-XXXXXX")


# ==================== LATE PAYMENT ====================


async def test_payment_after_cancellation_is_refunded_in_full(book, db, settle):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    await booking_service.cancel_booking(db, booking.id, RefundActor.GUEST, "Changed plans")
    await commit(db)
    await settle(payment.reference)

    result = await payment_service.verify(db, payment.reference)
    await commit(db)

    assert result.payment_status == PaymentStatus.VERIFIED
    assert result.booking_status == BookingStatus.CANCELLED
    assert result.refunded_amount == 190_000
    entries = await refund_service.entries(db, booking.id)
    assert [(e.amount, e.actor) for e in entries] == [(190_000, "SYSTEM")]


async def test_payment_after_expiry_is_refunded_in_full(book, db, settle):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id)
    await commit(db)
    await booking_service.expire_unpaid_bookings(db, now=utcnow() + timedelta(hours=1))
    await settle(payment.reference)

    result = await payment_service.verify(db, payment.reference)
    await commit(db)

    assert result.booking_status == BookingStatus.FAILED
    summary = await refund_service.summary(db, booking.id)
    assert summary.fully_refunded


# ==================== PAYSTACK ADAPTER ====================


def paystack(handler) -> PaystackGateway:
    return PaystackGateway(
        secret_key=SECRET,
        base_url="https://api.paystack.test",
        transport=httpx.MockTransport(handler),
    )


def sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


async def test_paystack_initialize_sends_reference_and_email():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "reference": seen["body"]["reference"],
                    "authorization_url": "https://checkout.paystack.com/abc",
                    "access_code": "abc",
                },
            },
        )

    result = await paystack(handler).initialize_transaction(
        190_000, "NGN", "SL-REF", metadata={"email": "guest@example.com", "booking_id": "b1"}
    )

    assert seen["auth"] == f"Bearer {SECRET}"
    assert seen["body"]["amount"] == 190_000
    assert seen["body"]["email"] == "guest@example.com"
    assert seen["body"]["metadata"] == {"booking_id": "b1"}
    assert result.authorization_url == "https://checkout.paystack.com/abc"


async def test_paystack_duplicate_reference_is_accepted():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Duplicate Transaction Reference"})

    result = await paystack(handler).initialize_transaction(190_000, "NGN", "SL-REF")

    assert result.reference == "SL-REF"


async def test_paystack_client_error_is_rejected():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Invalid Email Address Passed"})

    with pytest.raises(GatewayRejected):
        await paystack(handler).initialize_transaction(190_000, "NGN", "SL-REF")


@pytest.mark.parametrize("status_code", [500, 502, 429])
async def test_paystack_server_errors_are_transient(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"status": False})

    with pytest.raises(GatewayUnavailable):
        await paystack(handler).verify_transaction("SL-REF")


async def test_paystack_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayUnavailable):
        await paystack(handler).verify_transaction("SL-REF")


@pytest.mark.parametrize(
    "gateway_status,expected",
    [
        ("success", TransactionStatus.SUCCESS),
        ("failed", TransactionStatus.FAILED),
        ("abandoned", TransactionStatus.FAILED),
        ("reversed", TransactionStatus.FAILED),
        ("ongoing", TransactionStatus.PENDING),
    ],
)
async def test_paystack_verify_status_mapping(gateway_status, expected):
    def handler(request):
        assert request.url.path == "/transaction/verify/SL-REF"
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "id": 4099260516,
                    "reference": "SL-REF",
                    "status": gateway_status,
                    "amount": 190_000,
                    "currency": "NGN",
                    "gateway_response": "Declined",
                },
            },
        )

    result = await paystack(handler).verify_transaction("SL-REF")

    assert result.status == expected
    assert result.amount == 190_000
    assert result.gateway_transaction_id == "4099260516"


async def test_paystack_unknown_transaction_is_pending():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

    result = await paystack(handler).verify_transaction("SL-REF")

    assert result.status == TransactionStatus.PENDING


def test_paystack_webhook_signature():
    gateway = paystack(lambda request: httpx.Response(200))
    body = json.dumps({"event": "charge.success", "data": {"reference": "SL-REF"}}).encode()

    assert gateway.verify_webhook(body, sign(body))["data"]["reference"] == "SL-REF"
    assert gateway.verify_webhook(body, "0" * 128) is None
    assert gateway.verify_webhook(body, None) is None
    assert gateway.verify_webhook(body + b" ", sign(body)) is None


# ==================== WEBHOOK ====================


@pytest.fixture
def paystack_backend(monkeypatch):
    """Paystack double that reports whatever ``charges`` holds for a reference."""
    monkeypatch.setattr(settings, "payment_gateway", "paystack")
    charges: dict[str, dict] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/transaction/initialize":
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {
                        "reference": body["reference"],
                        "authorization_url": f"https://checkout.paystack.com/{body['reference']}",
                    },
                },
            )
        reference = request.url.path.rsplit("/", 1)[-1]
        if reference not in charges:
            return httpx.Response(404, json={"status": False, "message": "Transaction not found"})
        return httpx.Response(200, json={"status": True, "data": {"reference": reference, **charges[reference]}})

    gateway_service.register(paystack(handler))
    return charges


async def test_signed_webhook_confirms_via_gateway_lookup(book, db, paystack_backend, sender):
    booking = await book()
    payment = await payment_service.initialize(db, booking.id, email="guest@example.com")
    await commit(db)
    assert payment.gateway == GatewayType.PAYSTACK.value
    assert payment.authorization_url.endswith(payment.reference)

    paystack_backend[payment.reference] = {
        "id": 1,
        "status": "success",
        "amount": 190_000,
        "currency": "NGN",
    }
    # The body's amount is ignored; only the gateway lookup counts
    body = json.dumps(
        {"event": "charge.success", "data": {"reference": payment.reference, "amount": 1}}
    ).encode()

    result = await payment_service.handle_webhook(db, GatewayType.PAYSTACK, body, sign(body))
    await commit(db)

    assert result.booking_status == BookingStatus.CONFIRMED
    assert len(sender.events(notification_service.BOOKING_CONFIRMED)) == 1


async def test_webhook_with_bad_signature_is_rejected(db, engine, paystack_backend):
    body = json.dumps({"event": "charge.success", "data": {"reference": "SL-REF"}}).encode()

    with pytest.raises(InvalidWebhookSignature):
        await payment_service.handle_webhook(db, GatewayType.PAYSTACK, body, "forged")


async def test_webhook_ignores_other_events_and_unknown_references(db, engine, paystack_backend):
    transfer = json.dumps({"event": "transfer.success", "data": {"reference": "T1"}}).encode()
    unknown = json.dumps({"event": "charge.success", "data": {"reference": "SL-UNKNOWN"}}).encode()

    assert await payment_service.handle_webhook(db, GatewayType.PAYSTACK, transfer, sign(transfer)) is None
    assert await payment_service.handle_webhook(db, GatewayType.PAYSTACK, unknown, sign(unknown)) is None
