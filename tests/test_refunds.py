"""Refund ledger tests."""

import asyncio

import pytest

from stayledger.core.exceptions import BookingNotPayable, InvalidInput, OverRefund
from stayledger.core.immutability import ImmutabilityViolationError
from stayledger.database import commit
from stayledger.domain.booking_state import BookingStatus
from stayledger.models.payment import RefundActor
from stayledger.services.audit_service import audit_service
from stayledger.services.booking_service import booking_service
from stayledger.services.notification_service import notification_service
from stayledger.services.refund_service import refund_service


async def test_partial_refunds_then_over_refund_is_rejected(paid_booking, db):
    booking = await paid_booking()
    booking_id = booking.id

    await refund_service.refund(db, booking_id, 50_000, "Broken AC", RefundActor.ADMIN)
    await commit(db)
    await refund_service.refund(db, booking_id, 100_000, "Early checkout", RefundActor.REALTOR)
    await commit(db)

    with pytest.raises(OverRefund) as exc_info:
        await refund_service.refund(db, booking_id, 50_000, "Goodwill", RefundActor.ADMIN)
    await db.rollback()

    assert exc_info.value.requested == 50_000
    assert exc_info.value.remaining == 40_000

    summary = await refund_service.summary(db, booking_id)
    assert summary.total_refunded == 150_000
    assert summary.remaining_refundable == 40_000
    assert [e.amount for e in summary.entries] == [50_000, 100_000]
    assert [e.actor for e in summary.entries] == ["ADMIN", "REALTOR"]
    assert not summary.fully_refunded


async def test_refund_to_exactly_zero_is_allowed(paid_booking, db):
    booking = await paid_booking()

    await refund_service.refund(db, booking.id, 190_000, "Host cancelled", RefundActor.ADMIN)
    await commit(db)

    summary = await refund_service.summary(db, booking.id)
    assert summary.fully_refunded
    # Refunds never change the booking status by themselves
    await db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED.value


async def test_unpaid_booking_cannot_be_refunded(book, db):
    booking = await book()

    with pytest.raises(BookingNotPayable):
        await refund_service.refund(db, booking.id, 10_000, "Goodwill", RefundActor.ADMIN)
    await db.rollback()


@pytest.mark.parametrize("amount", [0, -1])
async def test_non_positive_amount_is_invalid(paid_booking, db, amount):
    booking = await paid_booking()

    with pytest.raises(InvalidInput):
        await refund_service.refund(db, booking.id, amount, "Nothing", RefundActor.ADMIN)


async def test_concurrent_refunds_never_exceed_total(paid_booking, session_maker):
    booking = await paid_booking()
    booking_id = booking.id

    async def attempt():
        async with session_maker() as session:
            try:
                entry = await refund_service.refund(
                    session, booking_id, 100_000, "Duplicate request", RefundActor.ADMIN
                )
                await commit(session)
                return entry.amount
            except OverRefund as e:
                await session.rollback()
                return e

    results = await asyncio.gather(attempt(), attempt())

    assert sorted(r for r in results if isinstance(r, int)) == [100_000]
    assert sum(isinstance(r, OverRefund) for r in results) == 1
    async with session_maker() as session:
        assert await refund_service.total_refunded(session, booking_id) == 100_000


async def test_cancelling_paid_booking_refunds_remaining_balance(paid_booking, db, sender):
    booking = await paid_booking()
    await refund_service.refund(db, booking.id, 50_000, "Broken AC", RefundActor.ADMIN)
    await commit(db)

    result = await booking_service.cancel_booking(
        db, booking.id, RefundActor.ADMIN, "Property unavailable"
    )
    await commit(db)

    assert result.refunded_amount == 140_000
    summary = await refund_service.summary(db, booking.id)
    assert summary.fully_refunded
    assert [e.reason for e in summary.entries] == ["Broken AC", "Cancellation: Property unavailable"]
    cancelled = sender.events(notification_service.BOOKING_CANCELLED)
    assert cancelled[0]["refunded_amount"] == 140_000


async def test_refund_entries_are_immutable(paid_booking, db):
    booking = await paid_booking()
    entry = await refund_service.refund(db, booking.id, 10_000, "Goodwill", RefundActor.ADMIN)
    await commit(db)

    entry.amount = 1
    with pytest.raises(ImmutabilityViolationError):
        await db.flush()
    await db.rollback()


async def test_each_refund_notifies_and_is_audited(paid_booking, db, sender):
    booking = await paid_booking()

    entry = await refund_service.refund(db, booking.id, 30_000, "Late check-in", RefundActor.ADMIN)
    await commit(db)
    await refund_service.refund(db, booking.id, 20_000, "Noise", RefundActor.ADMIN)
    await commit(db)

    issued = sender.events(notification_service.REFUND_ISSUED)
    assert [payload["amount"] for payload in issued] == [30_000, 20_000]

    trail = await audit_service.get_trail(db, booking.id)
    refunds = [row for row in trail if row.action == "refund_create"]
    assert len(refunds) == 2
    assert refunds[0].new_values["refund_entry_id"] == str(entry.id)
    assert refunds[0].new_values["remaining_refundable"] == 160_000
    assert refunds[1].new_values["remaining_refundable"] == 140_000


async def test_notification_failure_does_not_undo_refund(paid_booking, db, sender):
    booking = await paid_booking()
    sender.fail = True

    await refund_service.refund(db, booking.id, 10_000, "Goodwill", RefundActor.ADMIN)
    await commit(db)

    assert await refund_service.total_refunded(db, booking.id) == 10_000
