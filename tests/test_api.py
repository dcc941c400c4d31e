"""HTTP API tests through the ASGI app."""

import json
from uuid import uuid4

import pytest

API = "/api/v1"


@pytest.fixture
def booking_payload(listing, stay):
    def make(offset: int = 0, nights: int = 3, **overrides) -> dict:
        check_in, check_out = stay(offset, nights)
        payload = {
            "property_id": str(listing.id),
            "guest_id": str(uuid4()),
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "guest_count": 2,
        }
        payload.update(overrides)
        return payload

    return make


async def create_paid_booking(client, payload: dict) -> dict:
    booking = (await client.post(f"{API}/bookings", json=payload)).json()
    await client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]})
    await client.post(f"{API}/payments/manual/{booking['payment_reference']}/settle", json={})
    await client.post(f"{API}/payments/verify/{booking['payment_reference']}")
    return booking


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_quote(client, booking_payload):
    payload = booking_payload()
    del payload["guest_id"]

    response = await client.post(f"{API}/quotes", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 190_000
    assert body["nights"] == 3
    assert body["service_fee"] == 15_000


@pytest.mark.parametrize(
    "overrides",
    [
        {"guest_count": "2"},
        {"guest_count": 0},
        {"nightly_rate": 1},
    ],
)
async def test_quote_rejects_malformed_input(client, booking_payload, overrides):
    payload = booking_payload(**overrides)
    del payload["guest_id"]

    response = await client.post(f"{API}/quotes", json=payload)

    assert response.status_code == 422


async def test_quote_rejects_reversed_dates(client, booking_payload, stay):
    check_in, check_out = stay(0, 3)
    payload = booking_payload(check_in=check_out.isoformat(), check_out=check_in.isoformat())
    del payload["guest_id"]

    response = await client.post(f"{API}/quotes", json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_date_range"


async def test_book_pay_and_verify(client, booking_payload, sender):
    created = await client.post(f"{API}/bookings", json=booking_payload(expected_total=190_000))
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "AWAITING_PAYMENT"
    assert booking["breakdown"]["total"] == 190_000
    reference = booking["payment_reference"]

    initialized = await client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]})
    assert initialized.status_code == 201
    assert initialized.json()["status"] == "PENDING"
    assert initialized.json()["reference"] == reference

    settled = await client.post(f"{API}/payments/manual/{reference}/settle", json={})
    assert settled.status_code == 202

    verified = await client.post(f"{API}/payments/verify/{reference}")
    assert verified.status_code == 200
    assert verified.json() == {
        "reference": reference,
        "payment_status": "VERIFIED",
        "booking_status": "CONFIRMED",
        "already_processed": False,
        "refunded_amount": 0,
    }

    repeated = await client.post(f"{API}/payments/verify/{reference}")
    assert repeated.json()["already_processed"] is True

    fetched = await client.get(f"{API}/bookings/{booking['id']}")
    assert fetched.json()["status"] == "CONFIRMED"
    assert fetched.json()["version"] == 2
    assert len(sender.events("booking_confirmed")) == 1


async def test_short_transfer_is_reported_as_mismatch(client, booking_payload):
    booking = (await client.post(f"{API}/bookings", json=booking_payload())).json()
    reference = booking["payment_reference"]
    await client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]})
    await client.post(f"{API}/payments/manual/{reference}/settle", json={"amount": 100_000})

    response = await client.post(f"{API}/payments/verify/{reference}")

    assert response.status_code == 409
    assert response.json()["code"] == "reconciliation_mismatch"
    fetched = await client.get(f"{API}/bookings/{booking['id']}")
    assert fetched.json()["status"] == "AWAITING_PAYMENT"


async def test_overlapping_booking_is_409(client, booking_payload):
    first = await client.post(f"{API}/bookings", json=booking_payload(offset=0))
    second = await client.post(f"{API}/bookings", json=booking_payload(offset=1))

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "availability_conflict"


async def test_stale_expected_total_is_409(client, booking_payload):
    response = await client.post(f"{API}/bookings", json=booking_payload(expected_total=150_000))

    assert response.status_code == 409
    assert response.json()["code"] == "quote_changed"


async def test_unknown_booking_is_404(client):
    response = await client.get(f"{API}/bookings/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


async def test_refund_ledger(client, booking_payload):
    booking = await create_paid_booking(client, booking_payload())

    first = await client.post(
        f"{API}/refunds",
        json={"booking_id": booking["id"], "amount": 150_000, "reason": "Early checkout", "actor": "ADMIN"},
    )
    assert first.status_code == 201
    assert first.json()["amount"] == 150_000

    over = await client.post(
        f"{API}/refunds",
        json={"booking_id": booking["id"], "amount": 50_000, "reason": "Goodwill", "actor": "ADMIN"},
    )
    assert over.status_code == 422
    assert over.json()["code"] == "over_refund"

    ledger = (await client.get(f"{API}/refunds/bookings/{booking['id']}")).json()
    assert ledger["total_refunded"] == 150_000
    assert ledger["remaining_refundable"] == 40_000
    assert ledger["fully_refunded"] is False
    assert [entry["amount"] for entry in ledger["entries"]] == [150_000]


async def test_cancel_paid_booking_refunds_balance(client, booking_payload):
    booking = await create_paid_booking(client, booking_payload())

    response = await client.post(
        f"{API}/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "GUEST", "reason": "Flight cancelled"},
    )

    assert response.status_code == 200
    assert response.json()["refunded_amount"] == 190_000
    assert response.json()["booking"]["status"] == "CANCELLED"

    again = await client.post(
        f"{API}/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "GUEST", "reason": "Flight cancelled"},
    )
    assert again.status_code == 409
    assert again.json()["code"] == "illegal_transition"


async def test_gateway_outage_returns_503_and_queues_reverification(
    client, booking_payload, gateway, monkeypatch
):
    queued = []
    monkeypatch.setattr("stayledger.api.v1.payments.enqueue_reverification", queued.append)
    booking = (await client.post(f"{API}/bookings", json=booking_payload())).json()
    reference = booking["payment_reference"]
    await client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]})
    gateway.unavailable_verifications = 1

    response = await client.post(f"{API}/payments/verify/{reference}")

    assert response.status_code == 503
    assert response.json()["code"] == "gateway_unavailable"
    assert response.headers["Retry-After"] == "30"
    assert queued == [reference]


async def test_webhook_with_bad_signature_is_401(client):
    body = json.dumps({"event": "charge.success", "data": {"reference": "SL-REF"}})

    response = await client.post(
        f"{API}/webhooks/paystack",
        content=body,
        headers={"x-paystack-signature": "forged", "Content-Type": "application/json"},
    )

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_signature"


async def test_dispute_flow(client, booking_payload):
    booking = await create_paid_booking(client, booking_payload())

    opened = await client.post(
        f"{API}/disputes",
        json={
            "booking_id": booking["id"],
            "reporter_id": booking["guest_id"],
            "reporter_role": "GUEST",
            "category": "CLEANLINESS",
            "description": "Bathroom was dirty on arrival",
        },
    )
    assert opened.status_code == 201
    dispute_id = opened.json()["id"]

    early = await client.post(f"{API}/disputes/{dispute_id}/resolve", json={"refund_amount": 10_000})
    assert early.status_code == 409

    reviewed = await client.post(f"{API}/disputes/{dispute_id}/review", json={})
    assert reviewed.json()["status"] == "IN_REVIEW"

    resolved = await client.post(
        f"{API}/disputes/{dispute_id}/resolve",
        json={"refund_amount": 30_000, "notes": "Partial refund for cleaning"},
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "RESOLVED"

    fetched = (await client.get(f"{API}/bookings/{booking['id']}")).json()
    assert fetched["status"] == "CONFIRMED"
    ledger = (await client.get(f"{API}/refunds/bookings/{booking['id']}")).json()
    assert ledger["entries"][0]["dispute_id"] == dispute_id


async def test_dispute_on_unpaid_booking_is_409(client, booking_payload):
    booking = (await client.post(f"{API}/bookings", json=booking_payload())).json()

    response = await client.post(
        f"{API}/disputes",
        json={
            "booking_id": booking["id"],
            "reporter_id": booking["guest_id"],
            "reporter_role": "GUEST",
            "category": "OTHER",
            "description": "Cannot dispute before paying",
        },
    )

    assert response.status_code == 409
    assert response.json()["code"] == "illegal_transition"


async def test_disputed_booking_cannot_be_cancelled_directly(client, booking_payload):
    booking = await create_paid_booking(client, booking_payload())
    await client.post(
        f"{API}/disputes",
        json={
            "booking_id": booking["id"],
            "reporter_id": booking["guest_id"],
            "reporter_role": "GUEST",
            "category": "PROPERTY_CONDITION",
            "description": "Front door lock was broken",
        },
    )

    response = await client.post(
        f"{API}/bookings/{booking['id']}/cancel",
        json={"cancelled_by": "GUEST", "reason": "Changed my mind"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "conflict"
    ledger = (await client.get(f"{API}/refunds/bookings/{booking['id']}")).json()
    assert ledger["entries"] == []


async def test_declined_transfer_fails_booking(client, booking_payload, sender):
    booking = (await client.post(f"{API}/bookings", json=booking_payload())).json()
    reference = booking["payment_reference"]
    await client.post(f"{API}/payments/initialize", json={"booking_id": booking["id"]})

    declined = await client.post(f"{API}/payments/manual/{reference}/decline", json={})
    assert declined.status_code == 202
    assert declined.json()["transfer_declined_at"] is not None

    verified = await client.post(f"{API}/payments/verify/{reference}")
    assert verified.json()["payment_status"] == "FAILED"
    assert verified.json()["booking_status"] == "FAILED"
    assert len(sender.events("payment_failed")) == 1

    again = await client.post(f"{API}/payments/manual/{reference}/settle", json={})
    assert again.status_code == 409
