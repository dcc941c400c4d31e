#!/usr/bin/env python3
"""
Refund and cancellation flow script (manual gateway).

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_refund_and_cancel.py --property-id <UUID> --guest-id <UUID> --check-in 2026-12-01 --check-out 2026-12-04
    python scripts/flow_refund_and_cancel.py --property-id <UUID> --guest-id <UUID> --check-in 2026-12-01 --check-out 2026-12-04 --partial 5000

Flow:
    1. Create booking
    2. Initialize, settle and verify payment
    3. Partial refund (optional)
    4. Attempt an over-refund (expected to be rejected)
    5. Cancel booking (remaining balance refunded)
    6. Show the refund ledger
"""

import argparse
import json
import sys

import httpx

BASE_URL = "http://localhost:8000"


def api_request(client: httpx.Client, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make an API request and return status and body."""
    if method == "GET":
        response = client.get(endpoint)
    elif method == "POST":
        response = client.post(endpoint, json=data or {})
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    if fields:
        filtered = {k: result["data"].get(k) for k in fields if k in result["data"]}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(result["data"], indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Refund and cancellation flow")
    parser.add_argument("--property-id", required=True, help="Property UUID")
    parser.add_argument("--guest-id", required=True, help="Guest UUID")
    parser.add_argument("--check-in", required=True, help="Check-in date (YYYY-MM-DD)")
    parser.add_argument("--check-out", required=True, help="Check-out date (YYYY-MM-DD)")
    parser.add_argument("--guests", type=int, default=2, help="Number of guests")
    parser.add_argument("--partial", type=int, default=0, help="Partial refund amount before cancelling")
    parser.add_argument("--base-url", default=BASE_URL, help="API base URL")
    args = parser.parse_args()

    client = httpx.Client(base_url=f"{args.base_url}/api/v1", timeout=10.0)

    # Step 1: Create booking
    print_step(1, "Create booking")
    booking_result = api_request(client, "POST", "/bookings", {
        "property_id": args.property_id,
        "guest_id": args.guest_id,
        "check_in": args.check_in,
        "check_out": args.check_out,
        "guest_count": args.guests,
    })
    if not print_result(booking_result, ["id", "booking_number", "status", "payment_reference"]):
        sys.exit(1)

    booking_id = booking_result["data"]["id"]
    total = booking_result["data"]["breakdown"]["total"]

    # Step 2: Pay
    print_step(2, "Initialize, settle and verify payment")
    payment_result = api_request(client, "POST", "/payments/initialize", {"booking_id": booking_id})
    if not print_result(payment_result, ["reference", "amount", "status"]):
        sys.exit(1)
    reference = payment_result["data"]["reference"]

    if not print_result(api_request(client, "POST", f"/payments/manual/{reference}/settle", {})):
        sys.exit(1)
    if not print_result(api_request(client, "POST", f"/payments/verify/{reference}")):
        sys.exit(1)

    # Step 3: Partial refund
    if args.partial:
        print_step(3, f"Partial refund of {args.partial:,}")
        refund_result = api_request(client, "POST", "/refunds", {
            "booking_id": booking_id,
            "amount": args.partial,
            "reason": "Partial refund from flow script",
            "actor": "ADMIN",
        })
        if not print_result(refund_result, ["id", "amount", "actor"]):
            sys.exit(1)

    # Step 4: Over-refund
    print_step(4, "Attempt over-refund (should be rejected)")
    over_result = api_request(client, "POST", "/refunds", {
        "booking_id": booking_id,
        "amount": total + 1,
        "reason": "Over-refund attempt",
        "actor": "ADMIN",
    })
    if over_result["status"] < 400:
        print("ERROR: over-refund was accepted")
        sys.exit(1)
    print(f"Rejected ({over_result['status']}): {over_result['data'].get('code')}")

    # Step 5: Cancel
    print_step(5, "Cancel booking")
    cancel_result = api_request(client, "POST", f"/bookings/{booking_id}/cancel", {
        "cancelled_by": "GUEST",
        "reason": "Change of plans",
    })
    if not print_result(cancel_result, ["refunded_amount"]):
        sys.exit(1)

    # Step 6: Ledger
    print_step(6, "Refund ledger")
    ledger_result = api_request(client, "GET", f"/refunds/bookings/{booking_id}")
    if not print_result(ledger_result, ["total", "total_refunded", "remaining_refundable", "fully_refunded"]):
        sys.exit(1)

    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)


if __name__ == "__main__":
    main()
