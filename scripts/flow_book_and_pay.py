#!/usr/bin/env python3
"""
Booking and payment flow script (manual gateway).

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --property-id <UUID> --guest-id <UUID> --check-in 2026-12-01 --check-out 2026-12-04

Flow:
    1. Quote the stay
    2. Create booking (with the quoted total)
    3. Initialize payment
    4. Settle the bank transfer on the manual gateway
    5. Verify payment (confirms the booking)
    6. Verify again (idempotent, no change)
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
    parser = argparse.ArgumentParser(description="Booking and payment flow")
    parser.add_argument("--property-id", required=True, help="Property UUID")
    parser.add_argument("--guest-id", required=True, help="Guest UUID")
    parser.add_argument("--check-in", required=True, help="Check-in date (YYYY-MM-DD)")
    parser.add_argument("--check-out", required=True, help="Check-out date (YYYY-MM-DD)")
    parser.add_argument("--guests", type=int, default=2, help="Number of guests")
    parser.add_argument("--base-url", default=BASE_URL, help="API base URL")
    args = parser.parse_args()

    client = httpx.Client(base_url=f"{args.base_url}/api/v1", timeout=10.0)

    # Step 1: Quote
    print_step(1, "Quote the stay")
    quote_result = api_request(client, "POST", "/quotes", {
        "property_id": args.property_id,
        "check_in": args.check_in,
        "check_out": args.check_out,
        "guest_count": args.guests,
    })
    if not print_result(quote_result):
        sys.exit(1)

    breakdown = quote_result["data"]
    currency = breakdown["currency"]
    print("\nPricing Summary:")
    print(f"  Total:          {breakdown['total']:,} {currency} (minor units)")
    print(f"  Service fee:    {breakdown['service_fee']:,} ({breakdown['service_fee_percent']}%)")
    print(f"  Commission:     {breakdown['commission_amount']:,}")
    print(f"  Realtor payout: {breakdown['realtor_payout']:,}")

    # Step 2: Create booking
    print_step(2, "Create booking")
    booking_result = api_request(client, "POST", "/bookings", {
        "property_id": args.property_id,
        "guest_id": args.guest_id,
        "check_in": args.check_in,
        "check_out": args.check_out,
        "guest_count": args.guests,
        "expected_total": breakdown["total"],
    })
    if not print_result(booking_result, ["id", "booking_number", "status", "payment_reference", "payment_expires_at"]):
        sys.exit(1)

    booking_id = booking_result["data"]["id"]
    booking_number = booking_result["data"]["booking_number"]
    print(f"\nBooking created: {booking_number}")

    # Step 3: Initialize payment
    print_step(3, "Initialize payment")
    payment_result = api_request(client, "POST", "/payments/initialize", {"booking_id": booking_id})
    if not print_result(payment_result, ["reference", "amount", "currency", "gateway", "status"]):
        sys.exit(1)

    reference = payment_result["data"]["reference"]

    # Step 4: Settle the transfer
    print_step(4, "Settle bank transfer on the manual gateway")
    settle_result = api_request(client, "POST", f"/payments/manual/{reference}/settle", {})
    if not print_result(settle_result):
        sys.exit(1)

    # Step 5: Verify
    print_step(5, "Verify payment")
    verify_result = api_request(client, "POST", f"/payments/verify/{reference}")
    if not print_result(verify_result):
        sys.exit(1)
    print(f"\nBooking {verify_result['data']['booking_status']}")

    # Step 6: Verify again
    print_step(6, "Verify again (no change expected)")
    again_result = api_request(client, "POST", f"/payments/verify/{reference}")
    if not print_result(again_result, ["payment_status", "booking_status", "already_processed"]):
        sys.exit(1)

    # Final summary
    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)
    print(f"Booking:        {booking_number}")
    print(f"Reference:      {reference}")
    print(f"Total Paid:     {breakdown['total']:,} {currency}")
    print(f"Realtor Payout: {breakdown['realtor_payout']:,} {currency}")


if __name__ == "__main__":
    main()
