"""Booking number and payment reference generation utilities."""

import secrets
import string
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

ALPHABET = string.ascii_uppercase + string.digits


def _random_part(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format SL-XXXXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number like 'SL-A3B7K9Q2'
    """
    from stayledger.models.booking import Booking

    while True:
        booking_number = f"SL-{_random_part(8)}"

        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if result.scalar_one_or_none() is None:
            return booking_number


def generate_payment_reference(booking_number: str) -> str:
    """Generate the gateway reference for a booking's payment.

    Assigned once per booking and reused on every retry, so the gateway
    can reject duplicate initializations.

    Returns:
        str: Reference like 'SL-A3B7K9Q2-20250115-K9M2X7'
    """
    date_part = datetime.now(UTC).strftime("%Y%m%d")
    return f"{booking_number}-{date_part}-{_random_part(6)}"
