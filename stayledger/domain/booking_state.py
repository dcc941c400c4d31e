"""Booking state machine.

DRAFT → AWAITING_PAYMENT → CONFIRMED → COMPLETED, with FAILED and
CANCELLED side branches and a CONFIRMED ⇄ DISPUTED overlay.
"""

from enum import Enum

from stayledger.core.exceptions import IllegalTransition


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    DRAFT = "DRAFT"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    DISPUTED = "DISPUTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    # A guest may abandon checkout before payment at zero cost.
    BookingStatus.DRAFT: {BookingStatus.AWAITING_PAYMENT, BookingStatus.CANCELLED},
    BookingStatus.AWAITING_PAYMENT: {
        BookingStatus.CONFIRMED,
        BookingStatus.FAILED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.DISPUTED,
    },
    BookingStatus.DISPUTED: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.FAILED: set(),
    BookingStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.FAILED, BookingStatus.CANCELLED}
)


def can_transition(current: str | BookingStatus, target: str | BookingStatus) -> bool:
    return BookingStatus(target) in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def assert_booking_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    if not can_transition(current, target):
        raise IllegalTransition("booking", BookingStatus(current).value, BookingStatus(target).value)

