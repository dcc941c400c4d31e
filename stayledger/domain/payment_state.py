"""Payment record state machine."""

from enum import Enum

from stayledger.core.exceptions import IllegalTransition


class PaymentStatus(str, Enum):
    """Payment record states."""

    UNINITIALIZED = "UNINITIALIZED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"


PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.UNINITIALIZED: {PaymentStatus.PENDING, PaymentStatus.FAILED},
    PaymentStatus.PENDING: {PaymentStatus.VERIFIED, PaymentStatus.FAILED},
    # A gateway may still report success after the payment window closed.
    PaymentStatus.FAILED: {PaymentStatus.VERIFIED},
    PaymentStatus.VERIFIED: set(),
}


def assert_payment_transition(current: str | PaymentStatus, target: str | PaymentStatus) -> None:
    allowed = PAYMENT_TRANSITIONS.get(PaymentStatus(current), set())
    if PaymentStatus(target) not in allowed:
        raise IllegalTransition("payment", PaymentStatus(current).value, PaymentStatus(target).value)
