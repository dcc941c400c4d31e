"""Dispute state machine.

States: OPEN → IN_REVIEW → RESOLVED | CLOSED
"""

from enum import Enum

from stayledger.core.exceptions import IllegalTransition


class DisputeStatus(str, Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class ReporterRole(str, Enum):
    GUEST = "GUEST"
    REALTOR = "REALTOR"


class DisputeCategory(str, Enum):
    PROPERTY_CONDITION = "PROPERTY_CONDITION"
    PROPERTY_DAMAGE = "PROPERTY_DAMAGE"
    MISSING_AMENITIES = "MISSING_AMENITIES"
    CLEANLINESS = "CLEANLINESS"
    RULE_VIOLATION = "RULE_VIOLATION"
    EXTRA_CLEANING = "EXTRA_CLEANING"
    OTHER = "OTHER"


DISPUTE_TRANSITIONS: dict[DisputeStatus, set[DisputeStatus]] = {
    DisputeStatus.OPEN: {DisputeStatus.IN_REVIEW, DisputeStatus.CLOSED},
    DisputeStatus.IN_REVIEW: {DisputeStatus.RESOLVED, DisputeStatus.CLOSED},
    # Terminal: further claims need a new dispute.
    DisputeStatus.RESOLVED: set(),
    DisputeStatus.CLOSED: set(),
}


def assert_dispute_transition(current: str | DisputeStatus, new_status: str | DisputeStatus) -> None:
    """Validate dispute state transition."""
    allowed = DISPUTE_TRANSITIONS.get(DisputeStatus(current), set())
    if DisputeStatus(new_status) not in allowed:
        raise IllegalTransition("dispute", DisputeStatus(current).value, DisputeStatus(new_status).value)
