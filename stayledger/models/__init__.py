"""Database models."""

from stayledger.core.immutability import register_immutability_enforcement
from stayledger.models.admin import AuditLog, Dispute
from stayledger.models.booking import AvailabilityReservation, Booking
from stayledger.models.payment import PaymentRecord, RefundActor, RefundEntry
from stayledger.models.property import Property

register_immutability_enforcement()

__all__ = [
    # Catalog
    "Property",
    # Booking
    "Booking",
    "AvailabilityReservation",
    # Payment
    "PaymentRecord",
    "RefundEntry",
    "RefundActor",
    # Admin
    "AuditLog",
    "Dispute",
]
