"""Immutability enforcement for ledger records using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from fastapi import status
from sqlalchemy import event, inspect

from stayledger.core.exceptions import AppException

logger = logging.getLogger(__name__)

_registered = False


class ImmutabilityViolationError(AppException):
    """Raised when attempting to modify an append-only or frozen record."""

    code = "immutability_violation"

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=(
                f"Immutability violation: Cannot {operation} {model_name} record {record_id}. "
                "Ledger records are immutable after creation."
            ),
        )


def _reject(model_name: str, operation: str, record_id: str) -> None:
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} at {datetime.now(UTC).isoformat()}"
    )
    raise ImmutabilityViolationError(model_name, operation, record_id)


def changed_frozen_columns(target, columns: tuple[str, ...]) -> list[str]:
    """Names of ``columns`` with pending changes on ``target``."""
    state = inspect(target)
    return [name for name in columns if state.attrs[name].history.has_changes()]


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for immutability enforcement.

    Idempotent; runs when ``stayledger.models`` is imported.
    """
    global _registered
    if _registered:
        return

    from stayledger.models.admin import AuditLog
    from stayledger.models.booking import FROZEN_PRICE_COLUMNS, Booking
    from stayledger.models.payment import RefundEntry

    # ============ RefundEntry / AuditLog: Append-Only ============

    for model in (RefundEntry, AuditLog):

        @event.listens_for(model, "before_update")
        def prevent_update(mapper, connection, target):
            _reject(type(target).__name__, "UPDATE", str(target.id))

        @event.listens_for(model, "before_delete")
        def prevent_delete(mapper, connection, target):
            _reject(type(target).__name__, "DELETE", str(target.id))

    # ============ Booking: frozen price, never deleted ============

    @event.listens_for(Booking, "before_update")
    def prevent_price_change(mapper, connection, target):
        changed = changed_frozen_columns(target, FROZEN_PRICE_COLUMNS)
        if changed:
            _reject("Booking", f"UPDATE {', '.join(changed)} of", str(target.id))

    @event.listens_for(Booking, "before_delete")
    def prevent_booking_delete(mapper, connection, target):
        _reject("Booking", "DELETE", str(target.id))

    _registered = True
    logger.info("Immutability enforcement registered for ledger records")
