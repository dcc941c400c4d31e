"""Idempotency keys for side effects that must happen at most once."""

import hashlib
import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID


class IdempotencyStore:
    """Process-local record of claimed keys.

    A key stays claimed for ``ttl``; after that the same side effect may run
    again. Durable guarantees come from the database state machines, this
    store only suppresses duplicate deliveries within one process.
    """

    def __init__(self, ttl: timedelta = timedelta(hours=24)):
        self._claimed: dict[str, datetime] = {}
        self._ttl = ttl

    def _purge(self, now: datetime) -> None:
        stale = [key for key, claimed_at in self._claimed.items() if claimed_at + self._ttl <= now]
        for key in stale:
            del self._claimed[key]

    def claim(self, key: str) -> bool:
        """Claim ``key``. Returns False if it is already held."""
        now = datetime.now(UTC)
        self._purge(now)
        if key in self._claimed:
            return False
        self._claimed[key] = now
        return True

    def release(self, key: str) -> None:
        """Give a key back so the side effect can be retried."""
        self._claimed.pop(key, None)

    def clear(self) -> None:
        self._claimed.clear()


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Deterministic key for ``operation`` on ``entity_id``.

    Args:
        operation: Event or operation name (e.g., "booking_confirmed")
        entity_id: Booking or payment the operation applies to
        params: Extra discriminators, if one entity can see the operation more than once

    Returns:
        SHA256 hex digest
    """
    material = json.dumps(
        [operation, str(entity_id), params or {}],
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(material.encode()).hexdigest()
