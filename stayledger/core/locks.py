"""Keyed locks scoped to a database transaction.

Per-booking and per-property critical sections must stay exclusive until
the writes they guard are committed, otherwise a second writer could read
the pre-commit state. A lock taken with ``hold_for_transaction`` is
therefore released by a session event when the outermost transaction ends
(commit, rollback or close), not when the calling function returns.
"""

import asyncio
import hashlib
import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

HELD_LOCKS_KEY = "held_transaction_locks"

BOOKING_LOCK = "booking"
PROPERTY_LOCK = "property"


class KeyedLock:
    """A family of asyncio locks created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    async def acquire(self, key: str) -> None:
        lock = self._checkout(key)
        try:
            await lock.acquire()
        except BaseException:
            self._checkin(key)
            raise

    def release(self, key: str) -> None:
        self._locks[key].release()
        self._checkin(key)


transaction_locks = KeyedLock()


def advisory_key(lock_key: str) -> int:
    """Map a lock key onto a signed 64-bit Postgres advisory lock id."""
    digest = hashlib.blake2b(lock_key.encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def hold_for_transaction(db: AsyncSession, namespace: str, key: object) -> None:
    """Acquire ``namespace:key`` until the session's transaction ends.

    Reentrant within one session. On PostgreSQL a transaction-scoped
    advisory lock is taken as well so that separate processes serialize.
    """
    lock_key = f"{namespace}:{key}"
    held: list[str] = db.info.setdefault(HELD_LOCKS_KEY, [])
    if lock_key in held:
        return

    # Begin the transaction the lock is scoped to.
    conn = await db.connection()
    await transaction_locks.acquire(lock_key)
    held.append(lock_key)

    if conn.dialect.name == "postgresql":
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": advisory_key(lock_key)},
        )


@event.listens_for(Session, "after_transaction_end")
def _release_transaction_locks(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    held = session.info.pop(HELD_LOCKS_KEY, None)
    for lock_key in reversed(held or []):
        transaction_locks.release(lock_key)
