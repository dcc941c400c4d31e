"""Notification Service.

Delivery itself belongs to an external notification system; this service
hands events to it over HTTP once the transaction that produced them has
committed. Delivery failures are logged and never roll anything back.
"""

import logging
from typing import Any, Protocol
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from stayledger.config import settings
from stayledger.core.idempotency import IdempotencyStore, generate_idempotency_key
from stayledger.database import run_after_commit

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    async def send(self, event: str, payload: dict[str, Any]) -> None: ...


class WebhookNotificationSender:
    """POSTs events as JSON to the configured notification webhook."""

    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        self.url = url or settings.notification_webhook_url
        self.timeout = timeout or settings.notification_timeout_seconds
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if not self.url:
            logger.info(f"Notification {event} (no webhook configured): {payload}")
            return
        response = await self.http_client.post(self.url, json={"event": event, "data": payload})
        response.raise_for_status()


class NotificationService:
    """Queues booking events for delivery after commit."""

    # Notification types
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    PAYMENT_FAILED = "payment_failed"
    REFUND_ISSUED = "refund_issued"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"

    # Sent at most once per booking (per dispute for dispute events)
    ONCE_PER_BOOKING = {
        BOOKING_CONFIRMED,
        BOOKING_CANCELLED,
        BOOKING_COMPLETED,
        PAYMENT_FAILED,
        DISPUTE_RESOLVED,
    }

    def __init__(self, sender: NotificationSender | None = None) -> None:
        self.sender: NotificationSender = sender or WebhookNotificationSender()
        self._sent = IdempotencyStore()

    def notify_after_commit(
        self,
        db: AsyncSession,
        event: str,
        booking_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Schedule ``event`` for delivery once ``db`` commits.

        Args:
            db: Session whose commit triggers delivery
            event: Notification type
            booking_id: Booking the event is about
            payload: Extra JSON-serializable fields
        """
        data = {"booking_id": str(booking_id), **(payload or {})}

        async def deliver() -> None:
            await self.deliver(event, booking_id, data)

        run_after_commit(db, deliver)

    async def deliver(self, event: str, booking_id: UUID, data: dict[str, Any]) -> bool:
        """Send one event now. Returns False if skipped or failed."""
        key = None
        if event in self.ONCE_PER_BOOKING:
            # A booking can see several disputes; each resolution is its own event
            params = {"dispute_id": data["dispute_id"]} if "dispute_id" in data else None
            key = generate_idempotency_key(event, booking_id, params)
            if not self._sent.claim(key):
                logger.debug(f"Skipping duplicate {event} notification for booking {booking_id}")
                return False

        try:
            await self.sender.send(event, data)
        except Exception as e:
            logger.warning(f"Notification {event} for booking {booking_id} failed: {e}")
            if key is not None:
                self._sent.release(key)
            return False

        logger.info(f"Notification {event} sent for booking {booking_id}")
        return True

    def reset(self) -> None:
        self._sent.clear()


notification_service = NotificationService()
