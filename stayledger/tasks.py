"""Celery background tasks.

This module contains the scheduled and on-demand tasks for:
- Completing stays whose dispute window has passed
- Failing bookings whose payment window expired
- Returning security deposits once the dispute window has passed
- Re-verifying payments after transient gateway failures
"""

import asyncio
import logging

from celery import shared_task

from stayledger.config import settings
from stayledger.core.exceptions import GatewayUnavailable
from stayledger.database import close_db, get_db_context
from stayledger.services.booking_service import booking_service
from stayledger.services.payment_service import payment_service
from stayledger.worker import celery_app  # noqa: F401  (binds shared tasks to the redis broker)

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context on a fresh event loop."""

    async def runner():
        try:
            return await coro
        finally:
            # Pooled connections are bound to the loop that opened them.
            await close_db()

    return asyncio.run(runner())


def reverify_countdown(retries: int) -> int:
    """Exponential backoff for re-verification, capped."""
    delay = settings.verify_retry_initial_delay_seconds * (2**retries)
    return min(delay, settings.verify_retry_max_delay_seconds)


# ==================== BOOKING LIFECYCLE ====================


@shared_task(bind=True, max_retries=3)
def complete_finished_bookings(self):
    """Complete confirmed bookings whose checkout plus dispute window passed.

    Runs hourly.
    """
    try:
        completed = run_async(_complete_finished_bookings())
        return {"status": "success", "completed": completed}
    except Exception as exc:
        self.retry(exc=exc, countdown=300)


async def _complete_finished_bookings() -> int:
    async with get_db_context() as db:
        return await booking_service.complete_finished_bookings(db)


@shared_task(bind=True, max_retries=3)
def expire_unpaid_bookings(self):
    """Fail bookings whose payment window elapsed and release their dates.

    Runs every 5 minutes.
    """
    try:
        expired = run_async(_expire_unpaid_bookings())
        return {"status": "success", "expired": expired}
    except Exception as exc:
        self.retry(exc=exc, countdown=60)


async def _expire_unpaid_bookings() -> int:
    async with get_db_context() as db:
        return await booking_service.expire_unpaid_bookings(db)


@shared_task(bind=True, max_retries=3)
def return_security_deposits(self):
    """Refund security deposits of completed stays with no dispute.

    Runs hourly, half an hour after completion.
    """
    try:
        returned = run_async(_return_security_deposits())
        return {"status": "success", "returned": returned}
    except Exception as exc:
        self.retry(exc=exc, countdown=300)


async def _return_security_deposits() -> int:
    async with get_db_context() as db:
        return await booking_service.return_security_deposits(db)


# ==================== PAYMENT RECONCILIATION ====================


@shared_task(bind=True, max_retries=None)
def reverify_payment(self, reference: str):
    """Re-run verification for a payment after a transient gateway failure.

    Only GatewayUnavailable is retried; mismatches and other errors are final.
    """
    try:
        result = run_async(_reverify_payment(reference))
    except GatewayUnavailable as exc:
        if self.request.retries >= settings.verify_retry_max:
            logger.error(f"Giving up re-verification of payment {reference}: {exc.detail}")
            raise
        countdown = reverify_countdown(self.request.retries)
        logger.warning(f"Gateway unavailable verifying {reference}; retrying in {countdown}s")
        raise self.retry(exc=exc, countdown=countdown)

    return {
        "status": "success",
        "reference": reference,
        "payment_status": result.payment_status.value,
        "booking_status": result.booking_status.value,
    }


async def _reverify_payment(reference: str):
    async with get_db_context() as db:
        return await payment_service.verify(db, reference)


def enqueue_reverification(reference: str) -> None:
    """Queue ``reverify_payment``; a broker outage is logged, not raised."""
    try:
        reverify_payment.apply_async(
            args=[reference],
            countdown=reverify_countdown(0),
            retry=False,
        )
    except Exception as e:
        logger.warning(f"Could not queue re-verification of payment {reference}: {e}")
