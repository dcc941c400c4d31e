"""Celery worker configuration.

Periodic sweeps and deferred payment re-verification:
- Booking completion after the dispute window
- Payment window expiry
- Payment re-verification with backoff (enqueued by the verify endpoint)
"""

from celery import Celery
from celery.schedules import crontab

from stayledger.config import settings

celery_app = Celery(
    "stayledger_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["stayledger.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Lagos",
    enable_utc=True,

    # Sweeps commit per booking, so a lost worker leaves nothing half-applied
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    task_soft_time_limit=90,

    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    result_expires=3600,

    beat_schedule={
        "expire-unpaid-bookings": {
            "task": "stayledger.tasks.expire_unpaid_bookings",
            "schedule": crontab(minute="*/5"),
        },
        "complete-finished-bookings": {
            "task": "stayledger.tasks.complete_finished_bookings",
            "schedule": crontab(minute=0),
        },
        "return-security-deposits": {
            "task": "stayledger.tasks.return_security_deposits",
            "schedule": crontab(minute=30),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
