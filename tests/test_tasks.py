"""Background task helpers."""

import pytest

from stayledger import tasks
from stayledger.config import settings


def test_reverify_countdown_doubles_until_capped(monkeypatch):
    monkeypatch.setattr(settings, "verify_retry_initial_delay_seconds", 5)
    monkeypatch.setattr(settings, "verify_retry_max_delay_seconds", 60)

    assert [tasks.reverify_countdown(n) for n in range(6)] == [5, 10, 20, 40, 60, 60]


def test_enqueue_reverification_schedules_first_backoff(monkeypatch):
    calls = []
    monkeypatch.setattr(
        tasks.reverify_payment, "apply_async", lambda **kwargs: calls.append(kwargs)
    )

    tasks.enqueue_reverification("SL-REF")

    assert calls == [
        {"args": ["SL-REF"], "countdown": tasks.reverify_countdown(0), "retry": False}
    ]


def test_enqueue_reverification_survives_broker_outage(monkeypatch, caplog):
    def unavailable(**kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(tasks.reverify_payment, "apply_async", unavailable)

    tasks.enqueue_reverification("SL-REF")

    assert "Could not queue re-verification of payment SL-REF" in caplog.text


def test_tasks_use_the_configured_broker():
    assert tasks.reverify_payment.app.main == "stayledger_tasks"
    assert set(tasks.celery_app.conf.beat_schedule) == {
        "expire-unpaid-bookings",
        "complete-finished-bookings",
        "return-security-deposits",
    }


def test_run_async_returns_coroutine_result():
    async def answer():
        return 42

    assert tasks.run_async(answer()) == 42


def test_run_async_propagates_errors():
    async def broken():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        tasks.run_async(broken())
