"""Tests for environment settings and the in-process scheduler."""
import asyncio

import pytest

from coinspree.config import Settings
from coinspree.services import run_periodically


def test_settings_defaults(monkeypatch):
    for name in ("REDIS_URL", "CRON_SECRET", "CRON_SECRET_KEY", "RUN_SCHEDULER"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.notification_min_interval_minutes == 5.0
    assert settings.notification_batch_size == 50
    assert settings.email_max_attempts == 3
    assert settings.cron_secret is None
    assert not settings.run_scheduler


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("EMAIL_QUEUE_BATCH_SIZE", "25")
    monkeypatch.setenv("RUN_SCHEDULER", "yes")
    monkeypatch.delenv("CRON_SECRET", raising=False)
    monkeypatch.setenv("CRON_SECRET_KEY", "fallback")

    settings = Settings.from_env()

    assert settings.redis_url == "redis://cache:6379/1"
    assert settings.email_queue_batch_size == 25
    assert settings.run_scheduler
    assert settings.cron_secret == "fallback"


@pytest.mark.asyncio
async def test_scheduler_survives_failing_ticks_and_stops():
    stop = asyncio.Event()
    calls = 0

    async def tick():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("first run fails")
        if calls == 3:
            stop.set()

    await asyncio.wait_for(run_periodically(tick, 0.01, name="test", stop_event=stop), timeout=2)

    assert calls == 3
