"""Tests for the scheduled cache sweep."""

import pytest

from app.scheduler import jobs


class _FakeCache:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = 0

    def cleanup_expired(self) -> int:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return 3


@pytest.mark.asyncio
async def test_cleanup_job_sweeps_cache():
    cache = _FakeCache()
    await jobs.cache_cleanup_job(cache)
    assert cache.calls == 1


@pytest.mark.asyncio
async def test_cleanup_job_logs_errors():
    await jobs.cache_cleanup_job(_FakeCache(error=RuntimeError("db down")))


def test_disabled_scheduler_is_not_started(monkeypatch):
    monkeypatch.setattr(jobs.settings, "scheduler_enabled", False)
    jobs.start_scheduler()
    assert not jobs.scheduler.running
