"""Tests for the report cache and the weekly usage ledger.

WHAT:
    ``SqlReportCache`` and ``SqlUsageLedger`` against an in-memory SQLite
    database.

WHY:
    Cache keys must separate users, windows and data-only artifacts, and
    the ledger's weekly window must reset on Monday UTC.

REFERENCES:
    - app/storage/report_cache.py
    - app/storage/report_usage.py
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from app.database import as_utc, utcnow
from app.models.db_models import ReportCacheEntry, ReportUsage, Subscription
from app.storage.report_cache import CacheKey, SqlReportCache
from app.storage.report_usage import SqlUsageLedger, week_start


def _key(**overrides) -> CacheKey:
    values = dict(user_id="user-1", account_id="123", time_range="LAST_QUARTER")
    values.update(overrides)
    return CacheKey(**values)


# ── Cache Keys ──


def test_cache_key_digest_is_stable_and_distinct():
    assert _key().digest() == _key().digest()
    variants = [
        _key(),
        _key(user_id="user-2"),
        _key(time_range="LAST_7_DAYS"),
        _key(campaign_id="42"),
        _key(report_type="weekly"),
        _key(data_only=True),
    ]
    assert len({k.digest() for k in variants}) == len(variants)


# ── SqlReportCache ──


@pytest.mark.asyncio
async def test_cache_round_trip(engine):
    cache = SqlReportCache(engine, ttl_hours=24)

    assert await cache.get(_key()) is None
    assert await cache.set(_key(), "# Report")
    assert await cache.get(_key()) == "# Report"

    await cache.set(_key(), "# Report v2")
    assert await cache.get(_key()) == "# Report v2"
    with Session(engine) as session:
        assert len(session.exec(select(ReportCacheEntry)).all()) == 1


@pytest.mark.asyncio
async def test_cache_persists_aware_expiry_in_database(engine):
    cache = SqlReportCache(engine, ttl_hours=24)

    await cache.set(_key(), "# Report")

    with Session(engine) as session:
        row = session.exec(select(ReportCacheEntry)).one()
    expires_at = as_utc(row.expires_at)
    assert expires_at.tzinfo is not None
    assert utcnow() + timedelta(hours=23) < expires_at <= utcnow() + timedelta(hours=24)
    assert cache._memory == {}


@pytest.mark.asyncio
async def test_zero_ttl_is_honoured(engine):
    cache = SqlReportCache(engine, ttl_hours=0)

    assert cache.ttl == timedelta(0)
    await cache.set(_key(), "# Report")
    assert await cache.get(_key()) is None

@pytest.mark.asyncio
async def test_cache_is_scoped_to_user(engine):
    cache = SqlReportCache(engine)
    await cache.set(_key(), "mine")

    assert await cache.get(_key(user_id="user-2")) is None


@pytest.mark.asyncio
async def test_set_without_user_is_refused(engine):
    assert await SqlReportCache(engine).set(_key(user_id=""), "x") is False


@pytest.mark.asyncio
async def test_expired_entries_are_misses_and_cleaned_up(engine):
    cache = SqlReportCache(engine)
    await cache.set(_key(), "old")
    await cache.set(_key(time_range="LAST_7_DAYS"), "fresh")
    with Session(engine) as session:
        row = session.exec(
            select(ReportCacheEntry).where(ReportCacheEntry.cache_key == _key().digest())
        ).one()
        row.expires_at = utcnow() - timedelta(minutes=1)
        session.add(row)
        session.commit()

    assert cache.cleanup_expired() == 1
    assert await cache.get(_key()) is None
    assert await cache.get(_key(time_range="LAST_7_DAYS")) == "fresh"


@pytest.mark.asyncio
async def test_clear_user(engine):
    cache = SqlReportCache(engine)
    await cache.set(_key(), "a")
    await cache.set(_key(time_range="LAST_7_DAYS"), "b")
    await cache.set(_key(user_id="user-2"), "c")

    assert cache.clear_user("user-1") == 2
    assert await cache.get(_key(user_id="user-2")) == "c"


@pytest.mark.asyncio
async def test_cache_falls_back_to_memory_when_database_fails(engine, monkeypatch):
    cache = SqlReportCache(engine)

    def broken_session(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr("app.storage.report_cache.Session", broken_session)

    assert await cache.set(_key(), "kept in memory")
    assert await cache.get(_key()) == "kept in memory"
    assert await cache.get(_key(user_id="user-2")) is None
    assert cache.clear_user("user-1") == 1


# ── SqlUsageLedger ──


def test_week_start_is_monday():
    assert week_start(date(2024, 6, 5)) == date(2024, 6, 3)
    assert week_start(date(2024, 6, 3)) == date(2024, 6, 3)
    assert week_start(date(2024, 6, 9)) == date(2024, 6, 3)


@pytest.mark.asyncio
async def test_fresh_user_can_generate(engine):
    now = datetime(2024, 6, 5, 12, 0, tzinfo=timezone.utc)

    status = await SqlUsageLedger(engine).check_limit("user-1", now=now)

    assert status.can_generate
    assert status.current_usage == 0
    assert status.week_start == "2024-06-03"
    assert status.resets_at == "2024-06-10T00:00:00+00:00"
    assert status.days_until_reset == 5


@pytest.mark.asyncio
async def test_record_counts_against_limit(engine):
    ledger = SqlUsageLedger(engine)

    await ledger.record("user-1", "weekly_analysis", account_id="123", time_range="LAST_7_DAYS")
    await ledger.record("user-1", "ai_analysis", account_id="123")
    await ledger.record("user-2", "ai_analysis")
    status = await ledger.check_limit("user-1", limit=2)

    assert status.current_usage == 2
    assert status.remaining == 0
    assert not status.can_generate


@pytest.mark.asyncio
async def test_recorded_usage_is_persisted(engine):
    ledger = SqlUsageLedger(engine)

    record_id = await ledger.record("user-1", "ai_analysis")
    status = await ledger.check_limit("user-1")

    assert status.current_usage == 1
    with Session(engine) as session:
        row = session.exec(select(ReportUsage)).one()
    assert str(row.id) == record_id
    assert as_utc(row.created_at) <= utcnow()

@pytest.mark.asyncio
async def test_last_weeks_usage_does_not_count(engine):
    ledger = SqlUsageLedger(engine)
    with Session(engine) as session:
        session.add(ReportUsage(user_id="user-1", report_type="ai_analysis", week_start="2000-01-03"))
        session.commit()

    status = await ledger.check_limit("user-1")

    assert status.current_usage == 0


@pytest.mark.asyncio
async def test_active_subscription_raises_limit(engine):
    with Session(engine) as session:
        session.add(Subscription(user_id="user-1", status="active"))
        session.commit()
    ledger = SqlUsageLedger(engine)

    premium = await ledger.check_limit("user-1")
    free = await ledger.check_limit("user-2")

    assert premium.limit > free.limit
