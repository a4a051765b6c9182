"""Unit tests for the fan-out aggregator.

WHAT:
    ``FanOutAggregator.generate`` with fake fetcher, cache, ledger and
    summarizer collaborators, plus the audit and weekly recipes.

WHY:
    Usage is charged per generated artifact. The aggregator must never
    charge for a cached artifact, a check-only request or a failed fan-out,
    and must never cache a partial result.

REFERENCES:
    - app/aggregator/fanout.py
    - app/aggregator/ai_report.py
    - app/aggregator/weekly_report.py
"""

import asyncio
import json
from typing import Dict, List, Optional

import pytest

from app.aggregator.ai_report import AI_REPORT, AUDIT_REPORTS, render_audit_prompt
from app.aggregator.blocks import arrange_analysis, block_report, UnknownBlockError
from app.aggregator.fanout import (
    AggregateRequest,
    AggregationError,
    Constituent,
    FanOutAggregator,
    Recipe,
)
from app.aggregator.outcomes import Cached, Failed, Generated, LIMIT_EXCEEDED_MESSAGE, NotReady
from app.aggregator.weekly_report import WEEKLY_CONSTITUENTS, WEEKLY_REPORT
from app.core.limits import ReportMode
from app.reports.executor import ReportContext
from app.reports.registry import get_report
from app.storage.report_cache import CacheKey
from app.storage.report_usage import LimitStatus


class _FakeFetcher:
    def __init__(self, failing: Optional[Dict[str, Exception]] = None):
        self.failing = failing or {}
        self.calls: List[tuple] = []

    async def fetch(self, report_key: str, ctx: ReportContext):
        self.calls.append((report_key, ctx))
        if report_key in self.failing:
            raise self.failing[report_key]
        return {"report": report_key, "value": 1.23456}


class _FakeCache:
    def __init__(self, entries: Optional[Dict[str, str]] = None, error: Exception = None):
        self.entries = entries or {}
        self.error = error
        self.sets: List[tuple] = []

    async def get(self, key: CacheKey) -> Optional[str]:
        if self.error is not None:
            raise self.error
        return self.entries.get(key.digest())

    async def set(self, key: CacheKey, content: str) -> bool:
        if self.error is not None:
            raise self.error
        self.sets.append((key, content))
        self.entries[key.digest()] = content
        return True


class _FakeLedger:
    def __init__(self, can_generate: bool = True, error: Exception = None):
        self.can_generate = can_generate
        self.error = error
        self.records: List[tuple] = []

    async def check_limit(self, user_id: str) -> LimitStatus:
        if self.error is not None:
            raise self.error
        return LimitStatus(
            can_generate=self.can_generate,
            current_usage=100 if not self.can_generate else 3,
            limit=100,
            remaining=0 if not self.can_generate else 97,
            week_start="2024-06-03",
            resets_at="2024-06-10T00:00:00+00:00",
            days_until_reset=2,
        )

    async def record(self, user_id, report_type, account_id=None, time_range=None, campaign_id=None):
        self.records.append((user_id, report_type, account_id, time_range, campaign_id))
        return str(len(self.records))


class _FakeSummarizer:
    def __init__(self, content: str = "# Report", delay: float = 0.0, error: Exception = None):
        self.content = content
        self.delay = delay
        self.error = error
        self.prompts: List[tuple] = []

    async def summarize(self, prompt: str, kind: str) -> str:
        self.prompts.append((prompt, kind))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.content


class _FakeRefresher:
    def __init__(self, token: Optional[str] = "pre-refreshed"):
        self.token = token

    async def ensure_fresh(self, identity: str) -> Optional[str]:
        return self.token


RECIPE = Recipe(
    name="Test report",
    kind="regular",
    usage_type="ai_analysis",
    constituents=[Constituent(report_key="a"), Constituent(report_key="b", time_range="LAST_7_DAYS")],
    render=lambda payloads, ctx: "prompt:" + ",".join(sorted(payloads)),
    summary_kind="audit",
    cache_window=lambda time_range: time_range or "LAST_QUARTER",
    render_data=lambda payloads, ctx: {"blocks": sorted(payloads)},
)


def _request(**kwargs) -> AggregateRequest:
    ctx = ReportContext(access_token="t", account_id="123", user_id="user-1", time_range="LAST_30_DAYS")
    return AggregateRequest(ctx=ctx, **kwargs)


def _aggregator(fetcher=None, cache=None, ledger=None, summarizer=None, **kwargs):
    return FanOutAggregator(
        fetcher=fetcher or _FakeFetcher(),
        cache=cache if cache is not None else _FakeCache(),
        ledger=ledger if ledger is not None else _FakeLedger(),
        summarizer=summarizer if summarizer is not None else _FakeSummarizer(),
        **kwargs,
    )


# ── Caching & Usage ──


@pytest.mark.asyncio
async def test_check_only_without_cache_is_not_ready_and_fetches_nothing():
    fetcher = _FakeFetcher()
    ledger = _FakeLedger()

    outcome = await _aggregator(fetcher=fetcher, ledger=ledger).generate(RECIPE, _request(check_only=True))

    assert isinstance(outcome, NotReady)
    assert fetcher.calls == []
    assert ledger.records == []


@pytest.mark.asyncio
async def test_fresh_generation_records_usage_once_and_caches():
    cache = _FakeCache()
    ledger = _FakeLedger()
    summarizer = _FakeSummarizer()

    outcome = await _aggregator(cache=cache, ledger=ledger, summarizer=summarizer).generate(RECIPE, _request())

    assert outcome == Generated(artifact="# Report")
    assert ledger.records == [("user-1", "ai_analysis", "123", "LAST_30_DAYS", None)]
    assert len(cache.sets) == 1
    key, content = cache.sets[0]
    assert (key.report_type, key.time_range, key.data_only) == ("regular", "LAST_30_DAYS", False)
    assert content == "# Report"
    assert summarizer.prompts == [("prompt:a,b", "audit")]


@pytest.mark.asyncio
async def test_cached_artifact_never_records_usage():
    cache = _FakeCache()
    ledger = _FakeLedger()
    fetcher = _FakeFetcher()
    aggregator = _aggregator(fetcher=fetcher, cache=cache, ledger=ledger)

    await aggregator.generate(RECIPE, _request())
    fetcher.calls.clear()
    outcome = await aggregator.generate(RECIPE, _request())

    assert outcome == Cached(artifact="# Report")
    assert fetcher.calls == []
    assert len(ledger.records) == 1


@pytest.mark.asyncio
async def test_check_only_returns_cached_artifact():
    aggregator = _aggregator()
    await aggregator.generate(RECIPE, _request())

    outcome = await aggregator.generate(RECIPE, _request(check_only=True))

    assert isinstance(outcome, Cached)


@pytest.mark.asyncio
async def test_force_regenerate_skips_cache():
    ledger = _FakeLedger()
    aggregator = _aggregator(ledger=ledger)
    await aggregator.generate(RECIPE, _request())

    outcome = await aggregator.generate(RECIPE, _request(force_regenerate=True))

    assert isinstance(outcome, Generated)
    assert len(ledger.records) == 2


@pytest.mark.asyncio
async def test_without_user_nothing_is_cached_or_charged():
    cache = _FakeCache()
    ledger = _FakeLedger()
    ctx = ReportContext(access_token="t", account_id="123")

    outcome = await _aggregator(cache=cache, ledger=ledger).generate(RECIPE, AggregateRequest(ctx=ctx))

    assert isinstance(outcome, Generated)
    assert cache.sets == []
    assert ledger.records == []


@pytest.mark.asyncio
async def test_cache_errors_are_swallowed():
    outcome = await _aggregator(cache=_FakeCache(error=RuntimeError("db down"))).generate(RECIPE, _request())
    assert isinstance(outcome, Generated)


# ── Failures ──


@pytest.mark.asyncio
async def test_failed_constituent_fails_whole_aggregate():
    cache = _FakeCache()
    ledger = _FakeLedger()
    summarizer = _FakeSummarizer()
    fetcher = _FakeFetcher(failing={"b": RuntimeError("upstream 500")})

    outcome = await _aggregator(fetcher=fetcher, cache=cache, ledger=ledger, summarizer=summarizer).generate(
        RECIPE, _request()
    )

    assert isinstance(outcome, Failed)
    assert outcome.failed == ["b"]
    assert outcome.reason == "Failed to fetch data from one or more endpoints: b"
    assert outcome.status_code == 500
    assert cache.sets == []
    assert ledger.records == []
    assert summarizer.prompts == []


@pytest.mark.asyncio
async def test_collect_raises_aggregation_error_naming_every_failure():
    fetcher = _FakeFetcher(failing={"a": RuntimeError("x"), "b": RuntimeError("y")})
    ctx = ReportContext(access_token="t", account_id="123")

    with pytest.raises(AggregationError) as excinfo:
        await _aggregator(fetcher=fetcher).collect(RECIPE.constituents, ctx)

    assert excinfo.value.failed == ["a", "b"]
    assert excinfo.value.details == {"a": "x", "b": "y"}


@pytest.mark.asyncio
async def test_limit_exceeded_returns_limit_info():
    fetcher = _FakeFetcher()

    outcome = await _aggregator(fetcher=fetcher, ledger=_FakeLedger(can_generate=False)).generate(
        RECIPE, _request()
    )

    assert isinstance(outcome, Failed)
    assert outcome.status_code == 429
    assert outcome.reason == LIMIT_EXCEEDED_MESSAGE
    assert outcome.limit_info.current_usage == 100
    assert outcome.limit_info.resets_at == "2024-06-10T00:00:00+00:00"
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_limit_check_error_allows_generation():
    outcome = await _aggregator(ledger=_FakeLedger(error=RuntimeError("db down"))).generate(RECIPE, _request())
    assert isinstance(outcome, Generated)


@pytest.mark.asyncio
async def test_summarizer_timeout():
    aggregator = _aggregator(summarizer=_FakeSummarizer(delay=1.0), summary_timeout=0.01)

    outcome = await aggregator.generate(RECIPE, _request())

    assert outcome == Failed(reason="AI request timeout")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "summarizer,reason",
    [
        (_FakeSummarizer(content="   "), "Empty report content received from AI"),
        (_FakeSummarizer(error=RuntimeError("quota")), "AI request failed: quota"),
    ],
)
async def test_summarizer_failures_are_not_charged(summarizer, reason):
    ledger = _FakeLedger()
    cache = _FakeCache()

    outcome = await _aggregator(summarizer=summarizer, ledger=ledger, cache=cache).generate(RECIPE, _request())

    assert outcome == Failed(reason=reason)
    assert ledger.records == []
    assert cache.sets == []


# ── Data-Only & Tokens ──


@pytest.mark.asyncio
async def test_data_only_caches_json_and_reads_it_back():
    cache = _FakeCache()
    summarizer = _FakeSummarizer()
    aggregator = _aggregator(cache=cache, summarizer=summarizer)

    first = await aggregator.generate(RECIPE, _request(data_only=True))
    second = await aggregator.generate(RECIPE, _request(data_only=True))

    assert first == Generated(artifact={"blocks": ["a", "b"]})
    assert second == Cached(artifact={"blocks": ["a", "b"]})
    assert json.loads(cache.sets[0][1]) == {"blocks": ["a", "b"]}
    assert cache.sets[0][0].data_only is True
    assert summarizer.prompts == []


@pytest.mark.asyncio
async def test_unparseable_cached_data_is_regenerated():
    key = CacheKey(
        user_id="user-1", account_id="123", time_range="LAST_30_DAYS", report_type="regular", data_only=True
    )
    cache = _FakeCache(entries={key.digest(): "not json"})

    outcome = await _aggregator(cache=cache).generate(RECIPE, _request(data_only=True))

    assert isinstance(outcome, Generated)


@pytest.mark.asyncio
async def test_token_is_refreshed_before_fan_out():
    fetcher = _FakeFetcher()

    await _aggregator(fetcher=fetcher, refresher=_FakeRefresher()).generate(RECIPE, _request())

    assert {ctx.access_token for _, ctx in fetcher.calls} == {"pre-refreshed"}


@pytest.mark.asyncio
async def test_constituent_windows_override_request_window():
    fetcher = _FakeFetcher()

    await _aggregator(fetcher=fetcher).generate(RECIPE, _request())

    windows = {key: ctx.time_range for key, ctx in fetcher.calls}
    assert windows == {"a": "LAST_30_DAYS", "b": "LAST_7_DAYS"}


# ── Recipes ──


def test_recipes_only_reference_registered_reports():
    for recipe in (AI_REPORT, WEEKLY_REPORT):
        for key in recipe.report_keys:
            get_report(key)


def test_weekly_recipe():
    assert WEEKLY_REPORT.kind == "weekly"
    assert WEEKLY_REPORT.usage_type == "weekly_analysis"
    assert WEEKLY_REPORT.mode == ReportMode.WEEKLY
    assert WEEKLY_REPORT.cache_window("LAST_QUARTER") == "LAST_7_DAYS"
    assert {c.report_key: c.time_range for c in WEEKLY_CONSTITUENTS}["daily-trends"] == "LAST_400_DAYS"


@pytest.mark.asyncio
async def test_weekly_constituents_run_in_weekly_mode():
    fetcher = _FakeFetcher()

    await _aggregator(fetcher=fetcher).generate(WEEKLY_REPORT, _request())

    assert {ctx.mode for _, ctx in fetcher.calls} == {ReportMode.WEEKLY}


@pytest.mark.asyncio
async def test_audit_prompt_renders_every_block(runner, make_ctx):
    ctx = make_ctx(time_range="LAST_QUARTER")
    payloads = {key: await runner.run(get_report(key), ctx) for key in AUDIT_REPORTS}

    prompt = render_audit_prompt(payloads, ctx)

    assert prompt.startswith("# Google Ads Account Analysis")
    for number in range(1, 11):
        assert f"Block {number}" in prompt


def test_arrange_analysis_groups_payloads():
    payloads = {key: {"key": key} for key in AUDIT_REPORTS}

    blocks = arrange_analysis(payloads)

    assert blocks["block1"]["campaignStructureOverview"] == {"key": "campaign-structure-overview"}
    assert blocks["block12"]["geoHotColdPerformance"] == {"key": "geo-hot-cold"}


def test_block_ids():
    assert block_report("block20") == "roas-by-device-geography"
    assert block_report("block1_budget_pacing") == "campaign-pacing"
    with pytest.raises(UnknownBlockError) as excinfo:
        block_report("block99")
    assert str(excinfo.value) == "Unknown block ID: block99"
