"""Tests for fanning out over HTTP.

WHAT:
    ``HttpFetcher`` request shape against a ``MockTransport``, and a full
    round trip into this app's report routes over ``ASGITransport``.

WHY:
    With ``FANOUT_TRANSPORT=http`` the constituent reports run in another
    request. The report mode has to survive that hop or weekly digests
    are fetched at the full audit's row caps.

REFERENCES:
    - app/aggregator/fanout.py
    - app/api/handler.py
"""

import json

import httpx
import pytest

from app.aggregator.fanout import ConstituentError, HttpFetcher
from app.api.dependencies import get_runner
from app.core.limits import ReportMode
from app.main import app


class _RouteRecorder:
    def __init__(self, status: int = 200, payload: dict = None):
        self.status = status
        self.payload = payload if payload is not None else {"summary": {}}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)


@pytest.mark.asyncio
async def test_fetch_sends_context_and_mode(make_ctx):
    recorder = _RouteRecorder(payload={"campaigns": []})
    fetcher = HttpFetcher(base_url="http://adlens.test/", transport=httpx.MockTransport(recorder))
    ctx = make_ctx(time_range="LAST_7_DAYS", campaign_id="42", user_id="user-1", mode=ReportMode.WEEKLY)

    payload = await fetcher.fetch("campaign-pacing", ctx)

    assert payload == {"campaigns": []}
    request = recorder.requests[0]
    assert str(request.url) == "http://adlens.test/google-ads/campaign-pacing"
    assert request.headers["X-User-Id"] == "user-1"
    assert json.loads(request.content) == {
        "accessToken": "t",
        "accountId": "123",
        "timeRange": "LAST_7_DAYS",
        "campaignId": "42",
        "mode": "weekly",
    }


@pytest.mark.asyncio
async def test_fetch_without_user_sends_no_identity(make_ctx):
    recorder = _RouteRecorder()
    fetcher = HttpFetcher(base_url="http://adlens.test", transport=httpx.MockTransport(recorder))

    await fetcher.fetch("daily-trends", make_ctx())

    assert "X-User-Id" not in recorder.requests[0].headers
    assert json.loads(recorder.requests[0].content)["mode"] == "full"


@pytest.mark.asyncio
async def test_error_status_raises_constituent_error(make_ctx):
    recorder = _RouteRecorder(status=500, payload={"error": "Internal server error"})
    fetcher = HttpFetcher(base_url="http://adlens.test", transport=httpx.MockTransport(recorder))

    with pytest.raises(ConstituentError) as excinfo:
        await fetcher.fetch("daily-trends", make_ctx())

    assert excinfo.value.report_key == "daily-trends"
    assert excinfo.value.status_code == 500
    assert "Internal server error" in str(excinfo.value)


@pytest.mark.asyncio
async def test_weekly_mode_survives_the_http_hop(runner, fake_ads, make_ctx):
    app.dependency_overrides[get_runner] = lambda: runner
    try:
        fetcher = HttpFetcher(
            base_url="http://testserver", transport=httpx.ASGITransport(app=app)
        )
        await fetcher.fetch("campaign-pacing", make_ctx(mode=ReportMode.WEEKLY))
        await fetcher.fetch("campaign-pacing", make_ctx())
    finally:
        app.dependency_overrides.clear()

    weekly, full = fake_ads.queries_from("campaign")
    assert weekly.endswith("LIMIT 30")
    assert full.endswith("LIMIT 50")
