"""HTTP tests for the Google Ads routes.

WHAT:
    Drives the FastAPI app with ``TestClient`` while the runner, aggregator,
    cache and ledger dependencies point at fakes and an in-memory database.

WHY:
    Request validation, status codes and the JSON error shape are the
    contract the dashboard depends on.

REFERENCES:
    - app/api/report_routes.py
    - app/api/aggregate_routes.py
    - app/api/handler.py
"""

from typing import List

import pytest
from fastapi.testclient import TestClient

from app.aggregator.fanout import FanOutAggregator, InProcessFetcher
from app.api.dependencies import get_aggregator, get_cache, get_ledger, get_runner
from app.main import app
from app.storage.report_cache import SqlReportCache
from app.storage.report_usage import LimitStatus, SqlUsageLedger

BODY = {"accessToken": "t", "accountId": "123", "timeRange": "7days"}


class _FakeSummarizer:
    def __init__(self):
        self.kinds: List[str] = []

    async def summarize(self, prompt: str, kind: str) -> str:
        self.kinds.append(kind)
        return f"# {kind} report"


class _ExhaustedLedger:
    async def check_limit(self, user_id: str) -> LimitStatus:
        return LimitStatus(
            can_generate=False,
            current_usage=100,
            limit=100,
            remaining=0,
            week_start="2024-06-03",
            resets_at="2024-06-10T00:00:00+00:00",
            days_until_reset=3,
        )

    async def record(self, *args, **kwargs) -> str:
        raise AssertionError("usage must not be recorded over the limit")


@pytest.fixture
def summarizer():
    return _FakeSummarizer()


@pytest.fixture
def cache(engine):
    return SqlReportCache(engine)


@pytest.fixture
def ledger(engine):
    return SqlUsageLedger(engine)


@pytest.fixture
def aggregator(runner, cache, ledger, summarizer):
    return FanOutAggregator(
        fetcher=InProcessFetcher(runner),
        cache=cache,
        ledger=ledger,
        summarizer=summarizer,
    )


@pytest.fixture
def client(runner, aggregator, cache, ledger):
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_ledger] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── System ──


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_report_listing(client):
    reports = client.get("/google-ads/reports").json()["reports"]
    keys = [r["key"] for r in reports]
    assert "campaign-pacing" in keys
    assert keys == sorted(keys)


# ── Single Reports ──


def test_empty_account_report_end_to_end(client):
    response = client.post("/google-ads/keyword-match-type-mix", json=BODY)

    assert response.status_code == 200
    payload = response.json()
    assert payload["match_type_overview"]["rows"] == []
    assert set(payload["summary"].values()) == {0}


@pytest.mark.parametrize(
    "body,message",
    [
        ({"accountId": "123"}, "Access token is required"),
        ({"accessToken": "", "accountId": "123"}, "Access token is required"),
        ({"accessToken": "t"}, "Account not selected"),
    ],
)
def test_missing_credentials_are_rejected(client, fake_ads, body, message):
    response = client.post("/google-ads/campaigns", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": message}
    assert fake_ads.queries == []


def test_unknown_report_is_404(client):
    response = client.post("/google-ads/not-a-report", json=BODY)
    assert response.status_code == 404
    assert response.json() == {"error": "Unknown report: not-a-report"}


def test_numeric_ids_are_accepted(client, fake_ads):
    response = client.post(
        "/google-ads/daily-trends",
        json={"accessToken": "t", "accountId": 1234567890, "campaignId": 42},
    )

    assert response.status_code == 200
    assert "campaign.id = '42'" in fake_ads.queries[0]


def test_fail_loud_report_maps_to_500(client, fake_ads):
    fake_ads.failures = {"search_term_view": 500}

    response = client.post("/google-ads/assisted-conversions", json=BODY)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert "assisted-conversions" in body["details"]


def test_degrading_report_still_answers_200(client, fake_ads):
    fake_ads.failures = {"campaign": 500}

    response = client.post("/google-ads/campaign-pacing", json=BODY)

    assert response.status_code == 200
    assert response.json()["summary"]["totalCampaigns"] == 0


# ── Aggregates ──


def test_ai_report_check_only_without_cache(client, fake_ads):
    response = client.post(
        "/google-ads/ai-report", json={**BODY, "checkOnly": True}, headers={"X-User-Id": "user-1"}
    )

    assert response.json() == {"report": "", "fromCache": False}
    assert fake_ads.queries == []


def test_ai_report_generates_then_serves_from_cache(client, summarizer, ledger):
    headers = {"X-User-Id": "user-1"}

    first = client.post("/google-ads/ai-report", json=BODY, headers=headers)
    second = client.post("/google-ads/ai-report", json=BODY, headers=headers)

    assert first.json() == {"report": "# audit report", "fromCache": False}
    assert second.json() == {"report": "# audit report", "fromCache": True}
    assert summarizer.kinds == ["audit"]


def test_weekly_report_data_only_returns_blocks(client, summarizer):
    response = client.post(
        "/google-ads/weekly-report", json={**BODY, "dataOnly": True}, headers={"X-User-Id": "user-1"}
    )

    body = response.json()
    assert body["fromCache"] is False
    assert set(body["data"]) == {
        "block1_budget_pacing",
        "block2_change_log",
        "block3_daily_trends",
        "block4_search_terms",
    }
    assert summarizer.kinds == []


def test_weekly_report_over_limit_is_429(client, runner, summarizer):
    app.dependency_overrides[get_aggregator] = lambda: FanOutAggregator(
        fetcher=InProcessFetcher(runner), ledger=_ExhaustedLedger(), summarizer=summarizer
    )

    response = client.post("/google-ads/weekly-report", json=BODY, headers={"X-User-Id": "user-1"})

    assert response.status_code == 429
    body = response.json()
    assert body["error"].startswith("Weekly report limit exceeded")
    assert body["current_usage"] == 100
    assert body["limit"] == 100
    assert body["resets_at"] == "2024-06-10T00:00:00+00:00"


def test_failed_constituent_is_500_with_names(client, fake_ads):
    fake_ads.failures = {"campaign": 500}

    response = client.post("/google-ads/weekly-report", json=BODY, headers={"X-User-Id": "user-1"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["failed"] == ["daily-trends"]


def test_ai_analysis_groups_blocks(client):
    response = client.post("/google-ads/ai-analysis", json=BODY)

    assert response.status_code == 200
    blocks = response.json()
    assert "block1" in blocks
    assert set(blocks["block1"]) == {
        "conversionActionSetup",
        "campaignStructureOverview",
        "keywordMatchTypeMix",
    }


# ── Block Data ──


def test_block_data_requires_block_id(client):
    response = client.post("/google-ads/block-data", json=BODY)
    assert response.status_code == 400
    assert response.json() == {"error": "Block ID is required"}


def test_block_data_unknown_block(client):
    response = client.post("/google-ads/block-data", json={**BODY, "blockId": "block99"})
    assert response.status_code == 500
    assert response.json()["details"] == "Unknown block ID: block99"


def test_block_data_named_block(client):
    response = client.post("/google-ads/block-data", json={**BODY, "blockId": "campaignStructureOverview"})
    assert response.status_code == 200
    assert "campaign_overview" in response.json()


def test_block_data_network_block(client):
    response = client.post("/google-ads/block-data", json={**BODY, "blockId": "block13"})
    assert response.status_code == 200
    assert response.json()["network_performance"]["rows"] == []


# ── Account Details ──


@pytest.mark.parametrize(
    "body,message",
    [
        ({"accountIds": ["123"]}, "Access token is required"),
        ({"accessToken": "t"}, "Account IDs array is required"),
        ({"accessToken": "t", "accountIds": []}, "Account IDs array is required"),
    ],
)
def test_account_details_validation(client, fake_ads, body, message):
    response = client.post("/google-ads/account-details", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": message}
    assert fake_ads.queries == []


def test_account_details_describes_each_account(client, fake_ads):
    fake_ads.rows = {
        "customer": [
            {
                "customer": {
                    "id": "123",
                    "descriptiveName": "Shoe Shop",
                    "currencyCode": "EUR",
                    "timeZone": "Europe/Berlin",
                }
            }
        ],
        "campaign": [
            {
                "campaign": {
                    "id": "9",
                    "name": "Brand",
                    "status": "ENABLED",
                    "advertisingChannelType": "SEARCH",
                    "servingStatus": "SERVING",
                },
                "metrics": {"clicks": "5", "impressions": "50", "costMicros": "2500000"},
            }
        ],
    }

    response = client.post(
        "/google-ads/account-details", json={"accessToken": "t", "accountIds": ["123", 456]}
    )

    assert response.status_code == 200
    accounts = response.json()["accounts"]
    assert len(accounts) == 2
    assert accounts[0]["descriptiveName"] == "Shoe Shop"
    assert accounts[0]["currencyCode"] == "EUR"
    assert accounts[0]["campaigns"] == [
        {
            "id": "9",
            "name": "Brand",
            "status": "ENABLED",
            "channelType": "SEARCH",
            "servingStatus": "SERVING",
            "metrics": {"clicks": 5, "impressions": 50, "cost": 2.5},
        }
    ]
    assert len(fake_ads.queries_from("customer")) == 2


def test_account_details_reports_failures_per_account(client, fake_ads):
    fake_ads.failures = {"customer": 403}

    response = client.post(
        "/google-ads/account-details", json={"accessToken": "t", "accountIds": ["456"]}
    )

    assert response.status_code == 200
    (account,) = response.json()["accounts"]
    assert account["id"] == "456"
    assert account["descriptiveName"] == "Account 456"
    assert account["currencyCode"] == "Unknown"
    assert "account-details" in account["error"]


def test_account_details_without_customer_rows(client, fake_ads):
    response = client.post(
        "/google-ads/account-details", json={"accessToken": "t", "accountIds": ["456"]}
    )

    (account,) = response.json()["accounts"]
    assert account["error"] == "No account data returned from API"
    assert account["timeZone"] == "Unknown"


# ── Usage & Cache ──


def test_usage_requires_user(client):
    assert client.get("/google-ads/usage").status_code == 401


def test_usage_after_generation(client):
    headers = {"X-User-Id": "user-1"}
    client.post("/google-ads/ai-report", json=BODY, headers=headers)

    usage = client.get("/google-ads/usage", headers=headers).json()

    assert usage["current_usage"] == 1
    assert usage["can_generate"] is True


def test_cache_clear(client):
    headers = {"X-User-Id": "user-1"}
    client.post("/google-ads/ai-report", json=BODY, headers=headers)

    assert client.post("/google-ads/cache/clear", headers=headers).json() == {"cleared": 1}
    again = client.post("/google-ads/ai-report", json={**BODY, "checkOnly": True}, headers=headers)
    assert again.json() == {"report": "", "fromCache": False}
