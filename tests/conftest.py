"""Shared pytest fixtures for the ADLENS test suite.

WHAT:
    Test environment defaults plus fixtures for an in-memory database and a
    fake Google Ads search endpoint.

WHY:
    Tests must not touch a real database, the Google Ads API or any AI
    provider. Settings are read at import time, so environment defaults are
    applied before any ``app`` module is imported.

REFERENCES:
    - app/config.py
    - app/database.py
    - app/connectors/google_ads/client.py
"""

import json
import os
import re
from typing import Callable, Dict, List

# ── Environment (must run before app imports) ──

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("GOOGLE_ADS_DEVELOPER_TOKEN", "test-developer-token")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import create_engine  # noqa: E402

from app.connectors.google_ads.client import GoogleAdsClient  # noqa: E402
from app.database import init_db  # noqa: E402
from app.reports.executor import ReportContext, ReportRunner  # noqa: E402

_FROM = re.compile(r"^FROM (\w+)$", re.MULTILINE)


# ── Database ──


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine with every table created."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


# ── Fake Google Ads ──


class FakeAdsApi:
    """Answers GAQL searches from canned rows, keyed by the FROM resource.

    Every request is kept in ``queries`` so tests can assert on the GAQL that
    was sent. Resources listed in ``failures`` answer with that status code.
    """

    def __init__(self, rows: Dict[str, List[dict]] = None):
        self.rows = rows or {}
        self.failures: Dict[str, int] = {}
        self.queries: List[str] = []
        self.tokens: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        self.queries.append(query)
        self.tokens.append(request.headers.get("Authorization", ""))
        match = _FROM.search(query)
        resource = match.group(1) if match else ""
        if resource in self.failures:
            status = self.failures[resource]
            return httpx.Response(
                status,
                json={"error": {"code": status, "message": f"{resource} failed", "status": "INTERNAL"}},
            )
        return httpx.Response(200, json={"results": self.rows.get(resource, [])})

    def queries_from(self, resource: str) -> List[str]:
        return [q for q in self.queries if resource in _FROM.findall(q)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_ads() -> FakeAdsApi:
    return FakeAdsApi()


@pytest.fixture
def ads_client(fake_ads) -> GoogleAdsClient:
    return GoogleAdsClient(
        developer_token="dev",
        api_root="https://ads.test/v19",
        transport=fake_ads.transport(),
    )


@pytest.fixture
def runner(ads_client) -> ReportRunner:
    return ReportRunner(ads_client)


@pytest.fixture
def make_ctx() -> Callable[..., ReportContext]:
    def _make(**overrides) -> ReportContext:
        values = {"access_token": "t", "account_id": "123"}
        values.update(overrides)
        return ReportContext(**values)

    return _make
