"""Tests for the Google OAuth token store and refresher.

WHAT:
    ``SqlTokenStore`` persistence plus ``GoogleOAuthRefresher.refresh`` and
    ``ensure_fresh`` against a mocked token endpoint.

WHY:
    The refresher is what ``GoogleAdsClient`` calls on a 401. It must return
    ``None`` instead of raising on any failure so the client can fall back
    to the original response.

REFERENCES:
    - app/connectors/google_ads/tokens.py
"""

from datetime import timedelta
from urllib.parse import parse_qs

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.connectors.google_ads.tokens import GoogleOAuthRefresher, SqlTokenStore
from app.database import as_utc, utcnow


class _TokenEndpoint:
    def __init__(self, status: int = 200, payload: dict = None):
        self.status = status
        self.payload = payload if payload is not None else {"access_token": "new-access", "expires_in": 3599}
        self.forms = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.forms.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
        return httpx.Response(self.status, json=self.payload)


def _refresher(engine, endpoint) -> GoogleOAuthRefresher:
    return GoogleOAuthRefresher(
        store=SqlTokenStore(engine),
        client_id="cid",
        client_secret="secret",
        token_url="https://oauth.test/token",
        transport=httpx.MockTransport(endpoint),
    )


@pytest.mark.asyncio
async def test_refresh_exchanges_and_persists(engine):
    store = SqlTokenStore(engine)
    store.save("user-1", "old-access", "refresh-1", expires_in=10)
    endpoint = _TokenEndpoint()

    token = await _refresher(engine, endpoint).refresh("user-1")

    assert token == "new-access"
    assert endpoint.forms == [
        {
            "client_id": "cid",
            "client_secret": "secret",
            "refresh_token": "refresh-1",
            "grant_type": "refresh_token",
        }
    ]
    stored = store.get("user-1")
    assert stored.access_token == "new-access"
    assert stored.refresh_token == "refresh-1"
    assert as_utc(stored.expires_at) > utcnow() + timedelta(minutes=59)


@pytest.mark.asyncio
async def test_refresh_without_stored_tokens(engine):
    endpoint = _TokenEndpoint()

    assert await _refresher(engine, endpoint).refresh("nobody") is None
    assert endpoint.forms == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "endpoint",
    [
        _TokenEndpoint(status=400, payload={"error": "invalid_grant"}),
        _TokenEndpoint(payload={"token_type": "Bearer"}),
    ],
)
async def test_refresh_failures_yield_none(engine, endpoint):
    SqlTokenStore(engine).save("user-1", "old-access", "refresh-1", expires_in=10)

    assert await _refresher(engine, endpoint).refresh("user-1") is None
    assert SqlTokenStore(engine).get("user-1").access_token == "old-access"


@pytest.mark.asyncio
async def test_ensure_fresh_keeps_valid_token(engine):
    SqlTokenStore(engine).save("user-1", "still-good", "refresh-1", expires_in=3600)
    endpoint = _TokenEndpoint()

    assert await _refresher(engine, endpoint).ensure_fresh("user-1") == "still-good"
    assert endpoint.forms == []


@pytest.mark.asyncio
async def test_ensure_fresh_refreshes_expiring_token(engine):
    SqlTokenStore(engine).save("user-1", "expiring", "refresh-1", expires_in=60)

    assert await _refresher(engine, _TokenEndpoint()).ensure_fresh("user-1") == "new-access"


@pytest.mark.asyncio
async def test_ensure_fresh_without_tokens(engine):
    assert await _refresher(engine, _TokenEndpoint()).ensure_fresh("nobody") is None


class _ReadOnlyStore(SqlTokenStore):
    def save(self, *args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is read-only"))


@pytest.mark.asyncio
async def test_refresh_returns_none_when_token_cannot_be_saved(engine):
    SqlTokenStore(engine).save("user-1", "old-access", "refresh-1", expires_in=10)
    refresher = GoogleOAuthRefresher(
        store=_ReadOnlyStore(engine),
        client_id="cid",
        client_secret="secret",
        token_url="https://oauth.test/token",
        transport=httpx.MockTransport(_TokenEndpoint()),
    )

    assert await refresher.refresh("user-1") is None
