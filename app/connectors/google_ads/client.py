"""ADLENS: Google Ads API Client.

Issues GAQL search calls with a bearer token and the service developer
token. A 401 is recovered at most once by asking an injected refresher for a
new access token and replaying the same query.
"""

import json
import time
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.config import settings
from app.core.logging import get_logger, log_fields

logger = get_logger("google_ads.client")


class GoogleAdsAPIError(Exception):
    """Raised when a Google Ads search call ends in a non-ok response."""

    def __init__(self, message: str, status_code: int = 0, error_code: str = ""):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class TokenRefresher(Protocol):
    """Exchanges a caller identity for a fresh access token."""

    async def refresh(self, identity: str) -> Optional[str]:
        ...


class AdsResponse:
    """Outcome of one search call.

    Transport failures are represented with ``status_code == 0`` rather than
    an exception, so callers handle every non-ok outcome the same way.
    """

    def __init__(self, status_code: int, body: Any = None, text: str = ""):
        self.status_code = status_code
        self.body = body
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def results(self) -> List[Dict[str, Any]]:
        if isinstance(self.body, dict):
            return self.body.get("results") or []
        return []

    def error_message(self) -> str:
        if isinstance(self.body, dict):
            error = self.body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
        return self.text or f"HTTP {self.status_code}"

    def error_code(self) -> str:
        if isinstance(self.body, dict):
            error = self.body.get("error")
            if isinstance(error, dict):
                return str(error.get("status") or error.get("code") or "")
        return ""

    def raise_for_error(self, context: str = "Google Ads request") -> None:
        if not self.ok:
            raise GoogleAdsAPIError(
                f"{context} failed: {self.error_message()}",
                self.status_code,
                self.error_code(),
            )

    @classmethod
    def from_httpx(cls, resp: httpx.Response) -> "AdsResponse":
        text = resp.text
        try:
            body = resp.json()
        except (json.JSONDecodeError, ValueError):
            body = None
        return cls(resp.status_code, body, text)

    def __repr__(self) -> str:
        return f"<AdsResponse {self.status_code} results={len(self.results)}>"


class GoogleAdsClient:
    """Async HTTP client for the Google Ads REST search endpoint."""

    def __init__(
        self,
        refresher: Optional[TokenRefresher] = None,
        developer_token: Optional[str] = None,
        api_root: Optional[str] = None,
        login_customer_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.refresher = refresher
        self.developer_token = (
            developer_token
            if developer_token is not None
            else settings.google_ads_developer_token
        )
        self.api_root = api_root or settings.google_ads_api_root
        self.login_customer_id = (
            login_customer_id or settings.google_ads_login_customer_id
        )
        self._transport = transport
        self._timeout = timeout or settings.google_ads_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def search_url(self, account_id: str) -> str:
        customer = str(account_id).replace("-", "")
        return f"{self.api_root}/customers/{customer}/googleAds:search"

    def _headers(self, access_token: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "developer-token": self.developer_token,
            "Content-Type": "application/json",
        }
        if self.login_customer_id:
            headers["login-customer-id"] = self.login_customer_id.replace("-", "")
        return headers

    # ── Core Request Method ──

    async def _post(self, access_token: str, account_id: str, query: str) -> AdsResponse:
        client = await self._get_client()
        url = self.search_url(account_id)
        started = time.perf_counter()
        try:
            resp = await client.post(
                url, headers=self._headers(access_token), json={"query": query}
            )
        except httpx.RequestError as e:
            logger.warning(
                f"Google Ads request error: {e}",
                extra=log_fields(endpoint=url, account_id=account_id),
            )
            return AdsResponse(0, None, f"Connection failed: {e}")

        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.debug(
            "Google Ads search completed",
            extra=log_fields(
                endpoint=url,
                account_id=account_id,
                status_code=resp.status_code,
                duration_ms=duration_ms,
            ),
        )
        return AdsResponse.from_httpx(resp)

    async def execute(
        self,
        access_token: str,
        account_id: str,
        query: str,
        refresh_identity: Optional[str] = None,
    ) -> AdsResponse:
        """Run one GAQL query, retrying once after a token refresh on 401.

        Without a ``refresh_identity`` (or a refresher) the original 401 is
        returned unchanged. A refresh that yields no token, or fails, also
        returns the original 401. The retried response is final.
        """
        response = await self._post(access_token, account_id, query)
        if response.status_code != 401:
            return response

        if not refresh_identity or self.refresher is None:
            logger.info(
                "Google Ads returned 401 and no refresh identity was supplied",
                extra=log_fields(account_id=account_id, status_code=401),
            )
            return response

        logger.info(
            "Access token rejected (401). Attempting refresh",
            extra=log_fields(account_id=account_id, status_code=401),
        )
        try:
            new_token = await self.refresher.refresh(refresh_identity)
        except Exception as e:
            logger.warning(f"Token refresh failed: {e}")
            return response

        if not new_token:
            logger.warning("Token refresh yielded no access token")
            return response

        retried = await self._post(new_token, account_id, query)
        logger.info(
            f"Retried after token refresh: {retried.status_code}",
            extra=log_fields(account_id=account_id, status_code=retried.status_code),
        )
        return retried

    async def search(
        self,
        access_token: str,
        account_id: str,
        query: str,
        refresh_identity: Optional[str] = None,
        context: str = "Google Ads request",
    ) -> List[Dict[str, Any]]:
        """Like ``execute`` but returns result rows or raises ``GoogleAdsAPIError``."""
        response = await self.execute(access_token, account_id, query, refresh_identity)
        response.raise_for_error(context)
        return response.results
