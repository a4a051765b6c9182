"""ADLENS: FastAPI Dependency Providers.

Process-wide collaborators are built once and shared. Tests replace them
through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Header

from app.aggregator.fanout import FanOutAggregator, HttpFetcher, InProcessFetcher
from app.ai.summarizer import ProviderSummarizer
from app.config import settings
from app.connectors.google_ads.client import GoogleAdsClient
from app.connectors.google_ads.tokens import GoogleOAuthRefresher
from app.core.limits import QueryLimits
from app.reports.executor import ReportRunner
from app.storage.report_cache import SqlReportCache
from app.storage.report_usage import SqlUsageLedger


def get_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity from the ``X-User-Id`` header, if any."""
    return x_user_id or None


@lru_cache
def get_refresher() -> GoogleOAuthRefresher:
    return GoogleOAuthRefresher()


@lru_cache
def get_ads_client() -> GoogleAdsClient:
    return GoogleAdsClient(refresher=get_refresher())


@lru_cache
def get_runner() -> ReportRunner:
    return ReportRunner(get_ads_client(), QueryLimits())


@lru_cache
def get_cache() -> SqlReportCache:
    return SqlReportCache()


@lru_cache
def get_ledger() -> SqlUsageLedger:
    return SqlUsageLedger()


@lru_cache
def get_aggregator() -> FanOutAggregator:
    if settings.fanout_transport == "http":
        fetcher = HttpFetcher()
    else:
        fetcher = InProcessFetcher(get_runner())
    return FanOutAggregator(
        fetcher=fetcher,
        cache=get_cache(),
        ledger=get_ledger(),
        summarizer=ProviderSummarizer(),
        refresher=get_refresher(),
    )
