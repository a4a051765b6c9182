"""ADLENS: Report Executor.

Every report is a ``ReportDefinition``: a query builder, a row shaper, an
empty payload and a degradation policy. ``ReportRunner`` is the single
control flow shared by all of them:

  1. build the named queries for the request context
  2. execute them concurrently through ``GoogleAdsClient``
  3. optionally build follow-up queries from the first results
  4. shape the rows into the report payload

A failed query either degrades the report to its empty payload (EMPTY) or
raises ``ReportError`` (RAISE). Queries listed as optional may fail without
failing the report; their rows are treated as empty.
"""

import asyncio
import time
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from pydantic import BaseModel

from app.connectors.google_ads.client import GoogleAdsAPIError, GoogleAdsClient
from app.core.limits import QueryLimits, ReportMode
from app.core.logging import get_logger, log_fields
from app.query.builder import Query, Window, resolve_time_window

logger = get_logger("reports.executor")

Rows = List[Dict[str, Any]]
ResultSet = Dict[str, Rows]
QueryMap = Dict[str, Query]
Payload = Dict[str, Any]


class Degradation(str, Enum):
    """What a report does when one of its required queries fails."""

    EMPTY = "empty"
    RAISE = "raise"


class ReportError(Exception):
    """A fail-loud report could not be produced."""

    def __init__(self, report_key: str, message: str, status_code: int = 500):
        self.report_key = report_key
        self.status_code = status_code
        super().__init__(f"{report_key}: {message}")


class ReportContext(BaseModel):
    """Validated request context handed to every query builder and shaper."""

    model_config = {"frozen": True}

    access_token: str
    account_id: str
    time_range: Optional[str] = None
    campaign_id: Optional[str] = None
    user_id: Optional[str] = None
    mode: ReportMode = ReportMode.FULL
    today: Optional[date] = None

    @property
    def window(self) -> Window:
        return resolve_time_window(self.time_range, self.today)

    def with_range(self, time_range: Optional[str]) -> "ReportContext":
        return self.model_copy(update={"time_range": time_range})


QueryBuilder = Callable[[ReportContext, QueryLimits], QueryMap]
FollowUp = Callable[[ReportContext, QueryLimits, ResultSet], Optional[QueryMap]]
Shaper = Callable[[ResultSet, ReportContext], Payload]
EmptyPayload = Callable[[ReportContext], Payload]


class ReportDefinition:
    """Data-driven description of one report."""

    def __init__(
        self,
        key: str,
        build: QueryBuilder,
        shape: Shaper,
        empty: EmptyPayload,
        policy: Degradation = Degradation.EMPTY,
        optional: Iterable[str] = (),
        followup: Optional[FollowUp] = None,
        description: str = "",
    ):
        self.key = key
        self.build = build
        self.shape = shape
        self.empty = empty
        self.policy = policy
        self.optional: FrozenSet[str] = frozenset(optional)
        self.followup = followup
        self.description = description

    def __repr__(self) -> str:
        return f"<ReportDefinition {self.key} policy={self.policy.value}>"


class ReportRunner:
    """Runs report definitions against the Google Ads API."""

    def __init__(self, client: GoogleAdsClient, limits: Optional[QueryLimits] = None):
        self.client = client
        self.limits = limits or QueryLimits()

    async def run(self, definition: ReportDefinition, ctx: ReportContext) -> Payload:
        started = time.perf_counter()
        try:
            results = await self._fetch(definition, ctx, definition.build(ctx, self.limits))
            if definition.followup is not None:
                extra = definition.followup(ctx, self.limits, results)
                if extra:
                    results.update(await self._fetch(definition, ctx, extra))
            payload = definition.shape(results, ctx)
        except Exception as e:
            if definition.policy == Degradation.RAISE:
                status = e.status_code if isinstance(e, GoogleAdsAPIError) and e.status_code else 500
                logger.error(
                    f"Report failed: {e}",
                    extra=log_fields(report_key=definition.key, account_id=ctx.account_id),
                )
                raise ReportError(definition.key, str(e), status) from e
            logger.warning(
                f"Report degraded to empty payload: {e}",
                extra=log_fields(report_key=definition.key, account_id=ctx.account_id),
            )
            return definition.empty(ctx)

        logger.info(
            "Report generated",
            extra=log_fields(
                report_key=definition.key,
                account_id=ctx.account_id,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            ),
        )
        return payload

    async def _fetch(
        self, definition: ReportDefinition, ctx: ReportContext, queries: QueryMap
    ) -> ResultSet:
        names = list(queries)
        responses = await asyncio.gather(
            *(
                self.client.execute(
                    ctx.access_token, ctx.account_id, queries[name].render(), ctx.user_id
                )
                for name in names
            )
        )

        results: ResultSet = {}
        for name, response in zip(names, responses):
            if response.ok:
                results[name] = response.results
            elif name in definition.optional:
                logger.warning(
                    f"Optional query '{name}' failed: {response.error_message()}",
                    extra=log_fields(
                        report_key=definition.key, status_code=response.status_code
                    ),
                )
                results[name] = []
            else:
                response.raise_for_error(f"{definition.key} query '{name}'")
        return results
