"""ADLENS: Fan-Out Aggregator.

Composes several reports into one artifact:

  cache lookup -> (check_only stop) -> usage limit -> token pre-refresh
  -> concurrent constituent fetch -> render -> summarize (bounded)
  -> cache write -> usage record

Any failing constituent fails the whole aggregate: nothing is cached and no
usage is recorded. Cache and usage-record errors are logged and swallowed.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import httpx
from pydantic import BaseModel

from app.aggregator.outcomes import (
    LIMIT_EXCEEDED_MESSAGE,
    Artifact,
    Cached,
    Failed,
    Generated,
    LimitInfo,
    NotReady,
    Outcome,
)
from app.ai.summarizer import Summarizer
from app.config import settings
from app.core.limits import ReportMode
from app.core.logging import get_logger, log_fields
from app.reports.executor import Payload, ReportContext, ReportRunner
from app.reports.registry import get_report
from app.storage.report_cache import CacheKey, ReportCache
from app.storage.report_usage import UsageLedger

logger = get_logger("aggregator.fanout")


class AggregationError(Exception):
    """One or more constituent reports failed."""

    def __init__(self, failed: Sequence[str], details: Optional[Dict[str, str]] = None):
        self.failed = list(failed)
        self.details = details or {}
        super().__init__(
            "Failed to fetch data from one or more endpoints: " + ", ".join(self.failed)
        )


class ConstituentError(Exception):
    """A constituent report answered with a non-2xx status over HTTP."""

    def __init__(self, report_key: str, status_code: int, body: str):
        self.report_key = report_key
        self.status_code = status_code
        super().__init__(f"{report_key} returned {status_code}: {body[:500]}")


# ── Fetchers ──


class ReportFetcher(Protocol):
    async def fetch(self, report_key: str, ctx: ReportContext) -> Payload: ...


class InProcessFetcher:
    """Runs constituent reports directly through the report runner."""

    def __init__(self, runner: ReportRunner):
        self.runner = runner

    async def fetch(self, report_key: str, ctx: ReportContext) -> Payload:
        return await self.runner.run(get_report(report_key), ctx)


class HttpFetcher:
    """Calls this service's own report routes over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 120.0,
    ):
        self.base_url = (base_url or settings.internal_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def fetch(self, report_key: str, ctx: ReportContext) -> Payload:
        body = {
            "accessToken": ctx.access_token,
            "accountId": ctx.account_id,
            "timeRange": ctx.time_range,
            "campaignId": ctx.campaign_id,
            "mode": ctx.mode.value,
        }
        headers = {"X-User-Id": ctx.user_id} if ctx.user_id else {}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/google-ads/{report_key}", json=body, headers=headers
            )
        if resp.status_code >= 400:
            raise ConstituentError(report_key, resp.status_code, resp.text)
        return resp.json()


# ── Recipes ──


class Constituent(BaseModel):
    """One report inside a recipe, optionally pinned to a fixed window."""

    model_config = {"frozen": True}

    report_key: str
    time_range: Optional[str] = None

    def context_for(self, ctx: ReportContext) -> ReportContext:
        return ctx.with_range(self.time_range) if self.time_range else ctx


class Recipe:
    """How one aggregate is assembled, cached and charged."""

    def __init__(
        self,
        name: str,
        kind: str,
        usage_type: str,
        constituents: Sequence[Constituent],
        render: Callable[[Dict[str, Payload], ReportContext], str],
        summary_kind: str,
        cache_window: Callable[[Optional[str]], str],
        render_data: Optional[Callable[[Dict[str, Payload], ReportContext], Dict[str, Any]]] = None,
        mode: ReportMode = ReportMode.FULL,
    ):
        self.name = name
        self.kind = kind
        self.usage_type = usage_type
        self.constituents = list(constituents)
        self.render = render
        self.summary_kind = summary_kind
        self.cache_window = cache_window
        self.render_data = render_data
        self.mode = mode

    @property
    def report_keys(self) -> List[str]:
        return [c.report_key for c in self.constituents]


class AggregateRequest(BaseModel):
    model_config = {"frozen": True}

    ctx: ReportContext
    force_regenerate: bool = False
    check_only: bool = False
    data_only: bool = False


# ── Aggregator ──


class FanOutAggregator:
    def __init__(
        self,
        fetcher: ReportFetcher,
        cache: Optional[ReportCache] = None,
        ledger: Optional[UsageLedger] = None,
        summarizer: Optional[Summarizer] = None,
        refresher=None,
        summary_timeout: Optional[float] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.ledger = ledger
        self.summarizer = summarizer
        self.refresher = refresher
        self.summary_timeout = (
            summary_timeout
            if summary_timeout is not None
            else settings.summarization_timeout_seconds
        )

    async def collect(
        self, constituents: Sequence[Constituent], ctx: ReportContext
    ) -> Dict[str, Payload]:
        """Fetch every constituent concurrently; raise if any of them fails."""
        results = await asyncio.gather(
            *(self.fetcher.fetch(c.report_key, c.context_for(ctx)) for c in constituents),
            return_exceptions=True,
        )

        payloads: Dict[str, Payload] = {}
        failed: Dict[str, str] = {}
        for constituent, result in zip(constituents, results):
            if isinstance(result, Exception):
                failed[constituent.report_key] = str(result)
                logger.error(
                    f"Constituent failed: {result}",
                    extra=log_fields(
                        report_key=constituent.report_key,
                        account_id=ctx.account_id,
                        status_code=getattr(result, "status_code", None),
                    ),
                )
            else:
                payloads[constituent.report_key] = result

        if failed:
            raise AggregationError(list(failed), failed)
        return payloads

    async def generate(self, recipe: Recipe, request: AggregateRequest) -> Outcome:
        ctx = request.ctx.model_copy(update={"mode": recipe.mode})
        key = self._cache_key(recipe, request)

        if key is not None and not request.force_regenerate:
            cached = await self._read_cache(key, request.data_only)
            if cached is not None:
                logger.info(
                    f"Serving cached {recipe.name}",
                    extra=log_fields(account_id=ctx.account_id),
                )
                return Cached(artifact=cached)

        if request.check_only:
            return NotReady()

        if self.ledger is not None and ctx.user_id:
            over_limit = await self._check_limit(ctx.user_id)
            if over_limit is not None:
                return over_limit

        ctx = await self._fresh_context(ctx)

        started = time.perf_counter()
        try:
            payloads = await self.collect(recipe.constituents, ctx)
        except AggregationError as e:
            return Failed(reason=str(e), failed=e.failed)

        if request.data_only and recipe.render_data is not None:
            artifact: Artifact = recipe.render_data(payloads, ctx)
        else:
            summary = await self._summarize(recipe, recipe.render(payloads, ctx))
            if isinstance(summary, Failed):
                return summary
            artifact = summary

        logger.info(
            f"{recipe.name} generated",
            extra=log_fields(
                account_id=ctx.account_id,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            ),
        )

        if key is not None:
            await self._write_cache(key, artifact)
        if self.ledger is not None and ctx.user_id:
            await self._record_usage(recipe, ctx)
        return Generated(artifact=artifact)

    # ── Steps ──

    def _cache_key(self, recipe: Recipe, request: AggregateRequest) -> Optional[CacheKey]:
        ctx = request.ctx
        if self.cache is None or not ctx.user_id:
            return None
        return CacheKey(
            user_id=ctx.user_id,
            account_id=ctx.account_id,
            time_range=recipe.cache_window(ctx.time_range),
            campaign_id=ctx.campaign_id,
            report_type=recipe.kind,
            data_only=request.data_only,
        )

    async def _read_cache(self, key: CacheKey, data_only: bool) -> Optional[Artifact]:
        try:
            content = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Error checking cache, proceeding with generation: {e}")
            return None
        if content is None or not data_only:
            return content
        try:
            return json.loads(content)
        except ValueError as e:
            logger.warning(f"Failed to parse cached block data, regenerating: {e}")
            return None

    async def _write_cache(self, key: CacheKey, artifact: Artifact) -> None:
        content = artifact if isinstance(artifact, str) else json.dumps(artifact)
        try:
            stored = await self.cache.set(key, content)
        except Exception as e:
            logger.warning(f"Error saving report to cache: {e}")
            return
        if not stored:
            logger.warning("Failed to cache report")

    async def _check_limit(self, user_id: str) -> Optional[Failed]:
        try:
            status = await self.ledger.check_limit(user_id)
        except Exception as e:
            logger.warning(f"Usage limit check failed, allowing generation: {e}")
            return None
        if status.can_generate:
            return None
        logger.warning(f"Report limit reached: {status.current_usage}/{status.limit}")
        return Failed(
            reason=LIMIT_EXCEEDED_MESSAGE,
            limit_info=LimitInfo(
                current_usage=status.current_usage,
                limit=status.limit,
                resets_at=status.resets_at,
            ),
        )

    async def _fresh_context(self, ctx: ReportContext) -> ReportContext:
        if self.refresher is None or not ctx.user_id:
            return ctx
        try:
            token = await self.refresher.ensure_fresh(ctx.user_id)
        except Exception as e:
            logger.warning(f"Token pre-refresh failed, using request token: {e}")
            return ctx
        if token and token != ctx.access_token:
            return ctx.model_copy(update={"access_token": token})
        return ctx

    async def _summarize(self, recipe: Recipe, prompt: str):
        if self.summarizer is None:
            return Failed(reason="No summarizer configured")
        try:
            content = await asyncio.wait_for(
                self.summarizer.summarize(prompt, recipe.summary_kind),
                timeout=self.summary_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"{recipe.name} summarization timed out after {self.summary_timeout}s")
            return Failed(reason="AI request timeout")
        except Exception as e:
            logger.error(f"{recipe.name} summarization failed: {e}")
            return Failed(reason=f"AI request failed: {e}")

        if not content or not content.strip():
            return Failed(reason="Empty report content received from AI")
        return content

    async def _record_usage(self, recipe: Recipe, ctx: ReportContext) -> None:
        try:
            await self.ledger.record(
                ctx.user_id,
                recipe.usage_type,
                account_id=ctx.account_id,
                time_range=ctx.time_range,
                campaign_id=ctx.campaign_id,
            )
        except Exception as e:
            logger.error(f"Failed to record report usage: {e}")
