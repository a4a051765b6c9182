"""ADLENS: Aggregate Report Routes.

ai-report and weekly-report go through ``FanOutAggregator.generate`` and map
its outcome to a response. ai-analysis and block-data only fan out.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import Field

from app.aggregator.ai_report import AI_REPORT
from app.aggregator.blocks import analysis_report_keys, arrange_analysis, block_report
from app.aggregator.fanout import AggregateRequest, Constituent, FanOutAggregator, Recipe
from app.aggregator.outcomes import Cached, Failed, Generated, NotReady, Outcome
from app.aggregator.weekly_report import WEEKLY_REPORT
from app.api.dependencies import get_aggregator, get_cache, get_ledger, get_user_id
from app.api.handler import ReportRequest, error_response, handle_request
from app.core.logging import get_logger
from app.reports.executor import ReportContext
from app.storage.report_cache import SqlReportCache
from app.storage.report_usage import SqlUsageLedger

logger = get_logger("api.aggregate")

router = APIRouter(prefix="/google-ads", tags=["Aggregates"])


# ── Request Models ──


class AggregateReportRequest(ReportRequest):
    force_regenerate: bool = Field(False, alias="forceRegenerate")
    check_only: bool = Field(False, alias="checkOnly")


class WeeklyReportRequest(AggregateReportRequest):
    data_only: bool = Field(False, alias="dataOnly")


class BlockDataRequest(ReportRequest):
    block_id: Optional[str] = Field(None, alias="blockId")


# ── Outcome Mapping ──


def outcome_response(outcome: Outcome, data_only: bool = False) -> JSONResponse:
    """Translate an aggregation outcome into the route's JSON contract."""
    field = "data" if data_only else "report"

    if isinstance(outcome, (Cached, Generated)):
        return JSONResponse({field: outcome.artifact, "fromCache": isinstance(outcome, Cached)})

    if isinstance(outcome, NotReady):
        return JSONResponse({field: None if data_only else "", "fromCache": False})

    if isinstance(outcome, Failed):
        if outcome.limit_info is not None:
            return error_response(outcome.reason, 429, **outcome.limit_info.model_dump())
        return error_response(
            "Internal server error", 500, details=outcome.reason, failed=outcome.failed
        )

    raise TypeError(f"Unexpected outcome: {outcome!r}")


async def _generate(
    aggregator: FanOutAggregator,
    recipe: Recipe,
    ctx: ReportContext,
    body: AggregateReportRequest,
    data_only: bool = False,
) -> JSONResponse:
    outcome = await aggregator.generate(
        recipe,
        AggregateRequest(
            ctx=ctx,
            force_regenerate=body.force_regenerate,
            check_only=body.check_only,
            data_only=data_only,
        ),
    )
    return outcome_response(outcome, data_only)


# ── Endpoints ──


@router.post("/ai-report")
async def ai_report(
    body: AggregateReportRequest,
    user_id: Optional[str] = Depends(get_user_id),
    aggregator: FanOutAggregator = Depends(get_aggregator),
):
    """Full account audit: twelve reports summarized into markdown."""
    return await handle_request(
        body,
        user_id,
        lambda ctx: _generate(aggregator, AI_REPORT, ctx, body),
        endpoint="/google-ads/ai-report",
    )


@router.post("/weekly-report")
async def weekly_report(
    body: WeeklyReportRequest,
    user_id: Optional[str] = Depends(get_user_id),
    aggregator: FanOutAggregator = Depends(get_aggregator),
):
    """Weekly review, or its four data blocks when ``dataOnly`` is set."""
    return await handle_request(
        body,
        user_id,
        lambda ctx: _generate(aggregator, WEEKLY_REPORT, ctx, body, data_only=body.data_only),
        endpoint="/google-ads/weekly-report",
    )


@router.post("/ai-analysis")
async def ai_analysis(
    body: ReportRequest,
    user_id: Optional[str] = Depends(get_user_id),
    aggregator: FanOutAggregator = Depends(get_aggregator),
):
    """The audit's twelve reports grouped into blocks, without summarization."""

    async def collect(ctx: ReportContext):
        constituents = [Constituent(report_key=key) for key in analysis_report_keys()]
        return arrange_analysis(await aggregator.collect(constituents, ctx))

    return await handle_request(body, user_id, collect, endpoint="/google-ads/ai-analysis")


@router.post("/block-data")
async def block_data(
    body: BlockDataRequest,
    user_id: Optional[str] = Depends(get_user_id),
    aggregator: FanOutAggregator = Depends(get_aggregator),
):
    """One report, addressed by dashboard block id."""
    if body.access_token and body.account_id and not body.block_id:
        return error_response("Block ID is required", 400)

    async def fetch(ctx: ReportContext):
        report_key = block_report(body.block_id)
        return await aggregator.fetcher.fetch(report_key, ctx)

    return await handle_request(body, user_id, fetch, endpoint="/google-ads/block-data")


@router.get("/usage")
async def usage(
    user_id: Optional[str] = Depends(get_user_id),
    ledger: SqlUsageLedger = Depends(get_ledger),
):
    """Weekly report usage and limit for the caller."""
    if not user_id:
        return error_response("User ID is required", 401)
    status = await ledger.check_limit(user_id)
    return status.model_dump()


@router.post("/cache/clear")
def clear_cache(
    user_id: Optional[str] = Depends(get_user_id),
    cache: SqlReportCache = Depends(get_cache),
):
    """Drop every cached report of the caller."""
    if not user_id:
        return error_response("User ID is required", 401)
    cleared = cache.clear_user(user_id)
    logger.info(f"Cleared {cleared} cached reports")
    return {"cleared": cleared}
