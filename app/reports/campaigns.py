"""ADLENS: Campaign-Level Reports.

Campaign structure, budget pacing, impression share and the daily KPI
trend series, plus the per-account details used by the account picker.
"""

import asyncio
import calendar
from collections import OrderedDict
from typing import Dict, List, Optional

from app.core.limits import QueryLimits
from app.query.builder import (
    Window,
    active,
    build_date_filter,
    campaign_filter,
    during,
    eq,
    gt,
    is_in,
    select,
    utc_today,
)
from app.reports.executor import (
    Degradation,
    ReportContext,
    ReportDefinition,
    ReportError,
    ReportRunner,
    ResultSet,
)
from app.reports.shaping import (
    display_round,
    micros,
    pick,
    ratio,
    round2,
    round_roas,
    table,
    to_float,
    to_int,
)

# ── campaign-structure-overview ──

OVERVIEW_HEADERS = ["campaignName", "biddingStrategy", "cost", "roas", "convValue"]


def _overview_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "campaign",
            "campaign.id",
            "campaign.name",
            "campaign.status",
            "campaign.bidding_strategy_type",
            "campaign_budget.amount_micros",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.conversions_value",
        )
        .where(during(ctx.window), active("campaign.status"))
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("CAMPAIGN_STRUCTURE_OVERVIEW", ctx.mode))
    )
    return {"campaigns": query}


def _overview_shape(results: ResultSet, ctx: ReportContext):
    payload = _overview_empty(ctx)
    campaigns = results["campaigns"]
    if not campaigns:
        return payload

    total_cost = total_value = 0.0
    top = under = 0
    rows = []
    for row in campaigns:
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        roas = ratio(value, cost)
        total_cost += cost
        total_value += value
        if roas > 5:
            top += 1
        if roas < 1:
            under += 1
        rows.append(
            [
                pick(row, "campaign.name", ""),
                pick(row, "campaign.biddingStrategyType", ""),
                display_round(cost),
                round_roas(roas),
                display_round(value),
            ]
        )

    payload["campaign_overview"]["rows"] = rows
    payload["summary"] = {
        "totalCampaigns": len(campaigns),
        "totalCost": display_round(total_cost),
        "avgRoas": round_roas(ratio(total_value, total_cost)),
        "topPerformers": top,
        "underPerformers": under,
    }
    return payload


def _overview_empty(ctx: ReportContext):
    return {
        "campaign_overview": table(OVERVIEW_HEADERS),
        "summary": {
            "totalCampaigns": 0,
            "totalCost": 0,
            "avgRoas": 0,
            "topPerformers": 0,  # ROAS > 5
            "underPerformers": 0,  # ROAS < 1
        },
    }


CAMPAIGN_STRUCTURE_OVERVIEW = ReportDefinition(
    key="campaign-structure-overview",
    build=_overview_queries,
    shape=_overview_shape,
    empty=_overview_empty,
    description="Campaigns with bidding strategy, spend and ROAS.",
)

# ── campaign-pacing ──

PACING_HEADERS = [
    "campaignName",
    "dailyBudget",
    "totalBudget",
    "currentSpend",
    "budgetUtilization",
    "pacingStatus",
]
PACING_TOLERANCE = 20.0  # percentage points either side of expected


def _pacing_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "campaign",
            "campaign.id",
            "campaign.name",
            "campaign.status",
            "campaign_budget.amount_micros",
            "campaign_budget.total_amount_micros",
            "metrics.cost_micros",
        )
        .where(during(Window.of_preset("THIS_MONTH")), eq("campaign.status", "ENABLED"))
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("CAMPAIGN_PACING", ctx.mode))
    )
    return {"campaigns": query}


def _pacing_shape(results: ResultSet, ctx: ReportContext):
    payload = _pacing_empty(ctx)
    campaigns = results["campaigns"]
    if not campaigns:
        return payload

    today = ctx.today or utc_today()
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    expected = today.day / days_in_month * 100

    total_budget = total_spend = 0.0
    over = under = 0
    rows = []
    for row in campaigns:
        daily_budget = micros(pick(row, "campaignBudget.amountMicros"))
        total_amount = micros(pick(row, "campaignBudget.totalAmountMicros"))
        spend = micros(pick(row, "metrics.costMicros"))
        monthly_budget = daily_budget * days_in_month
        utilization = ratio(spend, monthly_budget) * 100

        status = "On Track"
        if utilization > expected + PACING_TOLERANCE:
            status = "Over Pacing"
            over += 1
        elif utilization < expected - PACING_TOLERANCE:
            status = "Under Pacing"
            under += 1

        total_budget += monthly_budget
        total_spend += spend
        rows.append(
            [
                pick(row, "campaign.name", ""),
                round2(daily_budget),
                round2(total_amount if total_amount > 0 else monthly_budget),
                round2(spend),
                round(utilization, 1),
                status,
            ]
        )

    payload["campaign_pacing"]["rows"] = rows
    payload["summary"] = {
        "totalCampaigns": len(campaigns),
        "totalBudget": round2(total_budget),
        "totalSpend": round2(total_spend),
        "budgetUtilization": round(ratio(total_spend, total_budget) * 100, 1),
        "overBudgetCampaigns": over,
        "underBudgetCampaigns": under,
    }
    return payload


def _pacing_empty(ctx: ReportContext):
    return {
        "campaign_pacing": table(PACING_HEADERS),
        "summary": {
            "totalCampaigns": 0,
            "totalBudget": 0,
            "totalSpend": 0,
            "budgetUtilization": 0,
            "overBudgetCampaigns": 0,
            "underBudgetCampaigns": 0,
        },
    }


CAMPAIGN_PACING = ReportDefinition(
    key="campaign-pacing",
    build=_pacing_queries,
    shape=_pacing_shape,
    empty=_pacing_empty,
    description="Month-to-date spend against budget for enabled campaigns.",
)

# ── campaigns ──


def _campaigns_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "campaign",
            "campaign.id",
            "campaign.name",
            "campaign.status",
            "campaign.optimization_score",
            "campaign.advertising_channel_type",
            "metrics.clicks",
            "metrics.impressions",
            "metrics.ctr",
            "metrics.average_cpc",
            "metrics.cost_micros",
            "campaign.bidding_strategy_type",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.value_per_conversion",
            "metrics.cost_per_conversion",
        )
        .where(during(ctx.window), active("campaign.status"))
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("CAMPAIGNS", ctx.mode))
    )
    return {"campaigns": query}


def _campaigns_shape(results: ResultSet, ctx: ReportContext):
    campaigns = []
    for row in results["campaigns"]:
        campaigns.append(
            {
                "id": pick(row, "campaign.id", ""),
                "name": pick(row, "campaign.name", ""),
                "status": pick(row, "campaign.status", ""),
                "channelType": pick(row, "campaign.advertisingChannelType", ""),
                "metrics": {
                    "clicks": to_int(pick(row, "metrics.clicks")),
                    "impressions": to_int(pick(row, "metrics.impressions")),
                    "ctr": to_float(pick(row, "metrics.ctr")),
                    "costMicros": to_int(pick(row, "metrics.costMicros")),
                    "averageCpc": to_int(pick(row, "metrics.averageCpc")),
                    "conversions": to_float(pick(row, "metrics.conversions")),
                    "conversionsValue": to_float(pick(row, "metrics.conversionsValue")),
                    "valuePerConversion": to_float(pick(row, "metrics.valuePerConversion")),
                    "costPerConversion": to_float(pick(row, "metrics.costPerConversion")),
                },
            }
        )
    return {"campaigns": campaigns}


CAMPAIGNS = ReportDefinition(
    key="campaigns",
    build=_campaigns_queries,
    shape=_campaigns_shape,
    empty=lambda ctx: {"campaigns": []},
)

# ── impression-share-lost ──

IMPRESSION_SHARE_HEADERS = ["campaignName", "lostBudget", "lostRank", "totalLost", "impressions"]
HIGH_RISK_LOST_SHARE = 25.0


def _impression_share_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "campaign",
            "campaign.name",
            "metrics.impressions",
            "metrics.search_budget_lost_impression_share",
            "metrics.search_rank_lost_impression_share",
        )
        .where(
            during(ctx.window),
            eq("campaign.status", "ENABLED"),
            eq("campaign.advertising_channel_type", "SEARCH"),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.impressions")
        .limited(limits.get("IMPRESSION_SHARE_LOST", ctx.mode))
    )
    return {"campaigns": query}


def _impression_share_shape(results: ResultSet, ctx: ReportContext):
    campaigns = []
    for row in results["campaigns"]:
        # Shares come back as fractions (0.12 == 12%)
        lost_budget = round(to_float(pick(row, "metrics.searchBudgetLostImpressionShare")) * 100, 1)
        lost_rank = round(to_float(pick(row, "metrics.searchRankLostImpressionShare")) * 100, 1)
        campaigns.append(
            [
                pick(row, "campaign.name", ""),
                lost_budget,
                lost_rank,
                round(lost_budget + lost_rank, 1),
                to_int(pick(row, "metrics.impressions")),
            ]
        )
    campaigns.sort(key=lambda c: c[3], reverse=True)
    if not campaigns:
        return _impression_share_empty(ctx)

    return {
        "impression_share_lost": table(IMPRESSION_SHARE_HEADERS, campaigns),
        "summary": {
            "avgLostBudget": round(sum(c[1] for c in campaigns) / len(campaigns), 1),
            "avgLostRank": round(sum(c[2] for c in campaigns) / len(campaigns), 1),
            "highRiskCampaigns": sum(1 for c in campaigns if c[3] > HIGH_RISK_LOST_SHARE),
        },
    }


def _impression_share_empty(ctx: ReportContext):
    return {
        "impression_share_lost": table(IMPRESSION_SHARE_HEADERS),
        "summary": {"avgLostBudget": 0, "avgLostRank": 0, "highRiskCampaigns": 0},
    }


IMPRESSION_SHARE_LOST = ReportDefinition(
    key="impression-share-lost",
    build=_impression_share_queries,
    shape=_impression_share_shape,
    empty=_impression_share_empty,
)

# ── daily-trends ──

DAILY_TRENDS_HEADERS = [
    "Date",
    "Cost",
    "Conversions",
    "Conversion Value",
    "Clicks",
    "Impressions",
    "CTR (%)",
]
DAILY_TRENDS_DEFAULT_RANGE = "LAST_QUARTER"
DAILY_TREND_FIELDS = (
    "segments.date",
    "metrics.cost_micros",
    "metrics.conversions",
    "metrics.conversions_value",
    "metrics.clicks",
    "metrics.impressions",
    "metrics.ctr",
)


def _trends_range(ctx: ReportContext) -> str:
    return ctx.time_range or DAILY_TRENDS_DEFAULT_RANGE


def _trends_window(ctx: ReportContext) -> Window:
    return ctx.with_range(_trends_range(ctx)).window


def _trends_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select("campaign", *DAILY_TREND_FIELDS)
        .where(
            gt("metrics.impressions", 0),
            active("campaign.status"),
            during(_trends_window(ctx)),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("segments.date")
        .limited(limits.get("DAILY_TRENDS", ctx.mode))
    )
    return {"daily": query}


def _trends_followup(ctx: ReportContext, limits: QueryLimits, results: ResultSet):
    """When nothing had impressions, retry without that filter and check that campaigns exist."""
    if results["daily"]:
        return None
    fallback = (
        select("campaign", *DAILY_TREND_FIELDS)
        .where(
            active("campaign.status"),
            during(_trends_window(ctx)),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("segments.date", descending=False)
        .limited(limits.get("DAILY_TRENDS", ctx.mode))
    )
    campaign_check = (
        select("campaign", "campaign.id", "campaign.name", "campaign.status")
        .where(is_in("campaign.status", "ENABLED", "PAUSED", "REMOVED"))
        .limited(limits.get("DAILY_TRENDS_CAMPAIGNS", ctx.mode))
    )
    return {"fallback": fallback, "campaign_check": campaign_check}


def _trends_shape(results: ResultSet, ctx: ReportContext):
    time_range = _trends_range(ctx)
    records = results["daily"]
    source = "primary_query"
    if not records and results.get("fallback"):
        records = results["fallback"]
        source = "fallback_query"
    elif not records:
        source = "fallback_attempted"

    days: Dict[str, dict] = OrderedDict()
    for row in records:
        day = pick(row, "segments.date")
        if not day:
            continue
        agg = days.setdefault(
            day,
            {"date": day, "cost": 0.0, "conversions": 0.0, "value": 0.0, "clicks": 0, "impressions": 0},
        )
        agg["cost"] += micros(pick(row, "metrics.costMicros"))
        agg["conversions"] += to_float(pick(row, "metrics.conversions"))
        agg["value"] += to_float(pick(row, "metrics.conversionsValue"))
        agg["clicks"] += to_int(pick(row, "metrics.clicks"))
        agg["impressions"] += to_int(pick(row, "metrics.impressions"))

    ordered = sorted(days.values(), key=lambda d: d["date"], reverse=True)
    rows = [
        [
            d["date"],
            round2(d["cost"]),
            d["conversions"],
            round2(d["value"]),
            d["clicks"],
            d["impressions"],
            round2(ratio(d["clicks"], d["impressions"]) * 100),
        ]
        for d in ordered
    ]

    total_cost = sum(d["cost"] for d in ordered)
    total_value = sum(d["value"] for d in ordered)
    total_clicks = sum(d["clicks"] for d in ordered)
    total_impressions = sum(d["impressions"] for d in ordered)
    summary = {
        "totalCost": total_cost,
        "totalConversions": sum(d["conversions"] for d in ordered),
        "totalConversionValue": total_value,
        "averageRoas": ratio(total_value, total_cost),
        "totalClicks": total_clicks,
        "totalImpressions": total_impressions,
        "averageCtr": ratio(total_clicks, total_impressions) * 100,
    }

    if not records:
        explanation = (
            "No campaign data found - account may have no active campaigns "
            "or no historical activity in the requested timeframe"
        )
    elif not ordered:
        explanation = "Campaign data exists but shows zero activity across all metrics"
    else:
        explanation = "Valid campaign data retrieved successfully"

    return {
        "daily_trends": table(
            DAILY_TRENDS_HEADERS,
            rows,
            comment=(
                f"Daily performance trends for {time_range.lower().replace('_', ' ')} "
                f"showing {len(ordered)} days of data"
            ),
        ),
        "summary": summary,
        "metadata": {
            "totalRecords": len(records),
            "dateRange": time_range,
            "hasActiveData": bool(ordered) and total_impressions > 0,
            "dataSource": source,
            "dateFilterUsed": build_date_filter(time_range, ctx.today),
            "explanation": explanation,
        },
    }


def _trends_empty(ctx: ReportContext):
    return _trends_shape({"daily": []}, ctx)


DAILY_TRENDS = ReportDefinition(
    key="daily-trends",
    build=_trends_queries,
    shape=_trends_shape,
    empty=_trends_empty,
    policy=Degradation.RAISE,
    optional=("fallback", "campaign_check"),
    followup=_trends_followup,
    description="Per-day KPI series aggregated across campaigns.",
)

# ── account-details ──


def _account_queries(ctx: ReportContext, limits: QueryLimits):
    customer = select(
        "customer",
        "customer.id",
        "customer.descriptive_name",
        "customer.currency_code",
        "customer.time_zone",
    ).limited(limits.get("ACCOUNT_DETAILS_CUSTOMER", ctx.mode))
    campaigns = (
        select(
            "campaign",
            "campaign.id",
            "campaign.name",
            "campaign.status",
            "campaign.advertising_channel_type",
            "campaign.serving_status",
            "metrics.clicks",
            "metrics.impressions",
            "metrics.cost_micros",
        )
        .where(during(ctx.window), active("campaign.status"))
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("ACCOUNT_DETAILS_CAMPAIGNS", ctx.mode))
    )
    return {"customer": customer, "campaigns": campaigns}


def account_placeholder(account_id: str, error: str) -> dict:
    return {
        "id": account_id,
        "descriptiveName": f"Account {account_id}",
        "currencyCode": "Unknown",
        "timeZone": "Unknown",
        "error": error,
    }


def _account_shape(results: ResultSet, ctx: ReportContext):
    if not results["customer"]:
        return account_placeholder(ctx.account_id, "No account data returned from API")
    customer = results["customer"][0]
    return {
        "id": str(pick(customer, "customer.id", ctx.account_id)),
        "descriptiveName": pick(customer, "customer.descriptiveName")
        or f"Account {ctx.account_id}",
        "currencyCode": pick(customer, "customer.currencyCode", "Unknown"),
        "timeZone": pick(customer, "customer.timeZone", "Unknown"),
        "campaigns": [
            {
                "id": str(pick(row, "campaign.id", "")),
                "name": pick(row, "campaign.name", ""),
                "status": pick(row, "campaign.status", ""),
                "channelType": pick(row, "campaign.advertisingChannelType", ""),
                "servingStatus": pick(row, "campaign.servingStatus", ""),
                "metrics": {
                    "clicks": to_int(pick(row, "metrics.clicks")),
                    "impressions": to_int(pick(row, "metrics.impressions")),
                    "cost": micros(pick(row, "metrics.costMicros")),
                },
            }
            for row in results["campaigns"]
        ],
    }


ACCOUNT_DETAILS = ReportDefinition(
    key="account-details",
    build=_account_queries,
    shape=_account_shape,
    empty=lambda ctx: account_placeholder(ctx.account_id, "No account data returned from API"),
    policy=Degradation.RAISE,
    optional=("campaigns",),
    description="Name, currency, time zone and active campaigns of one account.",
)


async def describe_accounts(
    runner: ReportRunner,
    access_token: str,
    account_ids: List[str],
    user_id: Optional[str] = None,
) -> List[dict]:
    """Run account-details for each account concurrently.

    A failing account yields a placeholder entry carrying the error message
    instead of failing the whole batch.
    """

    async def describe(account_id: str) -> dict:
        ctx = ReportContext(access_token=access_token, account_id=account_id, user_id=user_id)
        try:
            return await runner.run(ACCOUNT_DETAILS, ctx)
        except ReportError as e:
            return account_placeholder(account_id, str(e))

    return list(await asyncio.gather(*(describe(a) for a in account_ids)))

REPORTS = [
    CAMPAIGN_STRUCTURE_OVERVIEW,
    CAMPAIGN_PACING,
    CAMPAIGNS,
    IMPRESSION_SHARE_LOST,
    DAILY_TRENDS,
    ACCOUNT_DETAILS,
]
