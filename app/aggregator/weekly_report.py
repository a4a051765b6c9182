"""ADLENS: Weekly Review Recipe (weekly-report).

Five reports, each pinned to its own window, rounded to two decimals and
either summarized with the weekly prompt or returned as four titled blocks
(``data_only``). The cache window is always LAST_7_DAYS; usage is charged
as ``weekly_analysis``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict

from app.aggregator.fanout import Constituent, Recipe
from app.core.limits import ReportMode
from app.reports.executor import Payload, ReportContext
from app.reports.shaping import round_numeric

WEEKLY_WINDOW = "LAST_7_DAYS"

WEEKLY_CONSTITUENTS = [
    Constituent(report_key="campaign-pacing", time_range="CURRENT_MONTH"),
    Constituent(report_key="weekly-significant-changes", time_range="LAST_7_DAYS"),
    # 400 days so L7D, P7D, L30D and YoY can all be compared
    Constituent(report_key="daily-trends", time_range="LAST_400_DAYS"),
    Constituent(report_key="search-term-analysis", time_range="LAST_14_DAYS"),
    Constituent(report_key="new-keywords", time_range="LAST_QUARTER"),
]


def weekly_data(payloads: Dict[str, Payload], ctx: ReportContext) -> Dict[str, Any]:
    return {
        "accountId": ctx.account_id,
        "timeRange": WEEKLY_WINDOW,
        "campaignId": ctx.campaign_id,
        "data": {
            "report_campaign_pacing": round_numeric(payloads["campaign-pacing"]),
            "report_significant_changes": round_numeric(payloads["weekly-significant-changes"]),
            "report_account_daily_trends": round_numeric(payloads["daily-trends"]),
            "report_weekly_search_terms": round_numeric(payloads["search-term-analysis"]),
            "report_new_keywords": round_numeric(payloads["new-keywords"]),
        },
        "metadata": {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "analysisType": "weekly",
        },
    }


def render_weekly_prompt(payloads: Dict[str, Payload], ctx: ReportContext) -> str:
    data = weekly_data(payloads, ctx)
    return f"Weekly Analysis Data for Account: {ctx.account_id}\n\n{json.dumps(data, indent=2)}"


def render_weekly_blocks(payloads: Dict[str, Payload], ctx: ReportContext) -> Dict[str, Any]:
    pacing = payloads["campaign-pacing"]
    return {
        "block1_budget_pacing": {
            "title": "Budget Pacing & Utilization",
            "description": (
                "Are we on track to spend the monthly budget effectively, or pacing "
                "too fast or too slow? Catches campaigns that would run out of budget "
                "early or fail to spend their allocation."
            ),
            "data": {
                "campaign_pacing": {
                    "headers": pacing["campaign_pacing"]["headers"],
                    "rows": round_numeric(pacing["campaign_pacing"]["rows"]),
                },
                "summary": round_numeric(pacing.get("summary", {})),
            },
            "reportType": "campaign-pacing",
        },
        "block2_change_log": {
            "title": "Recent Change Log & Context",
            "description": (
                "The most significant account edits of the last week, to connect "
                "management actions with the shifts seen in the KPI trends."
            ),
            "data": round_numeric(payloads["weekly-significant-changes"]),
            "reportType": "change-history-summary",
        },
        "block3_daily_trends": {
            "title": "Core KPI Trend Analysis",
            "description": (
                "A multi-timeframe view of the account's key metrics: short-term "
                "momentum, monthly trend and seasonality."
            ),
            "data": round_numeric(payloads["daily-trends"]),
            "reportType": "daily-trends",
        },
        "block4_search_terms": {
            "title": "Tactical Threat & Opportunity Radar",
            "description": (
                "New sources of wasted spend that need attention this week, and how "
                "recently launched keywords are performing."
            ),
            "data": {
                "searchTerms": round_numeric(payloads["search-term-analysis"]),
                "newKeywords": round_numeric(payloads["new-keywords"]),
            },
            "reportType": "search-term-analysis",
        },
    }


WEEKLY_REPORT = Recipe(
    name="weekly-report",
    kind="weekly",
    usage_type="weekly_analysis",
    constituents=WEEKLY_CONSTITUENTS,
    render=render_weekly_prompt,
    summary_kind="weekly",
    cache_window=lambda time_range: WEEKLY_WINDOW,
    render_data=render_weekly_blocks,
    mode=ReportMode.WEEKLY,
)
