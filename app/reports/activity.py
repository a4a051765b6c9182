"""ADLENS: Account Change Activity Reports.

``change_event`` rejects open-ended and long windows, so both reports here
clamp the requested range with ``clamp_event_window``. They always degrade to
an empty table: a missing change log must not break the reports that embed it.
"""

from collections import Counter

from app.core.limits import QueryLimits
from app.query.builder import clamp_event_window, during, enum_in, select
from app.reports.executor import ReportContext, ReportDefinition, ResultSet
from app.reports.shaping import pick, table

CHANGE_HEADERS = [
    "Date/Time",
    "User",
    "Change Type",
    "Item Changed",
    "Campaign",
    "Ad Group",
    "Operation",
]
TRACKED_RESOURCES = (
    "CAMPAIGN",
    "AD_GROUP",
    "AD_GROUP_AD",
    "AD_GROUP_CRITERION",
    "CAMPAIGN_BUDGET",
)


def _change_queries(ctx: ReportContext, limits: QueryLimits):
    window = clamp_event_window(ctx.time_range, ctx.today)
    query = (
        select(
            "change_event",
            "change_event.change_date_time",
            "change_event.user_email",
            "change_event.change_resource_type",
            "change_event.resource_change_operation",
            "change_event.campaign",
            "change_event.ad_group",
        )
        .where(
            during(window, "change_event.change_date_time"),
            enum_in("change_event.change_resource_type", *TRACKED_RESOURCES),
        )
        .ordered_by("change_event.change_date_time")
        .limited(limits.get("CHANGE_HISTORY_SUMMARY", ctx.mode))
    )
    return {"changes": query}


def _most_common(counter: Counter) -> str:
    return counter.most_common(1)[0][0] if counter else "N/A"


def _describe(label: str, range_label: str) -> str:
    return f"{label} for {range_label.lower().replace('_', ' ')}"


def _change_shaper(label: str):
    def shape(results: ResultSet, ctx: ReportContext):
        range_label = clamp_event_window(ctx.time_range, ctx.today).label
        users: Counter = Counter()
        campaigns: Counter = Counter()
        rows = []
        for row in results["changes"]:
            operation = pick(row, "changeEvent.resourceChangeOperation", "")
            resource_type = pick(row, "changeEvent.changeResourceType", "")
            # campaign and ad_group are resource names, not display names
            campaign = pick(row, "changeEvent.campaign", "")
            ad_group = pick(row, "changeEvent.adGroup", "")
            user = pick(row, "changeEvent.userEmail", "Unknown")

            users[user] += 1
            if campaign:
                campaigns[campaign] += 1
            rows.append(
                [
                    pick(row, "changeEvent.changeDateTime", ""),
                    user,
                    resource_type,
                    f"{resource_type} ({operation})",
                    campaign,
                    ad_group,
                    operation,
                ]
            )

        return {
            "change_history": table(
                CHANGE_HEADERS,
                rows,
                comment=f"{_describe(label, range_label)} showing {len(rows)} changes",
            ),
            "summary": {
                "totalChanges": len(rows),
                "dateRange": range_label,
                "mostActiveUser": _most_common(users),
                "mostChangedCampaign": _most_common(campaigns),
            },
        }

    return shape


def _change_empty(label: str):
    def empty(ctx: ReportContext):
        return {
            "change_history": table(
                CHANGE_HEADERS,
                comment=f"No {label.lower()} data available due to API error",
            ),
            "summary": {
                "totalChanges": 0,
                "dateRange": clamp_event_window(ctx.time_range, ctx.today).label,
                "mostActiveUser": "N/A",
                "mostChangedCampaign": "N/A",
            },
        }

    return empty


CHANGE_HISTORY_SUMMARY = ReportDefinition(
    key="change-history-summary",
    build=_change_queries,
    shape=_change_shaper("Change history"),
    empty=_change_empty("Change history"),
    description="Recent account edits by user and campaign.",
)

WEEKLY_SIGNIFICANT_CHANGES = ReportDefinition(
    key="weekly-significant-changes",
    build=_change_queries,
    shape=_change_shaper("Weekly significant changes"),
    empty=_change_empty("Weekly significant changes"),
)

REPORTS = [CHANGE_HISTORY_SUMMARY, WEEKLY_SIGNIFICANT_CHANGES]
