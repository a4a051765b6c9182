"""ADLENS: Audience Report."""

from typing import Dict

from app.core.limits import QueryLimits
from app.query.builder import campaign_filter, during, eq, gt, ne, select
from app.reports.executor import ReportContext, ReportDefinition, ResultSet
from app.reports.shaping import micros, percent, pick, to_float, to_int

AUDIENCE_FIELDS = (
    "membershipStatus",
    "membershipLifeSpan",
    "closingReason",
    "accessReason",
)


def _audience_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("AUDIENCE_DATA", ctx.mode)
    # User lists are account-level; no date or campaign segmentation
    lists = (
        select(
            "user_list",
            "user_list.id",
            "user_list.name",
            "user_list.description",
            "user_list.type",
            "user_list.size_for_display",
            "user_list.size_for_search",
            "user_list.membership_status",
            "user_list.membership_life_span",
            "user_list.closing_reason",
            "user_list.access_reason",
        )
        .where(ne("user_list.type", "UNKNOWN"))
        .ordered_by("user_list.size_for_display")
        .limited(limit)
    )
    age_ranges = (
        select(
            "age_range_view",
            "ad_group_criterion.age_range.type",
            "campaign.id",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.cost_micros",
        )
        .where(
            gt("metrics.impressions", 0),
            eq("campaign.status", "ENABLED"),
            eq("ad_group.status", "ENABLED"),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.impressions")
        .limited(limit)
    )
    return {"lists": lists, "ageRanges": age_ranges}


def _audience_list(row: dict) -> dict:
    entry = {
        "id": str(pick(row, "userList.id", "")),
        "name": pick(row, "userList.name") or "Unnamed List",
        "description": pick(row, "userList.description", ""),
        "type": pick(row, "userList.type", ""),
        "size": to_int(pick(row, "userList.sizeForDisplay")),
        "searchSize": to_int(pick(row, "userList.sizeForSearch")),
    }
    for field in AUDIENCE_FIELDS:
        entry[field] = pick(row, f"userList.{field}", "")
    return entry


def _audience_shape(results: ResultSet, ctx: ReportContext):
    audience_lists = [_audience_list(row) for row in results["lists"]]

    by_age: Dict[str, dict] = {}
    for row in results["ageRanges"]:
        age_range = pick(row, "adGroupCriterion.ageRange.type", "UNKNOWN")
        bucket = by_age.setdefault(
            age_range,
            {"impressions": 0, "clicks": 0, "conversions": 0.0, "cost": 0.0, "campaigns": set()},
        )
        bucket["impressions"] += to_int(pick(row, "metrics.impressions"))
        bucket["clicks"] += to_int(pick(row, "metrics.clicks"))
        bucket["conversions"] += to_float(pick(row, "metrics.conversions"))
        bucket["cost"] += micros(pick(row, "metrics.costMicros"))
        bucket["campaigns"].add(str(pick(row, "campaign.id", "")))

    demographics = [
        {
            "ageRange": age_range,
            "impressions": b["impressions"],
            "clicks": b["clicks"],
            "conversions": round(b["conversions"], 2),
            "cost": round(b["cost"], 2),
            "ctr": percent(b["clicks"], b["impressions"], 2),
            "conversionRate": percent(b["conversions"], b["clicks"], 2),
            "campaignCount": len(b["campaigns"]),
        }
        for age_range, b in sorted(
            by_age.items(), key=lambda item: item[1]["impressions"], reverse=True
        )
    ]

    return {
        "audienceLists": audience_lists,
        "demographics": demographics,
        "summary": {
            "totalLists": len(audience_lists),
            "totalAudienceSize": sum(a["size"] for a in audience_lists),
            "activeAgeRanges": len(demographics),
        },
    }


AUDIENCE_DATA = ReportDefinition(
    key="audience-data",
    build=_audience_queries,
    shape=_audience_shape,
    empty=lambda ctx: _audience_shape({"lists": [], "ageRanges": []}, ctx),
    optional=("lists", "ageRanges"),
    description="Remarketing lists and age-range performance.",
)

REPORTS = [AUDIENCE_DATA]
