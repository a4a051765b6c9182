"""ADLENS: Conversion Reports."""

from collections import OrderedDict
from typing import Dict

from app.core.limits import QueryLimits
from app.query.builder import active, campaign_filter, during, eq, gt, select
from app.reports.executor import (
    Degradation,
    ReportContext,
    ReportDefinition,
    ResultSet,
)
from app.reports.shaping import percent, pick, to_float, to_int

# ── conversion-action-setup ──


def _setup_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "conversion_action",
            "conversion_action.name",
            "conversion_action.status",
            "conversion_action.category",
            "conversion_action.primary_for_goal",
            "conversion_action.include_in_conversions_metric",
            "conversion_action.value_settings.default_value",
            "conversion_action.counting_type",
            "metrics.all_conversions",
        )
        .where(eq("conversion_action.status", "ENABLED"))
        .ordered_by("metrics.all_conversions")
        .limited(limits.get("CONVERSION_ACTION_SETUP", ctx.mode))
    )
    return {"actions": query}


def _setup_shape(results: ResultSet, ctx: ReportContext):
    actions = []
    for row in results["actions"]:
        actions.append(
            {
                "conversionActionName": pick(row, "conversionAction.name", ""),
                "status": pick(row, "conversionAction.status", ""),
                "category": pick(row, "conversionAction.category", ""),
                "isPrimary": bool(pick(row, "conversionAction.primaryForGoal", False)),
                "hasValueMetric": bool(
                    pick(row, "conversionAction.includeInConversionsMetric", False)
                ),
                "countingType": pick(row, "conversionAction.countingType", "UNKNOWN"),
                "defaultValue": to_float(pick(row, "conversionAction.valueSettings.defaultValue")),
                "volume": to_float(pick(row, "metrics.allConversions")),
            }
        )
    return {"conversionActions": actions}


CONVERSION_ACTION_SETUP = ReportDefinition(
    key="conversion-action-setup",
    build=_setup_queries,
    shape=_setup_shape,
    empty=lambda ctx: {"conversionActions": []},
    description="Enabled conversion actions and how they are counted.",
)

# ── conversion-action-inventory ──


def _inventory_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "campaign",
            "campaign.id",
            "campaign.name",
            "segments.conversion_action",
            "segments.conversion_action_name",
            "segments.conversion_action_category",
            "metrics.all_conversions",
            "metrics.conversions_value",
            "metrics.conversions",
        )
        .where(
            during(ctx.window),
            gt("metrics.all_conversions", 0),
            active("campaign.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.all_conversions")
        .limited(limits.get("CONVERSION_ACTION_INVENTORY", ctx.mode))
    )
    return {"actions": query}


def _inventory_shape(results: ResultSet, ctx: ReportContext):
    actions: Dict[str, dict] = OrderedDict()
    for row in results["actions"]:
        action_id = pick(row, "segments.conversionAction")
        if not action_id:
            continue
        volume = to_float(
            pick(row, "metrics.conversions", pick(row, "metrics.allConversions"))
        )
        entry = actions.get(action_id)
        if entry is None:
            actions[action_id] = {
                "name": pick(row, "segments.conversionActionName") or "Unknown Conversion",
                "status": "Active",
                "type": pick(row, "segments.conversionActionCategory") or "Other",
                "volume": volume,
            }
        else:
            entry["volume"] += volume
    return {"actions": sorted(actions.values(), key=lambda a: a["volume"], reverse=True)}


CONVERSION_ACTION_INVENTORY = ReportDefinition(
    key="conversion-action-inventory",
    build=_inventory_queries,
    shape=_inventory_shape,
    empty=lambda ctx: {"actions": []},
)

# ── assisted-conversions ──

QUESTION_WORDS = ("how", "what", "where")


def _assisted_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "search_term_view",
            "search_term_view.search_term",
            "campaign.status",
            "ad_group.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.ctr",
            "metrics.conversions_from_interactions_rate",
        )
        .where(
            during(ctx.window),
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            active("campaign.status"),
            active("ad_group.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("ASSISTED_CONVERSIONS", ctx.mode))
    )
    return {"terms": query}


def is_technical_term(term: str) -> bool:
    """True when the term contains any of the question words."""
    lowered = term.lower()
    return any(word in lowered for word in QUESTION_WORDS)


def _assisted_shape(results: ResultSet, ctx: ReportContext):
    terms = []
    for row in results["terms"]:
        term = pick(row, "searchTermView.searchTerm", "")
        conversions = to_float(pick(row, "metrics.conversions"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        terms.append(
            {
                "term": term,
                "impressions": to_int(pick(row, "metrics.impressions")),
                "clicks": to_int(pick(row, "metrics.clicks")),
                "assistedConversions": conversions,
                "assistedConversionValue": value,
                "lastClickConversions": conversions,
                "lastClickConversionValue": value,
                "ctr": to_float(pick(row, "metrics.ctr")),
                "cvr": to_float(pick(row, "metrics.conversionsFromInteractionsRate")),
                "isTechnical": is_technical_term(term),
                "relatedBrandTerms": [],
            }
        )

    assisted = [t for t in terms if t["assistedConversions"] > 0]
    last_click = [t for t in terms if t["lastClickConversions"] > 0]
    return {
        "searchTerms": terms,
        "summary": {
            "totalAssistedConversions": sum(t["assistedConversions"] for t in terms),
            "totalLastClickConversions": sum(t["lastClickConversions"] for t in terms),
            "averageAssistedConversionValue": sum(
                t["assistedConversionValue"] for t in terms
            ) / (len(assisted) or 1),
            "averageLastClickConversionValue": sum(
                t["lastClickConversionValue"] for t in terms
            ) / (len(last_click) or 1),
        },
    }


ASSISTED_CONVERSIONS = ReportDefinition(
    key="assisted-conversions",
    build=_assisted_queries,
    shape=_assisted_shape,
    empty=lambda ctx: _assisted_shape({"terms": []}, ctx),
    policy=Degradation.RAISE,
)

# ── conversion-timing ──

WEEKDAYS = OrderedDict(
    [
        ("MONDAY", "monday"),
        ("TUESDAY", "tuesday"),
        ("WEDNESDAY", "wednesday"),
        ("THURSDAY", "thursday"),
        ("FRIDAY", "friday"),
        ("SATURDAY", "saturday"),
        ("SUNDAY", "sunday"),
    ]
)


def _timing_queries(ctx: ReportContext, limits: QueryLimits):
    def by(segment: str):
        return (
            select("campaign", segment, "metrics.conversions", "metrics.all_conversions")
            .where(
                during(ctx.window),
                active("campaign.status"),
                campaign_filter(ctx.campaign_id),
            )
            .ordered_by("metrics.conversions")
            .limited(limits.get("CONVERSION_TIMING", ctx.mode))
        )

    return {
        "day_of_week": by("segments.day_of_week"),
        "hour_of_day": by("segments.hour"),
        "campaign_share": by("campaign.name"),
    }


def _timing_shape(results: ResultSet, ctx: ReportContext):
    payload = _timing_empty(ctx)

    for row in results["day_of_week"]:
        day = WEEKDAYS.get(pick(row, "segments.dayOfWeek", ""))
        if day:
            payload["dayOfWeek"][day] += to_float(pick(row, "metrics.conversions"))

    for row in results["hour_of_day"]:
        hour = pick(row, "segments.hour")
        if hour is None:
            continue
        key = str(hour)
        payload["hourOfDay"][key] = payload["hourOfDay"].get(key, 0.0) + to_float(
            pick(row, "metrics.conversions")
        )

    campaigns = [
        (pick(row, "campaign.name", ""), to_float(pick(row, "metrics.conversions")))
        for row in results["campaign_share"]
    ]
    total = sum(c for _, c in campaigns)
    for name, conversions in campaigns:
        payload["campaignShare"][name] = {
            "name": name,
            "conversions": conversions,
            "share": percent(conversions, total),
        }
    return payload


def _timing_empty(ctx: ReportContext):
    return {
        "dayOfWeek": {day: 0.0 for day in WEEKDAYS.values()},
        "hourOfDay": {},
        "campaignShare": {},
    }


CONVERSION_TIMING = ReportDefinition(
    key="conversion-timing",
    build=_timing_queries,
    shape=_timing_shape,
    empty=_timing_empty,
    description="Conversions by weekday, hour and campaign share.",
)

REPORTS = [
    CONVERSION_ACTION_SETUP,
    CONVERSION_ACTION_INVENTORY,
    ASSISTED_CONVERSIONS,
    CONVERSION_TIMING,
]
