"""ADLENS: Keyword & Ad Group Reports."""

from collections import OrderedDict
from typing import Dict, List

from app.core.limits import QueryLimits
from app.query.builder import (
    Window,
    active,
    campaign_filter,
    during,
    eq,
    gt,
    select,
)
from app.reports.executor import ReportContext, ReportDefinition, ResultSet
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

# ── zero-conversion-keywords ──

ZERO_CONVERSION_HEADERS = ["keyword", "matchType", "campaign", "cost", "clicks"]


def _zero_conversion_keywords_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "keyword_view",
            "ad_group_criterion.criterion_id",
            "ad_group_criterion.keyword.text",
            "ad_group_criterion.keyword.match_type",
            "ad_group_criterion.status",
            "ad_group_criterion.quality_info.quality_score",
            "ad_group.name",
            "ad_group.status",
            "campaign.name",
            "campaign.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.conversions_value",
        )
        .where(
            during(ctx.window),
            eq("metrics.conversions", 0),
            eq("metrics.conversions_value", 0),
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            eq("campaign.status", "ENABLED"),
            eq("ad_group.status", "ENABLED"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("ZERO_CONVERSION_KEYWORDS", ctx.mode))
    )
    return {"keywords": query}


def _zero_conversion_keywords_shape(results: ResultSet, ctx: ReportContext):
    keywords = []
    for row in results["keywords"]:
        keywords.append(
            {
                "keyword": pick(row, "adGroupCriterion.keyword.text", ""),
                "matchType": pick(row, "adGroupCriterion.keyword.matchType", ""),
                "campaign": pick(row, "campaign.name", ""),
                "cost": display_round(micros(pick(row, "metrics.costMicros"))),
                "clicks": to_int(pick(row, "metrics.clicks")),
            }
        )
    keywords.sort(key=lambda kw: kw["cost"], reverse=True)
    rows = [[kw[h] for h in ZERO_CONVERSION_HEADERS] for kw in keywords[:25]]
    return {
        "zero_conversion_keywords": table(
            ZERO_CONVERSION_HEADERS,
            rows,
            comment="Top 25 keywords by cost with zero conversions.",
        )
    }


def _zero_conversion_keywords_empty(ctx: ReportContext):
    return {
        "zero_conversion_keywords": table(
            ZERO_CONVERSION_HEADERS, comment="No zero conversion keywords found."
        )
    }


ZERO_CONVERSION_KEYWORDS = ReportDefinition(
    key="zero-conversion-keywords",
    build=_zero_conversion_keywords_queries,
    shape=_zero_conversion_keywords_shape,
    empty=_zero_conversion_keywords_empty,
    description="Keywords that spent and got clicks without converting.",
)

# ── zero-conversion-adgroups ──


def _zero_conversion_adgroups_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "ad_group",
            "ad_group.id",
            "ad_group.name",
            "ad_group.status",
            "campaign.name",
            "campaign.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.cost_micros",
            "metrics.conversions",
        )
        .where(
            during(ctx.window),
            eq("metrics.conversions", 0),
            gt("metrics.impressions", 0),
            active("campaign.status"),
            active("ad_group.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("ZERO_CONVERSION_ADGROUPS", ctx.mode))
    )
    return {"ad_groups": query}


def _zero_conversion_adgroups_shape(results: ResultSet, ctx: ReportContext):
    return {
        "adGroups": [
            {
                "id": pick(row, "adGroup.id", ""),
                "name": pick(row, "adGroup.name", ""),
                "campaign": pick(row, "campaign.name", ""),
                "spend": micros(pick(row, "metrics.costMicros")),
                "clicks": to_int(pick(row, "metrics.clicks")),
                "impressions": to_int(pick(row, "metrics.impressions")),
            }
            for row in results["ad_groups"]
        ]
    }


ZERO_CONVERSION_ADGROUPS = ReportDefinition(
    key="zero-conversion-adgroups",
    build=_zero_conversion_adgroups_queries,
    shape=_zero_conversion_adgroups_shape,
    empty=lambda ctx: {"adGroups": []},
)

# ── keyword-match-type-mix ──

MATCH_TYPE_HEADERS = ["matchType", "cost", "roas", "keywordCount", "clicks"]


def _match_type_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "keyword_view",
            "ad_group_criterion.keyword.match_type",
            "campaign.status",
            "ad_group.status",
            "ad_group_criterion.status",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.clicks",
        )
        .where(
            during(ctx.window),
            eq("ad_group_criterion.type", "KEYWORD"),
            gt("metrics.impressions", 0),
            active("campaign.status"),
            active("ad_group.status"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("KEYWORD_MATCH_TYPE_MIX", ctx.mode))
    )
    return {"keywords": query}


def _match_type_shape(results: ResultSet, ctx: ReportContext):
    by_type: Dict[str, dict] = OrderedDict()
    total_cost = total_conversions = total_value = 0.0
    for row in results["keywords"]:
        match_type = pick(row, "adGroupCriterion.keyword.matchType", "UNKNOWN")
        cost = micros(pick(row, "metrics.costMicros"))
        conversions = to_float(pick(row, "metrics.conversions"))
        value = to_float(pick(row, "metrics.conversionsValue"))

        total_cost += cost
        total_conversions += conversions
        total_value += value

        agg = by_type.setdefault(
            match_type, {"count": 0, "cost": 0.0, "value": 0.0, "clicks": 0}
        )
        agg["count"] += 1
        agg["cost"] += cost
        agg["value"] += value
        agg["clicks"] += to_int(pick(row, "metrics.clicks"))

    rows = [
        [
            match_type,
            display_round(agg["cost"]),
            round_roas(ratio(agg["value"], agg["cost"])),
            agg["count"],
            agg["clicks"],
        ]
        for match_type, agg in by_type.items()
    ]
    rows.sort(key=lambda r: r[1], reverse=True)

    return {
        "match_type_overview": table(MATCH_TYPE_HEADERS, rows),
        "summary": {
            "totalKeywords": len(results["keywords"]),
            "totalCost": display_round(total_cost),
            "totalConversions": round(total_conversions, 1),
            "totalConversionValue": display_round(total_value),
            "averageRoas": round_roas(ratio(total_value, total_cost)),
        },
    }


def _match_type_empty(ctx: ReportContext):
    return {
        "match_type_overview": table(MATCH_TYPE_HEADERS),
        "summary": {
            "totalKeywords": 0,
            "totalCost": 0,
            "totalConversions": 0,
            "totalConversionValue": 0,
            "averageRoas": 0,
        },
    }


KEYWORD_MATCH_TYPE_MIX = ReportDefinition(
    key="keyword-match-type-mix",
    build=_match_type_queries,
    shape=_match_type_shape,
    empty=_match_type_empty,
)

# ── ad-group-theming ──


def _theming_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "keyword_view",
            "campaign.name",
            "ad_group.name",
            "ad_group_criterion.keyword.text",
            "metrics.cost_micros",
            "metrics.conversions_value",
        )
        .where(
            during(ctx.window),
            eq("ad_group_criterion.type", "KEYWORD"),
            eq("campaign.status", "ENABLED"),
            eq("ad_group.status", "ENABLED"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("AD_GROUP_THEMING", ctx.mode))
    )
    return {"keywords": query}


def _theming_shape(results: ResultSet, ctx: ReportContext):
    ad_groups: Dict[tuple, List[dict]] = OrderedDict()
    for row in results["keywords"]:
        key = (pick(row, "campaign.name", ""), pick(row, "adGroup.name", ""))
        ad_groups.setdefault(key, []).append(
            {
                "text": pick(row, "adGroupCriterion.keyword.text", ""),
                "cost": micros(pick(row, "metrics.costMicros")),
                "value": to_float(pick(row, "metrics.conversionsValue")),
            }
        )

    campaigns: Dict[str, List[dict]] = OrderedDict()
    for (campaign_name, ad_group_name), keywords in ad_groups.items():
        cost = sum(kw["cost"] for kw in keywords)
        value = sum(kw["value"] for kw in keywords)
        top = sorted(keywords, key=lambda kw: kw["cost"], reverse=True)[:5]
        campaigns.setdefault(campaign_name, []).append(
            {
                "adGroupName": ad_group_name,
                "keywordCount": len(keywords),
                "cost": display_round(cost),
                "roas": round_roas(ratio(value, cost)),
                "top_spending_keywords_sample": [kw["text"] for kw in top],
            }
        )

    summaries = []
    for campaign_name, groups in campaigns.items():
        groups = sorted(groups, key=lambda g: g["cost"], reverse=True)[:10]
        summaries.append({"campaignName": campaign_name, "ad_group_summary": groups})
    summaries.sort(key=lambda c: sum(g["cost"] for g in c["ad_group_summary"]), reverse=True)
    return {"campaigns": summaries[:10]}


AD_GROUP_THEMING = ReportDefinition(
    key="ad-group-theming",
    build=_theming_queries,
    shape=_theming_shape,
    empty=lambda ctx: {"campaigns": []},
    description="Ad groups per campaign with keyword samples, for theme review.",
)

# ── new-keywords ──

NEW_KEYWORD_HEADERS = [
    "Keyword",
    "Match Type",
    "Ad Group",
    "Campaign",
    "Cost",
    "Conversions",
    "ROAS",
    "Status",
]
NEW_KEYWORD_DAYS = 180


def _new_keywords_queries(ctx: ReportContext, limits: QueryLimits):
    # No creation date is exposed for keywords; recent activity stands in for it
    window = Window.trailing(NEW_KEYWORD_DAYS, ctx.today, end_offset=1)
    query = (
        select(
            "keyword_view",
            "keyword_view.resource_name",
            "ad_group_criterion.keyword.text",
            "ad_group_criterion.keyword.match_type",
            "ad_group_criterion.status",
            "ad_group.name",
            "campaign.name",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.impressions",
            "metrics.clicks",
        )
        .where(
            during(window),
            eq("ad_group_criterion.status", "ENABLED"),
            eq("campaign.status", "ENABLED"),
            eq("ad_group.status", "ENABLED"),
            campaign_filter(ctx.campaign_id),
            gt("metrics.impressions", 0),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("NEW_KEYWORDS", ctx.mode))
    )
    return {"keywords": query}


def _new_keywords_shape(results: ResultSet, ctx: ReportContext):
    rows = []
    total_cost = total_value = 0.0
    for row in results["keywords"]:
        text = pick(row, "adGroupCriterion.keyword.text")
        if not text or "metrics" not in row:
            continue
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        total_cost += cost
        total_value += value
        rows.append(
            [
                text,
                pick(row, "adGroupCriterion.keyword.matchType", "UNKNOWN"),
                pick(row, "adGroup.name", ""),
                pick(row, "campaign.name", ""),
                round2(cost),
                to_float(pick(row, "metrics.conversions")),
                round2(ratio(value, cost)),
                pick(row, "adGroupCriterion.status", "UNKNOWN"),
            ]
        )

    if not rows:
        return _new_keywords_empty(ctx)
    return {
        "new_keywords": table(
            NEW_KEYWORD_HEADERS,
            rows,
            comment=(
                f"Recently active keywords from the last {NEW_KEYWORD_DAYS} days "
                f"showing {len(rows)} keywords with recent activity"
            ),
        ),
        "summary": {
            "totalNewKeywords": len(rows),
            "dateRange": f"{NEW_KEYWORD_DAYS}_DAYS",
            "averageRoas": round2(ratio(total_value, total_cost)),
            "totalCost": round2(total_cost),
        },
    }


def _new_keywords_empty(ctx: ReportContext):
    return {
        "new_keywords": table(NEW_KEYWORD_HEADERS, comment="No new keywords found"),
        "summary": {
            "totalNewKeywords": 0,
            "dateRange": f"{NEW_KEYWORD_DAYS}_DAYS",
            "averageRoas": 0,
            "totalCost": 0,
        },
    }


NEW_KEYWORDS = ReportDefinition(
    key="new-keywords",
    build=_new_keywords_queries,
    shape=_new_keywords_shape,
    empty=_new_keywords_empty,
)

# ── ad-group-distribution ──

LOW_SPEND_CEILING = 100.0
HIGH_SPEND_FLOOR = 1000.0


def _distribution_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "ad_group",
            "ad_group.name",
            "campaign.name",
            "metrics.cost_micros",
            "metrics.clicks",
        )
        .where(
            during(ctx.window),
            gt("metrics.impressions", 0),
            active("campaign.status"),
            active("ad_group.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("AD_GROUP_DISTRIBUTION", ctx.mode))
    )
    return {"ad_groups": query}


def _distribution_shape(results: ResultSet, ctx: ReportContext):
    payload = _distribution_empty(ctx)
    tiers = payload["tiers"]
    low_spend = []
    for row in results["ad_groups"]:
        spend = micros(pick(row, "metrics.costMicros"))
        if spend < LOW_SPEND_CEILING:
            tier = "lowSpend"
            low_spend.append(
                {
                    "name": pick(row, "adGroup.name", ""),
                    "campaign": pick(row, "campaign.name", ""),
                    "spend": round2(spend),
                    "clicks": to_int(pick(row, "metrics.clicks")),
                }
            )
        elif spend < HIGH_SPEND_FLOOR:
            tier = "mediumSpend"
        else:
            tier = "highSpend"
        tiers[tier]["count"] += 1
        tiers[tier]["spend"] += spend

    for tier in tiers.values():
        tier["spend"] = round2(tier["spend"])
    low_spend.sort(key=lambda g: g["spend"], reverse=True)
    payload["lowSpendAdGroups"] = low_spend[:5]
    return payload


def _distribution_empty(ctx: ReportContext):
    return {
        "tiers": {
            "lowSpend": {"count": 0, "spend": 0},
            "mediumSpend": {"count": 0, "spend": 0},
            "highSpend": {"count": 0, "spend": 0},
        },
        "lowSpendAdGroups": [],
    }


AD_GROUP_DISTRIBUTION = ReportDefinition(
    key="ad-group-distribution",
    build=_distribution_queries,
    shape=_distribution_shape,
    empty=_distribution_empty,
    description="Ad groups bucketed into low, medium and high spend tiers.",
)

REPORTS = [
    ZERO_CONVERSION_KEYWORDS,
    ZERO_CONVERSION_ADGROUPS,
    KEYWORD_MATCH_TYPE_MIX,
    AD_GROUP_THEMING,
    NEW_KEYWORDS,
    AD_GROUP_DISTRIBUTION,
]
