"""ADLENS: Search Term Reports.

Search terms are cross-referenced against the account's keywords with
``normalized_key`` so membership checks ignore case and surrounding
whitespace.
"""

from typing import List, Set

from app.core.limits import QueryLimits
from app.query.builder import (
    Window,
    WindowKind,
    active,
    campaign_filter,
    during,
    enum_in,
    eq,
    gt,
    select,
    utc_today,
)
from app.reports.executor import (
    Degradation,
    ReportContext,
    ReportDefinition,
    ResultSet,
)
from app.reports.shaping import (
    display_round,
    micros,
    normalized_key,
    percent,
    pick,
    ratio,
    round_roas,
    table,
    to_float,
    to_int,
)

# ── search-term-analysis ──

HARVEST_HEADERS = ["searchTerm", "campaign", "roas", "convValue"]
NEGATIVE_HEADERS = ["searchTerm", "campaign", "cost"]
GAP_HEADERS = ["searchTerm", "campaign", "roas", "cost"]

HARVEST_MIN_ROAS = 8.0
NEGATIVE_MIN_COST = 20.0
GAP_MAX_ROAS = 2.0
GAP_MIN_COST = 50.0
TOP_TERMS = 25


def _analysis_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("SEARCH_TERM_ANALYSIS", ctx.mode)
    terms = (
        select(
            "search_term_view",
            "search_term_view.search_term",
            "search_term_view.status",
            "segments.keyword.info.text",
            "segments.keyword.info.match_type",
            "ad_group.name",
            "campaign.name",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.cost_micros",
        )
        .where(
            during(ctx.window),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    keywords = (
        select(
            "keyword_view",
            "ad_group_criterion.keyword.text",
            "ad_group_criterion.keyword.match_type",
            "ad_group.name",
            "campaign.name",
        )
        .where(
            during(ctx.window),
            eq("ad_group_criterion.type", "KEYWORD"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limit)
    )
    return {"terms": terms, "keywords": keywords}


def _existing_keywords(rows) -> Set[str]:
    existing = set()
    for row in rows:
        text = pick(row, "adGroupCriterion.keyword.text")
        ad_group = pick(row, "adGroup.name")
        campaign = pick(row, "campaign.name")
        if text and ad_group and campaign:
            existing.add(normalized_key(text, ad_group, campaign))
    return existing


def _analysis_shape(results: ResultSet, ctx: ReportContext):
    existing = _existing_keywords(results["keywords"])

    terms = []
    for row in results["terms"]:
        search_term = pick(row, "searchTermView.searchTerm", "")
        campaign = pick(row, "campaign.name", "Unknown")
        ad_group = pick(row, "adGroup.name", "Unknown")
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        terms.append(
            {
                "searchTerm": search_term,
                "campaign": campaign,
                "cost": display_round(cost),
                "conversions": to_float(pick(row, "metrics.conversions")),
                "convValue": display_round(value),
                "roas": round_roas(ratio(value, cost)),
                "isKeyword": normalized_key(search_term, ad_group, campaign) in existing,
            }
        )

    harvest = sorted(
        (
            t
            for t in terms
            if not t["isKeyword"] and t["roas"] >= HARVEST_MIN_ROAS and t["convValue"] > 0
        ),
        key=lambda t: t["convValue"],
        reverse=True,
    )[:TOP_TERMS]
    negatives = sorted(
        (t for t in terms if t["conversions"] == 0 and t["cost"] >= NEGATIVE_MIN_COST),
        key=lambda t: t["cost"],
        reverse=True,
    )[:TOP_TERMS]
    gaps = sorted(
        (t for t in terms if 0 < t["roas"] < GAP_MAX_ROAS and t["cost"] >= GAP_MIN_COST),
        key=lambda t: t["cost"],
        reverse=True,
    )[:TOP_TERMS]

    def rows(selected: List[dict], headers: List[str]):
        return [[t[h] for h in headers] for t in selected]

    return {
        "search_term_analysis": {
            "harvest_opportunities": table(
                HARVEST_HEADERS,
                rows(harvest, HARVEST_HEADERS),
                comment="Top 25 non-keyword search terms by Conversion Value (min ROAS of 8.0).",
            ),
            "negative_candidates": table(
                NEGATIVE_HEADERS,
                rows(negatives, NEGATIVE_HEADERS),
                comment="Top 25 zero-conversion search terms by Cost (min cost of $20).",
            ),
            "performance_gaps": table(
                GAP_HEADERS,
                rows(gaps, GAP_HEADERS),
                comment="Top 25 low-ROAS search terms by Cost (ROAS < 2.0, min cost of $50).",
            ),
        }
    }


def _analysis_empty(ctx: ReportContext):
    return {
        "search_term_analysis": {
            "harvest_opportunities": table(
                HARVEST_HEADERS, comment="No harvest opportunities found."
            ),
            "negative_candidates": table(
                NEGATIVE_HEADERS, comment="No negative candidates found."
            ),
            "performance_gaps": table(GAP_HEADERS, comment="No performance gaps found."),
        }
    }


SEARCH_TERM_ANALYSIS = ReportDefinition(
    key="search-term-analysis",
    build=_analysis_queries,
    shape=_analysis_shape,
    empty=_analysis_empty,
    optional=("keywords",),
    description="Harvest, negative and low-ROAS search term candidates.",
)

# ── search-term-coverage ──


def _coverage_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("SEARCH_TERM_COVERAGE", ctx.mode)
    terms = (
        select(
            "search_term_view",
            "search_term_view.search_term",
            "search_term_view.status",
            "campaign.status",
            "ad_group.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.cost_micros",
            "segments.keyword.info.text",
            "segments.keyword.info.match_type",
        )
        .where(
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            active("campaign.status"),
            active("ad_group.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    keywords = (
        select(
            "keyword_view",
            "ad_group_criterion.keyword.text",
            "ad_group_criterion.keyword.match_type",
            "ad_group_criterion.status",
            "campaign.status",
            "ad_group.status",
        )
        .where(
            during(ctx.window),
            eq("ad_group_criterion.type", "KEYWORD"),
            enum_in("ad_group_criterion.keyword.match_type", "EXACT", "PHRASE"),
            active("campaign.status"),
            active("ad_group.status"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limit)
    )
    return {"terms": terms, "keywords": keywords}


def _is_covered(term: str, keywords: List[tuple]) -> bool:
    for text, match_type in keywords:
        if match_type == "EXACT" and term == text:
            return True
        if match_type == "PHRASE" and text in term:
            return True
    return False


def _coverage_shape(results: ResultSet, ctx: ReportContext):
    keywords = sorted(
        {
            (
                normalized_key(pick(row, "adGroupCriterion.keyword.text")),
                pick(row, "adGroupCriterion.keyword.matchType", ""),
            )
            for row in results["keywords"]
        }
    )

    buckets = {
        "exact": {"impressions": 0, "cost": 0.0},
        "phrase": {"impressions": 0, "cost": 0.0},
        "broad": {"impressions": 0, "cost": 0.0},
    }
    total_impressions = 0
    unmatched = []
    for row in results["terms"]:
        term = pick(row, "searchTermView.searchTerm", "")
        impressions = to_int(pick(row, "metrics.impressions"))
        cost = micros(pick(row, "metrics.costMicros"))
        total_impressions += impressions

        if not _is_covered(normalized_key(term), keywords):
            unmatched.append(
                {
                    "term": term,
                    "cost": cost,
                    "impressions": impressions,
                    "clicks": to_int(pick(row, "metrics.clicks")),
                }
            )

        match_type = pick(row, "segments.keyword.info.matchType", "")
        bucket = buckets.get(match_type.lower(), buckets["broad"])
        bucket["impressions"] += impressions
        bucket["cost"] += cost

    for bucket in buckets.values():
        bucket["share"] = (
            round(bucket["impressions"] / total_impressions * 100) if total_impressions else 0
        )

    unmatched.sort(key=lambda t: t["cost"], reverse=True)
    return {"coverage": buckets, "topTerms": unmatched[:5]}


SEARCH_TERM_COVERAGE = ReportDefinition(
    key="search-term-coverage",
    build=_coverage_queries,
    shape=_coverage_shape,
    empty=lambda ctx: _coverage_shape({"terms": [], "keywords": []}, ctx),
    policy=Degradation.RAISE,
    description="Share of search traffic caught by exact and phrase keywords.",
)

# ── negative-keywords-gaps ──


def _gaps_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("NEGATIVE_KEYWORDS_GAPS", ctx.mode)
    statuses = (active("campaign.status"), active("ad_group.status"), campaign_filter(ctx.campaign_id))
    current = (
        select(
            "search_term_view",
            "search_term_view.search_term",
            "campaign.status",
            "ad_group.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.cost_micros",
            "metrics.conversions",
        )
        .where(
            eq("metrics.conversions", 0),
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            *statuses,
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    previous = (
        select("search_term_view", "search_term_view.search_term", "campaign.status", "ad_group.status")
        .where(during(ctx.window), gt("metrics.impressions", 0), gt("metrics.clicks", 0), *statuses)
        .limited(limit)
    )
    placements = (
        select(
            "group_placement_view",
            "group_placement_view.placement",
            "campaign.status",
            "ad_group.status",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.ctr",
        )
        .where(
            during(ctx.window),
            gt("metrics.impressions", 100),
            eq("metrics.clicks", 0),
            gt("metrics.cost_micros", 1_000_000),
            *statuses,
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    return {"current": current, "previous": previous, "placements": placements}


def _gaps_shape(results: ResultSet, ctx: ReportContext):
    current = {pick(row, "searchTermView.searchTerm", "") for row in results["current"]}
    previous = {pick(row, "searchTermView.searchTerm", "") for row in results["previous"]}
    new_terms = current - previous

    window = ctx.window
    since = window.start if window.kind == WindowKind.RANGE else (ctx.today or utc_today())

    return {
        "newIrrelevantTerms": {
            "count": len(new_terms),
            "sinceDate": since.isoformat(),
            "percentage": round(len(new_terms) / len(current) * 100) if current else 0,
        },
        "highSpendPlacements": [
            {
                "placement": pick(row, "groupPlacementView.placement", ""),
                "cost": micros(pick(row, "metrics.costMicros")),
                "ctr": to_float(pick(row, "metrics.ctr")),
            }
            for row in results["placements"]
        ],
    }


NEGATIVE_KEYWORDS_GAPS = ReportDefinition(
    key="negative-keywords-gaps",
    build=_gaps_queries,
    shape=_gaps_shape,
    empty=lambda ctx: _gaps_shape({"current": [], "previous": [], "placements": []}, ctx),
    policy=Degradation.RAISE,
    description="New non-converting search terms and wasteful placements.",
)

# ── weekly-search-terms ──

WEEKLY_HIGH_HEADERS = ["searchTerm", "campaign", "roas", "cost", "convValue"]
WEEKLY_NEGATIVE_HEADERS = ["searchTerm", "campaign", "cost", "clicks", "ctr"]
WEEKLY_OPPORTUNITY_HEADERS = ["searchTerm", "campaign", "roas", "convValue", "cost"]

HIGH_PERFORMER_MIN_ROAS = 3.0
HIGH_PERFORMER_MIN_COST = 10.0
WEEKLY_NEGATIVE_MIN_COST = 5.0
OPPORTUNITY_MIN_ROAS = 2.0
OPPORTUNITY_MIN_COST = 5.0
WEEKLY_DEFAULT_PRESET = "LAST_QUARTER"


def _weekly_window(ctx: ReportContext) -> Window:
    if not ctx.time_range:
        return Window.of_preset(WEEKLY_DEFAULT_PRESET)
    return ctx.window


def _weekly_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("WEEKLY_SEARCH_TERMS", ctx.mode)
    window = _weekly_window(ctx)
    terms = (
        select(
            "search_term_view",
            "search_term_view.search_term",
            "ad_group.name",
            "campaign.name",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.cost_micros",
        )
        .where(during(window), gt("metrics.impressions", 0), campaign_filter(ctx.campaign_id))
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    keywords = (
        select(
            "keyword_view",
            "ad_group_criterion.keyword.text",
            "ad_group.name",
            "campaign.name",
        )
        .where(
            during(window),
            eq("ad_group_criterion.type", "KEYWORD"),
            active("ad_group_criterion.status"),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limit)
    )
    return {"terms": terms, "keywords": keywords}


def _weekly_shape(results: ResultSet, ctx: ReportContext):
    existing = _existing_keywords(results["keywords"])

    terms = []
    for row in results["terms"]:
        search_term = pick(row, "searchTermView.searchTerm", "")
        campaign = pick(row, "campaign.name", "Unknown")
        ad_group = pick(row, "adGroup.name", "Unknown")
        impressions = to_int(pick(row, "metrics.impressions"))
        clicks = to_int(pick(row, "metrics.clicks"))
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        terms.append(
            {
                "searchTerm": search_term,
                "campaign": campaign,
                "cost": display_round(cost),
                "clicks": clicks,
                "ctr": percent(clicks, impressions, 2),
                "conversions": to_float(pick(row, "metrics.conversions")),
                "convValue": display_round(value),
                "roas": round_roas(ratio(value, cost)),
                "isKeyword": normalized_key(search_term, ad_group, campaign) in existing,
            }
        )

    high = sorted(
        (
            t
            for t in terms
            if t["roas"] >= HIGH_PERFORMER_MIN_ROAS
            and t["convValue"] > 0
            and t["cost"] >= HIGH_PERFORMER_MIN_COST
        ),
        key=lambda t: t["roas"],
        reverse=True,
    )[:TOP_TERMS]
    negatives = sorted(
        (t for t in terms if t["conversions"] == 0 and t["cost"] >= WEEKLY_NEGATIVE_MIN_COST),
        key=lambda t: t["cost"],
        reverse=True,
    )[:TOP_TERMS]
    opportunities = sorted(
        (
            t
            for t in terms
            if not t["isKeyword"]
            and t["roas"] >= OPPORTUNITY_MIN_ROAS
            and t["convValue"] > 0
            and t["cost"] >= OPPORTUNITY_MIN_COST
        ),
        key=lambda t: t["convValue"],
        reverse=True,
    )[:TOP_TERMS]

    def section(selected: List[dict], headers: List[str], found: str, missing: str):
        if not selected:
            return table(headers, comment=missing)
        return table(headers, [[t[h] for h in headers] for t in selected], comment=found)

    return {
        "weekly_search_terms": {
            "high_performers": section(
                high,
                WEEKLY_HIGH_HEADERS,
                "Top 25 high-performing search terms by ROAS (min ROAS of 3.0, min cost of $10).",
                "No high performers found.",
            ),
            "negative_candidates": section(
                negatives,
                WEEKLY_NEGATIVE_HEADERS,
                "Top 25 zero-conversion search terms by Cost (min cost of $5).",
                "No negative candidates found.",
            ),
            "new_opportunities": section(
                opportunities,
                WEEKLY_OPPORTUNITY_HEADERS,
                "Top 25 non-keyword search terms with good performance (min ROAS of 2.0, min cost of $5).",
                "No new opportunities found.",
            ),
        }
    }


WEEKLY_SEARCH_TERMS = ReportDefinition(
    key="weekly-search-terms",
    build=_weekly_queries,
    shape=_weekly_shape,
    empty=lambda ctx: _weekly_shape({"terms": [], "keywords": []}, ctx),
    optional=("keywords",),
    description="Weekly search term digest: high performers, negatives and new opportunities.",
)

REPORTS = [
    SEARCH_TERM_ANALYSIS,
    SEARCH_TERM_COVERAGE,
    NEGATIVE_KEYWORDS_GAPS,
    WEEKLY_SEARCH_TERMS,
]
