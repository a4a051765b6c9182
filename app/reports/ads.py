"""ADLENS: Ad Reports.

Responsive search ad copy, per-asset performance and the ad inventory
summary behind the Ads & Assets dashboard.
"""

from collections import defaultdict
from typing import Dict, Set

from app.core.limits import QueryLimits
from app.query.builder import active, campaign_filter, during, eq, gt, select
from app.reports.executor import Degradation, ReportContext, ReportDefinition, ResultSet
from app.reports.shaping import micros, percent, pick, ratio, table, to_float, to_int

# ── ad-copy-text ──


def _texts(assets) -> list:
    return [asset.get("text", "") for asset in assets or []]


def _ad_copy_queries(ctx: ReportContext, limits: QueryLimits):
    # Ad text is not time-segmented; the window is ignored
    query = (
        select(
            "ad_group_ad",
            "campaign.name",
            "ad_group.name",
            "ad_group_ad.ad.responsive_search_ad.headlines",
            "ad_group_ad.ad.responsive_search_ad.descriptions",
        )
        .where(
            eq("ad_group_ad.status", "ENABLED"),
            eq("campaign.status", "ENABLED"),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limits.get("AD_COPY_TEXT", ctx.mode))
    )
    return {"ads": query}


def _ad_copy_shape(results: ResultSet, ctx: ReportContext):
    ads = []
    for row in results["ads"]:
        rsa = pick(row, "adGroupAd.ad.responsiveSearchAd", {})
        ads.append(
            {
                "campaignName": pick(row, "campaign.name", ""),
                "adGroupName": pick(row, "adGroup.name", ""),
                "headlines": _texts(rsa.get("headlines")),
                "descriptions": _texts(rsa.get("descriptions")),
            }
        )
    return {"ads": ads}


AD_COPY_TEXT = ReportDefinition(
    key="ad-copy-text",
    build=_ad_copy_queries,
    shape=_ad_copy_shape,
    empty=lambda ctx: {"ads": []},
    description="Responsive search ad headlines and descriptions.",
)

# ── ad-asset-performance ──

ASSET_HEADERS = [
    "assetText",
    "assetType",
    "isPinned",
    "impressions",
    "clicks",
    "conversions",
    "performance",
]
TOP_ASSETS = 10
TOP_CONVERTING_ASSETS = 5
TOP_ASSET_KEYWORDS = 3

# (min ctr, min conversion rate, label), strictest first
PERFORMANCE_TIERS = (
    (0.05, 0.10, "Best"),
    (0.03, 0.05, "Good"),
    (0.01, 0.02, "Average"),
)

_STATUSES = ("campaign.status", "ad_group.status")


def _asset_view_query(ctx: ReportContext, limit: int):
    return (
        select(
            "ad_group_ad_asset_view",
            "ad_group.id",
            "ad_group_ad.ad.id",
            "ad_group_ad.status",
            "asset.id",
            "asset.type",
            "asset.text_asset.text",
            "ad_group_ad_asset_view.field_type",
            "ad_group_ad_asset_view.pinned_field",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.cost_micros",
        )
        .where(
            eq("ad_group_ad.ad.type", "RESPONSIVE_SEARCH_AD"),
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            *(active(field) for field in _STATUSES),
            active("ad_group_ad.status"),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )


def _asset_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("AD_ASSET_PERFORMANCE", ctx.mode)
    keywords = (
        select(
            "keyword_view",
            "ad_group_criterion.keyword.text",
            "ad_group.id",
            "metrics.conversions",
        )
        .where(
            eq("ad_group_criterion.type", "KEYWORD"),
            gt("metrics.conversions", 0),
            *(active(field) for field in _STATUSES),
            active("ad_group_criterion.status"),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.conversions")
        .limited(limit)
    )
    return {"assets": _asset_view_query(ctx, limit), "keywords": keywords}


def asset_label(row: dict) -> str:
    """Headline/Description for text assets, the raw asset type otherwise."""
    asset_type = pick(row, "asset.type", "")
    if asset_type != "TEXT":
        return asset_type or "Unknown"
    field_type = pick(row, "adGroupAdAssetView.fieldType") or pick(
        row, "adGroupAdAssetView.pinnedField", ""
    )
    return "Headline" if "HEADLINE" in field_type else "Description"


def performance_tier(impressions: int, clicks: int, conversions: float) -> str:
    ctr = ratio(clicks, impressions)
    conversion_rate = ratio(conversions, clicks)
    for min_ctr, min_rate, label in PERFORMANCE_TIERS:
        if ctr > min_ctr and conversion_rate > min_rate:
            return label
    return "Low"


def _asset_shape(results: ResultSet, ctx: ReportContext):
    by_asset_and_ad: Dict[tuple, dict] = {}
    asset_groups: Dict[str, Set[str]] = defaultdict(set)
    for row in results["assets"]:
        asset_id = str(pick(row, "asset.id", ""))
        ad_id = str(pick(row, "adGroupAd.ad.id", ""))
        asset_groups[asset_id].add(str(pick(row, "adGroup.id", "")))
        entry = by_asset_and_ad.setdefault(
            (asset_id, ad_id),
            {
                "assetId": asset_id,
                "assetText": pick(row, "asset.textAsset.text", ""),
                "assetType": asset_label(row),
                "isPinned": bool(pick(row, "adGroupAdAssetView.pinnedField")),
                "impressions": 0,
                "clicks": 0,
                "conversions": 0.0,
            },
        )
        entry["impressions"] += to_int(pick(row, "metrics.impressions"))
        entry["clicks"] += to_int(pick(row, "metrics.clicks"))
        entry["conversions"] += to_float(pick(row, "metrics.conversions"))

    assets = []
    for entry in by_asset_and_ad.values():
        entry["performance"] = performance_tier(
            entry["impressions"], entry["clicks"], entry["conversions"]
        )
        entry["conversions"] = round(entry["conversions"], 1)
        assets.append(entry)
    assets.sort(key=lambda a: a["conversions"], reverse=True)
    top = assets[:TOP_ASSETS]

    # Keywords reach an asset through the ad group serving it
    keyword_conversions: Dict[str, float] = defaultdict(float)
    group_keywords: Dict[str, Set[str]] = defaultdict(set)
    for row in results["keywords"]:
        text = pick(row, "adGroupCriterion.keyword.text", "")
        keyword_conversions[text] += to_float(pick(row, "metrics.conversions"))
        group_keywords[str(pick(row, "adGroup.id", ""))].add(text)

    converting = []
    labels = {a["assetId"]: a for a in assets}
    for asset_id, groups in asset_groups.items():
        keywords = set().union(*(group_keywords[g] for g in groups))
        if not keywords:
            continue
        ranked = sorted(keywords, key=lambda k: keyword_conversions[k], reverse=True)
        converting.append(
            {
                "assetText": labels[asset_id]["assetText"],
                "assetType": labels[asset_id]["assetType"],
                "conversions": round(sum(keyword_conversions[k] for k in keywords), 1),
                "topKeywords": [
                    {"keyword": k, "conversions": round(keyword_conversions[k], 1)}
                    for k in ranked[:TOP_ASSET_KEYWORDS]
                ],
            }
        )
    converting.sort(key=lambda a: a["conversions"], reverse=True)

    impressions = sum(a["impressions"] for a in top)
    clicks = sum(a["clicks"] for a in top)
    conversions = round(sum(a["conversions"] for a in top), 1)
    return {
        "asset_performance": table(
            ASSET_HEADERS, [[a[h] for h in ASSET_HEADERS] for a in top]
        ),
        "summary": {
            "totalAssets": len(top),
            "totalImpressions": impressions,
            "totalClicks": clicks,
            "totalConversions": conversions,
            "averageCtr": percent(clicks, impressions),
            "averageConversionRate": percent(conversions, clicks),
        },
        "topConvertingAssets": converting[:TOP_CONVERTING_ASSETS],
    }


AD_ASSET_PERFORMANCE = ReportDefinition(
    key="ad-asset-performance",
    build=_asset_queries,
    shape=_asset_shape,
    empty=lambda ctx: _asset_shape({"assets": [], "keywords": []}, ctx),
    optional=("keywords",),
    description="Responsive search ad assets ranked by conversions, with the keywords behind them.",
)

# ── ads-assets ──

LIMITED_APPROVALS = frozenset({"APPROVED_LIMITED", "AREA_OF_INTEREST_ONLY"})


def _ads_assets_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("ADS_ASSETS", ctx.mode)
    statuses = [active(field) for field in _STATUSES]
    ad_groups = (
        select(
            "ad_group",
            "ad_group.id",
            "ad_group.name",
            "ad_group.status",
            "metrics.average_cpc",
            "metrics.impressions",
            "metrics.clicks",
            "metrics.ctr",
            "metrics.conversions",
            "metrics.cost_micros",
        )
        .where(
            *statuses,
            gt("metrics.impressions", 0),
            gt("metrics.clicks", 0),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    ads = (
        select(
            "ad_group_ad",
            "ad_group_ad.ad.id",
            "ad_group_ad.status",
            "ad_group_ad.policy_summary.approval_status",
        )
        .where(*statuses, during(ctx.window), campaign_filter(ctx.campaign_id))
        .limited(limit)
    )
    return {"assets": _asset_view_query(ctx, limit), "adGroups": ad_groups, "ads": ads}


def _metrics(impressions: int, clicks: int, conversions: float, cost_micros: int) -> dict:
    return {
        "impressions": impressions,
        "clicks": clicks,
        "ctr": ratio(clicks, impressions),
        "conversions": conversions,
        "costMicros": cost_micros,
    }


def _ads_assets_shape(results: ResultSet, ctx: ReportContext):
    assets: Dict[str, dict] = {}
    for row in results["assets"]:
        asset_id = str(pick(row, "asset.id", ""))
        entry = assets.setdefault(
            asset_id,
            {
                "id": asset_id,
                "name": pick(row, "asset.textAsset.text", ""),
                "type": asset_label(row),
                "status": "ENABLED",
                "totals": [0, 0, 0.0, 0],
            },
        )
        totals = entry["totals"]
        totals[0] += to_int(pick(row, "metrics.impressions"))
        totals[1] += to_int(pick(row, "metrics.clicks"))
        totals[2] += to_float(pick(row, "metrics.conversions"))
        totals[3] += to_int(pick(row, "metrics.costMicros"))

    active_assets = []
    for entry in assets.values():
        entry["metrics"] = _metrics(*entry.pop("totals"))
        active_assets.append(entry)
    active_assets.sort(key=lambda a: a["metrics"]["impressions"], reverse=True)

    ad_groups = [
        {
            "id": str(pick(row, "adGroup.id", "")),
            "name": pick(row, "adGroup.name", ""),
            "status": pick(row, "adGroup.status", ""),
            "cpc": micros(pick(row, "metrics.averageCpc")),
            "metrics": _metrics(
                to_int(pick(row, "metrics.impressions")),
                to_int(pick(row, "metrics.clicks")),
                to_float(pick(row, "metrics.conversions")),
                to_int(pick(row, "metrics.costMicros")),
            ),
        }
        for row in results["adGroups"]
    ]

    enabled = disapproved = limited = serving = 0
    for row in results["ads"]:
        approval = pick(row, "adGroupAd.policySummary.approvalStatus", "")
        if pick(row, "adGroupAd.status") == "ENABLED":
            enabled += 1
            if approval != "DISAPPROVED":
                serving += 1
        if approval == "DISAPPROVED":
            disapproved += 1
        elif approval in LIMITED_APPROVALS:
            limited += 1
    total = len(results["ads"])

    return {
        "activeAssets": active_assets,
        "adGroups": ad_groups,
        "adMetrics": {
            "enabledAds": enabled,
            "disapprovedAds": disapproved,
            "limitedAds": limited,
            "activeAds": serving,
            "totalAds": total,
        },
    }


ADS_ASSETS = ReportDefinition(
    key="ads-assets",
    build=_ads_assets_queries,
    shape=_ads_assets_shape,
    empty=lambda ctx: _ads_assets_shape({"assets": [], "adGroups": [], "ads": []}, ctx),
    policy=Degradation.RAISE,
    description="Serving assets, ad group metrics and ad approval counts.",
)

REPORTS = [AD_COPY_TEXT, AD_ASSET_PERFORMANCE, ADS_ASSETS]
