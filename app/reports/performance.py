"""ADLENS: Network, Landing Page and Performance Max Reports."""

from collections import OrderedDict
from typing import Dict

from app.core.limits import QueryLimits
from app.query.builder import active, campaign_filter, during, enum_in, eq, gt, select
from app.reports.executor import ReportContext, ReportDefinition, ResultSet
from app.reports.shaping import micros, pick, ratio, round2, table, to_float, to_int

# ── performance-by-network ──

NETWORK_LABELS = {
    "SEARCH": "Google Search",
    "SEARCH_PARTNERS": "Search Partners",
    "CONTENT": "Display Network",
    "DISPLAY": "Display Network",
}
CHANNEL_LABELS = {
    "PERFORMANCE_MAX": "Performance Max",
    "DISPLAY": "Display Network",
    "SHOPPING": "Shopping",
    "VIDEO": "YouTube",
    "SEARCH": "Google Search",
}
NON_KEYWORD_CHANNELS = ("DISPLAY", "PERFORMANCE_MAX", "SHOPPING", "VIDEO")
CAMPAIGN_FIELDS = (
    "campaign.name",
    "campaign.status",
    "campaign.advertising_channel_type",
    "campaign.advertising_channel_sub_type",
)
METRIC_FIELDS = (
    "metrics.impressions",
    "metrics.clicks",
    "metrics.conversions",
    "metrics.conversions_value",
    "metrics.cost_micros",
)
TOP_NETWORK_ROWS = 20


def _network_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("PERFORMANCE_BY_NETWORK", ctx.mode)
    keyword_level = (
        select("keyword_view", *CAMPAIGN_FIELDS, "segments.ad_network_type", *METRIC_FIELDS)
        .where(
            during(ctx.window),
            active("campaign.status"),
            active("ad_group.status"),
            active("ad_group_criterion.status"),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    # Display, PMax, Shopping and Video campaigns carry no keyword rows
    campaign_level = (
        select("campaign", *CAMPAIGN_FIELDS, *METRIC_FIELDS)
        .where(
            during(ctx.window),
            active("campaign.status"),
            enum_in("campaign.advertising_channel_type", *NON_KEYWORD_CHANNELS),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limit)
    )
    return {"keywords": keyword_level, "campaigns": campaign_level}


def network_label(ad_network_type: str, channel_type: str) -> str:
    """Human network name: the network segment first, then the channel type."""
    if ad_network_type in NETWORK_LABELS:
        return NETWORK_LABELS[ad_network_type]
    return CHANNEL_LABELS.get(channel_type, "Unknown")


def _network_shape(results: ResultSet, ctx: ReportContext):
    groups: Dict[str, dict] = OrderedDict()
    for row in results["keywords"] + results["campaigns"]:
        name = pick(row, "campaign.name", "")
        channel = pick(row, "campaign.advertisingChannelType", "")
        network = network_label(pick(row, "segments.adNetworkType", ""), channel)

        group = groups.setdefault(
            f"{name}_{network}",
            {
                "campaignName": name,
                "campaignType": channel,
                "adNetworkType": network,
                "cost": 0.0,
                "impressions": 0,
                "clicks": 0,
                "conversions": 0.0,
                "conversionsValue": 0.0,
            },
        )
        group["cost"] += micros(pick(row, "metrics.costMicros"))
        group["impressions"] += to_int(pick(row, "metrics.impressions"))
        group["clicks"] += to_int(pick(row, "metrics.clicks"))
        group["conversions"] += to_float(pick(row, "metrics.conversions"))
        group["conversionsValue"] += to_float(pick(row, "metrics.conversionsValue"))

    campaigns = [
        {
            "campaignName": g["campaignName"],
            "campaignType": g["campaignType"],
            "adNetworkType": g["adNetworkType"],
            "cost": round2(g["cost"]),
            "impressions": g["impressions"],
            "clicks": g["clicks"],
            "conversions": round2(g["conversions"]),
            "roas": round2(ratio(g["conversionsValue"], g["cost"])),
            "cpa": round2(ratio(g["cost"], g["conversions"])),
        }
        for g in groups.values()
    ]
    campaigns.sort(key=lambda c: c["cost"], reverse=True)
    return {"campaigns": campaigns[:TOP_NETWORK_ROWS]}


PERFORMANCE_BY_NETWORK = ReportDefinition(
    key="performance-by-network",
    build=_network_queries,
    shape=_network_shape,
    empty=lambda ctx: {"campaigns": []},
    description="Spend and return per campaign and ad network.",
)

# ── network-performance ──

NETWORKS = ("Google Search", "Search Partners", "Display Network", "Performance Max")
NETWORK_HEADERS = ["network", "impressions", "clicks", "conversions", "cost", "roas"]
OUTLIER_MIN_DEVIATION = 20
MAX_OUTLIERS = 10


def _network_totals_queries(ctx: ReportContext, limits: QueryLimits):
    limit = limits.get("NETWORK_PERFORMANCE", ctx.mode)
    keyword_level = (
        select("keyword_view", *CAMPAIGN_FIELDS, "segments.ad_network_type", *METRIC_FIELDS)
        .where(
            during(ctx.window),
            active("campaign.status"),
            active("ad_group.status"),
            active("ad_group_criterion.status"),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limit)
    )
    campaign_level = (
        select("campaign", *CAMPAIGN_FIELDS, *METRIC_FIELDS)
        .where(
            during(ctx.window),
            active("campaign.status"),
            enum_in("campaign.advertising_channel_type", "DISPLAY", "PERFORMANCE_MAX"),
            gt("metrics.impressions", 0),
            campaign_filter(ctx.campaign_id),
        )
        .limited(limit)
    )
    return {"keywords": keyword_level, "campaigns": campaign_level}


def network_bucket(ad_network_type: str, channel_type: str, channel_sub_type: str = "") -> str:
    """One of ``NETWORKS``; unrecognized traffic counts as Google Search."""
    if ad_network_type == "SEARCH_PARTNERS":
        return "Search Partners"
    if ad_network_type == "SEARCH":
        return "Google Search"
    if ad_network_type in ("CONTENT", "DISPLAY"):
        return "Display Network"
    if channel_type == "PERFORMANCE_MAX":
        return "Performance Max"
    if "DISPLAY" in (channel_type, channel_sub_type):
        return "Display Network"
    return "Google Search"


def _money(value: float) -> float:
    return int(round(value)) if value >= 1000 else round(value, 1)


def _network_totals_shape(results: ResultSet, ctx: ReportContext):
    rows = results["keywords"] + results["campaigns"]
    totals = {
        name: {"impressions": 0, "clicks": 0, "conversions": 0.0, "value": 0.0, "cost": 0.0}
        for name in NETWORKS
    }
    campaigns: Dict[tuple, Dict[str, int]] = OrderedDict()
    for row in rows:
        network = network_bucket(
            pick(row, "segments.adNetworkType", ""),
            pick(row, "campaign.advertisingChannelType", ""),
            pick(row, "campaign.advertisingChannelSubType", ""),
        )
        impressions = to_int(pick(row, "metrics.impressions"))
        clicks = to_int(pick(row, "metrics.clicks"))
        bucket = totals[network]
        bucket["impressions"] += impressions
        bucket["clicks"] += clicks
        bucket["conversions"] += to_float(pick(row, "metrics.conversions"))
        bucket["value"] += to_float(pick(row, "metrics.conversionsValue"))
        bucket["cost"] += micros(pick(row, "metrics.costMicros"))

        stats = campaigns.setdefault(
            (pick(row, "campaign.name", ""), network), {"impressions": 0, "clicks": 0}
        )
        stats["impressions"] += impressions
        stats["clicks"] += clicks

    active_networks = [name for name in NETWORKS if totals[name]["impressions"] > 0]
    active_networks.sort(key=lambda name: totals[name]["cost"], reverse=True)

    # campaigns whose CTR strays from their network's CTR
    outliers = []
    for (name, network), stats in campaigns.items():
        network_ctr = ratio(totals[network]["clicks"], totals[network]["impressions"])
        if network_ctr <= 0 or stats["impressions"] <= 0:
            continue
        deviation = round((stats["clicks"] / stats["impressions"] / network_ctr - 1) * 100)
        if abs(deviation) > OUTLIER_MIN_DEVIATION:
            outliers.append({"name": name, "networkType": network, "deviation": deviation})
    outliers.sort(key=lambda o: abs(o["deviation"]), reverse=True)
    outliers = outliers[:MAX_OUTLIERS]

    if rows and totals["Search Partners"]["impressions"] == 0:
        outliers.append(
            {
                "name": "Search Partners Network Status",
                "networkType": "SEARCH_PARTNERS_DISABLED",
                "deviation": -100,
            }
        )

    total_cost = sum(totals[name]["cost"] for name in active_networks)
    total_value = sum(totals[name]["value"] for name in active_networks)
    return {
        "network_performance": table(
            NETWORK_HEADERS,
            [
                [
                    name,
                    totals[name]["impressions"],
                    totals[name]["clicks"],
                    round(totals[name]["conversions"], 1),
                    _money(totals[name]["cost"]),
                    round(ratio(totals[name]["value"], totals[name]["cost"]), 1),
                ]
                for name in active_networks
            ],
        ),
        "summary": {
            "totalImpressions": sum(totals[name]["impressions"] for name in active_networks),
            "totalClicks": sum(totals[name]["clicks"] for name in active_networks),
            "totalConversions": round(
                sum(totals[name]["conversions"] for name in active_networks), 1
            ),
            "totalCost": _money(total_cost),
            "averageRoas": round(ratio(total_value, total_cost), 1),
        },
        "outlierCampaigns": outliers,
    }


NETWORK_PERFORMANCE = ReportDefinition(
    key="network-performance",
    build=_network_totals_queries,
    shape=_network_totals_shape,
    empty=lambda ctx: _network_totals_shape({"keywords": [], "campaigns": []}, ctx),
    description="Totals per ad network with campaigns whose CTR strays from their network.",
)

# ── landing-page-performance ──


def _landing_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "ad_group_ad",
            "ad_group_ad.ad.final_urls",
            "metrics.cost_micros",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.conversions_value",
        )
        .where(
            active("ad_group_ad.status"),
            gt("metrics.cost_micros", 0),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("LANDING_PAGE_PERFORMANCE", ctx.mode))
    )
    return {"pages": query}


def _landing_shape(results: ResultSet, ctx: ReportContext):
    pages = []
    for row in results["pages"]:
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        urls = pick(row, "adGroupAd.ad.finalUrls", [])
        pages.append(
            {
                "finalUrl": urls[0] if urls else "UNKNOWN",
                "cost": round2(cost),
                "clicks": to_int(pick(row, "metrics.clicks")),
                "conversions": round2(to_float(pick(row, "metrics.conversions"))),
                "conversionValue": round2(value),
                "roas": round2(ratio(value, cost)),
            }
        )
    return {"pages": pages}


LANDING_PAGE_PERFORMANCE = ReportDefinition(
    key="landing-page-performance",
    build=_landing_queries,
    shape=_landing_shape,
    empty=lambda ctx: {"pages": []},
)

# ── performance-max-deep-dive ──

MAX_ASSET_GROUPS = 50
MAX_ASSETS = 200


def _pmax_queries(ctx: ReportContext, limits: QueryLimits):
    pmax_only = eq("campaign.advertising_channel_type", "PERFORMANCE_MAX")
    asset_groups = (
        select(
            "asset_group",
            "campaign.name",
            "asset_group.name",
            "asset_group.status",
            "metrics.cost_micros",
            "metrics.conversions",
            "metrics.conversions_value",
        )
        .where(during(ctx.window), pmax_only, campaign_filter(ctx.campaign_id))
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("PERFORMANCE_MAX_DEEP_DIVE", ctx.mode))
    )
    assets = select(
        "asset_group_asset",
        "campaign.name",
        "asset_group.name",
        "asset.resource_name",
        "asset.type",
        "asset.text_asset.text",
    ).where(during(ctx.window), pmax_only, campaign_filter(ctx.campaign_id))
    return {"asset_groups": asset_groups, "assets": assets}


def _pmax_shape(results: ResultSet, ctx: ReportContext):
    groups = []
    for row in results["asset_groups"][:MAX_ASSET_GROUPS]:
        cost = micros(pick(row, "metrics.costMicros"))
        groups.append(
            {
                "campaignName": pick(row, "campaign.name", ""),
                "assetGroupName": pick(row, "assetGroup.name", ""),
                "assetGroupStatus": pick(row, "assetGroup.status", ""),
                "cost": round2(cost),
                "conversions": round2(to_float(pick(row, "metrics.conversions"))),
                "roas": round2(ratio(to_float(pick(row, "metrics.conversionsValue")), cost)),
            }
        )

    assets = [
        {
            "campaignName": pick(row, "campaign.name", ""),
            "assetGroupName": pick(row, "assetGroup.name", ""),
            "assetText": pick(row, "asset.textAsset.text", ""),
            "assetType": pick(row, "asset.type", "UNKNOWN"),
            # performance labels are not exposed on asset_group_asset
            "performanceLabel": "UNSPECIFIED",
        }
        for row in results["assets"][:MAX_ASSETS]
    ]
    return {"assetGroupPerformance": groups, "assetPerformance": assets}


PERFORMANCE_MAX_DEEP_DIVE = ReportDefinition(
    key="performance-max-deep-dive",
    build=_pmax_queries,
    shape=_pmax_shape,
    empty=lambda ctx: {"assetGroupPerformance": [], "assetPerformance": []},
    description="Asset group results and text assets for Performance Max.",
)

REPORTS = [
    PERFORMANCE_BY_NETWORK,
    NETWORK_PERFORMANCE,
    LANDING_PAGE_PERFORMANCE,
    PERFORMANCE_MAX_DEEP_DIVE,
]
