"""ADLENS: Account Audit Recipe (ai-report).

Twelve reports over the caller's window, rendered into a markdown prompt of
ten numbered blocks and summarized with the audit prompt. Cached per window
(defaulting to LAST_QUARTER) and charged as ``ai_analysis``.
"""

import json
from typing import Any, Dict, List, Optional

from app.aggregator.fanout import Constituent, Recipe
from app.reports.executor import Payload, ReportContext
from app.reports.shaping import round2

AUDIT_REPORTS = [
    "conversion-action-setup",
    "campaign-structure-overview",
    "keyword-match-type-mix",
    "ad-group-theming",
    "zero-conversion-keywords",
    "performance-by-network",
    "search-term-analysis",
    "change-history-summary",
    "performance-max-deep-dive",
    "landing-page-performance",
    "ad-copy-text",
    "geo-hot-cold",
]
DEFAULT_AUDIT_WINDOW = "LAST_QUARTER"


def _block(title: str, body: Any) -> str:
    return f"## {title}\n{json.dumps(body, indent=2)}"


def _rows(items: Optional[List[dict]], fields: List[str]) -> List[list]:
    return [[item.get(f) for f in fields] for item in items or []]


def _theming_rows(theming: Payload) -> List[list]:
    rows = []
    for campaign in theming.get("campaigns", []):
        for group in campaign.get("ad_group_summary", []):
            rows.append(
                [
                    campaign.get("campaignName"),
                    group.get("adGroupName"),
                    group.get("keywordCount"),
                    round2(group.get("cost", 0)),
                    round2(group.get("roas", 0)),
                    ", ".join(group.get("top_spending_keywords_sample", [])),
                ]
            )
    return rows


def render_audit_prompt(payloads: Dict[str, Payload], ctx: ReportContext) -> str:
    overview = payloads["campaign-structure-overview"]
    match_types = payloads["keyword-match-type-mix"]
    network = payloads["performance-by-network"]
    pmax = payloads["performance-max-deep-dive"]

    blocks = [
        _block(
            "Block 1: Campaign Foundation Analysis",
            {
                "campaign_overview": overview.get("campaign_overview"),
                "match_type_overview": match_types.get("match_type_overview"),
                "conversion_actions": payloads["conversion-action-setup"].get(
                    "conversionActions", []
                ),
            },
        ),
        _block(
            "Block 2: Ad Group Theming Analysis",
            {
                "ad_group_theming": {
                    "headers": [
                        "campaignName",
                        "adGroupName",
                        "keywordCount",
                        "cost",
                        "roas",
                        "topKeywords",
                    ],
                    "rows": _theming_rows(payloads["ad-group-theming"]),
                }
            },
        ),
        _block("Block 3: Zero Conversion Keywords", payloads["zero-conversion-keywords"]),
        _block(
            "Block 4: Performance by Network",
            {
                "network_performance": {
                    "headers": [
                        "campaignName",
                        "campaignType",
                        "adNetworkType",
                        "cost",
                        "impressions",
                        "clicks",
                        "conversions",
                        "roas",
                        "cpa",
                    ],
                    "rows": _rows(
                        network.get("campaigns"),
                        [
                            "campaignName",
                            "campaignType",
                            "adNetworkType",
                            "cost",
                            "impressions",
                            "clicks",
                            "conversions",
                            "roas",
                            "cpa",
                        ],
                    ),
                }
            },
        ),
        _block("Block 5: Search Term Analysis", payloads["search-term-analysis"]),
        _block(
            "Block 6: Change History Summary",
            {"change_history": payloads["change-history-summary"].get("change_history")},
        ),
        _block(
            "Block 7: Performance Max Deep Dive",
            {
                "asset_group_performance": {
                    "headers": ["Campaign Name", "Asset Group Name", "Status", "Cost", "Conversions", "ROAS"],
                    "rows": _rows(
                        pmax.get("assetGroupPerformance"),
                        ["campaignName", "assetGroupName", "assetGroupStatus", "cost", "conversions", "roas"],
                    ),
                },
                "asset_performance": {
                    "headers": ["Campaign Name", "Asset Group Name", "Asset Text", "Asset Type", "Performance Label"],
                    "rows": _rows(
                        pmax.get("assetPerformance"),
                        ["campaignName", "assetGroupName", "assetText", "assetType", "performanceLabel"],
                    ),
                },
            },
        ),
        _block(
            "Block 8: Landing Page Performance",
            {
                "pages": {
                    "headers": ["Final URL", "Cost", "Clicks", "Conversions", "Conversion Value", "ROAS"],
                    "rows": _rows(
                        payloads["landing-page-performance"].get("pages"),
                        ["finalUrl", "cost", "clicks", "conversions", "conversionValue", "roas"],
                    ),
                }
            },
        ),
        _block(
            "Block 9: Ad Copy Text",
            {
                "ads": {
                    "headers": ["Campaign Name", "Ad Group Name", "Headlines"],
                    "rows": [
                        [ad.get("campaignName"), ad.get("adGroupName"), ", ".join(ad.get("headlines", []))]
                        for ad in payloads["ad-copy-text"].get("ads", [])
                    ],
                }
            },
        ),
        _block(
            "Block 10: Geo Hot Cold",
            {
                "locations": {
                    "headers": [
                        "Location Type",
                        "Location Name",
                        "Country ID",
                        "Cost",
                        "Clicks",
                        "Conversions",
                        "Conversion Value",
                        "ROAS",
                    ],
                    "rows": _rows(
                        payloads["geo-hot-cold"].get("locations"),
                        [
                            "locationType",
                            "locationName",
                            "countryId",
                            "cost",
                            "clicks",
                            "conversions",
                            "conversionValue",
                            "roas",
                        ],
                    ),
                }
            },
        ),
    ]
    return "# Google Ads Account Analysis\n\n" + "\n\n".join(blocks)


AI_REPORT = Recipe(
    name="ai-report",
    kind="regular",
    usage_type="ai_analysis",
    constituents=[Constituent(report_key=key) for key in AUDIT_REPORTS],
    render=render_audit_prompt,
    summary_kind="audit",
    cache_window=lambda time_range: time_range or DEFAULT_AUDIT_WINDOW,
)
