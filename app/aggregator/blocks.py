"""ADLENS: Block Maps for ai-analysis and block-data."""

from typing import Dict, List

from app.aggregator.ai_report import AUDIT_REPORTS

# ai-analysis: block id -> {output key: report key}
ANALYSIS_BLOCKS: Dict[str, Dict[str, str]] = {
    "block1": {
        "conversionActionSetup": "conversion-action-setup",
        "campaignStructureOverview": "campaign-structure-overview",
        "keywordMatchTypeMix": "keyword-match-type-mix",
    },
    "block2": {"adGroupTheming": "ad-group-theming"},
    "block3": {"zeroConversionKeywords": "zero-conversion-keywords"},
    "block4": {"performanceByNetwork": "performance-by-network"},
    "block5": {"searchTermAnalysis": "search-term-analysis"},
    "block6": {"changeHistorySummary": "change-history-summary"},
    "block9": {"performanceMaxDeepDive": "performance-max-deep-dive"},
    "block10": {"landingPagePerformance": "landing-page-performance"},
    "block11": {"adCopyText": "ad-copy-text"},
    "block12": {"geoHotColdPerformance": "geo-hot-cold"},
}

# block-data: block id -> report key
BLOCK_REPORTS: Dict[str, str] = {
    # numbered ids
    "block1": "conversion-action-setup",
    "block2": "ad-group-theming",
    "block3": "zero-conversion-keywords",
    "block4": "performance-by-network",
    "block5": "search-term-analysis",
    "block6": "change-history-summary",
    "block7": "keyword-match-type-mix",
    "block8": "campaign-structure-overview",
    "block9": "performance-max-deep-dive",
    "block10": "landing-page-performance",
    "block11": "ad-copy-text",
    "block12": "geo-hot-cold",
    "block13": "network-performance",
    "block14": "ad-asset-performance",
    "block15": "search-term-coverage",
    "block16": "negative-keywords-gaps",
    "block17": "assisted-conversions",
    "block18": "conversion-timing",
    "block19": "impression-share-lost",
    "block20": "roas-by-device-geography",
    # named ids
    "conversionActionSetup": "conversion-action-setup",
    "campaignStructureOverview": "campaign-structure-overview",
    "keywordMatchTypeMix": "keyword-match-type-mix",
    "adGroupTheming": "ad-group-theming",
    "zeroConversionKeywords": "zero-conversion-keywords",
    "performanceByNetwork": "performance-by-network",
    "searchTermAnalysis": "search-term-analysis",
    "changeHistorySummary": "change-history-summary",
    "performanceMaxDeepDive": "performance-max-deep-dive",
    "landingPagePerformance": "landing-page-performance",
    "adCopyText": "ad-copy-text",
    "geoHotColdPerformance": "geo-hot-cold",
    "networkPerformance": "network-performance",
    "adAssetPerformance": "ad-asset-performance",
    "searchTermCoverage": "search-term-coverage",
    "negativeKeywordsGaps": "negative-keywords-gaps",
    "assistedConversions": "assisted-conversions",
    "conversionTiming": "conversion-timing",
    "impressionShareLost": "impression-share-lost",
    "roasByDeviceGeography": "roas-by-device-geography",
    "dailyTrends": "daily-trends",
    "newKeywords": "new-keywords",
    "zeroConversionAdgroups": "zero-conversion-adgroups",
    "adGroupDistribution": "ad-group-distribution",
    "conversionActionInventory": "conversion-action-inventory",
    # weekly review blocks
    "block1_budget_pacing": "campaign-pacing",
    "block2_change_log": "weekly-significant-changes",
    "block3_daily_trends": "daily-trends",
    "block4_search_terms": "search-term-analysis",
}


class UnknownBlockError(KeyError):
    def __init__(self, block_id: str):
        self.block_id = block_id
        super().__init__(block_id)

    def __str__(self) -> str:
        return f"Unknown block ID: {self.block_id}"


def block_report(block_id: str) -> str:
    try:
        return BLOCK_REPORTS[block_id]
    except KeyError:
        raise UnknownBlockError(block_id) from None


def analysis_report_keys() -> List[str]:
    return list(AUDIT_REPORTS)


def arrange_analysis(payloads: Dict[str, dict]) -> Dict[str, Dict[str, dict]]:
    """Group constituent payloads (keyed by report key) into analysis blocks."""
    return {
        block_id: {name: payloads[key] for name, key in members.items()}
        for block_id, members in ANALYSIS_BLOCKS.items()
    }
