"""ADLENS: Per-report row limits.

Every GAQL query carries a LIMIT. The cap depends on the report and on the
mode the report is run in: the weekly digest pulls smaller slices than the
full audit.
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class ReportMode(str, Enum):
    """Which row-cap column applies."""

    FULL = "full"
    WEEKLY = "weekly"


DEFAULT_LIMIT = 100

# key: (full, weekly)
DEFAULT_LIMITS: Dict[str, Tuple[int, int]] = {
    "SEARCH_TERM_ANALYSIS": (1000, 500),
    "SEARCH_TERM_COVERAGE": (20, 15),
    "DAILY_TRENDS": (1000, 500),
    "DAILY_TRENDS_CAMPAIGNS": (10, 5),
    "AD_GROUP_THEMING": (500, 250),
    "ZERO_CONVERSION_KEYWORDS": (30, 20),
    "ZERO_CONVERSION_ADGROUPS": (20, 15),
    "CHANGE_HISTORY_SUMMARY": (100, 50),
    "CAMPAIGN_STRUCTURE_OVERVIEW": (50, 30),
    "CAMPAIGNS": (20, 15),
    "ACCOUNT_DETAILS_CUSTOMER": (1, 1),
    "ACCOUNT_DETAILS_CAMPAIGNS": (20, 15),
    "PERFORMANCE_BY_NETWORK": (100, 50),
    "NETWORK_PERFORMANCE": (1000, 500),
    "LANDING_PAGE_PERFORMANCE": (100, 50),
    "PERFORMANCE_MAX_DEEP_DIVE": (50, 30),
    "AD_COPY_TEXT": (200, 100),
    "AD_ASSET_PERFORMANCE": (20, 15),
    "ADS_ASSETS": (20, 15),
    "NEGATIVE_KEYWORDS_GAPS": (20, 15),
    "GEO_HOT_COLD_PERFORMANCE": (100, 50),
    "ROAS_BY_DEVICE_GEOGRAPHY": (20, 15),
    "CONVERSION_ACTION_SETUP": (20, 15),
    "CONVERSION_ACTION_INVENTORY": (20, 15),
    "CONVERSION_TIMING": (20, 15),
    "ASSISTED_CONVERSIONS": (20, 15),
    "KEYWORD_MATCH_TYPE_MIX": (200, 100),
    "NEW_KEYWORDS": (50, 30),
    "CAMPAIGN_PACING": (50, 30),
    "WEEKLY_SEARCH_TERMS": (250, 150),
    "AUDIENCE_DATA": (100, 50),
    "IMPRESSION_SHARE_LOST": (50, 30),
}


class QueryLimits:
    """Lookup of row caps by (limit key, report mode).

    Unknown keys fall back to ``default``. The table is copied on
    construction so a shared instance cannot be changed from outside.
    """

    def __init__(
        self,
        table: Optional[Dict[str, Tuple[int, int]]] = None,
        default: int = DEFAULT_LIMIT,
    ):
        self._table = dict(DEFAULT_LIMITS if table is None else table)
        self.default = default

    def get(self, key: str, mode: ReportMode = ReportMode.FULL) -> int:
        caps = self._table.get(key)
        if caps is None:
            return self.default
        full, weekly = caps
        return weekly if mode == ReportMode.WEEKLY else full

    def __repr__(self) -> str:
        return f"<QueryLimits {len(self._table)} keys, default={self.default}>"
