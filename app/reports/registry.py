"""ADLENS: Report Catalog."""

from typing import Dict, List

from app.reports import activity, ads, audience, campaigns, conversions, geography, keywords
from app.reports import performance, search_terms
from app.reports.executor import ReportDefinition

_MODULES = (
    campaigns,
    keywords,
    search_terms,
    conversions,
    activity,
    performance,
    ads,
    audience,
    geography,
)


class UnknownReportError(KeyError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Unknown report: {self.key}"


def _collect() -> Dict[str, ReportDefinition]:
    catalog: Dict[str, ReportDefinition] = {}
    for module in _MODULES:
        for definition in module.REPORTS:
            if definition.key in catalog:
                raise ValueError(f"Duplicate report key: {definition.key}")
            catalog[definition.key] = definition
    return catalog


REPORTS: Dict[str, ReportDefinition] = _collect()


def get_report(key: str) -> ReportDefinition:
    try:
        return REPORTS[key]
    except KeyError:
        raise UnknownReportError(key) from None


def report_keys() -> List[str]:
    return sorted(REPORTS)
