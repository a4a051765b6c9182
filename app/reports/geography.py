"""ADLENS: Geographic Reports.

``geo-hot-cold`` lists locations by clicks. ``roas-by-device-geography``
crosses device with country and compares each cell against the account
median; country names come from a second ``geo_target_constant`` lookup
issued only for the ids the first query returned.
"""

from collections import OrderedDict
from typing import Dict

from app.core.limits import QueryLimits
from app.query.builder import active, campaign_filter, during, enum_in, gt, is_in, select
from app.reports.executor import Degradation, ReportContext, ReportDefinition, ResultSet
from app.reports.shaping import median, micros, pick, ratio, round2, to_float, to_int

# ── geo-hot-cold ──


def _geo_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "geographic_view",
            "geographic_view.location_type",
            "geographic_view.country_criterion_id",
            "metrics.cost_micros",
            "metrics.clicks",
            "metrics.conversions",
            "metrics.conversions_value",
        )
        .where(
            enum_in("geographic_view.location_type", "AREA_OF_INTEREST", "LOCATION_OF_PRESENCE"),
            during(ctx.window),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.clicks")
        .limited(limits.get("GEO_HOT_COLD_PERFORMANCE", ctx.mode))
    )
    return {"locations": query}


def _geo_shape(results: ResultSet, ctx: ReportContext):
    locations = []
    for row in results["locations"]:
        cost = micros(pick(row, "metrics.costMicros"))
        value = to_float(pick(row, "metrics.conversionsValue"))
        country = pick(row, "geographicView.countryCriterionId")
        locations.append(
            {
                "locationType": pick(row, "geographicView.locationType", ""),
                "locationName": str(country) if country else "Unknown",
                "countryId": country,
                "cost": round2(cost),
                "clicks": to_int(pick(row, "metrics.clicks")),
                "conversions": round2(to_float(pick(row, "metrics.conversions"))),
                "conversionValue": round2(value),
                "roas": round2(ratio(value, cost)),
            }
        )
    return {"locations": locations}


GEO_HOT_COLD = ReportDefinition(
    key="geo-hot-cold",
    build=_geo_queries,
    shape=_geo_shape,
    empty=lambda ctx: {"locations": []},
    description="Location performance by clicks.",
)

# ── roas-by-device-geography ──


def _device_geo_queries(ctx: ReportContext, limits: QueryLimits):
    query = (
        select(
            "geographic_view",
            "campaign.id",
            "campaign.name",
            "campaign.status",
            "segments.device",
            "geographic_view.country_criterion_id",
            "metrics.conversions",
            "metrics.conversions_value",
            "metrics.cost_micros",
        )
        .where(
            during(ctx.window),
            gt("metrics.impressions", 0),
            gt("metrics.conversions", 0),
            active("campaign.status"),
            campaign_filter(ctx.campaign_id),
        )
        .ordered_by("metrics.cost_micros")
        .limited(limits.get("ROAS_BY_DEVICE_GEOGRAPHY", ctx.mode))
    )
    return {"performance": query}


def _country_ids(rows) -> list:
    ids = []
    for row in rows:
        country = pick(row, "geographicView.countryCriterionId")
        if country and str(country) not in ids:
            ids.append(str(country))
    return ids


def _country_name_lookup(ctx: ReportContext, limits: QueryLimits, results: ResultSet):
    ids = _country_ids(results["performance"])
    if not ids:
        return None
    query = select(
        "geo_target_constant", "geo_target_constant.id", "geo_target_constant.name"
    ).where(is_in("geo_target_constant.id", *(int(i) for i in ids)))
    return {"country_names": query}


def _variance(value: float, baseline: float) -> float:
    if value <= 0 or baseline <= 0:
        return 0.0
    return round2((value - baseline) / baseline * 100)


def _device_geo_shape(results: ResultSet, ctx: ReportContext):
    names = {
        str(pick(row, "geoTargetConstant.id")): pick(row, "geoTargetConstant.name")
        for row in results.get("country_names", [])
        if pick(row, "geoTargetConstant.id") and pick(row, "geoTargetConstant.name")
    }

    devices: Dict[str, Dict[str, dict]] = OrderedDict()
    for row in results["performance"]:
        device = pick(row, "segments.device", "UNKNOWN")
        country_id = pick(row, "geographicView.countryCriterionId")
        if country_id:
            country = names.get(str(country_id), f"Country_{country_id}")
        else:
            country = "UNKNOWN"
        cell = devices.setdefault(device, OrderedDict()).setdefault(
            country, {"conversions": 0.0, "conversionValue": 0.0, "cost": 0.0}
        )
        cell["conversions"] += to_float(pick(row, "metrics.conversions"))
        cell["conversionValue"] += to_float(pick(row, "metrics.conversionsValue"))
        cell["cost"] += micros(pick(row, "metrics.costMicros"))

    data = []
    for device, countries in devices.items():
        formatted = {}
        for country, cell in countries.items():
            formatted[country] = {
                "roas": round2(ratio(cell["conversionValue"], cell["cost"])),
                "cpa": round2(ratio(cell["cost"], cell["conversions"])),
                "cost": round2(cell["cost"]),
                "conversions": int(round(cell["conversions"])),
                "roasVariance": 0.0,
                "cpaVariance": 0.0,
            }
        data.append({"device": device, "countries": formatted})

    cells = [c for d in data for c in d["countries"].values()]
    median_roas = median([c["roas"] for c in cells if c["roas"] > 0])
    median_cpa = median([c["cpa"] for c in cells if c["cpa"] > 0])
    for cell in cells:
        cell["roasVariance"] = _variance(cell["roas"], median_roas)
        cell["cpaVariance"] = _variance(cell["cpa"], median_cpa)

    return {
        "data": data,
        "accountMetrics": {"medianRoas": round2(median_roas), "medianCpa": round2(median_cpa)},
    }


ROAS_BY_DEVICE_GEOGRAPHY = ReportDefinition(
    key="roas-by-device-geography",
    build=_device_geo_queries,
    shape=_device_geo_shape,
    empty=lambda ctx: {"data": [], "accountMetrics": {"medianRoas": 0.0, "medianCpa": 0.0}},
    policy=Degradation.RAISE,
    optional=("country_names",),
    followup=_country_name_lookup,
)

REPORTS = [GEO_HOT_COLD, ROAS_BY_DEVICE_GEOGRAPHY]
