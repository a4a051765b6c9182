"""Unit tests for the generic report executor.

WHAT:
    ``ReportRunner.run`` with small hand-built definitions: degradation
    policies, optional queries, follow-up queries and the row caps.

WHY:
    All reports share this control flow. A failure must either become the
    report's empty payload or a ``ReportError``, never a half-shaped result.

REFERENCES:
    - app/reports/executor.py
    - app/core/limits.py
"""

import pytest

from app.core.limits import QueryLimits, ReportMode
from app.query.builder import during, is_in, select
from app.reports.executor import Degradation, ReportDefinition, ReportError, ReportRunner


def _build(ctx, limits):
    return {
        "campaigns": select("campaign", "campaign.id", "campaign.name")
        .where(during(ctx.window))
        .limited(limits.get("CAMPAIGNS", ctx.mode)),
        "labels": select("label", "label.name").limited(10),
    }


def _shape(results, ctx):
    return {
        "names": [row["campaign"]["name"] for row in results["campaigns"]],
        "labels": len(results["labels"]),
    }


def _empty(ctx):
    return {"names": [], "labels": 0}


def _definition(**kwargs) -> ReportDefinition:
    values = dict(key="test-report", build=_build, shape=_shape, empty=_empty)
    values.update(kwargs)
    return ReportDefinition(**values)


CAMPAIGN_ROWS = [
    {"campaign": {"id": "1", "name": "Brand"}},
    {"campaign": {"id": "2", "name": "Generic"}},
]


@pytest.mark.asyncio
async def test_happy_path_shapes_every_query(runner, fake_ads, make_ctx):
    fake_ads.rows = {"campaign": CAMPAIGN_ROWS, "label": [{"label": {"name": "x"}}]}

    payload = await runner.run(_definition(), make_ctx(time_range="7days"))

    assert payload == {"names": ["Brand", "Generic"], "labels": 1}
    assert len(fake_ads.queries) == 2
    assert "segments.date DURING LAST_7_DAYS" in fake_ads.queries_from("campaign")[0]


@pytest.mark.asyncio
async def test_empty_policy_returns_empty_payload(runner, fake_ads, make_ctx):
    fake_ads.rows = {"campaign": CAMPAIGN_ROWS}
    fake_ads.failures = {"label": 500}

    payload = await runner.run(_definition(policy=Degradation.EMPTY), make_ctx())

    assert payload == {"names": [], "labels": 0}


@pytest.mark.asyncio
async def test_raise_policy_raises_report_error(runner, fake_ads, make_ctx):
    fake_ads.failures = {"campaign": 403}

    with pytest.raises(ReportError) as excinfo:
        await runner.run(_definition(policy=Degradation.RAISE), make_ctx())

    assert excinfo.value.report_key == "test-report"
    assert excinfo.value.status_code == 403
    assert "campaign failed" in str(excinfo.value)


@pytest.mark.asyncio
async def test_optional_query_failure_is_treated_as_empty(runner, fake_ads, make_ctx):
    fake_ads.rows = {"campaign": CAMPAIGN_ROWS}
    fake_ads.failures = {"label": 500}
    definition = _definition(policy=Degradation.RAISE, optional=("labels",))

    payload = await runner.run(definition, make_ctx())

    assert payload == {"names": ["Brand", "Generic"], "labels": 0}


@pytest.mark.asyncio
async def test_shaper_error_follows_policy(runner, fake_ads, make_ctx):
    def broken(results, ctx):
        raise ValueError("bad row")

    empty = await runner.run(_definition(shape=broken), make_ctx())
    assert empty == {"names": [], "labels": 0}

    with pytest.raises(ReportError) as excinfo:
        await runner.run(_definition(shape=broken, policy=Degradation.RAISE), make_ctx())
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_followup_queries_use_first_results(runner, fake_ads, make_ctx):
    fake_ads.rows = {
        "campaign": CAMPAIGN_ROWS,
        "ad_group": [{"adGroup": {"name": "AG"}}],
    }
    seen = {}

    def followup(ctx, limits, results):
        ids = [int(row["campaign"]["id"]) for row in results["campaigns"]]
        seen["ids"] = ids
        return {"ad_groups": select("ad_group", "ad_group.name").where(is_in("campaign.id", *ids))}

    def shape(results, ctx):
        return {"groups": len(results["ad_groups"]), "names": [], "labels": 0}

    payload = await runner.run(_definition(followup=followup, shape=shape), make_ctx())

    assert seen["ids"] == [1, 2]
    assert payload["groups"] == 1
    assert "campaign.id IN (1, 2)" in fake_ads.queries_from("ad_group")[0]


@pytest.mark.asyncio
async def test_followup_returning_nothing_skips_second_round(runner, fake_ads, make_ctx):
    await runner.run(_definition(followup=lambda ctx, limits, results: None), make_ctx())
    assert len(fake_ads.queries) == 2


@pytest.mark.asyncio
async def test_weekly_mode_uses_weekly_caps(ads_client, fake_ads, make_ctx):
    limits = QueryLimits({"CAMPAIGNS": (20, 7)})
    runner = ReportRunner(ads_client, limits)

    await runner.run(_definition(), make_ctx(mode=ReportMode.WEEKLY))

    assert fake_ads.queries_from("campaign")[0].endswith("LIMIT 7")


def test_limits_lookup():
    limits = QueryLimits()
    assert limits.get("SEARCH_TERM_ANALYSIS") == 1000
    assert limits.get("SEARCH_TERM_ANALYSIS", ReportMode.WEEKLY) == 500
    assert limits.get("NOT_A_KEY") == limits.default
