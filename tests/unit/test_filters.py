from __future__ import annotations

from datetime import date

import pytest

from core.filters import DashboardFilters, filter_groups, filter_records, in_range, normalize_filters
from core.grouping import build_groups
from core.metrics_quality import quality_counts
from core.records import STATUS_APPROVED


@pytest.mark.parametrize("value", ["", "all", "ALL", "*", "الكل", None])
def test_all_sentinels_mean_no_filter(value):
    f = normalize_filters({"sector_key": value, "project_key": value, "status": value})
    assert f.sector_key is None
    assert f.project_key is None
    assert f.status is None


def test_normalize_filters_values():
    f = normalize_filters(
        {
            "sector": " ROADS ",
            "project_key": "P1",
            "status": "2",
            "date_from": "01/01/2026",
            "date_to": "2026-01-31",
            "anchor": "payment",
            "top_n": "500",
            "thresholds": {"sla_days": "7", "forecast_horizons": [7, 30]},
        }
    )
    assert f.sector_key == "roads"
    assert f.project_key == "p1"
    assert f.status == STATUS_APPROVED
    assert f.date_from == date(2026, 1, 1)
    assert f.date_to == date(2026, 1, 31)
    assert f.anchor == "payment"
    assert f.top_n == 200
    assert f.thresholds.sla_days == 7
    assert f.thresholds.forecast_horizons == (7, 30)
    assert f.thresholds.forecast_window_days == 30


def test_normalize_filters_falls_back_on_bad_input():
    f = normalize_filters({"status": "9", "anchor": "nope", "top_n": "x", "date_from": "31/02/2026"})
    assert f.status is None
    assert f.anchor == "payment_request"
    assert f.top_n == 5
    assert f.date_from is None


def test_in_range_is_inclusive():
    lo, hi = date(2026, 1, 1), date(2026, 1, 31)
    assert in_range(lo, lo, hi)
    assert in_range(hi, lo, hi)
    assert not in_range(date(2026, 2, 1), lo, hi)
    assert not in_range(None, lo, hi)
    assert in_range(date(1999, 1, 1), None, None)


def test_filter_records_by_facet_and_date(scenario_records, make_row, records_from):
    assert len(filter_records(scenario_records, normalize_filters({"project_key": "p2"}))) == 1
    assert filter_records(scenario_records, normalize_filters({"date_to": "2026-01-09"})) == []

    undated = records_from([make_row(vendor="Acme", project="P1")])
    assert filter_records(undated, DashboardFilters()) == undated
    assert filter_records(undated, normalize_filters({"date_from": "2026-01-01"})) == []


def test_filter_groups(scenario_records):
    groups = build_groups(scenario_records)
    assert [g.project for g in filter_groups(groups, normalize_filters({"project": "P1"}))] == ["P1"]
    assert len(filter_groups(groups, normalize_filters({"sector": "roads"}))) == 2
    assert filter_groups(groups, normalize_filters({"sector": "water"})) == []


def test_status_filter_does_not_touch_overall_quality(scenario_records):
    before = quality_counts(scenario_records, "payment_request")
    approved_only = normalize_filters({"status": "2"})
    assert filter_groups(build_groups(scenario_records), approved_only) == []
    assert filter_records(scenario_records, approved_only) == []
    assert quality_counts(scenario_records, "payment_request") == before


def test_group_judged_on_its_own_status(records_from, make_row):
    base = dict(project="P", exact_time="08:00", payment_request_date="2026-01-05")
    records = records_from(
        [
            make_row(vendor="A", approval_date="2026-01-06", **base),
            make_row(vendor="B", **base),
        ]
    )
    (group,) = build_groups(records)
    assert group.status == "1"
    approved_only = normalize_filters({"status": "2"})
    # one member is approved, the submission as a whole is not
    assert len(filter_records(records, approved_only)) == 1
    assert filter_groups([group], approved_only) == []
