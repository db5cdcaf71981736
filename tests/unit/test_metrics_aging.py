from __future__ import annotations

from datetime import date

import pytest

from core.grouping import build_groups
from core.metrics_aging import (
    DUE_OVERDUE,
    DUE_PAID,
    DUE_UPCOMING,
    aging_buckets,
    band_for,
    compute_aging,
    due_state,
    sla_metric,
)


@pytest.mark.parametrize(
    "days,band",
    [(0, "0-7"), (7, "0-7"), (8, "8-14"), (14, "8-14"), (15, "15-30"), (30, "15-30"), (31, ">30"), (400, ">30")],
)
def test_band_boundaries(days, band):
    assert band_for(days) == band


def test_due_state():
    today = date(2026, 1, 10)
    assert due_state(0, date(2026, 1, 1), today) == DUE_PAID
    assert due_state(10, date(2026, 1, 9), today) == DUE_OVERDUE
    assert due_state(10, today, today) == DUE_UPCOMING
    assert due_state(10, None, today) == DUE_UPCOMING


def test_overdue_is_kept_out_of_bands(scenario_records):
    groups = build_groups(scenario_records)
    out = aging_buckets(groups, today=date(2026, 1, 20))
    assert out["overdue"] == {"count": 2, "amount": 800.0}
    assert all(b["count"] == 0 for b in out["buckets"])


def test_upcoming_groups_land_in_bands(scenario_records):
    groups = build_groups(scenario_records)
    out = aging_buckets(groups, today=date(2026, 1, 5))
    first = out["buckets"][0]
    assert first == {"bucket": "0-7", "count": 2, "amount": 800.0}
    assert out["overdue"]["count"] == 0


def test_sla_is_weighted_by_paid_amount(records_from, make_row):
    base = dict(project="P", payment_request_date="2026-01-01", approval_date="2026-01-02")
    records = records_from(
        [
            make_row(vendor="A", amount_total=100, amount_paid=100, exact_time="08:00", payment_date="2026-01-04", **base),
            make_row(vendor="B", amount_total=300, amount_paid=300, exact_time="09:00", payment_date="2026-01-10", **base),
            make_row(vendor="C", amount_total=50, exact_time="10:00", **base),
        ]
    )
    sla = sla_metric(build_groups(records), sla_days=5)
    assert sla["eligible_count"] == 2
    assert sla["within_count"] == 1
    assert sla["paid_total"] == 400.0
    assert sla["pct"] == pytest.approx(0.25)


def test_sla_without_payments_is_undefined(scenario_records):
    assert sla_metric(build_groups(scenario_records))["pct"] is None


def test_compute_aging(scenario_rows, context_for):
    ctx = context_for(scenario_rows, as_of="2026-01-20")
    out = compute_aging(ctx["filters"], ctx)
    assert out["today"] == "2026-01-20"
    assert out["kpis"]["outstanding"] == 800.0
    assert out["kpis"]["overdue_amount"] == 800.0
    assert out["kpis"]["overdue_count"] == 2
    assert [r["due_state"] for r in out["table"]] == [DUE_OVERDUE, DUE_OVERDUE]
    assert out["table"][0]["days"] == 10
    assert out["table"][0]["band"] is None
