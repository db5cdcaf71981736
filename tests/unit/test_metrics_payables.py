from __future__ import annotations

from datetime import date

import pytest

from core.metrics_payables import (
    PAYABLES_MARKER,
    compute_scheduled_payables,
    group_payables,
    is_scheduled_payable,
    paginate,
    vendor_lines,
)

TODAY = date(2026, 1, 10)


@pytest.fixture()
def payable_rows(make_row):
    due = f"{PAYABLES_MARKER} 2026"
    return [
        make_row(project="P1", vendor="Acme", code="A-1", request_id=due, amount_total=1000,
                 source_request_date="2026-01-05"),
        make_row(project="P1", vendor="Acme", code="A-1", request_id=due, amount_total=500,
                 source_request_date="2026-01-05"),
        make_row(project="P2", vendor="Beta", code="B-7", request_id=due, amount_total=300, amount_paid=300,
                 source_request_date="2026-01-08"),
        make_row(project="P2", vendor="Beta", code="B-7", request_id=due, amount_total=200,
                 source_request_date="2026-01-20"),
        make_row(project="P1", vendor="Gamma", request_id="REQ-9", amount_total=999, source_request_date="2026-01-05"),
        make_row(project="P1", vendor="Delta", request_id=due, amount_total=50),
    ]


def test_marker_detection(payable_rows, records_from):
    records = records_from(payable_rows)
    assert [is_scheduled_payable(r) for r in records] == [True, True, True, True, False, True]


def test_group_payables_by_vendor_and_due_date(payable_rows, records_from):
    records = [r for r in records_from(payable_rows) if is_scheduled_payable(r)]
    groups = {(g.vendor, g.day): g for g in group_payables(records)}
    assert set(groups) == {("Acme", date(2026, 1, 5)), ("Beta", date(2026, 1, 8)), ("Beta", date(2026, 1, 20))}
    assert groups[("Acme", date(2026, 1, 5))].gross == 1500.0
    assert groups[("Beta", date(2026, 1, 8))].remaining == 0.0


def test_compute_scheduled_payables(payable_rows, context_for):
    ctx = context_for(payable_rows, as_of="2026-01-10")
    out = compute_scheduled_payables(ctx["filters"], ctx)

    assert out["kpis"] == {
        "gross": 2000.0,
        "gross_count": 3,
        "paid": 300.0,
        "paid_count": 1,
        "outstanding": 1700.0,
        "outstanding_count": 2,
        "overdue": 1500.0,
        "overdue_count": 1,
    }
    assert [(r["vendor"], r["due_state"], r["days"]) for r in out["table"]] == [
        ("Acme", "overdue", 5),
        ("Beta", "upcoming", 10),
        ("Beta", "paid", None),
    ]
    assert {b["bucket"]: b["count"] for b in out["buckets"]}["8-14"] == 1
    assert [v["vendor"] for v in out["top_vendors"]] == ["Acme", "Beta"]
    assert out["shown"] == 3
    assert out["total_groups"] == 3

    vendors = out["all_vendors"]
    assert vendors["total"] == 2
    beta = vendors["rows"][1]
    assert (beta["code"], beta["first_due"], beta["last_due"]) == ("B-7", "2026-01-08", "2026-01-20")


def test_payables_state_and_vendor_filters(payable_rows, context_for):
    ctx = context_for(payable_rows, as_of="2026-01-10")
    assert compute_scheduled_payables(ctx["filters"], ctx, state="overdue")["shown"] == 1
    assert compute_scheduled_payables(ctx["filters"], ctx, vendor="BETA")["shown"] == 2

    ctx = context_for(payable_rows, as_of="2026-01-10", project="P2")
    out = compute_scheduled_payables(ctx["filters"], ctx)
    assert out["shown"] == 2
    assert out["total_groups"] == 3


def test_vendor_search(payable_rows, context_for):
    ctx = context_for(payable_rows, as_of="2026-01-10")
    found = compute_scheduled_payables(ctx["filters"], ctx, search="b-7")["all_vendors"]
    assert [r["vendor"] for r in found["rows"]] == ["Beta"]
    found = compute_scheduled_payables(ctx["filters"], ctx, search="acme")["all_vendors"]
    assert [r["vendor"] for r in found["rows"]] == ["Acme"]


def test_vendor_lines_lists_open_items(payable_rows, records_from):
    groups = group_payables(r for r in records_from(payable_rows) if is_scheduled_payable(r))
    lines = vendor_lines(groups, "beta", TODAY)
    got = [(line["due_date"], line["remaining"], line["due_state"]) for line in lines]
    assert got == [("2026-01-20", 200.0, "upcoming")]


def test_paginate():
    rows = [{"i": i} for i in range(30)]
    first = paginate(rows, 1)
    assert first["pages"] == 2
    assert len(first["rows"]) == 25
    last = paginate(rows, 99)
    assert last["page"] == 2
    assert [r["i"] for r in last["rows"]] == [25, 26, 27, 28, 29]
    assert paginate([], 3) == {"page": 1, "pages": 1, "total": 0, "page_size": 25, "rows": []}
