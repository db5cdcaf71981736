from __future__ import annotations

import random
from datetime import date

from core.grouping import build_groups, group_key_for, groups_by_handle, unique_submission_count
from core.records import STATUS_APPROVED, STATUS_PAID, STATUS_REQUESTED


def test_scenario_groups(scenario_records):
    groups = build_groups(scenario_records)

    assert len(groups) == 2
    assert unique_submission_count(groups) == 2

    g1, g2 = groups
    assert g1.handle == "2026-01-10||roads||p1||09:00"
    assert (g1.total, g1.paid, g1.remaining) == (1500.0, 900.0, 600.0)
    assert g1.line_count == 2
    assert g1.vendors == ["Acme", "Beta"]

    assert g2.handle == "2026-01-10||roads||p2||10:00"
    assert (g2.total, g2.paid, g2.remaining) == (200.0, 0.0, 200.0)


def test_grouping_ignores_input_order(scenario_records):
    expected = [(g.handle, g.total, [m.row_number for m in g.members]) for g in build_groups(scenario_records)]
    rng = random.Random(7)
    for _ in range(5):
        shuffled = list(scenario_records)
        rng.shuffle(shuffled)
        got = [(g.handle, g.total, [m.row_number for m in g.members]) for g in build_groups(shuffled)]
        assert got == expected


def test_same_vendor_lines_are_summed(records_from, make_row):
    records = records_from(
        [
            make_row(sector="S", project="P", vendor="Acme", amount_total=100, exact_time="08:00",
                     payment_request_date="2026-01-05"),
            make_row(sector="S", project="P", vendor="Acme", amount_total=100, exact_time="08:00",
                     payment_request_date="2026-01-05"),
        ]
    )
    (group,) = build_groups(records)
    assert group.total == 200.0
    assert group.line_count == 2
    assert group.vendors == ["Acme"]


def test_ungroupable_records_are_left_out(records_from, make_row):
    records = records_from(
        [
            make_row(vendor="Acme", project="P", payment_request_date="2026-01-05"),
            make_row(vendor="Acme", project="P", exact_time="08:00"),
            make_row(vendor="", project="P", exact_time="08:00", payment_request_date="2026-01-05"),
        ]
    )
    assert build_groups(records) == []
    assert all(group_key_for(r) is None for r in records[:2])


def test_grouping_day_follows_anchor(records_from, make_row):
    records = records_from(
        [
            make_row(vendor="Acme", project="P", exact_time="08:00", source_request_date="2026-01-03"),
            make_row(vendor="Beta", project="P", exact_time="08:00", payment_request_date="2026-01-03",
                     approval_date="2026-01-04", payment_date="2026-01-06"),
        ]
    )
    (by_request,) = build_groups(records)
    assert by_request.day == date(2026, 1, 3)
    assert by_request.line_count == 2

    (by_payment,) = build_groups(records, anchor="payment")
    assert by_payment.day == date(2026, 1, 6)
    assert by_payment.line_count == 1


def test_group_status_is_least_advanced(records_from, make_row):
    base = dict(sector="S", project="P", exact_time="08:00", payment_request_date="2026-01-05")
    records = records_from(
        [
            make_row(vendor="A", approval_date="2026-01-06", payment_date="2026-01-07", **base),
            make_row(vendor="B", approval_date="2026-01-06", **base),
        ]
    )
    assert [r.status for r in records] == [STATUS_PAID, STATUS_APPROVED]
    (group,) = build_groups(records)
    assert group.status == STATUS_APPROVED
    assert group.paid_date == date(2026, 1, 7)

    records = records_from([make_row(vendor="C", **base)] + [make_row(vendor="A", approval_date="2026-01-06", **base)])
    (group,) = build_groups(records)
    assert group.status == STATUS_REQUESTED


def test_groups_by_handle(scenario_records):
    groups = build_groups(scenario_records)
    index = groups_by_handle(groups)
    assert set(index) == {g.handle for g in groups}
    assert index["2026-01-10||roads||p2||10:00"].project == "P2"


def test_to_dict(scenario_records):
    d = build_groups(scenario_records)[0].to_dict()
    assert d["day"] == "2026-01-10"
    assert d["project"] == "P1"
    assert d["line_count"] == 2
    assert d["paid_date"] is None
