from __future__ import annotations

from datetime import date

import pytest

from core.grouping import build_groups
from core.navigator import (
    OPEN_EMAIL,
    OPEN_PROJECT,
    Closed,
    DaySummary,
    EmailDetail,
    Navigator,
    ProjectEmails,
    apply_action,
    navigator_from_dict,
    navigator_to_dict,
    render_view,
)
from core.records import ingest_rows

DAY = date(2026, 1, 10)


@pytest.fixture()
def snapshot(make_row, scenario_rows):
    extra = make_row(sector="Roads", project="P1", vendor="Gamma", amount_total=50, exact_time="11:00",
                     payment_request_date="2026-01-10")
    return ingest_rows(scenario_rows + [extra])


@pytest.fixture()
def groups(snapshot):
    return build_groups(snapshot.records)


def test_closed_navigator_renders_nothing(groups):
    assert render_view(Navigator(), groups) is None
    assert not Navigator().is_open


def test_drill_down_and_back(groups, snapshot):
    labels = snapshot.labels
    nav = Navigator().open_day(DAY)
    day_view = render_view(nav, groups, labels)
    assert [r["project"] for r in day_view.rows] == ["P1", "P2"]
    assert day_view.rows[0]["submissions"] == 2
    assert day_view.push_history
    assert not day_view.can_back

    nav = nav.click_row(day_view, 0)
    assert nav.state == ProjectEmails(DAY, "p1", "roads")
    project_view = render_view(nav, groups, labels)
    assert [r["submission_time"] for r in project_view.rows] == ["09:00", "11:00"]
    assert all(a.kind == OPEN_EMAIL for a in project_view.row_actions)

    nav = nav.click_row(project_view, 1)
    email_view = render_view(nav, groups, labels)
    assert isinstance(nav.state, EmailDetail)
    assert [r["vendor"] for r in email_view.rows] == ["Gamma"]
    assert email_view.row_actions == (None,)
    assert not email_view.push_history
    assert email_view.position == (2, 2)
    assert email_view.can_prev and not email_view.can_next

    # rows are still clickable after coming back
    nav = nav.back()
    again = render_view(nav, groups, labels)
    assert again.rows == project_view.rows
    assert again.row_actions == project_view.row_actions
    assert again.can_back

    nav = nav.back()
    assert nav.state == DaySummary(DAY)
    assert render_view(nav, groups, labels).row_actions[1].kind == OPEN_PROJECT

    nav = nav.back()
    assert isinstance(nav.state, Closed)


def test_prev_next_walk_siblings_without_touching_stack(groups):
    nav = Navigator().open_day(DAY).open_project(DAY, "p1")
    handles = [g.handle for g in groups if g.project_key == "p1"]
    nav = nav.open_email(handles[0], handles)
    stack = nav.stack

    assert nav.prev() == nav
    nav = nav.next()
    assert nav.state.handle == handles[1]
    assert nav.stack == stack
    assert nav.next() == nav
    assert nav.prev().state.handle == handles[0]


def test_click_row_outside_rows_is_a_noop(groups):
    nav = Navigator().open_day(DAY)
    view = render_view(nav, groups)
    assert nav.click_row(view, 9) == nav
    assert nav.click_row(view, -1) == nav
    assert nav.click_row(None, 0) == nav


def test_close_from_anywhere(groups):
    nav = Navigator().open_day(DAY).open_project(DAY, "p1")
    closed = nav.close()
    assert closed == Navigator()
    # opening from closed starts a fresh stack
    assert closed.open_day(DAY).stack == ()


def test_missing_submission(groups):
    view = render_view(Navigator().open_email("nope"), groups)
    assert view.title == "Submission not found"
    assert view.rows == ()
    assert view.position is None


def test_serialization_round_trip(groups):
    handles = [g.handle for g in groups]
    nav = Navigator().open_day(DAY).open_project(DAY, "p1").open_email(handles[0], handles)
    data = navigator_to_dict(nav)
    assert data["state"]["kind"] == "email"
    assert [s["kind"] for s in data["stack"]] == ["day", "project"]
    assert navigator_from_dict(data) == nav
    assert navigator_from_dict(None) == Navigator()


def test_apply_action(groups, snapshot):
    nav = apply_action(Navigator(), {"type": "open_day", "day": "2026-01-10"})
    nav = apply_action(nav, {"type": "click_row", "index": 1}, groups, snapshot.labels)
    assert nav.state == ProjectEmails(DAY, "p2", "roads")
    nav = apply_action(nav, {"type": "click_row", "index": 0}, groups, snapshot.labels)
    assert isinstance(nav.state, EmailDetail)
    assert apply_action(nav, {"type": "back"}).state == ProjectEmails(DAY, "p2", "roads")
    assert apply_action(nav, {"type": "close"}) == Navigator()

    with pytest.raises(ValueError):
        apply_action(nav, {"type": "explode"})


def test_same_project_name_in_two_sectors_stays_apart(make_row):
    base = dict(project="Depot", exact_time="08:00", payment_request_date="2026-01-10")
    snapshot = ingest_rows(
        [
            make_row(sector="Roads", vendor="Acme", amount_total=100, **base),
            make_row(sector="Water", vendor="Beta", amount_total=40, **base),
        ]
    )
    groups = build_groups(snapshot.records)

    nav = Navigator().open_day(DAY)
    day_view = render_view(nav, groups, snapshot.labels)
    assert [(r["sector"], r["total"]) for r in day_view.rows] == [("Roads", 100.0), ("Water", 40.0)]
    assert [a.sector_key for a in day_view.row_actions] == ["roads", "water"]

    nav = nav.click_row(day_view, 1)
    assert nav.state == ProjectEmails(DAY, "depot", "water")
    project_view = render_view(nav, groups, snapshot.labels)
    assert [r["vendors"] for r in project_view.rows] == ["Beta"]

    restored = navigator_from_dict(navigator_to_dict(nav))
    assert restored == nav


def test_malformed_day_is_rejected():
    with pytest.raises(ValueError):
        apply_action(Navigator(), {"type": "open_day", "day": "10-01-2026x"})
