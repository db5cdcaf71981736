"""Drill-down navigation: day -> project -> submission -> line items.

The navigator is a value. Every transition returns a new ``Navigator``; the
back stack holds *states*, never rendered output, and ``render_view`` builds a
fresh ``ModalView`` (rows plus the action each row triggers) from the current
data every time. A view reached through ``back`` is therefore exactly as
clickable as when it was first opened.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from core.grouping import SubmissionGroup
from core.records import STATUS_LABELS, LabelIndex
from core.text import day_label


@dataclass(frozen=True)
class Closed:
    pass


@dataclass(frozen=True)
class DaySummary:
    day: date


@dataclass(frozen=True)
class ProjectEmails:
    day: date
    project_key: str
    # empty matches every sector
    sector_key: str = ""


@dataclass(frozen=True)
class EmailDetail:
    handle: str
    # handles of the list the submission was opened from; prev/next walk it
    siblings: Tuple[str, ...] = ()


NavState = Union[Closed, DaySummary, ProjectEmails, EmailDetail]

OPEN_DAY = "open_day"
OPEN_PROJECT = "open_project"
OPEN_EMAIL = "open_email"


@dataclass(frozen=True)
class NavAction:
    """What clicking a row does."""

    kind: str
    day: Optional[date] = None
    project_key: str = ""
    sector_key: str = ""
    handle: str = ""
    siblings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.kind}
        if self.day is not None:
            out["day"] = day_label(self.day)
        if self.kind == OPEN_PROJECT:
            out["project_key"] = self.project_key
            out["sector_key"] = self.sector_key
        if self.kind == OPEN_EMAIL:
            out["handle"] = self.handle
            out["siblings"] = list(self.siblings)
        return out


@dataclass(frozen=True)
class Navigator:
    state: NavState = field(default_factory=Closed)
    stack: Tuple[NavState, ...] = ()

    @property
    def is_open(self) -> bool:
        return not isinstance(self.state, Closed)

    def _push(self, new_state: NavState) -> "Navigator":
        stack = self.stack + (self.state,) if self.is_open else ()
        return Navigator(state=new_state, stack=stack)

    def open_day(self, day: date) -> "Navigator":
        return self._push(DaySummary(day))

    def open_project(self, day: date, project_key: str, sector_key: str = "") -> "Navigator":
        return self._push(ProjectEmails(day, project_key, sector_key))

    def open_email(self, handle: str, siblings: Sequence[str] = ()) -> "Navigator":
        return self._push(EmailDetail(handle, tuple(siblings)))

    def _step(self, offset: int) -> "Navigator":
        st = self.state
        if not isinstance(st, EmailDetail) or st.handle not in st.siblings:
            return self
        idx = st.siblings.index(st.handle) + offset
        if idx < 0 or idx >= len(st.siblings):
            return self
        # replaces the current screen; the back stack is untouched
        return Navigator(state=EmailDetail(st.siblings[idx], st.siblings), stack=self.stack)

    def prev(self) -> "Navigator":
        return self._step(-1)

    def next(self) -> "Navigator":
        return self._step(1)

    def back(self) -> "Navigator":
        if not self.stack:
            return self.close()
        return Navigator(state=self.stack[-1], stack=self.stack[:-1])

    def close(self) -> "Navigator":
        return Navigator()

    def follow(self, action: Optional[NavAction]) -> "Navigator":
        if action is None:
            return self
        if action.kind == OPEN_DAY and action.day is not None:
            return self.open_day(action.day)
        if action.kind == OPEN_PROJECT and action.day is not None:
            return self.open_project(action.day, action.project_key, action.sector_key)
        if action.kind == OPEN_EMAIL:
            return self.open_email(action.handle, action.siblings)
        raise ValueError(f"Unknown navigation action: {action.kind!r}")

    def click_row(self, view: Optional["ModalView"], index: int) -> "Navigator":
        if view is None or index < 0 or index >= len(view.row_actions):
            return self
        return self.follow(view.row_actions[index])


@dataclass(frozen=True)
class ModalView:
    """Everything a presentation layer needs to draw the current screen.

    ``rows`` and ``row_actions`` are parallel; a ``None`` action marks a row
    that is not clickable. ``push_history`` tells whether following a row
    action keeps this screen on the back stack (drill-down) or not (leaf
    screens). ``position`` is ``(index, count)`` within the sibling list when
    prev/next apply.
    """

    title: str
    subtitle: str
    columns: Tuple[str, ...]
    rows: Tuple[Dict[str, Any], ...]
    row_actions: Tuple[Optional[NavAction], ...]
    push_history: bool
    can_back: bool
    can_prev: bool
    can_next: bool
    position: Optional[Tuple[int, int]]
    state: NavState

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "columns": list(self.columns),
            "rows": [dict(r) for r in self.rows],
            "row_actions": [a.to_dict() if a is not None else None for a in self.row_actions],
            "push_history": self.push_history,
            "can_back": self.can_back,
            "can_prev": self.can_prev,
            "can_next": self.can_next,
            "position": list(self.position) if self.position else None,
            "state": state_to_dict(self.state),
        }


def _money(x: float) -> str:
    return f"{x:,.2f}"


def _summary_line(groups: Iterable[SubmissionGroup]) -> str:
    gs = list(groups)
    total = sum(g.total for g in gs)
    paid = sum(g.paid for g in gs)
    remaining = sum(g.remaining for g in gs)
    return f"Submissions: {len(gs)} | Total: {_money(total)} | Paid: {_money(paid)} | Remaining: {_money(remaining)}"


def _render_day(nav: Navigator, st: DaySummary, groups: List[SubmissionGroup], labels: Optional[LabelIndex]) -> ModalView:
    todays = [g for g in groups if g.day == st.day]
    per_project: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for g in todays:
        row = per_project.setdefault(
            (g.sector_key, g.project_key),
            {
                "project": labels.project_label(g.project_key) if labels is not None else g.project,
                "sector": g.sector,
                "submissions": 0,
                "line_items": 0,
                "total": 0.0,
                "paid": 0.0,
                "remaining": 0.0,
            },
        )
        row["submissions"] += 1
        row["line_items"] += g.line_count
        row["total"] += g.total
        row["paid"] += g.paid
        row["remaining"] += g.remaining
    keys = list(per_project)
    return ModalView(
        title=f"Day {day_label(st.day)}",
        subtitle=_summary_line(todays),
        columns=("project", "sector", "submissions", "line_items", "total", "paid", "remaining"),
        rows=tuple(per_project[k] for k in keys),
        row_actions=tuple(NavAction(OPEN_PROJECT, day=st.day, project_key=pk, sector_key=sk) for sk, pk in keys),
        push_history=True,
        can_back=bool(nav.stack),
        can_prev=False,
        can_next=False,
        position=None,
        state=st,
    )


def _render_project(
    nav: Navigator, st: ProjectEmails, groups: List[SubmissionGroup], labels: Optional[LabelIndex]
) -> ModalView:
    selected = [
        g
        for g in groups
        if g.day == st.day
        and g.project_key == st.project_key
        and (not st.sector_key or g.sector_key == st.sector_key)
    ]
    handles = tuple(g.handle for g in selected)
    project = labels.project_label(st.project_key) if labels is not None else st.project_key
    rows = tuple(
        {
            "submission_time": g.submission_time,
            "sector": g.sector,
            "vendors": ", ".join(g.vendors),
            "line_items": g.line_count,
            "total": g.total,
            "paid": g.paid,
            "remaining": g.remaining,
            "status": STATUS_LABELS.get(g.status, g.status),
        }
        for g in selected
    )
    return ModalView(
        title=f"{project} | {day_label(st.day)}",
        subtitle=_summary_line(selected),
        columns=("submission_time", "sector", "vendors", "line_items", "total", "paid", "remaining", "status"),
        rows=rows,
        row_actions=tuple(NavAction(OPEN_EMAIL, handle=h, siblings=handles) for h in handles),
        push_history=True,
        can_back=bool(nav.stack),
        can_prev=False,
        can_next=False,
        position=None,
        state=st,
    )


def _render_email(nav: Navigator, st: EmailDetail, groups: List[SubmissionGroup]) -> ModalView:
    group = next((g for g in groups if g.handle == st.handle), None)
    idx = st.siblings.index(st.handle) if st.handle in st.siblings else -1
    position = (idx + 1, len(st.siblings)) if idx >= 0 else None
    columns = ("row_number", "vendor", "code", "request_id", "account_item", "total", "paid", "remaining", "status")

    if group is None:
        rows: Tuple[Dict[str, Any], ...] = ()
        title = "Submission not found"
        subtitle = "The submission is not in the current data or filters."
    else:
        rows = tuple(
            {
                "row_number": r.row_number,
                "vendor": r.vendor,
                "code": r.code,
                "request_id": r.request_id,
                "account_item": r.account_item,
                "total": r.effective_total,
                "paid": r.paid,
                "remaining": r.remaining,
                "status": STATUS_LABELS.get(r.status, r.status),
            }
            for r in group.members
        )
        title = f"{group.project or group.sector} | {group.submission_time} | {day_label(group.day)}"
        subtitle = (
            f"Line items: {group.line_count} | Total: {_money(group.total)} | "
            f"Paid: {_money(group.paid)} | Remaining: {_money(group.remaining)}"
        )

    return ModalView(
        title=title,
        subtitle=subtitle,
        columns=columns,
        rows=rows,
        row_actions=tuple(None for _ in rows),
        push_history=False,
        can_back=bool(nav.stack),
        can_prev=idx > 0,
        can_next=0 <= idx < len(st.siblings) - 1,
        position=position,
        state=st,
    )


def render_view(
    navigator: Navigator, groups: Sequence[SubmissionGroup], labels: Optional[LabelIndex] = None
) -> Optional[ModalView]:
    """Build the current screen; ``None`` when the modal is closed."""
    st = navigator.state
    gs = list(groups)
    if isinstance(st, DaySummary):
        return _render_day(navigator, st, gs, labels)
    if isinstance(st, ProjectEmails):
        return _render_project(navigator, st, gs, labels)
    if isinstance(st, EmailDetail):
        return _render_email(navigator, st, gs)
    return None


def state_to_dict(state: NavState) -> Dict[str, Any]:
    if isinstance(state, DaySummary):
        return {"kind": "day", "day": day_label(state.day)}
    if isinstance(state, ProjectEmails):
        return {
            "kind": "project",
            "day": day_label(state.day),
            "project_key": state.project_key,
            "sector_key": state.sector_key,
        }
    if isinstance(state, EmailDetail):
        return {"kind": "email", "handle": state.handle, "siblings": list(state.siblings)}
    return {"kind": "closed"}


def state_from_dict(data: Optional[Dict[str, Any]]) -> NavState:
    data = data or {}
    kind = data.get("kind", "closed")
    if kind == "day":
        return DaySummary(date.fromisoformat(data["day"]))
    if kind == "project":
        return ProjectEmails(
            date.fromisoformat(data["day"]), str(data.get("project_key", "")), str(data.get("sector_key") or "")
        )
    if kind == "email":
        return EmailDetail(str(data["handle"]), tuple(data.get("siblings") or ()))
    return Closed()


def navigator_to_dict(navigator: Navigator) -> Dict[str, Any]:
    return {"state": state_to_dict(navigator.state), "stack": [state_to_dict(s) for s in navigator.stack]}


def navigator_from_dict(data: Optional[Dict[str, Any]]) -> Navigator:
    data = data or {}
    state = state_from_dict(data.get("state"))
    if isinstance(state, Closed):
        return Navigator()
    return Navigator(state=state, stack=tuple(state_from_dict(s) for s in data.get("stack") or ()))


def apply_action(
    navigator: Navigator,
    action: Dict[str, Any],
    groups: Sequence[SubmissionGroup] = (),
    labels: Optional[LabelIndex] = None,
) -> Navigator:
    """Dispatch a serialized action such as ``{"type": "open_day", "day": "2026-01-10"}``."""
    kind = action.get("type")
    if kind == OPEN_DAY:
        return navigator.open_day(date.fromisoformat(action["day"]))
    if kind == OPEN_PROJECT:
        return navigator.open_project(
            date.fromisoformat(action["day"]), str(action.get("project_key") or ""), str(action.get("sector_key") or "")
        )
    if kind == OPEN_EMAIL:
        return navigator.open_email(str(action["handle"]), action.get("siblings") or ())
    if kind == "prev":
        return navigator.prev()
    if kind == "next":
        return navigator.next()
    if kind == "back":
        return navigator.back()
    if kind == "close":
        return navigator.close()
    if kind == "click_row":
        view = render_view(navigator, groups, labels)
        return navigator.click_row(view, int(action.get("index", -1)))
    raise ValueError(f"Unknown navigation action: {kind!r}")
