from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.filters import DashboardFilters
from core.grouping import SubmissionGroup
from core.text import day_label

DUE_PAID = "paid"
DUE_OVERDUE = "overdue"
DUE_UPCOMING = "upcoming"
DUE_ORDER = {DUE_OVERDUE: 0, DUE_UPCOMING: 1, DUE_PAID: 2}

# (label, min days, max days); None = open ended
AGING_BANDS: Tuple[Tuple[str, int, Optional[int]], ...] = (
    ("0-7", 0, 7),
    ("8-14", 8, 14),
    ("15-30", 15, 30),
    (">30", 31, None),
)


def days_until(day: date, today: date) -> int:
    """Whole days from ``today`` to ``day``; negative when ``day`` is past."""
    return (day - today).days


def due_state(remaining: float, day: Optional[date], today: date) -> str:
    if remaining <= 0:
        return DUE_PAID
    if day is not None and day < today:
        return DUE_OVERDUE
    return DUE_UPCOMING


def band_for(days: int) -> str:
    for label, lo, hi in AGING_BANDS:
        if days >= lo and (hi is None or days <= hi):
            return label
    return AGING_BANDS[-1][0]


def aging_buckets(items: Iterable[Any], today: date) -> Dict[str, Any]:
    """Outstanding amounts by days until due.

    ``items`` need ``remaining`` and ``day`` attributes (submissions, payable
    groups). Overdue amounts are kept apart and never land in a band.
    """
    bands = {label: {"bucket": label, "count": 0, "amount": 0.0} for label, _, _ in AGING_BANDS}
    overdue = {"count": 0, "amount": 0.0}
    for item in items:
        if item.remaining <= 0 or item.day is None:
            continue
        days = days_until(item.day, today)
        if days < 0:
            overdue["count"] += 1
            overdue["amount"] += item.remaining
            continue
        b = bands[band_for(days)]
        b["count"] += 1
        b["amount"] += item.remaining
    return {"buckets": list(bands.values()), "overdue": overdue}


def sla_metric(groups: Sequence[SubmissionGroup], sla_days: int = 5) -> Dict[str, Any]:
    """Share of paid money settled within ``sla_days`` of the anchor date.

    Weighted by paid amount, not by number of submissions.
    """
    eligible = [g for g in groups if g.paid_date is not None]
    paid_total = 0.0
    paid_within = 0.0
    within_count = 0
    for g in eligible:
        lag = (g.paid_date - g.day).days
        paid_total += g.paid
        if 0 <= lag <= sla_days:
            paid_within += g.paid
            within_count += 1
    return {
        "sla_days": sla_days,
        "eligible_count": len(eligible),
        "within_count": within_count,
        "paid_total": paid_total,
        "paid_within": paid_within,
        "pct": (paid_within / paid_total) if paid_total > 0 else None,
    }


def _aging_rows(groups: Iterable[SubmissionGroup], today: date) -> List[Dict[str, Any]]:
    rows = []
    for g in groups:
        if g.remaining <= 0:
            continue
        days = days_until(g.day, today)
        state = due_state(g.remaining, g.day, today)
        rows.append(
            {
                "handle": g.handle,
                "day": day_label(g.day),
                "sector": g.sector,
                "project": g.project,
                "submission_time": g.submission_time,
                "status": g.status,
                "remaining": g.remaining,
                "due_state": state,
                "days": abs(days),
                "band": band_for(days) if state == DUE_UPCOMING else None,
            }
        )
    rows.sort(key=lambda r: (DUE_ORDER[r["due_state"]], r["day"]))
    return rows


def compute_aging(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    groups: List[SubmissionGroup] = ctx.get("filtered_groups", [])
    today: date = ctx["today"]

    aging = aging_buckets(groups, today)
    sla = sla_metric(groups, filters.thresholds.sla_days)
    outstanding = sum(g.remaining for g in groups)

    return {
        "filters": asdict(filters),
        "today": day_label(today),
        "kpis": {
            "outstanding": outstanding,
            "overdue_amount": aging["overdue"]["amount"],
            "overdue_count": aging["overdue"]["count"],
            "sla_pct": sla["pct"],
        },
        "buckets": aging["buckets"],
        "overdue": aging["overdue"],
        "sla": sla,
        "table": _aging_rows(groups, today),
    }
