from __future__ import annotations

from dataclasses import asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from core.charts import daily_bar_chart, to_vega_spec
from core.filters import DashboardFilters
from core.grouping import SubmissionGroup, unique_submission_count
from core.metrics_aging import sla_metric
from core.records import STATUS_APPROVED, STATUS_PAID, STATUS_REQUESTED, STATUS_UNKNOWN, LabelIndex
from core.text import day_label

EXPOSURE_KEYS = (STATUS_REQUESTED, STATUS_APPROVED, STATUS_PAID, STATUS_UNKNOWN)


def exposure_by_status(groups: List[SubmissionGroup]) -> Dict[str, float]:
    """Outstanding money split by submission status, plus an ``all`` total."""
    exp = {k: 0.0 for k in EXPOSURE_KEYS}
    exp["all"] = 0.0
    for g in groups:
        if g.remaining <= 0:
            continue
        exp[g.status] = exp.get(g.status, 0.0) + g.remaining
        exp["all"] += g.remaining
    return exp


def top_project_by_submissions(groups: List[SubmissionGroup], labels: Optional[LabelIndex]) -> Optional[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for g in groups:
        counts[g.project_key] = counts.get(g.project_key, 0) + 1
    if not counts:
        return None
    # max() keeps the first key reaching the top count
    key = max(counts, key=lambda k: counts[k])
    label = labels.project_label(key) if labels is not None else key
    return {"project_key": key, "project": label, "submissions": counts[key]}


def daily_rows(groups: List[SubmissionGroup], days: int) -> List[Dict[str, Any]]:
    """One row per calendar day over the last ``days`` days ending at the latest submission."""
    if not groups:
        return []
    end: date = max(g.day for g in groups)
    start = end - timedelta(days=days - 1)
    per_day: Dict[date, Dict[str, Any]] = {}
    for i in range(days):
        d = start + timedelta(days=i)
        per_day[d] = {"day": day_label(d), "submissions": 0, "total": 0.0, "remaining": 0.0}
    for g in groups:
        row = per_day.get(g.day)
        if row is None:
            continue
        row["submissions"] += 1
        row["total"] += g.total
        row["remaining"] += g.remaining
    return list(per_day.values())


def compute_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    groups: List[SubmissionGroup] = ctx.get("filtered_groups", [])
    labels: Optional[LabelIndex] = ctx.get("labels")
    as_of: Optional[date] = ctx.get("as_of")

    gross = sum(g.total for g in groups)
    paid = sum(g.paid for g in groups)
    remaining = sum(g.remaining for g in groups)
    canceled = sum(max(0.0, r.amount_canceled) for g in groups for r in g.members)

    submissions = unique_submission_count(groups)
    line_items = sum(g.line_count for g in groups)
    active_days = len({g.day for g in groups})

    chart_rows = daily_rows(groups, filters.thresholds.chart_days)
    charts: Dict[str, Any] = {}
    if chart_rows:
        charts["daily_submissions"] = to_vega_spec(daily_bar_chart(chart_rows, "submissions", "Submissions", ","))
        charts["daily_amount"] = to_vega_spec(daily_bar_chart(chart_rows, "total", "Amount", ",.2f"))

    return {
        "filters": asdict(filters),
        "as_of": day_label(as_of) or None,
        "kpis": {
            "gross": gross,
            "paid": paid,
            "canceled": canceled,
            "remaining": remaining,
            "submissions": submissions,
            "line_items": line_items,
            "active_days": active_days,
            "avg_submissions_per_day": (submissions / active_days) if active_days else 0.0,
            "top_project": top_project_by_submissions(groups, labels),
        },
        "exposure": exposure_by_status(groups),
        "sla": sla_metric(groups, filters.thresholds.sla_days),
        "daily": chart_rows,
        "charts": charts,
    }
