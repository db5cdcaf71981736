from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

from core.charts import daily_bar_chart, to_vega_spec
from core.filters import DashboardFilters
from core.grouping import SubmissionGroup, unique_submission_count
from core.metrics_overview import top_project_by_submissions
from core.records import LabelIndex
from core.text import day_label


def submissions_per_day(groups: List[SubmissionGroup]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for g in groups:
        d = day_label(g.day)
        counts[d] = counts.get(d, 0) + 1
    return [{"day": d, "submissions": counts[d]} for d in sorted(counts)]


def summary_by_day_project(groups: List[SubmissionGroup], labels: Optional[LabelIndex]) -> List[Dict[str, Any]]:
    counts: Dict[Tuple[str, str, str], int] = {}
    for g in groups:
        k = (day_label(g.day), g.sector_key, g.project_key)
        counts[k] = counts.get(k, 0) + 1
    rows = []
    for (d, sk, pk), n in counts.items():
        rows.append(
            {
                "day": d,
                "sector_key": sk,
                "project_key": pk,
                "sector": labels.sector_label(sk) if labels is not None else sk,
                "project": labels.project_label(pk) if labels is not None else pk,
                "submissions": n,
            }
        )
    rows.sort(key=lambda r: (r["day"], -r["submissions"]))
    return rows


def compute_submissions(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Submission ("email") activity: one unit per group, never per line item."""
    groups: List[SubmissionGroup] = ctx.get("filtered_groups", [])
    labels: Optional[LabelIndex] = ctx.get("labels")

    total = unique_submission_count(groups)
    per_day = submissions_per_day(groups)
    days = len(per_day)

    charts: Dict[str, Any] = {}
    if per_day:
        charts["submissions_per_day"] = to_vega_spec(
            daily_bar_chart(per_day[-filters.thresholds.chart_days :], "submissions", "Submissions")
        )

    details = sorted(groups, key=lambda g: (g.day, g.project, g.submission_time))
    return {
        "filters": asdict(filters),
        "kpis": {
            "submissions": total,
            "line_items": sum(g.line_count for g in groups),
            "active_days": days,
            "avg_per_day": round(total / days, 1) if days else 0.0,
            "top_project": top_project_by_submissions(groups, labels),
        },
        "per_day": per_day,
        "summary": summary_by_day_project(groups, labels),
        "details": [g.to_dict() for g in details],
        "charts": charts,
    }
