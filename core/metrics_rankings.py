from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

from core.filters import DashboardFilters
from core.grouping import SubmissionGroup
from core.records import LabelIndex

RANK_BY_OUTSTANDING = "outstanding"
RANK_BY_COUNT = "count"


def _rank(rows: List[Dict[str, Any]], by: str, n: int) -> List[Dict[str, Any]]:
    # sorted() is stable, so equal values keep first-encountered order
    field = "submissions" if by == RANK_BY_COUNT else "outstanding"
    ranked = sorted(rows, key=lambda r: r[field], reverse=True)[:n]
    for i, row in enumerate(ranked, start=1):
        row["rank"] = i
    return ranked


def top_vendors(groups: List[SubmissionGroup], by: str = RANK_BY_OUTSTANDING, n: int = 5) -> List[Dict[str, Any]]:
    """Vendors ranked by outstanding line-item money or by submissions they appear in."""
    agg: Dict[str, Dict[str, Any]] = {}
    for g in groups:
        seen_here = set()
        for r in g.members:
            row = agg.setdefault(
                r.vendor_key,
                {"vendor_key": r.vendor_key, "vendor": r.vendor, "outstanding": 0.0, "submissions": 0, "line_items": 0},
            )
            row["outstanding"] += r.remaining
            row["line_items"] += 1
            if r.vendor_key not in seen_here:
                row["submissions"] += 1
                seen_here.add(r.vendor_key)
    rows = list(agg.values())
    if by == RANK_BY_OUTSTANDING:
        rows = [r for r in rows if r["outstanding"] > 0]
    return _rank(rows, by, n)


def top_projects(
    groups: List[SubmissionGroup],
    labels: Optional[LabelIndex] = None,
    by: str = RANK_BY_OUTSTANDING,
    n: int = 5,
) -> List[Dict[str, Any]]:
    agg: Dict[str, Dict[str, Any]] = {}
    for g in groups:
        row = agg.setdefault(
            g.project_key,
            {
                "project_key": g.project_key,
                "project": labels.project_label(g.project_key) if labels is not None else g.project,
                "outstanding": 0.0,
                "submissions": 0,
            },
        )
        row["outstanding"] += g.remaining
        row["submissions"] += 1
    rows = list(agg.values())
    if by == RANK_BY_OUTSTANDING:
        rows = [r for r in rows if r["outstanding"] > 0]
    return _rank(rows, by, n)


def bottlenecks(
    groups: List[SubmissionGroup],
    as_of: date,
    labels: Optional[LabelIndex] = None,
    n: int = 10,
) -> List[Dict[str, Any]]:
    """Projects holding the most outstanding money, with the average age of their open submissions."""
    agg: Dict[str, Dict[str, Any]] = {}
    for g in groups:
        if g.remaining <= 0:
            continue
        row = agg.setdefault(
            g.project_key,
            {
                "project_key": g.project_key,
                "project": labels.project_label(g.project_key) if labels is not None else g.project,
                "open_submissions": 0,
                "outstanding": 0.0,
                "_age_sum": 0,
            },
        )
        row["open_submissions"] += 1
        row["outstanding"] += g.remaining
        row["_age_sum"] += max(0, (as_of - g.day).days)

    rows = []
    for row in agg.values():
        age_sum = row.pop("_age_sum")
        row["avg_age_days"] = round(age_sum / row["open_submissions"]) if row["open_submissions"] else 0
        rows.append(row)
    return sorted(rows, key=lambda r: r["outstanding"], reverse=True)[:n]


def compute_rankings(filters: DashboardFilters, ctx: Dict[str, Any], by: str = RANK_BY_OUTSTANDING) -> Dict[str, Any]:
    groups: List[SubmissionGroup] = ctx.get("filtered_groups", [])
    labels: Optional[LabelIndex] = ctx.get("labels")
    as_of: date = ctx.get("as_of") or ctx["today"]
    by = by if by in (RANK_BY_OUTSTANDING, RANK_BY_COUNT) else RANK_BY_OUTSTANDING

    return {
        "filters": asdict(filters),
        "by": by,
        "as_of": as_of.isoformat(),
        "top_vendors": top_vendors(groups, by=by, n=filters.top_n),
        "top_projects": top_projects(groups, labels, by=by, n=filters.top_n),
        "bottlenecks": bottlenecks(groups, as_of, labels),
    }
