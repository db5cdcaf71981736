from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable, Dict, List, Sequence, Tuple

from core.filters import DashboardFilters
from core.grouping import group_key_for
from core.records import STATUS_UNKNOWN, Record

Check = Tuple[str, str, Callable[[Record, str], bool]]

CHECKS: Tuple[Check, ...] = (
    ("missing_vendor", "Rows without vendor (excluded from financial views)", lambda r, a: r.excluded),
    ("missing_project", "Rows without project", lambda r, a: not r.project),
    ("bad_dates", "Rows with an unparseable date", lambda r, a: any(f.invalid for f in r.date_fields)),
    (
        "missing_payment_request_date",
        "Rows without a payment-request date",
        lambda r, a: not r.payment_request_date.valid,
    ),
    ("indeterminate_status", "Rows with indeterminate status", lambda r, a: r.status == STATUS_UNKNOWN),
    ("status_anomaly", "Paid without approval date", lambda r, a: r.status_anomaly),
    (
        "ungroupable",
        "Rows that cannot be grouped (no submission time or anchor date)",
        lambda r, a: not r.excluded and group_key_for(r, a) is None,
    ),
)


def quality_counts(records: Sequence[Record], anchor: str) -> Dict[str, Any]:
    total = len(records)
    rows: List[Dict[str, Any]] = []
    for key, label, test in CHECKS:
        count = sum(1 for r in records if test(r, anchor))
        rows.append({"key": key, "label": label, "count": count, "pct": (count / total) if total else None})
    return {"total": total, "rows": rows}


def compute_quality(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Row-level health of the sheet.

    ``overall`` always covers every row of the snapshot, whatever the filters;
    ``in_view`` covers the rows matching the current filters with its own
    denominator.
    """
    all_records: List[Record] = ctx.get("all_records", [])
    filtered: List[Record] = ctx.get("filtered_records", [])
    return {
        "filters": asdict(filters),
        "overall": quality_counts(all_records, filters.anchor),
        "in_view": quality_counts(filtered, filters.anchor),
    }
