"""Scheduled payables: dues the finance team booked ahead of time.

Rows are recognised by a marker in the request id; the source-request date is
read as the due date. Dues are grouped per vendor and due date.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.filters import DashboardFilters, in_range
from core.metrics_aging import DUE_ORDER, DUE_PAID, aging_buckets, days_until, due_state
from core.records import Record
from core.text import day_label, normalize_key

PAYABLES_MARKER = "مستحقات"
PAGE_SIZE = 25
TOP_VENDORS = 5


def is_scheduled_payable(record: Record) -> bool:
    return normalize_key(PAYABLES_MARKER) in normalize_key(record.request_id)


@dataclass(frozen=True)
class PayableGroup:
    vendor: str
    vendor_key: str
    day: date
    lines: Tuple[Record, ...]

    @property
    def handle(self) -> str:
        return f"{self.vendor_key}|||{day_label(self.day)}"

    @property
    def gross(self) -> float:
        return sum(r.effective_total for r in self.lines)

    @property
    def paid(self) -> float:
        return sum(r.paid for r in self.lines)

    @property
    def remaining(self) -> float:
        return sum(r.remaining for r in self.lines)


def group_payables(records: Iterable[Record]) -> List[PayableGroup]:
    buckets: Dict[Tuple[str, date], List[Record]] = {}
    for r in records:
        due = r.source_request_date.value
        if r.excluded or due is None:
            continue
        buckets.setdefault((r.vendor_key, due), []).append(r)
    groups = []
    for (vkey, due), lines in buckets.items():
        lines.sort(key=lambda r: r.row_number)
        groups.append(PayableGroup(vendor=lines[0].vendor, vendor_key=vkey, day=due, lines=tuple(lines)))
    return groups


def _line_row(r: Record, today: date) -> Dict[str, Any]:
    due = r.source_request_date.value
    return {
        "row_number": r.row_number,
        "code": r.code,
        "vendor": r.vendor,
        "request_id": r.request_id,
        "due_date": day_label(due) or None,
        "value": r.effective_total,
        "paid": r.paid,
        "remaining": r.remaining,
        "due_state": due_state(r.remaining, due, today),
    }


def due_table(groups: List[PayableGroup], today: date) -> List[Dict[str, Any]]:
    """Overdue first, then upcoming, then settled; oldest due date first within each."""
    rows = []
    for g in groups:
        state = due_state(g.remaining, g.day, today)
        rows.append(
            {
                "handle": g.handle,
                "due_date": day_label(g.day),
                "vendor": g.vendor,
                "gross": g.gross,
                "paid": g.paid,
                "remaining": g.remaining,
                "due_state": state,
                "days": None if state == DUE_PAID else abs(days_until(g.day, today)),
                "line_count": len(g.lines),
            }
        )
    rows.sort(key=lambda r: (DUE_ORDER[r["due_state"]], r["due_date"]))
    return rows


def top_vendors_outstanding(groups: List[PayableGroup], n: int = TOP_VENDORS) -> List[Dict[str, Any]]:
    agg: Dict[str, Dict[str, Any]] = {}
    for g in groups:
        if g.remaining <= 0:
            continue
        row = agg.setdefault(g.vendor_key, {"vendor_key": g.vendor_key, "vendor": g.vendor, "outstanding": 0.0, "count": 0})
        row["outstanding"] += g.remaining
        row["count"] += 1
    return sorted(agg.values(), key=lambda r: r["outstanding"], reverse=True)[:n]


def vendor_lines(groups: List[PayableGroup], vendor_key: str, today: date) -> List[Dict[str, Any]]:
    """Open line items of one vendor, oldest due first."""
    lines = [r for g in groups if g.vendor_key == vendor_key for r in g.lines if r.remaining > 0]
    lines.sort(key=lambda r: (r.source_request_date.value, r.row_number))
    return [_line_row(r, today) for r in lines]


def all_vendors(groups: List[PayableGroup]) -> List[Dict[str, Any]]:
    agg: Dict[str, Dict[str, Any]] = {}
    for g in groups:
        row = agg.get(g.vendor_key)
        if row is None:
            row = agg[g.vendor_key] = {
                "vendor_key": g.vendor_key,
                "vendor": g.vendor,
                "code": "",
                "gross": 0.0,
                "paid": 0.0,
                "remaining": 0.0,
                "first_due": g.day,
                "last_due": g.day,
            }
        if not row["code"]:
            row["code"] = next((r.code for r in g.lines if r.code), "")
        row["gross"] += g.gross
        row["paid"] += g.paid
        row["remaining"] += g.remaining
        row["first_due"] = min(row["first_due"], g.day)
        row["last_due"] = max(row["last_due"], g.day)
    rows = sorted(agg.values(), key=lambda r: r["remaining"], reverse=True)
    for row in rows:
        row["first_due"] = day_label(row["first_due"])
        row["last_due"] = day_label(row["last_due"])
    return rows


def paginate(rows: List[Dict[str, Any]], page: int = 1, page_size: int = PAGE_SIZE) -> Dict[str, Any]:
    total = len(rows)
    pages = max(1, math.ceil(total / page_size))
    page = max(1, min(int(page), pages))
    start = (page - 1) * page_size
    return {"page": page, "pages": pages, "total": total, "page_size": page_size, "rows": rows[start : start + page_size]}


def search_vendors(rows: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    q = normalize_key(query)
    if not q:
        return list(rows)
    return [r for r in rows if q in normalize_key(f"{r['code']} {r['vendor']}")]


def _group_visible(g: PayableGroup, filters: DashboardFilters, vendor_key: Optional[str], state: Optional[str], today: date) -> bool:
    if vendor_key and g.vendor_key != vendor_key:
        return False
    if filters.sector_key is not None and not any(r.sector_key == filters.sector_key for r in g.lines):
        return False
    if filters.project_key is not None and not any(r.project_key == filters.project_key for r in g.lines):
        return False
    if filters.has_date_range and not in_range(g.day, filters.date_from, filters.date_to):
        return False
    if state and due_state(g.remaining, g.day, today) != state:
        return False
    return True


def compute_scheduled_payables(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    vendor: str = "",
    state: str = "",
    search: str = "",
    page: int = 1,
) -> Dict[str, Any]:
    today: date = ctx["today"]
    records = [r for r in ctx.get("all_records", []) if not r.excluded and is_scheduled_payable(r)]
    all_groups = group_payables(records)
    vendor_key = normalize_key(vendor) or None
    groups = [g for g in all_groups if _group_visible(g, filters, vendor_key, state or None, today)]

    aging = aging_buckets(groups, today)
    vendors = all_vendors(all_groups)

    return {
        "filters": asdict(filters),
        "today": day_label(today),
        "kpis": {
            "gross": sum(g.gross for g in groups),
            "gross_count": len(groups),
            "paid": sum(g.paid for g in groups),
            "paid_count": sum(1 for g in groups if g.paid > 0),
            "outstanding": sum(g.remaining for g in groups),
            "outstanding_count": sum(1 for g in groups if g.remaining > 0),
            "overdue": aging["overdue"]["amount"],
            "overdue_count": aging["overdue"]["count"],
        },
        "buckets": aging["buckets"],
        "top_vendors": top_vendors_outstanding(groups),
        "table": due_table(groups, today),
        "shown": len(groups),
        "total_groups": len(all_groups),
        "all_vendors": paginate(search_vendors(vendors, search), page),
    }
