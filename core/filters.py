from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple

from core.grouping import SubmissionGroup
from core.records import ANCHORS, DEFAULT_ANCHOR, STATUS_LABELS, Record
from core.text import normalize_key, normalize_text, parse_user_date

# dropdown values that mean "no filter"
ALL_SENTINELS = {"", "all", "*", "الكل"}


@dataclass(frozen=True)
class Thresholds:
    sla_days: int = 5
    forecast_window_days: int = 30
    forecast_horizons: Tuple[int, ...] = (7, 14)
    chart_days: int = 15


@dataclass(frozen=True)
class DashboardFilters:
    sector_key: Optional[str] = None
    project_key: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    anchor: str = DEFAULT_ANCHOR
    top_n: int = 5
    as_of: Optional[date] = None
    thresholds: Thresholds = field(default_factory=Thresholds)

    @property
    def has_date_range(self) -> bool:
        return self.date_from is not None or self.date_to is not None


def _facet(value: object) -> Optional[str]:
    text = normalize_text(value)
    if text.casefold() in ALL_SENTINELS:
        return None
    return normalize_key(text)


def _as_date(value: object) -> Optional[date]:
    if isinstance(value, date):
        return value
    return parse_user_date(value)


def _as_int(value: object, default: int, lo: int, hi: int) -> int:
    try:
        out = int(value)  # type: ignore[arg-type]
    except Exception:
        out = default
    return max(lo, min(hi, out))


def normalize_filters(raw: dict) -> DashboardFilters:
    status = normalize_text(raw.get("status"))
    if status.casefold() in ALL_SENTINELS or status not in STATUS_LABELS:
        status_value: Optional[str] = None
    else:
        status_value = status

    anchor = normalize_text(raw.get("anchor")) or DEFAULT_ANCHOR
    if anchor not in ANCHORS:
        anchor = DEFAULT_ANCHOR

    t = raw.get("thresholds") or {}
    defaults = Thresholds()
    horizons = t.get("forecast_horizons") or defaults.forecast_horizons
    thresholds = Thresholds(
        sla_days=_as_int(t.get("sla_days", defaults.sla_days), defaults.sla_days, 0, 365),
        forecast_window_days=_as_int(
            t.get("forecast_window_days", defaults.forecast_window_days), defaults.forecast_window_days, 1, 366
        ),
        forecast_horizons=tuple(_as_int(h, 7, 1, 366) for h in horizons),
        chart_days=_as_int(t.get("chart_days", defaults.chart_days), defaults.chart_days, 1, 366),
    )

    return DashboardFilters(
        sector_key=_facet(raw.get("sector_key", raw.get("sector"))),
        project_key=_facet(raw.get("project_key", raw.get("project"))),
        status=status_value,
        date_from=_as_date(raw.get("date_from")),
        date_to=_as_date(raw.get("date_to")),
        anchor=anchor,
        top_n=_as_int(raw.get("top_n", 5), 5, 1, 200),
        as_of=_as_date(raw.get("as_of")),
        thresholds=thresholds,
    )


def in_range(d: Optional[date], date_from: Optional[date], date_to: Optional[date]) -> bool:
    """Inclusive range check; ``date_to`` covers the whole of that day."""
    if d is None:
        return False
    if date_from is not None and d < date_from:
        return False
    if date_to is not None and d > date_to:
        return False
    return True


def _matches(
    filters: DashboardFilters, sector_key: str, project_key: str, status: str, anchor_day: Optional[date]
) -> bool:
    if filters.sector_key is not None and sector_key != filters.sector_key:
        return False
    if filters.project_key is not None and project_key != filters.project_key:
        return False
    if filters.status is not None and status != filters.status:
        return False
    if filters.has_date_range and not in_range(anchor_day, filters.date_from, filters.date_to):
        return False
    return True


def record_matches(record: Record, filters: DashboardFilters) -> bool:
    return _matches(filters, record.sector_key, record.project_key, record.status, record.anchor_date(filters.anchor))


def group_matches(group: SubmissionGroup, filters: DashboardFilters) -> bool:
    return _matches(filters, group.sector_key, group.project_key, group.status, group.day)


def filter_records(records: Iterable[Record], filters: DashboardFilters) -> List[Record]:
    return [r for r in records if record_matches(r, filters)]


def filter_groups(groups: Iterable[SubmissionGroup], filters: DashboardFilters) -> List[SubmissionGroup]:
    return [g for g in groups if group_matches(g, filters)]
