from __future__ import annotations

import io
import logging
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import requests

from core.config import load_settings
from core.filters import DashboardFilters, filter_groups, filter_records, normalize_filters
from core.grouping import build_groups
from core.records import Record, ingest_rows
from core.text import normalize_header_key

logger = logging.getLogger(__name__)


class DataSourceError(RuntimeError):
    """The CSV snapshot could not be fetched. Nothing downstream runs."""


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def fetch_csv_text(source: str, timeout: Optional[float] = None) -> str:
    if _is_url(source):
        try:
            resp = requests.get(source, timeout=timeout, headers={"Cache-Control": "no-store"})
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DataSourceError(f"Failed to fetch {source}: {exc}") from exc
        content = resp.content
    else:
        path = Path(source)
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise DataSourceError(f"Failed to read {source}: {exc}") from exc
    return content.decode("utf-8-sig", errors="replace")


def _log_bad_line(fields: List[str]) -> None:
    logger.warning("Skipping malformed CSV line with %d fields: %r", len(fields), fields[:3])
    return None


def parse_csv_text(text: str) -> List[Dict[str, str]]:
    if not text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_log_bad_line,
        )
    except pd.errors.EmptyDataError:
        return []
    df.columns = [normalize_header_key(c) for c in df.columns]
    # rows where every cell is blank are spreadsheet padding
    df = df[(df.apply(lambda col: col.str.strip()) != "").any(axis=1)]
    return df.to_dict(orient="records")


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(source: str, timeout: Optional[float]) -> Dict[str, object]:
    logger.info("Loading payables snapshot from %s", source)
    text = fetch_csv_text(source, timeout=timeout)
    raw_rows = parse_csv_text(text)
    snapshot = ingest_rows(raw_rows)
    logger.info(
        "Ingested %d rows (%d without vendor excluded from financial views)",
        snapshot.row_count,
        snapshot.excluded_count,
    )
    return {
        "source": source,
        "loaded_at": datetime.now(timezone.utc),
        "snapshot": snapshot,
        "records": snapshot.records,
        "labels": snapshot.labels,
    }


def load_dashboard_data(source: Optional[str] = None, refresh: bool = False) -> Dict[str, object]:
    settings = load_settings()
    src = source or settings.csv_source
    if refresh:
        _load_dashboard_data_cached.cache_clear()
    return _load_dashboard_data_cached(src, settings.fetch_timeout)


def latest_date(records: List[Record], anchor: str) -> Optional[date]:
    """Most recent payment or anchor date among the records."""
    best: Optional[date] = None
    for r in records:
        for d in (r.payment_date.value, r.anchor_date(anchor)):
            if d is not None and (best is None or d > best):
                best = d
    return best


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters or {})
    all_records: List[Record] = list(data_ctx.get("records", ()) or ())

    filtered_records = filter_records(all_records, filt)
    # groups are rebuilt per request so the anchor choice is honoured
    all_groups = build_groups(all_records, anchor=filt.anchor)
    filtered_groups = filter_groups(all_groups, filt)

    included = [r for g in filtered_groups for r in g.members]
    today = filt.as_of or utc_today()
    as_of = latest_date(included, filt.anchor)

    return {
        "filters": filt,
        "all_records": all_records,
        "filtered_records": filtered_records,
        "all_groups": all_groups,
        "filtered_groups": filtered_groups,
        "labels": data_ctx.get("labels"),
        "as_of": as_of,
        "today": today,
    }
