# Shared pytest fixtures
from __future__ import annotations

import csv
from pathlib import Path
from typing import Callable, Dict, List

import pytest

from core.data import _load_dashboard_data_cached, prepare_context
from core.records import Record, ingest_rows

ROW_FIELDS = [
    "sector",
    "project",
    "vendor",
    "code",
    "request_id",
    "amount_total",
    "amount_paid",
    "amount_canceled",
    "source_request_date",
    "payment_request_date",
    "approval_date",
    "payment_date",
    "exact_time",
]


@pytest.fixture()
def make_row() -> Callable[..., Dict[str, str]]:
    def _make(**fields) -> Dict[str, str]:
        row = {name: "" for name in ROW_FIELDS}
        row.update({k: str(v) for k, v in fields.items()})
        return row

    return _make


@pytest.fixture()
def scenario_rows(make_row) -> List[Dict[str, str]]:
    """Three line items: two share a submission, the third is another project."""
    return [
        make_row(sector="Roads", project="P1", vendor="Acme", code="A-1", amount_total=1000, amount_paid=400,
                 exact_time="09:00", payment_request_date="2026-01-10"),
        make_row(sector="Roads", project="P1", vendor="Beta", code="B-7", amount_total=500, amount_paid=500,
                 exact_time="09:00", payment_request_date="2026-01-10"),
        make_row(sector="Roads", project="P2", vendor="Acme", code="A-2", amount_total=200, amount_paid=0,
                 exact_time="10:00", payment_request_date="2026-01-10"),
    ]


@pytest.fixture()
def scenario_records(scenario_rows) -> List[Record]:
    return list(ingest_rows(scenario_rows).records)


@pytest.fixture()
def records_from() -> Callable[[List[Dict[str, str]]], List[Record]]:
    def _build(rows: List[Dict[str, str]]) -> List[Record]:
        return list(ingest_rows(rows).records)

    return _build


@pytest.fixture()
def context_for() -> Callable[..., Dict[str, object]]:
    """Request context over the given raw rows, filtered by keyword filters."""

    def _ctx(rows: List[Dict[str, str]], **filters) -> Dict[str, object]:
        snapshot = ingest_rows(rows)
        return prepare_context(filters, {"records": snapshot.records, "labels": snapshot.labels})

    return _ctx


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    def _write(rows: List[Dict[str, str]], name: str = "data.csv", bom: bool = True) -> Path:
        path = tmp_path / name
        headers = list(rows[0].keys()) if rows else ROW_FIELDS
        with path.open("w", encoding="utf-8-sig" if bom else "utf-8", newline="") as fh:
            writer = csv.DictWriter(fh, fieldnames=headers)
            writer.writeheader()
            writer.writerows(rows)
        return path

    return _write


@pytest.fixture(autouse=True)
def clear_data_cache():
    _load_dashboard_data_cached.cache_clear()
    yield
    _load_dashboard_data_cached.cache_clear()
