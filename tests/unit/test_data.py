from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.data import (
    DataSourceError,
    fetch_csv_text,
    load_dashboard_data,
    parse_csv_text,
    prepare_context,
)


def test_fetch_file_strips_bom(write_csv, scenario_rows):
    path = write_csv(scenario_rows, bom=True)
    text = fetch_csv_text(str(path))
    assert not text.startswith("\ufeff")
    assert text.startswith("sector,project,vendor")


def test_fetch_missing_file(tmp_path):
    with pytest.raises(DataSourceError):
        fetch_csv_text(str(tmp_path / "missing.csv"))


def test_fetch_url_sends_no_store():
    resp = MagicMock()
    resp.content = "\ufeffvendor\r\nAcme\r\n".encode("utf-8")
    with patch("core.data.requests.get", return_value=resp) as get:
        text = fetch_csv_text("https://example.org/sheet.csv", timeout=5)
    assert text == "vendor\r\nAcme\r\n"
    get.assert_called_once()
    assert get.call_args.kwargs["headers"] == {"Cache-Control": "no-store"}
    assert get.call_args.kwargs["timeout"] == 5


@pytest.mark.parametrize(
    "failure",
    [requests.ConnectionError("boom"), requests.Timeout("slow")],
)
def test_fetch_url_transport_failure(failure):
    with patch("core.data.requests.get", side_effect=failure):
        with pytest.raises(DataSourceError):
            fetch_csv_text("https://example.org/sheet.csv")


def test_fetch_url_http_error():
    resp = MagicMock()
    resp.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    with patch("core.data.requests.get", return_value=resp):
        with pytest.raises(DataSourceError):
            fetch_csv_text("http://example.org/sheet.csv")


def test_parse_skips_blank_rows():
    text = "vendor,project\r\nAcme,P1\r\n\r\n , \r\nBeta,P2\r\n"
    rows = parse_csv_text(text)
    assert rows == [{"vendor": "Acme", "project": "P1"}, {"vendor": "Beta", "project": "P2"}]


def test_parse_keeps_quoted_fields():
    text = 'vendor,project\n"Acme, Inc","line one\nline two"\n'
    (row,) = parse_csv_text(text)
    assert row == {"vendor": "Acme, Inc", "project": "line one\nline two"}


def test_parse_normalizes_headers():
    (row,) = parse_csv_text("\ufeff Vendor ,\u200fProject\nAcme,P1\n")
    assert set(row) == {"Vendor", "Project"}


def test_parse_logs_and_skips_malformed_lines(caplog):
    with caplog.at_level(logging.WARNING, logger="core.data"):
        rows = parse_csv_text("vendor,project\nAcme,P1\nBad,row,extra\nBeta,P2\n")
    assert [r["vendor"] for r in rows] == ["Acme", "Beta"]
    assert "malformed" in caplog.text


def test_parse_empty_text():
    assert parse_csv_text("") == []
    assert parse_csv_text("   \n") == []


def test_load_is_cached_until_refresh(monkeypatch, write_csv, scenario_rows):
    path = write_csv(scenario_rows)
    monkeypatch.setenv("PAYABLES_CSV_SOURCE", str(path))

    first = load_dashboard_data()
    assert first["snapshot"].row_count == 3
    assert load_dashboard_data() is first

    write_csv(scenario_rows[:1])
    assert load_dashboard_data()["snapshot"].row_count == 3
    refreshed = load_dashboard_data(refresh=True)
    assert refreshed is not first
    assert refreshed["snapshot"].row_count == 1


def test_load_failure_is_not_cached(monkeypatch, tmp_path, write_csv, scenario_rows):
    path = tmp_path / "data.csv"
    monkeypatch.setenv("PAYABLES_CSV_SOURCE", str(path))
    with pytest.raises(DataSourceError):
        load_dashboard_data()
    write_csv(scenario_rows)
    assert load_dashboard_data()["snapshot"].row_count == 3


def test_prepare_context(scenario_records):
    ctx = prepare_context({"project": "P1", "as_of": "2026-02-01"}, {"records": scenario_records, "labels": None})
    assert set(ctx) == {
        "filters",
        "all_records",
        "filtered_records",
        "all_groups",
        "filtered_groups",
        "labels",
        "as_of",
        "today",
    }
    assert len(ctx["all_records"]) == 3
    assert len(ctx["filtered_records"]) == 2
    assert len(ctx["all_groups"]) == 2
    assert [g.project for g in ctx["filtered_groups"]] == ["P1"]
    assert ctx["as_of"].isoformat() == "2026-01-10"
    assert ctx["today"].isoformat() == "2026-02-01"
