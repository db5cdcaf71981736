"""Weekday payment pattern and a plain moving-average outlook.

The forecast is ``sum of payments in the trailing window / window days * N``.
It is a linear average of recent throughput; it has no notion of seasonality,
trend or the pipeline of approved-but-unpaid submissions.

Only line items inside a filtered submission count, so a paid row with no
submission time stays out of the pattern, like it stays out of every other
submission-level figure.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Iterable, List, Sequence

import pandas as pd

from core.charts import to_vega_spec, weekday_bar_chart
from core.filters import DashboardFilters
from core.grouping import SubmissionGroup
from core.records import Record

# Sunday first, matching the working week of the source sheet
WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def _paid_frame(records: Iterable[Record]) -> pd.DataFrame:
    rows = [
        {"paid_date": r.payment_date.value, "amount": r.paid}
        for r in records
        if r.payment_date.value is not None and r.paid > 0
    ]
    df = pd.DataFrame(rows, columns=["paid_date", "amount"])
    df["paid_date"] = pd.to_datetime(df["paid_date"])
    return df


def weekday_pattern(records: Iterable[Record], window_days: int = 30) -> Dict[str, Any]:
    """Paid amount and payment count per weekday.

    The window is the ``window_days`` days ending at the latest payment date in
    ``records``, not at today's date.
    """
    df = _paid_frame(records)
    if df.empty:
        return {
            "window_start": None,
            "window_end": None,
            "window_sum": 0.0,
            "rows": [{"weekday": name, "paid": 0.0, "count": 0} for name in WEEKDAYS],
        }

    end = df["paid_date"].max()
    start = end - pd.Timedelta(days=window_days - 1)
    window = df[(df["paid_date"] >= start) & (df["paid_date"] <= end)].copy()
    # pandas counts Monday as 0
    window["weekday_idx"] = (window["paid_date"].dt.dayofweek + 1) % 7
    agg = window.groupby("weekday_idx")["amount"].agg(["sum", "count"])

    rows = []
    for idx, name in enumerate(WEEKDAYS):
        if idx in agg.index:
            rows.append({"weekday": name, "paid": float(agg.at[idx, "sum"]), "count": int(agg.at[idx, "count"])})
        else:
            rows.append({"weekday": name, "paid": 0.0, "count": 0})

    return {
        "window_start": start.date().isoformat(),
        "window_end": end.date().isoformat(),
        "window_sum": float(window["amount"].sum()),
        "rows": rows,
    }


def moving_average_forecast(window_sum: float, window_days: int, horizons: Sequence[int] = (7, 14)) -> Dict[str, Any]:
    daily = window_sum / window_days if window_days else 0.0
    return {
        "method": "moving_average",
        "daily_average": daily,
        "horizons": [{"days": n, "amount": daily * n} for n in horizons],
    }


def compute_forecast(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    groups: List[SubmissionGroup] = ctx.get("filtered_groups", [])
    records = [r for g in groups for r in g.members]
    window_days = filters.thresholds.forecast_window_days

    pattern = weekday_pattern(records, window_days)
    forecast = moving_average_forecast(pattern["window_sum"], window_days, filters.thresholds.forecast_horizons)

    charts: Dict[str, Any] = {}
    if pattern["window_end"] is not None:
        charts["weekday_pattern"] = to_vega_spec(weekday_bar_chart(pattern["rows"]))

    return {
        "filters": asdict(filters),
        "weekday_pattern": pattern,
        "forecast": forecast,
        "charts": charts,
    }
