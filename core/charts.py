from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


DAY_PICK = "day_pick"


def daily_bar_chart(rows: List[Dict[str, Any]], value_field: str, title: str, value_format: str = ",") -> alt.Chart:
    """Bar per day; each datum carries ``day`` so a click can open that day's drill-down."""
    df = pd.DataFrame(rows, columns=["day", value_field])
    pick = alt.selection_point(fields=["day"], name=DAY_PICK)
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("day:O", title="Day", axis=alt.Axis(labelAngle=-45)),
            y=alt.Y(f"{value_field}:Q", title=title, axis=alt.Axis(format="~s", gridDash=[4, 4])),
            opacity=alt.condition(pick, alt.value(1), alt.value(0.5)),
            tooltip=["day", alt.Tooltip(f"{value_field}:Q", format=value_format)],
        )
        .add_params(pick)
        .properties(height=260)
    )


def selected_day(selection: Optional[Mapping[str, Any]]) -> Optional[date]:
    """Day clicked in a ``daily_bar_chart``, read from a chart selection event."""
    points = (selection or {}).get(DAY_PICK) or []
    for point in points:
        try:
            return date.fromisoformat(str(point.get("day", ""))[:10])
        except ValueError:
            continue
    return None


def weekday_bar_chart(rows: List[Dict[str, Any]]) -> alt.Chart:
    df = pd.DataFrame(rows, columns=["weekday", "paid", "count"])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("weekday:N", sort=None, title="Weekday"),
            y=alt.Y("paid:Q", title="Paid", axis=alt.Axis(format="~s")),
            tooltip=["weekday", alt.Tooltip("paid:Q", format=",.2f"), "count"],
        )
        .properties(height=220)
    )
