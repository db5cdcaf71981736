from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from core.charts import daily_bar_chart, selected_day, weekday_bar_chart
from core.config import configure_logging, load_settings
from core.data import DataSourceError, load_dashboard_data, prepare_context
from core.export import export_groups_csv, export_records_csv, export_submissions_csv
from core.filters import normalize_filters
from core.metrics_aging import compute_aging
from core.metrics_emails import compute_submissions
from core.metrics_forecast import compute_forecast
from core.metrics_overview import compute_overview
from core.metrics_payables import compute_scheduled_payables, group_payables, is_scheduled_payable, vendor_lines
from core.metrics_quality import compute_quality
from core.metrics_rankings import RANK_BY_COUNT, RANK_BY_OUTSTANDING, compute_rankings
from core.navigator import Navigator, render_view, state_to_dict
from core.records import ANCHORS, STATUS_LABELS
from core.text import parse_user_date

alt.data_transformers.disable_max_rows()
configure_logging(load_settings().log_level)

ALL = "All"
STATUS_CHOICES = {ALL: "", "Requested (1)": "1", "Approved (2)": "2", "Paid (3)": "3"}
ANCHOR_LABELS = {
    "payment_request": "Payment-request date",
    "source_request": "Source-request date",
    "payment": "Payment date",
}
DUE_STATE_CHOICES = {ALL: "", "Overdue": "overdue", "Upcoming": "upcoming", "Paid": "paid"}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def fmt_money(value: Optional[float]) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"{float(value):,.0f}"


def fmt_pct(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.0%}"


def format_filter_summary(sector: str, project: str, status: str, date_from: str, date_to: str) -> str:
    chips = [
        f"Sector: {sector}",
        f"Project: {project}",
        f"Status: {status}",
        f"Dates: {date_from or '...'} to {date_to or '...'}" if (date_from or date_to) else "Dates: All",
    ]
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def render_page_header(title: str, breadcrumb: str, export_csv: Optional[str] = None, export_name: str = "export.csv"):
    inject_base_styles()
    c1, c2, c3 = st.columns([6, 2, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if st.button("Refresh data", key=f"refresh_{title}"):
            st.session_state["_force_refresh"] = True
            st.session_state["navigator"] = Navigator()
            st.rerun()
    with c3:
        if export_csv is not None:
            st.download_button("Export CSV", data=export_csv.encode("utf-8"), file_name=export_name, mime="text/csv")
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def frame(rows: List[Dict[str, Any]], columns: Optional[List[str]] = None) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=columns) if columns else pd.DataFrame(rows)


# ---------- UI setup ----------
st.set_page_config(page_title="Payment Requests Dashboard", layout="wide")
inject_base_styles()
st.title("Payment Requests Dashboard")
st.caption("Submissions, exposure and payment flow from the published payment-requests sheet.")

try:
    data_ctx = load_dashboard_data(refresh=st.session_state.pop("_force_refresh", False))
except DataSourceError as exc:
    st.error(f"Could not load the payment-requests sheet. {exc}")
    st.stop()

labels = data_ctx["labels"]
if "navigator" not in st.session_state:
    st.session_state["navigator"] = Navigator()

# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("### Navigate")
    page_choice = st.radio(
        "Navigate",
        ["Overview", "Aging & SLA", "Rankings", "Payment pattern", "Submissions", "Scheduled payables", "Data quality"],
        index=0,
    )

    st.markdown("---")
    st.markdown("### Filters")
    sector_opts = {ALL: ""}
    sector_opts.update({o["label"]: o["key"] for o in labels.sector_options()})
    sector_label = st.selectbox("Sector", list(sector_opts))
    sector_key = sector_opts[sector_label]

    project_opts = {ALL: ""}
    project_opts.update({o["label"]: o["key"] for o in labels.project_options(sector_key or None)})
    project_label = st.selectbox("Project", list(project_opts))
    project_key = project_opts[project_label]

    status_label = st.selectbox("Status", list(STATUS_CHOICES))
    date_from_txt = st.text_input("From (dd/mm/yyyy)", "")
    date_to_txt = st.text_input("To (dd/mm/yyyy)", "")
    for txt in (date_from_txt, date_to_txt):
        if txt and parse_user_date(txt) is None:
            st.warning(f"Unrecognised date: {txt}")
    anchor = st.selectbox("Group by date", list(ANCHORS), format_func=lambda a: ANCHOR_LABELS.get(a, a))

    st.markdown("---")
    with st.expander("Advanced settings", expanded=False):
        top_n = st.slider("Top N rows", min_value=3, max_value=50, value=5, step=1)
        sla_days = st.slider("SLA days", min_value=1, max_value=30, value=5)
        forecast_window_days = st.slider("Forecast window (days)", min_value=7, max_value=90, value=30)
        chart_days = st.slider("Chart days", min_value=7, max_value=60, value=15)
        as_of_txt = st.text_input("Aging reference date (blank = today, UTC)", "")

filters = normalize_filters(
    {
        "sector_key": sector_key,
        "project_key": project_key,
        "status": STATUS_CHOICES[status_label],
        "date_from": date_from_txt,
        "date_to": date_to_txt,
        "anchor": anchor,
        "top_n": top_n,
        "as_of": as_of_txt,
        "thresholds": {
            "sla_days": sla_days,
            "forecast_window_days": forecast_window_days,
            "chart_days": chart_days,
        },
    }
)
ctx = prepare_context(filters, data_ctx)
filter_summary_html = format_filter_summary(sector_label, project_label, status_label, date_from_txt, date_to_txt)


# ---------- Drill-down ----------
def render_drilldown():
    nav: Navigator = st.session_state["navigator"]
    view = render_view(nav, ctx["filtered_groups"], labels)
    if view is None:
        return
    with card(view.title):
        st.caption(view.subtitle)
        cols = st.columns([1, 1, 1, 4, 1])
        if cols[0].button("Back", disabled=not view.can_back, key="nav_back"):
            st.session_state["navigator"] = nav.back()
            st.rerun()
        if cols[1].button("Prev", disabled=not view.can_prev, key="nav_prev"):
            st.session_state["navigator"] = nav.prev()
            st.rerun()
        if cols[2].button("Next", disabled=not view.can_next, key="nav_next"):
            st.session_state["navigator"] = nav.next()
            st.rerun()
        if view.position:
            cols[3].markdown(f"{view.position[0]} / {view.position[1]}")
        if cols[4].button("Close", key="nav_close"):
            st.session_state["navigator"] = nav.close()
            st.rerun()

        table = frame(list(view.rows), list(view.columns))
        clickable = any(a is not None for a in view.row_actions)
        # a fresh key per screen so a selection never leaks into the next one
        key = "nav_table_" + str(abs(hash(repr((state_to_dict(view.state), len(nav.stack))))))
        if clickable:
            event = st.dataframe(
                table,
                hide_index=True,
                use_container_width=True,
                on_select="rerun",
                selection_mode="single-row",
                key=key,
            )
            picked = event.selection.rows if event is not None else []
            if picked:
                st.session_state["navigator"] = nav.click_row(view, picked[0])
                st.rerun()
            st.caption("Select a row to drill down.")
        else:
            st.dataframe(table, hide_index=True, use_container_width=True, key=key)


def day_chart(rows: List[Dict[str, Any]], key: str):
    """Daily bar chart; clicking a bar opens that day in the drill-down."""
    event = st.altair_chart(
        daily_bar_chart(rows, "submissions", "Submissions"),
        use_container_width=True,
        on_select="rerun",
        key=key,
    )
    day = selected_day(event.selection if event is not None else None)
    # the selection survives reruns; open each click once
    handled = f"{key}_opened"
    if day is None:
        st.session_state.pop(handled, None)
    elif st.session_state.get(handled) != day:
        st.session_state[handled] = day
        st.session_state["navigator"] = st.session_state["navigator"].close().open_day(day)
        st.rerun()
    st.caption("Click a bar to open that day.")


# ---------- Pages ----------
def render_overview_page():
    payload = compute_overview(filters, ctx)
    render_page_header(
        "Overview",
        "Home / Overview",
        export_csv=export_groups_csv(ctx["filtered_groups"]),
        export_name="payment_requests.csv",
    )
    k = payload["kpis"]
    with card("Totals"):
        cols = st.columns(4)
        cols[0].metric("Gross (after cancellations)", fmt_money(k["gross"]))
        cols[1].metric("Paid", fmt_money(k["paid"]))
        cols[2].metric("Remaining", fmt_money(k["remaining"]))
        cols[3].metric("Canceled", fmt_money(k["canceled"]))
        cols = st.columns(4)
        cols[0].metric("Submissions", f"{k['submissions']:,}", help="Distinct sector / project / time / day groups.")
        cols[1].metric("Line items", f"{k['line_items']:,}")
        cols[2].metric("Avg submissions / day", f"{k['avg_submissions_per_day']:.1f}")
        top = k["top_project"]
        cols[3].metric("Top project", top["project"] if top else "N/A", delta=f"{top['submissions']} submissions" if top else None)
        st.caption(f"As of: {payload['as_of'] or 'N/A'}")

    with card("Exposure by status"):
        exp = payload["exposure"]
        cols = st.columns(5)
        for i, code in enumerate(["1", "2", "3", ""]):
            cols[i].metric(STATUS_LABELS[code], fmt_money(exp[code]))
        cols[4].metric("All outstanding", fmt_money(exp["all"]))
        sla = payload["sla"]
        st.metric(
            f"Paid within {sla['sla_days']} days",
            fmt_pct(sla["pct"]),
            help="Share of paid amount settled within the SLA, weighted by amount.",
        )

    with card(f"Last {filters.thresholds.chart_days} days"):
        if not payload["daily"]:
            st.info("No submissions for the selected filters.")
        else:
            day_chart(payload["daily"], "overview_daily")
    render_drilldown()


def render_aging_page():
    payload = compute_aging(filters, ctx)
    render_page_header("Aging & SLA", "Home / Aging")
    k = payload["kpis"]
    with card("Outstanding"):
        cols = st.columns(4)
        cols[0].metric("Outstanding", fmt_money(k["outstanding"]))
        cols[1].metric("Overdue", fmt_money(k["overdue_amount"]), delta=f"{k['overdue_count']} submissions", delta_color="off")
        cols[2].metric("SLA (amount weighted)", fmt_pct(k["sla_pct"]))
        cols[3].metric("Reference date", payload["today"])
    with card("Due within"):
        st.dataframe(frame(payload["buckets"]), hide_index=True, use_container_width=True)
        st.caption("Overdue amounts are reported separately and never counted in a band.")
    with card("Open submissions"):
        if not payload["table"]:
            st.info("Nothing outstanding for the selected filters.")
        else:
            st.dataframe(frame(payload["table"]).drop(columns=["handle"]), hide_index=True, use_container_width=True)


def render_rankings_page():
    by = st.radio("Rank by", [RANK_BY_OUTSTANDING, RANK_BY_COUNT], horizontal=True)
    payload = compute_rankings(filters, ctx, by=by)
    render_page_header("Rankings", "Home / Rankings")
    c1, c2 = st.columns(2)
    with c1:
        with card(f"Top {filters.top_n} vendors"):
            st.dataframe(frame(payload["top_vendors"]), hide_index=True, use_container_width=True)
    with c2:
        with card(f"Top {filters.top_n} projects"):
            st.dataframe(frame(payload["top_projects"]), hide_index=True, use_container_width=True)
    with card("Bottlenecks"):
        if not payload["bottlenecks"]:
            st.info("No open submissions for the selected filters.")
        else:
            st.dataframe(frame(payload["bottlenecks"]), hide_index=True, use_container_width=True)
            st.caption(f"Average age counted to {payload['as_of']}.")


def render_pattern_page():
    payload = compute_forecast(filters, ctx)
    render_page_header("Payment pattern", "Home / Payment pattern")
    pattern = payload["weekday_pattern"]
    with card("Payments by weekday"):
        if pattern["window_end"] is None:
            st.info("No payments for the selected filters.")
        else:
            st.caption(f"Window: {pattern['window_start']} to {pattern['window_end']}")
            st.altair_chart(weekday_bar_chart(pattern["rows"]), use_container_width=True)
            st.dataframe(frame(pattern["rows"]), hide_index=True, use_container_width=True)
    with card("Outlook"):
        fc = payload["forecast"]
        cols = st.columns(1 + len(fc["horizons"]))
        cols[0].metric("Daily average", fmt_money(fc["daily_average"]))
        for i, h in enumerate(fc["horizons"], start=1):
            cols[i].metric(f"Next {h['days']} days", fmt_money(h["amount"]))
        st.caption("Linear moving average of the trailing window. Not a seasonal model.")


def render_submissions_page():
    payload = compute_submissions(filters, ctx)
    render_page_header(
        "Submissions",
        "Home / Submissions",
        export_csv=export_submissions_csv(ctx["filtered_groups"]),
        export_name="submissions.csv",
    )
    k = payload["kpis"]
    with card("Activity"):
        cols = st.columns(4)
        cols[0].metric("Submissions", f"{k['submissions']:,}")
        cols[1].metric("Active days", f"{k['active_days']:,}")
        cols[2].metric("Avg / day", f"{k['avg_per_day']:,}")
        top = k["top_project"]
        cols[3].metric("Top project", top["project"] if top else "N/A", delta=f"{top['submissions']} submissions" if top else None)
    with card("Per day"):
        if not payload["per_day"]:
            st.info("No submissions for the selected filters.")
        else:
            rows = payload["per_day"][-filters.thresholds.chart_days :]
            day_chart(rows, "submissions_daily")
    render_drilldown()
    with card("By day and project"):
        st.dataframe(
            frame(payload["summary"]).drop(columns=["sector_key", "project_key"], errors="ignore"),
            hide_index=True,
            use_container_width=True,
        )
    with card("All submissions"):
        details = frame(payload["details"])
        if not details.empty:
            details = details.drop(columns=["handle", "sector_key", "project_key"])
        st.dataframe(details, hide_index=True, use_container_width=True)


def render_payables_page():
    c1, c2, c3 = st.columns([3, 2, 3])
    vendor = c1.text_input("Vendor", "")
    state_label = c2.selectbox("Due state", list(DUE_STATE_CHOICES))
    search = c3.text_input("Search all vendors (code or name)", "")
    page = st.session_state.get("payables_page", 1)
    payload = compute_scheduled_payables(
        filters, ctx, vendor=vendor, state=DUE_STATE_CHOICES[state_label], search=search, page=page
    )
    render_page_header("Scheduled payables", "Home / Scheduled payables")
    k = payload["kpis"]
    with card("Totals"):
        cols = st.columns(4)
        cols[0].metric("Gross", fmt_money(k["gross"]), delta=f"{k['gross_count']} dues", delta_color="off")
        cols[1].metric("Paid", fmt_money(k["paid"]), delta=f"{k['paid_count']} with payments", delta_color="off")
        cols[2].metric("Outstanding", fmt_money(k["outstanding"]), delta=f"{k['outstanding_count']} open", delta_color="off")
        cols[3].metric("Overdue", fmt_money(k["overdue"]), delta=f"{k['overdue_count']} dues", delta_color="off")
    with card("Due within"):
        cols = st.columns(len(payload["buckets"]))
        for col, b in zip(cols, payload["buckets"]):
            col.metric(f"{b['bucket']} days", fmt_money(b["amount"]), delta=f"{b['count']} dues", delta_color="off")
    with card("Top vendors by outstanding"):
        top = payload["top_vendors"]
        if not top:
            st.info("No outstanding dues.")
        else:
            st.dataframe(frame(top).drop(columns=["vendor_key"]), hide_index=True, use_container_width=True)
            picked = st.selectbox("Vendor detail", [t["vendor"] for t in top])
            key = next(t["vendor_key"] for t in top if t["vendor"] == picked)
            groups = group_payables(r for r in ctx["all_records"] if is_scheduled_payable(r))
            st.dataframe(frame(vendor_lines(groups, key, ctx["today"])), hide_index=True, use_container_width=True)
    with card(f"Dues ({payload['shown']} of {payload['total_groups']})"):
        table = frame(payload["table"])
        if table.empty:
            st.info("No dues for the selected filters.")
        else:
            st.dataframe(table.drop(columns=["handle"]), hide_index=True, use_container_width=True)
    with card("All vendors"):
        allv = payload["all_vendors"]
        st.caption(f"Page {allv['page']} / {allv['pages']} | Rows: {allv['total']}")
        st.dataframe(frame(allv["rows"]).drop(columns=["vendor_key"], errors="ignore"), hide_index=True, use_container_width=True)
        c1, c2, _ = st.columns([1, 1, 6])
        if c1.button("Prev page", disabled=allv["page"] <= 1):
            st.session_state["payables_page"] = allv["page"] - 1
            st.rerun()
        if c2.button("Next page", disabled=allv["page"] >= allv["pages"]):
            st.session_state["payables_page"] = allv["page"] + 1
            st.rerun()


def render_quality_page():
    payload = compute_quality(filters, ctx)
    render_page_header(
        "Data quality",
        "Home / Data quality",
        export_csv=export_records_csv(ctx["filtered_records"]),
        export_name="rows_in_view.csv",
    )
    for title, block in (("All rows", payload["overall"]), ("Rows in view", payload["in_view"])):
        with card(f"{title} ({block['total']:,})"):
            df = frame(block["rows"]).drop(columns=["key"])
            df["pct"] = df["pct"].apply(lambda v: f"{v:.0%}" if v is not None and pd.notna(v) else "")
            st.dataframe(df, hide_index=True, use_container_width=True)
    st.caption(f"Source: {data_ctx['source']} | loaded {data_ctx['loaded_at']:%Y-%m-%d %H:%M} UTC")


if page_choice == "Overview":
    render_overview_page()
elif page_choice == "Aging & SLA":
    render_aging_page()
elif page_choice == "Rankings":
    render_rankings_page()
elif page_choice == "Payment pattern":
    render_pattern_page()
elif page_choice == "Submissions":
    render_submissions_page()
elif page_choice == "Scheduled payables":
    render_payables_page()
else:
    render_quality_page()
