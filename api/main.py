from __future__ import annotations

import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import DashboardFiltersModel, DrilldownRequest
from core.config import configure_logging, load_settings
from core.data import DataSourceError, load_dashboard_data, prepare_context
from core.export import export_groups_csv, export_records_csv, export_submissions_csv
from core.filters import DashboardFilters, normalize_filters
from core.metrics_aging import compute_aging
from core.metrics_emails import compute_submissions
from core.metrics_forecast import compute_forecast
from core.metrics_overview import compute_overview
from core.metrics_payables import compute_scheduled_payables
from core.metrics_quality import compute_quality
from core.metrics_rankings import compute_rankings
from core.navigator import apply_action, navigator_from_dict, navigator_to_dict, render_view
from core.text import normalize_key

configure_logging(load_settings().log_level)

app = FastAPI(title="Payables Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EXPORTS = {
    "records": ("filtered_records", export_records_csv),
    "groups": ("filtered_groups", export_groups_csv),
    "submissions": ("filtered_groups", export_submissions_csv),
}


def _filters_from_model(model: DashboardFiltersModel) -> DashboardFilters:
    return normalize_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _source_error(exc: DataSourceError) -> JSONResponse:
    logger.error("CSV source unavailable: %s", exc)
    return JSONResponse(status_code=502, content={"error": str(exc), "type": type(exc).__name__})


def _server_error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _bad_request(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/meta/sectors")
def meta_sectors():
    try:
        labels = load_dashboard_data()["labels"]
        return _json({"sectors": labels.sector_options()})
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("meta_sectors failed")
        return _server_error(exc)


@app.get("/meta/projects")
def meta_projects(sector_key: str = Query(default="")):
    try:
        labels = load_dashboard_data()["labels"]
        return _json({"projects": labels.project_options(normalize_key(sector_key) or None)})
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("meta_projects failed")
        return _server_error(exc)


@app.post("/refresh")
def refresh():
    try:
        data_ctx = load_dashboard_data(refresh=True)
        snapshot = data_ctx["snapshot"]
        return _json(
            {
                "source": data_ctx["source"],
                "loaded_at": data_ctx["loaded_at"],
                "rows": snapshot.row_count,
                "excluded": snapshot.excluded_count,
            }
        )
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("refresh failed")
        return _server_error(exc)


@app.post("/overview")
def overview(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_overview(f, ctx))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("overview failed")
        return _server_error(exc)


@app.post("/aging")
def aging(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_aging(f, ctx))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("aging failed")
        return _server_error(exc)


@app.post("/rankings")
def rankings(filters: DashboardFiltersModel, by: Literal["outstanding", "count"] = Query(default="outstanding")):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_rankings(f, ctx, by=by))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("rankings failed")
        return _server_error(exc)


@app.post("/forecast")
def forecast(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_forecast(f, ctx))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("forecast failed")
        return _server_error(exc)


@app.post("/quality")
def quality(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_quality(f, ctx))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("quality failed")
        return _server_error(exc)


@app.post("/submissions")
def submissions(filters: DashboardFiltersModel):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_submissions(f, ctx))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("submissions failed")
        return _server_error(exc)


@app.post("/scheduled-payables")
def scheduled_payables(
    filters: DashboardFiltersModel,
    vendor: str = Query(default=""),
    state: Literal["", "paid", "overdue", "upcoming"] = Query(default=""),
    search: str = Query(default=""),
    page: int = Query(default=1, ge=1),
):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        return _json(compute_scheduled_payables(f, ctx, vendor=vendor, state=state, search=search, page=page))
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("scheduled_payables failed")
        return _server_error(exc)


@app.post("/drilldown")
def drilldown(req: DrilldownRequest):
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(req.filters)
        ctx = prepare_context(f, data_ctx)
        groups = ctx["filtered_groups"]
        labels = ctx["labels"]

        nav = navigator_from_dict(req.navigator)
        if req.action is not None:
            nav = apply_action(nav, req.action.model_dump(mode="json", exclude_none=True), groups, labels)
        view = render_view(nav, groups, labels)
        return _json({"navigator": navigator_to_dict(nav), "view": view.to_dict() if view is not None else None})
    except DataSourceError as exc:
        return _source_error(exc)
    except (KeyError, ValueError) as exc:
        logger.warning("bad drilldown request: %s", exc)
        return _bad_request(exc)
    except Exception as exc:
        logger.exception("drilldown failed")
        return _server_error(exc)


@app.post("/export/{kind}")
def export(kind: str, filters: DashboardFiltersModel):
    if kind not in EXPORTS:
        return JSONResponse(status_code=404, content={"error": f"Unknown export: {kind}", "type": "NotFound"})
    ctx_key, writer = EXPORTS[kind]
    try:
        data_ctx = load_dashboard_data()
        f = _filters_from_model(filters)
        ctx = prepare_context(f, data_ctx)
        csv_bytes = writer(ctx[ctx_key]).encode("utf-8")
    except DataSourceError as exc:
        return _source_error(exc)
    except Exception as exc:
        logger.exception("export failed")
        return _server_error(exc)

    filename = f"{kind}.csv"
    return Response(
        content=csv_bytes,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
