from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ThresholdsModel(BaseModel):
    sla_days: int = 5
    forecast_window_days: int = 30
    forecast_horizons: List[int] = Field(default_factory=lambda: [7, 14])
    chart_days: int = 15


class DashboardFiltersModel(BaseModel):
    sector_key: str = ""
    project_key: str = ""
    status: str = ""
    # dd/mm/yyyy, ddmmyyyy or ISO
    date_from: str = ""
    date_to: str = ""
    anchor: str = "payment_request"
    top_n: int = 5
    as_of: str = ""
    thresholds: ThresholdsModel = Field(default_factory=ThresholdsModel)


class NavActionModel(BaseModel):
    type: Literal["open_day", "open_project", "open_email", "prev", "next", "back", "close", "click_row"]
    day: Optional[date] = None
    project_key: Optional[str] = None
    sector_key: Optional[str] = None
    handle: Optional[str] = None
    siblings: Optional[List[str]] = None
    index: Optional[int] = None


class DrilldownRequest(BaseModel):
    filters: DashboardFiltersModel = Field(default_factory=DashboardFiltersModel)
    navigator: Dict[str, Any] = Field(default_factory=dict)
    action: Optional[NavActionModel] = None

