from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ROOT_DIR = Path(__file__).resolve().parents[1]

DEFAULT_CSV_SOURCE = str(ROOT_DIR / "data.csv")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    csv_source: str = DEFAULT_CSV_SOURCE
    # None means wait for the transport indefinitely
    fetch_timeout: Optional[float] = None
    log_level: str = "INFO"


def _env_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return None
    return value if value > 0 else None


def load_settings() -> Settings:
    return Settings(
        csv_source=os.environ.get("PAYABLES_CSV_SOURCE", "").strip() or DEFAULT_CSV_SOURCE,
        fetch_timeout=_env_float("PAYABLES_FETCH_TIMEOUT"),
        log_level=(os.environ.get("LOG_LEVEL", "").strip() or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
