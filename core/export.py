from __future__ import annotations

import csv
from typing import Iterable, List

import pandas as pd

from core.grouping import SubmissionGroup
from core.records import Record
from core.schema import CANONICAL_FIELDS
from core.text import day_label

RECORD_COLUMNS: List[str] = list(CANONICAL_FIELDS) + ["effective_total", "remaining"]
SUBMISSION_COLUMNS: List[str] = [
    "day",
    "sector",
    "project",
    "submission_time",
    "status",
    "line_count",
    "total",
    "paid",
    "remaining",
]


def _to_csv(df: pd.DataFrame) -> str:
    # QUOTE_MINIMAL quotes fields holding a comma, quote or newline and doubles inner quotes
    return df.to_csv(index=False, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")


def records_frame(records: Iterable[Record]) -> pd.DataFrame:
    return pd.DataFrame([r.to_row() for r in records], columns=RECORD_COLUMNS)


def export_records_csv(records: Iterable[Record]) -> str:
    return _to_csv(records_frame(records))


def export_groups_csv(groups: Iterable[SubmissionGroup]) -> str:
    """Flattened member rows of the given submissions, one line item per row."""
    return export_records_csv(r for g in groups for r in g.members)


def submissions_frame(groups: Iterable[SubmissionGroup]) -> pd.DataFrame:
    rows = [
        {
            "day": day_label(g.day),
            "sector": g.sector,
            "project": g.project,
            "submission_time": g.submission_time,
            "status": g.status,
            "line_count": g.line_count,
            "total": g.total,
            "paid": g.paid,
            "remaining": g.remaining,
        }
        for g in groups
    ]
    return pd.DataFrame(rows, columns=SUBMISSION_COLUMNS)


def export_submissions_csv(groups: Iterable[SubmissionGroup]) -> str:
    return _to_csv(submissions_frame(groups))
