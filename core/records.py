from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.schema import resolve_header
from core.text import normalize_key, normalize_text, normalize_vendor, parse_date_smart, to_number

NO_SECTOR_LABEL = "(no sector)"
NO_PROJECT_LABEL = "(no project)"

STATUS_UNKNOWN = ""
STATUS_REQUESTED = "1"
STATUS_APPROVED = "2"
STATUS_PAID = "3"
STATUS_LABELS = {
    STATUS_REQUESTED: "Requested",
    STATUS_APPROVED: "Approved",
    STATUS_PAID: "Paid",
    STATUS_UNKNOWN: "Indeterminate",
}
STATUS_ORDER = {STATUS_UNKNOWN: 0, STATUS_REQUESTED: 1, STATUS_APPROVED: 2, STATUS_PAID: 3}

# anchor name -> date fields tried in order
ANCHORS: Dict[str, Tuple[str, ...]] = {
    "payment_request": ("payment_request_date", "source_request_date"),
    "source_request": ("source_request_date",),
    "payment": ("payment_date",),
}
DEFAULT_ANCHOR = "payment_request"


def classify_status(has_payment_request: bool, has_approval: bool, has_payment: bool) -> str:
    if not has_payment_request:
        return STATUS_UNKNOWN
    if has_approval and has_payment:
        return STATUS_PAID
    if has_approval:
        return STATUS_APPROVED
    if has_payment:
        # paid without approval: no defined status, reported as an anomaly
        return STATUS_UNKNOWN
    return STATUS_REQUESTED


def is_status_anomaly(has_payment_request: bool, has_approval: bool, has_payment: bool) -> bool:
    return has_payment_request and has_payment and not has_approval


@dataclass(frozen=True)
class DateField:
    raw: str = ""
    value: Optional[date] = None

    @classmethod
    def parse(cls, raw: object) -> "DateField":
        text = normalize_text(raw)
        return cls(raw=text, value=parse_date_smart(text))

    @property
    def present(self) -> bool:
        return bool(self.raw)

    @property
    def valid(self) -> bool:
        return self.value is not None

    @property
    def invalid(self) -> bool:
        return self.present and self.value is None


@dataclass(frozen=True)
class Record:
    """One spreadsheet data row after normalization."""

    row_number: int
    sector: str
    project: str
    sector_key: str
    project_key: str
    vendor: str
    vendor_key: str
    code: str = ""
    request_id: str = ""
    account_item: str = ""
    sheet_status: str = ""
    amount_total: float = 0.0
    amount_paid: float = 0.0
    amount_canceled: float = 0.0
    amount_remaining_reported: float = 0.0
    effective_total: float = 0.0
    paid: float = 0.0
    remaining: float = 0.0
    source_request_date: DateField = field(default_factory=DateField)
    payment_request_date: DateField = field(default_factory=DateField)
    approval_date: DateField = field(default_factory=DateField)
    payment_date: DateField = field(default_factory=DateField)
    time_code: str = ""
    exact_time: str = ""
    submission_time: str = ""
    status: str = STATUS_UNKNOWN

    @property
    def excluded(self) -> bool:
        return not self.vendor

    @property
    def status_anomaly(self) -> bool:
        return is_status_anomaly(
            self.payment_request_date.valid, self.approval_date.valid, self.payment_date.valid
        )

    @property
    def date_fields(self) -> Tuple[DateField, ...]:
        return (self.source_request_date, self.payment_request_date, self.approval_date, self.payment_date)

    def anchor_date(self, anchor: str = DEFAULT_ANCHOR) -> Optional[date]:
        for name in ANCHORS.get(anchor, ANCHORS[DEFAULT_ANCHOR]):
            value = getattr(self, name).value
            if value is not None:
                return value
        return None

    def to_row(self) -> Dict[str, object]:
        """Flat dict with the input column set plus the derived amounts."""
        return {
            "sector": self.sector,
            "project": self.project,
            "account_item": self.account_item,
            "status": self.sheet_status,
            "request_id": self.request_id,
            "code": self.code,
            "vendor": self.vendor,
            "amount_total": self.amount_total,
            "amount_paid": self.amount_paid,
            "amount_canceled": self.amount_canceled,
            "amount_remaining": self.amount_remaining_reported,
            "source_request_date": self.source_request_date.raw,
            "payment_request_date": self.payment_request_date.raw,
            "approval_date": self.approval_date.raw,
            "payment_date": self.payment_date.raw,
            "time_code": self.time_code,
            "exact_time": self.exact_time,
            "effective_total": self.effective_total,
            "paid": self.paid,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class LabelIndexDelta:
    sector_key: str
    sector_label: str
    project_key: str
    project_label: str


@dataclass(frozen=True)
class LabelIndex:
    """Key -> display label lookups for sectors and projects.

    Built once per ingest pass from the deltas the row normalizer returns; the
    first label seen for a key is the one displayed.
    """

    sector_labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    project_labels: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    projects_by_sector: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_deltas(cls, deltas: Iterable[LabelIndexDelta]) -> "LabelIndex":
        sectors: Dict[str, str] = {}
        projects: Dict[str, str] = {}
        by_sector: Dict[str, List[str]] = {}
        for d in deltas:
            if d.sector_key:
                sectors.setdefault(d.sector_key, d.sector_label)
            if d.project_key:
                projects.setdefault(d.project_key, d.project_label)
                bucket = by_sector.setdefault(d.sector_key, [])
                if d.project_key not in bucket:
                    bucket.append(d.project_key)
        return cls(
            sector_labels=MappingProxyType(sectors),
            project_labels=MappingProxyType(projects),
            projects_by_sector=MappingProxyType({k: tuple(v) for k, v in by_sector.items()}),
        )

    def sector_label(self, key: str) -> str:
        return self.sector_labels.get(key) or key or NO_SECTOR_LABEL

    def project_label(self, key: str) -> str:
        return self.project_labels.get(key) or key or NO_PROJECT_LABEL

    def sector_options(self) -> List[Dict[str, str]]:
        keys = sorted(self.sector_labels, key=lambda k: self.sector_labels[k])
        return [{"key": k, "label": self.sector_labels[k]} for k in keys]

    def project_options(self, sector_key: Optional[str] = None) -> List[Dict[str, str]]:
        if sector_key:
            keys = list(self.projects_by_sector.get(sector_key, ()))
        else:
            keys = list(self.project_labels)
        keys.sort(key=lambda k: self.project_labels.get(k, k))
        return [{"key": k, "label": self.project_labels.get(k, k)} for k in keys]


def map_headers(raw: Mapping[str, object]) -> Dict[str, object]:
    """Re-key a raw row by canonical field; the first column mapping to a field wins."""
    row: Dict[str, object] = {}
    for key, value in raw.items():
        name = resolve_header(key)
        if name is None or name in row:
            continue
        row[name] = value
    return row


def normalize_row(raw: Mapping[str, object], row_number: int = 0) -> Tuple[Record, LabelIndexDelta]:
    row = map_headers(raw)
    get = lambda name: normalize_text(row.get(name))  # noqa: E731

    sector = get("sector") or NO_SECTOR_LABEL
    project = get("project")
    vendor = normalize_vendor(row.get("vendor"))

    amount_total = to_number(row.get("amount_total"))
    amount_paid = to_number(row.get("amount_paid"))
    amount_canceled = to_number(row.get("amount_canceled"))
    effective_total = max(0.0, amount_total - max(0.0, amount_canceled))
    paid = max(0.0, amount_paid)
    remaining = max(0.0, effective_total - paid)

    source_request_date = DateField.parse(row.get("source_request_date"))
    payment_request_date = DateField.parse(row.get("payment_request_date"))
    approval_date = DateField.parse(row.get("approval_date"))
    payment_date = DateField.parse(row.get("payment_date"))

    time_code = get("time_code")
    exact_time = get("exact_time")

    record = Record(
        row_number=row_number,
        sector=sector,
        project=project,
        sector_key=normalize_key(sector),
        project_key=normalize_key(project),
        vendor=vendor,
        vendor_key=normalize_key(vendor),
        code=get("code"),
        request_id=get("request_id"),
        account_item=get("account_item"),
        sheet_status=get("status"),
        amount_total=amount_total,
        amount_paid=amount_paid,
        amount_canceled=amount_canceled,
        amount_remaining_reported=to_number(row.get("amount_remaining")),
        effective_total=effective_total,
        paid=paid,
        remaining=remaining,
        source_request_date=source_request_date,
        payment_request_date=payment_request_date,
        approval_date=approval_date,
        payment_date=payment_date,
        time_code=time_code,
        exact_time=exact_time,
        submission_time=exact_time or time_code,
        status=classify_status(payment_request_date.valid, approval_date.valid, payment_date.valid),
    )
    delta = LabelIndexDelta(
        sector_key=record.sector_key,
        sector_label=sector,
        project_key=record.project_key,
        project_label=project,
    )
    return record, delta


@dataclass(frozen=True)
class Snapshot:
    """Everything derived from one fetched CSV document."""

    records: Tuple[Record, ...]
    labels: LabelIndex

    @property
    def row_count(self) -> int:
        return len(self.records)

    @property
    def included(self) -> Tuple[Record, ...]:
        return tuple(r for r in self.records if not r.excluded)

    @property
    def excluded_count(self) -> int:
        return sum(1 for r in self.records if r.excluded)


def ingest_rows(raw_rows: Sequence[Mapping[str, object]]) -> Snapshot:
    records: List[Record] = []
    deltas: List[LabelIndexDelta] = []
    # data rows start on sheet row 2 (row 1 is the header)
    for idx, raw in enumerate(raw_rows, start=2):
        record, delta = normalize_row(raw, row_number=idx)
        records.append(record)
        deltas.append(delta)
    return Snapshot(records=tuple(records), labels=LabelIndex.from_deltas(deltas))


__all__ = [
    "ANCHORS",
    "DEFAULT_ANCHOR",
    "DateField",
    "LabelIndex",
    "LabelIndexDelta",
    "NO_PROJECT_LABEL",
    "NO_SECTOR_LABEL",
    "Record",
    "STATUS_APPROVED",
    "STATUS_LABELS",
    "STATUS_ORDER",
    "STATUS_PAID",
    "STATUS_REQUESTED",
    "STATUS_UNKNOWN",
    "Snapshot",
    "classify_status",
    "ingest_rows",
    "is_status_anomaly",
    "map_headers",
    "normalize_row",
]
