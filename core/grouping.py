from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from core.records import DEFAULT_ANCHOR, STATUS_ORDER, Record
from core.text import day_label

HANDLE_SEP = "||"


class GroupKey(NamedTuple):
    sector_key: str
    project_key: str
    submission_time: str
    day: date

    @property
    def handle(self) -> str:
        """Stable string id; survives pipeline re-runs over the same data."""
        return HANDLE_SEP.join([day_label(self.day), self.sector_key, self.project_key, self.submission_time])


@dataclass(frozen=True)
class SubmissionGroup:
    """One logical submission ("email"): every line item sharing a GroupKey."""

    key: GroupKey
    sector: str
    project: str
    members: Tuple[Record, ...]

    @property
    def handle(self) -> str:
        return self.key.handle

    @property
    def sector_key(self) -> str:
        return self.key.sector_key

    @property
    def project_key(self) -> str:
        return self.key.project_key

    @property
    def submission_time(self) -> str:
        return self.key.submission_time

    @property
    def day(self) -> date:
        return self.key.day

    @property
    def total(self) -> float:
        return sum(r.effective_total for r in self.members)

    @property
    def paid(self) -> float:
        return sum(r.paid for r in self.members)

    @property
    def remaining(self) -> float:
        return sum(r.remaining for r in self.members)

    @property
    def line_count(self) -> int:
        return len(self.members)

    @property
    def status(self) -> str:
        # least advanced member wins
        return min((r.status for r in self.members), key=lambda s: STATUS_ORDER.get(s, 0))

    @property
    def paid_date(self) -> Optional[date]:
        dates = [r.payment_date.value for r in self.members if r.payment_date.value is not None]
        return max(dates) if dates else None

    @property
    def vendors(self) -> List[str]:
        seen: Dict[str, str] = {}
        for r in self.members:
            seen.setdefault(r.vendor_key, r.vendor)
        return list(seen.values())

    def to_dict(self) -> Dict[str, object]:
        return {
            "handle": self.handle,
            "day": day_label(self.day),
            "sector": self.sector,
            "project": self.project,
            "sector_key": self.sector_key,
            "project_key": self.project_key,
            "submission_time": self.submission_time,
            "status": self.status,
            "line_count": self.line_count,
            "vendors": self.vendors,
            "total": self.total,
            "paid": self.paid,
            "remaining": self.remaining,
            "paid_date": day_label(self.paid_date) or None,
        }


def group_key_for(record: Record, anchor: str = DEFAULT_ANCHOR) -> Optional[GroupKey]:
    if not record.submission_time:
        return None
    day = record.anchor_date(anchor)
    if day is None:
        return None
    return GroupKey(record.sector_key, record.project_key, record.submission_time, day)


def build_groups(records: Iterable[Record], anchor: str = DEFAULT_ANCHOR) -> List[SubmissionGroup]:
    """Partition included records into submissions.

    Line items of the same submission are summed, never deduplicated, even when
    they share a vendor. Records without a submission time or anchor date are
    left out. The result is sorted by key, so input order does not matter.
    """
    buckets: Dict[GroupKey, List[Record]] = {}
    for record in records:
        if record.excluded:
            continue
        key = group_key_for(record, anchor)
        if key is None:
            continue
        buckets.setdefault(key, []).append(record)

    groups = []
    for key in sorted(buckets, key=lambda k: (k.day, k.sector_key, k.project_key, k.submission_time)):
        members = sorted(buckets[key], key=lambda r: r.row_number)
        groups.append(
            SubmissionGroup(key=key, sector=members[0].sector, project=members[0].project, members=tuple(members))
        )
    return groups


def unique_submission_count(groups: Iterable[SubmissionGroup]) -> int:
    return len({g.key for g in groups})


def groups_by_handle(groups: Iterable[SubmissionGroup]) -> Dict[str, SubmissionGroup]:
    return {g.handle: g for g in groups}
