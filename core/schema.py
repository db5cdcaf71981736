"""Data contract for the published payment-requests sheet.

The sheet is maintained by hand, in Arabic, and its headers drift between
revisions. Every header variant ever seen is listed once in ``HEADER_MAP``;
nothing else in the pipeline compares header text.
"""

from __future__ import annotations

from typing import Dict, Optional

from core.text import normalize_header_key

SCHEMA_VERSION = 1

CANONICAL_FIELDS = (
    "sector",
    "project",
    "account_item",
    "status",
    "request_id",
    "code",
    "vendor",
    "amount_total",
    "amount_paid",
    "amount_canceled",
    "amount_remaining",
    "source_request_date",
    "payment_request_date",
    "approval_date",
    "payment_date",
    "time_code",
    "exact_time",
)

AMOUNT_FIELDS = ("amount_total", "amount_paid", "amount_canceled", "amount_remaining")
DATE_FIELDS = ("source_request_date", "payment_request_date", "approval_date", "payment_date")

COLUMNS: Dict[str, Dict[str, object]] = {
    "sector": {"label": "القطاع", "required": False},
    "project": {"label": "المشروع", "required": True},
    "account_item": {
        "label": "بند الحسابات",
        "required": True,
        "allowed": ["موردين", "مقاولين باطن", "سدادات", "عهدة", "تصاريح حفر"],
    },
    "status": {"label": "الحالة", "required": False, "allowed": ["Pending", "Partially Paid", "Paid", "Canceled"]},
    "request_id": {"label": "رقم الطلب", "required": False},
    "code": {"label": "كود الحساب", "required": True},
    "vendor": {"label": "المورد / المقاول", "required": True},
    "amount_total": {"label": "المبلغ", "required": True},
    "amount_paid": {"label": "المنصرف", "required": False},
    "amount_canceled": {"label": "الملغي", "required": False},
    "amount_remaining": {"label": "المتبقي", "required": True},
    "source_request_date": {"label": "تاريخ الطلب (من المشروع)", "required": False},
    "payment_request_date": {"label": "تاريخ طلب الصرف", "required": False},
    "approval_date": {"label": "تاريخ التعميد", "required": False},
    "payment_date": {"label": "تاريخ الصرف", "required": False},
    "time_code": {"label": "Time", "required": False},
    "exact_time": {"label": "Exact Time", "required": False},
}

_HEADER_VARIANTS: Dict[str, str] = {
    # sector
    "القطاع": "sector",
    "قطاع": "sector",
    "Sector": "sector",
    # project
    "المشروع": "project",
    "مشروع": "project",
    "Project": "project",
    "Project Name": "project",
    # account item
    "بند الحسابات": "account_item",
    "Account Item": "account_item",
    # status (sheet text, not the derived payment status)
    "الحالة": "status",
    "Status": "status",
    # identifiers
    "رقم الطلب": "request_id",
    "Request ID": "request_id",
    "Request No": "request_id",
    "الكود": "code",
    "كود الحساب": "code",
    "Code": "code",
    "Account Code": "code",
    "المورد": "vendor",
    "المورد/ المقاول": "vendor",
    "المورد/المقاول": "vendor",
    "المورد / المقاول": "vendor",
    "المقاول": "vendor",
    "Vendor": "vendor",
    "Supplier": "vendor",
    # amounts
    "المبلغ": "amount_total",
    "Amount": "amount_total",
    "Total": "amount_total",
    "المنصرف": "amount_paid",
    "Paid": "amount_paid",
    "ملغي": "amount_canceled",
    "الملغي": "amount_canceled",
    "Canceled": "amount_canceled",
    "Cancelled": "amount_canceled",
    "المتبقي": "amount_remaining",
    "Remaining": "amount_remaining",
    # dates
    "تاريخ الطلب (المصدر)": "source_request_date",
    "تاريخ الطلب من المشروع": "source_request_date",
    "تاريخ الطلب (من المشروع)": "source_request_date",
    "Source Request Date": "source_request_date",
    "تاريخ الطلب (الصرف)": "payment_request_date",
    "تاريخ طلب الصرف": "payment_request_date",
    "Payment Request Date": "payment_request_date",
    "تاريخ التعميد": "approval_date",
    "Approval Date": "approval_date",
    "تاريخ الصرف": "payment_date",
    "Payment Date": "payment_date",
    # submission time
    "Time": "time_code",
    "Time Code": "time_code",
    "الوقت": "time_code",
    "Exact Time": "exact_time",
    "Exact_Time": "exact_time",
    "الوقت بالضبط": "exact_time",
}


def header_lookup_key(h: object) -> str:
    return normalize_header_key(h).casefold()


HEADER_MAP: Dict[str, str] = {header_lookup_key(k): v for k, v in _HEADER_VARIANTS.items()}
HEADER_MAP.update({header_lookup_key(f): f for f in CANONICAL_FIELDS})


def resolve_header(h: object) -> Optional[str]:
    """Canonical field for a raw header cell, or None for columns we ignore."""
    return HEADER_MAP.get(header_lookup_key(h))
