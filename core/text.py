from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, timedelta
from typing import Optional

_BIDI_RE = re.compile("[\u200e\u200f\u202a-\u202e\u2066-\u2069]")
_WS_RE = re.compile(r"\s+")

VENDOR_PLACEHOLDERS = {"-", "0", "null", "none"}

_ARABIC_FOLD = str.maketrans(
    {
        "\u0649": "\u064a",  # alef maksura -> yeh
        "\u0629": "\u0647",  # teh marbuta -> heh
        "\u0640": None,  # tatweel
    }
)
_DIGITS = str.maketrans("\u0660\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668\u0669\u06f0\u06f1\u06f2\u06f3\u06f4\u06f5\u06f6\u06f7\u06f8\u06f9", "01234567890123456789")

EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 20000
EXCEL_SERIAL_MAX = 80000
YEAR_MIN, YEAR_MAX = 1900, 2100


def normalize_text(x: object) -> str:
    if x is None:
        return ""
    if isinstance(x, float) and math.isnan(x):
        return ""
    s = _BIDI_RE.sub("", str(x))
    return _WS_RE.sub(" ", s).strip()


def normalize_header_key(h: object) -> str:
    """Header cells only: BOM stripped on top of the usual text cleanup."""
    return normalize_text(str(h if h is not None else "").replace("\ufeff", ""))


def normalize_key(x: object) -> str:
    """Fold a display label into an identity key.

    Case, Latin accents, Arabic diacritics and the common Arabic letter variants
    (hamza-carrying alefs, alef maksura, teh marbuta) all collapse, so that two
    spellings of the same project land on the same key.
    """
    s = normalize_text(x).casefold()
    if not s:
        return ""
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if unicodedata.category(ch) != "Mn")
    s = s.translate(_ARABIC_FOLD)
    return _WS_RE.sub(" ", s).strip()


def normalize_vendor(x: object) -> str:
    v = normalize_text(x)
    if v.lower() in VENDOR_PLACEHOLDERS:
        return ""
    return v


def to_number(x: object) -> float:
    s = normalize_text(x).translate(_DIGITS)
    if not s:
        return 0.0
    s = s.replace(",", "").replace("\u066c", "").replace("\u066b", ".").replace(" ", "")
    try:
        n = float(s)
    except ValueError:
        return 0.0
    if not math.isfinite(n):
        return 0.0
    return n


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _plausible_year(y: int) -> bool:
    return YEAR_MIN <= y <= YEAR_MAX


def parse_date_smart(s: object) -> Optional[date]:
    """Parse the date shapes found in the published sheet.

    Tried in order: Excel serial day count, ISO (``YYYY-MM-DD`` / ``YYYY/MM/DD``),
    ``A/B/YYYY`` or ``A-B-YYYY`` (day-first unless the second part can only be a
    day), and 8-digit compact strings. Returns ``None`` on failure, never raises.
    """
    t = normalize_text(s).translate(_DIGITS)
    if not t or t in {"-", "0"}:
        return None

    if re.fullmatch(r"\d+(\.\d+)?", t):
        num = float(t)
        if EXCEL_SERIAL_MIN < num < EXCEL_SERIAL_MAX:
            return EXCEL_EPOCH + timedelta(days=int(math.floor(num)))

    t = t.split("T")[0].split(" ")[0].strip()

    m = re.fullmatch(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})", t)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = re.fullmatch(r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})", t)
    if m:
        a, b, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if a > 12:
            return _safe_date(year, b, a)
        if b > 12:
            return _safe_date(year, a, b)
        return _safe_date(year, b, a)

    digits = re.sub(r"\D", "", t)
    if len(digits) == 8:
        head, tail = int(digits[:4]), int(digits[4:])
        found = None
        if _plausible_year(head):
            found = _safe_date(head, int(digits[4:6]), int(digits[6:8]))
        # 20012026 is a plausible yyyy head with an impossible month; read it day-first
        if found is None and _plausible_year(tail):
            found = _safe_date(tail, int(digits[2:4]), int(digits[0:2]))
        return found

    return None


def parse_user_date(s: object) -> Optional[date]:
    """Filter-box input: ``dd/mm/yyyy`` or eight raw digits ``ddmmyyyy``."""
    t = normalize_text(s).translate(_DIGITS)
    if not t:
        return None
    m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", t)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    if re.fullmatch(r"\d{8}", t) and _plausible_year(int(t[4:])):
        return _safe_date(int(t[4:]), int(t[2:4]), int(t[0:2]))
    return parse_date_smart(t)


def day_label(d: Optional[date]) -> str:
    if d is None:
        return ""
    return d.isoformat()
