from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional


DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%d/%m/%y",
    "%m-%d-%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
]

_CURRENCY_RX = re.compile(r"(USD|EUR|GBP|INR|Rs\.?|[$€£₹])", re.I)
_NUMBER_RX = re.compile(r"-?\d+(?:\.\d+)?")


def normalize_date(raw: str, date_format: Optional[str] = None) -> Optional[str]:
    """Return YYYY-MM-DD, or None when the value is not a recognised date."""
    raw = (raw or "").strip()
    if not raw:
        return None
    formats = [date_format] if date_format else DATE_FORMATS
    for fmt in formats:
        try:
            return datetime.strptime(raw, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None


def infer_date_format(values: Iterable[str]) -> Optional[str]:
    """
    One format for a whole date column: the first known format that parses
    every non-empty cell, else the one that parses the most cells.
    Keeps 12/01 and 13/01 on the same day-first or month-first reading.
    """
    cells = [v.strip() for v in values if v and v.strip()]
    if not cells:
        return None
    best, best_hits = None, 0
    for fmt in DATE_FORMATS:
        hits = sum(1 for c in cells if normalize_date(c, fmt))
        if hits == len(cells):
            return fmt
        if hits > best_hits:
            best, best_hits = fmt, hits
    return best


def parse_amount(raw) -> Optional[float]:
    """
    Parse a money cell into a signed float.
    Handles thousands separators, currency symbols, (parentheses) and
    trailing minus as negatives, and trailing CR / DR markers.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s or s.lower() in ("-", "nan", "none", "null"):
        return None

    sign = 1
    upper = s.upper()
    if upper.endswith("CR"):
        s = s[:-2].strip()
    elif upper.endswith("DR"):
        s = s[:-2].strip()
        sign = -1

    if s.startswith("(") and s.endswith(")"):
        s = s[1:-1]
        sign = -sign
    if s.endswith("-"):
        s = s[:-1]
        sign = -sign

    s = _CURRENCY_RX.sub("", s).replace(",", "").replace(" ", "")
    if s.startswith("-"):
        s = s[1:]
        sign = -sign
    if s.startswith("+"):
        s = s[1:]
    if not _NUMBER_RX.fullmatch(s):
        return None
    try:
        return round(sign * float(s), 2)
    except ValueError:
        return None


def clean_description(desc: str) -> str:
    return re.sub(r"\s+", " ", desc or "").strip()


def is_valid_description(desc: str) -> bool:
    """Reject empty and purely numeric/punctuation descriptions."""
    d = clean_description(desc)
    if len(d) < 2:
        return False
    return bool(re.search(r"[A-Za-z]", d))
