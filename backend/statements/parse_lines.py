from __future__ import annotations

import logging
import re
from datetime import date as date_cls, datetime
from typing import List, Optional

from .csv_extract import detect_mapping, resolve_columns, rows_to_candidates
from .extract_types import Candidate, ExtractionResult
from .normalize import clean_description, is_valid_description, parse_amount

logger = logging.getLogger(__name__)


# Date at the start of a statement line. Formats without a year take the statement year.
_LEADING_DATE_PATTERNS = [
    ("%m/%d/%Y", re.compile(r"^(\d{1,2}/\d{1,2}/\d{4})\b")),
    ("%m/%d/%y", re.compile(r"^(\d{1,2}/\d{1,2}/\d{2})\b")),
    ("%Y-%m-%d", re.compile(r"^(\d{4}-\d{2}-\d{2})\b")),
    ("%b %d, %Y", re.compile(r"^([A-Za-z]{3}\s+\d{1,2},\s+\d{4})\b")),
    ("%d %b %Y", re.compile(r"^(\d{1,2}\s+[A-Za-z]{3}\s+\d{4})\b")),
    ("%m/%d", re.compile(r"^(\d{1,2}/\d{1,2})(?![/\d])")),
    ("%b %d", re.compile(r"^([A-Za-z]{3}\s+\d{1,2})(?![,\d])")),
]

# Money always carries cents on statements; bare integers are reference numbers.
_MONEY_RX = re.compile(
    r"(?<![\w/.])([-+]?\(?-?\$?\d{1,3}(?:,\d{3})*\.\d{2}\)?-?(?:\s?(?:CR|DR)\b)?)(?![\w/])",
    re.I,
)

_YEAR_RX = re.compile(r"\b(19\d{2}|20\d{2})\b")
_OPENING_BALANCE_RX = re.compile(r"^(beginning|opening|previous)\s+balance\b", re.I)

_NOISE_PREFIXES = ("page ", "continued", "date description", "date transaction", "total ")

_CREDIT_HINTS = ("deposit", "credit", "refund", "interest paid", "payment received",
                 "transfer from", "direct dep")


def _infer_year(lines: List[str]) -> int:
    """Statement year: the first year mentioned near a period/statement heading, else any year."""
    for ln in lines[:60]:
        low = ln.lower()
        if "statement" in low or "period" in low or "through" in low:
            m = _YEAR_RX.search(ln)
            if m:
                return int(m.group(1))
    for ln in lines[:200]:
        m = _YEAR_RX.search(ln)
        if m:
            return int(m.group(1))
    return date_cls.today().year


def _leading_date(line: str, default_year: int) -> tuple[Optional[str], int]:
    """Return (iso date, length of the matched prefix) or (None, 0)."""
    for fmt, rx in _LEADING_DATE_PATTERNS:
        m = rx.match(line)
        if not m:
            continue
        token = re.sub(r"\s+", " ", m.group(1))
        try:
            if "%Y" in fmt or "%y" in fmt:
                parsed = datetime.strptime(token, fmt).date()
            else:
                parsed = datetime.strptime(f"{token} {default_year}", f"{fmt} %Y").date()
        except ValueError:
            continue
        return parsed.isoformat(), m.end()
    return None, 0


def _has_explicit_sign(token: str) -> bool:
    t = token.upper()
    return "-" in t or "(" in t or t.endswith("CR") or t.endswith("DR") or t.startswith("+")


def _infer_sign(magnitude: float, balance: Optional[float], prev_balance: Optional[float],
                description: str) -> float:
    """Pick the sign of an unsigned amount from the running balance, then from wording."""
    if balance is not None and prev_balance is not None:
        if abs(prev_balance + magnitude - balance) < 0.005:
            return magnitude
        if abs(prev_balance - magnitude - balance) < 0.005:
            return -magnitude
    low = description.lower()
    if any(h in low for h in _CREDIT_HINTS):
        return magnitude
    return -magnitude


def parse_statement_text(text: str) -> ExtractionResult:
    """
    Best-effort parsing of a line-oriented statement text dump.

    A line is a candidate when it starts with a date and carries at least one
    money token. With two or more money tokens the last one is the running
    balance and the one before it is the amount. Dated lines that cannot be
    turned into a candidate go to the diagnostic log.
    """
    lines = [ln.strip() for ln in (text or "").splitlines()]
    default_year = _infer_year([ln for ln in lines if ln])
    result = ExtractionResult(method="pdf_text")
    prev_balance: Optional[float] = None

    for idx, ln in enumerate(lines, start=1):
        if not ln:
            continue
        low = ln.lower()
        if low.startswith(_NOISE_PREFIXES):
            continue

        if _OPENING_BALANCE_RX.match(ln):
            tokens = _MONEY_RX.findall(ln)
            if tokens:
                prev_balance = parse_amount(tokens[-1])
            continue

        iso, date_end = _leading_date(ln, default_year)
        if not iso:
            continue

        rest = ln[date_end:]
        matches = list(_MONEY_RX.finditer(rest))
        if not matches:
            result.add_diagnostic(idx, ln, "no amount on dated line")
            continue

        desc = clean_description(rest[: matches[0].start()])
        if not is_valid_description(desc):
            result.add_diagnostic(idx, ln, "no description on dated line")
            continue

        amount_token = matches[-2].group(1) if len(matches) >= 2 else matches[0].group(1)
        balance = parse_amount(matches[-1].group(1)) if len(matches) >= 2 else None
        amount = parse_amount(amount_token)
        if amount is None or amount == 0:
            result.add_diagnostic(idx, ln, f"unparseable amount '{amount_token}'")
            continue

        if not _has_explicit_sign(amount_token):
            amount = _infer_sign(abs(amount), balance, prev_balance, desc)

        result.candidates.append(
            Candidate(date=iso, description=desc, amount=amount, raw_balance=balance, line_no=idx)
        )
        if balance is not None:
            prev_balance = balance

    logger.debug(
        "Parsed %d candidates from %d text lines (%d diagnostics)",
        len(result.candidates), len(lines), len(result.diagnostics),
    )
    return result


def parse_tables(tables: List[List[List[str]]]) -> ExtractionResult:
    """
    Parse pdfplumber tables. A table's header row is found among its first
    rows by the same column names used for CSV detection; header-less tables
    that follow (page continuations) reuse the last header with the same width.
    """
    result = ExtractionResult(method="pdf_tables")
    last_header: Optional[List[str]] = None
    row_base = 0

    for raw_table in tables:
        table = [[(c or "").strip() for c in row] for row in raw_table if row]
        header_idx = None
        for i, row in enumerate(table[:5]):
            if detect_mapping(row) is not None:
                header_idx = i
                break

        if header_idx is not None:
            header = table[header_idx]
            body = table[header_idx + 1:]
            last_header = header
        elif last_header is not None and table and len(table[0]) == len(last_header):
            header = last_header
            body = table
        else:
            row_base += len(table)
            continue

        mapping = detect_mapping(header)
        cols = resolve_columns(header, mapping)
        rows = [dict(zip(header, r)) for r in body]
        first_line = row_base + len(table) - len(body) + 1
        part = rows_to_candidates(rows, mapping, cols, first_line=first_line)
        result.candidates.extend(part.candidates)
        for d in part.diagnostics:
            result.add_diagnostic(d["line"], d["text"], d["reason"])
        row_base += len(table)

    return result
