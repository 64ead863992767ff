from __future__ import annotations

import csv
import logging
from io import StringIO
from typing import Dict, List, Optional, Tuple

from errors import ExtractionError, ValidationError

from .extract_types import Candidate, ExtractionResult
from .normalize import (
    clean_description,
    infer_date_format,
    is_valid_description,
    normalize_date,
    parse_amount,
)
from .schemas import ColumnMapping

logger = logging.getLogger(__name__)

# Header names seen on common bank exports, most specific first.
DATE_COLS = ["date", "transaction date", "txn date", "posting date", "posted date", "value date"]
DESC_COLS = ["description", "memo", "narration", "particulars", "transaction description",
             "details", "payee", "merchant", "remarks"]
AMOUNT_COLS = ["amount", "amt", "transaction amount", "txn amount"]
DEBIT_COLS = ["debit", "withdrawal", "withdrawals", "debit amount", "dr"]
CREDIT_COLS = ["credit", "deposit", "deposits", "credit amount", "cr"]
BALANCE_COLS = ["balance", "running balance", "closing balance", "available balance"]

_ENCODINGS = ("utf-8-sig", "utf-8", "cp1252", "latin-1")


def decode_bytes(data: bytes) -> str:
    for enc in _ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            continue
    raise ExtractionError("Could not decode CSV file")


# Bank exports may put account details above the column header.
HEADER_SCAN_ROWS = 10


def _read_rows(text: str) -> List[List[str]]:
    try:
        return [[(c or "").strip() for c in row] for row in csv.reader(StringIO(text))]
    except csv.Error as e:
        raise ExtractionError(f"Malformed CSV: {e}") from e


def _has_columns(row: List[str], mapping: ColumnMapping) -> bool:
    cells = {c.lower() for c in row if c}
    return all(wanted.strip().lower() in cells for wanted in mapping.columns().values())


def find_header(
    rows: List[List[str]], mapping: Optional[ColumnMapping] = None
) -> Tuple[Optional[int], List[str]]:
    """
    Index and cells of the header row. The first rows are scanned for one that
    carries the mapped columns (or detectable ones when there is no mapping);
    when none does, the first non-blank row is returned so errors can name it.
    """
    first = None
    seen = 0
    for idx, row in enumerate(rows):
        if not any(row):
            continue
        if first is None:
            first = idx
        if mapping is not None and _has_columns(row, mapping):
            return idx, row
        if mapping is None and detect_mapping(row) is not None:
            return idx, row
        seen += 1
        if seen >= HEADER_SCAN_ROWS:
            break
    if first is None:
        return None, []
    return first, rows[first]


def read_header(text: str, mapping: Optional[ColumnMapping] = None) -> List[str]:
    return find_header(_read_rows(text), mapping)[1]


def estimate_record_count(data: bytes, mapping: Optional[ColumnMapping] = None) -> int:
    """Non-blank rows below the header row, floored at zero."""
    text = decode_bytes(data)
    try:
        rows = _read_rows(text)
    except ExtractionError:
        lines = [ln for ln in text.splitlines() if ln.strip()]
        return max(0, len(lines) - 1)
    header_idx, _ = find_header(rows, mapping)
    if header_idx is None:
        return 0
    return sum(1 for row in rows[header_idx + 1:] if any(row))


def _find_col(cols_lower: Dict[str, str], candidates: List[str]) -> Optional[str]:
    for c in candidates:
        if c in cols_lower:
            return cols_lower[c]
    return None


def detect_mapping(header: List[str]) -> Optional[ColumnMapping]:
    """Guess a mapping from well-known header names; None if a required field is missing."""
    cols = {h.lower().strip(): h for h in header if h}
    date_col = _find_col(cols, DATE_COLS)
    desc_col = _find_col(cols, DESC_COLS)
    amt_col = _find_col(cols, AMOUNT_COLS)
    debit_col = _find_col(cols, DEBIT_COLS)
    credit_col = _find_col(cols, CREDIT_COLS)
    if not date_col or not desc_col:
        return None
    if not amt_col and not (debit_col and credit_col):
        return None
    return ColumnMapping(
        date=date_col,
        description=desc_col,
        amount=amt_col,
        debit=None if amt_col else debit_col,
        credit=None if amt_col else credit_col,
        balance=_find_col(cols, BALANCE_COLS),
    )


def resolve_columns(header: List[str], mapping: ColumnMapping) -> Dict[str, str]:
    """
    Map each mapped field to the actual header cell (exact match, then
    case-insensitive). Raises ValidationError naming the first missing column.
    """
    exact = {h: h for h in header}
    lower = {h.lower(): h for h in header}
    resolved = {}
    for field, wanted in mapping.columns().items():
        hit = exact.get(wanted.strip()) or lower.get(wanted.strip().lower())
        if hit is None:
            raise ValidationError(
                f"Column '{wanted}' mapped to {field} not found in CSV header"
            )
        resolved[field] = hit
    return resolved


def validate_mapping_against(data: bytes, mapping: ColumnMapping) -> None:
    """Upload-time check that every mapped column exists in the header row."""
    header = read_header(decode_bytes(data), mapping)
    if not header:
        raise ValidationError("CSV file has no header row")
    resolve_columns(header, mapping)


def _row_amount(row: dict, cols: Dict[str, str]) -> Tuple[Optional[float], Optional[str]]:
    if "amount" in cols:
        raw = row.get(cols["amount"])
        amount = parse_amount(raw)
        if amount is None:
            return None, f"unparseable amount '{raw}'"
        return amount, None

    debit = parse_amount(row.get(cols["debit"]))
    credit = parse_amount(row.get(cols["credit"]))
    if debit:
        return -abs(debit), None
    if credit:
        return abs(credit), None
    return None, "no debit or credit value"


def rows_to_candidates(
    rows: List[dict], mapping: ColumnMapping, cols: Dict[str, str], first_line: int = 2
) -> ExtractionResult:
    result = ExtractionResult()
    date_format = mapping.date_format or infer_date_format(
        str(row.get(cols["date"]) or "") for row in rows
    )
    for offset, row in enumerate(rows):
        line_no = first_line + offset
        if not any((str(v or "")).strip() for v in row.values()):
            continue

        raw_date = str(row.get(cols["date"]) or "")
        date = normalize_date(raw_date, date_format)
        if not date and not mapping.date_format:
            date = normalize_date(raw_date)
        if not date:
            result.add_diagnostic(line_no, raw_date, f"unparseable date '{raw_date}'")
            continue

        desc = clean_description(str(row.get(cols["description"]) or ""))
        if not is_valid_description(desc):
            result.add_diagnostic(line_no, desc, "missing description")
            continue

        amount, problem = _row_amount(row, cols)
        if problem:
            result.add_diagnostic(line_no, desc, problem)
            continue
        if amount == 0:
            result.add_diagnostic(line_no, desc, "zero amount")
            continue

        balance = parse_amount(row.get(cols["balance"])) if "balance" in cols else None
        result.candidates.append(
            Candidate(
                date=date,
                description=desc,
                amount=amount,
                raw_balance=balance,
                line_no=line_no,
            )
        )
    return result


def extract_csv(data: bytes, mapping: Optional[ColumnMapping]) -> ExtractionResult:
    """
    Parse a CSV statement into candidates. Without an explicit mapping the
    columns are detected from the header; a required field that cannot be
    resolved is a ValidationError.
    """
    all_rows = _read_rows(decode_bytes(data))
    header_idx, header = find_header(all_rows, mapping)
    if not header:
        raise ValidationError("CSV file has no header row")

    if mapping is None:
        mapping = detect_mapping(header)
        if mapping is None:
            raise ValidationError(
                "Could not detect date, description and amount columns; supply a column_mapping"
            )
        logger.debug("Detected CSV column mapping %s", mapping.columns())
    if header_idx:
        logger.debug("CSV header found below %d preamble rows", header_idx)

    cols = resolve_columns(header, mapping)
    rows = [dict(zip(header, r)) for r in all_rows[header_idx + 1:]]

    result = rows_to_candidates(rows, mapping, cols, first_line=header_idx + 2)
    result.method = "csv"
    return result
