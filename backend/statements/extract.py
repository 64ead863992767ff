from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional

from errors import ExtractionTimeoutError, ValidationError
from models.statement_model import SOURCE_CSV, SOURCE_PDF

from .csv_extract import extract_csv
from .extract_types import ExtractionResult
from .parse_lines import parse_statement_text, parse_tables
from .pdf_extract import extract_tables, extract_text
from .schemas import ColumnMapping

logger = logging.getLogger(__name__)


def extract_pdf(data: bytes, max_pages: Optional[int] = 50) -> ExtractionResult:
    """
    Tables first; when they yield nothing useful fall back to the text
    heuristics. The richer of the two results wins.
    """
    from_tables = parse_tables(extract_tables(data, max_pages=max_pages))
    if from_tables.candidates and not from_tables.diagnostics:
        return from_tables

    from_text = parse_statement_text(extract_text(data, max_pages=max_pages))
    if len(from_tables.candidates) > len(from_text.candidates):
        return from_tables
    return from_text


def _extract_pdf_with_timeout(data: bytes, max_pages: Optional[int], timeout: Optional[float]) -> ExtractionResult:
    if not timeout:
        return extract_pdf(data, max_pages)

    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdf-extract")
    future = pool.submit(extract_pdf, data, max_pages)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        logger.warning("PDF extraction exceeded %ss", timeout)
        raise ExtractionTimeoutError(f"PDF extraction timed out after {timeout:g}s") from e
    finally:
        # A timed-out parse keeps running in its thread; we stop waiting for it.
        pool.shutdown(wait=False, cancel_futures=True)


def extract_statement(
    data: bytes,
    source_type: str,
    column_mapping: Optional[ColumnMapping] = None,
    max_pages: Optional[int] = 50,
    timeout: Optional[float] = None,
) -> ExtractionResult:
    """Turn stored statement bytes into candidate rows plus diagnostics."""
    if source_type == SOURCE_CSV:
        result = extract_csv(data, column_mapping)
    elif source_type == SOURCE_PDF:
        result = _extract_pdf_with_timeout(data, max_pages, timeout)
    else:
        raise ValidationError(f"Unsupported statement type '{source_type}'")

    logger.info(
        "Extracted %d candidates via %s (%d diagnostics)",
        len(result.candidates), result.method, len(result.diagnostics),
    )
    return result
