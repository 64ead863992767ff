from __future__ import annotations

import io
import logging
from typing import List

import pdfplumber
from pypdf import PdfReader

from errors import ExtractionError

logger = logging.getLogger(__name__)


def _page_span(total: int, max_pages: int | None) -> int:
    return min(total, max_pages) if max_pages else total


def extract_text_pdfplumber(data: bytes, max_pages: int | None = None) -> str:
    lines: List[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages[: _page_span(len(pdf.pages), max_pages)]:
            text = page.extract_text() or ""
            if text:
                lines.append(text)
    return "\n".join(lines)


def extract_text_pypdf(data: bytes, max_pages: int | None = None) -> str:
    reader = PdfReader(io.BytesIO(data))
    n = _page_span(len(reader.pages), max_pages)
    return "\n".join((reader.pages[i].extract_text() or "") for i in range(n))


def extract_text(data: bytes, max_pages: int | None = 50) -> str:
    """
    Best-effort text extraction: pdfplumber first, pypdf when pdfplumber
    fails or finds nothing. Scanned (image only) statements come back empty.
    """
    try:
        text = extract_text_pdfplumber(data, max_pages=max_pages)
        if text and text.strip():
            return text
    except Exception as e:
        logger.warning("pdfplumber could not read statement, falling back to pypdf: %s", e)

    try:
        return extract_text_pypdf(data, max_pages=max_pages)
    except Exception as e:
        raise ExtractionError(f"Unreadable PDF: {e}") from e


def extract_tables(data: bytes, max_pages: int | None = 50) -> List[List[List[str]]]:
    """
    Tables found by pdfplumber, each a list of rows of cell strings.
    Returns [] when the document has no ruled tables or cannot be opened.
    """
    all_tables: List[List[List[str]]] = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages[: _page_span(len(pdf.pages), max_pages)]:
                for t in page.extract_tables() or []:
                    if t:
                        all_tables.append(
                            [[str(c).strip() if c is not None else "" for c in row] for row in t]
                        )
    except Exception as e:
        logger.warning("pdfplumber table extraction failed: %s", e)
        return []
    return all_tables
