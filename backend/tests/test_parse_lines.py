import time

import pytest

import statements.extract as extract_module
from errors import ExtractionTimeoutError, ValidationError
from statements.analysis import running_balance_mismatches
from statements.extract import extract_pdf, extract_statement
from statements.extract_types import Candidate, ExtractionResult, MAX_DIAGNOSTICS
from statements.parse_lines import parse_statement_text, parse_tables


STATEMENT_TEXT = """\
Example Bank
Statement Period: 01/01/2024 through 01/31/2024
Date Description Amount Balance
Beginning Balance 1,000.00
01/02 Direct Deposit ACME Corp 2,500.00 3,500.00
01/05 Whole Foods Market 120.45 3,379.55
01/07 Netflix.com 15.99 3,363.56
01/09 Refund Amazon Marketplace 25.00 CR
01/11 Wire Fee 30.00 DR
01/12 Check 1234 (50.00)
01/14 ATM adjustment pending
Page 1 of 2
"""


def test_text_lines_become_signed_candidates():
    result = parse_statement_text(STATEMENT_TEXT)
    assert result.method == "pdf_text"
    rows = [(c.date, c.description, c.amount, c.raw_balance) for c in result.candidates]
    assert rows == [
        ("2024-01-02", "Direct Deposit ACME Corp", 2500.0, 3500.0),
        ("2024-01-05", "Whole Foods Market", -120.45, 3379.55),
        ("2024-01-07", "Netflix.com", -15.99, 3363.56),
        ("2024-01-09", "Refund Amazon Marketplace", 25.0, None),
        ("2024-01-11", "Wire Fee", -30.0, None),
        ("2024-01-12", "Check 1234", -50.0, None),
    ]


def test_unparsed_dated_lines_are_diagnostics():
    result = parse_statement_text(STATEMENT_TEXT)
    assert len(result.diagnostics) == 1
    diag = result.diagnostics[0]
    assert diag["text"].startswith("01/14 ATM adjustment")
    assert diag["reason"] == "no amount on dated line"
    assert diag["line"] == 11


def test_year_comes_from_the_statement_period():
    text = "Statement Period: 12/01/2023 - 12/31/2023\n12/15 Corner Coffee Shop 4.50\n"
    cand = parse_statement_text(text).candidates[0]
    assert cand.date == "2023-12-15"
    assert cand.amount == -4.5


def test_full_dates_and_month_names():
    text = (
        "2024-02-03 Kroger 18.20 981.80\n"
        "Feb 04, 2024 Interest Paid 1.05 982.85\n"
        "05 Feb 2024 Shell Oil 40.00 942.85\n"
    )
    result = parse_statement_text(text)
    assert [c.date for c in result.candidates] == ["2024-02-03", "2024-02-04", "2024-02-05"]
    # No opening balance: the first row's sign comes from wording, later rows from the balance.
    assert [c.amount for c in result.candidates] == [-18.2, 1.05, -40.0]


def test_empty_text_has_no_candidates():
    result = parse_statement_text("")
    assert result.candidates == []
    assert result.diagnostics == []


def test_tables_with_page_continuation():
    tables = [
        [
            ["Date", "Description", "Amount", "Balance"],
            ["01/03/2024", "Trader Joe's", "-54.10", "945.90"],
        ],
        [
            ["01/04/2024", "Shell Oil", "-40.00", "905.90"],
            ["01/05/2024", None, "-1.00", "904.90"],
        ],
    ]
    result = parse_tables(tables)
    assert result.method == "pdf_tables"
    assert [(c.date, c.description, c.amount) for c in result.candidates] == [
        ("2024-01-03", "Trader Joe's", -54.1),
        ("2024-01-04", "Shell Oil", -40.0),
    ]
    assert [d["reason"] for d in result.diagnostics] == ["missing description"]


def test_tables_without_a_header_are_ignored():
    assert parse_tables([[["foo", "bar"], ["1", "2"]]]).candidates == []


def test_pdf_prefers_clean_tables(monkeypatch):
    tables = [[["Date", "Description", "Amount"], ["2024-01-03", "Kroger", "-5.00"]]]
    monkeypatch.setattr(extract_module, "extract_tables", lambda data, max_pages=None: tables)

    def no_text(data, max_pages=None):
        raise AssertionError("text extraction should not run")

    monkeypatch.setattr(extract_module, "extract_text", no_text)
    result = extract_pdf(b"%PDF")
    assert result.method == "pdf_tables"
    assert len(result.candidates) == 1


def test_pdf_falls_back_to_text(monkeypatch):
    monkeypatch.setattr(extract_module, "extract_tables", lambda data, max_pages=None: [])
    monkeypatch.setattr(extract_module, "extract_text", lambda data, max_pages=None: STATEMENT_TEXT)
    result = extract_statement(b"%PDF", "PDF", timeout=5)
    assert result.method == "pdf_text"
    assert len(result.candidates) == 6


def test_pdf_extraction_timeout(monkeypatch):
    def slow(data, max_pages=None):
        time.sleep(1)
        return ExtractionResult(method="pdf_text")

    monkeypatch.setattr(extract_module, "extract_pdf", slow)
    with pytest.raises(ExtractionTimeoutError):
        extract_statement(b"%PDF", "PDF", timeout=0.05)


def test_unknown_source_type():
    with pytest.raises(ValidationError):
        extract_statement(b"", "XLSX")


def test_running_balance_mismatches():
    cands = [
        Candidate("2024-01-01", "A", -10.0, 90.0, 1),
        Candidate("2024-01-02", "B", -5.0, 85.0, 2),
        Candidate("2024-01-03", "C", -5.0, 70.0, 3),
        Candidate("2024-01-04", "D", 1.0, None, 4),
        Candidate("2024-01-05", "E", 2.0, 500.0, 5),
    ]
    mismatches = running_balance_mismatches(cands)
    assert len(mismatches) == 1
    assert mismatches[0]["line"] == 3
    assert mismatches[0]["expected_balance"] == 80.0


def test_diagnostics_are_capped_and_payload_round_trips():
    result = ExtractionResult(method="csv")
    for i in range(MAX_DIAGNOSTICS + 5):
        result.add_diagnostic(i, "x", "bad")
    assert len(result.diagnostics) == MAX_DIAGNOSTICS
    assert result.dropped_diagnostics == 5

    result.candidates.append(Candidate("2024-01-01", "Coffee", -3.0))
    restored = ExtractionResult.from_payload(result.to_payload("CSV"))
    assert restored.candidates == result.candidates
    assert restored.dropped_diagnostics == 5
