import pytest

from errors import ValidationError
from statements.csv_extract import (
    detect_mapping,
    estimate_record_count,
    extract_csv,
    resolve_columns,
    validate_mapping_against,
)
from statements.normalize import (
    infer_date_format,
    is_valid_description,
    normalize_date,
    parse_amount,
)
from statements.schemas import ColumnMapping, parse_column_mapping


@pytest.mark.parametrize(
    "text,expected",
    [
        ("", 0),
        ("Date,Description,Amount\n", 0),
        ("Date,Description,Amount\n2024-01-01,A,1.00\n", 1),
        ("Date,Description,Amount\n2024-01-01,A,1.00\n2024-01-02,B,2.00\n\n  \n", 2),
    ],
)
def test_estimate_record_count(text, expected):
    assert estimate_record_count(text.encode()) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1,234.56", 1234.56),
        ("$45.00", 45.0),
        ("-12.30", -12.3),
        ("(99.99)", -99.99),
        ("15.00-", -15.0),
        ("20.00 CR", 20.0),
        ("20.00 DR", -20.0),
        ("+7.5", 7.5),
        ("", None),
        ("n/a", None),
        (None, None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_normalize_date_formats():
    assert normalize_date("2024-01-31") == "2024-01-31"
    assert normalize_date("01/31/2024") == "2024-01-31"
    assert normalize_date("31/01/2024") == "2024-01-31"
    assert normalize_date("Jan 5, 2024") == "2024-01-05"
    assert normalize_date("05-01-2024", "%d-%m-%Y") == "2024-01-05"
    assert normalize_date("yesterday") is None


def test_description_validation():
    assert is_valid_description("Coffee")
    assert not is_valid_description("12345")
    assert not is_valid_description(" ")


def test_mapping_accepts_desc_alias_and_json():
    mapping = parse_column_mapping('{"date": "Date", "desc": "Memo", "amount": "Amt"}')
    assert mapping.description == "Memo"
    assert mapping.columns() == {"date": "Date", "description": "Memo", "amount": "Amt"}


def test_mapping_requires_an_amount_source():
    with pytest.raises(ValidationError):
        parse_column_mapping({"date": "Date", "description": "Memo"})
    with pytest.raises(ValidationError):
        parse_column_mapping("[1, 2]")
    assert parse_column_mapping("") is None
    assert parse_column_mapping(None) is None


def test_resolve_columns_is_case_insensitive():
    mapping = ColumnMapping(date="date", description="MEMO", amount="amt")
    cols = resolve_columns(["Date", "Memo", "Amt"], mapping)
    assert cols == {"date": "Date", "description": "Memo", "amount": "Amt"}


def test_validate_mapping_names_the_missing_column():
    mapping = ColumnMapping(date="Date", description="Memo", amount="Total")
    with pytest.raises(ValidationError) as exc:
        validate_mapping_against(b"Date,Memo,Amt\n", mapping)
    assert "Total" in exc.value.message


def test_detect_mapping():
    m = detect_mapping(["Transaction Date", "Payee", "Amount", "Running Balance"])
    assert (m.date, m.description, m.amount, m.balance) == (
        "Transaction Date", "Payee", "Amount", "Running Balance",
    )
    split = detect_mapping(["Date", "Details", "Withdrawal", "Deposit"])
    assert split.amount is None
    assert (split.debit, split.credit) == ("Withdrawal", "Deposit")
    assert detect_mapping(["When", "What", "HowMuch"]) is None


def test_extract_csv_with_mapping():
    data = (
        "Date,Memo,Amt,Bal\n"
        "2024-01-05,Whole Foods,-120.45,879.55\n"
        "2024-01-06,\"Salary, ACME\",2500.00,3379.55\n"
    ).encode()
    mapping = ColumnMapping(date="Date", description="Memo", amount="Amt", balance="Bal")
    result = extract_csv(data, mapping)
    assert result.method == "csv"
    assert [c.amount for c in result.candidates] == [-120.45, 2500.0]
    assert result.candidates[1].description == "Salary, ACME"
    assert result.candidates[1].raw_balance == 3379.55
    assert result.candidates[0].line_no == 2
    assert result.diagnostics == []


def test_extract_csv_keeps_bad_rows_as_diagnostics():
    data = (
        "Date,Description,Amount\n"
        "2024-01-05,Coffee,-3.00\n"
        "someday,Tea,-2.00\n"
        "2024-01-07,,-2.00\n"
        "2024-01-08,Lunch,abc\n"
        "2024-01-09,Nothing,0.00\n"
    ).encode()
    result = extract_csv(data, None)
    assert len(result.candidates) == 1
    reasons = [d["reason"] for d in result.diagnostics]
    assert reasons[0].startswith("unparseable date")
    assert reasons[1] == "missing description"
    assert reasons[2].startswith("unparseable amount")
    assert reasons[3] == "zero amount"
    assert [d["line"] for d in result.diagnostics] == [3, 4, 5, 6]


def test_extract_csv_without_detectable_columns():
    with pytest.raises(ValidationError):
        extract_csv(b"a,b,c\n1,2,3\n", None)
    with pytest.raises(ValidationError):
        extract_csv(b"", None)


def test_extract_csv_handles_bom_and_cp1252():
    data = "\ufeffDate,Description,Amount\n2024-01-05,Café Rouge,-8.00\n".encode("utf-8")
    assert extract_csv(data, None).candidates[0].description == "Café Rouge"

    data = "Date,Description,Amount\n2024-01-05,Café Rouge,-8.00\n".encode("cp1252")
    assert extract_csv(data, None).candidates[0].description == "Café Rouge"


def test_day_first_column_is_read_one_way():
    data = (
        b"Date,Description,Amount\n"
        b"12/01/2024,Grocery A,-1.00\n"
        b"13/01/2024,Grocery B,-2.00\n"
    )
    assert [c.date for c in extract_csv(data, None).candidates] == ["2024-01-12", "2024-01-13"]


def test_month_first_column_is_read_one_way():
    data = (
        b"Date,Description,Amount\n"
        b"01/12/2024,Grocery A,-1.00\n"
        b"01/13/2024,Grocery B,-2.00\n"
    )
    assert [c.date for c in extract_csv(data, None).candidates] == ["2024-01-12", "2024-01-13"]


def test_infer_date_format():
    assert infer_date_format(["12/01/2024", "13/01/2024", ""]) == "%d/%m/%Y"
    assert infer_date_format(["2024-01-05", "someday"]) == "%Y-%m-%d"
    assert infer_date_format(["", "  "]) is None


PREAMBLE_CSV = (
    b"Account: 000123456\n"
    b"Statement period: January 2024\n"
    b"\n"
    b"Date,Description,Amount\n"
    b"2024-01-05,Coffee,-3.00\n"
    b"2024-01-06,Books,-12.00\n"
)


def test_header_below_preamble_is_found():
    result = extract_csv(PREAMBLE_CSV, None)
    assert [c.description for c in result.candidates] == ["Coffee", "Books"]
    assert result.candidates[0].line_no == 5
    assert estimate_record_count(PREAMBLE_CSV) == 2


def test_mapping_is_checked_against_header_below_preamble():
    mapping = ColumnMapping(date="Date", description="Description", amount="Amount")
    validate_mapping_against(PREAMBLE_CSV, mapping)
    assert estimate_record_count(PREAMBLE_CSV, mapping) == 2
    assert len(extract_csv(PREAMBLE_CSV, mapping).candidates) == 2
