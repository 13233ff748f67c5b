from __future__ import annotations

import datetime as dt

import pytest

from expense_extraction.core.errors import ExtractionError, ValidationRejected
from expense_extraction.core.intake import (MSG_CREATED, MSG_NO_AMOUNT, MSG_NO_FILE, MSG_UNREADABLE,
                                            build_expense_record, normalize_date,
                                            parse_fallback_amount, process_upload)
from expense_extraction.core.llm import ExpenseExtractor
from expense_extraction.core.models import ParsedExpense
from expense_extraction.core.processor import ExtractionOrchestrator

NOW = dt.datetime(2026, 10, 19, 12, 30, tzinfo=dt.timezone.utc)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-03-01", "2024-03-01T00:00:00.000Z"),
        ("2024-03-01T10:15:00Z", "2024-03-01T10:15:00.000Z"),
        ("2024-03-01T10:15:00+02:00", "2024-03-01T08:15:00.000Z"),
        ("03/15/2024", "2024-03-15T00:00:00.000Z"),
        ("Mar 1, 2024", "2024-03-01T00:00:00.000Z"),
        ("yesterday", "2026-10-19T12:30:00.000Z"),
        (None, "2026-10-19T12:30:00.000Z"),
        ("9999-12-31T23:00:00-05:00", "2026-10-19T12:30:00.000Z"),
        ("0001-01-01T01:00:00+05:00", "2026-10-19T12:30:00.000Z"),
    ],
)
def test_normalize_date(value, expected):
    assert normalize_date(value, now=NOW) == expected


@pytest.mark.parametrize(
    "value,expected",
    [("12.5", 12.5), (" 7 ", 7.0), ("", None), (None, None), ("abc", None), ("inf", None)],
)
def test_parse_fallback_amount(value, expected):
    assert parse_fallback_amount(value) == expected


def test_parsed_values_win_over_manual_values():
    parsed = ParsedExpense("Uber", 23.10, "Transportation", "2024-03-01")
    record = build_expense_record(parsed, "ride.jpg", description="Taxi", amount=5.0,
                                  category="Bills", now=NOW)
    assert record.to_dict() == {
        "description": "Uber",
        "amount": 23.10,
        "category": "Transportation",
        "date": "2024-03-01T00:00:00.000Z",
    }


def test_manual_values_fill_in_when_extraction_abstained():
    record = build_expense_record(None, "scan.pdf", amount=42.0, category="food", now=NOW)
    assert record.description == "Uploaded receipt (scan.pdf)"
    assert record.amount == 42.0
    assert record.category == "Food"
    assert record.date == "2026-10-19T12:30:00.000Z"


@pytest.mark.parametrize("amount", [None, 0.0, -3.0])
def test_missing_or_non_positive_amount_is_rejected(amount):
    with pytest.raises(ValidationRejected, match="Could not detect the total amount"):
        build_expense_record(None, "scan.pdf", amount=amount)


def test_process_upload_success():
    result = process_upload(ExtractionOrchestrator(), b"Coffee,4.50\nTotal,4.50", "text/csv", "export.csv")
    assert result.success
    assert result.message == MSG_CREATED
    assert result.source == "invoice-heuristic"
    assert result.record.amount == 4.50
    assert result.record.description == "Invoice total"


def test_process_upload_uses_manual_amount_when_pdf_has_none():
    orchestrator = ExtractionOrchestrator(pdf_text=lambda _body: "Welcome\nThank you")
    result = process_upload(orchestrator, b"%PDF", "application/pdf", "letter.pdf",
                            description="Parking", amount="6.00")
    assert result.success
    assert result.source is None
    assert result.record.description == "Parking"
    assert result.record.amount == 6.0
    assert result.record.category == "Other"


def test_process_upload_rejects_when_no_amount_anywhere():
    orchestrator = ExtractionOrchestrator(pdf_text=lambda _body: "Welcome\nThank you")
    result = process_upload(orchestrator, b"%PDF", "application/pdf", "letter.pdf")
    assert not result.success
    assert result.message == MSG_NO_AMOUNT
    assert result.record is None


def test_process_upload_unreadable_file():
    def _broken(_body):
        raise ExtractionError("Cannot open PDF")

    result = process_upload(ExtractionOrchestrator(pdf_text=_broken), b"junk", "application/pdf", "x.pdf")
    assert not result.success
    assert result.message == MSG_UNREADABLE


def test_process_upload_without_file():
    result = process_upload(ExtractionOrchestrator(), None, None, None)
    assert not result.success
    assert result.message == MSG_NO_FILE


def test_process_upload_with_out_of_range_model_date(llm_config, fake_completion):
    complete = fake_completion({"description": "Lunch", "amount": 5, "date": "9999-12-31T23:00:00-05:00"})
    orchestrator = ExtractionOrchestrator(extractor=ExpenseExtractor(llm_config, complete=complete))

    result = process_upload(orchestrator, b"Lunch 5.00", "text/plain", "lunch.txt")
    assert result.success
    assert result.source == "ai-text"
    assert result.record.amount == 5
    assert result.record.date.endswith("Z")
