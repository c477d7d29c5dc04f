"""Tests for chat input validation and reply formatting."""

import pytest

from invoice_chat.core.errors import ValidationError
from invoice_chat.services.formatting import format_search_results, format_top_vendors
from invoice_chat.services.validation import sanitize_input, validate_message


def test_sanitize_keeps_newlines():
    assert sanitize_input("<b>line one</b>\nline\ttwo\x00") == "line one\nline\ttwo"


def test_validate_message_trims():
    assert validate_message("  show invoices  ", 100) == "show invoices"


@pytest.mark.parametrize("message", ["", "   ", "<p></p>", None, 42])
def test_validate_message_rejects_empty(message):
    with pytest.raises(ValidationError) as exc:
        validate_message(message, 100)
    assert exc.value.field == "message"


def test_validate_message_length():
    with pytest.raises(ValidationError):
        validate_message("x" * 101, 100)


def test_search_results_mention_hidden_matches():
    result = {
        "invoices": [{"id": "a", "invoice_number": "INV-1", "vendor": "Acme", "amount": 1234.5,
                      "status": "paid", "issue_date": "2026-09-01"}],
        "total": 3,
        "total_amount": 1234.5,
    }
    text = format_search_results(result)
    assert "**3 invoices**" in text
    assert "showing the newest 1" in text
    assert "$1,234.50" in text


def test_empty_search_results():
    assert "couldn't find" in format_search_results({"invoices": [], "total": 0, "total_amount": 0})


def test_top_vendors_numbered():
    text = format_top_vendors({"sort_by": "amount", "vendors": [
        {"vendor": "Acme", "count": 1, "amount": 10.0},
        {"vendor": "Globex", "count": 2, "amount": 5.0},
    ]})
    assert "1. **Acme**: 1 invoice ($10.00)" in text
    assert "2. **Globex**: 2 invoices ($5.00)" in text
