"""Tests for the regex interpreter."""

from datetime import date

import pytest

from invoice_chat.services.intents import (
    ProposeNoteAppendIntent,
    ProposeStatusChangeIntent,
    RecordDetailIntent,
    SearchIntent,
    SummaryIntent,
    UnrecognizedIntent,
    VendorRankingIntent,
)
from invoice_chat.services.interpreter.deterministic import DeterministicInterpreter


@pytest.fixture
def interpreter():
    return DeterministicInterpreter(today=lambda: date(2026, 3, 15))


def test_status_change(interpreter):
    intent = interpreter.parse("mark invoice INV-100 as paid")
    assert isinstance(intent, ProposeStatusChangeIntent)
    assert intent.record_id == "INV-100"
    assert intent.new_status == "paid"
    assert intent.confidence >= 0.9


def test_status_change_with_reason(interpreter):
    intent = interpreter.parse("set INV-104 to in review because the amount looks wrong")
    assert isinstance(intent, ProposeStatusChangeIntent)
    assert intent.new_status == "in_review"
    assert intent.reason == "the amount looks wrong"


def test_approve_shorthand(interpreter):
    intent = interpreter.parse("approve INV-101")
    assert isinstance(intent, ProposeStatusChangeIntent)
    assert intent.new_status == "approved"


def test_note_append(interpreter):
    intent = interpreter.parse("add note to INV-100: call the vendor on Monday")
    assert isinstance(intent, ProposeNoteAppendIntent)
    assert intent.record_id == "INV-100"
    assert intent.note == "call the vendor on Monday"


def test_record_detail(interpreter):
    intent = interpreter.parse("details for INV-102")
    assert isinstance(intent, RecordDetailIntent)
    assert intent.record_id == "INV-102"


def test_pending_search(interpreter):
    intent = interpreter.parse("show pending invoices")
    assert isinstance(intent, SearchIntent)
    assert intent.status == ["pending"]
    assert intent.confidence == 0.9


def test_status_synonyms(interpreter):
    assert interpreter.parse("show late invoices").status == ["overdue"]
    assert interpreter.parse("list unpaid invoices").status == ["pending"]


def test_vendor_and_amount_are_merged(interpreter):
    intent = interpreter.parse("invoices from Acme Corp over $1,000")
    assert isinstance(intent, SearchIntent)
    assert intent.vendor == ["Acme Corp"]
    assert intent.amount_min == 1000
    assert intent.confidence == 0.85


def test_amount_between(interpreter):
    intent = interpreter.parse("find invoices between 5k and 500")
    assert intent.amount_min == 500
    assert intent.amount_max == 5000


def test_last_month_is_previous_calendar_month(interpreter):
    intent = interpreter.parse("invoices from last month")
    assert isinstance(intent, SearchIntent)
    assert intent.vendor == []
    assert intent.date_from == date(2026, 2, 1)
    assert intent.date_to == date(2026, 2, 28)
    assert intent.confidence == 0.8


def test_last_n_days(interpreter):
    intent = interpreter.parse("paid invoices in the last 30 days")
    assert intent.status == ["paid"]
    assert intent.date_from == date(2026, 2, 13)
    assert intent.date_to == date(2026, 3, 15)


def test_summary_takes_precedence_over_search(interpreter):
    intent = interpreter.parse("how many overdue invoices do we have")
    assert isinstance(intent, SummaryIntent)
    assert intent.status == ["overdue"]


def test_vendor_ranking(interpreter):
    intent = interpreter.parse("top 5 vendors by count")
    assert isinstance(intent, VendorRankingIntent)
    assert intent.limit == 5
    assert intent.sort_by == "count"


def test_vendor_ranking_defaults(interpreter):
    intent = interpreter.parse("who are our biggest suppliers")
    assert isinstance(intent, VendorRankingIntent)
    assert intent.limit == 10
    assert intent.sort_by == "amount"


def test_bare_search_is_low_confidence(interpreter):
    intent = interpreter.parse("show me everything")
    assert isinstance(intent, SearchIntent)
    assert intent.confidence == 0.5


def test_unrecognized(interpreter):
    intent = interpreter.parse("what's the weather like")
    assert isinstance(intent, UnrecognizedIntent)
    assert intent.confidence == 0.0


@pytest.mark.parametrize("utterance", [
    "show pending invoices",
    "mark invoice INV-100 as paid",
    "top 5 vendors",
    "how many invoices",
])
def test_canonical_templates(interpreter, utterance):
    assert interpreter.matches_template(utterance)


def test_free_form_is_not_a_template(interpreter):
    assert not interpreter.matches_template("which of Acme's bills are still open")


@pytest.mark.asyncio
async def test_interpret_ignores_history(interpreter):
    intent = await interpreter.interpret("show overdue invoices", history=[])
    assert intent.status == ["overdue"]
