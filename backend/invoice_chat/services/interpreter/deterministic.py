"""Regex-based interpreter for common invoice questions and commands.

Used when no language model is configured, as the fallback when it is
unavailable, and as the authoritative interpreter for canonical phrasings
(see CANONICAL_TEMPLATES). Patterns run in a fixed order and the first
confident match wins.
"""

import re
from datetime import date, timedelta
from typing import Any, Callable

from invoice_chat.services.intents import (
    Intent,
    ProposeNoteAppendIntent,
    ProposeStatusChangeIntent,
    RecordDetailIntent,
    SearchIntent,
    SummaryIntent,
    UnrecognizedIntent,
    VendorRankingIntent,
)
from invoice_chat.services.interpreter.base import BaseInterpreter
from invoice_chat.services.llm.base import Message

WS = re.compile(r"\s+")

# "INV-100", "inv100", "#1234", or bare digits after the word "invoice"
_REF = (
    r"(?:invoice\s+#?(?P<num>\d[\w-]*)"
    r"|(?:invoice\s+)?(?P<ref>#\d[\w-]*|[A-Za-z][A-Za-z_]*-?\d[\w-]*))"
)
_TARGET_STATUS = r"(?P<status>in[\s_]review|under\s+review|review|pending|approved|paid|overdue)"

STATUS_CHANGE = re.compile(
    r"^(?:please\s+)?(?:mark|set|change|move|update|put|switch)\s+(?:the\s+)?(?:status\s+of\s+)?"
    + _REF
    + r"(?:'s)?\s+(?:status\s+)?(?:as|to|into|in)\s+"
    + _TARGET_STATUS
    + r"\b(?:\s+(?:because|since|as|-)\s+(?P<reason>.+))?$",
    re.I,
)
APPROVE = re.compile(r"^(?:please\s+)?approve\s+" + _REF + r"$", re.I)
NOTE_APPEND = re.compile(
    r"^(?:please\s+)?(?:add|append|attach|leave|put)\s+(?:a\s+|the\s+)?note\s+(?:to|on|for)\s+"
    + _REF
    + r"\s*(?::|-|,|saying|that says|that reads)?\s*(?P<note>.+)$",
    re.I,
)
RECORD_DETAIL = re.compile(
    r"^(?:(?:show|get|open|view|display|find)\s+(?:me\s+)?(?:the\s+)?(?:details?\s+(?:for|of|on|about)\s+)?"
    r"|(?:details?|info|information)\s+(?:for|of|on|about)\s+"
    r"|(?:what(?:'s|\s+is)|tell\s+me\s+about)\s+(?:the\s+status\s+of\s+)?)"
    + _REF
    + r"$",
    re.I,
)
VENDOR_RANKING = re.compile(
    r"\b(?:top|biggest|largest|main|leading)\s+(?:(?P<n>\d+)\s+)?(?:vendors?|suppliers?)\b"
    r"|\b(?:vendors?|suppliers?)\b.*\b(?:most|highest|biggest|largest)\b",
    re.I,
)
BY_COUNT = re.compile(r"\b(?:by\s+(?:count|number|volume)|most\s+invoices)\b", re.I)
SUMMARY = re.compile(
    r"\b(?:total|sum|how\s+many|count|average|mean|summary|summarize|statistics|stats|breakdown)\b",
    re.I,
)
GENERAL_SEARCH = re.compile(r"\b(?:show|find|list|search|get|display|invoices?)\b", re.I)

STATUS_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:pending|unpaid|waiting)\b"), "pending"),
    (re.compile(r"\b(?:overdue|late|past\s*due)\b"), "overdue"),
    (re.compile(r"\b(?:paid|completed)\b"), "paid"),
    (re.compile(r"\b(?:in[\s_]*review|reviewing|under\s+review)\b"), "in_review"),
    (re.compile(r"\b(?:approved)\b"), "approved"),
]

_VENDOR_STOP = (
    r"last|this|over|under|above|below|between|more|less|greater|at|in|on|with|that|which|"
    r"since|before|after|and|or|for|from|dated|due|issued|invoices?|today|yesterday|status|"
    r"pending|overdue|paid|approved|unpaid|the|a|an|my|our|all|any"
)
VENDOR = re.compile(
    r"\b(?:from|by|vendor|supplier)\s+(?!(?:" + _VENDOR_STOP + r")\b)"
    r"(?P<vendor>[A-Za-z&][\w&'.-]*(?:\s+(?!(?:" + _VENDOR_STOP + r")\b)[A-Za-z&][\w&'.-]*)*)",
    re.I,
)

_AMOUNT = r"\$?\s*(?P<{name}>\d[\d,]*(?:\.\d+)?)\s*(?P<{name}_k>k\b)?"
AMOUNT_BETWEEN = re.compile(
    r"\bbetween\s+" + _AMOUNT.format(name="low") + r"\s*(?:and|-|to)\s*" + _AMOUNT.format(name="high"),
    re.I,
)
AMOUNT_OVER = re.compile(
    r"\b(?:over|above|more\s+than|greater\s+than|at\s+least|exceeding)\s+" + _AMOUNT.format(name="a"), re.I
)
AMOUNT_UNDER = re.compile(
    r"\b(?:under|below|less\s+than|at\s+most|up\s+to)\s+" + _AMOUNT.format(name="a"), re.I
)

LAST_N_DAYS = re.compile(r"\b(?:last|past)\s+(?P<n>\d+)\s+days?\b", re.I)

# Phrasings the deterministic interpreter owns outright
CANONICAL_TEMPLATES = [
    re.compile(r"^(?:show|list|find|get)\s+(?:me\s+)?(?:all\s+)?(?:\w+\s+)?invoices?$", re.I),
    re.compile(r"^(?:pending|overdue|paid|approved|unpaid|in review)\s+invoices?$", re.I),
    re.compile(r"^invoices?\s+(?:from|by)\s+[\w&' .-]+$", re.I),
    re.compile(r"^total\s+(?:pending|overdue|paid|approved)?", re.I),
    re.compile(r"^how\s+many\s+(?:pending|overdue|paid|approved)?\s*invoices?", re.I),
    re.compile(r"^top\s+(?:\d+\s+)?(?:vendors?|suppliers?)", re.I),
    STATUS_CHANGE,
    APPROVE,
    NOTE_APPEND,
    RECORD_DETAIL,
]

STATUS_CONFIDENCE = 0.9
VENDOR_CONFIDENCE = 0.85
AMOUNT_CONFIDENCE = 0.8
DATE_CONFIDENCE = 0.8
GENERAL_CONFIDENCE = 0.5


def normalize(text: str) -> str:
    return WS.sub(" ", (text or "").strip()).rstrip("?.!")


def _ref(match: re.Match) -> str:
    return (match.group("num") or match.group("ref")).lstrip("#")


def _target_status(word: str) -> str:
    word = WS.sub(" ", word.lower())
    if "review" in word:
        return "in_review"
    return word


def _amount(match: re.Match, name: str) -> float:
    value = float(match.group(name).replace(",", ""))
    if match.group(f"{name}_k"):
        value *= 1000
    return value


def parse_statuses(lower: str) -> list[str]:
    return [status for pattern, status in STATUS_PATTERNS if pattern.search(lower)]


def parse_vendor(text: str) -> list[str]:
    match = VENDOR.search(text)
    if not match:
        return []
    return [match.group("vendor").strip(" .'")]


def parse_amounts(text: str) -> dict[str, float]:
    between = AMOUNT_BETWEEN.search(text)
    if between:
        low, high = _amount(between, "low"), _amount(between, "high")
        return {"amount_min": min(low, high), "amount_max": max(low, high)}

    amounts: dict[str, float] = {}
    over = AMOUNT_OVER.search(text)
    if over:
        amounts["amount_min"] = _amount(over, "a")
    under = AMOUNT_UNDER.search(text)
    if under:
        amounts["amount_max"] = _amount(under, "a")
    return amounts


def parse_dates(lower: str, today: date) -> dict[str, date]:
    last_days = LAST_N_DAYS.search(lower)
    if last_days:
        return {"date_from": today - timedelta(days=int(last_days.group("n"))), "date_to": today}

    if "this week" in lower:
        # Weeks start on Sunday
        return {"date_from": today - timedelta(days=(today.weekday() + 1) % 7), "date_to": today}

    if "this month" in lower:
        return {"date_from": today.replace(day=1), "date_to": today}

    if "last month" in lower:
        last_month_end = today.replace(day=1) - timedelta(days=1)
        return {"date_from": last_month_end.replace(day=1), "date_to": last_month_end}

    if "this year" in lower:
        return {"date_from": today.replace(month=1, day=1), "date_to": today}

    return {}


class DeterministicInterpreter(BaseInterpreter):
    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self.today = today

    def matches_template(self, utterance: str) -> bool:
        text = normalize(utterance)
        return any(pattern.search(text) for pattern in CANONICAL_TEMPLATES)

    async def interpret(
        self,
        utterance: str,
        history: list[Message],
        dashboard_context: dict[str, Any] | None = None,
    ) -> Intent:
        return self.parse(utterance)

    def parse(self, utterance: str) -> Intent:
        text = normalize(utterance)
        lower = text.lower()

        match = STATUS_CHANGE.match(text)
        if match:
            return ProposeStatusChangeIntent(
                record_id=_ref(match),
                new_status=_target_status(match.group("status")),
                reason=(match.group("reason") or "").strip() or None,
                confidence=0.95,
            )

        match = APPROVE.match(text)
        if match:
            return ProposeStatusChangeIntent(record_id=_ref(match), new_status="approved", confidence=0.9)

        match = NOTE_APPEND.match(text)
        if match:
            note = match.group("note").strip().strip("\"'")
            if note:
                return ProposeNoteAppendIntent(record_id=_ref(match), note=note, confidence=0.9)

        match = RECORD_DETAIL.match(text)
        if match:
            return RecordDetailIntent(record_id=_ref(match), confidence=0.9)

        match = VENDOR_RANKING.search(text)
        if match:
            limit = int(match.group("n")) if match.group("n") else 10
            return VendorRankingIntent(
                limit=max(1, min(limit, 50)),
                sort_by="count" if BY_COUNT.search(text) else "amount",
                confidence=0.85,
            )

        dates = parse_dates(lower, self.today())
        statuses = parse_statuses(lower)

        if SUMMARY.search(lower):
            return SummaryIntent(status=statuses, **dates, confidence=0.85)

        vendors = parse_vendor(text)
        amounts = parse_amounts(text)

        confidences = []
        if statuses:
            confidences.append(STATUS_CONFIDENCE)
        if vendors:
            confidences.append(VENDOR_CONFIDENCE)
        if amounts:
            confidences.append(AMOUNT_CONFIDENCE)
        if dates:
            confidences.append(DATE_CONFIDENCE)

        if confidences:
            return SearchIntent(
                status=statuses, vendor=vendors, **amounts, **dates, confidence=max(confidences)
            )

        if GENERAL_SEARCH.search(lower):
            return SearchIntent(confidence=GENERAL_CONFIDENCE)

        return UnrecognizedIntent()
