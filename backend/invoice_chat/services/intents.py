"""Typed interpretations of an utterance.

Intent is a closed union: the dispatcher matches on these classes and every
new kind needs a handler there. Each kind that maps to a cataloged function
names it and can render its parameters as raw function arguments.
"""

import re
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, ClassVar

_BASE_FIELDS = {"confidence", "source", "usage"}


@dataclass(kw_only=True)
class BaseIntent:
    function_name: ClassVar[str | None] = None

    confidence: float = 0.0
    source: str = "deterministic"  # deterministic | semantic | fallback
    usage: dict[str, Any] = field(default_factory=dict)

    def arguments(self) -> dict[str, Any]:
        """Parameters as raw function-call arguments, omitting empty values."""
        args: dict[str, Any] = {}
        for f in fields(self):
            if f.name in _BASE_FIELDS:
                continue
            value = getattr(self, f.name)
            if value is None or value == []:
                continue
            args[f.name] = value.isoformat() if isinstance(value, date) else value
        return args

    @classmethod
    def from_arguments(cls, arguments: dict[str, Any], **meta: Any):
        return cls(**arguments, **meta)


@dataclass(kw_only=True)
class SearchIntent(BaseIntent):
    function_name: ClassVar[str | None] = "search_records"

    status: list[str] = field(default_factory=list)
    vendor: list[str] = field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    amount_min: float | None = None
    amount_max: float | None = None
    search: str | None = None
    limit: int = 20


@dataclass(kw_only=True)
class SummaryIntent(BaseIntent):
    function_name: ClassVar[str | None] = "get_summary_stats"

    status: list[str] = field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None


@dataclass(kw_only=True)
class VendorRankingIntent(BaseIntent):
    function_name: ClassVar[str | None] = "rank_vendors"

    limit: int = 10
    sort_by: str = "amount"


@dataclass(kw_only=True)
class RecordDetailIntent(BaseIntent):
    function_name: ClassVar[str | None] = "get_record_detail"

    record_id: str


@dataclass(kw_only=True)
class ProposeStatusChangeIntent(BaseIntent):
    function_name: ClassVar[str | None] = "propose_status_change"

    record_id: str
    new_status: str
    reason: str | None = None


@dataclass(kw_only=True)
class ProposeNoteAppendIntent(BaseIntent):
    function_name: ClassVar[str | None] = "propose_note_append"

    record_id: str
    note: str


@dataclass(kw_only=True)
class UnrecognizedIntent(BaseIntent):
    message: str = "I'm not sure what you're looking for. Could you rephrase that?"
    service_unavailable: bool = False


Intent = (
    SearchIntent
    | SummaryIntent
    | VendorRankingIntent
    | RecordDetailIntent
    | ProposeStatusChangeIntent
    | ProposeNoteAppendIntent
    | UnrecognizedIntent
)

INTENTS_BY_FUNCTION: dict[str, type[BaseIntent]] = {
    cls.function_name: cls
    for cls in (
        SearchIntent,
        SummaryIntent,
        VendorRankingIntent,
        RecordDetailIntent,
        ProposeStatusChangeIntent,
        ProposeNoteAppendIntent,
    )
    if cls.function_name
}


def intent_kind(intent: BaseIntent) -> str:
    """snake_case kind name, e.g. "vendor_ranking"."""
    name = type(intent).__name__.removesuffix("Intent")
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
