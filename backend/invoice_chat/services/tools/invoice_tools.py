"""Invoice tools: read lookups plus the two mutation requests."""

from typing import Any

from invoice_chat.services.records import RecordFilters, RecordStore
from invoice_chat.services.state_machine import STATUSES
from invoice_chat.services.tools.base import ReadTool, ToolDefinition, ToolParameter, WriteTool

# Aggregations read every matching invoice through the paged search contract
AGGREGATE_SCAN_LIMIT = 10_000


def _status_param(description: str) -> ToolParameter:
    return ToolParameter(
        name="status", type="array", items="string", enum=list(STATUSES),
        description=description, required=False,
    )


def _date_param(name: str, description: str) -> ToolParameter:
    return ToolParameter(name=name, type="string", format="date", description=description, required=False)


class SearchRecordsTool(ReadTool):
    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="search_records",
            description="Search and filter invoices. Returns matching invoices, newest first.",
            parameters=[
                _status_param("Filter by payment status"),
                ToolParameter(name="vendor", type="array", items="string",
                              description="Filter by vendor name(s)", required=False),
                _date_param("date_from", "Start of the issue date range (YYYY-MM-DD)"),
                _date_param("date_to", "End of the issue date range (YYYY-MM-DD)"),
                ToolParameter(name="amount_min", type="number", description="Minimum invoice amount",
                              required=False, minimum=0),
                ToolParameter(name="amount_max", type="number", description="Maximum invoice amount",
                              required=False, minimum=0),
                ToolParameter(name="search", type="string", max_length=200, required=False,
                              description="Text search across invoice number, vendor and description"),
                ToolParameter(name="limit", type="integer", description="Maximum results (default 20)",
                              required=False, minimum=1, maximum=100, default=20),
            ],
        )

    async def execute(self, owner_id: str, **kwargs: Any) -> dict[str, Any]:
        filters = RecordFilters(**kwargs)
        page = await self.records.search(owner_id, filters)
        return {
            "invoices": [r.to_dict() for r in page.records],
            "total": page.total,
            "total_amount": sum(r.amount for r in page.records),
        }


class GetRecordDetailTool(ReadTool):
    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_record_detail",
            description="Get detailed information about one invoice by id or invoice number.",
            parameters=[
                ToolParameter(name="record_id", type="string", min_length=1, max_length=100,
                              description="Invoice id or invoice number, e.g. INV-100"),
            ],
        )

    async def execute(self, owner_id: str, **kwargs: Any) -> dict[str, Any]:
        record = await self.records.read(owner_id, kwargs["record_id"])
        return {"invoice": record.to_dict()}


class SummaryStatsTool(ReadTool):
    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_summary_stats",
            description="Totals, counts and averages for invoices, broken down by status.",
            parameters=[
                _status_param("Only include these statuses"),
                _date_param("date_from", "Start of the issue date range (YYYY-MM-DD)"),
                _date_param("date_to", "End of the issue date range (YYYY-MM-DD)"),
            ],
        )

    async def execute(self, owner_id: str, **kwargs: Any) -> dict[str, Any]:
        page = await self.records.search(owner_id, RecordFilters(limit=AGGREGATE_SCAN_LIMIT, **kwargs))
        by_status: dict[str, dict[str, float]] = {}
        for record in page.records:
            bucket = by_status.setdefault(record.status, {"count": 0, "amount": 0.0})
            bucket["count"] += 1
            bucket["amount"] += record.amount

        total_amount = sum(r.amount for r in page.records)
        scanned = len(page.records)
        return {
            "total_invoices": page.total,
            "total_amount": total_amount,
            "average_amount": total_amount / scanned if scanned else 0.0,
            "by_status": by_status,
            "scanned": scanned,
        }


class RankVendorsTool(ReadTool):
    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="rank_vendors",
            description="Top vendors ranked by total invoice amount or invoice count.",
            parameters=[
                ToolParameter(name="limit", type="integer", description="How many vendors (default 10)",
                              required=False, minimum=1, maximum=50, default=10),
                ToolParameter(name="sort_by", type="string", enum=["amount", "count"],
                              description="Ranking criterion", required=False, default="amount"),
            ],
        )

    async def execute(self, owner_id: str, **kwargs: Any) -> dict[str, Any]:
        page = await self.records.search(owner_id, RecordFilters(limit=AGGREGATE_SCAN_LIMIT))
        vendors: dict[str, dict[str, Any]] = {}
        for record in page.records:
            entry = vendors.setdefault(record.vendor, {"vendor": record.vendor, "count": 0, "amount": 0.0})
            entry["count"] += 1
            entry["amount"] += record.amount

        key = kwargs["sort_by"]
        ranked = sorted(vendors.values(), key=lambda v: (-v[key], v["vendor"]))
        return {"vendors": ranked[: kwargs["limit"]], "sort_by": key}


class ProposeStatusChangeTool(WriteTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="propose_status_change",
            description=(
                "Propose changing an invoice's status. The user must confirm before anything changes."
            ),
            parameters=[
                ToolParameter(name="record_id", type="string", min_length=1, max_length=100,
                              description="Invoice id or invoice number"),
                ToolParameter(name="new_status", type="string", enum=list(STATUSES),
                              description="The status to move the invoice to"),
                ToolParameter(name="reason", type="string", min_length=1, max_length=500,
                              description="Why the status is changing", required=False),
            ],
            mutating=True,
        )


class ProposeNoteAppendTool(WriteTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="propose_note_append",
            description="Propose adding a note to an invoice. The user must confirm before it is saved.",
            parameters=[
                ToolParameter(name="record_id", type="string", min_length=1, max_length=100,
                              description="Invoice id or invoice number"),
                ToolParameter(name="note", type="string", min_length=1, max_length=1000,
                              description="The note text to append"),
            ],
            mutating=True,
        )
