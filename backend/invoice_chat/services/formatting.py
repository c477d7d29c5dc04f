"""Markdown replies for read results and action outcomes."""

from typing import Any

MAX_LISTED = 10


def money(amount: float) -> str:
    return f"${amount:,.2f}"


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_search_results(result: dict[str, Any]) -> str:
    invoices = result["invoices"]
    if not invoices:
        return "I couldn't find any invoices matching your criteria."

    total = result.get("total", len(invoices))
    response = f"I found **{plural(total, 'invoice')}**"
    if total > len(invoices):
        response += f" (showing the newest {len(invoices)})"
    response += f" with a total amount of **{money(result['total_amount'])}**.\n\nHere are the details:\n\n"

    for inv in invoices[:MAX_LISTED]:
        response += f"- **{inv['invoice_number']}** from {inv['vendor']}\n"
        response += f"  Amount: {money(inv['amount'])}, Status: {inv['status']}"
        if inv.get("issue_date"):
            response += f", Date: {inv['issue_date']}"
        response += "\n"

    if len(invoices) > MAX_LISTED:
        response += f"\n...and {len(invoices) - MAX_LISTED} more."
    return response.rstrip("\n")


def format_summary_stats(stats: dict[str, Any]) -> str:
    response = "## Summary Statistics\n\n"
    response += f"- **Total Invoices**: {stats['total_invoices']}\n"
    scanned = stats.get("scanned", stats["total_invoices"])
    if scanned < stats["total_invoices"]:
        response += f"- _Amounts cover the newest {scanned} invoices only._\n"
    response += f"- **Total Amount**: {money(stats['total_amount'])}\n"
    response += f"- **Average Amount**: {money(stats['average_amount'])}\n"

    if stats.get("by_status"):
        response += "\n### Breakdown by Status:\n\n"
        for status, data in sorted(stats["by_status"].items()):
            response += f"- **{status}**: {plural(data['count'], 'invoice')} ({money(data['amount'])})\n"
    return response.rstrip("\n")


def format_top_vendors(result: dict[str, Any]) -> str:
    vendors = result["vendors"]
    if not vendors:
        return "No vendor data available."

    response = f"### Top Vendors (by {result['sort_by']}):\n\n"
    for i, vendor in enumerate(vendors, 1):
        response += f"{i}. **{vendor['vendor']}**: {plural(vendor['count'], 'invoice')} ({money(vendor['amount'])})\n"
    return response.rstrip("\n")


def format_invoice_details(result: dict[str, Any]) -> str:
    invoice = result["invoice"]
    response = f"## Invoice {invoice['invoice_number']}\n\n"
    response += f"- **Vendor**: {invoice['vendor']}\n"
    response += f"- **Amount**: {money(invoice['amount'])}\n"
    response += f"- **Status**: {invoice['status']}\n"
    for key, label in (("issue_date", "Issue Date"), ("due_date", "Due Date"),
                       ("description", "Description"), ("category", "Category")):
        if invoice.get(key):
            response += f"- **{label}**: {invoice[key]}\n"
    if invoice.get("notes"):
        response += f"\n### Notes\n\n{invoice['notes']}\n"
    return response.rstrip("\n")


FORMATTERS = {
    "search_records": format_search_results,
    "get_summary_stats": format_summary_stats,
    "rank_vendors": format_top_vendors,
    "get_record_detail": format_invoice_details,
}


def format_result(function_name: str, result: dict[str, Any]) -> str:
    return FORMATTERS[function_name](result)


def referenced_ids(result: dict[str, Any]) -> list[str]:
    """Invoice ids a read result mentions, in display order."""
    if "invoice" in result:
        return [result["invoice"]["id"]]
    return [inv["id"] for inv in result.get("invoices", [])]
