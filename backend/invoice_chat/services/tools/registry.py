"""Tool registry - the versioned catalog of functions the assistant may call."""

from typing import Any

from invoice_chat.core.errors import Unrecognized
from invoice_chat.services.records import RecordStore
from invoice_chat.services.tools.base import BaseTool, ReadTool, ToolDefinition
from invoice_chat.services.tools.invoice_tools import (
    GetRecordDetailTool,
    ProposeNoteAppendTool,
    ProposeStatusChangeTool,
    RankVendorsTool,
    SearchRecordsTool,
    SummaryStatsTool,
)

# Bump whenever a tool is added, removed or changes its parameters
CATALOG_VERSION = "1.0"


class ToolRegistry:
    def __init__(self, version: str = CATALOG_VERSION) -> None:
        self.version = version
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        defn = tool.definition()
        self._tools[defn.name] = tool

    def read_tool(self, name: str) -> ReadTool:
        tool = self._tools.get(name)
        if not isinstance(tool, ReadTool):
            raise Unrecognized(f"{name} is not an available lookup")
        return tool

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def gemini_declarations(self) -> list[dict]:
        return [defn.to_gemini_schema() for defn in self.definitions()]

    def validate(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate arguments for a cataloged function. Unknown names fail closed."""
        tool = self._tools.get(name)
        if tool is None:
            raise Unrecognized(f"Unknown function: {name}")
        return tool.definition().validate(arguments)


def create_default_registry(records: RecordStore) -> ToolRegistry:
    """Create a registry with all invoice tools."""
    registry = ToolRegistry()

    # Read tools
    registry.register(SearchRecordsTool(records))
    registry.register(GetRecordDetailTool(records))
    registry.register(SummaryStatsTool(records))
    registry.register(RankVendorsTool(records))

    # Write tools (confirmation required)
    registry.register(ProposeStatusChangeTool())
    registry.register(ProposeNoteAppendTool())

    return registry
