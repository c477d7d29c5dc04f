"""Routes an Intent to its handler.

Lookups run immediately through the read tools. Mutations never execute here:
they become proposals held by the confirmation gate.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, assert_never

from invoice_chat.models.proposal import Proposal
from invoice_chat.services.executor import ActionContext
from invoice_chat.services.formatting import format_result, referenced_ids
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
from invoice_chat.services.proposals import ConfirmationGate, NoteAppendAction, StatusChangeAction
from invoice_chat.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _function_name(intent: Intent) -> str:
    if intent.function_name is None:
        raise ValueError(f"{type(intent).__name__} has no catalog function")
    return intent.function_name


@dataclass
class DispatchResult:
    content: str
    record_ids: list[str] = field(default_factory=list)
    proposal: Proposal | None = None
    function_name: str | None = None
    data: dict[str, Any] | None = None


class Dispatcher:
    def __init__(self, registry: ToolRegistry, gate: ConfirmationGate) -> None:
        self.registry = registry
        self.gate = gate

    async def dispatch(self, intent: Intent, ctx: ActionContext) -> DispatchResult:
        match intent:
            case UnrecognizedIntent():
                return DispatchResult(content=intent.message)
            case SearchIntent() | SummaryIntent() | VendorRankingIntent() | RecordDetailIntent():
                return await self._read(intent, ctx)
            case ProposeStatusChangeIntent():
                args = self._validate(intent)
                action = StatusChangeAction(args["record_id"], args["new_status"], args.get("reason"))
                return await self._propose(action, ctx)
            case ProposeNoteAppendIntent():
                args = self._validate(intent)
                return await self._propose(NoteAppendAction(args["record_id"], args["note"]), ctx)
            case _:
                assert_never(intent)

    def _validate(self, intent: Intent) -> dict[str, Any]:
        return self.registry.validate(_function_name(intent), intent.arguments())

    async def _read(
        self, intent: SearchIntent | SummaryIntent | VendorRankingIntent | RecordDetailIntent, ctx: ActionContext
    ) -> DispatchResult:
        name = _function_name(intent)
        args = self._validate(intent)
        tool = self.registry.read_tool(name)
        logger.info(f"Executing {name}({args})")
        data = await tool.execute(ctx.owner_id, **args)
        return DispatchResult(
            content=format_result(name, data),
            record_ids=referenced_ids(data),
            function_name=name,
            data=data,
        )

    async def _propose(self, action: StatusChangeAction | NoteAppendAction, ctx: ActionContext) -> DispatchResult:
        proposal = await self.gate.propose(ctx, action)
        return DispatchResult(
            content=proposal.prompt(),
            record_ids=[proposal.record_id],
            proposal=proposal,
            function_name=proposal.action_type,
        )
