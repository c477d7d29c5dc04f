"""Confirmation gate.

Each conversation has a single proposal slot. A new proposal replaces the
previous one wholesale, and the slot is emptied after every confirm attempt
that reaches the executor, whatever its outcome. Nothing reaches the record
store's write path except through confirm().
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from invoice_chat.core.errors import StaleProposal
from invoice_chat.models.proposal import Proposal
from invoice_chat.services.conversations import ConversationStore
from invoice_chat.services.executor import ActionContext, ExecutionResult, MutationExecutor
from invoice_chat.services.records import RecordStore
from invoice_chat.services.state_machine import check_transition, validate_status

logger = logging.getLogger(__name__)


@dataclass
class StatusChangeAction:
    record_ref: str
    new_status: str
    reason: str | None = None


@dataclass
class NoteAppendAction:
    record_ref: str
    note: str


ProposedAction = StatusChangeAction | NoteAppendAction


class ConfirmationGate:
    def __init__(
        self,
        records: RecordStore,
        store: ConversationStore,
        executor: MutationExecutor,
        ttl_minutes: int = 10,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.records = records
        self.store = store
        self.executor = executor
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    async def propose(self, ctx: ActionContext, action: ProposedAction) -> Proposal:
        """Validate an action against the invoice's current state and hold it for confirmation."""
        record = await self.records.read(ctx.owner_id, action.record_ref)

        if isinstance(action, StatusChangeAction):
            validate_status(action.new_status, "new_status")
            check_transition(record.status, action.new_status)
            action_type, from_value, to_value = "status_change", record.status, action.new_status
            reason = action.reason
        else:
            action_type, from_value, to_value = "note_append", record.notes, action.note
            reason = None

        proposal = Proposal.create(
            self.ttl_minutes,
            now=self.clock(),
            conversation_id=ctx.conversation_id,
            action_type=action_type,
            record_id=record.id,
            record_label=record.label,
            vendor=record.vendor,
            amount=record.amount,
            from_value=from_value,
            to_value=to_value,
            reason=reason,
        )

        previous = self.store.load_pending(ctx.owner_id, ctx.conversation_id)
        if previous is not None:
            logger.info(f"Replacing pending proposal {previous.get('id')} in conversation {ctx.conversation_id}")
        self.store.save_pending(ctx.owner_id, ctx.conversation_id, proposal.model_dump(mode="json"))
        logger.info(f"Proposed {action_type} on {record.label}: {from_value!r} -> {to_value!r}")
        return proposal

    def attach_message(self, ctx: ActionContext, proposal_id: str, message_id: int) -> Proposal:
        proposal = self._load(ctx)
        if proposal is None or proposal.id != proposal_id:
            raise StaleProposal()
        proposal.message_id = message_id
        self.store.save_pending(ctx.owner_id, ctx.conversation_id, proposal.model_dump(mode="json"))
        return proposal

    def pending(self, ctx: ActionContext) -> Proposal | None:
        """The live proposal, or None. Expired proposals are discarded here."""
        proposal = self._load(ctx)
        if proposal is not None and proposal.is_expired(self.clock()):
            logger.info(f"Proposal {proposal.id} expired in conversation {ctx.conversation_id}")
            self._clear(ctx)
            return None
        return proposal

    async def confirm(self, ctx: ActionContext, message_id: int) -> ExecutionResult:
        proposal = self._load(ctx)
        if proposal is None:
            raise StaleProposal()
        if proposal.is_expired(self.clock()):
            self._clear(ctx)
            raise StaleProposal("That proposal has expired. Ask again to get a fresh one.")
        if proposal.message_id is None or proposal.message_id != message_id:
            raise StaleProposal("That confirmation does not match the pending proposal.")

        try:
            result = await self.executor.execute(proposal, ctx)
        finally:
            self._clear(ctx)
        result.proposal = proposal
        return result

    def cancel(self, ctx: ActionContext) -> bool:
        """Discard the pending proposal. Returns False if there was none."""
        if self._load(ctx) is None:
            return False
        self._clear(ctx)
        logger.info(f"Cancelled pending proposal in conversation {ctx.conversation_id}")
        return True

    def _load(self, ctx: ActionContext) -> Proposal | None:
        data = self.store.load_pending(ctx.owner_id, ctx.conversation_id)
        return Proposal.model_validate(data) if data is not None else None

    def _clear(self, ctx: ActionContext) -> None:
        self.store.save_pending(ctx.owner_id, ctx.conversation_id, None)
