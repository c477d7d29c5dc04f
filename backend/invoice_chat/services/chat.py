"""Turn orchestration: the surface the API talks to.

send() runs utterance -> interpreter -> dispatcher and records both sides of
the turn. confirm() and cancel() drive the confirmation gate. All three hold
the conversation's lock for their whole duration.
"""

import logging
from dataclasses import dataclass
from typing import Any

from invoice_chat.core.errors import AssistantError, ConversationArchived, StaleProposal
from invoice_chat.models.audit import ActionAuditEntry
from invoice_chat.models.conversation import ChatMessage, Conversation
from invoice_chat.models.proposal import Proposal
from invoice_chat.services.audit import AuditLog
from invoice_chat.services.conversations import ConversationLocks, ConversationStore, ConversationSummary
from invoice_chat.services.dispatcher import Dispatcher
from invoice_chat.services.executor import ActionContext, ExecutionResult
from invoice_chat.services.intents import Intent, intent_kind
from invoice_chat.services.interpreter.base import BaseInterpreter
from invoice_chat.services.llm.base import Message
from invoice_chat.services.proposals import ConfirmationGate
from invoice_chat.services.records import RecordStore
from invoice_chat.services.validation import validate_message

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Okay, I've discarded the pending change. Nothing was modified."


@dataclass
class TurnResult:
    conversation_id: int
    user_message: ChatMessage
    assistant_message: ChatMessage
    intent: Intent
    proposal: Proposal | None = None
    error: AssistantError | None = None


@dataclass
class ConfirmResult:
    conversation_id: int
    outcome: str  # success | failure | inconclusive | stale
    assistant_message: ChatMessage
    execution: ExecutionResult | None = None
    error: AssistantError | None = None


@dataclass
class ConversationView:
    conversation: Conversation
    messages: list[ChatMessage]
    pending: Proposal | None


def describe_outcome(result: ExecutionResult) -> str:
    proposal = result.proposal
    if proposal is None:
        raise ValueError("execution result carries no proposal")
    label = proposal.record_label
    if result.outcome == "inconclusive":
        return result.reason or "The outcome of that change is unknown."
    if result.outcome == "failure":
        return f"I couldn't apply that change to invoice **{label}**. {result.reason}"
    if result.unchanged:
        return f"Invoice **{label}** was already **{proposal.to_value}**. Nothing was changed."
    if proposal.action_type == "note_append":
        return f"Done. I added your note to invoice **{label}**."
    return f"Done. Invoice **{label}** status changed: {proposal.from_value} → {proposal.to_value}."


class ChatService:
    def __init__(
        self,
        store: ConversationStore,
        interpreter: BaseInterpreter,
        dispatcher: Dispatcher,
        gate: ConfirmationGate,
        audit: AuditLog,
        records: RecordStore,
        locks: ConversationLocks | None = None,
        history_window: int = 20,
        max_message_length: int = 4000,
    ) -> None:
        self.store = store
        self.interpreter = interpreter
        self.dispatcher = dispatcher
        self.gate = gate
        self.audit = audit
        self.records = records
        self.locks = locks or ConversationLocks()
        self.history_window = history_window
        self.max_message_length = max_message_length

    def start_conversation(self, owner_id: str, context: dict[str, Any] | None = None) -> Conversation:
        conv = self.store.create(owner_id, context)
        logger.info(f"Started conversation {conv.id}")
        return conv

    async def send(
        self,
        owner_id: str,
        conversation_id: int | None,
        utterance: str,
        dashboard_context: dict[str, Any] | None = None,
    ) -> TurnResult:
        utterance = validate_message(utterance, self.max_message_length)

        if conversation_id is None:
            conversation_id = self.start_conversation(owner_id, dashboard_context).id  # type: ignore

        async with self.locks.get(conversation_id):
            conv = self.store.get(owner_id, conversation_id)
            if conv.archived:
                raise ConversationArchived(conversation_id)
            ctx = ActionContext(owner_id=owner_id, conversation_id=conversation_id)

            history = [
                Message(role=m.role, content=m.content)
                for m in self.store.recent_messages(conversation_id, self.history_window)
                if m.role in ("user", "assistant")
            ]
            user_message = self.store.append_message(owner_id, conversation_id, "user", utterance)

            # A new message abandons whatever was waiting for confirmation
            if self.gate.cancel(ctx):
                logger.info(f"Pending proposal abandoned by new message in conversation {conversation_id}")

            intent = await self.interpreter.interpret(utterance, history, dashboard_context or conv.context)
            logger.info(
                f"Interpreted as {intent_kind(intent)} (source={intent.source}, confidence={intent.confidence:.2f})"
            )

            meta: dict[str, Any] = {
                "intent": intent_kind(intent),
                "source": intent.source,
                "confidence": intent.confidence,
                **intent.usage,
            }
            record_ids: list[str] = []
            proposal = None
            error = None
            try:
                result = await self.dispatcher.dispatch(intent, ctx)
                content, record_ids, proposal = result.content, result.record_ids, result.proposal
                if result.function_name:
                    meta["function"] = result.function_name
            except AssistantError as e:
                logger.info(f"Turn in conversation {conversation_id} failed: {e.code}: {e.message}")
                content = e.user_message()
                error = e
                meta["error"] = e.code

            assistant_message = self.store.append_message(
                owner_id,
                conversation_id,
                "assistant",
                content,
                record_ids=record_ids,
                proposed_action=proposal.summary() if proposal else None,
                meta=meta,
            )
            if proposal is not None:
                proposal = self.gate.attach_message(ctx, proposal.id, assistant_message.id)  # type: ignore

            return TurnResult(
                conversation_id=conversation_id,
                user_message=user_message,
                assistant_message=assistant_message,
                intent=intent,
                proposal=proposal,
                error=error,
            )

    async def confirm(self, owner_id: str, conversation_id: int, message_id: int) -> ConfirmResult:
        async with self.locks.get(conversation_id):
            ctx = ActionContext(owner_id=owner_id, conversation_id=conversation_id)
            conv = self.store.get(owner_id, conversation_id)
            if conv.archived:
                raise ConversationArchived(conversation_id)

            try:
                result = await self.gate.confirm(ctx, message_id)
            except StaleProposal as e:
                logger.info(f"Stale confirmation for message {message_id} in conversation {conversation_id}")
                msg = self.store.append_message(
                    owner_id, conversation_id, "assistant", e.user_message(),
                    meta={"outcome": "stale", "error": e.code, "confirmed_message_id": message_id},
                )
                return ConfirmResult(conversation_id, "stale", msg, error=e)

            meta: dict[str, Any] = {"outcome": result.outcome, "confirmed_message_id": message_id}
            if result.audit_entry is not None:
                meta["audit_entry_id"] = result.audit_entry.id
            if result.error is not None:
                meta["error"] = result.error.code
            msg = self.store.append_message(
                owner_id,
                conversation_id,
                "assistant",
                describe_outcome(result),
                record_ids=[result.proposal.record_id] if result.proposal else [],
                meta=meta,
            )
            return ConfirmResult(conversation_id, result.outcome, msg, execution=result, error=result.error)

    async def cancel(self, owner_id: str, conversation_id: int) -> bool:
        async with self.locks.get(conversation_id):
            self.store.get(owner_id, conversation_id)
            ctx = ActionContext(owner_id=owner_id, conversation_id=conversation_id)
            if not self.gate.cancel(ctx):
                return False
            self.store.append_message(owner_id, conversation_id, "assistant", CANCELLED_MESSAGE,
                                      meta={"outcome": "cancelled"})
            return True

    async def conversation(self, owner_id: str, conversation_id: int) -> ConversationView:
        async with self.locks.get(conversation_id):
            messages = self.store.messages(owner_id, conversation_id)
            conv = self.store.get(owner_id, conversation_id)
            pending = self.gate.pending(ActionContext(owner_id=owner_id, conversation_id=conversation_id))
            return ConversationView(conversation=conv, messages=messages, pending=pending)

    def conversations(
        self, owner_id: str, include_archived: bool = False, page: int = 0, limit: int = 20
    ) -> tuple[list[ConversationSummary], int]:
        return self.store.list_conversations(owner_id, include_archived, page, limit)

    async def update_context(self, owner_id: str, conversation_id: int, context: dict[str, Any]) -> Conversation:
        async with self.locks.get(conversation_id):
            return self.store.update_context(owner_id, conversation_id, context)

    async def archive(self, owner_id: str, conversation_id: int) -> Conversation:
        async with self.locks.get(conversation_id):
            return self.store.archive(owner_id, conversation_id)

    async def record_history(self, owner_id: str, record_ref: str) -> list[ActionAuditEntry]:
        record = await self.records.read(owner_id, record_ref)
        return self.audit.history_for_record(owner_id, record.id)

    def conversation_actions(self, owner_id: str, conversation_id: int) -> list[ActionAuditEntry]:
        self.store.get(owner_id, conversation_id)
        return self.audit.history_for_conversation(owner_id, conversation_id)
