"""Durable conversation and message log.

Messages are append-only and numbered per conversation. Callers that append
must hold the conversation's lock (see ConversationLocks) so sequence numbers
follow arrival order.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from invoice_chat.core.errors import ConversationArchived, ConversationNotFound
from invoice_chat.models.conversation import ChatMessage, Conversation
from invoice_chat.services.validation import sanitize_input

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant", "system")
PREVIEW_LENGTH = 100


def derive_title(content: str, max_length: int = 60) -> str:
    content = " ".join(content.split())
    if len(content) > max_length:
        return content[:max_length] + "..."
    return content


@dataclass
class ConversationSummary:
    id: int
    title: str | None
    created_at: datetime
    updated_at: datetime
    archived: bool
    message_count: int
    last_message: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "archived": self.archived,
            "message_count": self.message_count,
            "last_message": self.last_message,
        }


class ConversationLocks:
    """One asyncio.Lock per conversation; different conversations never contend.

    Locks are weakly held, so a conversation's lock is dropped once no turn
    is holding or waiting on it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, conversation_id: int) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class ConversationStore:
    def __init__(self, engine: Engine, title_max_length: int = 60) -> None:
        self.engine = engine
        self.title_max_length = title_max_length

    def _get(self, session: Session, owner_id: str, conversation_id: int) -> Conversation:
        conv = session.get(Conversation, conversation_id)
        if conv is None or conv.owner_id != owner_id:
            logger.debug(f"Conversation {conversation_id} not found for owner")
            raise ConversationNotFound(conversation_id)
        return conv

    def create(self, owner_id: str, context: dict[str, Any] | None = None) -> Conversation:
        with Session(self.engine) as session:
            conv = Conversation(owner_id=owner_id, context=context or {})
            session.add(conv)
            session.commit()
            session.refresh(conv)
            return conv

    def get(self, owner_id: str, conversation_id: int) -> Conversation:
        with Session(self.engine) as session:
            return self._get(session, owner_id, conversation_id)

    def list_conversations(
        self, owner_id: str, include_archived: bool = False, page: int = 0, limit: int = 20
    ) -> tuple[list[ConversationSummary], int]:
        with Session(self.engine) as session:
            query = select(Conversation).where(Conversation.owner_id == owner_id)
            if not include_archived:
                query = query.where(Conversation.archived == False)  # noqa: E712
            total = session.exec(select(func.count()).select_from(query.subquery())).one()
            conversations = session.exec(
                query.order_by(col(Conversation.updated_at).desc()).offset(page * limit).limit(limit)
            ).all()
            return [self._summarize(session, c) for c in conversations], total

    def _summarize(self, session: Session, conv: Conversation) -> ConversationSummary:
        count = session.exec(
            select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id == conv.id)
        ).one()
        last = session.exec(
            select(ChatMessage)
            .where(ChatMessage.conversation_id == conv.id)
            .order_by(col(ChatMessage.sequence).desc())
            .limit(1)
        ).first()
        return ConversationSummary(
            id=conv.id,  # type: ignore
            title=conv.title,
            created_at=conv.created_at,
            updated_at=conv.updated_at,
            archived=conv.archived,
            message_count=count,
            last_message=last.content[:PREVIEW_LENGTH] if last else None,
        )

    def messages(self, owner_id: str, conversation_id: int) -> list[ChatMessage]:
        with Session(self.engine) as session:
            self._get(session, owner_id, conversation_id)
            return list(session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(col(ChatMessage.sequence))
            ).all())

    def recent_messages(self, conversation_id: int, limit: int) -> list[ChatMessage]:
        """The last `limit` messages, oldest first."""
        with Session(self.engine) as session:
            newest = session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(col(ChatMessage.sequence).desc())
                .limit(limit)
            ).all()
            return list(reversed(newest))

    def append_message(
        self,
        owner_id: str,
        conversation_id: int,
        role: str,
        content: str,
        record_ids: list[str] | None = None,
        proposed_action: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> ChatMessage:
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role}")

        with Session(self.engine) as session:
            conv = self._get(session, owner_id, conversation_id)
            if conv.archived:
                raise ConversationArchived(conversation_id)

            last_sequence = session.exec(
                select(func.max(ChatMessage.sequence)).where(ChatMessage.conversation_id == conversation_id)
            ).one()
            content = sanitize_input(content)
            msg = ChatMessage(
                conversation_id=conversation_id,
                sequence=(last_sequence or 0) + 1,
                role=role,
                content=content,
                record_ids=list(record_ids or []),
                proposed_action=proposed_action,
                meta=meta or {},
            )
            session.add(msg)

            if role == "user" and conv.title is None:
                conv.title = derive_title(content, self.title_max_length)
            conv.updated_at = datetime.now(timezone.utc)
            session.add(conv)

            session.commit()
            session.refresh(msg)
            return msg

    def archive(self, owner_id: str, conversation_id: int) -> Conversation:
        """Soft delete: conversations are never removed."""
        with Session(self.engine) as session:
            conv = self._get(session, owner_id, conversation_id)
            conv.archived = True
            conv.pending_proposal = None
            session.add(conv)
            session.commit()
            session.refresh(conv)
            logger.debug(f"Archived conversation {conversation_id}")
            return conv

    def update_context(self, owner_id: str, conversation_id: int, context: dict[str, Any]) -> Conversation:
        with Session(self.engine) as session:
            conv = self._get(session, owner_id, conversation_id)
            if conv.archived:
                raise ConversationArchived(conversation_id)
            conv.context = {**conv.context, **context}
            conv.updated_at = datetime.now(timezone.utc)
            session.add(conv)
            session.commit()
            session.refresh(conv)
            return conv

    # Proposal slot, used only by the confirmation gate

    def load_pending(self, owner_id: str, conversation_id: int) -> dict[str, Any] | None:
        with Session(self.engine) as session:
            return self._get(session, owner_id, conversation_id).pending_proposal

    def save_pending(self, owner_id: str, conversation_id: int, proposal: dict[str, Any] | None) -> None:
        with Session(self.engine) as session:
            conv = self._get(session, owner_id, conversation_id)
            if proposal is not None and conv.archived:
                raise ConversationArchived(conversation_id)
            conv.pending_proposal = proposal
            session.add(conv)
            session.commit()


def message_to_dict(msg: ChatMessage) -> dict[str, Any]:
    return {
        "id": msg.id,
        "sequence": msg.sequence,
        "role": msg.role,
        "content": msg.content,
        "record_ids": msg.record_ids,
        "proposed_action": msg.proposed_action,
        "meta": msg.meta,
        "created_at": msg.created_at.isoformat(),
    }
