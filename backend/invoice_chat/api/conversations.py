"""REST API for conversation history management."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from invoice_chat.api.deps import get_chat_service
from invoice_chat.core.identity import get_identity
from invoice_chat.models.conversation import Conversation
from invoice_chat.services.audit import entry_to_dict
from invoice_chat.services.chat import ChatService
from invoice_chat.services.conversations import message_to_dict

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateConversationRequest(BaseModel):
    context: dict[str, Any] | None = None


class UpdateConversationRequest(BaseModel):
    context: dict[str, Any]


def _conversation_dict(conv: Conversation) -> dict[str, Any]:
    return {
        "id": conv.id,
        "title": conv.title,
        "created_at": conv.created_at.isoformat(),
        "updated_at": conv.updated_at.isoformat(),
        "archived": conv.archived,
        "context": conv.context,
    }


@router.get("/")
async def list_conversations(
    include_archived: bool = False,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    summaries, total = service.conversations(owner_id, include_archived, page, limit)
    return {
        "conversations": [s.to_dict() for s in summaries],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.post("/")
async def create_conversation(
    body: CreateConversationRequest,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    conv = service.start_conversation(owner_id, body.context)
    return _conversation_dict(conv)


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: int,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    view = await service.conversation(owner_id, conversation_id)
    return {
        **_conversation_dict(view.conversation),
        "pending_proposal": view.pending.summary() if view.pending else None,
        "messages": [message_to_dict(m) for m in view.messages],
    }


@router.patch("/{conversation_id}")
async def update_conversation(
    conversation_id: int,
    body: UpdateConversationRequest,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    conv = await service.update_context(owner_id, conversation_id, body.context)
    return _conversation_dict(conv)


@router.delete("/{conversation_id}")
async def archive_conversation(
    conversation_id: int,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    await service.archive(owner_id, conversation_id)
    logger.debug(f"Archived conversation {conversation_id}")
    return {"status": "archived"}


@router.get("/{conversation_id}/actions")
async def list_conversation_actions(
    conversation_id: int,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    return [entry_to_dict(e) for e in service.conversation_actions(owner_id, conversation_id)]
