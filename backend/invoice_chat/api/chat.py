"""Chat turns: send a message, confirm or cancel the pending proposal."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from invoice_chat.api.deps import get_chat_service, get_rate_limiter
from invoice_chat.core.identity import get_identity
from invoice_chat.services.chat import ChatService
from invoice_chat.services.conversations import message_to_dict
from invoice_chat.services.intents import intent_kind
from invoice_chat.services.rate_limit import RateLimiter

router = APIRouter()
logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    conversation_id: int | None = None
    message: str
    context: dict[str, Any] | None = None


class ConfirmRequest(BaseModel):
    conversation_id: int
    message_id: int


class CancelRequest(BaseModel):
    conversation_id: int


@router.post("/messages")
async def send_message(
    body: SendMessageRequest,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    limiter.check(owner_id)
    turn = await service.send(owner_id, body.conversation_id, body.message, body.context)
    return {
        "conversation_id": turn.conversation_id,
        "user_message": message_to_dict(turn.user_message),
        "assistant_message": message_to_dict(turn.assistant_message),
        "intent": {
            "kind": intent_kind(turn.intent),
            "source": turn.intent.source,
            "confidence": turn.intent.confidence,
        },
        "proposal": turn.proposal.summary() if turn.proposal else None,
        "error": turn.error.to_dict() if turn.error else None,
    }


@router.post("/confirm")
async def confirm_action(
    body: ConfirmRequest,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.confirm(owner_id, body.conversation_id, body.message_id)
    execution = result.execution
    return {
        "conversation_id": result.conversation_id,
        "outcome": result.outcome,
        "assistant_message": message_to_dict(result.assistant_message),
        "record": execution.record.to_dict() if execution and execution.record else None,
        "audit_entry_id": execution.audit_entry.id if execution and execution.audit_entry else None,
        "error": result.error.to_dict() if result.error else None,
    }


@router.post("/cancel")
async def cancel_action(
    body: CancelRequest,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    cancelled = await service.cancel(owner_id, body.conversation_id)
    return {"conversation_id": body.conversation_id, "cancelled": cancelled}
