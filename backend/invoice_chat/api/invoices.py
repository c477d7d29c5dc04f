from fastapi import APIRouter, Depends

from invoice_chat.api.deps import get_chat_service
from invoice_chat.core.identity import get_identity
from invoice_chat.services.audit import entry_to_dict
from invoice_chat.services.chat import ChatService

router = APIRouter()


@router.get("/{record_id}/audit")
async def record_audit_history(
    record_id: str,
    owner_id: str = Depends(get_identity),
    service: ChatService = Depends(get_chat_service),
):
    entries = await service.record_history(owner_id, record_id)
    return {"record_id": record_id, "entries": [entry_to_dict(e) for e in entries]}
