"""Service wiring and FastAPI dependencies."""

from fastapi import Request
from sqlalchemy.engine import Engine

from invoice_chat.core.config import settings
from invoice_chat.services.audit import AuditLog
from invoice_chat.services.chat import ChatService
from invoice_chat.services.conversations import ConversationStore
from invoice_chat.services.dispatcher import Dispatcher
from invoice_chat.services.executor import MutationExecutor
from invoice_chat.services.interpreter import get_interpreter
from invoice_chat.services.llm.base import BaseLLMProvider
from invoice_chat.services.proposals import ConfirmationGate
from invoice_chat.services.rate_limit import RateLimiter
from invoice_chat.services.records import GuardedRecordStore, RecordStore, SQLRecordStore
from invoice_chat.services.tools.registry import create_default_registry


def build_chat_service(
    engine: Engine,
    provider: BaseLLMProvider | None,
    records: RecordStore | None = None,
) -> ChatService:
    records = records or GuardedRecordStore(
        SQLRecordStore(engine),
        timeout=settings.storage_timeout,
        backoff=settings.storage_retry_backoff,
    )
    store = ConversationStore(engine, title_max_length=settings.title_max_length)
    audit = AuditLog(engine)
    registry = create_default_registry(records)
    gate = ConfirmationGate(
        records, store, MutationExecutor(records, audit), ttl_minutes=settings.proposal_ttl_minutes
    )
    return ChatService(
        store=store,
        interpreter=get_interpreter(registry, provider),
        dispatcher=Dispatcher(registry, gate),
        gate=gate,
        audit=audit,
        records=records,
        history_window=settings.history_window,
        max_message_length=settings.max_message_length,
    )


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter
