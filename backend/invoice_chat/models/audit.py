"""Append-only audit trail of confirmed actions."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

ACTION_TYPES = ("status_change", "note_append", "search", "summary", "export", "filter")


class ActionAuditEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversation.id", index=True)
    message_id: Optional[int] = Field(default=None, foreign_key="chatmessage.id")
    owner_id: str = Field(index=True)
    action_type: str  # one of ACTION_TYPES
    record_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    before: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    after: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    outcome: str  # success | failure
    failure_reason: Optional[str] = None
    unchanged: bool = Field(default=False)
    confirmed_by_user: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditRecordLink(SQLModel, table=True):
    audit_entry_id: int = Field(foreign_key="actionauditentry.id", primary_key=True)
    record_id: str = Field(primary_key=True, index=True)
