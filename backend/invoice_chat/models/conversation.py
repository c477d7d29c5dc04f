"""Conversation and message models for chat history persistence."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class Conversation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    title: Optional[str] = Field(default=None)  # derived once from the first user message
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    archived: bool = Field(default=False)
    context: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # Single proposal slot, owned by the confirmation gate
    pending_proposal: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))


class ChatMessage(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("conversation_id", "sequence"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversation.id", index=True)
    sequence: int
    role: str  # "user" | "assistant" | "system"
    content: str
    record_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    proposed_action: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    meta: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
