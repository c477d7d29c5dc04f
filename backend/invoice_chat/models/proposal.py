"""Pending proposal, serialized into Conversation.pending_proposal."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Proposal(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    conversation_id: int
    action_type: Literal["status_change", "note_append"]
    record_id: str
    record_label: str
    vendor: str
    amount: float
    from_value: str
    to_value: str
    reason: str | None = None
    message_id: int | None = None  # assistant message that showed the prompt
    created_at: datetime = Field(default_factory=_now)
    expires_at: datetime

    @classmethod
    def create(cls, ttl_minutes: int, now: datetime | None = None, **fields) -> "Proposal":
        now = now or _now()
        return cls(created_at=now, expires_at=now + timedelta(minutes=ttl_minutes), **fields)

    @property
    def target_field(self) -> str:
        return "status" if self.action_type == "status_change" else "notes"

    @property
    def unchanged(self) -> bool:
        return self.action_type == "status_change" and self.from_value == self.to_value

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (now or _now()) >= expires_at

    def prompt(self) -> str:
        invoice = f"invoice **{self.record_label}** ({self.vendor}, ${self.amount:,.2f})"
        if self.action_type == "note_append":
            text = f"Add this note to {invoice}?\n\n> {self.to_value}"
        elif self.unchanged:
            text = (
                f"Invoice **{self.record_label}** is already **{self.from_value}**. "
                f"Confirm to record {self.from_value} → {self.to_value} with no change."
            )
        else:
            text = f"Change the status of {invoice}: **{self.from_value} → {self.to_value}**?"
        if self.reason:
            text += f"\n\nReason: {self.reason}"
        return text + "\n\nReply **confirm** to apply or **cancel** to discard."

    def summary(self) -> dict:
        """The proposal as shown on the assistant message."""
        return {
            "proposal_id": self.id,
            "action_type": self.action_type,
            "record_id": self.record_id,
            "record_label": self.record_label,
            "from": self.from_value,
            "to": self.to_value,
            "reason": self.reason,
            "expires_at": self.expires_at.isoformat(),
        }
