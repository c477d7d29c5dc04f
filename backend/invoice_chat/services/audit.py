"""Append-only audit log of confirmed actions.

Entries are only ever inserted. The executor writes exactly one entry per
confirmed attempt and must never retry a failed write.
"""

import asyncio
import logging
from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from invoice_chat.core.errors import AuditWriteFailure, ValidationError
from invoice_chat.models.audit import ACTION_TYPES, ActionAuditEntry, AuditRecordLink

logger = logging.getLogger(__name__)

OUTCOMES = ("success", "failure")


class AuditLog:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def record(
        self,
        *,
        owner_id: str,
        conversation_id: int,
        message_id: int | None,
        action_type: str,
        record_ids: list[str],
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        outcome: str,
        failure_reason: str | None = None,
        unchanged: bool = False,
    ) -> ActionAuditEntry:
        if action_type not in ACTION_TYPES:
            raise ValidationError("action_type", f"must be one of {', '.join(ACTION_TYPES)}")
        if outcome not in OUTCOMES:
            raise ValidationError("outcome", "must be success or failure")

        entry = ActionAuditEntry(
            conversation_id=conversation_id,
            message_id=message_id,
            owner_id=owner_id,
            action_type=action_type,
            record_ids=list(record_ids),
            before=before,
            after=after,
            outcome=outcome,
            failure_reason=failure_reason,
            unchanged=unchanged,
            confirmed_by_user=True,
        )
        try:
            return await asyncio.to_thread(self._insert, entry)
        except (SQLAlchemyError, OSError) as e:
            raise AuditWriteFailure(f"Audit write failed: {e!r}") from e

    def _insert(self, entry: ActionAuditEntry) -> ActionAuditEntry:
        with Session(self.engine) as session:
            session.add(entry)
            session.flush()
            for record_id in dict.fromkeys(entry.record_ids):
                session.add(AuditRecordLink(audit_entry_id=entry.id, record_id=record_id))
            session.commit()
            session.refresh(entry)
            logger.info(
                f"Audit entry {entry.id}: {entry.action_type} {entry.record_ids} -> {entry.outcome}"
            )
            return entry

    def history_for_record(self, owner_id: str, record_id: str) -> list[ActionAuditEntry]:
        """All entries touching an invoice, oldest first."""
        with Session(self.engine) as session:
            return list(session.exec(
                select(ActionAuditEntry)
                .join(AuditRecordLink, col(AuditRecordLink.audit_entry_id) == col(ActionAuditEntry.id))
                .where(AuditRecordLink.record_id == record_id, ActionAuditEntry.owner_id == owner_id)
                .order_by(col(ActionAuditEntry.created_at), col(ActionAuditEntry.id))
            ).all())

    def history_for_conversation(self, owner_id: str, conversation_id: int) -> list[ActionAuditEntry]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(ActionAuditEntry)
                .where(
                    ActionAuditEntry.conversation_id == conversation_id,
                    ActionAuditEntry.owner_id == owner_id,
                )
                .order_by(col(ActionAuditEntry.created_at), col(ActionAuditEntry.id))
            ).all())


def entry_to_dict(entry: ActionAuditEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "conversation_id": entry.conversation_id,
        "message_id": entry.message_id,
        "actor": entry.owner_id,
        "action_type": entry.action_type,
        "record_ids": entry.record_ids,
        "before": entry.before,
        "after": entry.after,
        "outcome": entry.outcome,
        "failure_reason": entry.failure_reason,
        "unchanged": entry.unchanged,
        "confirmed_by_user": entry.confirmed_by_user,
        "created_at": entry.created_at.isoformat(),
    }
