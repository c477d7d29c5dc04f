"""Applies confirmed proposals and records exactly one audit entry per attempt."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from invoice_chat.core.errors import AssistantError, AuditWriteFailure, Conflict, ExternalServiceError
from invoice_chat.models.audit import ActionAuditEntry
from invoice_chat.models.proposal import Proposal
from invoice_chat.services.audit import AuditLog
from invoice_chat.services.records import InvoiceRecord, RecordStore
from invoice_chat.services.state_machine import check_transition

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    owner_id: str
    conversation_id: int


@dataclass
class ExecutionResult:
    outcome: str  # success | failure | inconclusive
    record: InvoiceRecord | None = None
    reason: str | None = None
    error: AssistantError | None = None
    audit_entry: ActionAuditEntry | None = None
    unchanged: bool = False
    proposal: Proposal | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == "success"


def append_note(notes: str, note: str, now: datetime) -> str:
    line = f"[{now.isoformat(timespec='seconds')}] {note}"
    return f"{notes}\n{line}" if notes else line


class MutationExecutor:
    def __init__(
        self,
        records: RecordStore,
        audit: AuditLog,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.records = records
        self.audit = audit
        self.clock = clock

    async def execute(self, proposal: Proposal, ctx: ActionContext) -> ExecutionResult:
        field = proposal.target_field
        before = {field: proposal.from_value}

        try:
            current = await self.records.read(ctx.owner_id, proposal.record_id)
            actual = getattr(current, field)
            if actual != proposal.from_value:
                raise Conflict(proposal.record_label, proposal.from_value, actual)

            if proposal.unchanged:
                entry = await self._audit(proposal, ctx, before, before, "success", unchanged=True)
                logger.info(f"No-op {proposal.action_type} on {proposal.record_label} recorded")
                return ExecutionResult("success", record=current, audit_entry=entry, unchanged=True)

            patch = self._patch(proposal, current)
        except AuditWriteFailure as e:
            logger.error(f"Audit write failed for no-op on {proposal.record_label}: {e.message}")
            return ExecutionResult("failure", reason=e.message, error=e)
        except AssistantError as e:
            return await self._fail(proposal, ctx, before, e)

        try:
            # Applies only if the field still holds the proposal's baseline
            updated = await self.records.write(ctx.owner_id, current.id, patch, expected=before)
        except ExternalServiceError as e:
            return await self._reconcile(proposal, ctx, before, patch, e)
        except AssistantError as e:
            return await self._fail(proposal, ctx, before, e)

        after = {field: getattr(updated, field)}
        try:
            entry = await self._audit(proposal, ctx, before, after, "success")
        except AuditWriteFailure as e:
            logger.critical(
                f"RECONCILE: {proposal.action_type} applied to invoice {updated.id} "
                f"({before} -> {after}) in conversation {ctx.conversation_id} but the audit write failed: "
                f"{e.message}"
            )
            return ExecutionResult("inconclusive", record=updated, reason=e.user_message(), error=e)

        logger.info(f"Applied {proposal.action_type} to {proposal.record_label}: {before} -> {after}")
        return ExecutionResult("success", record=updated, audit_entry=entry)

    async def _fail(
        self, proposal: Proposal, ctx: ActionContext, before: dict[str, Any], error: AssistantError
    ) -> ExecutionResult:
        logger.info(f"{proposal.action_type} on {proposal.record_label} failed: {error.message}")
        entry = await self._audit_failure(proposal, ctx, before, error)
        return ExecutionResult("failure", reason=error.user_message(), error=error, audit_entry=entry)

    async def _reconcile(
        self,
        proposal: Proposal,
        ctx: ActionContext,
        before: dict[str, Any],
        patch: dict[str, Any],
        error: ExternalServiceError,
    ) -> ExecutionResult:
        """Work out whether a write that errored was committed anyway.

        A timed-out write may still have landed in the worker thread, so the
        record is re-read before the attempt is reported or audited.
        """
        field = proposal.target_field
        try:
            current = await self.records.read(ctx.owner_id, proposal.record_id)
        except AssistantError as read_error:
            logger.critical(
                f"RECONCILE: {proposal.action_type} on invoice {proposal.record_id} in conversation "
                f"{ctx.conversation_id} failed ({error.message}) and the invoice could not be re-read "
                f"({read_error.message}); the change may have been applied"
            )
            entry = await self._audit_failure(proposal, ctx, before, error, reason=f"{error.message}; outcome unknown")
            return ExecutionResult(
                "inconclusive",
                reason=(
                    f"I couldn't tell whether the change to invoice **{proposal.record_label}** was applied. "
                    "It has been flagged for manual review; please check the invoice before retrying."
                ),
                error=error,
                audit_entry=entry,
            )

        if getattr(current, field) != patch[field]:
            return await self._fail(proposal, ctx, before, error)

        after = {field: getattr(current, field)}
        logger.critical(
            f"RECONCILE: {proposal.action_type} on invoice {current.id} in conversation {ctx.conversation_id} "
            f"reported {error.message} but the invoice now holds {after}"
        )
        try:
            entry = await self._audit(
                proposal, ctx, before, after, "success", failure_reason=f"{error.message}; found applied on re-read"
            )
        except AuditWriteFailure as e:
            logger.critical(f"RECONCILE: audit write for invoice {current.id} also failed: {e.message}")
            entry = None
        return ExecutionResult(
            "inconclusive",
            record=current,
            reason=(
                f"The invoice store reported \"{error.message}\", but the change to invoice "
                f"**{proposal.record_label}** is in place. It has been flagged for manual review."
            ),
            error=error,
            audit_entry=entry,
        )

    def _patch(self, proposal: Proposal, current: InvoiceRecord) -> dict[str, Any]:
        if proposal.action_type == "status_change":
            check_transition(current.status, proposal.to_value)
            return {"status": proposal.to_value}
        return {"notes": append_note(current.notes, proposal.to_value, self.clock())}

    async def _audit(
        self,
        proposal: Proposal,
        ctx: ActionContext,
        before: dict[str, Any],
        after: dict[str, Any] | None,
        outcome: str,
        failure_reason: str | None = None,
        unchanged: bool = False,
    ) -> ActionAuditEntry:
        return await self.audit.record(
            owner_id=ctx.owner_id,
            conversation_id=ctx.conversation_id,
            message_id=proposal.message_id,
            action_type=proposal.action_type,
            record_ids=[proposal.record_id],
            before=before,
            after=after,
            outcome=outcome,
            failure_reason=failure_reason,
            unchanged=unchanged,
        )

    async def _audit_failure(
        self,
        proposal: Proposal,
        ctx: ActionContext,
        before: dict[str, Any],
        error: AssistantError,
        reason: str | None = None,
    ) -> ActionAuditEntry | None:
        try:
            return await self._audit(proposal, ctx, before, None, "failure", failure_reason=reason or error.message)
        except AuditWriteFailure as e:
            # Nothing was changed, so the turn still reports the original failure
            logger.error(f"Could not record failed {proposal.action_type} on {proposal.record_label}: {e.message}")
            return None
