"""Error taxonomy for the chat pipeline.

Every error knows its HTTP status and how to explain itself to the user, so a
failed turn can be rendered as an assistant reply instead of an exception.
"""

from typing import Any


class AssistantError(Exception):
    code = "assistant_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def user_message(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.user_message()}


class ValidationError(AssistantError):
    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def user_message(self) -> str:
        return f"Invalid {self.field}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field}


class Unrecognized(AssistantError):
    code = "unrecognized"
    status_code = 422


class InvalidTransition(AssistantError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, allowed: list[str]) -> None:
        super().__init__(f"Cannot change status from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed

    def user_message(self) -> str:
        if not self.allowed:
            return f"{self.message}: {self.from_status} is a final status and cannot be changed."
        return f"{self.message}. From {self.from_status} you can move to: {', '.join(self.allowed)}."

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "allowed": self.allowed}


class StaleProposal(AssistantError):
    code = "stale_proposal"
    status_code = 409

    def __init__(self, message: str = "There is no pending action matching that confirmation.") -> None:
        super().__init__(message)


class Conflict(AssistantError):
    code = "conflict"
    status_code = 409

    def __init__(self, record_id: str, expected: str, actual: str) -> None:
        super().__init__(f"Invoice {record_id} changed since the action was proposed")
        self.record_id = record_id
        self.expected = expected
        self.actual = actual

    def user_message(self) -> str:
        return (
            f"{self.message} (expected {self.expected!r}, found {self.actual!r}). "
            "Nothing was changed; ask again to get a fresh proposal."
        )

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "expected": self.expected, "actual": self.actual}


class ExternalServiceError(AssistantError):
    code = "external_service_error"
    status_code = 503

    def __init__(self, service: str, message: str) -> None:
        super().__init__(message)
        self.service = service

    def user_message(self) -> str:
        return f"The {self.service} is unavailable right now ({self.message}). Please try again in a moment."


class AuditWriteFailure(AssistantError):
    code = "audit_write_failure"
    status_code = 500

    def user_message(self) -> str:
        return (
            "The change may have been applied, but it could not be recorded in the audit log. "
            "It has been flagged for manual review; please check the invoice before retrying."
        )


class RecordNotFound(AssistantError):
    code = "record_not_found"
    status_code = 404

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Invoice {record_id} was not found")
        self.record_id = record_id


class ConversationNotFound(AssistantError):
    code = "conversation_not_found"
    status_code = 404

    def __init__(self, conversation_id: int) -> None:
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class ConversationArchived(AssistantError):
    code = "conversation_archived"
    status_code = 409

    def __init__(self, conversation_id: int) -> None:
        super().__init__("This conversation is archived and read-only")
        self.conversation_id = conversation_id


class RateLimited(AssistantError):
    code = "rate_limited"
    status_code = 429

    def __init__(self) -> None:
        super().__init__("Rate limit exceeded. Please wait a moment before sending more messages.")
