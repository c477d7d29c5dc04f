"""Invoice status workflow. This table is the only source of legal transitions."""

from invoice_chat.core.errors import InvalidTransition, ValidationError

STATUSES = ("pending", "in_review", "approved", "paid", "overdue")

# paid is terminal; reopening it is an admin action outside the chat assistant
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("in_review", "overdue"),
    "in_review": ("pending", "approved", "overdue"),
    "approved": ("in_review", "paid"),
    "paid": (),
    "overdue": ("in_review", "approved", "paid"),
}


def validate_status(status: str, field: str = "status") -> str:
    if status not in TRANSITIONS:
        raise ValidationError(field, f"must be one of {', '.join(STATUSES)}")
    return status


def allowed_next(status: str) -> list[str]:
    """Legal next statuses for a current status."""
    return list(TRANSITIONS[validate_status(status)])


def check_transition(from_status: str, to_status: str) -> bool:
    """Validate a status change.

    Returns True when the change is legal and False when it is a no-op
    (from == to). Raises InvalidTransition for anything else.
    """
    validate_status(from_status, "from_status")
    validate_status(to_status, "new_status")
    if from_status == to_status:
        return False
    if to_status not in TRANSITIONS[from_status]:
        raise InvalidTransition(from_status, to_status, allowed_next(from_status))
    return True
