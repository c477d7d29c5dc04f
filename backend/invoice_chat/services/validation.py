"""Input sanitization for user-supplied chat text."""

import html
import re

from invoice_chat.core.errors import ValidationError

TAG = re.compile(r"<[^>]*>")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_input(text: str) -> str:
    """Strip HTML tags, decode entities and drop control characters (newlines and tabs survive)."""
    sanitized = TAG.sub("", text)
    sanitized = html.unescape(sanitized)
    return CONTROL_CHARS.sub("", sanitized)


def validate_message(message: object, max_length: int) -> str:
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("message", "Message cannot be empty")
    if len(message) > max_length:
        raise ValidationError("message", f"Message is too long (max {max_length} characters)")
    sanitized = sanitize_input(message.strip()).strip()
    if not sanitized:
        raise ValidationError("message", "Message cannot be empty")
    return sanitized
