"""Abstract interpreter interface: utterance in, typed Intent out."""

from abc import ABC, abstractmethod
from typing import Any

from invoice_chat.services.intents import Intent
from invoice_chat.services.llm.base import Message


class BaseInterpreter(ABC):
    @abstractmethod
    async def interpret(
        self,
        utterance: str,
        history: list[Message],
        dashboard_context: dict[str, Any] | None = None,
    ) -> Intent:
        """Map an utterance to an Intent. Must not raise for unmappable input."""
        ...
