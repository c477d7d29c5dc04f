"""Combined interpreter and its selection policy.

1. Utterances matching a canonical template go to the deterministic
   interpreter, even when a language model is configured.
2. Everything else goes to the semantic interpreter when there is one.
3. If the language model is unavailable, the deterministic result is used
   when it is confident enough; otherwise the user gets an apology.

Whatever goes wrong, interpret() returns an Intent and never raises.
"""

import logging
from typing import Any

from invoice_chat.services.intents import Intent, UnrecognizedIntent
from invoice_chat.services.interpreter.base import BaseInterpreter
from invoice_chat.services.interpreter.deterministic import DeterministicInterpreter
from invoice_chat.services.interpreter.semantic import UNAVAILABLE_MESSAGE, SemanticInterpreter
from invoice_chat.services.llm.base import Message

logger = logging.getLogger(__name__)

FALLBACK_MIN_CONFIDENCE = 0.5


class HybridInterpreter(BaseInterpreter):
    def __init__(
        self,
        deterministic: DeterministicInterpreter,
        semantic: SemanticInterpreter | None = None,
    ) -> None:
        self.deterministic = deterministic
        self.semantic = semantic

    async def interpret(
        self,
        utterance: str,
        history: list[Message],
        dashboard_context: dict[str, Any] | None = None,
    ) -> Intent:
        try:
            return await self._interpret(utterance, history, dashboard_context)
        except Exception:
            logger.exception("Interpreter failed")
            return UnrecognizedIntent(message=UNAVAILABLE_MESSAGE)

    async def _interpret(
        self,
        utterance: str,
        history: list[Message],
        dashboard_context: dict[str, Any] | None,
    ) -> Intent:
        if self.semantic is None or self.deterministic.matches_template(utterance):
            return self.deterministic.parse(utterance)

        intent = await self.semantic.interpret(utterance, history, dashboard_context)
        if not (isinstance(intent, UnrecognizedIntent) and intent.service_unavailable):
            return intent

        fallback = self.deterministic.parse(utterance)
        if fallback.confidence > FALLBACK_MIN_CONFIDENCE:
            logger.info(f"Language model unavailable; using deterministic result {type(fallback).__name__}")
            fallback.source = "fallback"
            return fallback
        return intent
