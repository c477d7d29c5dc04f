"""Language-model interpreter. The model may only pick functions from the catalog."""

import asyncio
import json
import logging
from typing import Any

from invoice_chat.core.errors import Unrecognized, ValidationError
from invoice_chat.services.intents import INTENTS_BY_FUNCTION, Intent, UnrecognizedIntent
from invoice_chat.services.interpreter.base import BaseInterpreter
from invoice_chat.services.llm.base import BaseLLMProvider, Message
from invoice_chat.services.state_machine import TRANSITIONS
from invoice_chat.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SEMANTIC_CONFIDENCE = 0.8

UNAVAILABLE_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again in a moment."
)

SYSTEM_PROMPT_BASE = """You are an invoice management assistant on an invoice dashboard.
You help users search, summarize and update their invoices through conversation.

RULES:
- Always call a function to answer questions about invoices. Never invent invoice numbers, amounts or vendors.
- Call exactly one function per reply.
- Changes (status updates, notes) are only proposals: call propose_status_change or propose_note_append
  and the user will be asked to confirm. Never claim a change has been made.
- Invoices can never be deleted.
- Dates use YYYY-MM-DD.

Status workflow (current -> allowed next):"""


def build_system_prompt(dashboard_context: dict[str, Any] | None, catalog_version: str) -> str:
    prompt = SYSTEM_PROMPT_BASE
    for status, allowed in TRANSITIONS.items():
        prompt += f"\n- {status} -> {', '.join(allowed) if allowed else '(final)'}"
    prompt += f"\n\nFunction catalog version: {catalog_version}"
    if dashboard_context:
        prompt += "\n\nThe user is currently viewing this dashboard state:\n"
        prompt += json.dumps(dashboard_context, default=str)[:2000]
    return prompt


class SemanticInterpreter(BaseInterpreter):
    def __init__(self, provider: BaseLLMProvider, registry: ToolRegistry, timeout: float) -> None:
        self.provider = provider
        self.registry = registry
        self.timeout = timeout

    async def interpret(
        self,
        utterance: str,
        history: list[Message],
        dashboard_context: dict[str, Any] | None = None,
    ) -> Intent:
        messages = [*history, Message(role="user", content=utterance)]
        system = build_system_prompt(dashboard_context, self.registry.version)

        try:
            response = await asyncio.wait_for(
                self.provider.chat(messages, tools=self.registry.gemini_declarations(), system=system),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Language model timed out after {self.timeout}s")
            return UnrecognizedIntent(message=UNAVAILABLE_MESSAGE, service_unavailable=True, source="semantic")
        except Exception as e:
            # Provider SDKs raise their own exception hierarchies
            logger.error(f"Language model request failed: {e!r}")
            return UnrecognizedIntent(message=UNAVAILABLE_MESSAGE, service_unavailable=True, source="semantic")

        usage = {"model": response.model, **response.usage}

        if not response.tool_calls:
            text = response.content.strip()
            return UnrecognizedIntent(source="semantic", usage=usage, **({"message": text} if text else {}))

        call = response.tool_calls[0]
        if len(response.tool_calls) > 1:
            logger.info(f"Model requested {len(response.tool_calls)} functions; using {call.name} only")
        logger.info(f"Tool call: {call.name}({call.arguments})")

        intent_cls = INTENTS_BY_FUNCTION.get(call.name)
        try:
            arguments = self.registry.validate(call.name, call.arguments)
        except Unrecognized:
            intent_cls = None
        except ValidationError as e:
            logger.info(f"Rejected arguments for {call.name}: {e.field}: {e.message}")
            return UnrecognizedIntent(
                message=f"I couldn't work out that request ({e.user_message()}). Could you rephrase it?",
                source="semantic",
                usage=usage,
            )

        if intent_cls is None:
            logger.warning(f"Model requested uncataloged function {call.name!r}")
            return UnrecognizedIntent(source="semantic", usage=usage)

        return intent_cls.from_arguments(arguments, confidence=SEMANTIC_CONFIDENCE, source="semantic", usage=usage)
