"""Interpreter factory."""

from invoice_chat.core.config import settings
from invoice_chat.services.interpreter.base import BaseInterpreter
from invoice_chat.services.interpreter.deterministic import DeterministicInterpreter
from invoice_chat.services.interpreter.hybrid import HybridInterpreter
from invoice_chat.services.interpreter.semantic import SemanticInterpreter
from invoice_chat.services.llm.base import BaseLLMProvider
from invoice_chat.services.tools.registry import ToolRegistry


def get_interpreter(registry: ToolRegistry, provider: BaseLLMProvider | None) -> BaseInterpreter:
    """Build the hybrid interpreter; without a provider it is purely deterministic."""
    semantic = None
    if provider is not None:
        semantic = SemanticInterpreter(provider, registry, timeout=settings.interpreter_timeout)
    return HybridInterpreter(DeterministicInterpreter(), semantic)
