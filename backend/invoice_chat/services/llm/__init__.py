"""LLM provider factory."""

import logging

from invoice_chat.core.config import settings
from invoice_chat.services.llm.base import BaseLLMProvider

logger = logging.getLogger(__name__)


def get_llm_provider() -> BaseLLMProvider | None:
    """Factory function that returns the configured LLM provider, or None when disabled."""
    if settings.llm_provider == "none":
        return None
    if settings.llm_provider == "gemini":
        if not settings.gemini_api_key:
            logger.warning("Gemini API key not configured; using the deterministic interpreter only")
            return None
        from invoice_chat.services.llm.gemini import GeminiProvider
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
