"""Google Gemini LLM provider."""

import logging

from google import genai
from google.genai import types

from invoice_chat.core.config import settings
from invoice_chat.services.llm.base import BaseLLMProvider, LLMResponse, Message, ToolCall

logger = logging.getLogger(__name__)


class GeminiProvider(BaseLLMProvider):
    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.client = genai.Client(api_key=api_key or settings.gemini_api_key)
        self.model = model or settings.gemini_model

    async def chat(
        self, messages: list[Message], tools: list[dict] | None = None, system: str | None = None
    ) -> LLMResponse:
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in messages
            if m.role != "system"
        ]
        config = types.GenerateContentConfig(
            system_instruction=system,
            tools=[types.Tool(function_declarations=tools)] if tools else None,
        )

        logger.info(f"=== LLM API Call === model={self.model} messages={len(contents)} tools={len(tools or [])}")
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
            for part in response.candidates[0].content.parts:
                if part.function_call:
                    fc = part.function_call
                    tool_calls.append(ToolCall(name=fc.name or "", arguments=dict(fc.args) if fc.args else {}))
                elif part.text:
                    text_parts.append(part.text)

        usage = {}
        if response.usage_metadata:
            usage = {
                "input_tokens": response.usage_metadata.prompt_token_count or 0,
                "output_tokens": response.usage_metadata.candidates_token_count or 0,
            }
            logger.info(f"=== LLM Response === tokens in={usage['input_tokens']} out={usage['output_tokens']}")

        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            model=self.model,
            usage=usage,
        )
