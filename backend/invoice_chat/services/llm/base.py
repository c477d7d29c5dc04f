"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class Message:
    role: str  # "user" | "assistant" | "system"
    content: str


@dataclass
class ToolCall:
    name: str
    arguments: dict


@dataclass
class LLMResponse:
    content: str
    tool_calls: list[ToolCall] | None = None
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)  # input_tokens / output_tokens


class BaseLLMProvider(ABC):
    @abstractmethod
    async def chat(
        self, messages: list[Message], tools: list[dict] | None = None, system: str | None = None
    ) -> LLMResponse:
        """Send messages and get a response. Optionally with tool definitions."""
        ...
