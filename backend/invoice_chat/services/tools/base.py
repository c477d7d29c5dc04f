"""Base tool interface. Every function the assistant can call implements this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from invoice_chat.core.errors import ValidationError

_MISSING = object()


@dataclass
class ToolParameter:
    name: str
    type: str  # "string" | "integer" | "boolean" | "number" | "array"
    description: str
    required: bool = True
    enum: list[str] | None = None
    items: str | None = None  # item type for arrays
    format: str | None = None  # "date" for ISO dates
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    default: Any = None

    def to_schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.type == "array":
            item: dict[str, Any] = {"type": self.items or "string"}
            if self.enum:
                item["enum"] = self.enum
            prop["items"] = item
        elif self.enum:
            prop["enum"] = self.enum
        if self.format:
            prop["format"] = self.format
        if self.minimum is not None:
            prop["minimum"] = self.minimum
        if self.maximum is not None:
            prop["maximum"] = self.maximum
        return prop

    def coerce(self, value: Any) -> Any:
        """Check one argument against this parameter, returning the typed value."""
        if self.type == "array":
            if isinstance(value, (str, int, float)):
                value = [value]
            if not isinstance(value, (list, tuple)):
                raise ValidationError(self.name, "must be a list")
            values = [self._coerce_scalar(self.items or "string", v) for v in value]
            if self.enum:
                for v in values:
                    self._check_enum(v)
            return values

        result = self._coerce_scalar(self.type, value)
        if self.enum:
            self._check_enum(result)
        return result

    def _check_enum(self, value: Any) -> None:
        if value not in (self.enum or []):
            raise ValidationError(self.name, f"must be one of {', '.join(self.enum or [])}")

    def _coerce_scalar(self, type_: str, value: Any) -> Any:
        if type_ == "string":
            if not isinstance(value, str):
                raise ValidationError(self.name, "must be a string")
            value = value.strip()
            if self.min_length is not None and len(value) < self.min_length:
                raise ValidationError(self.name, "cannot be empty" if self.min_length == 1
                                      else f"must be at least {self.min_length} characters")
            if self.max_length is not None and len(value) > self.max_length:
                raise ValidationError(self.name, f"is too long (max {self.max_length} characters)")
            if self.format == "date":
                try:
                    return date.fromisoformat(value)
                except ValueError:
                    raise ValidationError(self.name, "must be a date in YYYY-MM-DD format")
            return value

        if type_ == "boolean":
            if not isinstance(value, bool):
                raise ValidationError(self.name, "must be true or false")
            return value

        if type_ in ("integer", "number"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(self.name, "must be a number")
            if type_ == "integer":
                if isinstance(value, float) and not value.is_integer():
                    raise ValidationError(self.name, "must be a whole number")
                value = int(value)
            if self.minimum is not None and value < self.minimum:
                raise ValidationError(self.name, f"must be at least {self.minimum:g}")
            if self.maximum is not None and value > self.maximum:
                raise ValidationError(self.name, f"must be at most {self.maximum:g}")
            return value

        raise ValidationError(self.name, f"has unsupported type {type_}")


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)
    mutating: bool = False

    def to_gemini_schema(self) -> dict:
        """Convert to Gemini function declaration format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.to_schema() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        }

    def validate(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate raw arguments. Raises ValidationError naming the first bad field."""
        known = {p.name for p in self.parameters}
        for key in arguments:
            if key not in known:
                raise ValidationError(key, f"is not a parameter of {self.name}")

        validated: dict[str, Any] = {}
        for param in self.parameters:
            value = arguments.get(param.name, _MISSING)
            if value is _MISSING or value is None:
                if param.required:
                    raise ValidationError(param.name, "is required")
                if param.default is not None:
                    validated[param.name] = param.default
                continue
            validated[param.name] = param.coerce(value)
        return validated


class BaseTool(ABC):
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return the tool's definition for LLM function calling."""
        ...


class ReadTool(BaseTool):
    """Idempotent lookup, executed as soon as it is requested."""

    @abstractmethod
    async def execute(self, owner_id: str, **kwargs: Any) -> dict[str, Any]:
        """Execute the tool with validated arguments. Returns structured data."""
        ...


class WriteTool(BaseTool):
    """Describes a mutation. Never executed directly; the confirmation gate applies it."""
