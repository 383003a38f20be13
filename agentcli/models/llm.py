"""Conversation messages, content parts and tool results (provider-agnostic)."""

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from cuid2 import cuid_wrapper
from pydantic import BaseModel, ConfigDict, Field, model_validator

cuid = cuid_wrapper()


def new_id() -> str:
    """Generate a CUID for messages and locally created tool calls."""
    return cuid()


class ToolResult(BaseModel):
    """Normalized outcome of a tool execution.

    A failed result always carries a non-empty ``error_message``. A successful
    result always carries a payload; its first field is the *primary* field the
    renderer displays.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    payload: dict[str, Any] | str = Field(default_factory=dict)
    error_message: str | None = None

    @model_validator(mode="after")
    def check_outcome(self) -> "ToolResult":
        """Enforce the success/error invariants."""
        if not self.success and not (self.error_message and self.error_message.strip()):
            raise ValueError("A failed tool result requires a non-empty error message")
        if self.success and not self.payload:
            raise ValueError("A successful tool result requires at least one payload field")
        return self

    @classmethod
    def ok(cls, **payload: Any) -> "ToolResult":
        """Build a successful result; keyword order sets the primary field."""
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, message: str, **payload: Any) -> "ToolResult":
        """Build a failed result with an error message and optional extra fields."""
        return cls(success=False, payload=payload, error_message=message or "Unknown error")

    @property
    def primary(self) -> Any:
        """The value a human should see first."""
        if not self.success:
            return self.error_message
        if isinstance(self.payload, str):
            return self.payload
        return next(iter(self.payload.values()))

    def to_wire(self) -> dict[str, Any]:
        """Flat dictionary form handed back to the model."""
        wire: dict[str, Any] = {"success": self.success}
        if not self.success:
            wire["message"] = self.error_message
        if isinstance(self.payload, str):
            wire["output"] = self.payload
        else:
            wire.update(self.payload)
        return wire

    def to_json(self) -> str:
        """Serialize the wire form."""
        return json.dumps(self.to_wire(), ensure_ascii=False, default=str)


# Content part types
class TextPart(BaseModel):
    """Plain text produced by the user or the assistant."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    """A tool invocation requested by the assistant."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    """The result of a tool call, linked to it by ``call_id``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    call_id: str
    tool_name: str
    result: ToolResult


ContentPart = Annotated[TextPart | ToolCallPart | ToolResultPart, Field(discriminator="type")]

Role = Literal["user", "assistant", "tool"]


class Message(BaseModel):
    """A single conversation message. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    role: Role
    content: str | tuple[ContentPart, ...]

    @classmethod
    def user(cls, text: str) -> "Message":
        """Create a user message."""
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, parts: list[TextPart | ToolCallPart]) -> "Message":
        """Create an assistant message from text and tool call parts."""
        return cls(role="assistant", content=tuple(parts))

    @classmethod
    def tool(cls, results: list[ToolResultPart]) -> "Message":
        """Create a tool message holding results in request order."""
        return cls(role="tool", content=tuple(results))

    @property
    def parts(self) -> tuple[TextPart | ToolCallPart | ToolResultPart, ...]:
        """Content as parts, wrapping plain string content in a text part."""
        if isinstance(self.content, str):
            return (TextPart(text=self.content),)
        return self.content

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        """Tool call parts in request order."""
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        """Tool result parts in order."""
        return [part for part in self.parts if isinstance(part, ToolResultPart)]


class ToolSchema(BaseModel):
    """Tool declaration handed to the model collaborator."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class LLMUsage:
    """Token usage reported by the provider for one step."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def add(self, other: "LLMUsage") -> None:
        """Accumulate another step's usage into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens
