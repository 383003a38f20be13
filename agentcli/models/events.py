"""Stream events produced during a round."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from agentcli.models.llm import LLMUsage, Message, ToolResult


class TextDelta(BaseModel):
    """An incremental piece of assistant text."""

    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolCallRequested(BaseModel):
    """The model asked for a tool to be run."""

    type: Literal["tool_call_requested"] = "tool_call_requested"
    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """A tool call finished locally.

    Emitted by the agent loop after dispatch; the collaborator never runs tools.
    """

    type: Literal["tool_call_result"] = "tool_call_result"
    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult


class StepFinished(BaseModel):
    """One model invocation completed."""

    type: Literal["step_finished"] = "step_finished"
    stop_reason: str | None = None
    usage: LLMUsage | None = None


class ErrorEvent(BaseModel):
    """A visible, non-fatal problem reported by the collaborator or the loop."""

    type: Literal["error"] = "error"
    detail: str


class Finished(BaseModel):
    """End of a collaborator stream, carrying the messages it produced."""

    type: Literal["finished"] = "finished"
    final_messages: list[Message]


class StepBudgetExceeded(BaseModel):
    """The round used all of its steps while the model still wanted tools."""

    type: Literal["step_budget_exceeded"] = "step_budget_exceeded"
    step_budget: int


StreamEvent = Annotated[
    TextDelta | ToolCallRequested | ToolCallResult | StepFinished | ErrorEvent | Finished | StepBudgetExceeded,
    Field(discriminator="type"),
]
