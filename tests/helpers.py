"""Shared fakes for the test suite."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from agentcli.models.events import ErrorEvent, Finished, StepFinished, StreamEvent, TextDelta, ToolCallRequested
from agentcli.models.llm import Message, TextPart, ToolCallPart, ToolSchema, new_id
from agentcli.services.memory import MemoryNotes
from agentcli.services.permissions import PermissionGate
from agentcli.services.sandbox import PathSandbox
from agentcli.tools.base import ToolContext


class FakePrompter:
    """Answers permission questions from a script and records them."""

    def __init__(self, answers: bool | list[bool] = True):
        self.answers = answers
        self.questions: list[str] = []

    async def __call__(self, description: str) -> bool:
        self.questions.append(description)
        if isinstance(self.answers, list):
            return self.answers.pop(0)
        return self.answers


class ScriptedModelClient:
    """Model collaborator that replays one scripted event list per step."""

    def __init__(self, steps: Sequence[list[StreamEvent] | Exception]):
        self.steps = list(steps)
        self.calls: list[dict[str, Any]] = []

    async def stream(self, messages: Sequence[Message], tools: Sequence[ToolSchema], system_prompt: str):
        self.calls.append({"messages": list(messages), "tools": list(tools), "system_prompt": system_prompt})
        if not self.steps:
            yield ErrorEvent(detail="No scripted response left")
            return

        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        for event in step:
            yield event


def text_step(text: str) -> list[StreamEvent]:
    """A step where the model only answers with text."""
    return [
        TextDelta(text=text),
        StepFinished(stop_reason="end_turn"),
        Finished(final_messages=[Message.assistant([TextPart(text=text)])]),
    ]


def tool_step(*calls: tuple[str, Any], text: str = "") -> list[StreamEvent]:
    """A step where the model requests the given (tool name, arguments) calls."""
    parts: list[TextPart | ToolCallPart] = []
    events: list[StreamEvent] = []
    if text:
        parts.append(TextPart(text=text))
        events.append(TextDelta(text=text))

    for name, arguments in calls:
        call = ToolCallPart(id=new_id(), tool_name=name, arguments=arguments)
        parts.append(call)
        events.append(ToolCallRequested(id=call.id, tool_name=name, arguments=arguments))

    events.append(StepFinished(stop_reason="tool_use"))
    events.append(Finished(final_messages=[Message.assistant(parts)]))
    return events


def make_context(
    root: Path,
    prompter: FakePrompter | None = None,
    unattended: bool = False,
    memory: MemoryNotes | None = None,
    shell_timeout: float | None = 10.0,
) -> ToolContext:
    """Tool context rooted at ``root``; unattended unless a prompter is given."""
    gate = PermissionGate(prompter, unattended=unattended or prompter is None)
    return ToolContext(
        sandbox=PathSandbox(root),
        permissions=gate,
        shell_timeout=shell_timeout,
        memory=memory,
    )
