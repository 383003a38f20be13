"""Interface of the model collaborator."""

from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from agentcli.models.events import StreamEvent
from agentcli.models.llm import Message, ToolSchema


class ModelClient(Protocol):
    """Streams one model invocation (a step) as StreamEvents.

    A stream ends with exactly one ``Finished`` carrying the assistant message
    produced by the step, or, when the call fails outright, with an ``ErrorEvent``
    and no ``Finished``.
    """

    def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        system_prompt: str,
    ) -> AsyncIterator[StreamEvent]:
        """Invoke the model with the full conversation and the tool declarations."""
        ...
