"""Append-only conversation history."""

from collections.abc import Iterable, Iterator

from agentcli.models.llm import Message, ToolCallPart


class Conversation:
    """Ordered message history for one session.

    Messages can only be appended; insertion order is the model's context.
    """

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = []
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        """Append a message to the end of the conversation."""
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    @property
    def messages(self) -> tuple[Message, ...]:
        """Read-only view of the history."""
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        """Most recent message, if any."""
        return self._messages[-1] if self._messages else None

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def pending_tool_calls(self) -> list[ToolCallPart]:
        """Tool calls that do not yet have a result."""
        answered: set[str] = set()
        for message in self._messages:
            answered.update(part.call_id for part in message.tool_results)

        return [
            call for message in self._messages for call in message.tool_calls if call.id not in answered
        ]

    def is_resolvable(self) -> bool:
        """Whether every tool call is paired with exactly one result.

        Only a resolvable conversation may be sent to the model again.
        """
        call_ids: list[str] = []
        result_ids: list[str] = []
        for message in self._messages:
            call_ids.extend(call.id for call in message.tool_calls)
            result_ids.extend(result.call_id for result in message.tool_results)

        if len(set(call_ids)) != len(call_ids):
            return False
        return sorted(call_ids) == sorted(result_ids)
