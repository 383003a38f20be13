"""Agent loop: drives model steps and tool calls until a round settles."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from agentcli.clients.base import ModelClient
from agentcli.models.conversation import Conversation
from agentcli.models.events import (
    ErrorEvent,
    Finished,
    StepBudgetExceeded,
    StepFinished,
    StreamEvent,
    ToolCallResult,
)
from agentcli.models.llm import LLMUsage, Message, ToolCallPart, ToolResultPart, ToolSchema
from agentcli.services.dispatcher import ToolDispatcher
from agentcli.tools.registry import ToolsRegistry
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)

EventSink = Callable[[StreamEvent], None]
StopReason = Literal["completed", "step_budget_exceeded", "error"]

DEFAULT_STEP_BUDGET = 25


@dataclass
class RoundResult:
    """Outcome of one round."""

    messages: list[Message]
    stop_reason: StopReason
    steps: int
    usage: LLMUsage = field(default_factory=LLMUsage)
    error: str | None = None


@dataclass
class _StepOutcome:
    messages: list[Message] | None
    error: str | None = None


class AgentLoop:
    """Runs rounds of model invocations and local tool calls.

    The conversation is only ever appended to. Each step sends the whole
    conversation to the model; tool calls requested by a step are dispatched
    after its stream ends and their results are appended in request order.
    """

    def __init__(
        self,
        client: ModelClient,
        registry: ToolsRegistry,
        dispatcher: ToolDispatcher,
        system_prompt: Callable[[], str],
        on_event: EventSink | None = None,
        step_budget: int = DEFAULT_STEP_BUDGET,
        parallel_tool_calls: bool = True,
    ):
        """Initialize the agent loop.

        Args:
            client: Model collaborator
            registry: Tools whose schemas are offered to the model
            dispatcher: Executes tool calls
            system_prompt: Builds the system prompt, called once per step
            on_event: Receives every event for display
            step_budget: Maximum model invocations per round
            parallel_tool_calls: Run the tool calls of one step concurrently
        """
        if step_budget < 1:
            raise ValueError("step_budget must be at least 1")

        self.client = client
        self.registry = registry
        self.dispatcher = dispatcher
        self.system_prompt = system_prompt
        self.on_event = on_event
        self.step_budget = step_budget
        self.parallel_tool_calls = parallel_tool_calls

    async def run_round(self, conversation: Conversation) -> RoundResult:
        """Run one round on a conversation that ends with a user message.

        Args:
            conversation: History to extend; only appended to

        Returns:
            The messages appended by this round and why it stopped

        Raises:
            ValueError: If the conversation does not end with a user message or has
                unanswered tool calls
        """
        last = conversation.last
        if last is None or last.role != "user":
            raise ValueError("A round must start from a conversation ending in a user message")
        if conversation.pending_tool_calls():
            raise ValueError("Conversation has tool calls without results")

        tools = self.registry.get_schemas()
        new_messages: list[Message] = []
        usage = LLMUsage()

        logger.info(
            f"Starting round with {len(conversation)} messages, {len(tools)} tools, step budget: {self.step_budget}"
        )

        for step in range(1, self.step_budget + 1):
            logger.debug(f"Agent loop step {step}/{self.step_budget}")

            outcome = await self._run_step(conversation, tools, usage)
            if outcome.messages is None:
                logger.warning(f"Round ended by collaborator error at step {step}: {outcome.error}")
                return RoundResult(new_messages, "error", step, usage, outcome.error)

            tool_calls: list[ToolCallPart] = []
            for message in outcome.messages:
                conversation.append(message)
                new_messages.append(message)
                tool_calls.extend(message.tool_calls)

            if not tool_calls:
                logger.info(f"Round completed in {step} steps")
                return RoundResult(new_messages, "completed", step, usage)

            logger.info(f"Model requested {len(tool_calls)} tool calls")
            results = await self._dispatch_tool_calls(tool_calls)
            tool_message = Message.tool(results)
            conversation.append(tool_message)
            new_messages.append(tool_message)

        logger.warning(f"Round reached the step budget ({self.step_budget})")
        self._emit(StepBudgetExceeded(step_budget=self.step_budget))
        return RoundResult(new_messages, "step_budget_exceeded", self.step_budget, usage)

    async def _run_step(self, conversation: Conversation, tools: list[ToolSchema], usage: LLMUsage) -> _StepOutcome:
        """Consume one collaborator stream."""
        final_messages: list[Message] | None = None
        error: str | None = None

        try:
            async for event in self.client.stream(conversation.messages, tools, self.system_prompt()):
                self._emit(event)

                if isinstance(event, ErrorEvent):
                    error = event.detail
                elif isinstance(event, StepFinished) and event.usage:
                    usage.add(event.usage)
                elif isinstance(event, Finished):
                    final_messages = event.final_messages
        except Exception as e:
            logger.error(f"Model stream raised: {e}", exc_info=True)
            error = str(e) or type(e).__name__
            self._emit(ErrorEvent(detail=error))
            return _StepOutcome(None, error)

        if final_messages is None:
            if error is None:
                error = "Model stream ended without a response"
                self._emit(ErrorEvent(detail=error))
            return _StepOutcome(None, error)

        return _StepOutcome(final_messages, error)

    async def _dispatch_tool_calls(self, tool_calls: list[ToolCallPart]) -> list[ToolResultPart]:
        """Dispatch tool calls, returning results in request order."""

        async def run(call: ToolCallPart) -> ToolResultPart:
            result = await self.dispatcher.dispatch(call.tool_name, call.arguments)
            self._emit(
                ToolCallResult(id=call.id, tool_name=call.tool_name, arguments=call.arguments, result=result)
            )
            return ToolResultPart(call_id=call.id, tool_name=call.tool_name, result=result)

        if self.parallel_tool_calls and len(tool_calls) > 1:
            return list(await asyncio.gather(*(run(call) for call in tool_calls)))

        return [await run(call) for call in tool_calls]

    def _emit(self, event: StreamEvent) -> None:
        if self.on_event is not None:
            self.on_event(event)
