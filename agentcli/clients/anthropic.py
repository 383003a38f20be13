"""Anthropic streaming client with rate limiting and error handling."""

import asyncio
import json
import os
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic.types import Message as AnthropicResponseMessage
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from agentcli.config import DEFAULT_MODEL
from agentcli.models.events import ErrorEvent, Finished, StepFinished, StreamEvent, TextDelta, ToolCallRequested
from agentcli.models.llm import LLMUsage, Message, TextPart, ToolCallPart, ToolSchema
from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[dict[str, Any]]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_after: float = 120.0

    # Token limits for truncation
    max_conversation_tokens: int = 200000
    token_headroom: int = 8000  # Reserve tokens for response

    requests_per_minute: int = 50
    tokens_per_minute: int = 400_000


class AnthropicRateLimiter:
    """Moving-window request and token rate limiter."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the rate limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=max(estimated_tokens, 1)):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def _part_to_block(part: Any) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text} if part.text else None
    if isinstance(part, ToolCallPart):
        return {"type": "tool_use", "id": part.id, "name": part.tool_name, "input": part.arguments}
    return {
        "type": "tool_result",
        "tool_use_id": part.call_id,
        "content": part.result.to_json(),
        "is_error": not part.result.success,
    }


def to_anthropic_messages(messages: Sequence[Message]) -> list[AnthropicMessage]:
    """Convert the conversation into Anthropic's alternating user/assistant form.

    Tool messages travel as user messages holding ``tool_result`` blocks, and
    consecutive messages of the same API role are merged.
    """
    converted: list[AnthropicMessage] = []

    for message in messages:
        role: Literal["user", "assistant"] = "assistant" if message.role == "assistant" else "user"

        if isinstance(message.content, str):
            content: str | list[dict[str, Any]] = message.content
        else:
            content = [block for block in (_part_to_block(part) for part in message.content) if block]
            if not content:
                logger.debug(f"Skipping empty {message.role} message {message.id}")
                continue

        if converted and converted[-1].role == role:
            previous = converted[-1]
            converted[-1] = AnthropicMessage(role=role, content=_as_blocks(previous.content) + _as_blocks(content))
        else:
            converted.append(AnthropicMessage(role=role, content=content))

    return converted


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content)


def _message_text(message: AnthropicMessage) -> str:
    if isinstance(message.content, str):
        return message.content

    chunks: list[str] = []
    for block in message.content:
        if block.get("type") == "text":
            chunks.append(block.get("text", ""))
        elif block.get("type") == "tool_use":
            chunks.append(block.get("name", "") + json.dumps(block.get("input", {})))
        elif block.get("type") == "tool_result":
            chunks.append(str(block.get("content", "")))
    return "".join(chunks)


def _starts_cleanly(message: AnthropicMessage) -> bool:
    """A truncated history must start with a user turn that answers no earlier tool call."""
    if message.role != "user":
        return False
    if isinstance(message.content, str):
        return True
    return not any(block.get("type") == "tool_result" for block in message.content)


def describe_error(error: Exception) -> str:
    """Human-readable description of a provider failure."""
    if isinstance(error, APIStatusError):
        return f"Anthropic API error {error.status_code}: {error.message}"
    if isinstance(error, APIConnectionError):
        return f"Could not reach the Anthropic API: {error}"
    return str(error) or type(error).__name__


class AnthropicClient:
    """Streaming Anthropic client implementing the model collaborator interface."""

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration

        Raises:
            ValueError: If no API key is available
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key
        self.config = config or AnthropicConfig()

        # Retries are handled here so they can stop once output has been streamed
        self.client = AsyncAnthropic(api_key=self.api_key, max_retries=0)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        # Initialize tokenizer for token estimation
        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema],
        system_prompt: str,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one model invocation as StreamEvents.

        Args:
            messages: Full conversation
            tools: Tool declarations
            system_prompt: System prompt for Claude

        Yields:
            Text deltas and tool call requests as they arrive, then StepFinished
            and Finished; or a single ErrorEvent if the call fails
        """
        anthropic_tools = self._convert_tools(tools)
        anthropic_messages = self.truncate_conversation(to_anthropic_messages(messages), system_prompt, anthropic_tools)

        estimated_tokens = self._estimate_tokens(anthropic_messages, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [msg.model_dump() for msg in anthropic_messages],
        }
        if anthropic_tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in anthropic_tools]

        logger.debug(
            f"Streaming from {request_params['model']} with {len(anthropic_messages)} messages, "
            f"{len(anthropic_tools)} tools"
        )

        for attempt in range(self.config.max_retries):
            emitted = False
            try:
                async with self.client.messages.stream(**request_params) as stream:
                    async for raw_event in stream:
                        event = self._convert_stream_event(raw_event)
                        if event is not None:
                            emitted = True
                            yield event
                    final_message = await stream.get_final_message()

            except Exception as e:
                delay = None if emitted else self._retry_delay(e, attempt)
                if delay is None:
                    logger.error(f"Anthropic stream failed: {e}")
                    yield ErrorEvent(detail=describe_error(e))
                    return

                logger.warning(f"Anthropic request failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            logger.debug(f"Stream finished - Stop reason: {final_message.stop_reason}")
            yield StepFinished(stop_reason=final_message.stop_reason, usage=self._convert_usage(final_message))
            yield Finished(final_messages=[self._convert_final_message(final_message)])
            return

        yield ErrorEvent(detail=f"Failed to complete request after {self.config.max_retries} attempts")

    def _retry_delay(self, error: Exception, attempt: int) -> float | None:
        """Seconds to wait before retrying, or None if the error is final."""
        if attempt >= self.config.max_retries - 1:
            return None

        if isinstance(error, APIStatusError):
            if error.status_code == 429:  # Rate limit exceeded
                retry_after = 60.0
                if error.response is not None:
                    try:
                        retry_after = float(error.response.headers.get("retry-after", 60))
                    except ValueError:
                        pass
                return retry_after if retry_after < self.config.max_retry_after else None

            if error.status_code >= 500:
                # Server error, retry with exponential backoff
                return self.config.retry_delay * (2**attempt)

            return None

        if isinstance(error, APIConnectionError):
            return self.config.retry_delay * (2**attempt)

        return None

    def _convert_tools(self, tools: Sequence[ToolSchema]) -> list[AnthropicTool]:
        """Convert tool declarations, caching all of them via the last one."""
        anthropic_tools = []
        for i, tool in enumerate(tools):
            cache_control = CacheControl() if i == len(tools) - 1 else None
            anthropic_tools.append(
                AnthropicTool(
                    name=tool.name,
                    description=tool.description,
                    input_schema=tool.input_schema,
                    cache_control=cache_control,
                )
            )
        return anthropic_tools

    def _convert_stream_event(self, raw_event: Any) -> StreamEvent | None:
        """Map SDK stream events to our events; everything else is dropped."""
        event_type = getattr(raw_event, "type", None)

        if event_type == "text":
            return TextDelta(text=raw_event.text)

        if event_type == "content_block_stop":
            block = getattr(raw_event, "content_block", None)
            if block is not None and block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                return ToolCallRequested(id=block.id, tool_name=block.name, arguments=arguments)

        return None

    def _convert_final_message(self, response: AnthropicResponseMessage) -> Message:
        """Convert the accumulated Anthropic message into an assistant Message."""
        parts: list[TextPart | ToolCallPart] = []
        for block in response.content:
            if block.type == "text":
                if block.text:
                    parts.append(TextPart(text=block.text))
            elif block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                parts.append(ToolCallPart(id=block.id, tool_name=block.name, arguments=arguments))
            else:
                logger.warning(f"Unknown content block type: {block.type}")

        return Message.assistant(parts)

    def _convert_usage(self, response: AnthropicResponseMessage) -> LLMUsage:
        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            )
        return usage

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting.

        Args:
            messages: Conversation messages
            system_prompt: System prompt

        Returns:
            Estimated token count
        """
        text_content = system_prompt + "".join(_message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The kept history always starts with a user turn that is not a tool result,
        so no tool result is sent without its tool call.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom

        system_tokens = self.estimate_message_tokens(system_prompt)

        tool_tokens = 0
        if tools:
            tool_content = ""
            for tool in tools:
                tool_content += tool.name + tool.description + str(tool.input_schema)
            tool_tokens = self.estimate_message_tokens(tool_content)

        available_tokens -= system_tokens + tool_tokens

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(_message_text(message))

            if current_tokens + message_tokens <= available_tokens:
                truncated_messages.insert(0, message)
                current_tokens += message_tokens
            else:
                # Stop adding messages if we exceed the limit
                break

        while truncated_messages and not _starts_cleanly(truncated_messages[0]):
            truncated_messages.pop(0)

        if not truncated_messages:
            logger.warning("No clean starting point fits the context budget; sending the conversation untruncated")
            return messages

        if len(truncated_messages) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages
