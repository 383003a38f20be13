"""Tests for the Anthropic client: conversion, truncation and streaming."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import Mock, patch

import httpx
import pytest
from anthropic import APIConnectionError, BadRequestError, InternalServerError, RateLimitError

from agentcli.clients.anthropic import AnthropicClient, AnthropicConfig, AnthropicMessage, to_anthropic_messages
from agentcli.models.events import ErrorEvent, Finished, StepFinished, TextDelta, ToolCallRequested
from agentcli.models.llm import Message, TextPart, ToolCallPart, ToolResult, ToolResultPart, ToolSchema

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def api_error(error_class, status_code: int, headers: dict | None = None):
    """Build an SDK status error with a fake response."""
    response = httpx.Response(status_code, headers=headers or {}, request=REQUEST)
    return error_class("error", response=response, body=None)


def make_client(**config) -> AnthropicClient:
    """Create a client without network access or a real tokenizer."""
    with (
        patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}),
        patch("agentcli.clients.anthropic.tiktoken.encoding_for_model", side_effect=KeyError("gpt-4")),
    ):
        client = AnthropicClient(config=AnthropicConfig(**config))
    client.tokenizer = Mock()
    client.tokenizer.encode.side_effect = lambda text: ["token"] * max(len(text) // 4, 1)
    return client


class FakeStream:
    """Stand-in for the SDK's message stream."""

    def __init__(self, raw_events, final_message, error: Exception | None = None):
        self.raw_events = raw_events
        self.final_message = final_message
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.raw_events:
            yield event
        if self.error is not None:
            raise self.error

    async def get_final_message(self):
        return self.final_message


def final_message(*blocks, stop_reason="end_turn"):
    """Accumulated response as returned by get_final_message()."""
    usage = SimpleNamespace(
        input_tokens=100, output_tokens=20, cache_creation_input_tokens=None, cache_read_input_tokens=5
    )
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason, usage=usage)


def install_streams(client: AnthropicClient, *attempts):
    """Make each call to messages.stream use the next attempt (a FakeStream or an exception)."""
    pending = list(attempts)
    calls = []

    @asynccontextmanager
    async def stream(**params):
        calls.append(params)
        attempt = pending.pop(0)
        if isinstance(attempt, Exception):
            raise attempt
        yield attempt

    client.client = SimpleNamespace(messages=SimpleNamespace(stream=stream))
    return calls


async def collect(client: AnthropicClient, messages, tools=()):
    return [event async for event in client.stream(messages, list(tools), "System prompt")]


class TestMessageConversion:
    """Tests for converting the conversation to Anthropic's format."""

    def test_text_messages(self):
        """Test that plain messages map directly."""
        converted = to_anthropic_messages([Message.user("Hi"), Message.assistant([TextPart(text="Hello")])])
        assert converted == [
            AnthropicMessage(role="user", content="Hi"),
            AnthropicMessage(role="assistant", content=[{"type": "text", "text": "Hello"}]),
        ]

    def test_tool_round_trip(self):
        """Test that tool calls and results become tool_use and tool_result blocks."""
        call = ToolCallPart(id="toolu_1", tool_name="ls", arguments={"dirPath": "."})
        result = ToolResultPart(call_id="toolu_1", tool_name="ls", result=ToolResult.fail("Access denied"))
        converted = to_anthropic_messages([Message.user("list"), Message.assistant([call]), Message.tool([result])])

        assert converted[1].content == [{"type": "tool_use", "id": "toolu_1", "name": "ls", "input": {"dirPath": "."}}]
        assert converted[2].role == "user"
        assert converted[2].content == [
            {
                "type": "tool_result",
                "tool_use_id": "toolu_1",
                "content": '{"success": false, "message": "Access denied"}',
                "is_error": True,
            }
        ]

    def test_consecutive_user_messages_merged(self):
        """Test that roles alternate after conversion."""
        result = ToolResultPart(call_id="toolu_1", tool_name="ls", result=ToolResult.ok(items=[]))
        converted = to_anthropic_messages(
            [
                Message.user("list"),
                Message.assistant([ToolCallPart(id="toolu_1", tool_name="ls", arguments={})]),
                Message.tool([result]),
                Message.user("and then?"),
            ]
        )

        assert [m.role for m in converted] == ["user", "assistant", "user"]
        assert converted[2].content[0]["type"] == "tool_result"
        assert converted[2].content[1] == {"type": "text", "text": "and then?"}

    def test_empty_assistant_message_skipped(self):
        """Test that messages without content blocks are dropped."""
        converted = to_anthropic_messages([Message.user("Hi"), Message.assistant([TextPart(text="")])])
        assert len(converted) == 1


class TestConversationTruncation:
    """Tests for conversation truncation functionality."""

    @pytest.fixture
    def anthropic_client(self):
        """Create AnthropicClient for testing."""
        client = make_client(max_conversation_tokens=10000, token_headroom=1000)
        client.tokenizer.encode.side_effect = None
        return client

    def test_truncate_conversation_within_limit(self, anthropic_client):
        """Test that conversations within limits are not truncated."""
        anthropic_client.tokenizer.encode.return_value = ["token"] * 100

        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
        ]

        assert anthropic_client.truncate_conversation(messages, "System prompt") == messages

    def test_truncate_conversation_exceeds_limit(self, anthropic_client):
        """Test that conversations exceeding limits are truncated from the beginning."""

        def mock_encode(text):
            if "System prompt" in text:
                return ["token"] * 500
            return ["token"] * 3000

        anthropic_client.tokenizer.encode.side_effect = mock_encode

        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
            AnthropicMessage(role="assistant", content="Response 2"),
            AnthropicMessage(role="user", content="Message 3"),
        ]

        result = anthropic_client.truncate_conversation(messages, "System prompt")

        assert len(result) < len(messages)
        assert result[0].role == "user"
        assert result[-1].content == "Message 3"

    def test_truncation_never_starts_with_tool_result(self, anthropic_client):
        """Test that a kept history does not begin with an orphaned tool result."""
        anthropic_client.tokenizer.encode.side_effect = lambda text: ["token"] * (100 if "System" in text else 2500)

        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content=[{"type": "tool_use", "id": "t1", "name": "ls", "input": {}}]),
            AnthropicMessage(role="user", content=[{"type": "tool_result", "tool_use_id": "t1", "content": "{}"}]),
            AnthropicMessage(role="assistant", content="Response"),
            AnthropicMessage(role="user", content="Message 2"),
        ]

        result = anthropic_client.truncate_conversation(messages, "System prompt")

        assert result == messages[4:]

    def test_truncate_conversation_empty_messages(self, anthropic_client):
        """Test truncation with empty message list."""
        assert anthropic_client.truncate_conversation([], "System prompt") == []

    def test_missing_api_key(self):
        """Test that the client refuses to start without a key."""
        with patch.dict("os.environ", {}, clear=True), pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            AnthropicClient()


class TestRetryPolicy:
    """Tests for deciding whether to retry a failed request."""

    @pytest.fixture
    def anthropic_client(self):
        """Create AnthropicClient for testing."""
        return make_client(max_retries=3, retry_delay=1.0)

    def test_rate_limit_honors_retry_after(self, anthropic_client):
        """Test that 429 responses wait as long as the server asks."""
        error = api_error(RateLimitError, 429, {"retry-after": "7"})
        assert anthropic_client._retry_delay(error, 0) == 7.0

    def test_rate_limit_with_excessive_retry_after(self, anthropic_client):
        """Test that very long retry-after values are not waited for."""
        error = api_error(RateLimitError, 429, {"retry-after": "600"})
        assert anthropic_client._retry_delay(error, 0) is None

    def test_server_error_backs_off(self, anthropic_client):
        """Test exponential backoff for 5xx responses."""
        error = api_error(InternalServerError, 500)
        assert anthropic_client._retry_delay(error, 0) == 1.0
        assert anthropic_client._retry_delay(error, 1) == 2.0

    def test_client_error_is_final(self, anthropic_client):
        """Test that 4xx errors other than 429 are not retried."""
        assert anthropic_client._retry_delay(api_error(BadRequestError, 400), 0) is None

    def test_connection_error_retried(self, anthropic_client):
        """Test that connection failures are retried."""
        assert anthropic_client._retry_delay(APIConnectionError(request=REQUEST), 0) == 1.0

    def test_last_attempt_is_final(self, anthropic_client):
        """Test that nothing is retried after the last attempt."""
        assert anthropic_client._retry_delay(api_error(InternalServerError, 500), 2) is None


class TestStreaming:
    """Tests for streaming a step as events."""

    @pytest.mark.asyncio
    async def test_text_response(self):
        """Test streaming a plain answer."""
        client = make_client()
        install_streams(
            client,
            FakeStream(
                [SimpleNamespace(type="text", text="Hel"), SimpleNamespace(type="text", text="lo")],
                final_message(SimpleNamespace(type="text", text="Hello")),
            ),
        )

        events = await collect(client, [Message.user("Hi")])

        assert [type(e) for e in events] == [TextDelta, TextDelta, StepFinished, Finished]
        assert events[2].stop_reason == "end_turn"
        assert events[2].usage.input_tokens == 100
        assert events[2].usage.cache_read_input_tokens == 5
        assert events[3].final_messages[0].text == "Hello"

    @pytest.mark.asyncio
    async def test_tool_use_response(self):
        """Test that tool_use blocks become tool call requests and parts."""
        block = SimpleNamespace(type="tool_use", id="toolu_1", name="ls", input={"dirPath": "."})
        client = make_client()
        calls = install_streams(
            client,
            FakeStream(
                [SimpleNamespace(type="content_block_stop", content_block=block)],
                final_message(block, stop_reason="tool_use"),
            ),
        )
        tools = [ToolSchema(name="ls", description="Lists files", input_schema={"type": "object"})]

        events = await collect(client, [Message.user("list")], tools)

        assert events[0] == ToolCallRequested(id="toolu_1", tool_name="ls", arguments={"dirPath": "."})
        assert events[-1].final_messages[0].tool_calls[0].id == "toolu_1"
        assert calls[0]["tools"] == [
            {
                "name": "ls",
                "description": "Lists files",
                "input_schema": {"type": "object"},
                "cache_control": {"type": "ephemeral", "ttl": "5m"},
            }
        ]
        assert calls[0]["system"] == "System prompt"

    @pytest.mark.asyncio
    async def test_retry_before_output(self):
        """Test that a server error before any output is retried."""
        client = make_client(retry_delay=0.0)
        text = SimpleNamespace(type="text", text="Hi")
        calls = install_streams(client, api_error(InternalServerError, 500), FakeStream([text], final_message(text)))

        events = await collect(client, [Message.user("Hi")])

        assert len(calls) == 2
        assert isinstance(events[-1], Finished)

    @pytest.mark.asyncio
    async def test_no_retry_after_output(self):
        """Test that a failure after streamed output ends the step with an error."""
        client = make_client(retry_delay=0.0)
        calls = install_streams(
            client,
            FakeStream([SimpleNamespace(type="text", text="Hal")], None, error=api_error(InternalServerError, 500)),
        )

        events = await collect(client, [Message.user("Hi")])

        assert len(calls) == 1
        assert events[0] == TextDelta(text="Hal")
        assert isinstance(events[-1], ErrorEvent)
        assert "500" in events[-1].detail

    @pytest.mark.asyncio
    async def test_final_error(self):
        """Test that a non-retryable error yields a single error event."""
        client = make_client()
        install_streams(client, api_error(BadRequestError, 400))

        events = await collect(client, [Message.user("Hi")])

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert events[0].detail.startswith("Anthropic API error 400")
