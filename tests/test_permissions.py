"""Tests for the permission gate."""

import asyncio

import pytest

from agentcli.services.permissions import FILE_WRITE, PermissionGate, shell_operation_class
from tests.helpers import FakePrompter


class TestPermissionGate:
    """Tests for session-scoped grants."""

    @pytest.mark.asyncio
    async def test_grant_is_remembered(self):
        """Test that a class approved once is not asked again."""
        prompter = FakePrompter(True)
        gate = PermissionGate(prompter)

        assert await gate.request(shell_operation_class("ls"), "Allow executing 'ls'?")
        assert await gate.request(shell_operation_class("ls"), "Allow executing 'ls'?")

        assert prompter.questions == ["Allow executing 'ls'?"]
        assert gate.grants == {"shell:ls": True}

    @pytest.mark.asyncio
    async def test_denial_is_not_remembered(self):
        """Test that a denied class is asked again next time."""
        prompter = FakePrompter([False, True])
        gate = PermissionGate(prompter)

        assert not await gate.request(FILE_WRITE, "Allow writing 'a.txt'?")
        assert not gate.is_granted(FILE_WRITE)
        assert await gate.request(FILE_WRITE, "Allow writing 'a.txt'?")

        assert len(prompter.questions) == 2
        assert gate.is_granted(FILE_WRITE)

    @pytest.mark.asyncio
    async def test_classes_are_independent(self):
        """Test that granting one shell command does not grant another."""
        prompter = FakePrompter(True)
        gate = PermissionGate(prompter)

        await gate.request("shell:ls", "Allow executing 'ls'?")
        await gate.request("shell:rm", "Allow executing 'rm'?")

        assert prompter.questions == ["Allow executing 'ls'?", "Allow executing 'rm'?"]

    @pytest.mark.asyncio
    async def test_unattended_grants_without_asking(self):
        """Test that unattended mode never prompts."""
        gate = PermissionGate(unattended=True)
        assert await gate.request(FILE_WRITE, "Allow writing 'a.txt'?")
        assert gate.is_granted("shell:anything")

    def test_interactive_gate_needs_prompter(self):
        """Test that an interactive gate cannot be built without a prompter."""
        with pytest.raises(ValueError):
            PermissionGate()

    @pytest.mark.asyncio
    async def test_concurrent_requests_prompt_once(self):
        """Test that concurrent requests for one class share a single prompt."""
        asked: list[str] = []

        async def slow_prompter(description: str) -> bool:
            asked.append(description)
            await asyncio.sleep(0.05)
            return True

        gate = PermissionGate(slow_prompter)
        results = await asyncio.gather(*(gate.request("shell:ls", "Allow executing 'ls'?") for _ in range(3)))

        assert results == [True, True, True]
        assert asked == ["Allow executing 'ls'?"]

    @pytest.mark.asyncio
    async def test_prompts_are_serialized(self):
        """Test that only one question is on screen at a time."""
        active = 0
        overlap = False

        async def prompter(description: str) -> bool:
            nonlocal active, overlap
            active += 1
            overlap = overlap or active > 1
            await asyncio.sleep(0.02)
            active -= 1
            return True

        gate = PermissionGate(prompter)
        await asyncio.gather(
            gate.request("shell:ls", "ls"),
            gate.request("shell:cat", "cat"),
            gate.request(FILE_WRITE, "w"),
        )

        assert not overlap

    @pytest.mark.asyncio
    async def test_missing_prompter_raises(self):
        """Test that an undecided request with no one to ask is an error, not a grant."""
        gate = PermissionGate(unattended=True)
        gate.unattended = False

        with pytest.raises(RuntimeError, match="No prompter"):
            await gate.request(FILE_WRITE, "Allow writing 'a.txt'?")
        assert not gate.is_granted(FILE_WRITE)
