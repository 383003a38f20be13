"""Session configuration read from the environment."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MEMORY_FILE = "AGENT_MEMORY.md"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class ConfigError(ValueError):
    """Raised when the environment holds an unusable setting."""


class AgentConfig(BaseModel):
    """Settings for one interactive session."""

    provider: Literal["anthropic"] = "anthropic"
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=4096, ge=1)
    step_budget: int = Field(default=25, ge=1)
    unattended: bool = False
    sandbox_root: Path = Field(default_factory=Path.cwd, validate_default=True)
    shell_timeout: Annotated[float, Field(gt=0)] | None = 120.0
    memory_file: Path | None = Path(DEFAULT_MEMORY_FILE)
    parallel_tool_calls: bool = True
    max_argument_chars: int = Field(default=50, ge=4)
    max_result_lines: int = Field(default=5, ge=1)
    log_level: str = "WARNING"
    log_file: str | None = None

    @field_validator("sandbox_root")
    @classmethod
    def resolve_root(cls, v: Path) -> Path:
        """Canonicalize the sandbox root and require it to be a directory."""
        root = v.expanduser().resolve()
        if not root.is_dir():
            raise ValueError(f"Sandbox root {root} is not a directory")
        return root

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept only the standard logging level names."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def memory_path(self) -> Path | None:
        """Absolute location of the memory notes file, if enabled."""
        if self.memory_file is None:
            return None
        if self.memory_file.is_absolute():
            return self.memory_file
        return self.sandbox_root / self.memory_file

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AgentConfig":
        """Build a config from environment variables.

        Raises:
            ConfigError: If a variable is present but cannot be used
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if "AGENT_PROVIDER" in env:
            values["provider"] = env["AGENT_PROVIDER"].strip().lower()
        if env.get("AGENT_MODEL"):
            values["model"] = env["AGENT_MODEL"]
        if "AGENT_MAX_STEPS" in env:
            values["step_budget"] = env["AGENT_MAX_STEPS"]
        if "AGENT_MAX_TOKENS" in env:
            values["max_tokens"] = env["AGENT_MAX_TOKENS"]
        if env.get("AGENT_ROOT"):
            values["sandbox_root"] = Path(env["AGENT_ROOT"])
        if "AGENT_SHELL_TIMEOUT" in env:
            timeout = env["AGENT_SHELL_TIMEOUT"].strip()
            values["shell_timeout"] = None if timeout in {"", "0"} else timeout
        if "AGENT_MEMORY_FILE" in env:
            memory = env["AGENT_MEMORY_FILE"].strip()
            values["memory_file"] = Path(memory) if memory else None
        if "AGENT_PARALLEL_TOOLS" in env:
            values["parallel_tool_calls"] = _parse_flag("AGENT_PARALLEL_TOOLS", env["AGENT_PARALLEL_TOOLS"])
        if env.get("LOG_LEVEL"):
            values["log_level"] = env["LOG_LEVEL"]
        if env.get("AGENT_LOG_FILE"):
            values["log_file"] = env["AGENT_LOG_FILE"]

        unattended = False
        if "AGENT_UNATTENDED" in env:
            unattended = _parse_flag("AGENT_UNATTENDED", env["AGENT_UNATTENDED"])
        # CI and YOLO are also set by other tools, so only plain truthy values count.
        values["unattended"] = unattended or any(
            env.get(name, "").strip().lower() in _TRUTHY for name in ("CI", "YOLO")
        )

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise ConfigError(f"Invalid setting for {field}: {error['msg']}") from e


def _parse_flag(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean flag, got {raw!r}")
