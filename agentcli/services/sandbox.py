"""Path restriction for filesystem tools."""

import os
from collections.abc import Iterable
from pathlib import Path, PurePath

from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


class SandboxViolation(PermissionError):
    """A path resolved outside the sandbox root."""


class PathSandbox:
    """Confines filesystem access to a single directory tree.

    This is a guardrail, not an isolation boundary: it canonicalizes paths
    (``..`` and symlinks included) and rejects anything that lands outside
    the root. It never clamps a bad path to a nearby valid one.
    """

    def __init__(self, root: Path | str | None = None):
        """Initialize the sandbox.

        Args:
            root: Allowed directory (defaults to the current working directory)
        """
        self.root = Path(root if root is not None else os.getcwd()).expanduser().resolve()

    def restrict(self, path: str | Path) -> Path:
        """Return the canonical absolute form of ``path`` if it is inside the root.

        Raises:
            SandboxViolation: If the canonical path is outside the root
        """
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate

        resolved = candidate.resolve()
        if not self.contains(resolved):
            logger.warning(f"Sandbox rejected path {path!r} (resolved to {resolved})")
            raise SandboxViolation(f"Access denied: Path {path} is outside allowed directory {self.root}")

        return resolved

    def contains(self, path: Path) -> bool:
        """Check whether an already resolved path lies within the root."""
        return path == self.root or path.is_relative_to(self.root)

    def restrict_pattern(self, pattern: str) -> str:
        """Validate a glob pattern meant to be expanded below a sandboxed directory.

        Raises:
            SandboxViolation: If the pattern is absolute or climbs out with ``..``
        """
        if not pattern.strip():
            raise ValueError("Glob pattern must not be empty")

        pure = PurePath(pattern)
        if pure.is_absolute() or pattern.startswith("~"):
            raise SandboxViolation(f"Access denied: Pattern {pattern} must be relative to {self.root}")
        if ".." in pure.parts:
            raise SandboxViolation(f"Access denied: Pattern {pattern} may not contain '..'")

        return pattern

    def filter_inside(self, paths: Iterable[Path]) -> list[Path]:
        """Drop paths that resolve outside the root, e.g. through symlinks."""
        inside: list[Path] = []
        for path in paths:
            if self.contains(path.resolve()):
                inside.append(path)
            else:
                logger.debug(f"Dropping {path}: resolves outside {self.root}")
        return inside
