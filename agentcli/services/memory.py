"""Append-only markdown notes file that persists across sessions."""

from datetime import UTC, datetime
from pathlib import Path

from agentcli.utils.logging import get_logger

logger = get_logger(__name__)


class MemoryNotes:
    """Reads and appends timestamped notes; existing content is never rewritten."""

    def __init__(self, path: Path):
        """Initialize with the notes file location (created on first append)."""
        self.path = path

    def read(self) -> str:
        """Return the whole notes file, or an empty string if it does not exist."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as e:
            logger.warning(f"Could not read memory file {self.path}: {e}")
            return ""

    def append(self, note: str, now: datetime | None = None) -> str:
        """Append a note as a new markdown section.

        Args:
            note: Note text
            now: Timestamp for the section header (defaults to the current UTC time)

        Returns:
            The section that was written
        """
        timestamp = (now or datetime.now(UTC)).isoformat(timespec="seconds")
        section = f"## {timestamp}\n\n{note.strip()}\n\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(section)

        logger.info(f"Appended {len(note)} characters to memory file {self.path}")
        return section
