"""In-memory todo list shared by the todo tools of one session."""

from pydantic import BaseModel, Field


class TodoItem(BaseModel):
    """A single task on the agent's todo list."""

    id: str = Field(..., min_length=1, description="Unique identifier")
    content: str = Field(..., description="Task description")
    done: bool = Field(False, description="Whether the task is completed")


class TodoStore:
    """Holds the current todo list; each write replaces the whole list."""

    def __init__(self) -> None:
        self._items: list[TodoItem] = []

    @property
    def items(self) -> list[TodoItem]:
        """Copy of the current items."""
        return list(self._items)

    def replace(self, items: list[TodoItem]) -> None:
        """Replace the list with ``items``."""
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValueError("Todo ids must be unique")
        self._items = list(items)

    def as_markdown(self) -> str:
        """Render the list as a markdown checklist."""
        if not self._items:
            return "No todos."
        return "\n".join(f"- [{'x' if item.done else ' '}] {item.content} ({item.id})" for item in self._items)
