"""Abstract interfaces for the collaborators around the detection core."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from deadline_radar.task_management.models import Task, TaskPriority, TextChunk


class TextSource(ABC):
    """Abstract interface for a page whose text is scanned for deadlines."""

    @abstractmethod
    def get_chunks(self) -> list[TextChunk]:
        """
        Get the page text as bounded-size chunks.

        Returns:
            Chunks in document order
        """
        pass

    @property
    @abstractmethod
    def url(self) -> str | None:
        """URL of the page, if known."""
        pass

    @property
    @abstractmethod
    def title(self) -> str | None:
        """Title of the page, if known."""
        pass

    @abstractmethod
    def now(self) -> datetime:
        """Reference instant for one detection pass."""
        pass


class TaskStore(ABC):
    """Abstract interface for the persistent task collection."""

    @abstractmethod
    async def get_all(self) -> list[Task]:
        """
        Get every stored task.

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        pass

    @abstractmethod
    async def get_version(self) -> int:
        """
        Get the collection version token.

        The version increases on every write, so a reader can detect
        that the collection changed since it was read.
        """
        pass

    @abstractmethod
    async def put(self, task: Task, expected_version: int | None = None) -> int:
        """
        Insert a task.

        Args:
            task: Task to insert
            expected_version: If given, only write when the collection
                version still equals this value

        Returns:
            New collection version

        Raises:
            StoreConflictError: If the version no longer matches
            DatabaseError: If the task ID already exists
        """
        pass

    @abstractmethod
    async def update(self, task_id: str, updates: dict[str, Any]) -> None:
        """
        Update fields of a stored task.

        Raises:
            TaskNotFoundError: If no task has this ID
        """
        pass

    @abstractmethod
    async def delete(self, task_id: str) -> None:
        """
        Delete a stored task.

        Raises:
            TaskNotFoundError: If no task has this ID
        """
        pass

    async def cache_priority(self, task_id: str, priority: TaskPriority) -> None:
        """
        Store a recomputed priority as an advisory hint.

        Stores may override this with a write that leaves other fields
        and the collection version alone.
        """
        await self.update(task_id, {"priority": priority})


class AlertSink(ABC):
    """Abstract interface for deadline notification delivery."""

    @abstractmethod
    async def notify(self, title: str, message: str, urgency: TaskPriority) -> None:
        """
        Deliver one notification.

        Delivery is fire-and-forget; no acknowledgement is expected.

        Raises:
            AlertSinkError: If the notification cannot be delivered
        """
        pass
