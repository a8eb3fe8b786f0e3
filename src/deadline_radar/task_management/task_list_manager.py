"""Task List Manager for managing deadline tasks with database persistence."""

import logging
from collections.abc import Callable
from datetime import datetime, time, timedelta
from typing import Any

from .database import TaskDatabase
from .exceptions import InvalidStatusTransitionError
from .models import ReconciliationResult, Task, TaskPriority, TaskStatus
from .priority import classify_priority, recompute_priorities
from .reconciler import TaskReconciler
from .synthesizer import TaskSynthesizer, generate_task_id

logger = logging.getLogger(__name__)

ALLOWED_STATUS_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}

# Fields a user may edit directly; status has its own method
EDITABLE_FIELDS = frozenset({"title", "description", "deadline", "tags", "context"})

# Dashboard views over open tasks
DUE_FILTERS = ("urgent", "today")


def check_status_transition(current: TaskStatus, new: TaskStatus) -> None:
    """
    Validate a status change.

    Raises:
        InvalidStatusTransitionError: If the lifecycle forbids the change
    """
    if new not in ALLOWED_STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f"Cannot change status from {current.value} to {new.value}"
        )


def is_due_within_a_day(task: Task, now: datetime) -> bool:
    """Open and due in under 24 hours, overdue included."""
    return task.status != TaskStatus.COMPLETED and task.deadline - now < timedelta(days=1)


def is_due_today(task: Task, now: datetime) -> bool:
    """Open and due on the calendar day of ``now``."""
    today_start = datetime.combine(now.date(), time())
    return (
        task.status != TaskStatus.COMPLETED
        and today_start <= task.deadline < today_start + timedelta(days=1)
    )


class TaskListManager:
    """
    Manages the deadline task list with database persistence.

    Every insertion goes through the reconciler. The in-memory cache is a
    read-only projection of the store, refreshed on each listing; stored
    priorities are recomputed before tasks are handed out.
    """

    def __init__(
        self,
        database: TaskDatabase,
        reconciler: TaskReconciler | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize Task List Manager.

        Args:
            database: Database instance for task persistence
            reconciler: Reconciler for inserts (defaults to one on the database)
            clock: Source of the current time
        """
        self._database = database
        self._reconciler = reconciler or TaskReconciler(database)
        self._clock = clock
        self._synthesizer = TaskSynthesizer()
        self._tasks_cache: dict[str, Task] = {}
        self._initialized = False

    @property
    def reconciler(self) -> TaskReconciler:
        """Reconciler used for every insertion."""
        return self._reconciler

    async def initialize(self) -> None:
        """Initialize the database and load existing tasks."""
        logger.info("Initializing Task List Manager")

        await self._database.initialize()
        await self.refresh()

        self._initialized = True
        logger.info(f"Task List Manager initialized with {len(self._tasks_cache)} tasks")

    async def refresh(self) -> list[Task]:
        """Reload the cache from the store."""
        tasks = await self._database.get_all()
        self._tasks_cache = {task.id: task for task in tasks}
        return tasks

    async def add_task(
        self,
        title: str,
        deadline: datetime,
        description: str = "",
        source: str = "manual",
        tags: list[str] | None = None,
        source_url: str | None = None,
        context: str = "",
    ) -> ReconciliationResult:
        """
        Add a task entered directly by a user.

        Args:
            title: Task title
            deadline: Task deadline
            description: Optional description
            source: Where the task came from (e.g. 'manual', 'cli', 'mcp')
            tags: Optional tags; derived from title and description if omitted
            source_url: Optional URL the task relates to
            context: Optional free-form context

        Returns:
            ReconciliationResult; not inserted if it duplicates a stored task

        Raises:
            ReconciliationError: If the store kept changing underneath
            StoreUnavailableError: If the store cannot be reached
        """
        now = self._clock()
        if tags is None:
            tags = self._synthesizer.extract_tags(f"{title} {description}")

        task = Task(
            id=generate_task_id(),
            title=title,
            description=description,
            deadline=deadline,
            priority=classify_priority(deadline, now),
            status=TaskStatus.PENDING,
            context=context,
            detected_at=now,
            created_at=now,
            updated_at=now,
            source=source,
            tags=tags,
            source_url=source_url,
        )

        result = await self._reconciler.reconcile(task)
        if result.inserted:
            self._tasks_cache[task.id] = task
        return result

    async def get_task(self, task_id: str) -> Task:
        """
        Get a task by ID with its priority recomputed.

        Raises:
            TaskNotFoundError: If task not found
        """
        task = await self._database.get_task(task_id)
        self._tasks_cache[task_id] = task
        return recompute_priorities([task], self._clock())[0]

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        due: str | None = None,
    ) -> list[Task]:
        """
        List tasks with optional filters.

        Priority is recomputed for the current time before filtering.
        Open tasks come first, each group ordered by deadline.

        Args:
            status: Filter by status
            priority: Filter by recomputed priority
            due: "urgent" for open tasks due within 24 hours (overdue
                included), "today" for open tasks due today

        Returns:
            List of tasks matching filters

        Raises:
            ValueError: If ``due`` is not a known filter
        """
        if due is not None and due not in DUE_FILTERS:
            raise ValueError(f"Unknown due filter: {due}")

        now = self._clock()
        tasks = recompute_priorities(await self.refresh(), now)

        if status is not None:
            tasks = [task for task in tasks if task.status == status]
        if priority is not None:
            tasks = [task for task in tasks if task.priority == priority]
        if due == "urgent":
            tasks = [task for task in tasks if is_due_within_a_day(task, now)]
        elif due == "today":
            tasks = [task for task in tasks if is_due_today(task, now)]

        return sorted(
            tasks, key=lambda task: (task.status == TaskStatus.COMPLETED, task.deadline)
        )

    async def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        """
        Update task status.

        Setting the current status again is a no-op.

        Raises:
            TaskNotFoundError: If task not found
            InvalidStatusTransitionError: If the lifecycle forbids the change
        """
        completed_at = self._clock() if status == TaskStatus.COMPLETED else None
        changed = await self._database.update_status(
            task_id, status, check_status_transition, completed_at
        )
        if not changed:
            return

        self._tasks_cache[task_id] = await self._database.get_task(task_id)
        logger.info(f"Updated task {task_id} status to {status.value}")

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> None:
        """
        Update user-editable task fields.

        Raises:
            ValueError: If a field is not user-editable
            TaskNotFoundError: If task not found
        """
        not_editable = set(updates) - EDITABLE_FIELDS
        if not_editable:
            raise ValueError(f"Fields not editable: {sorted(not_editable)}")

        await self._database.update(task_id, updates)

        if task_id in self._tasks_cache:
            task = self._tasks_cache[task_id]
            for field, value in updates.items():
                setattr(task, field, value)

        logger.info(f"Updated task {task_id} fields: {list(updates.keys())}")

    async def delete_task(self, task_id: str) -> None:
        """
        Delete a task.

        Raises:
            TaskNotFoundError: If task not found
        """
        await self._database.delete(task_id)
        self._tasks_cache.pop(task_id, None)

        logger.info(f"Deleted task {task_id}")

    async def get_task_history(self, task_id: str) -> list[dict[str, Any]]:
        """Get the audit history of a task."""
        return await self._database.get_task_history(task_id)

    async def get_statistics(self) -> dict[str, int]:
        """
        Get task statistics for the current time.

        Returns:
            Dictionary with task counts:
            - total: All tasks
            - pending / in_progress / completed: Counts by status
            - active: Tasks not completed
            - urgent: Active tasks due within 24 hours, including overdue
            - due_today: Active tasks due before the end of today
            - overdue: Active tasks past their deadline
        """
        now = self._clock()
        tasks = await self.refresh()
        active = [task for task in tasks if task.status != TaskStatus.COMPLETED]

        return {
            "total": len(tasks),
            "pending": sum(task.status == TaskStatus.PENDING for task in tasks),
            "in_progress": sum(task.status == TaskStatus.IN_PROGRESS for task in tasks),
            "completed": len(tasks) - len(active),
            "active": len(active),
            "urgent": sum(is_due_within_a_day(task, now) for task in active),
            "due_today": sum(is_due_today(task, now) for task in active),
            "overdue": sum(task.deadline < now for task in active),
        }

    async def shutdown(self) -> None:
        """
        Shutdown the manager and close database connection.

        Handles errors gracefully to ensure cleanup completes.
        """
        logger.info("Shutting down Task List Manager")
        try:
            await self._database.close()
        except Exception as e:
            logger.error(f"Error closing database: {e}")

        self._tasks_cache.clear()
        self._initialized = False
