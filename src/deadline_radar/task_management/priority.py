"""Priority classification: deadline proximity to urgency band."""

from dataclasses import replace
from datetime import datetime, timedelta

from .config import HIGH_THRESHOLD_DAYS, MEDIUM_THRESHOLD_DAYS, URGENT_THRESHOLD_DAYS
from .models import Task, TaskPriority, TaskStatus

_ONE_DAY = timedelta(days=1)

# Least to most pressing
PRIORITY_ORDER = (
    TaskPriority.LOW,
    TaskPriority.MEDIUM,
    TaskPriority.HIGH,
    TaskPriority.URGENT,
    TaskPriority.OVERDUE,
)


def most_pressing(priorities: list[TaskPriority]) -> TaskPriority:
    """Pick the most pressing band; LOW for an empty list."""
    return max(priorities, key=PRIORITY_ORDER.index, default=TaskPriority.LOW)


def days_until(deadline: datetime, now: datetime) -> float:
    """Fractional days from now until the deadline (negative when past)."""
    return (deadline - now) / _ONE_DAY


def classify_priority(
    deadline: datetime, now: datetime, status: TaskStatus = TaskStatus.PENDING
) -> TaskPriority:
    """
    Classify a deadline into an urgency band.

    Completed tasks are never urgent and always classify as low. Use a
    single ``now`` for every task in one pass so that tasks near a band
    boundary are classified consistently.

    Args:
        deadline: Task deadline
        now: Reference instant
        status: Task status

    Returns:
        Urgency band
    """
    if status == TaskStatus.COMPLETED:
        return TaskPriority.LOW

    days = days_until(deadline, now)
    if days < 0:
        return TaskPriority.OVERDUE
    if days < URGENT_THRESHOLD_DAYS:
        return TaskPriority.URGENT
    if days < HIGH_THRESHOLD_DAYS:
        return TaskPriority.HIGH
    if days < MEDIUM_THRESHOLD_DAYS:
        return TaskPriority.MEDIUM
    return TaskPriority.LOW


def recompute_priorities(tasks: list[Task], now: datetime) -> list[Task]:
    """Return copies of the tasks with priority recomputed against one ``now``."""
    return [
        replace(task, priority=classify_priority(task.deadline, now, task.status))
        for task in tasks
    ]


def countdown_text(deadline: datetime, now: datetime) -> str:
    """
    Format the time left until a deadline for display.

    Returns:
        "Overdue", "3d 4h", "5h 12m" or "42m"
    """
    remaining = deadline - now
    if remaining < timedelta(0):
        return "Overdue"

    days = remaining.days
    hours, seconds = divmod(remaining.seconds, 3600)
    minutes = seconds // 60

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
