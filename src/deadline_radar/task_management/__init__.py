"""Task management module for deadline detection and the task list."""

from .models import (
    DetectionResult,
    ReconciliationResult,
    Task,
    TaskPriority,
    TaskStatus,
)
from .task_detection_service import DeadlineDetectionService
from .task_list_manager import TaskListManager

__all__ = [
    "Task",
    "TaskStatus",
    "TaskPriority",
    "DetectionResult",
    "ReconciliationResult",
    "DeadlineDetectionService",
    "TaskListManager",
]
