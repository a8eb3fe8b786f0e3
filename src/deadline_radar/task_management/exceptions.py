"""Custom exceptions for deadline detection and task management."""


class TaskManagementError(Exception):
    """Base exception for task management errors."""

    pass


class DatabaseError(TaskManagementError):
    """Exception raised for database related errors."""

    pass


class SchemaError(DatabaseError):
    """Exception raised for database schema errors."""

    pass


class StoreUnavailableError(DatabaseError):
    """Exception raised when the task store cannot be reached."""

    pass


class StoreConflictError(DatabaseError):
    """Exception raised when the store changed since it was last read."""

    pass


class TaskNotFoundError(TaskManagementError):
    """Exception raised when a task is not found."""

    pass


class InvalidStatusTransitionError(TaskManagementError):
    """Exception raised for a status change the task lifecycle forbids."""

    pass


class ReconciliationError(TaskManagementError):
    """Exception raised when a candidate cannot be merged into the store."""

    pass


class AlertSinkError(TaskManagementError):
    """Exception raised when an alert cannot be delivered."""

    pass
