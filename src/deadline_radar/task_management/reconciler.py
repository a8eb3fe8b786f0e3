"""Reconciliation of candidate tasks into the task store."""

import asyncio
import logging
import weakref
from collections.abc import Iterable
from datetime import timedelta

from .config import DUPLICATE_DEADLINE_TOLERANCE_HOURS, RECONCILE_MAX_ATTEMPTS
from .exceptions import ReconciliationError, StoreConflictError
from .interfaces import TaskStore
from .models import ReconciliationResult, Task

logger = logging.getLogger(__name__)

# One lock per store object, shared by every reconciler using that store
_store_locks: "weakref.WeakKeyDictionary[TaskStore, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


def store_lock(store: TaskStore) -> asyncio.Lock:
    """Get the lock serializing reconciliation against a store."""
    lock = _store_locks.get(store)
    if lock is None:
        lock = asyncio.Lock()
        _store_locks[store] = lock
    return lock


def descriptions_overlap(first: Task, second: Task) -> bool:
    """True if one task's description appears in the other's description or context."""
    first_description = first.description.strip().lower()
    second_description = second.description.strip().lower()
    if not first_description or not second_description:
        return False

    return (
        first_description == second_description
        or first_description in second.context.lower()
        or second_description in first.context.lower()
    )


def is_duplicate(
    candidate: Task,
    existing: Task,
    tolerance: timedelta = timedelta(hours=DUPLICATE_DEADLINE_TOLERANCE_HOURS),
) -> bool:
    """
    Decide whether two tasks describe the same real-world deadline.

    Either the title and deadline are identical, or both come from the
    same URL, their descriptions overlap and their deadlines are within
    the tolerance.
    """
    if candidate.title == existing.title and candidate.deadline == existing.deadline:
        return True

    if not candidate.source_url or candidate.source_url != existing.source_url:
        return False

    return (
        abs(candidate.deadline - existing.deadline) <= tolerance
        and descriptions_overlap(candidate, existing)
    )


def find_duplicate(
    candidate: Task,
    existing_tasks: Iterable[Task],
    tolerance: timedelta = timedelta(hours=DUPLICATE_DEADLINE_TOLERANCE_HOURS),
) -> Task | None:
    """Return the first existing task the candidate duplicates, if any."""
    for existing in existing_tasks:
        if existing.id == candidate.id or is_duplicate(candidate, existing, tolerance):
            return existing
    return None


class TaskReconciler:
    """
    Inserts candidate tasks into a store without creating duplicates.

    The read-decide-write sequence runs under a per-store lock, and the
    write is guarded by the store's version token. A lost race is retried
    once with a fresh read. Existing tasks are never modified.
    """

    def __init__(
        self,
        store: TaskStore,
        tolerance_hours: float = DUPLICATE_DEADLINE_TOLERANCE_HOURS,
        max_attempts: int = RECONCILE_MAX_ATTEMPTS,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            store: Task store to reconcile against
            tolerance_hours: Deadline tolerance for same-page duplicates
            max_attempts: Attempts before a conflict becomes an error
        """
        self._store = store
        self._tolerance = timedelta(hours=tolerance_hours)
        self._max_attempts = max_attempts

    async def reconcile(self, candidate: Task) -> ReconciliationResult:
        """
        Insert a candidate unless it duplicates a stored task.

        Args:
            candidate: Candidate task

        Returns:
            ReconciliationResult saying whether it was inserted

        Raises:
            ReconciliationError: If the store kept changing underneath
            StoreUnavailableError: If the store cannot be reached
        """
        async with store_lock(self._store):
            last_conflict: StoreConflictError | None = None

            for attempt in range(1, self._max_attempts + 1):
                version = await self._store.get_version()
                existing_tasks = await self._store.get_all()

                duplicate = find_duplicate(candidate, existing_tasks, self._tolerance)
                if duplicate is not None:
                    logger.debug(
                        f"Discarding '{candidate.title}' as duplicate of task {duplicate.id}"
                    )
                    return ReconciliationResult(
                        inserted=False, task=candidate, duplicate_of=duplicate
                    )

                try:
                    await self._store.put(candidate, expected_version=version)
                except StoreConflictError as e:
                    logger.warning(
                        f"Store changed while reconciling task {candidate.id} "
                        f"(attempt {attempt}/{self._max_attempts}): {e}"
                    )
                    last_conflict = e
                    continue

                logger.info(f"Added task {candidate.id}: {candidate.title}")
                return ReconciliationResult(inserted=True, task=candidate)

        raise ReconciliationError(
            f"Could not reconcile task {candidate.id} after {self._max_attempts} attempts"
        ) from last_conflict
