"""Periodic deadline alerts: digest and last-call notifications."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .config import DEFAULT_ALERT_SWEEP_INTERVAL, DIGEST_WINDOW_DAYS, LAST_CALL_WINDOW_HOURS
from .exceptions import AlertSinkError, DatabaseError, TaskNotFoundError
from .interfaces import AlertSink, TaskStore
from .models import AlertSweepResult, Task, TaskPriority, TaskStatus
from .priority import countdown_text, most_pressing, recompute_priorities

logger = logging.getLogger(__name__)


class LoggingAlertSink(AlertSink):
    """Alert sink that writes notifications to the log."""

    async def notify(self, title: str, message: str, urgency: TaskPriority) -> None:
        level = (
            logging.WARNING
            if urgency in (TaskPriority.URGENT, TaskPriority.OVERDUE)
            else logging.INFO
        )
        logger.log(level, f"[{urgency.value}] {title}: {message}")


def _due_within(tasks: list[Task], now: datetime, window: timedelta) -> list[Task]:
    return [
        task
        for task in tasks
        if task.status != TaskStatus.COMPLETED
        and timedelta(0) <= task.deadline - now < window
    ]


def select_last_call(tasks: list[Task], now: datetime) -> list[Task]:
    """Open tasks due within the last-call window (24 hours)."""
    return _due_within(tasks, now, timedelta(hours=LAST_CALL_WINDOW_HOURS))


def select_digest(tasks: list[Task], now: datetime) -> list[Task]:
    """Open tasks due within the digest window (7 days)."""
    return _due_within(tasks, now, timedelta(days=DIGEST_WINDOW_DAYS))


class DeadlineAlertScheduler:
    """
    Sends deadline alerts for the stored tasks on a fixed interval.

    Each sweep reads the store, recomputes priorities with one ``now``,
    refreshes the cached priority hints of open tasks and sends one digest
    plus one last-call alert per task due within 24 hours. Completed tasks
    never alert. The sweep writes nothing but the priority hint.
    """

    def __init__(
        self,
        store: TaskStore,
        sink: AlertSink,
        interval: float = DEFAULT_ALERT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            store: Task store to read
            sink: Where notifications go
            interval: Seconds between sweeps
            clock: Source of the current time
        """
        self._store = store
        self._sink = sink
        self._interval = interval
        self._clock = clock
        self._loop_task: asyncio.Task[None] | None = None

    async def run_sweep(self, now: datetime | None = None) -> AlertSweepResult:
        """
        Run one alert sweep.

        Store and sink failures are logged and reported in the result;
        they never raise.

        Args:
            now: Reference instant; defaults to the clock

        Returns:
            AlertSweepResult with counts and errors
        """
        now = now or self._clock()
        result = AlertSweepResult()

        try:
            stored = await self._store.get_all()
        except DatabaseError as e:
            logger.error(f"Alert sweep could not read tasks: {e}")
            result.errors.append(f"Task store unavailable: {e}")
            return result

        tasks = recompute_priorities(stored, now)
        await self._refresh_priority_cache(stored, tasks)

        digest = select_digest(tasks, now)
        last_call = select_last_call(tasks, now)
        result.digest_count = len(digest)
        result.last_call_count = len(last_call)

        if digest:
            message = "\n".join(
                f"{task.title}: {countdown_text(task.deadline, now)}" for task in digest
            )
            urgency = most_pressing([task.priority for task in digest])
            await self._send("Upcoming Deadlines", message, urgency, result)

        for task in last_call:
            await self._send(
                "Last Call!",
                f"{task.title} is due in less than 24 hours!",
                task.priority,
                result,
            )

        logger.debug(
            f"Alert sweep: {len(digest)} in digest, {len(last_call)} last call, "
            f"{result.notifications_sent} sent"
        )
        return result

    async def _refresh_priority_cache(self, stored: list[Task], current: list[Task]) -> None:
        for old, new in zip(stored, current, strict=True):
            # Completed tasks keep whatever priority they were stored with
            if old.status == TaskStatus.COMPLETED or old.priority == new.priority:
                continue
            try:
                await self._store.cache_priority(new.id, new.priority)
            except TaskNotFoundError:
                # Deleted since the read
                continue
            except DatabaseError as e:
                logger.warning(f"Could not cache priority for task {new.id}: {e}")

    async def _send(
        self, title: str, message: str, urgency: TaskPriority, result: AlertSweepResult
    ) -> None:
        try:
            await self._sink.notify(title, message, urgency)
        except AlertSinkError as e:
            logger.error(f"Alert '{title}' not delivered: {e}")
            result.errors.append(str(e))
            return
        result.notifications_sent += 1

    async def run_forever(self) -> None:
        """Run sweeps until cancelled."""
        while True:
            await self.run_sweep()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start sweeping in the background."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run_forever())
            logger.info(f"Alert sweeps every {self._interval:.0f}s")

    async def stop(self) -> None:
        """Stop background sweeps."""
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
