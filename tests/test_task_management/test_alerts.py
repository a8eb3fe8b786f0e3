"""Tests for deadline alerts."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from deadline_radar.task_management.alerts import (
    DeadlineAlertScheduler,
    LoggingAlertSink,
    select_digest,
    select_last_call,
)
from deadline_radar.task_management.database import TaskDatabase
from deadline_radar.task_management.exceptions import AlertSinkError, StoreUnavailableError
from deadline_radar.task_management.models import Task, TaskPriority, TaskStatus

NOW = datetime(2025, 6, 1, 8, 0)


def make_task(
    title: str, offset: timedelta, status: TaskStatus = TaskStatus.PENDING, **overrides: Any
) -> Task:
    fields: dict[str, Any] = {
        "id": f"task_{uuid4().hex[:12]}",
        "title": title,
        "description": title,
        "deadline": NOW + offset,
        "priority": TaskPriority.LOW,
        "status": status,
        "context": title,
        "detected_at": NOW,
        "created_at": NOW,
        "updated_at": NOW,
        "source": "test",
    }
    fields.update(overrides)
    return Task(**fields)


@pytest.fixture
async def db():
    database = TaskDatabase(":memory:")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def sink() -> AsyncMock:
    sink = AsyncMock()
    sink.notify = AsyncMock()
    return sink


@pytest.mark.unit
class TestSelection:
    """Test which tasks each alert covers."""

    def test_last_call_window(self) -> None:
        """Test open tasks due within 24 hours."""
        soon = make_task("Quiz", timedelta(hours=5))
        tasks = [
            soon,
            make_task("Exam", timedelta(days=2)),
            make_task("Lab", timedelta(hours=-1)),
            make_task("Essay", timedelta(hours=2), TaskStatus.COMPLETED),
        ]

        assert select_last_call(tasks, NOW) == [soon]

    def test_digest_window(self) -> None:
        """Test open tasks due within 7 days."""
        quiz = make_task("Quiz", timedelta(hours=5))
        exam = make_task("Exam", timedelta(days=6))
        tasks = [quiz, exam, make_task("Project", timedelta(days=8))]

        assert select_digest(tasks, NOW) == [quiz, exam]

    def test_completed_past_task_is_never_selected(self) -> None:
        """Test a completed task past its deadline."""
        done = make_task("Essay", timedelta(days=-2), TaskStatus.COMPLETED)

        assert select_last_call([done], NOW) == []
        assert select_digest([done], NOW) == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeadlineAlertScheduler:
    """Test alert sweeps."""

    async def test_sweep_sends_digest_and_last_call(self, db: TaskDatabase, sink: Any) -> None:
        """Test one digest plus one last call per urgent task."""
        await db.put(make_task("Quiz", timedelta(hours=5)))
        await db.put(make_task("Exam", timedelta(days=3)))
        scheduler = DeadlineAlertScheduler(db, sink)

        result = await scheduler.run_sweep(now=NOW)

        assert result.digest_count == 2
        assert result.last_call_count == 1
        assert result.notifications_sent == 2

        digest_call, last_call = sink.notify.await_args_list
        assert digest_call.args[0] == "Upcoming Deadlines"
        assert "Quiz: 5h 0m" in digest_call.args[1]
        assert "Exam: 3d 0h" in digest_call.args[1]
        assert digest_call.args[2] == TaskPriority.URGENT
        assert last_call.args == (
            "Last Call!",
            "Quiz is due in less than 24 hours!",
            TaskPriority.URGENT,
        )

    async def test_completed_past_task_produces_no_alert(
        self, db: TaskDatabase, sink: Any
    ) -> None:
        """Test that completed tasks are excluded from notifications."""
        await db.put(
            make_task(
                "Essay", timedelta(days=-1), TaskStatus.COMPLETED, completed_at=NOW
            )
        )
        scheduler = DeadlineAlertScheduler(db, sink)

        result = await scheduler.run_sweep(now=NOW)

        assert result.notifications_sent == 0
        sink.notify.assert_not_awaited()

    async def test_sweep_refreshes_cached_priority(self, db: TaskDatabase, sink: Any) -> None:
        """Test that stale stored priorities are overwritten."""
        task = make_task("Quiz", timedelta(hours=5))
        await db.put(task)
        version = await db.get_version()

        await DeadlineAlertScheduler(db, sink).run_sweep(now=NOW)

        assert (await db.get_task(task.id)).priority == TaskPriority.URGENT
        assert await db.get_version() == version

    async def test_sink_failure_is_reported(self, db: TaskDatabase) -> None:
        """Test that delivery errors do not abort the sweep."""
        await db.put(make_task("Quiz", timedelta(hours=5)))
        failing_sink = AsyncMock()
        failing_sink.notify = AsyncMock(side_effect=AlertSinkError("no display"))

        result = await DeadlineAlertScheduler(db, failing_sink).run_sweep(now=NOW)

        assert result.notifications_sent == 0
        assert result.errors == ["no display", "no display"]

    async def test_store_failure_is_reported(self, sink: Any) -> None:
        """Test a sweep against an unreachable store."""
        store = AsyncMock()
        store.get_all = AsyncMock(side_effect=StoreUnavailableError("offline"))

        result = await DeadlineAlertScheduler(store, sink).run_sweep(now=NOW)

        assert result.errors
        sink.notify.assert_not_awaited()

    async def test_start_and_stop(self, sink: Any) -> None:
        """Test the background loop lifecycle."""
        store = AsyncMock()
        store.get_all = AsyncMock(return_value=[])
        scheduler = DeadlineAlertScheduler(store, sink, interval=0.01, clock=lambda: NOW)

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert store.get_all.await_count >= 2

    async def test_logging_sink_levels(self, caplog: Any) -> None:
        """Test that urgent alerts log as warnings."""
        sink = LoggingAlertSink()

        with caplog.at_level(logging.INFO, logger="deadline_radar.task_management.alerts"):
            await sink.notify("Last Call!", "Quiz is due", TaskPriority.URGENT)
            await sink.notify("Upcoming Deadlines", "Exam: 3d 0h", TaskPriority.MEDIUM)

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.WARNING, logging.INFO]

    async def test_sweep_keeps_completed_task_priority(self, db: TaskDatabase, sink: Any) -> None:
        """Test that a completed task keeps its stored priority."""
        task = make_task(
            "Essay",
            timedelta(days=-1),
            TaskStatus.COMPLETED,
            priority=TaskPriority.URGENT,
            completed_at=NOW,
        )
        await db.put(task)

        await DeadlineAlertScheduler(db, sink).run_sweep(now=NOW)

        assert (await db.get_task(task.id)).priority == TaskPriority.URGENT
