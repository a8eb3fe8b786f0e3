"""Tests for CLI interface functionality."""

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import patch

import pytest

from deadline_radar.main import DeadlineRadarCLI, create_argument_parser, format_task
from deadline_radar.task_management.database import TaskDatabase

PAGE = "Welcome!\nHomework 4 is due 2099-03-01 at 5pm.\nFinal exam on 2099-04-10."


async def run_cli(db_path: str, *argv: str) -> tuple[int, str]:
    args = create_argument_parser().parse_args(["--db", db_path, *argv])
    with patch("builtins.print") as mock_print:
        code = await DeadlineRadarCLI(db_path=db_path).run(args)
    output = "\n".join(str(call.args[0]) for call in mock_print.call_args_list if call.args)
    return code, output


@pytest.fixture
def page_file(tmp_path: Any) -> Any:
    path = tmp_path / "course.txt"
    path.write_text(PAGE, encoding="utf-8")
    return path


@pytest.fixture
def db_path(tmp_path: Any) -> str:
    return str(tmp_path / "tasks.db")


@pytest.mark.unit
@pytest.mark.asyncio
class TestDeadlineRadarCLI:
    """Test cases for the CLI commands."""

    async def test_scan_stores_tasks(self, db_path: str, page_file: Any) -> None:
        """Test that scan detects and saves deadlines."""
        code, output = await run_cli(db_path, "scan", str(page_file))

        assert code == 0
        assert "Found 2 deadline(s): 2 new, 0 already tracked" in output

        database = TaskDatabase(db_path)
        await database.initialize()
        assert len(await database.get_all()) == 2
        await database.close()

    async def test_second_scan_reports_duplicates(self, db_path: str, page_file: Any) -> None:
        """Test that rescanning the same page adds nothing."""
        await run_cli(db_path, "scan", str(page_file))

        code, output = await run_cli(db_path, "scan", str(page_file))

        assert code == 0
        assert "0 new, 2 already tracked" in output

    async def test_scan_without_saving(self, db_path: str, page_file: Any) -> None:
        """Test --no-save leaves the database alone."""
        code, output = await run_cli(db_path, "scan", str(page_file), "--no-save")

        assert code == 0
        assert "Found 2 deadline(s)" in output

        database = TaskDatabase(db_path)
        await database.initialize()
        assert await database.get_all() == []
        await database.close()

    async def test_list_complete_and_stats(self, db_path: str, page_file: Any) -> None:
        """Test the task commands after a scan."""
        await run_cli(db_path, "scan", str(page_file))
        database = TaskDatabase(db_path)
        await database.initialize()
        first = (await database.get_all())[0]
        await database.close()

        _, listing = await run_cli(db_path, "list")
        code, completed = await run_cli(db_path, "complete", first.id)
        _, pending = await run_cli(db_path, "list", "--status", "pending")
        _, stats = await run_cli(db_path, "stats")

        assert first.id in listing
        assert code == 0
        assert f"Completed {first.id}" in completed
        assert first.id not in pending
        assert "Completed:" in stats

    async def test_list_empty(self, db_path: str) -> None:
        """Test listing an empty database."""
        code, output = await run_cli(db_path, "list")

        assert code == 0
        assert output == "No tasks."

    async def test_sweep(self, db_path: str, page_file: Any) -> None:
        """Test that far-off deadlines produce no alerts."""
        await run_cli(db_path, "scan", str(page_file))

        code, output = await run_cli(db_path, "sweep")

        assert code == 0
        assert "0 alert(s) sent" in output

    async def test_add_and_duplicate(self, db_path: str) -> None:
        """Test adding a task by hand and adding it again."""
        code, added = await run_cli(db_path, "add", "Lab report", "2099-05-01T17:00")
        dup_code, duplicate = await run_cli(db_path, "add", "Lab report", "2099-05-01T17:00")

        assert code == 0
        assert "Lab report (due 2099-05-01 17:00" in added
        assert dup_code == 1
        assert "Already tracked as task_" in duplicate

    async def test_add_invalid_deadline(self, db_path: str) -> None:
        """Test an unparseable deadline."""
        code, output = await run_cli(db_path, "add", "Lab report", "someday")

        assert code == 1
        assert output == "❌ Invalid deadline: someday"

    async def test_edit_and_history(self, db_path: str) -> None:
        """Test renaming a task and reading back its history."""
        await run_cli(db_path, "add", "Lab report", "2099-05-01T17:00")
        database = TaskDatabase(db_path)
        await database.initialize()
        task = (await database.get_all())[0]
        await database.close()

        code, edited = await run_cli(db_path, "edit", task.id, "--title", "Final lab report")
        _, history = await run_cli(db_path, "history", task.id)

        assert code == 0
        assert "Final lab report" in edited
        assert "created" in history
        assert "title: Lab report -> Final lab report" in history

    async def test_edit_without_changes(self, db_path: str) -> None:
        """Test edit with no fields."""
        await run_cli(db_path, "add", "Lab report", "2099-05-01T17:00")

        code, output = await run_cli(db_path, "edit", "task_any")

        assert code == 1
        assert output == "Nothing to change."

    async def test_list_due_urgent(self, db_path: str) -> None:
        """Test the urgent view shows only tasks due within a day."""
        soon = (datetime.now() + timedelta(hours=3)).replace(microsecond=0)
        await run_cli(db_path, "add", "Quiz", soon.isoformat())
        await run_cli(db_path, "add", "Exam", "2099-05-01T09:00")

        code, output = await run_cli(db_path, "list", "--due", "urgent")

        assert code == 0
        assert "Quiz" in output
        assert "Exam" not in output


@pytest.mark.unit
def test_format_task_marks_completed_tasks() -> None:
    """Test the one-line task rendering."""
    from datetime import datetime

    from deadline_radar.task_management.models import Task, TaskPriority, TaskStatus

    now = datetime(2099, 1, 1)
    task = Task(
        id="task_1_abc",
        title="Final exam",
        description="exam on 2099-04-10",
        deadline=datetime(2099, 4, 10),
        priority=TaskPriority.LOW,
        status=TaskStatus.COMPLETED,
        context="",
        detected_at=now,
        created_at=now,
        updated_at=now,
        source="detection",
    )

    line = format_task(task)

    assert "[task_1_abc] Final exam" in line
    assert "due 2099-04-10 00:00, done, completed" in line
