"""Command-line interface for deadline detection and the task list."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from .logging_utils import configure_logging
from .task_management.alerts import DeadlineAlertScheduler, LoggingAlertSink
from .task_management.config import DEFAULT_DATABASE_PATH
from .task_management.database import TaskDatabase
from .task_management.dates import parse_deadline
from .task_management.exceptions import TaskManagementError
from .task_management.interfaces import TextSource
from .task_management.models import Task, TaskStatus
from .task_management.priority import countdown_text
from .task_management.sources import HtmlTextSource, PlainTextSource
from .task_management.task_detection_service import DeadlineDetectionService
from .task_management.task_list_manager import DUE_FILTERS, TaskListManager

logger = logging.getLogger(__name__)

PRIORITY_ICONS = {
    "overdue": "⛔",
    "urgent": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
}


def format_task(task: Task) -> str:
    """Format a task as one line of CLI output."""
    icon = PRIORITY_ICONS.get(task.priority.value, "•")
    if task.status == TaskStatus.COMPLETED:
        remaining = "done"
    else:
        remaining = countdown_text(task.deadline, datetime.now())
    return (
        f"{icon} [{task.id}] {task.title} "
        f"(due {task.deadline:%Y-%m-%d %H:%M}, {remaining}, {task.status.value})"
    )


def build_source(args: argparse.Namespace) -> TextSource:
    """Build a text source from the scan arguments; '-' reads stdin."""
    if args.path == "-":
        content = sys.stdin.read()
    else:
        content = Path(args.path).read_text(encoding="utf-8")

    is_html = args.html or args.path.lower().endswith((".html", ".htm"))
    source_cls = HtmlTextSource if is_html else PlainTextSource
    return source_cls(content, url=args.url, title=args.title)


class DeadlineRadarCLI:
    """Runs one CLI command against the task database."""

    def __init__(self, db_path: str = DEFAULT_DATABASE_PATH) -> None:
        self._database = TaskDatabase(db_path)
        self._manager = TaskListManager(self._database)

    async def run(self, args: argparse.Namespace) -> int:
        """
        Run the command selected in ``args``.

        Returns:
            Process exit code
        """
        if args.command == "scan" and args.no_save:
            return self._scan_only(build_source(args))

        await self._manager.initialize()
        try:
            handler = getattr(self, f"_cmd_{args.command}")
            return await handler(args)
        finally:
            await self._manager.shutdown()

    def _scan_only(self, source: TextSource) -> int:
        candidates = DeadlineDetectionService().extract_candidates(source)
        print(f"🔍 Found {len(candidates)} deadline(s)")
        for task in candidates:
            print(f"  {format_task(task)}")
        return 0

    async def _cmd_scan(self, args: argparse.Namespace) -> int:
        service = DeadlineDetectionService(reconciler=self._manager.reconciler)
        result = await service.detect(build_source(args))

        print(
            f"🔍 Found {len(result.tasks)} deadline(s): "
            f"{len(result.inserted)} new, {len(result.duplicates)} already tracked"
        )
        for task in result.inserted:
            print(f"  ➕ {format_task(task)}")
        if result.error:
            print(f"⚠️  {result.error}")
            return 1
        return 0

    async def _cmd_list(self, args: argparse.Namespace) -> int:
        status = TaskStatus(args.status) if args.status else None
        tasks = await self._manager.list_tasks(status=status, due=args.due)
        if not tasks:
            print("No tasks.")
        for task in tasks:
            print(format_task(task))
        return 0

    async def _cmd_add(self, args: argparse.Namespace) -> int:
        deadline = parse_deadline(args.deadline, datetime.now())
        if deadline is None:
            print(f"❌ Invalid deadline: {args.deadline}")
            return 1

        result = await self._manager.add_task(
            args.title,
            deadline,
            description=args.description,
            source="cli",
            source_url=args.url,
        )
        if not result.inserted:
            duplicate_id = result.duplicate_of.id if result.duplicate_of else "?"
            print(f"⚠️  Already tracked as {duplicate_id}")
            return 1
        print(f"➕ {format_task(result.task)}")
        return 0

    async def _cmd_edit(self, args: argparse.Namespace) -> int:
        updates: dict[str, object] = {}
        if args.title is not None:
            updates["title"] = args.title
        if args.description is not None:
            updates["description"] = args.description
        if args.deadline is not None:
            deadline = parse_deadline(args.deadline, datetime.now())
            if deadline is None:
                print(f"❌ Invalid deadline: {args.deadline}")
                return 1
            updates["deadline"] = deadline

        if not updates:
            print("Nothing to change.")
            return 1

        await self._manager.update_task(args.task_id, updates)
        print(f"✏️  {format_task(await self._manager.get_task(args.task_id))}")
        return 0

    async def _cmd_history(self, args: argparse.Namespace) -> int:
        history = await self._manager.get_task_history(args.task_id)
        if not history:
            print(f"No history for {args.task_id}.")
        for entry in history:
            change = ""
            if entry["field_name"]:
                change = f" {entry['field_name']}: {entry['old_value']} -> {entry['new_value']}"
            print(f"{entry['timestamp']}  {entry['action']}{change}")
        return 0

    async def _cmd_complete(self, args: argparse.Namespace) -> int:
        await self._manager.update_task_status(args.task_id, TaskStatus.COMPLETED)
        print(f"✅ Completed {args.task_id}")
        return 0

    async def _cmd_start(self, args: argparse.Namespace) -> int:
        await self._manager.update_task_status(args.task_id, TaskStatus.IN_PROGRESS)
        print(f"▶️  Started {args.task_id}")
        return 0

    async def _cmd_delete(self, args: argparse.Namespace) -> int:
        await self._manager.delete_task(args.task_id)
        print(f"🗑️  Deleted {args.task_id}")
        return 0

    async def _cmd_stats(self, args: argparse.Namespace) -> int:
        stats = await self._manager.get_statistics()
        for key, value in stats.items():
            print(f"{key.replace('_', ' ').title():>12}: {value}")
        return 0

    async def _cmd_sweep(self, args: argparse.Namespace) -> int:
        scheduler = DeadlineAlertScheduler(self._database, LoggingAlertSink())
        result = await scheduler.run_sweep()
        print(
            f"🔔 {result.notifications_sent} alert(s) sent "
            f"({result.digest_count} in digest, {result.last_call_count} last call)"
        )
        for error in result.errors:
            print(f"⚠️  {error}")
        return 1 if result.errors else 0


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="deadline-radar",
        description="Deadline Radar CLI - find deadlines in page text and track them as tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  deadline-radar scan page.html                 # Detect and store deadlines from a page
  deadline-radar scan notes.txt --no-save       # Only show what would be detected
  cat page.txt | deadline-radar scan -          # Read page text from stdin
  deadline-radar list --status pending          # Show open tasks
  deadline-radar list --due today               # Show open tasks due today
  deadline-radar add "Lab report" 2025-10-15T17:00  # Track a deadline by hand
  deadline-radar complete task_1700000000000_ab12cd34e
  deadline-radar sweep                          # Send digest and last-call alerts now
        """,
    )

    parser.add_argument(
        "--db",
        default=DEFAULT_DATABASE_PATH,
        help=f"Path to the task database (default: {DEFAULT_DATABASE_PATH})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging and debug information",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable trace logging (most verbose, includes every pattern match)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Detect deadlines in a text or HTML file")
    scan.add_argument("path", help="File to scan, or '-' for stdin")
    scan.add_argument("--html", action="store_true", help="Treat the input as HTML")
    scan.add_argument("--url", default=None, help="URL the content came from")
    scan.add_argument("--title", default=None, help="Title of the page")
    scan.add_argument(
        "--no-save", action="store_true", help="Print detected deadlines without storing them"
    )

    list_parser = subparsers.add_parser("list", help="List tracked tasks")
    list_parser.add_argument(
        "--status",
        choices=[status.value for status in TaskStatus],
        default=None,
        help="Only show tasks with this status",
    )
    list_parser.add_argument(
        "--due",
        choices=DUE_FILTERS,
        default=None,
        help="Only show open tasks due within 24 hours (urgent) or today",
    )

    add = subparsers.add_parser("add", help="Add a task by hand")
    add.add_argument("title", help="Task title")
    add.add_argument("deadline", help="ISO-8601 timestamp or a phrase such as 'Oct 15, 2025'")
    add.add_argument("--description", default="", help="Task description")
    add.add_argument("--url", default=None, help="Related URL")

    edit = subparsers.add_parser("edit", help="Edit a task's title, description or deadline")
    edit.add_argument("task_id", help="Task ID")
    edit.add_argument("--title", default=None, help="New title")
    edit.add_argument("--description", default=None, help="New description")
    edit.add_argument("--deadline", default=None, help="New deadline")

    for name, help_text in (
        ("complete", "Mark a task completed"),
        ("start", "Mark a task in progress"),
        ("delete", "Delete a task"),
        ("history", "Show the change history of a task"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("task_id", help="Task ID")

    subparsers.add_parser("stats", help="Show task statistics")
    subparsers.add_parser("sweep", help="Run one deadline alert sweep")

    return parser


async def main(args: argparse.Namespace) -> int:
    """Run the CLI command selected in ``args``."""
    cli = DeadlineRadarCLI(db_path=args.db)
    return await cli.run(args)


def cli_entry_with_args() -> None:
    """CLI entry point with argument parsing."""
    parser = create_argument_parser()
    args = parser.parse_args()

    configure_logging(verbose=args.verbose, trace=args.trace)

    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        pass  # Graceful shutdown
    except (TaskManagementError, OSError) as e:
        print(f"❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_entry_with_args()
