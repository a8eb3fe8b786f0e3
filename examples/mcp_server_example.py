"""Example demonstrating the Deadline Radar MCP tools."""

import asyncio
import logging
from datetime import datetime, timedelta

from deadline_radar.task_management.alerts import DeadlineAlertScheduler, LoggingAlertSink
from deadline_radar.task_management.database import TaskDatabase
from deadline_radar.task_management.mcp_server import DeadlineRadarServer
from deadline_radar.task_management.task_list_manager import TaskListManager

logging.basicConfig(level=logging.INFO)

COURSE_PAGE = """
<html>
  <head><title>CS 101 - Schedule</title></head>
  <body>
    <p>Homework 1 is due {homework} at 11:59pm.</p>
    <p>The midterm exam on {exam} covers chapters 1-4.</p>
  </body>
</html>
"""


async def main() -> None:
    """Demonstrate detection and task tools."""
    database = TaskDatabase(":memory:")
    task_manager = TaskListManager(database)
    await task_manager.initialize()

    server = DeadlineRadarServer(
        task_manager=task_manager,
        alert_scheduler=DeadlineAlertScheduler(database, LoggingAlertSink()),
    )
    await server.initialize()

    print("Available MCP tools:", server.get_available_tools())
    print()

    today = datetime.now()
    page = COURSE_PAGE.format(
        homework=(today + timedelta(days=1)).strftime("%Y-%m-%d"),
        exam=(today + timedelta(days=20)).strftime("%Y-%m-%d"),
    )

    print("=== Scanning a course page ===")
    result = await server.handle_detect_now(
        {"content": page, "url": "https://cs101.example/schedule", "is_html": True}
    )
    for task in result["tasks"]:
        print(f"  {task['title']!r} due {task['deadline']} ({task['priority']})")
    print()

    print("=== Scanning the same page again ===")
    result = await server.handle_detect_now(
        {"content": page, "url": "https://cs101.example/schedule", "is_html": True}
    )
    print(f"New tasks: {len(result['inserted'])}, duplicates: {result['duplicates']}")
    print()

    print("=== Adding a task by hand ===")
    result = await server.handle_add_task(
        {"title": "Register for spring courses", "deadline": "Dec 1"}
    )
    print(f"Add task result: {result}")
    print()

    print("=== Statistics ===")
    print(await server.handle_get_task_statistics({}))
    print()

    print("=== Alert sweep ===")
    print(await server.handle_run_alert_sweep({}))

    await server.shutdown()
    await task_manager.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
