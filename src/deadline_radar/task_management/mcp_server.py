"""MCP Server for deadline detection and task management using FastMCP."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from fastmcp import FastMCP

from .alerts import DeadlineAlertScheduler, LoggingAlertSink
from .config import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_MCP_SERVER_NAME,
)
from .database import TaskDatabase
from .dates import parse_deadline
from .exceptions import InvalidStatusTransitionError, TaskNotFoundError
from .models import DetectionResult, Task, TaskPriority, TaskStatus
from .sources import HtmlTextSource, PlainTextSource
from .task_detection_service import DeadlineDetectionService
from .task_list_manager import DUE_FILTERS, TaskListManager

logger = logging.getLogger(__name__)

# Global services (initialized in setup())
_task_manager: TaskListManager | None = None
_detection_service: DeadlineDetectionService | None = None
_alert_scheduler: DeadlineAlertScheduler | None = None

# Create FastMCP server instance
mcp = FastMCP(DEFAULT_MCP_SERVER_NAME)


def get_task_manager() -> TaskListManager:
    """Get the global task manager instance."""
    if _task_manager is None:
        raise RuntimeError("Task manager not initialized")
    return _task_manager


def get_detection_service() -> DeadlineDetectionService:
    """Get the global detection service instance."""
    if _detection_service is None:
        raise RuntimeError("Detection service not initialized")
    return _detection_service


def get_alert_scheduler() -> DeadlineAlertScheduler:
    """Get the global alert scheduler instance."""
    if _alert_scheduler is None:
        raise RuntimeError("Alert scheduler not initialized")
    return _alert_scheduler


def set_services(
    task_manager: TaskListManager,
    detection_service: DeadlineDetectionService | None = None,
    alert_scheduler: DeadlineAlertScheduler | None = None,
) -> None:
    """Set the global service instances (also used by tests)."""
    global _task_manager, _detection_service, _alert_scheduler
    _task_manager = task_manager
    _detection_service = detection_service
    _alert_scheduler = alert_scheduler


def task_to_dict(task: Task) -> dict[str, Any]:
    """Serialize a task for tool responses."""
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "deadline": task.deadline.isoformat(),
        "priority": task.priority.value,
        "status": task.status.value,
        "tags": list(task.tags),
        "source_url": task.source_url,
        "page_title": task.page_title,
        "context": task.context,
        "source": task.source,
        "detected_at": task.detected_at.isoformat(),
        "created_at": task.created_at.isoformat(),
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
    }


def detection_result_to_dict(result: DetectionResult) -> dict[str, Any]:
    """Serialize a detection result for tool responses."""
    return {
        "success": result.error is None,
        "scan_id": result.scan_id,
        "tasks": [task_to_dict(task) for task in result.tasks],
        "inserted": [task.id for task in result.inserted],
        "duplicates": len(result.duplicates),
        "superseded": result.superseded,
        "processing_time": result.processing_time,
        "error": result.error,
    }


async def _detect_now_impl(
    content: str,
    url: str | None = None,
    title: str | None = None,
    is_html: bool = False,
) -> dict[str, Any]:
    """Implementation of detect_now tool."""
    try:
        service = get_detection_service()
        source = (
            HtmlTextSource(content, url=url, title=title)
            if is_html
            else PlainTextSource(content, url=url, title=title)
        )
        result = await service.detect(source)
        return detection_result_to_dict(result)

    except Exception as e:
        logger.error(f"Error detecting deadlines: {e}")
        return {"success": False, "error": str(e)}


async def _get_last_detected_impl() -> dict[str, Any]:
    """Implementation of get_last_detected tool."""
    try:
        result = get_detection_service().get_last_detected()
        if result is None:
            return {"success": True, "scan_id": None, "tasks": []}
        return detection_result_to_dict(result)

    except Exception as e:
        logger.error(f"Error getting last detection: {e}")
        return {"success": False, "error": str(e)}


async def _list_tasks_impl(
    status: str | None = None, priority: str | None = None, due: str | None = None
) -> dict[str, Any]:
    """Implementation of list_tasks tool."""
    try:
        task_manager = get_task_manager()

        status_filter = None
        priority_filter = None

        if status:
            try:
                status_filter = TaskStatus(status)
            except ValueError:
                return {"success": False, "error": f"Invalid status: {status}"}

        if priority:
            try:
                priority_filter = TaskPriority(priority)
            except ValueError:
                return {"success": False, "error": f"Invalid priority: {priority}"}

        if due and due not in DUE_FILTERS:
            return {"success": False, "error": f"Invalid due filter: {due}"}

        tasks = await task_manager.list_tasks(
            status=status_filter, priority=priority_filter, due=due or None
        )
        return {"tasks": [task_to_dict(task) for task in tasks]}

    except Exception as e:
        logger.error(f"Error listing tasks: {e}")
        return {"success": False, "error": str(e)}


async def _add_task_impl(
    title: str,
    deadline: str,
    description: str = "",
    source_url: str | None = None,
) -> dict[str, Any]:
    """Implementation of add_task tool."""
    try:
        task_manager = get_task_manager()

        parsed_deadline = parse_deadline(deadline, datetime.now())
        if parsed_deadline is None:
            return {"success": False, "error": f"Invalid deadline: {deadline}"}

        result = await task_manager.add_task(
            title=title,
            deadline=parsed_deadline,
            description=description,
            source="mcp",
            source_url=source_url,
        )

        if not result.inserted:
            return {
                "success": False,
                "error": "Duplicate task",
                "duplicate_of": result.duplicate_of.id if result.duplicate_of else None,
            }
        return {"success": True, "task_id": result.task.id}

    except Exception as e:
        logger.error(f"Error adding task: {e}")
        return {"success": False, "error": str(e)}


async def _update_task_status_impl(task_id: str, status: str) -> dict[str, Any]:
    """Implementation of update_task_status tool."""
    try:
        task_manager = get_task_manager()

        try:
            task_status = TaskStatus(status)
        except ValueError:
            return {"success": False, "error": f"Invalid status: {status}"}

        await task_manager.update_task_status(task_id, task_status)
        return {"success": True}

    except (TaskNotFoundError, InvalidStatusTransitionError) as e:
        logger.warning(f"Status update rejected: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error updating task status: {e}")
        return {"success": False, "error": str(e)}


async def _update_task_impl(
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    deadline: str | None = None,
) -> dict[str, Any]:
    """Implementation of update_task tool."""
    try:
        task_manager = get_task_manager()

        updates: dict[str, Any] = {}
        if title is not None:
            if not title.strip():
                return {"success": False, "error": "Title cannot be empty"}
            updates["title"] = title.strip()
        if description is not None:
            updates["description"] = description
        if deadline is not None:
            parsed_deadline = parse_deadline(deadline, datetime.now())
            if parsed_deadline is None:
                return {"success": False, "error": f"Invalid deadline: {deadline}"}
            updates["deadline"] = parsed_deadline

        if not updates:
            return {"success": False, "error": "No fields to update"}

        await task_manager.update_task(task_id, updates)
        return {"success": True, "task": task_to_dict(await task_manager.get_task(task_id))}

    except TaskNotFoundError as e:
        logger.warning(f"Task not found: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error updating task: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_history_impl(task_id: str) -> dict[str, Any]:
    """Implementation of get_task_history tool."""
    try:
        history = await get_task_manager().get_task_history(task_id)
        return {"success": True, "task_id": task_id, "history": history}

    except Exception as e:
        logger.error(f"Error getting task history: {e}")
        return {"success": False, "error": str(e)}


async def _delete_task_impl(task_id: str) -> dict[str, Any]:
    """Implementation of delete_task tool."""
    try:
        await get_task_manager().delete_task(task_id)
        return {"success": True}

    except TaskNotFoundError as e:
        logger.warning(f"Task not found: {e}")
        return {"success": False, "error": str(e)}
    except Exception as e:
        logger.error(f"Error deleting task: {e}")
        return {"success": False, "error": str(e)}


async def _get_task_statistics_impl() -> dict[str, Any]:
    """Implementation of get_task_statistics tool."""
    try:
        return await get_task_manager().get_statistics()

    except Exception as e:
        logger.error(f"Error getting task statistics: {e}")
        return {"success": False, "error": str(e)}


async def _run_alert_sweep_impl() -> dict[str, Any]:
    """Implementation of run_alert_sweep tool."""
    try:
        result = await get_alert_scheduler().run_sweep()
        return {
            "success": not result.errors,
            "digest_count": result.digest_count,
            "last_call_count": result.last_call_count,
            "notifications_sent": result.notifications_sent,
            "errors": result.errors,
        }

    except Exception as e:
        logger.error(f"Error running alert sweep: {e}")
        return {"success": False, "error": str(e)}


# FastMCP decorated wrappers (for actual MCP server)
@mcp.tool()
async def detect_now(
    content: str,
    url: str | None = None,
    title: str | None = None,
    is_html: bool = False,
) -> dict[str, Any]:
    """
    Scan page content for deadlines and store the new ones.

    Args:
        content: Page text, or HTML markup when is_html is true
        url: Page URL
        title: Page title
        is_html: Whether content is HTML

    Returns:
        Detected tasks and how many were new
    """
    return await _detect_now_impl(content=content, url=url, title=title, is_html=is_html)


@mcp.tool()
async def get_last_detected() -> dict[str, Any]:
    """
    Get the most recent detection batch without scanning again.

    Returns:
        The last scan's tasks
    """
    return await _get_last_detected_impl()


@mcp.tool()
async def list_tasks(
    status: str | None = None, priority: str | None = None, due: str | None = None
) -> dict[str, Any]:
    """
    List all tasks with optional filters.

    Args:
        status: Filter by status (pending, in_progress, completed)
        priority: Filter by priority (low, medium, high, urgent, overdue)
        due: "urgent" (open, due within 24 hours) or "today" (open, due today)

    Returns:
        Dictionary with tasks list
    """
    return await _list_tasks_impl(status=status, priority=priority, due=due)


@mcp.tool()
async def add_task(
    title: str, deadline: str, description: str = "", source_url: str | None = None
) -> dict[str, Any]:
    """
    Add a task by hand.

    Args:
        title: Task title (required)
        deadline: ISO-8601 timestamp or a phrase such as "Oct 15, 2025"
        description: Optional description
        source_url: Optional related URL

    Returns:
        Dictionary with task_id and success status
    """
    return await _add_task_impl(
        title=title, deadline=deadline, description=description, source_url=source_url
    )


@mcp.tool()
async def update_task_status(task_id: str, status: str) -> dict[str, Any]:
    """
    Update the status of a task.

    Args:
        task_id: Task ID
        status: New status (in_progress, completed)

    Returns:
        Dictionary with success status
    """
    return await _update_task_status_impl(task_id=task_id, status=status)


@mcp.tool()
async def update_task(
    task_id: str,
    title: str | None = None,
    description: str | None = None,
    deadline: str | None = None,
) -> dict[str, Any]:
    """
    Edit a task's title, description or deadline.

    Args:
        task_id: Task ID
        title: New title
        description: New description
        deadline: New deadline, ISO-8601 or a phrase such as "Oct 15, 2025"

    Returns:
        Dictionary with the updated task
    """
    return await _update_task_impl(
        task_id=task_id, title=title, description=description, deadline=deadline
    )


@mcp.tool()
async def get_task_history(task_id: str) -> dict[str, Any]:
    """
    Get the change history of a task, including deleted tasks.

    Args:
        task_id: Task ID

    Returns:
        Dictionary with history entries, oldest first
    """
    return await _get_task_history_impl(task_id=task_id)


@mcp.tool()
async def delete_task(task_id: str) -> dict[str, Any]:
    """
    Delete a task.

    Args:
        task_id: Task ID

    Returns:
        Dictionary with success status
    """
    return await _delete_task_impl(task_id=task_id)


@mcp.tool()
async def get_task_statistics() -> dict[str, Any]:
    """
    Get task statistics (status counts, urgent, due today, overdue).

    Returns:
        Dictionary with task counts
    """
    return await _get_task_statistics_impl()


@mcp.tool()
async def run_alert_sweep() -> dict[str, Any]:
    """
    Send digest and last-call alerts for upcoming deadlines now.

    Returns:
        Alert counts and any delivery errors
    """
    return await _run_alert_sweep_impl()


class DeadlineRadarServer:
    """
    Request-handler facade over the MCP tools.

    The real server uses FastMCP function decorators; this class gives
    embedders and tests a plain request/response interface.
    """

    def __init__(
        self,
        task_manager: TaskListManager,
        detection_service: DeadlineDetectionService | None = None,
        alert_scheduler: DeadlineAlertScheduler | None = None,
        server_name: str = DEFAULT_MCP_SERVER_NAME,
        host: str = DEFAULT_MCP_HOST,
        port: int = DEFAULT_MCP_PORT,
    ) -> None:
        """Initialize the server facade."""
        self._task_manager = task_manager
        self._detection_service = detection_service or DeadlineDetectionService(
            reconciler=task_manager.reconciler
        )
        self._alert_scheduler = alert_scheduler
        self._server_name = server_name
        self._host = host
        self._port = port
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the server."""
        set_services(self._task_manager, self._detection_service, self._alert_scheduler)
        self._initialized = True

    async def shutdown(self) -> None:
        """Shutdown the server."""
        await self._detection_service.shutdown()
        self._initialized = False

    def get_available_tools(self) -> list[str]:
        """Get list of available tools."""
        return [
            "detect_now",
            "get_last_detected",
            "list_tasks",
            "add_task",
            "update_task_status",
            "update_task",
            "get_task_history",
            "delete_task",
            "get_task_statistics",
            "run_alert_sweep",
        ]

    async def handle_detect_now(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle detect_now request."""
        if "content" not in params:
            return {"success": False, "error": "Missing required field: content"}
        return await _detect_now_impl(
            content=params["content"],
            url=params.get("url"),
            title=params.get("title"),
            is_html=bool(params.get("is_html", False)),
        )

    async def handle_get_last_detected(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle get_last_detected request."""
        return await _get_last_detected_impl()

    async def handle_list_tasks(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle list_tasks request."""
        return await _list_tasks_impl(
            status=params.get("status"),
            priority=params.get("priority"),
            due=params.get("due"),
        )

    async def handle_add_task(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle add_task request."""
        for required in ("title", "deadline"):
            if required not in params:
                return {"success": False, "error": f"Missing required field: {required}"}
        return await _add_task_impl(
            title=params["title"],
            deadline=params["deadline"],
            description=params.get("description", ""),
            source_url=params.get("source_url"),
        )

    async def handle_update_task_status(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle update_task_status request."""
        if "task_id" not in params:
            return {"success": False, "error": "Missing required field: task_id"}
        if "status" not in params:
            return {"success": False, "error": "Missing required field: status"}
        return await _update_task_status_impl(
            task_id=params["task_id"], status=params["status"]
        )

    async def handle_update_task(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle update_task request."""
        if "task_id" not in params:
            return {"success": False, "error": "Missing required field: task_id"}
        return await _update_task_impl(
            task_id=params["task_id"],
            title=params.get("title"),
            description=params.get("description"),
            deadline=params.get("deadline"),
        )

    async def handle_get_task_history(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle get_task_history request."""
        if "task_id" not in params:
            return {"success": False, "error": "Missing required field: task_id"}
        return await _get_task_history_impl(task_id=params["task_id"])

    async def handle_delete_task(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle delete_task request."""
        if "task_id" not in params:
            return {"success": False, "error": "Missing required field: task_id"}
        return await _delete_task_impl(task_id=params["task_id"])

    async def handle_get_task_statistics(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle get_task_statistics request."""
        return await _get_task_statistics_impl()

    async def handle_run_alert_sweep(self, params: dict[str, Any]) -> dict[str, Any]:
        """Handle run_alert_sweep request."""
        return await _run_alert_sweep_impl()


async def setup(db_path: str = DEFAULT_DATABASE_PATH) -> TaskListManager:
    """Create the database-backed services and register them globally."""
    database = TaskDatabase(db_path)
    task_manager = TaskListManager(database)
    await task_manager.initialize()

    detection_service = DeadlineDetectionService(reconciler=task_manager.reconciler)
    alert_scheduler = DeadlineAlertScheduler(database, LoggingAlertSink())
    set_services(task_manager, detection_service, alert_scheduler)

    logger.info(f"MCP Server initialized with 10 tools (database={db_path})")
    return task_manager


async def serve(transport: str = "stdio", db_path: str = DEFAULT_DATABASE_PATH) -> None:
    """
    Run the MCP server with periodic alert sweeps until it exits.

    Args:
        transport: "stdio" or "sse"
        db_path: Task database path
    """
    task_manager = await setup(db_path)
    alert_scheduler = get_alert_scheduler()
    alert_scheduler.start()

    if transport == "sse":
        logger.info(f"Server will listen on http://{DEFAULT_MCP_HOST}:{DEFAULT_MCP_PORT}")

    try:
        if transport == "stdio":
            await mcp.run_async(transport="stdio")
        else:
            await mcp.run_async(transport="sse", host=DEFAULT_MCP_HOST, port=DEFAULT_MCP_PORT)
    finally:
        await alert_scheduler.stop()
        await get_detection_service().shutdown()
        await task_manager.shutdown()


def cli_entry() -> None:
    """CLI entry point for the MCP server."""
    import sys

    from ..logging_utils import configure_logging

    configure_logging()

    transport_type = "stdio"
    if len(sys.argv) > 1 and sys.argv[1] in ("stdio", "sse", "http"):
        transport_type = "sse" if sys.argv[1] == "http" else sys.argv[1]

    try:
        asyncio.run(serve(transport_type))
    except KeyboardInterrupt:
        logger.info("MCP Server stopped")


if __name__ == "__main__":
    cli_entry()
