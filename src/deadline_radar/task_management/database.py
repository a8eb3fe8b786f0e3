"""Database layer for task storage using SQLite."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite

from deadline_radar.task_management.config import SCHEMA_VERSION
from deadline_radar.task_management.exceptions import (
    DatabaseError,
    InvalidStatusTransitionError,
    StoreConflictError,
    StoreUnavailableError,
    TaskNotFoundError,
)
from deadline_radar.task_management.interfaces import TaskStore
from deadline_radar.task_management.models import Task, TaskPriority, TaskStatus

# Columns a caller may change through update()
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "deadline",
        "priority",
        "status",
        "tags",
        "context",
        "source_url",
        "completed_at",
    }
)


def _to_column(value: Any) -> Any:
    """Convert a Task field value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list | tuple | set):
        return json.dumps(list(value))
    return value


class TaskDatabase(TaskStore):
    """SQLite task store with a version token for compare-and-swap writes."""

    def __init__(self, db_path: str, wal_mode: bool = True) -> None:
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (use ":memory:" for in-memory)
            wal_mode: Enable WAL mode for concurrent access
        """
        self.db_path = db_path
        self.wal_mode = wal_mode
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema and connection."""
        if self._connection is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
                self._connection = await aiosqlite.connect(self.db_path)
            except (aiosqlite.Error, OSError) as e:
                raise StoreUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
            self._connection.row_factory = aiosqlite.Row

            # WAL is not supported for in-memory databases
            if self.wal_mode and self.db_path != ":memory:":
                await self._connection.execute("PRAGMA journal_mode=WAL")

        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database schema with tables and indexes."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            current_version = result[0] if result and result[0] is not None else 0

            if current_version < SCHEMA_VERSION:
                await self._apply_migrations(conn, current_version)

            await conn.commit()

    async def _apply_migrations(
        self, conn: aiosqlite.Connection, from_version: int
    ) -> None:
        """
        Apply database migrations.

        Args:
            conn: Database connection
            from_version: Current schema version
        """
        if from_version < 1:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    deadline TIMESTAMP NOT NULL,
                    priority TEXT NOT NULL,
                    status TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    source_url TEXT,
                    source_ref TEXT,
                    page_title TEXT,
                    context TEXT NOT NULL DEFAULT '',
                    source TEXT NOT NULL,
                    detected_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    completed_at TIMESTAMP
                )
                """
            )

            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_deadline ON tasks(deadline)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_source_url ON tasks(source_url)"
            )

            # No foreign key so history survives deletion
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    action TEXT NOT NULL,
                    field_name TEXT,
                    old_value TEXT,
                    new_value TEXT,
                    source TEXT NOT NULL
                )
                """
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_history_task_id ON task_history(task_id)"
            )

            # Single-row collection version, bumped on every write
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS store_meta (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version INTEGER NOT NULL
                )
                """
            )
            await conn.execute(
                "INSERT OR IGNORE INTO store_meta (id, version) VALUES (1, 0)"
            )

            await conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Get database connection context manager.

        Yields:
            Database connection

        Raises:
            StoreUnavailableError: If connection is not initialized
        """
        if self._connection is None:
            raise StoreUnavailableError("Database not initialized")
        yield self._connection

    async def get_schema_version(self) -> int:
        """Get current schema version."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            result = await cursor.fetchone()
            return result[0] if result and result[0] is not None else 0

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def get_version(self) -> int:
        """Get the collection version token."""
        async with self._get_connection() as conn:
            return await self._read_version(conn)

    async def _read_version(self, conn: aiosqlite.Connection) -> int:
        cursor = await conn.execute("SELECT version FROM store_meta WHERE id = 1")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def _bump_version(self, conn: aiosqlite.Connection) -> int:
        await conn.execute("UPDATE store_meta SET version = version + 1 WHERE id = 1")
        return await self._read_version(conn)

    async def get_all(self) -> list[Task]:
        """Get every stored task, ordered by deadline."""
        return await self.list_tasks()

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        """
        List tasks with an optional status filter.

        Args:
            status: Filter by status

        Returns:
            Tasks ordered by deadline
        """
        query = "SELECT * FROM tasks"
        params: list[Any] = []

        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value if isinstance(status, TaskStatus) else status)

        query += " ORDER BY deadline ASC"

        async with self._get_connection() as conn:
            try:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
            except aiosqlite.OperationalError as e:
                raise StoreUnavailableError(f"Failed to read tasks: {e}") from e
            return [self._row_to_task(row) for row in rows]

    async def get_task(self, task_id: str) -> Task:
        """
        Get a task by ID.

        Raises:
            TaskNotFoundError: If task not found
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = await cursor.fetchone()

            if row is None:
                raise TaskNotFoundError(f"Task with ID {task_id} not found")

            return self._row_to_task(row)

    async def put(self, task: Task, expected_version: int | None = None) -> int:
        """
        Insert a new task.

        With ``expected_version`` the check and the insert run in one
        immediate transaction, so a concurrent writer cannot slip in
        between.

        Args:
            task: Task to insert
            expected_version: Version the caller last read

        Returns:
            New collection version

        Raises:
            StoreConflictError: If the collection changed since it was read
            DatabaseError: If the task already exists or insertion fails
        """
        async with self._write_lock, self._get_connection() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                current_version = await self._read_version(conn)
                if expected_version is not None and current_version != expected_version:
                    raise StoreConflictError(
                        f"Store version is {current_version}, expected {expected_version}"
                    )

                await conn.execute(
                    """
                    INSERT INTO tasks (
                        id, title, description, deadline, priority, status, tags,
                        source_url, source_ref, page_title, context, source,
                        detected_at, created_at, updated_at, completed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task.id,
                        task.title,
                        task.description,
                        task.deadline.isoformat(),
                        task.priority.value,
                        task.status.value,
                        json.dumps(task.tags),
                        task.source_url,
                        task.source_ref,
                        task.page_title,
                        task.context,
                        task.source,
                        task.detected_at.isoformat(),
                        task.created_at.isoformat(),
                        task.updated_at.isoformat(),
                        task.completed_at.isoformat() if task.completed_at else None,
                    ),
                )
                await self._add_history(conn, task.id, "created", source=task.source)
                new_version = await self._bump_version(conn)
                await conn.commit()
                return new_version
            except StoreConflictError:
                await conn.rollback()
                raise
            except aiosqlite.IntegrityError as e:
                await conn.rollback()
                raise DatabaseError(f"Task with ID {task.id} already exists") from e
            except aiosqlite.OperationalError as e:
                await conn.rollback()
                raise StoreUnavailableError(f"Failed to insert task: {e}") from e
            except aiosqlite.Error as e:
                await conn.rollback()
                raise DatabaseError(f"Failed to insert task: {e}") from e

    async def update(self, task_id: str, updates: dict[str, Any]) -> None:
        """
        Update task fields.

        Args:
            task_id: Task ID
            updates: Field names and new values

        Raises:
            TaskNotFoundError: If task not found
            DatabaseError: If a field cannot be updated
        """
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise DatabaseError(f"Cannot update fields: {sorted(unknown)}")

        async with self._write_lock:
            current_task = await self.get_task(task_id)
            now = datetime.now()

            set_clauses = ["updated_at = ?"]
            params: list[Any] = [now.isoformat()]
            for field, value in updates.items():
                set_clauses.append(f"{field} = ?")
                params.append(_to_column(value))
            params.append(task_id)

            async with self._get_connection() as conn:
                await conn.execute(
                    f"UPDATE tasks SET {', '.join(set_clauses)} WHERE id = ?", params
                )

                for field, new_value in updates.items():
                    old_value = getattr(current_task, field, None)
                    await self._add_history(
                        conn,
                        task_id,
                        "field_updated",
                        field_name=field,
                        old_value=_to_column(old_value),
                        new_value=_to_column(new_value),
                    )

                await self._bump_version(conn)
                await conn.commit()

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        check_transition: Callable[[TaskStatus, TaskStatus], None],
        completed_at: datetime | None = None,
    ) -> bool:
        """
        Change a task's status if its current status allows it.

        The read, the check and the write happen under the write lock, and
        the UPDATE is conditional on the status read, so a writer in
        another process cannot slip a change in between.

        Args:
            task_id: Task ID
            status: New status
            check_transition: Raises if the current status forbids the change
            completed_at: Completion time to record with the change

        Returns:
            False if the task already had ``status``, True otherwise

        Raises:
            TaskNotFoundError: If task not found
            InvalidStatusTransitionError: If the current status forbids it
        """
        async with self._write_lock:
            current_task = await self.get_task(task_id)
            if current_task.status == status:
                return False
            check_transition(current_task.status, status)

            async with self._get_connection() as conn:
                cursor = await conn.execute(
                    """
                    UPDATE tasks SET status = ?, completed_at = ?, updated_at = ?
                    WHERE id = ? AND status = ?
                    """,
                    (
                        status.value,
                        _to_column(completed_at or current_task.completed_at),
                        datetime.now().isoformat(),
                        task_id,
                        current_task.status.value,
                    ),
                )
                if cursor.rowcount == 0:
                    await conn.rollback()
                    raise InvalidStatusTransitionError(
                        f"Status of task {task_id} changed during the update"
                    )

                await self._add_history(
                    conn,
                    task_id,
                    "field_updated",
                    field_name="status",
                    old_value=current_task.status.value,
                    new_value=status.value,
                )
                await self._bump_version(conn)
                await conn.commit()
                return True

    async def delete(self, task_id: str) -> None:
        """
        Delete a task.

        Raises:
            TaskNotFoundError: If task not found
        """
        async with self._write_lock:
            await self.get_task(task_id)

            async with self._get_connection() as conn:
                await self._add_history(conn, task_id, "deleted")
                await conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
                await self._bump_version(conn)
                await conn.commit()

    async def cache_priority(self, task_id: str, priority: TaskPriority) -> None:
        """
        Overwrite the cached priority of a task.

        Priority is derived data, so this write records no history and
        leaves updated_at and the collection version unchanged.
        """
        async with self._write_lock, self._get_connection() as conn:
            await conn.execute(
                "UPDATE tasks SET priority = ? WHERE id = ?", (priority.value, task_id)
            )
            await conn.commit()

    async def get_task_history(self, task_id: str) -> list[dict[str, Any]]:
        """
        Get task history.

        Returns:
            History entries, oldest first
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                SELECT timestamp, action, field_name, old_value, new_value, source
                FROM task_history
                WHERE task_id = ?
                ORDER BY id ASC
                """,
                (task_id,),
            )
            rows = await cursor.fetchall()

            return [
                {
                    "timestamp": row[0],
                    "action": row[1],
                    "field_name": row[2],
                    "old_value": row[3],
                    "new_value": row[4],
                    "source": row[5],
                }
                for row in rows
            ]

    async def _add_history(
        self,
        conn: aiosqlite.Connection,
        task_id: str,
        action: str,
        field_name: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        source: str = "system",
    ) -> None:
        await conn.execute(
            """
            INSERT INTO task_history (
                task_id, timestamp, action, field_name, old_value, new_value, source
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                datetime.now().isoformat(),
                action,
                field_name,
                None if old_value is None else str(old_value),
                None if new_value is None else str(new_value),
                source,
            ),
        )

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """Convert database row to Task object."""
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            deadline=datetime.fromisoformat(row["deadline"]),
            priority=TaskPriority(row["priority"]),
            status=TaskStatus(row["status"]),
            context=row["context"],
            detected_at=datetime.fromisoformat(row["detected_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            source=row["source"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            source_url=row["source_url"],
            source_ref=row["source_ref"],
            page_title=row["page_title"],
            completed_at=(
                datetime.fromisoformat(row["completed_at"])
                if row["completed_at"]
                else None
            ),
        )
