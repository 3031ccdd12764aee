"""MonitoredTaskStore: aiosqlite persistence for monitored tasks and their log items."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import aiosqlite

from schedule_monitor.config import settings
from schedule_monitor.monitor.errors import LocalStoreError
from schedule_monitor.monitor.models import MonitoredTask, TaskLogItem, utc_now

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TASKS_TABLE = """
CREATE TABLE IF NOT EXISTS monitored_scheduled_tasks (
    name TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    cron_expression TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    grace_time_in_minutes INTEGER NOT NULL DEFAULT 5,
    ping_url TEXT,
    registered_on_monitor_at TEXT,
    last_pinged_at TEXT,
    last_started_at TEXT,
    last_finished_at TEXT,
    last_failed_at TEXT,
    last_skipped_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    needs_remote_sync INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_LOG_ITEMS_TABLE = """
CREATE TABLE IF NOT EXISTS monitored_scheduled_task_log_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_name TEXT NOT NULL,
    type TEXT NOT NULL,
    meta TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
)
"""

# Remote checks whose local record is gone but whose remote delete has not succeeded yet.
_CREATE_PENDING_DELETES_TABLE = """
CREATE TABLE IF NOT EXISTS monitored_scheduled_task_pending_deletes (
    name TEXT PRIMARY KEY,
    created_at TEXT NOT NULL
)
"""

_COLUMNS = (
    "name, type, cron_expression, timezone, grace_time_in_minutes, ping_url, "
    "registered_on_monitor_at, last_pinged_at, last_started_at, last_finished_at, "
    "last_failed_at, last_skipped_at, created_at, updated_at, needs_remote_sync"
)

# Lifecycle columns the ping correlator may touch.
_TIMESTAMP_FIELDS = frozenset(
    {
        "last_pinged_at",
        "last_started_at",
        "last_finished_at",
        "last_failed_at",
        "last_skipped_at",
    }
)

_BUSY_TIMEOUT_SECONDS = 5.0


class MonitoredTaskStore:
    """Keyed table of monitored tasks in SQLite.

    Singleton accessed via ``MonitoredTaskStore.get()``.  Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).

    Every call opens its own connection and writes a single statement, so
    concurrent task runs updating different rows never block each other for
    long. Any ``aiosqlite.Error`` is raised as :class:`LocalStoreError`.
    """

    _instance: MonitoredTaskStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> MonitoredTaskStore:
        """Return the shared MonitoredTaskStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path), timeout=_BUSY_TIMEOUT_SECONDS)
        if not self._initialised:
            await db.execute(_CREATE_TASKS_TABLE)
            await db.execute(_CREATE_LOG_ITEMS_TABLE)
            await db.execute(_CREATE_PENDING_DELETES_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def _write(self, sql: str, params: tuple = ()) -> int:
        """Run one write statement and return the affected row count."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(sql, params)
                await db.commit()
                return cursor.rowcount
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"Task store write failed: {exc}"
            raise LocalStoreError(msg) from exc

    async def _fetch(self, sql: str, params: tuple = ()) -> list[Any]:
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(sql, params)
                return list(await cursor.fetchall())
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"Task store read failed: {exc}"
            raise LocalStoreError(msg) from exc

    # -- Tasks -----------------------------------------------------------------

    async def list_tasks(self) -> list[MonitoredTask]:
        """Return all monitored tasks, ordered by name."""
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM monitored_scheduled_tasks ORDER BY name"
        )
        return [MonitoredTask.from_row(row) for row in rows]

    async def get_task(self, name: str) -> MonitoredTask | None:
        """Fetch a task by name, or None if not found."""
        rows = await self._fetch(
            f"SELECT {_COLUMNS} FROM monitored_scheduled_tasks WHERE name = ?",
            (name,),
        )
        return MonitoredTask.from_row(rows[0]) if rows else None

    async def upsert_task(self, task: MonitoredTask) -> MonitoredTask:
        """Insert a task, or replace every column of the row with the same name."""
        task.updated_at = utc_now()
        await self._write(
            f"""
            INSERT INTO monitored_scheduled_tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                type = excluded.type,
                cron_expression = excluded.cron_expression,
                timezone = excluded.timezone,
                grace_time_in_minutes = excluded.grace_time_in_minutes,
                ping_url = excluded.ping_url,
                registered_on_monitor_at = excluded.registered_on_monitor_at,
                last_pinged_at = excluded.last_pinged_at,
                last_started_at = excluded.last_started_at,
                last_finished_at = excluded.last_finished_at,
                last_failed_at = excluded.last_failed_at,
                last_skipped_at = excluded.last_skipped_at,
                updated_at = excluded.updated_at,
                needs_remote_sync = excluded.needs_remote_sync
            """,
            task.to_row(),
        )
        logger.debug("Stored monitored task: %s", task.name)
        return task

    async def update_schedule(self, task: MonitoredTask) -> bool:
        """Write the schedule columns of an existing task.

        Lifecycle timestamps and ``registered_on_monitor_at`` are left alone,
        so events recorded while a reconciliation pass runs are not lost.
        """
        task.updated_at = utc_now()
        updated = await self._write(
            """
            UPDATE monitored_scheduled_tasks SET
                type = ?,
                cron_expression = ?,
                timezone = ?,
                grace_time_in_minutes = ?,
                ping_url = ?,
                needs_remote_sync = ?,
                updated_at = ?
            WHERE name = ?
            """,
            (
                task.type,
                task.cron_expression,
                task.timezone,
                task.grace_time_in_minutes,
                task.ping_url,
                int(task.needs_remote_sync),
                task.updated_at,
                task.name,
            ),
        )
        return updated > 0

    async def delete_task(self, name: str) -> bool:
        """Delete a task and its log items. Returns True if the task row was removed."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    "DELETE FROM monitored_scheduled_tasks WHERE name = ?", (name,)
                )
                deleted = cursor.rowcount > 0
                await db.execute(
                    "DELETE FROM monitored_scheduled_task_log_items WHERE task_name = ?",
                    (name,),
                )
                await db.commit()
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"Task store write failed: {exc}"
            raise LocalStoreError(msg) from exc
        if deleted:
            logger.info("Deleted monitored task: %s", name)
        return deleted

    async def mark_registered(self, name: str, timestamp: str | None = None) -> bool:
        """Stamp ``registered_on_monitor_at`` (default now UTC), clear ``needs_remote_sync``."""
        ts = timestamp or utc_now()
        updated = await self._write(
            "UPDATE monitored_scheduled_tasks "
            "SET registered_on_monitor_at = ?, needs_remote_sync = 0, updated_at = ? "
            "WHERE name = ?",
            (ts, ts, name),
        )
        return updated > 0

    async def touch(self, name: str, *fields: str, timestamp: str | None = None) -> bool:
        """Set one or more lifecycle timestamp columns in a single row update.

        Raises:
            ValueError: If a field is not a lifecycle timestamp column.
        """
        unknown = set(fields) - _TIMESTAMP_FIELDS
        if unknown or not fields:
            msg = f"Not lifecycle timestamp fields: {sorted(unknown) or 'none given'}"
            raise ValueError(msg)
        ts = timestamp or utc_now()
        assignments = ", ".join(f"{column} = ?" for column in fields)
        updated = await self._write(
            f"UPDATE monitored_scheduled_tasks SET {assignments} WHERE name = ?",
            (*([ts] * len(fields)), name),
        )
        return updated > 0

    # -- Pending remote deletes ------------------------------------------------

    async def add_pending_delete(self, name: str) -> None:
        """Remember that the remote check *name* still has to be deleted."""
        await self._write(
            """
            INSERT INTO monitored_scheduled_task_pending_deletes (name, created_at)
            VALUES (?, ?)
            ON CONFLICT(name) DO NOTHING
            """,
            (name, utc_now()),
        )

    async def list_pending_deletes(self) -> list[str]:
        """Names of remote checks waiting for deletion, oldest first."""
        rows = await self._fetch(
            "SELECT name FROM monitored_scheduled_task_pending_deletes "
            "ORDER BY created_at, name"
        )
        return [row[0] for row in rows]

    async def remove_pending_delete(self, name: str) -> bool:
        removed = await self._write(
            "DELETE FROM monitored_scheduled_task_pending_deletes WHERE name = ?", (name,)
        )
        return removed > 0

    # -- Log items -------------------------------------------------------------

    async def add_log_item(self, item: TaskLogItem) -> TaskLogItem:
        """Record a lifecycle event."""
        try:
            db = await self._connect()
            try:
                cursor = await db.execute(
                    """
                    INSERT INTO monitored_scheduled_task_log_items
                        (task_name, type, meta, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (item.task_name, item.type, json.dumps(item.meta), item.created_at),
                )
                await db.commit()
                item.id = cursor.lastrowid
                return item
            finally:
                await db.close()
        except (aiosqlite.Error, OSError) as exc:
            msg = f"Task store write failed: {exc}"
            raise LocalStoreError(msg) from exc

    async def list_log_items(self, task_name: str, limit: int = 20) -> list[TaskLogItem]:
        """Most recent log items of a task, newest first."""
        rows = await self._fetch(
            """
            SELECT id, task_name, type, meta, created_at
            FROM monitored_scheduled_task_log_items
            WHERE task_name = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (task_name, limit),
        )
        return [TaskLogItem.from_row(row) for row in rows]

    async def purge_log_items(self, older_than_days: int | None = None) -> int:
        """Delete log items older than *older_than_days* (default from settings).

        Returns the number of removed items.
        """
        days = older_than_days
        if days is None:
            days = settings.delete_log_items_older_than_days
        cutoff = (datetime.now(UTC) - timedelta(days=days)).isoformat()
        removed = await self._write(
            "DELETE FROM monitored_scheduled_task_log_items WHERE created_at < ?",
            (cutoff,),
        )
        logger.info("Purged %d log item(s) older than %d day(s)", removed, days)
        return removed
