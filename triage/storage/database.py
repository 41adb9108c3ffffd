"""SQLite storage via aiosqlite.

One shared connection serves reads; writes go through ``transaction()``,
which serialises writers with an asyncio lock and commits or rolls back as a
unit. Driver errors never escape this module: they are re-raised as
``StorageError``.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

import aiosqlite
import structlog

from ..exceptions import StorageError

logger = structlog.get_logger()

MIGRATIONS: List[Tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS captures (
            id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            container TEXT,
            retry_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            last_failed_at TEXT,
            extracted_time TEXT,
            suggested_priority TEXT NOT NULL DEFAULT 'normal',
            summary TEXT,
            related_capture_ids_json TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_captures_status_created
            ON captures (status, created_at);

        CREATE TABLE IF NOT EXISTS memory_entries (
            id TEXT PRIMARY KEY,
            kind TEXT NOT NULL,
            keyword TEXT NOT NULL,
            content TEXT NOT NULL DEFAULT '',
            associated_container TEXT,
            associated_priority TEXT,
            usage_count INTEGER NOT NULL DEFAULT 1,
            is_active INTEGER NOT NULL DEFAULT 1,
            source_capture_id TEXT,
            created_at TEXT NOT NULL,
            last_used_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_memory_kind_keyword
            ON memory_entries (kind, keyword);

        CREATE TABLE IF NOT EXISTS calendar_events (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            is_all_day INTEGER NOT NULL DEFAULT 0,
            priority TEXT NOT NULL DEFAULT 'normal',
            is_completed INTEGER NOT NULL DEFAULT 0,
            capture_item_id TEXT UNIQUE,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS todo_items (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT,
            priority TEXT NOT NULL DEFAULT 'normal',
            is_completed INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            due_date TEXT,
            capture_item_id TEXT UNIQUE,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS notes (
            id TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            title TEXT,
            tags_json TEXT NOT NULL DEFAULT '[]',
            capture_item_id TEXT UNIQUE,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """,
    ),
]


def to_db_datetime(value: Optional[datetime]) -> Optional[str]:
    """Datetimes are stored as ISO-8601 text."""
    return value.isoformat() if value is not None else None


def _parse_database_url(database_url: str) -> str:
    """Turn ``sqlite:///path`` into a filesystem path (or ``:memory:``)."""
    prefix = "sqlite:///"
    if database_url.startswith(prefix):
        return database_url[len(prefix):]
    if "://" in database_url:
        raise ValueError(f"Unsupported database URL: {database_url}")
    return database_url


class DatabaseManager:
    """Owns the sqlite connection and the schema."""

    def __init__(self, database_url: str) -> None:
        self.database_path = _parse_database_url(database_url)
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the connection and apply pending migrations."""
        if self._conn is not None:
            return

        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.database_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._apply_migrations(self._conn)
        except (aiosqlite.Error, sqlite3.Error) as exc:
            raise StorageError(str(exc)) from exc

        logger.info("Database initialized", path=self.database_path)

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Database closed", path=self.database_path)

    @asynccontextmanager
    async def get_connection(
        self, conn: Optional[aiosqlite.Connection] = None
    ) -> AsyncIterator[aiosqlite.Connection]:
        """Yield the shared connection for reads (or the caller's, if given)."""
        if conn is None:
            conn = self._require_connection()
        try:
            yield conn
        except (aiosqlite.Error, sqlite3.Error) as exc:
            raise StorageError(str(exc)) from exc

    @asynccontextmanager
    async def transaction(
        self, conn: Optional[aiosqlite.Connection] = None
    ) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block of writes atomically.

        When ``conn`` is given the caller already owns a transaction and the
        block simply joins it; commit and rollback stay with the owner.
        """
        if conn is not None:
            yield conn
            return

        async with self._write_lock:
            own = self._require_connection()
            try:
                yield own
                await own.commit()
            except (aiosqlite.Error, sqlite3.Error) as exc:
                await self._safe_rollback(own)
                raise StorageError(str(exc)) from exc
            except BaseException:
                await self._safe_rollback(own)
                raise

    def _require_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("database is not initialized")
        return self._conn

    async def _safe_rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except (aiosqlite.Error, sqlite3.Error) as exc:
            logger.error("Rollback failed", error=str(exc))

    async def _apply_migrations(self, conn: aiosqlite.Connection) -> None:
        await conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)"
        )
        cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        current = row[0] if row and row[0] is not None else 0

        for version, script in MIGRATIONS:
            if version <= current:
                continue
            await conn.executescript(script)
            await conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            logger.info("Applied migration", version=version)

        await conn.commit()
