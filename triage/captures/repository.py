"""Repository for capture CRUD operations."""

import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import aiosqlite
import structlog

from ..exceptions import CaptureNotFoundError
from ..storage.database import DatabaseManager, to_db_datetime
from .models import Capture, CaptureStatus

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]


class CaptureRepository:
    """Capture data access.

    Write methods accept an optional connection so several writes can share
    one transaction; without one they commit on their own.
    """

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def create(self, capture: Capture, conn: Conn = None) -> None:
        """Insert a new capture."""
        async with self.db.transaction(conn) as c:
            await c.execute(
                """
                INSERT INTO captures (
                    id, content, status, container, retry_count, last_error,
                    last_failed_at, extracted_time, suggested_priority, summary,
                    related_capture_ids_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    capture.id,
                    capture.content,
                    capture.status.value,
                    capture.container.value if capture.container else None,
                    capture.retry_count,
                    capture.last_error,
                    to_db_datetime(capture.last_failed_at),
                    to_db_datetime(capture.extracted_time),
                    capture.suggested_priority.value,
                    capture.summary,
                    json.dumps(capture.related_capture_ids),
                    to_db_datetime(capture.created_at),
                    to_db_datetime(capture.updated_at),
                ),
            )
        logger.info("Created capture", capture_id=capture.id)

    async def save(self, capture: Capture, conn: Conn = None) -> None:
        """Persist every mutable field of an existing capture.

        Raises:
            CaptureNotFoundError: If the capture was deleted in the meantime.
        """
        capture.updated_at = datetime.now(timezone.utc)
        async with self.db.transaction(conn) as c:
            cursor = await c.execute(
                """
                UPDATE captures
                SET content = ?, status = ?, container = ?, retry_count = ?,
                    last_error = ?, last_failed_at = ?, extracted_time = ?,
                    suggested_priority = ?, summary = ?,
                    related_capture_ids_json = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    capture.content,
                    capture.status.value,
                    capture.container.value if capture.container else None,
                    capture.retry_count,
                    capture.last_error,
                    to_db_datetime(capture.last_failed_at),
                    to_db_datetime(capture.extracted_time),
                    capture.suggested_priority.value,
                    capture.summary,
                    json.dumps(capture.related_capture_ids),
                    to_db_datetime(capture.updated_at),
                    capture.id,
                ),
            )
            if cursor.rowcount == 0:
                raise CaptureNotFoundError(capture.id)

    async def get(self, capture_id: str, conn: Conn = None) -> Optional[Capture]:
        """Get a capture by ID."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                "SELECT * FROM captures WHERE id = ?", (capture_id,)
            )
            row = await cursor.fetchone()
            return Capture.from_row(row) if row else None

    async def get_many(
        self, capture_ids: Iterable[str], conn: Conn = None
    ) -> List[Capture]:
        """Get the captures that still exist among ``capture_ids``."""
        ids = list(dict.fromkeys(capture_ids))
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                f"SELECT * FROM captures WHERE id IN ({placeholders}) "
                "ORDER BY created_at ASC, rowid ASC",
                ids,
            )
            rows = await cursor.fetchall()
            return [Capture.from_row(row) for row in rows]

    async def list_all(self, conn: Conn = None) -> List[Capture]:
        """All captures, oldest first."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                "SELECT * FROM captures ORDER BY created_at ASC, rowid ASC"
            )
            rows = await cursor.fetchall()
            return [Capture.from_row(row) for row in rows]

    async def list_pending(self, max_retries: int, conn: Conn = None) -> List[Capture]:
        """Pending captures with retry budget left, oldest first."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                """
                SELECT * FROM captures
                WHERE status = ? AND retry_count < ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (CaptureStatus.PENDING.value, max_retries),
            )
            rows = await cursor.fetchall()
            return [Capture.from_row(row) for row in rows]

    async def list_by_status(
        self, status: CaptureStatus, conn: Conn = None
    ) -> List[Capture]:
        """Captures in a given status, oldest first."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                "SELECT * FROM captures WHERE status = ? "
                "ORDER BY created_at ASC, rowid ASC",
                (status.value,),
            )
            rows = await cursor.fetchall()
            return [Capture.from_row(row) for row in rows]

    async def count_by_status(self, status: CaptureStatus) -> int:
        """Count captures in a given status."""
        async with self.db.get_connection() as c:
            cursor = await c.execute(
                "SELECT COUNT(*) FROM captures WHERE status = ?", (status.value,)
            )
            row = await cursor.fetchone()
            return row[0]

    async def reset_failed(self, conn: Conn = None) -> int:
        """Move every failed capture back to pending with a fresh budget.

        Returns:
            Number of captures reset.
        """
        now = to_db_datetime(datetime.now(timezone.utc))
        async with self.db.transaction(conn) as c:
            cursor = await c.execute(
                """
                UPDATE captures
                SET status = ?, retry_count = 0, last_error = NULL,
                    last_failed_at = NULL, updated_at = ?
                WHERE status = ?
                """,
                (CaptureStatus.PENDING.value, now, CaptureStatus.FAILED.value),
            )
            return cursor.rowcount

    async def fail_exhausted(self, max_retries: int, conn: Conn = None) -> int:
        """Mark pending captures whose retry count reached the budget as failed.

        Only happens when the budget was lowered after they were counted.

        Returns:
            Number of captures moved to failed.
        """
        now = to_db_datetime(datetime.now(timezone.utc))
        async with self.db.transaction(conn) as c:
            cursor = await c.execute(
                """
                UPDATE captures
                SET status = ?, updated_at = ?
                WHERE status = ? AND retry_count >= ?
                """,
                (
                    CaptureStatus.FAILED.value,
                    now,
                    CaptureStatus.PENDING.value,
                    max_retries,
                ),
            )
            return cursor.rowcount

    async def delete(self, capture_id: str, conn: Conn = None) -> None:
        """Delete a capture.

        Spawned entities and other captures' related ids are left alone.
        """
        async with self.db.transaction(conn) as c:
            await c.execute("DELETE FROM captures WHERE id = ?", (capture_id,))
        logger.info("Deleted capture", capture_id=capture_id)
