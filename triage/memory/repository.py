"""Repository for learned memory entries."""

from typing import List, Optional

import aiosqlite
import structlog

from ..captures.models import ContainerType, Priority
from ..storage.database import DatabaseManager, to_db_datetime
from .models import MemoryKind, PreferenceEntry

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]


class PreferenceRepository:
    """Memory entry data access."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def create(self, entry: PreferenceEntry, conn: Conn = None) -> None:
        """Insert a new entry."""
        async with self.db.transaction(conn) as c:
            await c.execute(
                """
                INSERT INTO memory_entries (
                    id, kind, keyword, content, associated_container,
                    associated_priority, usage_count, is_active,
                    source_capture_id, created_at, last_used_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.kind.value,
                    entry.keyword,
                    entry.content,
                    entry.associated_container.value
                    if entry.associated_container
                    else None,
                    entry.associated_priority.value
                    if entry.associated_priority
                    else None,
                    entry.usage_count,
                    int(entry.is_active),
                    entry.source_capture_id,
                    to_db_datetime(entry.created_at),
                    to_db_datetime(entry.last_used_at),
                ),
            )

    async def save(self, entry: PreferenceEntry, conn: Conn = None) -> None:
        """Persist usage and activation changes."""
        async with self.db.transaction(conn) as c:
            await c.execute(
                """
                UPDATE memory_entries
                SET content = ?, usage_count = ?, is_active = ?, last_used_at = ?
                WHERE id = ?
                """,
                (
                    entry.content,
                    entry.usage_count,
                    int(entry.is_active),
                    to_db_datetime(entry.last_used_at),
                    entry.id,
                ),
            )

    async def list_active(
        self, kind: MemoryKind, conn: Conn = None
    ) -> List[PreferenceEntry]:
        """Active entries of one kind, most used first, then oldest first."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                """
                SELECT * FROM memory_entries
                WHERE kind = ? AND is_active = 1
                ORDER BY usage_count DESC, created_at ASC, rowid ASC
                """,
                (kind.value,),
            )
            rows = await cursor.fetchall()
            return [PreferenceEntry.from_row(dict(row)) for row in rows]

    async def list_for_keyword(
        self, kind: MemoryKind, keyword: str, conn: Conn = None
    ) -> List[PreferenceEntry]:
        """Every entry (active or not) of one kind for an exact keyword."""
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                """
                SELECT * FROM memory_entries
                WHERE kind = ? AND keyword = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (kind.value, keyword),
            )
            rows = await cursor.fetchall()
            return [PreferenceEntry.from_row(dict(row)) for row in rows]

    async def find_active(
        self,
        kind: MemoryKind,
        keyword: str,
        container: Optional[ContainerType] = None,
        priority: Optional[Priority] = None,
        conn: Conn = None,
    ) -> Optional[PreferenceEntry]:
        """First active entry for a keyword, optionally with a given association."""
        for entry in await self.list_for_keyword(kind, keyword, conn):
            if not entry.is_active:
                continue
            if container is not None and entry.associated_container != container:
                continue
            if priority is not None and entry.associated_priority != priority:
                continue
            return entry
        return None
