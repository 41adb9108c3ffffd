"""Repository for calendar events, todo items and notes."""

import json
from typing import Dict, List, Optional, Type

import aiosqlite
import structlog

from ..captures.models import ContainerType
from ..storage.database import DatabaseManager, to_db_datetime
from .models import CalendarEvent, Note, TodoItem, TypedEntity

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]

_TABLES: Dict[ContainerType, str] = {
    ContainerType.CALENDAR: "calendar_events",
    ContainerType.TODO: "todo_items",
    ContainerType.NOTE: "notes",
}

_MODELS: Dict[ContainerType, Type[TypedEntity]] = {
    ContainerType.CALENDAR: CalendarEvent,
    ContainerType.TODO: TodoItem,
    ContainerType.NOTE: Note,
}


class EntityRepository:
    """Typed entity data access, one table per container."""

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager

    async def create(self, entity: TypedEntity, conn: Conn = None) -> None:
        """Insert a typed entity.

        The ``capture_item_id`` column is UNIQUE per table, so a second
        entity of the same kind for the same capture fails with StorageError.
        """
        async with self.db.transaction(conn) as c:
            if isinstance(entity, CalendarEvent):
                await c.execute(
                    """
                    INSERT INTO calendar_events (
                        id, title, description, start_time, end_time,
                        is_all_day, priority, is_completed, capture_item_id,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entity.id,
                        entity.title,
                        entity.description,
                        to_db_datetime(entity.start_time),
                        to_db_datetime(entity.end_time),
                        int(entity.is_all_day),
                        entity.priority.value,
                        int(entity.is_completed),
                        entity.capture_item_id,
                        to_db_datetime(entity.created_at),
                        to_db_datetime(entity.updated_at),
                    ),
                )
            elif isinstance(entity, TodoItem):
                await c.execute(
                    """
                    INSERT INTO todo_items (
                        id, title, description, priority, is_completed,
                        completed_at, due_date, capture_item_id,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entity.id,
                        entity.title,
                        entity.description,
                        entity.priority.value,
                        int(entity.is_completed),
                        to_db_datetime(entity.completed_at),
                        to_db_datetime(entity.due_date),
                        entity.capture_item_id,
                        to_db_datetime(entity.created_at),
                        to_db_datetime(entity.updated_at),
                    ),
                )
            elif isinstance(entity, Note):
                await c.execute(
                    """
                    INSERT INTO notes (
                        id, content, title, tags_json, capture_item_id,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entity.id,
                        entity.content,
                        entity.title,
                        json.dumps(entity.tags),
                        entity.capture_item_id,
                        to_db_datetime(entity.created_at),
                        to_db_datetime(entity.updated_at),
                    ),
                )
            else:
                raise TypeError(f"Unsupported entity type: {type(entity).__name__}")

        logger.info(
            "Created entity",
            container=entity.container.value,
            entity_id=entity.id,
            capture_id=entity.capture_item_id,
        )

    async def get_for_capture(
        self, container: ContainerType, capture_id: str, conn: Conn = None
    ) -> Optional[TypedEntity]:
        """The entity of the given kind spawned by a capture, if any."""
        table = _TABLES[container]
        async with self.db.get_connection(conn) as c:
            cursor = await c.execute(
                f"SELECT * FROM {table} WHERE capture_item_id = ?", (capture_id,)
            )
            row = await cursor.fetchone()
            return _MODELS[container].from_row(row) if row else None

    async def list_for_capture(
        self, capture_id: str, conn: Conn = None
    ) -> List[TypedEntity]:
        """Every entity spawned by a capture, across all containers."""
        entities: List[TypedEntity] = []
        for container in ContainerType:
            entity = await self.get_for_capture(container, capture_id, conn)
            if entity is not None:
                entities.append(entity)
        return entities

    async def list_by_container(self, container: ContainerType) -> List[TypedEntity]:
        """All entities of one kind, oldest first."""
        table = _TABLES[container]
        async with self.db.get_connection() as c:
            cursor = await c.execute(
                f"SELECT * FROM {table} ORDER BY created_at ASC, rowid ASC"
            )
            rows = await cursor.fetchall()
            return [_MODELS[container].from_row(row) for row in rows]
