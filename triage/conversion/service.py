"""Conversion of classified captures into calendar events, todos and notes."""

from datetime import datetime
from typing import List, Optional, Union

import aiosqlite
import structlog

from ..captures.models import Capture, ContainerType, utcnow
from ..captures.repository import CaptureRepository
from ..classification.models import Classification
from ..entities.models import CalendarEvent, Note, TodoItem, TypedEntity
from ..entities.repository import EntityRepository
from ..exceptions import CaptureNotFoundError
from ..memory.manager import PreferenceMemory
from ..storage.database import DatabaseManager
from .associations import AssociationBuilder

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]


class ConversionEngine:
    """Materialises typed entities and resolves their captures.

    At most one entity exists per (capture, container) pair: converting a
    capture into a container it already produced returns that entity. Errors
    propagate to the caller, which owns the retry policy.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        captures: CaptureRepository,
        entities: EntityRepository,
        memory: PreferenceMemory,
        associations: Optional[AssociationBuilder] = None,
    ) -> None:
        self.db = db_manager
        self._captures = captures
        self._entities = entities
        self._memory = memory
        self._associations = associations

    async def auto_convert(
        self, capture: Capture, classification: Classification, conn: Conn = None
    ) -> TypedEntity:
        """Apply a fresh classification to a capture.

        Learning, the memory adjustment, entity creation, association links
        and the capture update commit together.
        """
        async with self.db.transaction(conn) as c:
            await self._memory.learn_from_content(capture.content, c, capture.id)
            adjusted = await self._memory.adjust(capture.content, classification, c)

            capture.extracted_time = adjusted.extracted_time
            capture.suggested_priority = adjusted.suggested_priority
            capture.summary = adjusted.summary or None

            entity = await self._materialize(
                capture, adjusted.container, c, start_time=adjusted.extracted_time
            )

            if self._associations is not None:
                await self._associations.establish(capture, c)

            await self._captures.save(capture, c)

        logger.info(
            "Capture converted",
            capture_id=capture.id,
            container=adjusted.container.value,
            entity_id=entity.id,
            adjusted=adjusted != classification,
        )
        return entity

    async def manual_convert(
        self,
        capture: Union[Capture, str],
        new_container: ContainerType,
        conn: Conn = None,
    ) -> TypedEntity:
        """Move a capture into ``new_container`` on the user's request.

        The correction is recorded in preference memory before converting.

        Raises:
            CaptureNotFoundError: If the capture no longer exists.
        """
        capture_id = capture if isinstance(capture, str) else capture.id

        async with self.db.transaction(conn) as c:
            current = await self._captures.get(capture_id, c)
            if current is None:
                raise CaptureNotFoundError(capture_id)

            original = current.container
            if original is not None and original != new_container:
                await self._memory.record_correction(
                    current.content,
                    original,
                    new_container,
                    conn=c,
                    source_capture_id=current.id,
                )

            entity = await self._materialize(
                current, new_container, c, start_time=current.extracted_time
            )
            current.clear_failure()
            await self._captures.save(current, c)

        if not isinstance(capture, str):
            capture.status = current.status
            capture.container = current.container
            capture.retry_count = current.retry_count
            capture.last_error = current.last_error

        logger.info(
            "Capture manually converted",
            capture_id=capture_id,
            from_container=original.value if original else None,
            to_container=new_container.value,
            entity_id=entity.id,
        )
        return entity

    async def convert_to_calendar(
        self,
        capture: Capture,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        is_all_day: bool = False,
        conn: Conn = None,
    ) -> CalendarEvent:
        """Create (or return the existing) calendar event for a capture."""
        async with self.db.transaction(conn) as c:
            event = await self._materialize(
                capture,
                ContainerType.CALENDAR,
                c,
                start_time=start_time,
                end_time=end_time,
                is_all_day=is_all_day,
            )
            await self._captures.save(capture, c)
        return event

    async def convert_to_todo(
        self, capture: Capture, due_date: Optional[datetime] = None, conn: Conn = None
    ) -> TodoItem:
        """Create (or return the existing) todo item for a capture."""
        async with self.db.transaction(conn) as c:
            todo = await self._materialize(
                capture, ContainerType.TODO, c, start_time=due_date
            )
            await self._captures.save(capture, c)
        return todo

    async def convert_to_note(self, capture: Capture, conn: Conn = None) -> Note:
        """Create (or return the existing) note for a capture."""
        async with self.db.transaction(conn) as c:
            note = await self._materialize(capture, ContainerType.NOTE, c)
            await self._captures.save(capture, c)
        return note

    async def related_captures(self, capture: Capture) -> List[Capture]:
        """Captures linked to ``capture`` that still exist."""
        if self._associations is None:
            return []
        return await self._associations.related_captures(capture)

    async def _materialize(
        self,
        capture: Capture,
        container: ContainerType,
        conn: aiosqlite.Connection,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        is_all_day: bool = False,
    ) -> TypedEntity:
        """Create the entity for ``container`` unless the capture has one.

        Marks the capture confirmed; saving it is left to the caller.
        """
        existing = await self._entities.get_for_capture(container, capture.id, conn)
        if existing is not None:
            logger.info(
                "Entity already exists for capture",
                capture_id=capture.id,
                container=container.value,
                entity_id=existing.id,
            )
            capture.mark_confirmed(container)
            return existing

        title = capture.summary or capture.title_fallback
        entity: TypedEntity
        if container is ContainerType.CALENDAR:
            entity = CalendarEvent(
                title=title,
                description=capture.content,
                start_time=start_time or utcnow(),
                end_time=end_time,
                is_all_day=is_all_day,
                priority=capture.suggested_priority,
                capture_item_id=capture.id,
            )
        elif container is ContainerType.TODO:
            entity = TodoItem(
                title=title,
                description=capture.content,
                priority=capture.suggested_priority,
                due_date=start_time,
                capture_item_id=capture.id,
            )
        else:
            entity = Note(
                content=capture.content,
                title=capture.summary,
                capture_item_id=capture.id,
            )

        await self._entities.create(entity, conn)
        capture.mark_confirmed(container)
        return entity
