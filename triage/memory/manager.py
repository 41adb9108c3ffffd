"""Preference memory: learn keyword associations and bias classifications."""

from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite
import structlog

from ..captures.models import ContainerType, Priority
from ..classification.models import Classification
from .keywords import detect_people, detect_projects, extract_keywords
from .models import MemoryKind, PreferenceEntry
from .repository import PreferenceRepository

logger = structlog.get_logger()

Conn = Optional[aiosqlite.Connection]

# Overriding the model outright needs more evidence than hinting at a container
OVERRIDE_USAGE_THRESHOLD = 3
SUGGESTION_USAGE_THRESHOLD = 2
COMMON_KEYWORD_USAGE_THRESHOLD = 3
CONTEXT_LIST_LIMIT = 10


class PreferenceMemory:
    """Manages learned preferences, frequent keywords, people and projects."""

    def __init__(self, repo: PreferenceRepository) -> None:
        self._repo = repo

    @staticmethod
    def extract_keywords(text: str) -> List[str]:
        return extract_keywords(text)

    # --- Matching ---

    async def find_best_match(
        self, text: str, conn: Conn = None
    ) -> Optional[PreferenceEntry]:
        """First active preference whose keyword occurs in ``text``.

        Entries are scanned by descending usage count (ties by insertion
        order); the first hit wins, not the longest keyword.
        """
        for entry in await self._repo.list_active(MemoryKind.PREFERENCE, conn):
            if entry.matches(text):
                return entry
        return None

    async def adjust(
        self, text: str, classification: Classification, conn: Conn = None
    ) -> Classification:
        """Apply the best matching preference to a classification.

        The container is overridden only by well-used entries; a priority
        association always applies. A match counts as a use.
        """
        preference = await self.find_best_match(text, conn)
        if preference is None:
            return classification

        changes: Dict[str, Any] = {}
        if (
            preference.associated_container is not None
            and preference.usage_count >= OVERRIDE_USAGE_THRESHOLD
        ):
            changes["container"] = preference.associated_container
            logger.info(
                "Memory overrides container",
                keyword=preference.keyword,
                original=classification.container.value,
                container=preference.associated_container.value,
                usage_count=preference.usage_count,
            )

        if preference.associated_priority is not None:
            changes["suggested_priority"] = preference.associated_priority

        preference.record_usage()
        await self._repo.save(preference, conn)

        return replace(classification, **changes) if changes else classification

    async def suggested_container(
        self, text: str, conn: Conn = None
    ) -> Optional[ContainerType]:
        """Container hint for the user, from a less proven preference."""
        preference = await self.find_best_match(text, conn)
        if (
            preference is None
            or preference.associated_container is None
            or preference.usage_count < SUGGESTION_USAGE_THRESHOLD
        ):
            return None
        return preference.associated_container

    # --- Learning from corrections ---

    async def record_correction(
        self,
        original_content: str,
        from_container: ContainerType,
        to_container: ContainerType,
        conn: Conn = None,
        source_capture_id: Optional[str] = None,
    ) -> None:
        """Learn from a user moving content between containers.

        For each keyword the association with ``to_container`` is created or
        reinforced, and active associations with any other container
        (``from_container`` included) are deactivated, never deleted.
        """
        if from_container == to_container:
            return

        logger.info(
            "Recording classification correction",
            from_container=from_container.value,
            to_container=to_container.value,
        )

        for keyword in extract_keywords(original_content):
            existing = await self._repo.find_active(
                MemoryKind.PREFERENCE, keyword, container=to_container, conn=conn
            )
            if existing is not None:
                existing.record_usage()
                await self._repo.save(existing, conn)
                logger.debug("Reinforced preference", keyword=keyword)
            else:
                await self._repo.create(
                    PreferenceEntry(
                        kind=MemoryKind.PREFERENCE,
                        keyword=keyword,
                        content=(
                            f'Items mentioning "{keyword}" are usually '
                            f"a {to_container.display_name}"
                        ),
                        associated_container=to_container,
                        source_capture_id=source_capture_id,
                    ),
                    conn,
                )
                logger.debug(
                    "Created preference", keyword=keyword, container=to_container.value
                )

            for entry in await self._repo.list_for_keyword(
                MemoryKind.PREFERENCE, keyword, conn
            ):
                if (
                    entry.is_active
                    and entry.associated_container is not None
                    and entry.associated_container != to_container
                ):
                    entry.deactivate()
                    await self._repo.save(entry, conn)

    async def record_priority_correction(
        self,
        content: str,
        priority: Priority,
        conn: Conn = None,
        source_capture_id: Optional[str] = None,
    ) -> None:
        """Learn a priority preference from a user re-prioritising content."""
        for keyword in extract_keywords(content):
            existing = await self._repo.find_active(
                MemoryKind.PREFERENCE, keyword, priority=priority, conn=conn
            )
            if existing is not None:
                existing.record_usage()
                await self._repo.save(existing, conn)
                continue
            await self._repo.create(
                PreferenceEntry(
                    kind=MemoryKind.PREFERENCE,
                    keyword=keyword,
                    content=(
                        f'Items mentioning "{keyword}" are usually '
                        f"{priority.value} priority"
                    ),
                    associated_priority=priority,
                    source_capture_id=source_capture_id,
                ),
                conn,
            )

    # --- Learning common information ---

    async def learn_from_content(
        self,
        content: str,
        conn: Conn = None,
        source_capture_id: Optional[str] = None,
    ) -> None:
        """Track frequent keywords, people and projects mentioned in content."""
        found: List[Tuple[MemoryKind, str, str]] = []
        for keyword in extract_keywords(content):
            found.append((MemoryKind.KEYWORD, keyword, "Frequently mentioned"))
        for person in detect_people(content):
            found.append((MemoryKind.PERSON, person, "Detected person"))
        for project in detect_projects(content):
            found.append((MemoryKind.CONTEXT, project, "Detected project"))

        for kind, keyword, description in found:
            await self._store_or_reinforce(
                kind, keyword, description, conn, source_capture_id
            )

    async def _store_or_reinforce(
        self,
        kind: MemoryKind,
        keyword: str,
        description: str,
        conn: Conn,
        source_capture_id: Optional[str],
    ) -> None:
        existing = await self._repo.find_active(kind, keyword, conn=conn)
        if existing is not None:
            existing.record_usage()
            await self._repo.save(existing, conn)
            return
        await self._repo.create(
            PreferenceEntry(
                kind=kind,
                keyword=keyword,
                content=description,
                source_capture_id=source_capture_id,
            ),
            conn,
        )

    # --- Context assembly ---

    async def build_context(self, text: str, conn: Conn = None) -> Optional[str]:
        """Build the soft-guidance block appended to the classifier prompt.

        Returns None when there is nothing to say, so callers never send an
        empty augmentation.
        """
        lines: List[str] = []

        keywords = [
            entry.keyword
            for entry in await self._repo.list_active(MemoryKind.KEYWORD, conn)
            if entry.usage_count >= COMMON_KEYWORD_USAGE_THRESHOLD
        ][:CONTEXT_LIST_LIMIT]
        if keywords:
            lines.append(f"Commonly mentioned keywords: {', '.join(keywords)}")

        people = [
            entry.keyword
            for entry in await self._repo.list_active(MemoryKind.PERSON, conn)
        ][:CONTEXT_LIST_LIMIT]
        if people:
            lines.append(f"People the user mentions: {', '.join(people)}")

        projects = [
            entry.keyword
            for entry in await self._repo.list_active(MemoryKind.CONTEXT, conn)
        ][:CONTEXT_LIST_LIMIT]
        if projects:
            lines.append(f"Projects the user works on: {', '.join(projects)}")

        hints = [
            self._format_hint(entry)
            for entry in await self._repo.list_active(MemoryKind.PREFERENCE, conn)
            if entry.matches(text)
        ]
        hints = [hint for hint in hints if hint][:CONTEXT_LIST_LIMIT]
        if hints:
            lines.append("User preferences:")
            lines.extend(f"- {hint}" for hint in hints)

        context = "\n".join(lines).strip()
        return context or None

    @staticmethod
    def _format_hint(entry: PreferenceEntry) -> Optional[str]:
        if entry.associated_container is not None:
            return (
                f'Items mentioning "{entry.keyword}" are usually '
                f"a {entry.associated_container.display_name}."
            )
        if entry.associated_priority is not None:
            return (
                f'Items mentioning "{entry.keyword}" are usually '
                f"{entry.associated_priority.value} priority."
            )
        return None
