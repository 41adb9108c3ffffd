"""Preference memory data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..captures.models import ContainerType, Priority, utcnow


class MemoryKind(str, Enum):
    """What a learned entry is about."""

    PREFERENCE = "preference"  # container or priority bias
    KEYWORD = "keyword"  # frequency tracking
    PERSON = "person"
    CONTEXT = "context"  # project / product names


@dataclass
class PreferenceEntry:
    """A learned keyword association."""

    kind: MemoryKind
    keyword: str
    content: str = ""
    associated_container: Optional[ContainerType] = None
    associated_priority: Optional[Priority] = None
    usage_count: int = 1
    is_active: bool = True
    source_capture_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)
    last_used_at: datetime = field(default_factory=utcnow)

    def record_usage(self) -> None:
        self.usage_count += 1
        self.last_used_at = utcnow()

    def deactivate(self) -> None:
        """Retire the entry; it stays stored as learning history."""
        self.is_active = False

    def matches(self, text: str) -> bool:
        """Case-insensitive substring match of the keyword in ``text``."""
        return bool(self.keyword) and self.keyword.casefold() in text.casefold()

    @classmethod
    def from_row(cls, row: dict) -> "PreferenceEntry":
        """Create from database row."""
        container = row.get("associated_container")
        priority = row.get("associated_priority")
        return cls(
            id=row["id"],
            kind=MemoryKind(row["kind"]),
            keyword=row["keyword"],
            content=row.get("content") or "",
            associated_container=ContainerType(container) if container else None,
            associated_priority=Priority(priority) if priority else None,
            usage_count=row["usage_count"],
            is_active=bool(row["is_active"]),
            source_capture_id=row.get("source_capture_id"),
            created_at=datetime.fromisoformat(row["created_at"]),
            last_used_at=datetime.fromisoformat(row["last_used_at"]),
        )
