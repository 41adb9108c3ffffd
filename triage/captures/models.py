"""Pydantic models for captures and the shared container/priority enums."""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContainerType(str, Enum):
    """Destination kind for a capture."""

    CALENDAR = "calendar"
    TODO = "todo"
    NOTE = "note"

    @property
    def display_name(self) -> str:
        return _CONTAINER_DISPLAY[self]


_CONTAINER_DISPLAY = {
    ContainerType.CALENDAR: "calendar event",
    ContainerType.TODO: "todo",
    ContainerType.NOTE: "note",
}


class Priority(str, Enum):
    IMPORTANT = "important"
    NORMAL = "normal"


class CaptureStatus(str, Enum):
    """Lifecycle of a capture.

    pending -> confirmed is the automatic path; pending -> failed happens when
    retries run out (or on a non-retryable error) and failed -> pending on a
    manual reset. ``classified`` is reserved for a confirmation step that the
    automatic path does not use.
    """

    PENDING = "pending"
    CLASSIFIED = "classified"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Capture(BaseModel):
    """A unit of captured user input."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content: str
    status: CaptureStatus = CaptureStatus.PENDING
    container: Optional[ContainerType] = None
    retry_count: int = Field(default=0, ge=0)
    last_error: Optional[str] = None
    last_failed_at: Optional[datetime] = None
    extracted_time: Optional[datetime] = None
    suggested_priority: Priority = Priority.NORMAL
    summary: Optional[str] = None
    related_capture_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def title_fallback(self) -> str:
        """First 50 characters of the content."""
        return self.content[:50]

    def record_failure(
        self,
        error: str,
        max_retries: int,
        retryable: bool = True,
        now: Optional[datetime] = None,
    ) -> None:
        """Count a failed classification attempt.

        Moves to ``failed`` once the retry budget is spent, or at once for a
        non-retryable error.
        """
        self.retry_count += 1
        self.last_error = error or "Unknown error"
        self.last_failed_at = now or utcnow()
        if not retryable or self.retry_count >= max_retries:
            self.status = CaptureStatus.FAILED

    def clear_failure(self) -> None:
        """Forget previous failures after a successful attempt."""
        self.retry_count = 0
        self.last_error = None
        self.last_failed_at = None

    def reset_for_retry(self) -> None:
        """Put the capture back in the queue with a fresh retry budget."""
        self.clear_failure()
        self.status = CaptureStatus.PENDING

    def mark_confirmed(self, container: ContainerType) -> None:
        self.container = container
        self.status = CaptureStatus.CONFIRMED

    @classmethod
    def from_row(cls, row: Any) -> "Capture":
        """Create from database row."""
        data = dict(row)
        related_raw = data.pop("related_capture_ids_json", "[]")
        data["related_capture_ids"] = json.loads(related_raw) if related_raw else []
        # Datetimes are stored as ISO-8601 text
        for field in ("created_at", "updated_at", "last_failed_at", "extracted_time"):
            val = data.get(field)
            if isinstance(val, str):
                data[field] = datetime.fromisoformat(val) if val else None
        return cls(**data)
