"""Typed entities materialised from confirmed captures.

Each entity keeps a soft back-reference (``capture_item_id``) to the capture
that spawned it. Deleting either side never cascades to the other.
"""

import json
import uuid
from datetime import datetime, timedelta
from typing import Any, ClassVar, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..captures.models import ContainerType, Priority, utcnow

DEFAULT_EVENT_DURATION = timedelta(hours=1)
NOTE_TITLE_MAX = 50


def _parse_datetimes(data: dict, *fields: str) -> dict:
    for field in fields:
        val = data.get(field)
        if isinstance(val, str):
            data[field] = datetime.fromisoformat(val) if val else None
    return data


class CalendarEvent(BaseModel):
    """A calendar event."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    is_all_day: bool = False
    priority: Priority = Priority.NORMAL
    is_completed: bool = False
    capture_item_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    container: ClassVar[ContainerType] = ContainerType.CALENDAR

    @model_validator(mode="after")
    def _default_end_time(self) -> "CalendarEvent":
        if self.end_time is None:
            self.end_time = self.start_time + DEFAULT_EVENT_DURATION
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @classmethod
    def from_row(cls, row: Any) -> "CalendarEvent":
        data = _parse_datetimes(
            dict(row), "start_time", "end_time", "created_at", "updated_at"
        )
        data["is_all_day"] = bool(data["is_all_day"])
        data["is_completed"] = bool(data["is_completed"])
        return cls(**data)


class TodoItem(BaseModel):
    """A todo item."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str
    description: Optional[str] = None
    priority: Priority = Priority.NORMAL
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    capture_item_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    container: ClassVar[ContainerType] = ContainerType.TODO

    def mark_completed(self) -> None:
        now = utcnow()
        self.is_completed = True
        self.completed_at = now
        self.updated_at = now

    def mark_incomplete(self) -> None:
        self.is_completed = False
        self.completed_at = None
        self.updated_at = utcnow()

    @classmethod
    def from_row(cls, row: Any) -> "TodoItem":
        data = _parse_datetimes(
            dict(row), "completed_at", "due_date", "created_at", "updated_at"
        )
        data["is_completed"] = bool(data["is_completed"])
        return cls(**data)


class Note(BaseModel):
    """A free-form note."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    content: str
    title: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    capture_item_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    container: ClassVar[ContainerType] = ContainerType.NOTE

    @model_validator(mode="after")
    def _default_title(self) -> "Note":
        if not self.title:
            self.title = self.extract_title(self.content)
        return self

    @staticmethod
    def extract_title(content: str) -> str:
        """First line of the content, shortened to fit a title."""
        first_line = content.splitlines()[0] if content else ""
        if len(first_line) > NOTE_TITLE_MAX:
            return first_line[: NOTE_TITLE_MAX - 3] + "..."
        return first_line

    @classmethod
    def from_row(cls, row: Any) -> "Note":
        data = _parse_datetimes(dict(row), "created_at", "updated_at")
        tags_raw = data.pop("tags_json", "[]")
        data["tags"] = json.loads(tags_raw) if tags_raw else []
        return cls(**data)


TypedEntity = Union[CalendarEvent, TodoItem, Note]
