"""Classification result."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..captures.models import ContainerType, Priority


@dataclass(frozen=True)
class Classification:
    """Output of one classification attempt.

    Immutable: adjustments produce a new value via ``dataclasses.replace``.
    ``confidence`` is carried when the model sends it but nothing reads it.
    """

    container: ContainerType
    extracted_time: Optional[datetime] = None
    suggested_priority: Priority = Priority.NORMAL
    summary: str = ""
    confidence: Optional[float] = None

    @classmethod
    def default_todo(cls, summary: str = "") -> "Classification":
        return cls(container=ContainerType.TODO, summary=summary)

    @classmethod
    def default_note(cls, summary: str = "") -> "Classification":
        return cls(container=ContainerType.NOTE, summary=summary)
