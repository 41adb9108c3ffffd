"""Capture lifecycle events published by the queue scheduler."""

from dataclasses import dataclass
from typing import Optional

from .bus import Event


@dataclass
class CaptureConfirmedEvent(Event):
    """A capture was converted into a typed entity."""

    capture_id: str = ""
    container: str = ""
    entity_id: str = ""
    manual: bool = False
    source: str = "queue"


@dataclass
class CaptureFailedEvent(Event):
    """A capture ran out of retries or hit a non-retryable error."""

    capture_id: str = ""
    retry_count: int = 0
    last_error: Optional[str] = None
    source: str = "queue"


@dataclass
class QueueSweepCompletedEvent(Event):
    """One pass over the eligible captures finished."""

    processed: int = 0
    confirmed: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False
    source: str = "queue"
