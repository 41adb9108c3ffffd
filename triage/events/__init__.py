"""Event bus and capture lifecycle events."""

from .bus import Event, EventBus
from .types import CaptureConfirmedEvent, CaptureFailedEvent, QueueSweepCompletedEvent

__all__ = [
    "CaptureConfirmedEvent",
    "CaptureFailedEvent",
    "Event",
    "EventBus",
    "QueueSweepCompletedEvent",
]
