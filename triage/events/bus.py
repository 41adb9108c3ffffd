"""In-process asynchronous event bus.

Publishers enqueue events; a single dispatcher task delivers each event to
the handlers subscribed to its type (or a base type of it).
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Type

import structlog

logger = structlog.get_logger()


@dataclass
class Event:
    """Base event."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"

    @property
    def event_type(self) -> str:
        return type(self).__name__


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Queue-backed publish/subscribe."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[Event], List[EventHandler]] = {}
        self._queue: "asyncio.Queue[Event]" = asyncio.Queue()
        self._dispatcher: Optional[asyncio.Task] = None
        self._running = False

    def subscribe(self, event_type: Type[Event], handler: EventHandler) -> None:
        """Register ``handler`` for ``event_type`` and its subclasses."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(
            "Handler subscribed",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
        )

    async def publish(self, event: Event) -> None:
        """Enqueue an event for delivery."""
        await self._queue.put(event)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        logger.info("Event bus started")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None
        logger.info("Event bus stopped")

    async def _dispatch_loop(self) -> None:
        while self._running:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        handlers = [
            handler
            for event_type, registered in self._handlers.items()
            if isinstance(event, event_type)
            for handler in registered
        ]
        for handler in handlers:
            try:
                await handler(event)
            except Exception as exc:
                # One failing subscriber must not starve the others
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.id,
                    error=str(exc),
                )
