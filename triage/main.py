"""Service entry point: wire the components and run the queue.

Usage:
    python -m triage [--once] [--log-level LEVEL]
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

import structlog

from . import __version__
from .captures.repository import CaptureRepository
from .classification.engine import ClassificationEngine
from .config.settings import Settings
from .conversion.associations import AssociationBuilder
from .conversion.service import ConversionEngine
from .entities.repository import EntityRepository
from .events.bus import Event, EventBus
from .events.types import CaptureFailedEvent
from .exceptions import TriageError
from .llm.factory import create_classifier_client
from .memory.manager import PreferenceMemory
from .memory.repository import PreferenceRepository
from .network.monitor import NetworkMonitor
from .queue.scheduler import QueueScheduler
from .storage.database import DatabaseManager

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog and stdlib logging to stderr at ``level``."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


class Application:
    """Constructs the services and owns their lifecycle."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.db = DatabaseManager(settings.database_url)
        self.event_bus = EventBus()

        self.captures = CaptureRepository(self.db)
        self.entities = EntityRepository(self.db)
        self.memory = PreferenceMemory(PreferenceRepository(self.db))
        self.engine = ClassificationEngine(
            create_classifier_client(settings),
            memory=self.memory,
            timeout_seconds=settings.classifier_timeout_seconds,
        )
        self.conversion = ConversionEngine(
            self.db,
            self.captures,
            self.entities,
            self.memory,
            AssociationBuilder(self.captures),
        )
        self.scheduler = QueueScheduler(
            self.db,
            self.captures,
            self.engine,
            self.conversion,
            settings=settings,
            event_bus=self.event_bus,
        )
        self.network = NetworkMonitor(
            host=settings.network_check_host,
            port=settings.network_check_port,
            interval=settings.network_check_interval_seconds,
        )
        self.network.set_restored_callback(self.scheduler.trigger_immediate_processing)
        self.event_bus.subscribe(CaptureFailedEvent, self._report_failure)

    async def start(self) -> None:
        await self.db.initialize()
        await self.event_bus.start()
        await self.scheduler.start()
        await self.network.start()

    async def stop(self) -> None:
        await self.network.stop()
        await self.scheduler.stop()
        await self.event_bus.stop()
        await self.db.close()

    async def _report_failure(self, event: Event) -> None:
        if not isinstance(event, CaptureFailedEvent):
            return
        logger.warning(
            "Capture needs attention",
            capture_id=event.capture_id,
            retry_count=event.retry_count,
            last_error=event.last_error,
        )


async def run(settings: Settings, once: bool = False) -> None:
    """Run until SIGINT/SIGTERM, or for a single sweep with ``once``."""
    app = Application(settings)

    if once:
        await app.db.initialize()
        try:
            result = await app.scheduler.process_queue()
            logger.info("Single sweep done", result=result)
        finally:
            await app.db.close()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops lack signal handlers
            pass

    await app.start()
    logger.info("Capture triage running", version=__version__)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        await app.stop()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="triage",
        description="Classify captured notes into calendar events, todos and notes",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument(
        "--version", action="version", version=f"capture-triage {__version__}"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings()
    configure_logging(args.log_level or settings.log_level, settings.log_json)

    try:
        asyncio.run(run(settings, once=args.once))
    except TriageError as exc:
        logger.error("Fatal error", error=exc.message)
        return 1
    except KeyboardInterrupt:
        pass
    return 0
