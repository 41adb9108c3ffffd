"""QueueScheduler -- drives pending captures through classification.

One background loop sweeps the capture store on a fixed interval. A sweep
classifies eligible captures one at a time, oldest first, converting each
success and recording each failure with its own backoff window. Sweeps are
single-flight: a sweep requested while another runs returns at once.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Set, Tuple

import structlog

from ..captures.models import Capture, CaptureStatus, ContainerType, utcnow
from ..captures.repository import CaptureRepository
from ..classification.engine import ClassificationEngine
from ..conversion.service import ConversionEngine
from ..entities.models import TypedEntity
from ..events.bus import EventBus
from ..events.types import (
    CaptureConfirmedEvent,
    CaptureFailedEvent,
    QueueSweepCompletedEvent,
)
from ..exceptions import (
    CaptureNotFoundError,
    ConfigurationMissingError,
    StorageError,
    TriageError,
)
from ..storage.database import DatabaseManager
from .backoff import is_due, next_attempt_at

logger = structlog.get_logger()

# Per-item outcomes
CONFIRMED = "confirmed"
RETRY_SCHEDULED = "retry_scheduled"
FAILED = "failed"
DISCARDED = "discarded"


@dataclass
class SweepResult:
    """Tally of one sweep."""

    processed: int = 0
    confirmed: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False


class QueueScheduler:
    """Background classification queue.

    Responsibilities:
    - Poll the capture store on a fixed interval
    - Keep at most one sweep running at a time
    - Respect each capture's backoff window
    - Turn per-item errors into retry counts and failed states
    - Publish capture lifecycle events
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        captures: CaptureRepository,
        engine: ClassificationEngine,
        conversion: ConversionEngine,
        settings: Any,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.db = db_manager
        self._captures = captures
        self._engine = engine
        self._conversion = conversion
        self._settings = settings
        self._event_bus = event_bus
        self._is_processing = False
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._sweeps: Set[asyncio.Task[Optional[SweepResult]]] = set()

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # --- Loop lifecycle ---

    async def start(self) -> None:
        """Start the polling loop."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run_loop(), name="capture-queue")
        logger.info(
            "Queue scheduler started",
            poll_interval=self._settings.poll_interval_seconds,
            max_retries=self._settings.max_retries,
        )

    async def stop(self) -> None:
        """Stop the polling loop and any out-of-band sweeps."""
        tasks = list(self._sweeps)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
        self._sweeps.clear()
        logger.info("Queue scheduler stopped")

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.process_queue()
            except Exception as exc:
                logger.error("Queue sweep crashed", error=str(exc))
            await asyncio.sleep(self._settings.poll_interval_seconds)

    # --- Entry points ---

    def trigger_immediate_processing(self) -> "asyncio.Task[Optional[SweepResult]]":
        """Start an out-of-band sweep; returns a handle callers may await.

        Used on network restoration. The single-flight guard still applies,
        so the handle resolves to None when a sweep was already running.
        """
        task = asyncio.create_task(self.process_queue(), name="capture-queue-sweep")
        self._sweeps.add(task)
        task.add_done_callback(self._on_sweep_done)
        return task

    def _on_sweep_done(self, task: "asyncio.Task[Optional[SweepResult]]") -> None:
        self._sweeps.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Queue sweep crashed", error=str(exc))

    async def submit(
        self, content: str
    ) -> Tuple[Capture, "asyncio.Task[Optional[SweepResult]]"]:
        """Store a new pending capture and sweep right away."""
        capture = Capture(content=content)
        await self._captures.create(capture)
        return capture, self.trigger_immediate_processing()

    async def retry_failed_items(self) -> "asyncio.Task[Optional[SweepResult]]":
        """Reset every failed capture to pending and sweep right away."""
        count = await self._captures.reset_failed()
        logger.info("Failed captures reset", count=count)
        return self.trigger_immediate_processing()

    async def reclassify(
        self, capture_id: str
    ) -> "asyncio.Task[Optional[SweepResult]]":
        """Send one capture back through classification.

        Raises:
            CaptureNotFoundError: If no capture has this id.
        """
        async with self.db.transaction() as conn:
            capture = await self._captures.get(capture_id, conn)
            if capture is None:
                raise CaptureNotFoundError(capture_id)
            capture.reset_for_retry()
            await self._captures.save(capture, conn)
        logger.info("Capture queued for reclassification", capture_id=capture_id)
        return self.trigger_immediate_processing()

    async def manual_convert(
        self, capture_id: str, new_container: ContainerType
    ) -> TypedEntity:
        """Move a capture into ``new_container`` at the user's request."""
        entity = await self._conversion.manual_convert(capture_id, new_container)
        await self._publish(
            CaptureConfirmedEvent(
                capture_id=capture_id,
                container=new_container.value,
                entity_id=entity.id,
                manual=True,
            )
        )
        return entity

    # --- Sweeping ---

    async def process_queue(self) -> Optional[SweepResult]:
        """Run one sweep unless one is already in progress.

        Returns:
            The sweep tally, or None if another sweep held the guard.
        """
        # No await between the check and the set
        if self._is_processing:
            logger.debug("Sweep already in progress")
            return None
        self._is_processing = True
        try:
            return await self._sweep()
        finally:
            self._is_processing = False

    async def _sweep(self) -> SweepResult:
        result = SweepResult()
        if not self._engine.is_configured:
            logger.debug("Classifier not configured, skipping sweep")
            return result

        settings = self._settings
        exhausted = await self._captures.fail_exhausted(settings.max_retries)
        if exhausted:
            logger.warning("Exhausted pending captures marked failed", count=exhausted)

        now = utcnow()
        pending = await self._captures.list_pending(settings.max_retries)
        eligible = [
            capture
            for capture in pending
            if is_due(
                capture,
                settings.max_retries,
                settings.backoff_base_seconds,
                settings.backoff_cap_seconds,
                now,
            )
        ]
        if not eligible:
            return result

        logger.info("Sweep started", eligible=len(eligible), pending=len(pending))

        for index, capture in enumerate(eligible):
            if index > 0 and settings.inter_item_delay_seconds > 0:
                await asyncio.sleep(settings.inter_item_delay_seconds)

            try:
                outcome = await self._process_item(capture)
            except ConfigurationMissingError as exc:
                logger.warning("Sweep aborted", reason=exc.message)
                result.aborted = True
                break
            except StorageError as exc:
                logger.error(
                    "Storage error, capture left untouched",
                    capture_id=capture.id,
                    error=exc.message,
                )
                result.skipped += 1
                continue

            result.processed += 1
            if outcome == CONFIRMED:
                result.confirmed += 1
            elif outcome == FAILED:
                result.failed += 1
            elif outcome == DISCARDED:
                result.skipped += 1

        logger.info(
            "Sweep finished",
            processed=result.processed,
            confirmed=result.confirmed,
            failed=result.failed,
            skipped=result.skipped,
            aborted=result.aborted,
        )
        await self._publish(
            QueueSweepCompletedEvent(
                processed=result.processed,
                confirmed=result.confirmed,
                failed=result.failed,
                skipped=result.skipped,
                aborted=result.aborted,
            )
        )
        return result

    async def _process_item(self, capture: Capture) -> str:
        """Classify and convert one capture.

        Raises:
            ConfigurationMissingError: Aborts the rest of the sweep.
            StorageError: The capture keeps its pre-attempt state.
        """
        try:
            classification = await self._engine.classify_with_memory(capture.content)
        except (ConfigurationMissingError, StorageError):
            raise
        except TriageError as exc:
            return await self._record_failure(capture.id, exc.message, exc.retryable)
        except Exception as exc:
            logger.error(
                "Unexpected classifier error",
                capture_id=capture.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return await self._record_failure(
                capture.id, str(exc) or type(exc).__name__, True
            )

        try:
            async with self.db.transaction() as conn:
                # A manual action may have resolved the capture meanwhile
                current = await self._captures.get(capture.id, conn)
                if current is None or current.status != CaptureStatus.PENDING:
                    logger.info(
                        "Discarding classification for resolved capture",
                        capture_id=capture.id,
                    )
                    return DISCARDED
                current.clear_failure()
                entity = await self._conversion.auto_convert(
                    current, classification, conn
                )
        except StorageError:
            raise
        except Exception as exc:
            logger.error(
                "Conversion failed",
                capture_id=capture.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return await self._record_failure(
                capture.id, str(exc) or type(exc).__name__, True
            )

        await self._publish(
            CaptureConfirmedEvent(
                capture_id=current.id,
                container=current.container.value if current.container else "",
                entity_id=entity.id,
            )
        )
        return CONFIRMED

    async def _record_failure(self, capture_id: str, error: str, retryable: bool) -> str:
        settings = self._settings
        async with self.db.transaction() as conn:
            current = await self._captures.get(capture_id, conn)
            if current is None or current.status != CaptureStatus.PENDING:
                return DISCARDED
            current.record_failure(error, settings.max_retries, retryable)
            await self._captures.save(current, conn)

        if current.status == CaptureStatus.FAILED:
            logger.warning(
                "Capture failed",
                capture_id=capture_id,
                retry_count=current.retry_count,
                retryable=retryable,
                error=current.last_error,
            )
            await self._publish(
                CaptureFailedEvent(
                    capture_id=capture_id,
                    retry_count=current.retry_count,
                    last_error=current.last_error,
                )
            )
            return FAILED

        due = next_attempt_at(
            current, settings.backoff_base_seconds, settings.backoff_cap_seconds
        )
        logger.info(
            "Classification retry scheduled",
            capture_id=capture_id,
            retry_count=current.retry_count,
            next_attempt_at=due.isoformat() if due else None,
            error=current.last_error,
        )
        return RETRY_SCHEDULED

    async def _publish(self, event: Any) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)
