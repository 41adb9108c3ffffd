"""Tests for QueueScheduler -- sweeps, retries, single-flight and entry points."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from triage.captures.models import Capture, CaptureStatus, ContainerType
from triage.classification.models import Classification
from triage.conversion.associations import AssociationBuilder
from triage.conversion.service import ConversionEngine
from triage.events.types import (
    CaptureConfirmedEvent,
    CaptureFailedEvent,
    QueueSweepCompletedEvent,
)
from triage.exceptions import (
    CaptureNotFoundError,
    ClassifierRejectedError,
    ConfigurationMissingError,
    InvalidResponseError,
    NetworkUnavailableError,
    StorageError,
)
from triage.queue.scheduler import QueueScheduler

BASE_TIME = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)


def _make_settings(**overrides):
    """Create mock settings with queue defaults and no delays."""
    settings = MagicMock()
    settings.max_retries = 5
    settings.backoff_base_seconds = 0.0
    settings.backoff_cap_seconds = 0.0
    settings.poll_interval_seconds = 0.05
    settings.inter_item_delay_seconds = 0.0
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def engine():
    """Create a configured mock classification engine returning a todo."""
    mock = MagicMock()
    mock.is_configured = True
    mock.classify_with_memory = AsyncMock(
        return_value=Classification(container=ContainerType.TODO, summary="task")
    )
    return mock


@pytest.fixture
def event_bus():
    mock = MagicMock()
    mock.publish = AsyncMock()
    return mock


@pytest.fixture
def conversion(db_manager, capture_repo, entity_repo, memory):
    return ConversionEngine(
        db_manager, capture_repo, entity_repo, memory, AssociationBuilder(capture_repo)
    )


@pytest.fixture
def make_scheduler(db_manager, capture_repo, engine, conversion, event_bus):
    def _make(**settings_overrides) -> QueueScheduler:
        return QueueScheduler(
            db_manager,
            capture_repo,
            engine,
            conversion,
            settings=_make_settings(**settings_overrides),
            event_bus=event_bus,
        )

    return _make


async def _add(capture_repo, content: str, minutes: int = 0, **overrides) -> Capture:
    created = BASE_TIME + timedelta(minutes=minutes)
    capture = Capture(content=content, created_at=created, updated_at=created, **overrides)
    await capture_repo.create(capture)
    return capture


def _published(event_bus, event_type):
    return [
        call.args[0]
        for call in event_bus.publish.call_args_list
        if isinstance(call.args[0], event_type)
    ]


class TestProcessQueue:
    async def test_processes_oldest_first(self, make_scheduler, capture_repo, engine):
        """Test eligible captures are classified in creation order."""
        await _add(capture_repo, "third", minutes=20)
        await _add(capture_repo, "first", minutes=0)
        await _add(capture_repo, "second", minutes=10)

        result = await make_scheduler().process_queue()

        calls = [c.args[0] for c in engine.classify_with_memory.call_args_list]
        assert calls == ["first", "second", "third"]
        assert result.confirmed == 3

    async def test_success_confirms_and_publishes(
        self, make_scheduler, capture_repo, entity_repo, event_bus
    ):
        """Test a classified capture is converted and announced."""
        capture = await _add(capture_repo, "call dentist")

        await make_scheduler().process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.CONFIRMED
        assert stored.container == ContainerType.TODO
        assert len(await entity_repo.list_for_capture(capture.id)) == 1

        confirmed = _published(event_bus, CaptureConfirmedEvent)
        assert [e.capture_id for e in confirmed] == [capture.id]
        assert len(_published(event_bus, QueueSweepCompletedEvent)) == 1

    async def test_success_clears_previous_failures(
        self, make_scheduler, capture_repo
    ):
        capture = await _add(
            capture_repo,
            "call dentist",
            retry_count=2,
            last_error="timeout",
            last_failed_at=BASE_TIME,
        )

        await make_scheduler().process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.retry_count == 0
        assert stored.last_error is None

    async def test_unconfigured_is_a_noop(self, make_scheduler, capture_repo, engine):
        """Test nothing is attempted or failed without a credential."""
        engine.is_configured = False
        capture = await _add(capture_repo, "call dentist")

        result = await make_scheduler().process_queue()

        engine.classify_with_memory.assert_not_called()
        assert result.processed == 0
        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.PENDING
        assert stored.retry_count == 0

    async def test_empty_queue(self, make_scheduler, engine, event_bus):
        result = await make_scheduler().process_queue()
        assert result.processed == 0
        engine.classify_with_memory.assert_not_called()
        event_bus.publish.assert_not_called()

    async def test_inter_item_delay(self, make_scheduler, capture_repo, monkeypatch):
        """Test the delay is only inserted between items."""
        await _add(capture_repo, "a", minutes=0)
        await _add(capture_repo, "b", minutes=1)
        sleep = AsyncMock()
        monkeypatch.setattr("triage.queue.scheduler.asyncio.sleep", sleep)

        await make_scheduler(inter_item_delay_seconds=0.5).process_queue()

        sleep.assert_awaited_once_with(0.5)


class TestSingleFlight:
    async def test_second_sweep_returns_immediately(
        self, make_scheduler, capture_repo, engine
    ):
        """Test a sweep requested mid-sweep does not classify anything."""
        await _add(capture_repo, "call dentist")
        started = asyncio.Event()
        release = asyncio.Event()

        async def blocking_classify(text):
            started.set()
            await release.wait()
            return Classification(container=ContainerType.TODO)

        engine.classify_with_memory = AsyncMock(side_effect=blocking_classify)
        scheduler = make_scheduler()

        first = asyncio.create_task(scheduler.process_queue())
        await started.wait()
        assert scheduler.is_processing

        assert await scheduler.process_queue() is None
        immediate = scheduler.trigger_immediate_processing()
        assert await immediate is None
        assert engine.classify_with_memory.await_count == 1

        release.set()
        result = await first
        assert result.confirmed == 1
        assert engine.classify_with_memory.await_count == 1
        assert not scheduler.is_processing

    async def test_guard_released_after_error(self, make_scheduler, capture_repo):
        """Test the flag is cleared even when a sweep raises."""
        scheduler = make_scheduler()
        scheduler._captures = MagicMock()
        scheduler._captures.fail_exhausted = AsyncMock(return_value=0)
        scheduler._captures.list_pending = AsyncMock(side_effect=StorageError("gone"))

        with pytest.raises(StorageError):
            await scheduler.process_queue()
        assert not scheduler.is_processing

    async def test_unawaited_sweep_error_is_logged(self, make_scheduler, monkeypatch):
        """Test a crash in an out-of-band sweep reaches the log."""
        scheduler = make_scheduler()
        scheduler._captures = MagicMock()
        scheduler._captures.fail_exhausted = AsyncMock(return_value=0)
        scheduler._captures.list_pending = AsyncMock(side_effect=StorageError("gone"))
        log = MagicMock()
        monkeypatch.setattr("triage.queue.scheduler.logger", log)

        task = scheduler.trigger_immediate_processing()
        await asyncio.wait({task})
        await asyncio.sleep(0)

        log.error.assert_called_once_with("Queue sweep crashed", error="gone")
        assert task not in scheduler._sweeps


class TestFailures:
    async def test_five_failures_then_retry_all(
        self, make_scheduler, capture_repo, engine, event_bus
    ):
        """Test exhaustion moves to failed and bulk retry recovers."""
        capture = await _add(capture_repo, "call dentist")
        engine.classify_with_memory.side_effect = NetworkUnavailableError()
        scheduler = make_scheduler()

        for _ in range(5):
            await scheduler.process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.FAILED
        assert stored.retry_count == 5
        assert stored.last_error
        assert len(_published(event_bus, CaptureFailedEvent)) == 1

        await scheduler.process_queue()
        assert engine.classify_with_memory.await_count == 5

        engine.classify_with_memory.side_effect = None
        sweep = await scheduler.retry_failed_items()
        result = await sweep

        assert result.confirmed == 1
        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.CONFIRMED
        assert stored.retry_count == 0
        assert stored.last_error is None

    async def test_failure_under_budget_stays_pending(
        self, make_scheduler, capture_repo, engine
    ):
        capture = await _add(capture_repo, "call dentist")
        engine.classify_with_memory.side_effect = InvalidResponseError()

        await make_scheduler().process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.PENDING
        assert stored.retry_count == 1
        assert stored.last_error == "Invalid classifier response"

    async def test_backoff_window_skips_item(self, make_scheduler, capture_repo, engine):
        """Test a freshly failed item is not retried on the next sweep."""
        await _add(capture_repo, "call dentist")
        engine.classify_with_memory.side_effect = NetworkUnavailableError()
        scheduler = make_scheduler(backoff_base_seconds=5.0, backoff_cap_seconds=60.0)

        await scheduler.process_queue()
        await scheduler.process_queue()

        assert engine.classify_with_memory.await_count == 1

    async def test_non_retryable_fails_immediately(
        self, make_scheduler, capture_repo, engine
    ):
        capture = await _add(capture_repo, "call dentist")
        engine.classify_with_memory.side_effect = ClassifierRejectedError(
            "content policy", status_code=400
        )

        result = await make_scheduler().process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.FAILED
        assert stored.retry_count == 1
        assert result.failed == 1

    async def test_unexpected_error_counts_as_retryable(
        self, make_scheduler, capture_repo, engine
    ):
        capture = await _add(capture_repo, "call dentist")
        engine.classify_with_memory.side_effect = RuntimeError("weird")

        await make_scheduler().process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.PENDING
        assert stored.retry_count == 1
        assert stored.last_error == "weird"

    async def test_one_failure_does_not_stop_the_sweep(
        self, make_scheduler, capture_repo, engine
    ):
        """Test later items are still processed after a failing one."""
        first = await _add(capture_repo, "first", minutes=0)
        second = await _add(capture_repo, "second", minutes=1)
        engine.classify_with_memory.side_effect = [
            NetworkUnavailableError(),
            Classification(container=ContainerType.NOTE),
        ]

        await make_scheduler().process_queue()

        assert (await capture_repo.get(first.id)).retry_count == 1
        assert (await capture_repo.get(second.id)).status == CaptureStatus.CONFIRMED

    async def test_configuration_missing_aborts_sweep(
        self, make_scheduler, capture_repo, engine
    ):
        """Test a credential failure stops the sweep and touches nothing."""
        first = await _add(capture_repo, "first", minutes=0)
        await _add(capture_repo, "second", minutes=1)
        engine.classify_with_memory.side_effect = ConfigurationMissingError("API key")

        result = await make_scheduler().process_queue()

        assert result.aborted
        assert engine.classify_with_memory.await_count == 1
        stored = await capture_repo.get(first.id)
        assert stored.status == CaptureStatus.PENDING
        assert stored.retry_count == 0

    async def test_storage_error_leaves_item_untouched(
        self, make_scheduler, capture_repo, engine
    ):
        """Test a storage failure neither counts a retry nor fails the item."""
        first = await _add(capture_repo, "first", minutes=0)
        second = await _add(capture_repo, "second", minutes=1)
        engine.classify_with_memory.side_effect = [
            StorageError("disk full"),
            Classification(container=ContainerType.NOTE),
        ]

        result = await make_scheduler().process_queue()

        stored = await capture_repo.get(first.id)
        assert stored.status == CaptureStatus.PENDING
        assert stored.retry_count == 0
        assert stored.last_error is None
        assert (await capture_repo.get(second.id)).status == CaptureStatus.CONFIRMED
        assert result.skipped == 1


    async def test_lowered_budget_fails_exhausted_items(
        self, make_scheduler, capture_repo, engine
    ):
        """Test items counted under a larger budget do not stay pending."""
        capture = await _add(
            capture_repo, "call dentist", retry_count=4, last_error="Network unavailable"
        )
        scheduler = make_scheduler(max_retries=3)

        await scheduler.process_queue()

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.FAILED
        engine.classify_with_memory.assert_not_called()

        sweep = await scheduler.retry_failed_items()
        result = await sweep
        assert result.confirmed == 1


class TestEntryPoints:
    async def test_classification_discarded_after_manual_convert(
        self, make_scheduler, capture_repo, entity_repo, engine
    ):
        """Test a manual conversion during classification wins."""
        capture = await _add(capture_repo, "call dentist")
        scheduler = make_scheduler()

        async def classify_while_user_acts(text):
            await scheduler.manual_convert(capture.id, ContainerType.NOTE)
            return Classification(container=ContainerType.TODO)

        engine.classify_with_memory = AsyncMock(side_effect=classify_while_user_acts)

        result = await scheduler.process_queue()

        assert result.confirmed == 0
        entities = await entity_repo.list_for_capture(capture.id)
        assert [e.container for e in entities] == [ContainerType.NOTE]

    async def test_reclassify(self, make_scheduler, capture_repo, engine):
        """Test a confirmed capture can be sent back through the queue."""
        capture = await _add(capture_repo, "call dentist")
        scheduler = make_scheduler()
        await scheduler.process_queue()

        engine.classify_with_memory.return_value = Classification(
            container=ContainerType.CALENDAR
        )
        sweep = await scheduler.reclassify(capture.id)
        await sweep

        stored = await capture_repo.get(capture.id)
        assert stored.status == CaptureStatus.CONFIRMED
        assert stored.container == ContainerType.CALENDAR

    async def test_reclassify_unknown(self, make_scheduler):
        with pytest.raises(CaptureNotFoundError):
            await make_scheduler().reclassify("missing")

    async def test_submit(self, make_scheduler, capture_repo):
        """Test a submitted capture is stored and swept right away."""
        capture, sweep = await make_scheduler().submit("buy milk")
        result = await sweep

        assert result.confirmed == 1
        assert (await capture_repo.get(capture.id)).status == CaptureStatus.CONFIRMED

    async def test_manual_convert_publishes(
        self, make_scheduler, capture_repo, event_bus
    ):
        capture = await _add(capture_repo, "call dentist")
        entity = await make_scheduler().manual_convert(capture.id, ContainerType.NOTE)

        events = _published(event_bus, CaptureConfirmedEvent)
        assert events[0].manual is True
        assert events[0].entity_id == entity.id


class TestLoop:
    async def test_start_polls_and_stop_cancels(
        self, make_scheduler, capture_repo, engine
    ):
        """Test the background loop sweeps until stopped."""
        await _add(capture_repo, "call dentist")
        scheduler = make_scheduler()

        await scheduler.start()
        assert scheduler.is_running
        for _ in range(50):
            if engine.classify_with_memory.await_count:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert not scheduler.is_running
        assert engine.classify_with_memory.await_count == 1
