"""Tests for the backoff schedule and eligibility."""

from datetime import datetime, timedelta, timezone

import pytest

from triage.captures.models import Capture, CaptureStatus
from triage.queue.backoff import compute_backoff, is_due, next_attempt_at

FAILED_AT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestComputeBackoff:
    def test_schedule(self):
        """Test delays double from 5s and cap at 60s."""
        delays = [compute_backoff(n, base=5, cap=60) for n in range(5)]
        assert delays == [5, 10, 20, 40, 60]

    def test_defaults(self):
        assert compute_backoff(0) == 5
        assert compute_backoff(10) == 60

    def test_huge_retry_count_stays_capped(self):
        assert compute_backoff(10_000) == 60

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            compute_backoff(-1)


class TestEligibility:
    def test_fresh_capture_is_due(self):
        assert is_due(Capture(content="x"), max_retries=5)
        assert next_attempt_at(Capture(content="x")) is None

    def test_waits_out_its_own_window(self):
        """Test the window after the n-th failure is compute_backoff(n - 1)."""
        capture = Capture(content="x", retry_count=3, last_failed_at=FAILED_AT)

        assert next_attempt_at(capture) == FAILED_AT + timedelta(seconds=20)
        assert not is_due(capture, 5, now=FAILED_AT + timedelta(seconds=19))
        assert is_due(capture, 5, now=FAILED_AT + timedelta(seconds=20))

    def test_spent_budget_never_due(self):
        capture = Capture(content="x", retry_count=5, last_failed_at=FAILED_AT)
        assert not is_due(capture, 5, now=FAILED_AT + timedelta(days=1))

    def test_non_pending_never_due(self):
        capture = Capture(content="x", status=CaptureStatus.FAILED)
        assert not is_due(capture, 5)
