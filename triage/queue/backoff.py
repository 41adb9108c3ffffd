"""Per-capture exponential backoff."""

from datetime import datetime, timedelta
from typing import Optional

from ..captures.models import Capture, CaptureStatus, utcnow

DEFAULT_BASE_SECONDS = 5.0
DEFAULT_CAP_SECONDS = 60.0


def compute_backoff(
    retry_count: int,
    base: float = DEFAULT_BASE_SECONDS,
    cap: float = DEFAULT_CAP_SECONDS,
) -> float:
    """Delay in seconds before retry number ``retry_count`` (0-based)."""
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")
    # Clamp the exponent so large counts cannot overflow the float
    return min(base * 2 ** min(retry_count, 32), cap)


def next_attempt_at(
    capture: Capture,
    base: float = DEFAULT_BASE_SECONDS,
    cap: float = DEFAULT_CAP_SECONDS,
) -> Optional[datetime]:
    """When a failed capture becomes eligible again; None means right away."""
    if capture.retry_count == 0 or capture.last_failed_at is None:
        return None
    delay = compute_backoff(capture.retry_count - 1, base, cap)
    return capture.last_failed_at + timedelta(seconds=delay)


def is_due(
    capture: Capture,
    max_retries: int,
    base: float = DEFAULT_BASE_SECONDS,
    cap: float = DEFAULT_CAP_SECONDS,
    now: Optional[datetime] = None,
) -> bool:
    """Whether a sweep should attempt ``capture`` now."""
    if capture.status != CaptureStatus.PENDING or capture.retry_count >= max_retries:
        return False
    due = next_attempt_at(capture, base, cap)
    return due is None or (now or utcnow()) >= due
