"""Background classification queue."""

from .backoff import compute_backoff, is_due, next_attempt_at
from .scheduler import QueueScheduler, SweepResult

__all__ = [
    "QueueScheduler",
    "SweepResult",
    "compute_backoff",
    "is_due",
    "next_attempt_at",
]
