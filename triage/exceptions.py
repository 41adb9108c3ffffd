"""Error taxonomy for the capture triage pipeline.

Every error carries a ``retryable`` flag read by the queue scheduler when it
turns a failed attempt into a retry count update or a terminal failure.
"""

from typing import Optional


class TriageError(Exception):
    """Base error for the triage core."""

    retryable: bool = True

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class ConfigurationMissingError(TriageError):
    """Required configuration (usually the API credential) is absent."""

    retryable = False

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Configuration missing: {key}")


class ClassificationError(TriageError):
    """A single classification attempt failed."""


class InvalidResponseError(ClassificationError):
    """The classifier answered, but not with a usable structured payload."""

    def __init__(self, message: str = "Invalid classifier response") -> None:
        super().__init__(message)


class NetworkUnavailableError(ClassificationError):
    """Transport-level failure talking to the classifier."""

    def __init__(self, message: str = "Network unavailable") -> None:
        super().__init__(message)


class ClassifierTimeoutError(NetworkUnavailableError):
    """The classifier did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Classifier timed out after {timeout_seconds:g}s")


class ClassifierRejectedError(ClassificationError):
    """The remote service refused the request; repeating it will not help."""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StorageError(TriageError):
    """Persistence failure surfaced by the storage layer."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Storage error: {message}")


class CaptureNotFoundError(TriageError):
    """An entry point was given an id that does not exist."""

    retryable = False

    def __init__(self, capture_id: str) -> None:
        self.capture_id = capture_id
        super().__init__(f"Capture {capture_id} not found")
