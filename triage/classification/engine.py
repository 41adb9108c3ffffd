"""ClassificationEngine -- one classifier round-trip per call.

Builds the system prompt, sends exactly one request through the classifier
client and parses the structured reply. Retrying is the queue scheduler's
job, never the engine's.
"""

import asyncio
import json
import re
from datetime import datetime
from typing import Any, Optional

import structlog

from ..captures.models import ContainerType, Priority
from ..exceptions import (
    ClassifierTimeoutError,
    ConfigurationMissingError,
    InvalidResponseError,
)
from ..llm.interface import ClassifierClient
from .models import Classification
from .prompts import build_system_prompt

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0

REQUIRED_FIELDS = ("container", "suggestedPriority", "summary")

# ```json ... ``` wrappers some models put around the object
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S | re.I)


def _strip_fence(raw: str) -> str:
    text = raw.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_time(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date-time carrying a UTC offset.

    Anything unparseable means no time. So does a value without an offset,
    since every stored timestamp is timezone-aware.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("Ignoring unparseable extracted time", value=value)
        return None
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        logger.debug("Ignoring extracted time without offset", value=value)
        return None
    return parsed


def parse_classification(raw: str) -> Classification:
    """Turn the classifier's reply into a Classification.

    Raises:
        InvalidResponseError: If the reply is not a JSON object or a required
            field is missing or not a string.
    """
    try:
        data = json.loads(_strip_fence(raw))
    except json.JSONDecodeError as exc:
        raise InvalidResponseError(f"Classifier reply is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise InvalidResponseError("Classifier reply is not a JSON object")

    for field in REQUIRED_FIELDS:
        if not isinstance(data.get(field), str):
            raise InvalidResponseError(f"Classifier reply lacks '{field}'")

    try:
        container = ContainerType(data["container"].strip().lower())
    except ValueError:
        container = ContainerType.NOTE

    try:
        priority = Priority(data["suggestedPriority"].strip().lower())
    except ValueError:
        priority = Priority.NORMAL

    confidence = data.get("confidence")
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
        confidence = None

    return Classification(
        container=container,
        extracted_time=parse_time(data.get("extractedTime")),
        suggested_priority=priority,
        summary=data["summary"].strip(),
        confidence=confidence,
    )


class ClassificationEngine:
    """Classifies capture text through the remote model."""

    def __init__(
        self,
        client: ClassifierClient,
        memory: Any = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._memory = memory
        self._timeout = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    async def classify(
        self, text: str, context: Optional[str] = None
    ) -> Classification:
        """Classify ``text``, optionally guided by a memory context block.

        Raises:
            ConfigurationMissingError: No credential configured.
            ClassifierTimeoutError: No reply within the timeout.
            NetworkUnavailableError: Transport failure.
            ClassifierRejectedError: The service refused the request.
            InvalidResponseError: Unusable reply.
        """
        if not self._client.is_configured:
            raise ConfigurationMissingError("API key")

        system_prompt = build_system_prompt(context)

        try:
            raw = await asyncio.wait_for(
                self._client.classify(system_prompt, text), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise ClassifierTimeoutError(self._timeout) from exc

        classification = parse_classification(raw)
        logger.info(
            "Text classified",
            container=classification.container.value,
            priority=classification.suggested_priority.value,
            has_time=classification.extracted_time is not None,
            with_context=context is not None,
        )
        return classification

    async def classify_with_memory(self, text: str) -> Classification:
        """Classify ``text`` with context assembled from preference memory."""
        context = await self._memory.build_context(text) if self._memory else None
        return await self.classify(text, context)
