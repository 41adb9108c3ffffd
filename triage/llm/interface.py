"""Classifier client interface and shared types.

Defines the Protocol the classification engine talks to, decoupling it from
any specific model SDK.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class ChatResponse:
    """Response from a chat completion."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int
    duration_ms: int


class ClassifierClient(Protocol):
    """Protocol for the remote classification model.

    Implementations raise errors from ``triage.exceptions``:
    ConfigurationMissingError, NetworkUnavailableError,
    ClassifierRejectedError or InvalidResponseError.
    """

    @property
    def is_configured(self) -> bool:
        """Whether a credential is present; must not touch the network."""
        ...

    async def classify(self, system_prompt: str, user_text: str) -> str:
        """Send one classification request and return the raw model text.

        Args:
            system_prompt: Instruction describing containers and output shape.
            user_text: The capture content.

        Returns:
            The model's reply, expected to be a JSON object.
        """
        ...
