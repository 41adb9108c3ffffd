"""OpenAI-compatible classifier client.

Uses the openai SDK, which also speaks to DashScope's compatible mode and
other OpenAI-style vendors.
"""

import time
from typing import Optional

import openai
import structlog
from openai import AsyncOpenAI

from ..exceptions import (
    ClassifierRejectedError,
    ConfigurationMissingError,
    InvalidResponseError,
    NetworkUnavailableError,
)
from .interface import ChatResponse

logger = structlog.get_logger()


class ChatProvider:
    """OpenAI-compatible chat provider used as the classifier client."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str],
        base_url: Optional[str] = None,
    ) -> None:
        self.model = model
        self.client: Optional[AsyncOpenAI] = (
            AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
            if api_key
            else None
        )

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.0,
    ) -> ChatResponse:
        """Send chat completion request."""
        if self.client is None:
            raise ConfigurationMissingError("API key")

        used_model = model or self.model
        start = time.monotonic()

        try:
            response = await self.client.chat.completions.create(
                model=used_model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (openai.APIConnectionError, openai.RateLimitError) as exc:
            # APITimeoutError is a subclass of APIConnectionError
            raise NetworkUnavailableError(str(exc)) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise ConfigurationMissingError("valid API key") from exc
        except openai.APIStatusError as exc:
            if exc.status_code >= 500:
                raise NetworkUnavailableError(str(exc)) from exc
            raise ClassifierRejectedError(str(exc), status_code=exc.status_code) from exc

        duration_ms = int((time.monotonic() - start) * 1000)
        if not response.choices:
            raise InvalidResponseError("Classifier returned no choices")

        choice = response.choices[0]
        usage = response.usage

        return ChatResponse(
            content=choice.message.content or "",
            model=response.model or used_model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            duration_ms=duration_ms,
        )

    async def classify(self, system_prompt: str, user_text: str) -> str:
        """Deterministic classification call returning the raw reply."""
        response = await self.chat(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_text},
            ],
            temperature=0.0,
        )
        logger.debug(
            "Classifier replied",
            model=response.model,
            duration_ms=response.duration_ms,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        if not response.content.strip():
            raise InvalidResponseError("Classifier returned empty content")
        return response.content
