"""Classifier client factory.

Creates the ClassifierClient the engine uses, based on application settings.
"""

import structlog

from ..config.settings import Settings
from .chat_provider import ChatProvider
from .interface import ClassifierClient

logger = structlog.get_logger()


def create_classifier_client(settings: Settings) -> ClassifierClient:
    """Create the classifier client for the configured vendor.

    A missing API key still yields a client; it reports itself unconfigured
    so the scheduler can skip sweeps instead of failing items.
    """
    api_key = settings.openai_api_key_str
    if not api_key:
        logger.warning("No classifier API key configured", model=settings.llm_model)

    return ChatProvider(
        model=settings.llm_model,
        api_key=api_key,
        base_url=settings.llm_base_url,
    )
