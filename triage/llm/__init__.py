"""Remote classification model client."""

from .chat_provider import ChatProvider
from .factory import create_classifier_client
from .interface import ChatResponse, ClassifierClient

__all__ = ["ChatProvider", "ChatResponse", "ClassifierClient", "create_classifier_client"]
