"""Tests for the classifier client factory."""

from unittest.mock import patch

from triage.config.settings import Settings
from triage.llm.chat_provider import ChatProvider
from triage.llm.factory import create_classifier_client


class TestCreateClassifierClient:
    def test_configured_client(self):
        """Test a key yields a configured ChatProvider on the settings' model."""
        settings = Settings(openai_api_key="sk-test", llm_model="qwen-max")
        with patch("triage.llm.chat_provider.AsyncOpenAI"):
            client = create_classifier_client(settings)

        assert isinstance(client, ChatProvider)
        assert client.is_configured
        assert client.model == "qwen-max"

    def test_missing_key_yields_unconfigured_client(self, monkeypatch):
        """Test no key still yields a client, reporting itself unconfigured."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("DASHSCOPE_API_KEY", raising=False)
        settings = Settings(_env_file=None)

        client = create_classifier_client(settings)
        assert client.is_configured is False
