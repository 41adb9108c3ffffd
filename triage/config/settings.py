"""Application settings loaded from the environment."""

from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LLM_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"


class Settings(BaseSettings):
    """Runtime configuration for the triage service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Classifier
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "DASHSCOPE_API_KEY", "OPENAI_API_KEY", "openai_api_key"
        ),
    )
    llm_base_url: Optional[str] = Field(
        default=DEFAULT_LLM_BASE_URL,
        validation_alias=AliasChoices("LLM_BASE_URL", "llm_base_url"),
    )
    llm_model: str = Field(
        default="qwen-plus",
        validation_alias=AliasChoices("LLM_MODEL", "llm_model"),
    )
    classifier_timeout_seconds: float = Field(default=30.0, gt=0)

    # Queue
    max_retries: int = Field(default=5, ge=1)
    backoff_base_seconds: float = Field(default=5.0, gt=0)
    backoff_cap_seconds: float = Field(default=60.0, gt=0)
    poll_interval_seconds: float = Field(default=10.0, gt=0)
    inter_item_delay_seconds: float = Field(default=0.5, ge=0)

    # Storage
    database_url: str = "sqlite:///triage.db"

    # Network signal
    network_check_host: str = "1.1.1.1"
    network_check_port: int = 53
    network_check_interval_seconds: float = Field(default=5.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @model_validator(mode="after")
    def _check_backoff(self) -> "Settings":
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_cap_seconds must be >= backoff_base_seconds")
        return self

    @property
    def openai_api_key_str(self) -> Optional[str]:
        """Plain API key, or None when unset or blank."""
        if self.openai_api_key is None:
            return None
        value = self.openai_api_key.get_secret_value().strip()
        return value or None
