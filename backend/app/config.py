"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Language model
    openai_api_key: SecretStr | None = None
    openai_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1500
    llm_history_messages: int = 12

    # Proposal defaults
    default_chapter_title: str = "New Chapter"
    default_task_title: str = "New Task"
    default_reply_text: str = "I've prepared some proposed changes for your review."

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
