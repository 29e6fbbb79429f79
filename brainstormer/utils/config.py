"""Application configuration."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from .env and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    generator_backend: Literal["openai", "ollama"] = "openai"
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    ollama_url: str = Field(
        default="http://localhost:11434",
        validation_alias=AliasChoices("OLLAMA_URL", "OLLAMA_HOST"),
    )
    ollama_model: str = "deepseek-r1:1.5b"
    generator_timeout: float = 120.0

    board_context_limit: int = 4000
    user_text_limit: int = 2000
    label_preview_chars: int = 40
    chat_history_tail: int = 6
    classify_chat_intent: bool = True


settings = Settings()
