from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Generation providers (optional — empty string means not configured)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""  # Optional OpenAI-compatible proxy URL
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"

    # Static priority list, comma-separated. The local fallback always runs last.
    provider_order: str = "openai,anthropic,gemini"
    provider_timeout_seconds: float = 10.0
    generation_temperature: float = 0.7
    generation_max_tokens: int = 1000

    # Quota table override (optional — empty string means built-in defaults)
    quota_policies_path: str = ""
    rate_limit_fail_open: bool = False
    rate_limit_sweep_seconds: int = 60  # 0 disables the sweeper

    # Interaction audit store
    audit_db_path: str = "coaching_audit.db"
    terms_version: str = "1.0"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
