"""
Application settings for the claims desk.

Read from environment variables and a .env file in the working directory;
see .env.example for the variable names.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Configuration
    claims_storage_backend: str = Field(
        default="file",
        description="Where the claim collection lives: file, redis or memory",
    )
    claims_data_path: Path = Field(
        default=PROJECT_ROOT / "data" / "claims.json",
        description="JSON snapshot used by the file backend",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the key-value backend",
    )
    claims_kv_key: str = Field(
        default="mic:claims:store:v1",
        description="Key holding the whole claim collection in Redis",
    )
    redis_timeout_seconds: float = Field(
        default=5.0,
        description="Connect/socket timeout for Redis calls",
    )

    # Language Model Configuration
    llm_provider: str = Field(
        default="mock",
        description="Report/draft generator provider (openai, claude, mock)",
    )
    llm_model: Optional[str] = Field(
        default=None,
        description="Override the provider's default model",
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Sampling temperature for report extraction",
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key",
    )
    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key",
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


@lru_cache
def get_settings() -> Settings:
    """
    Settings are read once per process; tests that change the environment
    call get_settings.cache_clear().
    """
    return Settings()


# Convenience access
settings = get_settings()
