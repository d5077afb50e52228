"""
Settings for the language-model collaborators (report generator, draft writer).
"""

import os
from dataclasses import dataclass
from typing import Optional

# provider -> (default model, API key environment variable)
PROVIDERS = {
    "openai": ("gpt-4o-mini", "OPENAI_API_KEY"),
    "claude": ("claude-3-5-sonnet-20241022", "ANTHROPIC_API_KEY"),
}
MOCK_PROVIDER = "mock"


@dataclass
class GenerationConfig:
    """
    Provider, model and client settings for report and draft generation.

    ``llm_model`` defaults per provider; ``api_key`` falls back to the
    provider's environment variable. The mock provider needs neither.
    """
    llm_provider: str = MOCK_PROVIDER
    llm_model: Optional[str] = None
    api_key: Optional[str] = None
    temperature: float = 0.1
    max_retries: int = 2
    timeout: int = 30

    def __post_init__(self):
        self.llm_provider = (self.llm_provider or MOCK_PROVIDER).strip().lower()
        default_model, key_env = PROVIDERS.get(self.llm_provider, (MOCK_PROVIDER, None))
        self.llm_model = self.llm_model or default_model
        if not self.api_key:
            self.api_key = os.getenv(key_env, "") if key_env else ""

    @property
    def is_mock(self) -> bool:
        return self.llm_provider == MOCK_PROVIDER

    @classmethod
    def from_settings(cls, settings=None) -> "GenerationConfig":
        """Build from application settings (src.utils.config)."""
        if settings is None:
            from ..utils.config import get_settings
            settings = get_settings()

        provider = (settings.llm_provider or MOCK_PROVIDER).lower()
        keys = {"openai": settings.openai_api_key, "claude": settings.anthropic_api_key}
        return cls(
            llm_provider=provider,
            llm_model=settings.llm_model,
            api_key=keys.get(provider),
            temperature=settings.llm_temperature,
        )

    def validate(self) -> bool:
        """True when the provider is known and has the credentials it needs."""
        if self.is_mock:
            return True
        return self.llm_provider in PROVIDERS and bool(self.api_key)
