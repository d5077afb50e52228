"""
Thin chat-completion wrapper shared by the report generator and draft writer.

Also holds the helpers that turn a model reply into a JSON object: models
regularly wrap JSON in prose or emit trailing commas and smart quotes.
"""

import json
import logging
import re
from typing import Any

from .config import GenerationConfig

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The language model call failed or returned nothing usable."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def extract_json_object(raw: str) -> str:
    """Return the first '{' .. last '}' block of a reply, or '' if there is none."""
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return ""
    return raw[start:end + 1]


def repair_json(json_like: str) -> str:
    """Fix BOMs, smart quotes and trailing commas."""
    text = json_like.replace("\ufeff", "")
    text = text.replace("\u201c", '"').replace("\u201d", '"')
    text = text.replace("\u2018", "'").replace("\u2019", "'")
    return re.sub(r",\s*([}\]])", r"\1", text)


def parse_model_json(raw: str) -> dict[str, Any]:
    """
    Parse a model reply into a dict.

    Raises:
        GenerationError: If no JSON object can be recovered
    """
    if not raw or not raw.strip():
        raise GenerationError("Language model returned an empty response", raw)

    block = extract_json_object(raw)
    if not block:
        raise GenerationError("Could not find JSON in model output", raw)

    try:
        parsed = json.loads(repair_json(block))
    except json.JSONDecodeError as e:
        raise GenerationError(f"Failed to parse JSON after repair: {e}", raw) from e

    if not isinstance(parsed, dict):
        raise GenerationError("Model output is not a JSON object", raw)
    return parsed


class ChatClient:
    """Single-prompt completion against OpenAI or Anthropic (async clients)."""

    def __init__(self, config: GenerationConfig):
        """Initialize with configuration."""
        self.config = config

        if config.llm_provider == "claude":
            import anthropic
            self._errors = (anthropic.AnthropicError,)
            self.client = anthropic.AsyncAnthropic(
                api_key=config.api_key,
                max_retries=config.max_retries,
                timeout=config.timeout,
            )
        elif config.llm_provider == "openai":
            import openai
            self._errors = (openai.OpenAIError,)
            self.client = openai.AsyncOpenAI(
                api_key=config.api_key,
                max_retries=config.max_retries,
                timeout=config.timeout,
            )
        else:
            raise ValueError(f"Unsupported LLM provider: {config.llm_provider}")

    async def complete(self, prompt: str, temperature: float) -> str:
        """Send one user prompt and return the reply text."""
        try:
            if self.config.llm_provider == "claude":
                response = await self.client.messages.create(
                    model=self.config.llm_model,
                    max_tokens=2048,
                    temperature=temperature,
                    messages=[{"role": "user", "content": prompt}],
                )
                text = response.content[0].text if response.content else ""
            else:  # openai
                response = await self.client.chat.completions.create(
                    model=self.config.llm_model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                )
                text = response.choices[0].message.content or ""
        except self._errors as e:
            logger.error(f"{self.config.llm_provider} request failed: {e}")
            raise GenerationError(f"Language model request failed: {e}") from e

        return text.strip()
