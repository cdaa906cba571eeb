"""OpenAI-compatible provider using openai SDK with native async.

Serves OpenAI itself and any compatible endpoint (xAI Grok) via `base_url`.
"""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from dialectic.models import Generation
from dialectic.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI or OpenAI-compatible provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(self, prompt: str, timeout: float | None = None) -> Generation:
        start = time.monotonic()
        limit = timeout or self._config.timeout_sec
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=self._config.max_tokens,
                ),
                timeout=limit,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {limit:g}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.debug("OpenAI-compatible call (%s): %.2fs, %s tokens", self._config.name, latency, token_count)

        return Generation(
            provider=self._config.name,
            model=self._config.model,
            text=choice.message.content,
            latency_sec=latency,
            token_count=token_count,
        )
