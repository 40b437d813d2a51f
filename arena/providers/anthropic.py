"""Anthropic Claude backend using anthropic SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from config.config_loader import BackendConfig
from arena.providers.base import BackendError, ChatMessage, StreamingBackend, split_system

logger = logging.getLogger(__name__)


class AnthropicBackend(StreamingBackend):
    """Anthropic Claude backend via anthropic SDK."""

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.id, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def stream(self, messages: list[ChatMessage], max_tokens: int | None = None) -> AsyncIterator[str]:
        system, turns = split_system(messages)
        start = time.monotonic()
        chars = 0
        try:
            async with self._client.messages.stream(
                model=self._config.model,
                max_tokens=max_tokens or self._config.max_tokens,
                temperature=self._config.temperature,
                system=system,
                messages=turns,
            ) as response:
                iterator = response.text_stream.__aiter__()
                while True:
                    try:
                        text = await self._next_fragment(iterator)
                    except StopAsyncIteration:
                        break
                    if text:
                        chars += len(text)
                        yield text
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(self._config.id, f"API call failed: {exc}") from exc

        logger.info("Anthropic %s: %.2fs, %d chars", self._config.model, time.monotonic() - start, chars)
