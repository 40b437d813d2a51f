"""Gemini backend using google-genai SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import types as genai_types

from config.config_loader import BackendConfig
from arena.providers.base import BackendError, ChatMessage, StreamingBackend, split_system

logger = logging.getLogger(__name__)


def to_contents(turns: list[ChatMessage]) -> list[genai_types.Content]:
    """Gemini calls the assistant side "model"."""
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in turns
    ]


class GeminiBackend(StreamingBackend):
    """Google Gemini backend via google-genai SDK."""

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.id, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    async def stream(self, messages: list[ChatMessage], max_tokens: int | None = None) -> AsyncIterator[str]:
        system, turns = split_system(messages)
        start = time.monotonic()
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=to_contents(turns),
                config=genai_types.GenerateContentConfig(
                    system_instruction=system or None,
                    max_output_tokens=max_tokens or self._config.max_tokens,
                    temperature=self._config.temperature,
                ),
            )
        except Exception as exc:
            raise BackendError(self._config.id, f"API call failed: {exc}") from exc

        chars = 0
        iterator = response.__aiter__()
        while True:
            try:
                chunk = await self._next_fragment(iterator)
            except StopAsyncIteration:
                break
            if chunk.text:
                chars += len(chunk.text)
                yield chunk.text

        logger.info("Gemini %s: %.2fs, %d chars", self._config.model, time.monotonic() - start, chars)
