"""OpenAI-compatible chat-completion backends (OpenRouter, OpenAI) via openai SDK."""

import logging
import os
import time
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

from config.config_loader import BackendConfig
from arena.providers.base import BackendError, ChatMessage, StreamingBackend

logger = logging.getLogger(__name__)

_THINKING_MARKERS = (
    "thinking",
    "gemini-2.5",
    "gemini-3",
    "deepseek-r1",
    "o3",
    "step-3.5",
    "glm-4.5",
    "gpt-oss",
)


def is_thinking_model(model: str) -> bool:
    return any(marker in model for marker in _THINKING_MARKERS)


class OpenAICompatibleBackend(StreamingBackend):
    """Generic chat-completion backend, parameterized by backend identity."""

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise BackendError(config.id, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.base_url,
            default_headers=self._default_headers() or None,
        )

    def _default_headers(self) -> dict[str, str]:
        return dict(self._config.headers)

    def _extra_body(self, max_tokens: int) -> dict | None:
        return None

    async def stream(self, messages: list[ChatMessage], max_tokens: int | None = None) -> AsyncIterator[str]:
        budget = max_tokens or self._config.max_tokens
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=budget,
                temperature=self._config.temperature,
                stream=True,
                timeout=self._config.timeout_sec,
                extra_body=self._extra_body(budget),
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
            choice = chunk.choices[0] if chunk.choices else None
            content = choice.delta.content if choice and choice.delta else None
            if content:
                chars += len(content)
                yield content

        logger.info(
            "%s: %.2fs, %d chars",
            self._config.id,
            time.monotonic() - start,
            chars,
        )


class OpenRouterBackend(OpenAICompatibleBackend):
    """OpenRouter rotation member: attribution headers and a reasoning budget."""

    def _default_headers(self) -> dict[str, str]:
        headers = {
            "HTTP-Referer": os.environ.get("SITE_URL", "http://localhost:8000"),
            "X-Title": "Debate Arena",
        }
        headers.update(self._config.headers)
        return headers

    def _extra_body(self, max_tokens: int) -> dict | None:
        if is_thinking_model(self._config.model):
            return {"reasoning": {"max_tokens": int(max_tokens * 0.4)}}
        return None
