"""Backend registry: builds the available backends from config, keyed by sdk."""

import logging

from config.config_loader import AppConfig
from arena.providers.anthropic import AnthropicBackend
from arena.providers.base import BackendError, StreamingBackend
from arena.providers.gemini import GeminiBackend
from arena.providers.openai_compat import OpenAICompatibleBackend, OpenRouterBackend
from arena.providers.perplexity import PerplexityBackend

logger = logging.getLogger(__name__)

BACKEND_CLASSES: dict[str, type[StreamingBackend]] = {
    "perplexity": PerplexityBackend,
    "openrouter": OpenRouterBackend,
    "openai": OpenAICompatibleBackend,
    "anthropic": AnthropicBackend,
    "gemini": GeminiBackend,
}


def build_backends(config: AppConfig) -> list[StreamingBackend]:
    """Build every available backend, preserving roster order."""
    backends: list[StreamingBackend] = []
    for cfg in config.backends:
        if cfg.id not in config.available_backends:
            continue
        try:
            backends.append(BACKEND_CLASSES[cfg.sdk](cfg))
        except Exception as exc:
            logger.warning("Failed to instantiate backend '%s': %s", cfg.id, exc)
    return backends


__all__ = ["BACKEND_CLASSES", "BackendError", "StreamingBackend", "build_backends"]
