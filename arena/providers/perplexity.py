"""Perplexity Sonar: the web-search-augmented backend (OpenAI-compatible API)."""

from config.config_loader import BackendConfig
from arena.providers.base import BackendError
from arena.providers.openai_compat import OpenAICompatibleBackend

_DEFAULT_BASE_URL = "https://api.perplexity.ai"


class PerplexityBackend(OpenAICompatibleBackend):
    """Live web retrieval happens server-side; the contract is unchanged."""

    def __init__(self, config: BackendConfig) -> None:
        if config.type != "web_search":
            raise BackendError(config.id, "Perplexity backend must be configured with type: web_search")
        if not config.base_url:
            config.base_url = _DEFAULT_BASE_URL
        super().__init__(config)
