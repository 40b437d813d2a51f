"""Abstract base for all streaming generation backends."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from config.config_loader import BackendConfig

ChatMessage = dict[str, str]


class BackendError(Exception):
    """Raised when a backend call fails."""

    def __init__(self, backend_id: str, message: str) -> None:
        self.backend_id = backend_id
        super().__init__(f"[{backend_id}] {message}")


class StreamingBackend(ABC):
    """One generation capability behind the uniform streaming contract."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config

    def backend_id(self) -> str:
        return self._config.id

    def label(self) -> str:
        return self._config.label

    def kind(self) -> str:
        """Return "web_search" or "generic"."""
        return self._config.type

    def model_string(self) -> str:
        return self._config.model

    @abstractmethod
    def stream(self, messages: list[ChatMessage], max_tokens: int | None = None) -> AsyncIterator[str]:
        """Stream text fragments for the given message sequence.

        Args:
            messages: system/user/assistant messages, strictly alternating after
                the system message.
            max_tokens: Token budget; falls back to the backend's configured one.

        Yields:
            Non-empty text fragments as they arrive.

        Raises:
            BackendError: On API failure, timeout, or invalid response.
        """
        ...

    async def _next_fragment(self, iterator: AsyncIterator, what: str = "fragment"):
        """Await the next item of an SDK stream, bounded by the backend timeout."""
        try:
            return await asyncio.wait_for(iterator.__anext__(), timeout=self._config.timeout_sec)
        except StopAsyncIteration:
            raise
        except TimeoutError as exc:
            raise BackendError(
                self._config.id, f"Timed out after {self._config.timeout_sec}s waiting for {what}"
            ) from exc
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(self._config.id, f"Stream failed: {exc}") from exc


def split_system(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Separate the leading system message for SDKs that take it out-of-band."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    rest = [m for m in messages if m["role"] != "system"]
    return system, rest
