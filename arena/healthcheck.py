"""Backend health checks: ping each backend before starting a debate."""

import asyncio
import logging

from arena.providers.base import StreamingBackend

logger = logging.getLogger(__name__)

_PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
_PING_MAX_TOKENS = 16
_TIMEOUT_SEC = 15.0


async def _first_fragment(backend: StreamingBackend) -> str:
    fragments = backend.stream(_PING_MESSAGES, _PING_MAX_TOKENS)
    try:
        async for fragment in fragments:
            return fragment
    finally:
        aclose = getattr(fragments, "aclose", None)
        if aclose is not None:
            await aclose()
    raise RuntimeError("Empty response")


async def _check_one(backend: StreamingBackend) -> tuple[str, bool, str]:
    """Ping a single backend. Returns (backend_id, ok, error_message)."""
    try:
        await asyncio.wait_for(_first_fragment(backend), timeout=_TIMEOUT_SEC)
        return backend.backend_id(), True, ""
    except TimeoutError:
        return backend.backend_id(), False, f"No response within {_TIMEOUT_SEC}s"
    except Exception as exc:
        return backend.backend_id(), False, str(exc)


async def run_health_checks(
    backends: list[StreamingBackend],
) -> dict[str, tuple[bool, str]]:
    """Ping all backends in parallel.

    Returns:
        Dict mapping backend id -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(b) for b in backends))
    for backend_id, ok, err in results:
        if not ok:
            logger.debug("Health check failed for %s: %s", backend_id, err)
    return {backend_id: (ok, err) for backend_id, ok, err in results}
