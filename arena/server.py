"""FastAPI surface: SSE debate stream, one-shot conclusion, roster listing."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Literal

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from config.config_loader import AppConfig, ConfigError
from arena.events import encode_sse
from arena.factory import build_engine, build_prompt_builder, build_roster
from arena.models import TranscriptEntry, parse_speaker
from arena.orchestrator import Orchestrator
from arena.providers import build_backends
from arena.providers.base import StreamingBackend

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class PreviousMessage(BaseModel):
    agent: str
    content: str
    round: int = Field(ge=0)


class StartDebateRequest(BaseModel):
    proposal: str
    mode: Literal["conservative", "balanced", "aggressive"] | None = None
    previousMessages: list[PreviousMessage] | None = None


class ConcludeRequest(BaseModel):
    messages: list[PreviousMessage] = Field(default_factory=list)
    mode: Literal["conservative", "balanced", "aggressive"] | None = None
    proposal: str = ""


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


def _entries(messages: Sequence[PreviousMessage]) -> list[TranscriptEntry]:
    """Validate wire speakers; raises ValueError on a malformed agent string."""
    entries = []
    for m in messages:
        parse_speaker(m.agent)
        entries.append(TranscriptEntry(agent=m.agent, content=m.content, round=m.round))
    return entries


async def _event_stream(
    orchestrator: Orchestrator,
    proposal: str,
    mode: str,
    previous: list[TranscriptEntry] | None,
    timeout_sec: float,
) -> AsyncIterator[str]:
    abort = asyncio.Event()
    deadline = asyncio.get_running_loop().call_later(timeout_sec, abort.set)
    try:
        async with aclosing(orchestrator.run(proposal, mode, abort, previous)) as events:
            async for event in events:
                yield encode_sse(event)
    finally:
        # Client disconnects cancel this generator; the abort stops the run.
        abort.set()
        deadline.cancel()


def create_app(config: AppConfig, backends: list[StreamingBackend] | None = None) -> FastAPI:
    """Build the app. `backends` defaults to every backend with an API key."""
    if backends is None:
        backends = build_backends(config)

    app = FastAPI(title="Debate Arena")

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request body")
        return _error(400, f"{where}: {message}" if where else message)

    @app.post("/api/debate")
    async def start_debate(body: StartDebateRequest):
        proposal = body.proposal.strip()
        if not proposal:
            return _error(400, "Proposal cannot be empty.")
        if len(body.proposal) > config.defaults.max_proposal_length:
            return _error(400, f"Proposal exceeds maximum of {config.defaults.max_proposal_length} characters.")

        try:
            previous = _entries(body.previousMessages) if body.previousMessages else None
        except ValueError as exc:
            return _error(400, str(exc))

        try:
            roster = build_roster(config, backends)
        except ConfigError as exc:
            return _error(500, str(exc))

        orchestrator = Orchestrator(roster, build_prompt_builder(config, roster))
        mode = body.mode or config.defaults.mode
        return StreamingResponse(
            _event_stream(orchestrator, proposal, mode, previous, config.server.stream_timeout_sec),
            media_type="text/event-stream",
            headers=_SSE_HEADERS,
        )

    @app.post("/api/debate/conclude")
    async def conclude_debate(body: ConcludeRequest):
        if not body.messages:
            return _error(400, "Messages are required to generate a conclusion.")
        try:
            entries = _entries(body.messages)
        except ValueError as exc:
            return _error(400, str(exc))

        try:
            _, concluder = build_engine(config, backends)
        except ConfigError as exc:
            return _error(500, str(exc))

        mode = body.mode or config.defaults.mode
        proposal = body.proposal.strip() or config.prompts.proposal_label
        try:
            conclusion = await asyncio.wait_for(
                concluder(proposal, entries, mode),
                timeout=config.server.conclude_timeout_sec,
            )
        except Exception as exc:
            logger.exception("Conclusion failed")
            return _error(502, "Failed to generate the conclusion.", details=str(exc) or exc.__class__.__name__)
        return conclusion.to_dict()

    @app.get("/api/roster")
    async def roster_listing():
        return {
            "roles": [{"id": r.id, "name": r.name, "icon": r.icon} for r in config.roles],
            "backends": [
                {"id": b.backend_id(), "label": b.label(), "type": b.kind(), "model": b.model_string()}
                for b in backends
            ],
        }

    return app
