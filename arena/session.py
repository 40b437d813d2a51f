"""Session controller: start / pause / continue / stop / refine / reset.

The controller is the client side of a debate. It owns the retained transcript
(only whole, completed messages), drives one orchestrator run at a time, and
replays its transcript into a fresh run on resume.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from pathlib import Path

from arena.conclusion import conclusion_from_dict
from arena.events import AgentError, DebateEvent, Done, MessageEnd, MessageStart, RoundStart, StreamError, Token
from arena.models import USER, Conclusion, TranscriptEntry
from arena.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

Concluder = Callable[[str, Sequence[TranscriptEntry], str], Awaitable[Conclusion]]
Listener = Callable[[DebateEvent], None]


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    CONCLUDING = "concluding"
    COMPLETED = "completed"


class SessionStateError(Exception):
    """Raised when an operation is invoked in a state where it is not valid."""


class SnapshotStore:
    """JSON file holding the client-side session snapshot."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def save(self, state: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state, ensure_ascii=False, indent=2), encoding="utf-8")

    def load(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as exc:
            logger.warning("Ignoring unreadable session snapshot %s: %s", self.path, exc)
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class SessionController:
    def __init__(
        self,
        orchestrator: Orchestrator,
        concluder: Concluder,
        snapshots: SnapshotStore | None = None,
        listeners: Sequence[Listener] = (),
    ) -> None:
        self._orchestrator = orchestrator
        self._concluder = concluder
        self._snapshots = snapshots
        self._listeners: list[Listener] = list(listeners)
        self._abort: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._in_flight: TranscriptEntry | None = None
        self._clear()

    def _clear(self) -> None:
        self.status = SessionStatus.IDLE
        self.messages: list[TranscriptEntry] = []
        self.proposal = ""
        self.mode = "balanced"
        self.current_round = 0
        self.turn_count = 0
        self.conclusion: Conclusion | None = None
        self.iteration = 0
        self.error: str | None = None
        self._in_flight = None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ── event handling ──────────────────────────────────────────────────────

    def handle_event(self, event: DebateEvent) -> None:
        """Fold one orchestrator event into the retained state."""
        if isinstance(event, RoundStart):
            self.current_round = event.round
        elif isinstance(event, MessageStart):
            self.turn_count += 1
            self._in_flight = TranscriptEntry(agent=event.agent, content="", round=event.round)
        elif isinstance(event, Token):
            if self._in_flight and self._in_flight.agent == event.agent:
                self._in_flight.content += event.data
        elif isinstance(event, MessageEnd):
            entry = self._in_flight
            self._in_flight = None
            if entry and entry.agent == event.agent and entry.content:
                self.messages.append(entry)
                self._save()
        elif isinstance(event, AgentError):
            # Failed attempts are dropped, never shown as partial messages.
            self._in_flight = None
        elif isinstance(event, StreamError):
            self.error = event.data
        elif isinstance(event, Done):
            self._in_flight = None

        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s event", listener, event.type)

    async def _consume(self, previous: Sequence[TranscriptEntry] | None) -> None:
        abort = self._abort
        async for event in self._orchestrator.run(self.proposal, self.mode, abort, previous):
            self.handle_event(event)
        if self.status is SessionStatus.RUNNING and not abort.is_set():
            self.status = SessionStatus.IDLE
            self._save()

    def _launch(self, previous: Sequence[TranscriptEntry] | None) -> None:
        self._abort = asyncio.Event()
        self.status = SessionStatus.RUNNING
        self._task = asyncio.create_task(self._consume(previous))

    async def _halt(self) -> None:
        if self._abort is not None:
            self._abort.set()
        if self._task is not None:
            try:
                await self._task
            finally:
                self._task = None
        self._in_flight = None

    async def join(self) -> None:
        """Wait for the current run to end on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    # ── operations ──────────────────────────────────────────────────────────

    async def start(self, proposal: str, mode: str = "balanced") -> None:
        if self.status is SessionStatus.RUNNING:
            raise SessionStateError("A debate is already running")
        await self._halt()

        self.messages = []
        self.current_round = 0
        self.turn_count = 0
        self.conclusion = None
        self.error = None
        self.iteration += 1
        self.proposal = proposal
        self.mode = mode

        logger.info("Starting debate iteration %d (mode: %s)", self.iteration, mode)
        self._launch(None)
        self._save()

    async def pause(self) -> None:
        if self.status is not SessionStatus.RUNNING:
            raise SessionStateError(f"Cannot pause while {self.status.value}")
        await self._halt()
        self.status = SessionStatus.PAUSED
        self._save()
        logger.info("Debate paused after %d messages", len(self.messages))

    async def continue_with_comment(self, text: str) -> None:
        if self.status is not SessionStatus.PAUSED:
            raise SessionStateError(f"Cannot continue while {self.status.value}")
        if not self.proposal:
            raise SessionStateError("No proposal to continue")

        self.messages.append(TranscriptEntry(agent=USER, content=text, round=self.current_round))
        previous = [TranscriptEntry(agent=USER, content=self.proposal, round=0), *self.messages]
        self._launch([TranscriptEntry(e.agent, e.content, e.round) for e in previous])
        self._save()

    async def stop(self) -> Conclusion | None:
        """Abort any run and conclude. Returns None when nothing was said."""
        if self.status not in (SessionStatus.RUNNING, SessionStatus.PAUSED):
            raise SessionStateError(f"Cannot stop while {self.status.value}")
        await self._halt()
        self.status = SessionStatus.CONCLUDING

        if not any(m.agent != USER and m.content.strip() for m in self.messages):
            logger.info("No agent messages recorded; skipping conclusion")
            self.status = SessionStatus.IDLE
            self._save()
            return None

        transcript = [m for m in self.messages if m.content.strip()]
        try:
            self.conclusion = await self._concluder(self.proposal, transcript, self.mode)
        except Exception as exc:
            self.error = str(exc)
            self.status = SessionStatus.PAUSED
            self._save()
            raise

        self.status = SessionStatus.COMPLETED
        self._save()
        return self.conclusion

    async def refine(self) -> None:
        if self.conclusion is None:
            raise SessionStateError("Nothing to refine: no conclusion yet")
        self.conclusion = None
        self.status = SessionStatus.IDLE
        await self.start(self.proposal, self.mode)

    async def reset(self) -> None:
        await self._halt()
        self._clear()
        if self._snapshots is not None:
            self._snapshots.clear()

    # ── snapshot ────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "current_round": self.current_round,
            "turn_count": self.turn_count,
            "conclusion": self.conclusion.to_dict() if self.conclusion else None,
            "proposal": self.proposal,
            "mode": self.mode,
            "iteration": self.iteration,
        }

    def _save(self) -> None:
        if self._snapshots is not None:
            self._snapshots.save(self.snapshot())

    def restore(self) -> bool:
        """Reload the persisted snapshot. A restored session with messages is paused."""
        if self._snapshots is None or self.status is not SessionStatus.IDLE:
            return False
        state = self._snapshots.load()
        if not state or not state.get("messages"):
            return False

        self.messages = [
            TranscriptEntry(agent=m["agent"], content=m["content"], round=int(m["round"]))
            for m in state["messages"]
        ]
        self.current_round = int(state.get("current_round", 0))
        self.turn_count = int(state.get("turn_count", 0))
        self.proposal = state.get("proposal", "")
        self.mode = state.get("mode", "balanced")
        self.iteration = int(state.get("iteration", 0))
        self.conclusion = conclusion_from_dict(state["conclusion"]) if state.get("conclusion") else None
        self.status = SessionStatus.COMPLETED if self.conclusion else SessionStatus.PAUSED
        return True
