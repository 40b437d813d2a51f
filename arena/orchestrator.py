"""Round-robin debate orchestration with per-role backend rotation.

Roles speak in roster order, forever, until the abort signal is set. Each role
owns a rotation cursor into the backend roster: a turn tries backends starting
at the cursor, falling through on failure or empty output, and a success moves
the cursor one past the backend that answered. A role that exhausts every
backend is skipped for the cycle.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

from arena.events import (
    AgentError,
    DebateEvent,
    Done,
    MessageEnd,
    MessageStart,
    RoundEnd,
    RoundStart,
    StreamError,
    Token,
)
from arena.models import USER, AgentIdentity, Session, TranscriptEntry, parse_speaker
from arena.prompts import PromptBuilder
from arena.roster import Roster

logger = logging.getLogger(__name__)

_ERROR_DETAIL_CHARS = 100


def round_for(turn_index: int, num_roles: int) -> int:
    return turn_index // num_roles + 1


def initial_cursors(role_ids: Sequence[str], num_backends: int) -> dict[str, int]:
    """Spread roles across the backend roster so they start on different backends."""
    return {role_id: i % num_backends for i, role_id in enumerate(role_ids)}


def resume_turn_index(previous: Sequence[TranscriptEntry]) -> int:
    return sum(1 for entry in previous if entry.agent != USER)


class _TurnAborted(Exception):
    """Internal: the abort signal was seen mid-turn."""


class Orchestrator:
    """Drives one debate stream. Holds no per-session state between runs."""

    def __init__(
        self,
        roster: Roster,
        builder: PromptBuilder,
    ) -> None:
        self._roster = roster
        self._builder = builder

    @property
    def roster(self) -> Roster:
        return self._roster

    async def run(
        self,
        proposal: str,
        mode: str = "balanced",
        abort: asyncio.Event | None = None,
        previous_messages: Sequence[TranscriptEntry] | None = None,
    ) -> AsyncIterator[DebateEvent]:
        """Yield the event stream of one debate. `Done` is always the last event."""
        abort = abort or asyncio.Event()
        session = Session(proposal=proposal, mode=mode)

        if previous_messages:
            for entry in previous_messages:
                session.add(entry.round, parse_speaker(entry.agent), entry.content)
        else:
            session.add(0, USER, proposal)

        roles = self._roster.roles
        backends = self._roster.backends
        cursors = initial_cursors([r.id for r in roles], len(backends))
        turn_index = resume_turn_index(previous_messages) if previous_messages else 0

        logger.info(
            "[Debate %s] %s — mode: %s, %d roles, %d backends, turn %d",
            session.session_id,
            "Resumed" if previous_messages else "Started",
            mode,
            len(roles),
            len(backends),
            turn_index,
        )

        try:
            while not abort.is_set():
                role = roles[turn_index % len(roles)]
                round_number = round_for(turn_index, len(roles))

                if turn_index % len(roles) == 0:
                    yield RoundStart(round=round_number)

                try:
                    async with aclosing(self._turn(session, role.id, round_number, cursors, abort)) as events:
                        async for event in events:
                            yield event
                except _TurnAborted:
                    break

                if abort.is_set():
                    break
                if (turn_index + 1) % len(roles) == 0:
                    yield RoundEnd(round=round_number)
                    logger.info(
                        "[Debate %s] Round %d complete — %d roles attempted",
                        session.session_id,
                        round_number,
                        len(roles),
                    )
                turn_index += 1

            session.status = "completed"
            logger.info("[Debate %s] Stopped after %d turns", session.session_id, turn_index)
        except Exception:
            session.status = "error"
            if not abort.is_set():
                logger.exception("[Debate %s] Unexpected error", session.session_id)
                yield StreamError(data="Unexpected error in debate.")

        yield Done()

    async def _turn(
        self,
        session: Session,
        role_id: str,
        round_number: int,
        cursors: dict[str, int],
        abort: asyncio.Event,
    ) -> AsyncIterator[DebateEvent]:
        backends = self._roster.backends
        start = cursors[role_id]

        for attempt in range(len(backends)):
            if abort.is_set():
                raise _TurnAborted

            index = (start + attempt) % len(backends)
            backend = backends[index]
            identity = AgentIdentity(role=role_id, backend=backend.backend_id())
            agent = str(identity)
            label = self._roster.display_label(identity)

            messages = self._builder.build(
                session.messages,
                identity,
                session.mode,
                round_number,
                web_search=backend.kind() == "web_search",
            )

            yield MessageStart(agent=agent, round=round_number)
            if abort.is_set():
                raise _TurnAborted

            content = ""
            failure: str | None = None
            fragments = None
            try:
                fragments = backend.stream(messages)
                async for fragment in fragments:
                    if abort.is_set():
                        raise _TurnAborted
                    content += fragment
                    yield Token(agent=agent, round=round_number, data=fragment)
                    if abort.is_set():
                        raise _TurnAborted
            except _TurnAborted:
                raise
            except Exception as exc:
                if abort.is_set():
                    raise _TurnAborted from exc
                failure = str(exc) or exc.__class__.__name__
            finally:
                aclose = getattr(fragments, "aclose", None)
                if aclose is not None:
                    await aclose()

            if abort.is_set():
                raise _TurnAborted

            if failure is None and content:
                session.add(round_number, identity, content)
                yield MessageEnd(agent=agent, round=round_number)
                cursors[role_id] = (index + 1) % len(backends)
                logger.info(
                    "[Debate %s] R%d %s ✓ (%d chars)",
                    session.session_id,
                    round_number,
                    label,
                    len(content),
                )
                return

            last = attempt == len(backends) - 1
            suffix = "" if last else " Trying next backend..."
            if failure is None:
                logger.warning("[Debate %s] R%d %s empty response", session.session_id, round_number, label)
                yield AgentError(agent=agent, data=f"{label} returned empty response.{suffix}")
            else:
                logger.error("[Debate %s] R%d %s ✗: %s", session.session_id, round_number, label, failure)
                yield AgentError(agent=agent, data=f"{label} failed: {failure[:_ERROR_DETAIL_CHARS]}.{suffix}")
            yield MessageEnd(agent=agent, round=round_number)

            if last:
                role_name = self._roster.role_name(role_id)
                yield AgentError(agent=agent, data=f"All backends failed for {role_name}. Skipping turn.")
                yield MessageEnd(agent=agent, round=round_number)
                logger.error(
                    "[Debate %s] R%d %s — all %d backends failed",
                    session.session_id,
                    round_number,
                    role_name,
                    len(backends),
                )
