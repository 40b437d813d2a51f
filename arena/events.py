"""Turn event stream: one dataclass per event kind, plus SSE framing."""

import json
from dataclasses import asdict, dataclass
from typing import ClassVar


class _Event:
    type: ClassVar[str]

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class RoundStart(_Event):
    type: ClassVar[str] = "round_start"
    round: int


@dataclass(frozen=True)
class MessageStart(_Event):
    type: ClassVar[str] = "message_start"
    agent: str
    round: int


@dataclass(frozen=True)
class Token(_Event):
    type: ClassVar[str] = "token"
    agent: str
    round: int
    data: str


@dataclass(frozen=True)
class MessageEnd(_Event):
    type: ClassVar[str] = "message_end"
    agent: str
    round: int


@dataclass(frozen=True)
class AgentError(_Event):
    type: ClassVar[str] = "agent_error"
    agent: str
    data: str


@dataclass(frozen=True)
class RoundEnd(_Event):
    type: ClassVar[str] = "round_end"
    round: int


@dataclass(frozen=True)
class StreamError(_Event):
    type: ClassVar[str] = "error"
    data: str


@dataclass(frozen=True)
class Done(_Event):
    type: ClassVar[str] = "done"


DebateEvent = RoundStart | MessageStart | Token | MessageEnd | AgentError | RoundEnd | StreamError | Done

EVENT_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (RoundStart, MessageStart, Token, MessageEnd, AgentError, RoundEnd, StreamError, Done)
}


def encode_sse(event: DebateEvent) -> str:
    """Render one event as a `data: <json>` frame."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


def decode_sse(line: str) -> DebateEvent | None:
    """Parse a `data:` line back into an event. Returns None for non-data lines.

    Raises:
        ValueError: If the payload is not a known event.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    payload = json.loads(line[len("data:"):].strip())
    kind = payload.pop("type", None)
    if kind not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {kind!r}")
    return EVENT_TYPES[kind](**payload)
