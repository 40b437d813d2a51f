"""Pure dataclasses for the debate engine. No I/O."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

Mode = Literal["conservative", "balanced", "aggressive"]
LLMRole = Literal["system", "user", "assistant"]

MODES: tuple[str, ...] = ("conservative", "balanced", "aggressive")
USER = "user"


@dataclass(frozen=True)
class AgentIdentity:
    """One role paired with one backend for a single turn."""

    role: str
    backend: str

    def __str__(self) -> str:
        return f"{self.role}:{self.backend}"

    @classmethod
    def parse(cls, value: str) -> "AgentIdentity":
        # Backend ids may contain ':' (e.g. "model:free"); role ids never do.
        role, sep, backend = value.partition(":")
        if not sep or not role or not backend:
            raise ValueError(f"Not an agent identity: {value!r}")
        return cls(role=role, backend=backend)


Speaker = AgentIdentity | Literal["user"]


def parse_speaker(value: str) -> Speaker:
    """Turn a wire-format speaker string into "user" or an AgentIdentity."""
    if value == USER:
        return USER
    return AgentIdentity.parse(value)


@dataclass(frozen=True)
class Message:
    session_id: str
    round: int
    speaker: Speaker
    llm_role: LLMRole
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_user(self) -> bool:
        return self.speaker == USER

    @property
    def agent(self) -> str:
        return str(self.speaker)


@dataclass
class TranscriptEntry:
    """Client-held form of a message: what gets replayed on resume."""

    agent: str
    content: str
    round: int

    def to_dict(self) -> dict:
        return {"agent": self.agent, "content": self.content, "round": self.round}


@dataclass
class Session:
    proposal: str
    mode: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    messages: list[Message] = field(default_factory=list)
    status: Literal["running", "completed", "error"] = "running"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add(self, round_number: int, speaker: Speaker, content: str) -> Message:
        llm_role: LLMRole = "user" if speaker == USER else "assistant"
        msg = Message(
            session_id=self.session_id,
            round=round_number,
            speaker=speaker,
            llm_role=llm_role,
            content=content,
        )
        self.messages.append(msg)
        return msg


@dataclass
class RiskItem:
    risk: str
    severity: Literal["low", "medium", "high", "critical"]
    mitigation: str


@dataclass
class Conclusion:
    strategy_summary: str
    profitability_model: str
    risk_assessment: list[RiskItem] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    implementation_steps: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "strategySummary": self.strategy_summary,
            "profitabilityModel": self.profitability_model,
            "riskAssessment": [
                {"risk": r.risk, "severity": r.severity, "mitigation": r.mitigation}
                for r in self.risk_assessment
            ],
            "constraints": list(self.constraints),
            "implementationSteps": list(self.implementation_steps),
            "openQuestions": list(self.open_questions),
        }
