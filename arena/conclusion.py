"""Final synthesis: build transcript prompt, call the conclusion backend, parse JSON."""

import json
import logging
import re
from collections.abc import Awaitable, Callable, Sequence

from arena.models import USER, Conclusion, Message, RiskItem, Session, TranscriptEntry, parse_speaker
from arena.prompts import PromptBuilder
from arena.providers.base import StreamingBackend

logger = logging.getLogger(__name__)

PARSE_FAILURE_NOTICE = "Could not parse the structured conclusion."

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.I)
_SEVERITIES = {"low", "medium", "high", "critical"}


def _strings(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item).strip()]


def _risks(value) -> list[RiskItem]:
    if not isinstance(value, list):
        return []
    risks: list[RiskItem] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        severity = str(item.get("severity", "medium")).lower()
        risks.append(
            RiskItem(
                risk=str(item.get("risk", "")),
                severity=severity if severity in _SEVERITIES else "medium",
                mitigation=str(item.get("mitigation", "")),
            )
        )
    return risks


def degraded(raw: str) -> Conclusion:
    return Conclusion(strategy_summary=raw, profitability_model=PARSE_FAILURE_NOTICE)


def parse_conclusion(raw: str) -> Conclusion:
    """Parse the model's JSON object, degrading to a placeholder payload.

    Never raises: unparseable output yields summary = raw text and empty lists.
    """
    cleaned = _FENCE_RE.sub("", raw).strip()
    try:
        data = json.loads(cleaned)
    except ValueError:
        # Thinking models sometimes wrap the object in prose.
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            return degraded(raw)
        try:
            data = json.loads(cleaned[start : end + 1])
        except ValueError:
            return degraded(raw)

    if not isinstance(data, dict):
        return degraded(raw)
    return conclusion_from_dict(data)


def conclusion_from_dict(data: dict) -> Conclusion:
    """Build a Conclusion from its camelCase wire form, tolerating missing fields."""
    return Conclusion(
        strategy_summary=str(data.get("strategySummary", "")),
        profitability_model=str(data.get("profitabilityModel", "")),
        risk_assessment=_risks(data.get("riskAssessment")),
        constraints=_strings(data.get("constraints")),
        implementation_steps=_strings(data.get("implementationSteps")),
        open_questions=_strings(data.get("openQuestions")),
    )


def history_from_transcript(proposal: str, entries: Sequence[TranscriptEntry]) -> list[Message]:
    """Rebuild message history from client-held entries, proposal first as round 0."""
    session = Session(proposal=proposal, mode="balanced")
    if not entries or entries[0].agent != USER or entries[0].content != proposal:
        session.add(0, USER, proposal)
    for entry in entries:
        session.add(entry.round, parse_speaker(entry.agent), entry.content)
    return session.messages


async def conclude(
    history: Sequence[Message],
    mode: str,
    backend: StreamingBackend,
    builder: PromptBuilder,
    max_tokens: int | None = None,
) -> Conclusion:
    """Run the conclusion backend over the full transcript and parse the result.

    Raises:
        BackendError: If the conclusion backend call fails.
    """
    messages = builder.build_conclusion(history, mode)
    logger.info("Generating conclusion from %d messages via %s", len(history), backend.backend_id())

    raw = ""
    async for fragment in backend.stream(messages, max_tokens):
        raw += fragment

    conclusion = parse_conclusion(raw)
    logger.info("Conclusion generated (%d chars)", len(raw))
    return conclusion


def make_concluder(
    backend: StreamingBackend,
    builder: PromptBuilder,
    max_tokens: int | None = None,
) -> Callable[[str, Sequence[TranscriptEntry], str], Awaitable[Conclusion]]:
    """Bind the conclusion pipeline for a SessionController."""

    async def _conclude(proposal: str, entries: Sequence[TranscriptEntry], mode: str) -> Conclusion:
        history = history_from_transcript(proposal, entries)
        return await conclude(history, mode, backend, builder, max_tokens)

    return _conclude
