"""Tests for arena/conclusion.py."""

import json

import pytest

from arena.conclusion import (
    PARSE_FAILURE_NOTICE,
    conclude,
    history_from_transcript,
    make_concluder,
    parse_conclusion,
)
from arena.models import TranscriptEntry
from arena.prompts import PromptBuilder
from arena.providers.base import BackendError
from tests.conftest import MockBackend, make_roles

_PAYLOAD = {
    "strategySummary": "Start with a niche.",
    "profitabilityModel": "Tiered subscriptions.",
    "riskAssessment": [
        {"risk": "Churn", "severity": "high", "mitigation": "Annual discount"},
        {"risk": "Fraud", "severity": "catastrophic", "mitigation": "Manual review"},
    ],
    "constraints": ["Budget 50k"],
    "implementationSteps": ["Validate demand", "Build MVP"],
    "openQuestions": ["Which market first?"],
}


@pytest.fixture
def builder(sample_prompts_config) -> PromptBuilder:
    return PromptBuilder(sample_prompts_config, make_roles(2), str)


def test_parse_conclusion_plain_json():
    conclusion = parse_conclusion(json.dumps(_PAYLOAD))
    assert conclusion.strategy_summary == "Start with a niche."
    assert conclusion.implementation_steps == ["Validate demand", "Build MVP"]
    assert conclusion.risk_assessment[0].severity == "high"


def test_parse_conclusion_unknown_severity_becomes_medium():
    conclusion = parse_conclusion(json.dumps(_PAYLOAD))
    assert conclusion.risk_assessment[1].severity == "medium"


def test_parse_conclusion_strips_code_fences():
    raw = "```json\n" + json.dumps(_PAYLOAD) + "\n```"
    assert parse_conclusion(raw).profitability_model == "Tiered subscriptions."


def test_parse_conclusion_extracts_object_from_prose():
    raw = "Here is the result:\n" + json.dumps(_PAYLOAD) + "\nHope that helps."
    assert parse_conclusion(raw).open_questions == ["Which market first?"]


def test_parse_conclusion_degrades_on_garbage():
    conclusion = parse_conclusion("not json")
    assert conclusion.strategy_summary == "not json"
    assert conclusion.profitability_model == PARSE_FAILURE_NOTICE
    assert conclusion.risk_assessment == []
    assert conclusion.constraints == []
    assert conclusion.implementation_steps == []
    assert conclusion.open_questions == []


def test_parse_conclusion_degrades_on_non_object():
    assert parse_conclusion("[1, 2, 3]").profitability_model == PARSE_FAILURE_NOTICE


def test_parse_conclusion_tolerates_missing_fields():
    conclusion = parse_conclusion('{"strategySummary": "Only this"}')
    assert conclusion.strategy_summary == "Only this"
    assert conclusion.profitability_model == ""
    assert conclusion.constraints == []


def test_history_from_transcript_prepends_proposal():
    entries = [TranscriptEntry("critic:m", "No.", 1)]
    messages = history_from_transcript("Build it", entries)
    assert [m.agent for m in messages] == ["user", "critic:m"]
    assert messages[0].round == 0
    assert messages[0].content == "Build it"


def test_history_from_transcript_does_not_duplicate_proposal():
    entries = [TranscriptEntry("user", "Build it", 0), TranscriptEntry("critic:m", "No.", 1)]
    assert len(history_from_transcript("Build it", entries)) == 2


async def test_conclude_accumulates_stream(builder):
    text = json.dumps(_PAYLOAD)
    backend = MockBackend("judge", fragments=(text[:20], text[20:]))
    messages = history_from_transcript("Build it", [TranscriptEntry("critic:m", "No.", 1)])

    conclusion = await conclude(messages, "balanced", backend, builder, max_tokens=4000)

    assert conclusion.strategy_summary == "Start with a niche."
    assert backend.max_tokens_seen == [4000]
    assert backend.calls[0][0]["content"].startswith("Summarize the debate.")


async def test_conclude_propagates_backend_failure(builder):
    backend = MockBackend("judge", fragments=(), error=BackendError("judge", "503"))
    messages = history_from_transcript("Build it", [])

    with pytest.raises(BackendError):
        await conclude(messages, "balanced", backend, builder)


async def test_make_concluder_binds_backend(builder):
    backend = MockBackend("judge", fragments=("not json",))
    concluder = make_concluder(backend, builder, 123)

    conclusion = await concluder("Build it", [TranscriptEntry("critic:m", "No.", 1)], "aggressive")

    assert conclusion.strategy_summary == "not json"
    assert "**user:** Build it" not in backend.calls[0][1]["content"]
    assert "**User proposal:** Build it" in backend.calls[0][1]["content"]
    assert backend.max_tokens_seen == [123]
