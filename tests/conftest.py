"""Shared pytest fixtures."""

import asyncio
from pathlib import Path

import pytest

from config.config_loader import AppConfig, BackendConfig, DefaultsConfig, PromptsConfig, RoleConfig, ServerConfig
from arena.models import Session, TranscriptEntry, parse_speaker
from arena.orchestrator import Orchestrator
from arena.prompts import PromptBuilder
from arena.providers.base import ChatMessage, StreamingBackend
from arena.roster import Roster

ROLE_IDS = [
    "researcher", "critic", "architect", "risk-manager",
    "economist", "visionary", "engineer", "simplifier",
    "validator", "strategist", "historian", "optimizer",
    "skeptic", "pragmatist", "integrator", "provocateur",
]


class MockBackend(StreamingBackend):
    """Test double backend with a scripted fragment stream.

    `failures` makes the first N calls raise before yielding anything;
    `error` is raised after the scripted fragments on every call.
    """

    def __init__(
        self,
        backend_id: str = "mock",
        fragments: tuple[str, ...] = ("Mock ", "response"),
        error: Exception | None = None,
        failures: int = 0,
        kind: str = "generic",
        delay: float = 0.0,
    ) -> None:
        super().__init__(
            BackendConfig(
                id=backend_id,
                label=f"{backend_id} label",
                type=kind,
                sdk="openai",
                model="mock-model",
                api_key_env="MOCK_API_KEY",
                timeout_sec=5,
                max_tokens=100,
            )
        )
        self.fragments = list(fragments)
        self.error = error
        self.failures = failures
        self.delay = delay
        self.calls: list[list[ChatMessage]] = []
        self.max_tokens_seen: list[int | None] = []

    async def stream(self, messages: list[ChatMessage], max_tokens: int | None = None):
        self.calls.append(messages)
        self.max_tokens_seen.append(max_tokens)
        if self.failures > 0:
            self.failures -= 1
            await asyncio.sleep(0)
            raise RuntimeError(f"{self.backend_id()} unavailable")
        for fragment in self.fragments:
            await asyncio.sleep(self.delay)
            yield fragment
        if self.error is not None:
            raise self.error


def make_roles(count: int) -> list[RoleConfig]:
    return [
        RoleConfig(id=role_id, name=role_id.title(), icon="*", directive=f"You are the {role_id}.")
        for role_id in ROLE_IDS[:count]
    ]


def make_orchestrator(
    prompts: PromptsConfig,
    roles: list[RoleConfig],
    backends: list[StreamingBackend],
) -> Orchestrator:
    roster = Roster(roles, backends)
    return Orchestrator(roster, PromptBuilder(prompts, roster.roles, roster.label))


async def collect_events(
    orchestrator: Orchestrator,
    proposal: str = "Launch a subscription service",
    mode: str = "balanced",
    previous: list[TranscriptEntry] | None = None,
    until=None,
    limit: int = 1000,
) -> list:
    """Drive one run, setting the abort once `until(events)` is true."""
    abort = asyncio.Event()
    events: list = []
    async for event in orchestrator.run(proposal, mode, abort, previous):
        events.append(event)
        if (until is not None and until(events)) or len(events) >= limit:
            abort.set()
    return events


def history(*entries: tuple[str, str]) -> list:
    """Build a message history from (speaker, content) pairs, all in round 1."""
    session = Session(proposal="p", mode="balanced")
    for speaker, content in entries:
        session.add(1, parse_speaker(speaker), content)
    return session.messages


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        no_repeat_rule="Do not repeat earlier points.",
        brevity="Be brief.",
        mode_modifiers={
            "conservative": "MODE: conservative.",
            "balanced": "MODE: balanced.",
            "aggressive": "MODE: aggressive.",
        },
        phases={
            "exploration": "PHASE: exploration.",
            "debate": "PHASE: debate.",
            "convergence": "PHASE: convergence.",
        },
        context_header="EARLIER:",
        context_footer="RECENT FOLLOWS.",
        context_ack="Noted.",
        conclusion_system="Summarize the debate.",
        conclusion_format="Return JSON.",
        web_search_hint="You can search the web.",
        proposal_label="User proposal",
    )


@pytest.fixture
def sample_roles() -> list[RoleConfig]:
    return make_roles(3)


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        mode="balanced",
        rounds=1,
        output_dir=tmp_path / "output",
        conclusion_backend="mock-a",
        snapshot_path=tmp_path / "session.json",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
    sample_roles: list[RoleConfig],
) -> AppConfig:
    backend_cfg = BackendConfig(
        id="mock-a",
        label="Mock A",
        type="generic",
        sdk="openrouter",
        model="mock-a",
        api_key_env="MOCK_API_KEY",
        timeout_sec=5,
        max_tokens=100,
    )
    return AppConfig(
        defaults=sample_defaults_config,
        backends=[backend_cfg],
        roles=sample_roles,
        prompts=sample_prompts_config,
        server=ServerConfig(stream_timeout_sec=0.2, conclude_timeout_sec=5),
        available_backends={"mock-a"},
    )


@pytest.fixture
def two_mock_backends() -> list[MockBackend]:
    return [MockBackend("mock-a"), MockBackend("mock-b")]
