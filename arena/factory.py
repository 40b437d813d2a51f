"""Wire config + backends into a roster, prompt builder, orchestrator and concluder."""

from config.config_loader import AppConfig, ConfigError
from arena.conclusion import make_concluder
from arena.orchestrator import Orchestrator
from arena.prompts import PromptBuilder
from arena.providers.base import StreamingBackend
from arena.roster import Roster
from arena.session import Concluder


def build_roster(config: AppConfig, backends: list[StreamingBackend]) -> Roster:
    if not backends:
        raise ConfigError("No backends available. Check API keys in .env.")
    return Roster(config.roles, backends)


def build_prompt_builder(config: AppConfig, roster: Roster) -> PromptBuilder:
    return PromptBuilder(
        config.prompts,
        roster.roles,
        roster.label,
        keep=config.defaults.keep_recent,
        snippet_chars=config.defaults.snippet_chars,
    )


def conclusion_backend(config: AppConfig, roster: Roster) -> StreamingBackend:
    backend = roster.backend(config.defaults.conclusion_backend)
    if backend is None:
        raise ConfigError(
            f"Conclusion backend '{config.defaults.conclusion_backend}' is not available. Check API keys in .env."
        )
    return backend


def build_engine(config: AppConfig, backends: list[StreamingBackend]) -> tuple[Orchestrator, Concluder]:
    """Return the orchestrator and the bound conclusion pipeline for one roster."""
    roster = build_roster(config, backends)
    builder = build_prompt_builder(config, roster)
    concluder = make_concluder(
        conclusion_backend(config, roster),
        builder,
        config.defaults.conclusion_max_tokens,
    )
    return Orchestrator(roster, builder), concluder
