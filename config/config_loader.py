"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_BACKEND_TYPES = {"web_search", "generic"}
_BACKEND_SDKS = {"perplexity", "openrouter", "openai", "anthropic", "gemini"}
_MODES = ("conservative", "balanced", "aggressive")
_PHASES = ("exploration", "debate", "convergence")


class ConfigError(Exception):
    """Raised when settings are malformed or required credentials are absent."""


@dataclass
class BackendConfig:
    id: str
    label: str
    type: str              # "web_search" or "generic"
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RoleConfig:
    id: str
    name: str
    icon: str
    directive: str


@dataclass
class PromptsConfig:
    no_repeat_rule: str
    brevity: str
    mode_modifiers: dict[str, str]
    phases: dict[str, str]
    context_header: str
    context_footer: str
    context_ack: str
    conclusion_system: str
    conclusion_format: str
    web_search_hint: str = ""
    proposal_label: str = "User proposal"


@dataclass
class DefaultsConfig:
    mode: str
    rounds: int
    output_dir: Path
    conclusion_backend: str
    keep_recent: int = 4
    snippet_chars: int = 220
    max_proposal_length: int = 4000
    conclusion_max_tokens: int = 4000
    snapshot_path: Path = Path(".arena/session.json")


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    stream_timeout_sec: float = 300.0
    conclude_timeout_sec: float = 120.0


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    backends: list[BackendConfig]
    roles: list[RoleConfig]
    prompts: PromptsConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    available_backends: set[str] = field(default_factory=set)


def _load_backends(raw_list: list[dict]) -> list[BackendConfig]:
    backends: list[BackendConfig] = []
    seen: set[str] = set()
    for raw in raw_list:
        backend_id = str(raw["id"])
        if backend_id in seen:
            raise ConfigError(f"Duplicate backend id: {backend_id}")
        seen.add(backend_id)

        kind = raw.get("type", "generic")
        if kind not in _BACKEND_TYPES:
            raise ConfigError(f"Backend {backend_id}: unknown type '{kind}'")
        sdk = raw["sdk"]
        if sdk not in _BACKEND_SDKS:
            raise ConfigError(f"Backend {backend_id}: unknown sdk '{sdk}'")

        backends.append(
            BackendConfig(
                id=backend_id,
                label=str(raw.get("label", backend_id)),
                type=kind,
                sdk=sdk,
                model=str(raw.get("model", backend_id)),
                api_key_env=raw["api_key_env"],
                timeout_sec=int(raw["timeout_sec"]),
                max_tokens=int(raw["max_tokens"]),
                temperature=float(raw.get("temperature", 0.7)),
                base_url=raw.get("base_url"),
                headers={k: str(v) for k, v in (raw.get("headers") or {}).items()},
            )
        )
    return backends


def _load_roles(raw_list: list[dict]) -> list[RoleConfig]:
    if not raw_list:
        raise ConfigError("Role roster is empty")
    roles = [
        RoleConfig(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            icon=str(raw.get("icon", "")),
            directive=str(raw["directive"]),
        )
        for raw in raw_list
    ]
    ids = [r.id for r in roles]
    if len(set(ids)) != len(ids):
        raise ConfigError("Duplicate role ids in roster")
    if any(":" in r for r in ids):
        raise ConfigError("Role ids must not contain ':'")
    return roles


def _load_prompts(raw: dict) -> PromptsConfig:
    modifiers = {k: str(v) for k, v in raw["mode_modifiers"].items()}
    missing = [m for m in _MODES if m not in modifiers]
    if missing:
        raise ConfigError(f"Missing mode modifiers: {', '.join(missing)}")
    phases = {k: str(v) for k, v in raw["phases"].items()}
    missing = [p for p in _PHASES if p not in phases]
    if missing:
        raise ConfigError(f"Missing phase instructions: {', '.join(missing)}")

    return PromptsConfig(
        no_repeat_rule=raw["no_repeat_rule"],
        brevity=raw["brevity"],
        mode_modifiers=modifiers,
        phases=phases,
        context_header=raw["context_header"],
        context_footer=raw["context_footer"],
        context_ack=raw["context_ack"],
        conclusion_system=raw["conclusion_system"],
        conclusion_format=raw["conclusion_format"],
        web_search_hint=raw.get("web_search_hint", ""),
        proposal_label=raw.get("proposal_label", "User proposal"),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ConfigError if a
    section is malformed. Logs backends skipped for missing API keys but does
    not raise — callers check available_backends.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    try:
        defaults_raw = raw["defaults"]
        defaults = DefaultsConfig(
            mode=str(defaults_raw.get("mode", "balanced")),
            rounds=int(defaults_raw["rounds"]),
            output_dir=Path(defaults_raw["output_dir"]),
            conclusion_backend=str(defaults_raw["conclusion_backend"]),
            keep_recent=int(defaults_raw.get("keep_recent", 4)),
            snippet_chars=int(defaults_raw.get("snippet_chars", 220)),
            max_proposal_length=int(defaults_raw.get("max_proposal_length", 4000)),
            conclusion_max_tokens=int(defaults_raw.get("conclusion_max_tokens", 4000)),
            snapshot_path=Path(defaults_raw.get("snapshot_path", ".arena/session.json")),
        )
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=str(server_raw.get("host", "127.0.0.1")),
            port=int(server_raw.get("port", 8000)),
            stream_timeout_sec=float(server_raw.get("stream_timeout_sec", 300)),
            conclude_timeout_sec=float(server_raw.get("conclude_timeout_sec", 120)),
        )
        backends = _load_backends(raw["backends"])
        roles = _load_roles(raw["roles"])
        prompts = _load_prompts(raw["prompts"])
    except KeyError as exc:
        raise ConfigError(f"Missing setting: {exc.args[0]}") from exc

    if defaults.mode not in _MODES:
        raise ConfigError(f"Unknown default mode: {defaults.mode}")

    available_backends: set[str] = set()
    for cfg in backends:
        api_key = os.environ.get(cfg.api_key_env, "").strip()
        if api_key:
            available_backends.add(cfg.id)
            logger.info("Backend available: %s", cfg.id)
        else:
            logger.info(
                "Backend skipped (no API key): %s — set %s in .env",
                cfg.id,
                cfg.api_key_env,
            )

    return AppConfig(
        defaults=defaults,
        backends=backends,
        roles=roles,
        prompts=prompts,
        server=server,
        available_backends=available_backends,
    )
