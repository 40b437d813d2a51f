"""Prompt assembly: role instructions, context compression, alternation folding."""

import re
from collections.abc import Callable, Sequence

from config.config_loader import PromptsConfig, RoleConfig
from arena.models import AgentIdentity, Message
from arena.providers.base import ChatMessage

KEEP_RECENT = 4
SNIPPET_CHARS = 220
ELLIPSIS = "…"

_THINK_RE = re.compile(r"<(think|thinking|reasoning)>.*?(?:</\1>|\Z)", re.S | re.I)
_FILLER_RE = re.compile(
    r"^\s*(okay|ok|alright|hmm+|let me|let's see|so,? the user|the user|i need to|i should|first,? i)\b",
    re.I,
)


def strip_reasoning(text: str) -> str:
    """Remove think-tag blocks and a leading reasoning preamble (up to a blank line)."""
    text = _THINK_RE.sub("", text)
    if _FILLER_RE.match(text):
        _, sep, rest = text.partition("\n\n")
        if sep:
            text = rest
    return text.strip()


def snippet(text: str, limit: int = SNIPPET_CHARS) -> str:
    text = re.sub(r"\s*\n\s*", " ", strip_reasoning(text))
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def build_context_block(
    history: Sequence[Message],
    label_for: Callable[[str], str],
    prompts: PromptsConfig,
    keep: int = KEEP_RECENT,
    snippet_chars: int = SNIPPET_CHARS,
) -> str | None:
    """Summarize everything older than the last `keep` messages.

    Returns None when there is nothing to compress.
    """
    if len(history) <= keep:
        return None
    lines = [prompts.context_header]
    for msg in history[: len(history) - keep]:
        lines.append(f"• {label_for(msg.agent)}: {snippet(msg.content, snippet_chars)}")
    lines.append(prompts.context_footer)
    return "\n".join(lines)


def phase_for(round_number: int) -> str:
    if round_number <= 1:
        return "exploration"
    if round_number == 2:
        return "debate"
    return "convergence"


def _append(messages: list[ChatMessage], role: str, content: str) -> None:
    # Backends require strict user/assistant alternation after the system message.
    if len(messages) > 1 and messages[-1]["role"] == role:
        messages[-1] = {"role": role, "content": messages[-1]["content"] + "\n\n" + content}
    else:
        messages.append({"role": role, "content": content})


class PromptBuilder:
    """Turns history + acting agent into a backend-ready message sequence."""

    def __init__(
        self,
        prompts: PromptsConfig,
        roles: Sequence[RoleConfig],
        label_for: Callable[[str], str],
        keep: int = KEEP_RECENT,
        snippet_chars: int = SNIPPET_CHARS,
    ) -> None:
        self._prompts = prompts
        self._roles = {r.id: r for r in roles}
        self._label_for = label_for
        self.keep = keep
        self.snippet_chars = snippet_chars

    def system_prompt(self, role_id: str, mode: str, round_number: int, web_search: bool = False) -> str:
        role = self._roles.get(role_id)
        directive = role.directive if role else ""
        parts = [directive]
        if web_search and self._prompts.web_search_hint:
            parts.append(self._prompts.web_search_hint)
        parts += [
            self._prompts.no_repeat_rule,
            self._prompts.mode_modifiers[mode],
            self._prompts.phases[phase_for(round_number)],
            self._prompts.brevity,
        ]
        return "\n\n".join(p for p in parts if p)

    def build(
        self,
        history: Sequence[Message],
        agent: AgentIdentity,
        mode: str,
        round_number: int,
        web_search: bool = False,
    ) -> list[ChatMessage]:
        messages: list[ChatMessage] = [
            {"role": "system", "content": self.system_prompt(agent.role, mode, round_number, web_search)},
        ]

        block = build_context_block(history, self._label_for, self._prompts, self.keep, self.snippet_chars)
        if block:
            messages.append({"role": "user", "content": block})
            messages.append({"role": "assistant", "content": self._prompts.context_ack})

        own = str(agent)
        for msg in history[-self.keep:] if self.keep else []:
            if msg.is_user:
                _append(messages, "user", msg.content)
            elif msg.agent == own:
                _append(messages, "assistant", msg.content)
            else:
                _append(messages, "user", f"[{self._label_for(msg.agent)}]: {msg.content}")
        return messages

    def build_conclusion(self, history: Sequence[Message], mode: str) -> list[ChatMessage]:
        """Full, uncompressed transcript in one user turn plus the output schema."""
        system = self._prompts.conclusion_system
        modifier = self._prompts.mode_modifiers.get(mode)
        if modifier:
            system += "\n\n" + modifier

        blocks = []
        for msg in history:
            speaker = self._prompts.proposal_label if msg.is_user else self._label_for(msg.agent)
            blocks.append(f"**{speaker}:** {msg.content}")
        blocks.append(self._prompts.conclusion_format)

        return [
            {"role": "system", "content": system},
            {"role": "user", "content": "\n\n".join(blocks)},
        ]

