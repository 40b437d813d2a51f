"""Rich console output and markdown file save for debate results."""

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from arena.models import USER, Conclusion, TranscriptEntry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_SEVERITY_STYLES = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _bullets(items: Sequence[str], numbered: bool = False) -> str:
    if numbered:
        return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))
    return "\n".join(f"- {item}" for item in items)


def print_conclusion(conclusion: Conclusion) -> None:
    """Print the structured conclusion to the console."""
    console.print(Rule("[bold green]Conclusion[/bold green]"))
    console.print(Panel(Markdown(conclusion.strategy_summary or "_(empty)_"), title="Strategy", border_style="green"))
    console.print(Panel(Markdown(conclusion.profitability_model or "_(empty)_"), title="Profitability model"))

    if conclusion.risk_assessment:
        table = Table(title="Risks", show_lines=True)
        table.add_column("Severity", no_wrap=True)
        table.add_column("Risk")
        table.add_column("Mitigation")
        for item in conclusion.risk_assessment:
            style = _SEVERITY_STYLES.get(item.severity, "white")
            table.add_row(Text(item.severity, style=style), Text(item.risk), Text(item.mitigation))
        console.print(table)

    for title, items, numbered in (
        ("Constraints", conclusion.constraints, False),
        ("Implementation steps", conclusion.implementation_steps, True),
        ("Open questions", conclusion.open_questions, False),
    ):
        if items:
            console.print(Panel(Markdown(_bullets(items, numbered)), title=title, border_style="dim"))


def save_to_file(
    proposal: str,
    mode: str,
    messages: Sequence[TranscriptEntry],
    conclusion: Conclusion | None,
    output_dir: Path,
    label_for: Callable[[str], str] = str,
) -> Path:
    """Save the transcript and conclusion as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(proposal)}.md"

    agent_turns = sum(1 for m in messages if m.agent != USER)
    rounds = max((m.round for m in messages), default=0)

    lines: list[str] = [
        f"# Debate: {proposal[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {mode}",
        f"**Rounds:** {rounds}",
        f"**Agent messages:** {agent_turns}",
        "",
        "## Proposal",
        "",
        proposal,
        "",
        "---",
        "",
    ]

    current_round = None
    for msg in messages:
        if msg.round != current_round:
            current_round = msg.round
            lines += [f"## Round {msg.round}", ""]
        speaker = "User comment" if msg.agent == USER else label_for(msg.agent)
        lines += [f"### {speaker}", "", msg.content, ""]

    if conclusion is not None:
        lines += ["## Conclusion", "", "### Strategy", "", conclusion.strategy_summary, ""]
        lines += ["### Profitability model", "", conclusion.profitability_model, ""]
        if conclusion.risk_assessment:
            lines += ["### Risks", "", "| Severity | Risk | Mitigation |", "|---|---|---|"]
            lines += [f"| {r.severity} | {r.risk} | {r.mitigation} |" for r in conclusion.risk_assessment]
            lines.append("")
        for title, items, numbered in (
            ("Constraints", conclusion.constraints, False),
            ("Implementation steps", conclusion.implementation_steps, True),
            ("Open questions", conclusion.open_questions, False),
        ):
            if items:
                lines += [f"### {title}", "", _bullets(items, numbered), ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
