"""Click CLI: debate in the terminal, serve the HTTP API, check backends."""

import asyncio
import logging
import sys
from pathlib import Path

import click
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.rule import Rule

from config.config_loader import AppConfig, ConfigError, load_config
from arena.events import AgentError, DebateEvent, MessageStart, RoundEnd, RoundStart, StreamError, Token
from arena.factory import build_engine
from arena.healthcheck import run_health_checks
from arena.models import MODES, AgentIdentity
from arena.output import print_conclusion, save_to_file
from arena.providers import build_backends
from arena.providers.base import StreamingBackend
from arena.roster import Roster
from arena.server import create_app
from arena.session import SessionController, SessionStatus, SnapshotStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, ConfigError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _check_and_filter_backends(backends: list[StreamingBackend]) -> list[StreamingBackend]:
    """Run health checks, print results, and ask what to do on failures.

    Exits if the user declines to continue or no backends pass.
    """
    console.print("\n[bold]Checking backends...[/bold]")
    results = asyncio.run(run_health_checks(backends))

    failed: list[str] = []
    for backend in backends:
        ok, err = results[backend.backend_id()]
        if ok:
            console.print(f"  [green]OK  [/green] {backend.backend_id()}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {backend.backend_id()}: {short_err}")
            failed.append(backend.backend_id())

    if not failed:
        console.print()
        return backends

    working = [b for b in backends if b.backend_id() not in failed]
    if not working:
        console.print("\n[bold red]Error:[/bold red] No backends passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed)} backend(s) failed:[/yellow] {', '.join(failed)}")
    if not click.confirm("Continue with working backends only?", default=True):
        sys.exit(0)
    console.print()
    return working


class LiveRenderer:
    """Prints the event stream as it arrives."""

    def __init__(self, roster: Roster) -> None:
        self._roster = roster

    def __call__(self, event: DebateEvent) -> None:
        if isinstance(event, RoundStart):
            console.print(Rule(f"[bold cyan]Round {event.round}[/bold cyan]"))
        elif isinstance(event, MessageStart):
            label = self._roster.display_label(AgentIdentity.parse(event.agent))
            console.print(f"\n[bold]{label}[/bold]")
        elif isinstance(event, Token):
            console.print(event.data, end="", markup=False, highlight=False)
        elif isinstance(event, AgentError):
            console.print(f"\n[yellow]{event.data}[/yellow]", markup=True, highlight=False)
        elif isinstance(event, StreamError):
            console.print(f"\n[bold red]Error:[/bold red] {event.data}")


async def _wait_for_checkpoint(controller: SessionController, checkpoint: asyncio.Event) -> None:
    """Return when the requested round completes or the run ends on its own."""
    waiters = {
        asyncio.create_task(checkpoint.wait()),
        asyncio.create_task(controller.join()),
    }
    _, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()


async def _run_debate(
    config: AppConfig,
    backends: list[StreamingBackend],
    proposal: str,
    mode: str,
    rounds: int,
    interactive: bool,
    output_dir: Path,
) -> Path:
    orchestrator, concluder = build_engine(config, backends)
    roster = orchestrator.roster
    controller = SessionController(orchestrator, concluder, SnapshotStore(config.defaults.snapshot_path))
    controller.add_listener(LiveRenderer(roster))

    checkpoint = asyncio.Event()
    target = rounds
    completed = 0

    def on_round_end(event: DebateEvent) -> None:
        nonlocal completed
        if isinstance(event, RoundEnd):
            completed = event.round
            if event.round >= target:
                checkpoint.set()

    controller.add_listener(on_round_end)

    console.print(f"\n[bold cyan]Debate Arena[/bold cyan] — {len(roster.roles)} roles, {len(roster.backends)} backends ({mode})")
    console.print(f"Proposal: [italic]{proposal[:80]}{'...' if len(proposal) > 80 else ''}[/italic]\n")

    await controller.start(proposal, mode)
    while True:
        await _wait_for_checkpoint(controller, checkpoint)
        checkpoint.clear()
        if controller.status is SessionStatus.RUNNING:
            await controller.pause()
        if interactive and controller.status is SessionStatus.PAUSED:
            console.print()
            comment = click.prompt("Comment to continue (empty to conclude)", default="", show_default=False)
            if comment.strip():
                target = completed + 1
                await controller.continue_with_comment(comment.strip())
                continue
        break

    conclusion = None
    if controller.status is SessionStatus.PAUSED:
        console.print("\n[dim]Generating conclusion...[/dim]")
        conclusion = await controller.stop()
        if conclusion is not None:
            print_conclusion(conclusion)
    elif controller.error:
        console.print(f"[bold red]Debate ended:[/bold red] {controller.error}")

    saved = save_to_file(proposal, mode, controller.messages, conclusion, output_dir, roster.label)
    console.print(f"\n[dim]Saved to: {saved}[/dim]")
    return saved


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """Debate Arena -- round-robin multi-agent debate over a proposal."""
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.argument("proposal", required=False)
@click.option("--file", "proposal_file", type=click.Path(exists=True), help="Read proposal from a file")
@click.option("--mode", type=click.Choice(MODES), default=None, help="Risk posture (default: from config)")
@click.option("--rounds", default=None, type=int, help="Rounds before concluding (default: from config)")
@click.option("--interactive", is_flag=True, help="Pause after the rounds and ask for a comment to continue")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False, help="Skip the API connectivity check")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging for this run")
def debate(
    proposal: str | None,
    proposal_file: str | None,
    mode: str | None,
    rounds: int | None,
    interactive: bool,
    output_path: str | None,
    skip_health_check: bool,
    verbose: bool,
) -> None:
    """Run a debate in the terminal, then conclude.

    \b
    Examples:
      arena debate "Build a recommendation engine" --rounds 1
      arena debate --file proposal.md --mode aggressive --interactive
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    config = _load_or_exit()

    if proposal_file:
        text = Path(proposal_file).read_text(encoding="utf-8").strip()
    elif proposal:
        text = proposal.strip()
    else:
        console.print("[bold red]Error:[/bold red] Provide a PROPOSAL argument or --file.")
        sys.exit(1)
    if not text:
        console.print("[bold red]Error:[/bold red] Proposal cannot be empty.")
        sys.exit(1)
    if len(text) > config.defaults.max_proposal_length:
        console.print(f"[bold red]Error:[/bold red] Proposal exceeds {config.defaults.max_proposal_length} characters.")
        sys.exit(1)

    backends = build_backends(config)
    if not backends:
        console.print("[bold red]Error:[/bold red] No backends available. Check API keys in .env.")
        sys.exit(1)
    if not skip_health_check:
        backends = _check_and_filter_backends(backends)

    try:
        asyncio.run(
            _run_debate(
                config=config,
                backends=backends,
                proposal=text,
                mode=mode or config.defaults.mode,
                rounds=rounds if rounds is not None else config.defaults.rounds,
                interactive=interactive,
                output_dir=Path(output_path) if output_path else config.defaults.output_dir,
            )
        )
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


@main.command()
@click.option("--host", default=None, help="Bind address (default: from config)")
@click.option("--port", default=None, type=int, help="Port (default: from config)")
def serve(host: str | None, port: int | None) -> None:
    """Serve the debate HTTP API (SSE stream + conclusion)."""
    config = _load_or_exit()
    app = create_app(config)
    uvicorn.run(app, host=host or config.server.host, port=port or config.server.port)


@main.command()
def check() -> None:
    """Ping every configured backend and report which respond."""
    config = _load_or_exit()
    backends = build_backends(config)
    if not backends:
        console.print("[bold red]Error:[/bold red] No backends available. Check API keys in .env.")
        sys.exit(1)
    results = asyncio.run(run_health_checks(backends))
    for backend in backends:
        ok, err = results[backend.backend_id()]
        status = "[green]OK  [/green]" if ok else "[red]FAIL[/red]"
        console.print(f"  {status} {backend.backend_id()}" + ("" if ok else f": {err.splitlines()[0][:120] if err else ''}"))
    if not all(ok for ok, _ in results.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
