"""Tests for arena/session.py."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from arena.events import MessageEnd, MessageStart, RoundStart, Token
from arena.models import Conclusion
from arena.session import SessionController, SessionStateError, SessionStatus, SnapshotStore
from tests.conftest import MockBackend, make_orchestrator, make_roles


@pytest.fixture
def backends() -> list[MockBackend]:
    return [MockBackend("mock-a", fragments=("Answer ", "A")), MockBackend("mock-b", fragments=("Answer ", "B"))]


@pytest.fixture
def concluder() -> AsyncMock:
    return AsyncMock(return_value=Conclusion(strategy_summary="Go", profitability_model="Fees"))


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "state" / "session.json")


@pytest.fixture
def controller(sample_prompts_config, backends, concluder, store) -> SessionController:
    orchestrator = make_orchestrator(sample_prompts_config, make_roles(2), backends)
    return SessionController(orchestrator, concluder, store)


async def _run_until_messages(controller: SessionController, count: int) -> None:
    """Let the running debate produce `count` completed messages, then pause."""
    reached = asyncio.Event()

    def listener(event):
        if isinstance(event, MessageEnd) and len(controller.messages) >= count:
            reached.set()

    controller.add_listener(listener)
    await asyncio.wait_for(reached.wait(), timeout=5)
    await controller.pause()


async def test_start_then_pause_keeps_only_complete_messages(controller):
    await controller.start("Launch a podcast network", "aggressive")
    assert controller.status is SessionStatus.RUNNING

    await _run_until_messages(controller, 3)

    assert controller.status is SessionStatus.PAUSED
    assert len(controller.messages) >= 3
    assert all(m.content.startswith("Answer ") for m in controller.messages)
    assert controller.messages[0].agent == "researcher:mock-a"
    assert controller.current_round >= 2
    assert controller.iteration == 1


async def test_events_are_forwarded_to_listeners(sample_prompts_config, backends, concluder):
    seen = []
    orchestrator = make_orchestrator(sample_prompts_config, make_roles(2), backends)
    controller = SessionController(orchestrator, concluder, listeners=[seen.append])

    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 1)

    assert isinstance(seen[0], RoundStart)
    assert isinstance(seen[1], MessageStart)
    assert isinstance(seen[2], Token)


async def test_failing_listener_does_not_end_the_run(sample_prompts_config, backends, concluder, caplog):
    def broken(event):
        raise ValueError("render failed")

    orchestrator = make_orchestrator(sample_prompts_config, make_roles(2), backends)
    controller = SessionController(orchestrator, concluder, listeners=[broken])

    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 2)

    assert controller.status is SessionStatus.PAUSED
    assert len(controller.messages) >= 2
    assert "render failed" in caplog.text


async def test_start_while_running_raises(controller):
    await controller.start("Launch", "balanced")
    with pytest.raises(SessionStateError):
        await controller.start("Again", "balanced")
    await controller.pause()


async def test_pause_when_idle_raises(controller):
    with pytest.raises(SessionStateError):
        await controller.pause()


async def test_continue_requires_pause(controller):
    with pytest.raises(SessionStateError):
        await controller.continue_with_comment("More detail please")


async def test_continue_with_comment_resumes_with_comment_in_prompt(controller, backends):
    await controller.start("Launch a podcast network", "balanced")
    await _run_until_messages(controller, 2)
    before = len(controller.messages)

    await controller.continue_with_comment("Focus on advertising revenue.")
    assert controller.status is SessionStatus.RUNNING
    comment = controller.messages[before]
    assert comment.agent == "user"
    assert comment.content == "Focus on advertising revenue."

    await _run_until_messages(controller, before + 2)

    prompts = ["\n".join(m["content"] for m in call) for b in backends for call in b.calls]
    assert any("Focus on advertising revenue." in p for p in prompts)


async def test_stop_without_agent_messages_skips_conclusion(controller, concluder):
    await controller.start("Launch", "balanced")
    await controller.pause()

    result = await controller.stop()

    assert result is None
    assert controller.status is SessionStatus.IDLE
    concluder.assert_not_awaited()


async def test_stop_concludes_over_transcript(controller, concluder):
    await controller.start("Launch a podcast network", "conservative")
    await _run_until_messages(controller, 2)

    result = await controller.stop()

    assert result.strategy_summary == "Go"
    assert controller.status is SessionStatus.COMPLETED
    proposal, transcript, mode = concluder.await_args.args
    assert proposal == "Launch a podcast network"
    assert mode == "conservative"
    assert [e.agent for e in transcript] == [m.agent for m in controller.messages]


async def test_stop_failure_returns_to_paused(controller, concluder):
    concluder.side_effect = RuntimeError("judge offline")
    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 1)

    with pytest.raises(RuntimeError):
        await controller.stop()

    assert controller.status is SessionStatus.PAUSED
    assert controller.error == "judge offline"


async def test_refine_starts_next_iteration(controller):
    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 1)
    await controller.stop()

    await controller.refine()

    assert controller.status is SessionStatus.RUNNING
    assert controller.iteration == 2
    assert controller.conclusion is None
    assert controller.messages == []
    await controller.pause()


async def test_refine_without_conclusion_raises(controller):
    with pytest.raises(SessionStateError):
        await controller.refine()


async def test_reset_clears_state_and_snapshot(controller, store):
    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 1)
    assert store.path.exists()

    await controller.reset()

    assert controller.status is SessionStatus.IDLE
    assert controller.messages == []
    assert controller.proposal == ""
    assert not store.path.exists()


async def test_restore_reloads_paused_session(sample_prompts_config, backends, concluder, controller, store):
    await controller.start("Launch a podcast network", "aggressive")
    await _run_until_messages(controller, 2)
    saved = [m.to_dict() for m in controller.messages]

    orchestrator = make_orchestrator(sample_prompts_config, make_roles(2), backends)
    fresh = SessionController(orchestrator, concluder, store)

    assert fresh.restore() is True
    assert fresh.status is SessionStatus.PAUSED
    assert [m.to_dict() for m in fresh.messages] == saved
    assert fresh.proposal == "Launch a podcast network"
    assert fresh.mode == "aggressive"


async def test_restore_with_conclusion_is_completed(sample_prompts_config, backends, concluder, controller, store):
    await controller.start("Launch", "balanced")
    await _run_until_messages(controller, 1)
    await controller.stop()

    orchestrator = make_orchestrator(sample_prompts_config, make_roles(2), backends)
    fresh = SessionController(orchestrator, concluder, store)

    assert fresh.restore() is True
    assert fresh.status is SessionStatus.COMPLETED
    assert fresh.conclusion.strategy_summary == "Go"


def test_snapshot_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert SnapshotStore(path).load() is None


def test_snapshot_store_clear_missing_file(tmp_path):
    SnapshotStore(tmp_path / "absent.json").clear()
