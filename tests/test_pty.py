"""Tests for agentdeck.pty (PTYProcess and PTYManager) against real processes."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Callable

import pytest

from agentdeck.model import (
    AgentType,
    Session,
    SessionCategory,
    SessionConfig,
    SessionStatus,
)
from agentdeck.pty.manager import PTYManager
from agentdeck.session.backend import SessionBackend


async def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def _custom(command: str, **kwargs) -> SessionConfig:
    return SessionConfig(name=command, agent_type=AgentType.CUSTOM, custom_command=command, **kwargs)


@pytest.fixture
async def manager():
    m = PTYManager(cols=80, rows=24)
    yield m
    m.destroy_all()
    await asyncio.sleep(0.05)


class _Recorder:
    def __init__(self) -> None:
        self.statuses: list[Session] = []
        self.output: list[tuple[str, str]] = []

    def on_status(self, session: Session) -> None:
        self.statuses.append(session)

    def on_output(self, session_id: str, data: str) -> None:
        self.output.append((session_id, data))

    def statuses_for(self, session_id: str) -> list[SessionStatus]:
        return [s.status for s in self.statuses if s.id == session_id]


@pytest.fixture
def recorder(manager: PTYManager) -> _Recorder:
    r = _Recorder()
    manager.set_status_handler(r.on_status)
    manager.set_output_handler(r.on_output)
    return r


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_running_session(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("cat"))
        assert s.status is SessionStatus.IDLE
        assert s.pid is not None and s.pid > 0
        assert s.category is SessionCategory.TERMINAL
        assert manager.owns(s.id)
        assert recorder.statuses_for(s.id) == [SessionStatus.IDLE]

    async def test_echo_input(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("cat"))
        assert manager.send_input(s.id, "ping-123\n") is True
        await _wait_until(lambda: "ping-123" in manager.get_output_buffer(s.id))
        assert any(sid == s.id and "ping" in data for sid, data in recorder.output)

    async def test_natural_exit(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("echo hello"))
        await _wait_until(lambda: SessionStatus.OFFLINE in recorder.statuses_for(s.id))
        assert recorder.statuses_for(s.id) == [SessionStatus.IDLE, SessionStatus.OFFLINE]
        assert "hello" in manager.get_output_buffer(s.id)

        current = manager.get_session(s.id)
        assert current is not None
        assert current.status is SessionStatus.OFFLINE
        assert current.pid is None
        # killing an exited session is a no-op
        assert manager.kill(s.id) is False
        assert recorder.statuses_for(s.id).count(SessionStatus.OFFLINE) == 1

    async def test_bad_cwd(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("cat", cwd="/nonexistent/agentdeck-dir"))
        assert s.status is SessionStatus.OFFLINE
        assert s.pid is None
        assert manager.get_session(s.id) is not None
        assert recorder.statuses_for(s.id) == [SessionStatus.OFFLINE]

    async def test_bad_executable(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("agentdeck-no-such-binary --flag"))
        assert s.status is SessionStatus.OFFLINE
        assert s.pid is None
        assert manager.send_input(s.id, "x") is False

    async def test_shell(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(SessionConfig(name="sh", agent_type=AgentType.SHELL))
        assert s.status is SessionStatus.IDLE
        manager.send_input(s.id, "echo marker-$((6*7))\n")
        await _wait_until(lambda: "marker-42" in manager.get_output_buffer(s.id))
        manager.send_input(s.id, "exit\n")
        await _wait_until(lambda: SessionStatus.OFFLINE in recorder.statuses_for(s.id))

    async def test_returns_copies(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("cat"))
        s.name = "changed"
        assert manager.get_session(s.id).name == "cat"


# ---------------------------------------------------------------------------
# Kill
# ---------------------------------------------------------------------------


class TestKill:
    async def test_kill_once(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("cat"))
        assert manager.kill(s.id) is True
        assert manager.kill(s.id) is False
        await asyncio.sleep(0.1)
        assert recorder.statuses_for(s.id) == [SessionStatus.IDLE, SessionStatus.OFFLINE]

        current = manager.get_session(s.id)
        assert current.status is SessionStatus.OFFLINE
        assert current.pid is None

    async def test_no_input_after_kill(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("cat"))
        manager.kill(s.id)
        assert manager.send_input(s.id, "late\n") is False

    async def test_buffer_frozen_after_kill(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("cat"))
        manager.send_input(s.id, "before\n")
        await _wait_until(lambda: "before" in manager.get_output_buffer(s.id))
        manager.kill(s.id)
        snapshot = manager.get_output_buffer(s.id)
        await asyncio.sleep(0.1)
        assert manager.get_output_buffer(s.id) == snapshot

    async def test_kill_unknown(self, manager: PTYManager) -> None:
        assert manager.kill("missing") is False

    async def test_remove(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(_custom("cat"))
        assert manager.remove_session(s.id) is True
        assert manager.get_session(s.id) is None
        assert manager.get_output_buffer(s.id) == ""
        assert recorder.statuses_for(s.id)[-1] is SessionStatus.OFFLINE
        assert manager.remove_session(s.id) is False


# ---------------------------------------------------------------------------
# Resize, isolation
# ---------------------------------------------------------------------------


class TestResize:
    async def test_resize_live(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("cat"))
        assert manager.resize(s.id, 100, 40) is True

    async def test_resize_after_kill(self, manager: PTYManager) -> None:
        s = await manager.create_session(_custom("cat"))
        manager.kill(s.id)
        assert manager.resize(s.id, 100, 40) is False

    async def test_resize_unknown(self, manager: PTYManager) -> None:
        assert manager.resize("missing", 100, 40) is False


class TestIsolation:
    async def test_two_sessions(self, manager: PTYManager, recorder: _Recorder) -> None:
        a = await manager.create_session(_custom("cat"))
        b = await manager.create_session(_custom("cat"))
        assert a.id != b.id
        manager.send_input(a.id, "only-a\n")
        manager.send_input(b.id, "only-b\n")
        await _wait_until(lambda: "only-a" in manager.get_output_buffer(a.id))
        await _wait_until(lambda: "only-b" in manager.get_output_buffer(b.id))
        assert "only-b" not in manager.get_output_buffer(a.id)
        assert "only-a" not in manager.get_output_buffer(b.id)

        manager.kill(a.id)
        assert manager.get_session(b.id).status is SessionStatus.IDLE
        assert manager.send_input(b.id, "still\n") is True

    async def test_more_sessions_than_executor_workers(
        self, manager: PTYManager, recorder: _Recorder
    ) -> None:
        # default ThreadPoolExecutor size
        workers = min(32, (os.cpu_count() or 1) + 4)
        for _ in range(workers + 1):
            idle = await manager.create_session(_custom("cat"))
            assert idle.status is SessionStatus.IDLE

        s = await manager.create_session(_custom("echo overflow-marker"))
        await _wait_until(lambda: "overflow-marker" in manager.get_output_buffer(s.id))
        await _wait_until(lambda: SessionStatus.OFFLINE in recorder.statuses_for(s.id))
        # a thread-pool job still gets a worker
        assert await asyncio.to_thread(lambda: 7) == 7


# ---------------------------------------------------------------------------
# Virtual and restored sessions
# ---------------------------------------------------------------------------


class TestVirtual:
    async def test_team_session(self, manager: PTYManager, recorder: _Recorder) -> None:
        s = await manager.create_session(
            SessionConfig(name="qa", agent_type=AgentType.QA, flags="--x", custom_command="y")
        )
        assert s.category is SessionCategory.TEAM
        assert s.status is SessionStatus.IDLE
        assert s.pid is None
        assert s.flags is None and s.custom_command is None
        assert manager.send_input(s.id, "hi") is False
        assert manager.resize(s.id, 80, 24) is False
        assert manager.update_session_status(s.id, SessionStatus.WORKING) is True
        assert manager.kill(s.id) is True
        assert recorder.statuses_for(s.id) == [
            SessionStatus.IDLE,
            SessionStatus.WORKING,
            SessionStatus.OFFLINE,
        ]

    async def test_restore_placeholder(self, manager: PTYManager, recorder: _Recorder) -> None:
        saved = Session(name="old", agent_type=AgentType.CLAUDE, status=SessionStatus.WORKING, pid=99)
        s = manager.restore_session(saved)
        assert s.id == saved.id
        assert s.status is SessionStatus.OFFLINE
        assert s.pid is None
        assert manager.send_input(s.id, "x") is False
        assert manager.update_session_status(s.id, SessionStatus.IDLE) is False
        assert manager.kill(s.id) is False
        assert recorder.statuses_for(s.id) == []


# ---------------------------------------------------------------------------
# Backend contract
# ---------------------------------------------------------------------------


class TestBackendContract:
    def test_base_cannot_be_instantiated(self) -> None:
        with pytest.raises(TypeError):
            SessionBackend()

    def test_partial_backend_cannot_be_instantiated(self) -> None:
        class InputOnly(SessionBackend):
            def send_input(self, session_id: str, text: str) -> bool:
                return False

        with pytest.raises(TypeError):
            InputOnly()
