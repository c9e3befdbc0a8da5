"""PTY Manager — the local process backend."""

from __future__ import annotations

import logging

from agentdeck.command import resolve_command
from agentdeck.errors import ProcessSpawnError
from agentdeck.model.session import (
    Session,
    SessionCategory,
    SessionConfig,
    SessionStatus,
)
from agentdeck.pty.buffer import OUTPUT_BUFFER_SIZE
from agentdeck.pty.process import PTYProcess
from agentdeck.session.backend import SessionBackend

logger = logging.getLogger(__name__)


class PTYManager(SessionBackend):
    """Runs local sessions, each in its own PTY.

    The manager ensures:
    - Spawn failures never escape: the session comes back ``offline``
    - Output reaches the buffer and the output handler in receipt order
    - Exactly one ``offline`` status event per session, whether it exited
      or was killed
    - Team sessions are tracked without any process behind them
    """

    def __init__(
        self,
        cols: int = 120,
        rows: int = 30,
        term: str = "xterm-256color",
        output_buffer_size: int = OUTPUT_BUFFER_SIZE,
    ) -> None:
        super().__init__(output_buffer_size=output_buffer_size)
        self._cols = cols
        self._rows = rows
        self._term = term

    async def create_session(self, config: SessionConfig) -> Session:
        """Create a local session and start its process.

        Returns the new session: ``idle`` with a pid when the process is
        running, ``offline`` without one when it could not be spawned.
        """
        category = config.resolved_category
        if category is SessionCategory.TEAM:
            return self._create_virtual_session(config)

        cmd, args = resolve_command(config.agent_type, config.custom_command, config.flags)
        process = PTYProcess(
            argv=[cmd, *args],
            cwd=config.cwd,
            cols=self._cols,
            rows=self._rows,
            term=self._term,
        )
        session = Session.from_config(config, category=SessionCategory.TERMINAL)
        entry = self._new_entry(session, handle=process)

        process.set_on_data(lambda data: self._record_output(entry, data))
        process.set_on_exit(lambda _proc, _code: self._close(entry))

        try:
            await process.start()
        except ProcessSpawnError as e:
            logger.error("PTY spawn failed for %s: %s", config.name, e)
            entry.handle = None
            entry.closed = True
            session.status = SessionStatus.OFFLINE
            entry.buffer.freeze()
            self._insert(entry)
            self._emit_status(session.model_copy())
            return session.model_copy()

        session.pid = process.pid
        session.status = SessionStatus.IDLE
        self._insert(entry)
        self._emit_status(session.model_copy())
        return session.model_copy()

    def _create_virtual_session(self, config: SessionConfig) -> Session:
        session = Session.from_config(
            config,
            category=SessionCategory.TEAM,
            ssh_host=None,
            custom_command=None,
            flags=None,
        )
        self._insert(self._new_entry(session))
        logger.info("Virtual session %s (%s) created", session.id, config.agent_type.value)
        self._emit_status(session.model_copy())
        return session.model_copy()

    def send_input(self, session_id: str, text: str) -> bool:
        """Write ``text`` to the session's process. False if there is none."""
        with self._lock:
            entry = self._entries.get(session_id)
            process = entry.handle if entry else None
        if process is None or not process.alive:
            return False
        try:
            process.write(text)
        except (OSError, RuntimeError) as e:
            logger.debug("Input to session %s failed: %s", session_id, e)
            return False
        with self._lock:
            entry.session.touch()
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        """Forward a geometry change. Bounds are the caller's concern."""
        with self._lock:
            entry = self._entries.get(session_id)
            process = entry.handle if entry else None
        if process is None:
            return False
        try:
            process.resize(cols, rows)
        except (OSError, RuntimeError) as e:
            logger.debug("Resize of session %s failed: %s", session_id, e)
            return False
        return True

    def restore_session(self, saved: Session) -> Session:
        """Register a persisted session as a cold, offline placeholder."""
        session = Session.placeholder(saved)
        entry = self._new_entry(session)
        entry.closed = True
        entry.buffer.freeze()
        self._insert(entry)
        return session.model_copy()

    def _teardown(self, handle: PTYProcess) -> None:
        handle.kill()
