"""Shared session backend — the id→entry arena both backends build on."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from agentdeck.errors import TeardownError
from agentdeck.model.session import Session, SessionStatus
from agentdeck.pty.buffer import OUTPUT_BUFFER_SIZE, OutputBuffer

logger = logging.getLogger(__name__)

OutputHandler = Callable[[str, str], None]
StatusHandler = Callable[[Session], None]


@dataclass
class ManagedEntry:
    """A session paired with its backend handle and output buffer.

    Owned by exactly one backend. Only copies of ``session`` leave it;
    ``handle`` never does.
    """

    session: Session
    handle: Any = None
    buffer: OutputBuffer = field(default_factory=OutputBuffer)
    closed: bool = False  # offline for good; terminal event already sent


class SessionBackend(ABC):
    """Common bookkeeping for session backends.

    Keeps the id→entry mapping behind one lock and implements everything
    that does not depend on how the session is backed: queries returning
    copies, single-slot observers, status updates, and the exactly-once
    transition to ``offline``. Subclasses supply :meth:`_teardown`.
    """

    def __init__(self, output_buffer_size: int = OUTPUT_BUFFER_SIZE) -> None:
        self._entries: dict[str, ManagedEntry] = {}
        self._lock = threading.RLock()
        self._output_buffer_size = output_buffer_size
        self._on_output: OutputHandler | None = None
        self._on_status: StatusHandler | None = None

    # ------------------------------------------------------------------
    # Observers (single slot: each call replaces the previous handler)
    # ------------------------------------------------------------------

    def set_output_handler(self, handler: OutputHandler | None) -> None:
        self._on_output = handler

    def set_status_handler(self, handler: StatusHandler | None) -> None:
        self._on_status = handler

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def owns(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            entry = self._entries.get(session_id)
            return entry.session.model_copy() if entry else None

    def get_all_sessions(self) -> list[Session]:
        with self._lock:
            return [e.session.model_copy() for e in self._entries.values()]

    def get_output_buffer(self, session_id: str) -> str:
        with self._lock:
            entry = self._entries.get(session_id)
        return entry.buffer.read() if entry else ""

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_session_status(self, session_id: str, status: SessionStatus) -> bool:
        """Apply a status reported by the hook collaborator.

        Refused for unknown ids and for sessions that are already offline.
        """
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None or entry.closed:
                return False
            entry.session.status = status
            snapshot = entry.session.model_copy()
        self._emit_status(snapshot)
        return True

    def kill(self, session_id: str) -> bool:
        """Tear down a session and mark it offline.

        Returns False for unknown ids and for sessions already offline.
        """
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            return False
        return self._close(entry)

    def remove_session(self, session_id: str) -> bool:
        """Kill (if needed) and forget a session."""
        self.kill(session_id)
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def destroy_all(self) -> None:
        with self._lock:
            ids = list(self._entries)
        for session_id in ids:
            self.kill(session_id)

    # ------------------------------------------------------------------
    # For subclasses
    # ------------------------------------------------------------------

    def _new_entry(self, session: Session, handle: Any = None) -> ManagedEntry:
        return ManagedEntry(
            session=session,
            handle=handle,
            buffer=OutputBuffer(self._output_buffer_size),
        )

    def _insert(self, entry: ManagedEntry) -> None:
        with self._lock:
            self._entries[entry.session.id] = entry

    def _record_output(self, entry: ManagedEntry, data: str) -> None:
        """Buffer a chunk and push it to the output handler."""
        with self._lock:
            if entry.closed:
                return
            entry.buffer.append(data)
            entry.session.touch()
            session_id = entry.session.id
        handler = self._on_output
        if handler is None:
            return
        try:
            handler(session_id, data)
        except Exception:
            logger.exception("Output handler failed for session %s", session_id)

    def _close(self, entry: ManagedEntry) -> bool:
        """Transition an entry to offline exactly once.

        Tears down the handle (errors are logged and ignored), freezes the
        buffer, and fires the status handler. Returns False if the entry
        was already closed.
        """
        with self._lock:
            if entry.closed:
                return False
            entry.closed = True
            handle, entry.handle = entry.handle, None
            entry.session.status = SessionStatus.OFFLINE
            entry.session.pid = None
            entry.buffer.freeze()
            snapshot = entry.session.model_copy()

        if handle is not None:
            try:
                self._teardown(handle)
            except Exception as e:
                err = TeardownError(f"Teardown of session {snapshot.id} failed: {e}")
                logger.debug("%s", err)

        self._emit_status(snapshot)
        return True

    @abstractmethod
    def send_input(self, session_id: str, text: str) -> bool:
        """Write ``text`` to the session. False if it cannot take input."""
        ...

    @abstractmethod
    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        ...

    @abstractmethod
    def _teardown(self, handle: Any) -> None:
        """Release a backend handle. Must tolerate already-dead handles."""
        ...

    def _emit_status(self, session: Session) -> None:
        handler = self._on_status
        if handler is None:
            return
        try:
            handler(session)
        except Exception:
            logger.exception("Status handler failed for session %s", session.id)
