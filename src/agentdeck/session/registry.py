"""Session registry — the single entry point for the dispatcher.

Routes every request to the backend that owns the session: local
requests go to the :class:`PTYManager`, remote ones to the
:class:`SSHManager`. Input coming from outside is validated here; the
backends trust what they receive.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from agentdeck.config import DeckConfig, SettingsStore
from agentdeck.errors import HostConnectionError, ValidationError
from agentdeck.model.host import ConnectionTestResult, HostConfig, SSHHost
from agentdeck.model.session import (
    Session,
    SessionCategory,
    SessionConfig,
    SessionLocation,
    SessionStatus,
)
from agentdeck.pty.manager import PTYManager
from agentdeck.session.backend import OutputHandler, SessionBackend, StatusHandler
from agentdeck.ssh.hosts import HostRegistry
from agentdeck.ssh.manager import SSHManager

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 100
MIN_COLS, MAX_COLS, DEFAULT_COLS = 1, 500, 120
MIN_ROWS, MAX_ROWS, DEFAULT_ROWS = 1, 200, 30


def _validate_id(value: Any, name: str = "session_id", max_length: int = MAX_ID_LENGTH) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    if len(value) > max_length:
        raise ValidationError(f"{name} exceeds maximum length of {max_length}")
    return value


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(low, min(int(value), high))


def _parse(model: type, data: Any, what: str) -> Any:
    if isinstance(data, model):
        return data
    if not isinstance(data, dict):
        raise ValidationError(f"Invalid {what}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {what}: {e}") from e


class SessionRegistry:
    """Unified view over local and remote sessions.

    Status and output observers are single slots: setting one replaces
    whatever was registered before, on both backends.
    """

    def __init__(
        self,
        config: DeckConfig | None = None,
        store: SettingsStore | None = None,
        hosts: HostRegistry | None = None,
        pty_manager: PTYManager | None = None,
        ssh_manager: SSHManager | None = None,
    ) -> None:
        self._config = config or DeckConfig()
        self._store = store or self._config.open_store()
        self._hosts = hosts or HostRegistry(self._store, self._config.ssh.ssh_config_path)
        # backends define __len__, so an empty one is falsy
        if pty_manager is None:
            pty_manager = PTYManager(
                cols=self._config.pty.cols,
                rows=self._config.pty.rows,
                term=self._config.pty.term,
                output_buffer_size=self._config.pty.output_buffer_size,
            )
        if ssh_manager is None:
            ssh_manager = SSHManager(
                connect_timeout=self._config.ssh.connect_timeout,
                cols=self._config.pty.cols,
                rows=self._config.pty.rows,
                term=self._config.pty.term,
                output_buffer_size=self._config.pty.output_buffer_size,
            )
        self._pty = pty_manager
        self._ssh = ssh_manager

    @property
    def hosts(self) -> HostRegistry:
        return self._hosts

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def set_output_handler(self, handler: OutputHandler | None) -> None:
        self._pty.set_output_handler(handler)
        self._ssh.set_output_handler(handler)

    def set_status_handler(self, handler: StatusHandler | None) -> None:
        self._pty.set_status_handler(handler)
        self._ssh.set_status_handler(handler)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _backend_for(self, session_id: str) -> SessionBackend | None:
        if self._ssh.owns(session_id):
            return self._ssh
        if self._pty.owns(session_id):
            return self._pty
        return None

    async def create_session(self, config: SessionConfig | dict[str, Any]) -> Session:
        """Create a session on the requested backend.

        Local spawn failures come back as an ``offline`` session. Remote
        requests raise if the host reference is missing or unknown, and
        propagate connection failures.

        Raises:
            ValidationError: Malformed config or unknown host reference.
            HostConnectionError: The remote host could not be reached.
        """
        config = _parse(SessionConfig, config, "session config")

        if (
            config.location is SessionLocation.REMOTE
            and config.resolved_category is SessionCategory.TERMINAL
        ):
            if not config.ssh_host:
                raise ValidationError("Remote sessions require an SSH host")
            host = self._hosts.get(config.ssh_host)
            if host is None:
                raise ValidationError(f"SSH host not found: {config.ssh_host}")
            return await self._ssh.create_remote_session(host, config)

        return await self._pty.create_session(config)

    def send_input(self, session_id: str, text: str) -> bool:
        session_id = _validate_id(session_id)
        if not isinstance(text, str):
            raise ValidationError("text must be a string")
        backend = self._backend_for(session_id)
        return backend.send_input(session_id, text) if backend else False

    def resize_pty(self, session_id: str, cols: Any, rows: Any) -> bool:
        """Resize a session's terminal, clamping to 1..500 cols, 1..200 rows."""
        session_id = _validate_id(session_id)
        cols = _clamp(cols, MIN_COLS, MAX_COLS, DEFAULT_COLS)
        rows = _clamp(rows, MIN_ROWS, MAX_ROWS, DEFAULT_ROWS)
        backend = self._backend_for(session_id)
        return backend.resize(session_id, cols, rows) if backend else False

    def kill_session(self, session_id: str) -> bool:
        session_id = _validate_id(session_id)
        backend = self._backend_for(session_id)
        return backend.kill(session_id) if backend else False

    async def restart_session(self, session_id: str) -> Session | None:
        """Replace a session with a fresh one built from the same config.

        The old session is killed and removed; the new one has a new id.
        Returns None if ``session_id`` is unknown or the replacement cannot
        be created. A remote session whose host is no longer known is left
        untouched. If the host cannot be reached, the old session stays
        registered as an offline placeholder under its own id.
        """
        session_id = _validate_id(session_id)
        backend = self._backend_for(session_id)
        old = backend.get_session(session_id) if backend else None
        if old is None:
            return None

        config = old.to_config()
        if (
            config.location is SessionLocation.REMOTE
            and config.resolved_category is SessionCategory.TERMINAL
            and (not config.ssh_host or self._hosts.get(config.ssh_host) is None)
        ):
            logger.warning(
                "Cannot restart session %s: SSH host %r is not known",
                session_id,
                config.ssh_host,
            )
            return None

        backend.remove_session(session_id)
        logger.info("Restarting session %s (%s)", session_id, old.name)
        try:
            return await self.create_session(config)
        except (HostConnectionError, ValidationError) as e:
            logger.warning("Restart of session %s failed: %s", session_id, e)
            self._pty.restore_session(old)
            return None

    def remove_session(self, session_id: str) -> bool:
        session_id = _validate_id(session_id)
        backend = self._backend_for(session_id)
        return backend.remove_session(session_id) if backend else False

    def get_session(self, session_id: str) -> Session | None:
        session_id = _validate_id(session_id)
        backend = self._backend_for(session_id)
        return backend.get_session(session_id) if backend else None

    def get_all_sessions(self) -> list[Session]:
        return [*self._pty.get_all_sessions(), *self._ssh.get_all_sessions()]

    def get_output_buffer(self, session_id: str) -> str:
        session_id = _validate_id(session_id)
        backend = self._backend_for(session_id)
        return backend.get_output_buffer(session_id) if backend else ""

    def update_session_status(self, session_id: str, status: SessionStatus | str) -> bool:
        """Apply a lifecycle notification (``idle``/``working``/``waiting``).

        Raises:
            ValidationError: Unknown status, or ``offline``, which is only
                reached through exit, channel close, or kill.
        """
        session_id = _validate_id(session_id)
        try:
            status = SessionStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown session status: {status!r}") from e
        if status is SessionStatus.OFFLINE:
            raise ValidationError("Sessions go offline only by exiting or being killed")
        backend = self._backend_for(session_id)
        return backend.update_session_status(session_id, status) if backend else False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_sessions(self) -> None:
        """Persist every known session so it can be restored as a placeholder."""
        self._store.save_sessions(self.get_all_sessions())

    def restore_sessions(self) -> list[Session]:
        """Register saved sessions as offline placeholders."""
        restored = []
        for saved in self._store.get_saved_sessions():
            if self._backend_for(saved.id) is not None:
                continue
            restored.append(self._pty.restore_session(saved))
        if restored:
            logger.info("Restored %d saved session(s)", len(restored))
        return restored

    def destroy_all(self) -> None:
        """Kill every session on both backends. One failure never blocks the other."""
        for backend in (self._pty, self._ssh):
            try:
                backend.destroy_all()
            except Exception:
                logger.exception("%s cleanup failed", type(backend).__name__)

    # ------------------------------------------------------------------
    # Hosts
    # ------------------------------------------------------------------

    def get_all_hosts(self) -> list[SSHHost]:
        return self._hosts.get_all_hosts()

    def add_manual_host(self, config: HostConfig | dict[str, Any]) -> SSHHost:
        return self._hosts.add_manual_host(_parse(HostConfig, config, "host config"))

    def remove_host(self, host_id: str) -> bool:
        return self._hosts.remove_host(_validate_id(host_id, "host_id", 1024))

    async def test_connection(self, host: SSHHost | str) -> ConnectionTestResult:
        """Test connectivity to a host given directly or by id.

        Raises:
            ValidationError: If a host id is given and not found.
        """
        if isinstance(host, str):
            found = self._hosts.get(host)
            if found is None:
                raise ValidationError(f"SSH host not found: {host}")
            host = found
        return await self._ssh.test_connection(host)
