"""SSH Manager — the remote shell backend."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable

import paramiko

from agentdeck.command import compose_remote_command
from agentdeck.errors import HostConnectionError
from agentdeck.model.host import ConnectionTestResult, SSHHost
from agentdeck.model.session import (
    Session,
    SessionCategory,
    SessionConfig,
    SessionLocation,
    SessionStatus,
)
from agentdeck.pty.buffer import OUTPUT_BUFFER_SIZE
from agentdeck.session.backend import ManagedEntry, SessionBackend

logger = logging.getLogger(__name__)

RECV_CHUNK = 32768


@dataclass
class RemoteHandle:
    """The connection and interactive shell channel behind a remote session."""

    client: paramiko.SSHClient
    channel: paramiko.Channel


def load_private_key(identity_file: str | None) -> paramiko.PKey | None:
    """Load the key at ``identity_file`` (tilde-expanded), if it exists.

    No passphrase support: the file is used verbatim.

    Raises:
        HostConnectionError: If the file exists but is not a usable key.
    """
    if not identity_file:
        return None
    key_path = os.path.expanduser(identity_file)
    if not os.path.isfile(key_path):
        logger.debug("Identity file %s not found, relying on other auth", key_path)
        return None
    try:
        return paramiko.PKey.from_path(key_path)
    except Exception as e:  # UnknownKeyType is not an SSHException
        raise HostConnectionError(f"Could not load identity file {key_path}: {e}") from e


class SSHManager(SessionBackend):
    """Runs sessions inside interactive shells on remote hosts.

    Each session owns one client connection with one shell channel. The
    agent is started by typing a single sanitized ``cd ... && <agent>``
    line into that shell. Connection attempts are made once; there is no
    retry.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        cols: int = 120,
        rows: int = 30,
        term: str = "xterm-256color",
        output_buffer_size: int = OUTPUT_BUFFER_SIZE,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        super().__init__(output_buffer_size=output_buffer_size)
        self._connect_timeout = connect_timeout
        self._cols = cols
        self._rows = rows
        self._term = term
        self._client_factory = client_factory

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connect(self, host: SSHHost) -> paramiko.SSHClient:
        """Open an authenticated connection to ``host``. Blocking.

        Raises:
            HostConnectionError: On any network or authentication failure.
        """
        pkey = load_private_key(host.identity_file)

        client = self._client_factory()
        with contextlib.suppress(OSError):  # System host keys may not exist
            client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())  # nosec B507

        kwargs: dict[str, object] = {
            "hostname": host.hostname,
            "port": host.port,
            "username": host.username or None,
            "timeout": self._connect_timeout,
            "banner_timeout": self._connect_timeout,
            "auth_timeout": self._connect_timeout,
        }
        if pkey is not None:
            kwargs["pkey"] = pkey

        try:
            client.connect(**kwargs)
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise HostConnectionError(str(e) or type(e).__name__) from e

        logger.info("Connected to %s (%s:%d)", host.name, host.hostname, host.port)
        return client

    async def test_connection(self, host: SSHHost) -> ConnectionTestResult:
        """Try to connect once and report the outcome."""
        try:
            client = await asyncio.to_thread(self.connect, host)
        except HostConnectionError as e:
            return ConnectionTestResult(success=False, error=str(e))
        client.close()
        return ConnectionTestResult(success=True)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_remote_session(self, host: SSHHost, config: SessionConfig) -> Session:
        """Connect, open a shell channel, and start the agent in it.

        Raises:
            HostConnectionError: If the connection or the channel fails.
        """
        client = await asyncio.to_thread(self.connect, host)
        try:
            channel = await asyncio.to_thread(
                client.invoke_shell, term=self._term, width=self._cols, height=self._rows
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise HostConnectionError(f"Could not open a shell on {host.name}: {e}") from e

        session = Session.from_config(
            config,
            location=SessionLocation.REMOTE,
            ssh_host=host.id,
            category=SessionCategory.TERMINAL,
            status=SessionStatus.IDLE,
        )
        entry = self._new_entry(session, handle=RemoteHandle(client=client, channel=channel))

        start_line = compose_remote_command(
            config.cwd, config.agent_type, config.custom_command, config.flags
        )
        try:
            channel.sendall(start_line.encode("utf-8"))
        except (OSError, paramiko.SSHException) as e:
            self._teardown(entry.handle)
            raise HostConnectionError(f"Could not start agent on {host.name}: {e}") from e

        self._insert(entry)
        reader = threading.Thread(
            target=self._pump,
            args=(asyncio.get_running_loop(), entry, channel),
            name=f"ssh-reader-{session.id[:8]}",
            daemon=True,
        )
        reader.start()
        logger.info("Remote session %s started on %s", session.id, host.name)
        self._emit_status(session.model_copy())
        return session.model_copy()

    def _pump(
        self,
        loop: asyncio.AbstractEventLoop,
        entry: ManagedEntry,
        channel: paramiko.Channel,
    ) -> None:
        """Reader thread: forward channel output to the loop until the channel closes.

        One thread per session, kept out of the loop's default executor.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while not entry.closed:
                try:
                    data = channel.recv(RECV_CHUNK)
                except (OSError, EOFError, paramiko.SSHException):
                    break
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    loop.call_soon_threadsafe(self._record_output, entry, text)
        finally:
            try:
                loop.call_soon_threadsafe(self._channel_closed, entry)
            except RuntimeError:
                # loop already closed during shutdown
                self._close(entry)

    def _channel_closed(self, entry: ManagedEntry) -> None:
        if not entry.closed:
            logger.info("Remote session %s channel closed", entry.session.id)
        self._close(entry)

    def send_input(self, session_id: str, text: str) -> bool:
        """Write ``text`` to the session's channel. False if it is gone."""
        with self._lock:
            entry = self._entries.get(session_id)
            handle = entry.handle if entry else None
        if handle is None or handle.channel.closed:
            return False
        try:
            handle.channel.sendall(text.encode("utf-8"))
        except (OSError, paramiko.SSHException) as e:
            logger.debug("Input to remote session %s failed: %s", session_id, e)
            return False
        with self._lock:
            entry.session.touch()
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
            handle = entry.handle if entry else None
        if handle is None:
            return False
        try:
            handle.channel.resize_pty(width=cols, height=rows)
        except (OSError, paramiko.SSHException) as e:
            logger.debug("Resize of remote session %s failed: %s", session_id, e)
            return False
        return True

    def _teardown(self, handle: RemoteHandle) -> None:
        try:
            handle.channel.close()
        finally:
            handle.client.close()
