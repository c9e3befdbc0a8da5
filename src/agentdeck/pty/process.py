"""PTY process — one local child running inside a pseudo-terminal."""

from __future__ import annotations

import asyncio
import codecs
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
import time
from dataclasses import dataclass, field
from typing import Callable

from agentdeck.errors import ProcessSpawnError

logger = logging.getLogger(__name__)

READ_CHUNK = 4096
REAP_TIMEOUT = 2.0
REAP_POLL = 0.02


class ProcessStatus(enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    KILLING = "killing"
    KILLED = "killed"  # ended by kill(); no exit callback
    EXITED = "exited"  # ended on its own


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


@dataclass
class PTYProcess:
    """A child process attached to the slave side of a PTY pair.

    The child leads its own session, so :meth:`kill` takes down everything
    it started. The master fd is non-blocking and watched by the event
    loop itself, so a session costs no executor thread. Output is handed
    to ``on_data`` as decoded text, chunk by chunk, in the order it
    arrived. ``on_exit`` fires once, and only when the child ends by
    itself.
    """

    argv: list[str] = field(default_factory=list)
    cwd: str = field(default_factory=os.getcwd)
    extra_env: dict[str, str] = field(default_factory=dict)
    cols: int = 120
    rows: int = 30
    term: str = "xterm-256color"

    _fd: int = field(default=-1, init=False)
    _popen: subprocess.Popen | None = field(default=None, init=False)
    _pgid: int = field(default=0, init=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _watching: bool = field(default=False, init=False)
    _decoder: codecs.IncrementalDecoder | None = field(default=None, init=False)
    _reaper: asyncio.Task | None = field(default=None, init=False)
    _status: ProcessStatus = field(default=ProcessStatus.PENDING, init=False)
    _on_data: Callable[[str], None] | None = field(default=None, init=False)
    _on_exit: Callable[[PTYProcess, int | None], None] | None = field(
        default=None, init=False
    )

    def set_on_data(self, callback: Callable[[str], None]) -> None:
        self._on_data = callback

    def set_on_exit(self, callback: Callable[[PTYProcess, int | None], None]) -> None:
        """Register ``callback(process, exit_code)`` for a natural exit.

        Runs on the event loop. Not invoked after :meth:`kill`.
        """
        self._on_exit = callback

    async def start(self) -> None:
        """Open the PTY pair and launch the child on its slave side.

        Does not yield to the event loop, so callbacks registered before
        this call see every chunk.

        Raises:
            ProcessSpawnError: If the PTY or the process cannot be created.
        """
        try:
            master, slave = pty.openpty()
        except OSError as e:
            raise ProcessSpawnError(f"Could not open a PTY: {e}") from e

        env = dict(os.environ)
        env.update(self.extra_env)
        env["TERM"] = self.term

        try:
            _set_winsize(master, self.cols, self.rows)
            self._popen = subprocess.Popen(
                self.argv,
                stdin=slave,
                stdout=slave,
                stderr=slave,
                cwd=self.cwd,
                env=env,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            os.close(master)
            shown = " ".join(self.argv) or "<empty command>"
            raise ProcessSpawnError(f"Could not start {shown}: {e}") from e
        finally:
            # the child holds its own copy
            os.close(slave)

        self._fd = master
        try:
            self._pgid = os.getpgid(self._popen.pid)
        except ProcessLookupError:
            self._pgid = self._popen.pid
        self._status = ProcessStatus.RUNNING

        os.set_blocking(master, False)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(master, self._on_readable)
        self._watching = True
        logger.info("Started pid=%d in %s: %s", self.pid, self.cwd, " ".join(self.argv))

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, READ_CHUNK)
        except BlockingIOError:
            return
        except OSError:
            # EIO: the slave side is closed
            data = b""

        if not data:
            self._stop_watching()
            if self._status is ProcessStatus.RUNNING and self._reaper is None:
                self._reaper = self._loop.create_task(self._finish())
            return

        text = self._decoder.decode(data)
        if text and self._on_data is not None and self._status is ProcessStatus.RUNNING:
            try:
                self._on_data(text)
            except Exception:
                logger.exception("Data callback failed for pid=%d", self.pid)

    def _stop_watching(self) -> None:
        if self._watching and self._loop is not None:
            self._loop.remove_reader(self._fd)
        self._watching = False

    async def _finish(self) -> None:
        code: int | None = None
        if self._popen is not None:
            deadline = time.monotonic() + REAP_TIMEOUT
            code = self._popen.poll()
            while code is None and time.monotonic() < deadline:
                await asyncio.sleep(REAP_POLL)
                code = self._popen.poll()
        if self._status is not ProcessStatus.RUNNING:
            # killed while we were waiting
            return
        self._status = ProcessStatus.EXITED
        self._release_fd()
        logger.info("pid=%d exited with %s", self.pid, code)
        if self._on_exit is None:
            return
        try:
            self._on_exit(self, code)
        except Exception:
            logger.exception("Exit callback failed for pid=%d", self.pid)

    def write(self, data: str) -> None:
        """Send ``data`` to the child's terminal.

        Raises:
            RuntimeError: If the process is not running.
            OSError: If the write itself fails, including BlockingIOError
                when the terminal's input queue is full.
        """
        self._require_running()
        os.write(self._fd, data.encode("utf-8"))

    def resize(self, cols: int, rows: int) -> None:
        """Apply a new geometry and send SIGWINCH to the child's group.

        Raises:
            RuntimeError: If the process is not running.
            OSError: If the ioctl fails.
        """
        self._require_running()
        _set_winsize(self._fd, cols, rows)
        self.cols, self.rows = cols, rows
        try:
            os.killpg(self._pgid, signal.SIGWINCH)
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        """SIGKILL the child's whole group and reap it. No-op once it has ended."""
        if self._status not in (ProcessStatus.RUNNING, ProcessStatus.KILLING):
            self._release_fd()
            return

        self._status = ProcessStatus.KILLING
        try:
            os.killpg(self._pgid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Group %d was already gone", self._pgid)
        else:
            logger.info("Killed pid=%d (group %d)", self.pid, self._pgid)

        if self._popen is not None:
            try:
                self._popen.wait(timeout=REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("pid=%d survived SIGKILL", self.pid)

        self._release_fd()
        self._status = ProcessStatus.KILLED

    def _require_running(self) -> None:
        if self._status is not ProcessStatus.RUNNING:
            raise RuntimeError(f"pid={self.pid} is not running ({self._status.value})")

    def _release_fd(self) -> None:
        if self._fd < 0:
            return
        self._stop_watching()
        try:
            os.close(self._fd)
        except OSError:
            pass
        self._fd = -1

    @property
    def alive(self) -> bool:
        return self._status is ProcessStatus.RUNNING

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def pid(self) -> int:
        return self._popen.pid if self._popen is not None else 0
