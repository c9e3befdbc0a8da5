"""Settings store — manual SSH hosts and saved sessions on disk."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from agentdeck.model.host import SSHHost
from agentdeck.model.session import Session

logger = logging.getLogger(__name__)


class StoredState(BaseModel):
    """The persisted document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ssh_hosts: list[SSHHost] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)


class SettingsStore:
    """JSON file holding the manual host list and saved sessions.

    A missing or unreadable file behaves like an empty one. Every write
    replaces the file atomically.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._state = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> StoredState:
        if not self._path.exists():
            return StoredState()
        try:
            return StoredState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, e)
            return StoredState()

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._state.model_dump_json(by_alias=True, indent=2)
        fd, tmp = tempfile.mkstemp(prefix=".settings-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self._path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_ssh_hosts(self) -> list[SSHHost]:
        with self._lock:
            return [h.model_copy() for h in self._state.ssh_hosts]

    def set_ssh_hosts(self, hosts: list[SSHHost]) -> None:
        with self._lock:
            self._state.ssh_hosts = [h.model_copy() for h in hosts]
            self._write()

    def get_saved_sessions(self) -> list[Session]:
        with self._lock:
            return [s.model_copy() for s in self._state.sessions]

    def save_sessions(self, sessions: list[Session]) -> None:
        with self._lock:
            self._state.sessions = [s.model_copy() for s in sessions]
            self._write()
