"""Session data types — the externally visible session record."""

from __future__ import annotations

import enum
import os
import time
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AgentType(enum.Enum):
    """Closed set of agent tags a session can be created for."""

    # terminal
    SHELL = "shell"
    CLAUDE = "claude"
    CLAWBOT = "clawbot"
    OPENCODE = "opencode"
    CODEX = "codex"
    CUSTOM = "custom"
    # team
    TEAM_LEAD = "team-lead"
    DESIGNER = "designer"
    FRONTEND = "frontend"
    BACKEND = "backend"
    QA = "qa"
    DEVOPS = "devops"


class SessionStatus(enum.Enum):
    IDLE = "idle"
    WORKING = "working"
    WAITING = "waiting"
    OFFLINE = "offline"


class SessionLocation(enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


class SessionCategory(enum.Enum):
    """``terminal`` sessions have (or had) a process; ``team`` ones never do."""

    TERMINAL = "terminal"
    TEAM = "team"


AGENT_CATEGORIES: dict[AgentType, SessionCategory] = {
    AgentType.SHELL: SessionCategory.TERMINAL,
    AgentType.CLAUDE: SessionCategory.TERMINAL,
    AgentType.CLAWBOT: SessionCategory.TERMINAL,
    AgentType.OPENCODE: SessionCategory.TERMINAL,
    AgentType.CODEX: SessionCategory.TERMINAL,
    AgentType.CUSTOM: SessionCategory.TERMINAL,
    AgentType.TEAM_LEAD: SessionCategory.TEAM,
    AgentType.DESIGNER: SessionCategory.TEAM,
    AgentType.FRONTEND: SessionCategory.TEAM,
    AgentType.BACKEND: SessionCategory.TEAM,
    AgentType.QA: SessionCategory.TEAM,
    AgentType.DEVOPS: SessionCategory.TEAM,
}

_unmapped = set(AgentType) - AGENT_CATEGORIES.keys()
if _unmapped:
    raise RuntimeError(f"Agent types without a category: {sorted(a.value for a in _unmapped)}")

TERMINAL_AGENT_TYPES: list[AgentType] = [
    a for a, c in AGENT_CATEGORIES.items() if c is SessionCategory.TERMINAL
]
TEAM_AGENT_TYPES: list[AgentType] = [
    a for a, c in AGENT_CATEGORIES.items() if c is SessionCategory.TEAM
]


def agent_category(agent_type: AgentType) -> SessionCategory:
    return AGENT_CATEGORIES[agent_type]


def _default_cwd() -> str:
    return os.path.expanduser("~")


class SessionConfig(BaseModel):
    """A request to create a session, validated at the boundary.

    Length limits mirror what the front end is allowed to send. An empty
    ``cwd`` falls back to the user's home directory.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(max_length=100)
    agent_type: AgentType
    location: SessionLocation = SessionLocation.LOCAL
    ssh_host: str | None = Field(default=None, max_length=1024)
    cwd: str = Field(default_factory=_default_cwd, max_length=500)
    custom_command: str | None = Field(default=None, max_length=500)
    flags: str | None = Field(default=None, max_length=500)
    category: SessionCategory | None = None

    @field_validator("cwd", mode="before")
    @classmethod
    def _cwd_or_home(cls, value: object) -> object:
        if value is None or value == "":
            return _default_cwd()
        return value

    @property
    def resolved_category(self) -> SessionCategory:
        return self.category or agent_category(self.agent_type)


class Session(BaseModel):
    """The session record handed to callers.

    Callers always receive copies; the instance held by a backend is never
    shared.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    agent_type: AgentType
    location: SessionLocation = SessionLocation.LOCAL
    ssh_host: str | None = None
    cwd: str = ""
    status: SessionStatus = SessionStatus.IDLE
    pid: int | None = None
    created_at: float = Field(default_factory=time.time)
    last_activity: float = Field(default_factory=time.time)
    custom_command: str | None = None
    flags: str | None = None
    category: SessionCategory = SessionCategory.TERMINAL

    @classmethod
    def from_config(cls, config: SessionConfig, **overrides: object) -> Session:
        fields: dict[str, object] = {
            "name": config.name,
            "agent_type": config.agent_type,
            "location": config.location,
            "ssh_host": config.ssh_host,
            "cwd": config.cwd,
            "custom_command": config.custom_command,
            "flags": config.flags,
            "category": config.resolved_category,
        }
        fields.update(overrides)
        return cls(**fields)

    @classmethod
    def placeholder(cls, saved: Session) -> Session:
        """Cold copy of a persisted session: offline, no pid, no backing process."""
        return saved.model_copy(update={"status": SessionStatus.OFFLINE, "pid": None})

    def to_config(self) -> SessionConfig:
        """Configuration that recreates this session (used by restart)."""
        return SessionConfig(
            name=self.name,
            agent_type=self.agent_type,
            location=self.location,
            ssh_host=self.ssh_host,
            cwd=self.cwd,
            custom_command=self.custom_command,
            flags=self.flags,
            category=self.category,
        )

    def touch(self) -> None:
        self.last_activity = time.time()
