"""Data model — sessions, session requests, and SSH hosts."""

from agentdeck.model.host import ConnectionTestResult, HostConfig, SSHHost
from agentdeck.model.session import (
    AGENT_CATEGORIES,
    TEAM_AGENT_TYPES,
    TERMINAL_AGENT_TYPES,
    AgentType,
    Session,
    SessionCategory,
    SessionConfig,
    SessionLocation,
    SessionStatus,
    agent_category,
)

__all__ = [
    "AGENT_CATEGORIES",
    "TEAM_AGENT_TYPES",
    "TERMINAL_AGENT_TYPES",
    "AgentType",
    "ConnectionTestResult",
    "HostConfig",
    "SSHHost",
    "Session",
    "SessionCategory",
    "SessionConfig",
    "SessionLocation",
    "SessionStatus",
    "agent_category",
]
