"""Error taxonomy for session orchestration."""

from __future__ import annotations


class AgentDeckError(Exception):
    """Base class for all agentdeck errors."""


class ValidationError(AgentDeckError, ValueError):
    """Malformed or oversized input rejected at the boundary."""


class HostConnectionError(AgentDeckError):
    """Remote authentication or network failure. Never retried."""


class ProcessSpawnError(AgentDeckError):
    """A local process could not be started."""


class TeardownError(AgentDeckError):
    """Closing a process or channel failed while discarding a session."""
