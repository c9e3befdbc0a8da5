"""agentdeck — launch and supervise local and remote agent terminals."""

__version__ = "0.1.0"
