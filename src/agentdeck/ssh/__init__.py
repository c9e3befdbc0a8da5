"""Remote sessions — interactive shells on SSH hosts."""

from agentdeck.ssh.hosts import HostRegistry, parse_ssh_config
from agentdeck.ssh.manager import RemoteHandle, SSHManager, load_private_key

__all__ = [
    "HostRegistry",
    "RemoteHandle",
    "SSHManager",
    "load_private_key",
    "parse_ssh_config",
]
