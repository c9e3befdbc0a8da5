"""Host resolution — ssh client config hosts plus manually added hosts."""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any

import paramiko

from agentdeck.config.store import SettingsStore
from agentdeck.model.host import HostConfig, SSHHost

logger = logging.getLogger(__name__)

DEFAULT_SSH_CONFIG = "~/.ssh/config"


def _is_concrete(pattern: str) -> bool:
    return bool(pattern) and not any(ch in pattern for ch in "*?!")


def _host_from_config(config: paramiko.SSHConfig, alias: str) -> SSHHost:
    options = config.lookup(alias)
    identity_files = options.get("identityfile") or []
    return SSHHost(
        id=f"ssh-config-{alias}",
        name=alias,
        hostname=options.get("hostname") or alias,
        port=int(options.get("port") or 22),
        username=options.get("user") or "",
        identity_file=identity_files[0] if identity_files else None,
        is_manual=False,
    )


def parse_ssh_config(path: str = DEFAULT_SSH_CONFIG) -> list[SSHHost]:
    """Read concrete ``Host`` entries from an ssh client config file.

    Wildcard and negated patterns are skipped, and so is any entry with an
    unusable option such as a non-numeric ``Port``. Returns an empty list
    if the file is missing or cannot be parsed.
    """
    config_path = os.path.expanduser(path)
    if not os.path.isfile(config_path):
        return []

    try:
        config = paramiko.SSHConfig.from_path(config_path)
    except (OSError, ValueError, paramiko.SSHException) as e:
        logger.warning("Could not parse ssh config %s: %s", config_path, e)
        return []

    hosts: list[SSHHost] = []
    for alias in sorted(config.get_hostnames()):
        if not _is_concrete(alias):
            continue
        try:
            hosts.append(_host_from_config(config, alias))
        except (ValueError, paramiko.SSHException) as e:
            logger.warning("Skipping host %s in %s: %s", alias, config_path, e)
    return hosts


class HostRegistry:
    """All hosts a remote session can target.

    Config-file hosts are re-read on every query; manual hosts live in the
    settings store.
    """

    def __init__(self, store: SettingsStore, ssh_config_path: str = DEFAULT_SSH_CONFIG) -> None:
        self._store = store
        self._ssh_config_path = ssh_config_path

    def config_hosts(self) -> list[SSHHost]:
        return parse_ssh_config(self._ssh_config_path)

    def manual_hosts(self) -> list[SSHHost]:
        return self._store.get_ssh_hosts()

    def get_all_hosts(self) -> list[SSHHost]:
        """Config-file hosts followed by manual hosts."""
        return [*self.config_hosts(), *self.manual_hosts()]

    def get(self, host_id: str) -> SSHHost | None:
        for host in self.get_all_hosts():
            if host.id == host_id:
                return host
        return None

    def add_manual_host(self, config: HostConfig | dict[str, Any]) -> SSHHost:
        """Persist a new manual host under a freshly generated id."""
        if not isinstance(config, HostConfig):
            config = HostConfig.model_validate(config)
        host = SSHHost(**config.model_dump(), id=str(uuid.uuid4()), is_manual=True)
        hosts = self._store.get_ssh_hosts()
        hosts.append(host)
        self._store.set_ssh_hosts(hosts)
        logger.info("Added manual host %s (%s@%s)", host.name, host.username, host.hostname)
        return host

    def remove_host(self, host_id: str) -> bool:
        """Remove a manual host. Config-file hosts cannot be removed."""
        hosts = self._store.get_ssh_hosts()
        remaining = [h for h in hosts if h.id != host_id]
        if len(remaining) == len(hosts):
            return False
        self._store.set_ssh_hosts(remaining)
        return True
