"""Configuration — Pydantic models for agentdeck settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from agentdeck.config.store import SettingsStore, StoredState

__all__ = [
    "DeckConfig",
    "PTYConfig",
    "SSHSettings",
    "SettingsStore",
    "StoredState",
]


class PTYConfig(BaseModel):
    """Local pseudo-terminal settings."""

    cols: int = Field(default=120, ge=1, le=500)
    rows: int = Field(default=30, ge=1, le=200)
    term: str = Field(default="xterm-256color")
    output_buffer_size: int = Field(
        default=50 * 1024,
        gt=0,
        description="Characters of recent output retained per session",
    )


class SSHSettings(BaseModel):
    """Remote session settings."""

    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed for TCP connect, banner and auth",
    )
    ssh_config_path: str = Field(default="~/.ssh/config")


class DeckConfig(BaseModel):
    """Top-level agentdeck configuration."""

    pty: PTYConfig = Field(default_factory=PTYConfig)
    ssh: SSHSettings = Field(default_factory=SSHSettings)
    settings_path: str = Field(
        default="~/.agentdeck/settings.json",
        description="Where manual hosts and saved sessions are persisted",
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> DeckConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            AGENTDECK_SETTINGS_PATH    - Override the settings store location
            AGENTDECK_SSH_CONFIG       - Override the ssh client config path
            AGENTDECK_CONNECT_TIMEOUT  - Override the remote connect timeout (seconds)
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_settings_path = os.environ.get("AGENTDECK_SETTINGS_PATH")
        if env_settings_path:
            config_data["settings_path"] = env_settings_path

        ssh = config_data.get("ssh", {})

        env_ssh_config = os.environ.get("AGENTDECK_SSH_CONFIG")
        if env_ssh_config:
            ssh["ssh_config_path"] = env_ssh_config

        env_timeout = os.environ.get("AGENTDECK_CONNECT_TIMEOUT")
        if env_timeout:
            ssh["connect_timeout"] = float(env_timeout)

        if ssh:
            config_data["ssh"] = ssh

        return cls.model_validate(config_data)

    def open_store(self) -> SettingsStore:
        return SettingsStore(os.path.expanduser(self.settings_path))
