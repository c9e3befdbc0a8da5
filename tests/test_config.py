"""Tests for agentdeck.config (DeckConfig, SettingsStore)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agentdeck.config import DeckConfig, SettingsStore
from agentdeck.model import AgentType, Session, SessionStatus, SSHHost


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("AGENTDECK_SETTINGS_PATH", "AGENTDECK_SSH_CONFIG", "AGENTDECK_CONNECT_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# DeckConfig
# ---------------------------------------------------------------------------


class TestDeckConfig:
    def test_defaults(self) -> None:
        c = DeckConfig()
        assert c.pty.cols == 120
        assert c.pty.rows == 30
        assert c.pty.output_buffer_size == 50 * 1024
        assert c.ssh.connect_timeout == 10.0
        assert c.ssh.ssh_config_path == "~/.ssh/config"

    def test_load_without_file(self) -> None:
        assert DeckConfig.load(None) == DeckConfig()

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"ssh": {"connect_timeout": 3}, "settings_path": "/x/settings.json"})
        )
        c = DeckConfig.load(str(path))
        assert c.ssh.connect_timeout == 3.0
        assert c.settings_path == "/x/settings.json"
        assert c.pty.cols == 120

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ssh": {"connect_timeout": 3}}))
        monkeypatch.setenv("AGENTDECK_CONNECT_TIMEOUT", "7.5")
        monkeypatch.setenv("AGENTDECK_SSH_CONFIG", "/etc/ssh/custom")
        monkeypatch.setenv("AGENTDECK_SETTINGS_PATH", str(tmp_path / "s.json"))
        c = DeckConfig.load(str(path))
        assert c.ssh.connect_timeout == 7.5
        assert c.ssh.ssh_config_path == "/etc/ssh/custom"
        assert c.settings_path == str(tmp_path / "s.json")

    def test_open_store(self, tmp_path: Path) -> None:
        c = DeckConfig(settings_path=str(tmp_path / "s.json"))
        assert c.open_store().path == tmp_path / "s.json"


# ---------------------------------------------------------------------------
# SettingsStore
# ---------------------------------------------------------------------------


class TestSettingsStore:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = SettingsStore(tmp_path / "none.json")
        assert store.get_ssh_hosts() == []
        assert store.get_saved_sessions() == []

    def test_hosts_persist(self, tmp_path: Path) -> None:
        path = tmp_path / "deep" / "settings.json"
        store = SettingsStore(path)
        host = SSHHost(id="h1", name="box", hostname="box.lan", is_manual=True)
        store.set_ssh_hosts([host])

        reopened = SettingsStore(path)
        assert reopened.get_ssh_hosts() == [host]
        raw = json.loads(path.read_text())
        assert raw["sshHosts"][0]["isManual"] is True

    def test_sessions_persist(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        session = Session(name="s", agent_type=AgentType.CLAUDE, status=SessionStatus.WORKING)
        SettingsStore(path).save_sessions([session])
        loaded = SettingsStore(path).get_saved_sessions()
        assert len(loaded) == 1
        assert loaded[0].id == session.id
        assert loaded[0].agent_type is AgentType.CLAUDE

    def test_returns_copies(self, tmp_path: Path) -> None:
        store = SettingsStore(tmp_path / "settings.json")
        store.set_ssh_hosts([SSHHost(id="h1", name="box", hostname="box.lan")])
        store.get_ssh_hosts()[0].name = "mutated"
        assert store.get_ssh_hosts()[0].name == "box"

    def test_corrupt_file_yields_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        store = SettingsStore(path)
        assert store.get_ssh_hosts() == []
        store.set_ssh_hosts([SSHHost(id="h1", name="box", hostname="box.lan")])
        assert json.loads(path.read_text())["sshHosts"][0]["id"] == "h1"
