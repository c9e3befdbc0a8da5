"""CLI entry point for agentdeck."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console
from rich.table import Table

from agentdeck import __version__
from agentdeck.config import DeckConfig
from agentdeck.errors import HostConnectionError, ValidationError
from agentdeck.model.session import (
    AgentType,
    Session,
    SessionConfig,
    SessionLocation,
    SessionStatus,
)
from agentdeck.session.registry import SessionRegistry

app = typer.Typer(
    name="agentdeck",
    help="Launch and supervise local and remote agent terminals.",
    no_args_is_help=True,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _build_registry(config_file: str | None) -> SessionRegistry:
    config = DeckConfig.load(config_file)
    return SessionRegistry(config=config)


def _agent_type(value: str) -> AgentType:
    try:
        return AgentType(value)
    except ValueError:
        choices = ", ".join(a.value for a in AgentType)
        typer.echo(f"Error: Unknown agent type {value!r} (choose from {choices})", err=True)
        raise typer.Exit(1)


@app.command()
def run(
    agent_type: str = typer.Argument(help="Agent to start (shell, claude, codex, custom, ...)."),
    cwd: str | None = typer.Option(None, "--cwd", "-C", help="Working directory."),
    command: str | None = typer.Option(
        None, "--command", help="Command line for the 'custom' agent type."
    ),
    flags: str | None = typer.Option(None, "--flags", help="Extra flags for the agent."),
    host: str | None = typer.Option(
        None, "--host", "-H", help="Run on this SSH host id instead of locally."
    ),
    name: str | None = typer.Option(None, "--name", "-n", help="Session name."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Start one session and attach this terminal to it."""
    setup_logging(verbose)
    agent = _agent_type(agent_type)
    registry = _build_registry(config_file)

    try:
        session_config = SessionConfig(
            name=name or agent.value,
            agent_type=agent,
            location=SessionLocation.REMOTE if host else SessionLocation.LOCAL,
            ssh_host=host,
            cwd=cwd or os.getcwd(),
            custom_command=command,
            flags=flags,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    code = asyncio.run(_attach(registry, session_config))
    raise typer.Exit(code)


async def _attach(registry: SessionRegistry, session_config: SessionConfig) -> int:
    """Run a session until it goes offline, relaying stdin and stdout."""
    loop = asyncio.get_running_loop()
    done = asyncio.Event()

    def _on_output(_session_id: str, data: str) -> None:
        sys.stdout.write(data)
        sys.stdout.flush()

    def _on_status(session: Session) -> None:
        if session.status is SessionStatus.OFFLINE:
            done.set()

    registry.set_output_handler(_on_output)
    registry.set_status_handler(_on_status)

    try:
        session = await registry.create_session(session_config)
    except (ValidationError, HostConnectionError) as e:
        typer.echo(f"Error: {e}", err=True)
        return 1

    if session.status is SessionStatus.OFFLINE:
        typer.echo(f"Error: {session.name} could not be started", err=True)
        return 1

    stdin_fd = _forward_stdin(loop, registry, session.id)
    try:
        await done.wait()
    finally:
        if stdin_fd is not None:
            loop.remove_reader(stdin_fd)
        registry.save_sessions()
        registry.destroy_all()
    return 0


def _forward_stdin(
    loop: asyncio.AbstractEventLoop, registry: SessionRegistry, session_id: str
) -> int | None:
    try:
        fd = sys.stdin.fileno()
    except (OSError, ValueError):
        return None

    def _on_readable() -> None:
        data = os.read(fd, 4096)
        if not data:
            loop.remove_reader(fd)
            registry.kill_session(session_id)
            return
        registry.send_input(session_id, data.decode("utf-8", errors="replace"))

    loop.add_reader(fd, _on_readable)
    return fd


@app.command()
def hosts(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """List ssh-config and manually added hosts."""
    setup_logging()
    registry = _build_registry(config_file)

    table = Table(title="SSH hosts")
    table.add_column("id")
    table.add_column("name")
    table.add_column("address")
    table.add_column("identity")
    table.add_column("source")
    for h in registry.get_all_hosts():
        user = f"{h.username}@" if h.username else ""
        table.add_row(
            h.id,
            h.name,
            f"{user}{h.hostname}:{h.port}",
            h.identity_file or "-",
            "manual" if h.is_manual else "ssh config",
        )
    console.print(table)


@app.command("add-host")
def add_host(
    name: str = typer.Argument(help="Display name."),
    hostname: str = typer.Argument(help="Address to connect to."),
    port: int = typer.Option(22, "--port", "-p", help="SSH port."),
    username: str = typer.Option("", "--user", "-u", help="Login user."),
    identity_file: str | None = typer.Option(
        None, "--identity-file", "-i", help="Private key path."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Register a host manually."""
    setup_logging()
    registry = _build_registry(config_file)
    try:
        host = registry.add_manual_host(
            {
                "name": name,
                "hostname": hostname,
                "port": port,
                "username": username,
                "identity_file": identity_file,
            }
        )
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(host.id)


@app.command("remove-host")
def remove_host(
    host_id: str = typer.Argument(help="Id of a manually added host."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Remove a manually added host."""
    setup_logging()
    registry = _build_registry(config_file)
    if not registry.remove_host(host_id):
        typer.echo(f"Error: No manual host with id {host_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {host_id}")


@app.command("test-host")
def test_host(
    host_id: str = typer.Argument(help="Host id to connect to."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """Try to connect to a host once."""
    setup_logging(verbose)
    registry = _build_registry(config_file)
    try:
        result = asyncio.run(registry.test_connection(host_id))
    except ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if result.success:
        typer.echo("OK")
    else:
        typer.echo(f"Failed: {result.error}", err=True)
        raise typer.Exit(1)


@app.command()
def sessions(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to config JSON file."
    ),
) -> None:
    """List saved sessions."""
    setup_logging()
    registry = _build_registry(config_file)

    table = Table(title="Saved sessions")
    table.add_column("id")
    table.add_column("name")
    table.add_column("agent")
    table.add_column("where")
    table.add_column("cwd")
    for s in registry.restore_sessions():
        where = f"remote:{s.ssh_host}" if s.location is SessionLocation.REMOTE else "local"
        table.add_row(s.id, s.name, s.agent_type.value, where, s.cwd)
    console.print(table)


@app.command()
def version() -> None:
    """Print the version."""
    typer.echo(f"agentdeck v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
