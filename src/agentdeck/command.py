"""Command resolution and shell-argument sanitization.

Every token that comes from outside (custom command parts, flags, the
working directory) passes through :func:`sanitize_shell_arg` before it is
placed into anything we execute. Local arguments go to ``Popen`` as a
vector; the remote start command is typed into an interactive shell as
one line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agentdeck.model.session import (
    TERMINAL_AGENT_TYPES,
    AgentType,
    SessionCategory,
    agent_category,
)

_SHELL_METACHARS = re.compile(r"[;&|`$(){}!<>\n\r]")


@dataclass(frozen=True)
class AgentCommand:
    """Executable and default arguments for one agent type."""

    executable: str
    args: tuple[str, ...] = ()
    remote_args: tuple[str, ...] = ()


# CUSTOM is resolved from the user's own command string.
AGENT_COMMANDS: dict[AgentType, AgentCommand] = {
    AgentType.SHELL: AgentCommand("bash"),
    AgentType.CLAUDE: AgentCommand("claude", remote_args=("-c",)),
    AgentType.CLAWBOT: AgentCommand("clawbot"),
    AgentType.OPENCODE: AgentCommand("opencode"),
    AgentType.CODEX: AgentCommand("codex"),
}

_missing = set(TERMINAL_AGENT_TYPES) - {AgentType.CUSTOM} - AGENT_COMMANDS.keys()
if _missing:
    raise RuntimeError(
        f"Terminal agent types without a command: {sorted(a.value for a in _missing)}"
    )


def sanitize_shell_arg(arg: str) -> str:
    """Strip shell metacharacters (``; & | ` $ ( ) { } ! < >``, CR, LF)."""
    return _SHELL_METACHARS.sub("", arg)


def split_flags(flags: str | None) -> list[str]:
    """Split a free-form flag string into sanitized, non-empty tokens."""
    if not flags:
        return []
    tokens = (sanitize_shell_arg(part) for part in flags.split())
    return [t for t in tokens if t]


def _table_entry(agent_type: AgentType, custom_command: str | None) -> AgentCommand | None:
    """The table entry for ``agent_type``, or None for a usable custom command.

    Raises:
        ValueError: For team agent types, which never run a process.
    """
    if agent_category(agent_type) is not SessionCategory.TERMINAL:
        raise ValueError(f"Agent type {agent_type.value!r} has no command")
    if agent_type is AgentType.CUSTOM:
        if custom_command and custom_command.strip():
            return None
        # custom without a command opens a plain shell
        return AGENT_COMMANDS[AgentType.SHELL]
    return AGENT_COMMANDS[agent_type]


def resolve_command(
    agent_type: AgentType,
    custom_command: str | None = None,
    flags: str | None = None,
) -> tuple[str, list[str]]:
    """Map an agent type (or a custom command) to ``(executable, args)``.

    Raises:
        ValueError: For team agent types, which never run a process.
    """
    entry = _table_entry(agent_type, custom_command)
    if entry is None:
        parts = custom_command.split()
        cmd = sanitize_shell_arg(parts[0])
        args = [sanitize_shell_arg(p) for p in parts[1:]]
    else:
        cmd = entry.executable
        args = list(entry.args)

    args.extend(split_flags(flags))
    return cmd, args


def resolve_remote_command(
    agent_type: AgentType,
    custom_command: str | None = None,
    flags: str | None = None,
) -> str:
    """The agent command as it is typed into a remote shell.

    Raises:
        ValueError: For team agent types, which never run a process.
    """
    entry = _table_entry(agent_type, custom_command)
    if entry is None:
        tokens = [sanitize_shell_arg(p) for p in custom_command.split()]
    else:
        tokens = [entry.executable, *entry.remote_args]
    tokens.extend(split_flags(flags))
    return " ".join(t for t in tokens if t)


def compose_remote_command(
    cwd: str,
    agent_type: AgentType,
    custom_command: str | None = None,
    flags: str | None = None,
) -> str:
    """Build the single line sent to a remote interactive shell.

    Raises:
        ValueError: For team agent types.
    """
    safe_cwd = sanitize_shell_arg(cwd)
    command = resolve_remote_command(agent_type, custom_command, flags)
    return f'cd "{safe_cwd}" && {command}\n'
