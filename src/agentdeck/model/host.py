"""SSH host records."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HostConfig(BaseModel):
    """A manually entered host, before it is given an id."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(max_length=200)
    hostname: str = Field(min_length=1, max_length=255)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = Field(default="", max_length=100)
    identity_file: str | None = Field(default=None, max_length=1024)


class SSHHost(HostConfig):
    """A host sessions can be opened on.

    Hosts parsed from ``~/.ssh/config`` have ids of the form
    ``ssh-config-<alias>``; manually added hosts get a uuid.
    """

    id: str
    is_manual: bool = False


@dataclass
class ConnectionTestResult:
    """Outcome of a one-shot connectivity test."""

    success: bool
    error: str | None = None
