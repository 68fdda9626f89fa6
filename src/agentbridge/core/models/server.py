"""Tool server entries and their MCP config serialization."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HOST_SERVER_NAME = "host-app"


class TransportType(str, Enum):
    """How the agent reaches a tool server."""

    STDIO = "stdio"
    HTTP = "http"


class ToolServerConfig(BaseModel):
    """One configured MCP tool server.

    Entries are mutable in place (``enabled``, host ``url``); the store owns
    them.  Field aliases are camelCase so persisted lists stay compatible
    with other clients of the same storage key.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    name: str = Field(description="Unique, case-insensitive server name")
    transport: TransportType = Field(
        default=TransportType.STDIO, alias="type", description="Transport type"
    )
    command: str | None = Field(default=None, description="Command (stdio)")
    args: list[str] = Field(default_factory=list, description="Arguments (stdio)")
    env: dict[str, str] = Field(
        default_factory=dict, description="Environment variables (stdio)"
    )
    url: str | None = Field(default=None, description="Endpoint URL (http)")
    enabled: bool = Field(
        default=True, description="Passed to the agent when enabled"
    )
    is_host_managed: bool = Field(
        default=False,
        description="Contributed by the host app; can be disabled, never removed",
    )

    def name_matches(self, name: str) -> bool:
        return self.name.casefold() == name.casefold()

    def problems(self) -> list[str]:
        """Return human-readable reasons this entry cannot be used."""
        problems: list[str] = []
        if not self.name.strip():
            problems.append("Server name is required")
        if self.transport is TransportType.STDIO and not (self.command or "").strip():
            problems.append("Stdio servers require a command")
        if self.transport is TransportType.HTTP and not (self.url or "").strip():
            problems.append("HTTP servers require a url")
        return problems

    def to_mcp_config(self) -> dict[str, Any]:
        """Return this entry's value inside the ``mcpServers`` mapping.

        ``args`` and ``env`` are emitted only when non-empty; absent fields
        are omitted rather than written as ``null``.
        """
        if self.transport is TransportType.HTTP:
            return {"type": TransportType.HTTP.value, "url": self.url}

        config: dict[str, Any] = {
            "type": TransportType.STDIO.value,
            "command": self.command,
        }
        if self.args:
            config["args"] = list(self.args)
        if self.env:
            config["env"] = dict(self.env)
        return config

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["HOST_SERVER_NAME", "ToolServerConfig", "TransportType"]
