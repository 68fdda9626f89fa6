"""Host-capability signal: the embedding application's own MCP server.

The bridge never pushes state into ``HostMcpState``; the host calls
``update()`` and every subscriber re-derives what it needs from the
latest ``snapshot()``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from agentbridge.configs.system import HostConfig

logger = logging.getLogger(__name__)

HostStateListener = Callable[["HostMcpSnapshot"], Awaitable[None]]


@dataclass(frozen=True)
class HostMcpSnapshot:
    http_endpoint: str = ""
    is_running: bool = False
    registered_tools: int = 0

    @property
    def has_endpoint(self) -> bool:
        return bool(self.http_endpoint)


class HostMcpState:
    """Mutable signal source with async change notification."""

    def __init__(self, initial: HostMcpSnapshot | None = None) -> None:
        self._snapshot = initial or HostMcpSnapshot()
        self._listeners: list[HostStateListener] = []

    @classmethod
    def from_config(cls, config: HostConfig) -> HostMcpState:
        return cls(
            HostMcpSnapshot(
                http_endpoint=config.http_endpoint,
                is_running=config.is_running,
                registered_tools=config.registered_tools,
            )
        )

    @property
    def http_endpoint(self) -> str:
        return self._snapshot.http_endpoint

    @property
    def is_running(self) -> bool:
        return self._snapshot.is_running

    @property
    def registered_tools(self) -> int:
        return self._snapshot.registered_tools

    def snapshot(self) -> HostMcpSnapshot:
        return self._snapshot

    def subscribe(self, listener: HostStateListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: HostStateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def update(
        self,
        *,
        http_endpoint: str | None = None,
        is_running: bool | None = None,
        registered_tools: int | None = None,
    ) -> HostMcpSnapshot:
        """Apply the given fields and notify every subscriber in order."""
        current = self._snapshot
        self._snapshot = HostMcpSnapshot(
            http_endpoint=current.http_endpoint if http_endpoint is None else http_endpoint,
            is_running=current.is_running if is_running is None else is_running,
            registered_tools=(
                current.registered_tools if registered_tools is None else registered_tools
            ),
        )
        logger.debug("Host MCP state changed: %s", self._snapshot)
        for listener in list(self._listeners):
            await listener(self._snapshot)
        return self._snapshot
