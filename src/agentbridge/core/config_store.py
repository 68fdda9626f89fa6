"""ServerConfigStore — the set of MCP tool servers handed to the agent.

Two kinds of entries live here:

* **User entries** — added / removed explicitly, persisted through the
  storage collaborator under one key, registered with the agent CLI on a
  best-effort basis.
* **The host entry** (``host-app``) — derived from the latest
  ``HostMcpState`` snapshot on every signal, never persisted, never
  removable (only disable-able).

``list_all()`` is the host entry (if any) followed by user entries in
insertion order; ``build_config_json()`` turns the enabled ones into the
``--mcp-config`` document.

Mutations are serialized by a single ``asyncio.Lock`` (``set_enabled``
has no await point, so it is atomic on the event loop); reads return
list snapshots and never take the lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from agentbridge.infra.storage import KeyValueStorage

from .errors import DuplicateNameError, ServerValidationError
from .host import HostMcpSnapshot, HostMcpState
from .models import HOST_SERVER_NAME, ToolServerConfig, TransportType
from .registration import ServerRegistrationManager

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "mcp-servers"

ChangeListener = Callable[[], None]


def derive_host_entry(
    snapshot: HostMcpSnapshot, current: ToolServerConfig | None
) -> ToolServerConfig | None:
    """Re-derive the host entry from *snapshot* alone.

    An advertised endpoint always yields an HTTP entry pointing at it,
    enabled iff the host server is running.  Without an endpoint an
    existing entry keeps its last URL and only follows the running flag.
    """
    if snapshot.has_endpoint:
        return ToolServerConfig(
            name=HOST_SERVER_NAME,
            transport=TransportType.HTTP,
            url=snapshot.http_endpoint,
            enabled=snapshot.is_running,
            is_host_managed=True,
        )
    if current is not None:
        return current.model_copy(update={"enabled": snapshot.is_running})
    return None


def build_mcp_config(servers: list[ToolServerConfig]) -> dict[str, Any]:
    return {"mcpServers": {s.name: s.to_mcp_config() for s in servers}}


def render_mcp_config(servers: list[ToolServerConfig]) -> str | None:
    """Compact UTF-8 JSON for the enabled *servers*, in order; ``None`` if none."""
    enabled = [s for s in servers if s.enabled]
    if not enabled:
        return None
    return json.dumps(
        build_mcp_config(enabled), separators=(",", ":"), ensure_ascii=False
    )


class ServerConfigStore:
    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        registration: ServerRegistrationManager | None = None,
        host_state: HostMcpState | None = None,
        *,
        storage_key: str = DEFAULT_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._registration = registration
        self._host_state = host_state
        self._storage_key = storage_key
        self._servers: list[ToolServerConfig] = []
        self._host_entry: ToolServerConfig | None = None
        self._host_registered = False
        self._lock = asyncio.Lock()
        self._listeners: list[ChangeListener] = []

        if host_state is not None:
            host_state.subscribe(self.on_host_state_changed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def host_entry(self) -> ToolServerConfig | None:
        return self._host_entry

    def list_all(self) -> list[ToolServerConfig]:
        entries = [self._host_entry] if self._host_entry is not None else []
        return entries + list(self._servers)

    def user_entries(self) -> list[ToolServerConfig]:
        return list(self._servers)

    def get(self, name: str) -> ToolServerConfig | None:
        return next((s for s in self.list_all() if s.name_matches(name)), None)

    def build_config_json(self) -> str | None:
        """Serialize enabled entries for ``--mcp-config``; ``None`` if none."""
        return render_mcp_config(self.list_all())

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Server configuration listener failed")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Re-derive the host entry, then replace user entries from storage.

        Storage failures are logged; the in-memory list is left as it was.
        """
        async with self._lock:
            if self._host_state is not None:
                await self._reconcile_host(self._host_state.snapshot())
            else:
                logger.debug("No host MCP state available, host detection skipped")

            if self._storage is None:
                logger.debug("No storage available, skipping load")
            else:
                try:
                    saved = await self._storage.get(self._storage_key)
                except Exception:
                    logger.warning(
                        "Failed to load MCP server configurations from storage",
                        exc_info=True,
                    )
                else:
                    if saved is not None:
                        self._servers = self._parse_saved(saved)
                        logger.debug(
                            "Loaded %d MCP server configurations from storage",
                            len(self._servers),
                        )
        self._notify()

    def _parse_saved(self, saved: Any) -> list[ToolServerConfig]:
        if not isinstance(saved, list):
            logger.warning(
                "Stored MCP servers under %r are not a list; ignoring",
                self._storage_key,
            )
            return list(self._servers)

        servers: list[ToolServerConfig] = []
        for item in saved:
            try:
                entry = ToolServerConfig.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping invalid stored MCP server %r: %s", item, e)
                continue
            if entry.is_host_managed or entry.name_matches(HOST_SERVER_NAME):
                continue
            servers.append(entry)
        return servers

    async def save(self) -> None:
        """Persist user entries only; failures are logged, never raised."""
        if self._storage is None:
            logger.debug("No storage available, skipping save")
            return

        to_save = [s.to_storage() for s in self._servers if not s.is_host_managed]
        try:
            await self._storage.set(self._storage_key, to_save)
        except Exception:
            logger.warning(
                "Failed to save MCP server configurations to storage", exc_info=True
            )
            return
        logger.debug("Saved %d MCP server configurations to storage", len(to_save))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add(self, server: ToolServerConfig) -> ToolServerConfig:
        """Validate, register (best-effort) and append a user entry.

        Persisting is the caller's job (``save()``).

        Raises:
            ServerValidationError: blank name, or missing command / url.
            DuplicateNameError: the name is taken (case-insensitive) or is
                the reserved host entry name.
        """
        problems = server.problems()
        if problems:
            raise ServerValidationError("; ".join(problems))

        async with self._lock:
            if server.name_matches(HOST_SERVER_NAME) or any(
                s.name_matches(server.name) for s in self.list_all()
            ):
                raise DuplicateNameError(server.name)

            entry = server.model_copy(deep=True, update={"is_host_managed": False})

            if self._registration is not None:
                if await self._registration.add_server(entry):
                    logger.info("Registered MCP server '%s' with the agent CLI", entry.name)
                else:
                    logger.warning(
                        "Failed to register MCP server '%s' with the agent CLI",
                        entry.name,
                    )

            self._servers.append(entry)
            logger.info("Added MCP server: %s", entry.name)
        self._notify()
        return entry

    async def remove(self, name: str) -> bool:
        """Unregister (best-effort) and drop a user entry.

        Returns ``False`` for unknown names and for the host entry.
        Persisting is the caller's job (``save()``).
        """
        async with self._lock:
            if self._host_entry is not None and self._host_entry.name_matches(name):
                logger.warning("Cannot remove host app MCP server")
                return False

            entry = next((s for s in self._servers if s.name_matches(name)), None)
            if entry is None:
                return False

            if self._registration is not None:
                if await self._registration.remove_server(entry.name):
                    logger.info(
                        "Unregistered MCP server '%s' from the agent CLI", entry.name
                    )
                else:
                    logger.warning(
                        "Failed to unregister MCP server '%s' from the agent CLI",
                        entry.name,
                    )

            self._servers.remove(entry)
            logger.info("Removed MCP server: %s", entry.name)
        self._notify()
        return True

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Toggle an entry in place; unknown names are ignored."""
        if self._host_entry is not None and self._host_entry.name_matches(name):
            self._host_entry.enabled = enabled
            logger.info("Set host app MCP server enabled: %s", enabled)
            self._notify()
            return

        entry = next((s for s in self._servers if s.name_matches(name)), None)
        if entry is not None:
            entry.enabled = enabled
            logger.info("Set MCP server '%s' enabled: %s", entry.name, enabled)
            self._notify()

    # ------------------------------------------------------------------
    # Host entry reconciliation
    # ------------------------------------------------------------------

    async def on_host_state_changed(self, snapshot: HostMcpSnapshot) -> None:
        async with self._lock:
            await self._reconcile_host(snapshot)
        self._notify()

    async def _reconcile_host(self, snapshot: HostMcpSnapshot) -> None:
        previous = self._host_entry
        self._host_entry = derive_host_entry(snapshot, previous)

        if self._host_entry is not None:
            if previous is None:
                logger.info(
                    "Host app HTTP MCP server available: %s", self._host_entry.url
                )
            # Only a running server goes into the agent's persistent state.
            if snapshot.is_running and not self._host_registered:
                self._host_registered = await self._register_host_entry(
                    self._host_entry
                )
        else:
            logger.debug(
                "Host app has MCP capability (running=%s, tools=%d) but no HTTP "
                "endpoint; stdio is not supported for the host app",
                snapshot.is_running,
                snapshot.registered_tools,
            )

    async def _register_host_entry(self, entry: ToolServerConfig) -> bool:
        """Return whether the agent CLI now knows the host server."""
        if self._registration is None:
            return False
        if await self._registration.server_exists(entry.name):
            logger.debug("Host app MCP server already registered with the agent CLI")
            return True
        if await self._registration.add_server(entry):
            logger.info(
                "Registered host app MCP server with the agent CLI: %s", entry.url
            )
            return True
        logger.warning("Failed to register host app MCP server with the agent CLI")
        return False
