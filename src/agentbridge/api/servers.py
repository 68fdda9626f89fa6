"""MCP tool server management and the host-capability signal."""

from fastapi import APIRouter, HTTPException, Response

from agentbridge.core.config_store import ServerConfigStore
from agentbridge.core.host import HostMcpState
from agentbridge.core.models import ToolServerConfig

from .deps import HostStateDep, StoreDep
from .models import EnabledUpdate, HostStateUpdate, HostStatus

EMPTY_MCP_CONFIG = '{"mcpServers":{}}'

router = APIRouter(prefix="/api/v1", tags=["servers"])


@router.get("/servers")
async def list_servers(store: StoreDep) -> list[ToolServerConfig]:
    """Host entry (if any) first, then user entries in insertion order."""
    return store.list_all()


@router.post("/servers", status_code=201)
async def add_server(server: ToolServerConfig, store: StoreDep) -> ToolServerConfig:
    entry = await store.add(server)
    await store.save()
    return entry


@router.delete("/servers/{name}", status_code=204)
async def remove_server(name: str, store: StoreDep) -> Response:
    host_entry = store.host_entry
    if host_entry is not None and host_entry.name_matches(name):
        raise HTTPException(
            status_code=409, detail="The host app server can only be disabled"
        )
    if not await store.remove(name):
        raise HTTPException(status_code=404, detail=f"Server '{name}' not found")
    await store.save()
    return Response(status_code=204)


@router.patch("/servers/{name}")
async def set_server_enabled(
    name: str, update: EnabledUpdate, store: StoreDep
) -> ToolServerConfig:
    entry = store.get(name)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Server '{name}' not found")
    store.set_enabled(name, update.enabled)
    await store.save()
    return entry


@router.get("/servers/config")
async def get_mcp_config(store: StoreDep) -> Response:
    """The ``--mcp-config`` document the next run will receive."""
    return Response(
        content=store.build_config_json() or EMPTY_MCP_CONFIG,
        media_type="application/json",
    )


# ---------------------------------------------------------------------------
# Host-capability signal
# ---------------------------------------------------------------------------


def _host_status(host_state: HostMcpState, store: ServerConfigStore) -> HostStatus:
    snapshot = host_state.snapshot()
    return HostStatus(
        http_endpoint=snapshot.http_endpoint,
        is_running=snapshot.is_running,
        registered_tools=snapshot.registered_tools,
        entry=store.host_entry,
    )


@router.get("/host")
async def get_host(host_state: HostStateDep, store: StoreDep) -> HostStatus:
    return _host_status(host_state, store)


@router.put("/host")
async def update_host(
    update: HostStateUpdate, host_state: HostStateDep, store: StoreDep
) -> HostStatus:
    """Push a new host-capability signal; the host entry is re-derived."""
    await host_state.update(
        http_endpoint=update.http_endpoint,
        is_running=update.is_running,
        registered_tools=update.registered_tools,
    )
    return _host_status(host_state, store)
