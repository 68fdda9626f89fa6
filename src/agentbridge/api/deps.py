"""Lifespan builders and per-request dependencies.

The ``build_*`` generators run once at startup (through ``inject``) and
attach the bridge components to ``app.state``; the ``get_*`` functions
read them back per request.  Route modules import the ``*Dep`` aliases
instead of spelling out ``Annotated[T, Depends(get_xxx)]``, and tests swap
components via ``app.dependency_overrides[get_xxx]``.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from agentbridge.configs.config import AppConfig, get_app_config
from agentbridge.configs.system import APIConfig
from agentbridge.core.config_store import ServerConfigStore
from agentbridge.core.host import HostMcpState
from agentbridge.core.locator import BinaryLocator
from agentbridge.core.orchestrator import ProcessOrchestrator
from agentbridge.core.registration import ServerRegistrationManager
from agentbridge.infra.lifespan import get_app
from agentbridge.infra.storage import KeyValueStorage, build_storage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan dependencies
# ---------------------------------------------------------------------------


async def build_bridge_storage(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[KeyValueStorage, None]:
    """Open the configured storage backend; close it on shutdown."""
    storage = await build_storage(config.storage)
    app.state.storage = storage
    yield storage
    await storage.aclose()


async def build_bridge(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
    storage: Annotated[KeyValueStorage, Depends(build_bridge_storage)],
) -> AsyncGenerator[None, None]:
    """Wire locator, registration, host state, store and orchestrator.

    The store is loaded before the first request; on shutdown any send
    still running is cancelled so no agent process outlives the app.
    """
    locator = BinaryLocator(config.locator)
    registration = ServerRegistrationManager(locator, config.registration)
    host_state = HostMcpState.from_config(config.host)
    store = ServerConfigStore(
        storage,
        registration,
        host_state,
        storage_key=config.storage.servers_key,
    )
    await store.load()
    orchestrator = ProcessOrchestrator(locator, store, config.orchestrator)

    app.state.locator = locator
    app.state.registration = registration
    app.state.host_state = host_state
    app.state.store = store
    app.state.orchestrator = orchestrator
    logger.info(
        "Bridge ready (%d MCP servers, concurrent sends: %s)",
        len(store.list_all()),
        config.orchestrator.concurrent_sends,
    )

    yield

    await orchestrator.aclose()


# ---------------------------------------------------------------------------
# Per-request dependencies — read from app.state
# ---------------------------------------------------------------------------


def get_api_config() -> APIConfig:
    return get_app_config().api


def get_locator(request: Request) -> BinaryLocator:
    return request.app.state.locator


def get_store(request: Request) -> ServerConfigStore:
    return request.app.state.store


def get_host_state(request: Request) -> HostMcpState:
    return request.app.state.host_state


def get_orchestrator(request: Request) -> ProcessOrchestrator:
    return request.app.state.orchestrator


APIConfigDep = Annotated[APIConfig, Depends(get_api_config)]
LocatorDep = Annotated[BinaryLocator, Depends(get_locator)]
StoreDep = Annotated[ServerConfigStore, Depends(get_store)]
HostStateDep = Annotated[HostMcpState, Depends(get_host_state)]
OrchestratorDep = Annotated[ProcessOrchestrator, Depends(get_orchestrator)]
