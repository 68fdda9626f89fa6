"""HTTP API tests, served in-process through httpx's ASGI transport."""

import json
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI

from agentbridge.api.chat import router as chat_router
from agentbridge.api.cli_status import router as cli_router
from agentbridge.api.deps import get_api_config
from agentbridge.api.exceptions import register_exception_handlers
from agentbridge.api.servers import router as servers_router
from agentbridge.app import get_app
from agentbridge.configs.config import AppConfig, get_app_config
from agentbridge.configs.system import (
    APIConfig,
    LocatorConfig,
    OrchestratorConfig,
    StorageConfig,
)
from agentbridge.core.config_store import ServerConfigStore
from agentbridge.core.host import HostMcpSnapshot, HostMcpState
from agentbridge.core.locator import BinaryLocator
from agentbridge.core.orchestrator import ProcessOrchestrator
from agentbridge.infra.storage import LocalFileStorage

from conftest import FAKE_AGENT_NAME, read_record

BASE = "http://testserver"

# =========================================================================
# Helpers
# =========================================================================


def _build_app(locator: BinaryLocator, tmp_path: Path, host_state=None) -> FastAPI:
    """Routers and handlers only; components are placed on ``app.state``."""
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(chat_router)
    app.include_router(cli_router)
    app.include_router(servers_router)

    host_state = host_state or HostMcpState()
    store = ServerConfigStore(
        LocalFileStorage(tmp_path / "storage.json"), host_state=host_state
    )
    app.state.locator = locator
    app.state.host_state = host_state
    app.state.store = store
    app.state.orchestrator = ProcessOrchestrator(locator, store, OrchestratorConfig())
    app.dependency_overrides[get_api_config] = lambda: APIConfig()
    return app


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE)


def _events(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.split("\n")
        if line.startswith("data: ")
    ]


def _content(events: list[dict]) -> str:
    return "".join(e["content"] for e in events if e["type"] == "content")


@pytest.fixture
def app(locator, tmp_path) -> FastAPI:
    return _build_app(locator, tmp_path)


# =========================================================================
# Chat
# =========================================================================


class TestChat:
    @pytest.mark.asyncio
    async def test_streams_content_then_end(self, app, agent_record):
        async with _client(app) as client:
            response = await client.post(
                "/api/v1/chat",
                json={"message": "hello", "system_prompt": "be brief"},
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _events(response.text)
        assert _content(events) == "chunk1 hello"
        assert events[-1] == {"type": "end_of_stream"}

        record = read_record(agent_record)
        assert record["argv"] == [
            "--print",
            "--system-prompt",
            "be brief",
            "hello",
        ]

    @pytest.mark.asyncio
    async def test_enabled_servers_reach_the_agent(self, app, agent_record):
        async with _client(app) as client:
            await client.post(
                "/api/v1/servers", json={"name": "fs", "command": "node"}
            )
            await client.post("/api/v1/chat", json={"message": "hi"})

        record = read_record(agent_record)
        assert json.loads(record["mcp_config"]) == {
            "mcpServers": {"fs": {"type": "stdio", "command": "node"}}
        }

    @pytest.mark.asyncio
    async def test_non_zero_exit_appends_marker(self, app, agent_record, monkeypatch):
        monkeypatch.setenv("FAKE_AGENT_MODE", "fail")
        async with _client(app) as client:
            response = await client.post("/api/v1/chat", json={"message": "hi"})

        events = _events(response.text)
        assert _content(events) == "partial\n\n**Error:** rate limited"
        assert events[-1] == {"type": "end_of_stream"}

    @pytest.mark.asyncio
    async def test_not_installed_is_503(self, missing_locator, tmp_path):
        app = _build_app(missing_locator, tmp_path)
        async with _client(app) as client:
            response = await client.post("/api/v1/chat", json={"message": "hi"})

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "NOT_INSTALLED"
        assert "npm install" in body["instructions"]

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, app):
        async with _client(app) as client:
            response = await client.post("/api/v1/chat", json={"message": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_busy_is_409_and_cancel_stops_run(
        self, app, agent_record, monkeypatch
    ):
        monkeypatch.setenv("FAKE_AGENT_MODE", "hang")
        orchestrator: ProcessOrchestrator = app.state.orchestrator
        running = orchestrator.send("first")
        assert await running.__anext__() == "started\n"

        async with _client(app) as client:
            busy = await client.post("/api/v1/chat", json={"message": "second"})
            assert busy.status_code == 409
            assert busy.json()["code"] == "ALREADY_IN_PROGRESS"

            cancel = await client.post("/api/v1/chat/cancel")
            assert cancel.json() == {"cancelled": True}

            again = await client.post("/api/v1/chat/cancel")
            assert again.json() == {"cancelled": False}

        assert [chunk async for chunk in running] == []
        assert not orchestrator.is_processing


# =========================================================================
# CLI status
# =========================================================================


class TestCliStatus:
    @pytest.mark.asyncio
    async def test_installed(self, app, fake_agent):
        async with _client(app) as client:
            response = await client.get("/api/v1/cli")

        body = response.json()
        assert body["installed"] is True
        assert body["path"] == str(fake_agent)
        assert body["version"] == "1.2.3 (Fake Agent)"
        assert body["state"] == "idle"
        assert body["install_instructions"] is None

    @pytest.mark.asyncio
    async def test_missing(self, missing_locator, tmp_path):
        app = _build_app(missing_locator, tmp_path)
        async with _client(app) as client:
            response = await client.post("/api/v1/cli/refresh")

        body = response.json()
        assert body["installed"] is False
        assert body["path"] is None
        assert body["install_instructions"]


# =========================================================================
# Servers and host signal
# =========================================================================


class TestServers:
    @pytest.mark.asyncio
    async def test_add_list_toggle_remove(self, app, tmp_path):
        async with _client(app) as client:
            created = await client.post(
                "/api/v1/servers",
                json={"name": "web", "type": "http", "url": "http://x/mcp"},
            )
            assert created.status_code == 201
            assert created.json()["isHostManaged"] is False

            listed = await client.get("/api/v1/servers")
            assert [s["name"] for s in listed.json()] == ["web"]

            patched = await client.patch(
                "/api/v1/servers/WEB", json={"enabled": False}
            )
            assert patched.json()["enabled"] is False

            config = await client.get("/api/v1/servers/config")
            assert config.json() == {"mcpServers": {}}

            removed = await client.delete("/api/v1/servers/web")
            assert removed.status_code == 204
            assert (await client.get("/api/v1/servers")).json() == []

        stored = json.loads((tmp_path / "storage.json").read_text(encoding="utf-8"))
        assert stored["mcp-servers"] == []

    @pytest.mark.asyncio
    async def test_duplicate_and_invalid(self, app):
        async with _client(app) as client:
            await client.post("/api/v1/servers", json={"name": "fs", "command": "node"})

            duplicate = await client.post(
                "/api/v1/servers", json={"name": "FS", "command": "python"}
            )
            assert duplicate.status_code == 409
            assert duplicate.json()["code"] == "DUPLICATE_NAME"

            invalid = await client.post("/api/v1/servers", json={"name": "x"})
            assert invalid.status_code == 422
            assert invalid.json()["code"] == "INVALID_SERVER"

    @pytest.mark.asyncio
    async def test_unknown_server_is_404(self, app):
        async with _client(app) as client:
            assert (await client.delete("/api/v1/servers/nope")).status_code == 404
            patched = await client.patch(
                "/api/v1/servers/nope", json={"enabled": True}
            )
            assert patched.status_code == 404

    @pytest.mark.asyncio
    async def test_config_document(self, app):
        async with _client(app) as client:
            await client.post(
                "/api/v1/servers",
                json={"name": "fs", "command": "node", "args": ["server.js"]},
            )
            response = await client.get("/api/v1/servers/config")

        assert response.headers["content-type"] == "application/json"
        assert response.text == (
            '{"mcpServers":{"fs":{"type":"stdio","command":"node","args":["server.js"]}}}'
        )

    @pytest.mark.asyncio
    async def test_host_entry_follows_signal(self, app):
        async with _client(app) as client:
            host = await client.get("/api/v1/host")
            assert host.json()["entry"] is None

            updated = await client.put(
                "/api/v1/host",
                json={"http_endpoint": "http://localhost:9000", "is_running": True},
            )
            entry = updated.json()["entry"]
            assert entry["name"] == "host-app"
            assert entry["url"] == "http://localhost:9000"
            assert entry["enabled"] is True

            blocked = await client.delete("/api/v1/servers/host-app")
            assert blocked.status_code == 409

            stopped = await client.put("/api/v1/host", json={"is_running": False})
            assert stopped.json()["entry"]["enabled"] is False
            assert stopped.json()["http_endpoint"] == "http://localhost:9000"

    @pytest.mark.asyncio
    async def test_host_entry_can_be_disabled(self, locator, tmp_path):
        host_state = HostMcpState(
            HostMcpSnapshot(http_endpoint="http://localhost:9000", is_running=True)
        )
        app = _build_app(locator, tmp_path, host_state)
        await app.state.store.load()

        async with _client(app) as client:
            response = await client.patch(
                "/api/v1/servers/host-app", json={"enabled": False}
            )
            assert response.json()["enabled"] is False
            assert (await client.get("/api/v1/servers/config")).json() == {
                "mcpServers": {}
            }


# =========================================================================
# Full application
# =========================================================================


class TestApplication:
    @pytest.mark.asyncio
    async def test_lifespan_wires_components(self, fake_agent, tmp_path):
        # Init kwargs rank below the static YAML, so replace whole sections.
        config = AppConfig().model_copy(
            update={
                "locator": LocatorConfig(
                    binary_name=FAKE_AGENT_NAME, extra_paths=[fake_agent]
                ),
                "storage": StorageConfig(path=tmp_path / "storage.json"),
            }
        )
        app = get_app(config)
        app.dependency_overrides[get_app_config] = lambda: config

        async with app.router.lifespan_context(app), _client(app) as client:
            assert (await client.get("/health")).json() == {"status": "ok"}
            assert (await client.get("/api/v1/servers")).json() == []
            status = (await client.get("/api/v1/cli")).json()
            assert status["installed"] is True

            metrics = await client.get("/metrics")
            assert "agentbridge_sends_total" in metrics.text

        assert not app.state.orchestrator.is_processing
