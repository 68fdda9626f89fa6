"""FastAPI application entry point."""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, FastAPI

from agentbridge.api.chat import router as chat_router
from agentbridge.api.cli_status import router as cli_router
from agentbridge.api.deps import build_bridge
from agentbridge.api.exceptions import register_exception_handlers
from agentbridge.api.servers import router as servers_router
from agentbridge.configs.config import AppConfig, get_app_config
from agentbridge.core.metrics import instrument_app
from agentbridge.infra.lifespan import inject
from agentbridge.infra.logging import setup_logging
from agentbridge.infra.telemetry import init_telemetry

logger = logging.getLogger(__name__)


@inject
async def lifespan(
    app: FastAPI,
    _bridge: Annotated[None, Depends(build_bridge)],
) -> AsyncGenerator[None, None]:
    """Application lifespan; components are built by the injected deps."""
    logger.info("Agent bridge started")
    yield
    logger.info("Agent bridge shutting down")


def get_app(config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or get_app_config()
    setup_logging(config.logging)

    app = FastAPI(
        title="Agent Bridge",
        description="Streams agent CLI runs and manages its MCP tool servers",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware and handlers must be in place before the first ASGI event.
    register_exception_handlers(app)
    instrument_app(app, config.tracing)
    init_telemetry(app, config.tracing)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(chat_router)
    app.include_router(cli_router)
    app.include_router(servers_router)
    return app


def main() -> None:
    import uvicorn

    config = get_app_config()
    uvicorn.run(get_app(config), host=config.api.host, port=config.api.port)


if __name__ == "__main__":
    main()
