"""Global exception handlers for bridge errors raised outside a stream."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agentbridge.core.errors import (
    AlreadyInProgress,
    DuplicateNameError,
    LaunchFailed,
    NotInstalled,
    ServerValidationError,
)


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on ``app`` (before startup)."""

    @app.exception_handler(NotInstalled)
    async def handle_not_installed(request: Request, exc: NotInstalled) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={
                "detail": str(exc),
                "code": "NOT_INSTALLED",
                "instructions": exc.instructions,
            },
        )

    @app.exception_handler(LaunchFailed)
    async def handle_launch_failed(request: Request, exc: LaunchFailed) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "code": "LAUNCH_FAILED"},
        )

    @app.exception_handler(AlreadyInProgress)
    async def handle_already_in_progress(
        request: Request, exc: AlreadyInProgress
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "code": "ALREADY_IN_PROGRESS"},
        )

    @app.exception_handler(DuplicateNameError)
    async def handle_duplicate_name(
        request: Request, exc: DuplicateNameError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "code": "DUPLICATE_NAME"},
        )

    @app.exception_handler(ServerValidationError)
    async def handle_server_validation(
        request: Request, exc: ServerValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc), "code": "INVALID_SERVER"},
        )
