"""Lifespan dependency injection.

``inject`` wraps a lifespan function so it can declare ``Depends()``
parameters the same way a route does.  Each ``build_*`` dependency is an
async generator: setup before ``yield``, teardown after.  FastAPI's
dependency solver orders them and an ``AsyncExitStack`` unwinds them in
reverse on shutdown.

``app.dependency_overrides`` applies here too, so tests can replace any
``build_*`` step.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from functools import partial
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.dependencies.utils import get_dependant, solve_dependencies


def get_app(request: Request) -> FastAPI:
    """The application itself, for lifespan dependencies that attach state."""
    return request.app


def _lifespan_request(app: FastAPI) -> Request:
    # Synthetic request; only ``app`` and ``state`` are read by dependencies.
    return Request(
        scope={
            "type": "http",
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/",
            "raw_path": b"/",
            "query_string": b"",
            "root_path": "",
            "headers": ((b"x-request-scope", b"lifespan"),),
            "client": ("localhost", 80),
            "server": ("localhost", 80),
            "state": app.state,
            "app": app,
        }
    )


def inject(lifespan: Callable[..., Any]) -> Callable[[FastAPI], Any]:
    """Resolve the ``Depends()`` parameters of *lifespan* at startup."""

    @asynccontextmanager
    async def wrapper(app: FastAPI):  # type: ignore[misc]
        dependant = get_dependant(path="/", call=partial(lifespan, app))
        async with AsyncExitStack() as stack:
            solved = await solve_dependencies(
                request=_lifespan_request(app),
                dependant=dependant,
                async_exit_stack=stack,
                embed_body_fields=False,
                dependency_overrides_provider=app,
            )
            async with asynccontextmanager(lifespan)(app, **solved.values):
                yield

    return wrapper
