"""ServerRegistrationManager — drives the agent CLI's ``mcp`` sub-commands.

Registrations persist in the agent's own configuration (user scope), so
tool servers survive across projects.  Every operation is best-effort:
a missing binary, a launch failure or a non-zero exit all reduce to
``False`` / an empty list and a log line.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from agentbridge.configs.system import RegistrationConfig
from agentbridge.infra.process import CommandResult, run_command
from agentbridge.infra.telemetry import (
    ATTR_REGISTRATION_EXIT_CODE,
    ATTR_REGISTRATION_SUBCOMMAND,
    SPAN_REGISTRATION_COMMAND,
    tracer,
)

from .locator import BinaryLocator
from .metrics import REGISTRATION_COMMANDS_TOTAL
from .models import ToolServerConfig, TransportType

logger = logging.getLogger(__name__)

# First line printed by `mcp list` when nothing is registered.
NO_SERVERS_SENTINEL = "No MCP"


def build_add_args(server: ToolServerConfig, scope: str = "user") -> list[str]:
    """Argument vector for ``mcp add`` (binary path not included)."""
    args = ["mcp", "add", "--scope", scope, "--transport", server.transport.value]

    if server.transport is TransportType.STDIO:
        for key, value in server.env.items():
            args += ["--env", f"{key}={value}"]

    args.append(server.name)

    if server.transport is TransportType.STDIO:
        args.append("--")
        if server.command:
            args.append(server.command)
        args.extend(server.args)
    elif server.url:
        args.append(server.url)

    return args


def build_remove_args(name: str, scope: str = "user") -> list[str]:
    return ["mcp", "remove", "--scope", scope, name]


def parse_server_list(output: str) -> list[str]:
    """Extract server names from ``mcp list`` output.

    The name is the first token of each line, without the trailing colon
    newer CLI versions print after it.
    """
    names: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith(NO_SERVERS_SENTINEL):
            continue
        name = line.split(maxsplit=1)[0].rstrip(":")
        if name:
            names.append(name)
    return names


class ServerRegistrationManager:
    """Register / unregister / list tool servers in the agent's own state."""

    def __init__(
        self, locator: BinaryLocator, config: RegistrationConfig | None = None
    ) -> None:
        self._locator = locator
        self._config = config or RegistrationConfig()

    async def add_server(self, server: ToolServerConfig) -> bool:
        return await self._run_ok(build_add_args(server, self._config.scope))

    async def remove_server(self, name: str) -> bool:
        return await self._run_ok(build_remove_args(name, self._config.scope))

    async def list_servers(self) -> list[str]:
        result = await self._run(["mcp", "list"])
        if result is None or not result.ok:
            return []
        return parse_server_list(result.stdout)

    async def server_exists(self, name: str) -> bool:
        wanted = name.casefold()
        return any(s.casefold() == wanted for s in await self.list_servers())

    # ------------------------------------------------------------------
    # Shared execution primitive
    # ------------------------------------------------------------------

    async def _run_ok(self, args: Sequence[str]) -> bool:
        result = await self._run(args)
        return result is not None and result.ok

    async def _run(self, args: Sequence[str]) -> CommandResult | None:
        """Run ``<binary> *args``; ``None`` when it could not run at all.

        Task cancellation propagates (after the process tree is killed).
        """
        subcommand = " ".join(args[:2])
        path = await self._locator.resolve()
        if path is None:
            logger.warning(
                "%s CLI not found, cannot run `%s`",
                self._locator.binary_name,
                subcommand,
            )
            REGISTRATION_COMMANDS_TOTAL.labels(
                subcommand=subcommand, result="not_installed"
            ).inc()
            return None

        with tracer.start_as_current_span(SPAN_REGISTRATION_COMMAND) as span:
            span.set_attribute(ATTR_REGISTRATION_SUBCOMMAND, subcommand)
            try:
                result = await run_command(
                    [str(path), *args], timeout=self._config.command_timeout
                )
            except (OSError, TimeoutError) as e:
                logger.warning("Failed to run `%s`: %s", subcommand, e)
                REGISTRATION_COMMANDS_TOTAL.labels(
                    subcommand=subcommand, result="error"
                ).inc()
                return None
            span.set_attribute(ATTR_REGISTRATION_EXIT_CODE, result.exit_code)

        REGISTRATION_COMMANDS_TOTAL.labels(
            subcommand=subcommand, result="ok" if result.ok else "failed"
        ).inc()
        if result.ok:
            logger.debug("`%s` output: %s", subcommand, result.stdout.strip())
        return result
