"""Exceptions raised by the bridge core."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge errors surfaced to the embedding caller."""


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class NotInstalled(BridgeError):
    """The agent CLI binary could not be located."""

    def __init__(self, message: str, *, instructions: str = "") -> None:
        super().__init__(message)
        self.instructions = instructions


class LaunchFailed(BridgeError):
    """The agent CLI was found but its process could not be started."""


class AlreadyInProgress(BridgeError):
    """A send was attempted while another one is still in flight."""


# ---------------------------------------------------------------------------
# Server configuration
# ---------------------------------------------------------------------------


class ServerValidationError(BridgeError, ValueError):
    """A tool server entry is incomplete (blank name, missing command/url)."""


class DuplicateNameError(ServerValidationError):
    """A tool server with the same name (case-insensitive) already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Server with name '{name}' already exists")
        self.name = name
