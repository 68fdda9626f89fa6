"""Orchestrator state machine and send outcome constants."""

from enum import Enum


class OrchestratorState(str, Enum):
    """Lifecycle of one send.

    ``IDLE → STARTING → STREAMING → DRAINING → IDLE`` on success,
    ``… → STREAMING → CANCELLING → IDLE`` on cancel, and
    ``any → FAILED → IDLE`` on launch or IO errors.
    """

    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    DRAINING = "draining"
    CANCELLING = "cancelling"
    FAILED = "failed"


class SendOutcome(str, Enum):
    """How the last send ended."""

    OK = "ok"
    NOT_INSTALLED = "not_installed"
    LAUNCH_FAILED = "launch_failed"
    NON_ZERO_EXIT = "non_zero_exit"
    CANCELLED = "cancelled"
    FAILED = "failed"


__all__ = ["OrchestratorState", "SendOutcome"]
