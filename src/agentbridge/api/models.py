"""Pydantic models for the bridge API."""

from traceback import format_exception
from typing import Literal

from pydantic import BaseModel, Field

from agentbridge.core.models import (
    OrchestratorState,
    RequestContext,
    SendOutcome,
    ToolServerConfig,
)

# One argv element; stays under the 128 KiB per-argument limit on Linux.
CHAT_MESSAGE_MAX_LENGTH = 30_000


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    message: str = Field(
        min_length=1,
        max_length=CHAT_MESSAGE_MAX_LENGTH,
        description="Prompt handed to the agent",
    )
    system_prompt: str | None = Field(
        default=None, description="Optional system prompt for this request"
    )
    allowed_tools: list[str] = Field(
        default_factory=list,
        description="Tool names the agent may use without asking",
    )

    def to_context(self) -> RequestContext:
        return RequestContext(
            system_prompt=self.system_prompt,
            allowed_tools=list(self.allowed_tools),
        )


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class ContentEvent(BaseModel):
    """A chunk of agent output, in arrival order."""

    type: Literal["content"] = "content"
    content: str = Field(description="Output text")


class EndOfStreamEvent(BaseModel):
    """End of stream marker event."""

    type: Literal["end_of_stream"] = "end_of_stream"


class ErrorEvent(BaseModel):
    """Error event."""

    type: Literal["error"] = "error"
    message: str = Field(description="Error message")
    code: str | None = Field(default=None, description="Error code")


StreamEvent = ContentEvent | EndOfStreamEvent | ErrorEvent


def format_sse(event: StreamEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


def format_error_sse(exc: BaseException, *, send_traceback: bool = False) -> str:
    if send_traceback:
        message = "".join(format_exception(exc))
    else:
        message = "An error occurred during processing."
    return format_sse(ErrorEvent(message=message, code="PROCESSING_ERROR"))


# ---------------------------------------------------------------------------
# Status / management payloads
# ---------------------------------------------------------------------------


class CliStatus(BaseModel):
    """Installation status of the agent CLI and the orchestrator state."""

    installed: bool
    path: str | None = None
    version: str | None = None
    install_instructions: str | None = None
    processing: bool = False
    state: OrchestratorState = OrchestratorState.IDLE
    last_outcome: SendOutcome | None = None


class EnabledUpdate(BaseModel):
    enabled: bool


class HostStateUpdate(BaseModel):
    """Partial host-capability signal; omitted fields keep their value."""

    http_endpoint: str | None = None
    is_running: bool | None = None
    registered_tools: int | None = Field(default=None, ge=0)


class CancelResponse(BaseModel):
    cancelled: bool


class HostStatus(BaseModel):
    """Current host-capability signal and the entry derived from it."""

    http_endpoint: str
    is_running: bool
    registered_tools: int
    entry: ToolServerConfig | None = None
