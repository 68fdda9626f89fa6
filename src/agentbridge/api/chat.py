"""Chat API endpoints: stream one agent run, cancel it."""

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from .deps import APIConfigDep, LocatorDep, OrchestratorDep
from .models import CancelResponse, ChatRequest
from .streaming import sse_stream

STREAMING_RESPONSE_MEDIA_TYPE = "text/event-stream"
STREAMING_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

router = APIRouter(prefix="/api/v1", tags=["chat"])


@router.post("/chat")
async def chat(
    chat_request: ChatRequest,
    locator: LocatorDep,
    orchestrator: OrchestratorDep,
    api_config: APIConfigDep,
) -> StreamingResponse:
    """
    Run the agent on the request and stream its output.

    The response is a stream of Server-Sent Events, each a JSON object:
    - content: Agent output, in arrival order
    - end_of_stream: Marks the end of the response
    - error: Error information

    A missing CLI (503) and a busy orchestrator (409) are reported as
    status codes when detectable before streaming starts.  Disconnecting
    kills the agent process.
    """
    if not await locator.is_installed():
        raise locator.not_installed_error()
    orchestrator.ensure_can_send()

    return StreamingResponse(
        sse_stream(
            orchestrator.send(chat_request.message, chat_request.to_context()),
            request_timeout=api_config.request_timeout,
            send_traceback=api_config.send_traceback,
        ),
        media_type=STREAMING_RESPONSE_MEDIA_TYPE,
        headers=STREAMING_RESPONSE_HEADERS,
    )


@router.post("/chat/cancel")
async def cancel_chat(orchestrator: OrchestratorDep) -> CancelResponse:
    """Cancel the in-flight run; a no-op when nothing is running."""
    was_running = orchestrator.is_processing
    await orchestrator.cancel()
    return CancelResponse(cancelled=was_running)
