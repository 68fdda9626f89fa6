"""SSE wrapper around the orchestrator's output stream.

Turns the plain text chunks of ``ProcessOrchestrator.send`` into
``data: {...}\\n\\n`` events with a wall-clock timeout, an error boundary
and one span per stream.  Headers are already sent when the first chunk
goes out, so failures inside the stream become ``error`` events instead
of HTTP status codes.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from datetime import timedelta

from agentbridge.core.errors import AlreadyInProgress, LaunchFailed, NotInstalled
from agentbridge.core.metrics import SSE_STREAM_OUTCOMES_TOTAL
from agentbridge.infra.telemetry import (
    ATTR_SSE_CHUNKS,
    ATTR_SSE_ERROR_CODE,
    SPAN_SSE_STREAM,
    tracer,
)

from .models import (
    ContentEvent,
    EndOfStreamEvent,
    ErrorEvent,
    format_error_sse,
    format_sse,
)

logger = logging.getLogger(__name__)


async def sse_stream(
    chunks: AsyncGenerator[str, None],
    *,
    request_timeout: timedelta,
    send_traceback: bool = False,
) -> AsyncGenerator[str, None]:
    """Format agent output as SSE.

    Yields ``content`` events followed by ``end_of_stream``, or an
    ``error`` event when the run could not start or timed out.  Client
    disconnects propagate as ``CancelledError`` into *chunks*, which kills
    the agent process.
    """
    with tracer.start_as_current_span(SPAN_SSE_STREAM) as span:
        code = "ok"
        count = 0
        try:
            async with asyncio.timeout(request_timeout.total_seconds()), aclosing(
                chunks
            ):
                async for chunk in chunks:
                    count += 1
                    yield format_sse(ContentEvent(content=chunk))
            yield format_sse(EndOfStreamEvent())

        except NotInstalled as e:
            code = "NOT_INSTALLED"
            message = f"{e}\n\n{e.instructions}" if e.instructions else str(e)
            yield format_sse(ErrorEvent(message=message, code=code))
        except AlreadyInProgress as e:
            code = "ALREADY_IN_PROGRESS"
            yield format_sse(ErrorEvent(message=str(e), code=code))
        except LaunchFailed as e:
            code = "LAUNCH_FAILED"
            logger.warning("Agent launch failed: %s", e)
            yield format_sse(ErrorEvent(message=str(e), code=code))
        except TimeoutError:
            code = "REQUEST_TIMEOUT"
            logger.warning("Request timed out after %s.", request_timeout)
            yield format_sse(ErrorEvent(message="Request timed out.", code=code))
        except asyncio.CancelledError:
            code = "CANCELLED"
            raise
        except Exception as e:
            code = "PROCESSING_ERROR"
            span.record_exception(e)
            logger.warning("Unexpected error in SSE stream", exc_info=True)
            yield format_error_sse(e, send_traceback=send_traceback)
        finally:
            span.set_attribute(ATTR_SSE_ERROR_CODE, code)
            span.set_attribute(ATTR_SSE_CHUNKS, count)
            SSE_STREAM_OUTCOMES_TOTAL.labels(code=code).inc()
