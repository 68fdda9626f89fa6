"""OpenTelemetry bootstrap — tracing initialisation and span names.

Configures a ``TracerProvider`` with an OTLP HTTP exporter when tracing is
enabled via ``TracingConfig``.  When disabled the module is a graceful no-op
and ``tracer`` hands out non-recording spans.

Usage::

    from agentbridge.infra.telemetry import SPAN_BRIDGE_SEND, tracer

    with tracer.start_as_current_span(SPAN_BRIDGE_SEND) as span:
        ...
"""

import base64
import logging

from opentelemetry import trace
from opentelemetry.trace import format_trace_id

from agentbridge.configs.system import TracingConfig

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("agentbridge")

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

SPAN_BRIDGE_SEND = "bridge.send"
SPAN_REGISTRATION_COMMAND = "registration.command"
SPAN_LOCATOR_RESOLVE = "locator.resolve"
SPAN_SSE_STREAM = "sse.stream"

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_SEND_MESSAGE_LEN = "bridge.message_len"
ATTR_SEND_HAS_MCP_CONFIG = "bridge.has_mcp_config"
ATTR_SEND_OUTCOME = "bridge.outcome"
ATTR_SEND_EXIT_CODE = "bridge.exit_code"
ATTR_SEND_PID = "bridge.pid"

ATTR_REGISTRATION_SUBCOMMAND = "registration.subcommand"
ATTR_REGISTRATION_EXIT_CODE = "registration.exit_code"

ATTR_LOCATOR_FOUND = "locator.found"

ATTR_SSE_ERROR_CODE = "sse.error_code"
ATTR_SSE_CHUNKS = "sse.chunks"


def init_telemetry(
    app: object | None = None,
    settings: TracingConfig | None = None,
) -> bool:
    """Initialise the OTEL ``TracerProvider`` and FastAPI instrumentation.

    Returns ``True`` when tracing was switched on.
    """
    if settings is None or not settings.enabled:
        logger.info("OpenTelemetry tracing disabled.")
        return False

    if not settings.endpoint:
        logger.warning(
            "Tracing enabled but no endpoint configured — "
            "skipping OpenTelemetry setup."
        )
        return False

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

    resource = Resource.create({"service.name": settings.service_name})
    sampler = ParentBased(root=TraceIdRatioBased(settings.sample_rate))
    provider = TracerProvider(resource=resource, sampler=sampler)

    headers: dict[str, str] = {}
    if settings.username or settings.password:
        credentials = f"{settings.username}:{settings.password}"
        encoded = base64.b64encode(credentials.encode()).decode()
        headers["Authorization"] = f"Basic {encoded}"

    exporter = OTLPSpanExporter(endpoint=settings.endpoint, headers=headers)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        excluded = ",".join(settings.excluded_urls) if settings.excluded_urls else ""
        FastAPIInstrumentor.instrument_app(app, excluded_urls=excluded)

    logger.info(
        "OpenTelemetry tracing initialised (service=%s).", settings.service_name
    )
    return True


def get_current_trace_id() -> str | None:
    """Return the active OTEL trace ID as a 32-char hex string, or ``None``."""
    ctx = trace.get_current_span().get_span_context()
    if ctx is None or not ctx.is_valid:
        return None
    return format_trace_id(ctx.trace_id)

