"""Prometheus metrics for the bridge.

Custom process-level metrics that complement the HTTP metrics provided by
``prometheus-fastapi-instrumentator``.  All metrics use the
``agentbridge_`` prefix.
"""

import logging

from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from agentbridge.configs.system import TracingConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Send / subprocess metrics
# ---------------------------------------------------------------------------

SENDS_TOTAL = Counter(
    "agentbridge_sends_total",
    "Total sends, by outcome",
    ["outcome"],  # ok | not_installed | launch_failed | non_zero_exit | cancelled | failed
)

SEND_DURATION_SECONDS = Histogram(
    "agentbridge_send_duration_seconds",
    "Wall-clock duration of a send, from spawn to cleanup",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300, 600, 900),
)

PROCESSES_ACTIVE = Gauge(
    "agentbridge_processes_active",
    "Agent subprocesses currently alive",
)

STREAM_CHUNKS_TOTAL = Counter(
    "agentbridge_stream_chunks_total",
    "Output units yielded to callers",
)

CONFIG_FILE_CLEANUP_FAILURES_TOTAL = Counter(
    "agentbridge_config_file_cleanup_failures_total",
    "Temporary MCP config files that could not be deleted",
)

# ---------------------------------------------------------------------------
# Registration metrics
# ---------------------------------------------------------------------------

REGISTRATION_COMMANDS_TOTAL = Counter(
    "agentbridge_registration_commands_total",
    "`mcp` sub-command invocations, by sub-command and result",
    ["subcommand", "result"],  # result: ok | failed | not_installed | error
)

# ---------------------------------------------------------------------------
# API stream metrics
# ---------------------------------------------------------------------------

SSE_STREAM_OUTCOMES_TOTAL = Counter(
    "agentbridge_sse_stream_outcomes_total",
    "Chat SSE streams, by final code",
    ["code"],
)


def instrument_app(app: FastAPI, tracing: TracingConfig) -> None:
    """Attach HTTP instrumentation and the ``/metrics`` endpoint to *app*.

    Must run before the app serves its first ASGI event (middleware).
    """
    Instrumentator(
        should_instrument_requests_inprogress=True,
        excluded_handlers=tracing.excluded_urls,
    ).instrument(app).expose(app, endpoint="/metrics")
    logger.info("Prometheus metrics initialised")
