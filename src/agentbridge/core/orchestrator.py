"""ProcessOrchestrator — one agent subprocess per request, streamed back.

``send()`` is an async generator.  Each iteration step is one stdout read
of the agent process, decoded and yielded as soon as the OS hands it over
(no line or size batching).  The caller can stop at any time: closing the
generator, cancelling the consuming task, or calling ``cancel()`` all end
in the same cleanup path, which kills the whole process tree, deletes the
temporary ``--mcp-config`` file and returns the orchestrator to ``IDLE``.

Only one send is in flight per instance.  ``concurrent_sends`` decides
what a second ``send()`` does meanwhile: ``"reject"`` raises
``AlreadyInProgress``, ``"supersede"`` cancels the running one first.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import tempfile
import time
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field
from pathlib import Path

from agentbridge.configs.system import OrchestratorConfig
from agentbridge.infra.process import (
    OUTPUT_ENCODING,
    decode_output,
    kill_process_tree,
    terminate,
)
from agentbridge.infra.telemetry import (
    ATTR_SEND_EXIT_CODE,
    ATTR_SEND_HAS_MCP_CONFIG,
    ATTR_SEND_MESSAGE_LEN,
    ATTR_SEND_OUTCOME,
    ATTR_SEND_PID,
    SPAN_BRIDGE_SEND,
    tracer,
)

from .config_store import ServerConfigStore
from .errors import AlreadyInProgress, LaunchFailed
from .locator import BinaryLocator
from .metrics import (
    CONFIG_FILE_CLEANUP_FAILURES_TOTAL,
    PROCESSES_ACTIVE,
    SEND_DURATION_SECONDS,
    SENDS_TOTAL,
    STREAM_CHUNKS_TOTAL,
)
from .models import OrchestratorState, RequestContext, SendOutcome

logger = logging.getLogger(__name__)

PRINT_FLAG = "--print"
SYSTEM_PROMPT_FLAG = "--system-prompt"
ALLOWED_TOOLS_FLAG = "--allowedTools"
MCP_CONFIG_FLAG = "--mcp-config"

ProcessingListener = Callable[[bool], None]


def build_arguments(
    message: str,
    context: RequestContext | None = None,
    mcp_config_path: Path | None = None,
) -> list[str]:
    """Argument vector for one print-mode run (binary path not included).

    ``--allowedTools`` and ``--mcp-config`` must come after the message:
    the CLI treats flags that precede it as variadic and would swallow the
    message as one of their values.
    """
    args = [PRINT_FLAG]
    if context is not None and context.system_prompt:
        args += [SYSTEM_PROMPT_FLAG, context.system_prompt]
    args.append(message)
    if context is not None and context.allowed_tools:
        args += [ALLOWED_TOOLS_FLAG, ",".join(context.allowed_tools)]
    if mcp_config_path is not None:
        args += [MCP_CONFIG_FLAG, str(mcp_config_path)]
    return args


def format_error_marker(exit_code: int, stderr: str) -> str:
    """Trailing output unit reporting a failed run."""
    detail = stderr.strip() or f"process exited with code {exit_code}"
    return f"\n\n**Error:** {detail}"


@dataclass
class ProcessHandle:
    """Resources owned by the in-flight send; released exactly once."""

    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    process: asyncio.subprocess.Process | None = None
    config_path: Path | None = None
    stderr_task: asyncio.Task[bytes] | None = None
    outcome: SendOutcome = SendOutcome.OK
    started_at: float = field(default_factory=time.monotonic)
    notified_start: bool = False
    released: bool = False

    @property
    def is_alive(self) -> bool:
        return self.process is not None and self.process.returncode is None


class ProcessOrchestrator:
    def __init__(
        self,
        locator: BinaryLocator,
        store: ServerConfigStore | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._locator = locator
        self._store = store
        self._config = config or OrchestratorConfig()
        self._handle: ProcessHandle | None = None
        self._state = OrchestratorState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._listeners: list[ProcessingListener] = []
        self.last_outcome: SendOutcome | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._handle is not None and self._handle.is_alive

    @property
    def pid(self) -> int | None:
        if self._handle is None or self._handle.process is None:
            return None
        return self._handle.process.pid

    def subscribe(self, listener: ProcessingListener) -> None:
        """*listener(True)* when processing starts, *listener(False)* when it ends."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ProcessingListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, processing: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(processing)
            except Exception:
                logger.exception("Processing-state listener failed")

    def _set_state(self, state: OrchestratorState) -> None:
        if state is not self._state:
            logger.debug("Orchestrator %s -> %s", self._state.value, state.value)
            self._state = state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self, message: str, context: RequestContext | None = None
    ) -> AsyncGenerator[str, None]:
        """Run the agent on *message* and yield its output as it arrives.

        A non-zero exit is reported as a final ``**Error:**`` unit carrying
        the process's stderr, not as an exception.  A cancelled run simply
        stops yielding.

        Raises:
            NotInstalled: the agent CLI could not be located.
            AlreadyInProgress: another send is running (``reject`` policy).
            LaunchFailed: the process could not be started.
        """
        cli_path = await self._locator.resolve()
        if cli_path is None:
            self.last_outcome = SendOutcome.NOT_INSTALLED
            SENDS_TOTAL.labels(outcome=SendOutcome.NOT_INSTALLED.value).inc()
            raise self._locator.not_installed_error()

        handle = await self._claim()
        span = tracer.start_span(SPAN_BRIDGE_SEND)
        span.set_attribute(ATTR_SEND_MESSAGE_LEN, len(message))
        try:
            self._set_state(OrchestratorState.STARTING)
            config_json = self._store.build_config_json() if self._store else None
            if config_json is not None:
                handle.config_path = self._write_config_file(config_json)
            span.set_attribute(ATTR_SEND_HAS_MCP_CONFIG, handle.config_path is not None)

            argv = [str(cli_path), *build_arguments(message, context, handle.config_path)]
            process = await self._spawn(argv)
            handle.process = process
            PROCESSES_ACTIVE.inc()
            span.set_attribute(ATTR_SEND_PID, process.pid)

            # Print mode never reads stdin.
            if process.stdin is not None:
                process.stdin.close()
            if process.stdout is None or process.stderr is None:
                raise LaunchFailed(
                    f"{self._locator.binary_name} CLI process has no output pipes"
                )
            handle.stderr_task = asyncio.create_task(process.stderr.read())

            if handle.cancel_event.is_set():
                handle.outcome = SendOutcome.CANCELLED
                return

            self._set_state(OrchestratorState.STREAMING)
            handle.notified_start = True
            self._notify(True)

            decoder = codecs.getincrementaldecoder(OUTPUT_ENCODING)(errors="replace")
            while True:
                chunk = await process.stdout.read(self._config.read_size)
                if handle.cancel_event.is_set():
                    handle.outcome = SendOutcome.CANCELLED
                    return
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    STREAM_CHUNKS_TOTAL.inc()
                    yield text

            tail = decoder.decode(b"", final=True)
            if tail:
                yield tail

            self._set_state(OrchestratorState.DRAINING)
            exit_code = await process.wait()
            span.set_attribute(ATTR_SEND_EXIT_CODE, exit_code)
            if handle.cancel_event.is_set():
                handle.outcome = SendOutcome.CANCELLED
                return

            if exit_code != 0:
                handle.outcome = SendOutcome.NON_ZERO_EXIT
                stderr = await self._collect_stderr(handle)
                logger.warning(
                    "%s CLI exited with code %s: %s",
                    self._locator.binary_name,
                    exit_code,
                    stderr.strip(),
                )
                yield format_error_marker(exit_code, stderr)

        except (asyncio.CancelledError, GeneratorExit):
            # Consumer went away: task cancelled or generator closed early.
            handle.outcome = SendOutcome.CANCELLED
            raise
        except LaunchFailed:
            handle.outcome = SendOutcome.LAUNCH_FAILED
            self._set_state(OrchestratorState.FAILED)
            raise
        except Exception:
            handle.outcome = SendOutcome.FAILED
            self._set_state(OrchestratorState.FAILED)
            logger.exception("Agent run failed")
            raise
        finally:
            span.set_attribute(ATTR_SEND_OUTCOME, handle.outcome.value)
            span.end()
            await self._release(handle)

    async def cancel(self) -> None:
        """Cancel the in-flight send, if any; kills the whole process tree.

        Idempotent.  When the process is already running, cleanup finishes
        before this returns, even if the consumer never iterates again.
        """
        handle = self._handle
        if handle is None or handle.released:
            return
        logger.debug("Cancelling current request")
        handle.cancel_event.set()
        if handle.outcome is SendOutcome.OK:
            handle.outcome = SendOutcome.CANCELLED
        if handle.process is None:
            # Still starting; send() notices the event right after spawning.
            return
        self._set_state(OrchestratorState.CANCELLING)
        await self._release(handle)

    async def aclose(self) -> None:
        await self.cancel()

    def ensure_can_send(self) -> None:
        """Raise ``AlreadyInProgress`` now if ``send()`` would be rejected."""
        if not self._idle.is_set() and self._config.concurrent_sends == "reject":
            raise AlreadyInProgress("A request is already being processed")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _claim(self) -> ProcessHandle:
        while not self._idle.is_set():
            self.ensure_can_send()
            logger.info("Superseding the in-flight request")
            await self.cancel()
            await self._idle.wait()
        self._idle.clear()
        handle = ProcessHandle()
        self._handle = handle
        return handle

    def _working_dir(self) -> Path:
        return self._config.working_dir or Path(tempfile.gettempdir())

    def _write_config_file(self, config_json: str) -> Path:
        try:
            fd, name = tempfile.mkstemp(
                prefix=self._config.config_file_prefix, suffix=".json"
            )
        except OSError as e:
            raise LaunchFailed(f"Could not create MCP config file: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config_json)
        except OSError as e:
            self._delete_config_file(Path(name))
            raise LaunchFailed(f"Could not write MCP config file: {e}") from e
        logger.debug("Wrote MCP config to %s", name)
        return Path(name)

    async def _spawn(self, argv: list[str]) -> asyncio.subprocess.Process:
        logger.debug("Starting %s CLI: %s", self._locator.binary_name, argv)
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._working_dir(),
            )
        except OSError as e:
            raise LaunchFailed(
                f"Failed to start {self._locator.binary_name} CLI process: {e}"
            ) from e

    async def _collect_stderr(self, handle: ProcessHandle) -> str:
        if handle.stderr_task is None:
            return ""
        try:
            async with asyncio.timeout(self._config.kill_timeout.total_seconds()):
                return decode_output(await handle.stderr_task)
        except TimeoutError:
            logger.warning("Timed out collecting stderr of the agent process")
            return ""

    async def _release(self, handle: ProcessHandle) -> None:
        if handle.released:
            return
        handle.released = True

        # Everything before the reaping wait must stay synchronous: a
        # re-delivered cancellation can interrupt any await below.
        try:
            if handle.stderr_task is not None and not handle.stderr_task.done():
                handle.stderr_task.cancel()
            if handle.config_path is not None:
                self._delete_config_file(handle.config_path)
            if handle.process is not None:
                PROCESSES_ACTIVE.dec()
                if handle.process.returncode is None:
                    kill_process_tree(handle.process.pid)
                await asyncio.shield(
                    terminate(handle.process, self._config.kill_timeout)
                )
        finally:
            if self._handle is handle:
                self._handle = None
            self.last_outcome = handle.outcome
            SENDS_TOTAL.labels(outcome=handle.outcome.value).inc()
            SEND_DURATION_SECONDS.observe(time.monotonic() - handle.started_at)
            self._set_state(OrchestratorState.IDLE)
            self._idle.set()
            if handle.notified_start:
                self._notify(False)

    def _delete_config_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            CONFIG_FILE_CLEANUP_FAILURES_TOTAL.inc()
            logger.warning("Failed to delete MCP config file %s", path, exc_info=True)
