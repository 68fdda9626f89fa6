"""Rendering of stream events and status payloads for the terminal."""

import logging
from typing import Any, TextIO

logger = logging.getLogger(__name__)


class ResponseFormatter:
    """Writes one streamed response to *output* as events arrive."""

    def __init__(self, output: TextIO):
        self.output = output
        self.content_started = False
        self.ended = False

    def handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")

        if event_type == "content":
            if not self.content_started:
                self._print("\n")
                self.content_started = True
            self._print(event.get("content", ""))

        elif event_type == "end_of_stream":
            self.ended = True

        elif event_type == "error":
            message = event.get("message", "Unknown error")
            code = event.get("code", "UNKNOWN")
            self._print(f"\n❌ Error [{code}]: {message}\n")

        else:
            logger.debug("Unknown event type: %s, event: %s", event_type, event)

    def finish_response(self) -> None:
        if self.content_started:
            self._print("\n")
        self.content_started = False

    def _print(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()


def format_servers(servers: list[dict[str, Any]]) -> str:
    if not servers:
        return "No MCP servers configured.\n"
    lines = []
    for server in servers:
        mark = "x" if server.get("enabled") else " "
        target = server.get("url") or " ".join(
            [server.get("command") or "", *server.get("args", [])]
        ).strip()
        suffix = " (host)" if server.get("isHostManaged") else ""
        lines.append(f"[{mark}] {server['name']} [{server.get('type')}] {target}{suffix}")
    return "\n".join(lines) + "\n"


def format_status(status: dict[str, Any]) -> str:
    if not status.get("installed"):
        instructions = status.get("install_instructions") or ""
        return f"Agent CLI is not installed.\n\n{instructions}\n"
    version = status.get("version") or "unknown version"
    lines = [
        f"Agent CLI: {status.get('path')} ({version})",
        f"State: {status.get('state')}",
    ]
    if status.get("last_outcome"):
        lines.append(f"Last run: {status['last_outcome']}")
    return "\n".join(lines) + "\n"
