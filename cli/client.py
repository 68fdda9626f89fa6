"""API client for the agent bridge with SSE stream parsing."""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from .config import CLIConfig

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "


def parse_sse_block(block: str) -> list[dict[str, Any]]:
    """Decode the ``data:`` lines of one SSE event block."""
    events: list[dict[str, Any]] = []
    for line in block.split("\n"):
        line = line.strip()
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX):]
        try:
            events.append(json.loads(data))
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse SSE data: %s, error: %s", data, e)
    return events


def _error_event(message: str, code: str) -> dict[str, Any]:
    return {"type": "error", "message": message, "code": code}


class BridgeAPIClient:
    """Client for the bridge's chat, status and server endpoints."""

    def __init__(
        self, config: CLIConfig, transport: httpx.AsyncBaseTransport | None = None
    ):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=httpx.Timeout(10.0, read=config.timeout),
            transport=transport,
        )

    async def chat(
        self, message: str, system_prompt: str | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Send a prompt and stream the parsed SSE events.

        Transport and HTTP failures are yielded as ``error`` events.
        """
        payload: dict[str, Any] = {"message": message}
        if system_prompt:
            payload["system_prompt"] = system_prompt

        try:
            async with self.client.stream(
                "POST", "/chat", json=payload, headers={"Accept": "text/event-stream"}
            ) as response:
                logger.debug("Response status: %s", response.status_code)
                logger.debug("Response headers: %s", dict(response.headers))

                if response.status_code != 200:
                    body = (await response.aread()).decode(errors="replace")
                    yield self._http_error_event(response.status_code, body)
                    return

                # Each event ends with a blank line.
                buffer = ""
                async for chunk in response.aiter_text():
                    buffer += chunk
                    while "\n\n" in buffer:
                        block, buffer = buffer.split("\n\n", 1)
                        for event in parse_sse_block(block):
                            yield event

        except httpx.TimeoutException:
            yield _error_event("Request timed out.", "TIMEOUT")
        except httpx.ConnectError as e:
            yield _error_event(f"Connection error: {e}", "CONNECTION_ERROR")

    @staticmethod
    def _http_error_event(status_code: int, body: str) -> dict[str, Any]:
        try:
            detail = json.loads(body)
        except json.JSONDecodeError:
            return _error_event(f"HTTP {status_code}: {body}", "HTTP_ERROR")
        message = str(detail.get("detail", body))
        if detail.get("instructions"):
            message = f"{message}\n\n{detail['instructions']}"
        return _error_event(message, detail.get("code") or "HTTP_ERROR")

    async def cancel(self) -> bool:
        response = await self.client.post("/chat/cancel")
        response.raise_for_status()
        return bool(response.json().get("cancelled"))

    async def cli_status(self) -> dict[str, Any]:
        response = await self.client.get("/cli")
        response.raise_for_status()
        return response.json()

    async def list_servers(self) -> list[dict[str, Any]]:
        response = await self.client.get("/servers")
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        await self.client.aclose()
