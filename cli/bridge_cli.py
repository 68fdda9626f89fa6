"""Main CLI loop for interactive use of the agent bridge."""

import asyncio
import logging
import signal
import sys
from typing import TextIO

import httpx

from .client import BridgeAPIClient
from .config import CLIConfig
from .formatter import ResponseFormatter, format_servers, format_status

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit", "q")


class BridgeCLI:
    """Interactive prompt loop; Ctrl-C during a response cancels the run."""

    def __init__(
        self,
        config: CLIConfig,
        input_stream: TextIO = sys.stdin,
        output_stream: TextIO = sys.stdout,
        system_prompt: str | None = None,
        client: BridgeAPIClient | None = None,
    ):
        self.config = config
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.system_prompt = system_prompt
        self.client = client or BridgeAPIClient(config)

    async def run(self) -> None:
        try:
            self._print_welcome()
            while True:
                try:
                    line = self._get_user_input().strip()
                    if not line:
                        continue
                    if line.lower() in EXIT_COMMANDS:
                        self._print("Goodbye!\n")
                        break
                    if line.startswith("/"):
                        await self._run_command(line)
                    else:
                        await self._process_message(line)
                except KeyboardInterrupt:
                    self._print("\n\nInterrupted. Use 'exit' or 'quit' to exit.\n")
                except EOFError:
                    self._print("\nGoodbye!\n")
                    break
        finally:
            await self.client.close()

    async def _run_command(self, line: str) -> None:
        command = line.split()[0].lower()
        try:
            if command == "/servers":
                self._print(format_servers(await self.client.list_servers()))
            elif command == "/status":
                self._print(format_status(await self.client.cli_status()))
            else:
                self._print("Commands: /servers, /status, exit\n")
        except httpx.HTTPError as e:
            self._print(f"❌ Error: {e}\n")

    async def _process_message(self, message: str) -> None:
        stream_task = asyncio.create_task(self._stream(message))
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, stream_task.cancel)
            handler_installed = True
        except (NotImplementedError, RuntimeError):
            handler_installed = False

        try:
            await stream_task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            self._print("\n\n⏹ Cancelled.\n")
            await self._cancel_remote()
        finally:
            if handler_installed:
                loop.remove_signal_handler(signal.SIGINT)

    async def _stream(self, message: str) -> None:
        formatter = ResponseFormatter(self.output_stream)
        async for event in self.client.chat(message, self.system_prompt):
            formatter.handle_event(event)
        formatter.finish_response()
        self._print("\n")

    async def _cancel_remote(self) -> None:
        try:
            await self.client.cancel()
        except httpx.HTTPError as e:
            logger.warning("Cancel request failed: %s", e)

    def _get_user_input(self) -> str:
        self._print("> ")
        line = self.input_stream.readline()
        if not line:
            raise EOFError
        return line.rstrip("\n\r")

    def _print_welcome(self) -> None:
        self._print("Agent Bridge CLI\n")
        self._print(f"Connected to: {self.config.base_url}\n")
        self._print(
            "Type a prompt and press Enter. Ctrl-C cancels a running response.\n"
            "/servers lists MCP servers, /status shows the agent CLI, "
            "'exit' or 'quit' leaves.\n\n"
        )

    def _print(self, text: str) -> None:
        self.output_stream.write(text)
        self.output_stream.flush()


async def main(
    host: str = "localhost",
    port: int = 8080,
    system_prompt: str | None = None,
    debug: bool = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    config = CLIConfig(host=host, port=port)
    await BridgeCLI(config, system_prompt=system_prompt).run()
