"""Entry point for running the CLI as a module."""

import argparse
import asyncio
import sys

from .bridge_cli import main


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Interactive CLI for the agent bridge API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host", type=str, default="localhost", help="Server host (default: localhost)"
    )
    parser.add_argument(
        "--port", type=int, default=8080, help="Server port (default: 8080)"
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=None,
        help="System prompt sent with every message",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (shows response headers)",
    )
    return parser.parse_args()


def cli_entry() -> None:
    args = parse_args()
    try:
        asyncio.run(
            main(
                host=args.host,
                port=args.port,
                system_prompt=args.system_prompt,
                debug=args.debug,
            )
        )
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli_entry()
