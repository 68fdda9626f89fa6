"""Shared fixtures: a scriptable stand-in for the agent CLI."""

import json
import os
import sys
import tempfile
import time
from pathlib import Path

import psutil
import pytest

from agentbridge.configs.system import LocatorConfig
from agentbridge.core.locator import BinaryLocator

FAKE_AGENT_NAME = "agentbridge-fake-agent"

# Behaviour is selected through environment variables, which the spawned
# process inherits:
#   FAKE_AGENT_MODE      echo | fail | hang | hang_tree | split_utf8
#   FAKE_AGENT_RECORD    file receiving {"argv", "cwd", "pid", "mcp_config"}
#   FAKE_AGENT_MCP_LIST  stdout of `mcp list`
#   FAKE_AGENT_MCP_EXIT  exit code of `mcp add|remove|list`
FAKE_AGENT_SOURCE = r'''
import json
import os
import subprocess
import sys
import time

args = sys.argv[1:]
record_path = os.environ.get("FAKE_AGENT_RECORD")
record = {"argv": args, "cwd": os.getcwd(), "pid": os.getpid()}
if "--mcp-config" in args:
    config_path = args[args.index("--mcp-config") + 1]
    record["mcp_config_path"] = config_path
    with open(config_path, encoding="utf-8") as f:
        record["mcp_config"] = f.read()


def save():
    if record_path:
        with open(record_path, "w", encoding="utf-8") as f:
            json.dump(record, f)


def out(text):
    sys.stdout.write(text)
    sys.stdout.flush()


if args[:1] == ["--version"]:
    save()
    out("1.2.3 (Fake Agent)\n")
    sys.exit(0)

if args[:1] == ["mcp"]:
    save()
    if args[1:2] == ["list"]:
        out(os.environ.get("FAKE_AGENT_MCP_LIST", "No MCP servers configured.\n"))
    sys.exit(int(os.environ.get("FAKE_AGENT_MCP_EXIT", "0")))

mode = os.environ.get("FAKE_AGENT_MODE", "echo")
message = args[3] if args[1:2] == ["--system-prompt"] else args[1]

if mode == "echo":
    save()
    out("chunk1 ")
    time.sleep(0.05)
    out(message)
elif mode == "fail":
    save()
    out("partial")
    sys.stderr.write("rate limited\n")
    sys.exit(2)
elif mode == "split_utf8":
    save()
    sys.stdout.buffer.write(b"h\xc3")
    sys.stdout.flush()
    time.sleep(0.2)
    sys.stdout.buffer.write(b"\xa9llo")
    sys.stdout.flush()
elif mode in ("hang", "hang_tree"):
    if mode == "hang_tree":
        child = subprocess.Popen(
            [sys.executable, "-c", "import time; time.sleep(60)"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        record["child_pid"] = child.pid
    save()
    out("started\n")
    time.sleep(60)
'''


def _write_executable(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    return path


@pytest.fixture
def fake_agent(tmp_path: Path) -> Path:
    """Executable fake agent CLI; POSIX only."""
    if sys.platform == "win32":
        pytest.skip("fake agent binary requires a POSIX shell")
    script = tmp_path / "fake_agent.py"
    script.write_text(FAKE_AGENT_SOURCE, encoding="utf-8")
    # Shell wrapper keeps the shebang short; exec preserves the pid.
    return _write_executable(
        tmp_path / FAKE_AGENT_NAME,
        f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n',
    )


@pytest.fixture
def agent_record(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Path the fake agent writes its invocation details to."""
    path = tmp_path / "record.json"
    monkeypatch.setenv("FAKE_AGENT_RECORD", str(path))
    return path


@pytest.fixture
def locator(fake_agent: Path) -> BinaryLocator:
    return BinaryLocator(
        LocatorConfig(binary_name=FAKE_AGENT_NAME, extra_paths=[fake_agent])
    )


@pytest.fixture
def missing_locator(tmp_path: Path) -> BinaryLocator:
    return BinaryLocator(
        LocatorConfig(binary_name="agentbridge-no-such-binary"),
        home=tmp_path,
    )


def read_record(path: Path, timeout: float = 5.0) -> dict:
    """Wait for the fake agent's record file and parse it."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (FileNotFoundError, json.JSONDecodeError):
            if time.monotonic() > deadline:
                raise
            time.sleep(0.02)


def process_gone(pid: int, timeout: float = 5.0) -> bool:
    """True once *pid* has exited (zombies awaiting reaping count as gone)."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return True
        except psutil.NoSuchProcess:
            return True
        time.sleep(0.05)
    return False


def config_files_left(prefix: str) -> list[str]:
    return [
        name
        for name in os.listdir(tempfile.gettempdir())
        if name.startswith(prefix)
    ]
