"""BinaryLocator — finds the agent CLI on the host and caches the answer."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

from agentbridge.configs.system import LocatorConfig
from agentbridge.infra.process import run_command
from agentbridge.infra.telemetry import (
    ATTR_LOCATOR_FOUND,
    SPAN_LOCATOR_RESOLVE,
    tracer,
)

from .errors import NotInstalled

logger = logging.getLogger(__name__)

_NPM_PACKAGE = "@anthropic-ai/claude-code"

_AUTH_STEP = """\
**After installation:**
```{shell}
{binary} auth
```

This will open a browser to authenticate with your Anthropic account.
"""

_INSTALL_MACOS = """\
## Install the {binary} CLI on macOS

**Option 1: npm (recommended)**
```bash
npm install -g {package}
```

**Option 2: Homebrew**
```bash
brew install {binary}
```

"""

_INSTALL_WINDOWS = """\
## Install the {binary} CLI on Windows

**Using npm:**
```powershell
npm install -g {package}
```

"""

_INSTALL_LINUX = """\
## Install the {binary} CLI on Linux

**Using npm:**
```bash
npm install -g {package}
```

"""


def _platform_family(platform: str) -> str:
    if platform.startswith("win"):
        return "windows"
    if platform == "darwin":
        return "macos"
    return "linux"


class BinaryLocator:
    """Resolve the agent CLI path once per process lifetime.

    Resolution order: configured extra paths, well-known install locations
    for the current platform, then ``which``/``where``.  Both a found path
    and "known absent" are cached until ``clear_cache()``.
    """

    def __init__(
        self,
        config: LocatorConfig | None = None,
        *,
        platform: str | None = None,
        home: Path | None = None,
    ) -> None:
        self._config = config or LocatorConfig()
        self._platform = _platform_family(platform or sys.platform)
        self._home = home
        self._lock = asyncio.Lock()
        self._resolved = False
        self._path: Path | None = None

    @property
    def binary_name(self) -> str:
        return self._config.binary_name

    def clear_cache(self) -> None:
        """Forget the cached result so the next ``resolve()`` probes again."""
        self._resolved = False
        self._path = None

    async def resolve(self) -> Path | None:
        """Return the CLI path, or ``None`` when it is not installed."""
        if self._resolved:
            return self._path

        async with self._lock:
            if self._resolved:
                return self._path

            with tracer.start_as_current_span(SPAN_LOCATOR_RESOLVE) as span:
                path = self._probe_candidates()
                if path is None:
                    path = await self._search_path()
                span.set_attribute(ATTR_LOCATOR_FOUND, path is not None)

            if path is None:
                logger.info("%s CLI not found", self.binary_name)
            else:
                logger.info("Found %s CLI at %s", self.binary_name, path)
            self._path = path
            self._resolved = True
            return path

    async def is_installed(self) -> bool:
        return await self.resolve() is not None

    async def get_version(self) -> str | None:
        """Run ``<binary> --version``; any failure collapses to ``None``."""
        path = await self.resolve()
        if path is None:
            return None
        try:
            result = await run_command(
                [str(path), "--version"], timeout=self._config.version_timeout
            )
        except (OSError, TimeoutError) as e:
            logger.warning("Could not query %s version: %s", path, e)
            return None
        return result.stdout.strip() if result.ok else None

    def install_instructions(self) -> str:
        """Markdown installation guide for the current platform."""
        fmt = {"binary": self.binary_name, "package": _NPM_PACKAGE}
        if self._platform == "macos":
            head, shell = _INSTALL_MACOS, "bash"
        elif self._platform == "windows":
            head, shell = _INSTALL_WINDOWS, "powershell"
        else:
            head, shell = _INSTALL_LINUX, "bash"
        return head.format(**fmt) + _AUTH_STEP.format(shell=shell, **fmt)

    def not_installed_error(self) -> NotInstalled:
        return NotInstalled(
            f"{self.binary_name} CLI is not installed",
            instructions=self.install_instructions(),
        )

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def candidate_paths(self) -> Iterator[Path]:
        """Well-known install locations, most specific first."""
        yield from self._config.extra_paths

        name = self.binary_name
        home = self._home or Path.home()
        if self._platform == "windows":
            local_app_data = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
            program_files = Path(os.environ.get("PROGRAMFILES", r"C:\Program Files"))
            app_data = Path(os.environ.get("APPDATA", home / "AppData" / "Roaming"))
            yield local_app_data / "Programs" / name / f"{name}.exe"
            yield program_files / name / f"{name}.exe"
            yield app_data / "npm" / f"{name}.cmd"
        elif self._platform == "macos":
            yield Path("/usr/local/bin") / name
            yield Path("/opt/homebrew/bin") / name
            yield home / ".local" / "bin" / name
            yield home / ".npm-global" / "bin" / name
        else:
            yield Path("/usr/bin") / name
            yield Path("/usr/local/bin") / name
            yield home / ".local" / "bin" / name
            yield home / ".npm-global" / "bin" / name

    def _probe_candidates(self) -> Path | None:
        for path in self.candidate_paths():
            if not path.is_file():
                continue
            if self._platform != "windows" and not os.access(path, os.X_OK):
                logger.debug("Skipping non-executable candidate %s", path)
                continue
            return path
        return None

    async def _search_path(self) -> Path | None:
        finder = "where" if self._platform == "windows" else "which"
        try:
            result = await run_command(
                [finder, self.binary_name], timeout=self._config.version_timeout
            )
        except (OSError, TimeoutError) as e:
            logger.debug("%s lookup failed: %s", finder, e)
            return None
        if not result.ok:
            return None
        lines = result.stdout.strip().splitlines()
        first = lines[0].strip() if lines else ""
        return Path(first) if first else None
