"""Tests for BinaryLocator discovery, caching and install instructions."""

from pathlib import Path

import pytest
from conftest import FAKE_AGENT_NAME

from agentbridge.configs.system import LocatorConfig
from agentbridge.core.errors import NotInstalled
from agentbridge.core.locator import BinaryLocator


class TestResolve:
    @pytest.mark.asyncio
    async def test_finds_configured_path(self, locator, fake_agent):
        assert await locator.resolve() == fake_agent
        assert await locator.is_installed()

    @pytest.mark.asyncio
    async def test_result_is_cached(self, fake_agent, tmp_path):
        moved = tmp_path / "moved-agent"
        locator = BinaryLocator(
            LocatorConfig(binary_name=FAKE_AGENT_NAME, extra_paths=[moved, fake_agent])
        )
        assert await locator.resolve() == fake_agent

        # A better candidate appearing later is ignored until clear_cache().
        fake_agent.rename(moved)
        assert await locator.resolve() == fake_agent

        locator.clear_cache()
        assert await locator.resolve() == moved

    @pytest.mark.asyncio
    async def test_absence_is_cached(self, fake_agent, tmp_path):
        target = tmp_path / "later-agent"
        locator = BinaryLocator(
            LocatorConfig(binary_name="agentbridge-no-such-binary", extra_paths=[target]),
            home=tmp_path,
        )
        assert await locator.resolve() is None

        fake_agent.rename(target)
        assert await locator.resolve() is None

        locator.clear_cache()
        assert await locator.resolve() == target

    @pytest.mark.asyncio
    async def test_skips_non_executable_candidates(self, fake_agent, tmp_path):
        plain = tmp_path / "not-executable"
        plain.write_text("#!/bin/sh\n")
        plain.chmod(0o644)
        locator = BinaryLocator(
            LocatorConfig(binary_name=FAKE_AGENT_NAME, extra_paths=[plain, fake_agent])
        )
        assert await locator.resolve() == fake_agent

    @pytest.mark.asyncio
    async def test_falls_back_to_path_search(self, fake_agent, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", f"{fake_agent.parent}:/usr/bin:/bin")
        locator = BinaryLocator(LocatorConfig(binary_name=FAKE_AGENT_NAME), home=tmp_path)
        assert await locator.resolve() == fake_agent

    @pytest.mark.asyncio
    async def test_not_found(self, missing_locator):
        assert await missing_locator.resolve() is None
        assert not await missing_locator.is_installed()


class TestGetVersion:
    @pytest.mark.asyncio
    async def test_reports_trimmed_version(self, locator):
        assert await locator.get_version() == "1.2.3 (Fake Agent)"

    @pytest.mark.asyncio
    async def test_none_when_not_installed(self, missing_locator):
        assert await missing_locator.get_version() is None

    @pytest.mark.asyncio
    async def test_none_on_failure(self, tmp_path):
        failing = tmp_path / "failing-agent"
        failing.write_text("#!/bin/sh\necho boom >&2\nexit 1\n")
        failing.chmod(0o755)
        locator = BinaryLocator(
            LocatorConfig(binary_name="failing-agent", extra_paths=[failing])
        )
        assert await locator.get_version() is None


class TestCandidatePaths:
    def test_linux_order(self):
        home = Path("/home/dev")
        locator = BinaryLocator(platform="linux", home=home)
        assert list(locator.candidate_paths()) == [
            Path("/usr/bin/claude"),
            Path("/usr/local/bin/claude"),
            home / ".local" / "bin" / "claude",
            home / ".npm-global" / "bin" / "claude",
        ]

    def test_macos_includes_homebrew(self):
        locator = BinaryLocator(platform="darwin", home=Path("/Users/dev"))
        assert Path("/opt/homebrew/bin/claude") in list(locator.candidate_paths())

    def test_windows_candidates(self, monkeypatch):
        monkeypatch.setenv("LOCALAPPDATA", "/win/local")
        monkeypatch.setenv("PROGRAMFILES", "/win/programs")
        monkeypatch.setenv("APPDATA", "/win/roaming")
        locator = BinaryLocator(platform="win32", home=Path("/win/home"))
        assert list(locator.candidate_paths()) == [
            Path("/win/local/Programs/claude/claude.exe"),
            Path("/win/programs/claude/claude.exe"),
            Path("/win/roaming/npm/claude.cmd"),
        ]

    def test_extra_paths_come_first(self):
        locator = BinaryLocator(
            LocatorConfig(extra_paths=[Path("/opt/agent/claude")]), platform="linux"
        )
        assert next(locator.candidate_paths()) == Path("/opt/agent/claude")


class TestInstallInstructions:
    @pytest.mark.parametrize("platform", ["linux", "darwin", "win32"])
    def test_mentions_npm_and_auth(self, platform):
        text = BinaryLocator(platform=platform).install_instructions()
        assert "npm install -g @anthropic-ai/claude-code" in text
        assert "claude auth" in text

    def test_macos_offers_homebrew(self):
        text = BinaryLocator(platform="darwin").install_instructions()
        assert "brew install claude" in text

    def test_windows_uses_powershell(self):
        text = BinaryLocator(platform="win32").install_instructions()
        assert "```powershell" in text

    def test_not_installed_error_carries_instructions(self):
        locator = BinaryLocator(platform="linux")
        error = locator.not_installed_error()
        assert isinstance(error, NotInstalled)
        assert error.instructions == locator.install_instructions()
