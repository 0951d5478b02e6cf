"""Pytest configuration and fixtures for cron-claude tests.

Every test gets its own settings home so nothing touches the user's real
~/.cron-claude (signing key, logs, locks).
"""

import subprocess
from typing import List, Optional

import pytest

from cron_claude.settings import CronSettings, clear_settings_cache


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path_factory):
    """Keep real credentials and config locations out of every test."""
    home = tmp_path_factory.mktemp("cron_claude_home")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("LOGFIRE_TOKEN", raising=False)
    monkeypatch.setenv("CRON_CLAUDE_HOME_DIR", str(home))
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path) -> CronSettings:
    """Settings rooted in tmp_path with a short CLI timeout."""
    return CronSettings(home_dir=tmp_path / "home", cli_timeout_seconds=5)


class FakeRunner:
    """Stands in for native.run_command; records calls and replays results."""

    def __init__(self, results: Optional[List[subprocess.CompletedProcess]] = None):
        self.calls: List[dict] = []
        self.results = list(results or [])

    def queue(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.results.append(
            subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)
        )

    def __call__(self, args, input_text=None, timeout=None):
        self.calls.append({"args": list(args), "input": input_text})
        if self.results:
            return self.results.pop(0)
        return subprocess.CompletedProcess(args=args, returncode=0, stdout="", stderr="")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
