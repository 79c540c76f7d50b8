"""
Pytest configuration and shared fixtures for teamctl tests.
"""

import os
import stat
import pytest
from pathlib import Path


FAKE_CLAUDE = """#!/bin/sh
case "$1" in
  --version)
    echo "2.1.0 (fake teammate)"
    exit 0
    ;;
  --help)
    echo "Usage: claude [options]"
    echo "  --team-name <name>        team to join"
    echo "  --teammate-mode <mode>    run as a teammate"
    exit 0
    ;;
esac
if [ -n "$FAKE_CLAUDE_ARGS" ]; then
  printf '%s\\n' "$@" > "$FAKE_CLAUDE_ARGS.tmp"
  echo "flag=$CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS" >> "$FAKE_CLAUDE_ARGS.tmp"
  mv "$FAKE_CLAUDE_ARGS.tmp" "$FAKE_CLAUDE_ARGS"
fi
exec sleep 300
"""

OLD_CLAUDE = """#!/bin/sh
case "$1" in
  --version)
    echo "1.0.0 (no teams)"
    exit 0
    ;;
  --help)
    echo "Usage: claude [options]"
    echo "  --model <model>"
    exit 0
    ;;
esac
exec sleep 300
"""


def write_script(path: Path, content: str) -> str:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def make_script(tmp_path):
    """Factory writing an executable shell script into tmp_path."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, content: str) -> str:
        return write_script(bin_dir / name, content)

    return _make


@pytest.fixture
def fake_claude(make_script):
    """A teammate binary that supports agent teams and then sleeps."""
    return make_script("claude", FAKE_CLAUDE)


@pytest.fixture
def old_claude(make_script):
    """A teammate binary whose --help lacks the team flags."""
    return make_script("claude-old", OLD_CLAUDE)


@pytest.fixture
def teamctl_home(tmp_path, monkeypatch):
    """Point TEAMCTL_HOME at a fresh directory for the test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("TEAMCTL_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test."""
    import logging
    # Clear all handlers
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    # Reset to WARNING level
    logging.root.setLevel(logging.WARNING)
    yield


@pytest.fixture(autouse=True)
def clean_teamctl_env(monkeypatch):
    """Keep the developer's TEAMCTL_* settings out of the tests."""
    for key in list(os.environ):
        if key.startswith("TEAMCTL_"):
            monkeypatch.delenv(key, raising=False)


# Pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no subprocesses)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (spawn fake teammate processes)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (can be skipped with -m 'not slow')"
    )
