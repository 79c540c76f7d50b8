"""
Integration tests for the PTY-backed process supervisor.

Teammates are small shell scripts standing in for the real binary.
"""

import os
import time
import pytest

from teamctl.core.errors import SpawnError
from teamctl.execution.process_supervisor import (
    TEAMS_ENV_FLAG,
    ProcessSupervisor,
    SpawnAgentOptions,
    build_teammate_args,
    build_teammate_env,
)


def options(binary, name="alice", **kwargs):
    return SpawnAgentOptions(
        team_name="team-a",
        agent_name=name,
        agent_id=f"{name}@team-a",
        cwd=os.getcwd(),
        claude_binary=binary,
        **kwargs
    )


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def pid_alive(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.mark.unit
class TestCommandLine:
    """Tests for build_teammate_args()/build_teammate_env()."""

    def test_required_arguments(self):
        assert build_teammate_args(options("claude")) == [
            "claude",
            "--teammate-mode", "auto",
            "--agent-id", "alice@team-a",
            "--agent-name", "alice",
            "--team-name", "team-a",
        ]

    def test_optional_arguments(self):
        args = build_teammate_args(options(
            "claude",
            agent_type="reviewer",
            color="blue",
            parent_session_id="sess-1",
            model="sonnet",
            permission_mode="acceptEdits",
            allowed_tools=["Read", "Bash(git:*)"],
        ))
        assert args[9:] == [
            "--agent-type", "reviewer",
            "--agent-color", "blue",
            "--parent-session-id", "sess-1",
            "--model", "sonnet",
            "--permission-mode", "acceptEdits",
            "--allowedTools", "Read",
            "--allowedTools", "Bash(git:*)",
        ]

    def test_blank_optionals_are_skipped(self):
        args = build_teammate_args(options("claude", model="  ", agent_type=""))
        assert "--model" not in args
        assert "--agent-type" not in args

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("INHERITED", "yes")
        env = build_teammate_env(options("claude", env={"EXTRA": "1", "INHERITED": "override"}))
        assert env[TEAMS_ENV_FLAG] == "1"
        assert env["EXTRA"] == "1"
        assert env["INHERITED"] == "override"


@pytest.mark.integration
class TestProcessSupervisor:
    """Tests for spawn/kill against real child processes."""

    def test_spawn_and_kill(self, fake_claude, tmp_path):
        supervisor = ProcessSupervisor()
        args_file = tmp_path / "args.txt"
        try:
            pid = supervisor.spawn(options(fake_claude, model="opus",
                                           env={"FAKE_CLAUDE_ARGS": str(args_file)}))
            assert pid > 0
            assert supervisor.is_running("alice")
            assert supervisor.pid_of("alice") == pid
            assert supervisor.names() == ["alice"]

            assert wait_for(args_file.exists)
            lines = args_file.read_text().splitlines()
            assert lines[:2] == ["--teammate-mode", "auto"]
            assert "--model" in lines and "opus" in lines
            assert lines[-1] == "flag=1"

            assert supervisor.kill("alice") is True
            assert not supervisor.is_running("alice")
            assert not pid_alive(pid)
            assert supervisor.kill("alice") is False
        finally:
            supervisor.kill_all()

    def test_spawn_failure(self, tmp_path):
        supervisor = ProcessSupervisor()
        with pytest.raises(SpawnError) as exc_info:
            supervisor.spawn(options(str(tmp_path / "missing-binary")))
        assert str(exc_info.value).startswith("spawn_command:")
        assert not supervisor.is_running("alice")

    def test_respawn_replaces_previous_process(self, fake_claude):
        supervisor = ProcessSupervisor()
        try:
            first = supervisor.spawn(options(fake_claude))
            second = supervisor.spawn(options(fake_claude))
            assert first != second
            assert supervisor.pid_of("alice") == second
            assert not pid_alive(first)
            assert pid_alive(second)
        finally:
            supervisor.kill_all()

    def test_kill_all(self, fake_claude):
        supervisor = ProcessSupervisor()
        pids = [supervisor.spawn(options(fake_claude, name=name)) for name in ("alice", "bob")]
        supervisor.kill_all()

        assert supervisor.names() == []
        assert not any(pid_alive(pid) for pid in pids)

    def test_exited_process_is_still_tracked(self, make_script):
        binary = make_script("quick", "#!/bin/sh\nexit 0\n")
        supervisor = ProcessSupervisor()
        try:
            supervisor.spawn(options(binary))
            time.sleep(0.2)
            assert supervisor.is_running("alice")
        finally:
            supervisor.kill_all()

    @pytest.mark.slow
    def test_chatty_teammate_never_blocks(self, make_script, tmp_path):
        done = tmp_path / "done"
        binary = make_script("chatty", (
            "#!/bin/sh\n"
            "head -c 1000000 /dev/zero | tr '\\0' 'x'\n"
            f"touch {done}\n"
            "exec sleep 300\n"
        ))
        supervisor = ProcessSupervisor()
        try:
            supervisor.spawn(options(binary))
            assert wait_for(done.exists, timeout=20.0)
        finally:
            supervisor.kill_all()
