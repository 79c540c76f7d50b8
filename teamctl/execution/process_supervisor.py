"""
Process Supervisor for teammate agents.

Spawns one teammate process per agent name, attached to a pseudo-terminal.
The PTY master is drained on a background thread so a teammate can never
stall on a full terminal buffer. The supervisor is the only owner of the
processes it starts and the only component that terminates them.

Spawning under a name that is already tracked kills the tracked process
before the new one takes its place.
"""

import os
import pty
import signal
import logging
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from teamctl.core.errors import SpawnError

logger = logging.getLogger(__name__)

# Teammate binaries only join teams with this flag set.
TEAMS_ENV_FLAG = "CLAUDE_CODE_EXPERIMENTAL_AGENT_TEAMS"

KILL_WAIT_SECONDS = 5.0
DRAIN_CHUNK = 4096


@dataclass
class SpawnAgentOptions:
    """Everything needed to launch one teammate."""
    team_name: str
    agent_name: str
    agent_id: str
    cwd: str
    claude_binary: str
    agent_type: Optional[str] = None
    model: Optional[str] = None
    parent_session_id: Optional[str] = None
    color: Optional[str] = None
    permission_mode: Optional[str] = None
    allowed_tools: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


def build_teammate_args(opts: SpawnAgentOptions) -> List[str]:
    """Command line for a teammate process, binary first."""
    args = [
        opts.claude_binary,
        "--teammate-mode", "auto",
        "--agent-id", opts.agent_id,
        "--agent-name", opts.agent_name,
        "--team-name", opts.team_name,
    ]
    optional = (
        ("--agent-type", opts.agent_type),
        ("--agent-color", opts.color),
        ("--parent-session-id", opts.parent_session_id),
        ("--model", opts.model),
        ("--permission-mode", opts.permission_mode),
    )
    for flag, value in optional:
        if value and value.strip():
            args.extend([flag, value])
    for tool in opts.allowed_tools:
        args.extend(["--allowedTools", tool])
    return args


def build_teammate_env(opts: SpawnAgentOptions) -> Dict[str, str]:
    env = dict(os.environ)
    env[TEAMS_ENV_FLAG] = "1"
    env.update(opts.env)
    return env


class AgentProcess:
    """A tracked teammate: the child process and its PTY master."""

    def __init__(self, name: str, process: subprocess.Popen, master_fd: int):
        self.name = name
        self.process = process
        self.master_fd = master_fd
        self._drain_thread = threading.Thread(
            target=self._drain, name=f"pty-drain-{name}", daemon=True
        )
        self._drain_thread.start()

    @property
    def pid(self) -> int:
        return self.process.pid

    def _drain(self) -> None:
        """Read and discard PTY output until the slave side goes away."""
        try:
            while True:
                try:
                    chunk = os.read(self.master_fd, DRAIN_CHUNK)
                except OSError:
                    break
                if not chunk:
                    break
        finally:
            try:
                os.close(self.master_fd)
            except OSError:
                pass

    def kill(self) -> None:
        """Force-terminate the teammate and its process group."""
        if self.process.poll() is None:
            try:
                os.killpg(self.process.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                self.process.kill()
        try:
            self.process.wait(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.error(f"Teammate {self.name} (pid {self.pid}) did not exit after SIGKILL")
        self._drain_thread.join(timeout=1.0)


class ProcessSupervisor:
    """
    Owns every teammate process started by one controller.

    Thread-safe: spawn/kill are called from executor threads.
    """

    def __init__(self):
        self._processes: Dict[str, AgentProcess] = {}
        self._lock = threading.Lock()

    def spawn(self, opts: SpawnAgentOptions) -> int:
        """Start a teammate attached to a fresh PTY and return its pid."""
        args = build_teammate_args(opts)
        env = build_teammate_env(opts)

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnError(f"openpty: {e}") from e

        try:
            process = subprocess.Popen(
                args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=opts.cwd,
                env=env,
                close_fds=True,
                start_new_session=True,
            )
        except OSError as e:
            os.close(master_fd)
            raise SpawnError(f"spawn_command: {e}") from e
        finally:
            os.close(slave_fd)

        agent = AgentProcess(opts.agent_name, process, master_fd)

        with self._lock:
            previous = self._processes.get(opts.agent_name)
            self._processes[opts.agent_name] = agent

        if previous is not None:
            logger.warning(f"Replacing running teammate {opts.agent_name} (pid {previous.pid})")
            previous.kill()

        logger.info(f"Spawned teammate {opts.agent_id} (pid {agent.pid})")
        return agent.pid

    def is_running(self, agent_name: str) -> bool:
        """True if a process is tracked under ``agent_name``."""
        with self._lock:
            return agent_name in self._processes

    def pid_of(self, agent_name: str) -> Optional[int]:
        with self._lock:
            agent = self._processes.get(agent_name)
        return agent.pid if agent else None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._processes)

    def kill(self, agent_name: str) -> bool:
        """Kill and forget ``agent_name``; returns False if it was not tracked."""
        with self._lock:
            agent = self._processes.pop(agent_name, None)
        if agent is None:
            return False
        agent.kill()
        logger.info(f"Killed teammate {agent_name} (pid {agent.pid})")
        return True

    def kill_all(self) -> None:
        for name in self.names():
            self.kill(name)
