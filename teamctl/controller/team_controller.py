"""
Team controller.

Owns one team for the life of a session:

- probes the teammate binary and creates/loads the team on ``init``
- runs a single background poller that drains the controller's own mailbox,
  answers plan/permission requests through the approval policy and fans
  everything else out to per-agent subscribers
- spawns, messages, shuts down and kills teammates

Blocking work (file locks, disk I/O, process spawn/kill) runs in the default
executor so a contended mailbox never stalls the event loop.

Registry and supervisor calls are not transactional: a failure between them
can leave a member registered without a process or the reverse. A failed
spawn restores the member list entry it replaced.
"""

import asyncio
import functools
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from teamctl.communication.broadcast import DEFAULT_CAPACITY, ChannelRegistry, Subscription
from teamctl.communication.mailbox import MailboxStore
from teamctl.communication.message_types import (
    InboxMessage,
    PlanApprovalRequest,
    PollEvent,
    ShutdownRequest,
    StructuredMessage,
    build_approval_response,
    now_ms,
    utc_now_iso,
)
from teamctl.core import paths
from teamctl.core.errors import SpawnError, TeamCtlError
from teamctl.execution.approval_policy import ApprovalDecision, ApprovalPolicy, AutoApprovePolicy
from teamctl.execution.capability_probe import verify_teammate_support
from teamctl.execution.process_supervisor import ProcessSupervisor, SpawnAgentOptions
from teamctl.teams.registry import CONTROLLER_NAME, TeamMember, TeamRegistry, make_agent_id

logger = logging.getLogger(__name__)

DEFAULT_AGENT_TYPE = "general-purpose"
DEFAULT_POLL_INTERVAL = 0.5


@dataclass
class AgentStatus:
    """A registered teammate and whether the supervisor tracks a process for it."""
    name: str
    agent_type: str
    model: Optional[str]
    running: bool


def normalize_sender(team_name: str, sender: str) -> Optional[str]:
    """
    Map a message's ``from`` to an agent name.

    Accepts a plain valid name or ``name@<team_name>``; anything else
    (other teams, path fragments) yields None.
    """
    sender = sender.strip()
    if paths.is_valid_name(sender):
        return sender
    name, sep, team = sender.partition("@")
    if sep and team == team_name and paths.is_valid_name(name):
        return name
    return None


async def run_blocking(func, *args, **kwargs):
    """Run a blocking callable in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class TeamController:
    """
    Controller for one team.

    Lifecycle: construct via ``await TeamController.init(...)`` (active), end
    with ``await shutdown_all()`` (shut down).
    """

    def __init__(self, team_name: str, cwd: str, claude_binary: str,
                 default_env: Optional[Dict[str, str]] = None,
                 lead_session_id: Optional[str] = None,
                 mailbox: Optional[MailboxStore] = None,
                 registry: Optional[TeamRegistry] = None,
                 supervisor: Optional[ProcessSupervisor] = None,
                 policy: Optional[ApprovalPolicy] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 channel_capacity: int = DEFAULT_CAPACITY):
        self.team_name = paths.validate_name(team_name)
        self.controller_name = CONTROLLER_NAME
        self.cwd = cwd
        self.claude_binary = claude_binary
        self.default_env = dict(default_env or {})
        self.lead_session_id = lead_session_id or str(uuid.uuid4())
        self.mailbox = mailbox or MailboxStore()
        self.registry = registry or TeamRegistry(self.mailbox.base_dir)
        self.supervisor = supervisor or ProcessSupervisor()
        self.policy = policy or AutoApprovePolicy()
        self.poll_interval = poll_interval

        # Guards the channel map and poller state.
        self._lock = asyncio.Lock()
        # Serializes registry read-modify-write sequences.
        self._registry_lock = asyncio.Lock()
        self._channels = ChannelRegistry(channel_capacity)
        self._poller_started = False
        self._poller_task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._wake = asyncio.Event()
        self._closed = False

    @classmethod
    async def init(cls, team_name: str, cwd: str, claude_binary: str,
                   default_env: Optional[Dict[str, str]] = None,
                   base_dir: Optional[paths.PathLike] = None,
                   policy: Optional[ApprovalPolicy] = None,
                   poll_interval: float = DEFAULT_POLL_INTERVAL) -> "TeamController":
        """
        Probe the teammate binary, create or load the team and start the poller.

        Raises:
            InvalidNameError: If ``team_name`` is not a valid name
            CapabilityError: If the binary does not support agent teams
            StorageError: If the team files cannot be created
        """
        paths.validate_name(team_name)
        await run_blocking(verify_teammate_support, claude_binary)

        lead_session_id = str(uuid.uuid4())
        mailbox = MailboxStore(base_dir)
        registry = TeamRegistry(base_dir)
        created = await run_blocking(registry.ensure_team, team_name, cwd, lead_session_id)

        controller = cls(
            team_name, cwd, claude_binary,
            default_env=default_env,
            lead_session_id=lead_session_id,
            mailbox=mailbox,
            registry=registry,
            policy=policy,
            poll_interval=poll_interval,
        )
        await controller.start_poller()
        logger.info(f"Controller active for team '{team_name}' ({'created' if created else 'loaded'})")
        return controller

    # ------------------------------------------------------------------
    # Poller
    # ------------------------------------------------------------------

    @property
    def poller_running(self) -> bool:
        return self._poller_task is not None and not self._poller_task.done()

    async def start_poller(self) -> None:
        """Start the mailbox poller; later calls are no-ops."""
        async with self._lock:
            if self._poller_started:
                return
            self._poller_started = True
            self._poller_task = asyncio.get_running_loop().create_task(
                self._poll_loop(), name=f"teamctl-poller-{self.team_name}"
            )

    def wake(self) -> None:
        """Make the poller run its next cycle now."""
        self._wake.set()

    async def _poll_loop(self) -> None:
        logger.info(f"Poller started for team '{self.team_name}' every {self.poll_interval}s")
        while not self._stop.is_set():
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Controller poller cycle failed")

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
        logger.info(f"Poller stopped for team '{self.team_name}'")

    async def poll_once(self) -> int:
        """Drain the controller mailbox once; returns the number of events handled."""
        try:
            events = await run_blocking(self.mailbox.drain_unread, self.team_name, self.controller_name)
        except (TeamCtlError, OSError) as e:
            logger.error(f"Controller poller read failed: {e}")
            return 0

        for event in events:
            await self._dispatch(event)
        return len(events)

    async def _dispatch(self, event: PollEvent) -> None:
        sender = normalize_sender(self.team_name, event.raw.sender)
        if sender is None:
            logger.warning(f"Ignoring inbox event with invalid from={event.raw.sender!r}")
            return

        if ApprovalPolicy.is_approval_request(event):
            try:
                decision = self.policy.decide(event)
            except Exception:
                logger.exception(f"Approval policy failed for request from {sender}; deferring")
                decision = ApprovalDecision.DEFER
            if decision is not ApprovalDecision.DEFER:
                await self._answer_approval(sender, event.parsed,
                                            decision is ApprovalDecision.APPROVE)
                return

        async with self._lock:
            channel = self._channels.get_or_create(sender)
            channel.publish(event.raw)

    async def _answer_approval(self, sender: str, request: StructuredMessage, approved: bool) -> None:
        kind = "plan" if isinstance(request, PlanApprovalRequest) else "permission"
        response = build_approval_response(request, approved, self.controller_name)
        message = InboxMessage(
            sender=self.controller_name,
            text=response.to_json(),
            summary=f"auto-{'approved' if approved else 'denied'} {kind}",
        )
        try:
            await run_blocking(self.mailbox.append, self.team_name, sender, message)
        except (TeamCtlError, OSError) as e:
            logger.error(f"Failed to auto-answer {kind} request for {sender}: {e}")
            return
        logger.info(f"{'Approved' if approved else 'Denied'} {kind} request "
                    f"{response.request_id} from {sender}")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def subscribe(self, agent_name: str) -> Subscription:
        """Receive messages the poller fans out for ``agent_name`` from now on."""
        async with self._lock:
            return self._channels.get_or_create(agent_name).subscribe()

    async def spawn_agent(self, agent_name: str, agent_type: Optional[str] = None,
                          model: Optional[str] = None, cwd: Optional[str] = None,
                          permission_mode: Optional[str] = None,
                          allowed_tools: Optional[List[str]] = None,
                          env: Optional[Dict[str, str]] = None) -> int:
        """
        Register and start a teammate.

        Returns:
            The teammate's process id.

        Raises:
            InvalidNameError: If ``agent_name`` is invalid
            StorageError / MailboxLockTimeout: If mailbox or registry I/O fails
            SpawnError: If the process could not be started (the registry
                change is rolled back)
        """
        paths.validate_name(agent_name)
        cwd = cwd or self.cwd
        agent_id = make_agent_id(agent_name, self.team_name)

        await run_blocking(self.mailbox.ensure, self.team_name, agent_name)

        member = TeamMember(
            agent_id=agent_id,
            name=agent_name,
            agent_type=agent_type or DEFAULT_AGENT_TYPE,
            joined_at=now_ms(),
            cwd=cwd,
            model=model,
        )
        async with self._registry_lock:
            previous = await run_blocking(self._find_member, agent_name)
            await run_blocking(self.registry.add_member, self.team_name, member)

        merged_env = dict(self.default_env)
        merged_env.update(env or {})
        opts = SpawnAgentOptions(
            team_name=self.team_name,
            agent_name=agent_name,
            agent_id=agent_id,
            cwd=cwd,
            claude_binary=self.claude_binary,
            agent_type=agent_type,
            model=model,
            parent_session_id=self.lead_session_id,
            permission_mode=permission_mode,
            allowed_tools=list(allowed_tools or []),
            env=merged_env,
        )
        try:
            return await run_blocking(self.supervisor.spawn, opts)
        except SpawnError:
            await self._restore_member(agent_name, previous)
            raise

    async def send(self, agent_name: str, text: str, summary: Optional[str] = None) -> None:
        """Write one message from the controller into ``agent_name``'s mailbox."""
        paths.validate_name(agent_name)
        message = InboxMessage(sender=self.controller_name, text=text, summary=summary)
        await run_blocking(self.mailbox.append, self.team_name, agent_name, message)

    async def shutdown_agent(self, agent_name: str, reason: str) -> str:
        """Ask a teammate to exit. Returns the request id; no reply is awaited."""
        request = ShutdownRequest(
            request_id=f"shutdown-{now_ms()}@{agent_name}",
            sender=self.controller_name,
            reason=reason,
            timestamp=utc_now_iso(),
        )
        await self.send(agent_name, request.to_json(), summary="shutdown request")
        return request.request_id

    async def kill_agent(self, agent_name: str) -> bool:
        """
        Kill a teammate and drop it from the registry.

        Registry removal is best-effort. Returns whether a process was tracked.
        """
        paths.validate_name(agent_name)
        killed = await run_blocking(self.supervisor.kill, agent_name)
        try:
            async with self._registry_lock:
                await run_blocking(self.registry.remove_member, self.team_name, agent_name)
        except (TeamCtlError, OSError) as e:
            logger.warning(f"Could not remove {agent_name} from team registry: {e}")
        return killed

    def is_agent_running(self, agent_name: str) -> bool:
        return self.supervisor.is_running(agent_name)

    async def list_agents(self) -> List[AgentStatus]:
        """Registered teammates (controller excluded) with supervisor liveness."""
        config = await run_blocking(self.registry.read_config, self.team_name)
        return [
            AgentStatus(name=m.name, agent_type=m.agent_type, model=m.model,
                        running=self.supervisor.is_running(m.name))
            for m in config.members
            if m.name != self.controller_name
        ]

    async def get_agent(self, agent_name: str) -> Optional[AgentStatus]:
        for agent in await self.list_agents():
            if agent.name == agent_name:
                return agent
        return None

    async def shutdown_all(self) -> None:
        """
        Stop the poller, kill every teammate and deregister them.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        self._stop.set()
        self._wake.set()
        task = self._poller_task
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=max(self.poll_interval * 4, 2.0))
            if not done:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        await run_blocking(self.supervisor.kill_all)

        try:
            async with self._registry_lock:
                await run_blocking(self._remove_teammates)
        except (TeamCtlError, OSError) as e:
            logger.warning(f"Could not clean up team registry for '{self.team_name}': {e}")

        async with self._lock:
            self._channels.close_all()
        logger.info(f"Controller for team '{self.team_name}' shut down")

    # ------------------------------------------------------------------
    # Helpers (blocking, run in executor)
    # ------------------------------------------------------------------

    def _find_member(self, agent_name: str) -> Optional[TeamMember]:
        return self.registry.read_config(self.team_name).member(agent_name)

    def _remove_teammates(self) -> None:
        config = self.registry.read_config(self.team_name)
        config.members = [m for m in config.members if m.name == self.controller_name]
        self.registry.write_config(self.team_name, config)

    async def _restore_member(self, agent_name: str, previous: Optional[TeamMember]) -> None:
        try:
            async with self._registry_lock:
                if previous is None:
                    await run_blocking(self.registry.remove_member, self.team_name, agent_name)
                else:
                    await run_blocking(self.registry.add_member, self.team_name, previous)
        except (TeamCtlError, OSError) as e:
            logger.error(f"Spawn of {agent_name} failed and registry rollback failed: {e}")
