"""
Team registry: the durable member list of a team.

One ``config.json`` per team. The controller is always member zero with
type ``"controller"``. Individual reads and writes take the team config lock
and writes are atomic, but ``add_member``/``remove_member`` are plain
read-modify-write sequences; the controller serializes them itself and
concurrent external writers are not supported.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from teamctl.communication.mailbox import (
    LOCK_INITIAL_BACKOFF,
    LOCK_MAX_BACKOFF,
    LOCK_RETRIES,
    atomic_write_json,
    exclusive_lock,
)
from teamctl.communication.message_types import now_ms
from teamctl.core import paths
from teamctl.core.errors import StorageError

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "controller"
CONTROLLER_TYPE = "controller"


def make_agent_id(agent_name: str, team_name: str) -> str:
    return f"{agent_name}@{team_name}"


@dataclass
class TeamMember:
    """One entry in a team's member list."""
    agent_id: str
    name: str
    agent_type: str
    joined_at: int
    cwd: str
    model: Optional[str] = None
    tmux_pane_id: Optional[str] = ""
    subscriptions: Optional[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "name": self.name,
            "agentType": self.agent_type,
            "model": self.model,
            "joinedAt": self.joined_at,
            "tmuxPaneId": self.tmux_pane_id,
            "cwd": self.cwd,
            "subscriptions": self.subscriptions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        return cls(
            agent_id=data["agentId"],
            name=data["name"],
            agent_type=data["agentType"],
            joined_at=data["joinedAt"],
            cwd=data["cwd"],
            model=data.get("model"),
            tmux_pane_id=data.get("tmuxPaneId"),
            subscriptions=data.get("subscriptions"),
        )


@dataclass
class TeamConfig:
    """The persisted team document."""
    name: str
    created_at: int
    lead_agent_id: str
    lead_session_id: str
    members: List[TeamMember] = field(default_factory=list)
    description: Optional[str] = None

    def member(self, name: str) -> Optional[TeamMember]:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "leadAgentId": self.lead_agent_id,
            "leadSessionId": self.lead_session_id,
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamConfig":
        return cls(
            name=data["name"],
            description=data.get("description"),
            created_at=data["createdAt"],
            lead_agent_id=data["leadAgentId"],
            lead_session_id=data["leadSessionId"],
            members=[TeamMember.from_dict(m) for m in data.get("members", [])],
        )


class TeamRegistry:
    """Reads and writes team documents under one base directory."""

    def __init__(self, base_dir: Optional[paths.PathLike] = None):
        self.base_dir = paths.get_base_dir(base_dir)

    def config_path(self, team_name: str) -> Path:
        return paths.team_config_path(team_name, self.base_dir)

    def ensure_team(self, team_name: str, cwd: str, lead_session_id: str) -> bool:
        """
        Create the team directory, mailbox directory, controller mailbox and
        config document.

        Returns True if a new config was written, False if one already
        existed (in which case it is left untouched).
        """
        team_dir = paths.team_dir(team_name, self.base_dir)
        inbox_dir = paths.inboxes_dir(team_name, self.base_dir)
        try:
            team_dir.mkdir(parents=True, exist_ok=True)
            inbox_dir.mkdir(parents=True, exist_ok=True)
            controller_inbox = paths.inbox_path(team_name, CONTROLLER_NAME, self.base_dir)
            if not controller_inbox.exists():
                atomic_write_json(controller_inbox, [])
        except OSError as e:
            raise StorageError(f"mkdir team: {e}") from e

        if self.config_path(team_name).exists():
            return False

        now = now_ms()
        lead_agent_id = make_agent_id(CONTROLLER_NAME, team_name)
        config = TeamConfig(
            name=team_name,
            created_at=now,
            lead_agent_id=lead_agent_id,
            lead_session_id=lead_session_id,
            members=[TeamMember(
                agent_id=lead_agent_id,
                name=CONTROLLER_NAME,
                agent_type=CONTROLLER_TYPE,
                joined_at=now,
                cwd=cwd,
            )],
        )
        self.write_config(team_name, config)
        logger.info(f"Created team '{team_name}' at {team_dir}")
        return True

    def read_config(self, team_name: str) -> TeamConfig:
        path = self.config_path(team_name)
        with self._locked(path):
            try:
                raw = path.read_text(encoding="utf-8")
            except OSError as e:
                raise StorageError(f"read config: {e}") from e
        try:
            return TeamConfig.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"parse config: {e}") from e

    def write_config(self, team_name: str, config: TeamConfig) -> None:
        path = self.config_path(team_name)
        with self._locked(path):
            try:
                atomic_write_json(path, config.to_dict())
            except OSError as e:
                raise StorageError(f"write config: {e}") from e

    def add_member(self, team_name: str, member: TeamMember) -> None:
        """Add ``member``, replacing any existing member with the same name."""
        config = self.read_config(team_name)
        config.members = [m for m in config.members if m.name != member.name]
        config.members.append(member)
        self.write_config(team_name, config)

    def remove_member(self, team_name: str, name: str) -> None:
        config = self.read_config(team_name)
        config.members = [m for m in config.members if m.name != name]
        self.write_config(team_name, config)

    def _locked(self, path: Path):
        return exclusive_lock(paths.lock_path_for(path), LOCK_RETRIES,
                              LOCK_INITIAL_BACKOFF, LOCK_MAX_BACKOFF)
