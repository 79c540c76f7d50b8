"""
Pydantic models for control API request/response bodies.

Field names on the wire are camelCase (``teamName``, ``permissionMode``);
``type`` is exposed as ``agent_type`` in Python.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


# ============================================================================
# System / Session Models
# ============================================================================

class HealthResponse(BaseModel):
    """Liveness response."""
    status: str = Field("ok", description="Always 'ok' when the server answers")
    uptime: int = Field(..., description="Milliseconds since the server started")
    session: bool = Field(..., description="Whether a team session is active")


class InitSessionRequest(BaseModel):
    """Request to start (or replace) the team session."""
    team_name: Optional[str] = Field(None, alias="teamName", description="Team name, 1-64 chars of [A-Za-z0-9_-]")
    cwd: Optional[str] = Field(None, description="Working directory for the team")
    claude_binary: Optional[str] = Field(None, alias="claudeBinary", description="Teammate binary to probe and launch")
    env: Optional[Dict[str, str]] = Field(None, description="Environment passed to every teammate")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "teamName": "feature-x",
                "cwd": "/home/me/project",
                "claudeBinary": "claude"
            }
        }


class SessionStatus(BaseModel):
    """Whether a team session is initialized."""
    initialized: bool
    team_name: str = Field("", alias="teamName")

    class Config:
        populate_by_name = True


class OkResponse(BaseModel):
    ok: bool = True


# ============================================================================
# Agent Models
# ============================================================================

class SpawnAgentRequest(BaseModel):
    """Request to spawn a teammate."""
    name: str = Field(..., description="Agent name, 1-64 chars of [A-Za-z0-9_-]")
    agent_type: Optional[str] = Field(None, alias="type", description="Agent type (default: general-purpose)")
    model: Optional[str] = Field(None, description="Model override for the teammate")
    cwd: Optional[str] = Field(None, description="Working directory (default: team cwd)")
    permission_mode: Optional[str] = Field(None, alias="permissionMode")
    permissions: Optional[List[str]] = Field(None, description="Tools the teammate may use without asking")
    env: Optional[Dict[str, str]] = Field(None, description="Extra environment for this teammate")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "alice",
                "type": "general-purpose",
                "model": "sonnet",
                "permissions": ["Read", "Grep"]
            }
        }


class AgentStatusResponse(BaseModel):
    """Teammate status."""
    name: str
    agent_type: Optional[str] = Field(None, alias="type")
    model: Optional[str] = None
    running: bool

    class Config:
        populate_by_name = True


class SpawnAgentResponse(AgentStatusResponse):
    """Spawned teammate, including its process id."""
    pid: int


class SendMessageRequest(BaseModel):
    """A message for one teammate (or, for /broadcast, all of them)."""
    message: str = Field(..., description="Message text; may be a JSON encoded structured message")
    summary: Optional[str] = Field(None, description="Short summary shown in teammate UIs")


class BroadcastResponse(OkResponse):
    sent: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
