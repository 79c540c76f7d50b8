"""
Teammate management endpoints.

Each endpoint maps onto one TeamController operation. Agent names are
validated before anything touches the filesystem.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from teamctl.api.dependencies import get_session
from teamctl.api.models import (
    AgentStatusResponse,
    OkResponse,
    SendMessageRequest,
    SpawnAgentRequest,
    SpawnAgentResponse,
)
from teamctl.controller.session import SessionSlot
from teamctl.controller.team_controller import DEFAULT_AGENT_TYPE, AgentStatus
from teamctl.core.paths import validate_name

logger = logging.getLogger(__name__)

SHUTDOWN_REASON = "API shutdown requested"

router = APIRouter(
    prefix="/agents",
    tags=["Agents"],
    responses={404: {"description": "Agent not found"}}
)


def to_response(agent: AgentStatus) -> AgentStatusResponse:
    return AgentStatusResponse(
        name=agent.name,
        agent_type=agent.agent_type,
        model=agent.model,
        running=agent.running,
    )


@router.get("", response_model=List[AgentStatusResponse])
async def list_agents(session: SessionSlot = Depends(get_session)) -> List[AgentStatusResponse]:
    """
    List teammates (the controller itself is excluded).

    Example:
        ```
        GET /agents

        Response:
        [{"name": "alice", "type": "general-purpose", "model": null, "running": true}]
        ```
    """
    async with session.active() as controller:
        agents = await controller.list_agents()
    return [to_response(agent) for agent in agents]


@router.post("", response_model=SpawnAgentResponse, status_code=status.HTTP_201_CREATED)
async def spawn_agent(
    request: SpawnAgentRequest,
    session: SessionSlot = Depends(get_session)
) -> SpawnAgentResponse:
    """
    Spawn a teammate.

    Example:
        ```json
        POST /agents
        {"name": "alice", "type": "reviewer", "permissions": ["Read"]}

        Response (201 Created):
        {"name": "alice", "type": "reviewer", "model": null, "pid": 4242, "running": true}
        ```
    """
    validate_name(request.name)
    async with session.active() as controller:
        pid = await controller.spawn_agent(
            request.name,
            agent_type=request.agent_type,
            model=request.model,
            cwd=request.cwd,
            permission_mode=request.permission_mode,
            allowed_tools=request.permissions or [],
            env=request.env or {},
        )
    return SpawnAgentResponse(
        name=request.name,
        agent_type=request.agent_type or DEFAULT_AGENT_TYPE,
        model=request.model,
        pid=pid,
        running=True,
    )


@router.get("/{name}", response_model=AgentStatusResponse)
async def get_agent(name: str, session: SessionSlot = Depends(get_session)) -> AgentStatusResponse:
    """Status of one teammate."""
    validate_name(name)
    async with session.active() as controller:
        agent = await controller.get_agent(name)
        running = controller.is_agent_running(name)

    if agent is not None:
        return to_response(agent)
    if running:
        return AgentStatusResponse(name=name, running=True)
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Agent '{name}' not found"
    )


@router.post("/{name}/messages", response_model=OkResponse)
async def send_message(
    name: str,
    request: SendMessageRequest,
    session: SessionSlot = Depends(get_session)
) -> OkResponse:
    """Write a message from the controller into the teammate's mailbox."""
    validate_name(name)
    async with session.active() as controller:
        await controller.send(name, request.message, request.summary)
    return OkResponse()


@router.post("/{name}/kill", response_model=OkResponse)
async def kill_agent(name: str, session: SessionSlot = Depends(get_session)) -> OkResponse:
    """Force-kill a teammate and remove it from the team."""
    validate_name(name)
    async with session.active() as controller:
        await controller.kill_agent(name)
    return OkResponse()


@router.post("/{name}/shutdown", response_model=OkResponse)
async def shutdown_agent(name: str, session: SessionSlot = Depends(get_session)) -> OkResponse:
    """Ask a teammate to shut down; returns without waiting for it."""
    validate_name(name)
    async with session.active() as controller:
        await controller.shutdown_agent(name, SHUTDOWN_REASON)
    return OkResponse()


# The controller answers plan and permission requests through its approval
# policy; these two are accepted so UI clients can call them unconditionally.

@router.post("/{name}/approve-plan", response_model=OkResponse)
async def approve_plan(name: str) -> OkResponse:
    validate_name(name)
    return OkResponse()


@router.post("/{name}/approve-permission", response_model=OkResponse)
async def approve_permission(name: str) -> OkResponse:
    validate_name(name)
    return OkResponse()
