"""
Session lifecycle endpoints.

A session is one active TeamController. Initializing a new session tears
down the previous one (its teammates are killed and deregistered).
"""

import os
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from teamctl.api.dependencies import get_config, get_session
from teamctl.api.models import InitSessionRequest, OkResponse, SessionStatus
from teamctl.controller.session import SessionSlot
from teamctl.controller.team_controller import TeamController
from teamctl.core.config import ControllerConfig
from teamctl.core.paths import validate_name
from teamctl.execution.approval_policy import build_policy

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/session",
    tags=["Session"]
)


@router.get("", response_model=SessionStatus)
async def get_session_status(session: SessionSlot = Depends(get_session)) -> SessionStatus:
    """Whether a team session is initialized, and for which team."""
    return SessionStatus(initialized=session.is_active, team_name=session.team_name)


@router.post("/init", response_model=SessionStatus, status_code=status.HTTP_201_CREATED)
async def init_session(
    request: Optional[InitSessionRequest] = None,
    session: SessionSlot = Depends(get_session),
    config: ControllerConfig = Depends(get_config)
) -> SessionStatus:
    """
    Start a team session.

    Probes the teammate binary, creates or loads the team and installs the
    new controller, shutting down any previous session first.

    Example:
        ```json
        POST /session/init
        {"teamName": "feature-x", "cwd": "/home/me/project"}

        Response (201 Created):
        {"initialized": true, "teamName": "feature-x"}
        ```
    """
    request = request or InitSessionRequest()
    if request.team_name is not None:
        validate_name(request.team_name)

    team_name = request.team_name or config.default_team
    cwd = request.cwd or os.getcwd()
    claude_binary = request.claude_binary or config.claude_binary

    controller = await TeamController.init(
        team_name,
        cwd,
        claude_binary,
        default_env=request.env or {},
        base_dir=config.base_dir,
        policy=build_policy(config.approval_policy, config.allowed_tools,
                            config.approval_fallback),
        poll_interval=config.poll_interval,
    )
    await session.install(controller)

    logger.info(f"Session initialized for team '{team_name}' (cwd={cwd})")
    return SessionStatus(initialized=True, team_name=team_name)


@router.post("/shutdown", response_model=OkResponse)
async def shutdown_session(session: SessionSlot = Depends(get_session)) -> OkResponse:
    """Tear down the active session, killing its teammates."""
    if await session.clear():
        logger.info("Session shut down")
    return OkResponse()
