"""
Broadcast endpoint: one message to every registered teammate.
"""

import logging

from fastapi import APIRouter, Depends

from teamctl.api.dependencies import get_session
from teamctl.api.models import BroadcastResponse, SendMessageRequest
from teamctl.controller.session import SessionSlot
from teamctl.core.errors import TeamCtlError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


@router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast(
    request: SendMessageRequest,
    session: SessionSlot = Depends(get_session)
) -> BroadcastResponse:
    """
    Send ``message`` to every teammate currently in the registry.

    A failed delivery does not stop the others; failures are listed in the
    response.
    """
    sent, failed = [], []
    async with session.active() as controller:
        for agent in await controller.list_agents():
            try:
                await controller.send(agent.name, request.message, request.summary)
                sent.append(agent.name)
            except TeamCtlError as e:
                logger.warning(f"Broadcast to {agent.name} failed: {e}")
                failed.append(agent.name)
    return BroadcastResponse(sent=sent, failed=failed)
