"""
WebSocket endpoint for streaming one teammate's messages.

Every message the controller's poller receives from the named teammate is
pushed to connected clients as it arrives:

    {"type": "connected", "agent": "alice", "teamName": "feature-x"}
    {"type": "message", "agent": "alice", "message": {"from": "alice", "text": "...", ...}}

Clients may send ``ping`` at any time and receive ``pong``.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from teamctl.api.dependencies import bearer_token, origin_allowed, token_matches
from teamctl.communication.broadcast import Subscription, SubscriptionClosed
from teamctl.core.errors import NoActiveSession
from teamctl.core.paths import is_valid_name

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


async def _forward(websocket: WebSocket, subscription: Subscription, agent_name: str) -> None:
    """Push fanned-out messages to the client until the subscription closes."""
    try:
        async for message in subscription:
            await websocket.send_json({
                "type": "message",
                "agent": agent_name,
                "message": message.to_dict()
            })
    except SubscriptionClosed:
        pass
    if subscription.dropped:
        logger.warning(f"Stream for {agent_name} dropped {subscription.dropped} message(s)")


@router.websocket("/agents/{name}/stream")
async def agent_stream(
    websocket: WebSocket,
    name: str,
    token: Optional[str] = Query(None, description="Bearer token, when query tokens are enabled")
):
    """Stream messages from teammate ``name`` to the client."""
    config = websocket.app.state.config
    session = websocket.app.state.session

    origin = websocket.headers.get("origin")
    if origin is not None and not origin_allowed(origin, config):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="invalid_origin")
        return
    if not token_matches(await bearer_token(websocket), token, config):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="unauthorized")
        return
    if not is_valid_name(name):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="invalid name")
        return

    try:
        async with session.active() as controller:
            subscription = await controller.subscribe(name)
            team_name = controller.team_name
    except NoActiveSession as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
        return

    await websocket.accept()
    forwarder = asyncio.create_task(_forward(websocket, subscription, name))

    try:
        await websocket.send_json({"type": "connected", "agent": name, "teamName": team_name})
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        logger.info(f"Stream client for {name} disconnected")

    finally:
        subscription.close()
        forwarder.cancel()
        try:
            await forwarder
        except asyncio.CancelledError:
            pass
        except WebSocketDisconnect:
            logger.info(f"Stream client for {name} went away mid-send")
        except Exception:
            logger.exception(f"Stream forwarder for {name} failed")
