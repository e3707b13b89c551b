"""
WebSocket endpoint for realtime proposal rooms.

Clients authenticate with ?token=<jwt> and then send actions:

Join rooms (each proposal is re-authorized):
{"action": "join", "proposal_ids": ["<id>", "<id>"]}

Leave rooms:
{"action": "leave", "proposal_ids": ["<id>"]}

Keepalive:
{"action": "ping"}

Pushed events: message.created, read.updated, shipment.updated.
"""
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from sendix.db.session import async_session_maker
from sendix.models.user import User
from sendix.services.auth import user_from_token
from sendix.services.realtime import ConnectionManager, authorize_rooms, manager

router = APIRouter()
logger = structlog.get_logger(__name__)


def _requested_ids(data: dict[str, Any]) -> list[str]:
    ids = data.get("proposal_ids")
    if ids is None and data.get("proposal_id"):
        ids = [data["proposal_id"]]
    if not isinstance(ids, list):
        return []
    return [str(i) for i in ids if i]


async def handle_action(
    websocket: WebSocket,
    user: User,
    data: dict[str, Any],
    db: AsyncSession,
    connections: ConnectionManager = manager,
) -> None:
    """Process one client frame."""
    action = data.get("action")

    if action == "join":
        requested = _requested_ids(data)
        if not requested:
            await connections.send_error(websocket, "join requires proposal_ids")
            return
        allowed, denied = await authorize_rooms(db, user, requested)
        joined = await connections.join(websocket, allowed)
        await connections.send(websocket, {
            "type": "joined",
            "rooms": joined,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        if denied:
            logger.info("WebSocket join denied", user_id=user.id, proposal_ids=denied)
            await connections.send_error(websocket, f"Not allowed to join: {', '.join(denied)}")

    elif action == "leave":
        rooms = [f"proposal:{pid}" for pid in _requested_ids(data)]
        await connections.leave(websocket, rooms)
        await connections.send(websocket, {
            "type": "left",
            "rooms": rooms,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    elif action == "ping":
        await connections.send(websocket, {
            "type": "pong",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    else:
        await connections.send_error(websocket, f"Unknown action: {action}")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str | None = Query(None),
):
    """
    WebSocket endpoint for realtime updates.

    The connection is refused without a valid token.
    """
    async with async_session_maker() as db:
        user = await user_from_token(db, token)

    if user is None:
        logger.debug("WebSocket auth failed")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(websocket, user)

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await manager.send_error(websocket, "Frames must be JSON objects")
                continue
            async with async_session_maker() as db:
                await handle_action(websocket, user, data, db)

    except WebSocketDisconnect:
        await manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error", error=str(e), user_id=user.id)
        await manager.disconnect(websocket)
