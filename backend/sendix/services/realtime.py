"""
Realtime fan-out for proposal rooms.

Every proposal has a room. Websocket clients join the rooms of the
proposals they are authorized for and receive push events:
- message.created  {proposal_id, message}
- read.updated     {proposal_id, user_id, at}
- shipment.updated {proposal_id, ship_status}

The push channel is a latency optimization only. REST endpoints stay
authoritative and clients re-fetch after reconnecting.

Architecture:
- ConnectionManager tracks sockets per room inside one worker
- LocalBroadcaster delivers straight to this worker's sockets
- RedisBroadcaster publishes through Redis Pub/Sub; every worker's
  listener relays to its own sockets
"""
import asyncio
import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from fastapi import WebSocket
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from sendix.core.config import settings
from sendix.core.hashids import decode_id, encode_id
from sendix.models.proposal import Proposal
from sendix.models.user import User
from sendix.services.access import user_can_access_proposal

logger = structlog.get_logger()

REDIS_CHANNEL_PREFIX = "sendix:"

MESSAGE_CREATED = "message.created"
READ_UPDATED = "read.updated"
SHIPMENT_UPDATED = "shipment.updated"


def room_for(proposal_id: int) -> str:
    """Room name for a proposal, keyed by its public id."""
    return f"proposal:{encode_id('proposal', proposal_id)}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Event builders
# -----------------------------------------------------------------------------

def message_created_event(proposal_id: int, message: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": MESSAGE_CREATED,
        "proposal_id": encode_id("proposal", proposal_id),
        "message": message,
    }


def read_updated_event(proposal_id: int, user_id: int, at: datetime) -> dict[str, Any]:
    return {
        "type": READ_UPDATED,
        "proposal_id": encode_id("proposal", proposal_id),
        "user_id": encode_id("user", user_id),
        "at": at.isoformat(),
    }


def shipment_updated_event(proposal_id: int, ship_status: str) -> dict[str, Any]:
    return {
        "type": SHIPMENT_UPDATED,
        "proposal_id": encode_id("proposal", proposal_id),
        "ship_status": ship_status,
    }


# -----------------------------------------------------------------------------
# Connection tracking
# -----------------------------------------------------------------------------

class ConnectionManager:
    """
    Manages websocket connections and room membership for one worker.

    Features:
    - Connection tracking per room
    - Redis Pub/Sub relay for cross-worker delivery
    - Automatic cleanup on disconnect
    """

    def __init__(self):
        # room -> connections
        self.rooms: dict[str, set[WebSocket]] = defaultdict(set)
        # connection -> joined rooms
        self.memberships: dict[WebSocket, set[str]] = defaultdict(set)
        # connection -> user
        self.users: dict[WebSocket, User] = {}
        self._redis: Redis | None = None
        self._redis_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def get_redis(self) -> Redis:
        """Get or create Redis client."""
        if self._redis is None:
            self._redis = Redis.from_url(settings.redis_url, decode_responses=True)
        return self._redis

    async def connect(self, websocket: WebSocket, user: User) -> None:
        """Accept an authenticated websocket connection."""
        await websocket.accept()

        async with self._lock:
            self.memberships[websocket] = set()
            self.users[websocket] = user

        logger.info("WebSocket connected", user_id=user.id)

    async def disconnect(self, websocket: WebSocket) -> None:
        """Drop a connection and all of its room memberships."""
        async with self._lock:
            rooms = self.memberships.pop(websocket, set())
            for room in rooms:
                self.rooms[room].discard(websocket)
                if not self.rooms[room]:
                    del self.rooms[room]
            user = self.users.pop(websocket, None)

        logger.info(
            "WebSocket disconnected",
            user_id=user.id if user else None,
            rooms=sorted(rooms),
        )

    async def join(self, websocket: WebSocket, rooms: Iterable[str]) -> list[str]:
        """Add an already-authorized connection to rooms."""
        joined = []
        async with self._lock:
            for room in rooms:
                self.rooms[room].add(websocket)
                self.memberships[websocket].add(room)
                joined.append(room)
        return joined

    async def leave(self, websocket: WebSocket, rooms: Iterable[str]) -> None:
        async with self._lock:
            for room in rooms:
                self.rooms[room].discard(websocket)
                self.memberships[websocket].discard(room)
                if not self.rooms[room]:
                    del self.rooms[room]

    def members(self, room: str) -> set[WebSocket]:
        return set(self.rooms.get(room, set()))

    async def deliver(self, room: str, event: dict[str, Any]) -> int:
        """
        Send an event to every local member of a room.

        Returns:
            Number of connections that received the event
        """
        connections = self.members(room)
        if not connections:
            return 0

        payload = {**event, "room": room, "timestamp": _now_iso()}

        sent = 0
        for websocket in connections:
            try:
                await self.send(websocket, payload)
                sent += 1
            except Exception as e:
                logger.warning("Failed to push to WebSocket", room=room, error=str(e))

        return sent

    async def send(self, websocket: WebSocket, message: dict[str, Any]) -> None:
        await websocket.send_json(message)

    async def send_error(self, websocket: WebSocket, error: str) -> None:
        await self.send(websocket, {
            "type": "error",
            "error": error,
            "timestamp": _now_iso(),
        })

    async def start_redis_listener(self) -> None:
        """
        Start the Redis Pub/Sub relay.

        Listens on sendix:proposal:* and delivers each event to the local
        members of the matching room.
        """
        if self._redis_task is not None:
            return

        async def listener():
            redis = await self.get_redis()
            pubsub = redis.pubsub()
            pattern = f"{REDIS_CHANNEL_PREFIX}proposal:*"
            await pubsub.psubscribe(pattern)

            logger.info("Redis Pub/Sub relay started", pattern=pattern)

            try:
                async for message in pubsub.listen():
                    if message["type"] != "pmessage":
                        continue
                    room = message["channel"][len(REDIS_CHANNEL_PREFIX):]
                    try:
                        event = json.loads(message["data"])
                    except json.JSONDecodeError:
                        logger.warning("Invalid JSON from Redis", room=room)
                        continue
                    await self.deliver(room, event)
            except asyncio.CancelledError:
                logger.info("Redis Pub/Sub relay cancelled")
            finally:
                await pubsub.punsubscribe(pattern)
                await pubsub.aclose()

        self._redis_task = asyncio.create_task(listener())

    async def stop_redis_listener(self) -> None:
        if self._redis_task:
            self._redis_task.cancel()
            try:
                await self._redis_task
            except asyncio.CancelledError:
                pass
            self._redis_task = None

    async def close(self) -> None:
        """Stop the relay and release the Redis client."""
        await self.stop_redis_listener()
        if self._redis:
            await self._redis.aclose()
            self._redis = None


# -----------------------------------------------------------------------------
# Broadcasters
# -----------------------------------------------------------------------------

class Broadcaster(Protocol):
    """Publishing capability injected into services."""

    async def publish(self, room: str, event: dict[str, Any]) -> None:
        ...


class LocalBroadcaster:
    """Delivers events to sockets connected to this worker."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def publish(self, room: str, event: dict[str, Any]) -> None:
        await self.manager.deliver(room, event)


class RedisBroadcaster:
    """Publishes events through Redis so every worker relays them."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def publish(self, room: str, event: dict[str, Any]) -> None:
        redis = await self.manager.get_redis()
        await redis.publish(f"{REDIS_CHANNEL_PREFIX}{room}", json.dumps(event, default=str))


async def broadcast(broadcaster: Broadcaster, room: str, event: dict[str, Any]) -> None:
    """
    Best-effort publish.

    A failed push is logged and dropped; it never fails the operation that
    produced it.
    """
    try:
        await broadcaster.publish(room, event)
    except Exception as e:
        logger.warning(
            "Broadcast failed",
            room=room,
            event_type=event.get("type"),
            error=str(e),
            error_type=type(e).__name__,
        )


async def authorize_rooms(
    db: AsyncSession,
    user: User,
    public_proposal_ids: Iterable[str],
) -> tuple[list[str], list[str]]:
    """
    Re-check access for each requested proposal before admitting to its room.

    Returns:
        Tuple of (rooms allowed, public ids denied)
    """
    requested = list(dict.fromkeys(public_proposal_ids))
    decoded = {pid: decode_id("proposal", pid) for pid in requested}
    ids = [i for i in decoded.values() if i is not None]

    proposals: dict[int, Proposal] = {}
    if ids:
        result = await db.execute(select(Proposal).where(Proposal.id.in_(ids)))
        proposals = {p.id: p for p in result.unique().scalars().all()}

    allowed, denied = [], []
    for pid, proposal_id in decoded.items():
        proposal = proposals.get(proposal_id) if proposal_id is not None else None
        if proposal is not None and user_can_access_proposal(user, proposal):
            allowed.append(room_for(proposal.id))
        else:
            denied.append(pid)

    return allowed, denied


# Global connection manager instance
manager = ConnectionManager()

_broadcaster: Broadcaster | None = None


def get_broadcaster() -> Broadcaster:
    """Process-wide broadcaster selected by settings.broadcast_backend."""
    global _broadcaster
    if _broadcaster is None:
        if settings.broadcast_backend == "redis":
            _broadcaster = RedisBroadcaster(manager)
        else:
            _broadcaster = LocalBroadcaster(manager)
    return _broadcaster
