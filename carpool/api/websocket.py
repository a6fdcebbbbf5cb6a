"""
Real-time relay
===============

``/api/v1/ws?token=<jwt>``

Each connection subscribes to the user's Redis channel (``user:<id>``) and
forwards every event published there as ``{"event": ..., "data": ...}``.
Clients may send events of their own:

* ``send-message`` ``{receiver_id, content, ride_id?, ride_request_id?}``
* ``typing`` / ``stop-typing`` ``{receiver_id}``
* ``mark-read`` ``{message_id}``

Each client event runs in its own session and is committed on success; the
events it publishes go out after the commit.  A failed event is answered
with an ``error`` event on the same socket and the connection stays open.
If the channel subscription dies the socket is closed with code 1011.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.api.dependencies import get_publisher, get_session_factory
from carpool.domain.errors import DomainError, Unauthorized, ValidationError
from carpool.infrastructure.models import MessageModel
from carpool.infrastructure.pubsub import (
    OutboxPublisher,
    Publisher,
    get_redis,
    user_channel,
)
from carpool.infrastructure.repositories import UserRepository
from carpool.infrastructure.security import decode_access_token
from carpool.services.messaging import MessagingService

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """Tracks open sockets per user."""

    def __init__(self):
        self.active_connections: dict[int, set[WebSocket]] = {}

    async def connect(self, user_id: int, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)

    def disconnect(self, user_id: int, websocket: WebSocket):
        sockets = self.active_connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.active_connections[user_id]

    def is_online(self, user_id: int) -> bool:
        return user_id in self.active_connections

    async def send_message(self, websocket: WebSocket, message: dict):
        if websocket.application_state == WebSocketState.CONNECTED:
            await websocket.send_json(message)


manager = ConnectionManager()


def _require(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValidationError(f"Missing field: {key}")


def _as_id(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def _optional_id(data: dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    return None if value is None else _as_id(value, key)


async def handle_client_event(
    session: AsyncSession,
    publisher: Publisher,
    user_id: int,
    message: dict[str, Any],
) -> Optional[MessageModel]:
    """Apply one client event; return the message it touched, if any.

    Nothing is sent back directly: the resulting events reach both parties
    through their channels.
    """
    event = message.get("event")
    data = message.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Event data must be an object")
    service = MessagingService(session, publisher)

    if event == "send-message":
        return await service.send(
            user_id,
            _as_id(_require(data, "receiver_id"), "receiver_id"),
            str(data.get("content") or ""),
            ride_id=_optional_id(data, "ride_id"),
            ride_request_id=_optional_id(data, "ride_request_id"),
        )

    if event in ("typing", "stop-typing"):
        receiver_id = _as_id(_require(data, "receiver_id"), "receiver_id")
        await service.typing(user_id, receiver_id, event == "typing")
        return None

    if event == "mark-read":
        return await service.mark_read(
            user_id, _as_id(_require(data, "message_id"), "message_id")
        )

    raise ValidationError(f"Unknown event: {event}")


async def _relay(websocket: WebSocket, client: aioredis.Redis, user_id: int):
    """Forward events from the user's channel until cancelled."""
    pubsub = client.pubsub()
    try:
        await pubsub.subscribe(user_channel(user_id))
        async for item in pubsub.listen():
            if item["type"] != "message":
                continue
            try:
                await manager.send_message(websocket, json.loads(item["data"]))
            except json.JSONDecodeError:
                logger.warning("Invalid JSON on %s: %s", user_channel(user_id), item["data"])
    except aioredis.ConnectionError:
        logger.error("Redis relay for user %s lost its connection", user_id)
    except Exception:
        logger.exception("Redis relay for user %s failed", user_id)
    else:
        return
    finally:
        with contextlib.suppress(aioredis.RedisError):
            await pubsub.unsubscribe(user_channel(user_id))
        await pubsub.aclose()

    # Subscription is gone; the client has to reconnect
    if websocket.application_state == WebSocketState.CONNECTED:
        await websocket.close(code=1011)


def _error_event(detail: str, kind: str) -> dict[str, Any]:
    return {"event": "error", "data": {"detail": detail, "kind": kind}}


async def process_client_event(
    session_factory: async_sessionmaker[AsyncSession],
    publisher: Publisher,
    user_id: int,
    incoming: dict[str, Any],
) -> Optional[dict[str, Any]]:
    """Run one client event in its own unit of work.

    Returns the ``error`` event to send back, or None on success.  Events
    the handler publishes are released only after the commit.
    """
    outbox = OutboxPublisher(publisher)
    async with session_factory() as session:
        try:
            await handle_client_event(session, outbox, user_id, incoming)
            await session.commit()
        except DomainError as exc:
            await session.rollback()
            return _error_event(exc.message, exc.kind)
        except Exception:
            await session.rollback()
            logger.exception(
                "Client event %r from user %s failed", incoming.get("event"), user_id
            )
            return _error_event("Internal server error", "internal_error")
    await outbox.flush()
    return None


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    publisher: Publisher = Depends(get_publisher),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    try:
        user_id = decode_access_token(websocket.query_params.get("token") or "")
    except Unauthorized:
        await websocket.close(code=1008)
        return
    async with session_factory() as session:
        known = await UserRepository(session).get_by_id(user_id)
    if not known:
        await websocket.close(code=1008)
        return

    await manager.connect(user_id, websocket)
    relay = asyncio.create_task(_relay(websocket, get_redis(), user_id))
    logger.info("User %s connected to the relay", user_id)

    try:
        while True:
            try:
                incoming = await websocket.receive_json()
            except ValueError:
                await manager.send_message(
                    websocket, _error_event("Invalid JSON", "validation_error")
                )
                continue
            if not isinstance(incoming, dict):
                incoming = {}

            error = await process_client_event(session_factory, publisher, user_id, incoming)
            if error:
                await manager.send_message(websocket, error)
    except WebSocketDisconnect:
        logger.info("User %s disconnected from the relay", user_id)
    finally:
        manager.disconnect(user_id, websocket)
        relay.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await relay
