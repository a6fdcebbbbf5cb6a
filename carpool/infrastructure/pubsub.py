"""
Per-user publish/subscribe channel on Redis.

Every user has one channel, ``user:<id>``.  Publishing is fire-and-forget:
a Redis failure is logged and never surfaced to the caller.  The record
behind each event is already persisted and readable over REST.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from carpool.config import settings

logger = logging.getLogger(__name__)

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def encode_event(event: str, payload: Any) -> str:
    return json.dumps({"event": event, "data": payload}, default=str)


class Publisher(ABC):
    @abstractmethod
    async def publish(self, user_id: int, event: str, payload: Any) -> None: ...


class RedisPublisher(Publisher):
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish(self, user_id: int, event: str, payload: Any) -> None:
        try:
            await self.redis.publish(user_channel(user_id), encode_event(event, payload))
        except RedisError:
            logger.warning(
                "Publish of %s to user %s failed", event, user_id, exc_info=True
            )


async def close_redis() -> None:
    await _pool.disconnect()


class OutboxPublisher(Publisher):
    """Holds events until the surrounding transaction has committed.

    Services publish into the outbox; the owner of the session calls
    ``flush`` after ``commit`` succeeds.  Events of a rolled-back unit of
    work are never flushed.
    """

    def __init__(self, target: Publisher):
        self.target = target
        self.pending: list[tuple[int, str, Any]] = []

    async def publish(self, user_id: int, event: str, payload: Any) -> None:
        self.pending.append((user_id, event, payload))

    async def flush(self) -> None:
        pending, self.pending = self.pending, []
        for user_id, event, payload in pending:
            await self.target.publish(user_id, event, payload)
