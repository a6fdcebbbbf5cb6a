"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.errors import Unauthorized
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.geocoding import MapboxGeocoder, build_geocoder
from carpool.infrastructure.payments import PaymentGateway, build_gateway
from carpool.infrastructure.pubsub import (
    OutboxPublisher,
    Publisher,
    RedisPublisher,
    get_redis,
)
from carpool.infrastructure.repositories import UserRepository
from carpool.infrastructure.security import decode_access_token

OUTBOX_KEY = "outbox"


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error.

    Events queued in the session's outbox go out only after the commit.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        outbox = session.info.get(OUTBOX_KEY)
        if outbox is not None:
            await outbox.flush()


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthorized("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Invalid authorization header")
    return token.strip()


async def get_current_user_id(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> int:
    """Resolve the bearer token to the id of an existing user."""
    user_id = decode_access_token(bearer_token(authorization))
    if not await UserRepository(db).get_by_id(user_id):
        raise Unauthorized("User not found")
    return user_id


def get_payment_gateway() -> PaymentGateway:
    return build_gateway()


def get_publisher() -> Publisher:
    return RedisPublisher(get_redis())


def get_outbox(
    db: AsyncSession = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
) -> OutboxPublisher:
    """Publisher bound to the request's unit of work."""
    outbox = db.info.get(OUTBOX_KEY)
    if outbox is None:
        outbox = db.info[OUTBOX_KEY] = OutboxPublisher(publisher)
    return outbox


def get_geocoder() -> MapboxGeocoder:
    return build_geocoder()
