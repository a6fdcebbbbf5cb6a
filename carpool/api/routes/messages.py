"""
Message endpoints
=================

GET  /api/v1/messages/conversations    -- one entry per counterparty
GET  /api/v1/messages/{other_id}       -- history with a user, oldest first
POST /api/v1/messages                  -- send a message
PUT  /api/v1/messages/{message_id}/read -- mark a received message read
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_current_user_id, get_db, get_outbox
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ConversationResponse,
    MessageCreateRequest,
    MessageResponse,
)
from carpool.config import settings
from carpool.infrastructure.pubsub import OutboxPublisher
from carpool.services.messaging import MessagingService

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
    dependencies=[Depends(get_current_user_id)],
)


def get_messaging_service(
    db: AsyncSession = Depends(get_db),
    publisher: OutboxPublisher = Depends(get_outbox),
) -> MessagingService:
    return MessagingService(db, publisher)


@router.get(
    "/conversations",
    response_model=list[ConversationResponse],
    summary="List conversations",
)
@limiter.limit(settings.rate_limit)
async def conversations(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.conversations(user_id)


@router.get(
    "/{other_id}",
    response_model=list[MessageResponse],
    summary="Chat history with a user",
)
@limiter.limit(settings.rate_limit)
async def history(
    request: Request,
    other_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.history(user_id, other_id)


@router.post(
    "",
    status_code=201,
    response_model=MessageResponse,
    summary="Send a message",
)
@limiter.limit(settings.rate_limit)
async def send_message(
    request: Request,
    body: MessageCreateRequest,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.send(
        user_id,
        body.receiver_id,
        body.content,
        ride_id=body.ride_id,
        ride_request_id=body.ride_request_id,
    )


@router.put(
    "/{message_id}/read",
    response_model=MessageResponse,
    summary="Mark a message as read",
)
@limiter.limit(settings.rate_limit)
async def mark_read(
    request: Request,
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.mark_read(user_id, message_id)
