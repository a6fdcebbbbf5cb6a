"""
In-app messaging.

Messages are persisted before anything is published, so a recipient who is
offline still finds them through ``history`` / ``conversations``.  Events
published on the per-user channel:

* ``new-message``  -> receiver
* ``message-sent`` -> sender (echo for other open sessions)
* ``message-read`` -> original sender
* ``user-typing``  -> receiver (not persisted)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.errors import NotFound, ValidationError
from carpool.domain.policy import Action, Actor, Resource, authorize
from carpool.infrastructure.models import MessageModel
from carpool.infrastructure.pubsub import Publisher
from carpool.infrastructure.repositories import (
    MessageRepository,
    RideRepository,
    RideRequestRepository,
    UserRepository,
)


def message_payload(message: MessageModel) -> dict[str, Any]:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "content": message.content,
        "ride_id": message.ride_id,
        "ride_request_id": message.ride_request_id,
        "sent_at": message.sent_at.isoformat() if message.sent_at else None,
        "read_at": message.read_at.isoformat() if message.read_at else None,
    }


class MessagingService:
    def __init__(self, session: AsyncSession, publisher: Publisher):
        self.session = session
        self.publisher = publisher
        self.messages = MessageRepository(session)
        self.users = UserRepository(session)
        self.rides = RideRepository(session)
        self.requests = RideRequestRepository(session)

    async def send(
        self,
        sender_id: int,
        receiver_id: int,
        content: str,
        ride_id: Optional[int] = None,
        ride_request_id: Optional[int] = None,
    ) -> MessageModel:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if receiver_id == sender_id:
            raise ValidationError("You cannot message yourself")
        if not await self.users.get_by_id(receiver_id):
            raise NotFound("Receiver not found")
        if ride_id is not None and not await self.rides.get_by_id(ride_id):
            raise NotFound("Ride not found")
        if ride_request_id is not None and not await self.requests.get_by_id(ride_request_id):
            raise NotFound("Ride request not found")

        message = await self.messages.create(
            MessageModel(
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                ride_id=ride_id,
                ride_request_id=ride_request_id,
            )
        )
        payload = message_payload(message)
        await self.publisher.publish(receiver_id, "new-message", payload)
        await self.publisher.publish(sender_id, "message-sent", payload)
        return message

    async def history(self, actor_id: int, other_id: int) -> list[MessageModel]:
        return await self.messages.history(actor_id, other_id)

    async def conversations(self, actor_id: int) -> list[dict[str, Any]]:
        """One entry per counterparty: latest message and unread count."""
        by_user: dict[int, dict[str, Any]] = {}
        for msg in await self.messages.involving(actor_id):
            other = msg.receiver_id if msg.sender_id == actor_id else msg.sender_id
            entry = by_user.setdefault(
                other, {"last_message": msg, "unread_count": 0}
            )
            if msg.receiver_id == actor_id and msg.read_at is None:
                entry["unread_count"] += 1

        users = await self.users.get_many(set(by_user))
        return [
            {"user": users[uid], **entry}
            for uid, entry in by_user.items()
            if uid in users
        ]

    async def mark_read(self, actor_id: int, message_id: int) -> MessageModel:
        message = await self.messages.get_by_id(message_id)
        if not message:
            raise NotFound("Message not found")
        authorize(Actor(actor_id), Resource(owner_id=message.receiver_id), Action.READ_MESSAGE)

        if message.read_at is None:
            message.read_at = datetime.now(timezone.utc)
            await self.publisher.publish(
                message.sender_id,
                "message-read",
                {"message_id": message.id, "read_at": message.read_at.isoformat()},
            )
        return message

    async def typing(self, actor_id: int, receiver_id: int, is_typing: bool) -> None:
        await self.publisher.publish(
            receiver_id, "user-typing", {"user_id": actor_id, "is_typing": is_typing}
        )
