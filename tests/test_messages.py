"""Messaging over REST and the WebSocket client-event handler."""

from __future__ import annotations

import asyncio
import contextlib

import pytest
import pytest_asyncio
from fastapi.websockets import WebSocketState
from httpx import AsyncClient
from sqlalchemy import func, select

from carpool.api.websocket import _relay, handle_client_event, process_client_event
from carpool.domain.errors import Forbidden, NotFound, ValidationError
from carpool.infrastructure.models import MessageModel, UserModel
from carpool.infrastructure.pubsub import OutboxPublisher, encode_event, user_channel
from carpool.services.messaging import MessagingService
from tests.conftest import RecordingPublisher


async def send(client: AsyncClient, sender, receiver_id: int, content: str):
    return await client.post(
        "/api/v1/messages",
        headers=sender["headers"],
        json={"receiver_id": receiver_id, "content": content},
    )


class TestRestMessaging:
    @pytest.mark.asyncio
    async def test_send_persists_then_publishes(self, client, driver, rider, publisher):
        resp = await send(client, rider, driver["id"], "  Is there room for a suitcase?  ")
        assert resp.status_code == 201
        msg = resp.json()
        assert msg["content"] == "Is there room for a suitcase?"
        assert msg["read_at"] is None

        assert [uid for uid, _ in publisher.named("new-message")] == [driver["id"]]
        assert [uid for uid, _ in publisher.named("message-sent")] == [rider["id"]]

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, client, driver, rider):
        resp = await send(client, rider, driver["id"], "   ")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_receiver(self, client, rider):
        resp = await send(client, rider, 9999, "hello")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_ride_reference(self, client, driver, rider, publisher):
        resp = await client.post(
            "/api/v1/messages",
            headers=rider["headers"],
            json={"receiver_id": driver["id"], "content": "about that ride", "ride_id": 999},
        )
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Ride not found", "kind": "not_found"}
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_history_is_both_directions_oldest_first(self, client, driver, rider):
        a = (await send(client, rider, driver["id"], "first")).json()
        b = (await send(client, driver, rider["id"], "second")).json()
        c = (await send(client, rider, driver["id"], "third")).json()

        resp = await client.get(f"/api/v1/messages/{driver['id']}", headers=rider["headers"])
        assert [m["id"] for m in resp.json()] == [a["id"], b["id"], c["id"]]

    @pytest.mark.asyncio
    async def test_conversations_with_unread_counts(
        self, client, driver, rider, other_rider
    ):
        await send(client, rider, driver["id"], "one")
        await send(client, rider, driver["id"], "two")
        await send(client, other_rider, driver["id"], "hi")
        await send(client, driver, other_rider["id"], "hello back")

        resp = await client.get("/api/v1/messages/conversations", headers=driver["headers"])
        assert resp.status_code == 200
        convs = {c["user"]["id"]: c for c in resp.json()}
        assert convs[rider["id"]]["unread_count"] == 2
        assert convs[rider["id"]]["last_message"]["content"] == "two"
        assert convs[other_rider["id"]]["unread_count"] == 1
        assert resp.json()[0]["user"]["id"] == other_rider["id"]

    @pytest.mark.asyncio
    async def test_mark_read(self, client, driver, rider, publisher):
        msg = (await send(client, rider, driver["id"], "ping")).json()

        forbidden = await client.put(
            f"/api/v1/messages/{msg['id']}/read", headers=rider["headers"]
        )
        assert forbidden.status_code == 403

        resp = await client.put(f"/api/v1/messages/{msg['id']}/read", headers=driver["headers"])
        assert resp.status_code == 200
        assert resp.json()["read_at"] is not None
        assert [uid for uid, _ in publisher.named("message-read")] == [rider["id"]]

        convs = await client.get("/api/v1/messages/conversations", headers=driver["headers"])
        assert convs.json()[0]["unread_count"] == 0


class TestClientEvents:
    @pytest.fixture
    def users(self):
        return [
            UserModel(
                email=f"u{i}@example.com",
                phone=f"+1412555020{i}",
                password_hash="x",
                name=f"User {i}",
                rating_sum=0,
                rating_count=0,
                total_rides=0,
            )
            for i in (1, 2)
        ]

    @pytest.mark.asyncio
    async def test_send_message_event(self, db_session, publisher, users):
        db_session.add_all(users)
        await db_session.flush()
        a, b = users

        msg = await handle_client_event(
            db_session, publisher, a.id,
            {"event": "send-message", "data": {"receiver_id": b.id, "content": "on my way"}},
        )
        assert msg.id is not None
        assert msg.sender_id == a.id
        assert publisher.named("new-message")[0][0] == b.id

    @pytest.mark.asyncio
    async def test_typing_events_are_relayed_not_stored(self, db_session, publisher, users):
        db_session.add_all(users)
        await db_session.flush()
        a, b = users

        for event in ("typing", "stop-typing"):
            result = await handle_client_event(
                db_session, publisher, a.id, {"event": event, "data": {"receiver_id": b.id}}
            )
            assert result is None

        assert publisher.named("user-typing") == [
            (b.id, {"user_id": a.id, "is_typing": True}),
            (b.id, {"user_id": a.id, "is_typing": False}),
        ]

    @pytest.mark.asyncio
    async def test_mark_read_event_checks_receiver(self, db_session, publisher, users):
        db_session.add_all(users)
        await db_session.flush()
        a, b = users
        msg = await handle_client_event(
            db_session, publisher, a.id,
            {"event": "send-message", "data": {"receiver_id": b.id, "content": "hi"}},
        )

        with pytest.raises(Forbidden):
            await handle_client_event(
                db_session, publisher, a.id, {"event": "mark-read", "data": {"message_id": msg.id}}
            )
        read = await handle_client_event(
            db_session, publisher, b.id, {"event": "mark-read", "data": {"message_id": msg.id}}
        )
        assert read.read_at is not None

    @pytest.mark.asyncio
    async def test_bad_events(self, db_session, publisher, users):
        db_session.add_all(users)
        await db_session.flush()
        a, b = users

        with pytest.raises(ValidationError):
            await handle_client_event(db_session, publisher, a.id, {"event": "dance"})
        with pytest.raises(ValidationError):
            await handle_client_event(
                db_session, publisher, a.id, {"event": "typing", "data": {}}
            )
        with pytest.raises(NotFound):
            await handle_client_event(
                db_session, publisher, a.id,
                {"event": "mark-read", "data": {"message_id": 12345}},
            )
        with pytest.raises(NotFound):
            await handle_client_event(
                db_session, publisher, a.id,
                {
                    "event": "send-message",
                    "data": {"receiver_id": b.id, "content": "hi", "ride_id": 999},
                },
            )


class TestChannels:
    def test_user_channel_name(self):
        assert user_channel(42) == "user:42"

    def test_event_envelope(self):
        assert encode_event("user-typing", {"user_id": 1}) == (
            '{"event": "user-typing", "data": {"user_id": 1}}'
        )

    @pytest.mark.asyncio
    async def test_outbox_holds_events_until_flush(self):
        target = RecordingPublisher()
        outbox = OutboxPublisher(target)
        await outbox.publish(1, "new-message", {"id": 7})
        await outbox.publish(2, "message-sent", {"id": 7})
        assert target.events == []

        await outbox.flush()
        assert target.events == [
            (1, "new-message", {"id": 7}),
            (2, "message-sent", {"id": 7}),
        ]
        await outbox.flush()
        assert len(target.events) == 2


class TestSocketEvents:
    """One client event per unit of work, as the socket loop runs them."""

    @pytest_asyncio.fixture
    async def pair(self, session_factory):
        async with session_factory() as session:
            users = [
                UserModel(
                    email=f"ws{i}@example.com",
                    phone=f"+1412555030{i}",
                    password_hash="x",
                    name=f"Socket {i}",
                    rating_sum=0,
                    rating_count=0,
                    total_rides=0,
                )
                for i in (1, 2)
            ]
            session.add_all(users)
            await session.commit()
            return [u.id for u in users]

    async def _count_messages(self, session_factory) -> int:
        async with session_factory() as session:
            return (await session.execute(select(func.count(MessageModel.id)))).scalar()

    @pytest.mark.asyncio
    async def test_success_commits_then_publishes(self, session_factory, publisher, pair):
        a, b = pair
        error = await process_client_event(
            session_factory, publisher, a,
            {"event": "send-message", "data": {"receiver_id": b, "content": "leaving now"}},
        )
        assert error is None
        assert await self._count_messages(session_factory) == 1
        assert [uid for uid, _ in publisher.named("new-message")] == [b]

    @pytest.mark.asyncio
    async def test_domain_error_is_reported_and_rolled_back(
        self, session_factory, publisher, pair
    ):
        a, b = pair
        error = await process_client_event(
            session_factory, publisher, a,
            {"event": "send-message", "data": {"receiver_id": b, "content": "hi", "ride_id": 999}},
        )
        assert error == {
            "event": "error",
            "data": {"detail": "Ride not found", "kind": "not_found"},
        }
        assert await self._count_messages(session_factory) == 0
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_the_loop_alive(
        self, session_factory, publisher, pair, monkeypatch
    ):
        a, b = pair

        async def broken(self, actor_id, receiver_id, is_typing):
            raise RuntimeError("boom")

        monkeypatch.setattr(MessagingService, "typing", broken)
        error = await process_client_event(
            session_factory, publisher, a, {"event": "typing", "data": {"receiver_id": b}}
        )
        assert error == {
            "event": "error",
            "data": {"detail": "Internal server error", "kind": "internal_error"},
        }

        after = await process_client_event(
            session_factory, publisher, a,
            {"event": "send-message", "data": {"receiver_id": b, "content": "still here"}},
        )
        assert after is None


class FakePubSub:
    def __init__(self, items, error=None):
        self.items = items
        self.error = error
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        for item in self.items:
            yield item
        if self.error:
            raise self.error
        await asyncio.Event().wait()


class FakeRedis:
    def __init__(self, pubsub: FakePubSub):
        self._pubsub = pubsub

    def pubsub(self):
        return self._pubsub


class FakeSocket:
    def __init__(self):
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[dict] = []
        self.close_code = None

    async def send_json(self, message):
        self.sent.append(message)

    async def close(self, code=1000):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED


class TestRelay:
    @pytest.mark.asyncio
    async def test_forwards_events_and_cleans_up_on_cancel(self):
        pubsub = FakePubSub([
            {"type": "subscribe", "data": 1},
            {"type": "message", "data": encode_event("new-message", {"id": 3})},
            {"type": "message", "data": "not json"},
        ])
        socket = FakeSocket()
        task = asyncio.create_task(_relay(socket, FakeRedis(pubsub), 7))
        for _ in range(10):
            await asyncio.sleep(0)

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert socket.sent == [{"event": "new-message", "data": {"id": 3}}]
        assert pubsub.subscribed == pubsub.unsubscribed == ["user:7"]
        assert pubsub.closed
        assert socket.close_code is None

    @pytest.mark.asyncio
    async def test_failure_closes_the_socket(self):
        pubsub = FakePubSub([], error=RuntimeError("listener died"))
        socket = FakeSocket()

        await _relay(socket, FakeRedis(pubsub), 7)

        assert socket.close_code == 1011
        assert pubsub.closed
