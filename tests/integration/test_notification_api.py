"""Integration tests for notification API endpoints."""

import asyncio
import json

import pytest

from taskboard.notifications.api import _event_generator
from taskboard.notifications.base import Notification, NotificationType
from taskboard.notifications.broadcast import NotificationBroadcaster


async def _comment(client, task_id, from_agent, content, **extra):
    body = {"taskId": task_id, "fromAgent": from_agent, "content": content, **extra}
    return await client.post("/api/notifications/process", json=body)


class TestProcessComment:
    """Tests for POST /api/notifications/process."""

    @pytest.mark.asyncio
    async def test_mention_creates_notification(self, client):
        response = await _comment(client, "TASK-1", "alice", "Hey @bob, check this out")

        assert response.status_code == 201
        data = response.json()
        assert len(data) == 1
        assert data[0]["type"] == "mention"
        assert data[0]["targetAgent"] == "bob"
        assert data[0]["fromAgent"] == "alice"
        assert data[0]["taskId"] == "TASK-1"
        assert data[0]["delivered"] is False
        assert data[0]["id"].startswith("notif_")

    @pytest.mark.asyncio
    async def test_all_mention_uses_all_agents(self, client):
        response = await _comment(
            client, "TASK-1", "alice", "@all hi", allAgents=["alice", "bob", "charlie"]
        )

        assert response.status_code == 201
        assert [n["targetAgent"] for n in response.json()] == ["bob", "charlie"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"taskId": "TASK-1", "content": "hi"},
            {"taskId": "TASK-1", "fromAgent": "alice"},
            {"taskId": "TASK-1", "fromAgent": "alice", "content": ""},
            {"fromAgent": "alice", "content": "hi"},
        ],
    )
    async def test_missing_fields_return_400(self, client, body):
        response = await client.post("/api/notifications/process", json=body)

        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"


class TestListNotifications:
    """Tests for GET /api/notifications."""

    @pytest.mark.asyncio
    async def test_requires_agent(self, client):
        response = await client.get("/api/notifications")

        assert response.status_code == 400
        body = response.json()
        assert body["type"] == "validation_error"
        assert "agent" in body["error"]

    @pytest.mark.asyncio
    async def test_filters_and_limit(self, client):
        await _comment(client, "TASK-1", "alice", "@bob one")
        await _comment(client, "TASK-2", "alice", "@bob two")
        await _comment(client, "TASK-2", "alice", "@bob three")

        response = await client.get(
            "/api/notifications", params={"agent": "BOB", "taskId": "TASK-2", "limit": 1}
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["content"] == "@bob three"

    @pytest.mark.asyncio
    async def test_undelivered_filter(self, client):
        created = (await _comment(client, "TASK-1", "alice", "@bob one")).json()
        await _comment(client, "TASK-1", "alice", "@bob two")
        await client.post(f"/api/notifications/{created[0]['id']}/delivered")

        response = await client.get(
            "/api/notifications", params={"agent": "bob", "undelivered": "true"}
        )

        assert [n["content"] for n in response.json()] == ["@bob two"]

    @pytest.mark.asyncio
    async def test_negative_limit_returns_400(self, client):
        response = await client.get("/api/notifications", params={"agent": "bob", "limit": -1})

        assert response.status_code == 400


class TestDelivery:
    """Tests for the delivery endpoints."""

    @pytest.mark.asyncio
    async def test_mark_delivered(self, client):
        created = (await _comment(client, "TASK-1", "alice", "@bob hi")).json()

        response = await client.post(f"/api/notifications/{created[0]['id']}/delivered")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        listed = (await client.get("/api/notifications", params={"agent": "bob"})).json()
        assert listed[0]["delivered"] is True
        assert "deliveredAt" in listed[0]

    @pytest.mark.asyncio
    async def test_mark_unknown_returns_404(self, client):
        response = await client.post("/api/notifications/notif_missing/delivered")

        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    @pytest.mark.asyncio
    async def test_mark_all_delivered(self, client):
        await _comment(client, "TASK-1", "alice", "@bob one")
        await _comment(client, "TASK-2", "alice", "@bob two")

        response = await client.post("/api/notifications/delivered-all", json={"agent": "bob"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "count": 2}


class TestSubscriptionsAndStats:
    """Tests for subscription and stats endpoints."""

    @pytest.mark.asyncio
    async def test_subscriptions_after_comment(self, client):
        await _comment(client, "TASK-1", "alice", "Hey @bob")

        response = await client.get("/api/notifications/subscriptions/TASK-1")

        assert response.status_code == 200
        assert [(s["agent"], s["reason"]) for s in response.json()] == [
            ("alice", "commented"),
            ("bob", "mentioned"),
        ]

    @pytest.mark.asyncio
    async def test_manual_subscription_then_reply(self, client):
        response = await client.post(
            "/api/notifications/subscriptions/TASK-1", json={"agent": "Bob"}
        )
        assert response.status_code == 201
        assert response.json()[0]["agent"] == "bob"
        assert response.json()[0]["reason"] == "manual"

        created = (await _comment(client, "TASK-1", "alice", "Making progress")).json()

        assert [(n["targetAgent"], n["type"]) for n in created] == [("bob", "reply")]

    @pytest.mark.asyncio
    async def test_stats(self, client):
        await _comment(client, "TASK-1", "alice", "@bob @carol hi")

        response = await client.get("/api/notifications/stats")

        assert response.status_code == 200
        assert response.json() == {
            "totalNotifications": 2,
            "undelivered": 2,
            "byAgent": {
                "bob": {"total": 1, "undelivered": 1},
                "carol": {"total": 1, "undelivered": 1},
            },
            "byType": {"mention": 2},
        }


class TestAssignmentAndSystem:
    """Tests for assignment and system notification endpoints."""

    @pytest.mark.asyncio
    async def test_assignment_skips_assigner(self, client):
        response = await client.post(
            "/api/notifications/assignment",
            json={"taskId": "TASK-1", "assignees": ["alice", "bob"], "assignedBy": "alice"},
        )

        assert response.status_code == 201
        data = response.json()
        assert [n["targetAgent"] for n in data] == ["bob"]
        assert data[0]["type"] == "assignment"

    @pytest.mark.asyncio
    async def test_create_system_notification(self, client):
        response = await client.post(
            "/api/notifications",
            json={"type": "system", "title": "Maintenance", "message": "Restart at 5"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["fromAgent"] == "system"
        assert data["targetAgent"] == "system"
        assert data["content"] == "Restart at 5"
        assert "taskId" not in data

    @pytest.mark.asyncio
    async def test_create_with_unknown_type_returns_400(self, client):
        response = await client.post(
            "/api/notifications",
            json={"type": "bogus", "title": "t", "message": "m"},
        )

        assert response.status_code == 400


class TestStream:
    """Tests for the notification stream."""

    @pytest.mark.asyncio
    async def test_stream_requires_agent(self, client):
        response = await client.get("/api/notifications/stream")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_event_generator_yields_notifications(self):
        broadcaster = NotificationBroadcaster()
        stream = _event_generator(broadcaster, "bob", keepalive_seconds=5)

        connected = await stream.__anext__()
        assert connected["event"] == "connected"
        assert broadcaster.listener_count("bob") == 1

        notification = Notification(
            type=NotificationType.MENTION,
            from_agent="alice",
            target_agent="bob",
            content="@bob hi",
            task_id="TASK-1",
        )
        broadcaster.publish([notification])

        event = await asyncio.wait_for(stream.__anext__(), timeout=1)
        assert event["event"] == "notification"
        assert event["id"] == notification.id
        assert json.loads(event["data"])["content"] == "@bob hi"

        await stream.aclose()
        assert broadcaster.listener_count("bob") == 0

    @pytest.mark.asyncio
    async def test_event_generator_sends_keepalive(self):
        broadcaster = NotificationBroadcaster()
        stream = _event_generator(broadcaster, "bob", keepalive_seconds=0.01)

        await stream.__anext__()
        ping = await asyncio.wait_for(stream.__anext__(), timeout=1)

        assert ping["event"] == "ping"
        await stream.aclose()


class TestService:
    """Tests for service-level endpoints and middleware."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "taskboard"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_request_id_generated_when_missing(self, client):
        response = await client.get("/health")

        assert response.headers.get("X-Request-ID")
