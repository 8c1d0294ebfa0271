"""Tests for NotificationBroadcaster."""

import pytest

from taskboard.notifications.base import Notification, NotificationType
from taskboard.notifications.broadcast import NotificationBroadcaster


def _notification(target: str, content: str = "hi") -> Notification:
    return Notification(
        type=NotificationType.MENTION,
        from_agent="alice",
        target_agent=target,
        content=content,
        task_id="TASK-1",
    )


class TestNotificationBroadcaster:
    """Tests for listener bookkeeping and fan-out."""

    @pytest.mark.asyncio
    async def test_publish_reaches_only_target_listeners(self):
        broadcaster = NotificationBroadcaster()
        bob_queue = broadcaster.listen("bob")
        carol_queue = broadcaster.listen("carol")

        delivered = broadcaster.publish([_notification("bob")])

        assert delivered == 1
        assert bob_queue.qsize() == 1
        assert carol_queue.empty()
        event = bob_queue.get_nowait()
        assert event["targetAgent"] == "bob"
        assert event["type"] == "mention"

    @pytest.mark.asyncio
    async def test_every_listener_of_an_agent_receives_event(self):
        broadcaster = NotificationBroadcaster()
        first = broadcaster.listen("bob")
        second = broadcaster.listen("Bob")

        assert broadcaster.publish([_notification("bob")]) == 2
        assert first.qsize() == 1
        assert second.qsize() == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest_event(self):
        broadcaster = NotificationBroadcaster(queue_size=2)
        queue = broadcaster.listen("bob")

        broadcaster.publish([_notification("bob", c) for c in ("one", "two", "three")])

        assert queue.qsize() == 2
        assert [queue.get_nowait()["content"] for _ in range(2)] == ["two", "three"]

    @pytest.mark.asyncio
    async def test_unlisten_removes_listener(self):
        broadcaster = NotificationBroadcaster()
        queue = broadcaster.listen("bob")
        assert broadcaster.listener_count("bob") == 1

        broadcaster.unlisten("bob", queue)

        assert broadcaster.listener_count("bob") == 0
        assert broadcaster.listener_count() == 0
        assert broadcaster.publish([_notification("bob")]) == 0

    def test_unlisten_unknown_agent_is_noop(self):
        broadcaster = NotificationBroadcaster()
        broadcaster.unlisten("nobody", object())
        assert broadcaster.listener_count() == 0
