"""In-process fan-out of freshly created notifications to live listeners.

Listeners are keyed by target agent. Each one owns a bounded queue; when a
slow listener's queue is full its oldest event is dropped. Nothing here is
durable: the notification store stays the source of truth and a listener
that reconnects should re-query undelivered notifications.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from taskboard.notifications.base import Notification
from taskboard.shared.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationBroadcaster:
    """Per-agent event queues for notification streams."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._listeners: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def listen(self, agent: str) -> asyncio.Queue:
        """Register a new listener for ``agent`` and return its queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._listeners[agent.lower()].add(queue)
        logger.debug("stream_listener_added", agent=agent.lower())
        return queue

    def unlisten(self, agent: str, queue: asyncio.Queue) -> None:
        key = agent.lower()
        listeners = self._listeners.get(key)
        if not listeners:
            return
        listeners.discard(queue)
        if not listeners:
            del self._listeners[key]
        logger.debug("stream_listener_removed", agent=key)

    def listener_count(self, agent: str | None = None) -> int:
        if agent is not None:
            return len(self._listeners.get(agent.lower(), ()))
        return sum(len(queues) for queues in self._listeners.values())

    def publish(self, notifications: list[Notification]) -> int:
        """Queue each notification for its target's listeners.

        Returns:
            Number of queue deliveries made
        """
        deliveries = 0
        for notification in notifications:
            event = notification.to_dict()
            for queue in list(self._listeners.get(notification.target_agent, ())):
                self._put(queue, event)
                deliveries += 1
        return deliveries

    def _put(self, queue: asyncio.Queue, event: dict[str, Any]) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.warning("stream_queue_overflow", notification_id=event["id"])
        queue.put_nowait(event)
