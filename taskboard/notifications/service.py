"""Notification engine: mention fan-out, thread subscriptions, delivery tracking.

Notifications and subscriptions share a single JSON document so that one
comment's effects are persisted in one atomic write. The engine keeps a
lazily loaded mirror of that document. Every mutation re-reads the document
while holding the store lock, applies the change to the fresh copy, writes
it back, and only then swaps the mirror, so a failed write leaves the
in-memory view untouched and concurrent processes never lose each other's
updates.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from taskboard.exceptions import StorageError, ValidationError
from taskboard.notifications.base import (
    BROADCAST_HANDLE,
    SYSTEM_AGENT,
    Notification,
    NotificationStats,
    NotificationType,
    Subscription,
    SubscriptionReason,
)
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.mentions import parse_mentions
from taskboard.shared.utils.datetime_utils import utcnow
from taskboard.shared.utils.logging import get_logger
from taskboard.storage.json_store import JsonDocumentStore

logger = get_logger(__name__)

DOCUMENT_NAME = "notifications"
DOCUMENT_VERSION = 1

T = TypeVar("T")


class LoadState(Enum):
    """Lifecycle of the in-memory mirror."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class _Ledger:
    """Working copy of the document used inside one locked mutation."""

    def __init__(
        self,
        notifications: list[Notification],
        subscriptions: list[Subscription],
    ) -> None:
        self.notifications = notifications
        self.subscriptions = subscriptions
        self._subscription_keys = {s.key for s in subscriptions}
        self.dirty = False

    def add(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        self.dirty = True
        return notification

    def find(self, notification_id: str) -> Notification | None:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    def subscribers(self, task_id: str) -> list[Subscription]:
        return [s for s in self.subscriptions if s.task_id == task_id]

    def subscribe(
        self,
        task_id: str,
        agent: str,
        reason: SubscriptionReason,
        now: datetime,
    ) -> bool:
        if (task_id, agent) in self._subscription_keys:
            return False
        self.subscriptions.append(
            Subscription(task_id=task_id, agent=agent, reason=reason, subscribed_at=now)
        )
        self._subscription_keys.add((task_id, agent))
        self.dirty = True
        return True


def _require(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required", field=field)
    return str(value)


def _handle(value: str | None, field: str) -> str:
    return _require(value, field).strip().lower()


class NotificationEngine:
    """
    Creates and tracks notifications for agents working on task threads.

    Responsibilities:
    - Fan out comment mentions (including ``@all``) and thread replies
    - Auto-subscribe commenters, mentioned agents and assignees
    - Track delivery with a set-once ``delivered_at``
    - Persist everything through a lock-guarded document store
    """

    def __init__(
        self,
        store: JsonDocumentStore,
        broadcaster: NotificationBroadcaster | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._clock = clock
        self._notifications: list[Notification] = []
        self._subscriptions: list[Subscription] = []
        self._state = LoadState.UNLOADED
        self._load_lock = asyncio.Lock()

    @property
    def state(self) -> LoadState:
        return self._state

    def invalidate(self) -> None:
        """Forget the cached document; the next access reloads it."""
        self._notifications = []
        self._subscriptions = []
        self._state = LoadState.UNLOADED

    # ------------------------------------------------------------------
    # Comment / assignment events
    # ------------------------------------------------------------------

    async def process_comment(
        self,
        task_id: str,
        from_agent: str,
        content: str,
        all_agents: Iterable[str] | None = None,
    ) -> list[Notification]:
        """
        Turn a comment into notifications and thread subscriptions.

        Explicit mentions (with ``@all`` expanded to ``all_agents``) become
        ``mention`` notifications in parse order; other subscribers of the
        thread get a ``reply`` notification. The commenter never notifies
        itself. Afterwards the commenter is subscribed as ``commented`` and
        each mentioned agent as ``mentioned``.

        Raises:
            ValidationError: If task_id, from_agent or content is missing
            StorageError: If the store cannot be locked, read or written
        """
        task_id = _require(task_id, "taskId")
        sender = _handle(from_agent, "fromAgent")
        if content is None or content == "":
            raise ValidationError("'content' is required", field="content")

        explicit = self._explicit_targets(parse_mentions(content), sender, all_agents)
        explicit_set = set(explicit)
        now = self._clock()

        def change(ledger: _Ledger) -> list[Notification]:
            created = [
                ledger.add(
                    Notification(
                        type=NotificationType.MENTION,
                        task_id=task_id,
                        from_agent=sender,
                        target_agent=agent,
                        content=content,
                        created_at=now,
                    )
                )
                for agent in explicit
            ]
            for subscription in ledger.subscribers(task_id):
                if subscription.agent == sender or subscription.agent in explicit_set:
                    continue
                created.append(
                    ledger.add(
                        Notification(
                            type=NotificationType.REPLY,
                            task_id=task_id,
                            from_agent=sender,
                            target_agent=subscription.agent,
                            content=content,
                            created_at=now,
                        )
                    )
                )

            ledger.subscribe(task_id, sender, SubscriptionReason.COMMENTED, now)
            for agent in explicit:
                ledger.subscribe(task_id, agent, SubscriptionReason.MENTIONED, now)
            return created

        created = await self._mutate(change)
        self._publish(created)

        logger.info(
            "comment_processed",
            task_id=task_id,
            from_agent=sender,
            mentions=len(explicit),
            notifications=len(created),
        )
        return created

    async def notify_assignment(
        self,
        task_id: str,
        assignees: Iterable[str],
        assigned_by: str,
    ) -> list[Notification]:
        """Notify and subscribe each assignee; the assigner is skipped."""
        task_id = _require(task_id, "taskId")
        assigner = _handle(assigned_by, "assignedBy")

        targets: list[str] = []
        for assignee in assignees:
            agent = _handle(assignee, "assignees")
            if agent != assigner and agent not in targets:
                targets.append(agent)
        now = self._clock()

        def change(ledger: _Ledger) -> list[Notification]:
            created = []
            for agent in targets:
                created.append(
                    ledger.add(
                        Notification(
                            type=NotificationType.ASSIGNMENT,
                            task_id=task_id,
                            from_agent=assigner,
                            target_agent=agent,
                            content=f"{assigner} assigned you to {task_id}",
                            created_at=now,
                        )
                    )
                )
                ledger.subscribe(task_id, agent, SubscriptionReason.ASSIGNED, now)
            return created

        created = await self._mutate(change)
        self._publish(created)

        logger.info(
            "assignment_notified",
            task_id=task_id,
            assigned_by=assigner,
            notifications=len(created),
        )
        return created

    async def create_notification(
        self,
        type: NotificationType | str,
        title: str,
        message: str,
        task_id: str | None = None,
    ) -> Notification:
        """Create a system-originated notification addressed to ``system``.

        ``title`` is only used for logging; ``message`` becomes the content.
        """
        try:
            notification_type = NotificationType(type)
        except ValueError as e:
            raise ValidationError(f"Unknown notification type '{type}'", field="type") from e
        message = _require(message, "message")

        notification = Notification(
            type=notification_type,
            task_id=task_id or None,
            from_agent=SYSTEM_AGENT,
            target_agent=SYSTEM_AGENT,
            content=message,
            created_at=self._clock(),
        )
        await self._mutate(lambda ledger: ledger.add(notification))
        self._publish([notification])

        logger.info(
            "system_notification_created",
            notification_id=notification.id,
            type=notification_type.value,
            title=title,
            task_id=task_id,
        )
        return notification

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_notifications(
        self,
        agent: str,
        undelivered: bool = False,
        task_id: str | None = None,
        limit: int | None = None,
    ) -> list[Notification]:
        """Notifications addressed to ``agent``, newest first."""
        target = _handle(agent, "agent")
        if limit is not None and limit < 0:
            raise ValidationError("'limit' must not be negative", field="limit")
        await self._ensure_loaded()

        result = [n for n in self._notifications if n.target_agent == target]
        if undelivered:
            result = [n for n in result if not n.delivered]
        if task_id:
            result = [n for n in result if n.task_id == task_id]

        result.sort(key=lambda n: n.created_at, reverse=True)
        if limit is not None:
            result = result[:limit]
        return result

    async def get_subscriptions(self, task_id: str) -> list[Subscription]:
        await self._ensure_loaded()
        return [s for s in self._subscriptions if s.task_id == task_id]

    async def get_stats(self) -> NotificationStats:
        await self._ensure_loaded()

        by_agent: dict[str, dict[str, int]] = defaultdict(
            lambda: {"total": 0, "undelivered": 0}
        )
        by_type: dict[str, int] = defaultdict(int)
        undelivered = 0

        for notification in self._notifications:
            counts = by_agent[notification.target_agent]
            counts["total"] += 1
            by_type[notification.type.value] += 1
            if not notification.delivered:
                counts["undelivered"] += 1
                undelivered += 1

        return NotificationStats(
            total_notifications=len(self._notifications),
            undelivered=undelivered,
            by_agent=dict(by_agent),
            by_type=dict(by_type),
        )

    # ------------------------------------------------------------------
    # Delivery tracking
    # ------------------------------------------------------------------

    async def mark_delivered(self, notification_id: str) -> bool:
        """Mark one notification delivered.

        Returns:
            True if the notification exists (whether or not it was already
            delivered), False otherwise. ``delivered_at`` is never rewritten.
        """
        now = self._clock()

        def change(ledger: _Ledger) -> bool:
            notification = ledger.find(notification_id)
            if notification is None:
                return False
            if notification.mark_delivered(now):
                ledger.dirty = True
            return True

        found = await self._mutate(change)
        if not found:
            logger.debug("notification_not_found", notification_id=notification_id)
        return found

    async def mark_all_delivered(self, agent: str) -> int:
        """Mark every pending notification for ``agent``; returns how many changed."""
        target = _handle(agent, "agent")
        now = self._clock()

        def change(ledger: _Ledger) -> int:
            count = 0
            for notification in ledger.notifications:
                if notification.target_agent == target and notification.mark_delivered(now):
                    count += 1
            if count:
                ledger.dirty = True
            return count

        count = await self._mutate(change)
        logger.info("notifications_marked_delivered", agent=target, count=count)
        return count

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        task_id: str,
        agent: str,
        reason: SubscriptionReason | str = SubscriptionReason.MANUAL,
    ) -> None:
        """Subscribe ``agent`` to the thread; an existing reason is kept."""
        task_id = _require(task_id, "taskId")
        handle = _handle(agent, "agent")
        try:
            reason = SubscriptionReason(reason)
        except ValueError as e:
            raise ValidationError(f"Unknown subscription reason '{reason}'", field="reason") from e
        now = self._clock()

        created = await self._mutate(
            lambda ledger: ledger.subscribe(task_id, handle, reason, now)
        )
        if created:
            logger.info("thread_subscribed", task_id=task_id, agent=handle, reason=reason.value)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _explicit_targets(
        mentions: list[str],
        sender: str,
        all_agents: Iterable[str] | None,
    ) -> list[str]:
        targets: list[str] = []
        for handle in mentions:
            if handle == BROADCAST_HANDLE:
                candidates = [a.strip().lower() for a in (all_agents or []) if a and a.strip()]
            else:
                candidates = [handle]
            for agent in candidates:
                if agent != sender and agent not in targets:
                    targets.append(agent)
        return targets

    async def _ensure_loaded(self) -> None:
        if self._state is LoadState.LOADED:
            return
        async with self._load_lock:
            if self._state is LoadState.LOADED:
                return
            self._state = LoadState.LOADING
            try:
                raw = await self._store.read(DOCUMENT_NAME)
                notifications, subscriptions = self._decode(raw)
            except BaseException:
                if self._state is LoadState.LOADING:
                    self._state = LoadState.UNLOADED
                raise
            # A mutation or invalidate() ran while the read was suspended.
            if self._state is not LoadState.LOADING:
                return
            self._notifications = notifications
            self._subscriptions = subscriptions
            self._state = LoadState.LOADED
            logger.debug(
                "notification_store_loaded",
                notifications=len(notifications),
                subscriptions=len(subscriptions),
            )

    async def _mutate(self, change: Callable[[_Ledger], T]) -> T:
        async with self._store.locked(DOCUMENT_NAME):
            raw = await self._store.read(DOCUMENT_NAME)
            ledger = _Ledger(*self._decode(raw))
            result = change(ledger)
            if ledger.dirty:
                await self._store.write(DOCUMENT_NAME, self._encode(ledger))
            self._notifications = ledger.notifications
            self._subscriptions = ledger.subscriptions
            self._state = LoadState.LOADED
        return result

    def _publish(self, notifications: list[Notification]) -> None:
        if self._broadcaster is not None and notifications:
            self._broadcaster.publish(notifications)

    @staticmethod
    def _decode(raw: dict[str, Any] | None) -> tuple[list[Notification], list[Subscription]]:
        if raw is None:
            return [], []
        try:
            notifications = [Notification.from_dict(item) for item in raw.get("notifications", [])]
            subscriptions = [Subscription.from_dict(item) for item in raw.get("subscriptions", [])]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StorageError("Notification document is malformed", e) from e
        return notifications, subscriptions

    @staticmethod
    def _encode(ledger: _Ledger) -> dict[str, Any]:
        return {
            "version": DOCUMENT_VERSION,
            "notifications": [n.to_dict() for n in ledger.notifications],
            "subscriptions": [s.to_dict() for s in ledger.subscriptions],
        }
