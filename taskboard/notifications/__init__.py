"""Notification & subscription engine.

- @mention parsing and ``@all`` expansion
- mention / reply / assignment fan-out with thread auto-subscription
- set-once delivery tracking persisted through a locked document store
- live fan-out of new notifications to stream listeners
"""

from taskboard.notifications.base import (
    Notification,
    NotificationStats,
    NotificationType,
    Subscription,
    SubscriptionReason,
)
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.mentions import parse_mentions
from taskboard.notifications.service import LoadState, NotificationEngine

__all__ = [
    "LoadState",
    "Notification",
    "NotificationBroadcaster",
    "NotificationEngine",
    "NotificationStats",
    "NotificationType",
    "Subscription",
    "SubscriptionReason",
    "parse_mentions",
]
