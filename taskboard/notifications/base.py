"""Data structures for notifications and thread subscriptions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from taskboard.shared.utils.datetime_utils import isoformat, parse_iso, utcnow

SYSTEM_AGENT = "system"
BROADCAST_HANDLE = "all"


class NotificationType(Enum):
    """Kinds of notification."""

    MENTION = "mention"
    REPLY = "reply"
    ASSIGNMENT = "assignment"
    SYSTEM = "system"
    ERROR = "error"


class SubscriptionReason(Enum):
    """How an agent came to be subscribed to a thread."""

    COMMENTED = "commented"
    MENTIONED = "mentioned"
    ASSIGNED = "assigned"
    MANUAL = "manual"


def new_notification_id() -> str:
    return f"notif_{uuid4().hex}"


@dataclass
class Notification:
    """A message addressed to one agent."""

    type: NotificationType
    from_agent: str
    target_agent: str
    content: str
    task_id: str | None = None
    id: str = field(default_factory=new_notification_id)
    created_at: datetime = field(default_factory=utcnow)
    delivered: bool = False
    delivered_at: datetime | None = None

    def mark_delivered(self, now: datetime) -> bool:
        """Flip to delivered. Returns False if it already was."""
        if self.delivered:
            return False
        self.delivered = True
        self.delivered_at = now
        return True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "fromAgent": self.from_agent,
            "targetAgent": self.target_agent,
            "content": self.content,
            "createdAt": isoformat(self.created_at),
            "delivered": self.delivered,
        }
        if self.task_id is not None:
            data["taskId"] = self.task_id
        if self.delivered_at is not None:
            data["deliveredAt"] = isoformat(self.delivered_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            type=NotificationType(data["type"]),
            task_id=data.get("taskId"),
            from_agent=data["fromAgent"],
            target_agent=data["targetAgent"],
            content=data.get("content", ""),
            created_at=parse_iso(data.get("createdAt")) or utcnow(),
            delivered=bool(data.get("delivered", False)),
            delivered_at=parse_iso(data.get("deliveredAt")),
        )


@dataclass
class Subscription:
    """An agent's subscription to a task thread."""

    task_id: str
    agent: str
    reason: SubscriptionReason
    subscribed_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.task_id, self.agent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "agent": self.agent,
            "reason": self.reason.value,
            "subscribedAt": isoformat(self.subscribed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subscription":
        return cls(
            task_id=data["taskId"],
            agent=data["agent"],
            reason=SubscriptionReason(data["reason"]),
            subscribed_at=parse_iso(data.get("subscribedAt")) or utcnow(),
        )


@dataclass
class NotificationStats:
    """Aggregate view over all stored notifications."""

    total_notifications: int = 0
    undelivered: int = 0
    by_agent: dict[str, dict[str, int]] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalNotifications": self.total_notifications,
            "undelivered": self.undelivered,
            "byAgent": self.by_agent,
            "byType": self.by_type,
        }
