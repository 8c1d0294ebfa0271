"""Data structures for the agent liveness registry."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from taskboard.shared.utils.datetime_utils import isoformat, utcnow


class AgentStatus(Enum):
    """Self-reported liveness of an agent."""

    ONLINE = "online"
    BUSY = "busy"
    IDLE = "idle"
    OFFLINE = "offline"


@dataclass
class AgentCapability:
    """A capability that an agent advertises."""

    name: str
    description: str | None = None
    version: str | None = None

    def matches(self, capability: str) -> bool:
        return self.name.lower() == capability.lower()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.version is not None:
            data["version"] = self.version
        return data


@dataclass
class RegisteredAgent:
    """An agent known to the registry."""

    id: str
    name: str
    model: str | None = None
    provider: str | None = None
    capabilities: list[AgentCapability] = field(default_factory=list)
    status: AgentStatus = AgentStatus.ONLINE
    current_task_id: str | None = None
    current_task_title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    registered_at: datetime = field(default_factory=utcnow)
    last_heartbeat: datetime = field(default_factory=utcnow)

    def has_capability(self, capability: str) -> bool:
        return any(c.matches(capability) for c in self.capabilities)

    def clear_task(self) -> None:
        self.current_task_id = None
        self.current_task_title = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "capabilities": [c.to_dict() for c in self.capabilities],
            "status": self.status.value,
            "metadata": dict(self.metadata),
            "registeredAt": isoformat(self.registered_at),
            "lastHeartbeat": isoformat(self.last_heartbeat),
        }
        if self.model is not None:
            data["model"] = self.model
        if self.provider is not None:
            data["provider"] = self.provider
        if self.current_task_id is not None:
            data["currentTaskId"] = self.current_task_id
        if self.current_task_title is not None:
            data["currentTaskTitle"] = self.current_task_title
        return data


@dataclass
class RegistryStats:
    """Counts by status plus every distinct capability name."""

    total: int = 0
    online: int = 0
    busy: int = 0
    idle: int = 0
    offline: int = 0
    capabilities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "online": self.online,
            "busy": self.busy,
            "idle": self.idle,
            "offline": self.offline,
            "capabilities": self.capabilities,
        }
