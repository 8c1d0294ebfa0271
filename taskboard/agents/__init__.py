"""Agent liveness registry.

Agents register with a stable id and a list of capabilities, then report
status, current task and metadata through heartbeats. The registry answers
discovery and statistics queries from process memory.
"""

from taskboard.agents.base import (
    AgentCapability,
    AgentStatus,
    RegisteredAgent,
    RegistryStats,
)
from taskboard.agents.registry import AgentRegistry

__all__ = [
    "AgentCapability",
    "AgentRegistry",
    "AgentStatus",
    "RegisteredAgent",
    "RegistryStats",
]
