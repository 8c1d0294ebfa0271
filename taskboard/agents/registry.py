"""Agent liveness registry: registration, heartbeats and capability discovery."""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from taskboard.agents.base import (
    AgentCapability,
    AgentStatus,
    RegisteredAgent,
    RegistryStats,
)
from taskboard.exceptions import ValidationError
from taskboard.shared.utils.datetime_utils import utcnow
from taskboard.shared.utils.logging import get_logger

logger = get_logger(__name__)

CapabilityInput = AgentCapability | str | dict[str, Any]


def _coerce_status(status: AgentStatus | str) -> AgentStatus:
    try:
        return AgentStatus(status)
    except ValueError as e:
        valid = [s.value for s in AgentStatus]
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {valid}", field="status"
        ) from e


def _coerce_capabilities(capabilities: Iterable[CapabilityInput]) -> list[AgentCapability]:
    result = []
    for capability in capabilities:
        if isinstance(capability, AgentCapability):
            result.append(capability)
        elif isinstance(capability, str):
            result.append(AgentCapability(name=capability))
        elif isinstance(capability, dict) and capability.get("name"):
            result.append(
                AgentCapability(
                    name=capability["name"],
                    description=capability.get("description"),
                    version=capability.get("version"),
                )
            )
        else:
            raise ValidationError("Each capability needs a name", field="capabilities")
    return result


class AgentRegistry:
    """
    Volatile table of agents currently working against the board.

    Manages:
    - Idempotent registration keyed by the caller-chosen agent id
    - Heartbeats carrying status, current task and metadata updates
    - Capability-based discovery and status statistics
    - An optional stale-agent sweep and a diagnostic JSON snapshot

    The table lives only in this process. It is never reloaded from the
    snapshot; after a restart agents are expected to register again.
    """

    def __init__(
        self,
        snapshot_path: str | Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._agents: dict[str, RegisteredAgent] = {}
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._clock = clock
        self._sweep_task: asyncio.Task | None = None

    # ===================================
    # REGISTRATION
    # ===================================

    def register(
        self,
        agent_id: str,
        name: str,
        model: str | None = None,
        provider: str | None = None,
        capabilities: Iterable[CapabilityInput] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RegisteredAgent:
        """
        Register an agent, or refresh it if the id is already known.

        On re-registration the supplied fields overwrite the stored ones
        (metadata is replaced, not merged), ``registered_at`` is kept and the
        agent comes back ``online``.

        Raises:
            ValidationError: If id or name is empty
        """
        if not agent_id or not agent_id.strip():
            raise ValidationError("'id' is required", field="id")
        if not name or not name.strip():
            raise ValidationError("'name' is required", field="name")

        now = self._clock()
        caps = _coerce_capabilities(capabilities) if capabilities is not None else None
        existing = self._agents.get(agent_id)

        if existing is None:
            agent = RegisteredAgent(
                id=agent_id,
                name=name,
                model=model,
                provider=provider,
                capabilities=caps or [],
                metadata=dict(metadata) if metadata is not None else {},
                registered_at=now,
                last_heartbeat=now,
            )
            self._agents[agent_id] = agent
            logger.info("agent_registered", agent_id=agent_id, name=name)
        else:
            agent = existing
            agent.name = name
            if model is not None:
                agent.model = model
            if provider is not None:
                agent.provider = provider
            if caps is not None:
                agent.capabilities = caps
            if metadata is not None:
                agent.metadata = dict(metadata)
            agent.status = AgentStatus.ONLINE
            agent.last_heartbeat = now
            logger.info("agent_reregistered", agent_id=agent_id, name=name)

        self._write_snapshot()
        return agent

    def deregister(self, agent_id: str) -> bool:
        """Remove an agent. Returns whether it was registered."""
        if self._agents.pop(agent_id, None) is None:
            return False
        logger.info("agent_deregistered", agent_id=agent_id)
        self._write_snapshot()
        return True

    # ===================================
    # HEARTBEAT
    # ===================================

    def heartbeat(
        self,
        agent_id: str,
        status: AgentStatus | str | None = None,
        current_task_id: str | None = None,
        current_task_title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RegisteredAgent | None:
        """
        Record a heartbeat.

        Going ``idle`` or sending an empty task id/title clears both task
        fields; otherwise whichever task fields were sent are stored.
        Metadata is merged key by key.

        An unknown id returns None before the status is validated.

        Returns:
            The updated agent, or None if the id is not registered

        Raises:
            ValidationError: If a registered agent reports an unknown status
        """
        agent = self._agents.get(agent_id)
        if agent is None:
            return None

        new_status = _coerce_status(status) if status is not None else None

        agent.last_heartbeat = self._clock()
        if new_status is not None:
            if new_status != agent.status:
                logger.info(
                    "agent_status_changed",
                    agent_id=agent_id,
                    old_status=agent.status.value,
                    new_status=new_status.value,
                )
            agent.status = new_status

        if new_status is AgentStatus.IDLE or current_task_id == "" or current_task_title == "":
            agent.clear_task()
        else:
            if current_task_id is not None:
                agent.current_task_id = current_task_id
            if current_task_title is not None:
                agent.current_task_title = current_task_title

        if metadata:
            agent.metadata.update(metadata)

        self._write_snapshot()
        return agent

    # ===================================
    # DISCOVERY
    # ===================================

    def get(self, agent_id: str) -> RegisteredAgent | None:
        return self._agents.get(agent_id)

    def list(
        self,
        status: AgentStatus | str | None = None,
        capability: str | None = None,
    ) -> list[RegisteredAgent]:
        """List agents, optionally filtered by status and capability."""
        agents = list(self._agents.values())

        if status is not None:
            wanted = _coerce_status(status)
            agents = [a for a in agents if a.status == wanted]
        if capability:
            agents = [a for a in agents if a.has_capability(capability)]

        return agents

    def find_by_capability(self, capability: str) -> list[RegisteredAgent]:
        """Agents advertising ``capability`` that are not offline."""
        return [
            a
            for a in self._agents.values()
            if a.status != AgentStatus.OFFLINE and a.has_capability(capability)
        ]

    def stats(self) -> RegistryStats:
        stats = RegistryStats(total=len(self._agents))
        capabilities: set[str] = set()

        for agent in self._agents.values():
            setattr(stats, agent.status.value, getattr(stats, agent.status.value) + 1)
            capabilities.update(c.name for c in agent.capabilities)

        stats.capabilities = sorted(capabilities)
        return stats

    # ===================================
    # STALENESS
    # ===================================

    def sweep_stale(self, stale_after: timedelta, now: datetime | None = None) -> list[str]:
        """Mark agents offline whose last heartbeat is older than ``stale_after``.

        Returns:
            Ids of the agents that were marked offline by this sweep
        """
        now = now or self._clock()
        marked = []

        for agent in self._agents.values():
            if agent.status == AgentStatus.OFFLINE:
                continue
            silence = now - agent.last_heartbeat
            if silence > stale_after:
                agent.status = AgentStatus.OFFLINE
                marked.append(agent.id)
                logger.warning(
                    "agent_stale",
                    agent_id=agent.id,
                    seconds_since_heartbeat=silence.total_seconds(),
                )

        if marked:
            self._write_snapshot()
        return marked

    async def start(self, interval_seconds: float, stale_after_seconds: float) -> None:
        """Start the background stale-agent sweep."""
        if self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(
            self._sweep_loop(interval_seconds, timedelta(seconds=stale_after_seconds))
        )
        logger.info(
            "agent_sweep_started",
            interval_seconds=interval_seconds,
            stale_after_seconds=stale_after_seconds,
        )

    async def stop(self) -> None:
        """Stop the background sweep if it is running."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("agent_sweep_stopped")

    async def dispose(self) -> None:
        """Stop background work and drop every registration."""
        await self.stop()
        self._agents.clear()

    async def _sweep_loop(self, interval_seconds: float, stale_after: timedelta) -> None:
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                self.sweep_stale(stale_after)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("agent_sweep_error", error=str(e))

    # ===================================
    # SNAPSHOT
    # ===================================

    def _write_snapshot(self) -> None:
        if self._snapshot_path is None:
            return

        payload = {
            "writtenAt": self._clock().isoformat(),
            "agents": [a.to_dict() for a in self._agents.values()],
        }
        tmp_path = self._snapshot_path.with_name(self._snapshot_path.name + ".tmp")
        try:
            self._snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._snapshot_path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(
                "registry_snapshot_failed",
                path=str(self._snapshot_path),
                error=str(e),
            )
