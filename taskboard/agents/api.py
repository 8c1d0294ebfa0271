"""REST endpoints for agent registration, heartbeats and discovery."""

from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from taskboard.agents.base import AgentCapability, AgentStatus
from taskboard.agents.registry import AgentRegistry
from taskboard.dependencies import get_agent_registry
from taskboard.exceptions import NotFoundError

router = APIRouter(prefix="/agents/register", tags=["agent-registry"])


# ===========================================
# REQUEST MODELS
# ===========================================


class CapabilityModel(BaseModel):
    """A capability; a bare string is accepted as its name."""

    name: str = Field(min_length=1)
    description: str | None = None
    version: str | None = None

    @model_validator(mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value

    def to_capability(self) -> AgentCapability:
        return AgentCapability(
            name=self.name,
            description=self.description,
            version=self.version,
        )


class RegisterAgentRequest(BaseModel):
    """Register or refresh an agent."""

    id: str = Field(min_length=1, description="Stable agent handle")
    name: str = Field(min_length=1, description="Display name")
    model: str | None = None
    provider: str | None = None
    capabilities: list[CapabilityModel] | None = None
    metadata: dict[str, Any] | None = None


class HeartbeatRequest(BaseModel):
    """Periodic liveness report."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str | None = Field(default=None, description="online, busy, idle or offline")
    current_task_id: str | None = None
    current_task_title: str | None = None
    metadata: dict[str, Any] | None = None


# ===========================================
# ENDPOINTS
# ===========================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_agent(
    request: RegisterAgentRequest,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> dict[str, Any]:
    """Register an agent (upsert by id)."""
    capabilities = (
        [c.to_capability() for c in request.capabilities]
        if request.capabilities is not None
        else None
    )
    agent = registry.register(
        agent_id=request.id,
        name=request.name,
        model=request.model,
        provider=request.provider,
        capabilities=capabilities,
        metadata=request.metadata,
    )
    return agent.to_dict()


@router.post("/{agent_id}/heartbeat")
async def agent_heartbeat(
    agent_id: str,
    request: HeartbeatRequest,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> dict[str, Any]:
    """Record a heartbeat with optional status, task and metadata."""
    agent = registry.heartbeat(
        agent_id,
        status=request.status,
        current_task_id=request.current_task_id,
        current_task_title=request.current_task_title,
        metadata=request.metadata,
    )
    if agent is None:
        raise NotFoundError("Agent", agent_id)
    return agent.to_dict()


@router.get("")
async def list_agents(
    status: AgentStatus | None = Query(default=None),
    capability: str | None = Query(default=None),
    registry: AgentRegistry = Depends(get_agent_registry),
) -> list[dict[str, Any]]:
    """List registered agents."""
    return [a.to_dict() for a in registry.list(status=status, capability=capability)]


@router.get("/stats")
async def registry_stats(
    registry: AgentRegistry = Depends(get_agent_registry),
) -> dict[str, Any]:
    """Counts by status and all known capabilities."""
    return registry.stats().to_dict()


@router.get("/capabilities/{capability}")
async def find_by_capability(
    capability: str,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> list[dict[str, Any]]:
    """Agents that advertise a capability and are not offline."""
    return [a.to_dict() for a in registry.find_by_capability(capability)]


@router.get("/{agent_id}")
async def get_agent(
    agent_id: str,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> dict[str, Any]:
    """Get one agent."""
    agent = registry.get(agent_id)
    if agent is None:
        raise NotFoundError("Agent", agent_id)
    return agent.to_dict()


@router.delete("/{agent_id}")
async def deregister_agent(
    agent_id: str,
    registry: AgentRegistry = Depends(get_agent_registry),
) -> dict[str, Any]:
    """Remove an agent from the registry."""
    if not registry.deregister(agent_id):
        raise NotFoundError("Agent", agent_id)
    return {"removed": True}
