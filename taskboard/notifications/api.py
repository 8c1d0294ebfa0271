"""REST endpoints for notifications and thread subscriptions."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sse_starlette.sse import EventSourceResponse

from taskboard.config import Settings
from taskboard.dependencies import (
    get_app_settings,
    get_broadcaster,
    get_notification_engine,
)
from taskboard.exceptions import NotFoundError, ValidationError
from taskboard.notifications.base import NotificationType, SubscriptionReason
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.service import NotificationEngine

router = APIRouter(prefix="/notifications", tags=["notifications"])


# ===========================================
# REQUEST MODELS
# ===========================================


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (snake_case also allowed)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessCommentRequest(CamelModel):
    """A comment posted on a task thread."""

    task_id: str = Field(min_length=1, description="Thread (task) the comment belongs to")
    from_agent: str = Field(min_length=1, description="Handle of the commenting agent")
    content: str = Field(min_length=1, description="Comment text, may contain @mentions")
    all_agents: list[str] | None = Field(
        default=None,
        description="Known agent handles used to expand @all",
    )


class AssignmentRequest(CamelModel):
    """Agents assigned to a task."""

    task_id: str = Field(min_length=1)
    assignees: list[str] = Field(default_factory=list)
    assigned_by: str = Field(min_length=1)


class CreateNotificationRequest(CamelModel):
    """System-originated alert."""

    type: NotificationType
    title: str = ""
    message: str = Field(min_length=1)
    task_id: str | None = None


class SubscribeRequest(CamelModel):
    """Manual thread subscription."""

    agent: str = Field(min_length=1)
    reason: SubscriptionReason = SubscriptionReason.MANUAL


class DeliveredAllRequest(CamelModel):
    """Mark every pending notification for one agent."""

    agent: str = Field(min_length=1)


# ===========================================
# QUERY ENDPOINTS
# ===========================================


@router.get("")
async def list_notifications(
    agent: str | None = Query(default=None, description="Recipient handle (required)"),
    undelivered: bool = Query(default=False, description="Only undelivered notifications"),
    task_id: str | None = Query(default=None, alias="taskId"),
    limit: int | None = Query(default=None, ge=0),
    engine: NotificationEngine = Depends(get_notification_engine),
) -> list[dict[str, Any]]:
    """List notifications for an agent, newest first."""
    if not agent:
        raise ValidationError("Query parameter 'agent' is required", field="agent")

    notifications = await engine.get_notifications(
        agent=agent,
        undelivered=undelivered,
        task_id=task_id,
        limit=limit,
    )
    return [n.to_dict() for n in notifications]


@router.get("/stats")
async def notification_stats(
    engine: NotificationEngine = Depends(get_notification_engine),
) -> dict[str, Any]:
    """Totals by agent and by type."""
    stats = await engine.get_stats()
    return stats.to_dict()


@router.get("/subscriptions/{task_id}")
async def list_subscriptions(
    task_id: str,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> list[dict[str, Any]]:
    """Agents subscribed to a task thread."""
    subscriptions = await engine.get_subscriptions(task_id)
    return [s.to_dict() for s in subscriptions]


@router.get("/stream")
async def notification_stream(
    agent: str | None = Query(default=None, description="Recipient handle (required)"),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
    settings: Settings = Depends(get_app_settings),
) -> EventSourceResponse:
    """Stream notifications for an agent as they are created (SSE).

    Only notifications created after the connection opened are pushed;
    clients should query undelivered ones on (re)connect.
    """
    if not agent:
        raise ValidationError("Query parameter 'agent' is required", field="agent")

    return EventSourceResponse(
        _event_generator(broadcaster, agent.lower(), settings.stream_keepalive_seconds)
    )


async def _event_generator(
    broadcaster: NotificationBroadcaster,
    agent: str,
    keepalive_seconds: float,
) -> AsyncGenerator[dict[str, str], None]:
    queue = broadcaster.listen(agent)
    try:
        yield {
            "event": "connected",
            "data": json.dumps({"agent": agent, "message": "Connected to notification stream"}),
        }
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                yield {"event": "notification", "id": event["id"], "data": json.dumps(event)}
            except asyncio.TimeoutError:
                yield {"event": "ping", "data": json.dumps({"type": "keepalive"})}
    finally:
        broadcaster.unlisten(agent, queue)


# ===========================================
# MUTATING ENDPOINTS
# ===========================================


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_notification(
    request: CreateNotificationRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> dict[str, Any]:
    """Create a system notification."""
    notification = await engine.create_notification(
        type=request.type,
        title=request.title,
        message=request.message,
        task_id=request.task_id,
    )
    return notification.to_dict()


@router.post("/process", status_code=status.HTTP_201_CREATED)
async def process_comment(
    request: ProcessCommentRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> list[dict[str, Any]]:
    """Create mention/reply notifications for a comment."""
    created = await engine.process_comment(
        task_id=request.task_id,
        from_agent=request.from_agent,
        content=request.content,
        all_agents=request.all_agents,
    )
    return [n.to_dict() for n in created]


@router.post("/assignment", status_code=status.HTTP_201_CREATED)
async def notify_assignment(
    request: AssignmentRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> list[dict[str, Any]]:
    """Notify agents assigned to a task."""
    created = await engine.notify_assignment(
        task_id=request.task_id,
        assignees=request.assignees,
        assigned_by=request.assigned_by,
    )
    return [n.to_dict() for n in created]


@router.post("/subscriptions/{task_id}", status_code=status.HTTP_201_CREATED)
async def subscribe(
    task_id: str,
    request: SubscribeRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> list[dict[str, Any]]:
    """Subscribe an agent to a thread and return the thread's subscriptions."""
    await engine.subscribe(task_id, request.agent, request.reason)
    subscriptions = await engine.get_subscriptions(task_id)
    return [s.to_dict() for s in subscriptions]


@router.post("/delivered-all")
async def mark_all_delivered(
    request: DeliveredAllRequest,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> dict[str, Any]:
    """Mark all pending notifications for an agent as delivered."""
    count = await engine.mark_all_delivered(request.agent)
    return {"success": True, "count": count}


@router.post("/{notification_id}/delivered")
async def mark_delivered(
    notification_id: str,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> dict[str, Any]:
    """Mark a single notification as delivered."""
    if not await engine.mark_delivered(notification_id):
        raise NotFoundError("Notification", notification_id)
    return {"success": True}
