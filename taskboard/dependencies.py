"""FastAPI dependencies resolving the per-application service instances."""

from fastapi import Request

from taskboard.agents.registry import AgentRegistry
from taskboard.config import Settings
from taskboard.notifications.broadcast import NotificationBroadcaster
from taskboard.notifications.service import NotificationEngine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_notification_engine(request: Request) -> NotificationEngine:
    return request.app.state.notification_engine


def get_broadcaster(request: Request) -> NotificationBroadcaster:
    return request.app.state.broadcaster


def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry
