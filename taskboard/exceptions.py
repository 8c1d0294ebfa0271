"""Typed exceptions shared by the notification engine and agent registry."""

from typing import Any

from fastapi import status


class TaskboardError(Exception):
    """Base exception for task board errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "taskboard_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_type = error_type
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ValidationError(TaskboardError):
    """Raised when input is malformed or a required field is missing."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else None
        super().__init__(message, "validation_error", details)
        self.field = field


class NotFoundError(TaskboardError):
    """Raised when a referenced agent or notification does not exist."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(
            f"{entity_type} with id '{entity_id}' not found",
            "not_found",
            {"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageError(TaskboardError):
    """Raised when the durable store cannot be read, written or locked.

    Callers may retry after a delay; nothing retries internally.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        details: dict[str, Any] = {}
        if original_error is not None:
            details["original_error"] = str(original_error)
            details["error_type"] = type(original_error).__name__
        super().__init__(message, "storage_error", details)
        self.original_error = original_error


STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "storage_error": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: TaskboardError) -> int:
    """Map an error to the HTTP status the route layer should answer with."""
    return STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)


__all__ = [
    "NotFoundError",
    "StorageError",
    "TaskboardError",
    "ValidationError",
    "status_for",
]
