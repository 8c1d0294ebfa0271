"""Durable storage for the task board core."""

from taskboard.storage.json_store import JsonDocumentStore

__all__ = ["JsonDocumentStore"]
