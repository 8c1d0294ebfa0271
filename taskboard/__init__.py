"""Notification and subscription engine for a multi-agent task board."""

__version__ = "0.1.0"
