"""Transport adapters for the task service."""

from temporal_checkin.channels.http import create_app, router

__all__ = ["create_app", "router"]
