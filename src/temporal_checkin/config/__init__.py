"""Configuration module for the temporal check-in service."""

from temporal_checkin.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
