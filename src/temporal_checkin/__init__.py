"""Temporal check-in engine for multi-day tasks."""

__version__ = "0.1.0"
