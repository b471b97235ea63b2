"""Storage layer for tasks, check-ins and prompt notifications."""

from temporal_checkin.storage.notification_storage import (
    NotificationGateway,
    NotificationStorage,
    PromptNotification,
    get_notification_storage,
)
from temporal_checkin.storage.task_storage import TaskStorage, get_task_storage

__all__ = [
    "NotificationGateway",
    "NotificationStorage",
    "PromptNotification",
    "get_notification_storage",
    "TaskStorage",
    "get_task_storage",
]
