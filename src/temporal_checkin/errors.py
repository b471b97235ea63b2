"""Error taxonomy for multi-day task operations.

Lifecycle and recorder errors are raised straight to the caller so the
transport layer can translate them. Storage errors are wrapped with the
name of the failing operation.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base class for all multi-day task errors."""


class TaskNotFoundError(TaskError):
    """The referenced task does not exist."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__("Task not found")


class InvalidTaskStateError(TaskError):
    """The task's status does not allow the requested operation."""

    def __init__(self, message: str, task_id: str | None = None, status: str | None = None) -> None:
        self.task_id = task_id
        self.status = status
        super().__init__(message)


class InvalidArgumentError(TaskError, ValueError):
    """The request carried no usable or out-of-range arguments."""


class TransientStoreError(TaskError):
    """An underlying storage failure, prefixed with the failing operation."""

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        self.operation = operation
        super().__init__(f"Failed to {operation}: {cause}")


class NotificationEnqueueError(TaskError):
    """A single check-in prompt could not be handed to the notification gateway."""


class CheckInHistoryChangedError(InvalidTaskStateError):
    """Check-ins were added after the task was read for completion."""

    def __init__(self, task_id: str, status: str | None = None) -> None:
        super().__init__(
            "Task check-ins changed while completing", task_id=task_id, status=status
        )
