"""Multi-day task service.

Owns the task lifecycle (create, update, list, delete), records check-ins
and drives completion through the synthesis module. Check-in prompts are
generated after the creating transaction commits; their outcome is recorded
in the schedule outbox and never fails task creation.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from temporal_checkin.config import settings
from temporal_checkin.errors import (
    CheckInHistoryChangedError,
    InvalidArgumentError,
    InvalidTaskStateError,
    TaskNotFoundError,
)
from temporal_checkin.logging import format_log_context, truncate_log_text
from temporal_checkin.models import (
    AddCheckInInput,
    CheckInRecord,
    CreateTaskInput,
    MultiDayTask,
    ScheduleSlot,
    TaskListFilters,
    TaskStatus,
    TaskUpdate,
    TemporalAnalysis,
)
from temporal_checkin.storage.notification_storage import (
    NotificationGateway,
    get_notification_storage,
)
from temporal_checkin.storage.task_storage import TaskStorage, get_task_storage
from temporal_checkin.tasks.schedule import enqueue_prompts, generate_check_in_prompts
from temporal_checkin.tasks.synthesis import build_synthesis, generate_temporal_analysis

ModelT = TypeVar("ModelT", bound=BaseModel)

# Completion rebuilds the synthesis if check-ins land while it is rendered.
COMPLETE_ATTEMPTS = 3


def _local_now() -> datetime:
    return datetime.now(settings.tzinfo)


def _validate(model: type[ModelT], data: ModelT | dict[str, Any]) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidArgumentError(str(e)) from e


class TaskService:
    """Lifecycle, check-in recording and completion for multi-day tasks."""

    def __init__(
        self,
        storage: TaskStorage | None = None,
        gateway: NotificationGateway | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Args:
            storage: Task store (defaults to the configured SQLite database)
            gateway: Notification gateway for check-in prompts
            clock: Returns the current local wall-clock time
            rng: Random source for prompt wording
        """
        self.storage = storage or get_task_storage()
        self.gateway = gateway or get_notification_storage()
        self._clock = clock or _local_now
        self._rng = rng or random.Random()

    def _timestamp(self) -> str:
        return self._clock().astimezone(timezone.utc).isoformat()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def create_task(self, data: CreateTaskInput | dict[str, Any]) -> MultiDayTask:
        """
        Create a task with its companion conversation, then schedule check-ins.

        Scheduling runs after the task is committed. Prompts that cannot be
        enqueued are logged and recorded as failed slots (see `get_schedule`).

        Returns:
            The task with `conversation_id` attached
        """
        data = _validate(CreateTaskInput, data)
        check_in_times = [t.value for t in data.check_in_times] if data.check_in_times else list(
            settings.CHECKIN_DEFAULT_TIMES
        )
        duration_days = data.duration_days or settings.CHECKIN_DEFAULT_DURATION_DAYS

        task = self.storage.create_task_with_conversation(
            user_id=data.user_id,
            title=data.title,
            check_in_times=check_in_times,
            duration_days=duration_days,
            description=data.description,
            topic_category=data.topic_category,
            target_completion_date=(
                data.target_completion_date.isoformat() if data.target_completion_date else None
            ),
            initial_context=data.initial_context,
            now=self._timestamp(),
        )

        ctx = format_log_context(
            "task_created",
            component="tasks",
            user=task.user_id,
            task=task.id,
            conversation=task.conversation_id,
        )
        logger.info(f'{ctx} title="{truncate_log_text(task.title, 80)}" days={duration_days}')

        try:
            self._schedule_check_ins(task)
        except Exception as e:
            logger.exception(f'{ctx} schedule_failed error="{e}"')

        return task

    def _schedule_check_ins(self, task: MultiDayTask) -> list[ScheduleSlot]:
        prompts = generate_check_in_prompts(
            user_id=task.user_id,
            task_id=task.id,
            title=task.title,
            check_in_times=task.check_in_times,
            duration_days=task.duration_days,
            now=self._clock(),
            rng=self._rng,
            priority=settings.CHECKIN_PROMPT_PRIORITY,
            ttl_hours=settings.CHECKIN_PROMPT_TTL_HOURS,
        )

        slots: list[ScheduleSlot] = []
        for prompt, notification_id, error in enqueue_prompts(prompts, self.gateway):
            slots.append(
                self.storage.record_schedule_slot(
                    task_id=task.id,
                    day_number=prompt.day_number,
                    time_of_day=prompt.time_of_day,
                    scheduled_for=prompt.scheduled_for,
                    expires_at=prompt.expires_at,
                    question=prompt.question,
                    context=prompt.context,
                    status="enqueued" if notification_id else "failed",
                    notification_id=notification_id,
                    error=error,
                    now=self._timestamp(),
                )
            )

        failed = sum(1 for slot in slots if slot.status == "failed")
        ctx = format_log_context("schedule_generated", component="schedule", task=task.id)
        logger.info(
            f"{ctx} requested={len(prompts)} enqueued={len(slots) - failed} failed={failed} "
            f"times={','.join(task.check_in_times)} days={task.duration_days}"
        )
        return slots

    def find_by_id(self, task_id: str) -> MultiDayTask | None:
        return self.storage.get_task(task_id)

    def _require(self, task_id: str) -> MultiDayTask:
        task = self.storage.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_by_user(
        self,
        user_id: str,
        filters: TaskListFilters | dict[str, Any] | None = None,
    ) -> list[MultiDayTask]:
        """List a user's tasks, newest first (limit 50 by default, at most 100)."""
        filters = _validate(TaskListFilters, filters or {})
        return self.storage.list_tasks(
            user_id,
            status=filters.status.value if filters.status else None,
            topic_category=filters.topic_category,
            limit=filters.limit,
            offset=filters.offset,
        )

    def update_task(self, task_id: str, update: TaskUpdate | dict[str, Any]) -> MultiDayTask:
        """
        Apply only the fields present in `update`.

        Raises:
            InvalidArgumentError: no recognized field is present
            TaskNotFoundError: task does not exist
            InvalidTaskStateError: task is completed, or a final synthesis is
                supplied without completing the task
        """
        update = _validate(TaskUpdate, update)
        return self._apply_update(task_id, update.changes())

    def _apply_update(
        self,
        task_id: str,
        changes: dict[str, Any],
        expected_check_in_count: int | None = None,
    ) -> MultiDayTask:
        if not changes:
            raise InvalidArgumentError("No fields to update")

        task = self.storage.update_task(
            task_id,
            changes,
            now=self._timestamp(),
            expected_check_in_count=expected_check_in_count,
        )
        if task is None:
            raise TaskNotFoundError(task_id)

        ctx = format_log_context(
            "task_updated", component="tasks", task=task_id, status=task.status
        )
        logger.info(f"{ctx} fields={','.join(sorted(changes))}")
        return task

    def delete_task(self, task_id: str) -> bool:
        deleted = self.storage.delete_task(task_id)
        if deleted:
            logger.info(format_log_context("task_deleted", component="tasks", task=task_id))
        return deleted

    def get_schedule(self, task_id: str) -> list[ScheduleSlot]:
        """Recorded check-in prompt slots and their enqueue outcome."""
        self._require(task_id)
        return self.storage.list_schedule_slots(task_id)

    # ========================================================================
    # Check-ins
    # ========================================================================

    def add_check_in(self, task_id: str, data: AddCheckInInput | dict[str, Any]) -> MultiDayTask:
        """
        Append a completed check-in to an active task.

        Raises:
            TaskNotFoundError: task does not exist
            InvalidTaskStateError: task is not active
        """
        data = _validate(AddCheckInInput, data)

        record, task = self.storage.append_check_in(
            task_id,
            time_of_day=data.time_of_day.value,
            question_asked=data.question_asked,
            question_type=data.question_type.value,
            response=data.response,
            notification_id=data.notification_id,
            self_reported_energy=data.self_reported_energy,
            self_reported_mood=data.self_reported_mood,
            self_reported_focus=data.self_reported_focus,
            insights=data.insights,
            detected_state=data.detected_state.value if data.detected_state else None,
            completed_at=self._timestamp(),
        )

        logger.info(
            format_log_context(
                "check_in_added",
                component="tasks",
                task=task_id,
                number=record.check_in_number,
                time_of_day=record.time_of_day,
            )
        )
        return task

    # ========================================================================
    # Synthesis
    # ========================================================================

    def generate_temporal_analysis(self, check_ins: Sequence[CheckInRecord]) -> TemporalAnalysis:
        return generate_temporal_analysis(check_ins)

    def preview_analysis(self, task_id: str) -> tuple[MultiDayTask, TemporalAnalysis | None]:
        """Analysis of the check-ins so far without completing the task."""
        task = self._require(task_id)
        if not task.check_ins:
            return task, None
        return task, generate_temporal_analysis(task.check_ins)

    def complete_task(self, task_id: str) -> MultiDayTask:
        """
        Build the final synthesis and mark the task completed.

        The completing write only applies if the check-in history is still the
        one the synthesis was built from; otherwise the task is re-read and the
        synthesis rebuilt, up to COMPLETE_ATTEMPTS times.

        Raises:
            TaskNotFoundError: task does not exist
            InvalidTaskStateError: task is already completed or has no check-ins
            CheckInHistoryChangedError: check-ins kept arriving on every attempt
        """
        attempt = 1
        while True:
            try:
                return self._complete_once(task_id)
            except CheckInHistoryChangedError:
                if attempt >= COMPLETE_ATTEMPTS:
                    raise
                logger.info(
                    format_log_context(
                        "complete_retry", component="synthesis", task=task_id, attempt=attempt
                    )
                )
                attempt += 1

    def _complete_once(self, task_id: str) -> MultiDayTask:
        task = self._require(task_id)

        if task.is_completed:
            raise InvalidTaskStateError("Task already completed", task_id=task_id, status=task.status)

        if not task.check_ins:
            raise InvalidTaskStateError(
                "Cannot complete task with no check-ins", task_id=task_id, status=task.status
            )

        analysis = generate_temporal_analysis(task.check_ins)
        synthesis = build_synthesis(task, task.check_ins, analysis)

        completed = self._apply_update(
            task_id,
            {"status": TaskStatus.COMPLETED.value, "final_synthesis": synthesis},
            expected_check_in_count=len(task.check_ins),
        )
        logger.info(
            format_log_context(
                "task_completed",
                component="synthesis",
                task=task_id,
                check_ins=len(task.check_ins),
                optimal=analysis.optimal_time_of_day,
            )
        )
        return completed


_task_service: TaskService | None = None


def get_task_service() -> TaskService:
    """Get or create the shared task service."""
    global _task_service
    if _task_service is None:
        _task_service = TaskService()
    return _task_service
