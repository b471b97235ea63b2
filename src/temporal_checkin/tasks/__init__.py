"""Multi-day task lifecycle, check-in schedule and synthesis."""

from temporal_checkin.tasks.schedule import enqueue_prompts, generate_check_in_prompts
from temporal_checkin.tasks.service import TaskService, get_task_service
from temporal_checkin.tasks.synthesis import build_synthesis, generate_temporal_analysis

__all__ = [
    "TaskService",
    "get_task_service",
    "generate_check_in_prompts",
    "enqueue_prompts",
    "generate_temporal_analysis",
    "build_synthesis",
]
