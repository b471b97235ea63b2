"""Data model for multi-day tasks, their check-ins and derived analysis.

Stored entities are plain dataclasses; request payloads are pydantic models
so the same bounds apply to the service API and the HTTP adapter.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    LATE_NIGHT = "late_night"


# Iteration order used for scheduling and for tie-breaking in analysis.
TIME_OF_DAY_ORDER: tuple[TimeOfDay, ...] = (
    TimeOfDay.MORNING,
    TimeOfDay.AFTERNOON,
    TimeOfDay.EVENING,
    TimeOfDay.LATE_NIGHT,
)


class QuestionType(str, Enum):
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    EXPERIENTIAL = "experiential"
    REFLECTIVE = "reflective"
    PHILOSOPHICAL = "philosophical"
    COMFORT = "comfort"
    ASPIRATIONAL = "aspirational"
    TACTICAL = "tactical"


class TaskStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CognitiveState(str, Enum):
    ANALYTICAL = "analytical"
    CREATIVE = "creative"
    REFLECTIVE = "reflective"
    PHILOSOPHICAL = "philosophical"
    EMOTIONAL = "emotional"


# ============================================================================
# Stored records
# ============================================================================


@dataclass
class CheckInRecord:
    """One completed prompt/response pair, immutable once written."""

    check_in_number: int
    time_of_day: str
    question_asked: str
    question_type: str
    response: str
    completed_at: str
    notification_id: str | None = None
    self_reported_energy: int | None = None
    self_reported_mood: int | None = None
    self_reported_focus: int | None = None
    insights: list[str] = field(default_factory=list)
    detected_state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MultiDayTask:
    """A unit of multi-day reasoning with its ordered check-in history."""

    id: str
    user_id: str
    title: str
    status: str
    check_in_times: list[str]
    duration_days: int
    created_at: str
    updated_at: str
    description: str | None = None
    topic_category: str | None = None
    target_completion_date: str | None = None
    initial_context: str | None = None
    conversation_id: str | None = None
    check_ins: list[CheckInRecord] = field(default_factory=list)
    final_synthesis: str | None = None
    completed_at: str | None = None
    synthesis_created_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.ACTIVE.value

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["check_ins"] = [c.to_dict() for c in self.check_ins]
        return data


@dataclass
class TemporalAnalysis:
    """Aggregation of a task's check-ins by time of day."""

    morning_insights: list[str]
    afternoon_insights: list[str]
    evening_insights: list[str]
    late_night_insights: list[str]
    state_consistency: str
    optimal_decision_time: str
    optimal_time_of_day: str
    optimal_average_score: float

    def insights_for(self, time_of_day: TimeOfDay | str) -> list[str]:
        return getattr(self, f"{TimeOfDay(time_of_day).value}_insights")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PromptRequest:
    """A check-in prompt to hand to the notification gateway."""

    user_id: str
    task_id: str
    day_number: int
    time_of_day: str
    scheduled_for: str
    question: str
    context: str
    preferred_cognitive_state: str
    priority: float
    expires_at: str


@dataclass
class ScheduleSlot:
    """Recorded outcome of one prompt request (schedule outbox row)."""

    id: str
    task_id: str
    day_number: int
    time_of_day: str
    scheduled_for: str
    expires_at: str
    question: str
    context: str
    status: str  # enqueued, failed
    created_at: str
    notification_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Request models
# ============================================================================


class CreateTaskInput(BaseModel):
    """Input for creating a multi-day task."""

    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    topic_category: str | None = Field(None, max_length=100)
    target_completion_date: date | None = None
    check_in_times: list[TimeOfDay] | None = Field(
        None, description="Buckets to check in at (defaults from settings)"
    )
    duration_days: int | None = Field(None, ge=1, le=30)
    initial_context: str | None = Field(None, max_length=5000)

    @field_validator("check_in_times")
    @classmethod
    def unique_buckets(cls, v: list[TimeOfDay] | None) -> list[TimeOfDay] | None:
        """Keep first occurrence order, drop repeats, reject empty lists."""
        if v is None:
            return v
        if not v:
            raise ValueError("check_in_times must name at least one time of day")
        return list(dict.fromkeys(v))


class AddCheckInInput(BaseModel):
    """Input for recording a completed check-in."""

    time_of_day: TimeOfDay
    question_asked: str = Field(..., min_length=1, max_length=2000)
    question_type: QuestionType
    response: str = Field(..., min_length=1, max_length=10000)
    notification_id: str | None = None
    self_reported_energy: int | None = Field(None, ge=1, le=5)
    self_reported_mood: int | None = Field(None, ge=1, le=5)
    self_reported_focus: int | None = Field(None, ge=1, le=5)
    insights: list[str] = Field(default_factory=list)
    detected_state: CognitiveState | None = None


class TaskUpdate(BaseModel):
    """Partial update: only fields explicitly set are applied."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    status: TaskStatus | None = None
    target_completion_date: date | None = None
    final_synthesis: str | None = Field(None, max_length=10000)

    @model_validator(mode="after")
    def no_null_required_fields(self) -> "TaskUpdate":
        for name in ("title", "status", "final_synthesis"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Set fields as storage values (enums and dates flattened)."""
        return self.model_dump(exclude_unset=True, mode="json")


class TaskListFilters(BaseModel):
    """Filters and pagination for listing a user's tasks."""

    status: TaskStatus | None = None
    topic_category: str | None = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)
