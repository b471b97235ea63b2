"""Shared fixtures and configuration for pytest."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

import pytest

from temporal_checkin.errors import NotificationEnqueueError
from temporal_checkin.storage.notification_storage import NotificationGateway
from temporal_checkin.storage.task_storage import TaskStorage
from temporal_checkin.tasks.service import TaskService


class FakeClock:
    """Manually advanced local clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingGateway(NotificationGateway):
    """Notification gateway that records requests and fails on demand."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.calls: list[dict] = []
        self.fail_on = fail_on or set()

    def create(self, **kwargs) -> str:
        index = len(self.calls)
        self.calls.append(kwargs)
        if index in self.fail_on:
            raise NotificationEnqueueError(f"gateway rejected request {index}")
        return f"notif-{index}"


# =============================================================================
# Storage / service fixtures
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "tasks.db"


@pytest.fixture
def storage(db_path) -> TaskStorage:
    return TaskStorage(db_path)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def clock() -> FakeClock:
    # Thursday 10:00 local time
    return FakeClock(datetime(2025, 3, 6, 10, 0))


@pytest.fixture
def service(storage, gateway, clock) -> TaskService:
    return TaskService(storage=storage, gateway=gateway, clock=clock, rng=random.Random(7))


@pytest.fixture
def make_task(service):
    """Create a task through the service with sensible defaults."""

    def _make(**overrides):
        data = {
            "user_id": "user-1",
            "title": "Should I expand the practice?",
            "check_in_times": ["morning", "evening"],
            "duration_days": 3,
        }
        data.update(overrides)
        return service.create_task(data)

    return _make


@pytest.fixture
def check_in_payload():
    """Build a minimal valid check-in body."""

    def _payload(**overrides) -> dict:
        data = {
            "time_of_day": "evening",
            "question_asked": "Q",
            "question_type": "reflective",
            "response": "R",
        }
        data.update(overrides)
        return data

    return _payload
