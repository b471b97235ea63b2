"""Tests for check-in prompt schedule generation and fan-out."""

import random
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from temporal_checkin.storage.notification_storage import NotificationStorage
from temporal_checkin.tasks.schedule import (
    QUESTION_TEMPLATES,
    build_check_in_context,
    enqueue_prompts,
    generate_check_in_prompts,
    generate_check_in_question,
    prompt_expiry,
)
from temporal_checkin.models import TimeOfDay


def _prompts(now, check_in_times, duration_days, seed=1):
    return generate_check_in_prompts(
        user_id="user-1",
        task_id="task-1",
        title="Career change",
        check_in_times=check_in_times,
        duration_days=duration_days,
        now=now,
        rng=random.Random(seed),
    )


class TestGenerateCheckInPrompts:
    """Slot computation from task parameters and the current time."""

    def test_past_morning_slot_is_skipped(self):
        prompts = _prompts(datetime(2025, 3, 6, 10, 0), ["morning"], 2)

        assert len(prompts) == 1
        assert prompts[0].day_number == 2
        assert prompts[0].scheduled_for == datetime(2025, 3, 7, 9, 0).isoformat()

    def test_all_slots_elapsed_yields_nothing(self):
        prompts = _prompts(datetime(2025, 3, 6, 23, 0), ["morning"], 1)
        assert prompts == []

    def test_slots_ordered_by_day_then_bucket(self):
        prompts = _prompts(datetime(2025, 3, 6, 8, 0), ["morning", "evening"], 3)

        assert [(p.day_number, p.time_of_day) for p in prompts] == [
            (1, "morning"),
            (1, "evening"),
            (2, "morning"),
            (2, "evening"),
            (3, "morning"),
            (3, "evening"),
        ]

    def test_anchor_hours(self):
        prompts = _prompts(
            datetime(2025, 3, 6, 0, 0), ["morning", "afternoon", "evening", "late_night"], 1
        )

        hours = {p.time_of_day: datetime.fromisoformat(p.scheduled_for).hour for p in prompts}
        assert hours == {"morning": 9, "afternoon": 14, "evening": 19, "late_night": 22}

    def test_slot_exactly_at_now_is_kept(self):
        prompts = _prompts(datetime(2025, 3, 6, 19, 0), ["evening"], 1)
        assert len(prompts) == 1

    def test_request_fields(self):
        prompt = _prompts(datetime(2025, 3, 6, 12, 0), ["evening"], 4)[0]

        assert prompt.user_id == "user-1"
        assert prompt.task_id == "task-1"
        assert prompt.preferred_cognitive_state == "any"
        assert prompt.priority == pytest.approx(0.7)
        assert prompt.context == 'Day 1 of 4: evening check-in for "Career change"'
        scheduled = datetime.fromisoformat(prompt.scheduled_for)
        assert datetime.fromisoformat(prompt.expires_at) - scheduled == timedelta(hours=24)

    def test_timezone_aware_now_keeps_offset(self):
        central = timezone(timedelta(hours=-6))
        prompts = _prompts(datetime(2025, 3, 6, 8, 30, tzinfo=central), ["morning"], 1)

        assert prompts[0].scheduled_for == "2025-03-06T09:00:00-06:00"

    def test_expiry_is_elapsed_hours_across_dst_start(self):
        chicago = ZoneInfo("America/Chicago")
        # Clocks spring forward at 02:00 on 2025-03-09.
        prompt = _prompts(datetime(2025, 3, 8, 18, 0, tzinfo=chicago), ["evening"], 1)[0]

        scheduled = datetime.fromisoformat(prompt.scheduled_for)
        expires = datetime.fromisoformat(prompt.expires_at)
        assert prompt.scheduled_for == "2025-03-08T19:00:00-06:00"
        assert prompt.expires_at == "2025-03-09T20:00:00-05:00"
        assert expires - scheduled == timedelta(hours=24)

    def test_expiry_across_dst_end(self):
        chicago = ZoneInfo("America/Chicago")
        expires = prompt_expiry(datetime(2025, 11, 1, 19, 0, tzinfo=chicago), 24)

        assert expires.isoformat() == "2025-11-02T18:00:00-06:00"

    def test_seeded_rng_is_repeatable(self):
        now = datetime(2025, 3, 6, 6, 0)
        first = [p.question for p in _prompts(now, ["morning", "late_night"], 5, seed=42)]
        second = [p.question for p in _prompts(now, ["morning", "late_night"], 5, seed=42)]
        assert first == second


class TestQuestionText:
    """Template selection and context wording."""

    def test_question_uses_bucket_template(self):
        rng = random.Random(3)
        question = generate_check_in_question("Move abroad", "afternoon", 2, 5, rng)

        rendered = [
            t.format(title="Move abroad", day=2, total_days=5)
            for t in QUESTION_TEMPLATES[TimeOfDay.AFTERNOON]
        ]
        assert question in rendered

    def test_day_counter_template(self):
        template = QUESTION_TEMPLATES[TimeOfDay.MORNING][2]
        assert template.format(title="X", day=3, total_days=7) == (
            'Starting day 3/7. Any new thoughts on "X"?'
        )

    def test_context_text(self):
        assert build_check_in_context("X", TimeOfDay.LATE_NIGHT, 1, 2) == (
            'Day 1 of 2: late_night check-in for "X"'
        )


class TestEnqueuePrompts:
    """Per-prompt failure isolation."""

    def test_failure_does_not_stop_remaining_prompts(self, gateway):
        gateway.fail_on = {1}
        prompts = _prompts(datetime(2025, 3, 6, 8, 0), ["morning", "evening"], 2)

        results = list(enqueue_prompts(prompts, gateway))

        assert len(gateway.calls) == 4
        assert [r[1] for r in results] == ["notif-0", None, "notif-2", "notif-3"]
        assert results[1][2] == "gateway rejected request 1"

    def test_unexpected_gateway_exception_is_isolated(self):
        class BrokenGateway:
            def __init__(self):
                self.count = 0

            def create(self, **kwargs):
                self.count += 1
                raise RuntimeError("connection reset")

        prompts = _prompts(datetime(2025, 3, 6, 8, 0), ["morning"], 3)
        gateway = BrokenGateway()

        results = list(enqueue_prompts(prompts, gateway))

        assert gateway.count == 3
        assert all(r[1] is None and "connection reset" in r[2] for r in results)

    def test_gateway_receives_prompt_fields(self, gateway):
        prompt = _prompts(datetime(2025, 3, 6, 8, 0), ["morning"], 1)[0]

        list(enqueue_prompts([prompt], gateway))

        call = gateway.calls[0]
        assert call["research_task_id"] == "task-1"
        assert call["preferred_time_of_day"] == "morning"
        assert call["preferred_cognitive_state"] == "any"
        assert call["expires_at"] == prompt.expires_at


class TestNotificationStorage:
    """SQLite notification gateway."""

    def test_create_and_list_pending(self, tmp_path):
        notifications = NotificationStorage(tmp_path / "notifications.db")
        prompt = _prompts(datetime(2025, 3, 6, 8, 0), ["morning"], 1)[0]

        [(_, notification_id, error)] = list(enqueue_prompts([prompt], notifications))

        assert error is None
        stored = notifications.get_by_id(notification_id)
        assert stored.is_pending
        assert stored.research_task_id == "task-1"
        assert stored.priority == pytest.approx(0.7)
        assert [n.id for n in notifications.list_pending("user-1")] == [notification_id]
        assert notifications.list_pending("someone-else") == []
