"""Check-in prompt schedule for multi-day tasks.

For each day of the task and each requested time-of-day bucket a prompt is
anchored at a fixed local wall-clock time. Anchors already in the past are
skipped, so a task created mid-morning starts with its next open bucket.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Iterator
from datetime import datetime, time, timedelta, timezone

from temporal_checkin.errors import NotificationEnqueueError
from temporal_checkin.logging import format_log_context
from temporal_checkin.models import PromptRequest, TimeOfDay
from temporal_checkin.storage.notification_storage import NotificationGateway

logger = logging.getLogger(__name__)

TIME_WINDOWS: dict[TimeOfDay, time] = {
    TimeOfDay.MORNING: time(9, 0),
    TimeOfDay.AFTERNOON: time(14, 0),
    TimeOfDay.EVENING: time(19, 0),
    TimeOfDay.LATE_NIGHT: time(22, 0),
}

QUESTION_TEMPLATES: dict[TimeOfDay, tuple[str, ...]] = {
    TimeOfDay.MORNING: (
        'Good morning! Let\'s check in on "{title}". How are you thinking about this today?',
        'Morning check-in for "{title}". What\'s on your mind about this right now?',
        'Starting day {day}/{total_days}. Any new thoughts on "{title}"?',
    ),
    TimeOfDay.AFTERNOON: (
        'Afternoon check-in for "{title}". How\'s your perspective on this now?',
        'Midday reflection: What are you noticing about "{title}"?',
    ),
    TimeOfDay.EVENING: (
        'Evening reflection on "{title}". How do you feel about this tonight?',
        'End-of-day check-in: What stood out to you about "{title}" today?',
    ),
    TimeOfDay.LATE_NIGHT: (
        'Late-night thoughts on "{title}"? What\'s coming up for you?',
        'Quiet moment to reflect on "{title}". What\'s emerging?',
    ),
}

DEFAULT_PRIORITY = 0.7
DEFAULT_TTL_HOURS = 24


def generate_check_in_question(
    title: str,
    time_of_day: TimeOfDay | str,
    day: int,
    total_days: int,
    rng: random.Random | None = None,
) -> str:
    """Pick a time-of-day question template and fill it in."""
    rng = rng or random.Random()
    template = rng.choice(QUESTION_TEMPLATES[TimeOfDay(time_of_day)])
    return template.format(title=title, day=day, total_days=total_days)


def build_check_in_context(title: str, time_of_day: TimeOfDay | str, day: int, total_days: int) -> str:
    return f'Day {day} of {total_days}: {TimeOfDay(time_of_day).value} check-in for "{title}"'


def prompt_expiry(scheduled_for: datetime, ttl_hours: int) -> datetime:
    """
    `ttl_hours` real hours after the anchor, even across a DST change.

    Naive anchors are host local time and the result stays naive.
    """
    elapsed = scheduled_for.astimezone(timezone.utc) + timedelta(hours=ttl_hours)
    if scheduled_for.tzinfo is None:
        return elapsed.astimezone().replace(tzinfo=None)
    return elapsed.astimezone(scheduled_for.tzinfo)


def generate_check_in_prompts(
    user_id: str,
    task_id: str,
    title: str,
    check_in_times: Iterable[TimeOfDay | str],
    duration_days: int,
    now: datetime,
    rng: random.Random | None = None,
    priority: float = DEFAULT_PRIORITY,
    ttl_hours: int = DEFAULT_TTL_HOURS,
) -> list[PromptRequest]:
    """
    Compute the prompt requests for a task.

    Args:
        user_id: Owner of the task
        task_id: Task the prompts belong to
        title: Task title, used in question and context text
        check_in_times: Buckets to check in at, in the caller's order
        duration_days: Number of days to schedule (day offsets 0..duration_days-1)
        now: Current local time; anchors strictly before it are skipped
        rng: Random source for template selection (seed it for repeatable output)
        priority: Priority for every prompt
        ttl_hours: Prompt lifetime after its anchor

    Returns:
        Prompt requests ordered by day, then by the order of `check_in_times`
    """
    rng = rng or random.Random()
    buckets = [TimeOfDay(b) for b in check_in_times]
    prompts: list[PromptRequest] = []

    for day_offset in range(duration_days):
        day_number = day_offset + 1
        day = now.date() + timedelta(days=day_offset)

        for bucket in buckets:
            scheduled_for = datetime.combine(day, TIME_WINDOWS[bucket], tzinfo=now.tzinfo)

            if scheduled_for < now:
                logger.debug(
                    format_log_context(
                        "skip_past_slot",
                        component="schedule",
                        task=task_id,
                        day=day_number,
                        time_of_day=bucket.value,
                    )
                )
                continue

            prompts.append(
                PromptRequest(
                    user_id=user_id,
                    task_id=task_id,
                    day_number=day_number,
                    time_of_day=bucket.value,
                    scheduled_for=scheduled_for.isoformat(),
                    question=generate_check_in_question(
                        title, bucket, day_number, duration_days, rng
                    ),
                    context=build_check_in_context(title, bucket, day_number, duration_days),
                    preferred_cognitive_state="any",
                    priority=priority,
                    expires_at=prompt_expiry(scheduled_for, ttl_hours).isoformat(),
                )
            )

    return prompts


def enqueue_prompts(
    prompts: Iterable[PromptRequest],
    gateway: NotificationGateway,
) -> Iterator[tuple[PromptRequest, str | None, str | None]]:
    """
    Submit prompts one at a time.

    A failure on one prompt is logged and reported, never raised, so the rest
    still get submitted.

    Yields:
        (prompt, notification_id, error) with exactly one of the last two set
    """
    for prompt in prompts:
        ctx = format_log_context(
            "enqueue_prompt",
            component="schedule",
            user=prompt.user_id,
            task=prompt.task_id,
            day=prompt.day_number,
            time_of_day=prompt.time_of_day,
        )
        try:
            notification_id = gateway.create(
                user_id=prompt.user_id,
                question=prompt.question,
                context=prompt.context,
                preferred_time_of_day=prompt.time_of_day,
                preferred_cognitive_state=prompt.preferred_cognitive_state,
                priority=prompt.priority,
                expires_at=prompt.expires_at,
                research_task_id=prompt.task_id,
            )
        except NotificationEnqueueError as e:
            logger.error(f'{ctx} failed error="{e}"')
            yield prompt, None, str(e)
            continue
        except Exception as e:
            # Gateways are external; anything they raise stays per-prompt.
            logger.exception(f'{ctx} failed error="{e}"')
            yield prompt, None, f"{type(e).__name__}: {e}"
            continue

        logger.debug(f"{ctx} notification={notification_id} scheduled_for={prompt.scheduled_for}")
        yield prompt, notification_id, None


__all__ = [
    "TIME_WINDOWS",
    "QUESTION_TEMPLATES",
    "generate_check_in_question",
    "build_check_in_context",
    "prompt_expiry",
    "generate_check_in_prompts",
    "enqueue_prompts",
]
