"""Temporal analysis and final synthesis for multi-day tasks.

Groups a task's check-ins by time of day and renders the markdown document
stored on the task when it completes.

The consistency finding is a count-only heuristic: it reports how many
high-energy and low-energy responses exist and leaves the comparison to the
reader. No semantic comparison of response text happens here.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone

from temporal_checkin.models import (
    CheckInRecord,
    MultiDayTask,
    TemporalAnalysis,
    TIME_OF_DAY_ORDER,
    TimeOfDay,
)

NOT_ENOUGH_DATA = "Not enough data to assess consistency across energy levels"

HIGH_ENERGY_THRESHOLD = 4
LOW_ENERGY_THRESHOLD = 2
DEFAULT_SCORE = 3
RESPONSE_PREVIEW_CHARS = 200

SECTION_TITLES: dict[TimeOfDay, str] = {
    TimeOfDay.MORNING: "Morning Perspective (Analytical/Optimistic)",
    TimeOfDay.AFTERNOON: "Afternoon Perspective (Experiential/Action-Oriented)",
    TimeOfDay.EVENING: "Evening Perspective (Reflective/Emotional)",
    TimeOfDay.LATE_NIGHT: "Late Night Perspective (Philosophical/Dreamy)",
}


def generate_temporal_analysis(check_ins: Sequence[CheckInRecord]) -> TemporalAnalysis:
    """Aggregate check-ins into per-bucket insights and the two heuristics."""
    insights: dict[TimeOfDay, list[str]] = {bucket: [] for bucket in TIME_OF_DAY_ORDER}
    for check_in in check_ins:
        insights[TimeOfDay(check_in.time_of_day)].extend(check_in.insights)

    best_time, best_average = determine_optimal_time(check_ins)

    return TemporalAnalysis(
        morning_insights=insights[TimeOfDay.MORNING],
        afternoon_insights=insights[TimeOfDay.AFTERNOON],
        evening_insights=insights[TimeOfDay.EVENING],
        late_night_insights=insights[TimeOfDay.LATE_NIGHT],
        state_consistency=analyze_consistency(check_ins),
        optimal_decision_time=(
            f"Based on your energy and focus patterns, {best_time} appears to be your "
            f"optimal time for this type of thinking (avg score: {best_average:.1f}/10)"
        ),
        optimal_time_of_day=best_time,
        optimal_average_score=best_average,
    )


def analyze_consistency(check_ins: Sequence[CheckInRecord]) -> str:
    # A missing energy score counts as 0, i.e. low energy.
    high = [c for c in check_ins if (c.self_reported_energy or 0) >= HIGH_ENERGY_THRESHOLD]
    low = [c for c in check_ins if (c.self_reported_energy or 0) <= LOW_ENERGY_THRESHOLD]

    if not high or not low:
        return NOT_ENOUGH_DATA

    return (
        f"Collected {len(high)} high-energy responses and {len(low)} low-energy responses. "
        "Compare for consistency."
    )


def determine_optimal_time(check_ins: Sequence[CheckInRecord]) -> tuple[str, float]:
    """
    Find the bucket with the highest average energy + focus.

    Missing scores count as 3. Ties keep the earlier bucket in
    morning/afternoon/evening/late_night order. With no check-ins the
    answer is morning with an average of 0.
    """
    totals: dict[TimeOfDay, list[int]] = {}
    for check_in in check_ins:
        energy = check_in.self_reported_energy if check_in.self_reported_energy is not None else DEFAULT_SCORE
        focus = check_in.self_reported_focus if check_in.self_reported_focus is not None else DEFAULT_SCORE
        totals.setdefault(TimeOfDay(check_in.time_of_day), []).append(energy + focus)

    best_time = TimeOfDay.MORNING
    best_average = 0.0
    for bucket in TIME_OF_DAY_ORDER:
        scores = totals.get(bucket)
        if not scores:
            continue
        average = sum(scores) / len(scores)
        if average > best_average:
            best_time = bucket
            best_average = average

    return best_time.value, best_average


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_duration_days(check_ins: Sequence[CheckInRecord]) -> int:
    """Elapsed day span covered by check-ins (0 if none carry a timestamp)."""
    dates = [_parse_timestamp(c.completed_at) for c in check_ins if c.completed_at]
    if not dates:
        return 0

    elapsed = (max(dates) - min(dates)).total_seconds()
    return math.ceil(elapsed / 86400) + 1


def _preview(text: str) -> str:
    if len(text) <= RESPONSE_PREVIEW_CHARS:
        return text
    return f"{text[:RESPONSE_PREVIEW_CHARS]}..."


def build_synthesis(
    task: MultiDayTask,
    check_ins: Sequence[CheckInRecord],
    analysis: TemporalAnalysis,
) -> str:
    """Render the final synthesis document as markdown."""
    lines: list[str] = [f"# {task.title}", "", "## Summary", ""]
    lines.append(
        f"Explored over {len(check_ins)} check-ins across {get_duration_days(check_ins)} days."
    )
    lines += ["", "## Temporal Insights", ""]

    present = {TimeOfDay(c.time_of_day) for c in check_ins}
    for bucket in TIME_OF_DAY_ORDER:
        if bucket not in present:
            continue
        bucket_insights = analysis.insights_for(bucket)
        lines.append(f"### {SECTION_TITLES[bucket]}")
        if bucket_insights:
            lines.extend(f"- {insight}" for insight in bucket_insights)
        else:
            lines.append("_No insights recorded._")
        lines.append("")

    lines += [
        "## Analysis",
        "",
        f"**Consistency**: {analysis.state_consistency}",
        "",
        f"**Optimal Decision Time**: {analysis.optimal_decision_time}",
        "",
        "## Check-In Details",
        "",
    ]

    for index, check_in in enumerate(check_ins, start=1):
        lines.append(f"### Check-In {index} ({check_in.time_of_day})")
        lines.append(f"**Question**: {check_in.question_asked}")
        lines.append("")
        lines.append(f"**Response**: {_preview(check_in.response or '')}")
        lines.append("")

        scores = []
        if check_in.self_reported_energy is not None:
            scores.append(f"Energy: {check_in.self_reported_energy}/5")
        if check_in.self_reported_mood is not None:
            scores.append(f"Mood: {check_in.self_reported_mood}/5")
        if check_in.self_reported_focus is not None:
            scores.append(f"Focus: {check_in.self_reported_focus}/5")
        if scores:
            lines.append(", ".join(scores))
            lines.append("")

    return "\n".join(lines)
