"""Tests for temporal analysis and synthesis rendering."""

from temporal_checkin.models import CheckInRecord, MultiDayTask
from temporal_checkin.tasks.synthesis import (
    NOT_ENOUGH_DATA,
    analyze_consistency,
    build_synthesis,
    determine_optimal_time,
    generate_temporal_analysis,
    get_duration_days,
)


def _check_in(number=1, time_of_day="morning", completed_at="2025-03-06T09:05:00+00:00", **kwargs):
    kwargs.setdefault("question_asked", f"Question {number}")
    kwargs.setdefault("question_type", "analytical")
    kwargs.setdefault("response", f"Response {number}")
    return CheckInRecord(
        check_in_number=number,
        time_of_day=time_of_day,
        completed_at=completed_at,
        **kwargs,
    )


def _task(**kwargs):
    defaults = dict(
        id="task-1",
        user_id="user-1",
        title="Career change",
        status="active",
        check_in_times=["morning", "evening"],
        duration_days=5,
        created_at="2025-03-06T08:00:00+00:00",
        updated_at="2025-03-06T08:00:00+00:00",
    )
    defaults.update(kwargs)
    return MultiDayTask(**defaults)


class TestTemporalAnalysis:

    def test_empty_history(self):
        analysis = generate_temporal_analysis([])

        assert analysis.morning_insights == []
        assert analysis.afternoon_insights == []
        assert analysis.evening_insights == []
        assert analysis.late_night_insights == []
        assert analysis.state_consistency == NOT_ENOUGH_DATA
        assert analysis.optimal_time_of_day == "morning"
        assert analysis.optimal_average_score == 0
        assert "avg score: 0.0/10" in analysis.optimal_decision_time

    def test_insights_grouped_in_sequence_order(self):
        check_ins = [
            _check_in(1, "morning", insights=["a", "b"]),
            _check_in(2, "evening", insights=["c"]),
            _check_in(3, "morning", insights=["d"]),
            _check_in(4, "late_night", insights=[]),
        ]

        analysis = generate_temporal_analysis(check_ins)

        assert analysis.morning_insights == ["a", "b", "d"]
        assert analysis.evening_insights == ["c"]
        assert analysis.afternoon_insights == []
        assert analysis.late_night_insights == []

    def test_optimal_time_prefers_higher_energy_and_focus(self):
        check_ins = [
            _check_in(1, "morning", self_reported_energy=5, self_reported_focus=5),
            _check_in(2, "evening", self_reported_energy=2, self_reported_focus=2),
        ]

        analysis = generate_temporal_analysis(check_ins)

        assert analysis.optimal_time_of_day == "morning"
        assert analysis.optimal_average_score == 10
        assert "morning appears to be your optimal time" in analysis.optimal_decision_time
        assert "(avg score: 10.0/10)" in analysis.optimal_decision_time

    def test_missing_scores_default_to_three(self):
        check_ins = [
            _check_in(1, "morning", self_reported_energy=2, self_reported_focus=3),
            _check_in(2, "afternoon"),
        ]

        assert determine_optimal_time(check_ins) == ("afternoon", 6.0)

    def test_tie_keeps_earlier_bucket(self):
        check_ins = [
            _check_in(1, "late_night", self_reported_energy=4, self_reported_focus=4),
            _check_in(2, "afternoon", self_reported_energy=4, self_reported_focus=4),
        ]

        assert determine_optimal_time(check_ins) == ("afternoon", 8.0)

    def test_bucket_average_over_multiple_check_ins(self):
        check_ins = [
            _check_in(1, "evening", self_reported_energy=5, self_reported_focus=5),
            _check_in(2, "evening", self_reported_energy=1, self_reported_focus=1),
            _check_in(3, "morning", self_reported_energy=4, self_reported_focus=3),
        ]

        assert determine_optimal_time(check_ins) == ("morning", 7.0)


class TestConsistency:

    def test_needs_both_high_and_low_energy(self):
        high_only = [_check_in(1, self_reported_energy=5), _check_in(2, self_reported_energy=4)]
        assert analyze_consistency(high_only) == NOT_ENOUGH_DATA

    def test_reports_counts(self):
        check_ins = [
            _check_in(1, self_reported_energy=5),
            _check_in(2, self_reported_energy=4),
            _check_in(3, self_reported_energy=1),
            _check_in(4, self_reported_energy=3),
        ]

        assert analyze_consistency(check_ins) == (
            "Collected 2 high-energy responses and 1 low-energy responses. "
            "Compare for consistency."
        )

    def test_missing_energy_counts_as_low(self):
        check_ins = [_check_in(1, self_reported_energy=5), _check_in(2)]
        assert "1 low-energy" in analyze_consistency(check_ins)


class TestDurationDays:

    def test_single_check_in_spans_one_day(self):
        assert get_duration_days([_check_in(1)]) == 1

    def test_partial_day_rounds_up(self):
        check_ins = [
            _check_in(1, completed_at="2025-03-06T09:00:00+00:00"),
            _check_in(2, completed_at="2025-03-07T19:00:00+00:00"),
        ]
        assert get_duration_days(check_ins) == 3

    def test_exact_day_boundary(self):
        check_ins = [
            _check_in(1, completed_at="2025-03-06T09:00:00+00:00"),
            _check_in(2, completed_at="2025-03-08T09:00:00+00:00"),
        ]
        assert get_duration_days(check_ins) == 3

    def test_no_timestamps(self):
        assert get_duration_days([]) == 0
        assert get_duration_days([_check_in(1, completed_at="")]) == 0


class TestBuildSynthesis:

    def test_single_check_in_document(self):
        check_ins = [_check_in(1, "evening", insights=["Feels lighter at night"])]
        analysis = generate_temporal_analysis(check_ins)

        document = build_synthesis(_task(), check_ins, analysis)

        assert document.startswith("# Career change")
        assert "Explored over 1 check-ins across 1 days." in document
        assert "### Evening Perspective (Reflective/Emotional)" in document
        assert "- Feels lighter at night" in document
        assert "### Morning Perspective" not in document
        assert f"**Consistency**: {NOT_ENOUGH_DATA}" in document
        assert "**Optimal Decision Time**: Based on your energy" in document
        assert "### Check-In 1 (evening)" in document

    def test_bucket_with_check_ins_but_no_insights_still_listed(self):
        check_ins = [_check_in(1, "afternoon")]

        document = build_synthesis(_task(), check_ins, generate_temporal_analysis(check_ins))

        assert "### Afternoon Perspective (Experiential/Action-Oriented)" in document
        assert "_No insights recorded._" in document

    def test_long_response_truncated(self):
        check_ins = [_check_in(1, response="x" * 500)]

        document = build_synthesis(_task(), check_ins, generate_temporal_analysis(check_ins))

        assert f"**Response**: {'x' * 200}..." in document
        assert "x" * 201 not in document

    def test_scores_listed_when_present(self):
        check_ins = [
            _check_in(1, self_reported_energy=4, self_reported_focus=2),
            _check_in(2, self_reported_mood=5),
        ]

        document = build_synthesis(_task(), check_ins, generate_temporal_analysis(check_ins))

        assert "Energy: 4/5, Focus: 2/5" in document
        assert "Mood: 5/5" in document
        assert "Energy: 4/5, Mood" not in document
