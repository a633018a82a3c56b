"""
Unit tests for exambuilder.evaluator.results, exambuilder.utils.helpers and the PDF utilities.
"""

import pytest

from conftest import EXAM_ID, make_exam, make_questions
from exambuilder.evaluator.results import build_review_rows, summarize_attempt
from exambuilder.models.attempt import AIFeedback, AttemptRecord, EvaluationStatus
from exambuilder.models.exam import FillInBlankAnswer, MultipleChoiceAnswer, OpenEndedAnswer
from exambuilder.utils.helpers import format_clock, format_duration, grade_label, percentage
from exambuilder.utils.pdf_generator import create_attempt_report_pdf
from exambuilder.utils.pdf_parser import extract_text_from_pdf, truncate_text


def record(**overrides):
    fields = {
        "id": "a1",
        "exam_id": EXAM_ID,
        "answers": {
            "q1": MultipleChoiceAnswer(2),
            "q2": FillInBlankAnswer("Lyon"),
            "q3": OpenEndedAnswer("Plants make glucose."),
        },
        "total_marks": 4,
        "max_marks": 8,
        "ai_feedback": (AIFeedback("q3", EvaluationStatus.PARTIALLY_CORRECT, "Mention oxygen.", 3),),
        "time_taken": 125,
        "submitted_at": "2024-05-01T10:00:00+00:00",
    }
    fields.update(overrides)
    return AttemptRecord(**fields)


class TestHelpers:
    """Tests for formatting helpers."""

    @pytest.mark.parametrize("seconds,expected", [(3723, "1h 2m 3s"), (123, "2m 3s"), (3, "3s"), (0, "0s")])
    def test_format_duration_when_seconds_then_compact_text(self, seconds, expected):
        """Durations drop leading zero units."""
        assert format_duration(seconds) == expected

    def test_format_clock_when_under_hour_then_mm_ss(self):
        """Countdown display."""
        assert format_clock(65) == "01:05"
        assert format_clock(3605) == "1:00:05"
        assert format_clock(None) == ""

    @pytest.mark.parametrize(
        "percent,label",
        [(95, "Excellent"), (80, "Good"), (70, "Satisfactory"), (60, "Pass"), (59, "Needs Improvement")],
    )
    def test_grade_label_when_percent_then_band(self, percent, label):
        """Grade bands follow the percentage."""
        assert grade_label(percent) == label

    def test_percentage_when_max_zero_then_zero(self):
        """No division by zero."""
        assert percentage(3, 0) == 0
        assert percentage(3, 8) == 38


class TestResults:
    """Tests for summarize_attempt() and build_review_rows()."""

    def test_summary_when_record_then_counts_and_grade(self):
        """The summary reflects the stored record."""
        # Act
        summary = summarize_attempt(record())

        # Assert
        assert summary.percentage == 50
        assert summary.grade == "Needs Improvement"
        assert summary.partially_correct_count == 1
        assert summary.correct_count == 0
        assert summary.time_taken == "2m 5s"

    def test_review_rows_when_record_then_one_row_per_question(self):
        """Deterministic rows are recomputed, open rows use AI feedback."""
        # Act
        rows = build_review_rows(make_questions(), record())

        # Assert
        assert [r.status for r in rows] == [
            EvaluationStatus.CORRECT,
            EvaluationStatus.INCORRECT,
            EvaluationStatus.PARTIALLY_CORRECT,
        ]
        assert rows[0].student_answer == "C"
        assert rows[1].correct_answer == "Paris"
        assert rows[2].marks_awarded == 3
        assert rows[2].to_dict()["Marks"] == "3/5"

    def test_review_rows_when_unanswered_then_no_answer(self):
        """Missing answers are labelled."""
        rows = build_review_rows(make_questions(), record(answers={}, ai_feedback=()))
        assert all(r.student_answer == "No answer" for r in rows)
        assert all(r.status is None for r in rows)


class TestPdf:
    """Tests for the PDF report and parser."""

    def test_report_when_built_then_pdf_bytes(self):
        """The report renders to a PDF document."""
        # Arrange
        questions = make_questions()
        rec = record()

        # Act
        data = create_attempt_report_pdf(make_exam(), rec, build_review_rows(questions, rec))

        # Assert
        assert isinstance(data, bytes)
        assert data.startswith(b"%PDF")

    def test_extract_when_empty_bytes_then_empty_text(self):
        """Nothing to parse yields no text."""
        assert extract_text_from_pdf(b"") == ""

    def test_truncate_when_over_budget_then_cut_at_word(self):
        """Truncation prefers word boundaries."""
        text = "alpha beta gamma delta epsilon"
        cut = truncate_text(text, 14)
        assert cut == "alpha beta ..."
        assert truncate_text(text, 0) == text
