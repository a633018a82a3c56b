"""
Unit tests for exambuilder.models.

Question validation, ordering helpers and the tagged answer union.
"""

from dataclasses import replace

import pytest

from conftest import make_questions
from exambuilder.models.attempt import AIFeedback, AttemptDraft, AttemptRecord, EvaluationStatus, InProgressAttempt
from exambuilder.models.exam import (
    ExamSettings,
    FillInBlankAnswer,
    MultipleChoiceAnswer,
    OpenEndedAnswer,
    Question,
    QuestionType,
    answer_for_question,
    answer_from_dict,
    answer_to_dict,
    is_blank_answer,
    move_question,
    remove_question,
)


class TestQuestionValidate:
    """Tests for Question.validate()."""

    def test_validate_when_sample_questions_then_ok(self):
        """The fixture questions are well-formed."""
        for question in make_questions():
            question.validate()

    def test_validate_when_mcq_has_one_option_then_error(self):
        """Multiple choice needs at least two options."""
        mcq = replace(make_questions()[0], options=("Only",), correct_answer=0)
        with pytest.raises(ValueError):
            mcq.validate()

    def test_validate_when_mcq_key_out_of_range_then_error(self):
        """The keyed option must exist."""
        with pytest.raises(ValueError):
            replace(make_questions()[0], correct_answer=4).validate()

    def test_validate_when_fib_has_no_blank_then_error(self):
        """Fill-in-blank text must contain a blank marker."""
        with pytest.raises(ValueError):
            replace(make_questions()[1], question_text="No blank here").validate()

    def test_validate_when_marks_out_of_range_then_error(self):
        """Marks must be between 1 and 100."""
        with pytest.raises(ValueError):
            replace(make_questions()[0], marks=0).validate()
        with pytest.raises(ValueError):
            replace(make_questions()[0], marks=101).validate()

    def test_validate_when_open_without_reference_then_error(self):
        """Open-ended questions need a model answer."""
        with pytest.raises(ValueError):
            replace(make_questions()[2], model_answer=None).validate()

    def test_from_dict_when_wire_row_then_types_coerced(self):
        """Database rows map onto the dataclass."""
        # Arrange
        row = {
            "id": "x",
            "exam_id": "e",
            "order_index": 3,
            "type": "mcq",
            "question_text": "Pick",
            "marks": 2,
            "options": ["a", "b"],
            "correct_answer": 1,
        }

        # Act
        question = Question.from_dict(row)

        # Assert
        assert question.type is QuestionType.MULTIPLE_CHOICE
        assert question.options == ("a", "b")
        assert question.to_dict()["options"] == ["a", "b"]


class TestOrdering:
    """Tests for move_question() and remove_question()."""

    def test_move_when_last_to_first_then_indices_contiguous(self):
        """Reordering renumbers every question."""
        moved = move_question(make_questions(), 2, 0)
        assert [q.id for q in moved] == ["q3", "q1", "q2"]
        assert [q.order_index for q in moved] == [0, 1, 2]

    def test_remove_when_middle_removed_then_no_gap(self):
        """Removal closes the gap."""
        remaining = remove_question(make_questions(), "q2")
        assert [(q.id, q.order_index) for q in remaining] == [("q1", 0), ("q3", 1)]

    def test_move_when_index_invalid_then_index_error(self):
        """Out-of-range moves are rejected."""
        with pytest.raises(IndexError):
            move_question(make_questions(), 0, 5)


class TestAnswers:
    """Tests for the answer union helpers."""

    def test_answer_for_question_when_mcq_index_then_variant(self):
        """Option indexes become MultipleChoiceAnswer."""
        assert answer_for_question(make_questions()[0], 0) == MultipleChoiceAnswer(0)

    def test_answer_for_question_when_index_out_of_range_then_error(self):
        """Indexes beyond the option list are refused."""
        with pytest.raises(ValueError):
            answer_for_question(make_questions()[0], 4)

    def test_answer_for_question_when_bool_given_then_error(self):
        """Booleans are not option indexes."""
        with pytest.raises(ValueError):
            answer_for_question(make_questions()[0], True)

    def test_answer_for_question_when_blank_list_then_tuple(self):
        """Per-blank lists are stored as tuples."""
        assert answer_for_question(make_questions()[1], ["a", "b"]) == FillInBlankAnswer(("a", "b"))

    def test_answer_for_question_when_variant_mismatch_then_error(self):
        """A variant for another question type is refused."""
        with pytest.raises(ValueError):
            answer_for_question(make_questions()[2], MultipleChoiceAnswer(1))

    @pytest.mark.parametrize(
        "answer,blank",
        [
            (None, True),
            (MultipleChoiceAnswer(0), False),
            (FillInBlankAnswer("  "), True),
            (FillInBlankAnswer(("", " ")), True),
            (FillInBlankAnswer(("", "x")), False),
            (OpenEndedAnswer("\n"), True),
            (OpenEndedAnswer("text"), False),
        ],
    )
    def test_is_blank_when_variant_given_then_expected(self, answer, blank):
        """Only whitespace-free content counts as an answer."""
        assert is_blank_answer(answer) is blank

    def test_answer_dict_when_tagged_then_type_preserved(self):
        """The wire form carries a type tag."""
        payload = answer_to_dict(FillInBlankAnswer(("a", "b")))
        assert payload == {"type": "fib", "answer": ["a", "b"]}
        assert answer_from_dict(payload) == FillInBlankAnswer(("a", "b"))

    def test_answer_from_dict_when_mcq_not_int_then_error(self):
        """A string index is malformed."""
        with pytest.raises(ValueError):
            answer_from_dict({"type": "mcq", "answer": "1"})


class TestAttemptModels:
    """Tests for attempt dataclasses."""

    def test_in_progress_from_dict_when_missing_start_time_then_error(self):
        """Saved attempts need a numeric start time."""
        with pytest.raises(ValueError):
            InProgressAttempt.from_dict({"exam_id": "e", "answers": {}})

    def test_record_from_dict_when_wire_row_then_feedback_parsed(self):
        """AI feedback uses the camelCase wire keys."""
        # Arrange
        draft = AttemptDraft(
            exam_id="e",
            answers={"q3": OpenEndedAnswer("x")},
            total_marks=3,
            max_marks=8,
            ai_feedback=(AIFeedback("q3", EvaluationStatus.PARTIALLY_CORRECT, "More detail.", 3),),
            time_taken=42,
        )
        row = {**draft.to_dict(), "id": "a1", "submitted_at": "2024-01-01T00:00:00+00:00"}

        # Act
        record = AttemptRecord.from_dict(row)

        # Assert
        assert row["ai_feedback"][0]["howToImprove"] == "More detail."
        assert record.ai_feedback[0].status is EvaluationStatus.PARTIALLY_CORRECT
        assert record.answers == {"q3": OpenEndedAnswer("x")}

    def test_settings_timer_when_disabled_then_none(self):
        """A timer only applies when enabled with minutes."""
        assert ExamSettings(timer_enabled=False, timer_minutes=10).timer_seconds is None
        assert ExamSettings(timer_enabled=True, timer_minutes=10).timer_seconds == 600
