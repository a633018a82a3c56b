"""Deterministic grading for multiple-choice and fill-in-blank questions.

Everything here is pure: no I/O, no model calls. Open-ended questions are not
scored here (see `exambuilder.evaluator.open_ended`); they contribute nothing to
`calculate_total_marks` and are added from AI results at submission time.

Fill-in-blank answers are compared after normalization (trim, case-fold, strip
punctuation). There is no partial credit and no fuzzy matching.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from exambuilder.models.attempt import EvaluationResult, EvaluationStatus
from exambuilder.models.exam import (
    BLANK_SEPARATOR,
    ExamAnswer,
    FillInBlankAnswer,
    MultipleChoiceAnswer,
    OpenEndedAnswer,
    Question,
    QuestionType,
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class MultipleChoiceFeedback:
    is_correct: bool
    feedback: str
    correct_answer: int | None
    correct_option_text: str


@dataclass(frozen=True)
class FillInBlankFeedback:
    is_correct: bool
    feedback: str
    correct_answer: str


def normalize_answer(text: str) -> str:
    return _PUNCTUATION_RE.sub("", text.strip().casefold())


def _join_blanks(parts: Iterable[str]) -> str:
    return " ".join(str(part).strip() for part in parts)


def canonical_blank_text(value: str | Sequence[str] | None) -> str:
    """Collapse a (possibly multi-blank) answer to one normalized string.

    Lists are one entry per blank; strings may separate blanks with `|`.
    """

    if value is None:
        return ""
    if isinstance(value, str):
        if BLANK_SEPARATOR in value:
            return normalize_answer(_join_blanks(value.split(BLANK_SEPARATOR)))
        return normalize_answer(value)
    return normalize_answer(_join_blanks(value))


def answer_key_index(question: Question) -> int | None:
    """The stored option index, or None when the key is missing or unreadable."""

    key = question.correct_answer
    if isinstance(key, bool) or key is None:
        return None
    try:
        return int(key)
    except (TypeError, ValueError):
        return None


def grade_multiple_choice(
    student_index: int, correct_index: int | None, options: Sequence[str]
) -> MultipleChoiceFeedback:
    # A question without a key never grades correct.
    is_correct = correct_index is not None and student_index == correct_index
    in_range = correct_index is not None and 0 <= correct_index < len(options)
    correct_option_text = options[correct_index] if in_range else ""

    if is_correct:
        feedback = "Correct! Well done."
    else:
        feedback = f"Incorrect. The correct answer is: {correct_option_text}"

    return MultipleChoiceFeedback(
        is_correct=is_correct,
        feedback=feedback,
        correct_answer=correct_index,
        correct_option_text=correct_option_text,
    )


def grade_fill_in_blank(student_answer: str | Sequence[str], correct_answer: str | None) -> FillInBlankFeedback:
    expected = canonical_blank_text(correct_answer)
    given = canonical_blank_text(student_answer)

    # An empty answer key never matches, not even an empty response.
    is_correct = bool(expected) and given == expected
    correct_text = str(correct_answer or "")

    if is_correct:
        feedback = "Correct! Good work."
    else:
        feedback = f"Incorrect. The correct answer is: {correct_text}"

    return FillInBlankFeedback(is_correct=is_correct, feedback=feedback, correct_answer=correct_text)


def evaluate_deterministic(question: Question, answer: ExamAnswer) -> EvaluationResult:
    """Evaluate one multiple-choice or fill-in-blank answer for in-session display."""

    if question.type is QuestionType.MULTIPLE_CHOICE:
        if not isinstance(answer, MultipleChoiceAnswer):
            raise TypeError(f"expected MultipleChoiceAnswer, got {type(answer).__name__}")
        mcq = grade_multiple_choice(answer.index, answer_key_index(question), question.options)
        return EvaluationResult(
            status=EvaluationStatus.CORRECT if mcq.is_correct else EvaluationStatus.INCORRECT,
            marks_awarded=question.marks if mcq.is_correct else 0,
            feedback=mcq.feedback,
            correct_answer=mcq.correct_answer,
            correct_option_text=mcq.correct_option_text,
        )

    if question.type is QuestionType.FILL_IN_BLANK:
        if not isinstance(answer, FillInBlankAnswer):
            raise TypeError(f"expected FillInBlankAnswer, got {type(answer).__name__}")
        fib = grade_fill_in_blank(answer.value, question.correct_answer)
        return EvaluationResult(
            status=EvaluationStatus.CORRECT if fib.is_correct else EvaluationStatus.INCORRECT,
            marks_awarded=question.marks if fib.is_correct else 0,
            feedback=fib.feedback,
            correct_answer=fib.correct_answer,
        )

    raise ValueError(f"{question.type.value} questions are not graded deterministically")


def is_deterministically_correct(question: Question, answer: ExamAnswer | None) -> bool:
    if answer is None:
        return False
    if isinstance(answer, MultipleChoiceAnswer):
        return grade_multiple_choice(answer.index, answer_key_index(question), question.options).is_correct
    if isinstance(answer, FillInBlankAnswer):
        return grade_fill_in_blank(answer.value, question.correct_answer).is_correct
    if isinstance(answer, OpenEndedAnswer):
        return False
    raise TypeError(f"Unsupported answer type: {type(answer)!r}")


def calculate_total_marks(questions: Iterable[Question], answers: Mapping[str, ExamAnswer]) -> int:
    """Sum marks of correctly answered deterministic questions (open-ended excluded)."""

    total = 0
    for question in questions:
        if question.type is QuestionType.OPEN_ENDED:
            continue
        if is_deterministically_correct(question, answers.get(question.id)):
            total += question.marks
    return total


def calculate_max_marks(questions: Iterable[Question]) -> int:
    return sum(q.marks for q in questions)
