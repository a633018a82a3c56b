"""Results presentation for a submitted attempt.

Goal:
  - summarize an `AttemptRecord` (percentage, grade label, AI status counts, time)
  - build one review row per question for the results page and the PDF report

Deterministic questions are re-evaluated for display; open-ended rows use the
AI feedback stored in the record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from exambuilder.evaluator.exact_eval import evaluate_deterministic
from exambuilder.models.attempt import AIFeedback, AttemptRecord, EvaluationStatus
from exambuilder.models.exam import (
    ExamAnswer,
    FillInBlankAnswer,
    MultipleChoiceAnswer,
    OpenEndedAnswer,
    Question,
    QuestionType,
    is_blank_answer,
)
from exambuilder.utils.helpers import format_duration, grade_label, percentage

NO_ANSWER = "No answer"


@dataclass(frozen=True)
class AttemptSummary:
    total_marks: float
    max_marks: int
    percentage: int
    grade: str
    correct_count: int
    partially_correct_count: int
    incorrect_count: int
    time_taken: str


@dataclass(frozen=True)
class ReviewRow:
    number: int
    question_id: str
    question_type: QuestionType
    question_text: str
    marks: int
    student_answer: str
    correct_answer: str
    status: EvaluationStatus | None
    marks_awarded: float
    feedback: str

    def to_dict(self) -> dict[str, object]:
        return {
            "#": self.number,
            "Type": self.question_type.value,
            "Question": self.question_text,
            "Your answer": self.student_answer,
            "Correct answer": self.correct_answer,
            "Status": self.status.value if self.status else "Not answered",
            "Marks": f"{self.marks_awarded:g}/{self.marks}",
        }


def summarize_attempt(record: AttemptRecord) -> AttemptSummary:
    statuses = [f.status for f in record.ai_feedback]
    percent = percentage(record.total_marks, record.max_marks)
    return AttemptSummary(
        total_marks=record.total_marks,
        max_marks=record.max_marks,
        percentage=percent,
        grade=grade_label(percent),
        correct_count=statuses.count(EvaluationStatus.CORRECT),
        partially_correct_count=statuses.count(EvaluationStatus.PARTIALLY_CORRECT),
        incorrect_count=statuses.count(EvaluationStatus.INCORRECT),
        time_taken=format_duration(record.time_taken),
    )


def answer_display_text(question: Question, answer: ExamAnswer | None) -> str:
    if is_blank_answer(answer):
        return NO_ANSWER
    if isinstance(answer, MultipleChoiceAnswer):
        if 0 <= answer.index < len(question.options):
            return question.options[answer.index]
        return NO_ANSWER
    if isinstance(answer, FillInBlankAnswer):
        if isinstance(answer.value, str):
            return answer.value
        return "; ".join(answer.value)
    if isinstance(answer, OpenEndedAnswer):
        return answer.text
    raise TypeError(f"Unsupported answer type: {type(answer)!r}")


def correct_answer_text(question: Question) -> str:
    if question.type is QuestionType.MULTIPLE_CHOICE:
        index = question.correct_answer
        if isinstance(index, int) and 0 <= index < len(question.options):
            return question.options[index]
        return ""
    if question.type is QuestionType.FILL_IN_BLANK:
        return str(question.correct_answer or "")
    return question.reference_answer


def build_review_rows(questions: Iterable[Question], record: AttemptRecord) -> list[ReviewRow]:
    feedback_by_id: dict[str, AIFeedback] = {f.question_id: f for f in record.ai_feedback}
    rows: list[ReviewRow] = []

    for number, question in enumerate(questions, start=1):
        answer = record.answers.get(question.id)
        status: EvaluationStatus | None = None
        marks_awarded: float = 0
        feedback = ""

        if question.type is QuestionType.OPEN_ENDED:
            ai = feedback_by_id.get(question.id)
            if ai is not None:
                status, marks_awarded, feedback = ai.status, ai.marks_awarded, ai.how_to_improve
        elif not is_blank_answer(answer):
            result = evaluate_deterministic(question, answer)
            status, marks_awarded, feedback = result.status, result.marks_awarded, result.feedback

        rows.append(
            ReviewRow(
                number=number,
                question_id=question.id,
                question_type=question.type,
                question_text=question.question_text,
                marks=question.marks,
                student_answer=answer_display_text(question, answer),
                correct_answer=correct_answer_text(question),
                status=status,
                marks_awarded=marks_awarded,
                feedback=feedback,
            )
        )
    return rows
