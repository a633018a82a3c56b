"""Attempt models: the in-progress attempt, evaluation results and the final record."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from exambuilder.models.exam import ExamAnswer, answer_from_dict, answer_to_dict


class EvaluationStatus(str, Enum):
    CORRECT = "Correct"
    PARTIALLY_CORRECT = "Partially Correct"
    INCORRECT = "Incorrect"


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one question during the session (display only)."""

    status: EvaluationStatus
    marks_awarded: float
    feedback: str
    correct_answer: Any | None = None
    correct_option_text: str | None = None

    @property
    def is_correct(self) -> bool:
        return self.status is EvaluationStatus.CORRECT


@dataclass(frozen=True)
class AIFeedback:
    """One AI-graded question folded into the final attempt record."""

    question_id: str
    status: EvaluationStatus
    how_to_improve: str
    marks_awarded: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "status": self.status.value,
            "howToImprove": self.how_to_improve,
            "marksAwarded": self.marks_awarded,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AIFeedback":
        return cls(
            question_id=str(data["question_id"]),
            status=EvaluationStatus(data["status"]),
            how_to_improve=str(data.get("howToImprove") or ""),
            marks_awarded=float(data.get("marksAwarded") or 0),
        )


@dataclass
class InProgressAttempt:
    """The attempt currently being taken. Owned by `AttemptStore`."""

    exam_id: str
    start_time: float
    answers: dict[str, ExamAnswer] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exam_id": self.exam_id,
            "answers": {qid: answer_to_dict(a) for qid, a in self.answers.items()},
            "start_time": self.start_time,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "InProgressAttempt":
        """Rebuild a saved attempt. Raises `ValueError` when the payload is malformed."""

        if not isinstance(data, dict):
            raise ValueError("saved attempt must be a JSON object")
        exam_id = data.get("exam_id")
        start_time = data.get("start_time")
        answers = data.get("answers")
        if not isinstance(exam_id, str) or not exam_id:
            raise ValueError("saved attempt has no exam_id")
        if isinstance(start_time, bool) or not isinstance(start_time, (int, float)):
            raise ValueError("saved attempt has no numeric start_time")
        if not isinstance(answers, dict):
            raise ValueError("saved attempt answers must be an object")

        return cls(
            exam_id=exam_id,
            start_time=float(start_time),
            answers={str(qid): answer_from_dict(payload) for qid, payload in answers.items()},
        )


def _answers_payload(answers: dict[str, ExamAnswer]) -> dict[str, Any]:
    return {qid: answer_to_dict(a) for qid, a in answers.items()}


@dataclass(frozen=True)
class AttemptDraft:
    """Final attempt as sent to the backend (id and timestamp are server-assigned)."""

    exam_id: str
    answers: dict[str, ExamAnswer]
    total_marks: float
    max_marks: int
    ai_feedback: tuple[AIFeedback, ...]
    time_taken: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "exam_id": self.exam_id,
            "answers": _answers_payload(self.answers),
            "total_marks": self.total_marks,
            "max_marks": self.max_marks,
            "ai_feedback": [f.to_dict() for f in self.ai_feedback],
            "time_taken": self.time_taken,
        }


@dataclass(frozen=True)
class AttemptRecord:
    """A submitted attempt. Never mutated after creation."""

    id: str
    exam_id: str
    answers: dict[str, ExamAnswer]
    total_marks: float
    max_marks: int
    ai_feedback: tuple[AIFeedback, ...]
    time_taken: int
    submitted_at: str

    @classmethod
    def from_draft(cls, draft: AttemptDraft, *, attempt_id: str, submitted_at: str) -> "AttemptRecord":
        return cls(
            id=attempt_id,
            exam_id=draft.exam_id,
            answers=dict(draft.answers),
            total_marks=draft.total_marks,
            max_marks=draft.max_marks,
            ai_feedback=tuple(draft.ai_feedback),
            time_taken=draft.time_taken,
            submitted_at=submitted_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "answers": _answers_payload(self.answers),
            "total_marks": self.total_marks,
            "max_marks": self.max_marks,
            "ai_feedback": [f.to_dict() for f in self.ai_feedback],
            "time_taken": self.time_taken,
            "submitted_at": self.submitted_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttemptRecord":
        return cls(
            id=str(data["id"]),
            exam_id=str(data["exam_id"]),
            answers={str(qid): answer_from_dict(p) for qid, p in (data.get("answers") or {}).items()},
            total_marks=float(data.get("total_marks") or 0),
            max_marks=int(data.get("max_marks") or 0),
            ai_feedback=tuple(AIFeedback.from_dict(f) for f in (data.get("ai_feedback") or [])),
            time_taken=int(data.get("time_taken") or 0),
            submitted_at=str(data.get("submitted_at") or ""),
        )
