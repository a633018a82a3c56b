"""Exam, question and answer models.

Goal:
  - represent hosted-database rows (`exams`, `questions`) as frozen dataclasses
  - model the learner's answer as a tagged union, one variant per question type
  - keep `order_index` contiguous whenever questions are moved or removed
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union
from uuid import uuid4

BLANK_MARKER = "___"
BLANK_SEPARATOR = "|"
MAX_QUESTION_MARKS = 100
MIN_OPTIONS = 2
MAX_OPTIONS = 6


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "mcq"
    FILL_IN_BLANK = "fib"
    OPEN_ENDED = "open"


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class ExamSettings:
    """Per-exam settings bag (all optional)."""

    timer_enabled: bool = False
    timer_minutes: int | None = None
    reattempts_allowed: int | None = None
    published: bool = False

    @property
    def timer_seconds(self) -> int | None:
        if not self.timer_enabled or not self.timer_minutes:
            return None
        return int(self.timer_minutes) * 60

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExamSettings":
        data = dict(data or {})
        return cls(
            timer_enabled=bool(data.get("timer_enabled", False)),
            timer_minutes=_optional_int(data.get("timer_minutes")),
            reattempts_allowed=_optional_int(data.get("reattempts_allowed")),
            published=bool(data.get("published", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"timer_enabled": self.timer_enabled, "published": self.published}
        if self.timer_minutes is not None:
            payload["timer_minutes"] = self.timer_minutes
        if self.reattempts_allowed is not None:
            payload["reattempts_allowed"] = self.reattempts_allowed
        return payload


@dataclass(frozen=True)
class Exam:
    """Exam metadata. Immutable for the lifetime of an attempt."""

    id: str
    name: str
    subject: str = ""
    course: str = ""
    topic: str = ""
    sub_topic: str = ""
    difficulty: str = ""
    qualification: str = ""
    board: str = ""
    pdf_url: str | None = None
    settings: ExamSettings = field(default_factory=ExamSettings)
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Exam":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            subject=str(data.get("subject") or ""),
            course=str(data.get("course") or ""),
            topic=str(data.get("topic") or ""),
            sub_topic=str(data.get("sub_topic") or ""),
            difficulty=str(data.get("difficulty") or ""),
            qualification=str(data.get("qualification") or ""),
            board=str(data.get("board") or ""),
            pdf_url=data.get("pdf_url") or None,
            settings=ExamSettings.from_dict(data.get("settings")),
            created_at=data.get("created_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "subject": self.subject,
            "course": self.course,
            "topic": self.topic,
            "sub_topic": self.sub_topic,
            "difficulty": self.difficulty,
            "qualification": self.qualification,
            "board": self.board,
            "pdf_url": self.pdf_url,
            "settings": self.settings.to_dict(),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Question:
    """A single exam question + its answer key."""

    id: str
    exam_id: str
    order_index: int
    type: QuestionType
    question_text: str
    marks: int
    options: tuple[str, ...] = ()
    correct_answer: Any = None
    model_answer: str | None = None
    instruction_text: str | None = None
    image_url: str | None = None

    def __post_init__(self) -> None:
        # Accept wire values ("mcq") and lists for convenience.
        object.__setattr__(self, "type", QuestionType(self.type))
        object.__setattr__(self, "options", tuple(self.options or ()))

    @staticmethod
    def new_id(prefix: str = "q") -> str:
        return f"{prefix}_{uuid4().hex[:12]}"

    @property
    def blank_count(self) -> int:
        return self.question_text.count(BLANK_MARKER)

    @property
    def reference_answer(self) -> str:
        """Text the open-ended grader compares against (model answer first)."""

        if self.model_answer and self.model_answer.strip():
            return self.model_answer
        if self.correct_answer is None:
            return ""
        return str(self.correct_answer)

    def validate(self) -> None:
        """Raise `ValueError` when the populated fields do not match `type`."""

        if not 1 <= int(self.marks) <= MAX_QUESTION_MARKS:
            raise ValueError(f"marks must be between 1 and {MAX_QUESTION_MARKS}, got {self.marks}")
        if self.order_index < 0:
            raise ValueError("order_index must be non-negative")

        if self.type is QuestionType.MULTIPLE_CHOICE:
            if not MIN_OPTIONS <= len(self.options) <= MAX_OPTIONS:
                raise ValueError(f"multiple-choice questions need {MIN_OPTIONS}-{MAX_OPTIONS} options")
            if isinstance(self.correct_answer, bool) or not isinstance(self.correct_answer, int):
                raise ValueError("multiple-choice correct_answer must be an option index")
            if not 0 <= self.correct_answer < len(self.options):
                raise ValueError(f"correct_answer {self.correct_answer} is out of range")
        elif self.type is QuestionType.FILL_IN_BLANK:
            if self.blank_count < 1:
                raise ValueError(f"fill-in-blank questions must contain at least one {BLANK_MARKER!r}")
            if self.options:
                raise ValueError("fill-in-blank questions do not take options")
        elif self.type is QuestionType.OPEN_ENDED:
            if not self.reference_answer.strip():
                raise ValueError("open-ended questions need a model answer")
            if self.options:
                raise ValueError("open-ended questions do not take options")
        else:  # pragma: no cover
            raise ValueError(f"Unknown question type: {self.type!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(
            id=str(data["id"]),
            exam_id=str(data.get("exam_id") or ""),
            order_index=int(data.get("order_index") or 0),
            type=QuestionType(data["type"]),
            question_text=str(data.get("question_text") or ""),
            marks=int(data.get("marks") or 0),
            options=tuple(str(o) for o in (data.get("options") or [])),
            correct_answer=data.get("correct_answer"),
            model_answer=data.get("model_answer") or None,
            instruction_text=data.get("instruction_text") or None,
            image_url=data.get("image_url") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "order_index": self.order_index,
            "type": self.type.value,
            "question_text": self.question_text,
            "marks": self.marks,
            "options": list(self.options) if self.type is QuestionType.MULTIPLE_CHOICE else None,
            "correct_answer": self.correct_answer,
            "model_answer": self.model_answer,
            "instruction_text": self.instruction_text,
            "image_url": self.image_url,
        }


def renumber_questions(questions: list[Question]) -> list[Question]:
    """Return the questions with `order_index` set to their list position."""

    return [q if q.order_index == idx else replace(q, order_index=idx) for idx, q in enumerate(questions)]


def sort_questions(questions: list[Question]) -> list[Question]:
    return sorted(questions, key=lambda q: q.order_index)


def move_question(questions: list[Question], from_index: int, to_index: int) -> list[Question]:
    ordered = sort_questions(questions)
    if not (0 <= from_index < len(ordered) and 0 <= to_index < len(ordered)):
        raise IndexError(f"cannot move question {from_index} -> {to_index} in a list of {len(ordered)}")
    moved = ordered.pop(from_index)
    ordered.insert(to_index, moved)
    return renumber_questions(ordered)


def remove_question(questions: list[Question], question_id: str) -> list[Question]:
    remaining = [q for q in sort_questions(questions) if q.id != question_id]
    return renumber_questions(remaining)


# --- Answers -----------------------------------------------------------------


@dataclass(frozen=True)
class MultipleChoiceAnswer:
    index: int


@dataclass(frozen=True)
class FillInBlankAnswer:
    value: str | tuple[str, ...]


@dataclass(frozen=True)
class OpenEndedAnswer:
    text: str


ExamAnswer = Union[MultipleChoiceAnswer, FillInBlankAnswer, OpenEndedAnswer]

_ANSWER_TYPE_TAGS: dict[type, QuestionType] = {
    MultipleChoiceAnswer: QuestionType.MULTIPLE_CHOICE,
    FillInBlankAnswer: QuestionType.FILL_IN_BLANK,
    OpenEndedAnswer: QuestionType.OPEN_ENDED,
}


def answer_type(answer: ExamAnswer) -> QuestionType:
    try:
        return _ANSWER_TYPE_TAGS[type(answer)]
    except KeyError:
        raise TypeError(f"Unsupported answer type: {type(answer)!r}") from None


def is_blank_answer(answer: ExamAnswer | None) -> bool:
    """True when there is nothing worth grading."""

    if answer is None:
        return True
    if isinstance(answer, MultipleChoiceAnswer):
        return False
    if isinstance(answer, FillInBlankAnswer):
        if isinstance(answer.value, str):
            return not answer.value.strip()
        return not any(part.strip() for part in answer.value)
    if isinstance(answer, OpenEndedAnswer):
        return not answer.text.strip()
    raise TypeError(f"Unsupported answer type: {type(answer)!r}")


def answer_to_dict(answer: ExamAnswer) -> dict[str, Any]:
    if isinstance(answer, MultipleChoiceAnswer):
        value: Any = answer.index
    elif isinstance(answer, FillInBlankAnswer):
        value = answer.value if isinstance(answer.value, str) else list(answer.value)
    elif isinstance(answer, OpenEndedAnswer):
        value = answer.text
    else:
        raise TypeError(f"Unsupported answer type: {type(answer)!r}")
    return {"type": answer_type(answer).value, "answer": value}


def answer_from_dict(data: dict[str, Any]) -> ExamAnswer:
    """Inverse of `answer_to_dict`. Raises `ValueError` on malformed input."""

    if not isinstance(data, dict) or "answer" not in data:
        raise ValueError(f"Malformed answer payload: {data!r}")
    kind = QuestionType(data.get("type"))
    value = data["answer"]

    if kind is QuestionType.MULTIPLE_CHOICE:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Multiple-choice answer must be an int, got {value!r}")
        return MultipleChoiceAnswer(index=value)
    if kind is QuestionType.FILL_IN_BLANK:
        if isinstance(value, str):
            return FillInBlankAnswer(value=value)
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return FillInBlankAnswer(value=tuple(value))
        raise ValueError(f"Fill-in-blank answer must be a string or list of strings, got {value!r}")
    if not isinstance(value, str):
        raise ValueError(f"Open-ended answer must be a string, got {value!r}")
    return OpenEndedAnswer(text=value)


def answer_for_question(question: Question, raw: Any) -> ExamAnswer:
    """Wrap a raw UI value in the answer variant matching `question.type`."""

    if isinstance(raw, (MultipleChoiceAnswer, FillInBlankAnswer, OpenEndedAnswer)):
        if answer_type(raw) is not question.type:
            raise ValueError(f"{type(raw).__name__} does not fit a {question.type.value} question")
        return raw

    if question.type is QuestionType.MULTIPLE_CHOICE:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError(f"Multiple-choice answer must be an option index, got {raw!r}")
        if not 0 <= raw < len(question.options):
            raise ValueError(f"Option index {raw} is out of range")
        return MultipleChoiceAnswer(index=raw)
    if question.type is QuestionType.FILL_IN_BLANK:
        if isinstance(raw, str):
            return FillInBlankAnswer(value=raw)
        if isinstance(raw, (list, tuple)):
            return FillInBlankAnswer(value=tuple(str(v) for v in raw))
        raise ValueError(f"Fill-in-blank answer must be text, got {raw!r}")
    if question.type is QuestionType.OPEN_ENDED:
        if not isinstance(raw, str):
            raise ValueError(f"Open-ended answer must be text, got {raw!r}")
        return OpenEndedAnswer(text=raw)
    raise ValueError(f"Unknown question type: {question.type!r}")
