from exambuilder.models.attempt import (
    AIFeedback,
    AttemptDraft,
    AttemptRecord,
    EvaluationResult,
    EvaluationStatus,
    InProgressAttempt,
)
from exambuilder.models.exam import (
    Exam,
    ExamAnswer,
    ExamSettings,
    FillInBlankAnswer,
    MultipleChoiceAnswer,
    OpenEndedAnswer,
    Question,
    QuestionType,
    answer_for_question,
    is_blank_answer,
)

__all__ = [
    "AIFeedback",
    "AttemptDraft",
    "AttemptRecord",
    "EvaluationResult",
    "EvaluationStatus",
    "Exam",
    "ExamAnswer",
    "ExamSettings",
    "FillInBlankAnswer",
    "InProgressAttempt",
    "MultipleChoiceAnswer",
    "OpenEndedAnswer",
    "Question",
    "QuestionType",
    "answer_for_question",
    "is_blank_answer",
]
