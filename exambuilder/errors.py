"""Exception types shared by the grading, session and service layers."""

from __future__ import annotations


class ExamBuilderError(Exception):
    """Base class for all application errors."""


class ExamLoadError(ExamBuilderError):
    """The exam or its questions could not be loaded. Fatal for the session."""


class EvaluationError(ExamBuilderError):
    """An AI grading call failed. The learner may retry."""


class GradingResponseError(EvaluationError):
    """The grading service answered with a malformed or out-of-range payload."""


class SubmissionError(ExamBuilderError):
    """The final attempt record could not be persisted."""


class AnswerLockedError(ExamBuilderError):
    """The question was already evaluated (or is being evaluated) and cannot change."""


class InvalidStateError(ExamBuilderError):
    """The requested action is not allowed in the current session phase."""


class StorageError(ExamBuilderError):
    """The hosted backend rejected a read or write."""


class GenerationError(ExamBuilderError, ValueError):
    """Question generation failed or produced an invalid question set."""
