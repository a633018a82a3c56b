"""Open-ended grading contract + HTTP grader.

Open-ended answers are never scored locally by the session core. A grader
collaborator receives `{studentAnswer, modelAnswer, marks}` and must answer
`{status, howToImprove, marksAwarded}`. The response is validated before it is
trusted: an unknown status, an empty `howToImprove` or `marksAwarded` outside
`[0, marks]` is rejected (never clamped).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from exambuilder.errors import EvaluationError, GradingResponseError
from exambuilder.models.attempt import AIFeedback, EvaluationResult, EvaluationStatus

logger = logging.getLogger(__name__)

GRADING_FAILED_FEEDBACK = "Unable to grade this question automatically."
MISSING_MODEL_ANSWER_FEEDBACK = "No model answer is available for this question, so it could not be graded."


@dataclass(frozen=True)
class GradingRequest:
    student_answer: str
    model_answer: str
    marks: int

    def __post_init__(self) -> None:
        if self.marks <= 0:
            raise ValueError(f"marks must be positive, got {self.marks}")

    def to_payload(self) -> dict[str, Any]:
        return {
            "studentAnswer": self.student_answer,
            "modelAnswer": self.model_answer,
            "marks": self.marks,
        }


@dataclass(frozen=True)
class GradingResponse:
    status: EvaluationStatus
    how_to_improve: str
    marks_awarded: float

    def to_evaluation(self) -> EvaluationResult:
        return EvaluationResult(
            status=self.status,
            marks_awarded=self.marks_awarded,
            feedback=self.how_to_improve,
        )

    def to_feedback(self, question_id: str) -> AIFeedback:
        return AIFeedback(
            question_id=question_id,
            status=self.status,
            how_to_improve=self.how_to_improve,
            marks_awarded=self.marks_awarded,
        )


def default_failed_feedback(question_id: str, message: str = GRADING_FAILED_FEEDBACK) -> AIFeedback:
    """Zero-mark result recorded when AI grading fails during final submission."""

    return AIFeedback(
        question_id=question_id,
        status=EvaluationStatus.INCORRECT,
        how_to_improve=message,
        marks_awarded=0,
    )


def parse_grading_response(payload: Any, marks: int) -> GradingResponse:
    """Validate a grader payload. Raises `GradingResponseError` on any defect."""

    if not isinstance(payload, dict):
        raise GradingResponseError(f"grading response must be an object, got {type(payload).__name__}")

    raw_status = payload.get("status")
    try:
        status = EvaluationStatus(raw_status)
    except ValueError:
        raise GradingResponseError(f"unrecognized status: {raw_status!r}") from None

    how_to_improve = payload.get("howToImprove")
    if not isinstance(how_to_improve, str) or not how_to_improve.strip():
        raise GradingResponseError("howToImprove must be a non-empty string")

    marks_awarded = payload.get("marksAwarded")
    if isinstance(marks_awarded, bool) or not isinstance(marks_awarded, (int, float)):
        raise GradingResponseError(f"marksAwarded must be a number, got {marks_awarded!r}")
    if not math.isfinite(marks_awarded) or not 0 <= marks_awarded <= marks:
        raise GradingResponseError(f"marksAwarded {marks_awarded} is outside [0, {marks}]")

    return GradingResponse(status=status, how_to_improve=how_to_improve, marks_awarded=marks_awarded)


class OpenEndedGrader(Protocol):
    def grade(self, request: GradingRequest) -> GradingResponse:
        """Grade one answer. Raises `EvaluationError` on any failure."""


class HttpOpenEndedGrader:
    """Calls the hosted `grade-open-ended` function over HTTP."""

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("grading endpoint URL is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
            self.headers["apikey"] = api_key

    def grade(self, request: GradingRequest) -> GradingResponse:
        try:
            response = self.session.post(
                self.endpoint,
                json=request.to_payload(),
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Grading request failed: %s", exc)
            raise EvaluationError(f"grading service unreachable: {exc}") from exc

        if not response.ok:
            logger.warning("Grading service returned HTTP %s: %s", response.status_code, response.text[:200])
            raise EvaluationError(f"grading service returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise GradingResponseError("grading service did not return JSON") from exc

        return parse_grading_response(payload, request.marks)
