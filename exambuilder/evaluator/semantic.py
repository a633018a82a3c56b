"""Offline open-ended grader based on semantic similarity.

Used when no hosted grading endpoint is configured. Prefers a local SBERT model;
if it is unavailable (offline, missing cache, disabled) falls back to a
deterministic lexical similarity. The result goes through the same validation
as a remote grader's response.
"""

from __future__ import annotations

import logging
import math

import streamlit as st

from exambuilder.evaluator.open_ended import GradingRequest, GradingResponse, parse_grading_response
from exambuilder.models.attempt import EvaluationStatus

logger = logging.getLogger(__name__)

CORRECT_THRESHOLD = 0.80
PARTIAL_THRESHOLD = 0.50


@st.cache_resource
def load_model(model_name_or_path: str, local_files_only: bool):
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name_or_path, local_files_only=local_files_only)


def similarity(user_text: str, reference_text: str, *, use_sbert: bool, model_name_or_path: str, local_only: bool) -> float:
    """Return a similarity in [0, 1]."""

    try:
        if not use_sbert:
            raise RuntimeError("SBERT disabled")

        model = load_model(model_name_or_path, local_only)
        embeddings = model.encode([user_text, reference_text], normalize_embeddings=True)
        score = float(embeddings[0] @ embeddings[1])
    except Exception as exc:
        logger.debug("Falling back to lexical similarity: %s", exc)
        from difflib import SequenceMatcher

        score = SequenceMatcher(None, user_text.lower(), reference_text.lower()).ratio()

    return min(max(score, 0.0), 1.0)


class SemanticOpenEndedGrader:
    """Grades open-ended answers locally (no network)."""

    def __init__(
        self,
        *,
        use_sbert: bool | None = None,
        model_name_or_path: str | None = None,
        local_models_only: bool | None = None,
    ) -> None:
        try:
            from config import CONFIG

            default_model = CONFIG.sbert_model_name_or_path
            default_local_only = CONFIG.offline_strict
            default_use_sbert = CONFIG.enable_sbert
        except Exception:
            default_model = "all-MiniLM-L6-v2"
            default_local_only = False
            default_use_sbert = True

        self.use_sbert = default_use_sbert if use_sbert is None else bool(use_sbert)
        self.model_name_or_path = model_name_or_path or default_model
        self.local_only = default_local_only if local_models_only is None else bool(local_models_only)

    def grade(self, request: GradingRequest) -> GradingResponse:
        score = similarity(
            request.student_answer,
            request.model_answer,
            use_sbert=self.use_sbert,
            model_name_or_path=self.model_name_or_path,
            local_only=self.local_only,
        )

        if score >= CORRECT_THRESHOLD:
            status = EvaluationStatus.CORRECT
            marks = request.marks
            message = "Excellent work! Your answer covers the key points of the model answer."
        elif score >= PARTIAL_THRESHOLD:
            status = EvaluationStatus.PARTIALLY_CORRECT
            marks = max(1, math.floor(score * request.marks))
            message = (
                "Your answer is on the right track but misses some key points. "
                f"Here is the correct answer: {request.model_answer}"
            )
        else:
            status = EvaluationStatus.INCORRECT
            marks = 0
            message = (
                "Your answer does not match the key ideas of the model answer. "
                f"Here is the correct answer: {request.model_answer}"
            )

        return parse_grading_response(
            {"status": status.value, "howToImprove": message, "marksAwarded": marks},
            request.marks,
        )
