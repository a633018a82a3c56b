"""Attempt state store.

One `AttemptStore` is created per exam-taking session and passed to the
orchestrator explicitly. It holds at most one in-progress attempt; answers are
keyed by question id so re-answering overwrites.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from exambuilder.models.attempt import InProgressAttempt
from exambuilder.models.exam import ExamAnswer

logger = logging.getLogger(__name__)


class AttemptStore:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._attempt: InProgressAttempt | None = None

    @property
    def current(self) -> InProgressAttempt | None:
        return self._attempt

    def start_attempt(self, exam_id: str) -> InProgressAttempt:
        """Replace any existing attempt with a fresh, empty one."""

        if self._attempt is not None:
            logger.info("Discarding in-progress attempt for exam %s", self._attempt.exam_id)
        self._attempt = InProgressAttempt(exam_id=exam_id, start_time=self._clock())
        return self._attempt

    def restore(self, attempt: InProgressAttempt) -> None:
        """Install a previously saved attempt (used by the persistence bridge)."""

        self._attempt = attempt

    def update_answer(self, question_id: str, answer: ExamAnswer) -> None:
        if self._attempt is None:
            logger.debug("Ignoring answer for %s: no attempt in progress", question_id)
            return
        self._attempt.answers[question_id] = answer

    def get_answer(self, question_id: str) -> ExamAnswer | None:
        if self._attempt is None:
            return None
        return self._attempt.answers.get(question_id)

    def clear_attempt(self) -> None:
        self._attempt = None
