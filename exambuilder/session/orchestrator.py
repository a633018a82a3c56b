"""Attempt orchestrator: drives one exam-taking session end to end.

Phases: LOADING -> IN_PROGRESS -> SUBMITTING -> SUBMITTED (or FAILED when the
exam cannot be loaded). While IN_PROGRESS every question is UNANSWERED,
ANSWERED, EVALUATING or EVALUATED; EVALUATING/EVALUATED answers are locked.

Everything runs on one asyncio loop. Blocking collaborator calls (HTTP, disk)
are pushed to worker threads with `asyncio.to_thread`, but state is only
mutated on the loop. After each await the orchestrator checks that the
attempt it started with is still the current one before applying results.

Final scoring is recomputed from scratch at submission: deterministic marks via
`calculate_total_marks`, open-ended marks from the AI grader. An open-ended
result already obtained during the session is reused verbatim and one still in
flight is awaited (no second AI call); only unevaluated, non-blank open-ended
answers are sent for grading.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from exambuilder.errors import (
    AnswerLockedError,
    EvaluationError,
    ExamLoadError,
    InvalidStateError,
    SubmissionError,
)
from exambuilder.evaluator.exact_eval import calculate_max_marks, calculate_total_marks, evaluate_deterministic
from exambuilder.evaluator.open_ended import (
    MISSING_MODEL_ANSWER_FEEDBACK,
    GradingRequest,
    GradingResponse,
    OpenEndedGrader,
    default_failed_feedback,
)
from exambuilder.models.attempt import AIFeedback, AttemptDraft, AttemptRecord, EvaluationResult, InProgressAttempt
from exambuilder.models.exam import (
    Exam,
    ExamAnswer,
    OpenEndedAnswer,
    Question,
    QuestionType,
    answer_for_question,
    answer_type,
    is_blank_answer,
)
from exambuilder.services.api import ExamBackend
from exambuilder.session.periodic import PeriodicTask
from exambuilder.session.persistence import (
    LocalStorage,
    clear_local_storage,
    read_saved_attempt,
    save_to_local_storage,
)
from exambuilder.session.store import AttemptStore

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


class QuestionState(str, Enum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"


@dataclass(frozen=True)
class Notification:
    level: str  # "success" | "error" | "info"
    message: str


@dataclass(frozen=True)
class SubmitCheck:
    """What the learner should be told before a manual submit."""

    answered_count: int
    total_count: int
    pending_question_ids: tuple[str, ...]
    first_pending_index: int | None

    @property
    def has_pending(self) -> bool:
        return bool(self.pending_question_ids)


class AttemptOrchestrator:
    def __init__(
        self,
        exam_id: str,
        *,
        backend: ExamBackend,
        grader: OpenEndedGrader,
        store: AttemptStore | None = None,
        storage: LocalStorage | None = None,
        clock: Callable[[], float] = time.time,
        timer_interval: float = 1.0,
        autosave_interval: float = 30.0,
        on_notify: Callable[[Notification], None] | None = None,
    ) -> None:
        self.exam_id = exam_id
        self.backend = backend
        self.grader = grader
        self.store = store or AttemptStore(clock=clock)
        self.storage = storage
        self._clock = clock
        self._on_notify = on_notify

        self.phase = SessionPhase.LOADING
        self.exam: Exam | None = None
        self.questions: list[Question] = []
        self.current_index = 0
        self.resumed = False
        self.time_remaining: int | None = None
        self.evaluations: dict[str, EvaluationResult] = {}
        self.record: AttemptRecord | None = None
        self.notifications: list[Notification] = []

        self._ai_results: dict[str, GradingResponse] = {}
        self._pending: dict[str, asyncio.Task[GradingResponse]] = {}
        self._timer_expired = False
        self._disposed = False
        self._timer_task = PeriodicTask("exam-timer", timer_interval, self.on_timer_tick)
        self._autosave_task = PeriodicTask("exam-autosave", autosave_interval, self.autosave)

    # --- helpers -------------------------------------------------------------

    def _notify(self, level: str, message: str) -> None:
        notification = Notification(level=level, message=message)
        self.notifications.append(notification)
        if self._on_notify is not None:
            self._on_notify(notification)

    def _require_phase(self, *phases: SessionPhase) -> None:
        if self._disposed:
            raise InvalidStateError("session has been closed")
        if self.phase not in phases:
            raise InvalidStateError(f"not allowed while {self.phase.value}")

    def _is_current(self, attempt: InProgressAttempt | None) -> bool:
        return not self._disposed and attempt is not None and self.store.current is attempt

    def question(self, question_id: str) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise KeyError(f"unknown question {question_id}")

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def go_to(self, index: int) -> None:
        if not 0 <= index < len(self.questions):
            raise IndexError(f"question index {index} out of range")
        self.current_index = index

    def next_question(self) -> None:
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1

    def previous_question(self) -> None:
        if self.current_index > 0:
            self.current_index -= 1

    def get_answer(self, question_id: str) -> ExamAnswer | None:
        return self.store.get_answer(question_id)

    def question_state(self, question_id: str) -> QuestionState:
        if question_id in self._pending:
            return QuestionState.EVALUATING
        if question_id in self.evaluations:
            return QuestionState.EVALUATED
        if is_blank_answer(self.store.get_answer(question_id)):
            return QuestionState.UNANSWERED
        return QuestionState.ANSWERED

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.questions if not is_blank_answer(self.store.get_answer(q.id)))

    # --- loading -------------------------------------------------------------

    async def load(self) -> None:
        self._require_phase(SessionPhase.LOADING)

        try:
            exam, questions = await asyncio.gather(
                asyncio.to_thread(self.backend.get_exam, self.exam_id),
                asyncio.to_thread(self.backend.get_questions_by_exam, self.exam_id),
            )
            if not questions:
                raise ExamLoadError(f"exam {self.exam_id} has no questions")

            limit = exam.settings.reattempts_allowed
            if limit is not None:
                previous = await asyncio.to_thread(self.backend.get_attempts_by_exam, self.exam_id)
                # The first attempt is not a reattempt.
                if len(previous) > limit:
                    raise ExamLoadError(f"no attempts remaining for exam {self.exam_id}")
        except Exception as exc:
            logger.error("Failed to load exam %s: %s", self.exam_id, exc)
            self.phase = SessionPhase.FAILED
            self._notify("error", "Failed to load exam")
            if isinstance(exc, ExamLoadError):
                raise
            raise ExamLoadError(f"failed to load exam {self.exam_id}") from exc

        if self._disposed:
            return

        self.exam = exam
        self.questions = list(questions)
        self._init_attempt()

        timer_seconds = exam.settings.timer_seconds
        if timer_seconds is not None:
            elapsed = int(max(0.0, self._clock() - self.store.current.start_time))
            self.time_remaining = max(0, timer_seconds - elapsed)

        self.phase = SessionPhase.IN_PROGRESS

    def _init_attempt(self) -> None:
        saved = read_saved_attempt(self.storage) if self.storage is not None else None
        current = self.store.current

        if saved is not None and saved.exam_id == self.exam_id:
            saved.answers = self._matching_answers(saved.answers)
            self.store.restore(saved)
            self.resumed = True
            self._notify("info", "Resumed your saved progress.")
        elif current is not None and current.exam_id == self.exam_id:
            self.resumed = True
        else:
            self.store.start_attempt(self.exam_id)

    def _matching_answers(self, answers: dict[str, ExamAnswer]) -> dict[str, ExamAnswer]:
        by_id = {q.id: q for q in self.questions}
        kept = {}
        for qid, answer in answers.items():
            question = by_id.get(qid)
            if question is None or answer_type(answer) is not question.type:
                logger.warning("Dropping saved answer for %s: it no longer matches the exam", qid)
                continue
            kept[qid] = answer
        return kept

    # --- answering + per-question evaluation ---------------------------------

    def update_answer(self, question_id: str, raw: Any) -> ExamAnswer:
        self._require_phase(SessionPhase.IN_PROGRESS)
        question = self.question(question_id)

        if self.question_state(question_id) in (QuestionState.EVALUATING, QuestionState.EVALUATED):
            raise AnswerLockedError(f"question {question_id} was already submitted for evaluation")

        answer = answer_for_question(question, raw)
        self.store.update_answer(question_id, answer)
        return answer

    async def evaluate_question(self, question_id: str) -> EvaluationResult | None:
        """Evaluate one answered question. Returns None if the session moved on meanwhile."""

        self._require_phase(SessionPhase.IN_PROGRESS)
        question = self.question(question_id)
        state = self.question_state(question_id)

        if state is QuestionState.EVALUATING:
            raise InvalidStateError(f"question {question_id} is already being evaluated")
        if state is QuestionState.EVALUATED:
            return self.evaluations[question_id]

        answer = self.store.get_answer(question_id)
        if is_blank_answer(answer):
            raise ValueError("Answer the question before submitting it for evaluation.")

        if question.type is not QuestionType.OPEN_ENDED:
            result = evaluate_deterministic(question, answer)
            self.evaluations[question_id] = result
            self._notify("success", "Answer evaluated successfully!")
            return result

        attempt = self.store.current
        # Submission awaits this task instead of grading the answer a second time.
        task = asyncio.ensure_future(self._grade_open_ended(question, answer))
        self._pending[question_id] = task
        try:
            response = await task
        except EvaluationError:
            if self._is_current(attempt):
                self._notify("error", "Failed to evaluate answer. Please try again.")
            raise
        finally:
            if self._pending.get(question_id) is task:
                del self._pending[question_id]

        if not self._is_current(attempt) or self.phase is SessionPhase.SUBMITTED:
            logger.info("Discarding stale evaluation for question %s", question_id)
            return None

        self._ai_results[question_id] = response
        result = response.to_evaluation()
        self.evaluations[question_id] = result
        self._notify("success", "Answer evaluated successfully!")
        return result

    async def _grade_open_ended(self, question: Question, answer: ExamAnswer) -> GradingResponse:
        if not isinstance(answer, OpenEndedAnswer):
            raise TypeError(f"expected OpenEndedAnswer, got {type(answer).__name__}")
        if not question.reference_answer.strip():
            raise EvaluationError(f"question {question.id} has no model answer")

        request = GradingRequest(
            student_answer=answer.text,
            model_answer=question.reference_answer,
            marks=question.marks,
        )
        try:
            return await asyncio.to_thread(self.grader.grade, request)
        except EvaluationError:
            raise
        except Exception as exc:
            logger.warning("Grader raised unexpectedly for question %s: %s", question.id, exc)
            raise EvaluationError(str(exc)) from exc

    # --- submission ----------------------------------------------------------

    def submit_check(self) -> SubmitCheck:
        pending = [
            q.id
            for q in self.questions
            if self.question_state(q.id) in (QuestionState.ANSWERED, QuestionState.EVALUATING)
        ]
        first_pending = None
        if pending:
            first_pending = next(i for i, q in enumerate(self.questions) if q.id == pending[0])
        return SubmitCheck(
            answered_count=self.answered_count,
            total_count=len(self.questions),
            pending_question_ids=tuple(pending),
            first_pending_index=first_pending,
        )

    async def _final_ai_feedback(self, answers: dict[str, ExamAnswer]) -> list[AIFeedback]:
        feedback: list[AIFeedback] = []
        for question in self.questions:
            if question.type is not QuestionType.OPEN_ENDED:
                continue
            answer = answers.get(question.id)
            if is_blank_answer(answer):
                continue

            in_flight = self._pending.get(question.id)
            if in_flight is not None:
                await asyncio.wait({in_flight})
                if not in_flight.cancelled():
                    error = in_flight.exception()
                    if error is None:
                        feedback.append(in_flight.result().to_feedback(question.id))
                    else:
                        logger.warning("Failed to grade open-ended question %s: %s", question.id, error)
                        feedback.append(default_failed_feedback(question.id))
                    continue

            cached = self._ai_results.get(question.id)
            if cached is not None:
                feedback.append(cached.to_feedback(question.id))
                continue

            if not question.reference_answer.strip():
                feedback.append(default_failed_feedback(question.id, MISSING_MODEL_ANSWER_FEEDBACK))
                continue

            try:
                response = await self._grade_open_ended(question, answer)
            except EvaluationError as exc:
                logger.warning("Failed to grade open-ended question %s: %s", question.id, exc)
                feedback.append(default_failed_feedback(question.id))
                continue
            feedback.append(response.to_feedback(question.id))
        return feedback

    async def submit(self) -> AttemptRecord:
        self._require_phase(SessionPhase.IN_PROGRESS)
        attempt = self.store.current
        if attempt is None:
            raise InvalidStateError("no attempt in progress")

        self.phase = SessionPhase.SUBMITTING
        answers = dict(attempt.answers)

        try:
            deterministic_marks = calculate_total_marks(self.questions, answers)
            ai_feedback = await self._final_ai_feedback(answers)
            if not self._is_current(attempt):
                logger.info("Abandoning submission for exam %s: session changed", self.exam_id)
                raise InvalidStateError("the attempt changed during submission")

            draft = AttemptDraft(
                exam_id=self.exam_id,
                answers=answers,
                total_marks=deterministic_marks + sum(f.marks_awarded for f in ai_feedback),
                max_marks=calculate_max_marks(self.questions),
                ai_feedback=tuple(ai_feedback),
                time_taken=int(max(0.0, self._clock() - attempt.start_time)),
            )

            try:
                record = await asyncio.to_thread(self.backend.create_attempt, draft)
            except Exception as exc:
                logger.error("Failed to submit exam %s: %s", self.exam_id, exc)
                if not self._disposed:
                    self._notify("error", "Failed to submit exam. Please try again.")
                raise SubmissionError(f"could not save the attempt: {exc}") from exc
        except BaseException:
            # Nothing was persisted: the learner can keep working and submit again.
            if not self._disposed and self.phase is SessionPhase.SUBMITTING:
                self.phase = SessionPhase.IN_PROGRESS
            raise

        self.record = record
        self.store.clear_attempt()
        if self.storage is not None:
            try:
                clear_local_storage(self.storage)
            except OSError as exc:
                logger.warning("Could not clear the saved attempt: %s", exc)
        self.phase = SessionPhase.SUBMITTED
        self._stop_tasks()
        self._notify("success", "Exam submitted successfully!")
        return record

    # --- timer + autosave ----------------------------------------------------

    async def on_timer_tick(self) -> None:
        if self.phase is not SessionPhase.IN_PROGRESS or self.time_remaining is None or self._timer_expired:
            return

        self.time_remaining = max(0, self.time_remaining - 1)
        if self.time_remaining > 0:
            return

        self._timer_expired = True
        self._timer_task.cancel()
        self._notify("info", "Time's up! Submitting your exam...")
        try:
            await self.submit()
        except SubmissionError:
            # Already reported; the learner can retry by hand.
            pass

    @property
    def timer_expired(self) -> bool:
        return self._timer_expired

    async def autosave(self) -> bool:
        if self.storage is None or self.phase is not SessionPhase.IN_PROGRESS or self._disposed:
            return False
        try:
            return await asyncio.to_thread(save_to_local_storage, self.store, self.storage)
        except OSError as exc:
            logger.warning("Autosave failed: %s", exc)
            return False

    async def save_for_later(self) -> bool:
        saved = await self.autosave()
        if saved:
            self._notify("success", "Progress saved! You can continue later.")
        else:
            self._notify("error", "Could not save your progress.")
        return saved

    def start_background_tasks(self) -> None:
        """Start the 1 s countdown and the periodic autosave (needs a running loop)."""

        self._require_phase(SessionPhase.IN_PROGRESS)
        if self.time_remaining is not None:
            self._timer_task.start()
        if self.storage is not None:
            self._autosave_task.start()

    @property
    def background_tasks_running(self) -> bool:
        return self._timer_task.running or self._autosave_task.running

    def _stop_tasks(self) -> None:
        self._timer_task.cancel()
        self._autosave_task.cancel()

    def dispose(self) -> None:
        """Tear the session down: stop ticks and keep unsaved progress."""

        if self._disposed:
            return
        self._stop_tasks()
        if self.phase in (SessionPhase.IN_PROGRESS, SessionPhase.SUBMITTING) and self.storage is not None:
            try:
                save_to_local_storage(self.store, self.storage)
            except OSError as exc:
                logger.warning("Could not save progress on teardown: %s", exc)
        self._disposed = True
