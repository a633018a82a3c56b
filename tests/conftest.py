import sys
import threading
from pathlib import Path

import pytest

# Make `config` and `exambuilder` importable without an install.
ROOT = Path(__file__).resolve().parent.parent
if ROOT.as_posix() not in sys.path:
    sys.path.insert(0, ROOT.as_posix())

from exambuilder.errors import EvaluationError, StorageError
from exambuilder.evaluator.open_ended import GradingRequest, GradingResponse, parse_grading_response
from exambuilder.models.attempt import AttemptDraft, AttemptRecord
from exambuilder.models.exam import Exam, ExamSettings, Question, QuestionType
from exambuilder.services.api import InMemoryExamBackend
from exambuilder.session.orchestrator import AttemptOrchestrator
from exambuilder.session.persistence import MemoryStorage
from exambuilder.session.store import AttemptStore

EXAM_ID = "exam-1"


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGrader:
    """Returns queued grader payloads (validated like a real service) or raises queued errors."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.requests: list[GradingRequest] = []

    def grade(self, request: GradingRequest) -> GradingResponse:
        self.requests.append(request)
        if not self.payloads:
            raise EvaluationError("no grader response queued")
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return parse_grading_response(payload, request.marks)


class BlockingGrader(FakeGrader):
    """Holds the worker thread until `release` is set."""

    def __init__(self, *payloads):
        super().__init__(*payloads)
        self.started = threading.Event()
        self.release = threading.Event()

    def grade(self, request: GradingRequest) -> GradingResponse:
        self.started.set()
        self.release.wait(timeout=5)
        return super().grade(request)


class FlakyBackend(InMemoryExamBackend):
    """In-memory backend whose attempt insert fails while `fail_create` is set."""

    fail_create = False

    def create_attempt(self, draft: AttemptDraft) -> AttemptRecord:
        if self.fail_create:
            raise StorageError("insert rejected")
        return super().create_attempt(draft)


def make_questions(exam_id: str = EXAM_ID) -> list[Question]:
    return [
        Question(
            id="q1",
            exam_id=exam_id,
            order_index=0,
            type=QuestionType.MULTIPLE_CHOICE,
            question_text="Pick the third option.",
            marks=1,
            options=("A", "B", "C", "D"),
            correct_answer=2,
        ),
        Question(
            id="q2",
            exam_id=exam_id,
            order_index=1,
            type=QuestionType.FILL_IN_BLANK,
            question_text="The capital of France is ___.",
            marks=2,
            correct_answer="Paris",
        ),
        Question(
            id="q3",
            exam_id=exam_id,
            order_index=2,
            type=QuestionType.OPEN_ENDED,
            question_text="Explain photosynthesis.",
            marks=5,
            model_answer="Plants use light energy to turn carbon dioxide and water into glucose and oxygen.",
        ),
    ]


def make_exam(**settings) -> Exam:
    return Exam(id=EXAM_ID, name="Sample exam", subject="Science", settings=ExamSettings(**settings))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def questions():
    return make_questions()


@pytest.fixture
def backend(questions):
    return FlakyBackend(exams=[make_exam()], questions=questions)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def grader():
    return FakeGrader()


@pytest.fixture
def make_orchestrator(backend, storage, clock, grader):
    """Factory so tests can swap any collaborator."""

    def _make(**overrides):
        kwargs = {
            "backend": backend,
            "grader": grader,
            "storage": storage,
            "clock": clock,
        }
        kwargs.update(overrides)
        kwargs.setdefault("store", AttemptStore(clock=kwargs["clock"]))
        return AttemptOrchestrator(EXAM_ID, **kwargs)

    return _make
