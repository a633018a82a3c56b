"""Offline demo data: used when no hosted backend is configured."""

from __future__ import annotations

from exambuilder.models.exam import Exam, ExamSettings, Question, QuestionType
from exambuilder.services.api import InMemoryExamBackend

DEMO_EXAM_ID = "demo-biology"


def demo_exam() -> Exam:
    return Exam(
        id=DEMO_EXAM_ID,
        name="Cell Biology Check-in",
        subject="Biology",
        course="GCSE | AQA",
        topic="Cell biology",
        sub_topic="Cell structure",
        difficulty="Easy",
        qualification="GCSE",
        board="AQA",
        settings=ExamSettings(timer_enabled=True, timer_minutes=15, reattempts_allowed=3, published=True),
        created_at="2024-01-01T00:00:00+00:00",
    )


def demo_questions() -> list[Question]:
    return [
        Question(
            id="demo-q1",
            exam_id=DEMO_EXAM_ID,
            order_index=0,
            type=QuestionType.MULTIPLE_CHOICE,
            question_text="Which organelle is the site of aerobic respiration?",
            marks=1,
            options=("Nucleus", "Mitochondrion", "Ribosome", "Cell wall"),
            correct_answer=1,
            instruction_text="Choose one answer.",
        ),
        Question(
            id="demo-q2",
            exam_id=DEMO_EXAM_ID,
            order_index=1,
            type=QuestionType.FILL_IN_BLANK,
            question_text="Plant cells have a cell wall made of ___ and store sap in a permanent ___.",
            marks=2,
            correct_answer="cellulose | vacuole",
            instruction_text="Fill in both blanks.",
        ),
        Question(
            id="demo-q3",
            exam_id=DEMO_EXAM_ID,
            order_index=2,
            type=QuestionType.OPEN_ENDED,
            question_text="Explain why a red blood cell has no nucleus.",
            marks=3,
            model_answer=(
                "Without a nucleus the cell has more room for haemoglobin, so it can carry more oxygen. "
                "The biconcave shape also increases the surface area for diffusion."
            ),
            instruction_text="Write two or three sentences.",
        ),
    ]


def demo_backend() -> InMemoryExamBackend:
    return InMemoryExamBackend(exams=[demo_exam()], questions=demo_questions())
