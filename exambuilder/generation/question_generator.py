"""AI question generation for the exam builder.

Goal:
  - build a generation prompt from the exam metadata (and optional study material)
  - validate whatever the model returns before anything reaches the database
  - turn the validated payload into `Question` objects numbered after the
    questions the exam already has

Two generators share the same output contract
(`{"questions": [{type, questionText, instructionText, marks, options,
correctOption, modelAnswer}]}`):
  - `HttpQuestionGenerator`: the hosted `generate-questions` function
  - `LocalLlamaQuestionGenerator`: a GGUF model under `models/` via llama.cpp
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol

import requests

from exambuilder.errors import GenerationError
from exambuilder.models.exam import BLANK_MARKER, MAX_OPTIONS, MAX_QUESTION_MARKS, MIN_OPTIONS, Question, QuestionType
from exambuilder.utils.pdf_parser import truncate_text

logger = logging.getLogger(__name__)

MIN_MODEL_ANSWER_LENGTH = 20
ROOT = Path(__file__).resolve().parents[2]
MODELS_DIR = ROOT / "models"

_DIFFICULTY_GUIDELINES = {
    "Easy": "Foundation level: basic recall, simple concepts, straightforward applications",
    "Medium": "Intermediate level: application of concepts, analysis, problem-solving",
    "Hard": "Advanced level: complex analysis, synthesis, evaluation, multi-step problems",
}
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class QuestionGenerationRequest:
    subject: str
    course: str
    topic: str
    difficulty: str = "Medium"
    sub_topic: str = ""
    mcq_count: int = 0
    fib_count: int = 0
    open_count: int = 0
    pdf_text: str = ""

    def __post_init__(self) -> None:
        counts = (self.mcq_count, self.fib_count, self.open_count)
        if any(c < 0 for c in counts):
            raise ValueError("question counts must be non-negative")
        if sum(counts) == 0:
            raise ValueError("ask for at least one question")

    @property
    def total(self) -> int:
        return self.mcq_count + self.fib_count + self.open_count

    @property
    def qualification(self) -> str:
        return self.course.split(" | ")[0].strip()

    @property
    def board(self) -> str:
        parts = self.course.split(" | ")
        return parts[1].strip() if len(parts) > 1 else ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "mcq_count": self.mcq_count,
            "fib_count": self.fib_count,
            "open_count": self.open_count,
            "subject": self.subject,
            "course": self.course,
            "topic": self.topic,
            "sub_topic": self.sub_topic or None,
            "difficulty": self.difficulty,
            "pdf_text": self.pdf_text or None,
        }


def build_generation_prompt(request: QuestionGenerationRequest, *, text_budget: int = 0) -> str:
    topic = request.topic + (f" / {request.sub_topic}" if request.sub_topic else "")
    lines = [
        f"You are an expert examiner writing {request.qualification or 'exam'} questions.",
        "",
        "EXAM DETAILS:",
        f"- Qualification: {request.qualification}",
        f"- Exam board: {request.board or 'any'}",
        f"- Subject: {request.subject}",
        f"- Topic: {topic}",
        f"- Difficulty: {request.difficulty} ({_DIFFICULTY_GUIDELINES.get(request.difficulty, 'mixed')})",
        "",
        f"Generate exactly {request.mcq_count} multiple choice, {request.fib_count} fill-in-the-blank "
        f"and {request.open_count} open-ended questions.",
    ]

    pdf_text = truncate_text(request.pdf_text.strip(), text_budget) if request.pdf_text else ""
    if pdf_text:
        lines += [
            "",
            "Base every question on this study material:",
            "--- STUDY MATERIAL ---",
            pdf_text,
            "--- END STUDY MATERIAL ---",
        ]

    lines += [
        "",
        "FORMAT RULES:",
        "- mcq: exactly 4 options, one clearly correct, `correctOption` is its 0-based index",
        f"- fib: use {BLANK_MARKER} for each blank; put the answer in `modelAnswer`, "
        "separating several blanks with |",
        f"- open: `modelAnswer` is a detailed model answer (at least {MIN_MODEL_ANSWER_LENGTH} characters)",
        f"- marks: an integer between 1 and {MAX_QUESTION_MARKS}",
        "",
        "Return ONLY valid JSON with this schema:",
        '{"questions": [{"type": "mcq|fib|open", "questionText": "...", "instructionText": "...", '
        '"marks": 1, "options": ["a", "b", "c", "d"], "correctOption": 0, "modelAnswer": "..."}]}',
    ]
    return "\n".join(lines)


def _validate_item(item: Any, position: int) -> dict[str, Any]:
    where = f"question {position}"
    if not isinstance(item, dict):
        raise GenerationError(f"{where}: expected an object")

    kind = item.get("type")
    text = item.get("questionText")
    marks = item.get("marks")
    if kind not in {t.value for t in QuestionType}:
        raise GenerationError(f"{where}: invalid question type {kind!r}")
    if not isinstance(text, str) or not text.strip():
        raise GenerationError(f"{where}: missing questionText")
    if isinstance(marks, bool) or not isinstance(marks, int) or not 1 <= marks <= MAX_QUESTION_MARKS:
        raise GenerationError(f"{where}: marks must be an integer between 1 and {MAX_QUESTION_MARKS}")

    model_answer = item.get("modelAnswer")
    if kind == QuestionType.MULTIPLE_CHOICE.value:
        options = item.get("options")
        correct = item.get("correctOption")
        if not isinstance(options, list) or not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
            raise GenerationError(f"{where}: MCQ questions need {MIN_OPTIONS}-{MAX_OPTIONS} options")
        if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
            raise GenerationError(f"{where}: correctOption must index one of the options")
    elif kind == QuestionType.FILL_IN_BLANK.value:
        if BLANK_MARKER not in text:
            raise GenerationError(f"{where}: fill-in-the-blank questions must contain {BLANK_MARKER}")
        if not isinstance(model_answer, str) or not model_answer.strip():
            raise GenerationError(f"{where}: fill-in-the-blank questions must have a modelAnswer")
    else:
        if not isinstance(model_answer, str) or len(model_answer.strip()) < MIN_MODEL_ANSWER_LENGTH:
            raise GenerationError(
                f"{where}: open-ended questions need a model answer of at least {MIN_MODEL_ANSWER_LENGTH} characters"
            )
    return item


def parse_generated_questions(payload: Any, exam_id: str, *, start_index: int = 0) -> list[Question]:
    """Validate a generator payload and build `Question`s numbered from `start_index`."""

    if isinstance(payload, str):
        payload = _load_json(payload)
    if not isinstance(payload, dict) or not isinstance(payload.get("questions"), list):
        raise GenerationError("invalid response structure: missing questions array")

    questions: list[Question] = []
    for offset, raw in enumerate(payload["questions"]):
        item = _validate_item(raw, offset + 1)
        kind = QuestionType(item["type"])
        model_answer = str(item.get("modelAnswer") or "").strip() or None

        if kind is QuestionType.MULTIPLE_CHOICE:
            options = tuple(str(o) for o in item["options"])
            correct_answer: Any = item["correctOption"]
        elif kind is QuestionType.FILL_IN_BLANK:
            options = ()
            correct_answer = model_answer
        else:
            options = ()
            correct_answer = None

        question = Question(
            id=Question.new_id(),
            exam_id=exam_id,
            order_index=start_index + offset,
            type=kind,
            question_text=item["questionText"].strip(),
            marks=item["marks"],
            options=options,
            correct_answer=correct_answer,
            model_answer=model_answer,
            instruction_text=(item.get("instructionText") or None),
        )
        question.validate()
        questions.append(question)
    return questions


def _load_json(text: str) -> Any:
    """Parse JSON, tolerating chatter or code fences around the object."""

    try:
        return json.loads(text)
    except ValueError:
        match = _JSON_BLOCK_RE.search(text)
        if match is None:
            raise GenerationError("generator did not return JSON") from None
        try:
            return json.loads(match.group(0))
        except ValueError as exc:
            raise GenerationError(f"generator returned malformed JSON: {exc}") from exc


class QuestionGenerator(Protocol):
    def generate(self, request: QuestionGenerationRequest) -> dict[str, Any]:
        """Return the raw `{"questions": [...]}` payload."""


class HttpQuestionGenerator:
    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout: float = 120.0,
        session: requests.Session | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("generation endpoint URL is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
            self.headers["apikey"] = api_key

    def generate(self, request: QuestionGenerationRequest) -> dict[str, Any]:
        try:
            response = self.session.post(
                self.endpoint,
                json=request.to_payload(),
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Question generation request failed: %s", exc)
            raise GenerationError(f"generation service unreachable: {exc}") from exc

        if not response.ok:
            logger.error("Question generation returned HTTP %s: %s", response.status_code, response.text[:200])
            raise GenerationError(f"generation service returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise GenerationError("generation service did not return JSON") from exc


def find_local_model(models_dir: Path = MODELS_DIR) -> Path:
    files = sorted(models_dir.glob("*.gguf"))
    if not files:
        raise FileNotFoundError(f"No GGUF model present under {models_dir}. Run scripts/get_model.py.")
    return files[0]


class LocalLlamaQuestionGenerator:
    """Runs generation on a local llama.cpp model (loaded on first use)."""

    def __init__(
        self,
        *,
        model_path: Path | None = None,
        llama: Callable[..., Any] | None = None,
        n_ctx: int = 4096,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        text_budget: int = 0,
    ) -> None:
        self.model_path = model_path
        self.n_ctx = n_ctx
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.text_budget = text_budget
        self._llama = llama

    def _get_llama(self) -> Callable[..., Any]:
        if self._llama is not None:
            return self._llama
        try:
            from llama_cpp import Llama
        except Exception as exc:
            raise RuntimeError("Missing dependency for local generation. Install `llama-cpp-python`.") from exc

        path = self.model_path or find_local_model()
        logger.info("Loading local model from %s", path)
        self._llama = Llama(model_path=str(path), n_ctx=self.n_ctx, verbose=False)
        return self._llama

    def generate(self, request: QuestionGenerationRequest) -> dict[str, Any]:
        llama = self._get_llama()
        prompt = build_generation_prompt(request, text_budget=self.text_budget)
        try:
            response = llama(
                prompt + "\nJSON:\n",
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                stop=["\n\n\n"],
            )
            text = response["choices"][0]["text"]
        except Exception as exc:
            logger.error("Local model generation failed: %s", exc)
            raise GenerationError(f"local model generation failed: {exc}") from exc

        payload = _load_json(text)
        if not isinstance(payload, dict):
            raise GenerationError("local model did not return a JSON object")
        return payload


def generate_questions(
    generator: QuestionGenerator,
    request: QuestionGenerationRequest,
    exam_id: str,
    *,
    start_index: int = 0,
) -> list[Question]:
    """Run a generator and validate its output into numbered questions."""

    payload = generator.generate(request)
    questions = parse_generated_questions(payload, exam_id, start_index=start_index)
    logger.info("Generated %s questions for exam %s", len(questions), exam_id)
    return questions
