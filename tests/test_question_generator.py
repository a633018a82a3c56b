"""
Unit tests for exambuilder.generation.question_generator.
"""

import json

import pytest

from exambuilder.errors import GenerationError
from exambuilder.generation.question_generator import (
    HttpQuestionGenerator,
    LocalLlamaQuestionGenerator,
    QuestionGenerationRequest,
    build_generation_prompt,
    generate_questions,
    parse_generated_questions,
)
from exambuilder.models.exam import QuestionType

MCQ = {
    "type": "mcq",
    "questionText": "Which gas do plants release?",
    "instructionText": "Choose one.",
    "marks": 1,
    "options": ["Oxygen", "Nitrogen", "Argon", "Helium"],
    "correctOption": 0,
}
FIB = {
    "type": "fib",
    "questionText": "Photosynthesis happens in the ___.",
    "marks": 1,
    "modelAnswer": "chloroplast",
}
OPEN = {
    "type": "open",
    "questionText": "Describe photosynthesis.",
    "marks": 4,
    "modelAnswer": "Light energy converts carbon dioxide and water into glucose and oxygen.",
}


def request(**overrides):
    fields = {"subject": "Biology", "course": "GCSE | AQA", "topic": "Plants", "mcq_count": 1}
    fields.update(overrides)
    return QuestionGenerationRequest(**fields)


class TestGenerationRequest:
    """Tests for QuestionGenerationRequest and the prompt builder."""

    def test_request_when_no_questions_asked_then_error(self):
        """At least one question must be requested."""
        with pytest.raises(ValueError):
            request(mcq_count=0)

    def test_request_when_course_has_board_then_split(self):
        """Course strings carry qualification and board."""
        req = request()
        assert (req.qualification, req.board) == ("GCSE", "AQA")

    def test_prompt_when_pdf_text_given_then_truncated_material_included(self):
        """Study material is embedded within the text budget."""
        # Arrange
        req = request(pdf_text="word " * 1000)

        # Act
        prompt = build_generation_prompt(req, text_budget=100)

        # Assert
        assert "--- STUDY MATERIAL ---" in prompt
        assert "word " * 30 not in prompt
        assert "Generate exactly 1 multiple choice" in prompt

    def test_prompt_when_no_pdf_then_no_material_block(self):
        """Without material there is no study block."""
        assert "STUDY MATERIAL" not in build_generation_prompt(request())


class TestParseGeneratedQuestions:
    """Tests for parse_generated_questions()."""

    def test_parse_when_valid_payload_then_numbered_questions(self):
        """Questions are numbered after the existing ones."""
        # Act
        questions = parse_generated_questions({"questions": [MCQ, FIB, OPEN]}, "exam-1", start_index=3)

        # Assert
        assert [q.order_index for q in questions] == [3, 4, 5]
        assert [q.type for q in questions] == list(QuestionType)
        assert questions[0].correct_answer == 0
        assert questions[1].correct_answer == "chloroplast"
        assert questions[2].model_answer == OPEN["modelAnswer"]
        assert all(q.exam_id == "exam-1" for q in questions)

    def test_parse_when_json_wrapped_in_text_then_extracted(self):
        """Chatter around the JSON object is tolerated."""
        text = "Here you go:\n```json\n" + json.dumps({"questions": [MCQ]}) + "\n```"
        assert len(parse_generated_questions(text, "exam-1")) == 1

    @pytest.mark.parametrize(
        "item",
        [
            {**MCQ, "options": ["only"]},
            {**MCQ, "correctOption": 4},
            {**MCQ, "type": "essay"},
            {**MCQ, "marks": 0},
            {**FIB, "questionText": "No blank."},
            {**FIB, "modelAnswer": ""},
            {**OPEN, "modelAnswer": "Too short."},
        ],
    )
    def test_parse_when_item_invalid_then_generation_error(self, item):
        """Each question type has its own requirements."""
        with pytest.raises(GenerationError):
            parse_generated_questions({"questions": [item]}, "exam-1")

    def test_parse_when_questions_missing_then_generation_error(self):
        """The payload must hold a questions array."""
        with pytest.raises(GenerationError):
            parse_generated_questions({"items": []}, "exam-1")


class StubResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = ""

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON")
        return self._payload


class StubSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


class TestGenerators:
    """Tests for the HTTP and local generators."""

    def test_http_when_service_ok_then_questions_generated(self):
        """The hosted function receives the request payload."""
        # Arrange
        session = StubSession(StubResponse(payload={"questions": [MCQ]}))
        generator = HttpQuestionGenerator("https://gen.test", session=session)

        # Act
        questions = generate_questions(generator, request(), "exam-1")

        # Assert
        assert session.calls[0][1]["json"]["mcq_count"] == 1
        assert len(questions) == 1

    def test_http_when_service_fails_then_generation_error(self):
        """Non-2xx responses are failures."""
        generator = HttpQuestionGenerator("https://gen.test", session=StubSession(StubResponse(status_code=500)))
        with pytest.raises(GenerationError):
            generator.generate(request())

    def test_local_when_llama_injected_then_completion_parsed(self):
        """The local model output goes through the same validation."""
        # Arrange
        prompts = []

        def fake_llama(prompt, **kwargs):
            prompts.append(prompt)
            return {"choices": [{"text": json.dumps({"questions": [OPEN]})}]}

        generator = LocalLlamaQuestionGenerator(llama=fake_llama)

        # Act
        questions = generate_questions(generator, request(mcq_count=0, open_count=1), "exam-1")

        # Assert
        assert "Biology" in prompts[0]
        assert questions[0].type is QuestionType.OPEN_ENDED

    def test_local_when_completion_not_json_then_generation_error(self):
        """Free text from the model is rejected."""
        generator = LocalLlamaQuestionGenerator(llama=lambda prompt, **kw: {"choices": [{"text": "no idea"}]})
        with pytest.raises(GenerationError):
            generator.generate(request())
