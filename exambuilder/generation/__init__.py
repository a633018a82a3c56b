from exambuilder.generation.question_generator import (
    GenerationError,
    HttpQuestionGenerator,
    LocalLlamaQuestionGenerator,
    QuestionGenerationRequest,
    build_generation_prompt,
    generate_questions,
    parse_generated_questions,
)

__all__ = [
    "GenerationError",
    "HttpQuestionGenerator",
    "LocalLlamaQuestionGenerator",
    "QuestionGenerationRequest",
    "build_generation_prompt",
    "generate_questions",
    "parse_generated_questions",
]
