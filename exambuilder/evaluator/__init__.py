from exambuilder.evaluator.exact_eval import (
    calculate_max_marks,
    calculate_total_marks,
    evaluate_deterministic,
    grade_fill_in_blank,
    grade_multiple_choice,
    normalize_answer,
)
from exambuilder.evaluator.open_ended import (
    GradingRequest,
    GradingResponse,
    HttpOpenEndedGrader,
    OpenEndedGrader,
    parse_grading_response,
)

__all__ = [
    "GradingRequest",
    "GradingResponse",
    "HttpOpenEndedGrader",
    "OpenEndedGrader",
    "calculate_max_marks",
    "calculate_total_marks",
    "evaluate_deterministic",
    "grade_fill_in_blank",
    "grade_multiple_choice",
    "normalize_answer",
    "parse_grading_response",
]
