"""Exam Builder application package.

Build, take and grade exams. Multiple-choice and fill-in-blank answers are
graded deterministically; open-ended answers are delegated to an AI grading
service (or a local similarity grader when running offline).
"""

__all__ = ["__version__"]

# Keep version simple; bump when you add features.
__version__ = "0.1.0"
