from exambuilder.services.api import ExamBackend, InMemoryExamBackend, RestExamBackend
from exambuilder.services.demo import demo_backend

__all__ = ["ExamBackend", "InMemoryExamBackend", "RestExamBackend", "demo_backend"]
