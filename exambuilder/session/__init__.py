from exambuilder.session.orchestrator import (
    AttemptOrchestrator,
    Notification,
    QuestionState,
    SessionPhase,
    SubmitCheck,
)
from exambuilder.session.persistence import (
    JsonFileStorage,
    MemoryStorage,
    load_from_local_storage,
    save_to_local_storage,
)
from exambuilder.session.store import AttemptStore

__all__ = [
    "AttemptOrchestrator",
    "AttemptStore",
    "JsonFileStorage",
    "MemoryStorage",
    "Notification",
    "QuestionState",
    "SessionPhase",
    "SubmitCheck",
    "load_from_local_storage",
    "save_to_local_storage",
]
