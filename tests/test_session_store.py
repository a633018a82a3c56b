"""
Unit tests for exambuilder.session.store and exambuilder.session.persistence.
"""

import json

import pytest

from conftest import EXAM_ID, FakeClock
from exambuilder.models.exam import FillInBlankAnswer, MultipleChoiceAnswer, OpenEndedAnswer
from exambuilder.session.persistence import (
    ATTEMPT_STORAGE_KEY,
    JsonFileStorage,
    MemoryStorage,
    clear_local_storage,
    load_from_local_storage,
    save_to_local_storage,
)
from exambuilder.session.store import AttemptStore


class TestAttemptStore:
    """Tests for AttemptStore."""

    def test_start_attempt_when_called_then_empty_answers_and_clock_time(self):
        """A new attempt is stamped with the injected clock."""
        # Arrange
        store = AttemptStore(clock=FakeClock(100.0))

        # Act
        attempt = store.start_attempt(EXAM_ID)

        # Assert
        assert attempt.answers == {}
        assert attempt.start_time == 100.0
        assert store.current is attempt

    def test_start_attempt_when_one_exists_then_replaced(self):
        """Starting again discards the previous attempt."""
        # Arrange
        store = AttemptStore(clock=FakeClock())
        store.start_attempt(EXAM_ID)
        store.update_answer("q1", MultipleChoiceAnswer(1))

        # Act
        store.start_attempt(EXAM_ID)

        # Assert
        assert store.get_answer("q1") is None

    def test_update_answer_when_repeated_then_last_value_wins(self):
        """Answers are keyed by question id."""
        # Arrange
        store = AttemptStore(clock=FakeClock())
        store.start_attempt(EXAM_ID)

        # Act
        store.update_answer("q2", FillInBlankAnswer("Lyon"))
        store.update_answer("q2", FillInBlankAnswer("Paris"))

        # Assert
        assert store.get_answer("q2") == FillInBlankAnswer("Paris")
        assert len(store.current.answers) == 1

    def test_update_answer_when_no_attempt_then_ignored(self):
        """Without an attempt there is nothing to update."""
        store = AttemptStore(clock=FakeClock())
        store.update_answer("q1", MultipleChoiceAnswer(0))
        assert store.current is None
        assert store.get_answer("q1") is None

    def test_clear_attempt_when_called_then_current_none(self):
        """Clearing drops the attempt."""
        store = AttemptStore(clock=FakeClock())
        store.start_attempt(EXAM_ID)
        store.clear_attempt()
        assert store.current is None


class TestPersistence:
    """Tests for the local persistence bridge."""

    def test_reload_when_saved_then_new_store_reproduces_state(self):
        """A fresh store restores answers and start time exactly."""
        # Arrange
        storage = MemoryStorage()
        store = AttemptStore(clock=FakeClock(123.5))
        store.start_attempt(EXAM_ID)
        store.update_answer("q1", MultipleChoiceAnswer(0))
        store.update_answer("q2", FillInBlankAnswer(("cellulose", "vacuole")))
        store.update_answer("q3", OpenEndedAnswer("Draft"))

        # Act
        assert save_to_local_storage(store, storage) is True
        restored = AttemptStore(clock=FakeClock(999.0))
        found = load_from_local_storage(restored, storage)

        # Assert
        assert found is True
        assert restored.current.answers == store.current.answers
        assert restored.current.start_time == 123.5
        assert restored.current.exam_id == EXAM_ID

    def test_save_when_no_attempt_then_false_and_nothing_written(self):
        """Saving without an attempt is a no-op."""
        storage = MemoryStorage()
        assert save_to_local_storage(AttemptStore(), storage) is False
        assert storage.items == {}

    def test_load_when_nothing_saved_then_false(self):
        """An empty storage restores nothing."""
        store = AttemptStore()
        assert load_from_local_storage(store, MemoryStorage()) is False
        assert store.current is None

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            json.dumps([1, 2]),
            json.dumps({"exam_id": EXAM_ID, "answers": {}}),
            json.dumps({"exam_id": EXAM_ID, "start_time": 1, "answers": {"q1": {"type": "mcq", "answer": "x"}}}),
        ],
    )
    def test_load_when_payload_malformed_then_treated_as_absent(self, raw):
        """Corrupt saved data never crashes loading."""
        # Arrange
        storage = MemoryStorage()
        storage.set_item(ATTEMPT_STORAGE_KEY, raw)
        store = AttemptStore()

        # Act
        found = load_from_local_storage(store, storage)

        # Assert
        assert found is False
        assert store.current is None

    def test_clear_when_saved_then_key_removed(self):
        """Clearing removes the single saved attempt."""
        storage = MemoryStorage()
        storage.set_item(ATTEMPT_STORAGE_KEY, "{}")
        clear_local_storage(storage)
        assert storage.get_item(ATTEMPT_STORAGE_KEY) is None


class TestJsonFileStorage:
    """Tests for the on-disk key/value storage."""

    def test_set_item_when_written_then_survives_new_instance(self, tmp_path):
        """Values persist across instances."""
        # Arrange
        path = tmp_path / "nested" / "storage.json"

        # Act
        JsonFileStorage(path).set_item("k", "v")

        # Assert
        assert JsonFileStorage(path).get_item("k") == "v"

    def test_get_item_when_file_corrupt_then_none(self, tmp_path):
        """Unreadable files behave like empty storage."""
        path = tmp_path / "storage.json"
        path.write_text("{broken", encoding="utf-8")
        assert JsonFileStorage(path).get_item("k") is None

    def test_remove_item_when_present_then_other_keys_kept(self, tmp_path):
        """Removal only drops the given key."""
        # Arrange
        storage = JsonFileStorage(tmp_path / "storage.json")
        storage.set_item("a", "1")
        storage.set_item("b", "2")

        # Act
        storage.remove_item("a")

        # Assert
        assert storage.get_item("a") is None
        assert storage.get_item("b") == "2"
