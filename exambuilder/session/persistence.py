"""Local persistence bridge: save/restore the in-progress attempt.

The storage is a tiny key/value store (a JSON file on disk, or memory in
tests). A single fixed key holds the serialized attempt and is overwritten on
every save, so only one saved attempt exists at a time.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from exambuilder.models.attempt import InProgressAttempt
from exambuilder.session.store import AttemptStore

logger = logging.getLogger(__name__)

ATTEMPT_STORAGE_KEY = "exam_attempt"


class LocalStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class JsonFileStorage:
    """Key/value storage backed by one JSON file (written atomically)."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)


def save_to_local_storage(store: AttemptStore, storage: LocalStorage) -> bool:
    """Write the current attempt under the fixed key. Returns False when there is none."""

    attempt = store.current
    if attempt is None:
        return False
    storage.set_item(ATTEMPT_STORAGE_KEY, json.dumps(attempt.to_dict()))
    return True


def read_saved_attempt(storage: LocalStorage) -> InProgressAttempt | None:
    """Parse the saved attempt. Malformed data is logged and treated as absent."""

    raw = storage.get_item(ATTEMPT_STORAGE_KEY)
    if raw is None:
        return None
    try:
        return InProgressAttempt.from_dict(json.loads(raw))
    except (ValueError, TypeError, KeyError) as exc:
        logger.error("Failed to load attempt from local storage: %s", exc)
        return None


def load_from_local_storage(store: AttemptStore, storage: LocalStorage) -> bool:
    """Restore the saved attempt into `store`. Returns True when one was restored."""

    attempt = read_saved_attempt(storage)
    if attempt is None:
        return False
    store.restore(attempt)
    return True


def clear_local_storage(storage: LocalStorage) -> None:
    storage.remove_item(ATTEMPT_STORAGE_KEY)
