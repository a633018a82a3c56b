"""Exam / question / attempt backends.

`ExamBackend` is the contract the session core consumes. Two implementations:
  - `InMemoryExamBackend`: tests and the offline demo
  - `RestExamBackend`: the hosted Supabase database through its PostgREST API

Both return questions ordered by `order_index` and attempts newest first, and
both assign `id` + `submitted_at` when an attempt is created.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol
from uuid import uuid4

import requests

from exambuilder.errors import StorageError
from exambuilder.models.attempt import AttemptDraft, AttemptRecord
from exambuilder.models.exam import Exam, Question, sort_questions

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExamBackend(Protocol):
    def get_exam(self, exam_id: str) -> Exam: ...

    def get_questions_by_exam(self, exam_id: str) -> list[Question]: ...

    def save_questions(self, questions: Iterable[Question]) -> list[Question]: ...

    def create_attempt(self, draft: AttemptDraft) -> AttemptRecord: ...

    def get_attempt(self, attempt_id: str) -> AttemptRecord: ...

    def get_attempts_by_exam(self, exam_id: str) -> list[AttemptRecord]: ...


class InMemoryExamBackend:
    def __init__(self, exams: Iterable[Exam] = (), questions: Iterable[Question] = ()) -> None:
        self.exams: dict[str, Exam] = {e.id: e for e in exams}
        self.questions: dict[str, Question] = {q.id: q for q in questions}
        self.attempts: dict[str, AttemptRecord] = {}

    def list_exams(self, *, published_only: bool = True) -> list[Exam]:
        exams = [e for e in self.exams.values() if e.settings.published or not published_only]
        return sorted(exams, key=lambda e: e.created_at or "", reverse=True)

    def add_exam(self, exam: Exam) -> Exam:
        self.exams[exam.id] = exam
        return exam

    def save_questions(self, questions: Iterable[Question]) -> list[Question]:
        saved = []
        for question in questions:
            question.validate()
            self.questions[question.id] = question
            saved.append(question)
        return saved

    def get_exam(self, exam_id: str) -> Exam:
        try:
            return self.exams[exam_id]
        except KeyError:
            raise StorageError(f"exam {exam_id} not found") from None

    def get_questions_by_exam(self, exam_id: str) -> list[Question]:
        return sort_questions([q for q in self.questions.values() if q.exam_id == exam_id])

    def create_attempt(self, draft: AttemptDraft) -> AttemptRecord:
        record = AttemptRecord.from_draft(draft, attempt_id=uuid4().hex, submitted_at=_utc_now_iso())
        self.attempts[record.id] = record
        return record

    def get_attempt(self, attempt_id: str) -> AttemptRecord:
        try:
            return self.attempts[attempt_id]
        except KeyError:
            raise StorageError(f"attempt {attempt_id} not found") from None

    def get_attempts_by_exam(self, exam_id: str) -> list[AttemptRecord]:
        attempts = [a for a in self.attempts.values() if a.exam_id == exam_id]
        return sorted(attempts, key=lambda a: a.submitted_at, reverse=True)


class RestExamBackend:
    """Supabase/PostgREST client (`{base_url}/rest/v1/<table>`)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("backend URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, table: str, **kwargs: Any) -> Any:
        try:
            response = self.session.request(method, self._url(table), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, table, exc)
            raise StorageError(f"{method} {table} failed: {exc}") from exc

        if not response.ok:
            logger.error("%s %s returned HTTP %s: %s", method, table, response.status_code, response.text[:200])
            raise StorageError(f"{method} {table} returned HTTP {response.status_code}")
        if not response.content:
            return None
        return response.json()

    def _single(self, table: str, params: dict[str, str]) -> dict[str, Any]:
        rows = self._request("GET", table, params={**params, "select": "*", "limit": "1"})
        if not rows:
            raise StorageError(f"{table} row not found ({params})")
        return rows[0]

    def list_exams(self, *, published_only: bool = True) -> list[Exam]:
        params = {"select": "*", "order": "created_at.desc"}
        if published_only:
            params["settings->>published"] = "eq.true"
        return [Exam.from_dict(row) for row in self._request("GET", "exams", params=params) or []]

    def get_exam(self, exam_id: str) -> Exam:
        return Exam.from_dict(self._single("exams", {"id": f"eq.{exam_id}"}))

    def get_questions_by_exam(self, exam_id: str) -> list[Question]:
        rows = self._request(
            "GET",
            "questions",
            params={"select": "*", "exam_id": f"eq.{exam_id}", "order": "order_index.asc"},
        )
        return sort_questions([Question.from_dict(row) for row in rows or []])

    def save_questions(self, questions: Iterable[Question]) -> list[Question]:
        payload = []
        for question in questions:
            question.validate()
            payload.append(question.to_dict())
        rows = self._request(
            "POST",
            "questions",
            json=payload,
            headers={"Prefer": "return=representation,resolution=merge-duplicates"},
        )
        return [Question.from_dict(row) for row in rows or []]

    def create_attempt(self, draft: AttemptDraft) -> AttemptRecord:
        rows = self._request(
            "POST",
            "attempts",
            json=draft.to_dict(),
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise StorageError("attempt insert returned no row")
        row = rows[0] if isinstance(rows, list) else rows
        return AttemptRecord.from_dict(row)

    def get_attempt(self, attempt_id: str) -> AttemptRecord:
        return AttemptRecord.from_dict(self._single("attempts", {"id": f"eq.{attempt_id}"}))

    def get_attempts_by_exam(self, exam_id: str) -> list[AttemptRecord]:
        rows = self._request(
            "GET",
            "attempts",
            params={"select": "*", "exam_id": f"eq.{exam_id}", "order": "submitted_at.desc"},
        )
        return [AttemptRecord.from_dict(row) for row in rows or []]
