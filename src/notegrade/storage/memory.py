"""In-memory ``Store`` used by tests and embedding callers.

Rows are deep-copied in and out so callers never share state with the
store. All access is serialized by a lock.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from typing import TypeVar

from ..exams.base import Answer, Attempt, Question
from .base import ConcurrentUpdateError, NotFoundError, Store

T = TypeVar("T")


class InMemoryStore(Store):
    """Dict-backed store with optimistic row versioning."""

    def __init__(self) -> None:
        self._questions: dict[str, Question] = {}
        self._attempts: dict[str, Attempt] = {}
        self._answers: dict[str, Answer] = {}
        self._lock = threading.RLock()

    # -- reads --------------------------------------------------------------

    def get_question(self, question_id: str) -> Question:
        with self._lock:
            return _copy(self._get(self._questions, question_id, "Question"))

    def get_attempt(self, attempt_id: str) -> Attempt:
        with self._lock:
            return _copy(self._get(self._attempts, attempt_id, "Attempt"))

    def get_answer(self, answer_id: str) -> Answer:
        with self._lock:
            return _copy(self._get(self._answers, answer_id, "Answer"))

    def list_answers(self, attempt_id: str, *, ungraded_only: bool = False) -> list[Answer]:
        with self._lock:
            return [
                _copy(a)
                for a in self._answers.values()
                if a.attempt_id == attempt_id and not (ungraded_only and a.is_graded)
            ]

    def find_answer(self, attempt_id: str, question_id: str) -> Answer | None:
        with self._lock:
            for a in self._answers.values():
                if a.attempt_id == attempt_id and a.question_id == question_id:
                    return _copy(a)
            return None

    # -- inserts ------------------------------------------------------------

    def add_question(self, question: Question) -> Question:
        with self._lock:
            self._questions[question.id] = _copy(question)
            return _copy(question)

    def add_attempt(self, attempt: Attempt) -> Attempt:
        with self._lock:
            stored = replace(_copy(attempt), version=1)
            self._attempts[attempt.id] = stored
            return _copy(stored)

    def add_answer(self, answer: Answer) -> Answer:
        with self._lock:
            if answer.attempt_id not in self._attempts:
                raise NotFoundError(f"Attempt {answer.attempt_id} not found")
            stored = replace(_copy(answer), version=1)
            self._answers[answer.id] = stored
            return _copy(stored)

    # -- versioned updates --------------------------------------------------

    def save_answer(self, answer: Answer) -> Answer:
        with self._lock:
            self._check_version(self._answers, answer.id, answer.version, "Answer")
            stored = replace(_copy(answer), version=answer.version + 1)
            self._answers[answer.id] = stored
            return _copy(stored)

    def save_attempt(self, attempt: Attempt) -> Attempt:
        with self._lock:
            self._check_version(self._attempts, attempt.id, attempt.version, "Attempt")
            stored = replace(_copy(attempt), version=attempt.version + 1)
            self._attempts[attempt.id] = stored
            return _copy(stored)

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _get(table: dict[str, T], key: str, kind: str) -> T:
        try:
            return table[key]
        except KeyError:
            raise NotFoundError(f"{kind} {key} not found") from None

    def _check_version(self, table: dict, key: str, version: int, kind: str) -> None:
        current = self._get(table, key, kind)
        if current.version != version:
            raise ConcurrentUpdateError(
                f"{kind} {key} was modified (expected version {version}, found {current.version})"
            )


def _copy(obj: T) -> T:
    return copy.deepcopy(obj)
