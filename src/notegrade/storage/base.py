"""Storage interfaces for the relational store and object-storage content.

The orchestrator only ever talks to these two ABCs, so tests can hand it
in-memory fakes and production can hand it SQLAlchemy + HTTP.

Writes are optimistic: ``save_answer`` / ``save_attempt`` compare the
object's ``version`` against the stored row and raise
``ConcurrentUpdateError`` on mismatch.  The returned object carries the
new version.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..exams.base import Answer, Attempt, Question


class StorageError(Exception):
    """Base class for storage failures."""


class NotFoundError(StorageError, KeyError):
    """A referenced row does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class ConcurrentUpdateError(StorageError):
    """The row changed since it was read."""


class ContentUnavailableError(StorageError):
    """Notation content could not be retrieved from object storage."""


class Store(ABC):
    """Questions, answers and attempts."""

    # -- reads --------------------------------------------------------------

    @abstractmethod
    def get_question(self, question_id: str) -> Question:
        ...

    @abstractmethod
    def get_attempt(self, attempt_id: str) -> Attempt:
        ...

    @abstractmethod
    def get_answer(self, answer_id: str) -> Answer:
        ...

    @abstractmethod
    def list_answers(self, attempt_id: str, *, ungraded_only: bool = False) -> list[Answer]:
        """Answers of an attempt, in insertion order."""
        ...

    @abstractmethod
    def find_answer(self, attempt_id: str, question_id: str) -> Answer | None:
        ...

    # -- inserts ------------------------------------------------------------

    @abstractmethod
    def add_question(self, question: Question) -> Question:
        ...

    @abstractmethod
    def add_attempt(self, attempt: Attempt) -> Attempt:
        ...

    @abstractmethod
    def add_answer(self, answer: Answer) -> Answer:
        ...

    # -- versioned updates --------------------------------------------------

    @abstractmethod
    def save_answer(self, answer: Answer) -> Answer:
        """Persist *answer* if its version is current; return it re-versioned."""
        ...

    @abstractmethod
    def save_attempt(self, attempt: Attempt) -> Attempt:
        """Persist *attempt* if its version is current; return it re-versioned."""
        ...


class ContentFetcher(ABC):
    """Reads notation files from object storage."""

    @abstractmethod
    def fetch(self, bucket: str, path: str) -> bytes:
        """Return the raw file contents.

        Raises:
            ContentUnavailableError: on any retrieval failure.
        """
        ...
