"""SQLAlchemy-backed ``Store``.

Answers and attempts carry a ``version`` column registered as the
mapper's ``version_id_col``: every UPDATE is issued as
``... WHERE id = :id AND version = :expected`` and a zero row count
surfaces as ``StaleDataError``, which is re-raised as
``ConcurrentUpdateError``.  That closes the read-then-write window when a
re-submission races a manual grade.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..exams.base import Answer, Attempt, AttemptStatus, Question
from .base import ConcurrentUpdateError, NotFoundError, Store

logger = logging.getLogger(__name__)

Base = declarative_base()

# Question columns; everything else a variant carries goes into ``data``.
_QUESTION_COLUMNS = ("id", "points", "text")


class QuestionRow(Base):
    __tablename__ = "questions"
    id = Column(String, primary_key=True)
    variant = Column(String, nullable=False)
    points = Column(Float, default=0)
    text = Column(Text, default="")
    data = Column(JSON, default=dict)


class AttemptRow(Base):
    __tablename__ = "exam_attempts"
    id = Column(String, primary_key=True)
    exam_id = Column(String, index=True)
    student_id = Column(String, index=True)
    status = Column(String, nullable=False)
    score = Column(Float, default=0)
    total_points = Column(Float, default=0)
    started_at = Column(DateTime(timezone=True))
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    time_spent_seconds = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class AnswerRow(Base):
    __tablename__ = "student_answers"
    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, unique=True, index=True, nullable=False)
    attempt_id = Column(String, index=True, nullable=False)
    question_id = Column(String, nullable=False)
    payload = Column(JSON, default=dict)
    submission_file_path = Column(String, nullable=True)
    max_points = Column(Float, default=0)
    points_earned = Column(Float, nullable=True)
    is_graded = Column(Boolean, default=False, nullable=False)
    feedback = Column(Text, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    graded_by = Column(String, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


def _num(value: float | None) -> int | float | None:
    if value is None:
        return None
    return int(value) if float(value).is_integer() else value


# ============================================================================
# Row ↔ dataclass conversion
# ============================================================================

def _question_from_row(row: QuestionRow) -> Question:
    return Question.from_dict({
        **(row.data or {}),
        "id": row.id,
        "variant": row.variant,
        "points": _num(row.points),
        "text": row.text or "",
    })


def _attempt_from_row(row: AttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        exam_id=row.exam_id,
        student_id=row.student_id,
        status=AttemptStatus(row.status),
        score=_num(row.score) or 0,
        total_points=_num(row.total_points) or 0,
        started_at=row.started_at,
        submitted_at=row.submitted_at,
        time_spent_seconds=row.time_spent_seconds,
        version=row.version,
    )


def _answer_from_row(row: AnswerRow) -> Answer:
    return Answer(
        id=row.id,
        attempt_id=row.attempt_id,
        question_id=row.question_id,
        payload=dict(row.payload or {}),
        submission_file_path=row.submission_file_path,
        max_points=_num(row.max_points) or 0,
        points_earned=_num(row.points_earned),
        is_graded=bool(row.is_graded),
        feedback=row.feedback,
        graded_at=row.graded_at,
        graded_by=row.graded_by,
        version=row.version,
    )


def _attempt_values(attempt: Attempt) -> dict[str, Any]:
    return {
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "status": attempt.status.value,
        "score": attempt.score,
        "total_points": attempt.total_points,
        "started_at": attempt.started_at,
        "submitted_at": attempt.submitted_at,
        "time_spent_seconds": attempt.time_spent_seconds,
    }


def _answer_values(answer: Answer) -> dict[str, Any]:
    return {
        "attempt_id": answer.attempt_id,
        "question_id": answer.question_id,
        "payload": answer.payload,
        "submission_file_path": answer.submission_file_path,
        "max_points": answer.max_points,
        "points_earned": answer.points_earned,
        "is_graded": answer.is_graded,
        "feedback": answer.feedback,
        "graded_at": answer.graded_at,
        "graded_by": answer.graded_by,
    }


# ============================================================================
# Store
# ============================================================================

class SqlStore(Store):
    """Relational store over any SQLAlchemy URL."""

    def __init__(self, url: str = "sqlite://", *, create_tables: bool = True, **engine_kwargs: Any):
        if url == "sqlite://" or (url.startswith("sqlite") and ":memory:" in url):
            # One shared connection, otherwise each session sees an empty DB.
            engine_kwargs.setdefault("poolclass", StaticPool)
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        self.engine = create_engine(url, **engine_kwargs)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        if create_tables:
            Base.metadata.create_all(bind=self.engine)
        logger.debug("SqlStore bound to %s", self.engine.url.render_as_string(hide_password=True))

    def _session(self) -> Session:
        return self._sessions()

    # -- reads --------------------------------------------------------------

    def get_question(self, question_id: str) -> Question:
        with self._session() as db:
            row = db.get(QuestionRow, question_id)
            if row is None:
                raise NotFoundError(f"Question {question_id} not found")
            return _question_from_row(row)

    def get_attempt(self, attempt_id: str) -> Attempt:
        with self._session() as db:
            row = db.get(AttemptRow, attempt_id)
            if row is None:
                raise NotFoundError(f"Attempt {attempt_id} not found")
            return _attempt_from_row(row)

    def get_answer(self, answer_id: str) -> Answer:
        with self._session() as db:
            row = self._answer_row(db, answer_id)
            return _answer_from_row(row)

    def list_answers(self, attempt_id: str, *, ungraded_only: bool = False) -> list[Answer]:
        stmt = select(AnswerRow).where(AnswerRow.attempt_id == attempt_id)
        if ungraded_only:
            stmt = stmt.where(AnswerRow.is_graded.is_(False))
        with self._session() as db:
            return [_answer_from_row(r) for r in db.scalars(stmt.order_by(AnswerRow.pk))]

    def find_answer(self, attempt_id: str, question_id: str) -> Answer | None:
        stmt = select(AnswerRow).where(
            AnswerRow.attempt_id == attempt_id,
            AnswerRow.question_id == question_id,
        )
        with self._session() as db:
            row = db.scalars(stmt).first()
            return _answer_from_row(row) if row is not None else None

    # -- inserts ------------------------------------------------------------

    def add_question(self, question: Question) -> Question:
        data = question.to_dict()
        extra = {k: v for k, v in data.items() if k not in _QUESTION_COLUMNS and k != "variant"}
        with self._session() as db, db.begin():
            db.merge(QuestionRow(
                id=question.id,
                variant=question.variant.value,
                points=question.points,
                text=question.text,
                data=extra,
            ))
        return question

    def add_attempt(self, attempt: Attempt) -> Attempt:
        with self._session() as db, db.begin():
            row = AttemptRow(id=attempt.id, **_attempt_values(attempt))
            db.add(row)
            db.flush()
            return _attempt_from_row(row)

    def add_answer(self, answer: Answer) -> Answer:
        with self._session() as db, db.begin():
            if db.get(AttemptRow, answer.attempt_id) is None:
                raise NotFoundError(f"Attempt {answer.attempt_id} not found")
            row = AnswerRow(id=answer.id, **_answer_values(answer))
            db.add(row)
            db.flush()
            return _answer_from_row(row)

    # -- versioned updates --------------------------------------------------
    # The flush issues the version-guarded UPDATE; StaleDataError means
    # another writer committed between our read and our write.

    def save_answer(self, answer: Answer) -> Answer:
        try:
            with self._session() as db, db.begin():
                row = self._answer_row(db, answer.id)
                self._check_version(row.version, answer.version, "Answer", answer.id)
                for key, value in _answer_values(answer).items():
                    setattr(row, key, value)
                db.flush()
                return _answer_from_row(row)
        except StaleDataError as exc:
            raise ConcurrentUpdateError(f"Answer {answer.id} was modified: {exc}") from exc

    def save_attempt(self, attempt: Attempt) -> Attempt:
        try:
            with self._session() as db, db.begin():
                row = db.get(AttemptRow, attempt.id)
                if row is None:
                    raise NotFoundError(f"Attempt {attempt.id} not found")
                self._check_version(row.version, attempt.version, "Attempt", attempt.id)
                for key, value in _attempt_values(attempt).items():
                    setattr(row, key, value)
                db.flush()
                return _attempt_from_row(row)
        except StaleDataError as exc:
            raise ConcurrentUpdateError(f"Attempt {attempt.id} was modified: {exc}") from exc

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _answer_row(db: Session, answer_id: str) -> AnswerRow:
        row = db.scalars(select(AnswerRow).where(AnswerRow.id == answer_id)).first()
        if row is None:
            raise NotFoundError(f"Answer {answer_id} not found")
        return row

    @staticmethod
    def _check_version(current: int, expected: int, kind: str, key: str) -> None:
        if current != expected:
            raise ConcurrentUpdateError(
                f"{kind} {key} was modified (expected version {expected}, found {current})"
            )
