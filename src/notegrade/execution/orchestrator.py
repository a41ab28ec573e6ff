"""GradingOrchestrator: auto-grades a submitted attempt answer by answer.

A batch runs in three phases:

1. Load every ungraded answer of the attempt together with its question.
2. Dispatch each answer to the rule registered for its question variant.
   Rules run concurrently on a thread pool bounded by ``max_parallel``
   (content fetches and notation evaluation are blocking).
3. After *all* decisions are in, persist the awards and recompute the
   attempt totals and status exactly once.

Writes are optimistic.  An answer that was re-submitted or hand-graded
while its rule was running is reported as skipped instead of being
overwritten, and the attempt recompute re-reads and retries when it
loses a race.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..config import GraderConfig
from ..exams.base import (
    Answer,
    Attempt,
    AttemptGradingReport,
    AttemptStatus,
    GradeOutcome,
    OutcomeStatus,
    Question,
    utcnow,
)
from ..exams.rules import GradingContext, get_rule
from ..logging import GradingTraceLogger
from ..storage.base import ConcurrentUpdateError, ContentFetcher, NotFoundError, Store

logger = logging.getLogger(__name__)

AUTO_GRADER = "auto"


class InvalidGradeError(ValueError):
    """A manual grade outside ``0..max_points``."""


class GradingOrchestrator:
    """Submission, auto-grading, manual grading and score recomputation."""

    def __init__(
        self,
        store: Store,
        fetcher: ContentFetcher,
        config: GraderConfig | None = None,
        *,
        trace_dir: str | Path | None = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.config = config or GraderConfig()
        self.trace_dir = trace_dir if trace_dir is not None else self.config.trace_dir
        self.context = GradingContext(fetcher=fetcher, config=self.config)
        # Sized to match the semaphore so no decision waits for a thread.
        self._executor = ThreadPoolExecutor(max_workers=max(1, self.config.max_parallel))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_answer(
        self,
        attempt_id: str,
        question_id: str,
        payload: dict[str, Any] | None = None,
        submission_file_path: str | None = None,
        max_points: int | float | None = None,
    ) -> Answer:
        """Create an answer, or replace it and reset it to ungraded.

        A re-submission without a file path keeps the previous one.
        """
        attempt = self.store.get_attempt(attempt_id)
        question = self.store.get_question(question_id)
        existing = self.store.find_answer(attempt_id, question_id)

        if existing is None:
            answer = self.store.add_answer(Answer(
                id=uuid.uuid4().hex,
                attempt_id=attempt_id,
                question_id=question_id,
                payload=dict(payload or {}),
                submission_file_path=submission_file_path,
                max_points=question.points if max_points is None else max_points,
            ))
            logger.info("Answer %s created for question %s", answer.id, question_id)
        else:
            answer = self.store.save_answer(replace(
                existing,
                payload=dict(payload or {}),
                submission_file_path=submission_file_path or existing.submission_file_path,
                max_points=existing.max_points if max_points is None else max_points,
                points_earned=None,
                is_graded=False,
                feedback=None,
                graded_at=None,
                graded_by=None,
            ))
            logger.info("Answer %s re-submitted; reset to ungraded", answer.id)

        if attempt.status is not AttemptStatus.IN_PROGRESS:
            self.recompute_attempt(attempt_id)
        return answer

    def submit_attempt(
        self,
        attempt_id: str,
        time_spent_seconds: int | None = None,
    ) -> AttemptGradingReport:
        """Mark the attempt submitted and grade it."""
        attempt = self.store.get_attempt(attempt_id)
        self.store.save_attempt(replace(
            attempt,
            status=AttemptStatus.SUBMITTED,
            submitted_at=utcnow(),
            time_spent_seconds=time_spent_seconds,
        ))
        logger.info("Attempt %s submitted", attempt_id)
        return self.grade_attempt(attempt_id)

    # ------------------------------------------------------------------
    # Auto-grading
    # ------------------------------------------------------------------

    def grade_attempt(self, attempt_id: str) -> AttemptGradingReport:
        """Synchronous wrapper around ``grade_attempt_async``."""
        return asyncio.run(self.grade_attempt_async(attempt_id))

    async def grade_attempt_async(self, attempt_id: str) -> AttemptGradingReport:
        self.store.get_attempt(attempt_id)
        answers = self.store.list_answers(attempt_id, ungraded_only=True)
        questions = self._load_questions(answers)
        logger.info("Grading %d ungraded answer(s) of attempt %s", len(answers), attempt_id)

        semaphore = asyncio.Semaphore(max(1, self.config.max_parallel))
        loop = asyncio.get_running_loop()

        async def decide_with_sem(answer: Answer) -> GradeOutcome:
            async with semaphore:
                return await loop.run_in_executor(
                    self._executor, self._decide, answer, questions.get(answer.question_id)
                )

        decisions = await asyncio.gather(*[decide_with_sem(a) for a in answers])

        trace = self._open_trace(attempt_id)
        try:
            outcomes = [self._persist(a, o, trace) for a, o in zip(answers, decisions)]
            attempt = self._recompute(attempt_id, trace)
        finally:
            if trace is not None:
                trace.close()

        report = AttemptGradingReport(attempt=attempt, outcomes=outcomes)
        logger.info(
            "Attempt %s: %d graded, %d skipped, %d failed -> %s %s/%s",
            attempt_id, len(report.graded), len(report.skipped), len(report.failed),
            attempt.status.value, attempt.score, attempt.total_points,
        )
        return report

    def _load_questions(self, answers: list[Answer]) -> dict[str, Question]:
        questions: dict[str, Question] = {}
        for answer in answers:
            if answer.question_id in questions:
                continue
            try:
                questions[answer.question_id] = self.store.get_question(answer.question_id)
            except NotFoundError:
                logger.warning("Answer %s references unknown question %s",
                               answer.id, answer.question_id)
        return questions

    def _decide(self, answer: Answer, question: Question | None) -> GradeOutcome:
        """Run the variant's rule; never raises."""
        if question is None:
            return GradeOutcome.failed(answer.id, f"question {answer.question_id} not found")
        try:
            rule = get_rule(question.variant)
        except ValueError as exc:
            return GradeOutcome.failed(answer.id, str(exc))
        try:
            return rule.grade(question, answer, self.context)
        except Exception as exc:
            logger.exception("Rule %s failed on answer %s", rule.name, answer.id)
            return GradeOutcome.failed(answer.id, f"{type(exc).__name__}: {exc}", rule.name)

    def _persist(
        self,
        answer: Answer,
        outcome: GradeOutcome,
        trace: GradingTraceLogger | None,
    ) -> GradeOutcome:
        if outcome.status is OutcomeStatus.GRADED:
            feedback = None
            if outcome.evaluation is not None:
                ev = outcome.evaluation
                feedback = f"{ev.percentage}% ({ev.correct_notes}/{ev.total_notes} notes correct)"
            try:
                self.store.save_answer(replace(
                    answer,
                    points_earned=outcome.points_earned,
                    is_graded=True,
                    feedback=feedback,
                    graded_at=utcnow(),
                    graded_by=AUTO_GRADER,
                ))
            except ConcurrentUpdateError as exc:
                logger.warning("Answer %s changed during grading: %s", answer.id, exc)
                outcome = GradeOutcome.skipped(answer.id, "answer changed during grading", outcome.method)

        if outcome.status is OutcomeStatus.GRADED:
            logger.debug("Answer %s graded: %s/%s", answer.id, outcome.points_earned, answer.max_points)
            _trace(trace, "answer_graded", answer_id=answer.id, points_earned=outcome.points_earned,
                   is_correct=outcome.is_correct, method=outcome.method)
        elif outcome.status is OutcomeStatus.SKIPPED:
            logger.info("Answer %s skipped: %s", answer.id, outcome.reason)
            _trace(trace, "answer_skipped", answer_id=answer.id, reason=outcome.reason,
                   method=outcome.method)
        else:
            logger.error("Answer %s failed: %s", answer.id, outcome.reason)
            _trace(trace, "answer_failed", answer_id=answer.id, reason=outcome.reason,
                   method=outcome.method)
        return outcome

    # ------------------------------------------------------------------
    # Manual grading and recomputation
    # ------------------------------------------------------------------

    def grade_answer_manually(
        self,
        answer_id: str,
        points_earned: int | float,
        feedback: str | None = None,
        grader_id: str | None = None,
    ) -> Answer:
        """Record a human grade and recompute the attempt.

        Raises:
            NotFoundError: unknown answer.
            InvalidGradeError: points outside ``0..max_points``.
            ConcurrentUpdateError: the answer changed while being graded.
        """
        answer = self.store.get_answer(answer_id)
        if not 0 <= points_earned <= answer.max_points:
            raise InvalidGradeError(
                f"points_earned must be between 0 and {answer.max_points}, got {points_earned}"
            )
        saved = self.store.save_answer(replace(
            answer,
            points_earned=points_earned,
            is_graded=True,
            feedback=feedback,
            graded_at=utcnow(),
            graded_by=grader_id,
        ))
        logger.info("Answer %s graded manually by %s: %s/%s",
                    answer_id, grader_id, points_earned, answer.max_points)

        trace = self._open_trace(answer.attempt_id)
        try:
            _trace(trace, "answer_graded", answer_id=answer_id, points_earned=points_earned,
                   is_correct=None, method="manual", grader_id=grader_id)
            self._recompute(answer.attempt_id, trace)
        finally:
            if trace is not None:
                trace.close()
        return saved

    def recompute_attempt(self, attempt_id: str) -> Attempt:
        """Re-derive score, total and status from the attempt's answers."""
        trace = self._open_trace(attempt_id)
        try:
            return self._recompute(attempt_id, trace)
        finally:
            if trace is not None:
                trace.close()

    def _recompute(self, attempt_id: str, trace: GradingTraceLogger | None) -> Attempt:
        retries = max(1, self.config.recompute_retries)
        for attempt_no in range(1, retries + 1):
            attempt = self.store.get_attempt(attempt_id)
            answers = self.store.list_answers(attempt_id)
            if not answers:
                return attempt

            status = (
                AttemptStatus.GRADED
                if all(a.is_graded for a in answers)
                else AttemptStatus.SUBMITTED
            )
            try:
                saved = self.store.save_attempt(replace(
                    attempt,
                    score=sum(a.points_earned or 0 for a in answers),
                    total_points=sum(a.max_points for a in answers),
                    status=status,
                ))
            except ConcurrentUpdateError:
                logger.warning("Recompute of attempt %s lost a race (try %d/%d)",
                               attempt_id, attempt_no, retries)
                continue

            _trace(trace, "attempt_recomputed", score=saved.score,
                   total_points=saved.total_points, status=saved.status.value)
            return saved

        raise ConcurrentUpdateError(
            f"Could not recompute attempt {attempt_id} after {retries} tries"
        )

    # ------------------------------------------------------------------

    def _open_trace(self, attempt_id: str) -> GradingTraceLogger | None:
        if not self.trace_dir:
            return None
        return GradingTraceLogger.for_attempt(self.trace_dir, attempt_id)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "GradingOrchestrator":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def _trace(trace: GradingTraceLogger | None, event_type: str, **data: Any) -> None:
    if trace is not None:
        trace.log(event_type, **data)
