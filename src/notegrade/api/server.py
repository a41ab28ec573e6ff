"""notegrade HTTP API (FastAPI).

Routes:
- ``POST /attempts/{attempt_id}/submit``  submit an attempt and auto-grade it
- ``GET  /attempts/{attempt_id}``         attempt with its answers
- ``POST /answers``                       submit or re-submit an answer
- ``POST /answers/{answer_id}/grade``     manual grade
- ``POST /notation/evaluate``             compare two scores directly
- ``GET  /health``

Domain errors map to status codes: unknown rows 404, stale versions 409,
invalid grades 422.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..execution.orchestrator import GradingOrchestrator, InvalidGradeError
from ..notation.align import DEFAULT_TOLERANCE
from ..notation.instruments import transposition_semitones
from ..notation.score import evaluate
from ..storage.base import ConcurrentUpdateError, NotFoundError


class SubmitAttemptRequest(BaseModel):
    time_spent_seconds: int | None = Field(default=None, ge=0)


class SubmitAnswerRequest(BaseModel):
    attempt_id: str
    question_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    submission_file_path: str | None = None
    max_points: float | None = Field(default=None, ge=0)


class ManualGradeRequest(BaseModel):
    points_earned: float
    feedback: str | None = None
    grader_id: str | None = None


class EvaluateRequest(BaseModel):
    reference: str = Field(description="Reference MusicXML document")
    student: str = Field(description="Student MusicXML document")
    semitones: int | None = None
    from_instrument: str | None = None
    to_instrument: str | None = None
    tolerance: float = Field(default=float(DEFAULT_TOLERANCE), ge=0)


def create_app(orchestrator: GradingOrchestrator) -> FastAPI:
    """Build the API around an already-wired orchestrator."""
    app = FastAPI(title="notegrade", version=__version__)
    app.state.orchestrator = orchestrator
    store = orchestrator.store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConcurrentUpdateError)
    async def _conflict(request: Request, exc: ConcurrentUpdateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidGradeError)
    async def _invalid_grade(request: Request, exc: InvalidGradeError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/attempts/{attempt_id}/submit")
    def submit_attempt(attempt_id: str, req: SubmitAttemptRequest) -> dict[str, Any]:
        report = orchestrator.submit_attempt(attempt_id, req.time_spent_seconds)
        return report.to_dict()

    @app.get("/attempts/{attempt_id}")
    def get_attempt(attempt_id: str) -> dict[str, Any]:
        attempt = store.get_attempt(attempt_id)
        return {
            **attempt.to_dict(),
            "answers": [a.to_dict() for a in store.list_answers(attempt_id)],
        }

    @app.post("/answers")
    def submit_answer(req: SubmitAnswerRequest) -> dict[str, Any]:
        answer = orchestrator.submit_answer(
            req.attempt_id,
            req.question_id,
            req.payload,
            submission_file_path=req.submission_file_path,
            max_points=req.max_points,
        )
        return answer.to_dict()

    @app.post("/answers/{answer_id}/grade")
    def grade_answer(answer_id: str, req: ManualGradeRequest) -> dict[str, Any]:
        answer = orchestrator.grade_answer_manually(
            answer_id, req.points_earned, feedback=req.feedback, grader_id=req.grader_id,
        )
        return answer.to_dict()

    @app.post("/notation/evaluate")
    def evaluate_notation(req: EvaluateRequest) -> dict[str, Any]:
        semitones = req.semitones
        if semitones is None and (req.from_instrument or req.to_instrument):
            if not (req.from_instrument and req.to_instrument):
                raise HTTPException(
                    status_code=422,
                    detail="from_instrument and to_instrument must be given together",
                )
            try:
                semitones = transposition_semitones(req.from_instrument, req.to_instrument)
            except KeyError as exc:
                raise HTTPException(status_code=422, detail=str(exc.args[0])) from exc
        result = evaluate(req.reference, req.student, semitones or 0, tolerance=req.tolerance)
        return result.to_dict()

    return app
