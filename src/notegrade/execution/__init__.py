"""Attempt grading: dispatch, persistence and recomputation."""

from .orchestrator import GradingOrchestrator, InvalidGradeError

__all__ = ["GradingOrchestrator", "InvalidGradeError"]
