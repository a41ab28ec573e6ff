"""notegrade - notation evaluation and exam auto-grading."""

__version__ = "0.1.0"

from .notation import EvaluationResult, NoteEvent, evaluate, parse_notes
from .exams.base import Answer, Attempt, AttemptStatus, Question, QuestionVariant
from .storage import ContentFetcher, InMemoryStore, SqlStore, Store
from .config import GraderConfig, load_config
from .execution import GradingOrchestrator, InvalidGradeError

__all__ = [
    "__version__",
    "Answer",
    "Attempt",
    "AttemptStatus",
    "ContentFetcher",
    "EvaluationResult",
    "GraderConfig",
    "GradingOrchestrator",
    "InMemoryStore",
    "InvalidGradeError",
    "NoteEvent",
    "Question",
    "QuestionVariant",
    "SqlStore",
    "Store",
    "evaluate",
    "load_config",
    "parse_notes",
]
