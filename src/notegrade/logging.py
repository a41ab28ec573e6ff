"""JSONL grading traces.

One file per attempt, one JSON object per line.  Event types written by
the orchestrator:

* ``answer_graded``      answer_id, points_earned, is_correct, method
* ``answer_skipped``     answer_id, reason, method
* ``answer_failed``      answer_id, reason, method
* ``attempt_recomputed`` score, total_points, status

Every record also carries ``timestamp`` and ``run_id`` (the attempt id).
"""

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO


@dataclass
class GradingTraceLogger:
    """Appends grading events for one attempt to a JSONL file."""

    output_path: Path
    run_id: str
    _file: TextIO = field(init=False, repr=False)
    _closed: bool = field(init=False, default=False)
    _lock: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)

    def __post_init__(self):
        self.output_path = Path(self.output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.output_path, "a")

    @classmethod
    def for_attempt(cls, trace_dir: str | Path, attempt_id: str) -> "GradingTraceLogger":
        return cls(output_path=Path(trace_dir) / f"attempt_{attempt_id}.jsonl", run_id=attempt_id)

    def log(self, event_type: str, **data: Any) -> None:
        """Log a grading event."""
        record = {
            "timestamp": time.time(),
            "run_id": self.run_id,
            "type": event_type,
            **data,
        }
        self._write(record)

    def _write(self, record: dict) -> None:
        with self._lock:
            if self._closed:
                return
            self._file.write(json.dumps(record, default=str) + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._file.close()
                self._closed = True

    def __enter__(self) -> "GradingTraceLogger":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def read_trace(path: str | Path) -> list[dict]:
    """Load every event of a trace file, skipping blank lines."""
    events = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                events.append(json.loads(line))
    return events
