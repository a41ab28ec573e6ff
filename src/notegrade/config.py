"""Grader configuration.

Values are resolved in order: dataclass defaults, then a YAML file
(``notegrade.yaml`` in the working directory or an explicit path), then
``NOTEGRADE_*`` environment variables.  The CLI loads ``.env`` before
this runs, so a ``.env`` file works too.

The 90 % correctness threshold and round-half-up point conversion are
grading policy and live as constants in ``exams.rules``, not here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_CONFIG_FILE = "notegrade.yaml"
ENV_PREFIX = "NOTEGRADE_"


@dataclass
class GraderConfig:
    """Knobs for the grading orchestrator and its collaborators."""
    alignment_tolerance: float = 0.25   # beats
    max_parallel: int = 8               # concurrent per-answer grading tasks
    fetch_timeout: float = 10.0         # seconds, per object-storage request
    recompute_retries: int = 5          # attempts to win an optimistic-lock race
    storage_base_url: str | None = None  # e.g. https://x.supabase.co/storage/v1/object/public
    reference_bucket: str = "notation-files"
    submission_bucket: str = "student-submissions"
    private_buckets: list[str] = field(default_factory=lambda: ["student-submissions"])
    database_url: str = "sqlite:///notegrade.db"
    trace_dir: str | None = None        # per-attempt JSONL traces when set

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GraderConfig":
        """Build from a dict, ignoring unknown keys and coercing types."""
        cfg = cls()
        for f in fields(cls):
            if f.name in data and data[f.name] is not None:
                setattr(cfg, f.name, _coerce(getattr(cfg, f.name), data[f.name]))
        return cfg

    def merged(self, data: Mapping[str, Any]) -> "GraderConfig":
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update({k: v for k, v in data.items() if v is not None})
        return GraderConfig.from_mapping(current)


def _coerce(default: Any, value: Any) -> Any:
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return list(value)
    return value


def _env_overrides(env: Mapping[str, str]) -> dict[str, str]:
    overrides = {}
    for f in fields(GraderConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in env and env[key] != "":
            overrides[f.name] = env[key]
    return overrides


def load_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> GraderConfig:
    """Resolve configuration from file and environment.

    Args:
        path: YAML file.  Defaults to ``./notegrade.yaml`` if it exists.
        env: Environment mapping (defaults to ``os.environ``).

    Raises:
        FileNotFoundError: if an explicit *path* does not exist.
        ValueError: if the YAML is not a mapping.
    """
    env = os.environ if env is None else env
    cfg = GraderConfig()

    config_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    if path and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")
        cfg = cfg.merged(data)

    return cfg.merged(_env_overrides(env))
