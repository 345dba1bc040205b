"""questlog: learner progress and gamification rules engine."""

from __future__ import annotations

import re
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .activities import LessonStart, ProgressTick, QuizSubmit, StudyTimeTick
from .engine import ActivityOutcome, Engine
from .errors import InvalidInput, InvalidTransition, NotFound, QuestlogError

__all__ = [
    "ActivityOutcome",
    "Engine",
    "InvalidInput",
    "InvalidTransition",
    "LessonStart",
    "NotFound",
    "ProgressTick",
    "QuestlogError",
    "QuizSubmit",
    "StudyTimeTick",
    "__version__",
]


def _version_from_pyproject() -> str | None:
    """Look up the version in a source checkout's pyproject.toml."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.exists():
            continue
        in_project = False
        for line in pyproject.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                in_project = stripped == "[project]"
                continue
            if not in_project:
                continue
            match = re.match(r'^version\s*=\s*"([^"]+)"\s*$', stripped)
            if match:
                return match.group(1)
    return None


_project_version = _version_from_pyproject()
if _project_version is not None:
    __version__ = _project_version
else:
    try:
        __version__ = version("questlog")
    except PackageNotFoundError:
        __version__ = "0+unknown"
