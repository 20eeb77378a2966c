"""File-backed kanban board stored as markdown index and task files."""

from __future__ import annotations

from .codec import ParseResult, build_index, build_task, parse_index, parse_task
from .config import ProjectConfig, load_project_config
from .engine.model import Comment, Index, Relation, SubTask, Task
from .engine.store import Kanbn
from .errors import (
    AlreadyExistsError,
    ConfigError,
    KanbnError,
    NotFoundError,
    NotIndexedError,
    NotInitialisedError,
    ValidationFailure,
)

__version__ = "0.1.0"

__all__ = [
    "AlreadyExistsError",
    "Comment",
    "ConfigError",
    "Index",
    "Kanbn",
    "KanbnError",
    "NotFoundError",
    "NotIndexedError",
    "NotInitialisedError",
    "ParseResult",
    "ProjectConfig",
    "Relation",
    "SubTask",
    "Task",
    "ValidationFailure",
    "build_index",
    "build_task",
    "load_project_config",
    "parse_index",
    "parse_task",
]
