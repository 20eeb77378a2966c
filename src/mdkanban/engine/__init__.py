"""Entities, queries and analytics over a kanban board."""

from __future__ import annotations

from .model import Comment, Index, Relation, SubTask, Task

__all__ = ["Comment", "Index", "Relation", "SubTask", "Task"]
