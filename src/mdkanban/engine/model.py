"""Index and task entities for the kanban store.

An :class:`Index` holds the project name, free-form options and the ordered
column -> task-id mapping. A :class:`Task` is one unit of work stored in its
own file and identified by a slug derived from its name.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..utils import parse_date, task_id_from_name


# ---------------------------------------------------------------------------
# Task parts
# ---------------------------------------------------------------------------

@dataclass
class SubTask:
    text: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubTask:
        return cls(text=str(data.get("text", "")), completed=bool(data.get("completed", False)))


@dataclass
class Relation:
    """A typed link to another task, e.g. ``blocks`` or ``child-of``."""

    task: str
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"task": self.task, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Relation:
        return cls(task=str(data.get("task", "")), type=str(data.get("type") or ""))


@dataclass
class Comment:
    text: str
    author: str = ""
    date: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "author": self.author, "date": self.date}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            text=str(data.get("text", "")),
            author=str(data.get("author") or ""),
            date=parse_date(data.get("date")),
        )


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    name: str
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    sub_tasks: list[SubTask] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)
    id: Optional[str] = None

    def derived_id(self) -> str:
        return task_id_from_name(self.name)

    @property
    def tags(self) -> list[str]:
        tags = self.metadata.get("tags") or []
        return [str(t) for t in tags] if isinstance(tags, list) else [str(tags)]

    @property
    def assignees(self) -> list[str]:
        assigned = self.metadata.get("assigned")
        if not assigned:
            return []
        if isinstance(assigned, list):
            return [str(a) for a in assigned]
        return [str(assigned)]

    def copy(self) -> Task:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metadata": dict(self.metadata),
            "sub_tasks": [s.to_dict() for s in self.sub_tasks],
            "relations": [r.to_dict() for r in self.relations],
            "comments": [c.to_dict() for c in self.comments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Build a task from a plain mapping; ``subTasks`` is accepted for ``sub_tasks``."""
        sub_tasks = data.get("sub_tasks", data.get("subTasks")) or []
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            metadata=dict(data.get("metadata") or {}),
            sub_tasks=[s if isinstance(s, SubTask) else SubTask.from_dict(s) for s in sub_tasks],
            relations=[
                r if isinstance(r, Relation) else Relation.from_dict(r)
                for r in data.get("relations") or []
            ],
            comments=[
                c if isinstance(c, Comment) else Comment.from_dict(c)
                for c in data.get("comments") or []
            ],
            id=data.get("id"),
        )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

@dataclass
class Index:
    name: str
    description: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    columns: dict[str, list[str]] = field(default_factory=dict)

    def copy(self) -> Index:
        return copy.deepcopy(self)

    def task_ids(self, column: Optional[str] = None) -> list[str]:
        """Tracked task ids in column order, optionally limited to one column."""
        if column is not None:
            return list(self.columns.get(column, []))
        return [task_id for ids in self.columns.values() for task_id in ids]

    def has_task(self, task_id: str) -> bool:
        return self.find_task_column(task_id) is not None

    def find_task_column(self, task_id: str) -> Optional[str]:
        for column, ids in self.columns.items():
            if task_id in ids:
                return column
        return None

    def add_task(self, task_id: str, column: str, position: Optional[int] = None) -> None:
        ids = self.columns.setdefault(column, [])
        if position is None:
            ids.append(task_id)
        else:
            ids.insert(max(0, min(position, len(ids))), task_id)

    def remove_task(self, task_id: str) -> Optional[str]:
        """Remove ``task_id`` from every column; return the column that held it."""
        found = None
        for column, ids in self.columns.items():
            if task_id in ids:
                found = found or column
                self.columns[column] = [i for i in ids if i != task_id]
        return found

    def rename_task(self, task_id: str, new_task_id: str) -> None:
        for column, ids in self.columns.items():
            self.columns[column] = [new_task_id if i == task_id else i for i in ids]

    def option_list(self, key: str) -> list[str]:
        value = self.options.get(key)
        return [str(v) for v in value] if isinstance(value, list) else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "options": dict(self.options),
            "columns": {k: list(v) for k, v in self.columns.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Index:
        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            options=dict(data.get("options") or {}),
            columns={str(k): list(v or []) for k, v in (data.get("columns") or {}).items()},
        )
