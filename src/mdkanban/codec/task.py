"""Convert between task markdown files and :class:`Task` entities."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Union

from loguru import logger

from ..constants import COMMENTS_HEADING, METADATA_HEADING, RELATIONS_HEADING, SUB_TASKS_HEADING
from ..engine.model import Comment, Relation, SubTask, Task
from ..errors import ValidationFailure
from ..io_utils import dump_yaml
from ..paths import add_file_extension, sanitize_task_id
from ..utils import format_date, parse_date
from .markdown import (
    ListItem,
    item_inline_text,
    parse_checkbox,
    parse_list,
    split_front_matter,
    split_sections,
    strip_code_fence,
)
from .result import ParseResult
from .schema import coerce_metadata, load_yaml_mapping

_COMMENT_FIELD_RE = re.compile(r"^(?P<key>author|date):\s*(?P<value>.*)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------

def _parse_relation(item: ListItem) -> Optional[Relation]:
    label = item_inline_text(item.text)
    if not label:
        return None
    parts = label.split()
    return Relation(task=sanitize_task_id(parts[-1]), type=" ".join(parts[:-1]))


def _parse_comment(item: ListItem) -> Comment:
    lines = [item.text, *item.continuation]
    fields: dict[str, str] = {}
    while lines:
        match = _COMMENT_FIELD_RE.match(lines[0].strip())
        if not match or match.group("key").lower() in fields:
            break
        fields[match.group("key").lower()] = match.group("value").strip()
        lines.pop(0)
    return Comment(
        text="\n".join(lines).strip(),
        author=fields.get("author", ""),
        date=parse_date(fields.get("date")),
    )


def _section_items(title: str, body: str, warnings: list[str]) -> list[ListItem]:
    items = parse_list(body)
    if items is None:
        message = f'"{title}" section is not a list'
        logger.warning("Task section degraded to empty: {}", message)
        warnings.append(message)
        return []
    return items


def parse_task(data: Any, fields: Optional[list[dict[str, Any]]] = None) -> ParseResult[Task]:
    """Decode task markdown.

    Args:
        data: Raw task file contents.
        fields: Declared custom fields (``options.customFields``) used to type
            metadata values.

    Raises:
        ValidationFailure: On non-text input, a non-mapping metadata block, a
            missing name heading or metadata values of the wrong type.
    """
    warnings: list[str] = []
    try:
        if data is None or data == "":
            raise ValidationFailure("data is null or empty")
        if not isinstance(data, str):
            raise ValidationFailure("data is not a string")

        front_matter, body = split_front_matter(data)
        metadata = load_yaml_mapping(front_matter, "front matter") if front_matter is not None else {}

        _, sections = split_sections(body)
        if not sections:
            raise ValidationFailure("data is missing a name heading")

        task = Task(name=sections[0].title)
        description = [sections[0].body.strip()]
        for section in sections[1:]:
            if section.title == METADATA_HEADING:
                embedded = load_yaml_mapping(strip_code_fence(section.body), "metadata")
                metadata = {**embedded, **metadata}
            elif section.title == SUB_TASKS_HEADING:
                for item in _section_items(section.title, section.body, warnings):
                    completed, text = parse_checkbox(item.text)
                    if text:
                        task.sub_tasks.append(SubTask(text=text, completed=completed))
            elif section.title == RELATIONS_HEADING:
                for item in _section_items(section.title, section.body, warnings):
                    relation = _parse_relation(item)
                    if relation is not None:
                        task.relations.append(relation)
            elif section.title == COMMENTS_HEADING:
                for item in _section_items(section.title, section.body, warnings):
                    task.comments.append(_parse_comment(item))
            else:
                heading = "#" * section.level + " " + section.title
                description.append(f"{heading}\n\n{section.body}".strip())

        task.description = "\n\n".join(d for d in description if d)
        task.metadata = coerce_metadata(metadata, fields)
    except ValidationFailure as exc:
        raise ValidationFailure(f"Unable to parse task: {exc}") from exc
    return ParseResult(task, warnings)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------

def _metadata_block(metadata: dict[str, Any]) -> Optional[str]:
    cleaned = {k: v for k, v in metadata.items() if v is not None and v != []}
    if not cleaned:
        return None
    return f"---\n{dump_yaml(cleaned)}---"


def _comment_item(comment: Comment) -> str:
    text_lines = comment.text.strip().splitlines()
    # Text that looks like a header line needs both headers written ahead of it.
    guarded = bool(text_lines) and _COMMENT_FIELD_RE.match(text_lines[0].strip()) is not None
    lines = []
    if comment.author or guarded:
        lines.append(f"author: {comment.author}".rstrip())
    if comment.date is not None:
        lines.append(f"date: {format_date(comment.date)}")
    elif guarded:
        lines.append("date:")
    lines.extend(text_lines)
    first, rest = lines[0], lines[1:]
    return "\n".join([f"- {first}", *(f"  {line}" if line else "" for line in rest)])


def build_task(task: Union[Task, Mapping[str, Any]]) -> str:
    """Encode a task as markdown.

    Raises:
        ValidationFailure: If the task has no name.
    """
    if isinstance(task, Mapping):
        task = Task.from_dict(dict(task))
    if not task.name or not task.name.strip():
        raise ValidationFailure("Unable to build task: data object is missing name")

    blocks: list[str] = []
    metadata = _metadata_block(task.metadata)
    if metadata:
        blocks.append(metadata)
    blocks.append(f"# {task.name.strip()}")
    if task.description and task.description.strip():
        blocks.append(task.description.strip())

    if task.sub_tasks:
        blocks.append(f"## {SUB_TASKS_HEADING}")
        blocks.append("\n".join(
            f"- [{'x' if s.completed else ' '}] {s.text.strip()}" for s in task.sub_tasks
        ))
    if task.relations:
        blocks.append(f"## {RELATIONS_HEADING}")
        blocks.append("\n".join(
            f"- [{(r.type + ' ') if r.type else ''}{r.task}]({add_file_extension(r.task)})"
            for r in task.relations
        ))
    comments = [c for c in task.comments if c.text.strip() or c.author or c.date]
    if comments:
        blocks.append(f"## {COMMENTS_HEADING}")
        blocks.append("\n".join(_comment_item(c) for c in comments))
    return "\n\n".join(blocks) + "\n"
