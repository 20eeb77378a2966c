"""Filter and sort hydrated task dicts.

Filters map a field name to a value or list of values and are ANDed across
fields. Sorters are ``{"field", "filter", "order"}`` mappings applied in
priority order; the underlying sort is stable.
"""

from __future__ import annotations

import functools
import re
import unicodedata
from datetime import date, datetime
from typing import Any, Callable, Optional

from loguru import logger

from ..errors import ValidationFailure
from ..utils import end_of_day, format_date, parse_date

DATE_FIELDS = ("created", "updated", "started", "completed", "due")


def normalise_field(name: str) -> str:
    """``countSubTasks``, ``count-sub-tasks`` and ``count_sub_tasks`` all map to ``countsubtasks``."""
    return re.sub(r"[-_\s]", "", str(name)).lower()


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------

def _compile(pattern: Any) -> re.Pattern[str]:
    try:
        return re.compile(str(pattern), re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(str(pattern)), re.IGNORECASE)


def string_matches(patterns: Any, values: Any) -> bool:
    """True if any pattern is found in any value."""
    compiled = [_compile(p) for p in _as_list(patterns)]
    texts = [str(v) for v in _as_list(values) if v is not None]
    return any(p.search(text) for p in compiled for text in texts)


def _is_date_only(value: Any) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def date_matches(filter_value: Any, value: Any) -> bool:
    """A single date matches that calendar day; two or more form an inclusive range."""
    actual = parse_date(value)
    if actual is None:
        return False
    raw = _as_list(filter_value)
    bounds = [parse_date(v) for v in raw]
    if any(b is None for b in bounds) or not bounds:
        raise ValidationFailure(f"Invalid date filter {filter_value!r}")
    if len(bounds) == 1:
        return actual.date() == bounds[0].date()
    latest_index = max(range(len(bounds)), key=lambda i: bounds[i])
    latest = bounds[latest_index]
    if _is_date_only(raw[latest_index]):
        latest = end_of_day(latest)
    return min(bounds) <= actual <= latest


def number_matches(filter_value: Any, value: Any) -> bool:
    """A single number must be equal; two or more form an inclusive ``[min, max]`` range."""
    if value is None:
        return False
    try:
        bounds = [float(v) for v in _as_list(filter_value)]
    except (TypeError, ValueError) as exc:
        raise ValidationFailure(f"Invalid number filter {filter_value!r}") from exc
    if len(bounds) == 1:
        return float(value) == bounds[0]
    return min(bounds) <= float(value) <= max(bounds)


def boolean_matches(filter_value: Any, value: Any) -> bool:
    wanted = filter_value
    if isinstance(wanted, str):
        wanted = wanted.strip().lower() in {"true", "yes", "1"}
    return bool(value) == bool(wanted)


# ---------------------------------------------------------------------------
# Field accessors
# ---------------------------------------------------------------------------

def _assigned(task: dict[str, Any]) -> list[str]:
    assigned = task["metadata"].get("assigned")
    if not assigned:
        return []
    return [str(a) for a in assigned] if isinstance(assigned, list) else [str(assigned)]


def _relation_text(relation: dict[str, Any]) -> str:
    return f"{relation['type']} {relation['task']}".strip()


def _comment_text(comment: dict[str, Any]) -> str:
    return f"{comment['author']} {comment['text']}".strip()


def _custom_field_types(custom_fields: Optional[list[dict[str, Any]]]) -> dict[str, tuple[str, str]]:
    return {normalise_field(f["name"]): (f["name"], f["type"]) for f in custom_fields or []}


def task_matches(
    task: dict[str, Any],
    filters: dict[str, Any],
    custom_fields: Optional[list[dict[str, Any]]] = None,
) -> bool:
    metadata = task["metadata"]
    custom = _custom_field_types(custom_fields)
    for raw_key, wanted in filters.items():
        key = normalise_field(raw_key)
        if key in {"id", "name", "description", "column"}:
            matched = string_matches(wanted, task.get(key))
        elif key in DATE_FIELDS:
            matched = date_matches(wanted, metadata.get(key))
        elif key in {"workload", "progress"}:
            matched = number_matches(wanted, task.get(key))
        elif key == "assigned":
            matched = string_matches(wanted, _assigned(task))
        elif key == "subtask":
            matched = string_matches(wanted, [s["text"] for s in task["sub_tasks"]])
        elif key == "countsubtasks":
            matched = number_matches(wanted, len(task["sub_tasks"]))
        elif key == "tag":
            matched = string_matches(wanted, metadata.get("tags") or [])
        elif key == "counttags":
            matched = number_matches(wanted, len(metadata.get("tags") or []))
        elif key == "relation":
            matched = string_matches(wanted, [_relation_text(r) for r in task["relations"]])
        elif key == "countrelations":
            matched = number_matches(wanted, len(task["relations"]))
        elif key == "comment":
            matched = string_matches(wanted, [_comment_text(c) for c in task["comments"]])
        elif key == "countcomments":
            matched = number_matches(wanted, len(task["comments"]))
        elif key in custom:
            name, field_type = custom[key]
            value = metadata.get(name)
            if field_type == "date":
                matched = date_matches(wanted, value)
            elif field_type == "number":
                matched = number_matches(wanted, value)
            elif field_type == "boolean":
                matched = boolean_matches(wanted, value)
            else:
                matched = value is not None and string_matches(wanted, value)
        else:
            logger.warning("Ignoring unknown filter field {!r}", raw_key)
            continue
        if not matched:
            return False
    return True


def filter_tasks(
    tasks: list[dict[str, Any]],
    filters: dict[str, Any],
    custom_fields: Optional[list[dict[str, Any]]] = None,
) -> list[dict[str, Any]]:
    return [t for t in tasks if task_matches(t, filters, custom_fields)]


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def sort_value(task: dict[str, Any], field: str) -> Any:
    """Value of ``field`` used for sorting; custom metadata fields are looked up last."""
    metadata = task["metadata"]
    key = normalise_field(field)
    accessors: dict[str, Callable[[], Any]] = {
        "id": lambda: task.get("id"),
        "name": lambda: task.get("name"),
        "description": lambda: task.get("description"),
        "column": lambda: task.get("column"),
        "assigned": lambda: ", ".join(_assigned(task)),
        "countsubtasks": lambda: len(task["sub_tasks"]),
        "subtasks": lambda: "\n".join(
            f"[{'x' if s['completed'] else ' '}] {s['text']}" for s in task["sub_tasks"]
        ),
        "counttags": lambda: len(metadata.get("tags") or []),
        "tags": lambda: "\n".join(metadata.get("tags") or []),
        "countrelations": lambda: len(task["relations"]),
        "relations": lambda: "\n".join(_relation_text(r) for r in task["relations"]),
        "countcomments": lambda: len(task["comments"]),
        "comments": lambda: "\n".join(_comment_text(c) for c in task["comments"]),
        "workload": lambda: task.get("workload"),
        "progress": lambda: task.get("progress"),
        "remainingworkload": lambda: task.get("remaining_workload"),
    }
    if key in accessors:
        return accessors[key]()
    if key in DATE_FIELDS:
        return parse_date(metadata.get(key))
    if field in metadata:
        return metadata[field]
    for name, value in metadata.items():
        if normalise_field(name) == key:
            return value
    return None


def apply_sort_filter(value: Any, pattern: str) -> Any:
    """Keep only the regex matches of ``value``; numeric results become numbers.

    Named groups are concatenated, else the first group, else the whole match.
    """
    if value is None:
        return None
    text = format_date(value) if isinstance(value, datetime) else str(value)
    parts = []
    for match in re.finditer(pattern, text, re.IGNORECASE):
        named = match.groupdict()
        if named:
            parts.append("".join(v for v in named.values() if v))
        elif match.re.groups:
            parts.append(match.group(1) or "")
        else:
            parts.append(match.group(0))
    result = "".join(parts)
    try:
        return float(result) if result else result
    except ValueError:
        return result


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def compare_values(a: Any, b: Any) -> int:
    """Type-aware three-way comparison; missing values sort first."""
    if a is None or b is None:
        return (a is not None) - (b is not None)
    if isinstance(a, datetime) and isinstance(b, datetime):
        return (a > b) - (a < b)
    numbers = (int, float)
    if isinstance(a, numbers) and isinstance(b, numbers):
        return (a > b) - (a < b)
    fa, fb = _fold(str(a)), _fold(str(b))
    return (fa > fb) - (fa < fb)


def sort_tasks(tasks: list[dict[str, Any]], sorters: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Stable multi-key sort; the first sorter is the primary key."""
    for sorter in sorters:
        if not sorter.get("field"):
            raise ValidationFailure("Sorter is missing a field")
        if sorter.get("order", "ascending") not in {"ascending", "descending"}:
            raise ValidationFailure(f"Invalid sort order \"{sorter.get('order')}\"")

    def keyed(task: dict[str, Any], sorter: dict[str, Any]) -> Any:
        value = sort_value(task, sorter["field"])
        if sorter.get("filter"):
            value = apply_sort_filter(value, sorter["filter"])
        return value

    def compare(a: dict[str, Any], b: dict[str, Any]) -> int:
        for sorter in sorters:
            result = compare_values(keyed(a, sorter), keyed(b, sorter))
            if result:
                return -result if sorter.get("order") == "descending" else result
        return 0

    return sorted(tasks, key=functools.cmp_to_key(compare))
