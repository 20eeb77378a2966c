"""Workload, due-date, sprint, status and burndown calculations.

Everything here works on in-memory entities; the store loads the index and
tasks and passes them in together with the current time.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from ..constants import DEFAULT_TASK_WORKLOAD, DEFAULT_TASK_WORKLOAD_TAGS
from ..errors import NotFoundError, ValidationFailure
from ..utils import EPOCH, end_of_day, humanize_duration, parse_date, start_of_day
from .model import Index, Task

RESOLUTIONS = ("seconds", "minutes", "hours", "days")
EVENT_TYPES = ("created", "started", "completed")

SprintSelector = Union[int, str]


# ---------------------------------------------------------------------------
# Per-task figures
# ---------------------------------------------------------------------------

def task_workload(task: Task, options: dict[str, Any]) -> float:
    """Weight of the first tag with a configured workload, else the default."""
    tags = options.get("taskWorkloadTags")
    if not isinstance(tags, dict):
        tags = DEFAULT_TASK_WORKLOAD_TAGS
    for tag in task.tags:
        if tag in tags:
            return tags[tag]
    default = options.get("defaultTaskWorkload")
    if isinstance(default, (int, float)) and not isinstance(default, bool):
        return default
    return DEFAULT_TASK_WORKLOAD


def task_completed(task: Task, column: Optional[str], options: dict[str, Any]) -> bool:
    completed_columns = options.get("completedColumns") or []
    return (column is not None and column in completed_columns) or bool(task.metadata.get("completed"))


def task_progress(task: Task, column: Optional[str], options: dict[str, Any]) -> float:
    """Progress in ``[0, 1]``.

    A completed task is always 1. Otherwise an explicit ``progress`` metadata
    value wins, then the fraction of completed sub-tasks, then 0.
    """
    if task_completed(task, column, options):
        return 1.0
    explicit = task.metadata.get("progress")
    if isinstance(explicit, (int, float)) and not isinstance(explicit, bool):
        return float(min(max(explicit, 0), 1))
    if task.sub_tasks:
        return sum(1 for s in task.sub_tasks if s.completed) / len(task.sub_tasks)
    return 0.0


def remaining_workload(workload: float, progress: float) -> float:
    # Rounded first so float noise (3 * (1 - 2/3)) does not bump the ceiling.
    # Never more than the workload itself, which may be fractional.
    remaining = math.ceil(round(workload * (1 - progress), 9))
    return max(0, min(workload, remaining))


def due_data(
    task: Task,
    column: Optional[str],
    options: dict[str, Any],
    now: datetime,
) -> Optional[dict[str, Any]]:
    """Due status for a task with a ``due`` date, else None."""
    due = parse_date(task.metadata.get("due"))
    if due is None:
        return None
    completed = task_completed(task, column, options)
    completed_date = parse_date(task.metadata.get("completed"))
    delta = ((completed_date or now) - due).total_seconds()
    message = (
        f"{'Completed ' if completed else ''}"
        f"{humanize_duration(delta)} {'overdue' if delta > 0 else 'remaining'}"
    )
    return {
        "completed": completed,
        "completed_date": completed_date,
        "due_date": due,
        "overdue": not completed and delta > 0,
        "due_delta": delta,
        "due_message": message,
    }


def hydrate_task(index: Index, task: Task, now: datetime) -> dict[str, Any]:
    """Task dict enriched with its column, workload, progress and due status."""
    column = index.find_task_column(task.id) if task.id else None
    workload = task_workload(task, index.options)
    progress = task_progress(task, column, index.options)
    data = task.to_dict()
    data.update(
        column=column,
        workload=workload,
        progress=progress,
        remaining_workload=remaining_workload(workload, progress),
        due_data=due_data(task, column, index.options, now),
    )
    return data


def _assignees(task: dict[str, Any]) -> list[str]:
    assigned = task["metadata"].get("assigned")
    if not assigned:
        return []
    return [str(a) for a in assigned] if isinstance(assigned, list) else [str(assigned)]


def _date_custom_fields(options: dict[str, Any]) -> list[str]:
    fields = options.get("customFields") or []
    return [f["name"] for f in fields if isinstance(f, dict) and f.get("type") == "date"]


# ---------------------------------------------------------------------------
# Sprints and periods
# ---------------------------------------------------------------------------

def _sprints(options: dict[str, Any]) -> list[dict[str, Any]]:
    sprints = []
    for sprint in options.get("sprints") or []:
        start = parse_date(sprint.get("start"))
        if start is None:
            raise ValidationFailure(f'Sprint "{sprint.get("name", "")}" has an invalid start date')
        sprints.append({**sprint, "start": start})
    return sprints


def current_sprint_number(options: dict[str, Any], now: datetime) -> Optional[int]:
    """1-based number of the sprint with the latest start at or before ``now``."""
    sprints = _sprints(options)
    best: Optional[int] = None
    for number, sprint in enumerate(sprints, start=1):
        if sprint["start"] <= now and (best is None or sprint["start"] >= sprints[best - 1]["start"]):
            best = number
    return best


def resolve_sprint(
    options: dict[str, Any],
    selector: Optional[SprintSelector],
    now: datetime,
) -> Optional[dict[str, Any]]:
    """Resolve a sprint by number, name or (with no selector) the current one.

    Returns:
        A dict with ``number``, ``name``, ``description``, ``start``, ``end``,
        ``current`` (the current sprint number) and the duration fields, or
        None when no selector is given and no sprint has started.

    Raises:
        NotFoundError: If sprints are missing or the selector matches none.
    """
    sprints = _sprints(options)
    current = current_sprint_number(options, now)
    if selector is None:
        if current is None:
            return None
        number = current
    elif not sprints:
        raise NotFoundError("No sprints defined")
    elif isinstance(selector, int) and not isinstance(selector, bool):
        if not 1 <= selector <= len(sprints):
            raise NotFoundError(f"Sprint {selector} does not exist")
        number = selector
    else:
        matches = [n for n, s in enumerate(sprints, start=1) if s.get("name") == selector]
        if not matches:
            raise NotFoundError(f'No sprint found with name "{selector}"')
        number = matches[0]

    sprint = sprints[number - 1]
    later = [s["start"] for s in sprints if s["start"] > sprint["start"]]
    end = min(later) if later else now
    delta = (end - sprint["start"]).total_seconds()
    return {
        "number": number,
        "name": sprint.get("name", ""),
        "description": sprint.get("description", ""),
        "start": sprint["start"],
        "end": end,
        "current": current,
        "duration_delta": delta,
        "duration_message": humanize_duration(delta),
    }


def period_window(dates: Iterable[Any]) -> tuple[datetime, datetime]:
    """A single date covers that whole UTC day; several span earliest to latest."""
    parsed = []
    for value in dates:
        dt = parse_date(value)
        if dt is None:
            raise ValidationFailure(f'Invalid date "{value}"')
        parsed.append(dt)
    if not parsed:
        raise ValidationFailure("No dates given")
    if len(parsed) == 1:
        return start_of_day(parsed[0]), end_of_day(parsed[0])
    return min(parsed), max(parsed)


def _in_window(value: Any, start: datetime, end: datetime) -> bool:
    parsed = parse_date(value)
    return parsed is not None and start <= parsed <= end


def period_buckets(
    tasks: list[dict[str, Any]],
    start: datetime,
    end: datetime,
    options: dict[str, Any],
) -> dict[str, dict[str, Any]]:
    """Tasks whose created/started/completed/due (or date custom field) falls in the window."""
    buckets = {}
    for key in ("created", "started", "completed", "due", *_date_custom_fields(options)):
        matched = [task for task in tasks if _in_window(task["metadata"].get(key), start, end)]
        buckets[key] = {
            "tasks": [
                {"id": t["id"], "column": t["column"], "workload": t["workload"]} for t in matched
            ],
            "count": len(matched),
            "workload": sum(t["workload"] for t in matched),
        }
    return buckets


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def build_status(
    index: Index,
    tasks: list[dict[str, Any]],
    now: datetime,
    quiet: bool = False,
    untracked: Optional[list[str]] = None,
    due: bool = False,
    sprint: Optional[SprintSelector] = None,
    dates: Optional[list[Any]] = None,
) -> dict[str, Any]:
    """Aggregate project statistics from hydrated tasks."""
    options = index.options
    result: dict[str, Any] = {
        "name": index.name,
        "tasks": len(tasks),
        "column_tasks": {column: len(ids) for column, ids in index.columns.items()},
    }
    if untracked is not None:
        result["untracked_tasks"] = list(untracked)
    if quiet:
        return result

    by_column: dict[str, list[dict[str, Any]]] = {column: [] for column in index.columns}
    for task in tasks:
        by_column.setdefault(task["column"], []).append(task)

    for key, option in (("started_tasks", "startedColumns"), ("completed_tasks", "completedColumns")):
        columns = options.get(option)
        if isinstance(columns, list) and columns:
            result[key] = sum(len(index.columns.get(c, [])) for c in columns)

    if due:
        result["due_tasks"] = [
            {
                "task": t["id"],
                "workload": t["workload"],
                "progress": t["progress"],
                "remaining_workload": t["remaining_workload"],
                **t["due_data"],
            }
            for t in tasks
            if t["due_data"] is not None
        ]

    result["total_workload"] = sum(t["workload"] for t in tasks)
    result["total_remaining_workload"] = sum(t["remaining_workload"] for t in tasks)
    result["column_workloads"] = {
        column: {
            "workload": sum(t["workload"] for t in column_tasks),
            "remaining_workload": sum(t["remaining_workload"] for t in column_tasks),
        }
        for column, column_tasks in by_column.items()
        if column in index.columns
    }
    result["task_workloads"] = {
        t["id"]: {
            "workload": t["workload"],
            "progress": t["progress"],
            "remaining_workload": t["remaining_workload"],
        }
        for t in tasks
    }

    assigned: dict[str, dict[str, Any]] = {}
    for task in tasks:
        for user in _assignees(task):
            entry = assigned.setdefault(user, {"total": 0, "workload": 0, "remaining_workload": 0})
            entry["total"] += 1
            entry["workload"] += task["workload"]
            entry["remaining_workload"] += task["remaining_workload"]
    result["assigned"] = assigned

    if sprint is not None or options.get("sprints"):
        resolved = resolve_sprint(options, sprint, now)
        if resolved is not None:
            resolved.update(period_buckets(tasks, resolved["start"], resolved["end"], options))
            result["sprint"] = resolved

    if dates:
        start, end = period_window(dates)
        result["period"] = {"start": start, "end": end, **period_buckets(tasks, start, end, options)}
    return result


# ---------------------------------------------------------------------------
# Burndown
# ---------------------------------------------------------------------------

def normalise_date(value: datetime, resolution: str) -> datetime:
    if resolution == "days":
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    if resolution == "hours":
        return value.replace(minute=0, second=0, microsecond=0)
    if resolution == "minutes":
        return value.replace(second=0, microsecond=0)
    if resolution == "seconds":
        return value.replace(microsecond=0)
    raise ValidationFailure(f'Invalid normalisation "{resolution}"')


def auto_resolution(start: datetime, end: datetime) -> str:
    span = end - start
    if span >= timedelta(days=7):
        return "days"
    if span >= timedelta(days=1):
        return "hours"
    if span >= timedelta(hours=1):
        return "minutes"
    return "seconds"


def _timeline(task: dict[str, Any], options: dict[str, Any]) -> dict[str, Optional[datetime]]:
    """Created/started/completed instants; column membership stands in for missing dates."""
    metadata = task["metadata"]
    created = parse_date(metadata.get("created")) or EPOCH
    started = parse_date(metadata.get("started"))
    completed = parse_date(metadata.get("completed"))
    if started is None and task["column"] in (options.get("startedColumns") or []):
        started = created
    if completed is None and task["column"] in (options.get("completedColumns") or []):
        completed = created
    return {"created": created, "started": started, "completed": completed}


def _windows(
    options: dict[str, Any],
    timelines: list[dict[str, Optional[datetime]]],
    sprints: Optional[list[SprintSelector]],
    dates: Optional[list[Any]],
    now: datetime,
) -> list[dict[str, Any]]:
    windows: list[dict[str, Any]] = []
    for selector in sprints or []:
        sprint = resolve_sprint(options, selector, now)
        windows.append({"sprint": sprint, "from": sprint["start"], "to": sprint["end"]})
    if dates:
        parsed = [parse_date(d) for d in dates]
        if any(d is None for d in parsed):
            raise ValidationFailure("Invalid date in burndown dates")
        if len(parsed) == 1:
            windows.append({"sprint": None, "from": parsed[0], "to": now})
        else:
            windows.append({"sprint": None, "from": min(parsed), "to": max(parsed)})
    if windows:
        return windows
    current = resolve_sprint(options, None, now)
    if current is not None:
        return [{"sprint": current, "from": current["start"], "to": current["end"]}]
    instants = [v for t in timelines for v in t.values() if v is not None]
    return [{"sprint": None, "from": min(instants, default=now), "to": now}]


def build_burndown(
    index: Index,
    tasks: list[dict[str, Any]],
    now: datetime,
    sprints: Optional[list[SprintSelector]] = None,
    dates: Optional[list[Any]] = None,
    assigned: Optional[str] = None,
    columns: Optional[list[str]] = None,
    normalise: Optional[str] = None,
) -> dict[str, Any]:
    """Workload of active tasks sampled at window edges and at every task event.

    A task is active at ``x`` once created and until completed.
    """
    options = index.options
    if assigned is not None:
        tasks = [t for t in tasks if assigned in _assignees(t)]
    if columns:
        tasks = [t for t in tasks if t["column"] in columns]
    timelines = [_timeline(t, options) for t in tasks]
    windows = _windows(options, timelines, sprints, dates, now)

    resolution = None
    if normalise:
        resolution = auto_resolution(windows[0]["from"], windows[0]["to"]) if normalise == "auto" else normalise
        if resolution not in RESOLUTIONS:
            raise ValidationFailure(f'Invalid normalisation "{normalise}"')
        timelines = [
            {k: normalise_date(v, resolution) if v is not None else None for k, v in t.items()}
            for t in timelines
        ]

    series = []
    for window in windows:
        start, end = window["from"], window["to"]
        if resolution:
            start, end = normalise_date(start, resolution), normalise_date(end, resolution)
        instants = {start, end}
        for timeline in timelines:
            instants.update(v for v in timeline.values() if v is not None and start <= v <= end)

        data_points = []
        for x in sorted(instants):
            active = [
                task for task, t in zip(tasks, timelines)
                if t["created"] <= x and (t["completed"] is None or t["completed"] > x)
            ]
            events = [
                {"type": event, "task": task["id"]}
                for task, t in zip(tasks, timelines)
                for event in EVENT_TYPES
                if t[event] == x
            ]
            data_points.append({
                "x": x,
                "y": sum(task["workload"] for task in active),
                "count": len(active),
                "events": events,
            })
        series.append({"sprint": window["sprint"], "from": start, "to": end, "data_points": data_points})
    return {"resolution": resolution, "series": series}
