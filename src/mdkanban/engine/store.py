"""Kanban store engine: the read-modify-write API over the index and task files.

Every mutation loads the index (and any task files it needs), checks its
preconditions before writing anything, then saves. Mutations run under an
advisory lock on the index file so two writers cannot interleave a
load-modify-save cycle.
"""

from __future__ import annotations

import shutil
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Union

from filelock import FileLock
from loguru import logger

from ..codec import ParseResult, build_index, build_task, parse_index, parse_task
from ..codec.schema import custom_fields, validate_options, validate_sorters
from ..config import ProjectConfig, load_project_config, read_config_options, write_config_options
from ..constants import (
    DEFAULT_COLUMNS,
    DEFAULT_COMPLETED_COLUMNS,
    DEFAULT_PROJECT_NAME,
    DEFAULT_STARTED_COLUMNS,
    LOCK_TIMEOUT,
)
from ..errors import (
    AlreadyExistsError,
    KanbnError,
    NotFoundError,
    NotIndexedError,
    NotInitialisedError,
    ValidationFailure,
)
from ..io_utils import atomic_write_text
from ..paths import ProjectPaths
from ..utils import now_utc, task_id_from_name
from .analytics import SprintSelector, build_burndown, build_status, hydrate_task
from .model import Comment, Index, Task
from .query import filter_tasks, sort_tasks

TaskData = Union[Task, dict[str, Any]]


def _as_task(data: TaskData) -> Task:
    return data.copy() if isinstance(data, Task) else Task.from_dict(data)


def _normalise_sorters(sorters: list[dict[str, Any]]) -> list[dict[str, Any]]:
    normalised = []
    for sorter in sorters:
        entry = {"field": sorter.get("field"), "order": sorter.get("order") or "ascending"}
        if sorter.get("filter"):
            entry["filter"] = sorter["filter"]
        normalised.append(entry)
    validate_sorters(normalised)
    return normalised


class Kanbn:
    """File-backed kanban board rooted at a project directory.

    Parameters
    ----------
    root:
        Project root; the main folder (``.kanbn`` by default) lives inside it.
    clock:
        Returns the current time as an aware UTC datetime. Defaults to the
        system clock.
    """

    def __init__(self, root: Union[str, Path] = ".", clock: Optional[Callable[[], datetime]] = None) -> None:
        self.config: ProjectConfig = load_project_config(Path(root))
        self.paths = ProjectPaths(self.config)
        self._clock = clock or now_utc
        self._lock = FileLock(str(self.paths.lock_path), timeout=LOCK_TIMEOUT)

    # -- internal helpers ---------------------------------------------------

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the index lock; re-entrant, and a no-op before the main folder exists."""
        if not self.paths.main_folder.is_dir():
            yield
            return
        with self._lock:
            yield

    def _require_initialised(self) -> None:
        if not self.initialised():
            raise NotInitialisedError()

    def _check_task_exists(self, index: Index, task_id: str) -> None:
        if not self.paths.task_file_exists(task_id):
            raise NotFoundError(f'No task file found with id "{task_id}"')
        if not index.has_task(task_id):
            raise NotIndexedError(f'No task with id "{task_id}" found in the index')

    def _check_column(self, index: Index, column: str) -> None:
        if column not in index.columns:
            raise NotFoundError(f'Column "{column}" doesn\'t exist')

    def _check_new_id(self, index: Index, task_id: str) -> None:
        if self.paths.task_file_exists(task_id):
            raise AlreadyExistsError(f'A task with id "{task_id}" already exists')
        if index.has_task(task_id):
            raise AlreadyExistsError(f'A task with id "{task_id}" is already in the index')

    def _stamp_column_fields(self, index: Index, task: Task, column: str, now: datetime) -> None:
        """Set started/completed and column-linked date custom fields on entering ``column``."""
        rules = [("started", "once", "startedColumns"), ("completed", "once", "completedColumns")]
        for spec in custom_fields(index.options):
            if spec["type"] == "date" and spec.get("updateDate") in {"always", "once"}:
                rules.append((spec["name"], spec["updateDate"], f"{spec['name']}Columns"))
        for name, mode, option in rules:
            if column in index.option_list(option):
                if mode == "always" or task.metadata.get(name) is None:
                    task.metadata[name] = now

    def _read_text(self, path: Path, what: str) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise KanbnError(f"Couldn't access {what} file: {exc}") from exc

    def _hydrated(self, index: Index, task_ids: list[str]) -> list[dict[str, Any]]:
        now = self._now()
        return [hydrate_task(index, self.load_task(task_id, index), now) for task_id in task_ids]

    def _sorted_column(self, index: Index, column: str, sorters: list[dict[str, Any]]) -> list[str]:
        # Ids without a task file keep their relative order after the sorted ones.
        ids = index.columns[column]
        present = [i for i in ids if self.paths.task_file_exists(i)]
        dangling = [i for i in ids if not self.paths.task_file_exists(i)]
        return [t["id"] for t in sort_tasks(self._hydrated(index, present), sorters)] + dangling

    # -- index and task I/O -------------------------------------------------

    def initialised(self) -> bool:
        return self.paths.index_exists()

    def load_index_result(self) -> ParseResult[Index]:
        """Decode the index, merging options from the config file over its own."""
        self._require_initialised()
        result = parse_index(self._read_text(self.paths.index_path, "index"))
        config_options = read_config_options(self.config)
        if config_options:
            result.value.options = {**result.value.options, **config_options}
        return result

    def load_index(self) -> Index:
        return self.load_index_result().value

    def get_index(self) -> Index:
        return self.load_index()

    def save_index(self, index: Index, ignore_options: bool = False) -> None:
        """Re-apply saved column sorting, then write the index (and config options)."""
        index = index.copy()
        sorting = index.options.get("columnSorting") or {}
        for column, sorters in sorting.items():
            if column in index.columns and sorters:
                index.columns[column] = self._sorted_column(index, column, sorters)
        to_config = self.config.config_path is not None and not ignore_options
        text = build_index(index, ignore_options=ignore_options or to_config)
        if to_config and index.options:
            validate_options(index.options)
        if to_config:
            write_config_options(self.config, index.options)
        atomic_write_text(self.paths.index_path, text)

    def load_task_result(self, task_id: str, index: Optional[Index] = None) -> ParseResult[Task]:
        path = self.paths.task_path(task_id)
        if not path.is_file():
            raise NotFoundError(f'No task file found with id "{task_id}"')
        fields = custom_fields(index.options) if index is not None else None
        result = parse_task(self._read_text(path, "task"), fields)
        result.value.id = task_id
        return result

    def load_task(self, task_id: str, index: Optional[Index] = None) -> Task:
        return self.load_task_result(task_id, index).value

    def save_task(self, task: Task) -> str:
        task_id = task.id or task.derived_id()
        atomic_write_text(self.paths.task_path(task_id), build_task(task))
        return task_id

    def hydrate_task(self, index: Index, task: Task) -> dict[str, Any]:
        return hydrate_task(index, task, self._now())

    # -- lifecycle ----------------------------------------------------------

    def initialise(self, options: Optional[dict[str, Any]] = None) -> None:
        """Create the project, or merge ``options`` into an existing one.

        ``options`` may carry ``name``, ``description``, ``columns`` and
        ``options`` (index settings). Existing column contents are never lost.
        """
        options = dict(options or {})
        self.paths.task_folder.mkdir(parents=True, exist_ok=True)
        with self._locked():
            if not self.initialised():
                index = Index(
                    name=options.get("name") or DEFAULT_PROJECT_NAME,
                    description=options.get("description") or "",
                    options={
                        "startedColumns": list(DEFAULT_STARTED_COLUMNS),
                        "completedColumns": list(DEFAULT_COMPLETED_COLUMNS),
                        **(options.get("options") or {}),
                        **read_config_options(self.config),
                    },
                    columns={c: [] for c in options.get("columns") or DEFAULT_COLUMNS},
                )
                self.save_index(index)
                logger.info("Initialised kanban project {!r} in {}", index.name, self.paths.main_folder)
                return
            if not options:
                return
            index = self.load_index()
            if options.get("name"):
                index.name = options["name"]
            if "description" in options:
                index.description = options["description"] or ""
            for column in options.get("columns") or []:
                index.columns.setdefault(column, [])
            index.options.update(options.get("options") or {})
            self.save_index(index)
            logger.info("Updated kanban project {!r}", index.name)

    def remove_all(self) -> None:
        self._require_initialised()
        shutil.rmtree(self.paths.main_folder)
        logger.info("Removed {}", self.paths.main_folder)

    # -- tasks ----------------------------------------------------------------

    def task_exists(self, task_id: str) -> None:
        """Raise unless ``task_id`` has a task file and is tracked by the index.

        Raises:
            NotFoundError: No task file exists.
            NotIndexedError: The file exists but the id is not in any column.
        """
        self._require_initialised()
        self._check_task_exists(self.load_index(), task_id)

    def find_task_column(self, task_id: str) -> Optional[str]:
        self._require_initialised()
        return self.load_index().find_task_column(task_id)

    def get_task(self, task_id: str) -> Task:
        self._require_initialised()
        index = self.load_index()
        self._check_task_exists(index, task_id)
        return self.load_task(task_id, index)

    def find_tracked_tasks(self, column: Optional[str] = None) -> list[str]:
        self._require_initialised()
        return self.load_index().task_ids(column)

    def find_untracked_tasks(self) -> list[str]:
        self._require_initialised()
        tracked = set(self.load_index().task_ids())
        return [i for i in self.paths.list_task_file_ids() if i not in tracked]

    def create_task(self, data: TaskData, column: str) -> str:
        """Write a new task file and append its id to ``column``.

        Returns:
            The new task id.
        """
        self._require_initialised()
        task = _as_task(data)
        if not task.name or not task.name.strip():
            raise ValidationFailure("Task name cannot be blank")
        task_id = task.derived_id()
        if not task_id:
            raise ValidationFailure(f'Task name "{task.name}" does not produce a valid id')
        with self._locked():
            index = self.load_index()
            if self.paths.task_file_exists(task_id):
                raise AlreadyExistsError(f'A task with id "{task_id}" already exists')
            self._check_column(index, column)
            if index.has_task(task_id):
                raise AlreadyExistsError(f'A task with id "{task_id}" is already in the index')

            now = self._now()
            task.id = task_id
            task.metadata["created"] = now
            self._stamp_column_fields(index, task, column, now)
            self.save_task(task)
            index.add_task(task_id, column)
            self.save_index(index)
        logger.info("Created task {} in column {!r}", task_id, column)
        return task_id

    def add_untracked_task_to_index(self, task_id: str, column: str) -> str:
        self._require_initialised()
        with self._locked():
            index = self.load_index()
            if not self.paths.task_file_exists(task_id):
                raise NotFoundError(f'No task file found with id "{task_id}"')
            self._check_column(index, column)
            if index.has_task(task_id):
                raise AlreadyExistsError(f'A task with id "{task_id}" is already in the index')
            task = self.load_task(task_id, index)
            self._stamp_column_fields(index, task, column, self._now())
            self.save_task(task)
            index.add_task(task_id, column)
            self.save_index(index)
        logger.info("Added untracked task {} to column {!r}", task_id, column)
        return task_id

    def update_task(self, task_id: str, data: TaskData, column: Optional[str] = None) -> str:
        """Replace a task's content; a new name renames it and ``column`` moves it.

        Returns:
            The task id after any rename.
        """
        self._require_initialised()
        task = _as_task(data)
        if not task.name or not task.name.strip():
            raise ValidationFailure("Task name cannot be blank")
        with self._locked():
            index = self.load_index()
            self._check_task_exists(index, task_id)
            if column is not None:
                self._check_column(index, column)
            new_id = task.derived_id()
            if new_id != task_id:
                self._check_new_id(index, new_id)

            existing = self.load_task(task_id, index)
            task.metadata.setdefault("created", existing.metadata.get("created"))
            task.metadata["updated"] = self._now()
            task.id = task_id
            self.save_task(task)
            if new_id != task_id:
                task_id = self.rename_task(task_id, task.name)
            if column is not None:
                self.move_task(task_id, column)
        logger.info("Updated task {}", task_id)
        return task_id

    def rename_task(self, task_id: str, new_name: str) -> str:
        """Rename a task, changing its id, file name and index entry.

        Returns:
            The new task id.
        """
        self._require_initialised()
        if not new_name or not new_name.strip():
            raise ValidationFailure("Task name cannot be blank")
        new_id = task_id_from_name(new_name)
        with self._locked():
            index = self.load_index()
            self._check_task_exists(index, task_id)
            if new_id != task_id:
                self._check_new_id(index, new_id)

            task = self.load_task(task_id, index)
            task.name = new_name
            task.metadata["updated"] = self._now()
            task.id = new_id
            self.save_task(task)
            if new_id != task_id:
                index.rename_task(task_id, new_id)
                self.save_index(index)
                self.paths.task_path(task_id).unlink()
        logger.info("Renamed task {} to {}", task_id, new_id)
        return new_id

    def move_task(
        self,
        task_id: str,
        column: str,
        position: Optional[int] = None,
        relative: bool = False,
    ) -> str:
        """Move a task to ``column`` at ``position`` (clamped).

        With ``relative`` the position is an offset from the task's current
        position when it stays in the same column. Without a position the
        task is appended, or keeps its place if the column is unchanged.
        """
        self._require_initialised()
        with self._locked():
            index = self.load_index()
            self._check_task_exists(index, task_id)
            self._check_column(index, column)

            now = self._now()
            task = self.load_task(task_id, index)
            task.metadata["updated"] = now
            self._stamp_column_fields(index, task, column, now)
            self.save_task(task)

            current_column = index.find_task_column(task_id)
            current_position = index.columns[current_column].index(task_id)
            if position is None and current_column == column:
                position = current_position
            elif position is not None and relative:
                position += current_position if current_column == column else 0
            index.remove_task(task_id)
            index.add_task(task_id, column, position)
            self.save_index(index)
        logger.info("Moved task {} to column {!r}", task_id, column)
        return task_id

    def delete_task(self, task_id: str, remove_file: bool = False) -> str:
        self._require_initialised()
        with self._locked():
            index = self.load_index()
            if index.remove_task(task_id) is not None:
                self.save_index(index)
            if remove_file and self.paths.task_file_exists(task_id):
                self.paths.task_path(task_id).unlink()
        logger.info("Deleted task {}{}", task_id, " and its file" if remove_file else "")
        return task_id

    def comment(self, task_id: str, text: str, author: str = "") -> str:
        self._require_initialised()
        if not text or not text.strip():
            raise ValidationFailure("Comment text cannot be empty")
        with self._locked():
            index = self.load_index()
            self._check_task_exists(index, task_id)
            task = self.load_task(task_id, index)
            task.comments.append(Comment(text=text.strip(), author=author or "", date=self._now()))
            self.save_task(task)
        logger.info("Added comment to task {}", task_id)
        return task_id

    # -- archive ------------------------------------------------------------

    def list_archived_tasks(self) -> list[str]:
        self._require_initialised()
        return self.paths.list_archived_task_ids()

    def archive_task(self, task_id: str) -> str:
        """Move a task file to the archive, recording its column in ``metadata.column``."""
        self._require_initialised()
        with self._locked():
            index = self.load_index()
            self._check_task_exists(index, task_id)
            if self.paths.archived_task_exists(task_id):
                raise AlreadyExistsError(f'An archived task with id "{task_id}" already exists')

            task = self.load_task(task_id, index)
            task.metadata["column"] = index.find_task_column(task_id)
            atomic_write_text(self.paths.archived_task_path(task_id), build_task(task))
            index.remove_task(task_id)
            self.save_index(index)
            self.paths.task_path(task_id).unlink()
        logger.info("Archived task {}", task_id)
        return task_id

    def restore_task(self, task_id: str, column: Optional[str] = None) -> str:
        """Return an archived task to the index.

        The column is ``column`` if given, else the one recorded when the task
        was archived (if it still exists), else the first column.
        """
        self._require_initialised()
        if not self.paths.archive_folder.is_dir():
            raise NotFoundError("Archive folder doesn't exist")
        if not self.paths.archived_task_exists(task_id):
            raise NotFoundError(f'No archived task found with id "{task_id}"')
        with self._locked():
            index = self.load_index()
            if index.has_task(task_id):
                raise AlreadyExistsError(f'There is already an indexed task with id "{task_id}"')
            if self.paths.task_file_exists(task_id):
                raise AlreadyExistsError(f'There is already an untracked task with id "{task_id}"')
            if not index.columns:
                raise ValidationFailure("No columns defined in the index")

            archive_path = self.paths.archived_task_path(task_id)
            task = parse_task(self._read_text(archive_path, "task"), custom_fields(index.options)).value
            task.id = task_id
            recorded = task.metadata.pop("column", None)
            if column is not None:
                self._check_column(index, column)
                target = column
            elif recorded in index.columns:
                target = recorded
            else:
                target = next(iter(index.columns))

            self._stamp_column_fields(index, task, target, self._now())
            self.save_task(task)
            index.add_task(task_id, target)
            self.save_index(index)
            archive_path.unlink()
        logger.info("Restored task {} to column {!r}", task_id, target)
        return task_id

    # -- queries ------------------------------------------------------------

    def search(self, filters: dict[str, Any], quiet: bool = False) -> list[Any]:
        """Tracked tasks matching every filter, as hydrated dicts (or ids when ``quiet``)."""
        self._require_initialised()
        index = self.load_index()
        matches = filter_tasks(self._hydrated(index, index.task_ids()), filters, custom_fields(index.options))
        return [t["id"] for t in matches] if quiet else matches

    def sort(self, column: str, sorters: list[dict[str, Any]], save: bool = False) -> list[str]:
        """Sort a column once, or persist the sorters so every index save re-applies them.

        Returns:
            The column's task ids in their new order.
        """
        self._require_initialised()
        sorters = _normalise_sorters(sorters)
        with self._locked():
            index = self.load_index()
            self._check_column(index, column)
            sorting = dict(index.options.get("columnSorting") or {})
            if save:
                sorting[column] = sorters
            else:
                sorting.pop(column, None)
            if sorting:
                index.options["columnSorting"] = sorting
            else:
                index.options.pop("columnSorting", None)
            index.columns[column] = self._sorted_column(index, column, sorters)
            self.save_index(index)
        logger.info("Sorted column {!r}{}", column, " (saved)" if save else "")
        return index.columns[column]

    def sprint(
        self,
        name: str = "",
        description: str = "",
        start: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Start a new sprint; the name defaults to ``Sprint N``."""
        self._require_initialised()
        with self._locked():
            index = self.load_index()
            sprints = list(index.options.get("sprints") or [])
            sprint: dict[str, Any] = {
                "start": start or self._now(),
                "name": name or f"Sprint {len(sprints) + 1}",
            }
            if description:
                sprint["description"] = description
            index.options["sprints"] = sprints + [sprint]
            self.save_index(index)
        logger.info("Started sprint {!r}", sprint["name"])
        return sprint

    def status(
        self,
        quiet: bool = False,
        untracked: bool = False,
        due: bool = False,
        sprint: Optional[SprintSelector] = None,
        dates: Optional[list[Any]] = None,
    ) -> dict[str, Any]:
        self._require_initialised()
        index = self.load_index()
        tasks = self._hydrated(index, index.task_ids())
        untracked_ids = self.find_untracked_tasks() if untracked else None
        return build_status(index, tasks, self._now(), quiet, untracked_ids, due, sprint, dates)

    def burndown(
        self,
        sprints: Optional[list[SprintSelector]] = None,
        dates: Optional[list[Any]] = None,
        assigned: Optional[str] = None,
        columns: Optional[list[str]] = None,
        normalise: Optional[str] = None,
    ) -> dict[str, Any]:
        self._require_initialised()
        index = self.load_index()
        tasks = self._hydrated(index, index.task_ids())
        return build_burndown(index, tasks, self._now(), sprints, dates, assigned, columns, normalise)

    def validate(self, save: bool = False, strict: bool = False) -> list[dict[str, Any]]:
        """Parse the index and every tracked task, collecting all failures.

        Args:
            save: Re-write every entity that parsed, normalizing its on-disk form.
            strict: Also report decode warnings (degraded columns or sections).

        Returns:
            A list of ``{"task": id or None, "errors": message}`` entries.
        """
        self._require_initialised()
        errors: list[dict[str, Any]] = []
        try:
            result = self.load_index_result()
        except KanbnError as exc:
            logger.debug("Index failed validation: {}", exc)
            return [{"task": None, "errors": str(exc)}]
        index = result.value
        if strict:
            errors.extend({"task": None, "errors": w} for w in result.warnings)

        seen: set[str] = set()
        for task_id in index.task_ids():
            if task_id in seen:
                errors.append({"task": task_id, "errors": f'Task "{task_id}" appears in more than one column'})
                continue
            seen.add(task_id)
            try:
                task_result = self.load_task_result(task_id, index)
            except KanbnError as exc:
                logger.debug("Task {} failed validation: {}", task_id, exc)
                errors.append({"task": task_id, "errors": str(exc)})
                continue
            if strict:
                errors.extend({"task": task_id, "errors": w} for w in task_result.warnings)
            if save:
                self.save_task(task_result.value)
        if save:
            with self._locked():
                self.save_index(index)
        return errors
