"""Resolve on-disk locations for the index, task files and archive."""

from __future__ import annotations

import re
from pathlib import Path

from .config import ProjectConfig
from .constants import LOCK_SUFFIX, TASK_FILE_EXTENSION

_WRAPPING_CHARS_RE = re.compile(r"[\[\]()]")


def add_file_extension(task_id: str) -> str:
    if task_id.endswith(TASK_FILE_EXTENSION):
        return task_id
    return f"{task_id}{TASK_FILE_EXTENSION}"


def remove_file_extension(task_id: str) -> str:
    if task_id.endswith(TASK_FILE_EXTENSION):
        return task_id[: -len(TASK_FILE_EXTENSION)]
    return task_id


def sanitize_task_id(value: str) -> str:
    """Strip link brackets, directory prefixes and the file extension from a task reference."""
    text = _WRAPPING_CHARS_RE.sub("", str(value)).strip()
    text = text.rsplit("/", 1)[-1]
    return remove_file_extension(text)


class ProjectPaths:
    """Pure path computation plus existence checks; file contents are never cached."""

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config

    @property
    def root(self) -> Path:
        return self.config.root

    @property
    def main_folder(self) -> Path:
        return self.config.root / self.config.main_folder

    @property
    def index_path(self) -> Path:
        return self.main_folder / self.config.index_file

    @property
    def task_folder(self) -> Path:
        return self.main_folder / self.config.task_folder

    @property
    def archive_folder(self) -> Path:
        return self.main_folder / self.config.archive_folder

    @property
    def lock_path(self) -> Path:
        return self.index_path.with_name(self.index_path.name + LOCK_SUFFIX)

    def task_path(self, task_id: str) -> Path:
        return self.task_folder / add_file_extension(task_id)

    def archived_task_path(self, task_id: str) -> Path:
        return self.archive_folder / add_file_extension(task_id)

    def index_exists(self) -> bool:
        return self.index_path.is_file()

    def task_file_exists(self, task_id: str) -> bool:
        return self.task_path(task_id).is_file()

    def archived_task_exists(self, task_id: str) -> bool:
        return self.archived_task_path(task_id).is_file()

    def _list_ids(self, folder: Path) -> list[str]:
        if not folder.is_dir():
            return []
        return sorted(
            remove_file_extension(path.name)
            for path in folder.iterdir()
            if path.is_file() and path.suffix == TASK_FILE_EXTENSION
        )

    def list_task_file_ids(self) -> list[str]:
        return self._list_ids(self.task_folder)

    def list_archived_task_ids(self) -> list[str]:
        return self._list_ids(self.archive_folder)
