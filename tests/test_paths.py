"""Tests for project path resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from mdkanban.config import load_project_config
from mdkanban.paths import (
    ProjectPaths,
    add_file_extension,
    remove_file_extension,
    sanitize_task_id,
)


@pytest.fixture
def paths(tmp_path: Path) -> ProjectPaths:
    return ProjectPaths(load_project_config(tmp_path))


class TestTaskIdHelpers:
    def test_extensions(self) -> None:
        assert add_file_extension("a") == "a.md"
        assert add_file_extension("a.md") == "a.md"
        assert remove_file_extension("a.md") == "a"
        assert remove_file_extension("a.txt") == "a.txt"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("fix-bug", "fix-bug"),
            ("[fix-bug](tasks/fix-bug.md)", "fix-bug"),
            ("  fix-bug.md ", "fix-bug"),
        ],
    )
    def test_sanitize(self, raw: str, expected: str) -> None:
        assert sanitize_task_id(raw) == expected


class TestProjectPaths:
    def test_layout(self, paths: ProjectPaths, tmp_path: Path) -> None:
        root = tmp_path.resolve()
        assert paths.main_folder == root / ".kanbn"
        assert paths.index_path == root / ".kanbn" / "index.md"
        assert paths.lock_path == root / ".kanbn" / "index.md.lock"
        assert paths.task_path("a") == root / ".kanbn" / "tasks" / "a.md"
        assert paths.archived_task_path("a.md") == root / ".kanbn" / "archive" / "a.md"

    def test_listing(self, paths: ProjectPaths) -> None:
        assert paths.list_task_file_ids() == []
        paths.task_folder.mkdir(parents=True)
        for name in ("b.md", "a.md", "notes.txt"):
            (paths.task_folder / name).write_text("# x\n", encoding="utf-8")
        (paths.task_folder / "sub.md").mkdir()
        assert paths.list_task_file_ids() == ["a", "b"]
        assert paths.task_file_exists("a")
        assert not paths.task_file_exists("sub")
        assert paths.list_archived_task_ids() == []
        assert not paths.index_exists()
