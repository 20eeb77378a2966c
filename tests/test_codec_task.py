"""Tests for the task codec (codec/task.py)."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mdkanban.codec import build_task, parse_task
from mdkanban.engine.model import Comment, Relation, SubTask, Task
from mdkanban.errors import ValidationFailure

WHEN = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def task() -> Task:
    return Task(
        name="Fix bug",
        description="Details here.",
        metadata={"created": WHEN, "tags": ["Small", "bug"], "assigned": "alice"},
        sub_tasks=[SubTask("one", True), SubTask("two")],
        relations=[Relation("other-task", "blocks"), Relation("plain")],
        comments=[Comment("Looks good\nSecond line", "bob", WHEN)],
    )


class TestBuildTask:
    def test_layout(self, task: Task) -> None:
        text = build_task(task)
        assert text.startswith("---\ncreated: ")
        assert "# Fix bug\n\nDetails here.\n\n## Sub-tasks\n\n- [x] one\n- [ ] two" in text
        assert "## Relations\n\n- [blocks other-task](other-task.md)\n- [plain](plain.md)" in text
        assert "- author: bob\n  date: 2024-01-02T03:04:05Z\n  Looks good\n  Second line\n" in text

    def test_minimal(self) -> None:
        assert build_task(Task(name="Only")) == "# Only\n"

    def test_none_metadata_dropped(self) -> None:
        assert build_task(Task(name="T", metadata={"column": None})) == "# T\n"

    def test_missing_name(self) -> None:
        with pytest.raises(ValidationFailure, match="Unable to build task: data object is missing name"):
            build_task(Task(name="  "))

    def test_accepts_mapping(self) -> None:
        text = build_task({"name": "T", "subTasks": [{"text": "a", "completed": False}]})
        assert "- [ ] a" in text


class TestParseTask:
    def test_round_trip(self, task: Task) -> None:
        assert parse_task(build_task(task)).value == task

    @pytest.mark.parametrize(
        "comment",
        [
            Comment("author: bob said hi", "", WHEN),
            Comment("date: tomorrow"),
            Comment("Author: x\nmore", "sam"),
        ],
    )
    def test_comment_text_resembling_headers_round_trips(self, comment: Comment) -> None:
        task = Task(name="T", comments=[comment])
        assert parse_task(build_task(task)).value.comments == [comment]

    def test_metadata_heading_merges_with_front_matter_winning(self) -> None:
        text = (
            "---\ntags: [a]\n---\n# T\n\n## Metadata\n\n"
            "```yaml\ntags: [b]\nprogress: 0.5\n```\n"
        )
        task = parse_task(text).value
        assert task.metadata == {"tags": ["a"], "progress": 0.5}

    def test_unknown_sections_kept_in_description(self) -> None:
        task = parse_task("# T\n\nIntro\n\n## Notes\n\nSome notes\n").value
        assert task.description == "Intro\n\n## Notes\n\nSome notes"

    def test_non_list_sub_tasks_degrade(self) -> None:
        result = parse_task("# T\n\n## Sub-tasks\n\nnot a list\n")
        assert result.value.sub_tasks == []
        assert not result.ok

    def test_comment_without_author(self) -> None:
        task = parse_task("# T\n\n## Comments\n\n- just text\n").value
        assert task.comments == [Comment(text="just text")]

    def test_tags_string_becomes_list(self) -> None:
        assert parse_task("---\ntags: solo\n---\n# T\n").value.metadata["tags"] == ["solo"]

    def test_custom_fields_typed(self) -> None:
        fields = [
            {"name": "points", "type": "number"},
            {"name": "flag", "type": "boolean"},
            {"name": "review", "type": "date"},
            {"name": "owner", "type": "string"},
        ]
        text = "---\npoints: '3'\nflag: 'yes'\nreview: 2024-03-01\nowner: 12\n---\n# T\n"
        metadata = parse_task(text, fields).value.metadata
        assert metadata["points"] == 3
        assert metadata["flag"] is True
        assert metadata["review"] == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert metadata["owner"] == "12"

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("", "data is null or empty"),
            ("---\ndue: not-a-date\n---\n# T\n", '"due" must be a date'),
            ("---\nprogress: lots\n---\n# T\n", '"progress" must be a number'),
            ("---\n[1, 2]\n---\n# T\n", "invalid front matter"),
            ("words only", "missing a name heading"),
        ],
    )
    def test_failures(self, text: str, message: str) -> None:
        with pytest.raises(ValidationFailure, match=message):
            parse_task(text)
