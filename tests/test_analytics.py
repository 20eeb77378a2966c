"""Tests for workload, due, sprint, status and burndown analytics (engine/analytics.py)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from mdkanban.engine.analytics import (
    auto_resolution,
    build_burndown,
    build_status,
    due_data,
    hydrate_task,
    normalise_date,
    period_window,
    remaining_workload,
    resolve_sprint,
    task_progress,
    task_workload,
)
from mdkanban.engine.model import Index, SubTask, Task
from mdkanban.errors import NotFoundError

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def _day(day: int, hour: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Per-task figures
# ---------------------------------------------------------------------------

class TestWorkload:
    def test_first_matching_tag(self) -> None:
        task = Task(name="t", metadata={"tags": ["misc", "Large", "Tiny"]})
        assert task_workload(task, {}) == 5

    def test_configured_tags(self) -> None:
        task = Task(name="t", metadata={"tags": ["Large", "Epic"]})
        assert task_workload(task, {"taskWorkloadTags": {"Epic": 13}}) == 13

    def test_default_option_then_constant(self) -> None:
        task = Task(name="t")
        assert task_workload(task, {"defaultTaskWorkload": 7}) == 7
        assert task_workload(task, {}) == 2

    def test_remaining(self) -> None:
        assert remaining_workload(3, 2 / 3) == 1
        assert remaining_workload(5, 1.0) == 0
        assert remaining_workload(2, 0.0) == 2
        assert remaining_workload(5, 0.5) == 3

    @pytest.mark.parametrize("workload", [1, 2.5, 3, 0.4, 8])
    @pytest.mark.parametrize("progress", [0.0, 0.1, 1 / 3, 0.5, 0.99, 1.0])
    def test_remaining_bounded_by_workload(self, workload: float, progress: float) -> None:
        remaining = remaining_workload(workload, progress)
        assert 0 <= remaining <= workload
        assert (remaining == 0) == (progress == 1.0)

    def test_fractional_default_workload(self) -> None:
        index = Index(name="p", options={"defaultTaskWorkload": 2.5}, columns={"Todo": ["t"]})
        hydrated = hydrate_task(index, Task(name="t", id="t"), NOW)
        assert hydrated["workload"] == 2.5
        assert hydrated["remaining_workload"] == 2.5


class TestProgress:
    def test_sub_task_fraction(self) -> None:
        task = Task(name="t", sub_tasks=[SubTask("a", True), SubTask("b"), SubTask("c"), SubTask("d", True)])
        assert task_progress(task, "Todo", {}) == 0.5

    def test_completed_column_is_done(self) -> None:
        task = Task(name="t", sub_tasks=[SubTask("a")])
        assert task_progress(task, "Done", {"completedColumns": ["Done"]}) == 1.0

    def test_completed_metadata_is_done(self) -> None:
        assert task_progress(Task(name="t", metadata={"completed": NOW}), "Todo", {}) == 1.0

    def test_explicit_progress_clamped(self) -> None:
        assert task_progress(Task(name="t", metadata={"progress": 0.25}), None, {}) == 0.25
        assert task_progress(Task(name="t", metadata={"progress": 3}), None, {}) == 1.0

    def test_nothing_known(self) -> None:
        assert task_progress(Task(name="t"), "Todo", {}) == 0.0


class TestDueData:
    def test_no_due_date(self) -> None:
        assert due_data(Task(name="t"), "Todo", {}, NOW) is None

    def test_overdue(self) -> None:
        data = due_data(Task(name="t", metadata={"due": NOW - timedelta(days=2)}), "Todo", {}, NOW)
        assert data is not None
        assert data["overdue"] is True
        assert data["due_message"] == "2 days overdue"

    def test_remaining(self) -> None:
        data = due_data(Task(name="t", metadata={"due": NOW + timedelta(days=3)}), "Todo", {}, NOW)
        assert data is not None
        assert data["overdue"] is False
        assert data["due_message"] == "3 days remaining"

    def test_completed_uses_completed_date(self) -> None:
        task = Task(name="t", metadata={"due": NOW, "completed": NOW - timedelta(days=1)})
        data = due_data(task, "Todo", {}, NOW)
        assert data is not None
        assert data["completed"] is True
        assert data["overdue"] is False
        assert data["due_message"] == "Completed 1 day remaining"

    def test_completed_late_is_not_overdue(self) -> None:
        data = due_data(Task(name="t", metadata={"due": NOW - timedelta(days=1)}), "Done", {"completedColumns": ["Done"]}, NOW)
        assert data is not None
        assert data["overdue"] is False


# ---------------------------------------------------------------------------
# Sprints and periods
# ---------------------------------------------------------------------------

SPRINTS = {
    "sprints": [
        {"start": _day(1), "name": "One"},
        {"start": _day(15), "name": "Two", "description": "second"},
        {"start": datetime(2024, 2, 1, tzinfo=timezone.utc), "name": "Future"},
    ]
}


class TestSprints:
    def test_current_is_latest_started(self) -> None:
        sprint = resolve_sprint(SPRINTS, None, NOW)
        assert sprint is not None
        assert sprint["number"] == 2
        assert sprint["current"] == 2
        assert sprint["end"] == datetime(2024, 2, 1, tzinfo=timezone.utc)

    def test_by_number_ends_at_next_start(self) -> None:
        sprint = resolve_sprint(SPRINTS, 1, NOW)
        assert sprint is not None
        assert sprint["name"] == "One"
        assert sprint["end"] == _day(15)
        assert sprint["duration_message"] == "2 weeks"

    def test_by_name(self) -> None:
        sprint = resolve_sprint(SPRINTS, "Two", NOW)
        assert sprint is not None
        assert sprint["description"] == "second"

    def test_last_sprint_ends_now(self) -> None:
        sprint = resolve_sprint({"sprints": SPRINTS["sprints"][:2]}, None, NOW)
        assert sprint is not None
        assert sprint["end"] == NOW

    def test_errors(self) -> None:
        with pytest.raises(NotFoundError, match="Sprint 9 does not exist"):
            resolve_sprint(SPRINTS, 9, NOW)
        with pytest.raises(NotFoundError, match='No sprint found with name "Nope"'):
            resolve_sprint(SPRINTS, "Nope", NOW)
        with pytest.raises(NotFoundError, match="No sprints defined"):
            resolve_sprint({}, 1, NOW)

    def test_none_started(self) -> None:
        assert resolve_sprint({"sprints": [{"start": _day(25), "name": "Later"}]}, None, NOW) is None

    def test_period_single_day(self) -> None:
        start, end = period_window(["2024-01-05T10:00:00Z"])
        assert start == _day(5)
        assert end.date() == _day(5).date()
        assert end > _day(5, 23)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@pytest.fixture
def board() -> tuple[Index, list[dict[str, Any]]]:
    index = Index(
        name="Board",
        options={"startedColumns": ["Doing"], "completedColumns": ["Done"], **SPRINTS},
        columns={"Todo": ["a", "b"], "Doing": ["c"], "Done": ["d"]},
    )
    tasks = [
        Task(id="a", name="A", metadata={"created": _day(2), "tags": ["Small"], "assigned": "ann"}),
        Task(id="b", name="B", metadata={"created": _day(16), "tags": ["Large"], "due": _day(18)}),
        Task(id="c", name="C", metadata={"created": _day(3), "started": _day(16), "assigned": ["ann", "bo"]}),
        Task(id="d", name="D", metadata={"created": _day(4), "completed": _day(17), "tags": ["Tiny"]}),
    ]
    return index, [hydrate_task(index, t, NOW) for t in tasks]


class TestStatus:
    def test_quiet(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        status = build_status(index, tasks, NOW, quiet=True)
        assert status == {"name": "Board", "tasks": 4, "column_tasks": {"Todo": 2, "Doing": 1, "Done": 1}}

    def test_full(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        status = build_status(index, tasks, NOW, due=True)
        assert status["started_tasks"] == 1
        assert status["completed_tasks"] == 1
        assert status["total_workload"] == 2 + 5 + 2 + 1
        assert status["total_remaining_workload"] == 2 + 5 + 2
        assert status["column_workloads"]["Done"] == {"workload": 1, "remaining_workload": 0}
        assert status["assigned"]["ann"] == {"total": 2, "workload": 4, "remaining_workload": 4}
        assert [d["task"] for d in status["due_tasks"]] == ["b"]
        assert status["due_tasks"][0]["overdue"] is True

    def test_current_sprint_buckets(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        sprint = build_status(index, tasks, NOW)["sprint"]
        assert sprint["number"] == 2
        assert [t["id"] for t in sprint["created"]["tasks"]] == ["b"]
        assert sprint["started"]["count"] == 1
        assert sprint["completed"]["workload"] == 1
        assert sprint["due"]["count"] == 1

    def test_period(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        period = build_status(index, tasks, NOW, dates=["2024-01-02", "2024-01-04"])["period"]
        assert [t["id"] for t in period["created"]["tasks"]] == ["a", "c", "d"]


# ---------------------------------------------------------------------------
# Burndown
# ---------------------------------------------------------------------------

class TestBurndown:
    def test_normalise(self) -> None:
        value = datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        assert normalise_date(value, "days") == _day(2)
        assert normalise_date(value, "hours") == _day(2, 3)
        assert normalise_date(value, "minutes") == datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
        assert normalise_date(value, "seconds") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_auto_resolution(self) -> None:
        assert auto_resolution(_day(1), _day(9)) == "days"
        assert auto_resolution(_day(1), _day(2, 6)) == "hours"
        assert auto_resolution(_day(1), _day(1, 2)) == "minutes"
        assert auto_resolution(_day(1), _day(1) + timedelta(minutes=5)) == "seconds"

    def test_date_window(self) -> None:
        index = Index(name="P", options={"completedColumns": ["Done"]}, columns={"Todo": ["a"], "Done": ["b"]})
        tasks = [
            hydrate_task(index, Task(id="a", name="A", metadata={"created": _day(2), "tags": ["Small"]}), NOW),
            hydrate_task(
                index,
                Task(id="b", name="B", metadata={"created": _day(3), "completed": _day(5), "tags": ["Medium"]}),
                NOW,
            ),
        ]
        result = build_burndown(index, tasks, NOW, dates=["2024-01-01", "2024-01-10"])
        points = result["series"][0]["data_points"]
        assert points[0]["x"] == _day(1)
        assert points[-1]["x"] == _day(10)
        assert [p["y"] for p in points] == [0, 2, 5, 2, 2]
        assert [p["count"] for p in points] == [0, 1, 2, 1, 1]
        assert points[3]["events"] == [{"type": "completed", "task": "b"}]

    def test_current_sprint_default_and_filters(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        result = build_burndown(index, tasks, NOW, assigned="ann", normalise="auto")
        series = result["series"][0]
        assert series["sprint"]["number"] == 2
        assert result["resolution"] == "days"
        assert series["data_points"][0]["x"] == _day(15)
        assert series["data_points"][-1]["x"] == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert {p["y"] for p in series["data_points"]} == {4}

    def test_sprints_and_dates_each_get_a_series(self, board: tuple[Index, list[dict[str, Any]]]) -> None:
        index, tasks = board
        result = build_burndown(index, tasks, NOW, sprints=["One"], dates=["2024-01-16", "2024-01-18"])
        first, second = result["series"]
        assert first["sprint"]["name"] == "One"
        assert (first["from"], first["to"]) == (_day(1), _day(15))
        assert second["sprint"] is None
        assert (second["from"], second["to"]) == (_day(16), _day(18))
