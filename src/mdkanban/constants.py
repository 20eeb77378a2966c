"""Default names and values shared across the kanban store."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# On-disk layout
# ---------------------------------------------------------------------------

DEFAULT_MAIN_FOLDER = ".kanbn"
DEFAULT_INDEX_FILE = "index.md"
DEFAULT_TASK_FOLDER = "tasks"
DEFAULT_ARCHIVE_FOLDER = "archive"
TASK_FILE_EXTENSION = ".md"
LOCK_SUFFIX = ".lock"
LOCK_TIMEOUT = 30  # seconds

# Checked in order; the first existing file wins.
CONFIG_FILENAMES = ("kanbn.yml", "kanbn.json")
CONFIG_LAYOUT_KEYS = ("mainFolder", "indexFile", "taskFolder", "archiveFolder")

# ---------------------------------------------------------------------------
# Index defaults
# ---------------------------------------------------------------------------

DEFAULT_PROJECT_NAME = "Project Name"
DEFAULT_COLUMNS = ("Backlog", "Todo", "In Progress", "Done")
DEFAULT_STARTED_COLUMNS = ("In Progress",)
DEFAULT_COMPLETED_COLUMNS = ("Done",)
OPTIONS_HEADING = "Options"

# ---------------------------------------------------------------------------
# Task defaults
# ---------------------------------------------------------------------------

DEFAULT_TASK_WORKLOAD = 2
DEFAULT_TASK_WORKLOAD_TAGS = {
    "Nothing": 0,
    "Tiny": 1,
    "Small": 2,
    "Medium": 3,
    "Large": 5,
    "Huge": 8,
}

DATE_METADATA_KEYS = ("created", "updated", "started", "completed", "due")
METADATA_HEADING = "Metadata"
SUB_TASKS_HEADING = "Sub-tasks"
RELATIONS_HEADING = "Relations"
COMMENTS_HEADING = "Comments"
