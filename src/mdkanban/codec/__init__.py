"""Markdown codecs for the index file and task files."""

from __future__ import annotations

from .index import build_index, parse_index
from .result import ParseResult
from .task import build_task, parse_task

__all__ = ["ParseResult", "build_index", "build_task", "parse_index", "parse_task"]
