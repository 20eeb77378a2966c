"""Line-oriented markdown helpers shared by the index and task codecs.

Only the subset the store writes is understood: an optional ``---`` front
matter block, ATX headings, fenced code blocks and bullet lists.
"""

from __future__ import annotations

import re
import textwrap
from dataclasses import dataclass, field
from typing import Optional

_FENCE_RE = re.compile(r"^\s{0,3}(```|~~~)")
_LIST_MARKER_RE = re.compile(r"^(?P<indent>\s{0,3})(?:[-*+]|\d+[.)])(?:\s+(?P<text>.*))?$")
_LINK_RE = re.compile(r"^\[(?P<text>[^\]]*)\]\((?P<url>[^)]*)\)")
_CHECKBOX_RE = re.compile(r"^\[(?P<state>[ xX])\]\s?(?P<text>.*)$")


@dataclass
class Section:
    """A heading and the raw markdown beneath it, up to the next heading."""

    title: str
    level: int
    body: str = ""


@dataclass
class ListItem:
    text: str
    continuation: list[str] = field(default_factory=list)


def split_front_matter(text: str) -> tuple[Optional[str], str]:
    """
    Split a leading ``---`` delimited block from the markdown body.

    Returns:
        Tuple of (front_matter_text or None, remaining_body).
    """
    lines = text.splitlines()
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start >= len(lines) or lines[start].strip() != "---":
        return None, text
    for end in range(start + 1, len(lines)):
        if lines[end].strip() in {"---", "..."}:
            return "\n".join(lines[start + 1 : end]), "\n".join(lines[end + 1 :])
    # An unterminated block is treated as ordinary markdown.
    return None, text


def parse_heading_line(stripped: str) -> Optional[tuple[int, str]]:
    """
    Parse an ATX heading line (already stripped).

    Returns:
        ``(level, title)`` or None if the line is not a heading.
    """
    if not stripped.startswith("#"):
        return None
    level = len(stripped) - len(stripped.lstrip("#"))
    if level > 6:
        return None
    rest = stripped[level:]
    if rest and not rest[0].isspace():
        return None
    title = rest.strip()
    # Optional closing hashes
    title = re.sub(r"\s+#+$", "", title)
    return level, title


def split_sections(body: str, max_level: int = 2) -> tuple[str, list[Section]]:
    """
    Split markdown into sections at headings of ``max_level`` or shallower.

    Deeper headings and anything inside fenced code blocks stay part of the
    enclosing section body.

    Returns:
        Tuple of (text before the first heading, sections in document order).
    """
    preamble: list[str] = []
    outline: list[tuple[int, str, list[str]]] = []
    current = preamble
    in_fence = False
    for line in body.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
        heading = None if in_fence else parse_heading_line(line.strip())
        if heading and heading[0] <= max_level and not line.startswith("    "):
            current = []
            outline.append((heading[0], heading[1], current))
            continue
        current.append(line)
    sections = [
        Section(title=title, level=level, body="\n".join(lines).strip("\n"))
        for level, title, lines in outline
    ]
    return "\n".join(preamble).strip("\n"), sections


def strip_code_fence(text: str) -> str:
    """Return the contents of a fenced code block, or ``text`` unchanged."""
    lines = text.strip("\n").splitlines()
    if len(lines) >= 2 and _FENCE_RE.match(lines[0]) and _FENCE_RE.match(lines[-1]):
        return "\n".join(lines[1:-1])
    return text


def parse_list(body: str) -> Optional[list[ListItem]]:
    """
    Parse the first bullet list in ``body``.

    Returns:
        The list items, ``[]`` for a blank body, or None when the body does
        not start with a recognizable list.
    """
    lines = body.splitlines()
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index >= len(lines):
        return []
    first = _LIST_MARKER_RE.match(lines[index])
    if not first:
        return None
    marker_indent = len(first.group("indent"))

    items: list[ListItem] = []
    pending_blank = 0
    for line in lines[index:]:
        if not line.strip():
            pending_blank += 1
            continue
        match = _LIST_MARKER_RE.match(line)
        indent = len(line) - len(line.lstrip())
        if match and len(match.group("indent")) == marker_indent:
            items.append(ListItem(text=(match.group("text") or "").strip()))
        elif indent > marker_indent and items:
            items[-1].continuation.extend([""] * pending_blank)
            items[-1].continuation.append(line)
        else:
            break
        pending_blank = 0
    for item in items:
        item.continuation = textwrap.dedent("\n".join(item.continuation)).splitlines()
    return items


def item_inline_text(text: str) -> str:
    """Leading inline text of a list item; a leading link yields its label."""
    match = _LINK_RE.match(text.strip())
    if match:
        return match.group("text").strip()
    return text.strip()


def parse_checkbox(text: str) -> tuple[bool, str]:
    """
    Parse ``[x] text`` / ``[ ] text`` list item content.

    Returns:
        Tuple of (completed, text). Items without a checkbox are incomplete.
    """
    match = _CHECKBOX_RE.match(text.strip())
    if not match:
        return False, text.strip()
    return match.group("state").lower() == "x", match.group("text").strip()
