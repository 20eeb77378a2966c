"""Convert between the index markdown file and an :class:`Index`.

Decoding is permissive: a column whose body is not a list becomes an empty
column and is reported as a warning. Encoding is strict.
"""

from __future__ import annotations

from typing import Any, Mapping, Union

from loguru import logger

from ..constants import OPTIONS_HEADING
from ..engine.model import Index
from ..errors import ValidationFailure
from ..io_utils import dump_yaml
from ..paths import sanitize_task_id
from .markdown import (
    item_inline_text,
    parse_list,
    split_front_matter,
    split_sections,
    strip_code_fence,
)
from .result import ParseResult
from .schema import check_columns, load_yaml_mapping, validate_options


def parse_index(data: Any) -> ParseResult[Index]:
    """Decode index markdown.

    Args:
        data: Raw index file contents.

    Returns:
        A :class:`ParseResult` holding the index and any degraded-column warnings.

    Raises:
        ValidationFailure: On non-text input, a non-mapping front matter block,
            a missing name heading or options that fail schema validation.
    """
    try:
        if data is None or data == "":
            raise ValidationFailure("data is null or empty")
        if not isinstance(data, str):
            raise ValidationFailure("data is not a string")

        front_matter, body = split_front_matter(data)
        options = load_yaml_mapping(front_matter, "front matter") if front_matter is not None else {}

        _, sections = split_sections(body)
        if not sections:
            raise ValidationFailure("data is missing a name heading")

        name_section, rest = sections[0], sections[1:]
        columns: dict[str, list[str]] = {}
        warnings: list[str] = []
        for section in rest:
            if section.title == OPTIONS_HEADING:
                embedded = load_yaml_mapping(strip_code_fence(section.body), "options")
                # Front matter wins over the embedded block.
                options = {**embedded, **options}
                continue
            items = parse_list(section.body)
            if items is None:
                message = f'column "{section.title}" content is not a list'
                logger.warning("Index column degraded to empty: {}", message)
                warnings.append(message)
                items = []
            columns[section.title] = [
                sanitize_task_id(item_inline_text(item.text)) for item in items if item.text.strip()
            ]

        validate_options(options)
    except ValidationFailure as exc:
        raise ValidationFailure(f"Unable to parse index: {exc}") from exc

    index = Index(
        name=name_section.title,
        description=name_section.body.strip(),
        options=options,
        columns=columns,
    )
    return ParseResult(index, warnings)


def build_index(index: Union[Index, Mapping[str, Any]], ignore_options: bool = False) -> str:
    """Encode an index as markdown.

    Raises:
        ValidationFailure: If the name or columns are missing or malformed.
    """
    try:
        if isinstance(index, Mapping):
            if not index.get("name"):
                raise ValidationFailure("data object is missing name")
            if "columns" not in index or index["columns"] is None:
                raise ValidationFailure("data object is missing columns")
            index = Index.from_dict(dict(index))
        if not index.name or not index.name.strip():
            raise ValidationFailure("data object is missing name")
        if index.columns is None:
            raise ValidationFailure("data object is missing columns")
        check_columns(index.columns)
        if index.options and not ignore_options:
            validate_options(index.options)
    except ValidationFailure as exc:
        raise ValidationFailure(f"Unable to build index: {exc}") from exc

    blocks: list[str] = []
    if index.options and not ignore_options:
        blocks.append(f"---\n{dump_yaml(index.options)}---")
    blocks.append(f"# {index.name.strip()}")
    if index.description and index.description.strip():
        blocks.append(index.description.strip())
    for column, ids in index.columns.items():
        blocks.append(f"## {column}")
        if ids:
            blocks.append("\n".join(f"- {sanitize_task_id(task_id)}" for task_id in ids))
    return "\n\n".join(blocks) + "\n"
