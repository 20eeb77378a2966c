"""Options schema, column shape checks and typed metadata coercion."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from ..constants import DATE_METADATA_KEYS, OPTIONS_HEADING
from ..errors import ValidationFailure
from ..utils import parse_date

COLUMN_NAME_RE = re.compile(r"^[\w .,&'()/+!?-]+$")

CustomFieldType = Literal["boolean", "string", "number", "date"]


# ---------------------------------------------------------------------------
# Options schema
# ---------------------------------------------------------------------------

class _Schema(BaseModel):
    model_config = ConfigDict(extra="allow")


class SprintSchema(_Schema):
    start: Union[datetime, date]
    name: str
    description: Optional[str] = None


class SorterSchema(_Schema):
    field: str
    filter: Optional[str] = None
    order: Literal["ascending", "descending"] = "ascending"

    @field_validator("filter")
    @classmethod
    def _filter_compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid regular expression: {exc}") from exc
        return value


class CustomFieldSchema(_Schema):
    name: str
    type: CustomFieldType
    updateDate: Optional[Literal["always", "once", "none"]] = None


class ViewSchema(_Schema):
    name: str


class OptionsSchema(_Schema):
    hiddenColumns: Optional[list[str]] = None
    startedColumns: Optional[list[str]] = None
    completedColumns: Optional[list[str]] = None
    sprints: Optional[list[SprintSchema]] = None
    defaultTaskWorkload: Optional[float] = None
    taskWorkloadTags: Optional[dict[str, float]] = None
    columnSorting: Optional[dict[str, list[SorterSchema]]] = None
    taskTemplate: Optional[str] = None
    dateFormat: Optional[str] = None
    customFields: Optional[list[CustomFieldSchema]] = None
    views: Optional[list[ViewSchema]] = None


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def validate_options(options: Any) -> None:
    """Raise ValidationFailure if ``options`` does not match the options schema."""
    if not isinstance(options, dict):
        raise ValidationFailure("invalid options: expected a mapping")
    try:
        OptionsSchema.model_validate(options)
    except ValidationError as exc:
        raise ValidationFailure(f"invalid options: {_describe(exc)}") from exc


def validate_sorters(sorters: Any) -> None:
    """Raise ValidationFailure unless ``sorters`` is a list of valid sort specs."""
    try:
        TypeAdapter(list[SorterSchema]).validate_python(sorters)
    except ValidationError as exc:
        raise ValidationFailure(f"invalid sorters: {_describe(exc)}") from exc


def check_columns(columns: Any) -> None:
    """Raise ValidationFailure unless ``columns`` maps valid names to lists of ids."""
    if not isinstance(columns, dict):
        raise ValidationFailure("columns must be a mapping of column name to task ids")
    for name, ids in columns.items():
        if not isinstance(name, str) or not COLUMN_NAME_RE.match(name):
            raise ValidationFailure(f'invalid column name "{name}"')
        if name == OPTIONS_HEADING:
            raise ValidationFailure(f'column name "{name}" is reserved')
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValidationFailure(f'column "{name}" must be a list of task ids')


def load_yaml_mapping(text: str, what: str) -> dict[str, Any]:
    """Parse a YAML block that must be a mapping (an empty block yields ``{}``)."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValidationFailure(f"invalid {what} content: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailure(f"invalid {what} content")
    return data


def custom_fields(options: dict[str, Any]) -> list[dict[str, Any]]:
    """Declared custom fields as plain dicts with ``name``, ``type`` and ``updateDate``."""
    fields = options.get("customFields") or []
    if not isinstance(fields, list):
        return []
    return [f for f in fields if isinstance(f, dict) and "name" in f and "type" in f]


# ---------------------------------------------------------------------------
# Metadata coercion
# ---------------------------------------------------------------------------

def coerce_custom_value(name: str, field_type: str, value: Any) -> Any:
    if value is None:
        return None
    if field_type == "date":
        parsed = parse_date(value)
        if parsed is None:
            raise ValidationFailure(f'"{name}" must be a date')
        return parsed
    if field_type == "number":
        if isinstance(value, bool):
            raise ValidationFailure(f'"{name}" must be a number')
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(str(value))
        except ValueError as exc:
            raise ValidationFailure(f'"{name}" must be a number') from exc
        return int(number) if number.is_integer() else number
    if field_type == "boolean":
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
        raise ValidationFailure(f'"{name}" must be a boolean')
    return str(value)


def coerce_metadata(
    metadata: dict[str, Any],
    fields: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """Return a copy of ``metadata`` with known keys coerced to their declared types."""
    result = dict(metadata)
    for key in DATE_METADATA_KEYS:
        if result.get(key) is None:
            continue
        parsed = parse_date(result[key])
        if parsed is None:
            raise ValidationFailure(f'"{key}" must be a date')
        result[key] = parsed

    tags = result.get("tags")
    if tags is not None:
        result["tags"] = [str(t) for t in tags] if isinstance(tags, list) else [str(tags)]

    assigned = result.get("assigned")
    if assigned is not None and not isinstance(assigned, (str, list)):
        result["assigned"] = str(assigned)

    progress = result.get("progress")
    if progress is not None:
        result["progress"] = coerce_custom_value("progress", "number", progress)

    for spec in fields or []:
        name = spec["name"]
        if name in result and name not in DATE_METADATA_KEYS:
            result[name] = coerce_custom_value(name, spec["type"], result[name])
    return result
