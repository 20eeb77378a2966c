"""Load the optional project config file (`kanbn.yml` or `kanbn.json`).

The folder layout is captured once as an immutable :class:`ProjectConfig`
snapshot. Index options stored in the config file are re-read on demand so
every index load sees the current file contents.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILENAMES,
    CONFIG_LAYOUT_KEYS,
    DEFAULT_ARCHIVE_FOLDER,
    DEFAULT_INDEX_FILE,
    DEFAULT_MAIN_FOLDER,
    DEFAULT_TASK_FOLDER,
)
from .errors import ConfigError
from .io_utils import _load_data_with_error, _save_data


@dataclass(frozen=True)
class ProjectConfig:
    """Folder layout for one project root."""

    root: Path
    main_folder: str = DEFAULT_MAIN_FOLDER
    index_file: str = DEFAULT_INDEX_FILE
    task_folder: str = DEFAULT_TASK_FOLDER
    archive_folder: str = DEFAULT_ARCHIVE_FOLDER
    config_path: Optional[Path] = None


def find_config_file(root: Path) -> Optional[Path]:
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    data, err = _load_data_with_error(path, {})
    if err:
        raise ConfigError(f"Couldn't load config file: {err}")
    return data


def _layout_value(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f'Couldn\'t load config file: "{key}" must be a non-empty string')
    return value


def load_project_config(root: Path) -> ProjectConfig:
    """Build the layout snapshot for ``root``.

    Args:
        root: Project root directory (the folder holding the main folder).

    Returns:
        A frozen :class:`ProjectConfig`; defaults apply when no config file exists.

    Raises:
        ConfigError: If a config file exists but cannot be parsed.
    """
    root = Path(root).resolve()
    path = find_config_file(root)
    if path is None:
        return ProjectConfig(root=root)
    data = _read_config_file(path)
    return ProjectConfig(
        root=root,
        main_folder=_layout_value(data, "mainFolder", DEFAULT_MAIN_FOLDER),
        index_file=_layout_value(data, "indexFile", DEFAULT_INDEX_FILE),
        task_folder=_layout_value(data, "taskFolder", DEFAULT_TASK_FOLDER),
        archive_folder=_layout_value(data, "archiveFolder", DEFAULT_ARCHIVE_FOLDER),
        config_path=path,
    )


def _read_config_data(config: ProjectConfig) -> dict[str, Any]:
    if config.config_path is None or not config.config_path.exists():
        return {}
    return _read_config_file(config.config_path)


def read_config_options(config: ProjectConfig) -> dict[str, Any]:
    """Return the index options held in the config file, or ``{}`` without one.

    Folder layout keys are not index options and are left out.
    """
    data = _read_config_data(config)
    return {k: v for k, v in data.items() if k not in CONFIG_LAYOUT_KEYS}


def write_config_options(config: ProjectConfig, options: dict[str, Any]) -> None:
    """Replace the options in the config file, keeping its folder layout keys."""
    if config.config_path is None:
        raise ConfigError("Couldn't load config file: no config file for this project")
    current = _read_config_data(config)
    layout = {key: current[key] for key in CONFIG_LAYOUT_KEYS if key in current}
    options = {k: v for k, v in options.items() if k not in CONFIG_LAYOUT_KEYS}
    _save_data(config.config_path, {**layout, **options})
