"""Tests for the project config file loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from mdkanban.config import (
    ProjectConfig,
    find_config_file,
    load_project_config,
    read_config_options,
    write_config_options,
)
from mdkanban.errors import ConfigError


class TestLoadProjectConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_project_config(tmp_path)
        assert config == ProjectConfig(root=tmp_path.resolve())
        assert config.main_folder == ".kanbn"
        assert config.index_file == "index.md"
        assert config.task_folder == "tasks"
        assert config.archive_folder == "archive"
        assert read_config_options(config) == {}

    def test_yaml_layout(self, tmp_path: Path) -> None:
        (tmp_path / "kanbn.yml").write_text(
            "mainFolder: board\nindexFile: board.md\narchiveFolder: old\n", encoding="utf-8"
        )
        config = load_project_config(tmp_path)
        assert config.main_folder == "board"
        assert config.index_file == "board.md"
        assert config.task_folder == "tasks"
        assert config.archive_folder == "old"
        assert config.config_path == tmp_path.resolve() / "kanbn.yml"

    def test_yaml_preferred_over_json(self, tmp_path: Path) -> None:
        (tmp_path / "kanbn.json").write_text(json.dumps({"mainFolder": "from-json"}), encoding="utf-8")
        (tmp_path / "kanbn.yml").write_text("mainFolder: from-yaml\n", encoding="utf-8")
        assert find_config_file(tmp_path) == tmp_path / "kanbn.yml"
        assert load_project_config(tmp_path).main_folder == "from-yaml"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "kanbn.yml").write_text("", encoding="utf-8")
        assert load_project_config(tmp_path).main_folder == ".kanbn"

    def test_unparseable_file(self, tmp_path: Path) -> None:
        (tmp_path / "kanbn.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Couldn't load config file"):
            load_project_config(tmp_path)

    def test_bad_layout_value(self, tmp_path: Path) -> None:
        (tmp_path / "kanbn.yml").write_text("taskFolder: ''\n", encoding="utf-8")
        with pytest.raises(ConfigError, match='"taskFolder" must be a non-empty string'):
            load_project_config(tmp_path)


class TestConfigOptions:
    def test_write_keeps_layout_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "kanbn.yml"
        path.write_text("mainFolder: board\nhiddenColumns: [Old]\n", encoding="utf-8")
        config = load_project_config(tmp_path)
        write_config_options(config, {"completedColumns": ["Done"]})
        assert yaml.safe_load(path.read_text(encoding="utf-8")) == {
            "mainFolder": "board",
            "completedColumns": ["Done"],
        }
        assert read_config_options(config)["completedColumns"] == ["Done"]
        assert "mainFolder" not in read_config_options(config)

    def test_write_json(self, tmp_path: Path) -> None:
        path = tmp_path / "kanbn.json"
        path.write_text("{}", encoding="utf-8")
        config = load_project_config(tmp_path)
        write_config_options(config, {"startedColumns": ["Doing"]})
        assert json.loads(path.read_text(encoding="utf-8")) == {"startedColumns": ["Doing"]}

    def test_write_without_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            write_config_options(load_project_config(tmp_path), {})
