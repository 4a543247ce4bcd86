"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- _deep_merge() function
- load_config() precedence and validation
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from covlab.config.loader import (
    GLOBAL_CONFIG_PATH,
    REPO_CONFIG_NAME,
    _deep_merge,
    _load_yaml,
    load_config,
)
from covlab.core.errors import ConfigError, ErrorCode


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        """Returns empty dict when file doesn't exist."""
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("coverage:\n  root: src\n")

        assert _load_yaml(yaml_file) == {"coverage": {"root": "src"}}

    def test_returns_empty_for_empty_file(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")

        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ConfigError for invalid YAML syntax."""
        yaml_file = tmp_path / "invalid.yaml"
        yaml_file.write_text("coverage:\n  exclude:\n    - invalid: [unclosed")

        with pytest.raises(ConfigError) as exc_info:
            _load_yaml(yaml_file)
        assert exc_info.value.code == ErrorCode.CONFIG_PARSE_ERROR

    def test_raises_config_error_for_non_mapping(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "list.yaml"
        yaml_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            _load_yaml(yaml_file)


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_override_wins(self) -> None:
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self) -> None:
        """Nested dicts are merged recursively."""
        base = {"coverage": {"root": "src", "all_files": False}}
        override = {"coverage": {"root": "lib"}}
        assert _deep_merge(base, override) == {"coverage": {"root": "lib", "all_files": False}}

    def test_override_replaces_non_dict(self) -> None:
        base: dict[str, Any] = {"a": {"nested": 1}}
        override: dict[str, Any] = {"a": "simple"}
        assert _deep_merge(base, override) == {"a": "simple"}

    def test_does_not_mutate_base(self) -> None:
        base = {"a": 1}
        _deep_merge(base, {"b": 2})
        assert base == {"a": 1}


class TestLoadConfig:
    """Tests for load_config function."""

    def test_returns_default_config_when_no_files(self, tmp_path: Path) -> None:
        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config(tmp_path)

        assert config.logging.level == "WARNING"
        assert config.coverage.root == "."
        assert config.coverage.exclude == []
        assert config.coverage.all_files is True

    def test_loads_repo_config(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text(
            "coverage:\n  root: src\n  exclude: [vendor, tests]\n  threshold: 80\n"
        )

        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config(tmp_path)

        assert config.coverage.root == "src"
        assert config.coverage.exclude == ["vendor", "tests"]
        assert config.coverage.threshold == 80

    def test_repo_config_overrides_global(self, tmp_path: Path) -> None:
        global_file = tmp_path / "global.yaml"
        global_file.write_text("coverage:\n  root: lib\n  source_maps: true\n")
        (tmp_path / REPO_CONFIG_NAME).write_text("coverage:\n  root: src\n")

        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", global_file):
            config = load_config(tmp_path)

        assert config.coverage.root == "src"
        assert config.coverage.source_maps is True

    def test_env_vars_override_yaml(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text("logging:\n  level: INFO\n")

        with (
            patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"),
            patch.dict(os.environ, {"COVLAB__LOGGING__LEVEL": "DEBUG"}),
        ):
            config = load_config(tmp_path)

        assert config.logging.level == "DEBUG"

    def test_kwargs_override_all(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text("coverage:\n  root: src\n")

        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config(tmp_path, coverage={"root": "app"})

        assert config.coverage.root == "app"

    def test_transform_loaded_from_import_string(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text(
            "coverage:\n  transforms:\n    - extension: .pyt\n      transform: textwrap.dedent\n"
        )

        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config(tmp_path)

        import textwrap

        assert config.coverage.transforms[0].extension == ".pyt"
        assert config.coverage.transforms[0].transform is textwrap.dedent

    def test_raises_config_error_for_invalid_value(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text("coverage:\n  threshold: 120\n")

        with (
            patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"),
            pytest.raises(ConfigError) as exc_info,
        ):
            load_config(tmp_path)
        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE

    def test_explicit_config_file_replaces_repo_config(self, tmp_path: Path) -> None:
        (tmp_path / REPO_CONFIG_NAME).write_text("coverage:\n  root: src\n  threshold: 90\n")
        explicit = tmp_path / "ci.yaml"
        explicit.write_text("coverage:\n  root: app\n")

        with patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
            config = load_config(tmp_path, config_file=explicit)

        assert config.coverage.root == "app"
        assert config.coverage.threshold is None

    def test_raises_config_error_for_missing_config_file(self, tmp_path: Path) -> None:
        with (
            patch("covlab.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"),
            pytest.raises(ConfigError) as exc_info,
        ):
            load_config(tmp_path, config_file=tmp_path / "absent.yaml")
        assert exc_info.value.code == ErrorCode.CONFIG_FILE_NOT_FOUND
        assert exc_info.value.details == {"path": str(tmp_path / "absent.yaml")}


class TestGlobalConfigPath:
    def test_is_in_user_config(self) -> None:
        assert isinstance(GLOBAL_CONFIG_PATH, Path)
        assert "covlab" in str(GLOBAL_CONFIG_PATH)
