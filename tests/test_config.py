"""Tests for dxfix configuration management."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from dxfix.config import (
    DEFAULT_CHECKER_COMMAND,
    DxfixConfig,
    find_config_file,
    load_config,
)


class TestDxfixConfig:
    """Tests for the DxfixConfig dataclass."""

    def test_default_values(self) -> None:
        """Test that default values are set correctly."""
        config = DxfixConfig()
        assert config.checker_command == DEFAULT_CHECKER_COMMAND
        assert config.include_extensions == [".ts"]
        assert "node_modules" in config.exclude_dirs
        assert config.backup_suffix == ".dxfix-backup-{timestamp}"
        assert config.jobs == 4
        assert config.use_builtin_rules is True
        assert config.project_marker == "tsconfig.json"

    def test_custom_values(self) -> None:
        """Test that custom values can be set."""
        config = DxfixConfig(
            checker_command="tsc -p tsconfig.build.json",
            include_extensions=[".ts", ".tsx"],
            jobs=1,
            backup_suffix=".bak",
        )
        assert config.include_extensions == [".ts", ".tsx"]
        assert config.jobs == 1
        assert config.backup_suffix == ".bak"

    def test_validation_empty_checker_command(self) -> None:
        """Test that empty checker_command raises ValueError."""
        with pytest.raises(ValueError, match="checker_command"):
            DxfixConfig(checker_command="")

    def test_validation_unbalanced_quotes(self) -> None:
        """Test that an unparseable command line raises ValueError."""
        with pytest.raises(ValueError, match="not a valid command line"):
            DxfixConfig(checker_command="tsc 'unterminated")

    def test_validation_whitespace_command(self) -> None:
        """Test that a command with no program raises ValueError."""
        with pytest.raises(ValueError, match="must name a program"):
            DxfixConfig(checker_command="   ")

    def test_validation_timeout_positive(self) -> None:
        """Test that a non-positive timeout raises ValueError."""
        with pytest.raises(ValueError, match="checker_timeout"):
            DxfixConfig(checker_timeout=0)

    def test_validation_extension_needs_dot(self) -> None:
        """Test that extensions must start with a dot."""
        with pytest.raises(ValueError, match="include_extensions"):
            DxfixConfig(include_extensions=["ts"])

    def test_validation_backup_suffix_separator(self) -> None:
        """Test that backup suffixes cannot point into other directories."""
        with pytest.raises(ValueError, match="path separators"):
            DxfixConfig(backup_suffix="./../x")

    def test_validation_backup_suffix_dot(self) -> None:
        """Test that backup suffixes must start with a dot."""
        with pytest.raises(ValueError, match="start with"):
            DxfixConfig(backup_suffix="bak")

    def test_validation_jobs(self) -> None:
        """Test that jobs must be a positive integer."""
        with pytest.raises(ValueError, match="jobs"):
            DxfixConfig(jobs=0)
        with pytest.raises(ValueError, match="jobs"):
            DxfixConfig(jobs=True)

    def test_get_checker_argv(self) -> None:
        """Test splitting the checker command into argv."""
        config = DxfixConfig(checker_command='npx tsc --project "my app/tsconfig.json"')
        assert config.get_checker_argv() == [
            "npx",
            "tsc",
            "--project",
            "my app/tsconfig.json",
        ]

    def test_get_catalog_paths(self, tmp_path: Path) -> None:
        """Test resolving relative and absolute catalog entries."""
        absolute = tmp_path / "abs.yaml"
        config = DxfixConfig(rule_catalogs=["rules/extra.yaml", str(absolute)])
        assert config.get_catalog_paths(tmp_path) == [
            tmp_path / "rules" / "extra.yaml",
            absolute,
        ]


class TestFindConfigFile:
    """Tests for find_config_file function."""

    def test_find_in_current_dir(self, tmp_path: Path) -> None:
        """Test finding config file in current directory."""
        config_file = tmp_path / ".dxfixrc"
        config_file.write_text('jobs = 2\n')

        assert find_config_file(".dxfixrc", tmp_path) == config_file

    def test_find_in_parent_dir(self, tmp_path: Path) -> None:
        """Test finding config file in parent directory."""
        config_file = tmp_path / ".dxfixrc"
        config_file.write_text('jobs = 2\n')
        subdir = tmp_path / "src" / "services"
        subdir.mkdir(parents=True)

        assert find_config_file(".dxfixrc", subdir) == config_file

    def test_not_found(self, tmp_path: Path) -> None:
        """Test that None is returned when config file not found."""
        isolated = tmp_path / "isolated"
        isolated.mkdir()
        assert find_config_file(".dxfixrc-that-does-not-exist", isolated) is None


class TestLoadFromFiles:
    """Tests for loading .dxfixrc and pyproject.toml."""

    def test_load_dxfixrc(self, tmp_path: Path) -> None:
        """Test loading values from .dxfixrc."""
        (tmp_path / ".dxfixrc").write_text(
            'checker_command = "tsc --noEmit"\n'
            'include_extensions = [".ts", ".tsx"]\n'
            "jobs = 2\n"
        )
        config = load_config(start_dir=tmp_path)
        assert config.checker_command == "tsc --noEmit"
        assert config.include_extensions == [".ts", ".tsx"]
        assert config.jobs == 2

    def test_ignore_unknown_fields(self, tmp_path: Path) -> None:
        """Test that unknown fields in .dxfixrc are ignored."""
        (tmp_path / ".dxfixrc").write_text('jobs = 3\nunknown_field = "x"\n')
        config = load_config(start_dir=tmp_path)
        assert config.jobs == 3

    def test_invalid_toml_ignored(self, tmp_path: Path) -> None:
        """Test that an unreadable .dxfixrc falls back to defaults."""
        (tmp_path / ".dxfixrc").write_text("this is = = not toml")
        config = load_config(start_dir=tmp_path)
        assert config.jobs == 4

    def test_load_from_tool_dxfix_section(self, tmp_path: Path) -> None:
        """Test loading config from [tool.dxfix] section."""
        (tmp_path / "pyproject.toml").write_text(
            '[project]\nname = "app"\n\n[tool.dxfix]\nbackup_suffix = ".orig"\n'
        )
        config = load_config(start_dir=tmp_path)
        assert config.backup_suffix == ".orig"

    def test_catalogs_relative_to_config_file(self, tmp_path: Path) -> None:
        """Test that rule_catalogs entries are anchored to the declaring file."""
        (tmp_path / ".dxfixrc").write_text('rule_catalogs = ["rules/team.yaml"]\n')
        subdir = tmp_path / "src"
        subdir.mkdir()

        config = load_config(start_dir=subdir)
        assert config.rule_catalogs == [str(tmp_path / "rules" / "team.yaml")]


class TestLoadFromEnv:
    """Tests for loading configuration from environment variables."""

    @pytest.fixture
    def _clean_env(self) -> Generator[None, None, None]:
        """Fixture to clean up environment variables after test."""
        env_vars = ["DXFIX_JOBS", "DXFIX_INCLUDE_EXTENSIONS", "DXFIX_USE_BUILTIN_RULES"]
        original_values: dict[str, str | None] = {}

        for var in env_vars:
            original_values[var] = os.environ.get(var)
            if var in os.environ:
                del os.environ[var]

        yield

        for var, value in original_values.items():
            if value is not None:
                os.environ[var] = value
            elif var in os.environ:
                del os.environ[var]

    def test_load_jobs_from_env(self, tmp_path: Path, _clean_env: None) -> None:
        """Test loading jobs from DXFIX_JOBS."""
        os.environ["DXFIX_JOBS"] = "8"
        config = load_config(start_dir=tmp_path)
        assert config.jobs == 8

    def test_load_list_from_env(self, tmp_path: Path, _clean_env: None) -> None:
        """Test comma-separated list variables."""
        os.environ["DXFIX_INCLUDE_EXTENSIONS"] = ".ts, .tsx"
        config = load_config(start_dir=tmp_path)
        assert config.include_extensions == [".ts", ".tsx"]

    def test_load_bool_from_env(self, tmp_path: Path, _clean_env: None) -> None:
        """Test boolean variables."""
        os.environ["DXFIX_USE_BUILTIN_RULES"] = "false"
        config = load_config(start_dir=tmp_path)
        assert config.use_builtin_rules is False

    def test_invalid_number_from_env(self, tmp_path: Path, _clean_env: None) -> None:
        """Test that a malformed number names the variable."""
        os.environ["DXFIX_JOBS"] = "many"
        with pytest.raises(ValueError, match="DXFIX_JOBS"):
            load_config(start_dir=tmp_path)


class TestPrecedence:
    """Tests for the full precedence chain."""

    def test_cli_overrides_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test CLI overrides beat environment variables."""
        monkeypatch.setenv("DXFIX_JOBS", "8")
        config = load_config(cli_overrides={"jobs": 2}, start_dir=tmp_path)
        assert config.jobs == 2

    def test_env_overrides_files(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables beat .dxfixrc."""
        (tmp_path / ".dxfixrc").write_text("jobs = 3\n")
        monkeypatch.setenv("DXFIX_JOBS", "5")
        config = load_config(start_dir=tmp_path)
        assert config.jobs == 5

    def test_dxfixrc_overrides_pyproject(self, tmp_path: Path) -> None:
        """Test .dxfixrc beats pyproject.toml."""
        (tmp_path / "pyproject.toml").write_text("[tool.dxfix]\njobs = 6\n")
        (tmp_path / ".dxfixrc").write_text("jobs = 7\n")
        config = load_config(start_dir=tmp_path)
        assert config.jobs == 7

    def test_none_overrides_are_ignored(self, tmp_path: Path) -> None:
        """Test that None CLI values do not clobber lower layers."""
        (tmp_path / ".dxfixrc").write_text("jobs = 3\n")
        config = load_config(cli_overrides={"jobs": None}, start_dir=tmp_path)
        assert config.jobs == 3

    def test_invalid_merged_config_raises(self, tmp_path: Path) -> None:
        """Test that an invalid final configuration raises ValueError."""
        with pytest.raises(ValueError):
            load_config(cli_overrides={"jobs": -1}, start_dir=tmp_path)
