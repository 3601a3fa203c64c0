"""Configuration management for the dxfix CLI tool.

Handles configuration loading from multiple sources with precedence:
CLI args > environment variables > .dxfixrc > pyproject.toml > defaults
"""

from __future__ import annotations

import os
import shlex
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

DEFAULT_CHECKER_COMMAND = "npx tsc --noEmit --skipLibCheck"

DEFAULT_EXCLUDE_DIRS = [
    "node_modules",
    ".git",
    "dist",
    "build",
    "coverage",
    ".next",
    ".venv",
    "venv",
    "__pycache__",
    "vendor",
]


@dataclass
class DxfixConfig:
    """Configuration for the dxfix CLI tool.

    Attributes:
        checker_command: Shell-style command line of the type-checker
            (default: "npx tsc --noEmit --skipLibCheck").
        checker_timeout: Seconds before a checker invocation is abandoned.
        include_extensions: File name suffixes to rewrite (default: [".ts"]).
        exclude_dirs: Directory names never scanned.
        backup_suffix: Suffix appended to backup files. "{timestamp}" is
            replaced with the run timestamp.
        jobs: Maximum number of worker threads per fix step.
        rule_catalogs: Extra YAML rule catalogs, relative to the config file
            directory or absolute.
        use_builtin_rules: Whether the built-in catalog is loaded.
        project_marker: File that marks the checker's project root.
    """

    checker_command: str = DEFAULT_CHECKER_COMMAND
    checker_timeout: float = 300.0
    include_extensions: list[str] = field(default_factory=lambda: [".ts"])
    exclude_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
    backup_suffix: str = ".dxfix-backup-{timestamp}"
    jobs: int = 4
    rule_catalogs: list[str] = field(default_factory=list)
    use_builtin_rules: bool = True
    project_marker: str = "tsconfig.json"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if not self.checker_command or not isinstance(self.checker_command, str):
            raise ValueError("checker_command must be a non-empty string")
        try:
            argv = shlex.split(self.checker_command)
        except ValueError as e:
            raise ValueError(f"checker_command is not a valid command line: {e}") from e
        if not argv:
            raise ValueError("checker_command must name a program")

        if isinstance(self.checker_timeout, bool) or not isinstance(
            self.checker_timeout, (int, float)
        ):
            raise ValueError("checker_timeout must be a number")
        if self.checker_timeout <= 0:
            raise ValueError("checker_timeout must be positive")

        if not self.include_extensions or not isinstance(self.include_extensions, list):
            raise ValueError("include_extensions must be a non-empty list")
        for ext in self.include_extensions:
            if not isinstance(ext, str) or not ext.startswith("."):
                raise ValueError(f"include_extensions entries must start with '.': {ext!r}")

        if not isinstance(self.exclude_dirs, list):
            raise ValueError("exclude_dirs must be a list")

        if not self.backup_suffix or not isinstance(self.backup_suffix, str):
            raise ValueError("backup_suffix must be a non-empty string")
        if not self.backup_suffix.startswith("."):
            raise ValueError("backup_suffix must start with '.'")
        if "/" in self.backup_suffix or "\\" in self.backup_suffix:
            raise ValueError("backup_suffix must not contain path separators")

        if isinstance(self.jobs, bool) or not isinstance(self.jobs, int) or self.jobs < 1:
            raise ValueError("jobs must be a positive integer")

        if not isinstance(self.rule_catalogs, list):
            raise ValueError("rule_catalogs must be a list")

        if not self.project_marker or not isinstance(self.project_marker, str):
            raise ValueError("project_marker must be a non-empty string")

    def get_checker_argv(self) -> list[str]:
        """Split the checker command into an argv list.

        Returns:
            Argument vector suitable for subprocess.run.
        """
        return shlex.split(self.checker_command)

    def get_catalog_paths(self, base_path: Path | None = None) -> list[Path]:
        """Resolve configured rule catalogs.

        Args:
            base_path: Base path for relative entries. Defaults to current directory.

        Returns:
            Absolute catalog paths, in configured order.
        """
        base = base_path or Path.cwd()
        paths: list[Path] = []
        for entry in self.rule_catalogs:
            p = Path(entry)
            paths.append(p if p.is_absolute() else base / p)
        return paths


def _get_config_field_names() -> set[str]:
    """Get the set of valid configuration field names.

    Returns:
        Set of field names from DxfixConfig.
    """
    return {f.name for f in fields(DxfixConfig)}


def find_config_file(filename: str = ".dxfixrc", start_dir: Path | None = None) -> Path | None:
    """Find a configuration file by traversing up the directory tree.

    Args:
        filename: Name of the config file to find.
        start_dir: Directory to start searching from. Defaults to current directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = start_dir or Path.cwd()
    current = current.resolve()

    while True:
        config_path = current / filename
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            return None
        current = parent


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    with open(path, "rb") as f:
        result: dict[str, Any] = tomllib.load(f)
        return result


def _anchor_catalogs(data: dict[str, Any], config_path: Path) -> dict[str, Any]:
    """Make relative rule_catalogs entries relative to the file that declared them."""
    catalogs = data.get("rule_catalogs")
    if isinstance(catalogs, list):
        anchored = []
        for entry in catalogs:
            p = Path(str(entry))
            anchored.append(str(p if p.is_absolute() else config_path.parent / p))
        data["rule_catalogs"] = anchored
    return data


def _load_from_dxfixrc(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from a .dxfixrc file.

    Returns:
        Configuration from .dxfixrc, or empty dict if not found or unreadable.
    """
    config_path = find_config_file(".dxfixrc", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        valid_fields = _get_config_field_names()
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return _anchor_catalogs(filtered, config_path)
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _load_from_pyproject(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from pyproject.toml [tool.dxfix] section.

    Returns:
        Configuration from pyproject.toml, or empty dict if not found.
    """
    config_path = find_config_file("pyproject.toml", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        dxfix_section = data.get("tool", {}).get("dxfix", {})

        valid_fields = _get_config_field_names()
        filtered = {k: v for k, v in dxfix_section.items() if k in valid_fields}
        return _anchor_catalogs(filtered, config_path)
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _split_list(value: str) -> list[str]:
    """Split a comma-separated environment value."""
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    """Parse an environment flag."""
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables.

    Environment variables are prefixed with DXFIX_ and use uppercase names,
    e.g. DXFIX_CHECKER_COMMAND, DXFIX_JOBS, DXFIX_INCLUDE_EXTENSIONS.

    Returns:
        Dictionary containing configuration from environment variables.

    Raises:
        ValueError: If a numeric variable cannot be parsed.
    """
    env_mapping: dict[str, tuple[str, Any]] = {
        "DXFIX_CHECKER_COMMAND": ("checker_command", str),
        "DXFIX_CHECKER_TIMEOUT": ("checker_timeout", float),
        "DXFIX_INCLUDE_EXTENSIONS": ("include_extensions", _split_list),
        "DXFIX_EXCLUDE_DIRS": ("exclude_dirs", _split_list),
        "DXFIX_BACKUP_SUFFIX": ("backup_suffix", str),
        "DXFIX_JOBS": ("jobs", int),
        "DXFIX_RULE_CATALOGS": ("rule_catalogs", _split_list),
        "DXFIX_USE_BUILTIN_RULES": ("use_builtin_rules", _parse_bool),
        "DXFIX_PROJECT_MARKER": ("project_marker", str),
    }

    result: dict[str, Any] = {}
    for env_var, (config_key, convert) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                result[config_key] = convert(value)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_var}: {value!r}") from e

    return result


def _merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge configuration dictionaries; later ones take precedence."""
    result: dict[str, Any] = {}
    for config in configs:
        for key, value in config.items():
            if value is not None:
                result[key] = value
    return result


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    start_dir: Path | None = None,
) -> DxfixConfig:
    """Load configuration with full precedence chain.

    Precedence (highest to lowest):
    1. CLI arguments (cli_overrides)
    2. Environment variables (DXFIX_*)
    3. .dxfixrc file
    4. pyproject.toml [tool.dxfix] section
    5. Default values

    Args:
        cli_overrides: Configuration overrides from CLI arguments.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved DxfixConfig instance.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    pyproject_config = _load_from_pyproject(start_dir)
    dxfixrc_config = _load_from_dxfixrc(start_dir)
    env_config = _load_from_env()
    cli_config = cli_overrides or {}

    valid_fields = _get_config_field_names()
    cli_config = {k: v for k, v in cli_config.items() if k in valid_fields and v is not None}

    merged = _merge_configs(
        pyproject_config,
        dxfixrc_config,
        env_config,
        cli_config,
    )

    return DxfixConfig(**merged)
